"""Logger — level filtering and fan-out to console, file, and remote shipper."""

import logging
import sys

from shiplog.config import LoggerConfig
from shiplog.errors import ConfigurationError
from shiplog.file_sink import FileSink
from shiplog.formatter import format_line
from shiplog.records import LogRecord, level_priority, normalize_meta, utc_timestamp
from shiplog.redaction import redact_record, resolve_redaction
from shiplog.shipper import RemoteShipper

# Internal diagnostics; never routed back through a shiplog Logger.
diagnostics = logging.getLogger(__name__)

STDERR_LEVELS = frozenset({"error", "warn"})


class Logger:
    """Structured logger with redaction and durable remote delivery.

    A remote shipper is only created when ``config.remote`` has a usable URL
    and the logger is constructed inside a running event loop; any problem
    there disables remote shipping with a warning instead of raising.
    """

    def __init__(
        self,
        config: LoggerConfig | None = None,
        coordinator=None,
        transport=None,
        stdout=None,
        stderr=None,
    ):
        config = config or LoggerConfig()
        self.level = config.level
        try:
            self._threshold = level_priority(config.level)
        except ValueError as e:
            diagnostics.warning("%s, falling back to 'info'", e)
            self.level = "info"
            self._threshold = level_priority("info")
        self.service = config.service
        self.redaction = resolve_redaction(config.redaction)
        self._stdout = stdout
        self._stderr = stderr

        self.file_sink: FileSink | None = None
        if config.file_path:
            try:
                self.file_sink = FileSink(config.file_path)
            except OSError as e:
                diagnostics.warning("File sink disabled for %s: %s", config.file_path, e)

        self.shipper: RemoteShipper | None = None
        if config.remote is not None:
            try:
                self.shipper = RemoteShipper(
                    config.remote, config.queue, coordinator=coordinator, transport=transport
                )
            except ConfigurationError as e:
                diagnostics.warning("Remote shipping disabled: %s", e)

    def should_log(self, level: str) -> bool:
        return level_priority(level) >= self._threshold

    def log(self, level: str, message, meta=None) -> None:
        if not self.should_log(level):
            return

        record = LogRecord(
            level=level,
            message=message if isinstance(message, str) else str(message),
            timestamp=utc_timestamp(),
            service=self.service,
            meta=normalize_meta(meta),
        )
        record = redact_record(record, self.redaction)
        line = format_line(record)

        self._write_console(level, line)
        if self.file_sink is not None:
            self.file_sink.write(line)
        if self.shipper is not None:
            self.shipper.enqueue(line)

    def debug(self, message, meta=None) -> None:
        self.log("debug", message, meta)

    def info(self, message, meta=None) -> None:
        self.log("info", message, meta)

    def warn(self, message, meta=None) -> None:
        self.log("warn", message, meta)

    def error(self, message, meta=None) -> None:
        self.log("error", message, meta)

    async def flush(self) -> None:
        """Wait for one shipper delivery attempt.

        Joins the attempt already in flight if there is one; otherwise starts
        one for the oldest batch.
        """
        if self.shipper is not None:
            await self.shipper.flush()

    def close(self) -> None:
        if self.shipper is not None:
            self.shipper.close()

    async def aclose(self) -> None:
        if self.shipper is not None:
            await self.shipper.aclose()

    def _write_console(self, level: str, line: str) -> None:
        if level in STDERR_LEVELS:
            stream = self._stderr or sys.stderr
        else:
            stream = self._stdout or sys.stdout
        try:
            stream.write(line + "\n")
            stream.flush()
        except (OSError, ValueError):
            # Closed or broken stream; console output is best-effort.
            pass
