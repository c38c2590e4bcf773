"""Remote shipper — batches the durable queue and POSTs it with retry/backoff.

Runs entirely on the asyncio event loop it was created in:

- a periodic timer requests a flush every ``flush_interval_ms``
- every enqueue requests an immediate flush
- at most one flush timer is pending and at most one flush is in flight;
  further requests are coalesced
- on success the backlog is drained batch after batch with zero delay
- on failure attempts are bumped, exhausted items dropped, the rest put back
  at the front, and a retry is scheduled with exponential backoff
"""

import asyncio
import json
import logging
import time
from collections.abc import Mapping

import httpx

from shiplog.config import QueueConfig, RemoteConfig
from shiplog.durable_queue import DurableQueue, QueueItem
from shiplog.errors import ConfigurationError, PermanentDropError, TransientDeliveryError
from shiplog.formatter import safe_parse
from shiplog.metrics import ShipperMetrics

logger = logging.getLogger(__name__)


def validate_remote(remote: RemoteConfig) -> None:
    """Raise ConfigurationError unless ``remote`` can be sent to as configured.

    The URL must be absolute http(s) and every header a string pair that
    httpx can encode.
    """
    if not remote.url:
        raise ConfigurationError("Remote URL is empty")
    try:
        url = httpx.URL(remote.url)
    except (httpx.InvalidURL, TypeError) as e:
        raise ConfigurationError(f"Invalid remote URL {remote.url!r}: {e}") from e
    if url.scheme not in ("http", "https") or not url.host:
        raise ConfigurationError(f"Remote URL must be absolute http(s): {remote.url!r}")
    if remote.timeout_ms is not None and remote.timeout_ms <= 0:
        raise ConfigurationError(f"timeout_ms must be positive, got {remote.timeout_ms}")
    if not isinstance(remote.headers, Mapping):
        raise ConfigurationError(f"headers must be a mapping, got {type(remote.headers).__name__}")
    for name, value in remote.headers.items():
        if not isinstance(name, str) or not isinstance(value, str):
            raise ConfigurationError(f"Header {name!r} must map a string to a string, got {value!r}")
    try:
        httpx.Headers(remote.headers)
    except UnicodeEncodeError as e:
        raise ConfigurationError(f"Headers must be ASCII: {e}") from e


def validate_queue(config: QueueConfig) -> None:
    if config.max_batch_size < 1:
        raise ConfigurationError(f"max_batch_size must be >= 1, got {config.max_batch_size}")
    if config.max_retries < 0:
        raise ConfigurationError(f"max_retries must be >= 0, got {config.max_retries}")
    if config.backoff_ms < 0 or config.max_backoff_ms < config.backoff_ms:
        raise ConfigurationError(
            f"Need 0 <= backoff_ms <= max_backoff_ms, got {config.backoff_ms}/{config.max_backoff_ms}"
        )


class RemoteShipper:
    """Durable, batching, retrying delivery of log lines to an HTTP collector."""

    def __init__(
        self,
        remote: RemoteConfig,
        queue_config: QueueConfig | None = None,
        coordinator=None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        queue_config = queue_config or QueueConfig()
        validate_remote(remote)
        validate_queue(queue_config)
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            raise ConfigurationError(
                "RemoteShipper must be created inside a running event loop"
            ) from None

        self._remote = remote
        self._headers = httpx.Headers({"content-type": "application/json"})
        self._headers.update(remote.headers)
        self._config = queue_config
        self._queue = DurableQueue(queue_config.file_path, persist_enabled=queue_config.enabled)
        self._client = httpx.AsyncClient(transport=transport, timeout=None)
        self._coordinator = coordinator
        self.metrics = ShipperMetrics()

        self._current_backoff_ms = queue_config.backoff_ms
        self._inflight: asyncio.Future | None = None
        self._closed = False
        self._flush_handle: asyncio.TimerHandle | None = None
        self._interval_handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()

        # Lines logged before the snapshot finished loading, in arrival order.
        self._loaded = False
        self._early_lines: list[str] = []
        self._ready = self._spawn(self._load())

        if coordinator is not None and queue_config.flush_on_exit:
            coordinator.register(self)
        if queue_config.flush_interval_ms > 0:
            self._arm_interval()

    # Introspection

    @property
    def pending(self) -> int:
        return len(self._queue) + len(self._early_lines)

    @property
    def pending_items(self) -> list[QueueItem]:
        return self._queue.items

    @property
    def current_backoff_ms(self) -> int:
        return self._current_backoff_ms

    @property
    def is_flushing(self) -> bool:
        return self._inflight is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def stats(self) -> dict:
        return self.metrics.snapshot(
            pending=self.pending, persist_failures=self._queue.persist_failures
        )

    async def wait_ready(self) -> None:
        """Wait until the snapshot has been loaded."""
        await self._ready

    # Public API

    def enqueue(self, line: str) -> None:
        """Queue a line for delivery. Returns immediately."""
        if not self._loaded:
            self._early_lines.append(line)
            return
        self._queue.append(line)
        self._spawn(self._queue.persist())
        self.schedule_flush(0)

    def schedule_flush(self, delay_ms: float) -> None:
        """Request a flush after ``delay_ms``; coalesced with any pending request."""
        if self._closed or self._flush_handle is not None:
            return
        self._flush_handle = self._loop.call_later(delay_ms / 1000, self._on_flush_timer)

    async def flush(self) -> None:
        """Make one delivery attempt for the oldest batch.

        If an attempt is already in flight, waits for that attempt to finish
        instead of starting another. No-op if nothing is queued.
        """
        await self._ready
        if self._inflight is not None:
            await asyncio.shield(self._inflight)
            return
        if len(self._queue) == 0:
            return

        self._inflight = self._loop.create_future()
        batch = self._queue.take_batch(self._config.max_batch_size)
        try:
            t0 = time.monotonic()
            try:
                await self._send_batch(batch)
            except TransientDeliveryError as e:
                await self._handle_failure(batch, e)
                return

            latency_ms = (time.monotonic() - t0) * 1000
            self._queue.remove_front(len(batch))
            self.metrics.record_sent(len(batch), latency_ms)
            self._current_backoff_ms = self._config.backoff_ms
            await self._queue.persist()
            logger.debug("Shipped batch of %d lines in %.1fms", len(batch), latency_ms)
            if len(self._queue) > 0:
                self.schedule_flush(0)
        finally:
            self._inflight.set_result(None)
            self._inflight = None

    def close(self) -> None:
        """Cancel timers and leave the shutdown coordinator.

        An in-flight flush is not cancelled.
        """
        if self._closed:
            return
        self._closed = True
        if self._interval_handle is not None:
            self._interval_handle.cancel()
            self._interval_handle = None
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        if self._coordinator is not None:
            self._coordinator.unregister(self)

    async def aclose(self) -> None:
        """close(), then wait for background work and release the HTTP client."""
        self.close()
        current = asyncio.current_task()
        pending = [t for t in self._tasks if t is not current]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self._client.aclose()

    # Internals

    async def _load(self) -> None:
        await self._queue.load()
        self._loaded = True
        if self._early_lines:
            for line in self._early_lines:
                self._queue.append(line)
            self._early_lines.clear()
            await self._queue.persist()
        if len(self._queue) > 0:
            self.schedule_flush(0)

    async def _send_batch(self, batch: list[QueueItem]) -> None:
        payload = [safe_parse(item.line) for item in batch]
        request = self._client.post(
            self._remote.url, content=json.dumps(payload), headers=self._headers
        )
        try:
            if self._remote.timeout_ms is not None:
                response = await asyncio.wait_for(request, self._remote.timeout_ms / 1000)
            else:
                response = await request
        except asyncio.TimeoutError as e:
            raise TransientDeliveryError(
                f"Request timed out after {self._remote.timeout_ms}ms"
            ) from e
        except httpx.HTTPError as e:
            raise TransientDeliveryError(f"Request failed: {e!r}") from e

        if not response.is_success:
            raise TransientDeliveryError(
                f"HTTP {response.status_code}", status_code=response.status_code
            )

    async def _handle_failure(self, batch: list[QueueItem], error: TransientDeliveryError) -> None:
        self.metrics.record_failed_attempt()
        retained = []
        for item in batch:
            item.attempts += 1
            if item.attempts > self._config.max_retries:
                logger.error("Dropping log line: %s", PermanentDropError(item.line, item.attempts))
                self.metrics.record_dropped()
            else:
                retained.append(item)
        self._queue.replace_front(len(batch), retained)
        await self._queue.persist()

        logger.warning("Remote log flush failed: %s", error)
        if len(self._queue) > 0:
            # The retry replaces any immediate request queued while we were sending.
            if self._flush_handle is not None:
                self._flush_handle.cancel()
                self._flush_handle = None
            self.schedule_flush(self._current_backoff_ms)
            self._current_backoff_ms = min(
                self._config.max_backoff_ms, self._current_backoff_ms * 2
            )

    def _on_flush_timer(self) -> None:
        self._flush_handle = None
        self._spawn(self.flush())

    def _arm_interval(self) -> None:
        self._interval_handle = self._loop.call_later(
            self._config.flush_interval_ms / 1000, self._on_interval
        )

    def _on_interval(self) -> None:
        self._interval_handle = None
        if self._closed:
            return
        self.schedule_flush(0)
        self._arm_interval()

    def _spawn(self, coro) -> asyncio.Task:
        task = self._loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Shipper background task failed", exc_info=exc)
