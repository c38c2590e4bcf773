"""Shutdown coordinator — flushes registered shippers before the process exits.

Whoever wires the system together constructs one coordinator and hands it to
each shipper; shippers register on creation and unregister on close().
"""

import asyncio
import logging
import os
import signal

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _reraise_default(signum: int) -> None:
    """Deliver ``signum`` again now that our handler is gone."""
    os.kill(os.getpid(), signum)


class ShutdownCoordinator:
    """Registry of shippers that want a final flush on shutdown.

    - install(): hook SIGINT/SIGTERM on the running loop (idempotent)
    - on a signal: flush every shipper to completion, remove the hooks, then
      call ``terminate(signum)`` (default: re-deliver the signal so its
      default action ends the process)
    - shutdown(): best-effort flush bounded by ``exit_timeout`` seconds, for
      a normal exit; also run by ``async with coordinator``
    """

    def __init__(self, exit_timeout: float = 5.0, terminate=None):
        self.exit_timeout = exit_timeout
        self._terminate = terminate or _reraise_default
        self._shippers: set = set()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._installed = False
        self._signal_task: asyncio.Task | None = None

    @property
    def shippers(self) -> frozenset:
        return frozenset(self._shippers)

    @property
    def installed(self) -> bool:
        return self._installed

    def register(self, shipper) -> None:
        self._shippers.add(shipper)

    def unregister(self, shipper) -> None:
        self._shippers.discard(shipper)

    def install(self) -> None:
        """Install signal handlers on the running loop; later calls are no-ops."""
        if self._installed:
            return
        self._loop = asyncio.get_running_loop()
        for sig in HANDLED_SIGNALS:
            try:
                self._loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError) as e:
                # Not available off the main thread or on some platforms.
                logger.warning("Cannot install handler for %s: %s", sig.name, e)
        self._installed = True

    def uninstall(self) -> None:
        if not self._installed:
            return
        for sig in HANDLED_SIGNALS:
            try:
                self._loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass
        self._installed = False

    async def flush_all(self) -> None:
        """Flush every registered shipper concurrently; failures are logged only."""
        shippers = list(self._shippers)
        if not shippers:
            return
        results = await asyncio.gather(
            *(shipper.flush() for shipper in shippers), return_exceptions=True
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error("Flush on shutdown failed: %s", result)

    async def shutdown(self) -> None:
        """Best-effort flush for a normal exit; never waits past ``exit_timeout``."""
        try:
            await asyncio.wait_for(self.flush_all(), self.exit_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Gave up flushing %d shipper(s) after %.1fs", len(self._shippers), self.exit_timeout
            )

    async def handle_signal(self, signum: int) -> None:
        """Flush everything, drop our handlers, then let the process terminate."""
        logger.info("Received signal %d, flushing %d shipper(s)", signum, len(self._shippers))
        await self.flush_all()
        self.uninstall()
        self._terminate(signum)

    def _on_signal(self, signum: int) -> None:
        if self._signal_task is not None and not self._signal_task.done():
            return
        self._signal_task = self._loop.create_task(self.handle_signal(signum))

    async def __aenter__(self) -> "ShutdownCoordinator":
        self.install()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await self.shutdown()
        finally:
            self.uninstall()
