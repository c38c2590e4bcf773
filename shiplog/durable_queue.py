"""Disk-backed FIFO of pending log lines.

The snapshot is a JSON document ``{"version": 1, "items": [...]}``. Every
persist writes the complete current queue (tmp file + os.replace), and writes
are serialized through a single asyncio.Lock so snapshots land in call order.
"""

import asyncio
import json
import logging
import os
import tempfile
from dataclasses import dataclass

import aiofiles
import aiofiles.os

from shiplog.errors import PersistenceError

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


@dataclass
class QueueItem:
    line: str
    attempts: int = 0

    def to_dict(self) -> dict:
        return {"line": self.line, "attempts": self.attempts}


class DurableQueue:
    """Ordered list of QueueItems mirrored to a snapshot file.

    Only the owning shipper touches it, always from the event loop thread.
    """

    def __init__(self, file_path: str, persist_enabled: bool = True):
        self.file_path = file_path
        self.persist_enabled = persist_enabled
        self._items: list[QueueItem] = []
        self._write_lock = asyncio.Lock()
        self.persist_failures = 0

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> list[QueueItem]:
        """Read-only view (a shallow copy) of the pending items."""
        return list(self._items)

    # Mutation

    def append(self, line: str) -> QueueItem:
        item = QueueItem(line=line, attempts=0)
        self._items.append(item)
        return item

    def take_batch(self, max_size: int) -> list[QueueItem]:
        """Oldest ``max_size`` items, without removing them."""
        return self._items[:max_size]

    def remove_front(self, count: int) -> None:
        del self._items[:count]

    def replace_front(self, count: int, retained: list[QueueItem]) -> None:
        """Swap the first ``count`` items for ``retained`` (order preserved)."""
        self._items[:count] = retained

    # Persistence

    async def load(self) -> None:
        """Recover items from the snapshot file, appending them before anything else.

        Missing file means an empty queue. A corrupt or unrecognized file is
        logged and ignored; it is not rewritten until the next persist.
        """
        if not self.persist_enabled:
            return
        try:
            raw = await self._read_snapshot()
        except PersistenceError as e:
            self.persist_failures += 1
            logger.warning("Starting with an empty queue: %s", e)
            return
        if raw is None:
            return

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Queue file %s is not valid JSON, starting empty: %s", self.file_path, e)
            return

        if (
            not isinstance(data, dict)
            or data.get("version") != SNAPSHOT_VERSION
            or not isinstance(data.get("items"), list)
        ):
            logger.warning("Queue file %s has unrecognized format, starting empty", self.file_path)
            return

        recovered = []
        for entry in data["items"]:
            item = _item_from_dict(entry)
            if item is None:
                logger.warning("Skipping malformed queue entry: %.200r", entry)
                continue
            recovered.append(item)

        self._items[:0] = recovered
        if recovered:
            logger.info("Recovered %d pending log lines from %s", len(recovered), self.file_path)

    async def persist(self) -> bool:
        """Write the full queue to disk. Returns False (and logs) on failure."""
        if not self.persist_enabled:
            return True
        async with self._write_lock:
            # Serialize inside the lock so each write reflects the queue at write time.
            payload = json.dumps(
                {"version": SNAPSHOT_VERSION, "items": [i.to_dict() for i in self._items]}
            )
            try:
                await self._write_snapshot(payload)
                return True
            except PersistenceError as e:
                self.persist_failures += 1
                logger.error("Queue persist failed: %s", e)
                return False

    async def _read_snapshot(self) -> str | None:
        try:
            async with aiofiles.open(self.file_path, mode="r", encoding="utf-8") as f:
                return await f.read()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Failed to read queue file {self.file_path}: {e}") from e

    async def _write_snapshot(self, payload: str) -> None:
        directory = os.path.dirname(self.file_path) or "."
        tmp = None
        try:
            await aiofiles.os.makedirs(directory, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=directory, prefix=".shiplog-", suffix=".tmp")
            os.close(fd)
            async with aiofiles.open(tmp, mode="w", encoding="utf-8") as f:
                await f.write(payload)
            await aiofiles.os.replace(tmp, self.file_path)
        except OSError as e:
            if tmp is not None:
                try:
                    await aiofiles.os.remove(tmp)
                except OSError:
                    pass
            raise PersistenceError(f"Failed to persist queue to {self.file_path}: {e}") from e


def _item_from_dict(entry) -> QueueItem | None:
    if not isinstance(entry, dict):
        return None
    line = entry.get("line")
    attempts = entry.get("attempts", 0)
    if not isinstance(line, str):
        return None
    if isinstance(attempts, bool) or not isinstance(attempts, int) or attempts < 0:
        return None
    return QueueItem(line=line, attempts=attempts)
