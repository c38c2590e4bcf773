"""Tests for shiplog/durable_queue.py — ordering, snapshots, recovery."""

import asyncio
import json

import pytest

from shiplog.durable_queue import DurableQueue, QueueItem


def _make_queue(tmp_path, name: str = "queue.json", enabled: bool = True) -> DurableQueue:
    return DurableQueue(str(tmp_path / name), persist_enabled=enabled)


def _write_snapshot(path, data) -> None:
    path.write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")


# ── In-memory ordering ──────────────────────────────────────────────


class TestOrdering:
    def test_append_starts_at_zero_attempts(self, tmp_path):
        queue = _make_queue(tmp_path)
        item = queue.append("a")
        assert item == QueueItem("a", 0)
        assert len(queue) == 1

    def test_take_batch_is_fifo_and_non_destructive(self, tmp_path):
        queue = _make_queue(tmp_path)
        for line in "abcde":
            queue.append(line)
        assert [i.line for i in queue.take_batch(3)] == ["a", "b", "c"]
        assert len(queue) == 5

    def test_remove_front(self, tmp_path):
        queue = _make_queue(tmp_path)
        for line in "abcde":
            queue.append(line)
        queue.remove_front(2)
        assert [i.line for i in queue.items] == ["c", "d", "e"]

    def test_replace_front_keeps_order(self, tmp_path):
        queue = _make_queue(tmp_path)
        for line in "abcd":
            queue.append(line)
        batch = queue.take_batch(3)
        queue.replace_front(3, [batch[0], batch[2]])
        assert [i.line for i in queue.items] == ["a", "c", "d"]


# ── Loading ─────────────────────────────────────────────────────────


class TestLoad:
    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, tmp_path):
        queue = _make_queue(tmp_path)
        await queue.load()
        assert len(queue) == 0
        assert queue.persist_failures == 0

    @pytest.mark.asyncio
    async def test_corrupt_file_is_ignored_and_left_alone(self, tmp_path):
        path = tmp_path / "queue.json"
        _write_snapshot(path, "{not json")
        queue = _make_queue(tmp_path)
        await queue.load()
        assert len(queue) == 0
        assert path.read_text(encoding="utf-8") == "{not json"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "data",
        [
            {"version": 2, "items": []},
            {"items": [{"line": "a", "attempts": 0}]},
            {"version": 1, "items": "nope"},
            [1, 2, 3],
        ],
    )
    async def test_unrecognized_format_is_ignored(self, tmp_path, data):
        _write_snapshot(tmp_path / "queue.json", data)
        queue = _make_queue(tmp_path)
        await queue.load()
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_malformed_items_are_skipped(self, tmp_path):
        _write_snapshot(
            tmp_path / "queue.json",
            {
                "version": 1,
                "items": [
                    {"line": "good", "attempts": 2},
                    {"line": 5, "attempts": 0},
                    {"line": "neg", "attempts": -1},
                    "junk",
                    {"line": "also good", "attempts": 0},
                ],
            },
        )
        queue = _make_queue(tmp_path)
        await queue.load()
        assert queue.items == [QueueItem("good", 2), QueueItem("also good", 0)]

    @pytest.mark.asyncio
    async def test_disabled_persistence_skips_load(self, tmp_path):
        _write_snapshot(tmp_path / "queue.json", {"version": 1, "items": [{"line": "a", "attempts": 0}]})
        queue = _make_queue(tmp_path, enabled=False)
        await queue.load()
        assert len(queue) == 0


# ── Persisting ──────────────────────────────────────────────────────


class TestPersist:
    @pytest.mark.asyncio
    async def test_writes_full_snapshot(self, tmp_path):
        queue = _make_queue(tmp_path)
        queue.append("a")
        queue.append("b")
        queue.take_batch(1)[0].attempts = 3
        assert await queue.persist() is True

        data = json.loads((tmp_path / "queue.json").read_text(encoding="utf-8"))
        assert data == {
            "version": 1,
            "items": [{"line": "a", "attempts": 3}, {"line": "b", "attempts": 0}],
        }

    @pytest.mark.asyncio
    async def test_creates_parent_directory(self, tmp_path):
        queue = DurableQueue(str(tmp_path / "nested" / "dir" / "queue.json"))
        queue.append("a")
        assert await queue.persist() is True
        assert (tmp_path / "nested" / "dir" / "queue.json").exists()

    @pytest.mark.asyncio
    async def test_restart_recovers_equivalent_queue(self, tmp_path):
        first = _make_queue(tmp_path)
        for line in ["one", "two", "three"]:
            first.append(line)
        first.take_batch(2)[1].attempts = 4
        await first.persist()

        second = _make_queue(tmp_path)
        await second.load()
        assert second.items == first.items

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a regular file", encoding="utf-8")
        queue = DurableQueue(str(blocker / "queue.json"))
        queue.append("a")

        assert await queue.persist() is False
        assert queue.persist_failures == 1
        assert [i.line for i in queue.items] == ["a"]

    @pytest.mark.asyncio
    async def test_disabled_persistence_writes_nothing(self, tmp_path):
        queue = _make_queue(tmp_path, enabled=False)
        queue.append("a")
        assert await queue.persist() is True
        assert not (tmp_path / "queue.json").exists()

    @pytest.mark.asyncio
    async def test_writes_never_overlap(self, tmp_path):
        queue = _make_queue(tmp_path)
        original = queue._write_snapshot
        active = 0
        max_active = 0
        order: list[int] = []

        async def slow_write(payload):
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            order.append(len(json.loads(payload)["items"]))
            await asyncio.sleep(0.01)
            await original(payload)
            active -= 1

        queue._write_snapshot = slow_write

        tasks = []
        for i in range(5):
            queue.append(f"line-{i}")
            tasks.append(asyncio.create_task(queue.persist()))
        await asyncio.gather(*tasks)

        assert max_active == 1
        assert len(order) == 5
        data = json.loads((tmp_path / "queue.json").read_text(encoding="utf-8"))
        assert len(data["items"]) == 5
