"""Delivery counters for a remote shipper."""


class ShipperMetrics:
    """Counters updated from the event loop thread only, so no lock is needed.

    Latency is kept as a running sum and max, so memory stays constant for
    the life of the shipper.
    """

    def __init__(self):
        self.sent = 0
        self.failed_attempts = 0
        self.dropped = 0
        self.batches = 0
        self._latency_total_ms = 0.0
        self._latency_max_ms = 0.0

    def record_sent(self, count: int, latency_ms: float):
        """Record a delivered batch of ``count`` lines."""
        self.sent += count
        self.batches += 1
        self._latency_total_ms += latency_ms
        self._latency_max_ms = max(self._latency_max_ms, latency_ms)

    def record_failed_attempt(self):
        self.failed_attempts += 1

    def record_dropped(self, count: int = 1):
        self.dropped += count

    def snapshot(self, pending: int = 0, persist_failures: int = 0) -> dict:
        return {
            "sent": self.sent,
            "batches": self.batches,
            "failed_attempts": self.failed_attempts,
            "dropped": self.dropped,
            "pending": pending,
            "persist_failures": persist_failures,
            "avg_latency_ms": self._latency_total_ms / self.batches if self.batches else 0.0,
            "max_latency_ms": self._latency_max_ms,
        }
