"""Report dataclasses for cosignload."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from cosignload.engine.protocol import ErrorKind, ResultRecord

__all__ = [
    "DurationStats",
    "ErrorTally",
    "RunReport",
]


@dataclass(frozen=True)
class DurationStats:
    """Summary of one set of latencies. All values in milliseconds.

    Attributes:
        count: Number of samples.
        mean: Arithmetic mean.
        max: Largest sample.
        min: Smallest sample.
        p99: 99th percentile.
        p95: 95th percentile.
    """

    count: int = 0
    mean: float = 0.0
    max: float = 0.0
    min: float = 0.0
    p99: float = 0.0
    p95: float = 0.0


@dataclass
class ErrorTally:
    """Failure counts grouped by stage.

    Raw messages embed dynamic text (addresses, errno strings), so they
    are kept per kind as examples instead of being used as the grouping
    key.

    Attributes:
        by_kind: Number of failures per ErrorKind.
        messages: Per kind, count of each distinct raw message.
        by_status: Count of each full status string, as printed per record.
    """

    by_kind: dict[ErrorKind, int] = field(default_factory=lambda: defaultdict(int))
    messages: dict[ErrorKind, dict[str, int]] = field(
        default_factory=lambda: defaultdict(lambda: defaultdict(int))
    )
    by_status: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    def add(self, record: ResultRecord) -> None:
        """Count a failure record. Successes are ignored."""
        if record.success or record.kind is None:
            return
        self.by_kind[record.kind] += 1
        self.messages[record.kind][record.message] += 1
        self.by_status[record.status] += 1

    @property
    def total(self) -> int:
        return sum(self.by_kind.values())

    def top_messages(self, kind: ErrorKind, limit: int = 3) -> list[tuple[str, int]]:
        """Most frequent raw messages for ``kind``, most common first."""
        counts = self.messages.get(kind, {})
        return sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:limit]

    def to_dict(self) -> dict[str, Any]:
        return {
            kind.label: {
                "count": count,
                "messages": dict(self.messages[kind]),
            }
            for kind, count in sorted(self.by_kind.items(), key=lambda item: -item[1])
        }


@dataclass
class RunReport:
    """Complete result of a load test run.

    Attributes:
        threads: Number of concurrent clients.
        iterations: Commands per client.
        elapsed_seconds: Wall-clock time from dispatch to the last record.
        success: Latency summary of successful commands.
        failure: Latency summary of failed commands.
        errors: Failure breakdown.
    """

    threads: int
    iterations: int
    elapsed_seconds: float
    success: DurationStats = field(default_factory=DurationStats)
    failure: DurationStats = field(default_factory=DurationStats)
    errors: ErrorTally = field(default_factory=ErrorTally)

    @property
    def total_requests(self) -> int:
        return self.threads * self.iterations

    @property
    def requests_per_second(self) -> float:
        return self.total_requests / max(self.elapsed_seconds, 1e-9)

    @property
    def success_count(self) -> int:
        return self.success.count

    @property
    def failure_count(self) -> int:
        return self.failure.count

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation of the report."""
        return {
            "threads": self.threads,
            "iterations": self.iterations,
            "elapsed_seconds": self.elapsed_seconds,
            "requests_per_second": self.requests_per_second,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "success": asdict(self.success),
            "failure": asdict(self.failure),
            "errors": self.errors.to_dict(),
        }
