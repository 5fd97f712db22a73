"""Result aggregation for a load test run.

The ``ResultAggregator`` is the single consumer of the result queue. It
blocks until exactly ``threads * iterations`` records have arrived, so it
relies on every job reporting each of its iterations.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from cosignload._internal.logging import get_logger
from cosignload.metrics.models import ErrorTally, RunReport
from cosignload.metrics.stats import compute_stats

if TYPE_CHECKING:
    import queue
    from collections.abc import Callable, Iterable

    from cosignload._internal.types import Durations
    from cosignload.engine.protocol import ResultRecord

logger = get_logger("metrics.aggregator")


class ResultAggregator:
    """Collects result records and turns them into a RunReport.

    Attributes:
        threads: Number of jobs in the run.
        iterations: Records expected per job.
    """

    def __init__(
        self,
        threads: int,
        iterations: int,
        *,
        on_record: Callable[[ResultRecord], None] | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        """Initialize the aggregator.

        Args:
            threads: Number of jobs in the run.
            iterations: Records expected per job.
            on_record: Optional callback invoked with each record as it
                arrives, from the collecting thread.
            clock: Time source, must match the one used for ``started_at``.
        """
        self.threads = threads
        self.iterations = iterations
        self._on_record = on_record
        self._clock = clock

        self._successes: Durations = []
        self._failures: Durations = []
        self._errors = ErrorTally()

    @property
    def expected(self) -> int:
        """Total number of records the run must produce."""
        return self.threads * self.iterations

    @property
    def received(self) -> int:
        return len(self._successes) + len(self._failures)

    def add(self, record: ResultRecord) -> None:
        """Account for one record."""
        if record.success:
            self._successes.append(record.latency_ms)
        else:
            self._failures.append(record.latency_ms)
            self._errors.add(record)
        if self._on_record is not None:
            self._on_record(record)

    def add_all(self, records: Iterable[ResultRecord]) -> None:
        for record in records:
            self.add(record)

    def collect(
        self,
        result_queue: queue.Queue[ResultRecord],
        *,
        started_at: float,
    ) -> RunReport:
        """Block until every expected record is received, then build the report.

        Args:
            result_queue: Queue the workers push records onto.
            started_at: Clock reading taken just before jobs were dispatched.

        Returns:
            The RunReport for the whole run.
        """
        while self.received < self.expected:
            self.add(result_queue.get())

        elapsed = self._clock() - started_at
        logger.debug("Collected %d records in %.3fs", self.received, elapsed)
        return self.build_report(elapsed)

    def build_report(self, elapsed_seconds: float) -> RunReport:
        """Summarize everything added so far."""
        return RunReport(
            threads=self.threads,
            iterations=self.iterations,
            elapsed_seconds=elapsed_seconds,
            success=compute_stats(self._successes),
            failure=compute_stats(self._failures),
            errors=self._errors,
        )
