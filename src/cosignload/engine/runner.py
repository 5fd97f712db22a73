"""Top-level load test orchestrator."""

from __future__ import annotations

import queue
import time
from typing import TYPE_CHECKING

from cosignload._internal.logging import get_logger, setup_logging
from cosignload.engine.dispatcher import build_jobs, dispatch, make_job_queue
from cosignload.engine.tls import build_tls_settings
from cosignload.engine.worker import WorkerPool
from cosignload.metrics.aggregator import ResultAggregator

if TYPE_CHECKING:
    from collections.abc import Callable

    from cosignload._internal.config import RunConfig
    from cosignload.engine.protocol import ResultRecord
    from cosignload.engine.tls import TLSSettings
    from cosignload.metrics.models import RunReport

logger = get_logger("engine.runner")


class LoadTestRunner:
    """Runs one load test: dispatch jobs, run the pool, aggregate results.

    The calling thread does the dispatching and the aggregating; the
    pool's threads do all network I/O.

    Attributes:
        config: The validated run configuration.
    """

    def __init__(
        self,
        config: RunConfig,
        *,
        tls: TLSSettings | None = None,
        on_record: Callable[[ResultRecord], None] | None = None,
        log_level: int = 20,
        json_logs: bool = False,
    ) -> None:
        """Initialize the runner.

        Args:
            config: Run configuration.
            tls: Prebuilt TLS settings. Loaded from ``config`` when None.
            on_record: Optional callback for each result as it is collected.
            log_level: Logging level.
            json_logs: Emit JSON log lines.

        Raises:
            TLSConfigError: If ``tls`` is None and the certificate, key or
                CA file cannot be loaded.
        """
        self.config = config
        self._on_record = on_record
        self._log_level = log_level
        self._json_logs = json_logs

        # Load TLS material up front so a bad file fails before any work.
        self._tls = tls or build_tls_settings(
            config.cert_file,
            config.key_file,
            config.host,
            verify=config.verify,
            ca_file=config.ca_file,
        )

    def run(self) -> RunReport:
        """Execute the load test and return the report.

        Blocks until every job has reported all of its iterations.
        """
        setup_logging(level=self._log_level, json_format=self._json_logs)
        config = self.config

        logger.info(
            "Starting load test: target=%s:%d, threads=%d, iterations=%d, command=%r",
            config.host,
            config.port,
            config.threads,
            config.iterations,
            config.command,
        )

        job_queue = make_job_queue(config.threads)
        result_queue: queue.Queue[ResultRecord] = queue.Queue(maxsize=config.expected_results)
        pool = WorkerPool(config.threads, job_queue, result_queue)
        aggregator = ResultAggregator(
            config.threads,
            config.iterations,
            on_record=self._on_record,
        )

        pool.start()
        started_at = time.perf_counter()
        try:
            dispatch(build_jobs(config, self._tls), job_queue)
            report = aggregator.collect(result_queue, started_at=started_at)
        finally:
            pool.close()

        logger.info(
            "Load test finished: %d ok, %d failed in %.3fs",
            report.success_count,
            report.failure_count,
            report.elapsed_seconds,
        )
        return report
