"""Fixed-size pool of worker threads running client sessions."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

from cosignload._internal.errors import EngineError
from cosignload._internal.logging import get_logger
from cosignload.engine.protocol import ErrorKind
from cosignload.engine.session import CosignSession

if TYPE_CHECKING:
    import queue

    from cosignload.engine.dispatcher import JobQueue
    from cosignload.engine.protocol import Job, ResultRecord

logger = get_logger("engine.worker")


class WorkerPool:
    """Runs ``size`` threads that each pull jobs until told to stop.

    Each thread blocks on the job queue, runs one ``CosignSession`` per job
    and pushes every result record onto the result queue. Jobs are never
    retried or re-queued. Threads are daemons, so a hung connection cannot
    keep the process alive once the caller is done.

    Attributes:
        size: Number of worker threads.
    """

    def __init__(
        self,
        size: int,
        job_queue: JobQueue,
        result_queue: queue.Queue[ResultRecord],
    ) -> None:
        """Initialize the pool.

        Args:
            size: Number of worker threads to start.
            job_queue: Queue the workers take jobs from.
            result_queue: Queue receiving every result record.
        """
        self.size = size
        self._jobs = job_queue
        self._results = result_queue
        self._threads: list[threading.Thread] = []

    @property
    def is_alive(self) -> bool:
        """Return True if any worker thread is still running."""
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        """Start all worker threads.

        Raises:
            EngineError: If the pool was already started.
        """
        if self._threads:
            msg = "Worker pool already started"
            raise EngineError(msg)

        for i in range(self.size):
            thread = threading.Thread(
                target=self._run,
                args=(i + 1,),
                name=f"cosignload-worker-{i + 1}",
                daemon=True,
            )
            self._threads.append(thread)

        for t in self._threads:
            t.start()

        logger.info("Started %d worker threads", self.size)

    def close(self, timeout: float = 5.0) -> None:
        """Ask every worker to exit and wait for them.

        Workers still blocked on network I/O after ``timeout`` seconds in total are
        left behind; they are daemons and die with the process.

        Raises:
            EngineError: If the pool was never started.
        """
        if not self._threads:
            msg = "Worker pool was not started"
            raise EngineError(msg)

        for _ in self._threads:
            self._jobs.put(None)

        deadline = time.monotonic() + timeout
        for t in self._threads:
            t.join(timeout=max(deadline - time.monotonic(), 0.0))
            if t.is_alive():
                logger.warning("Worker %s did not exit in time", t.name)

        logger.debug("Worker pool closed")

    def _run(self, worker_id: int) -> None:
        while True:
            job = self._jobs.get()
            if job is None:
                break
            self._run_job(job, worker_id)

    def _run_job(self, job: Job, worker_id: int) -> None:
        session = CosignSession(job, self._results.put, worker_id=worker_id)
        try:
            session.run()
        except Exception as exc:
            # Keep the record count intact even if the session itself breaks.
            logger.exception("Worker %d: job %d crashed", worker_id, job.job_id)
            session.fail_remaining(ErrorKind.FAILRESPONSE, f"internal error: {exc!r}")
