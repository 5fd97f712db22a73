"""Job construction and submission."""

from __future__ import annotations

import queue
from typing import TYPE_CHECKING

from cosignload._internal.logging import get_logger
from cosignload.engine.protocol import Job

if TYPE_CHECKING:
    from collections.abc import Iterable

    from cosignload._internal.config import RunConfig
    from cosignload.engine.tls import TLSSettings

logger = get_logger("engine.dispatcher")

# Queue items are jobs, or None telling a worker to exit.
JobQueue = queue.Queue[Job | None]


def make_job_queue(threads: int) -> JobQueue:
    """Create a job queue that can hold one job per worker plus a stop marker each."""
    return queue.Queue(maxsize=threads * 2)


def build_jobs(config: RunConfig, tls: TLSSettings) -> list[Job]:
    """Build one job per thread, each carrying the full iteration count.

    Every job references the same ``tls`` object.
    """
    return [
        Job(
            job_id=i,
            host=config.host,
            port=config.port,
            command=config.command,
            iterations=config.iterations,
            tls=tls,
            timeout=config.timeout,
        )
        for i in range(config.threads)
    ]


def dispatch(jobs: Iterable[Job], job_queue: JobQueue) -> int:
    """Enqueue jobs in order.

    Returns:
        The number of jobs enqueued.
    """
    count = 0
    for job in jobs:
        job_queue.put(job)
        count += 1
    logger.debug("Dispatched %d jobs", count)
    return count
