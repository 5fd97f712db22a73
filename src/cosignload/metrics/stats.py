"""Latency statistics over a set of durations.

Percentiles use a rank rule: with
``rank = pct / 100 * n`` over the sorted samples, a whole rank selects the
sample at that rank, a fractional rank above 1 averages the two samples
around it, and anything else is undefined and reported as 0.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from cosignload.metrics.models import DurationStats

if TYPE_CHECKING:
    from cosignload._internal.types import Durations

REPORTED_PERCENTILES = (99.0, 95.0)


def _ranked(ordered: np.ndarray, pct: float) -> float:
    n = int(ordered.size)
    if n == 0 or pct <= 0.0 or pct > 100.0:
        return 0.0
    rank = (pct / 100.0) * n
    if rank == int(rank):
        return float(ordered[int(rank) - 1])
    if rank > 1.0:
        i = int(rank)
        return float(np.mean(ordered[i - 1 : i + 1]))
    return 0.0


def percentile(durations: Durations, pct: float) -> float:
    """Return the ``pct`` percentile of ``durations``, or 0.0 when undefined."""
    return _ranked(np.sort(np.asarray(durations, dtype=np.float64)), pct)


def compute_stats(durations: Durations) -> DurationStats:
    """Summarize latencies in milliseconds.

    Args:
        durations: Latency samples in milliseconds, in any order.

    Returns:
        DurationStats with mean, max, min, p99 and p95. All fields are
        zero for an empty input; a percentile is zero when too few samples
        exist to rank it.
    """
    if not durations:
        return DurationStats()

    arr = np.sort(np.asarray(durations, dtype=np.float64))
    p99, p95 = (_ranked(arr, pct) for pct in REPORTED_PERCENTILES)

    return DurationStats(
        count=int(arr.size),
        mean=float(np.mean(arr)),
        max=float(np.max(arr)),
        min=float(np.min(arr)),
        p99=p99,
        p95=p95,
    )
