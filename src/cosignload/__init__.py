"""cosignload: concurrent load generator for STARTTLS line-protocol servers."""

from __future__ import annotations

from cosignload._internal.config import RunConfig
from cosignload.engine.protocol import ErrorKind, Job, ResultRecord
from cosignload.engine.runner import LoadTestRunner
from cosignload.engine.tls import TLSSettings, build_tls_settings
from cosignload.metrics.models import DurationStats, ErrorTally, RunReport

__version__ = "0.1.0"

__all__ = [
    "DurationStats",
    "ErrorKind",
    "ErrorTally",
    "Job",
    "LoadTestRunner",
    "ResultRecord",
    "RunConfig",
    "RunReport",
    "TLSSettings",
    "build_tls_settings",
]
