"""Value types passed between the dispatcher, the workers and the aggregator.

Jobs travel over the job queue and result records over the result queue.
Both are frozen so nothing can change them once they have been handed over.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cosignload._internal.types import Address
    from cosignload.engine.tls import TLSSettings


class ErrorKind(Enum):
    """Stage at which a command attempt failed.

    The value is the tag printed in front of the raw message. A failed
    STARTTLS acknowledgement carries no tag; its status is the raw line.
    """

    NOCONN = "NOCONN"
    BADRESPONSE = "BADRESPONSE"
    STARTTLS_FAIL = ""
    HANDSHAKE_FAIL = "HANDSHAKE FAIL"
    FAILRESPONSE = "FAILRESPONSE"

    @property
    def label(self) -> str:
        """Readable name for reports (``STARTTLS_FAIL`` rather than ``""``)."""
        return self.name


@dataclass(frozen=True)
class Job:
    """One client lifecycle: connect, upgrade, send ``iterations`` commands.

    Attributes:
        job_id: Sequence number assigned by the dispatcher.
        host: Target host.
        port: Target port.
        command: Command text without the trailing CRLF.
        iterations: Number of commands to send on the connection.
        tls: Shared TLS settings. Never mutated by workers.
        timeout: Optional per-socket-operation deadline in seconds.
    """

    job_id: int
    host: str
    port: int
    command: str
    iterations: int
    tls: TLSSettings
    timeout: float | None = None

    @property
    def address(self) -> Address:
        return (self.host, self.port)


@dataclass(frozen=True)
class ResultRecord:
    """Outcome of a single command attempt.

    Attributes:
        success: Whether the server answered with an accepted status code.
        latency_ms: Time since the previous measurement point, in milliseconds.
        message: Raw server line (without CRLF) or error text.
        kind: Failure stage, or None for a success.
        worker_id: Worker that produced the record.
        iteration: 1-based position of the command within its job.
    """

    success: bool
    latency_ms: float
    message: str
    kind: ErrorKind | None = None
    worker_id: int = 0
    iteration: int = 1

    @property
    def status(self) -> str:
        """Stage-tagged status string, e.g. ``"BADRESPONSE 500 no"``."""
        if self.success:
            return f"SUCCESS {self.message}"
        if self.kind is None or not self.kind.value:
            return self.message
        return f"{self.kind.value} {self.message}"
