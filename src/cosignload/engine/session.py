"""Per-job client session: dial, STARTTLS upgrade, command loop, teardown.

A session runs on one worker thread and owns its socket exclusively. It
reports every command attempt through an ``emit`` callback as soon as the
attempt is measured. Whatever stage the session stops in, it emits exactly
``job.iterations`` records.
"""

from __future__ import annotations

import contextlib
import socket
import time
from enum import Enum, auto
from typing import TYPE_CHECKING, BinaryIO

from cosignload._internal.logging import get_logger
from cosignload.engine.protocol import ErrorKind, ResultRecord

if TYPE_CHECKING:
    import ssl
    from collections.abc import Callable

    from cosignload.engine.protocol import Job

    ResultSink = Callable[[ResultRecord], None]

logger = get_logger("engine.session")

GREETING_PREFIX = "220 "
STARTTLS_REQUEST = b"STARTTLS 2\r\n"
QUIT_REQUEST = b"QUIT\r\n"

SUCCESS_CODES = frozenset({"220", "231", "232", "250", "431", "432", "533", "534"})


def classify_response(line: str) -> bool:
    """Return True if the response line carries an accepted status code.

    The code is the first whitespace-delimited token. Empty or blank lines
    are failures.
    """
    tokens = line.split(None, 1)
    return bool(tokens) and tokens[0] in SUCCESS_CODES


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").rstrip("\r\n")


class SessionState(Enum):
    """Stages of a client session, in order."""

    DIAL = auto()
    BANNER = auto()
    STARTTLS = auto()
    HANDSHAKE = auto()
    COMMANDS = auto()
    TEARDOWN = auto()
    DONE = auto()


class _SessionAborted(Exception):
    """Internal: a stage before the command loop failed."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(f"{kind.name}: {message}")
        self.kind = kind
        self.message = message


class CosignSession:
    """Runs one job's connection lifecycle and emits its result records.

    State machine: DIAL -> BANNER -> STARTTLS -> HANDSHAKE -> COMMANDS
    -> TEARDOWN -> DONE. A failure in DIAL..HANDSHAKE skips straight to
    TEARDOWN and then emits ``iterations`` failure records carrying the
    terminal status.

    Attributes:
        job: The job being executed.
        worker_id: Worker thread number, used for logging and tagging.
    """

    def __init__(
        self,
        job: Job,
        emit: ResultSink,
        *,
        worker_id: int = 0,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.job = job
        self.worker_id = worker_id
        self._emit_cb = emit
        self._clock = clock

        self._state = SessionState.DIAL
        self._sock: socket.socket | ssl.SSLSocket | None = None
        self._reader: BinaryIO | None = None
        self._mark = 0.0
        self._emitted = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def emitted(self) -> int:
        """Number of result records emitted so far."""
        return self._emitted

    def run(self) -> int:
        """Execute the session to completion.

        Returns:
            The number of records emitted, always ``job.iterations``.
        """
        self._mark = self._clock()
        aborted: _SessionAborted | None = None

        try:
            self._dial()
            self._expect_banner()
            self._starttls()
            self._handshake()
            self._command_loop()
        except _SessionAborted as exc:
            aborted = exc
        finally:
            self._teardown()

        if aborted is not None:
            self.fail_remaining(aborted.kind, aborted.message)

        self._state = SessionState.DONE
        return self._emitted

    def fail_remaining(self, kind: ErrorKind, message: str) -> None:
        """Emit failure records for every iteration not yet reported.

        All records share the elapsed time since the last measurement
        point, i.e. the job start when nothing was emitted yet.
        """
        remaining = self.job.iterations - self._emitted
        if remaining <= 0:
            return
        latency_ms = (self._clock() - self._mark) * 1000.0
        logger.debug("[%d] %.3fms %s %s", self.worker_id, latency_ms, kind.value, message)
        for _ in range(remaining):
            self._emit(
                ResultRecord(
                    success=False,
                    latency_ms=latency_ms,
                    message=message,
                    kind=kind,
                    worker_id=self.worker_id,
                    iteration=self._emitted + 1,
                )
            )
        self._mark = self._clock()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _dial(self) -> None:
        self._state = SessionState.DIAL
        try:
            self._sock = socket.create_connection(self.job.address, timeout=self.job.timeout)
        except OSError as exc:
            raise _SessionAborted(ErrorKind.NOCONN, str(exc)) from exc
        # Unbuffered until the TLS upgrade so no handshake bytes are read ahead.
        self._reader = self._sock.makefile("rb", buffering=0)

    def _expect_banner(self) -> None:
        self._state = SessionState.BANNER
        try:
            line = self._read_line()
        except OSError as exc:
            raise _SessionAborted(ErrorKind.BADRESPONSE, str(exc)) from exc
        if not line.startswith(GREETING_PREFIX):
            raise _SessionAborted(ErrorKind.BADRESPONSE, line)

    def _starttls(self) -> None:
        self._state = SessionState.STARTTLS
        try:
            self._write(STARTTLS_REQUEST)
            line = self._read_line()
        except OSError as exc:
            raise _SessionAborted(ErrorKind.STARTTLS_FAIL, str(exc)) from exc
        if not line.startswith(GREETING_PREFIX):
            raise _SessionAborted(ErrorKind.STARTTLS_FAIL, line)

    def _handshake(self) -> None:
        self._state = SessionState.HANDSHAKE
        assert self._sock is not None
        self._close_reader()
        try:
            tls_sock = self.job.tls.wrap(self._sock)
        except (OSError, ValueError) as exc:
            raise _SessionAborted(ErrorKind.HANDSHAKE_FAIL, str(exc)) from exc
        # wrap_socket detaches the plain socket; from here on only tls_sock is valid.
        self._sock = tls_sock
        try:
            tls_sock.do_handshake()
        except OSError as exc:
            raise _SessionAborted(ErrorKind.HANDSHAKE_FAIL, str(exc)) from exc
        self._reader = tls_sock.makefile("rb")

        # The server acknowledges the upgrade with one more line.
        with contextlib.suppress(OSError):
            self._read_line()

    def _command_loop(self) -> None:
        self._state = SessionState.COMMANDS
        payload = f"{self.job.command}\r\n".encode()

        for iteration in range(1, self.job.iterations + 1):
            try:
                self._write(payload)
                line = self._read_line()
            except OSError as exc:
                self.fail_remaining(ErrorKind.FAILRESPONSE, str(exc))
                return

            if classify_response(line):
                record = ResultRecord(
                    success=True,
                    latency_ms=self._lap(),
                    message=line,
                    worker_id=self.worker_id,
                    iteration=iteration,
                )
            else:
                record = ResultRecord(
                    success=False,
                    latency_ms=self._lap(),
                    message=line,
                    kind=ErrorKind.FAILRESPONSE,
                    worker_id=self.worker_id,
                    iteration=iteration,
                )
            logger.debug(
                "[%d:%d] %.3fms %s",
                self.worker_id,
                iteration,
                record.latency_ms,
                record.status,
            )
            self._emit(record)
            self._mark = self._clock()

    def _teardown(self) -> None:
        self._state = SessionState.TEARDOWN
        if self._sock is None:
            return
        with contextlib.suppress(OSError):
            self._write(QUIT_REQUEST)
        self._close_reader()
        with contextlib.suppress(OSError):
            self._sock.close()
        self._sock = None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lap(self) -> float:
        return (self._clock() - self._mark) * 1000.0

    def _emit(self, record: ResultRecord) -> None:
        self._emit_cb(record)
        self._emitted += 1

    def _write(self, data: bytes) -> None:
        assert self._sock is not None
        self._sock.sendall(data)

    def _read_line(self) -> str:
        assert self._reader is not None
        return _decode(self._reader.readline())

    def _close_reader(self) -> None:
        if self._reader is not None:
            with contextlib.suppress(OSError):
                self._reader.close()
            self._reader = None


def run_job(job: Job, emit: ResultSink, *, worker_id: int = 0) -> int:
    """Run ``job`` in a fresh session. Returns the number of records emitted."""
    return CosignSession(job, emit, worker_id=worker_id).run()
