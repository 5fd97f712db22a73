"""Run configuration for cosignload."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from cosignload._internal.errors import ConfigError

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 6663
DEFAULT_COMMAND = "NOOP"


@dataclass(frozen=True)
class RunConfig:
    """Everything needed to run one load test.

    Attributes:
        threads: Number of concurrent clients (worker threads and jobs).
        iterations: Commands issued per client connection.
        cert_file: Client certificate (PEM).
        key_file: Client private key (PEM).
        host: Target host; also the TLS server name.
        port: Target port.
        command: Command text sent on each iteration, without CRLF.
        verify: Verify the server certificate during the TLS handshake.
        ca_file: Optional CA bundle for verification. System defaults
            are used when None.
        timeout: Optional per-socket-operation deadline in seconds.
            None blocks indefinitely.
    """

    threads: int
    iterations: int
    cert_file: Path
    key_file: Path
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    command: str = DEFAULT_COMMAND
    verify: bool = True
    ca_file: Path | None = None
    timeout: float | None = None

    def __post_init__(self) -> None:
        if self.threads < 1:
            msg = f"threads must be >= 1, got: {self.threads}"
            raise ConfigError(msg)
        if self.iterations < 1:
            msg = f"iterations must be >= 1, got: {self.iterations}"
            raise ConfigError(msg)
        if not 0 < self.port < 65536:
            msg = f"port must be in 1..65535, got: {self.port}"
            raise ConfigError(msg)
        if not self.host:
            msg = "host must not be empty"
            raise ConfigError(msg)
        if "\r" in self.command or "\n" in self.command:
            msg = f"command must be a single line, got: {self.command!r}"
            raise ConfigError(msg)
        if self.timeout is not None and self.timeout <= 0:
            msg = f"timeout must be positive, got: {self.timeout}"
            raise ConfigError(msg)

    @property
    def expected_results(self) -> int:
        """Total result records a run must produce."""
        return self.threads * self.iterations


@dataclass(frozen=True)
class EnvDefaults:
    """Defaults for the command line taken from the environment."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    command: str = DEFAULT_COMMAND
    timeout: float | None = None


def load_config() -> EnvDefaults:
    """Load command-line defaults from environment variables.

    Environment variables:
        COSIGNLOAD_HOST: Target host (default: localhost).
        COSIGNLOAD_PORT: Target port (default: 6663).
        COSIGNLOAD_COMMAND: Command text (default: NOOP).
        COSIGNLOAD_TIMEOUT: Per-operation deadline in seconds (default: none).

    Returns:
        Populated EnvDefaults instance.

    Raises:
        ConfigError: If an environment variable has an invalid value.
    """
    port_str = os.environ.get("COSIGNLOAD_PORT", str(DEFAULT_PORT))
    timeout_str = os.environ.get("COSIGNLOAD_TIMEOUT", "")

    try:
        port = int(port_str)
    except ValueError:
        msg = f"COSIGNLOAD_PORT must be an integer, got: {port_str!r}"
        raise ConfigError(msg) from None

    if not 0 < port < 65536:
        msg = f"COSIGNLOAD_PORT must be in 1..65535, got: {port}"
        raise ConfigError(msg)

    timeout: float | None = None
    if timeout_str:
        try:
            timeout = float(timeout_str)
        except ValueError:
            msg = f"COSIGNLOAD_TIMEOUT must be a number, got: {timeout_str!r}"
            raise ConfigError(msg) from None
        if timeout <= 0:
            msg = f"COSIGNLOAD_TIMEOUT must be positive, got: {timeout}"
            raise ConfigError(msg)

    return EnvDefaults(
        host=os.environ.get("COSIGNLOAD_HOST", DEFAULT_HOST),
        port=port,
        command=os.environ.get("COSIGNLOAD_COMMAND", DEFAULT_COMMAND),
        timeout=timeout,
    )
