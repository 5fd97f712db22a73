"""Custom exception hierarchy for cosignload."""

from __future__ import annotations


class CosignLoadError(Exception):
    """Base exception for all cosignload errors.

    Protocol failures observed during a run are never raised; they are
    recorded as failure results. These exceptions cover problems with the
    tool itself: bad configuration, unreadable TLS material, or misuse of
    the engine.
    """


class ConfigError(CosignLoadError):
    """Raised when configuration is invalid or missing.

    Examples:
        - Required environment variable has an invalid value.
        - Thread or iteration count is below 1.
    """


class TLSConfigError(CosignLoadError):
    """Raised when the client certificate, key or CA bundle cannot be loaded.

    This is fatal and happens before any connection is attempted.
    """


class EngineError(CosignLoadError):
    """Raised when the engine is driven incorrectly.

    Examples:
        - A worker pool is started twice.
        - A worker pool is closed before it was started.
    """
