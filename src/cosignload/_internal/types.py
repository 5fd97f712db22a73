"""Shared type aliases for cosignload."""

from __future__ import annotations

# Server address (host, port).
Address = tuple[str, int]

# Latency samples in milliseconds.
Durations = list[float]
