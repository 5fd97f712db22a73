"""Client TLS settings shared by every worker."""

from __future__ import annotations

import ssl
from dataclasses import dataclass
from typing import TYPE_CHECKING

from cosignload._internal.errors import TLSConfigError
from cosignload._internal.logging import get_logger

if TYPE_CHECKING:
    import socket
    from pathlib import Path

logger = get_logger("engine.tls")


@dataclass(frozen=True)
class TLSSettings:
    """An ``SSLContext`` plus the server name to verify against.

    The context is configured once here and then only used to wrap
    sockets. ``SSLContext.wrap_socket`` is safe to call from many threads,
    and the server name is passed per call, so no worker ever changes
    shared state.

    Attributes:
        context: Client-side context holding the client certificate chain.
        server_name: Name sent as SNI and checked against the server cert.
    """

    context: ssl.SSLContext
    server_name: str

    @property
    def verify(self) -> bool:
        return self.context.verify_mode != ssl.CERT_NONE

    def wrap(self, sock: socket.socket) -> ssl.SSLSocket:
        """Wrap a connected socket without starting the handshake."""
        return self.context.wrap_socket(
            sock,
            server_hostname=self.server_name,
            do_handshake_on_connect=False,
        )


def build_tls_settings(
    cert_file: str | Path,
    key_file: str | Path,
    server_name: str,
    *,
    verify: bool = True,
    ca_file: str | Path | None = None,
) -> TLSSettings:
    """Load the client certificate and build the shared TLS settings.

    Args:
        cert_file: Client certificate in PEM format.
        key_file: Private key matching ``cert_file``.
        server_name: Expected server name.
        verify: If False, neither the server certificate nor its name is
            checked.
        ca_file: CA bundle to verify the server against. The system
            store is used when None.

    Returns:
        Ready-to-share TLSSettings.

    Raises:
        TLSConfigError: If any of the files cannot be read or parsed.
    """
    try:
        context = ssl.create_default_context(
            ssl.Purpose.SERVER_AUTH,
            cafile=str(ca_file) if ca_file is not None else None,
        )
    except (OSError, ssl.SSLError) as exc:
        msg = f"Cannot load CA file {ca_file}: {exc}"
        raise TLSConfigError(msg) from exc

    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    try:
        context.load_cert_chain(certfile=str(cert_file), keyfile=str(key_file))
    except (OSError, ssl.SSLError) as exc:
        msg = f"Cannot load client certificate {cert_file} / key {key_file}: {exc}"
        raise TLSConfigError(msg) from exc

    logger.debug(
        "TLS settings ready: server_name=%s, verify=%s, ca_file=%s",
        server_name,
        verify,
        ca_file,
    )
    return TLSSettings(context=context, server_name=server_name)
