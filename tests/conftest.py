"""Shared test fixtures for the cosignload test suite."""

from __future__ import annotations

import contextlib
import ipaddress
import socket
import socketserver
import ssl
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from cosignload.engine.protocol import Job
from cosignload.engine.tls import TLSSettings, build_tls_settings

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path


# =============================================================================
# Pytest configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    for item in items:
        test_path = str(item.fspath)
        if "/unit/" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in test_path:
            item.add_marker(pytest.mark.e2e)


# =============================================================================
# Network utilities
# =============================================================================


def get_free_port() -> int:
    """Find a port on localhost with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


# =============================================================================
# Certificates
# =============================================================================


@dataclass(frozen=True)
class CertBundle:
    """Paths of a throwaway CA plus server and client leaf certificates."""

    ca_cert: Path
    server_cert: Path
    server_key: Path
    client_cert: Path
    client_key: Path


def _new_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def _write_key(key: rsa.RSAPrivateKey, path: Path) -> None:
    path.write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )


def _issue_leaf(
    common_name: str,
    usage: x509.ObjectIdentifier,
    ca_key: rsa.RSAPrivateKey,
    ca_cert: x509.Certificate,
) -> tuple[rsa.RSAPrivateKey, x509.Certificate]:
    key = _new_key()
    now = datetime.now(UTC)
    builder = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)]))
        .issuer_name(ca_cert.subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=1))
        .not_valid_after(now + timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.ExtendedKeyUsage([usage]), critical=False)
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(key.public_key()),
            critical=False,
        )
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()),
            critical=False,
        )
        .add_extension(
            x509.SubjectAlternativeName(
                [
                    x509.DNSName(common_name),
                    x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
                ]
            ),
            critical=False,
        )
    )
    return key, builder.sign(private_key=ca_key, algorithm=hashes.SHA256())


@pytest.fixture(scope="session")
def certs(tmp_path_factory: pytest.TempPathFactory) -> CertBundle:
    """A CA, a server certificate for ``localhost`` and a client certificate."""
    out = tmp_path_factory.mktemp("certs")

    ca_key = _new_key()
    ca_name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "cosignload test CA")])
    now = datetime.now(UTC)
    ca_cert = (
        x509.CertificateBuilder()
        .subject_name(ca_name)
        .issuer_name(ca_name)
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=1))
        .not_valid_after(now + timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(ca_key.public_key()),
            critical=False,
        )
        .sign(private_key=ca_key, algorithm=hashes.SHA256())
    )

    server_key, server_cert = _issue_leaf(
        "localhost", ExtendedKeyUsageOID.SERVER_AUTH, ca_key, ca_cert
    )
    client_key, client_cert = _issue_leaf(
        "loadtest-client", ExtendedKeyUsageOID.CLIENT_AUTH, ca_key, ca_cert
    )

    bundle = CertBundle(
        ca_cert=out / "ca.crt",
        server_cert=out / "server.crt",
        server_key=out / "server.key",
        client_cert=out / "client.crt",
        client_key=out / "client.key",
    )
    bundle.ca_cert.write_bytes(ca_cert.public_bytes(serialization.Encoding.PEM))
    bundle.server_cert.write_bytes(server_cert.public_bytes(serialization.Encoding.PEM))
    bundle.client_cert.write_bytes(client_cert.public_bytes(serialization.Encoding.PEM))
    _write_key(server_key, bundle.server_key)
    _write_key(client_key, bundle.client_key)
    return bundle


@pytest.fixture(scope="session")
def client_tls(certs: CertBundle) -> TLSSettings:
    """Client TLS settings that skip server verification."""
    return build_tls_settings(certs.client_cert, certs.client_key, "localhost", verify=False)


@pytest.fixture(scope="session")
def verifying_client_tls(certs: CertBundle) -> TLSSettings:
    """Client TLS settings that verify the server against the test CA."""
    return build_tls_settings(
        certs.client_cert,
        certs.client_key,
        "localhost",
        verify=True,
        ca_file=certs.ca_cert,
    )


# =============================================================================
# Scripted STARTTLS peer
# =============================================================================


@dataclass
class PeerScript:
    """What the scripted server sends at each stage.

    Attributes:
        banner: First line sent after accept.
        starttls_ack: Reply to ``STARTTLS 2``.
        upgrade: Perform the TLS handshake after a ``220`` ack. When False,
            plain garbage is sent instead, so the client handshake fails.
        post_handshake: Line sent right after the handshake.
        response: Reply to every command.
        close_after: Close the connection after this many command replies.
        stall: Never send the banner (for deadline tests).
        require_client_cert: Ask for and verify a client certificate.
    """

    banner: bytes = b"220 ready\r\n"
    starttls_ack: bytes = b"220 ok\r\n"
    upgrade: bool = True
    post_handshake: bytes = b"220 go ahead\r\n"
    response: bytes = b"250 ok\r\n"
    close_after: int | None = None
    stall: bool = False
    require_client_cert: bool = False


@dataclass
class PeerLog:
    """Everything the scripted server observed, across all connections."""

    connections: int = 0
    starttls_requests: int = 0
    handshakes: int = 0
    commands: list[str] = field(default_factory=list)
    quits: int = 0
    client_subjects: list[str] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock)


def _recv_line(sock: socket.socket) -> bytes:
    buf = bytearray()
    while not buf.endswith(b"\n"):
        chunk = sock.recv(1)
        if not chunk:
            break
        buf += chunk
    return bytes(buf)


class _PeerServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    block_on_close = False
    request_queue_size = 128


class ScriptedPeer:
    """Threaded TCP server following a PeerScript on each connection."""

    def __init__(self, script: PeerScript, certs: CertBundle) -> None:
        self.script = script
        self.log = PeerLog()
        self._release = threading.Event()
        self._active = 0
        self._idle = threading.Condition()

        context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        context.load_cert_chain(certs.server_cert, certs.server_key)
        if script.require_client_cert:
            context.verify_mode = ssl.CERT_REQUIRED
            context.load_verify_locations(certs.ca_cert)
        self._context = context

        peer = self

        class _Handler(socketserver.BaseRequestHandler):
            def handle(self) -> None:
                with peer._idle:
                    peer._active += 1
                try:
                    with contextlib.suppress(OSError):
                        peer._serve(self.request)
                finally:
                    with peer._idle:
                        peer._active -= 1
                        peer._idle.notify_all()

        self._server = _PeerServer(("127.0.0.1", 0), _Handler)
        self.port: int = self._server.server_address[1]
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def wait_idle(self, timeout: float = 5.0) -> None:
        """Block until every accepted connection has been fully handled."""
        with self._idle:
            assert self._idle.wait_for(
                lambda: self.log.connections > 0 and self._active == 0, timeout=timeout
            ), "scripted peer still busy"

    def stop(self) -> None:
        self._release.set()
        self._server.shutdown()
        self._server.server_close()
        self._thread.join(timeout=5.0)

    def _serve(self, sock: socket.socket) -> None:
        script = self.script
        with self.log.lock:
            self.log.connections += 1

        if script.stall:
            self._release.wait(timeout=10.0)
            return

        sock.sendall(script.banner)
        if not script.banner.startswith(b"220 "):
            self._drain(sock)
            return

        if _recv_line(sock) == b"STARTTLS 2\r\n":
            with self.log.lock:
                self.log.starttls_requests += 1
        sock.sendall(script.starttls_ack)
        if not script.starttls_ack.startswith(b"220 "):
            self._drain(sock)
            return

        if not script.upgrade:
            sock.sendall(b"this is not a TLS record\r\n" * 4)
            return

        tls_sock = self._context.wrap_socket(sock, server_side=True)
        with self.log.lock:
            self.log.handshakes += 1
            peer_cert = tls_sock.getpeercert()
            if peer_cert:
                subject = dict(rdn[0] for rdn in peer_cert["subject"])
                self.log.client_subjects.append(subject.get("commonName", ""))
        tls_sock.sendall(script.post_handshake)

        replies = 0
        reader = tls_sock.makefile("rb")
        try:
            while True:
                line = reader.readline()
                if not line:
                    break
                text = line.decode().rstrip("\r\n")
                if text == "QUIT":
                    with self.log.lock:
                        self.log.quits += 1
                    break
                with self.log.lock:
                    self.log.commands.append(text)
                if script.close_after is not None and replies >= script.close_after:
                    break
                tls_sock.sendall(script.response)
                replies += 1
        finally:
            reader.close()
            tls_sock.close()

    def _drain(self, sock: socket.socket) -> None:
        while True:
            line = _recv_line(sock)
            if not line:
                return
            if line == b"QUIT\r\n":
                with self.log.lock:
                    self.log.quits += 1
            elif line == b"STARTTLS 2\r\n":
                with self.log.lock:
                    self.log.starttls_requests += 1


@pytest.fixture
def peer_factory(certs: CertBundle) -> Iterator[Callable[..., ScriptedPeer]]:
    """Start scripted peers on demand; all are stopped after the test.

    Usage: ``peer = peer_factory(banner=b"500 no\\r\\n")``.
    """
    started: list[ScriptedPeer] = []

    def _factory(**overrides: object) -> ScriptedPeer:
        peer = ScriptedPeer(PeerScript(**overrides), certs)  # type: ignore[arg-type]
        peer.start()
        started.append(peer)
        return peer

    yield _factory

    for peer in started:
        peer.stop()


@pytest.fixture
def make_job(client_tls: TLSSettings) -> Callable[..., Job]:
    """Build a Job against 127.0.0.1 with the non-verifying client TLS settings."""

    def _make(port: int, iterations: int = 3, **overrides: object) -> Job:
        fields: dict[str, object] = {
            "job_id": 0,
            "host": "127.0.0.1",
            "port": port,
            "command": "NOOP",
            "iterations": iterations,
            "tls": client_tls,
        }
        fields.update(overrides)
        return Job(**fields)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def closed_port() -> int:
    """A localhost port that refuses connections."""
    return get_free_port()
