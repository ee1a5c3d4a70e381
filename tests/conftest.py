"""
pytest configuration and fixtures.
"""

import io
import socket
from typing import Dict, List, NamedTuple, Optional, Tuple
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fileserver import ServerConfig, create_file_server
from fileserver.config import OutputLevel
from fileserver.http import Exchange, Headers, Request


class RawResponse(NamedTuple):
    """A response as it appeared on the wire."""

    status: int
    headers: Headers
    body: bytes


def parse_wire(data: bytes) -> RawResponse:
    """Split serialized response bytes into status, headers and body."""
    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("iso-8859-1").split("\r\n")
    status = int(lines[0].split(" ", 2)[1])
    pairs = [tuple(line.split(": ", 1)) for line in lines[1:] if line]
    return RawResponse(status, Headers(pairs), body)


@pytest.fixture
def docroot(tmp_path) -> Path:
    """
    A small site:

        site/
        ├── hello.txt
        ├── empty.txt
        ├── Makefile
        ├── docs/
        │   ├── index.html
        │   └── guide.md
        └── plain/
            ├── b.txt
            ├── a.txt
            └── sub/
    """
    root = tmp_path / "site"
    root.mkdir()
    (root / "hello.txt").write_bytes(b"Hello, world!\n")
    (root / "empty.txt").write_bytes(b"")
    (root / "Makefile").write_bytes(b"all:\n\ttrue\n")
    docs = root / "docs"
    docs.mkdir()
    (docs / "index.html").write_bytes(b"<html><body>docs home</body></html>\n")
    (docs / "guide.md").write_bytes(b"# Guide\n")
    plain = root / "plain"
    plain.mkdir()
    (plain / "b.txt").write_bytes(b"b")
    (plain / "a.txt").write_bytes(b"a")
    (plain / "sub").mkdir()
    return root


@pytest.fixture
def make_exchange():
    """
    Factory for in-memory exchanges.

    Returns (exchange, wire); wire collects the serialized response.
    """

    def factory(
        method: str = "GET",
        uri: str = "/",
        headers: Optional[Dict[str, str]] = None,
        body: bytes = b"",
        context_path: str = "/",
        remote_address: Tuple[str, int] = ("192.0.2.10", 50123),
        local_address: Tuple[str, int] = ("127.0.0.1", 8000),
        keep_alive: bool = True,
    ) -> Tuple[Exchange, io.BytesIO]:
        wire = io.BytesIO()
        exchange = Exchange(
            Request(uri, method, Headers(headers)),
            io.BytesIO(body),
            wire,
            context_path=context_path,
            local_address=local_address,
            remote_address=remote_address,
            keep_alive=keep_alive,
        )
        return exchange, wire

    return factory


@pytest.fixture
def config(docroot) -> ServerConfig:
    """Test server configuration serving the docroot."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        root=str(docroot),
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        keep_alive_timeout=1.0,
        output_level=OutputLevel.DEFAULT,
        log_level="WARNING",
    )


@pytest.fixture
def live_server(config):
    """A file server listening on a free port, stopped after the test."""
    server = create_file_server(config).start()
    try:
        yield server
    finally:
        server.stop()


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


def raw_request(address: Tuple[str, int], data: bytes, timeout: float = 5.0) -> bytes:
    """Send raw bytes, half-close, and read until the server closes."""
    with socket.create_connection(address, timeout=timeout) as sock:
        sock.sendall(data)
        sock.shutdown(socket.SHUT_WR)
        chunks: List[bytes] = []
        while True:
            chunk = sock.recv(65536)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


@pytest.fixture
def parse_response():
    """Parser for serialized responses (see parse_wire)."""
    return parse_wire


@pytest.fixture
def send_raw():
    """Raw socket client (see raw_request)."""
    return raw_request
