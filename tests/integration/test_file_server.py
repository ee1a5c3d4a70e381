"""
Integration tests: the file server on a real socket.
"""

import http.client
import logging
import threading
import time
from html.parser import HTMLParser

import pytest

from fileserver import HTTPServer, OutputFilter, OutputLevel
from fileserver.filters.output import ACCESS_LOGGER_NAME
from fileserver.handlers import create_file_handler, methods, responding


def connect(server) -> http.client.HTTPConnection:
    host, port = server.address
    return http.client.HTTPConnection(host, port, timeout=5)


def fetch(server, method, path, headers=None, body=None):
    conn = connect(server)
    try:
        conn.request(method, path, body=body, headers=headers or {})
        response = conn.getresponse()
        return response.status, dict(response.getheaders()), response.read()
    finally:
        conn.close()


def wait_for(predicate, timeout=2.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


class TagCollector(HTMLParser):
    """Collects every start tag and attribute name the parser sees."""

    def __init__(self):
        super().__init__()
        self.tags = []
        self.attributes = []

    def handle_starttag(self, tag, attrs):
        self.tags.append(tag)
        self.attributes.extend(name for name, _ in attrs)


class TestSiteScenario:
    """The /docs walk-through: redirect, index, missing file, bad method."""

    def test_directory_redirect(self, live_server):
        host, port = live_server.address
        status, headers, body = fetch(live_server, "GET", "/docs")

        assert status == 301
        assert headers["Location"] == f"http://{host}:{port}/docs/"
        assert body == b""

    def test_index_after_redirect(self, live_server, docroot):
        status, headers, body = fetch(live_server, "GET", "/docs/")

        assert status == 200
        assert body == (docroot / "docs" / "index.html").read_bytes()
        assert headers["Content-Type"] == "text/html"

    def test_missing_file(self, live_server):
        status, headers, body = fetch(live_server, "GET", "/missing.txt")

        assert status == 404
        assert headers["Content-Type"] == "text/html"
        assert b"&#x2F;missing.txt" in body

    def test_delete_not_allowed(self, live_server):
        status, _, body = fetch(live_server, "DELETE", "/docs/")

        assert status == 405
        assert body == b""

    def test_every_file_served_byte_identical(self, live_server, docroot):
        for path in sorted(p for p in docroot.rglob("*") if p.is_file()):
            if path.name.startswith("index."):
                continue
            uri = "/" + path.relative_to(docroot).as_posix()
            status, headers, body = fetch(live_server, "GET", uri)

            assert status == 200, uri
            assert body == path.read_bytes(), uri
            assert int(headers["Content-Length"]) == path.stat().st_size

    def test_head_file(self, live_server):
        status, headers, body = fetch(live_server, "HEAD", "/hello.txt")

        assert status == 200
        assert headers["Content-Length"] == "14"
        assert body == b""

    def test_traversal(self, live_server):
        status, _, body = fetch(live_server, "GET", "/../../../etc/passwd")

        assert status == 404
        assert b"root:" not in body


class TestConnections:
    """Tests for persistence, pipelining and error framing."""

    def test_keep_alive_reuses_socket(self, live_server):
        conn = connect(live_server)
        try:
            conn.request("GET", "/hello.txt")
            first = conn.getresponse()
            first.read()
            sock = conn.sock

            conn.request("GET", "/plain/a.txt")
            second = conn.getresponse()

            assert second.read() == b"a"
            assert conn.sock is sock
        finally:
            conn.close()

    def test_pipelined_requests_with_unread_body(self, live_server, send_raw):
        data = (
            b"POST /hello.txt HTTP/1.1\r\nHost: x\r\nContent-Length: 5\r\n\r\nhello"
            b"GET /plain/b.txt HTTP/1.1\r\nHost: x\r\nConnection: close\r\n\r\n"
        )
        raw = send_raw(live_server.address, data)

        assert raw.startswith(b"HTTP/1.1 405 Method Not Allowed\r\n")
        assert raw.count(b"HTTP/1.1 ") == 2
        second = raw[raw.index(b"HTTP/1.1 200"):]
        assert second.endswith(b"\r\n\r\nb")

    def test_malformed_request(self, live_server, send_raw, parse_response):
        response = parse_response(send_raw(live_server.address, b"GARBAGE\r\n\r\n"))

        assert response.status == 400
        assert response.headers.get("Connection") == "close"

    def test_unsupported_version(self, live_server, send_raw, parse_response):
        response = parse_response(send_raw(live_server.address, b"GET / HTTP/3.0\r\n\r\n"))
        assert response.status == 505

    def test_chunked_request_not_implemented(self, live_server, send_raw, parse_response):
        data = b"POST / HTTP/1.1\r\nHost: x\r\nTransfer-Encoding: chunked\r\n\r\n0\r\n\r\n"
        assert parse_response(send_raw(live_server.address, data)).status == 501

    def test_http10_closes(self, live_server, send_raw, parse_response):
        response = parse_response(send_raw(live_server.address, b"GET /plain/a.txt HTTP/1.0\r\n\r\n"))

        assert response.status == 200
        assert response.headers.get("Connection") == "close"
        assert response.body == b"a"

    def test_concurrent_clients(self, live_server):
        results = []

        def worker():
            results.append(fetch(live_server, "GET", "/hello.txt")[0])

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(10)

        assert results == [200] * 8


class TestAccessOutput:
    """Tests for the output filter on a live server."""

    def test_one_line_per_exchange(self, live_server, caplog):
        caplog.set_level(logging.INFO, logger=ACCESS_LOGGER_NAME)
        fetch(live_server, "GET", "/missing.txt")

        def lines():
            return [r.getMessage() for r in caplog.records if r.name == ACCESS_LOGGER_NAME]

        assert wait_for(lambda: len(lines()) == 1)
        assert lines()[0].startswith("127.0.0.1 - - [")
        assert lines()[0].endswith('"GET /missing.txt" 404 -')


class TestComposedServer:
    """Tests for servers built from combinators by hand."""

    def test_method_gate_on_the_wire(self, config, docroot):
        files = create_file_handler(str(docroot))
        teapot = responding(418, {"Content-Type": "text/plain"}, "short and stout")
        server = HTTPServer(config, handler=files.delegating(teapot, methods("BREW")))
        server.add_filter(OutputFilter(OutputLevel.VERBOSE))

        with server:
            status, _, body = fetch(server, "BREW", "/pot")
            assert (status, body) == (418, b"short and stout")
            assert fetch(server, "GET", "/hello.txt")[2] == b"Hello, world!\n"

    def test_handler_failure_is_500(self, config):
        def boom(exchange):
            raise RuntimeError("handler bug")

        with HTTPServer(config, handler=boom) as server:
            status, headers, _ = fetch(server, "GET", "/")

        assert status == 500
        assert headers["Connection"] == "close"

    def test_filters_frozen_while_running(self, config):
        with HTTPServer(config) as server:
            with pytest.raises(RuntimeError):
                server.add_filter(OutputFilter())


class TestEscaping:
    """Untrusted names never break out of the markup."""

    HOSTILE = "\"><img src=x onerror=alert(1)>'.txt"

    def test_listing_has_no_injected_markup(self, live_server, docroot):
        (docroot / "plain" / self.HOSTILE).write_bytes(b"")
        _, _, body = fetch(live_server, "GET", "/plain/")

        parser = TagCollector()
        parser.feed(body.decode("utf-8"))

        assert "img" not in parser.tags
        assert "onerror" not in parser.attributes
        assert set(parser.tags) <= {"html", "head", "meta", "body", "h2", "ul", "li", "a", "p", "hr"}

    def test_not_found_page_has_no_injected_markup(self, live_server):
        _, _, body = fetch(live_server, "GET", "/%3Cscript%3Ealert(1)%3C%2Fscript%3E")

        parser = TagCollector()
        parser.feed(body.decode("utf-8"))

        assert parser.tags == ["h2", "p"]
