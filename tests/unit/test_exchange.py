"""
Unit tests for the exchange and its response framing.
"""

import io

import pytest

from fileserver.http.exchange import NO_BODY, STREAMED, DelegatingExchange, ResponseBody


class TestSendResponseHeaders:
    """Tests for status line and header serialization."""

    def test_fixed_length(self, make_exchange, parse_response):
        exchange, wire = make_exchange()
        exchange.response_headers.set("Content-Type", "text/plain")
        exchange.send_response_headers(200, 5)
        exchange.response_body.write(b"hello")
        exchange.close()

        response = parse_response(wire.getvalue())
        assert wire.getvalue().startswith(b"HTTP/1.1 200 OK\r\n")
        assert response.headers.get("Content-Length") == "5"
        assert response.headers.get("Content-Type") == "text/plain"
        assert response.headers.get("Server") == "fileserver"
        assert "Date" in response.headers
        assert response.body == b"hello"
        assert exchange.close_connection is False

    def test_no_body_sends_zero_length(self, make_exchange, parse_response):
        exchange, wire = make_exchange()
        exchange.send_response_headers(200, NO_BODY)
        exchange.close()

        response = parse_response(wire.getvalue())
        assert response.headers.get("Content-Length") == "0"
        assert response.body == b""

    def test_no_body_keeps_explicit_content_length(self, make_exchange, parse_response):
        exchange, wire = make_exchange(method="HEAD")
        exchange.response_headers.set("Content-Length", "1234")
        exchange.send_response_headers(200, NO_BODY)
        exchange.close()

        assert parse_response(wire.getvalue()).headers.get("Content-Length") == "1234"

    def test_streamed_closes_connection(self, make_exchange, parse_response):
        exchange, wire = make_exchange()
        exchange.send_response_headers(200, STREAMED)
        exchange.response_body.write(b"abc")
        exchange.response_body.write(b"def")
        exchange.close()

        response = parse_response(wire.getvalue())
        assert "Content-Length" not in response.headers
        assert response.headers.get("Connection") == "close"
        assert response.body == b"abcdef"
        assert exchange.close_connection is True

    def test_head_body_discarded(self, make_exchange, parse_response):
        exchange, wire = make_exchange(method="HEAD")
        exchange.send_response_headers(200, 5)
        exchange.response_body.write(b"hello")
        exchange.close()

        response = parse_response(wire.getvalue())
        assert response.headers.get("Content-Length") == "5"
        assert response.body == b""
        assert exchange.close_connection is False

    def test_unknown_status_gets_class_phrase(self, make_exchange):
        exchange, wire = make_exchange()
        exchange.send_response_headers(299, NO_BODY)
        assert wire.getvalue().startswith(b"HTTP/1.1 299 Success\r\n")

    def test_connection_close_when_not_keep_alive(self, make_exchange, parse_response):
        exchange, wire = make_exchange(keep_alive=False)
        exchange.send_response_headers(200, NO_BODY)
        assert parse_response(wire.getvalue()).headers.get("Connection") == "close"

    def test_headers_sent_only_once(self, make_exchange):
        exchange, _ = make_exchange()
        exchange.send_response_headers(200, NO_BODY)
        with pytest.raises(RuntimeError):
            exchange.send_response_headers(200, NO_BODY)

    def test_response_code(self, make_exchange):
        exchange, _ = make_exchange()
        assert exchange.response_code == -1
        assert exchange.headers_sent is False
        exchange.send_response_headers(404, NO_BODY)
        assert exchange.response_code == 404
        assert exchange.headers_sent is True

    def test_body_before_headers(self, make_exchange):
        exchange, _ = make_exchange()
        with pytest.raises(RuntimeError):
            exchange.response_body

    def test_writing_past_declared_length(self, make_exchange):
        exchange, _ = make_exchange()
        exchange.send_response_headers(200, 2)
        with pytest.raises(OSError):
            exchange.response_body.write(b"abc")


class TestClose:
    """Tests for finalizing an exchange."""

    def test_close_is_idempotent(self, make_exchange):
        exchange, _ = make_exchange()
        exchange.send_response_headers(200, NO_BODY)
        exchange.close()
        exchange.close()
        assert exchange.closed

    def test_context_manager_closes(self, make_exchange):
        exchange, _ = make_exchange(body=b"unread")
        with exchange:
            exchange.send_response_headers(200, NO_BODY)
        assert exchange.closed
        assert exchange.request_body.closed

    def test_close_without_response_marks_connection(self, make_exchange, caplog):
        exchange, _ = make_exchange(uri="/nothing")
        exchange.close()

        assert exchange.close_connection is True
        assert "Exchange closed without a response" in caplog.text

    def test_short_body_closes_connection(self, make_exchange):
        exchange, _ = make_exchange()
        exchange.send_response_headers(200, 10)
        exchange.response_body.write(b"abc")
        exchange.close()
        assert exchange.close_connection is True

    def test_send_after_close(self, make_exchange):
        exchange, _ = make_exchange()
        exchange.close()
        with pytest.raises(RuntimeError):
            exchange.send_response_headers(200, NO_BODY)


class TestDelegatingExchange:
    """Tests for request substitution."""

    def test_request_replaced_response_shared(self, make_exchange, parse_response):
        exchange, wire = make_exchange(uri="/original")
        view = exchange.with_request(exchange.request.with_uri("/rewritten"))

        assert isinstance(view, DelegatingExchange)
        assert view.request_uri == "/rewritten"
        assert exchange.request_uri == "/original"

        view.response_headers.set("X-Via", "view")
        view.send_response_headers(200, NO_BODY)
        view.close()

        assert exchange.response_code == 200
        assert exchange.closed
        assert parse_response(wire.getvalue()).headers.get("X-Via") == "view"

    def test_nested_views_unwrap(self, make_exchange):
        exchange, _ = make_exchange()
        first = exchange.with_request(exchange.request.with_uri("/a"))
        second = first.with_request(first.request.with_uri("/b"))

        assert second._exchange is exchange
        assert second.request_uri == "/b"

    def test_addresses_and_context_path(self, make_exchange):
        exchange, _ = make_exchange(context_path="/static")
        view = exchange.with_request(exchange.request)

        assert view.context_path == "/static"
        assert view.remote_address == ("192.0.2.10", 50123)
        assert view.local_address == ("127.0.0.1", 8000)
        assert view.protocol == "HTTP/1.1"


class TestResponseBody:
    """Tests for the length-enforcing body sink."""

    def test_counts_discarded_bytes(self):
        wire = io.BytesIO()
        body = ResponseBody(wire, limit=None, discard=True)
        body.write(b"abc")

        assert body.bytes_written == 3
        assert wire.getvalue() == b""
        assert body.short is False

    def test_write_after_close(self):
        body = ResponseBody(io.BytesIO(), limit=None)
        body.close()
        with pytest.raises(ValueError):
            body.write(b"x")
