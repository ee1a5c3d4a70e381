"""
=============================================================================
HANDLERS AND HANDLER COMBINATORS
=============================================================================

A handler is anything that takes an exchange and completes it:

    def hello(exchange):
        body = b"hello"
        exchange.send_response_headers(200, len(body))
        with exchange.response_body as out:
            out.write(body)

Handler wraps such a function and adds combinators. Every combinator
returns a NEW Handler built around the old one; nothing is ever mutated,
so one composed handler can serve any number of exchanges at once.

=============================================================================
COMBINATORS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  not_found()                       404, no body                      │
    │  delegating_if(test, a, b)         a if test(method) else b          │
    │  discarding_request_body(h)        drain body, then h                │
    │  adding_request_header(n, v, h)    h sees request + header n: v      │
    │  adapting_request(op, h)           h sees op(request)                │
    │  inspecting_uri(op, h)             h sees request with op(uri)       │
    │  responding(status, headers, body) fixed canned response             │
    └─────────────────────────────────────────────────────────────────────┘

The same operations exist as methods, with the receiver in a fixed role:

    static.delegating(upload, methods("PUT"))     # PUT -> upload, else static
    static.handle_or_else(methods("GET"), deny)   # GET -> static, else deny
    static.discarding_request_body()
    static.inspecting_uri(strip_prefix)

=============================================================================
CONTRACT
=============================================================================

1. Missing arguments fail when the handler is BUILT (TypeError), never
   while serving a request.
2. A predicate or operator runs exactly once per exchange, synchronously,
   before control passes on.
3. Exactly one of the two branches of a method gate handles the exchange.

=============================================================================
"""

import logging
from typing import Callable, Iterable, Mapping, Optional, Union

from ..http.exchange import NO_BODY, HttpExchange
from ..http.headers import Headers
from ..http.request import Request
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)

HandlerFunc = Callable[[HttpExchange], None]
MethodTest = Callable[[str], bool]
RequestOperator = Callable[[Request], Request]
UriOperator = Callable[[str], str]

_DRAIN_CHUNK = 64 * 1024


def _require(value, what: str):
    if value is None:
        raise TypeError(f"{what} is required")
    if not callable(value):
        raise TypeError(f"{what} must be callable, got {type(value).__name__}")
    return value


def _label(value) -> str:
    if isinstance(value, Handler):
        return value.name
    return getattr(value, "__name__", None) or repr(value)


class Handler:
    """
    A composable request handler.

    Calling a Handler (or its handle() method) processes one exchange.
    The name is for diagnostics only; composed handlers describe their
    structure, e.g. "delegating_if(is_get, files, not_found)".
    """

    __slots__ = ("_func", "_name")

    def __init__(self, func: HandlerFunc, name: Optional[str] = None):
        self._func = _require(func, "handler function")
        self._name = name or _label(func)

    def __call__(self, exchange: HttpExchange) -> None:
        self._func(exchange)

    def handle(self, exchange: HttpExchange) -> None:
        self._func(exchange)

    @property
    def name(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return f"Handler({self._name})"

    # =========================================================================
    # FACTORIES
    # =========================================================================

    @classmethod
    def of(cls, handler: Optional[HandlerFunc] = None) -> "Handler":
        """
        Handler.of()         -> the default 404 handler
        Handler.of(func)     -> func wrapped as a Handler (a Handler is
                                returned unchanged)
        """
        if handler is None:
            return not_found()
        if isinstance(handler, Handler):
            return handler
        return cls(handler)

    # =========================================================================
    # COMBINATORS (receiver in a fixed role)
    # =========================================================================

    def delegating(self, other: HandlerFunc, method_test: MethodTest) -> "Handler":
        """`other` handles methods passing the test; this handler the rest."""
        return delegating_if(method_test, other, self)

    def handle_or_else(self, method_test: MethodTest, fallback: HandlerFunc) -> "Handler":
        """This handler handles methods passing the test; `fallback` the rest."""
        return delegating_if(method_test, self, fallback)

    def discarding_request_body(self) -> "Handler":
        return discarding_request_body(self)

    def adding_request_header(self, name: str, value: str) -> "Handler":
        return adding_request_header(name, value, self)

    def adapting_request(self, operator: RequestOperator) -> "Handler":
        return adapting_request(operator, self)

    def inspecting_uri(self, operator: UriOperator) -> "Handler":
        return inspecting_uri(operator, self)


# =============================================================================
# METHOD PREDICATES
# =============================================================================

def methods(*names: str) -> MethodTest:
    """
    Predicate matching any of the given method names (exact, case-sensitive
    as methods are on the wire).

        is_read = methods("GET", "HEAD")
        is_read("GET")    # True
        is_read("get")    # False
    """
    if not names:
        raise TypeError("at least one method name is required")
    allowed = frozenset(names)

    def test(method: str) -> bool:
        return method in allowed

    test.__name__ = "methods(" + ", ".join(sorted(allowed)) + ")"
    return test


def any_method(method: str) -> bool:
    return True


# =============================================================================
# COMBINATORS
# =============================================================================

def not_found() -> Handler:
    """Complete every exchange with 404 and no body."""

    def respond_not_found(exchange: HttpExchange) -> None:
        with exchange:
            exchange.send_response_headers(HTTPStatus.NOT_FOUND, NO_BODY)

    return Handler(respond_not_found, "not_found")


def delegating_if(
    method_test: MethodTest,
    target: HandlerFunc,
    fallback: HandlerFunc,
) -> Handler:
    """
    Method gate: `target` handles the exchange when method_test(method) is
    true, otherwise `fallback` does. The test runs once.
    """
    _require(method_test, "method test")
    _require(target, "target handler")
    _require(fallback, "fallback handler")

    def gate(exchange: HttpExchange) -> None:
        if method_test(exchange.request.method):
            target(exchange)
        else:
            fallback(exchange)

    return Handler(
        gate,
        f"delegating_if({_label(method_test)}, {_label(target)}, {_label(fallback)})",
    )


def drain(stream) -> int:
    """Read a stream to its end, discarding the data. Returns bytes read."""
    total = 0
    while True:
        chunk = stream.read(_DRAIN_CHUNK)
        if not chunk:
            return total
        total += len(chunk)


def discarding_request_body(target: HandlerFunc) -> Handler:
    """
    Read and throw away the request body, then forward.

    A handler that answers without reading the body would otherwise leave
    unread bytes in front of the next request on a persistent connection.
    """
    _require(target, "target handler")

    def discard(exchange: HttpExchange) -> None:
        drained = drain(exchange.request_body)
        if drained:
            logger.debug(f"Discarded {drained} request body bytes")
        target(exchange)

    return Handler(discard, f"discarding_request_body({_label(target)})")


def adapting_request(operator: RequestOperator, target: HandlerFunc) -> Handler:
    """
    Forward with the request side replaced by operator(request).

    URI, method and headers may all change; the response side of the
    exchange is untouched.
    """
    _require(operator, "request operator")
    _require(target, "target handler")

    def adapt(exchange: HttpExchange) -> None:
        adapted = operator(exchange.request)
        if not isinstance(adapted, Request):
            raise TypeError(
                f"request operator must return a Request, got {type(adapted).__name__}"
            )
        target(exchange.with_request(adapted))

    return Handler(adapt, f"adapting_request({_label(operator)}, {_label(target)})")


def adding_request_header(name: str, value: str, target: HandlerFunc) -> Handler:
    """Forward with one more request header value (appended, not replaced)."""
    if name is None or value is None:
        raise TypeError("header name and value are required")
    if not isinstance(name, str) or not isinstance(value, str):
        raise TypeError("header name and value must be str")
    # fail at build time on names/values the header map would refuse
    Headers({name: value})
    _require(target, "target handler")

    def add_header(request: Request) -> Request:
        return request.with_header(name, value)

    add_header.__name__ = f"add_header({name!r})"
    handler = adapting_request(add_header, target)
    return Handler(handler, f"adding_request_header({name!r}, {_label(target)})")


def inspecting_uri(operator: UriOperator, target: HandlerFunc) -> Handler:
    """Forward with the request URI replaced by operator(uri)."""
    _require(operator, "URI operator")
    _require(target, "target handler")

    def rewrite(request: Request) -> Request:
        return request.with_uri(operator(request.uri))

    rewrite.__name__ = _label(operator)
    handler = adapting_request(rewrite, target)
    return Handler(handler, f"inspecting_uri({_label(operator)}, {_label(target)})")


def responding(
    status: int,
    headers: Union[Headers, Mapping[str, Union[str, Iterable[str]]], None] = None,
    body: Union[bytes, str] = b"",
) -> Handler:
    """
    Canned response: always the same status, headers and body.

    A HEAD request gets the headers (with the body's Content-Length) but no
    body. The request body is discarded first.

        teapot = responding(418, {"Content-Type": "text/plain"}, "short and stout")
    """
    status = int(status)
    if not 100 <= status <= 999:
        raise ValueError(f"Invalid status code: {status}")
    fixed = headers if isinstance(headers, Headers) else Headers(headers)
    payload = body.encode("utf-8") if isinstance(body, str) else bytes(body)

    def respond(exchange: HttpExchange) -> None:
        with exchange:
            drain(exchange.request_body)
            for name, values in fixed.items():
                exchange.response_headers.remove(name)
                for value in values:
                    exchange.response_headers.add(name, value)
            if exchange.request.method == "HEAD":
                exchange.response_headers.set("Content-Length", str(len(payload)))
                exchange.send_response_headers(status, NO_BODY)
            elif payload:
                exchange.send_response_headers(status, len(payload))
                exchange.response_body.write(payload)
            else:
                exchange.send_response_headers(status, NO_BODY)

    return Handler(respond, f"responding({status})")
