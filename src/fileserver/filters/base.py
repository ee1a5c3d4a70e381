"""
=============================================================================
FILTERS AND THE FILTER CHAIN
=============================================================================

A filter sits in front of a handler. It may work on the exchange before
the handler runs, after it returns, or both, and it decides whether the
handler runs at all.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        CHAIN - EXCHANGE FLOW                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ┌──────────┐   next   ┌──────────┐   next   ┌──────────────┐      │
    │   │ Filter 0 │────────► │ Filter 1 │────────► │   Handler    │      │
    │   └────┬─────┘          └────┬─────┘          └──────────────┘      │
    │        │ [before]            │ [before]               │              │
    │        │                     │                        │              │
    │        │ [after]  ◄──────────┴ [after] ◄──────────────┘              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The chain is a plain list walked with an index. Each filter receives a
Continuation for the position after its own; calling it runs the rest of
the chain. A continuation works ONCE:

    class Stamp(Filter):
        description = "adds X-Stamp"

        def __call__(self, exchange, next):
            exchange.response_headers.set("X-Stamp", "1")
            next(exchange)          # rest of the chain runs here
            next(exchange)          # ChainError

A filter that never calls `next` short-circuits the chain and must
complete the exchange itself.

=============================================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Iterable, Optional, Sequence

from ..handlers.base import Handler, HandlerFunc, RequestOperator
from ..http.exchange import HttpExchange
from ..http.request import Request


logger = logging.getLogger(__name__)


ExchangeOperation = Callable[[HttpExchange], None]


class ChainError(RuntimeError):
    """A continuation was invoked more than once."""


class Continuation:
    """
    Single-use handle on the remainder of a chain.

    Created by the chain for one filter and one exchange; the filter calls
    it with the exchange (or a view of it) to continue.
    """

    __slots__ = ("_chain", "_index", "_used")

    def __init__(self, chain: "Chain", index: int):
        self._chain = chain
        self._index = index
        self._used = False

    @property
    def used(self) -> bool:
        return self._used

    def __call__(self, exchange: HttpExchange) -> None:
        if self._used:
            raise ChainError(
                f"continuation at position {self._index} of {self._chain!r} already invoked"
            )
        self._used = True
        self._chain._proceed(self._index, exchange)


class Filter(ABC):
    """
    Abstract base class for filters.

    Subclasses implement __call__(exchange, next) and give a short
    human-readable `description` (shown in diagnostics).
    """

    description: str = ""

    @abstractmethod
    def __call__(self, exchange: HttpExchange, next: Continuation) -> None:
        """
        Process the exchange.

        Call next(exchange) at most once to run the rest of the chain, or
        not at all to answer the exchange here.
        """

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.description!r})"


class Chain:
    """
    An ordered list of filters in front of one terminal handler.

    Built once and shared by every exchange; per-exchange state lives only
    in the continuations the chain hands out.

        chain = Chain([OutputFilter(OutputLevel.DEFAULT)], files)
        chain(exchange)
    """

    def __init__(self, filters: Iterable[Filter], handler: HandlerFunc):
        if filters is None:
            raise TypeError("filters are required (use an empty list for none)")
        if handler is None or not callable(handler):
            raise TypeError("a terminal handler is required")
        self._filters: Sequence[Filter] = tuple(filters)
        for position, f in enumerate(self._filters):
            if not callable(f):
                raise TypeError(f"filter at position {position} is not callable: {f!r}")
        self._handler = handler

    @property
    def filters(self) -> Sequence[Filter]:
        return self._filters

    @property
    def handler(self) -> HandlerFunc:
        return self._handler

    def __call__(self, exchange: HttpExchange) -> None:
        self._proceed(0, exchange)

    def do_filter(self, exchange: HttpExchange) -> None:
        self._proceed(0, exchange)

    def as_handler(self) -> Handler:
        """The whole chain as a Handler, for use where a handler is expected."""
        return Handler(self, repr(self))

    def _proceed(self, index: int, exchange: HttpExchange) -> None:
        if index < len(self._filters):
            self._filters[index](exchange, Continuation(self, index + 1))
        else:
            self._handler(exchange)

    def __len__(self) -> int:
        return len(self._filters)

    def __repr__(self) -> str:
        names = ", ".join(_description(f) for f in self._filters)
        return f"Chain([{names}])"


def _description(f) -> str:
    return getattr(f, "description", "") or getattr(f, "__name__", None) or repr(f)


# =============================================================================
# FUNCTION FILTERS
# =============================================================================
#
# Quick one-off filters without writing a class.
#
# =============================================================================

class FunctionFilter(Filter):
    """
    Wraps a plain function with the signature (exchange, next) as a Filter.

        def stamp(exchange, next):
            exchange.response_headers.set("X-Stamp", "1")
            next(exchange)

        chain = Chain([FunctionFilter(stamp, "adds X-Stamp")], handler)
    """

    def __init__(
        self,
        func: Callable[[HttpExchange, Continuation], None],
        description: Optional[str] = None,
    ):
        if func is None or not callable(func):
            raise TypeError("filter function is required")
        self._func = func
        self.description = description or func.__name__

    def __call__(self, exchange: HttpExchange, next: Continuation) -> None:
        self._func(exchange, next)


def function_filter(func: Callable[[HttpExchange, Continuation], None]) -> FunctionFilter:
    """
    Decorator to create a filter from a function. The function name (or
    first docstring line) becomes the description.

        @function_filter
        def no_sniff(exchange, next):
            \"\"\"Sets X-Content-Type-Options.\"\"\"
            exchange.response_headers.set("X-Content-Type-Options", "nosniff")
            next(exchange)
    """
    doc = (func.__doc__ or "").strip().splitlines()
    return FunctionFilter(func, doc[0] if doc else None)


def before_handler(description: str, operation: ExchangeOperation) -> Filter:
    """Filter running `operation` on the exchange, then the rest of the chain."""
    if description is None or operation is None:
        raise TypeError("description and operation are required")

    def run_before(exchange: HttpExchange, next: Continuation) -> None:
        operation(exchange)
        next(exchange)

    return FunctionFilter(run_before, description)


def after_handler(description: str, operation: ExchangeOperation) -> Filter:
    """
    Filter running the rest of the chain, then `operation` on the exchange.

    If the chain raises, the operation does not run.
    """
    if description is None or operation is None:
        raise TypeError("description and operation are required")

    def run_after(exchange: HttpExchange, next: Continuation) -> None:
        next(exchange)
        operation(exchange)

    return FunctionFilter(run_after, description)


def adapting_request(description: str, operator: RequestOperator) -> Filter:
    """Filter continuing with the request replaced by operator(request)."""
    if description is None or operator is None:
        raise TypeError("description and operator are required")

    def adapt(exchange: HttpExchange, next: Continuation) -> None:
        adapted = operator(exchange.request)
        if not isinstance(adapted, Request):
            raise TypeError(
                f"request operator must return a Request, got {type(adapted).__name__}"
            )
        next(exchange.with_request(adapted))

    return FunctionFilter(adapt, description)
