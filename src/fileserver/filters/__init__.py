"""
=============================================================================
FILTERS
=============================================================================

Pre- and post-processing around a handler, run as an ordered Chain.

    Chain([OutputFilter(OutputLevel.VERBOSE), stamp], files)(exchange)

         OutputFilter ──next──► stamp ──next──► files
              ▲                                   │
              └────────── logs after ◄────────────┘

=============================================================================
"""

from .base import (
    Chain,
    ChainError,
    Continuation,
    Filter,
    FunctionFilter,
    adapting_request,
    after_handler,
    before_handler,
    function_filter,
)
from .output import ACCESS_LOGGER_NAME, OutputFilter, create_output_filter

__all__ = [
    "Chain",
    "ChainError",
    "Continuation",
    "Filter",
    "FunctionFilter",
    "adapting_request",
    "after_handler",
    "before_handler",
    "function_filter",
    "ACCESS_LOGGER_NAME",
    "OutputFilter",
    "create_output_filter",
]
