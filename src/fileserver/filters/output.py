"""
=============================================================================
OUTPUT FILTER
=============================================================================

Prints one line per completed exchange, after the handler has finished:

    ┌─────────────────────────────────────────────────────────────────────┐
    │ 127.0.0.1 - - [19/Oct/2026:10:55:36 +0200] "GET /docs/" 200 -        │
    │ ─────────        ──────────────────────────  ─────────── ───         │
    │ client           timestamp                   method+URI  status      │
    └─────────────────────────────────────────────────────────────────────┘

VERBOSE adds the request headers (">" lines) and the response headers
("<" lines), each block closed by its marker on a line of its own:

    127.0.0.1 - - [19/Oct/2026:10:55:36 +0200] "GET /docs/" 200 -
    > Host: localhost:8000
    > Accept: text/html
    >
    < Content-Type: text/html
    < Content-Length: 312
    <

Lines go to the "fileserver.access" logger at INFO. server.setup_logging()
gives that logger a bare "%(message)s" handler so the lines print as-is.

=============================================================================
"""

import logging
import time
from typing import Optional, Union

from ..config import ConfigurationError, OutputLevel
from ..http.exchange import HttpExchange
from .base import Continuation, Filter


ACCESS_LOGGER_NAME = "fileserver.access"

access_logger = logging.getLogger(ACCESS_LOGGER_NAME)

# %b is locale-dependent; access logs always use English month names
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def format_timestamp(when: Optional[float] = None) -> str:
    """
    Common log format timestamp in local time, e.g. "19/Oct/2026:10:55:36 +0200".
    """
    t = time.localtime(when)
    return (
        f"{t.tm_mday:02d}/{_MONTHS[t.tm_mon - 1]}/{t.tm_year}:"
        f"{t.tm_hour:02d}:{t.tm_min:02d}:{t.tm_sec:02d} {time.strftime('%z', t)}"
    )


def _header_block(marker: str, headers) -> list:
    lines = [f"{marker} {name}: {' '.join(values)}" for name, values in headers.items()]
    lines.append(marker)
    return lines


class OutputFilter(Filter):
    """
    Post-processing filter logging each completed exchange.

    Args:
        level: OutputLevel.DEFAULT or OutputLevel.VERBOSE (or their names).
        logger: Logger to emit on. Defaults to "fileserver.access".

    Raises:
        ConfigurationError: For OutputLevel.NONE; with no output wanted,
                            leave the filter out of the chain instead.
    """

    def __init__(
        self,
        level: Union[OutputLevel, str] = OutputLevel.DEFAULT,
        logger: Optional[logging.Logger] = None,
    ):
        level = OutputLevel.parse(level)
        if level is OutputLevel.NONE:
            raise ConfigurationError("OutputFilter requires output level default or verbose")
        self.level = level
        self.logger = logger or access_logger
        self.description = f"access output ({level.value})"

    def __call__(self, exchange: HttpExchange, next: Continuation) -> None:
        next(exchange)
        self.logger.info(self.format(exchange))

    def format(self, exchange: HttpExchange) -> str:
        """The text logged for a completed exchange."""
        request = exchange.request
        client = exchange.remote_address[0] or "-"
        lines = [
            f'{client} - - [{format_timestamp()}] '
            f'"{request.method} {request.uri}" {exchange.response_code} -'
        ]
        if self.level is OutputLevel.VERBOSE:
            lines.extend(_header_block(">", request.headers))
            lines.extend(_header_block("<", exchange.response_headers))
        return "\n".join(lines)


def create_output_filter(
    level: Union[OutputLevel, str],
    logger: Optional[logging.Logger] = None,
) -> OutputFilter:
    """
    Build an OutputFilter. OutputLevel.NONE is rejected with
    ConfigurationError, as by the constructor.
    """
    return OutputFilter(level, logger)
