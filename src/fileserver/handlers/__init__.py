"""
=============================================================================
HANDLERS
=============================================================================

A handler completes an exchange. Any callable taking the exchange will do;
wrapping it in Handler adds the combinators:

    ┌─────────────────────────────────────────────────────────────────────┐
    │ Name                      │ Result                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │ not_found()               │ 404, no body                             │
    │ delegating_if(t, a, b)    │ a for methods passing t, else b          │
    │ discarding_request_body(h)│ drains the body, then h                  │
    │ adding_request_header(...)│ h sees one more request header           │
    │ adapting_request(op, h)   │ h sees op(request)                       │
    │ inspecting_uri(op, h)     │ h sees op(uri)                           │
    │ responding(s, hdrs, body) │ fixed response                           │
    │ FileServerHandler(root, r)│ static files below root                  │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .base import (
    Handler,
    any_method,
    adapting_request,
    adding_request_header,
    delegating_if,
    discarding_request_body,
    drain,
    inspecting_uri,
    methods,
    not_found,
    responding,
)
from .static import FileServerHandler, INDEX_FILES, create_file_handler, escape_html

__all__ = [
    "Handler",
    "any_method",
    "adapting_request",
    "adding_request_header",
    "delegating_if",
    "discarding_request_body",
    "drain",
    "inspecting_uri",
    "methods",
    "not_found",
    "responding",
    "FileServerHandler",
    "INDEX_FILES",
    "create_file_handler",
    "escape_html",
]
