"""
=============================================================================
CONTENT-TYPE RESOLUTION
=============================================================================

Maps file names to media types for the Content-Type response header.

A resolver is a plain function:

    ContentTypeResolver = Callable[[str], Optional[str]]

    resolver("report.pdf")        -> "application/pdf"
    resolver("/docs/INDEX.HTML")  -> "text/html"
    resolver("Makefile")          -> None      (no mapping)

Returning None means "I don't know"; the file handler then falls back to
UNKNOWN_CONTENT_TYPE. There is no process-wide lookup state: whoever builds
a file handler passes the resolver in, usually one made by table_resolver().

    # the built-in table
    resolver = table_resolver()

    # built-in table plus a few house rules
    resolver = table_resolver({**MIME_TYPES, ".log": "text/plain"})

=============================================================================
"""

from pathlib import PurePosixPath
from types import MappingProxyType
from typing import Callable, Mapping, Optional


ContentTypeResolver = Callable[[str], Optional[str]]

# Content-Type used when a resolver has no mapping for a name
UNKNOWN_CONTENT_TYPE = "content/unknown"


# =============================================================================
# MIME TYPE TABLE
# =============================================================================
#
# Keys are lowercase extensions with the leading dot.
# Read-only: build a new dict to extend it.
#
# =============================================================================

MIME_TYPES: Mapping[str, str] = MappingProxyType({
    # text
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".txt": "text/plain",
    ".text": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",
    ".xml": "application/xml",
    ".json": "application/json",
    ".java": "text/plain",
    ".c": "text/plain",
    ".h": "text/plain",
    ".py": "text/plain",

    # images
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",

    # fonts
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",

    # audio / video
    ".mp3": "audio/mpeg",
    ".wav": "audio/x-wav",
    ".ogg": "audio/ogg",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",

    # documents and archives
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".gz": "application/gzip",
    ".tar": "application/x-tar",
    ".jar": "application/java-archive",
    ".wasm": "application/wasm",
})


def table_resolver(table: Optional[Mapping[str, str]] = None) -> ContentTypeResolver:
    """
    Build a resolver that looks the name's extension up in a table.

    The table is copied, so later changes to the caller's dict do not leak
    into a running server.

    Args:
        table: Extension -> media type mapping. Defaults to MIME_TYPES.

    Examples:
        >>> resolve = table_resolver()
        >>> resolve("style.CSS")
        'text/css'
        >>> resolve("archive") is None
        True
    """
    lookup = MappingProxyType({ext.lower(): media for ext, media in (table or MIME_TYPES).items()})

    def resolve(name: str) -> Optional[str]:
        suffix = PurePosixPath(name).suffix.lower()
        if not suffix:
            return None
        return lookup.get(suffix)

    return resolve


def content_type_for(resolver: ContentTypeResolver, name: str) -> str:
    """Apply a resolver, falling back to UNKNOWN_CONTENT_TYPE."""
    return resolver(name) or UNKNOWN_CONTENT_TYPE
