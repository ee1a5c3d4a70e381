"""
=============================================================================
HEADER MAP
=============================================================================

Ordered, case-insensitive multi-map of HTTP header names to their values.

=============================================================================
TWO TYPES, ONE SHAPE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    BUILDER VS READ-ONLY VIEW                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   HeadersBuilder                    Headers                          │
    │   ──────────────                    ───────                          │
    │   add() / set() / remove()   ──►    get() / get_all() / items()      │
    │   owned by whoever builds    build  shared freely, never changes     │
    │   the message                                                        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A Headers instance has no mutation path at all. Code that wants "the same
headers plus one more" asks for a builder copy with to_builder(), changes
the copy, and builds a new Headers.

=============================================================================
CASE INSENSITIVITY
=============================================================================

"Content-Type", "content-type" and "CONTENT-TYPE" name the same header.
Lookups compare lowercased names; iteration reports the spelling that was
used the first time the name was added:

    builder.add("Accept", "text/html")
    builder.add("accept", "application/json")
    builder.build().items()   # [("Accept", ["text/html", "application/json"])]

=============================================================================
"""

from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union


HeaderSource = Union[Mapping[str, Union[str, Iterable[str]]], Iterable[Tuple[str, str]], None]


def _key(name: str) -> str:
    if not isinstance(name, str):
        raise TypeError(f"header name must be str, not {type(name).__name__}")
    return name.lower()


def _check_name(name: str) -> str:
    if not name or any(c in name for c in ":\r\n \t"):
        raise ValueError(f"illegal header name: {name!r}")
    return name


def _check_value(value: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"header value must be str, not {type(value).__name__}")
    # CR/LF in a value would let a caller smuggle extra header lines
    if "\r" in value or "\n" in value:
        raise ValueError(f"illegal character in header value: {value!r}")
    return value


class _HeaderStore:
    """Shared read side of the builder and the finalized view."""

    def __init__(self):
        # lowercased name -> (original spelling, values)
        self._entries: Dict[str, Tuple[str, List[str]]] = {}

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """
        Get the first value of a header (case-insensitive lookup).

        Returns default when the header is absent.
        """
        entry = self._entries.get(_key(name))
        if entry is None or not entry[1]:
            return default
        return entry[1][0]

    def get_all(self, name: str) -> List[str]:
        """Get every value of a header, in the order they were added."""
        entry = self._entries.get(_key(name))
        return list(entry[1]) if entry else []

    def names(self) -> List[str]:
        return [original for original, _ in self._entries.values()]

    def items(self) -> List[Tuple[str, List[str]]]:
        """(name, values) pairs in insertion order."""
        return [(original, list(values)) for original, values in self._entries.values()]

    def to_builder(self) -> "HeadersBuilder":
        """Return a mutable copy."""
        return HeadersBuilder(self)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, _HeaderStore):
            return NotImplemented
        mine = {k: v for k, (_, v) in self._entries.items()}
        theirs = {k: v for k, (_, v) in other._entries.items()}
        return mine == theirs

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.items()!r})"

    def _add(self, name: str, value: str) -> None:
        key = _key(name)
        _check_name(name)
        _check_value(value)
        if key in self._entries:
            self._entries[key][1].append(value)
        else:
            self._entries[key] = (name, [value])

    def _load(self, source: HeaderSource) -> None:
        if source is None:
            return
        if isinstance(source, _HeaderStore):
            for name, values in source.items():
                for value in values:
                    self._add(name, value)
            return
        pairs = source.items() if isinstance(source, Mapping) else source
        for name, value in pairs:
            if isinstance(value, str):
                self._add(name, value)
            else:
                for item in value:
                    self._add(name, item)


class Headers(_HeaderStore):
    """
    Finalized, read-only header map.

    Built by HeadersBuilder.build() or directly from a mapping or a list of
    (name, value) pairs. Mapping values may be a single string or a list of
    strings.

        headers = Headers({"Host": "example.com", "Accept": ["a", "b"]})
        headers.get("host")        # "example.com"
        headers.get_all("ACCEPT")  # ["a", "b"]
    """

    def __init__(self, source: HeaderSource = None):
        super().__init__()
        self._load(source)

    def __hash__(self):
        return hash(tuple((k, tuple(v)) for k, (_, v) in self._entries.items()))


class HeadersBuilder(_HeaderStore):
    """
    Mutable header map, used while a request or response is being put
    together. Every mutator returns self so calls can be chained.
    """

    def __init__(self, source: HeaderSource = None):
        super().__init__()
        self._load(source)

    def add(self, name: str, value: str) -> "HeadersBuilder":
        """Append a value, keeping any values already present for the name."""
        self._add(name, value)
        return self

    def set(self, name: str, value: str) -> "HeadersBuilder":
        """Replace all values of a header with a single value."""
        key = _key(name)
        _check_name(name)
        _check_value(value)
        original = self._entries[key][0] if key in self._entries else name
        self._entries[key] = (original, [value])
        return self

    def setdefault(self, name: str, value: str) -> "HeadersBuilder":
        """Set the header only when it is not present yet."""
        if name not in self:
            self.set(name, value)
        return self

    def remove(self, name: str) -> "HeadersBuilder":
        self._entries.pop(_key(name), None)
        return self

    def build(self) -> Headers:
        """Snapshot the current contents into a read-only Headers."""
        return Headers(self)

    __hash__ = None  # mutable
