"""Tagged representation of decoded Jira payloads and path lookup.

Jira returns the same logical field in several shapes depending on the
endpoint and API version: a plain scalar, a mapping, or a list of mappings.
Payloads are wrapped into a small tagged variant (Scalar | Mapping |
Sequence) and looked up with a recursive-descent path resolver.

Resolution never raises: a path that cannot be followed yields None (and
lookup() turns that into an empty string), since schema variability between
Jira instances is expected.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union


@dataclass(frozen=True)
class Scalar:
    """A leaf value (string, number, boolean or None)."""
    value: Any


@dataclass(frozen=True)
class Mapping:
    """A JSON object."""
    items: Dict[str, "Payload"]


@dataclass(frozen=True)
class Sequence:
    """A JSON array."""
    items: Tuple["Payload", ...]


Payload = Union[Scalar, Mapping, Sequence]
Path = Union[str, List[str], Tuple[str, ...]]


def wrap(raw: Any) -> Payload:
    """Convert a decoded JSON value into the tagged variant."""
    if isinstance(raw, (Scalar, Mapping, Sequence)):
        return raw
    if isinstance(raw, dict):
        return Mapping({str(k): wrap(v) for k, v in raw.items()})
    if isinstance(raw, (list, tuple)):
        return Sequence(tuple(wrap(v) for v in raw))
    return Scalar(raw)


def unwrap(payload: Optional[Payload]) -> Any:
    """Convert the tagged variant back into plain Python values."""
    if payload is None:
        return None
    if isinstance(payload, Scalar):
        return payload.value
    if isinstance(payload, Mapping):
        return {k: unwrap(v) for k, v in payload.items.items()}
    return [unwrap(v) for v in payload.items]


def split_path(path: Path) -> List[str]:
    if isinstance(path, str):
        return [segment for segment in path.split('.') if segment]
    return [str(segment) for segment in path]


def resolve(payload: Optional[Payload], path: Path) -> Optional[Payload]:
    """Walk path through payload.

    At each step:
      * a Mapping descends into the value stored under the segment;
      * a Sequence is searched for the first Mapping holding the segment and
        descends into that value (a numeric segment indexes the sequence);
      * a Scalar reached with path segments left is returned as is.

    Returns:
        The payload found at path, or None when the path cannot be followed
    """
    return _resolve(payload, split_path(path))


def _resolve(payload: Optional[Payload], segments: List[str]) -> Optional[Payload]:
    if payload is None:
        return None
    if not segments:
        return payload

    head, rest = segments[0], segments[1:]

    if isinstance(payload, Scalar):
        # Permissive fallback: a raw value stands in for a missing nested key
        return payload if payload.value is not None else None

    if isinstance(payload, Mapping):
        if head not in payload.items:
            return None
        return _resolve(payload.items[head], rest)

    if head.isdigit():
        index = int(head)
        if index < len(payload.items):
            return _resolve(payload.items[index], rest)
        return None

    for element in payload.items:
        if isinstance(element, Mapping) and head in element.items:
            return _resolve(element.items[head], rest)
    return None


def lookup(raw: Any, path: Path, default: Any = "") -> Any:
    """Resolve path in a raw decoded payload and return a plain value.

    Args:
        raw: Decoded JSON (dict / list / scalar) or an already wrapped Payload
        path: Dotted path ("fields.status.name") or list of segments
        default: Returned when nothing is found

    Returns:
        The plain value found at path, or default
    """
    found = resolve(wrap(raw), path)
    if found is None:
        return default
    value = unwrap(found)
    return default if value is None else value


def lookup_first(raw: Any, paths: List[Path], default: Any = "") -> Any:
    """Return the first non-empty value of a fallback chain of paths."""
    wrapped = wrap(raw)
    for path in paths:
        found = resolve(wrapped, path)
        if found is None:
            continue
        value = unwrap(found)
        if value not in (None, "", [], {}):
            return value
    return default
