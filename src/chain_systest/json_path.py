"""
Dotted-path access into parsed JSON.

Path segments are object keys or list indices: ``app_state.bank.balances.0.address``.
"""

from __future__ import annotations

from typing import Any

from .exceptions import StateQueryError

_MISSING = object()


def _segments(path: str) -> list[str]:
    if not path:
        return []
    return path.split(".")


def _step(node: Any, segment: str, path: str) -> Any:
    if isinstance(node, dict):
        return node.get(segment, _MISSING)
    if isinstance(node, list):
        try:
            index = int(segment)
        except ValueError:
            raise StateQueryError(path, f"segment {segment!r} indexes a list") from None
        if -len(node) <= index < len(node):
            return node[index]
        return _MISSING
    raise StateQueryError(path, f"segment {segment!r} descends into {type(node).__name__}")


def get_path(doc: Any, path: str, default: Any = _MISSING) -> Any:
    """
    Look up ``path`` in ``doc``.

    Args:
        doc: Parsed JSON.
        path: Dotted path. The empty path returns ``doc``.
        default: Returned when the path is absent. Without it, absence raises.

    Raises:
        StateQueryError: If the path is absent and no default is given, or a
            segment descends into a scalar.
    """
    node = doc
    for segment in _segments(path):
        node = _step(node, segment, path)
        if node is _MISSING:
            if default is not _MISSING:
                return default
            raise StateQueryError(path, f"no value at {segment!r}")
    return node


def has_path(doc: Any, path: str) -> bool:
    """Whether ``path`` resolves in ``doc``."""
    try:
        get_path(doc, path)
    except StateQueryError:
        return False
    return True


def set_path(doc: Any, path: str, value: Any) -> None:
    """
    Set ``path`` in ``doc`` in place, creating intermediate objects as needed.

    Raises:
        StateQueryError: If the path is empty, an index is out of range, or a
            segment descends into a scalar.
    """
    segments = _segments(path)
    if not segments:
        raise StateQueryError(path, "cannot replace the document root")

    node = doc
    for segment in segments[:-1]:
        child = _step(node, segment, path)
        if child is _MISSING:
            if not isinstance(node, dict):
                raise StateQueryError(path, f"index {segment!r} out of range")
            child = node[segment] = {}
        node = child

    last = segments[-1]
    if isinstance(node, dict):
        node[last] = value
    elif isinstance(node, list):
        if _step(node, last, path) is _MISSING:
            raise StateQueryError(path, f"index {last!r} out of range")
        node[int(last)] = value
    else:
        raise StateQueryError(path, f"segment {last!r} descends into {type(node).__name__}")
