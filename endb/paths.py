"""
Nested-path access on stored values.

Paths address properties inside a value: ``"profile.address.city"``,
``"todo[0]"``, ``'meta["dotted.key"]'`` or an explicit list of segments.
Mapping levels are addressed by key, list levels by integer index.
"""

from __future__ import annotations

import re
from typing import Any, Sequence, Union

from endb.core.errors import PathError

Path = Union[str, Sequence[Union[str, int]]]

_MISSING = object()

# name | [123] | ["quoted"] | ['quoted']
_SEGMENT = re.compile(
    r"""
    \[(?P<index>-?\d+)\]
    | \[(?P<quote>["'])(?P<quoted>(?:\\.|(?!(?P=quote)).)*)(?P=quote)\]
    | (?P<name>[^.\[\]]+)
    """,
    re.VERBOSE,
)


def to_path(path: Path) -> list[str | int]:
    """Split a path string into segments. Lists pass through unchanged."""
    if isinstance(path, (list, tuple)):
        return list(path)
    if not isinstance(path, str):
        raise PathError(
            f"Path must be a string or a sequence, got {type(path).__name__}",
            path=repr(path),
        )
    if path == "":
        return [""]

    segments: list[str | int] = []
    for match in _SEGMENT.finditer(path):
        if match.group("index") is not None:
            segments.append(int(match.group("index")))
        elif match.group("quoted") is not None:
            segments.append(re.sub(r"\\(.)", r"\1", match.group("quoted")))
        else:
            segments.append(match.group("name"))
    return segments


def _child(node: Any, segment: str | int) -> Any:
    if isinstance(node, dict):
        key = segment if segment in node else str(segment)
        return node.get(key, _MISSING)
    if isinstance(node, list):
        try:
            index = int(segment)
        except (TypeError, ValueError):
            return _MISSING
        if -len(node) <= index < len(node):
            return node[index]
    return _MISSING


def get_path(value: Any, path: Path, default: Any = None) -> Any:
    """Return the value at ``path``, or ``default`` when it does not resolve."""
    node = value
    for segment in to_path(path):
        node = _child(node, segment)
        if node is _MISSING:
            return default
    return node


def has_path(value: Any, path: Path) -> bool:
    """True if every segment of ``path`` exists. A stored ``None`` counts."""
    node = value
    for segment in to_path(path):
        node = _child(node, segment)
        if node is _MISSING:
            return False
    return True


def set_path(value: Any, path: Path, new_value: Any) -> Any:
    """
    Assign ``new_value`` at ``path`` in place and return the root.

    Missing or non-container intermediate levels become empty mappings.
    A non-container root is replaced by a mapping.

    Raises:
        PathError: If a segment names a key on a list, or a negative index
            reaches before the start of a list
    """
    segments = to_path(path)
    root = value if isinstance(value, (dict, list)) else {}
    node = root
    for position, segment in enumerate(segments):
        last = position == len(segments) - 1
        if isinstance(node, list) and _is_index(segment):
            index = int(segment)
            if index < -len(node):
                raise PathError(
                    f"Index {index} is out of range for a list of {len(node)} items",
                    path=_describe(path),
                )
            if index >= len(node):
                node.extend([None] * (index + 1 - len(node)))
            if last:
                node[index] = new_value
                break
            if not isinstance(node[index], (dict, list)):
                node[index] = {}
            node = node[index]
            continue

        if isinstance(node, list):
            raise PathError(
                f"Cannot set key '{segment}' on a list", path=_describe(path)
            )

        key = segment if segment in node else str(segment)
        if last:
            node[key] = new_value
            break
        child = node.get(key)
        if not isinstance(child, (dict, list)):
            child = {}
            node[key] = child
        node = child
    return root


def unset_path(value: Any, path: Path) -> bool:
    """Remove the property at ``path``. Returns True if something was removed."""
    segments = to_path(path)
    parent = get_path(value, segments[:-1], _MISSING) if len(segments) > 1 else value
    if parent is _MISSING:
        return False

    last = segments[-1]
    if isinstance(parent, dict):
        key = last if last in parent else str(last)
        if key in parent:
            del parent[key]
            return True
        return False
    if isinstance(parent, list) and _is_index(last):
        index = int(last)
        if -len(parent) <= index < len(parent):
            del parent[index]
            return True
    return False


def _describe(path: Path) -> str:
    if isinstance(path, str):
        return path
    return ".".join(str(segment) for segment in path)


def _is_index(segment: str | int) -> bool:
    if isinstance(segment, int):
        return True
    return isinstance(segment, str) and segment.lstrip("-").isdigit()
