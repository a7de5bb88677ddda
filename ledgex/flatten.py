"""
Dot-path flattening of nested updates.

Only plain ``dict`` values are descended into. Lists, tuples, numpy arrays and
every other value are leaves and get a single history entry, so element-level
history inside a sequence is never tracked.
"""

from typing import Any, Dict, Iterator, Tuple

SEPARATOR = "."


def iter_leaves(obj: Dict[Any, Any], prefix: str = "") -> Iterator[Tuple[str, Any]]:
    """Walk ``obj`` depth first, yielding ``(dot_path, leaf_value)`` pairs."""
    for key, value in obj.items():
        path = f"{prefix}{SEPARATOR}{key}" if prefix else str(key)
        if isinstance(value, dict):
            yield from iter_leaves(value, path)
        else:
            yield path, value


def flatten(obj: Dict[Any, Any]) -> Dict[str, Any]:
    """
    Flatten a nested dict into dot-path keys.

    Example:
        >>> flatten({"pos": {"x": 1, "y": 2}, "tags": ["a"]})
        {'pos.x': 1, 'pos.y': 2, 'tags': ['a']}
    """
    return dict(iter_leaves(obj))


def unflatten(flat: Dict[str, Any]) -> Dict[str, Any]:
    """
    Rebuild the nested form of a flat snapshot.

    When a path is both a leaf and the prefix of another path (possible after
    a leaf was overwritten by a nested dict), the nested branch wins.
    """
    result: Dict[str, Any] = {}
    for path in sorted(flat, key=lambda p: p.count(SEPARATOR)):
        *parents, leaf = path.split(SEPARATOR)
        node = result
        for part in parents:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        if not isinstance(node.get(leaf), dict):
            node[leaf] = flat[path]
    return result
