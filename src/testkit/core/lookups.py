"""Path lookups over nested values.

Placeholders (`${login.token}`), body assertions (`data.items.0.id`)
and capture directives (`body.data.id`) all address fragments of
nested mappings and lists with the same path expressions. Both the
dotted form and the JSONPath-like form are accepted:

    data.items.0.id
    $.data.items[0].id
"""

from re import compile as regexp
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from testkit.values import RuntimeValue

_INDEX_PATTERN = regexp(r'\[(\d+)\]')


class _Missing:
    """Marker for a path that does not resolve to any value."""

    __slots__ = ()

    def __repr__(self) -> str:
        return '<missing>'

    def __bool__(self) -> bool:
        return False


#: Returned by lookups when a path does not resolve. Distinct from `None`,
#: which is a legitimate value (for example a JSON `null`).
MISSING: Final = _Missing()


def split_path(path: str) -> list[str]:
    """Split a path expression into segments.

    Args:
        path: Dotted or JSONPath-like expression. An empty path,
            `$` or `.` address the whole value.

    Returns:
        List of key or index segments.
    """
    path = _INDEX_PATTERN.sub(r'.\1', path.strip())
    if path.startswith('$'):
        path = path[1:]

    path = path.strip('.')
    if not path:
        return []

    return path.split('.')


class PathLookup:
    """Resolver for path access into nested mappings and lists.

    Numeric segments index into lists; any other segment is a mapping key.
    A missing key, an out-of-range index or a scalar in the middle of the
    path resolves to `MISSING`.
    """

    def __init__(self, path: str) -> None:
        """Initialize the resolver with a path expression.

        Args:
            path: Path expression to traverse.
        """
        self.expression = path
        self.path = split_path(path)

    def __call__(self, value: 'RuntimeValue') -> 'RuntimeValue':
        """Resolve the path against a value."""
        return self.resolve(value)

    def resolve(self, val: 'RuntimeValue', depth: int = 1) -> 'RuntimeValue':
        """Resolve the path against a value.

        Args:
            val: Current value being resolved.
            depth: Current depth of traversal (used internally).

        Returns:
            The resolved value if the full path is valid, otherwise `MISSING`.
        """
        if depth > len(self.path):
            return val

        key = self.path[depth - 1]
        if not key:
            return MISSING

        if isinstance(val, (list, tuple)):
            if not key.isdecimal():
                return MISSING
            index = int(key)
            if not 0 <= index < len(val):
                return MISSING
            next_val = val[index]
        elif isinstance(val, dict):
            if key not in val:
                return MISSING
            next_val = val[key]
        else:
            return MISSING

        return self.resolve(next_val, depth + 1)

    def get(self, value: 'RuntimeValue', default: 'RuntimeValue' = None) -> 'RuntimeValue':
        """Resolve the path, returning `default` when it does not resolve."""
        resolved = self.resolve(value)
        if resolved is MISSING:
            return default

        return resolved
