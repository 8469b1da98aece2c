"""Case-insensitive, multi-valued HTTP header container."""

from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

HeaderSource = Union[Mapping[str, str], Iterable[Mapping[str, str]], Iterable[Tuple[str, str]], None]


class HeaderBag:
    """Ordered header list with case-insensitive lookup.

    Repeated headers (``set-cookie`` above all) keep every value in arrival
    order. Accepts a plain mapping, Playwright's ``headers_array()`` shape
    (``[{"name": ..., "value": ...}]``) or ``(name, value)`` pairs.
    """

    def __init__(self, headers: HeaderSource = None):
        self._items: List[Tuple[str, str]] = []
        if headers:
            self.extend(headers)

    def extend(self, headers: HeaderSource) -> None:
        if headers is None:
            return
        if isinstance(headers, HeaderBag):
            self._items.extend(headers.items())
            return
        if isinstance(headers, Mapping):
            pairs = headers.items()
        else:
            pairs = (
                (item["name"], item["value"]) if isinstance(item, Mapping) else tuple(item)
                for item in headers
            )
        for name, value in pairs:
            self._items.append((str(name), "" if value is None else str(value)))

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return the first value for ``name``."""
        wanted = name.lower()
        for key, value in self._items:
            if key.lower() == wanted:
                return value
        return default

    def get_all(self, name: str) -> List[str]:
        """Return every value for ``name`` in arrival order."""
        wanted = name.lower()
        return [value for key, value in self._items if key.lower() == wanted]

    def items(self) -> List[Tuple[str, str]]:
        return list(self._items)

    def to_dict(self) -> Dict[str, str]:
        """Lowercased mapping; repeated values joined with newlines like Playwright's ``headers``."""
        merged: Dict[str, str] = {}
        for key, value in self._items:
            lowered = key.lower()
            merged[lowered] = f"{merged[lowered]}\n{value}" if lowered in merged else value
        return merged

    def to_har(self) -> List[Dict[str, str]]:
        return [{"name": key, "value": value} for key, value in self._items]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HeaderBag):
            return NotImplemented
        return [(k.lower(), v) for k, v in self._items] == [(k.lower(), v) for k, v in other._items]

    def __repr__(self) -> str:
        return f"HeaderBag({self._items!r})"
