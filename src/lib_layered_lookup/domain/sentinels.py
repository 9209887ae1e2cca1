"""Singleton marker values used instead of control-flow exceptions.

``NOT_FOUND`` travels through every provider, merge strategy and tier as an
ordinary return value. ``UNRESOLVED`` marks cache slots that were never
computed, which keeps them distinct from slots that resolved to ``None``.
"""

from __future__ import annotations

from typing import Any, Final


class _Sentinel:
    """Falsy, identity-compared marker with a readable ``repr``."""

    __slots__ = ("_name",)

    def __init__(self, name: str) -> None:
        self._name = name

    def __repr__(self) -> str:
        return self._name

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> _Sentinel:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> _Sentinel:
        return self

    def __reduce__(self) -> str:
        return self._name


NOT_FOUND: Final = _Sentinel("NOT_FOUND")
"""Returned when a source, provider, tier or whole lookup produced no value."""

UNRESOLVED: Final = _Sentinel("UNRESOLVED")
"""Cache marker for "not computed yet" (as opposed to "computed as absent")."""


def is_found(value: object) -> bool:
    """Return ``True`` unless *value* is :data:`NOT_FOUND`.

    Examples
    --------
    >>> is_found(None), is_found(NOT_FOUND)
    (True, False)
    """

    return value is not NOT_FOUND
