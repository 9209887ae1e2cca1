"""Lookup key value object.

Purpose
-------
Parse the raw dotted key handed to :meth:`LookupAdapter.lookup` into the parts
the engine needs: the root key sent to backends, the owning module (text
before ``::``) and the residual subkey path used to navigate into the value a
backend returned.

Contents
--------
* :data:`LOOKUP_OPTIONS` – reserved root key holding per-key lookup options.
* :class:`LookupKey` – immutable parsed key with ``navigate``/``undig``.
* :func:`is_reserved` – reserved-key check used before parsing.

System Role
-----------
Pure domain logic without I/O. Navigation reports missing segments to the
lookup context and returns ``NOT_FOUND``; it never falls back to another
provider.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Protocol

from .errors import InvalidKey
from .sentinels import NOT_FOUND

LOOKUP_OPTIONS: Final[str] = "lookup_options"
_LOOKUP_OPTIONS_PREFIX: Final[str] = LOOKUP_OPTIONS + "."
_MODULE_SEPARATOR: Final[str] = "::"

Segment = str | int


class _Reporter(Protocol):
    def report_not_found(self, key: object) -> object: ...


def is_reserved(raw: str) -> bool:
    """Return ``True`` for ``lookup_options`` and any of its dotted children.

    Examples
    --------
    >>> is_reserved("lookup_options"), is_reserved("lookup_options.x"), is_reserved("lookup_optionsx")
    (True, True, False)
    """

    return raw == LOOKUP_OPTIONS or raw.startswith(_LOOKUP_OPTIONS_PREFIX)


@dataclass(frozen=True, slots=True)
class LookupKey:
    """Parsed representation of a lookup key.

    Attributes
    ----------
    raw:
        The key exactly as supplied by the caller.
    root_key:
        First segment; the string passed to backends.
    module_name:
        Module qualifier (``"mod"`` for ``"mod::x.y"``) or ``None``.
    subkey_path:
        Remaining segments; integers address sequence elements.

    Examples
    --------
    >>> key = LookupKey.parse("modA::settings.ports[0]")
    >>> key.root_key, key.module_name, key.subkey_path
    ('modA::settings', 'modA', ('ports', 0))
    >>> LookupKey.parse("x").module_name is None
    True
    """

    raw: str
    root_key: str
    module_name: str | None
    subkey_path: tuple[Segment, ...] = ()

    @classmethod
    def parse(cls, raw: str) -> LookupKey:
        """Split *raw* into root key, module qualifier and subkey path.

        Raises
        ------
        InvalidKey
            When *raw* is empty, contains an empty segment, an unterminated
            quote or a malformed ``[index]``.
        """

        if not isinstance(raw, str):
            raise InvalidKey(f"Lookup key must be a string, got {type(raw).__name__}")
        segments = _split_key(raw)
        root_key = str(segments[0])
        module_name = None
        if _MODULE_SEPARATOR in root_key:
            qualifier = root_key.split(_MODULE_SEPARATOR, 1)[0]
            module_name = qualifier or None
        return cls(raw=raw, root_key=root_key, module_name=module_name, subkey_path=tuple(segments[1:]))

    @property
    def segments(self) -> tuple[Segment, ...]:
        """Return ``(root_key, *subkey_path)`` as handed to dig functions."""

        return (self.root_key, *self.subkey_path)

    def navigate(self, context: _Reporter, value: Any) -> Any:
        """Walk :attr:`subkey_path` into *value*.

        Returns ``NOT_FOUND`` (after reporting the failing segment to *context*)
        when a segment is missing or the current value cannot be indexed.
        """

        if value is NOT_FOUND or not self.subkey_path:
            return value
        current = value
        for index, segment in enumerate(self.subkey_path):
            current = _step(current, segment)
            if current is NOT_FOUND:
                walked = ".".join(str(part) for part in self.segments[: index + 2])
                context.report_not_found(walked)
                return NOT_FOUND
        return current

    def undig(self, value: Any) -> Any:
        """Wrap *value* in nested mappings so :meth:`navigate` finds it again.

        Dig-capable backends return the value at the full key path; wrapping
        lets every tier hand a root-level value to the adapter.

        Examples
        --------
        >>> LookupKey.parse("a.b.c").undig(1)
        {'b': {'c': 1}}
        """

        for segment in reversed(self.subkey_path):
            value = {segment: value}
        return value

    def __str__(self) -> str:
        return self.raw


LOOKUP_OPTIONS_KEY: Final[LookupKey] = LookupKey(raw=LOOKUP_OPTIONS, root_key=LOOKUP_OPTIONS, module_name=None)
"""Pre-parsed key used by the lookup-options machinery (bypasses the reserved check)."""


def _step(current: Any, segment: Segment) -> Any:
    """Return ``current[segment]`` or ``NOT_FOUND`` when it cannot be addressed."""

    if current is None:
        return NOT_FOUND
    if isinstance(current, Mapping):
        if segment in current:
            return current[segment]
        if isinstance(segment, int) and str(segment) in current:
            return current[str(segment)]
        return NOT_FOUND
    if isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
        if isinstance(segment, int) and 0 <= segment < len(current):
            return current[segment]
    return NOT_FOUND


def _split_key(raw: str) -> list[Segment]:
    """Tokenise *raw* on dots, honouring quoted segments and ``[n]`` indexes.

    Examples
    --------
    >>> _split_key("a.'b.c'.2[3]")
    ['a', 'b.c', 2, 3]
    """

    segments: list[Segment] = []
    buffer = ""
    closed = False
    pos = 0
    while pos < len(raw):
        char = raw[pos]
        if char == ".":
            if not closed:
                if not buffer:
                    raise _syntax_error(raw, "empty segment")
                segments.append(_coerce_segment(buffer, is_root=not segments))
            buffer, closed = "", False
        elif char in ("'", '"') and not buffer and not closed:
            end = raw.find(char, pos + 1)
            if end == -1:
                raise _syntax_error(raw, "unterminated quote")
            segments.append(raw[pos + 1 : end])
            closed = True
            pos = end
        elif char == "[":
            if buffer:
                segments.append(_coerce_segment(buffer, is_root=not segments))
                buffer = ""
            elif not closed:
                raise _syntax_error(raw, "index without a preceding segment")
            end = raw.find("]", pos + 1)
            inner = raw[pos + 1 : end] if end != -1 else ""
            if not inner.isdigit():
                raise _syntax_error(raw, "index must be a non-negative integer")
            segments.append(int(inner))
            closed = True
            pos = end
        else:
            if closed:
                raise _syntax_error(raw, f"unexpected character {char!r} after segment")
            buffer += char
        pos += 1
    if buffer:
        segments.append(_coerce_segment(buffer, is_root=not segments))
    elif not closed:
        raise _syntax_error(raw, "empty segment")
    return segments


def _coerce_segment(text: str, *, is_root: bool) -> Segment:
    if not is_root and text.isdigit():
        return int(text)
    return text


def _syntax_error(raw: str, problem: str) -> InvalidKey:
    return InvalidKey(f"Syntax error in lookup key '{raw}': {problem}")
