"""Application-layer merge strategies.

Purpose
-------
Combine the values produced by an ordered sequence of lookup sources (hierarchy
locations, hierarchy entries or the global/environment/module tiers) into one
value. The same strategy object governs combination within a provider and
across tiers.

Contents
    - ``MergeStrategy``: base class, factory (:meth:`MergeStrategy.strategy`) and
      the shared ``lookup`` loop.
    - ``FirstFoundStrategy`` (``first``), ``UniqueMergeStrategy`` (``unique``),
      ``HashMergeStrategy`` (``hash``), ``DeepMergeStrategy`` (``deep``) and
      ``ReverseDeepMergeStrategy`` (``reverse_deep``).
    - ``_deep_merge`` / ``_merge_arrays`` / ``_strip_knockouts``: recursive
      stanzas that keep the deep-merge precedence rules readable.

System Role
-----------
Sources signal absence with :data:`NOT_FOUND`; the loop skips them and the
overall result is ``NOT_FOUND`` only when no source produced a value. Earlier
sources have precedence except for ``reverse_deep``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from copy import deepcopy
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

from ..domain.errors import LookupFailed, UnrecognizedMerge
from ..domain.sentinels import NOT_FOUND
from ..observability import log_debug

if TYPE_CHECKING:  # pragma: no cover
    from .context import LookupContext

SourceT = TypeVar("SourceT")


class MergeStrategy:
    """Base class for all merge strategies.

    Why
    ----
    Callers pass merge behaviour as ``None``, a tag, an options map or an
    existing strategy; normalising through :meth:`strategy` keeps every call
    site identical.

    Examples
    --------
    >>> from lib_layered_lookup.application.context import LookupContext
    >>> MergeStrategy.strategy("unique").lookup([[1, 2], [2, 3]], LookupContext(), lambda v: v)
    [1, 2, 3]
    >>> MergeStrategy.strategy({"strategy": "deep", "knockout_prefix": "--"}).configuration
    {'strategy': 'deep', 'knockout_prefix': '--'}
    """

    tag: ClassVar[str] = ""
    option_types: ClassVar[Mapping[str, type]] = {}

    def __init__(self, options: Mapping[str, Any] | None = None) -> None:
        values = {key: value for key, value in (options or {}).items() if key != "strategy"}
        for key, value in values.items():
            expected = self.option_types.get(key)
            if expected is None:
                raise UnrecognizedMerge(f"Merge strategy '{self.tag}' does not accept option '{key}'")
            if not isinstance(value, expected):
                raise UnrecognizedMerge(
                    f"Merge strategy '{self.tag}' option '{key}' expects {expected.__name__}, got {type(value).__name__}"
                )
        self.options: Mapping[str, Any] = MappingProxyType(values)

    @staticmethod
    def strategy(merge: MergeStrategy | str | Mapping[str, Any] | None) -> MergeStrategy:
        """Return the strategy described by *merge*.

        Raises
        ------
        UnrecognizedMerge
            For an unknown tag, a map without a string ``strategy`` entry or an
            option the strategy does not accept.
        """

        if isinstance(merge, MergeStrategy):
            return merge
        if merge is None:
            return FirstFoundStrategy()
        if isinstance(merge, Mapping):
            tag = merge.get("strategy")
            options: Mapping[str, Any] | None = merge
        else:
            tag, options = merge, None
        if not isinstance(tag, str):
            raise UnrecognizedMerge(f"Unrecognized value for 'merge' parameter: '{merge}'")
        strategy_cls = STRATEGIES.get(tag)
        if strategy_cls is None:
            raise UnrecognizedMerge(f"Unknown merge strategy: '{tag}'")
        return strategy_cls(options)

    @property
    def configuration(self) -> str | dict[str, Any]:
        """Return the tag, or ``{"strategy": tag, **options}`` when options are set."""

        if not self.options:
            return self.tag
        return {"strategy": self.tag, **self.options}

    def lookup(
        self,
        sources: Iterable[SourceT],
        context: LookupContext,
        attempt: Callable[[SourceT], Any],
    ) -> Any:
        """Invoke *attempt* for each source and merge every found value."""

        variants = list(sources)
        if not variants:
            return NOT_FOUND
        if len(variants) == 1:
            value = attempt(variants[0])
            return value if value is NOT_FOUND else self.merge_single(value)
        with context.explaining("merge", self):
            result: Any = NOT_FOUND
            for source in variants:
                value = attempt(source)
                if value is NOT_FOUND:
                    continue
                result = self.convert_value(value) if result is NOT_FOUND else self.merge(result, value)
            if result is NOT_FOUND:
                return NOT_FOUND
            return context.report_result(self.merge_single(result))

    def merge(self, first: Any, second: Any) -> Any:
        """Merge two values where *first* comes from the earlier source."""

        return self._checked_merge(self.convert_value(first), self.convert_value(second))

    def merge_single(self, value: Any) -> Any:
        return self.convert_value(value)

    def convert_value(self, value: Any) -> Any:
        return value

    def _checked_merge(self, first: Any, second: Any) -> Any:
        raise NotImplementedError(f"{type(self).__name__} must implement _checked_merge()")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MergeStrategy):
            return NotImplemented
        return type(self) is type(other) and dict(self.options) == dict(other.options)

    def __hash__(self) -> int:
        return hash((type(self), tuple(sorted(self.options.items()))))

    def __str__(self) -> str:
        return self.tag

    def __repr__(self) -> str:
        return f"{type(self).__name__}({dict(self.options)!r})"


class FirstFoundStrategy(MergeStrategy):
    """Return the first found value and stop consulting further sources."""

    tag = "first"

    def lookup(
        self,
        sources: Iterable[SourceT],
        context: LookupContext,
        attempt: Callable[[SourceT], Any],
    ) -> Any:
        for source in sources:
            value = attempt(source)
            if value is not NOT_FOUND:
                return value
        return NOT_FOUND

    def _checked_merge(self, first: Any, second: Any) -> Any:
        return first


class UniqueMergeStrategy(MergeStrategy):
    """Concatenate every found value into one flat, de-duplicated list."""

    tag = "unique"

    def convert_value(self, value: Any) -> list[Any]:
        if isinstance(value, (list, tuple)):
            return _unique(_flatten(value))
        return [value]

    def _checked_merge(self, first: list[Any], second: list[Any]) -> list[Any]:
        return _unique([*first, *second])


class HashMergeStrategy(MergeStrategy):
    """Merge top-level keys of found mappings; earlier sources win."""

    tag = "hash"

    def convert_value(self, value: Any) -> Mapping[str, Any]:
        if not isinstance(value, Mapping):
            raise LookupFailed(f"The '{self.tag}' merge strategy requires hash values, got {type(value).__name__}")
        return value

    def _checked_merge(self, first: Mapping[str, Any], second: Mapping[str, Any]) -> dict[str, Any]:
        merged = dict(second)
        merged.update(first)
        return merged


class DeepMergeStrategy(MergeStrategy):
    """Recursively merge mappings and arrays; earlier sources win.

    Options
    -------
    knockout_prefix:
        Strings starting with the prefix delete the key (as a mapping value) or
        the matching element (as an array member) instead of overriding.
    merge_hash_arrays:
        Two arrays consisting only of mappings merge into one merged mapping.
    sort_merge_arrays:
        Sort merged arrays.
    merge_debug:
        Log every merge step at debug level.
    """

    tag = "deep"
    option_types = {
        "knockout_prefix": str,
        "merge_hash_arrays": bool,
        "sort_merge_arrays": bool,
        "merge_debug": bool,
    }

    def merge_single(self, value: Any) -> Any:
        return _strip_knockouts(value, self.options.get("knockout_prefix"))

    def _checked_merge(self, first: Any, second: Any) -> Any:
        if self.options.get("merge_debug"):
            log_debug("deep_merge", strategy=self.tag, source=repr(first), destination=repr(second))
        return _deep_merge(first, second, self.options)


class ReverseDeepMergeStrategy(DeepMergeStrategy):
    """Deep merge where later sources win."""

    tag = "reverse_deep"

    def _checked_merge(self, first: Any, second: Any) -> Any:
        return super()._checked_merge(second, first)


STRATEGIES: dict[str, type[MergeStrategy]] = {
    strategy.tag: strategy
    for strategy in (
        FirstFoundStrategy,
        UniqueMergeStrategy,
        HashMergeStrategy,
        DeepMergeStrategy,
        ReverseDeepMergeStrategy,
    )
}


def _deep_merge(source: Any, dest: Any, options: Mapping[str, Any]) -> Any:
    """Merge *source* (precedence) into *dest* and return a new value."""

    prefix = options.get("knockout_prefix")
    if isinstance(source, Mapping) and isinstance(dest, Mapping):
        merged = {key: deepcopy(value) for key, value in dest.items()}
        for key, value in source.items():
            if _is_knockout(value, prefix):
                merged.pop(key, None)
            elif key in merged:
                merged[key] = _deep_merge(value, merged[key], options)
            else:
                merged[key] = _strip_knockouts(value, prefix)
        return merged
    if isinstance(source, list) and isinstance(dest, list):
        return _merge_arrays(source, dest, options)
    return _strip_knockouts(source, prefix)


def _merge_arrays(source: list[Any], dest: list[Any], options: Mapping[str, Any]) -> list[Any]:
    prefix = options.get("knockout_prefix")
    if options.get("merge_hash_arrays") and _all_mappings(source) and _all_mappings(dest):
        merged: list[Any] = [_deep_merge(_fold(source, options), _fold(dest, options), options)]
    else:
        knocked = {item[len(prefix) :] for item in source if _is_knockout(item, prefix)} if prefix else set()
        merged = []
        for item in source:
            if not _is_knockout(item, prefix) and item not in merged:
                merged.append(deepcopy(item))
        for item in dest:
            if not (isinstance(item, str) and item in knocked) and item not in merged:
                merged.append(deepcopy(item))
    if options.get("sort_merge_arrays"):
        try:
            merged.sort()
        except TypeError:
            merged.sort(key=repr)
    return merged


def _fold(hashes: list[Mapping[str, Any]], options: Mapping[str, Any]) -> Any:
    folded: Any = hashes[0]
    for entry in hashes[1:]:
        folded = _deep_merge(folded, entry, options)
    return folded


def _strip_knockouts(value: Any, prefix: str | None) -> Any:
    """Return a copy of *value* with knockout markers removed."""

    if not prefix:
        return deepcopy(value)
    if isinstance(value, Mapping):
        return {key: _strip_knockouts(item, prefix) for key, item in value.items() if not _is_knockout(item, prefix)}
    if isinstance(value, list):
        return [_strip_knockouts(item, prefix) for item in value if not _is_knockout(item, prefix)]
    return value


def _is_knockout(value: Any, prefix: str | None) -> bool:
    return bool(prefix) and isinstance(value, str) and value.startswith(prefix)


def _all_mappings(items: list[Any]) -> bool:
    return bool(items) and all(isinstance(item, Mapping) for item in items)


def _flatten(items: Iterable[Any]) -> list[Any]:
    flat: list[Any] = []
    for item in items:
        if isinstance(item, (list, tuple)):
            flat.extend(_flatten(item))
        else:
            flat.append(item)
    return flat


def _unique(items: Iterable[Any]) -> list[Any]:
    """De-duplicate preserving first occurrence; works for unhashable items."""

    result: list[Any] = []
    for item in items:
        if item not in result:
            result.append(item)
    return result
