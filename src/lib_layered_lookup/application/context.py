"""Lookup invocation context.

Purpose
-------
Carry everything one top-level lookup needs besides the adapter itself: the
scope variables, the stack of in-progress keys used for cycle detection,
override/default value maps and an optional explanation sink.

Contents
--------
* :class:`Explainer` – tree-shaped diagnostic sink rendered as indented text.
* :class:`LookupContext` – the invocation object consumed by every provider.
* :class:`ScopeLookupCollectingContext` – records scope variables read while a
  hierarchy configuration is interpolated so the result can be cached.

System Role
-----------
Owned by the caller of one top-level lookup. The engine only uses its contract:
``track`` (push/pop), the ``report_*`` family and scope access. Each report is
also mirrored to the package logger at debug level.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..domain.errors import CyclicLookup
from ..domain.sentinels import NOT_FOUND
from ..observability import log_debug

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from .lookup_adapter import LookupAdapter


@dataclass
class _ExplainNode:
    kind: str
    label: str
    entries: list[str | _ExplainNode] = field(default_factory=list)


class Explainer:
    """Collect lookup diagnostics as a tree of nested branches.

    Examples
    --------
    >>> explainer = Explainer()
    >>> with explainer.branch("data_provider", "Environment"):
    ...     explainer.add("No such key: 'x'")
    >>> print(explainer.render())
    Environment
      No such key: 'x'
    """

    def __init__(self, *, explain_options: bool = False) -> None:
        self.explain_options = explain_options
        self._root = _ExplainNode("root", "")
        self._stack = [self._root]

    @contextmanager
    def branch(self, kind: str, label: str) -> Iterator[None]:
        node = _ExplainNode(kind, label)
        self._stack[-1].entries.append(node)
        self._stack.append(node)
        try:
            yield
        finally:
            self._stack.pop()

    def add(self, text: str) -> None:
        self._stack[-1].entries.append(text)

    def render(self) -> str:
        lines: list[str] = []
        _render(self._root, -1, lines)
        return "\n".join(lines)


def _render(node: _ExplainNode, depth: int, lines: list[str]) -> None:
    if depth >= 0:
        lines.append("  " * depth + node.label)
    for entry in node.entries:
        if isinstance(entry, _ExplainNode):
            _render(entry, depth + 1, lines)
        else:
            lines.append("  " * (depth + 1) + entry)


class LookupContext:
    """Invocation state for one top-level lookup.

    Parameters
    ----------
    scope:
        Variable environment used for interpolation (``name -> value``).
    override_values / default_values:
        Consulted by :func:`lib_layered_lookup.core.lookup` before and after the
        provider search.
    explainer:
        Optional :class:`Explainer` receiving diagnostics.
    only_explain_options:
        When set, the adapter only resolves ``lookup_options`` for diagnostics.
    adapter:
        Adapter that backend functions and ``%{lookup(...)}`` use for nested
        lookups; set by :meth:`LookupAdapter.lookup` when missing.
    """

    def __init__(
        self,
        scope: Mapping[str, Any] | None = None,
        *,
        override_values: Mapping[str, Any] | None = None,
        default_values: Mapping[str, Any] | None = None,
        explainer: Explainer | None = None,
        only_explain_options: bool = False,
        adapter: LookupAdapter | None = None,
    ) -> None:
        self.scope: Mapping[str, Any] = scope if scope is not None else {}
        self.override_values: Mapping[str, Any] = override_values or {}
        self.default_values: Mapping[str, Any] = default_values or {}
        self.explainer = explainer
        self.adapter = adapter
        self._only_explain_options = only_explain_options
        self._name_stack: list[tuple[str, str | None]] = []

    @property
    def top_key(self) -> str | None:
        return self._name_stack[0][0] if self._name_stack else None

    @property
    def module_name(self) -> str | None:
        """Module of the innermost in-progress lookup."""

        return self._name_stack[-1][1] if self._name_stack else None

    def only_explain_options(self) -> bool:
        return self._only_explain_options

    def explain_options(self) -> bool:
        return self.explainer is not None and self.explainer.explain_options

    @contextmanager
    def track(self, key: str, module_name: str | None) -> Iterator[LookupContext]:
        """Push ``(key, module_name)`` for the duration of the block.

        Raises
        ------
        CyclicLookup
            When the pair is already being looked up further up the chain.
        """

        entry = (key, module_name)
        if entry in self._name_stack:
            chain = ", ".join(name for name, _ in [*self._name_stack, entry])
            raise CyclicLookup(f"Recursive lookup detected in [{chain}]")
        self._name_stack.append(entry)
        try:
            yield self
        finally:
            self._name_stack.pop()

    @contextmanager
    def explaining(self, kind: str, label: object) -> Iterator[None]:
        """Open a nested explanation branch when an explainer is attached."""

        if self.explainer is None:
            yield
            return
        with self.explainer.branch(kind, _branch_label(kind, label)):
            yield

    def report_found(self, key: object, value: Any) -> Any:
        self._explain(lambda: f"Found key: '{key}' value: {value!r}")
        log_debug("lookup_found", key=str(key))
        return value

    def report_not_found(self, key: object) -> Any:
        self._explain(lambda: f"No such key: '{key}'")
        log_debug("lookup_not_found", key=str(key))
        return NOT_FOUND

    def report_result(self, value: Any) -> Any:
        self._explain(lambda: f"Merged result: {value!r}")
        return value

    def report_merge_source(self, source: str) -> None:
        self._explain(lambda: f"Using merge options from \"{source}\" hash")

    def report_location_not_found(self, location: object) -> Any:
        self._explain(lambda: f"Path \"{location}\" not found")
        log_debug("location_not_found", location=str(location))
        return NOT_FOUND

    def report_module_not_found(self, module_name: str) -> Any:
        self._explain(lambda: f"Module \"{module_name}\" not found")
        return NOT_FOUND

    def report_module_provider_not_found(self, module_name: str) -> Any:
        self._explain(lambda: f"Module data provider for module \"{module_name}\" not found")
        return NOT_FOUND

    def report_invalid_key(self, key: str) -> None:
        self._explain(lambda: f"Invalid key \"{key}\"")

    def report_text(self, message: str | Callable[[], str]) -> None:
        text = message() if callable(message) else message
        if self.explainer is not None:
            self.explainer.add(text)
        log_debug("lookup_explain", text=text)

    def remember_scope_lookup(self, name: str, value: Any) -> None:
        """Hook called by the interpolation engine for every scope read."""

    def with_scope(self, scope: Mapping[str, Any]) -> LookupContext:
        """Return a context over *scope* sharing this context's stack and sinks."""

        child = LookupContext(
            scope,
            override_values=self.override_values,
            default_values=self.default_values,
            explainer=self.explainer,
            only_explain_options=self._only_explain_options,
            adapter=self.adapter,
        )
        child._name_stack = self._name_stack
        return child

    def meta_context(self) -> LookupContext:
        """Return a fresh context over the same scope for ``lookup_options`` resolution.

        The new context has its own in-progress stack so that resolving
        ``lookup_options`` never collides with the key being looked up. The
        explainer is shared only when options are being explained.
        """

        return LookupContext(
            self.scope,
            explainer=self.explainer if self.explain_options() else None,
            adapter=self.adapter,
        )

    def _explain(self, render: Callable[[], str]) -> None:
        if self.explainer is not None:
            self.explainer.add(render())


class ScopeLookupCollectingContext(LookupContext):
    """Context that remembers every scope variable read during interpolation.

    Attributes
    ----------
    scope_interpolations:
        ``variable name -> value`` snapshot consumed by
        :meth:`HieraConfig.configured_data_providers`.

    When *parent* is given its in-progress stack is shared, so nested
    ``%{lookup(...)}`` calls made while resolving the hierarchy still detect
    cycles.
    """

    def __init__(
        self,
        scope: Mapping[str, Any],
        *,
        adapter: LookupAdapter | None = None,
        parent: LookupContext | None = None,
    ) -> None:
        super().__init__(scope, adapter=adapter)
        self.scope_interpolations: dict[str, Any] = {}
        if parent is not None:
            self._name_stack = parent._name_stack

    def remember_scope_lookup(self, name: str, value: Any) -> None:
        self.scope_interpolations[name] = value


def _branch_label(kind: str, label: object) -> str:
    if kind == "location":
        return f"Path \"{label}\""
    if kind == "merge":
        return f"Merge strategy {label}"
    if kind == "data_provider":
        return str(label)
    return f"{kind.replace('_', ' ').capitalize()} \"{label}\""
