"""``%{...}`` interpolation engine.

Purpose
-------
Implement the :class:`~lib_layered_lookup.application.ports.Interpolator` port.
Strings, and strings nested in lists and mappings (keys included), have their
``%{...}`` tokens expanded against the lookup context.

Supported expressions
---------------------
* ``%{var}`` / ``%{::var}`` / ``%{var.sub.0}`` – scope variables, dotted
  access into mappings and sequences; undefined variables expand to ``""``.
* ``%{scope('var')}`` – same as the plain form.
* ``%{literal('%')}`` – the literal argument.
* ``%{lookup('key')}`` / ``%{hiera('key')}`` – nested lookup, rendered as text.
* ``%{alias('key')}`` – nested lookup returning the value unchanged; only
  allowed when the expression is the entire string.

Every scope variable read is reported through
``context.remember_scope_lookup`` so hierarchy configurations can detect scope
drift.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Final

from ...application.context import LookupContext
from ...domain.errors import ConfigurationError, LookupFailed
from ...domain.sentinels import NOT_FOUND

_TOKEN: Final[re.Pattern[str]] = re.compile(r"%\{([^}]*)\}")
_METHOD: Final[re.Pattern[str]] = re.compile(r"\A(\w+)\(\s*(?:\"([^\"]*)\"|'([^']*)')\s*\)\Z")
_EMPTY: Final[tuple[str, ...]] = ("", "::")


class DefaultInterpolator:
    """Expand interpolation tokens against ``context.scope``.

    Examples
    --------
    >>> context = LookupContext({"environment": "production", "facts": {"os": {"family": "Debian"}}})
    >>> DefaultInterpolator().interpolate("%{::environment}/%{facts.os.family}/%{missing}", context)
    'production/Debian/'
    >>> DefaultInterpolator().interpolate({"path": "%{literal('%')}{x}"}, context)
    {'path': '%{x}'}
    """

    def interpolate(self, value: Any, context: LookupContext, allow_methods: bool = True) -> Any:
        if isinstance(value, str):
            return self._interpolate_string(value, context, allow_methods)
        if isinstance(value, Mapping):
            return {
                self.interpolate(key, context, allow_methods): self.interpolate(item, context, allow_methods)
                for key, item in value.items()
            }
        if isinstance(value, list):
            return [self.interpolate(item, context, allow_methods) for item in value]
        if isinstance(value, tuple):
            return tuple(self.interpolate(item, context, allow_methods) for item in value)
        return value

    def _interpolate_string(self, text: str, context: LookupContext, allow_methods: bool) -> Any:
        if "%{" not in text:
            return text
        whole = _TOKEN.fullmatch(text)
        if whole is not None:
            method = _METHOD.match(whole.group(1).strip())
            if method is not None and method.group(1) == "alias":
                _require_methods(allow_methods)
                return self._lookup(_argument(method), context)
        return _TOKEN.sub(lambda match: self._expand(match.group(1).strip(), context, allow_methods), text)

    def _expand(self, expression: str, context: LookupContext, allow_methods: bool) -> str:
        if expression in _EMPTY:
            return ""
        method = _METHOD.match(expression)
        if method is None:
            return _to_text(self._scope_value(expression, context))
        _require_methods(allow_methods)
        name, argument = method.group(1), _argument(method)
        if name == "literal":
            return argument
        if name == "scope":
            return _to_text(self._scope_value(argument, context))
        if name in ("lookup", "hiera"):
            return _to_text(self._lookup(argument, context))
        if name == "alias":
            raise LookupFailed("'alias' interpolation is only permitted if the expression is equal to the entire string")
        raise LookupFailed(f"Unknown interpolation method '{name}'")

    @staticmethod
    def _scope_value(expression: str, context: LookupContext) -> Any:
        name = expression[2:] if expression.startswith("::") else expression
        root, *path = name.split(".")
        value = context.scope.get(root)
        context.remember_scope_lookup(root, value)
        for segment in path:
            if isinstance(value, Mapping):
                value = value.get(segment)
            elif isinstance(value, (list, tuple)) and segment.isdigit() and int(segment) < len(value):
                value = value[int(segment)]
            else:
                value = None
            if value is None:
                break
        return value

    @staticmethod
    def _lookup(key: str, context: LookupContext) -> Any:
        adapter = context.adapter
        if adapter is None:
            raise LookupFailed(f"Interpolation of lookup('{key}') requires a lookup adapter")
        value = adapter.lookup(key, context, None)
        return None if value is NOT_FOUND else value


def _require_methods(allow_methods: bool) -> None:
    if not allow_methods:
        raise ConfigurationError("Interpolation using method syntax is not allowed in this context")


def _argument(method: re.Match[str]) -> str:
    return method.group(2) if method.group(2) is not None else method.group(3)


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
