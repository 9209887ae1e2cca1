"""Schema models for the three ``hiera.yaml`` generations (pydantic v2).

Purpose
-------
Describe the literal document shapes accepted for versions 3, 4 and 5 and
translate pydantic validation failures into the library's
:class:`~lib_layered_lookup.domain.errors.ValidationError`.

Contents
--------
* :class:`HieraV3Document` – legacy backend-oriented layout; per-backend
  sections are accepted as extra keys named after a declared backend.
* :class:`HieraV4Document` / :class:`HieraV4Entry` – named entries with a
  ``backend``.
* :class:`HieraV5Document` / :class:`HieraV5Entry` / :class:`HieraV5Defaults`
  – named entries with a function kind and a location kind.
* :func:`assert_instance_of` – validate a document against one of the models.

System Role
-----------
Used by :mod:`lib_layered_lookup.application.hiera_config` after version
defaults have been filled in. Semantic rules that span fields (one function
kind, one location kind) live with the configuration variants, not here.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Annotated, Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError

NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]
NonEmptyList = Annotated[list[NonEmptyStr], Field(min_length=1)]

_OPTION_NAME = re.compile(r"\A[A-Za-z](?:[0-9A-Za-z_-]*[0-9A-Za-z])?\Z")

ModelT = TypeVar("ModelT", bound=BaseModel)


class _Closed(BaseModel):
    model_config = ConfigDict(extra="forbid")


class HieraV3Document(BaseModel):
    """Version 3 document; backend sections are validated as extras."""

    model_config = ConfigDict(extra="allow")

    version: Literal[3] | None = None
    backends: NonEmptyStr | list[NonEmptyStr] | None = None
    logger: NonEmptyStr | None = None
    merge_behavior: Literal["native", "array", "deep", "deeper"] | None = None
    deep_merge_options: dict[NonEmptyStr, str | bool] | None = None
    hierarchy: NonEmptyStr | list[NonEmptyStr] | None = None

    @model_validator(mode="after")
    def _check_backend_sections(self) -> HieraV3Document:
        declared = [self.backends] if isinstance(self.backends, str) else list(self.backends or [])
        for key, value in (self.model_extra or {}).items():
            if key not in declared:
                raise ValueError(f"unrecognized key '{key}' (not a declared backend)")
            if not isinstance(value, Mapping) or not all(isinstance(k, str) and k for k in value):
                raise ValueError(f"backend section '{key}' must be a hash with non-empty string keys")
        return self


class HieraV4Entry(_Closed):
    backend: NonEmptyStr
    name: NonEmptyStr
    datadir: NonEmptyStr | None = None
    path: NonEmptyStr | None = None
    paths: list[NonEmptyStr] | None = None


class HieraV4Document(_Closed):
    version: Literal[4]
    datadir: NonEmptyStr | None = None
    hierarchy: list[HieraV4Entry] | None = None


class HieraV5Defaults(_Closed):
    data_hash: NonEmptyStr | None = None
    lookup_key: NonEmptyStr | None = None
    data_dig: NonEmptyStr | None = None
    datadir: NonEmptyStr | None = None


class HieraV5Entry(_Closed):
    """One hierarchy level of a version 5 document."""

    name: NonEmptyStr
    options: dict[str, Any] | None = None
    data_hash: NonEmptyStr | None = None
    lookup_key: NonEmptyStr | None = None
    v4_data_hash: NonEmptyStr | None = None
    data_dig: NonEmptyStr | None = None
    path: NonEmptyStr | None = None
    paths: NonEmptyList | None = None
    glob: NonEmptyStr | None = None
    globs: NonEmptyList | None = None
    uri: NonEmptyStr | None = None
    uris: NonEmptyList | None = None
    datadir: NonEmptyStr | None = None

    @field_validator("options")
    @classmethod
    def _check_option_names(cls, value: dict[str, Any] | None) -> dict[str, Any] | None:
        for name in value or {}:
            if not _OPTION_NAME.match(name):
                raise ValueError(f"invalid option name '{name}'")
        return value


class HieraV5Document(_Closed):
    version: Literal[5]
    defaults: HieraV5Defaults | None = None
    hierarchy: list[HieraV5Entry] | None = None


def assert_instance_of(model: type[ModelT], document: Mapping[str, Any], label: str) -> ModelT:
    """Validate *document* against *model* or raise :class:`ValidationError`.

    Why
    ----
    Callers need one error family; pydantic's own exception is translated and
    its entries rendered as ``location: message`` lines.

    Parameters
    ----------
    model:
        One of the document models in this module.
    document:
        Plain mapping (string keys) read from ``hiera.yaml`` or synthesised.
    label:
        Human readable origin, e.g. ``"The Lookup Configuration at '/x/hiera.yaml'"``.

    Examples
    --------
    >>> assert_instance_of(HieraV4Document, {"version": 4}, "demo").version
    4
    >>> assert_instance_of(HieraV4Document, {"version": 4, "bogus": 1}, "demo")
    Traceback (most recent call last):
    ...
    lib_layered_lookup.domain.errors.ValidationError: demo has wrong type:
      bogus: Extra inputs are not permitted
    """

    try:
        return model.model_validate(dict(document))
    except PydanticValidationError as exc:
        lines = []
        for error in exc.errors():
            location = " -> ".join(str(part) for part in error["loc"]) or "<root>"
            lines.append(f"  {location}: {error['msg']}")
        raise ValidationError(f"{label} has wrong type:\n" + "\n".join(lines)) from exc
