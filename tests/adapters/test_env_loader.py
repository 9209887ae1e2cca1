"""Environment loader adapter tests clarifying prefix filtering and coercion.

The scenarios cover prefix handling, ``null`` coercion, and randomised inputs to
prove the adapter continues to match the documented environment rules.
"""

from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from lib_layered_lookup.adapters.env.default import DEFAULT_PREFIX, DefaultEnvLoader
from lib_layered_lookup.core import load_settings


def test_env_loader_filters_by_prefix() -> None:
    """Only variables carrying the prefix are captured, with the prefix removed."""

    environ = {
        "LIB_LAYERED_LOOKUP_STRICT": "error",
        "LIB_LAYERED_LOOKUP_HIERA_CONFIG": "/etc/hiera.yaml",
        "OTHER_STRICT": "off",
    }
    data = DefaultEnvLoader(environ=environ).load(DEFAULT_PREFIX)
    assert data == {"strict": "error", "hiera_config": "/etc/hiera.yaml"}


def test_env_loader_appends_separator() -> None:
    """A prefix given with or without the trailing underscore behaves the same."""

    environ = {"DEMO_ENVIRONMENT": "qa"}
    assert DefaultEnvLoader(environ=environ).load("DEMO") == DefaultEnvLoader(environ=environ).load("DEMO_")


def test_env_loader_coerces_null_values() -> None:
    """``none``, ``null`` and blank values become ``None`` so settings can be cleared."""

    environ = {"DEMO_A": "none", "DEMO_B": "NULL", "DEMO_C": "  ", "DEMO_D": " hiera "}
    assert DefaultEnvLoader(environ=environ).load("DEMO") == {"a": None, "b": None, "c": None, "d": "hiera"}


def test_env_loader_skips_bare_prefix() -> None:
    """A variable named exactly like the prefix carries no field and is ignored."""

    assert DefaultEnvLoader(environ={"DEMO_": "x"}).load("DEMO") == {}


def test_load_settings_reads_environment() -> None:
    """Captured variables flow into :class:`LookupSettings`; keyword overrides win."""

    environ = {
        "LIB_LAYERED_LOOKUP_STRICT": "off",
        "LIB_LAYERED_LOOKUP_ENVIRONMENT": "qa",
        "LIB_LAYERED_LOOKUP_DATA_BINDING_TERMINUS": "none",
    }
    settings = load_settings(environ=environ, environment="staging")
    assert settings.strict == "off"
    assert settings.environment == "staging"
    assert settings.data_binding_terminus is None
    assert settings.global_lookup_disabled


def test_load_settings_ignores_blank_non_nullable_values() -> None:
    """Clearing a field that cannot be ``None`` keeps its default."""

    settings = load_settings(environ={"LIB_LAYERED_LOOKUP_ENVIRONMENT": ""})
    assert settings.environment == "production"


FIELDS = st.sampled_from(["STRICT", "ENVIRONMENT", "CODEDIR", "HIERA_CONFIG"])
VALUES = st.sampled_from(["off", "none", "null", "", "qa", "/srv/code"])


@given(st.dictionaries(FIELDS, VALUES, max_size=4))
def test_env_loader_handles_random_fields(entries) -> None:
    """Randomised inputs should map to lower-cased fields with consistent coercion."""

    environ = {f"DEMO_{key}": value for key, value in entries.items()}
    environ["IGNORED"] = "1"
    payload = DefaultEnvLoader(environ=environ).load("DEMO")

    assert set(payload) == {key.lower() for key in entries}
    for key, original in entries.items():
        expected = None if original.lower() in {"", "none", "null"} else original
        assert payload[key.lower()] == expected
