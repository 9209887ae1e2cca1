"""Lookup settings: validation, mapping construction and environment loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from lib_layered_lookup.core import load_settings
from lib_layered_lookup.domain.errors import ConfigurationError
from lib_layered_lookup.domain.settings import LookupSettings


def test_defaults() -> None:
    settings = LookupSettings()
    assert settings.data_binding_terminus == "hiera"
    assert settings.strict == "warning"
    assert settings.hiera_config is None
    assert settings.environment == "production"
    assert settings.deprecations_enabled is True
    assert settings.global_lookup_disabled is False


def test_invalid_strict_mode_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        LookupSettings(strict="loud")


def test_paths_are_coerced() -> None:
    settings = LookupSettings(hiera_config="/etc/hiera.yaml", codedir="/code")  # type: ignore[arg-type]
    assert settings.hiera_config == Path("/etc/hiera.yaml")
    assert settings.codedir == Path("/code")


@pytest.mark.parametrize("terminus", [None, "", "none"])
def test_global_lookup_disabled(terminus: str | None) -> None:
    assert LookupSettings(data_binding_terminus=terminus).global_lookup_disabled is True


def test_strict_off_disables_deprecations() -> None:
    assert LookupSettings(strict="off").deprecations_enabled is False


def test_from_mapping_ignores_unknown_keys() -> None:
    settings = LookupSettings.from_mapping({"environment": "dev", "colour": "blue"})
    assert settings.environment == "dev"


def test_as_dict_renders_paths_as_text() -> None:
    payload = LookupSettings(hiera_config=Path("/etc/hiera.yaml")).as_dict()
    assert payload["hiera_config"] == "/etc/hiera.yaml"
    assert payload["environmentpath"] is None


def test_load_settings_reads_prefixed_variables() -> None:
    environ = {
        "LIB_LAYERED_LOOKUP_STRICT": "error",
        "LIB_LAYERED_LOOKUP_HIERA_CONFIG": "/etc/lookup/hiera.yaml",
        "LIB_LAYERED_LOOKUP_ENVIRONMENT": "staging",
        "OTHER_STRICT": "off",
    }
    settings = load_settings(environ=environ)
    assert settings.strict == "error"
    assert settings.hiera_config == Path("/etc/lookup/hiera.yaml")
    assert settings.environment == "staging"


def test_load_settings_none_disables_terminus_but_not_required_fields() -> None:
    environ = {"LIB_LAYERED_LOOKUP_DATA_BINDING_TERMINUS": "none", "LIB_LAYERED_LOOKUP_STRICT": ""}
    settings = load_settings(environ=environ)
    assert settings.data_binding_terminus is None
    assert settings.strict == "warning"


def test_load_settings_keyword_overrides_win() -> None:
    settings = load_settings(environ={"LIB_LAYERED_LOOKUP_ENVIRONMENT": "staging"}, environment="qa")
    assert settings.environment == "qa"
