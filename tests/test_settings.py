from pathlib import Path

import pytest

from venue_resolver.errors import ConfigError
from venue_resolver.normalize.records import SourceShape
from venue_resolver.settings import Settings, apply_env_overrides, load_settings


def test_missing_file_yields_defaults(tmp_path):
    settings = load_settings(tmp_path / "absent.toml")
    assert settings.resolver.max_results == 200
    assert settings.resolver.service_shape is SourceShape.ALTERNATE
    assert settings.store.fixture_path is None


def test_load_settings_reads_toml(tmp_path):
    path = tmp_path / "settings.toml"
    path.write_text(
        """
[store]
url = "https://example.supabase.co/"
fixture_path = "data/fixture.json"

[resolver]
primary_table = "mosques"
max_results = 50
table_shape = "alternate"
""",
        encoding="utf-8",
    )
    settings = load_settings(path)
    assert settings.store.url == "https://example.supabase.co"
    assert settings.store.fixture_path == Path("data/fixture.json")
    assert settings.resolver.primary_table == "mosques"
    assert settings.resolver.max_results == 50
    assert settings.resolver.table_shape is SourceShape.ALTERNATE


def test_invalid_settings_raise_config_error(tmp_path):
    path = tmp_path / "settings.toml"
    path.write_text("[resolver]\nmax_results = 0\n", encoding="utf-8")
    with pytest.raises(ConfigError) as excinfo:
        load_settings(path)
    assert "resolver" in str(excinfo.value)


def test_unparseable_toml_raises_config_error(tmp_path):
    path = tmp_path / "settings.toml"
    path.write_text("[store\nurl = ", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(path)


def test_env_overrides_follow_precedence():
    environ = {
        "SUPABASE_URL": "https://fallback.supabase.co",
        "SUPABASE_ANON_KEY": "anon",
        "SUPABASE_KEY": "service",
        "VENUE_MAX_RESULTS": "25",
    }
    settings = apply_env_overrides(Settings(), environ)
    assert settings.store.url == "https://fallback.supabase.co"
    assert settings.store.api_key == "anon"
    assert settings.resolver.max_results == 25

    preferred = apply_env_overrides(Settings(), {**environ, "VENUE_STORE_URL": "https://primary.example"})
    assert preferred.store.url == "https://primary.example"


def test_env_overrides_leave_settings_untouched_without_variables():
    original = Settings()
    assert apply_env_overrides(original, {}) == original


def test_invalid_env_override_raises():
    with pytest.raises(ConfigError):
        apply_env_overrides(Settings(), {"VENUE_MAX_RESULTS": "lots"})
