"""Settings models and loading for the resolver and its store client."""
from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError, field_validator

from venue_resolver.errors import ConfigError
from venue_resolver.normalize.records import SourceShape

# First non-empty variable wins.
STORE_URL_ENV: Sequence[str] = ("VENUE_STORE_URL", "SUPABASE_URL")
STORE_KEY_ENV: Sequence[str] = ("VENUE_STORE_KEY", "SUPABASE_ANON_KEY", "SUPABASE_KEY")
FIXTURE_ENV = "VENUE_STORE_FIXTURE"
MAX_RESULTS_ENV = "VENUE_MAX_RESULTS"


class StoreSettings(BaseModel):
    """Connection details for the persistent store."""

    url: str = ""
    api_key: str = ""
    fixture_path: Optional[Path] = None
    service_function: str = Field(default="nearby_venues", min_length=1)
    timeout_seconds: float = Field(default=10.0, gt=0)
    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=0.5, ge=0)
    max_connections: int = Field(default=10, gt=0)

    @field_validator("url", mode="before")
    @classmethod
    def _strip_url(cls, value: Any) -> str:
        return str(value or "").strip().rstrip("/")

    @field_validator("fixture_path", mode="before")
    @classmethod
    def _resolve_path(cls, value: Any) -> Optional[Path]:
        if value in (None, ""):
            return None
        return Path(value)


class ResolverSettings(BaseModel):
    """Tables, fields and bounds used by the fallback tiers."""

    primary_table: str = Field(default="venues", min_length=1)
    service_view: str = Field(default="accessible_venue_locations", min_length=1)
    id_field: str = Field(default="id", min_length=1)
    slug_field: str = Field(default="slug", min_length=1)
    order_by: Optional[str] = None
    max_results: int = Field(default=200, gt=0)
    default_page_size: int = Field(default=10, gt=0)
    service_shape: SourceShape = SourceShape.ALTERNATE
    table_shape: SourceShape = SourceShape.PRIMARY


class Settings(BaseModel):
    store: StoreSettings = Field(default_factory=StoreSettings)
    resolver: ResolverSettings = Field(default_factory=ResolverSettings)
    logging_config: Path = Path("config/logging.yaml")


def settings_from_mapping(payload: Mapping[str, Any]) -> Settings:
    """Validate a parsed settings document."""
    try:
        return Settings(**payload)
    except ValidationError as exc:
        sections = sorted({str(error["loc"][0]) for error in exc.errors() if error.get("loc")})
        raise ConfigError(f"invalid settings in [{', '.join(sections)}]: {exc}") from exc


def load_settings(path: Path) -> Settings:
    """Read the TOML configuration file, falling back to defaults when absent."""
    if not path.exists():
        return Settings()
    try:
        with path.open("rb") as handle:
            payload = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"cannot parse {path}: {exc}") from exc
    return settings_from_mapping(payload)


def _first_env(environ: Mapping[str, str], names: Sequence[str]) -> Optional[str]:
    for name in names:
        value = environ.get(name, "").strip()
        if value:
            return value
    return None


def apply_env_overrides(settings: Settings, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Return a copy of ``settings`` with environment overrides applied."""
    env = os.environ if environ is None else environ
    store: Dict[str, Any] = settings.store.model_dump()
    resolver: Dict[str, Any] = settings.resolver.model_dump()
    if url := _first_env(env, STORE_URL_ENV):
        store["url"] = url
    if key := _first_env(env, STORE_KEY_ENV):
        store["api_key"] = key
    if fixture := _first_env(env, (FIXTURE_ENV,)):
        store["fixture_path"] = fixture
    if max_results := _first_env(env, (MAX_RESULTS_ENV,)):
        resolver["max_results"] = max_results
    return settings_from_mapping(
        {"store": store, "resolver": resolver, "logging_config": settings.logging_config}
    )
