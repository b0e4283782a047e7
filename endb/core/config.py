"""
Endb Configuration: connection descriptor and its loaders.

An Endb facade is built from an EndbOptions value. Options come from code
directly, or from EndbOptions.load(), which merges several sources.

Precedence (highest to lowest):
1. Explicit overrides (passed in code)
2. Environment variables (ENDB_*)
3. Project config (./endb.toml, [endb] table)
4. Defaults (hardcoded)

Environment variable mapping:
    ENDB_URI → uri
    ENDB_ADAPTER → adapter
    ENDB_NAMESPACE → namespace
    ENDB_TABLE → table
    ENDB_COLLECTION → collection
    ENDB_KEY_SIZE → key_size
    ENDB_BUSY_TIMEOUT → busy_timeout
"""

from __future__ import annotations

import os
import re
import tomllib
from pathlib import Path
from typing import Any, Callable, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from endb.core.errors import ConfigError
from endb.keys import SEPARATOR

DEFAULT_NAMESPACE = "endb"


class EndbOptions(BaseModel):
    """Connection descriptor for an Endb facade."""

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        populate_by_name=True,
        extra="forbid",
    )

    uri: str | None = None
    adapter: str | None = None
    namespace: str = DEFAULT_NAMESPACE
    serialize: Callable[[Any], Any] | None = None
    deserialize: Callable[[Any], Any] | None = None
    store: Any = None

    # Backend-specific
    collection: str = "endb"
    table: str = "endb"
    key_size: int = Field(default=255, alias="keySize", gt=0)
    busy_timeout: int | None = Field(default=None, alias="busyTimeout", ge=0)
    pool_size: int = Field(default=5, alias="poolSize", gt=0)

    # Open the backend connection in the background at construction
    eager: bool = True

    @field_validator("namespace")
    @classmethod
    def _check_namespace(cls, value: str) -> str:
        if not value:
            raise ValueError("namespace must be a non-empty string")
        if SEPARATOR in value:
            raise ValueError(f"namespace must not contain '{SEPARATOR}'")
        return value

    @field_validator("adapter")
    @classmethod
    def _normalize_adapter(cls, value: str | None) -> str | None:
        return value.strip().lower() if value else None

    @staticmethod
    def load(
        overrides: dict[str, Any] | None = None,
        project_path: Path | None = None,
    ) -> EndbOptions:
        """
        Load options from all sources and merge.

        Precedence: overrides > env vars > project toml > defaults
        """
        merged: dict[str, Any] = {}

        # Layer 1: Project config (./endb.toml)
        project_config_path = project_path or Path.cwd() / "endb.toml"
        if project_config_path.exists():
            data = _load_toml(project_config_path)
            merged.update(data.get("endb", data))

        # Layer 2: Environment variables
        merged.update(_load_from_env())

        # Layer 3: Explicit overrides
        if overrides:
            merged.update(overrides)

        # Substitute ${ENV_VAR} in string values
        _substitute_env_vars(merged)

        return build_options(merged)


def build_options(data: Mapping[str, Any]) -> EndbOptions:
    """Validate a mapping into EndbOptions, raising ConfigError on bad input."""
    try:
        return EndbOptions(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid options: {e}") from e


def coerce_options(
    options: str | Mapping[str, Any] | EndbOptions | None = None,
    **overrides: Any,
) -> EndbOptions:
    """
    Accept every form the facade constructor takes.

        coerce_options("sqlite://data.db")
        coerce_options({"uri": "redis://localhost", "namespace": "cache"})
        coerce_options(EndbOptions(...), namespace="other")
        coerce_options(store={}, namespace="test")
    """
    if options is None:
        data: dict[str, Any] = {}
    elif isinstance(options, str):
        data = {"uri": options}
    elif isinstance(options, EndbOptions):
        data = {name: getattr(options, name) for name in options.model_fields_set}
    elif isinstance(options, Mapping):
        data = dict(options)
    else:
        raise ConfigError(
            f"Options must be a URI string, a mapping or EndbOptions, "
            f"got {type(options).__name__}"
        )
    data.update(overrides)
    return build_options(data)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Internal Helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _load_toml(path: Path) -> dict[str, Any]:
    """Load a TOML file."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except Exception as e:
        raise ConfigError(f"Failed to load config from {path}: {e}") from e


_ENV_MAPPING = {
    "ENDB_URI": "uri",
    "ENDB_ADAPTER": "adapter",
    "ENDB_NAMESPACE": "namespace",
    "ENDB_TABLE": "table",
    "ENDB_COLLECTION": "collection",
    "ENDB_KEY_SIZE": "key_size",
    "ENDB_BUSY_TIMEOUT": "busy_timeout",
    "ENDB_POOL_SIZE": "pool_size",
}


def _load_from_env() -> dict[str, Any]:
    """Load options from ENDB_* environment variables."""
    result: dict[str, Any] = {}
    for env_var, key in _ENV_MAPPING.items():
        value = os.environ.get(env_var)
        if value is not None:
            # Numeric fields are coerced by pydantic
            result[key] = value
    return result


def _substitute_env_vars(data: dict) -> None:
    """Substitute ${ENV_VAR} patterns in top-level string values."""
    pattern = re.compile(r"\$\{([^}]+)\}")

    for key, value in data.items():
        if isinstance(value, str):
            data[key] = pattern.sub(lambda m: os.environ.get(m.group(1), ""), value)
