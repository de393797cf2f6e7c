from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import torch
import yaml
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from table_dataset.exceptions import ConfigError

# ----------------------------------------------------------------------
# Environment + discovery defaults
# ----------------------------------------------------------------------

# Example: TABLE_DATASET_ENV, TABLE_DATASET_SAMPLING__BATCH_SIZE=32
ENV_PREFIX = "TABLE_DATASET_"
ENV_ENV_NAME = f"{ENV_PREFIX}ENV"
ENV_CONFIG_PATH = f"{ENV_PREFIX}CONFIG_PATH"

DEFAULT_ENV = os.getenv(ENV_ENV_NAME, "dev").lower()
DEFAULT_CONFIG_FILENAMES = ("table_dataset.yaml", "table_dataset.yml")


# ----------------------------------------------------------------------
# Section models
# ----------------------------------------------------------------------


class SamplingConfig(BaseModel):
    """Default options for sampler / mini-batch / animation iteration.

    A TableDataset falls back to these values whenever a call leaves an
    option unset.
    """

    model_config = ConfigDict(frozen=True)

    shuffled: bool = Field(
        True,
        description="Draw a fresh random permutation per epoch instead of ascending order.",
    )
    batch_size: int = Field(10, gt=0, description="Default mini-batch size.")
    sequence: bool = Field(
        False,
        description="Return mini-batches as lazy sample iterators instead of tensor views.",
    )
    seed: int | None = Field(
        None,
        ge=0,
        description="Seed for a dedicated torch.Generator. None uses torch's global RNG.",
    )

    def make_generator(self) -> torch.Generator | None:
        """Return a seeded CPU generator, or None when no seed is configured."""
        if self.seed is None:
            return None
        generator = torch.Generator()
        generator.manual_seed(self.seed)
        return generator


# ----------------------------------------------------------------------
# Top-level settings
# ----------------------------------------------------------------------


class AppConfig(BaseSettings):
    """Top-level configuration.

    Precedence (highest first):

    1. Keyword arguments (e.g. values read from YAML).
    2. Environment variables prefixed with TABLE_DATASET_.
    3. A .env file, if present.
    4. Field defaults.

    Nested values use `__`:

        TABLE_DATASET_SAMPLING__BATCH_SIZE=64
        TABLE_DATASET_SAMPLING__SEED=7

    YAML may be flat:

        env: "dev"
        sampling:
          batch_size: 32

    or split into per-environment profiles selected by TABLE_DATASET_ENV:

        dev:
          log_level: "DEBUG"
        prod:
          env: "prod"
          sampling:
            seed: 1234
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    _source_path: Path | None = PrivateAttr(default=None)
    _loaded_env: str | None = PrivateAttr(default=None)

    env: str = Field("dev", description="Environment name, e.g. 'dev', 'prod', 'test'.")
    log_level: str = Field("INFO", description="Default log level.")

    sampling: SamplingConfig = SamplingConfig()

    @model_validator(mode="after")
    def _check_invariants(self) -> AppConfig:
        if self.env.lower() in {"prod", "production"} and self.log_level.upper() == "DEBUG":
            raise ValueError(
                "In production environment, log_level should not be DEBUG. "
                "Use INFO or higher."
            )
        return self

    @property
    def source_path(self) -> Path | None:
        return self._source_path

    def to_dict(self, *, include_private: bool = False) -> dict[str, Any]:
        data = self.model_dump()
        if include_private:
            data["_source_path"] = str(self._source_path) if self._source_path else None
            data["_loaded_env"] = self._loaded_env
        return data


# ----------------------------------------------------------------------
# Loading + caching
# ----------------------------------------------------------------------

_config_cache: AppConfig | None = None


def _discover_default_config_path() -> Path | None:
    """TABLE_DATASET_CONFIG_PATH first, then ./table_dataset.yaml|yml."""
    env_path = os.getenv(ENV_CONFIG_PATH)
    if env_path:
        # A missing explicit path is reported by load_config.
        return Path(env_path)

    cwd = Path.cwd()
    for name in DEFAULT_CONFIG_FILENAMES:
        candidate = cwd / name
        if candidate.exists():
            return candidate

    return None


def _select_profile_from_yaml(
    loaded: Mapping[str, Any],
    effective_env: str,
) -> Any:
    section = loaded.get(effective_env)
    if section is not None and effective_env not in AppConfig.model_fields:
        return section
    return loaded


def load_config(
    config_path: str | Path | None = None,
    *,
    env: str | None = None,
) -> AppConfig:
    """Load and validate configuration.

    Raises
    ------
    ConfigError
        If the file does not exist, cannot be read or parsed, or the values
        fail validation.
    """
    effective_env = (env or DEFAULT_ENV).lower()
    location = "table_dataset.config.load_config"
    config_data: dict[str, Any] = {}

    path = Path(config_path) if config_path is not None else _discover_default_config_path()

    if path is not None:
        context = {"config_path": str(path), "env": effective_env}

        if not path.exists():
            raise ConfigError(
                f"Config file not found: {path}",
                code="config_file_not_found",
                context=context,
                location=location,
            )

        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError.from_exception(
                exc,
                f"Failed to read config file: {path}",
                code="config_read_error",
                context=context,
                location=location,
            ) from exc

        try:
            loaded = yaml.safe_load(text) or {}
        except yaml.YAMLError as exc:
            raise ConfigError.from_exception(
                exc,
                f"Failed to parse YAML config file: {path}",
                code="config_parse_error",
                context=context,
                location=location,
            ) from exc

        if not isinstance(loaded, Mapping):
            raise ConfigError(
                f"Top-level config in {path} must be a mapping, got {type(loaded).__name__}",
                code="config_structure_error",
                context=context,
                location=location,
            )

        profile = _select_profile_from_yaml(loaded, effective_env)
        if not isinstance(profile, Mapping):
            raise ConfigError(
                f"Config profile for env='{effective_env}' in {path} must be a mapping, "
                f"got {type(profile).__name__}",
                code="config_profile_error",
                context=context,
                location=location,
            )

        config_data.update(profile)

    try:
        cfg = AppConfig(**config_data)
    except ValidationError as exc:
        raise ConfigError.from_exception(
            exc,
            "Configuration validation failed",
            code="config_validation_error",
            context={
                "config_path": str(path) if path is not None else None,
                "env": effective_env,
                "errors": exc.errors(),
            },
            location=location,
        ) from exc

    cfg._source_path = path
    cfg._loaded_env = effective_env
    return cfg


def get_config(
    config_path: str | Path | None = None,
    *,
    env: str | None = None,
    force_reload: bool = False,
) -> AppConfig:
    """Return the cached AppConfig, loading it on first use or when forced."""
    global _config_cache

    if _config_cache is None or force_reload:
        _config_cache = load_config(config_path=config_path, env=env)

    return _config_cache
