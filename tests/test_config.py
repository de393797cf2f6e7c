from __future__ import annotations

from pathlib import Path

import pytest
import torch
import yaml
from pydantic import ValidationError

from table_dataset.config import AppConfig, SamplingConfig, get_config, load_config
from table_dataset.exceptions import ConfigError


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_defaults_without_config_file(clean_config_env: Path) -> None:
    cfg = load_config()

    assert isinstance(cfg, AppConfig)
    assert cfg.env == "dev"
    assert cfg.source_path is None
    assert cfg.sampling == SamplingConfig()
    assert cfg.sampling.shuffled is True
    assert cfg.sampling.batch_size == 10
    assert cfg.sampling.sequence is False
    assert cfg.sampling.seed is None


def test_sampling_config_make_generator() -> None:
    assert SamplingConfig().make_generator() is None

    gen_a = SamplingConfig(seed=9).make_generator()
    gen_b = SamplingConfig(seed=9).make_generator()

    assert torch.equal(torch.randperm(10, generator=gen_a), torch.randperm(10, generator=gen_b))


def test_sampling_config_rejects_non_positive_batch_size() -> None:
    with pytest.raises(ValueError):
        SamplingConfig(batch_size=0)


# ---------------------------------------------------------------------------
# Loading from YAML
# ---------------------------------------------------------------------------


def test_load_sampling_config_from_path(sampling_config_path: Path) -> None:
    cfg = load_config(sampling_config_path)

    assert cfg.sampling.shuffled is False
    assert cfg.sampling.batch_size == 16
    assert cfg.sampling.sequence is True
    assert cfg.sampling.seed == 42
    assert cfg.source_path == sampling_config_path
    assert cfg.to_dict(include_private=True)["_source_path"] == str(sampling_config_path)


def test_config_path_discovery_via_env(
    monkeypatch: pytest.MonkeyPatch,
    sampling_config_path: Path,
) -> None:
    monkeypatch.setenv("TABLE_DATASET_CONFIG_PATH", str(sampling_config_path))

    cfg = load_config()

    assert cfg.sampling.batch_size == 16


def test_config_discovery_in_working_directory(clean_config_env: Path) -> None:
    (clean_config_env / "table_dataset.yaml").write_text(
        yaml.safe_dump({"sampling": {"batch_size": 3}}), encoding="utf-8"
    )

    cfg = load_config()

    assert cfg.sampling.batch_size == 3


def test_env_var_overrides_default(
    monkeypatch: pytest.MonkeyPatch,
    clean_config_env: Path,
) -> None:
    monkeypatch.setenv("TABLE_DATASET_SAMPLING__BATCH_SIZE", "64")

    cfg = load_config()

    assert cfg.sampling.batch_size == 64


def test_profile_selection_with_env_arg(clean_config_env: Path) -> None:
    profiled = {
        "dev": {"env": "dev", "log_level": "DEBUG"},
        "prod": {"env": "prod", "sampling": {"seed": 5, "shuffled": True}},
    }
    path = clean_config_env / "profiled.yaml"
    path.write_text(yaml.safe_dump(profiled, sort_keys=False), encoding="utf-8")

    cfg_prod = load_config(path, env="prod")
    assert cfg_prod.env == "prod"
    assert cfg_prod.sampling.seed == 5

    cfg_dev = load_config(path, env="dev")
    assert cfg_dev.log_level == "DEBUG"
    assert cfg_dev.sampling.seed is None


def test_get_config_caches(sampling_config_path: Path) -> None:
    first = get_config(sampling_config_path, force_reload=True)
    second = get_config()

    assert first is second

    third = get_config(sampling_config_path, force_reload=True)
    assert third is not first


# ---------------------------------------------------------------------------
# Failures surface as ConfigError
# ---------------------------------------------------------------------------


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_missing_file_raises(clean_config_env: Path) -> None:
    with pytest.raises(ConfigError) as ctx:
        load_config(clean_config_env / "nope.yaml")

    assert ctx.value.code == "config_file_not_found"


def test_unparseable_yaml_raises(clean_config_env: Path) -> None:
    path = _write(clean_config_env / "bad.yaml", "sampling: [1, 2\n")

    with pytest.raises(ConfigError) as ctx:
        load_config(path)

    assert ctx.value.code == "config_parse_error"
    assert isinstance(ctx.value.cause, yaml.YAMLError)
    assert ctx.value.__cause__ is ctx.value.cause


def test_non_mapping_yaml_raises(clean_config_env: Path) -> None:
    path = _write(clean_config_env / "list.yaml", "- a\n- b\n")

    with pytest.raises(ConfigError) as ctx:
        load_config(path)

    assert ctx.value.code == "config_structure_error"


def test_non_mapping_profile_raises(clean_config_env: Path) -> None:
    path = _write(clean_config_env / "profile.yaml", "dev: 3\n")

    with pytest.raises(ConfigError) as ctx:
        load_config(path, env="dev")

    assert ctx.value.code == "config_profile_error"


def test_invalid_value_raises_validation_error(clean_config_env: Path) -> None:
    path = _write(clean_config_env / "invalid.yaml", "sampling:\n  batch_size: not-an-int\n")

    with pytest.raises(ConfigError) as ctx:
        load_config(path)

    assert "validation" in ctx.value.code
    assert ctx.value.context["errors"]
    assert isinstance(ctx.value.cause, ValidationError)


def test_debug_in_prod_is_rejected(clean_config_env: Path) -> None:
    path = _write(clean_config_env / "prod.yaml", "env: prod\nlog_level: DEBUG\n")

    with pytest.raises(ConfigError) as ctx:
        load_config(path)

    assert ctx.value.code == "config_validation_error"
