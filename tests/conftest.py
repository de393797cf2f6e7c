from __future__ import annotations

import random
from pathlib import Path
from typing import Dict, Generator

import numpy as np
import pandas as pd
import pytest
import torch
import yaml

import table_dataset.config as config_module


# ---------------------------------------------------------------------------
# Global test seed
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _set_test_seed() -> Generator[None, None, None]:
    """Seed every RNG the package may touch so shuffled orders are stable."""
    seed = 1234
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    yield


# ---------------------------------------------------------------------------
# In-memory tables
# ---------------------------------------------------------------------------


@pytest.fixture
def data_table() -> Dict[str, torch.Tensor]:
    """10 samples of 3 features; row i holds [3i, 3i+1, 3i+2] and class i."""
    return {
        "data": torch.arange(30, dtype=torch.float32).reshape(10, 3),
        "class": torch.arange(10),
    }


@pytest.fixture
def image_table() -> Dict[str, torch.Tensor]:
    """MNIST-shaped table: 5 single-channel 28x28 images."""
    return {
        "data": torch.zeros(5, 1, 28, 28),
        "class": torch.tensor([0, 1, 2, 3, 4]),
    }


@pytest.fixture
def animation_table() -> Dict[str, torch.Tensor]:
    """Two animations of 24 frames each, stored back to back."""
    return {
        "data": torch.arange(48, dtype=torch.float32).unsqueeze(1),
        "class": torch.arange(48),
    }


@pytest.fixture
def simple_df() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "feat1": [1.0, 2.0, 3.0, 4.0],
            "feat2": [0.5, 1.5, 2.5, 3.5],
            "label": [2, 0, 2, 1],
        }
    )


# ---------------------------------------------------------------------------
# Temporary YAML configs
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def clean_config_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Run every test from an empty directory with no TABLE_DATASET_* overrides.

    Datasets built without an explicit SamplingConfig read get_config(), so
    the cached config is dropped too.
    """
    monkeypatch.setattr(config_module, "_config_cache", None)
    for var in (
        "TABLE_DATASET_CONFIG_PATH",
        "TABLE_DATASET_ENV",
        "TABLE_DATASET_LOG_LEVEL",
        "TABLE_DATASET_SAMPLING__BATCH_SIZE",
        "TABLE_DATASET_SAMPLING__SEED",
        "TABLE_DATASET_SAMPLING__SHUFFLED",
        "TABLE_DATASET_SAMPLING__SEQUENCE",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def sampling_config_path(clean_config_env: Path) -> Path:
    config = {
        "env": "dev",
        "log_level": "INFO",
        "sampling": {
            "shuffled": False,
            "batch_size": 16,
            "sequence": True,
            "seed": 42,
        },
    }
    path = clean_config_env / "sampling.yaml"
    path.write_text(yaml.safe_dump(config, sort_keys=False), encoding="utf-8")
    return path
