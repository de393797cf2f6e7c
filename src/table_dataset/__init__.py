"""
table_dataset: sample, shuffle, mini-batch and animate a table of parallel arrays.

The public API is re-exported here so callers can write:

    from table_dataset import TableDataset, take

    ds = TableDataset({"data": images, "class": labels}, {"name": "mnist"})
    for batch in ds.mini_batches(size=100):
        ...

without depending on the internal module layout.
"""

from __future__ import annotations

from importlib import metadata as _metadata

try:
    __version__ = _metadata.version("table-dataset")
except _metadata.PackageNotFoundError:
    # Running from a source checkout without installation
    __version__ = "0.0.0"

from .config import AppConfig, SamplingConfig, get_config, load_config  # noqa: F401
from .dataset import AnimationLayout, TableDataset, TableDatasetMetadata  # noqa: F401
from .exceptions import AnimationLayoutError, AppError, ConfigError, DataError  # noqa: F401
from .logging_config import configure_logging, get_logger  # noqa: F401
from .sequences import EpochCycle, ordering, take  # noqa: F401

__all__ = [
    "__version__",
    # Config
    "AppConfig",
    "SamplingConfig",
    "get_config",
    "load_config",
    # Logging
    "configure_logging",
    "get_logger",
    # Exceptions
    "AppError",
    "ConfigError",
    "DataError",
    "AnimationLayoutError",
    # Datasets
    "TableDataset",
    "TableDatasetMetadata",
    "AnimationLayout",
    # Lazy sequences
    "EpochCycle",
    "ordering",
    "take",
]
