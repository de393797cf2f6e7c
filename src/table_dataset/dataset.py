from __future__ import annotations

import math
import numbers
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import torch
from torch.utils.data import Dataset

from table_dataset.config import SamplingConfig, get_config
from table_dataset.exceptions import AnimationLayoutError, DataError
from table_dataset.logging_config import get_logger
from table_dataset.sequences import EpochCycle, ordering

logger = get_logger(__name__)

Sample = Dict[str, Any]
MiniBatch = Union[Dict[str, Any], Iterator[Sample]]


# ---------------------------------------------------------------------------
# Metadata containers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TableDatasetMetadata:
    """Global metadata attached to a TableDataset.

    Attributes
    ----------
    name:
        Optional human-readable dataset name (e.g. "mnist").
    classes:
        Ordered class labels represented in the dataset. Empty if unknown.
    """

    name: Optional[str] = None
    classes: Tuple[Any, ...] = ()

    @classmethod
    def coerce(
        cls,
        metadata: Union["TableDatasetMetadata", Mapping[str, Any], None],
    ) -> "TableDatasetMetadata":
        if metadata is None:
            return cls()
        if isinstance(metadata, cls):
            return metadata
        classes = metadata.get("classes")
        return cls(
            name=metadata.get("name"),
            classes=tuple(classes) if classes is not None else (),
        )


@dataclass(frozen=True)
class AnimationLayout:
    """How samples group into animations.

    Attributes
    ----------
    frames:
        Number of consecutive samples (frames) per animation.
    base_size:
        Number of animations stored in the table. Animation `i` covers
        samples `[i * frames, (i + 1) * frames)`.
    """

    frames: int
    base_size: int

    def __post_init__(self) -> None:
        for field_name in ("frames", "base_size"):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, numbers.Integral) or value <= 0:
                raise DataError(
                    f"{field_name} must be a positive integer.",
                    code="animation_layout_invalid",
                    context={field_name: value},
                    location="table_dataset.dataset.AnimationLayout.__post_init__",
                )

    @classmethod
    def coerce(
        cls,
        layout: Union["AnimationLayout", Mapping[str, Any], None],
    ) -> Optional["AnimationLayout"]:
        if layout is None or isinstance(layout, cls):
            return layout
        return cls(frames=layout["frames"], base_size=layout["base_size"])


def _narrow(value: Any, start: int, length: int) -> Any:
    """Contiguous slice along the sample axis; a view for tensors."""
    if isinstance(value, torch.Tensor):
        return value.narrow(0, start, length)
    return value[start : start + length]


# ---------------------------------------------------------------------------
# Core Dataset
# ---------------------------------------------------------------------------


class TableDataset(Dataset):
    """A dataset view over a table of parallel arrays.

    The backing table maps field names to arrays that share their leading
    (sample) dimension. `data` is mandatory for size/shape introspection;
    any other field (`class`, `weight`, ...) is carried along untouched.

        data_table = {
            "data": torch.rand(10, 20, 20),
            "class": torch.randperm(10),
        }
        ds = TableDataset(data_table, {"name": "random", "classes": range(10)})

        for sample in take(1000, ds.sampler()):
            net(sample["data"])

        for batch in ds.mini_batches(size=100):
            net(batch["data"])

    The table is held by reference and never mutated. Nothing is validated:
    mismatched field lengths or out-of-range indices surface as the backing
    array's own exception.

    Indices are 0-based throughout, like any Python sequence: `sample(i)`
    reads row `i` in `[0, size())`, `mini_batch(start, size=k)` covers rows
    `[start, start + k)`, batch `k` of `mini_batches(size=n)` starts at
    `k * n`, and animation `i` covers rows `[i * frames, (i + 1) * frames)`.

    Option defaults (shuffling, batch size, tensor vs. sequence form, seed)
    come from `sampling`; when it is omitted, from `get_config().sampling`,
    so a `table_dataset.yaml` or `TABLE_DATASET_SAMPLING__*` variables apply.
    """

    def __init__(
        self,
        data_table: Mapping[str, Any],
        metadata: Union[TableDatasetMetadata, Mapping[str, Any], None] = None,
        *,
        animation: Union[AnimationLayout, Mapping[str, Any], None] = None,
        sampling: Optional[SamplingConfig] = None,
        generator: Optional[torch.Generator] = None,
    ) -> None:
        super().__init__()

        self.table = data_table
        self._metadata = TableDatasetMetadata.coerce(metadata)
        self._animation = AnimationLayout.coerce(animation)
        self._sampling = sampling if sampling is not None else get_config().sampling
        self._generator = generator if generator is not None else self._sampling.make_generator()

        logger.info(
            "Created TableDataset: name=%s, fields=%s, n_classes=%d, animation=%s",
            self._metadata.name,
            self.fields(),
            len(self._metadata.classes),
            self._animation,
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def size(self) -> int:
        """Number of samples, read from the `data` field."""
        return len(self.table["data"])

    def dimensions(self) -> List[int]:
        """Shape of a single sample, e.g. [1, 28, 28] for MNIST."""
        return [int(d) for d in self.table["data"].shape[1:]]

    def n_dimensions(self) -> int:
        """Number of scalar values in one sample (1*28*28 = 784 for MNIST)."""
        return math.prod(self.dimensions())

    def classes(self) -> Tuple[Any, ...]:
        return self._metadata.classes

    def name(self) -> Optional[str]:
        return self._metadata.name

    def fields(self) -> List[str]:
        return list(self.table.keys())

    @property
    def metadata(self) -> TableDatasetMetadata:
        return self._metadata

    @property
    def sampling(self) -> SamplingConfig:
        return self._sampling

    @property
    def animation_layout(self) -> Optional[AnimationLayout]:
        return self._animation

    @property
    def frames(self) -> int:
        return self._require_animation("frames").frames

    @property
    def base_size(self) -> int:
        return self._require_animation("base_size").base_size

    # ------------------------------------------------------------------
    # Samples
    # ------------------------------------------------------------------

    def sample(self, i: int) -> Sample:
        """Return row `i` of every field as a dict keyed like the table."""
        return {key: value[i] for key, value in self.table.items()}

    def __len__(self) -> int:
        return self.size()

    def __getitem__(self, i: int) -> Sample:
        return self.sample(i)

    def sampler(self, *, shuffled: Optional[bool] = None) -> Iterator[Sample]:
        """Infinite iterator of samples, one epoch after another.

        Each epoch visits every index once, in a freshly drawn random order
        when shuffled (the default) or ascending otherwise. Bound it with
        `take` / `itertools.islice`.
        """
        shuffled = self._sampling.shuffled if shuffled is None else shuffled

        def make_epoch() -> Iterator[Sample]:
            indices = ordering(self.size(), shuffled=shuffled, generator=self._generator)
            logger.debug("Sampler epoch started: n_samples=%d, shuffled=%s", len(indices), shuffled)
            return (self.sample(i) for i in indices)

        return EpochCycle(make_epoch)

    # ------------------------------------------------------------------
    # Mini-batches
    # ------------------------------------------------------------------

    def mini_batch(
        self,
        start: int,
        *,
        size: Optional[int] = None,
        sequence: Optional[bool] = None,
    ) -> MiniBatch:
        """Return `size` consecutive samples starting at offset `start`.

        By default the batch is a dict of narrowed views, one per field:

            net(ds.mini_batch(0, size=100)["data"])

        With `sequence=True` it is a lazy iterator of single samples instead:

            for sample in ds.mini_batch(0, sequence=True):
                net(sample["data"])
        """
        batch_size = self._sampling.batch_size if size is None else size
        as_seq = self._sampling.sequence if sequence is None else sequence

        if as_seq:
            return (self.sample(j) for j in range(start, start + batch_size))

        return {key: _narrow(value, start, batch_size) for key, value in self.table.items()}

    def mini_batches(
        self,
        *,
        shuffled: Optional[bool] = None,
        size: Optional[int] = None,
        sequence: Optional[bool] = None,
    ) -> Iterator[MiniBatch]:
        """One epoch of non-overlapping mini-batches.

        Yields `size() // size` batches; trailing samples that do not fill a
        whole batch are skipped. The batch order is shuffled by default.
        """
        mb_size = self._sampling.batch_size if size is None else size
        shuffled = self._sampling.shuffled if shuffled is None else shuffled
        as_seq = self._sampling.sequence if sequence is None else sequence

        if mb_size <= 0:
            raise DataError(
                "Mini-batch size must be a positive integer.",
                code="mini_batch_invalid_size",
                context={"size": mb_size, "dataset": self._metadata.name},
                location="table_dataset.dataset.TableDataset.mini_batches",
            )

        return self._iter_mini_batches(mb_size, shuffled, as_seq)

    def _iter_mini_batches(self, mb_size: int, shuffled: bool, as_seq: bool) -> Iterator[MiniBatch]:
        n_batches, remainder = divmod(self.size(), mb_size)
        logger.debug(
            "Mini-batch epoch: n_batches=%d, batch_size=%d, dropped=%d, shuffled=%s",
            n_batches,
            mb_size,
            remainder,
            shuffled,
        )
        for k in ordering(n_batches, shuffled=shuffled, generator=self._generator):
            yield self.mini_batch(k * mb_size, size=mb_size, sequence=as_seq)

    # ------------------------------------------------------------------
    # Animations
    # ------------------------------------------------------------------

    def _require_animation(self, operation: str) -> AnimationLayout:
        if self._animation is None:
            raise AnimationLayoutError(
                f"Animation layout not configured; '{operation}' needs frames and base_size.",
                code="animation_layout_missing",
                context={"operation": operation, "dataset": self._metadata.name},
                location=f"table_dataset.dataset.TableDataset.{operation}",
            )
        return self._animation

    def with_animation(self, frames: int, base_size: int) -> "TableDataset":
        """Return a dataset over the same table with an animation layout attached."""
        return TableDataset(
            self.table,
            self._metadata,
            animation=AnimationLayout(frames=frames, base_size=base_size),
            sampling=self._sampling,
            generator=self._generator,
        )

    def animation(self, i: int) -> Iterator[Sample]:
        """Lazy iterator over the `frames` samples of animation `i`."""
        frames = self._require_animation("animation").frames
        return self.mini_batch(i * frames, size=frames, sequence=True)

    def animations(self, *, shuffled: Optional[bool] = None) -> Iterator[Iterator[Sample]]:
        """One pass over all animations, each a lazy iterator of frames.

            for anim in ds.animations():
                for frame in anim:
                    show(frame["data"])
        """
        layout = self._require_animation("animations")
        shuffled = self._sampling.shuffled if shuffled is None else shuffled
        return self._iter_animations(layout.base_size, shuffled)

    def _iter_animations(self, base_size: int, shuffled: bool) -> Iterator[Iterator[Sample]]:
        for i in ordering(base_size, shuffled=shuffled, generator=self._generator):
            yield self.animation(i)

    # ------------------------------------------------------------------
    # Alternative constructors
    # ------------------------------------------------------------------

    @staticmethod
    def _infer_label_dtype(labels: np.ndarray) -> torch.dtype:
        if np.issubdtype(labels.dtype, np.integer) or np.issubdtype(labels.dtype, np.bool_):
            return torch.long
        if np.issubdtype(labels.dtype, np.floating):
            return torch.float32
        logger.warning(
            "Label dtype %s not clearly integer or float; defaulting to float32.",
            labels.dtype,
        )
        return torch.float32

    @staticmethod
    def _encode_labels(labels: np.ndarray, classes: Sequence[Any]) -> np.ndarray:
        codes = pd.Categorical(labels, categories=list(classes)).codes
        unknown = codes < 0
        if unknown.any():
            raise DataError(
                "Some labels are not listed in classes.",
                code="table_unknown_labels",
                context={
                    "unknown": sorted({str(label) for label in labels[unknown]}),
                    "classes": list(classes),
                },
                location="table_dataset.dataset.TableDataset.from_arrays",
            )
        return codes.astype(np.int64)

    @classmethod
    def from_arrays(
        cls,
        data: Union[np.ndarray, torch.Tensor],
        labels: Union[np.ndarray, torch.Tensor, Sequence[Any], None] = None,
        *,
        name: Optional[str] = None,
        classes: Optional[Sequence[Any]] = None,
        animation: Union[AnimationLayout, Mapping[str, Any], None] = None,
        sampling: Optional[SamplingConfig] = None,
        generator: Optional[torch.Generator] = None,
        data_dtype: torch.dtype = torch.float32,
        label_dtype: Optional[torch.dtype] = None,
    ) -> "TableDataset":
        """Build a `{"data": ..., "class": ...}` table from arrays.

        Parameters
        ----------
        data:
            Array of shape (N, ...). Converted with torch.as_tensor, so numpy
            arrays already of `data_dtype` share memory with the dataset.
        labels:
            Optional array of shape (N,) stored under the "class" field.
            Non-numeric labels (e.g. strings) are stored as their integer
            position in `classes`, which defaults to the sorted unique labels.
        label_dtype:
            torch dtype for labels; inferred from the values when omitted.

        Raises
        ------
        DataError
            If labels and data disagree on the number of samples.
        """
        table: Dict[str, Any] = {"data": torch.as_tensor(data, dtype=data_dtype)}

        if labels is not None:
            if isinstance(labels, torch.Tensor):
                label_tensor = labels if label_dtype is None else labels.to(label_dtype)
            else:
                labels_np = np.asarray(labels)
                if not (
                    np.issubdtype(labels_np.dtype, np.number)
                    or np.issubdtype(labels_np.dtype, np.bool_)
                ):
                    # Non-numeric labels are stored as their position in `classes`.
                    if classes is None:
                        classes = sorted(pd.unique(labels_np).tolist())
                    labels_np = cls._encode_labels(labels_np, classes)
                label_tensor = torch.as_tensor(
                    labels_np,
                    dtype=label_dtype or cls._infer_label_dtype(labels_np),
                )

            if label_tensor.shape[0] != table["data"].shape[0]:
                raise DataError(
                    "Labels and data must have the same number of samples.",
                    code="table_length_mismatch",
                    context={
                        "data_length": int(table["data"].shape[0]),
                        "labels_length": int(label_tensor.shape[0]),
                    },
                    location="table_dataset.dataset.TableDataset.from_arrays",
                )
            table["class"] = label_tensor

        return cls(
            table,
            TableDatasetMetadata(name=name, classes=tuple(classes) if classes is not None else ()),
            animation=animation,
            sampling=sampling,
            generator=generator,
        )

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        *,
        feature_columns: Optional[Sequence[str]] = None,
        class_column: Optional[str] = None,
        name: Optional[str] = None,
        classes: Optional[Sequence[Any]] = None,
        animation: Union[AnimationLayout, Mapping[str, Any], None] = None,
        sampling: Optional[SamplingConfig] = None,
        generator: Optional[torch.Generator] = None,
        data_dtype: torch.dtype = torch.float32,
        label_dtype: Optional[torch.dtype] = None,
    ) -> "TableDataset":
        """Build a dataset from the rows of a DataFrame.

        Feature columns become a (N, D) `data` tensor and `class_column`, if
        given, becomes the `class` field. Without explicit `feature_columns`
        every column except `class_column` is used. Without explicit
        `classes` the sorted unique labels are used.

        Raises
        ------
        DataError
            If the DataFrame is empty or requested columns are missing.
        """
        location = "table_dataset.dataset.TableDataset.from_dataframe"

        if df.empty:
            raise DataError(
                "Input DataFrame is empty.",
                code="table_df_empty",
                context={},
                location=location,
            )

        requested: List[str] = list(feature_columns or [])
        if class_column is not None:
            requested.append(class_column)
        missing = [c for c in requested if c not in df.columns]
        if missing:
            raise DataError(
                f"Columns missing from DataFrame: {missing}",
                code="table_columns_missing",
                context={"missing": missing, "columns": list(df.columns)},
                location=location,
            )

        if feature_columns is None:
            feature_cols = [c for c in df.columns if c != class_column]
        else:
            feature_cols = list(feature_columns)

        if not feature_cols:
            raise DataError(
                "No feature columns left to build the data field.",
                code="table_no_features",
                context={"columns": list(df.columns), "class_column": class_column},
                location=location,
            )

        # copy=True: under copy-on-write to_numpy may hand back a read-only view
        data = df[feature_cols].to_numpy(dtype=np.float32, copy=True)

        labels = None
        if class_column is not None:
            labels = df[class_column].to_numpy()
            if classes is None:
                classes = sorted(df[class_column].unique().tolist())

        logger.info(
            "Building TableDataset from DataFrame: n_rows=%d, features=%s, class_column=%s",
            len(df),
            feature_cols,
            class_column,
        )

        return cls.from_arrays(
            data,
            labels,
            name=name,
            classes=classes,
            animation=animation,
            sampling=sampling,
            generator=generator,
            data_dtype=data_dtype,
            label_dtype=label_dtype,
        )

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self._metadata.name!r}, "
            f"fields={self.fields()!r}, animation={self._animation!r})"
        )
