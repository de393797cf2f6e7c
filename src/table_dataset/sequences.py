"""
Lazy sequence helpers used by the sampling engines.

Everything here is a plain Python iterator: nothing is computed until the
consumer pulls the next element.
"""

from __future__ import annotations

from itertools import islice
from typing import Callable, Iterable, Iterator, List, Optional, TypeVar

import torch

from table_dataset.exceptions import DataError

T = TypeVar("T")


def ordering(
    n: int,
    *,
    shuffled: bool,
    generator: Optional[torch.Generator] = None,
) -> List[int]:
    """Return the indices 0..n-1, either ascending or as a random permutation."""
    if shuffled:
        return torch.randperm(n, generator=generator).tolist()
    return list(range(n))


def take(n: int, iterable: Iterable[T]) -> List[T]:
    """Return the first `n` items of `iterable` (fewer if it runs out)."""
    return list(islice(iterable, n))


class EpochCycle(Iterator[T]):
    """Infinite iterator that chains epochs produced by a factory.

    `epoch_factory` is called once per epoch, and only when the previous
    epoch has been fully consumed, so a shuffling factory draws an
    independent permutation for every pass.

        cycle = EpochCycle(lambda: iter(range(3)))
        take(7, cycle)  # [0, 1, 2, 0, 1, 2, 0]

    A factory that returns an empty epoch would make the cycle spin forever;
    that is reported as a DataError instead.
    """

    def __init__(self, epoch_factory: Callable[[], Iterable[T]]) -> None:
        self._epoch_factory = epoch_factory
        self._current: Optional[Iterator[T]] = None
        self.epochs_started = 0

    def __iter__(self) -> "EpochCycle[T]":
        return self

    def __next__(self) -> T:
        if self._current is not None:
            try:
                return next(self._current)
            except StopIteration:
                pass

        self._current = iter(self._epoch_factory())
        self.epochs_started += 1
        try:
            return next(self._current)
        except StopIteration:
            raise DataError(
                "Cannot cycle over an empty epoch.",
                code="sampler_empty_dataset",
                context={"epochs_started": self.epochs_started},
                location="table_dataset.sequences.EpochCycle.__next__",
            ) from None
