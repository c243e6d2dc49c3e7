"""Utility helpers for dataset loaders."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

import numpy as np

from ..core.types import DTYPE, Array, Dataset


def one_hot(labels: Array, num_classes: int) -> Array:
    labels = np.asarray(labels).reshape(-1).astype(int)
    if labels.size and (labels.min() < 0 or labels.max() >= num_classes):
        raise ValueError(f"labels must lie in [0, {num_classes}), got range [{labels.min()}, {labels.max()}]")
    return np.eye(num_classes, dtype=DTYPE)[labels]


def binarize(inputs: Array, threshold: float = 0.5) -> Array:
    """Map intensities to exactly 0.0 or 1.0.

    Inference clients that draw in pure black and white produce this
    distribution, while MNIST training data is continuous grayscale. Applying
    this to training inputs is an explicit choice left to the caller.
    """

    return (np.asarray(inputs, dtype=DTYPE) >= threshold).astype(DTYPE)


@dataclass(frozen=True)
class SplitIndices:
    """Indices for train/validation partitions."""

    train: np.ndarray
    val: np.ndarray

    @property
    def sizes(self) -> Mapping[str, int]:
        return {"train": int(self.train.size), "val": int(self.val.size)}


def deterministic_split(n_samples: int, *, val_split: float = 0.1, seed: int = 0) -> SplitIndices:
    """Return deterministic shuffled indices for the requested split ratio."""

    if not 0 <= val_split < 1:
        raise ValueError("val_split must be in [0, 1)")
    rng = np.random.default_rng(seed)
    indices = np.arange(n_samples)
    rng.shuffle(indices)
    val_size = int(round(n_samples * val_split))
    val_size = min(max(val_size, 1 if val_split > 0 else 0), n_samples - 1)
    if n_samples - val_size <= 0:
        raise ValueError("Not enough samples for the requested split")
    return SplitIndices(train=indices[val_size:], val=indices[:val_size])


def split_dataset(dataset: Dataset, *, val_split: float, seed: int = 0) -> tuple[Dataset, Dataset | None]:
    if val_split <= 0:
        return dataset, None
    split = deterministic_split(len(dataset), val_split=val_split, seed=seed)
    if split.val.size == 0:
        return dataset, None
    return dataset.subset(split.train), dataset.subset(split.val)


__all__ = ["SplitIndices", "binarize", "deterministic_split", "one_hot", "split_dataset"]
