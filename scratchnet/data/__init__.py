"""Dataset loaders and helpers."""

from .mnist import build_offline_fixture, load_mnist, read_idx_images, read_idx_labels
from .utils import binarize, deterministic_split, one_hot, split_dataset

__all__ = [
    "binarize",
    "build_offline_fixture",
    "deterministic_split",
    "load_mnist",
    "one_hot",
    "read_idx_images",
    "read_idx_labels",
    "split_dataset",
]
