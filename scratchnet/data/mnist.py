"""MNIST reader for the IDX file format.

Images are normalised to ``[0, 1]`` by dividing by 255 and flattened row-major
to 784 values; labels become one-hot rows of width 10 by default. Files ending
in ``.gz`` are decompressed transparently.
"""

from __future__ import annotations

import gzip
import struct
from pathlib import Path

import numpy as np

from ..core.errors import DatasetError
from ..core.types import DTYPE, Array, Dataset
from .utils import binarize, one_hot

IMAGE_MAGIC = 2051
LABEL_MAGIC = 2049
IMAGE_SIDE = 28
IMAGE_SIZE = IMAGE_SIDE * IMAGE_SIDE
NUM_CLASSES = 10

SPLIT_FILES = {
    "train": ("train-images-idx3-ubyte", "train-labels-idx1-ubyte"),
    "test": ("t10k-images-idx3-ubyte", "t10k-labels-idx1-ubyte"),
}


def _read_bytes(path: Path) -> bytes:
    raw = path.read_bytes()
    if path.suffix == ".gz":
        try:
            return gzip.decompress(raw)
        except OSError as exc:
            raise DatasetError(f"{path}: not a valid gzip file") from exc
    return raw


def _header(data: bytes, path: Path, fields: int) -> tuple[int, ...]:
    size = 4 * fields
    if len(data) < size:
        raise DatasetError(f"{path}: file too short for IDX header ({len(data)} bytes)")
    return struct.unpack(f">{fields}I", data[:size])


def read_idx_images(path: str | Path) -> Array:
    """Return a ``(n, 784)`` float array with values in ``[0, 1]``."""

    path = Path(path)
    data = _read_bytes(path)
    magic, count, rows, cols = _header(data, path, 4)
    if magic != IMAGE_MAGIC:
        raise DatasetError(f"{path}: invalid magic number {magic}, expected {IMAGE_MAGIC}")
    if rows != IMAGE_SIDE or cols != IMAGE_SIDE:
        raise DatasetError(f"{path}: images are {rows}x{cols}, expected {IMAGE_SIDE}x{IMAGE_SIDE}")
    expected = 16 + count * rows * cols
    if len(data) != expected:
        raise DatasetError(f"{path}: expected {expected} bytes for {count} images, found {len(data)}")
    pixels = np.frombuffer(data, dtype=np.uint8, offset=16).reshape(count, rows * cols)
    return pixels.astype(DTYPE) / 255.0


def read_idx_labels(path: str | Path) -> Array:
    """Return the raw integer labels."""

    path = Path(path)
    data = _read_bytes(path)
    magic, count = _header(data, path, 2)
    if magic != LABEL_MAGIC:
        raise DatasetError(f"{path}: invalid magic number {magic}, expected {LABEL_MAGIC}")
    if len(data) != 8 + count:
        raise DatasetError(f"{path}: expected {8 + count} bytes for {count} labels, found {len(data)}")
    labels = np.frombuffer(data, dtype=np.uint8, offset=8).astype(np.int64)
    if labels.size and labels.max() >= NUM_CLASSES:
        raise DatasetError(f"{path}: label {labels.max()} outside 0..{NUM_CLASSES - 1}")
    return labels


def _locate(root: Path, stem: str) -> Path:
    for candidate in (root / stem, root / f"{stem}.gz", root / stem.replace("-idx", ".idx")):
        if candidate.exists():
            return candidate
    raise DatasetError(f"{stem} not found under {root}")


def has_split(root: str | Path, split: str) -> bool:
    """Whether both IDX files of ``split`` are present under ``root``."""

    try:
        for stem in SPLIT_FILES[split]:
            _locate(Path(root), stem)
    except (KeyError, DatasetError):
        return False
    return True


def load_mnist(
    root: str | Path,
    split: str = "train",
    *,
    one_hot_targets: bool = True,
    limit: int | None = None,
    binarize_threshold: float | None = None,
) -> Dataset:
    """Load an MNIST split from ``root`` as a :class:`Dataset`.

    ``binarize_threshold`` converts the grayscale inputs to black and white,
    matching what a drawing client sends at inference time. It is off by
    default so the continuous training distribution is kept unless asked.
    """

    if split not in SPLIT_FILES:
        raise DatasetError(f"Unsupported split: {split!r}")
    root = Path(root)
    image_stem, label_stem = SPLIT_FILES[split]
    images = read_idx_images(_locate(root, image_stem))
    labels = read_idx_labels(_locate(root, label_stem))
    if images.shape[0] != labels.shape[0]:
        raise DatasetError(f"{split}: {images.shape[0]} images but {labels.shape[0]} labels")
    if limit is not None:
        images, labels = images[:limit], labels[:limit]
    if binarize_threshold is not None:
        images = binarize(images, binarize_threshold)
    targets = one_hot(labels, NUM_CLASSES) if one_hot_targets else labels.astype(DTYPE).reshape(-1, 1)
    return Dataset(inputs=images, targets=targets)


def _write_idx(path: Path, header: tuple[int, ...], payload: np.ndarray, compress: bool) -> None:
    data = struct.pack(f">{len(header)}I", *header) + payload.astype(np.uint8).tobytes()
    if compress:
        data = gzip.compress(data, mtime=0)
    path.write_bytes(data)


def build_offline_fixture(root: str | Path, *, train_size: int = 256, test_size: int = 64, compress: bool = False) -> Path:
    """Write a small deterministic MNIST-shaped IDX set under ``root``.

    Pixels derive from integer sequences only, so the bytes are identical on
    every platform. Each class lights a distinct band of rows, which keeps
    the fixture learnable.
    """

    root = Path(root)
    root.mkdir(parents=True, exist_ok=True)
    suffix = ".gz" if compress else ""
    for split, count, offset in (("train", train_size, 0), ("test", test_size, 7)):
        labels = (np.arange(count, dtype=np.int64) + offset) % NUM_CLASSES
        base = (np.arange(count * IMAGE_SIZE, dtype=np.int64).reshape(count, IMAGE_SIZE) * 37 + offset) % 64
        images = base.reshape(count, IMAGE_SIDE, IMAGE_SIDE)
        for idx, label in enumerate(labels):
            band = slice(2 + 2 * int(label), 4 + 2 * int(label))
            images[idx, band, 4:24] = 255
        image_stem, label_stem = SPLIT_FILES[split]
        _write_idx(root / f"{image_stem}{suffix}", (IMAGE_MAGIC, count, IMAGE_SIDE, IMAGE_SIDE), images, compress)
        _write_idx(root / f"{label_stem}{suffix}", (LABEL_MAGIC, count), labels, compress)
    return root


__all__ = [
    "IMAGE_SIZE",
    "NUM_CLASSES",
    "build_offline_fixture",
    "has_split",
    "load_mnist",
    "read_idx_images",
    "read_idx_labels",
]
