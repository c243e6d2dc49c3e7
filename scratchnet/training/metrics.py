"""Metric helpers for the trainer."""

from __future__ import annotations

import numpy as np

from ..core.types import Array


def predicted_classes(predictions: Array) -> Array:
    predictions = np.atleast_2d(predictions)
    if predictions.shape[1] == 1:
        return (predictions[:, 0] >= 0.5).astype(int)
    return np.argmax(predictions, axis=1)


def target_classes(targets: Array) -> Array:
    targets = np.atleast_2d(targets)
    if targets.shape[1] == 1:
        return (targets[:, 0] >= 0.5).astype(int)
    return np.argmax(targets, axis=1)


def correct_count(predictions: Array, targets: Array) -> int:
    """Number of rows whose predicted class matches the target class."""

    return int(np.sum(predicted_classes(predictions) == target_classes(targets)))


def accuracy(predictions: Array, targets: Array) -> float:
    predictions = np.atleast_2d(predictions)
    if predictions.shape[0] == 0:
        return 0.0
    return correct_count(predictions, targets) / predictions.shape[0]


__all__ = [
    "accuracy",
    "correct_count",
    "predicted_classes",
    "target_classes",
]
