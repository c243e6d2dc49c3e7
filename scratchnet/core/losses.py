"""Loss functions returning a scalar loss and ``dL/dprediction``.

Predictions and targets share one shape: a single vector or a batch with one
sample per row. For a batch ``loss`` averages the per-sample losses while
``gradient`` stays per sample; layers average parameter gradients over rows.
"""

from __future__ import annotations

import numpy as np

from .errors import InvalidConfiguration, ShapeMismatch
from .types import DTYPE, ActivationKind, Array, LossKind

EPSILON = 1e-12

_ALIASES = {
    "mse": LossKind.MSE,
    "mean_squared_error": LossKind.MSE,
    "ce": LossKind.CROSS_ENTROPY,
    "cross_entropy": LossKind.CROSS_ENTROPY,
    "crossentropy": LossKind.CROSS_ENTROPY,
}


def parse_loss(name: str | LossKind) -> LossKind:
    """Resolve a config string such as ``"ce"`` into a :class:`LossKind`."""

    if isinstance(name, LossKind):
        return name
    try:
        return _ALIASES[str(name).strip().lower()]
    except KeyError as exc:
        available = ", ".join(sorted(_ALIASES))
        raise InvalidConfiguration(f"Unknown loss {name!r}. Available losses: {available}") from exc


def _pair(prediction: Array, target: Array) -> tuple[Array, Array]:
    p = np.asarray(prediction, dtype=DTYPE)
    t = np.asarray(target, dtype=DTYPE)
    if p.shape != t.shape:
        raise ShapeMismatch(f"prediction shape {p.shape} does not match target shape {t.shape}")
    if p.ndim == 0 or p.shape[-1] == 0:
        raise ShapeMismatch(f"loss operands must be non-empty vectors, got shape {p.shape}")
    return p, t


def loss(kind: LossKind, prediction: Array, target: Array) -> float:
    """Return the scalar loss, averaged over the batch for 2-D inputs."""

    p, t = _pair(prediction, target)
    if kind is LossKind.MSE:
        per_sample = np.mean(np.square(p - t), axis=-1)
    elif kind is LossKind.CROSS_ENTROPY:
        per_sample = -np.sum(t * np.log(p + EPSILON), axis=-1)
    else:
        raise InvalidConfiguration(f"Unknown loss: {kind!r}")
    return float(np.mean(per_sample))


def gradient(kind: LossKind, prediction: Array, target: Array) -> Array:
    """Return ``dL/dprediction`` for each sample."""

    p, t = _pair(prediction, target)
    if kind is LossKind.MSE:
        return 2.0 / p.shape[-1] * (p - t)
    if kind is LossKind.CROSS_ENTROPY:
        return -t / (p + EPSILON)
    raise InvalidConfiguration(f"Unknown loss: {kind!r}")


def uses_fused_softmax(activation: ActivationKind, kind: LossKind) -> bool:
    """Whether the output layer takes the Softmax+CrossEntropy shortcut.

    For this pairing ``dL/dz`` collapses to ``p - t``. It is the one place the
    activation and loss libraries are coupled: the network detects it here and
    hands the output layer a pre-activation gradient instead of chaining
    ``-t / p`` through the softmax Jacobian.
    """

    return activation is ActivationKind.SOFTMAX and kind is LossKind.CROSS_ENTROPY


def output_delta(activation: ActivationKind, kind: LossKind, prediction: Array, target: Array) -> Array:
    """``dL/dz`` of the output layer for the fused pairing."""

    if not uses_fused_softmax(activation, kind):
        raise InvalidConfiguration(
            f"output_delta only applies to softmax + cross_entropy, got {activation.value} + {kind.value}"
        )
    p, t = _pair(prediction, target)
    return p - t


__all__ = [
    "EPSILON",
    "gradient",
    "loss",
    "output_delta",
    "parse_loss",
    "uses_fused_softmax",
]
