"""Activation functions and their derivatives.

Every function here is pure and dispatches over the closed
:class:`~scratchnet.core.types.ActivationKind` enum. Inputs are either a single
pre-activation vector or a batch with one sample per row; softmax always
normalises along the last axis.
"""

from __future__ import annotations

import numpy as np

from .errors import InvalidConfiguration, InvalidShape
from .types import DTYPE, ActivationKind, Array

_ALIASES = {
    "identity": ActivationKind.IDENTITY,
    "linear": ActivationKind.IDENTITY,
    "none": ActivationKind.IDENTITY,
    "relu": ActivationKind.RELU,
    "sigmoid": ActivationKind.SIGMOID,
    "logistic": ActivationKind.SIGMOID,
    "softmax": ActivationKind.SOFTMAX,
}


def parse_activation(name: str | ActivationKind) -> ActivationKind:
    """Resolve a config string such as ``"ReLU"`` into an :class:`ActivationKind`."""

    if isinstance(name, ActivationKind):
        return name
    try:
        return _ALIASES[str(name).strip().lower()]
    except KeyError as exc:
        available = ", ".join(kind.value for kind in ActivationKind)
        raise InvalidConfiguration(
            f"Unknown activation {name!r}. Available activations: {available}"
        ) from exc


def _check(z: Array) -> Array:
    z = np.asarray(z, dtype=DTYPE)
    if z.ndim == 0 or z.shape[-1] == 0:
        raise InvalidShape(f"activation input must be a non-empty vector, got shape {z.shape}")
    return z


def relu(z: Array) -> Array:
    """Return the ReLU activation."""

    return np.maximum(z, 0.0)


def sigmoid(z: Array) -> Array:
    """Logistic function evaluated without overflowing ``exp``."""

    # exp(-|z|) stays in (0, 1] for either sign of z.
    e = np.exp(-np.abs(z))
    return np.where(z >= 0, 1.0 / (1.0 + e), e / (1.0 + e))


def softmax(z: Array) -> Array:
    shifted = z - np.max(z, axis=-1, keepdims=True)
    e = np.exp(shifted)
    return e / np.sum(e, axis=-1, keepdims=True)


def activate(kind: ActivationKind, z: Array) -> Array:
    """Map pre-activations ``z`` to activations for ``kind``."""

    z = _check(z)
    if kind is ActivationKind.IDENTITY:
        return z.copy()
    if kind is ActivationKind.RELU:
        return relu(z)
    if kind is ActivationKind.SIGMOID:
        return sigmoid(z)
    if kind is ActivationKind.SOFTMAX:
        return softmax(z)
    raise InvalidConfiguration(f"Unknown activation: {kind!r}")


def derivative(kind: ActivationKind, z: Array, a: Array | None = None) -> Array:
    """Return ``da/dz`` for ``kind``.

    Element-wise activations return an array shaped like ``z``. Softmax
    returns its Jacobian ``diag(a) - a a^T``: ``(k, k)`` for a vector and
    ``(n, k, k)`` for a batch. ``a`` may be passed to avoid recomputing the
    activation.
    """

    z = _check(z)
    if kind is ActivationKind.IDENTITY:
        return np.ones_like(z)
    if kind is ActivationKind.RELU:
        return (z > 0).astype(DTYPE)
    if a is None:
        a = activate(kind, z)
    a = np.asarray(a, dtype=DTYPE)
    if a.shape != z.shape:
        raise InvalidShape(f"activation shape {a.shape} does not match pre-activation {z.shape}")
    if kind is ActivationKind.SIGMOID:
        return a * (1.0 - a)
    if kind is ActivationKind.SOFTMAX:
        eye = np.eye(a.shape[-1], dtype=DTYPE)
        return a[..., :, None] * eye - a[..., :, None] * a[..., None, :]
    raise InvalidConfiguration(f"Unknown activation: {kind!r}")


def backprop(kind: ActivationKind, z: Array, a: Array, upstream: Array) -> Array:
    """Chain ``upstream = dL/da`` through the activation to get ``dL/dz``."""

    local = derivative(kind, z, a)
    if kind is ActivationKind.SOFTMAX:
        # The Jacobian is symmetric, so J^T g == J g.
        return np.einsum("...ij,...j->...i", local, upstream)
    return local * upstream


__all__ = [
    "activate",
    "backprop",
    "derivative",
    "parse_activation",
    "relu",
    "sigmoid",
    "softmax",
]
