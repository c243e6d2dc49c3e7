"""Fully connected layer with hand-derived backward pass."""

from __future__ import annotations

import numpy as np

from . import activations
from .errors import InvalidConfiguration, NumericInstability, ShapeMismatch, StateError
from .types import DTYPE, ActivationKind, Array, LayerDescription, LayerGradient

INITIALIZERS = ("uniform", "he")


def _positive_width(name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise InvalidConfiguration(f"{name} must be an integer, got {value!r}")
    if value <= 0:
        raise InvalidConfiguration(f"{name} must be positive, got {value}")
    return int(value)


class DenseLayer:
    """Affine map ``z = W x + b`` followed by an activation.

    ``weights`` has shape ``(output_width, input_width)``. ``forward`` accepts a
    single vector or a batch with one sample per row and caches what
    ``backward`` needs; the cache is consumed by the next ``backward`` call.
    """

    def __init__(
        self,
        input_width: int,
        output_width: int,
        activation: ActivationKind | str = ActivationKind.IDENTITY,
        *,
        rng: np.random.Generator | None = None,
        init: str = "uniform",
        index: int | None = None,
    ) -> None:
        input_width = _positive_width("input_width", input_width)
        output_width = _positive_width("output_width", output_width)
        self.activation = activations.parse_activation(activation)
        self.index = index
        rng = rng if rng is not None else np.random.default_rng()
        if init == "uniform":
            limit = 1.0 / np.sqrt(input_width)
            weights = rng.uniform(-limit, limit, size=(output_width, input_width))
        elif init == "he":
            weights = rng.normal(0.0, np.sqrt(2.0 / input_width), size=(output_width, input_width))
        else:
            raise InvalidConfiguration(
                f"Unknown initializer {init!r}; expected one of {', '.join(INITIALIZERS)}"
            )
        self.weights: Array = np.ascontiguousarray(weights, dtype=DTYPE)
        self.bias: Array = np.zeros(output_width, dtype=DTYPE)
        self._input: Array | None = None
        self._z: Array | None = None
        self._a: Array | None = None

    @classmethod
    def from_parameters(
        cls,
        weights: Array,
        bias: Array,
        activation: ActivationKind | str,
        *,
        index: int | None = None,
    ) -> "DenseLayer":
        """Build a layer that owns copies of ``weights`` and ``bias``."""

        weights = np.asarray(weights, dtype=DTYPE)
        bias = np.asarray(bias, dtype=DTYPE)
        if weights.ndim != 2:
            raise ShapeMismatch(f"weights must be a matrix, got shape {weights.shape}")
        if bias.shape != (weights.shape[0],):
            raise ShapeMismatch(
                f"bias shape {bias.shape} does not match weight rows {weights.shape[0]}"
            )
        layer = cls.__new__(cls)
        _positive_width("input_width", weights.shape[1])
        _positive_width("output_width", weights.shape[0])
        layer.activation = activations.parse_activation(activation)
        layer.index = index
        layer.weights = np.array(weights, dtype=DTYPE, order="C", copy=True)
        layer.bias = np.array(bias, dtype=DTYPE, copy=True)
        layer._input = None
        layer._z = None
        layer._a = None
        return layer

    @property
    def input_width(self) -> int:
        return int(self.weights.shape[1])

    @property
    def output_width(self) -> int:
        return int(self.weights.shape[0])

    def describe(self) -> LayerDescription:
        return LayerDescription(self.input_width, self.output_width, self.activation)

    def parameter_count(self) -> int:
        return int(self.weights.size + self.bias.size)

    def _where(self) -> str:
        return f"layer {self.index}" if self.index is not None else "layer"

    def forward(self, inputs: Array) -> Array:
        x = np.asarray(inputs, dtype=DTYPE)
        if x.ndim not in (1, 2) or x.shape[-1] != self.input_width:
            raise ShapeMismatch(
                f"{self._where()}: expected input width {self.input_width}, got shape {x.shape}"
            )
        z = x @ self.weights.T + self.bias
        a = activations.activate(self.activation, z)
        if not np.all(np.isfinite(a)):
            self.clear_cache()
            raise NumericInstability(f"{self._where()}: non-finite activation ({self.activation.value})")
        self._input = x
        self._z = z
        self._a = a
        return a

    def backward(self, upstream_grad: Array, *, preactivation: bool = False) -> tuple[LayerGradient, Array]:
        """Return parameter gradients and ``dL/dinput``.

        ``upstream_grad`` is ``dL/da`` for this layer's output, or ``dL/dz``
        directly when ``preactivation`` is set (the fused softmax +
        cross-entropy output layer).
        """

        if self._input is None or self._z is None or self._a is None:
            raise StateError(f"{self._where()}: backward called without forward")
        upstream = np.asarray(upstream_grad, dtype=DTYPE)
        if upstream.shape != self._a.shape:
            raise ShapeMismatch(
                f"{self._where()}: upstream gradient shape {upstream.shape} "
                f"does not match output shape {self._a.shape}"
            )
        if preactivation:
            local = upstream
        else:
            local = activations.backprop(self.activation, self._z, self._a, upstream)

        x = self._input
        if local.ndim == 1:
            grad_w = np.outer(local, x)
            grad_b = local.copy()
        else:
            batch = local.shape[0]
            grad_w = local.T @ x / batch
            grad_b = local.mean(axis=0)
        downstream = local @ self.weights
        self.clear_cache()
        return LayerGradient(weights=grad_w, bias=grad_b), downstream

    def apply_gradient(self, grad: LayerGradient, learning_rate: float) -> None:
        """Plain SGD update: ``param -= learning_rate * grad``."""

        if grad.weights.shape != self.weights.shape or grad.bias.shape != self.bias.shape:
            raise ShapeMismatch(
                f"{self._where()}: gradient shapes {grad.weights.shape}/{grad.bias.shape} "
                f"do not match parameters {self.weights.shape}/{self.bias.shape}"
            )
        self.weights -= learning_rate * grad.weights
        self.bias -= learning_rate * grad.bias

    def clear_cache(self) -> None:
        self._input = None
        self._z = None
        self._a = None

    def __repr__(self) -> str:
        return (
            f"DenseLayer({self.input_width} -> {self.output_width}, "
            f"activation={self.activation.value})"
        )


__all__ = ["DenseLayer", "INITIALIZERS"]
