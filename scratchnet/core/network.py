"""Feed-forward network composed of dense layers."""

from __future__ import annotations

from typing import Iterable, List, Mapping, Sequence, Tuple

import numpy as np

from . import losses
from .errors import InvalidConfiguration, NumericInstability, ShapeMismatch
from .layers import DenseLayer
from .types import (
    DTYPE,
    ActivationKind,
    Array,
    LayerGradient,
    LossKind,
    ModelDescription,
)

LayerSpec = Tuple[int, "ActivationKind | str"]


class Network:
    """Ordered stack of :class:`DenseLayer` objects trained against one loss."""

    def __init__(self, layers: Iterable[DenseLayer], loss: LossKind | str) -> None:
        self.layers: List[DenseLayer] = list(layers)
        self.loss = losses.parse_loss(loss)
        self._last_outputs: Array | None = None
        if not self.layers:
            raise InvalidConfiguration("a network needs at least one layer")
        for idx, layer in enumerate(self.layers):
            layer.index = idx
            if idx and layer.input_width != self.layers[idx - 1].output_width:
                raise InvalidConfiguration(
                    f"layer {idx} expects input width {layer.input_width} but layer "
                    f"{idx - 1} produces {self.layers[idx - 1].output_width}"
                )
            if layer.activation is ActivationKind.SOFTMAX and idx != len(self.layers) - 1:
                raise InvalidConfiguration(f"softmax is only valid on the output layer, found on layer {idx}")

    @classmethod
    def build(
        cls,
        input_width: int,
        layers: Sequence[LayerSpec],
        loss: LossKind | str,
        *,
        seed: int | None = None,
        init: str = "uniform",
    ) -> "Network":
        """Create freshly initialised layers from ``(width, activation)`` pairs."""

        if not layers:
            raise InvalidConfiguration("a network needs at least one layer")
        rng = np.random.default_rng(seed)
        built: List[DenseLayer] = []
        width = input_width
        for idx, (out_width, activation) in enumerate(layers):
            built.append(DenseLayer(width, out_width, activation, rng=rng, init=init, index=idx))
            width = out_width
        return cls(built, loss)

    @property
    def input_width(self) -> int:
        return self.layers[0].input_width

    @property
    def output_width(self) -> int:
        return self.layers[-1].output_width

    @property
    def last_outputs(self) -> Array | None:
        """Outputs of the most recent training forward pass, before its update."""

        return self._last_outputs

    def describe(self) -> ModelDescription:
        return ModelDescription(layers=[layer.describe() for layer in self.layers], loss=self.loss)

    def parameter_count(self) -> int:
        return int(sum(layer.parameter_count() for layer in self.layers))

    # ------------------------------------------------------------------
    # Inference

    def predict(self, inputs: Array) -> Array:
        x = np.asarray(inputs, dtype=DTYPE)
        if x.ndim not in (1, 2) or x.shape[-1] != self.input_width:
            raise ShapeMismatch(f"expected input width {self.input_width}, got shape {x.shape}")
        try:
            for layer in self.layers:
                x = layer.forward(x)
        except NumericInstability:
            for layer in self.layers:
                layer.clear_cache()
            raise
        return x

    __call__ = predict

    # ------------------------------------------------------------------
    # Training

    def gradients(self, inputs: Array, targets: Array) -> tuple[float, List[LayerGradient]]:
        """Forward, loss and backward pass without touching the parameters.

        Returns the loss and one :class:`LayerGradient` per layer, in layer
        order, averaged over the rows of a batch.
        """

        outputs = self.predict(inputs)
        targets = np.asarray(targets, dtype=DTYPE)
        if targets.shape != outputs.shape:
            for layer in self.layers:
                layer.clear_cache()
            raise ShapeMismatch(f"target shape {targets.shape} does not match output shape {outputs.shape}")

        value = losses.loss(self.loss, outputs, targets)
        self._last_outputs = outputs
        if not np.isfinite(value):
            for layer in self.layers:
                layer.clear_cache()
            raise NumericInstability(f"non-finite loss ({value}) for {self.loss.value}")

        last = self.layers[-1]
        if losses.uses_fused_softmax(last.activation, self.loss):
            grad = losses.output_delta(last.activation, self.loss, outputs, targets)
            fused = True
        else:
            grad = losses.gradient(self.loss, outputs, targets)
            fused = False

        collected: List[LayerGradient] = []
        for layer in reversed(self.layers):
            layer_grad, grad = layer.backward(grad, preactivation=fused)
            fused = False
            if not (np.all(np.isfinite(layer_grad.weights)) and np.all(np.isfinite(layer_grad.bias))):
                for pending in self.layers:
                    pending.clear_cache()
                raise NumericInstability(f"layer {layer.index}: non-finite gradient")
            collected.append(layer_grad)
        collected.reverse()
        return value, collected

    def apply_gradients(self, grads: Sequence[LayerGradient], learning_rate: float) -> None:
        if len(grads) != len(self.layers):
            raise ShapeMismatch(f"expected {len(self.layers)} layer gradients, got {len(grads)}")
        for layer, grad in zip(self.layers, grads):
            layer.apply_gradient(grad, learning_rate)

    def train_step(self, inputs: Array, targets: Array, learning_rate: float) -> float:
        """One SGD update from a sample or a batch; returns the pre-update loss.

        A batch contributes a single update with gradients averaged over its
        rows, never one update per sample.
        """

        value, grads = self.gradients(inputs, targets)
        self.apply_gradients(grads, learning_rate)
        return value

    # ------------------------------------------------------------------
    # Parameter access

    def state_dict(self) -> Mapping[str, Array]:
        state = {}
        for idx, layer in enumerate(self.layers):
            state[f"W{idx}"] = layer.weights.copy()
            state[f"b{idx}"] = layer.bias.copy()
        return state

    def load_state_dict(self, state: Mapping[str, Array]) -> None:
        for idx, layer in enumerate(self.layers):
            for key, current in ((f"W{idx}", layer.weights), (f"b{idx}", layer.bias)):
                if key not in state:
                    raise KeyError(f"Missing parameter {key} in state dict")
                value = np.asarray(state[key], dtype=DTYPE)
                if value.shape != current.shape:
                    raise ShapeMismatch(f"{key}: expected shape {current.shape}, got {value.shape}")
            layer.weights = np.array(state[f"W{idx}"], dtype=DTYPE, copy=True)
            layer.bias = np.array(state[f"b{idx}"], dtype=DTYPE, copy=True)

    def copy(self) -> "Network":
        return Network(
            [
                DenseLayer.from_parameters(layer.weights, layer.bias, layer.activation)
                for layer in self.layers
            ],
            self.loss,
        )

    def __repr__(self) -> str:
        chain = " -> ".join(
            [str(self.input_width)]
            + [f"{layer.output_width}({layer.activation.value})" for layer in self.layers]
        )
        return f"Network({chain}, loss={self.loss.value})"


__all__ = ["Network", "LayerSpec"]
