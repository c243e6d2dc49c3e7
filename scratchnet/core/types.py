"""Core typing contracts for scratchnet."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Sequence

import numpy as np

Array = np.ndarray

DTYPE = np.float64


class ActivationKind(str, Enum):
    """Closed set of activation functions a layer may apply."""

    IDENTITY = "identity"
    RELU = "relu"
    SIGMOID = "sigmoid"
    SOFTMAX = "softmax"


class LossKind(str, Enum):
    """Closed set of loss functions a network may optimise."""

    MSE = "mse"
    CROSS_ENTROPY = "cross_entropy"


@dataclass(frozen=True)
class TrainingSample:
    """A single labelled example."""

    input: Array
    target: Array


@dataclass(frozen=True)
class Dataset:
    """Stacked samples: one row per example."""

    inputs: Array
    targets: Array

    def __post_init__(self) -> None:
        inputs = np.atleast_2d(np.asarray(self.inputs, dtype=DTYPE))
        targets = np.atleast_2d(np.asarray(self.targets, dtype=DTYPE))
        if inputs.shape[0] != targets.shape[0]:
            raise ValueError(
                f"inputs has {inputs.shape[0]} rows but targets has {targets.shape[0]}"
            )
        object.__setattr__(self, "inputs", inputs)
        object.__setattr__(self, "targets", targets)

    @classmethod
    def from_samples(cls, samples: Sequence[TrainingSample]) -> "Dataset":
        if not samples:
            raise ValueError("cannot build a dataset from zero samples")
        return cls(
            inputs=np.stack([np.asarray(s.input, dtype=DTYPE) for s in samples]),
            targets=np.stack([np.asarray(s.target, dtype=DTYPE) for s in samples]),
        )

    def __len__(self) -> int:
        return int(self.inputs.shape[0])

    def __getitem__(self, index: int) -> TrainingSample:
        return TrainingSample(input=self.inputs[index], target=self.targets[index])

    def subset(self, indices: Sequence[int] | Array) -> "Dataset":
        idx = np.asarray(indices)
        return Dataset(inputs=self.inputs[idx], targets=self.targets[idx])


@dataclass(frozen=True)
class LayerGradient:
    """Parameter gradients for one dense layer, averaged over a batch."""

    weights: Array
    bias: Array


@dataclass(frozen=True)
class LayerDescription:
    """Architecture of a single dense layer."""

    input_width: int
    output_width: int
    activation: ActivationKind


@dataclass(frozen=True)
class ModelDescription:
    """Architecture of a whole network."""

    layers: List[LayerDescription]
    loss: LossKind

    @property
    def layer_dims(self) -> List[int]:
        if not self.layers:
            return []
        return [self.layers[0].input_width] + [layer.output_width for layer in self.layers]


@dataclass(frozen=True)
class EpochSummary:
    """Statistics reported by the trainer after each epoch."""

    epoch: int
    loss: float
    accuracy: float
    batches: int
    samples: int
    duration: float
    val_loss: float | None = None
    val_accuracy: float | None = None

    def as_metrics(self) -> Dict[str, float]:
        metrics = {
            "loss": self.loss,
            "accuracy": self.accuracy,
            "batches": float(self.batches),
            "samples": float(self.samples),
            "duration": self.duration,
        }
        if self.val_loss is not None:
            metrics["val_loss"] = self.val_loss
        if self.val_accuracy is not None:
            metrics["val_accuracy"] = self.val_accuracy
        return metrics


@dataclass
class TrainingHistory:
    """Per-epoch summaries accumulated across a training run."""

    epochs: List[EpochSummary] = field(default_factory=list)
    stopped_early: bool = False
    interrupted: bool = False
    best_epoch: int | None = None

    @property
    def steps(self) -> int:
        return int(sum(summary.batches for summary in self.epochs))

    @property
    def final(self) -> EpochSummary | None:
        return self.epochs[-1] if self.epochs else None


@dataclass(frozen=True)
class RunResult:
    """Summary returned by :func:`scratchnet.training.pipelines.run_pipeline`."""

    steps: int
    model_path: str
    metrics_path: str
    manifest_path: str
    summary_path: str = ""
    test_metrics: Dict[str, float] = field(default_factory=dict)
