"""scratchnet public API."""

from .core import activations, codec, errors, losses, types  # noqa: F401
from .core.layers import DenseLayer
from .core.network import Network
from .core.types import ActivationKind, Dataset, LossKind, TrainingSample
from .inference import InferenceSession
from .training.pipelines import load_preset, presets, run_pipeline
from .training.trainer import Trainer, TrainerConfig

__all__ = [
    "ActivationKind",
    "Dataset",
    "DenseLayer",
    "InferenceSession",
    "LossKind",
    "Network",
    "Trainer",
    "TrainerConfig",
    "TrainingSample",
    "activations",
    "codec",
    "errors",
    "load_preset",
    "losses",
    "presets",
    "run_pipeline",
    "types",
]
