"""Inference-only entry point for a host application.

A host loads a trained model once and calls :func:`predict` with a flattened
28x28 image (784 values in ``[0, 1]``, row-major) to get 10 class
probabilities. Training used continuous grayscale intensities while drawing
clients usually send pure black and white; inputs outside ``[0, 1]`` trigger an
:class:`InputRangeWarning` but are never rescaled here.

Each thread gets its own loaded :class:`~scratchnet.core.network.Network`
because a forward pass writes the layers' caches.
"""

from __future__ import annotations

import logging
import os
import threading
import warnings
from pathlib import Path

import numpy as np

from .core import codec
from .core.errors import ShapeMismatch
from .core.network import Network
from .core.types import DTYPE, Array

logger = logging.getLogger(__name__)

MODEL_ENV = "SCRATCHNET_MODEL"
DEFAULT_MODEL_PATH = "mnist_model.snet"


class InputRangeWarning(UserWarning):
    """Input values fall outside the ``[0, 1]`` range the model was trained on."""


class InferenceSession:
    """Stateless ``predict`` over one loaded network."""

    def __init__(self, network: Network) -> None:
        self._network = network

    @classmethod
    def from_bytes(cls, data: bytes) -> "InferenceSession":
        return cls(codec.load(data))

    @classmethod
    def from_file(cls, path: str | Path) -> "InferenceSession":
        return cls(codec.load_file(path))

    @property
    def input_width(self) -> int:
        return self._network.input_width

    @property
    def output_width(self) -> int:
        return self._network.output_width

    def predict(self, values) -> Array:
        x = np.asarray(values, dtype=DTYPE)
        if x.ndim != 1 or x.shape[0] != self.input_width:
            raise ShapeMismatch(
                f"Invalid input length. Expected {self.input_width} values, got shape {x.shape}"
            )
        if x.size and (x.min() < 0.0 or x.max() > 1.0):
            warnings.warn(
                f"input values span [{x.min():.3g}, {x.max():.3g}], model expects [0, 1]",
                InputRangeWarning,
                stacklevel=2,
            )
        return self._network.predict(x).copy()


_LOCAL = threading.local()


def _model_path() -> Path:
    return Path(os.environ.get(MODEL_ENV, DEFAULT_MODEL_PATH))


def session() -> InferenceSession:
    """Return this thread's session, loading the model on first use."""

    current = getattr(_LOCAL, "session", None)
    if current is None:
        path = _model_path()
        logger.info("loading inference model from %s", path)
        current = InferenceSession.from_file(path)
        _LOCAL.session = current
    return current


def use_model(path: str | Path | None = None, *, data: bytes | None = None) -> InferenceSession:
    """Replace this thread's session with a model from ``path`` or ``data``."""

    if data is not None:
        current = InferenceSession.from_bytes(data)
    else:
        current = InferenceSession.from_file(path if path is not None else _model_path())
    _LOCAL.session = current
    return current


def predict(values) -> Array:
    return session().predict(values)


def input_width() -> int:
    return session().input_width


def output_width() -> int:
    return session().output_width


__all__ = [
    "InferenceSession",
    "InputRangeWarning",
    "input_width",
    "output_width",
    "predict",
    "session",
    "use_model",
]
