"""Core numerical primitives for scratchnet."""

from . import activations, codec, errors, losses, types
from .layers import DenseLayer
from .network import Network

__all__ = ["activations", "codec", "errors", "losses", "types", "DenseLayer", "Network"]
