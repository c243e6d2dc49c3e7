"""Binary model format.

Layout, all little-endian::

    magic            4 bytes  b"SNET"
    version          u16
    loss tag         u8
    layer count      u32
    per layer:       input_width u32, output_width u32, activation tag u8
    parameter count  u64
    payload          parameter count * float64

The payload is layer-major; within a layer the weights come first in row-major
order (``output_width x input_width``), followed by the bias.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import List

import numpy as np

from .errors import CorruptModel, InvalidConfiguration
from .layers import DenseLayer
from .network import Network
from .types import ActivationKind, LayerDescription, LossKind

logger = logging.getLogger(__name__)

MAGIC = b"SNET"
FORMAT_VERSION = 1
PARAM_DTYPE = np.dtype("<f8")

_PREAMBLE = struct.Struct("<4sHBI")
_LAYER = struct.Struct("<IIB")
_COUNT = struct.Struct("<Q")

ACTIVATION_TAGS = {
    ActivationKind.IDENTITY: 0,
    ActivationKind.RELU: 1,
    ActivationKind.SIGMOID: 2,
    ActivationKind.SOFTMAX: 3,
}
LOSS_TAGS = {
    LossKind.MSE: 0,
    LossKind.CROSS_ENTROPY: 1,
}
_ACTIVATION_BY_TAG = {tag: kind for kind, tag in ACTIVATION_TAGS.items()}
_LOSS_BY_TAG = {tag: kind for kind, tag in LOSS_TAGS.items()}


@dataclass(frozen=True)
class ModelHeader:
    """Validated architecture header of a serialized model."""

    version: int
    loss: LossKind
    layers: List[LayerDescription]
    parameter_count: int
    payload_offset: int

    @property
    def input_width(self) -> int:
        return self.layers[0].input_width

    @property
    def output_width(self) -> int:
        return self.layers[-1].output_width


def save(network: Network) -> bytes:
    """Serialize ``network`` to bytes."""

    parts = [
        _PREAMBLE.pack(MAGIC, FORMAT_VERSION, LOSS_TAGS[network.loss], len(network.layers))
    ]
    for layer in network.layers:
        parts.append(
            _LAYER.pack(layer.input_width, layer.output_width, ACTIVATION_TAGS[layer.activation])
        )
    parts.append(_COUNT.pack(network.parameter_count()))
    for layer in network.layers:
        parts.append(np.ascontiguousarray(layer.weights, dtype=PARAM_DTYPE).tobytes(order="C"))
        parts.append(np.ascontiguousarray(layer.bias, dtype=PARAM_DTYPE).tobytes())
    return b"".join(parts)


def read_header(data: bytes) -> ModelHeader:
    """Parse and validate the header without reading parameters."""

    view = memoryview(data)
    if len(view) < _PREAMBLE.size:
        raise CorruptModel(f"model is {len(view)} bytes, shorter than the {_PREAMBLE.size}-byte preamble")
    magic, version, loss_tag, layer_count = _PREAMBLE.unpack_from(view, 0)
    if magic != MAGIC:
        raise CorruptModel(f"bad magic {magic!r}, expected {MAGIC!r}")
    if version != FORMAT_VERSION:
        raise CorruptModel(f"unsupported format version {version}")
    if loss_tag not in _LOSS_BY_TAG:
        raise CorruptModel(f"unknown loss tag {loss_tag}")
    if layer_count == 0:
        raise CorruptModel("model declares zero layers")

    offset = _PREAMBLE.size
    needed = offset + layer_count * _LAYER.size + _COUNT.size
    if len(view) < needed:
        raise CorruptModel(f"header truncated: need {needed} bytes for {layer_count} layers, have {len(view)}")

    layers: List[LayerDescription] = []
    expected_params = 0
    for idx in range(layer_count):
        in_width, out_width, act_tag = _LAYER.unpack_from(view, offset)
        offset += _LAYER.size
        if in_width <= 0 or out_width <= 0:
            raise CorruptModel(f"layer {idx}: non-positive width {in_width}x{out_width}")
        if act_tag not in _ACTIVATION_BY_TAG:
            raise CorruptModel(f"layer {idx}: unknown activation tag {act_tag}")
        if layers and layers[-1].output_width != in_width:
            raise CorruptModel(
                f"layer {idx}: input width {in_width} does not match previous output {layers[-1].output_width}"
            )
        layers.append(LayerDescription(in_width, out_width, _ACTIVATION_BY_TAG[act_tag]))
        expected_params += out_width * in_width + out_width

    (declared,) = _COUNT.unpack_from(view, offset)
    offset += _COUNT.size
    if declared != expected_params:
        raise CorruptModel(
            f"header declares {declared} parameters but layer shapes imply {expected_params}"
        )
    return ModelHeader(
        version=version,
        loss=_LOSS_BY_TAG[loss_tag],
        layers=layers,
        parameter_count=int(declared),
        payload_offset=offset,
    )


def load(data: bytes) -> Network:
    """Rebuild a :class:`Network` from :func:`save` output."""

    header = read_header(data)
    payload = memoryview(data)[header.payload_offset :]
    expected_bytes = header.parameter_count * PARAM_DTYPE.itemsize
    if len(payload) != expected_bytes:
        raise CorruptModel(
            f"parameter payload is {len(payload)} bytes, header declares "
            f"{header.parameter_count} values ({expected_bytes} bytes)"
        )
    values = np.frombuffer(payload, dtype=PARAM_DTYPE)

    layers = []
    cursor = 0
    for idx, desc in enumerate(header.layers):
        n_weights = desc.output_width * desc.input_width
        weights = values[cursor : cursor + n_weights].reshape(desc.output_width, desc.input_width)
        cursor += n_weights
        bias = values[cursor : cursor + desc.output_width]
        cursor += desc.output_width
        layers.append(DenseLayer.from_parameters(weights, bias, desc.activation, index=idx))
    try:
        return Network(layers, header.loss)
    except InvalidConfiguration as exc:
        raise CorruptModel(f"invalid architecture: {exc}") from exc


def save_file(network: Network, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = save(network)
    path.write_bytes(data)
    logger.info("saved model %s (%d parameters, %d bytes) to %s", network, network.parameter_count(), len(data), path)
    return path


def load_file(path: str | Path) -> Network:
    path = Path(path)
    network = load(path.read_bytes())
    logger.info("loaded model %s from %s", network, path)
    return network


__all__ = [
    "ACTIVATION_TAGS",
    "FORMAT_VERSION",
    "LOSS_TAGS",
    "MAGIC",
    "ModelHeader",
    "load",
    "load_file",
    "read_header",
    "save",
    "save_file",
]
