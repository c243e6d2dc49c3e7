import struct

import numpy as np
import pytest

from scratchnet.core import codec
from scratchnet.core.errors import CorruptModel
from scratchnet.core.network import Network

_PREAMBLE = 11  # magic(4) + version(2) + loss(1) + layer count(4)


def _network():
    network = Network.build(4, [(3, "relu"), (2, "softmax")], "cross_entropy", seed=3)
    network.train_step(np.array([1.0, 0.0, 0.5, 0.0]), np.array([0.0, 1.0]), 0.1)
    return network


def _raw_header(loss_tag, layers, declared=None, magic=b"SNET", version=1):
    parts = [struct.pack("<4sHBI", magic, version, loss_tag, len(layers))]
    count = 0
    for in_w, out_w, act in layers:
        parts.append(struct.pack("<IIB", in_w, out_w, act))
        count += in_w * out_w + out_w
    parts.append(struct.pack("<Q", count if declared is None else declared))
    return b"".join(parts), count


def test_layout_is_documented_order():
    network = Network.build(2, [(2, "identity")], "mse", seed=0)
    network.layers[0].weights[:] = [[1.0, 2.0], [3.0, 4.0]]
    network.layers[0].bias[:] = [5.0, 6.0]
    data = codec.save(network)
    header = codec.read_header(data)
    assert data[:4] == codec.MAGIC
    assert header.parameter_count == 6
    payload = np.frombuffer(data[header.payload_offset :], dtype="<f8")
    assert payload.tolist() == [1.0, 2.0, 3.0, 4.0, 5.0, 6.0]


def test_header_fields():
    header = codec.read_header(codec.save(_network()))
    assert header.version == codec.FORMAT_VERSION
    assert header.input_width == 4
    assert header.output_width == 2
    assert [layer.activation.value for layer in header.layers] == ["relu", "softmax"]
    assert header.loss.value == "cross_entropy"


def test_roundtrip_is_bit_identical():
    network = _network()
    restored = codec.load(codec.save(network))
    for original, copy in zip(network.layers, restored.layers):
        assert np.array_equal(original.weights, copy.weights)
        assert np.array_equal(original.bias, copy.bias)
        assert original.activation is copy.activation
    assert restored.loss is network.loss
    rng = np.random.default_rng(0)
    for x in rng.uniform(0.0, 1.0, size=(10, 4)):
        assert np.array_equal(restored.predict(x), network.predict(x))


def test_file_roundtrip(tmp_path):
    network = _network()
    path = codec.save_file(network, tmp_path / "nested" / "model.snet")
    assert path.exists()
    restored = codec.load_file(path)
    assert np.array_equal(restored.layers[1].weights, network.layers[1].weights)


@pytest.mark.parametrize("cut", [1, 8, 40])
def test_truncated_payload_is_corrupt(cut):
    data = codec.save(_network())
    with pytest.raises(CorruptModel, match="payload"):
        codec.load(data[:-cut])


def test_trailing_bytes_are_corrupt():
    data = codec.save(_network())
    with pytest.raises(CorruptModel):
        codec.load(data + b"\x00" * 8)


def test_truncated_header_is_corrupt():
    data = codec.save(_network())
    for size in (0, 3, _PREAMBLE, _PREAMBLE + 5):
        with pytest.raises(CorruptModel):
            codec.load(data[:size])


def test_bad_magic_and_version():
    data = bytearray(codec.save(_network()))
    bad_magic = bytes(b"XXXX" + data[4:])
    with pytest.raises(CorruptModel, match="magic"):
        codec.load(bad_magic)
    bad_version = bytes(data[:4] + struct.pack("<H", 99) + data[6:])
    with pytest.raises(CorruptModel, match="version"):
        codec.load(bad_version)


def test_unknown_tags():
    data = bytearray(codec.save(_network()))
    data[6] = 7
    with pytest.raises(CorruptModel, match="loss tag"):
        codec.load(bytes(data))
    data = bytearray(codec.save(_network()))
    data[_PREAMBLE + 8] = 42
    with pytest.raises(CorruptModel, match="activation tag"):
        codec.load(bytes(data))


def test_non_positive_width_and_zero_layers():
    header, _ = _raw_header(0, [(0, 2, 0)])
    with pytest.raises(CorruptModel, match="non-positive"):
        codec.load(header)
    header, _ = _raw_header(0, [])
    with pytest.raises(CorruptModel, match="zero layers"):
        codec.load(header)


def test_broken_chain_and_declared_count():
    header, count = _raw_header(0, [(2, 3, 1), (4, 1, 0)])
    with pytest.raises(CorruptModel, match="does not match previous output"):
        codec.load(header + b"\x00" * 8 * count)
    header, count = _raw_header(0, [(2, 3, 1)], declared=5)
    with pytest.raises(CorruptModel, match="declares 5 parameters"):
        codec.load(header + b"\x00" * 8 * 5)


def test_softmax_on_hidden_layer_is_corrupt():
    header, count = _raw_header(1, [(2, 3, 3), (3, 2, 0)])
    with pytest.raises(CorruptModel, match="invalid architecture"):
        codec.load(header + np.zeros(count, dtype="<f8").tobytes())
