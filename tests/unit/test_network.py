import numpy as np
import pytest

from scratchnet.core import losses
from scratchnet.core.errors import InvalidConfiguration, NumericInstability, ShapeMismatch, StateError
from scratchnet.core.layers import DenseLayer
from scratchnet.core.network import Network
from scratchnet.core.types import ActivationKind, LossKind


def _flat_params(network):
    return np.concatenate([np.concatenate([l.weights.ravel(), l.bias]) for l in network.layers])


def _numeric_gradients(network, x, t, eps=1e-6):
    grads = []
    for layer in network.layers:
        for array in (layer.weights, layer.bias):
            numeric = np.zeros_like(array)
            it = np.nditer(array, flags=["multi_index"])
            for _ in it:
                idx = it.multi_index
                original = array[idx]
                array[idx] = original + eps
                plus = losses.loss(network.loss, network.predict(x), t)
                array[idx] = original - eps
                minus = losses.loss(network.loss, network.predict(x), t)
                array[idx] = original
                numeric[idx] = (plus - minus) / (2 * eps)
            grads.append(numeric)
    return grads


@pytest.mark.parametrize(
    "hidden, output, loss",
    [
        ("sigmoid", "identity", "mse"),
        ("relu", "sigmoid", "mse"),
        ("sigmoid", "softmax", "mse"),
        ("sigmoid", "softmax", "cross_entropy"),
        ("identity", "sigmoid", "cross_entropy"),
    ],
)
def test_gradients_match_finite_differences(hidden, output, loss):
    network = Network.build(4, [(5, hidden), (3, output)], loss, seed=11)
    rng = np.random.default_rng(5)
    x = rng.normal(size=(3, 4))
    t = np.eye(3)[[0, 2, 1]]
    if output == "identity":
        t = rng.normal(size=(3, 3))
    _, analytic = network.gradients(x, t)
    numeric = _numeric_gradients(network, x, t)
    flat_analytic = [g for grad in analytic for g in (grad.weights, grad.bias)]
    for a, n in zip(flat_analytic, numeric):
        assert np.allclose(a, n, atol=1e-6, rtol=1e-4)


@pytest.mark.parametrize(
    "layers",
    [
        [(3, "relu")],
        [(8, "sigmoid"), (2, "identity")],
        [(6, "relu"), (5, "relu"), (4, "softmax")],
    ],
)
def test_predict_shape_and_no_parameter_mutation(layers):
    network = Network.build(7, layers, "mse", seed=2)
    before = _flat_params(network)
    out = network.predict(np.linspace(0.0, 1.0, 7))
    assert out.shape == (layers[-1][0],)
    batch_out = network.predict(np.ones((4, 7)))
    assert batch_out.shape == (4, layers[-1][0])
    assert np.array_equal(before, _flat_params(network))


def test_predict_rejects_wrong_input_length():
    network = Network.build(4, [(2, "softmax")], "cross_entropy", seed=0)
    with pytest.raises(ShapeMismatch):
        network.predict(np.zeros(5))
    with pytest.raises(ShapeMismatch):
        network.predict(np.zeros((2, 3)))


def test_invalid_configurations():
    with pytest.raises(InvalidConfiguration):
        Network([], "mse")
    with pytest.raises(InvalidConfiguration):
        Network([DenseLayer(3, 4, "relu"), DenseLayer(5, 2, "identity")], "mse")
    with pytest.raises(InvalidConfiguration):
        Network.build(3, [(4, "softmax"), (2, "identity")], "mse")
    with pytest.raises(InvalidConfiguration):
        Network.build(3, [(2, "identity")], "hinge")


def test_widths_and_description():
    network = Network.build(4, [(3, "relu"), (2, "softmax")], "ce", seed=0)
    assert network.input_width == 4
    assert network.output_width == 2
    assert network.loss is LossKind.CROSS_ENTROPY
    assert network.describe().layer_dims == [4, 3, 2]
    assert network.describe().layers[1].activation is ActivationKind.SOFTMAX
    assert network.parameter_count() == 4 * 3 + 3 + 3 * 2 + 2


def test_single_sample_sgd_decreases_loss():
    network = Network.build(3, [(2, "identity")], "mse", seed=4)
    x = np.array([0.5, -0.25, 1.0])
    t = np.array([1.0, -1.0])
    initial = losses.loss(network.loss, network.predict(x), t)
    for _ in range(10):
        network.train_step(x, t, 0.05)
    final = losses.loss(network.loss, network.predict(x), t)
    assert final < initial


def test_end_to_end_learns_single_sample():
    network = Network.build(4, [(3, "relu"), (2, "softmax")], "cross_entropy", seed=0)
    x = np.array([1.0, 0.0, 0.0, 0.0])
    t = np.array([1.0, 0.0])
    for _ in range(100):
        network.train_step(x, t, 0.1)
    assert network.predict(x)[0] > 0.9


def test_train_step_returns_pre_update_loss():
    network = Network.build(2, [(2, "sigmoid")], "mse", seed=1)
    x = np.array([0.1, 0.9])
    t = np.array([0.0, 1.0])
    expected = losses.loss(network.loss, network.predict(x), t)
    assert network.train_step(x, t, 0.5) == pytest.approx(expected)


def test_target_shape_mismatch():
    network = Network.build(2, [(3, "softmax")], "cross_entropy", seed=1)
    with pytest.raises(ShapeMismatch):
        network.train_step(np.zeros(2), np.zeros(2), 0.1)


def test_non_finite_loss_aborts_without_update():
    layer = DenseLayer.from_parameters(np.array([[1.0]]), np.array([0.0]), "identity")
    network = Network([layer], "mse")
    before = network.state_dict()
    with np.errstate(over="ignore"):
        with pytest.raises(NumericInstability):
            network.train_step(np.array([1e200]), np.array([0.0]), 0.1)
    after = network.state_dict()
    assert all(np.array_equal(before[k], after[k]) for k in before)


def test_state_dict_roundtrip_and_copy_independence():
    network = Network.build(3, [(4, "relu"), (2, "identity")], "mse", seed=9)
    clone = network.copy()
    clone.train_step(np.ones(3), np.zeros(2), 0.5)
    assert not np.array_equal(clone.layers[0].weights, network.layers[0].weights)
    network.load_state_dict(clone.state_dict())
    assert np.array_equal(clone.layers[0].weights, network.layers[0].weights)
    with pytest.raises(KeyError):
        network.load_state_dict({"W0": network.layers[0].weights})


def test_overflow_in_later_layer_clears_every_cache():
    first = DenseLayer.from_parameters(np.array([[1e200]]), np.zeros(1), "identity")
    second = DenseLayer.from_parameters(np.array([[1e200]]), np.zeros(1), "identity")
    network = Network([first, second], "mse")
    network.predict(np.array([1e-200]))
    with np.errstate(over="ignore"):
        with pytest.raises(NumericInstability, match="layer 1"):
            network.train_step(np.array([1.0]), np.array([0.0]), 0.1)
    for layer in network.layers:
        with pytest.raises(StateError):
            layer.backward(np.ones(1))
