import numpy as np
import pytest

from scratchnet.core import losses
from scratchnet.core.network import Network
from scratchnet.core.types import LayerGradient


@pytest.fixture
def batch():
    rng = np.random.default_rng(5)
    inputs = rng.uniform(0, 1, size=(6, 4))
    targets = np.eye(3)[rng.integers(0, 3, size=6)]
    return inputs, targets


def _net():
    return Network.build(4, [(5, "sigmoid"), (3, "softmax")], "cross_entropy", seed=9)


def test_batch_step_equals_averaged_sample_gradients(batch):
    inputs, targets = batch
    batched, manual = _net(), _net()

    batch_loss = batched.train_step(inputs, targets, 0.3)

    per_sample = [manual.gradients(x, t) for x, t in zip(inputs, targets)]
    averaged = [
        LayerGradient(
            weights=np.mean([grads[i].weights for _, grads in per_sample], axis=0),
            bias=np.mean([grads[i].bias for _, grads in per_sample], axis=0),
        )
        for i in range(len(manual.layers))
    ]
    manual.apply_gradients(averaged, 0.3)

    assert batch_loss == pytest.approx(np.mean([value for value, _ in per_sample]))
    for key, value in manual.state_dict().items():
        np.testing.assert_allclose(batched.state_dict()[key], value, atol=1e-12)


def test_batch_step_is_not_sequential_sample_updates(batch):
    inputs, targets = batch
    batched, sequential = _net(), _net()
    batched.train_step(inputs, targets, 0.3)
    for x, t in zip(inputs, targets):
        sequential.train_step(x, t, 0.3)
    diffs = [
        np.max(np.abs(batched.state_dict()[key] - value))
        for key, value in sequential.state_dict().items()
    ]
    assert max(diffs) > 1e-6


def test_batch_loss_is_mean_of_sample_losses(batch):
    inputs, targets = batch
    net = _net()
    outputs = net.predict(inputs)
    per_row = [losses.loss(net.loss, o, t) for o, t in zip(outputs, targets)]
    assert losses.loss(net.loss, outputs, targets) == pytest.approx(np.mean(per_row))
