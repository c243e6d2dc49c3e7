import threading
import warnings

import numpy as np
import pytest

from scratchnet import inference
from scratchnet.core import codec
from scratchnet.core.errors import CorruptModel, ShapeMismatch
from scratchnet.core.network import Network


@pytest.fixture
def model_bytes():
    network = Network.build(784, [(16, "relu"), (10, "softmax")], "cross_entropy", seed=2)
    return codec.save(network)


@pytest.fixture
def fresh_threads(monkeypatch):
    monkeypatch.setattr(inference, "_LOCAL", threading.local())


def test_session_predicts_probabilities(model_bytes):
    session = inference.InferenceSession.from_bytes(model_bytes)
    assert (session.input_width, session.output_width) == (784, 10)
    probs = session.predict(np.full(784, 0.5))
    assert probs.shape == (10,)
    assert probs.sum() == pytest.approx(1.0)
    assert np.all(probs >= 0)
    again = session.predict([0.5] * 784)
    assert np.array_equal(probs, again)


def test_session_rejects_bad_shapes(model_bytes):
    session = inference.InferenceSession.from_bytes(model_bytes)
    with pytest.raises(ShapeMismatch, match="Expected 784 values"):
        session.predict(np.zeros(783))
    with pytest.raises(ShapeMismatch):
        session.predict(np.zeros((2, 784)))


def test_out_of_range_inputs_warn_without_rescaling(model_bytes):
    session = inference.InferenceSession.from_bytes(model_bytes)
    image = np.zeros(784)
    image[:10] = 255.0
    with pytest.warns(inference.InputRangeWarning):
        raw = session.predict(image)
    direct = codec.load(model_bytes).predict(image)
    np.testing.assert_array_equal(raw, direct)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        session.predict(np.ones(784))


def test_module_level_predict_uses_env_model(tmp_path, monkeypatch, model_bytes, fresh_threads):
    path = tmp_path / "model.snet"
    path.write_bytes(model_bytes)
    monkeypatch.setenv(inference.MODEL_ENV, str(path))
    assert inference.input_width() == 784
    assert inference.output_width() == 10
    assert inference.predict(np.zeros(784)).shape == (10,)
    assert inference.session() is inference.session()


def test_use_model_replaces_session(model_bytes, fresh_threads):
    other = codec.save(Network.build(784, [(10, "softmax")], "cross_entropy", seed=5))
    first = inference.use_model(data=model_bytes)
    second = inference.use_model(data=other)
    assert inference.session() is second is not first
    with pytest.raises(CorruptModel):
        inference.use_model(data=model_bytes[:-8])


def test_sessions_are_per_thread(model_bytes, fresh_threads):
    main = inference.use_model(data=model_bytes)
    seen = {}

    def worker():
        seen["session"] = inference.use_model(data=model_bytes)
        seen["probs"] = inference.predict(np.zeros(784))

    thread = threading.Thread(target=worker)
    thread.start()
    thread.join()
    assert seen["session"] is not main
    assert inference.session() is main
    np.testing.assert_allclose(seen["probs"], main.predict(np.zeros(784)))
