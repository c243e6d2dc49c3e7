from __future__ import annotations

import json
from pathlib import Path

import pytest

from scratchnet.core import codec
from scratchnet.core.errors import InvalidConfiguration
from scratchnet.training import pipelines


def _smoke_config(run_dir: Path, **train_overrides) -> dict:
    config = pipelines.load_preset("fixture-smoke")
    config["train"].update(run_dir=str(run_dir), **train_overrides)
    return config


def test_fixture_pipeline_writes_artifacts(tmp_path):
    result = pipelines.run_pipeline(_smoke_config(tmp_path / "run", checkpoints=True))
    run_dir = tmp_path / "run"

    for name in ("metrics.jsonl", "metrics.csv", "metrics_test.json", "config.json", "manifest.json", "summary.json"):
        assert (run_dir / name).exists(), name
    assert (run_dir / "checkpoints" / "best.snet").exists()
    assert Path(result.model_path) == run_dir / "model.snet"
    assert result.steps == 2 * (112 // 16)

    network = codec.load_file(result.model_path)
    assert network.input_width == 784 and network.output_width == 10
    manifest = json.loads(Path(result.manifest_path).read_text())
    assert manifest["dataset"] == {
        "name": "mnist_fixture",
        "root": str(run_dir / "fixture"),
        "train": 112,
        "val": 16,
        "test": 32,
        "binarize_threshold": None,
    }
    assert manifest["model"]["layers"][-1]["activation"] == "softmax"
    assert set(result.test_metrics) == {"loss", "accuracy"}

    records = [json.loads(line) for line in Path(result.metrics_path).read_text().splitlines()]
    assert [r["epoch"] for r in records] == [1, 2]
    assert "val_loss" in records[0]


def test_pipeline_is_deterministic(tmp_path):
    first = pipelines.run_pipeline(_smoke_config(tmp_path / "a"))
    second = pipelines.run_pipeline(_smoke_config(tmp_path / "b"))

    def losses(result):
        return [json.loads(line)["loss"] for line in Path(result.metrics_path).read_text().splitlines()]

    assert losses(first) == losses(second)
    assert Path(first.model_path).read_bytes() == Path(second.model_path).read_bytes()


def test_evaluate_model_matches_pipeline_metrics(tmp_path):
    result = pipelines.run_pipeline(_smoke_config(tmp_path / "run"))
    data_cfg = pipelines.load_preset("fixture-smoke")["data"]
    metrics = pipelines.evaluate_model(result.model_path, data_cfg)
    assert metrics["loss"] == pytest.approx(result.test_metrics["loss"])
    assert metrics["accuracy"] == pytest.approx(result.test_metrics["accuracy"])


def test_yaml_presets_and_overrides(tmp_path):
    available = pipelines.presets()
    assert {"fixture-smoke", "mnist-mlp", "mnist-binarized"} <= set(available)
    binarized = pipelines.load_preset("mnist-binarized")
    assert binarized["data"]["options"]["binarize_threshold"] == 0.5

    override = tmp_path / "override.yaml"
    override.write_text("train:\n  epochs: 5\nmodel:\n  init: he\n")
    merged = pipelines.merge_config(pipelines.load_preset("fixture-smoke"), pipelines.read_config_file(override))
    assert merged["train"]["epochs"] == 5
    assert merged["train"]["batch_size"] == 16
    assert merged["model"]["init"] == "he"

    with pytest.raises(InvalidConfiguration, match="Unknown preset"):
        pipelines.load_preset("missing")
    bad = tmp_path / "config.toml"
    bad.write_text("")
    with pytest.raises(InvalidConfiguration):
        pipelines.read_config_file(bad)


def test_build_network_validation():
    network = pipelines.build_network(
        {"input_width": 4, "layers": [{"width": 3, "activation": "linear"}], "loss": "mse"}
    )
    assert repr(network) == "Network(4 -> 3(identity), loss=mse)"
    with pytest.raises(InvalidConfiguration):
        pipelines.build_network({"input_width": 4, "layers": []})
    with pytest.raises(InvalidConfiguration):
        pipelines.build_network({"layers": [{"width": 2}]})
    with pytest.raises(InvalidConfiguration):
        pipelines.build_network({"input_width": 4, "layers": [{"width": 2, "activation": "tanh"}]})
