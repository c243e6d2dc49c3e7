"""Config-driven pipeline: load data, train, evaluate, save the model."""

from __future__ import annotations

import json
import logging
import time
from copy import deepcopy
from pathlib import Path
from typing import Dict, List, Mapping, Sequence, Tuple

from ..core import codec
from ..core.activations import parse_activation
from ..core.errors import InvalidConfiguration
from ..core.losses import parse_loss
from ..core.network import Network
from ..core.types import Dataset, RunResult
from ..data import mnist
from ..data.utils import split_dataset
from ..reporting.artifacts import write_manifest
from ..reporting.metrics import CsvSink, JsonlSink
from ..reporting.plots import PlotAdapter
from ..reporting.summary import write_summary
from .trainer import Trainer, TrainerConfig

logger = logging.getLogger(__name__)

_PRESETS: Dict[str, Mapping[str, object]] = {
    "mnist-mlp": {
        "data": {"name": "mnist", "options": {"root": "mnist", "val_split": 0.0}},
        "model": {
            "input_width": 784,
            "layers": [
                {"width": 128, "activation": "relu"},
                {"width": 64, "activation": "relu"},
                {"width": 10, "activation": "softmax"},
            ],
            "loss": "cross_entropy",
            "init": "he",
        },
        "train": {
            "epochs": 30,
            "batch_size": 64,
            "lr": 0.01,
            "shuffle": True,
            "seed": 0,
            "run_dir": "runs/mnist-mlp",
            "model_path": "mnist_model.snet",
            "enable_plots": False,
        },
    },
    "mnist-sgd": {
        "data": {"name": "mnist", "options": {"root": "mnist", "val_split": 0.1}},
        "model": {
            "input_width": 784,
            "layers": [
                {"width": 64, "activation": "relu"},
                {"width": 10, "activation": "softmax"},
            ],
            "loss": "cross_entropy",
        },
        "train": {
            "epochs": 3,
            "batch_size": 1,
            "lr": 0.01,
            "shuffle": True,
            "seed": 0,
            "run_dir": "runs/mnist-sgd",
            "enable_plots": False,
        },
    },
    "fixture-smoke": {
        "data": {"name": "mnist_fixture", "options": {"train_size": 128, "test_size": 32, "val_split": 0.125}},
        "model": {
            "input_width": 784,
            "layers": [
                {"width": 16, "activation": "relu"},
                {"width": 10, "activation": "softmax"},
            ],
            "loss": "cross_entropy",
        },
        "train": {
            "epochs": 2,
            "batch_size": 16,
            "lr": 0.1,
            "shuffle": True,
            "seed": 7,
            "run_dir": "runs/fixture-smoke",
            "enable_plots": False,
        },
    },
}

_PRESET_DIR = Path(__file__).resolve().parents[2] / "configs" / "presets"


def read_config_file(path: str | Path) -> Mapping[str, object]:
    """Load a JSON or YAML mapping."""

    path = Path(path)
    text = path.read_text()
    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        import yaml

        data = yaml.safe_load(text) or {}
    elif suffix == ".json":
        data = json.loads(text or "{}")
    else:
        raise InvalidConfiguration(f"Unsupported config file type: {path.suffix}")
    if not isinstance(data, Mapping):
        raise InvalidConfiguration(f"Config {path.name} must decode to a mapping")
    return data


def _file_presets() -> Dict[str, Mapping[str, object]]:
    presets: Dict[str, Mapping[str, object]] = {}
    if not _PRESET_DIR.exists():
        return presets
    for file in sorted(_PRESET_DIR.iterdir()):
        if file.suffix.lower() not in {".yaml", ".yml", ".json"}:
            continue
        data = read_config_file(file)
        missing = {"data", "model", "train"} - set(data)
        if missing:
            raise InvalidConfiguration(
                f"Preset {file.name} is missing required sections: {', '.join(sorted(missing))}"
            )
        presets[file.stem] = json.loads(json.dumps(data))
    return presets


def presets() -> Mapping[str, Mapping[str, object]]:
    combined: Dict[str, Mapping[str, object]] = {name: deepcopy(cfg) for name, cfg in _PRESETS.items()}
    combined.update(_file_presets())
    return combined


def load_preset(name: str) -> Dict[str, object]:
    available = presets()
    try:
        return json.loads(json.dumps(available[name]))
    except KeyError as exc:
        raise InvalidConfiguration(f"Unknown preset {name!r}. Available: {', '.join(sorted(available))}") from exc


def merge_config(base: Mapping[str, object], override: Mapping[str, object]) -> Dict[str, object]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge_config(merged[key], value)  # type: ignore[arg-type]
        else:
            merged[key] = value
    return merged


def build_network(model_cfg: Mapping[str, object], *, seed: int = 0) -> Network:
    """Create a network from the ``model`` section of a config."""

    layers_cfg = model_cfg.get("layers")
    if not isinstance(layers_cfg, Sequence) or not layers_cfg:
        raise InvalidConfiguration("model.layers must be a non-empty list")
    specs: List[Tuple[int, object]] = []
    for idx, entry in enumerate(layers_cfg):
        if not isinstance(entry, Mapping) or "width" not in entry:
            raise InvalidConfiguration(f"model.layers[{idx}] needs a 'width'")
        specs.append((int(entry["width"]), parse_activation(str(entry.get("activation", "identity")))))
    if "input_width" not in model_cfg:
        raise InvalidConfiguration("model.input_width is required")
    return Network.build(
        int(model_cfg["input_width"]),
        specs,  # type: ignore[arg-type]
        parse_loss(str(model_cfg.get("loss", "cross_entropy"))),
        seed=seed,
        init=str(model_cfg.get("init", "uniform")),
    )


def load_datasets(
    data_cfg: Mapping[str, object], *, seed: int, run_dir: Path
) -> tuple[Dataset, Dataset | None, Dataset | None, Mapping[str, object]]:
    """Return ``(train, validation, test, provenance)`` for the ``data`` section."""

    name = str(data_cfg.get("name", "mnist"))
    options = dict(data_cfg.get("options", {}))  # type: ignore[arg-type]
    if name == "mnist_fixture":
        root = Path(options.pop("root", run_dir / "fixture"))
        mnist.build_offline_fixture(
            root,
            train_size=int(options.pop("train_size", 256)),
            test_size=int(options.pop("test_size", 64)),
        )
    elif name == "mnist":
        root = Path(options.pop("root", "mnist"))
    else:
        raise InvalidConfiguration(f"Unknown dataset: {name}")

    limit = options.get("limit")
    threshold = options.get("binarize_threshold")
    load_kwargs = {
        "limit": int(limit) if limit is not None else None,
        "binarize_threshold": float(threshold) if threshold is not None else None,
    }
    train = mnist.load_mnist(root, "train", **load_kwargs)
    test = mnist.load_mnist(root, "test", **load_kwargs) if mnist.has_split(root, "test") else None
    val_split = float(options.get("val_split", 0.0))
    train, val = split_dataset(train, val_split=val_split, seed=seed)
    provenance = {
        "name": name,
        "root": str(root),
        "train": len(train),
        "val": len(val) if val is not None else 0,
        "test": len(test) if test is not None else 0,
        "binarize_threshold": load_kwargs["binarize_threshold"],
    }
    return train, val, test, provenance


def run_pipeline(config: Mapping[str, object]) -> RunResult:
    data_cfg = dict(config["data"])  # type: ignore[arg-type]
    model_cfg = dict(config["model"])  # type: ignore[arg-type]
    train_cfg = dict(config["train"])  # type: ignore[arg-type]

    run_dir = _resolve_run_dir(train_cfg)
    run_dir.mkdir(parents=True, exist_ok=True)
    trainer_config = TrainerConfig.from_mapping(
        {**train_cfg, "checkpoint_dir": run_dir / "checkpoints" if train_cfg.get("checkpoints") else None}
    )

    train_set, val_set, test_set, provenance = load_datasets(data_cfg, seed=trainer_config.seed, run_dir=run_dir)
    network = build_network(model_cfg, seed=trainer_config.seed)
    _print_startup_summary(network=network, dataset=provenance, config=trainer_config)

    seed = trainer_config.seed
    train_jsonl = JsonlSink(run_dir / "metrics.jsonl", split="train", seed=seed)
    train_csv = CsvSink(run_dir / "metrics.csv", split="train")
    plots = PlotAdapter(run_dir, enable_plots=bool(train_cfg.get("enable_plots", False)))
    trainer = Trainer(network, trainer_config, callbacks=[train_jsonl, train_csv, plots])

    started = time.perf_counter()
    history = trainer.fit(train_set, validation=val_set)
    logger.info("training finished in %.2fs over %d steps", time.perf_counter() - started, history.steps)
    plots.close()

    test_metrics: Dict[str, float] = {}
    if test_set is not None:
        test_metrics = dict(trainer.evaluate(test_set))
        logger.info("test loss=%.6f accuracy=%.4f", test_metrics["loss"], test_metrics["accuracy"])
        (run_dir / "metrics_test.json").write_text(json.dumps(test_metrics, indent=2))

    model_path = Path(train_cfg.get("model_path") or run_dir / "model.snet")
    codec.save_file(network, model_path)

    safe_config = json.loads(json.dumps(config, default=str))
    (run_dir / "config.json").write_text(json.dumps(safe_config, indent=2))
    manifest = write_manifest(
        run_dir / "manifest.json",
        config=safe_config,
        model=network.describe(),
        dataset_provenance=provenance,
        results={
            "model_path": str(model_path),
            "best_epoch": history.best_epoch,
            "stopped_early": history.stopped_early,
            "test": test_metrics,
        },
    )
    summary_path = write_summary(train_jsonl.path, run_dir / "summary.json")
    return RunResult(
        steps=history.steps,
        model_path=str(model_path),
        metrics_path=str(train_jsonl.path),
        manifest_path=manifest,
        summary_path=summary_path,
        test_metrics=test_metrics,
    )


def evaluate_model(model_path: str | Path, data_cfg: Mapping[str, object], *, split: str = "test") -> Mapping[str, float]:
    """Score a saved model on one split of the configured dataset."""

    network = codec.load_file(model_path)
    name = str(data_cfg.get("name", "mnist"))
    options = dict(data_cfg.get("options", {}))  # type: ignore[arg-type]
    if name == "mnist_fixture":
        root = Path(options.get("root", Path(model_path).parent / "fixture"))
        if not root.exists():
            mnist.build_offline_fixture(root)
    else:
        root = Path(options.get("root", "mnist"))
    limit = options.get("limit")
    threshold = options.get("binarize_threshold")
    dataset = mnist.load_mnist(
        root,
        split,
        limit=int(limit) if limit is not None else None,
        binarize_threshold=float(threshold) if threshold is not None else None,
    )
    trainer = Trainer(network, TrainerConfig())
    return trainer.evaluate(dataset)


def _resolve_run_dir(train_cfg: Mapping[str, object]) -> Path:
    if "run_dir" in train_cfg:
        return Path(str(train_cfg["run_dir"]))
    return Path("runs") / time.strftime("%Y%m%d-%H%M%S")


def _print_startup_summary(*, network: Network, dataset: Mapping[str, object], config: TrainerConfig) -> None:
    print("=== scratchnet run ===")
    print(f"Dataset       : {dataset['name']} (train={dataset['train']}, val={dataset['val']}, test={dataset['test']})")
    print(f"Network       : {network}")
    print(f"Parameters    : {network.parameter_count()}")
    print(f"Epochs        : {config.epochs}")
    print(f"Batch size    : {config.batch_size}")
    print(f"Learning rate : {config.learning_rate}")
    print("======================")


__all__ = [
    "build_network",
    "evaluate_model",
    "load_datasets",
    "load_preset",
    "merge_config",
    "presets",
    "read_config_file",
    "run_pipeline",
]
