"""Command line entry point for scratchnet: train, evaluate or inspect models."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Iterable

from scratchnet.core import codec
from scratchnet.reporting.artifacts import describe_model
from scratchnet.training import pipelines


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    preset_names = sorted(pipelines.presets().keys())
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--preset",
        choices=preset_names,
        default="fixture-smoke",
        help="Preset configuration to execute",
    )
    parser.add_argument("--config", type=Path, help="Optional JSON/YAML config override")
    parser.add_argument("--data-root", help="Directory holding the MNIST IDX files")
    parser.add_argument("--epochs", type=int, help="Override the number of epochs")
    parser.add_argument("--lr", type=float, help="Override the learning rate")
    parser.add_argument("--batch-size", type=int, help="Override the batch size")
    parser.add_argument("--seed", type=int, help="Seed used for initialisation and shuffling")
    parser.add_argument(
        "--shuffle",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Permute the sample order every epoch",
    )
    parser.add_argument(
        "--binarize",
        type=float,
        metavar="THRESHOLD",
        help="Binarize inputs at THRESHOLD to match black/white inference input",
    )
    parser.add_argument("--run-dir", help="Directory for metrics and artefacts")
    parser.add_argument("--model-path", help="Where to write the trained model")
    parser.add_argument("--enable-plots", action="store_true", help="Write a loss curve")
    parser.add_argument(
        "--evaluate", type=Path, metavar="MODEL", help="Evaluate a saved model on the test split and exit"
    )
    parser.add_argument("--inspect", type=Path, metavar="MODEL", help="Print a model header and exit")
    parser.add_argument("--list-presets", action="store_true", help="List available presets and exit")
    parser.add_argument("--dump-config", type=Path, help="Dump the resolved config to a JSON file")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...)")
    return parser.parse_args(argv)


def _resolve_config(args: argparse.Namespace) -> dict:
    config = pipelines.load_preset(args.preset)
    if args.config:
        override = pipelines.read_config_file(args.config)
        if {"data", "model", "train"} <= set(override.keys()):
            config = json.loads(json.dumps(override))
        else:
            config = pipelines.merge_config(config, override)

    train = config.setdefault("train", {})
    for key, value in (
        ("epochs", args.epochs),
        ("lr", args.lr),
        ("batch_size", args.batch_size),
        ("seed", args.seed),
        ("shuffle", args.shuffle),
        ("run_dir", args.run_dir),
        ("model_path", args.model_path),
    ):
        if value is not None:
            train[key] = value
    if args.enable_plots:
        train["enable_plots"] = True

    options = config.setdefault("data", {}).setdefault("options", {})
    if args.data_root:
        options["root"] = args.data_root
    if args.binarize is not None:
        options["binarize_threshold"] = float(args.binarize)
    return config


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.list_presets:
        for name in sorted(pipelines.presets().keys()):
            print(name)
        raise SystemExit(0)

    if args.inspect:
        header = codec.read_header(args.inspect.read_bytes())
        payload = {
            "version": header.version,
            "parameters": header.parameter_count,
            "input_width": header.input_width,
            "output_width": header.output_width,
        }
        payload.update(describe_model(codec.load_file(args.inspect).describe()))
        print(json.dumps(payload, sort_keys=True))
        raise SystemExit(0)

    config = _resolve_config(args)

    if args.dump_config:
        args.dump_config.parent.mkdir(parents=True, exist_ok=True)
        args.dump_config.write_text(json.dumps(config, indent=2))

    if args.evaluate:
        metrics = pipelines.evaluate_model(args.evaluate, config["data"])
        print(json.dumps({k: float(v) for k, v in metrics.items()}, sort_keys=True))
        raise SystemExit(0)

    result = pipelines.run_pipeline(config)
    print(
        json.dumps(
            {
                "steps": result.steps,
                "model": result.model_path,
                "metrics": result.metrics_path,
                "manifest": result.manifest_path,
                "summary": result.summary_path,
                "test": result.test_metrics,
            },
            sort_keys=True,
        )
    )


if __name__ == "__main__":
    main()
