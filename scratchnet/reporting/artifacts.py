"""Run artefact helpers."""

from __future__ import annotations

import json
import platform
import time
from dataclasses import asdict
from pathlib import Path
from typing import Mapping

import numpy as np

from ..core.types import ModelDescription


def describe_model(description: ModelDescription) -> Mapping[str, object]:
    return {
        "loss": description.loss.value,
        "layers": [
            {**asdict(layer), "activation": layer.activation.value} for layer in description.layers
        ],
    }


def write_manifest(
    path: str | Path,
    *,
    config: Mapping[str, object],
    model: ModelDescription,
    dataset_provenance: Mapping[str, object],
    results: Mapping[str, object] | None = None,
) -> str:
    """Write a manifest JSON file capturing what produced a model file."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    manifest = {
        "generated_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "config": config,
        "model": describe_model(model),
        "dataset": dict(dataset_provenance),
        "results": dict(results or {}),
        "environment": {
            "python": platform.python_version(),
            "numpy": np.__version__,
        },
    }
    path.write_text(json.dumps(manifest, indent=2))
    return str(path)


__all__ = ["describe_model", "write_manifest"]
