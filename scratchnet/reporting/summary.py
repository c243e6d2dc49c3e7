"""Deterministic run summaries built from the JSONL metric log."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, Mapping

import numpy as np


def _columns(records: Iterable[Mapping[str, object]]) -> Mapping[str, list[float]]:
    columns: dict[str, list[float]] = {}
    for record in records:
        for key, value in record.items():
            if key in {"epoch", "seed"} or isinstance(value, bool):
                continue
            if isinstance(value, (int, float)):
                columns.setdefault(key, []).append(float(value))
    return columns


def write_summary(metrics_jsonl: str | Path, out_summary_json: str | Path) -> str:
    """Summarise every numeric metric as min/max/mean/last."""

    metrics_path = Path(metrics_jsonl)
    out_path = Path(out_summary_json)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    records: list[Mapping[str, object]] = []
    if metrics_path.exists():
        for line in metrics_path.read_text().splitlines():
            if line.strip():
                records.append(json.loads(line))

    summary_metrics = {}
    for name, values in _columns(records).items():
        arr = np.asarray(values, dtype=np.float64)
        summary_metrics[name] = {
            "min": float(arr.min()),
            "max": float(arr.max()),
            "mean": float(arr.mean()),
            "last": float(arr[-1]),
        }
    summary = {"version": 1, "epochs": len(records), "metrics": summary_metrics}
    out_path.write_text(json.dumps(summary, sort_keys=True, indent=2))
    return str(out_path)


__all__ = ["write_summary"]
