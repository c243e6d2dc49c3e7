"""Headless-safe plotting adapter."""

from __future__ import annotations

from pathlib import Path
from typing import List, Tuple


class PlotAdapter:
    """Collect per-step loss and optionally write a matplotlib figure."""

    def __init__(self, run_dir: str | Path, enable_plots: bool = False):
        self.enable_plots = enable_plots
        self.run_dir = Path(run_dir)
        self._steps: List[Tuple[int, float]] = []
        self._epochs: List[Tuple[int, float]] = []
        if self.enable_plots:
            self.run_dir.mkdir(parents=True, exist_ok=True)

    def on_step(self, step: int, metrics) -> None:
        if self.enable_plots:
            self._steps.append((step, float(metrics.get("loss", 0.0))))

    def on_epoch(self, epoch: int, metrics) -> None:
        if self.enable_plots and "val_loss" in metrics:
            self._epochs.append((epoch, float(metrics["val_loss"])))

    def close(self) -> Path | None:
        if not self.enable_plots or not self._steps:
            return None
        import matplotlib

        matplotlib.use("Agg", force=True)
        import matplotlib.pyplot as plt  # imported lazily for headless safety

        steps, losses = zip(*self._steps)
        fig, ax = plt.subplots()
        ax.plot(steps, losses, label="train (per batch)")
        if self._epochs:
            per_epoch = max(1, len(steps) // max(1, len(self._epochs)))
            ax.plot([e * per_epoch for e, _ in self._epochs], [v for _, v in self._epochs], "o-", label="validation")
            ax.legend()
        ax.set_xlabel("Step")
        ax.set_ylabel("Loss")
        ax.set_title("Training Curve")
        plot_path = self.run_dir / "loss.png"
        fig.savefig(plot_path)
        plt.close(fig)
        return plot_path


__all__ = ["PlotAdapter"]
