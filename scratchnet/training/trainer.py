"""Mini-batch stochastic gradient descent over a :class:`Network`."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Sequence

import numpy as np

from ..core import codec
from ..core import losses as loss_lib
from ..core.errors import InvalidConfiguration, NumericInstability, ShapeMismatch
from ..core.network import Network
from ..core.types import Array, Dataset, EpochSummary, TrainingHistory, TrainingSample
from .metrics import correct_count

logger = logging.getLogger(__name__)


def _coerce(kind: type, name: str, value: object):
    try:
        return kind(value)
    except (TypeError, ValueError) as exc:
        raise InvalidConfiguration(f"{name} must be a {kind.__name__}, got {value!r}") from exc


@dataclass(frozen=True)
class TrainerConfig:
    """Recognised training options.

    ``batch_size=1`` is pure per-sample SGD. ``shuffle`` permutes the sample
    order every epoch using a generator seeded from ``seed``.
    """

    learning_rate: float = 0.01
    epochs: int = 1
    batch_size: int = 1
    shuffle: bool = True
    seed: int = 0
    early_stopping_patience: int | None = None
    checkpoint_dir: str | Path | None = None

    def __post_init__(self) -> None:
        if not (isinstance(self.learning_rate, (int, float)) and math.isfinite(self.learning_rate)):
            raise InvalidConfiguration(f"learning_rate must be a finite number, got {self.learning_rate!r}")
        if self.learning_rate <= 0:
            raise InvalidConfiguration(f"learning_rate must be positive, got {self.learning_rate}")
        if int(self.epochs) != self.epochs or self.epochs <= 0:
            raise InvalidConfiguration(f"epochs must be a positive integer, got {self.epochs!r}")
        if int(self.batch_size) != self.batch_size or self.batch_size <= 0:
            raise InvalidConfiguration(f"batch_size must be a positive integer, got {self.batch_size!r}")
        if self.early_stopping_patience is not None and self.early_stopping_patience <= 0:
            raise InvalidConfiguration(
                f"early_stopping_patience must be positive, got {self.early_stopping_patience}"
            )

    @classmethod
    def from_mapping(cls, options: Mapping[str, object]) -> "TrainerConfig":
        known = {
            "learning_rate": _coerce(float, "lr", options.get("lr", options.get("learning_rate", cls.learning_rate))),
            "epochs": _coerce(int, "epochs", options.get("epochs", cls.epochs)),
            "batch_size": _coerce(int, "batch_size", options.get("batch_size", cls.batch_size)),
            "shuffle": bool(options.get("shuffle", cls.shuffle)),
            "seed": _coerce(int, "seed", options.get("seed", cls.seed)),
        }
        patience = options.get("early_stopping_patience")
        if patience is not None:
            known["early_stopping_patience"] = _coerce(int, "early_stopping_patience", patience)
        if options.get("checkpoint_dir") is not None:
            known["checkpoint_dir"] = options["checkpoint_dir"]
        return cls(**known)


def as_dataset(data: Dataset | Sequence[TrainingSample] | tuple[Array, Array]) -> Dataset:
    if isinstance(data, Dataset):
        return data
    if isinstance(data, tuple) and len(data) == 2 and not isinstance(data[0], TrainingSample):
        return Dataset(inputs=data[0], targets=data[1])
    return Dataset.from_samples(list(data))


class Trainer:
    """Drive epochs and batches over a dataset, updating ``network`` in place."""

    def __init__(
        self,
        network: Network,
        config: TrainerConfig,
        callbacks: Sequence[object] | None = None,
    ) -> None:
        self.network = network
        self.config = config
        self.callbacks = list(callbacks or [])
        self._stop_requested = False
        self._step = 0

    def stop(self) -> None:
        """Request that :meth:`fit` returns at the next batch boundary."""

        self._stop_requested = True

    def fit(
        self,
        train: Dataset | Sequence[TrainingSample] | tuple[Array, Array],
        *,
        validation: Dataset | Sequence[TrainingSample] | tuple[Array, Array] | None = None,
    ) -> TrainingHistory:
        train_set = as_dataset(train)
        val_set = as_dataset(validation) if validation is not None else None
        if len(train_set) == 0:
            raise InvalidConfiguration("training set is empty")
        if val_set is not None and len(val_set) == 0:
            raise InvalidConfiguration("validation set is empty")
        self._check_widths(train_set)
        if val_set is not None:
            self._check_widths(val_set)

        cfg = self.config
        rng = np.random.default_rng(cfg.seed)
        history = TrainingHistory()
        best_loss = float("inf")
        best_state: Mapping[str, Array] | None = None
        epochs_no_improve = 0
        checkpoint_dir = Path(cfg.checkpoint_dir) if cfg.checkpoint_dir is not None else None
        self._stop_requested = False

        logger.info(
            "training %s on %d samples: epochs=%d batch_size=%d lr=%g shuffle=%s",
            self.network,
            len(train_set),
            cfg.epochs,
            cfg.batch_size,
            cfg.learning_rate,
            cfg.shuffle,
        )
        for epoch in range(1, cfg.epochs + 1):
            summary = self._run_epoch(epoch, train_set, val_set, rng)
            history.epochs.append(summary)
            self._emit_epoch(epoch, summary.as_metrics())
            logger.info(
                "epoch %d/%d loss=%.6f accuracy=%.4f%s",
                epoch,
                cfg.epochs,
                summary.loss,
                summary.accuracy,
                "" if summary.val_loss is None else f" val_loss={summary.val_loss:.6f}",
            )

            monitored = summary.val_loss if summary.val_loss is not None else summary.loss
            if monitored < best_loss - 1e-12:
                best_loss = monitored
                epochs_no_improve = 0
                history.best_epoch = epoch
                best_state = self.network.state_dict()
                if checkpoint_dir is not None:
                    codec.save_file(self.network, checkpoint_dir / "best.snet")
            else:
                epochs_no_improve += 1
            if checkpoint_dir is not None:
                codec.save_file(self.network, checkpoint_dir / "last.snet")

            if self._stop_requested:
                history.interrupted = True
                logger.info("training interrupted after epoch %d", epoch)
                break
            patience = cfg.early_stopping_patience
            if patience and epochs_no_improve >= patience:
                history.stopped_early = True
                if best_state is not None:
                    self.network.load_state_dict(best_state)
                logger.info("early stopping at epoch %d, restored epoch %s", epoch, history.best_epoch)
                break
        return history

    def evaluate(
        self,
        data: Dataset | Sequence[TrainingSample] | tuple[Array, Array],
        batch_size: int | None = None,
    ) -> Mapping[str, float]:
        """Average loss and accuracy over ``data`` without updating parameters."""

        dataset = as_dataset(data)
        if len(dataset) == 0:
            raise InvalidConfiguration("evaluation set is empty")
        self._check_widths(dataset)
        size = batch_size or max(self.config.batch_size, 256)
        total_loss = 0.0
        correct = 0
        for start in range(0, len(dataset), size):
            inputs = dataset.inputs[start : start + size]
            targets = dataset.targets[start : start + size]
            outputs = self.network.predict(inputs)
            total_loss += loss_lib.loss(self.network.loss, outputs, targets) * inputs.shape[0]
            correct += correct_count(outputs, targets)
        n = len(dataset)
        return {"loss": total_loss / n, "accuracy": correct / n}

    # ------------------------------------------------------------------
    # Internal helpers

    def _run_epoch(
        self,
        epoch: int,
        train_set: Dataset,
        val_set: Dataset | None,
        rng: np.random.Generator,
    ) -> EpochSummary:
        cfg = self.config
        n = len(train_set)
        order = rng.permutation(n) if cfg.shuffle else np.arange(n)
        started = time.perf_counter()
        loss_sum = 0.0
        correct = 0
        seen = 0
        batches = 0
        for batch_idx, start in enumerate(range(0, n, cfg.batch_size)):
            if self._stop_requested:
                break
            idx = order[start : start + cfg.batch_size]
            inputs = train_set.inputs[idx]
            targets = train_set.targets[idx]
            try:
                batch_loss = self.network.train_step(inputs, targets, cfg.learning_rate)
            except NumericInstability as exc:
                logger.error("aborting: numeric instability at epoch %d batch %d: %s", epoch, batch_idx, exc)
                raise NumericInstability(f"epoch {epoch}, batch {batch_idx}: {exc}") from exc
            outputs = self.network.last_outputs
            loss_sum += batch_loss * idx.size
            correct += correct_count(outputs, targets)
            seen += idx.size
            batches += 1
            self._step += 1
            self._emit_step(self._step, {"loss": batch_loss})

        summary = EpochSummary(
            epoch=epoch,
            loss=loss_sum / seen if seen else float("nan"),
            accuracy=correct / seen if seen else 0.0,
            batches=batches,
            samples=seen,
            duration=time.perf_counter() - started,
        )
        if val_set is not None:
            val_metrics = self.evaluate(val_set)
            summary = replace(
                summary, val_loss=val_metrics["loss"], val_accuracy=val_metrics["accuracy"]
            )
        return summary

    def _check_widths(self, dataset: Dataset) -> None:
        if dataset.inputs.shape[1] != self.network.input_width:
            raise ShapeMismatch(
                f"dataset inputs have width {dataset.inputs.shape[1]}, network expects {self.network.input_width}"
            )
        if dataset.targets.shape[1] != self.network.output_width:
            raise ShapeMismatch(
                f"dataset targets have width {dataset.targets.shape[1]}, network produces {self.network.output_width}"
            )

    def _emit_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        for callback in self.callbacks:
            if hasattr(callback, "on_epoch"):
                callback.on_epoch(epoch, metrics)  # type: ignore[attr-defined]
            elif callable(callback):
                callback(epoch, metrics)

    def _emit_step(self, step: int, metrics: Mapping[str, float]) -> None:
        for callback in self.callbacks:
            if hasattr(callback, "on_step"):
                callback.on_step(step, metrics)  # type: ignore[attr-defined]


__all__ = ["Trainer", "TrainerConfig", "as_dataset"]
