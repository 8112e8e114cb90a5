"""
Training Logging Utilities

PURPOSE:
Record what happens during Trainer.fit: console lines through the standard
logging module and a machine-readable trail on disk.

WHAT THIS FILE DOES:
1. configure_logging: one stream handler on the "blocknet" logger
2. MetricsLogger: per-step metrics in memory and appended to <name>_metrics.jsonl
3. log_training_step / log_validation: formatted console lines with warnings
4. save_training_summary: training_summary.json at the end of a run

PACKAGES USED:
- logging: console output
- json: JSONL metrics and the summary file
- math: non-finite checks (NaN/inf are written as null so files stay strict JSON)

COMMON ISSUES TO DETECT:
- Loss = NaN -> exploding gradients, LR too high
- Grad norm far above grad_clip -> clipping is doing all the work
- Val loss increasing -> overfitting
"""

import json
import logging
import math
import time
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LARGE_GRAD_NORM = 10.0


def configure_logging(level: int = logging.INFO) -> None:
    """Attach a stream handler to the blocknet logger (for scripts, not library code)."""
    package_logger = logging.getLogger("blocknet")
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)


def _jsonable(value: Any) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class MetricsLogger:
    """
    Step-indexed metric history for one training run.

    Every call to log() appends one JSON object per line:
        {"step": 12, "elapsed": 3.41, "train_loss": 0.52, "learning_rate": 0.001, ...}
    """

    def __init__(self, log_dir: Path, experiment_name: str = "training"):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.experiment_name = experiment_name
        self.log_file = self.log_dir / f"{experiment_name}_metrics.jsonl"

        self._history: Dict[str, List[float]] = defaultdict(list)
        self._start = time.time()
        logger.info(f"Writing metrics to {self.log_file}")

    def log(self, step: int, metrics: Dict[str, float]) -> None:
        entry = {"step": step, "elapsed": round(time.time() - self._start, 3)}
        for name, value in metrics.items():
            self._history[name].append(value)
            entry[name] = value
        with open(self.log_file, "a") as f:
            f.write(json.dumps(_jsonable(entry)) + "\n")

    def history(self, metric_name: str) -> List[float]:
        return list(self._history.get(metric_name, []))

    def latest(self, metric_name: str) -> Optional[float]:
        values = self._history.get(metric_name)
        return values[-1] if values else None

    def moving_average(self, metric_name: str, window: int = 100) -> Optional[float]:
        """Mean of the last `window` values (fewer if not logged that often yet)."""
        values = self._history.get(metric_name)
        if not values:
            return None
        recent = values[-window:]
        return sum(recent) / len(recent)


def log_training_step(step: int, loss: float, lr: float, grad_norm: float, samples_per_sec: float) -> None:
    msg = (
        f"Step {step:5d} | Loss: {loss:.4f} | LR: {lr:.2e} | "
        f"Grad: {grad_norm:.3f} | Samples/s: {samples_per_sec:.0f}"
    )
    if math.isnan(loss):
        logger.warning(f"{msg} [NaN loss]")
    elif grad_norm > LARGE_GRAD_NORM:
        logger.warning(f"{msg} [large gradients]")
    else:
        logger.info(msg)


def log_validation(step: int, val_loss: float, val_perplexity: Optional[float] = None) -> None:
    msg = f"Validation at step {step} | Loss: {val_loss:.4f}"
    if val_perplexity is not None:
        msg += f" | Perplexity: {val_perplexity:.2f}"
    logger.info(msg)


def save_training_summary(log_dir: Path, config: dict, final_metrics: dict) -> Path:
    """
    Write training_summary.json.

    Args:
        log_dir: Directory of the run's logs
        config: TrainingConfig.to_dict()
        final_metrics: Values returned by Trainer.fit

    Returns:
        Path of the summary file
    """
    summary_file = Path(log_dir) / "training_summary.json"
    summary = {"config": config, "final_metrics": final_metrics, "finished_at": time.time()}
    with open(summary_file, "w") as f:
        json.dump(_jsonable(summary), f, indent=2)
    logger.info(f"Training summary saved to {summary_file}")
    return summary_file
