"""
Model Checkpointing Utilities

PURPOSE:
Save and load training checkpoints. Block parameters go through the binary
.params format (Model.save / Model.load); optimizer state and training
counters are stored next to them.

WHAT THIS FILE DOES:
1. Save parameters + optimizer state + training state per step
2. Keep a copy of the best (lowest validation loss) parameters
3. Load the latest or a specific checkpoint to resume training
4. Remove old checkpoints, keeping only the last N

PACKAGES USED:
- torch: optimizer state_dict save/load
- pathlib: File management
- json: Save metadata

FILES FROM THIS PROJECT:
- model/model.py: Model.save / Model.load (.params files)

CHECKPOINT FILES (per step N):
- checkpoint_step-NNNN.params: block parameters
- checkpoint_step-NNNN.json: model properties
- checkpoint_step-NNNN.state.json: step, epoch, val_loss, train_config
- checkpoint_step-NNNN.optim.pt: optimizer state_dict
"""

import json
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional

import torch

from blocknet.model.model import PARAMS_SUFFIX, Model

logger = logging.getLogger(__name__)

CHECKPOINT_NAME = "checkpoint_step"
BEST_NAME = "best_model"

_STEP_PATTERN = re.compile(rf"^{CHECKPOINT_NAME}-(\d+){re.escape(PARAMS_SUFFIX)}$")


class CheckpointManager:
    """
    Manages model checkpoints during training.

    Handles saving, loading, and cleanup of checkpoint files.
    """

    def __init__(self, checkpoint_dir: Path, keep_last_n: int = 3):
        """
        Args:
            checkpoint_dir: Directory to save checkpoints
            keep_last_n: Number of recent checkpoints to keep (<= 0 keeps all)
        """
        self.checkpoint_dir = Path(checkpoint_dir)
        self.checkpoint_dir.mkdir(parents=True, exist_ok=True)
        self.keep_last_n = keep_last_n

        self.best_val_loss = float("inf")

        logger.debug(f"Checkpoint directory: {self.checkpoint_dir}")

    def save_checkpoint(
        self,
        model: Model,
        step: int,
        epoch: int,
        val_loss: float,
        train_config: dict,
        optimizer: Optional[torch.optim.Optimizer] = None,
    ) -> Path:
        """
        Save a checkpoint.

        Args:
            model: Model whose block parameters are saved
            step: Current training step
            epoch: Current epoch
            val_loss: Validation loss (inf when not evaluated)
            train_config: Training configuration
            optimizer: Optimizer to save (optional)

        Returns:
            Path of the written .params file
        """
        params_path = model.save(self.checkpoint_dir, name=CHECKPOINT_NAME, epoch=step)
        stem = params_path.with_suffix("")

        state = {
            "step": step,
            "epoch": epoch,
            "val_loss": val_loss,
            "best_val_loss": min(self.best_val_loss, val_loss),
            "train_config": train_config,
        }
        with open(f"{stem}.state.json", "w") as f:
            json.dump(state, f, indent=2)

        if optimizer is not None:
            torch.save(optimizer.state_dict(), f"{stem}.optim.pt")

        if val_loss < self.best_val_loss:
            self.best_val_loss = val_loss
            model.save(self.checkpoint_dir, name=BEST_NAME)
            logger.info(f"Best model saved (val_loss: {val_loss:.4f})")

        self._cleanup_old_checkpoints()
        return params_path

    def list_checkpoints(self) -> List[int]:
        """Steps with a checkpoint on disk, ascending."""
        steps = []
        for path in self.checkpoint_dir.glob(f"{CHECKPOINT_NAME}-*{PARAMS_SUFFIX}"):
            match = _STEP_PATTERN.match(path.name)
            if match:
                steps.append(int(match.group(1)))
        return sorted(steps)

    def _cleanup_old_checkpoints(self):
        """Remove old checkpoints, keeping only last N."""
        if self.keep_last_n <= 0:
            return
        steps = self.list_checkpoints()
        for step in steps[: -self.keep_last_n]:
            stem = self.checkpoint_dir / f"{CHECKPOINT_NAME}-{step:04d}"
            for suffix in (PARAMS_SUFFIX, ".json", ".state.json", ".optim.pt"):
                path = Path(f"{stem}{suffix}")
                if path.exists():
                    path.unlink()
            logger.debug(f"Removed old checkpoint: {stem.name}")

    def load_checkpoint(
        self,
        model: Model,
        optimizer: Optional[torch.optim.Optimizer] = None,
        step: Optional[int] = None,
    ) -> Dict:
        """
        Load a checkpoint.

        Args:
            model: Model to load parameters into
            optimizer: Optimizer to load state into (optional)
            step: Specific step to load (or None for latest)

        Returns:
            Checkpoint state dictionary (step, epoch, val_loss, ...)

        Raises:
            FileNotFoundError: No checkpoint in the directory
        """
        if step is None:
            steps = self.list_checkpoints()
            if not steps:
                raise FileNotFoundError(f"No checkpoint found in {self.checkpoint_dir}")
            step = steps[-1]

        params_path = model.load(self.checkpoint_dir, name=CHECKPOINT_NAME, epoch=step)
        stem = params_path.with_suffix("")

        state: Dict = {"step": step}
        state_path = Path(f"{stem}.state.json")
        if state_path.exists():
            with open(state_path, "r") as f:
                state = json.load(f)
            self.best_val_loss = min(self.best_val_loss, state.get("best_val_loss", float("inf")))

        optim_path = Path(f"{stem}.optim.pt")
        if optimizer is not None and optim_path.exists():
            optimizer.load_state_dict(torch.load(optim_path, map_location=model.device))

        logger.info(f"Loaded checkpoint from step {state['step']}")
        return state

    def has_checkpoint(self) -> bool:
        """Check if a checkpoint exists."""
        return bool(self.list_checkpoints())
