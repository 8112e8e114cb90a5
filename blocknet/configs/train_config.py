"""
Training Configuration

PURPOSE:
Central place for all training hyperparameters. The same block can be trained
with different strategies by swapping this config.

WHAT THIS FILE CONTAINS:
- Initializer applied to parameters without their own default
- Loss and optimizer names (resolved in training/loss.py and training/trainer.py)
- Batch size, learning rate, epochs
- Learning rate schedule parameters
- Gradient clipping threshold
- Checkpoint and logging intervals

PACKAGES USED:
- dataclasses: Clean config structure
- json: Save/load configs

DESIGN DECISIONS:
- initializer defaults to "xavier"; bias/beta/running stats ignore it
- max_steps = -1 means train for num_epochs
- grad_clip <= 0 disables clipping
"""

from dataclasses import asdict, dataclass, fields
from pathlib import Path
import json


@dataclass
class TrainingConfig:
    """Training hyperparameters."""

    # Parameters
    initializer: str = "xavier"  # ones / zeros / normal / uniform / xavier

    # Objective
    loss: str = "softmax_cross_entropy"  # or l2 / l1 / sigmoid_bce

    # Batch size
    batch_size: int = 32

    # Training duration
    num_epochs: int = 10
    max_steps: int = -1  # -1 means train for num_epochs

    # Optimization
    optimizer: str = "adamw"  # adamw / adam / sgd
    learning_rate: float = 1e-3
    weight_decay: float = 0.01
    betas: tuple = (0.9, 0.999)
    eps: float = 1e-8
    momentum: float = 0.0  # sgd only

    # Learning rate schedule
    warmup_steps: int = 0
    lr_decay: str = "constant"  # 'cosine' or 'linear' or 'constant'
    min_lr: float = 1e-5

    # Gradient clipping
    grad_clip: float = 1.0

    # Evaluation
    eval_interval: int = 500  # Evaluate every N steps (0 = end of epoch only)
    eval_iters: int = 100  # Number of eval batches

    # Checkpointing
    checkpoint_dir: str = "./checkpoints"
    save_interval: int = 1000  # Save checkpoint every N steps (0 = never)
    keep_last_n: int = 3

    # Logging
    log_interval: int = 10
    log_dir: str = "./logs"

    # Device
    device: str = "auto"  # 'cuda', 'cpu' or 'auto'

    # Reproducibility
    seed: int = 42

    def __post_init__(self):
        """Validate configuration."""
        self.betas = tuple(self.betas)
        assert self.batch_size > 0, "batch_size must be positive"
        assert self.learning_rate > 0, "learning_rate must be positive"
        assert self.num_epochs > 0, "num_epochs must be positive"
        assert self.lr_decay in ("cosine", "linear", "constant"), f"Unknown lr_decay: {self.lr_decay}"

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        config = asdict(self)
        config["betas"] = list(self.betas)
        return config

    def save(self, path: Path):
        """Save config to JSON."""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def from_dict(cls, config_dict: dict) -> "TrainingConfig":
        """Load from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in config_dict.items() if k in known})

    @classmethod
    def from_file(cls, path: Path) -> "TrainingConfig":
        """Load from JSON file."""
        with open(path, "r") as f:
            config_dict = json.load(f)
        return cls.from_dict(config_dict)
