"""
Trainer Class

PURPOSE:
Core training loop logic for a Model. Handles initialization, forward pass,
backward pass, optimization, and evaluation.

WHAT THIS FILE DOES:
1. Initialize the model's block with the configured initializer
2. Build the optimizer over the trainable parameter arrays
3. Training step: forward, loss, backward, clip, optimizer step
4. Evaluation: compute loss over a validation loader
5. fit(): epoch loop with LR schedule, logging and checkpointing

TRAINING ALGORITHM:
For each batch:
  1. Forward pass: block(inputs, training=True) -> predictions
  2. Compute loss: named loss from training/loss.py
  3. Backward pass: loss.backward()
  4. Clip gradients: prevent explosion
  5. Optimizer step: update parameter arrays in place
  6. Update learning rate: warmup + decay

PACKAGES USED:
- torch: autograd and torch.optim
- time: Track speed

FILES FROM THIS PROJECT:
- model/model.py: Model (block + device + dtype)
- training/loss.py: Loss lookup
- training/initializer.py: Initializer lookup
- training/utils.py: Helper functions
- utils/logging.py: Metrics logging
- utils/checkpoints.py: Save/load

THREADING:
A Trainer and its Model form one single-writer context. Do not call
train_batch / forward / evaluate concurrently on the same Trainer.
"""

import logging
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

import torch

from blocknet.errors import UninitializedStateError
from blocknet.training.initializer import get_initializer
from blocknet.training.loss import get_loss
from blocknet.training.utils import (
    clip_grad_norm,
    compute_perplexity,
    get_lr_with_warmup,
    set_learning_rate,
)
from blocknet.utils.checkpoints import CheckpointManager
from blocknet.utils.logging import (
    MetricsLogger,
    log_training_step,
    log_validation,
    save_training_summary,
)

logger = logging.getLogger(__name__)

Inputs = Union[torch.Tensor, Sequence[torch.Tensor]]


def _as_list(inputs: Inputs) -> List[torch.Tensor]:
    if isinstance(inputs, torch.Tensor):
        return [inputs]
    return list(inputs)


class Trainer:
    """
    Training orchestrator for a Model.

    Handles:
    - Parameter initialization
    - Forward/backward passes
    - Optimization
    - Evaluation
    - Checkpointing and logging (fit)
    """

    def __init__(self, model, config):
        """
        Args:
            model: Model whose block is trained
            config: TrainingConfig object
        """
        self.model = model
        self.config = config
        self.loss_fn = get_loss(config.loss)
        self.initializer = get_initializer(config.initializer)
        self.optimizer: Optional[torch.optim.Optimizer] = None

        self.global_step = 0
        self.current_epoch = 0
        self.best_val_loss = float("inf")

    # ------------------------------------------------------------------
    # Setup

    def initialize(self, *input_shapes: Sequence[int]) -> List[tuple]:
        """
        Initialize the block for the given input shapes and build the optimizer.

        Returns:
            Output shapes of the block
        """
        block = self.model.block
        output_shapes = block.initialize(
            self.model.device, self.model.dtype, *input_shapes, initializer=self.initializer
        )
        self.optimizer = self._build_optimizer()
        logger.info(
            f"Trainer initialized: device={self.model.device}, "
            f"input shapes={[tuple(s) for s in input_shapes]}, output shapes={output_shapes}"
        )
        return output_shapes

    def trainable_arrays(self) -> List[torch.Tensor]:
        return [
            param.array
            for _, param in self.model.block.parameters()
            if param.is_initialized and param.array.requires_grad
        ]

    def _build_optimizer(self) -> torch.optim.Optimizer:
        arrays = self.trainable_arrays()
        name = self.config.optimizer.lower()
        if name == "adamw":
            return torch.optim.AdamW(
                arrays,
                lr=self.config.learning_rate,
                betas=self.config.betas,
                eps=self.config.eps,
                weight_decay=self.config.weight_decay,
            )
        if name == "adam":
            return torch.optim.Adam(
                arrays,
                lr=self.config.learning_rate,
                betas=self.config.betas,
                eps=self.config.eps,
                weight_decay=self.config.weight_decay,
            )
        if name == "sgd":
            return torch.optim.SGD(
                arrays,
                lr=self.config.learning_rate,
                momentum=self.config.momentum,
                weight_decay=self.config.weight_decay,
            )
        raise ValueError(f"Unknown optimizer: {self.config.optimizer}")

    def _require_optimizer(self) -> torch.optim.Optimizer:
        if self.optimizer is None:
            if not self.model.block.is_initialized:
                raise UninitializedStateError("Call trainer.initialize(*input_shapes) before training")
            # Block was initialized elsewhere (e.g. loaded from disk)
            self.optimizer = self._build_optimizer()
        return self.optimizer

    def _to_device(self, tensors: Iterable[torch.Tensor]) -> List[torch.Tensor]:
        # floating-point data follows the parameter dtype; ids and class labels stay integer
        moved = []
        for t in tensors:
            if t.is_floating_point():
                moved.append(t.to(self.model.device, self.model.dtype))
            else:
                moved.append(t.to(self.model.device))
        return moved

    # ------------------------------------------------------------------
    # Steps

    def forward(self, inputs: Inputs) -> List[torch.Tensor]:
        """Forward pass in training mode with gradient recording."""
        with torch.enable_grad():
            return self.model.block.forward(self._to_device(_as_list(inputs)), training=True)

    def train_batch(self, inputs: Inputs, labels: Inputs) -> Dict[str, float]:
        """
        Single training step.

        Args:
            inputs: Input tensor(s)
            labels: Label tensor(s), matched to outputs by position

        Returns:
            Dictionary with step metrics (loss, grad_norm, batch_size, samples_per_sec)
        """
        optimizer = self._require_optimizer()
        step_start_time = time.time()

        inputs = self._to_device(_as_list(inputs))
        labels = self._to_device(_as_list(labels))

        optimizer.zero_grad()
        outputs = self.forward(inputs)
        loss = self._compute_loss(outputs, labels)
        loss.backward()

        # Clip gradients (CRITICAL for stability)
        grad_norm = clip_grad_norm(self.trainable_arrays(), self.config.grad_clip)

        self.step()

        batch_size = inputs[0].shape[0] if inputs[0].dim() > 0 else 1
        step_time = time.time() - step_start_time
        return {
            "loss": loss.item(),
            "grad_norm": grad_norm,
            "batch_size": batch_size,
            "samples_per_sec": batch_size / step_time if step_time > 0 else 0.0,
        }

    def step(self) -> None:
        """Apply one optimizer update from the accumulated gradients."""
        self._require_optimizer().step()

    def _compute_loss(self, outputs: List[torch.Tensor], labels: List[torch.Tensor]) -> torch.Tensor:
        if len(labels) > len(outputs):
            raise ValueError(f"Got {len(labels)} labels for {len(outputs)} outputs")
        losses = [self.loss_fn(pred, label) for pred, label in zip(outputs, labels)]
        return losses[0] if len(losses) == 1 else torch.stack(losses).sum()

    @torch.no_grad()
    def evaluate_batch(self, inputs: Inputs, labels: Inputs) -> float:
        """Loss for one batch in inference mode."""
        outputs = self.model.block.forward(self._to_device(_as_list(inputs)), training=False)
        return self._compute_loss(outputs, self._to_device(_as_list(labels))).item()

    def evaluate(self, loader: Iterable, max_batches: Optional[int] = None) -> Dict[str, float]:
        """
        Evaluate on a loader of (inputs, labels) batches.

        Returns:
            Dictionary with val_loss, plus val_perplexity for softmax_cross_entropy
        """
        total, count = 0.0, 0
        for batch_idx, (inputs, labels) in enumerate(loader):
            if max_batches is not None and batch_idx >= max_batches:
                break
            total += self.evaluate_batch(inputs, labels)
            count += 1

        val_loss = total / count if count else float("nan")
        metrics = {"val_loss": val_loss}
        # perplexity is only defined for a token-level cross-entropy
        if self.config.loss == "softmax_cross_entropy":
            metrics["val_perplexity"] = compute_perplexity(val_loss)
        log_validation(self.global_step, val_loss, metrics.get("val_perplexity"))
        return metrics

    # ------------------------------------------------------------------
    # Loop

    def fit(self, train_loader, val_loader=None, experiment_name: str = "training") -> Dict[str, float]:
        """
        Main training loop.

        Args:
            train_loader: Iterable of (inputs, labels) batches (len() is used for the LR schedule)
            val_loader: Optional validation loader
            experiment_name: Name for the metrics file

        Returns:
            Final metrics (final_train_loss, best_val_loss, total_steps)
        """
        config = self.config
        self._require_optimizer()

        metrics_logger = MetricsLogger(log_dir=Path(config.log_dir), experiment_name=experiment_name)
        checkpoint_manager = CheckpointManager(
            checkpoint_dir=Path(config.checkpoint_dir), keep_last_n=config.keep_last_n
        )

        if config.max_steps > 0:
            total_steps = config.max_steps
        else:
            total_steps = len(train_loader) * config.num_epochs

        logger.info(f"Starting training: {config.num_epochs} epochs, {total_steps} steps")

        last_loss = float("nan")
        done = False
        for epoch in range(config.num_epochs):
            self.current_epoch = epoch
            epoch_start_time = time.time()
            epoch_steps = 0

            for inputs, labels in train_loader:
                lr = get_lr_with_warmup(
                    step=self.global_step,
                    warmup_steps=config.warmup_steps,
                    max_lr=config.learning_rate,
                    min_lr=config.min_lr,
                    max_steps=total_steps,
                    decay_type=config.lr_decay,
                )
                set_learning_rate(self.optimizer, lr)

                metrics = self.train_batch(inputs, labels)
                last_loss = metrics["loss"]
                epoch_steps += 1

                if config.log_interval > 0 and self.global_step % config.log_interval == 0:
                    log_training_step(
                        step=self.global_step,
                        loss=metrics["loss"],
                        lr=lr,
                        grad_norm=metrics["grad_norm"],
                        samples_per_sec=metrics["samples_per_sec"],
                    )

                metrics_logger.log(
                    self.global_step,
                    {
                        "train_loss": metrics["loss"],
                        "learning_rate": lr,
                        "grad_norm": metrics["grad_norm"],
                        "samples_per_sec": metrics["samples_per_sec"],
                    },
                )

                if (
                    val_loader is not None
                    and config.eval_interval > 0
                    and self.global_step > 0
                    and self.global_step % config.eval_interval == 0
                ):
                    self._validate(val_loader, metrics_logger, checkpoint_manager)

                if config.save_interval > 0 and self.global_step > 0 and self.global_step % config.save_interval == 0:
                    checkpoint_manager.save_checkpoint(
                        model=self.model,
                        step=self.global_step,
                        epoch=epoch,
                        val_loss=float("inf"),
                        train_config=config.to_dict(),
                        optimizer=self.optimizer,
                    )

                self.global_step += 1

                if config.max_steps > 0 and self.global_step >= config.max_steps:
                    logger.info(f"Reached max_steps ({config.max_steps}). Stopping training.")
                    done = True
                    break

            epoch_time = time.time() - epoch_start_time
            avg_loss = metrics_logger.moving_average("train_loss", window=epoch_steps) if epoch_steps else float("nan")
            logger.info(f"Epoch {epoch + 1} complete | Avg loss: {avg_loss:.4f} | Time: {epoch_time:.1f}s")

            if val_loader is not None and config.eval_interval == 0:
                self._validate(val_loader, metrics_logger, checkpoint_manager)
            if done:
                break

        checkpoint_manager.save_checkpoint(
            model=self.model,
            step=self.global_step,
            epoch=self.current_epoch,
            val_loss=float("inf"),
            train_config=config.to_dict(),
            optimizer=self.optimizer,
        )

        final_metrics = {
            "final_train_loss": last_loss,
            "best_val_loss": self.best_val_loss,
            "total_steps": self.global_step,
        }
        save_training_summary(Path(config.log_dir), config.to_dict(), final_metrics)
        logger.info(f"Training complete. Best val loss: {self.best_val_loss:.4f}")
        return final_metrics

    def _validate(self, val_loader, metrics_logger: MetricsLogger, checkpoint_manager: CheckpointManager):
        val_metrics = self.evaluate(val_loader, max_batches=self.config.eval_iters)
        metrics_logger.log(self.global_step, val_metrics)
        if val_metrics["val_loss"] < self.best_val_loss:
            self.best_val_loss = val_metrics["val_loss"]
        checkpoint_manager.save_checkpoint(
            model=self.model,
            step=self.global_step,
            epoch=self.current_epoch,
            val_loss=val_metrics["val_loss"],
            train_config=self.config.to_dict(),
            optimizer=self.optimizer,
        )

    # ------------------------------------------------------------------

    def close(self) -> None:
        """Drop optimizer state; the model keeps its parameters."""
        if self.optimizer is not None:
            self.optimizer.zero_grad(set_to_none=True)
        self.optimizer = None

    def __enter__(self) -> "Trainer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
