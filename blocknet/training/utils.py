"""
Training Utilities

PURPOSE:
Small helpers the Trainer calls every step. They work on the parameter
arrays of a block (torch tensors), not on nn.Module objects.

WHAT THIS FILE DOES:
1. clip_grad_norm: measure and clip the global gradient norm
2. get_lr_with_warmup: linear warmup, then cosine / linear / constant decay
3. set_learning_rate: push a schedule value into an optimizer
4. count_parameters, set_seed, compute_perplexity

PACKAGES USED:
- torch: gradient norms, RNG
- numpy / random: RNG seeding
- math: cosine schedule, perplexity
"""

import math
import random
from typing import Callable, Dict, Iterable

import numpy as np
import torch

# progress in [0, 1] -> fraction of the way from max_lr down to min_lr
_DECAY_CURVES: Dict[str, Callable[[float], float]] = {
    "cosine": lambda progress: 0.5 * (1.0 - math.cos(math.pi * progress)),
    "linear": lambda progress: progress,
    "constant": lambda progress: 0.0,
}


def clip_grad_norm(tensors: Iterable[torch.Tensor], max_norm: float) -> float:
    """
    Clip the global L2 norm of the gradients held by `tensors`.

    Args:
        tensors: Parameter arrays; those without a gradient are skipped
        max_norm: Clip threshold; <= 0 only measures

    Returns:
        Norm before clipping (0.0 when nothing has a gradient)
    """
    with_grad = [t for t in tensors if t.grad is not None]
    if not with_grad:
        return 0.0
    if max_norm <= 0:
        norms = torch.stack([t.grad.detach().norm(2) for t in with_grad])
        return norms.norm(2).item()
    return torch.nn.utils.clip_grad_norm_(with_grad, max_norm).item()


def get_lr_with_warmup(
    step: int,
    warmup_steps: int,
    max_lr: float,
    min_lr: float,
    max_steps: int,
    decay_type: str = "cosine",
) -> float:
    """
    Learning rate for a step.

    Steps [0, warmup_steps) ramp linearly from 0 to max_lr; afterwards the
    rate moves from max_lr to min_lr along the decay curve and stays at
    min_lr past max_steps.

    Raises:
        ValueError: Unknown decay_type
    """
    if decay_type not in _DECAY_CURVES:
        raise ValueError(f"Unknown decay_type: {decay_type}. Must be one of {sorted(_DECAY_CURVES)}")
    if step < warmup_steps:
        return max_lr * step / warmup_steps
    if max_steps <= warmup_steps:
        return max_lr

    progress = min((step - warmup_steps) / (max_steps - warmup_steps), 1.0)
    return max_lr - (max_lr - min_lr) * _DECAY_CURVES[decay_type](progress)


def set_learning_rate(optimizer: torch.optim.Optimizer, lr: float) -> None:
    for group in optimizer.param_groups:
        group["lr"] = lr


def count_parameters(block) -> int:
    """Number of trainable values in an initialized block (running statistics excluded)."""
    total = 0
    for _, param in block.parameters():
        if param.is_initialized and param.array.requires_grad:
            total += param.array.numel()
    return total


def set_seed(seed: int = 42) -> None:
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    if torch.cuda.is_available():
        torch.cuda.manual_seed_all(seed)


def compute_perplexity(loss: float) -> float:
    """exp(loss), capped at exp(50); NaN stays NaN."""
    if math.isnan(loss):
        return loss
    return math.exp(min(loss, 50.0))
