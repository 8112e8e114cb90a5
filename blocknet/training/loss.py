"""
Loss Functions

Named losses for the Trainer. Each takes (prediction, label) tensors and
returns a scalar.

- softmax_cross_entropy: class logits (N, C, ...) vs int64 labels (N, ...);
  3-D logits laid out (N, T, C) are flattened first
- l2: mean squared error
- l1: mean absolute error
- sigmoid_bce: binary cross entropy on logits
"""

from typing import Callable, Dict

import torch
import torch.nn.functional as F

LossFn = Callable[[torch.Tensor, torch.Tensor], torch.Tensor]


def softmax_cross_entropy(pred: torch.Tensor, label: torch.Tensor) -> torch.Tensor:
    if pred.dim() == 3 and label.dim() == 2:
        # (batch, seq, classes) -> (batch * seq, classes)
        batch_size, seq_len, num_classes = pred.shape
        return F.cross_entropy(pred.reshape(batch_size * seq_len, num_classes), label.reshape(-1).long())
    return F.cross_entropy(pred, label.long())


def l2(pred: torch.Tensor, label: torch.Tensor) -> torch.Tensor:
    return F.mse_loss(pred, label.to(pred.dtype))


def l1(pred: torch.Tensor, label: torch.Tensor) -> torch.Tensor:
    return F.l1_loss(pred, label.to(pred.dtype))


def sigmoid_bce(pred: torch.Tensor, label: torch.Tensor) -> torch.Tensor:
    return F.binary_cross_entropy_with_logits(pred, label.to(pred.dtype))


_LOSSES: Dict[str, LossFn] = {
    "softmax_cross_entropy": softmax_cross_entropy,
    "l2": l2,
    "l1": l1,
    "sigmoid_bce": sigmoid_bce,
}


def get_loss(name: str) -> LossFn:
    """Look up a loss by name; raises ValueError for unknown names."""
    if callable(name):
        return name
    if name not in _LOSSES:
        raise ValueError(f"Unknown loss: {name}. Must be one of {sorted(_LOSSES)}")
    return _LOSSES[name]
