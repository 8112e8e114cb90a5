"""
Normalization and Regularization Layers

PURPOSE:
- BatchNorm: normalize along one axis with learned scale/shift and running
  statistics
- Dropout: randomly zero activations while training

Both are shape preserving.

TRAINING VS INFERENCE:
- BatchNorm(training=True) uses batch statistics and updates the running
  mean/var: running = momentum * running + (1 - momentum) * batch
- BatchNorm(training=False) uses the running statistics
- Dropout is the identity outside training

PACKAGES USED:
- torch.nn.functional: batch_norm and dropout kernels
"""

from typing import Optional

import torch.nn.functional as F

from blocknet.model.block import Block, check_known
from blocknet.model.parameter import Parameter, ParameterType


class BatchNorm(Block):
    """
    Batch normalization.

    Args:
        axis: Axis holding the features (default 1, channel axis)
        epsilon: Added to the variance for numerical stability
        momentum: Weight of the old running statistics
        center: Learn an additive beta
        scale: Learn a multiplicative gamma
    """

    def __init__(
        self,
        axis: int = 1,
        epsilon: float = 1e-5,
        momentum: float = 0.9,
        center: bool = True,
        scale: bool = True,
        name: Optional[str] = None,
    ):
        super().__init__(name)
        if not 0.0 <= momentum <= 1.0:
            raise ValueError(f"momentum must be in [0, 1], got {momentum}")
        self.axis = axis
        self.epsilon = epsilon
        self.momentum = momentum

        self.gamma = self.add_parameter(Parameter("gamma", ParameterType.GAMMA)) if scale else None
        self.beta = self.add_parameter(Parameter("beta", ParameterType.BETA)) if center else None
        self.running_mean = self.add_parameter(
            Parameter("running_mean", ParameterType.RUNNING_MEAN, requires_grad=False)
        )
        self.running_var = self.add_parameter(
            Parameter("running_var", ParameterType.RUNNING_VAR, requires_grad=False)
        )

    def _feature_axis(self, rank: int) -> int:
        if rank < 2:
            raise ValueError(f"BatchNorm '{self.name}' needs at least rank-2 input (batch, features, ...)")
        axis = self.axis if self.axis >= 0 else rank + self.axis
        if not 0 < axis < rank:
            raise ValueError(f"BatchNorm axis {self.axis} invalid for rank-{rank} input")
        return axis

    def get_parameter_shape(self, name, input_shapes):
        shape = input_shapes[0]
        features = check_known(shape[self._feature_axis(len(shape))], "feature size", self)
        if name in ("gamma", "beta", "running_mean", "running_var"):
            return (features,)
        return super().get_parameter_shape(name, input_shapes)

    def output_shapes(self, input_shapes):
        return [tuple(input_shapes[0])]

    def _forward(self, inputs, training):
        x = inputs[0]
        axis = self._feature_axis(x.dim())
        if axis != 1:
            x = x.movedim(axis, 1)

        out = F.batch_norm(
            x,
            self.running_mean.array,
            self.running_var.array,
            weight=self.gamma.array if self.gamma is not None else None,
            bias=self.beta.array if self.beta is not None else None,
            training=training,
            # torch weights the new batch statistic, we weight the old one
            momentum=1.0 - self.momentum,
            eps=self.epsilon,
        )

        if axis != 1:
            out = out.movedim(1, axis)
        return [out]


class Dropout(Block):
    """Zero each element with `probability` during training, scaling the rest."""

    def __init__(self, probability: float = 0.5, name: Optional[str] = None):
        super().__init__(name)
        if not 0.0 <= probability < 1.0:
            raise ValueError(f"probability must be in [0, 1), got {probability}")
        self.probability = probability

    def output_shapes(self, input_shapes):
        return [tuple(input_shapes[0])]

    def _forward(self, inputs, training):
        return [F.dropout(inputs[0], p=self.probability, training=training)]
