"""
Parameter Initializers

PURPOSE:
Decide the starting values of a parameter once its shape is known.

WHAT THIS FILE DOES:
1. Initializer base class: initialize(shape, dtype, device) -> tensor
2. Concrete policies: constant (ones/zeros), normal, uniform, xavier
3. Name lookup so configs can say "ones" or "xavier"

PACKAGES USED:
- torch: tensor creation and torch.nn.init distributions

FILES FROM THIS PROJECT:
- model/parameter.py: calls these when materializing a Parameter
- configs/train_config.py: stores the initializer name

DESIGN DECISIONS:
- Bias-like parameters default to zeros and gamma-like to ones regardless of
  the configured policy (see ParameterType in model/parameter.py)
- Integer dtypes only accept constant initializers
"""

from abc import ABC, abstractmethod
from typing import Dict, Tuple, Union

import torch
import torch.nn as nn


class Initializer(ABC):
    """Produces the initial values of a parameter."""

    @abstractmethod
    def initialize(self, shape: Tuple[int, ...], dtype: torch.dtype, device: torch.device) -> torch.Tensor:
        """
        Create a tensor of the given shape.

        Args:
            shape: Resolved parameter shape
            dtype: Parameter data type
            device: Device the tensor lives on

        Returns:
            New tensor holding the initial values
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class ConstantInitializer(Initializer):
    """Fills every element with the same value."""

    def __init__(self, value: float):
        self.value = value

    def initialize(self, shape, dtype, device):
        return torch.full(tuple(shape), self.value, dtype=dtype, device=device)

    def __repr__(self) -> str:
        return f"ConstantInitializer({self.value})"


class NormalInitializer(Initializer):
    """Samples from N(0, sigma^2)."""

    def __init__(self, sigma: float = 0.01):
        self.sigma = sigma

    def initialize(self, shape, dtype, device):
        _check_floating(dtype, self)
        tensor = torch.empty(tuple(shape), dtype=dtype, device=device)
        return nn.init.normal_(tensor, mean=0.0, std=self.sigma)


class UniformInitializer(Initializer):
    """Samples from U(-scale, scale)."""

    def __init__(self, scale: float = 0.07):
        self.scale = scale

    def initialize(self, shape, dtype, device):
        _check_floating(dtype, self)
        tensor = torch.empty(tuple(shape), dtype=dtype, device=device)
        return nn.init.uniform_(tensor, -self.scale, self.scale)


class XavierInitializer(Initializer):
    """
    Xavier/Glorot uniform initialization.

    Needs at least 2 dimensions for fan in/out; 1-D shapes fall back to
    uniform with the same bound computed from the single dimension.
    """

    def __init__(self, gain: float = 1.0):
        self.gain = gain

    def initialize(self, shape, dtype, device):
        _check_floating(dtype, self)
        tensor = torch.empty(tuple(shape), dtype=dtype, device=device)
        if tensor.dim() < 2:
            bound = self.gain * (3.0 / max(tensor.numel(), 1)) ** 0.5
            return nn.init.uniform_(tensor, -bound, bound)
        return nn.init.xavier_uniform_(tensor, gain=self.gain)


def _check_floating(dtype: torch.dtype, initializer: Initializer):
    if not dtype.is_floating_point:
        raise ValueError(f"{initializer!r} cannot initialize integer dtype {dtype}")


ONES = ConstantInitializer(1.0)
ZEROS = ConstantInitializer(0.0)

_NAMED: Dict[str, Initializer] = {
    "ones": ONES,
    "zeros": ZEROS,
    "normal": NormalInitializer(),
    "uniform": UniformInitializer(),
    "xavier": XavierInitializer(),
}


def get_initializer(initializer: Union[str, Initializer]) -> Initializer:
    """
    Resolve an initializer from its name.

    Args:
        initializer: Name ('ones', 'zeros', 'normal', 'uniform', 'xavier') or an
                     Initializer instance (returned unchanged)

    Returns:
        Initializer instance

    Raises:
        ValueError: If the name is unknown
    """
    if isinstance(initializer, Initializer):
        return initializer
    key = str(initializer).lower().strip()
    if key not in _NAMED:
        raise ValueError(f"Unknown initializer: {initializer}. Must be one of {sorted(_NAMED)}")
    return _NAMED[key]
