"""
Training module

Trainer, datasets and losses are imported from their own modules
(blocknet.training.trainer, blocknet.training.dataset); this package only
exposes the initializers, which the parameter layer depends on.
"""

from blocknet.training.initializer import (
    ConstantInitializer,
    Initializer,
    NormalInitializer,
    UniformInitializer,
    XavierInitializer,
    get_initializer,
)

__all__ = [
    "Initializer",
    "ConstantInitializer",
    "NormalInitializer",
    "UniformInitializer",
    "XavierInitializer",
    "get_initializer",
]
