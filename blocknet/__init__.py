"""
blocknet: block-based neural networks on top of PyTorch

Composable layers with deferred parameter shapes, a portable binary
parameter format, a Trainer, and a text pipeline (vocabulary, trainable
word embeddings, SentencePiece).

Quick Start:
    >>> import blocknet
    >>> from blocknet.model.architecture import Linear, SequentialBlock
    >>>
    >>> with blocknet.Model("mlp", device="cpu") as model:
    ...     model.block = SequentialBlock().add(Linear(16)).add(Linear(2))
    ...     with model.new_trainer(blocknet.TrainingConfig()) as trainer:
    ...         trainer.initialize((-1, 8))
    ...     model.save("checkpoints", epoch=1)

Config-driven training:
    >>> blocknet.create_config('my_config.yaml')
    >>> results = blocknet.train_from_config('my_config.yaml', block, input_shapes=[(-1, 8)])
"""

__version__ = "0.1.0"

from blocknet.errors import (
    BlocknetError,
    DataTypeMismatchError,
    SerializationFormatError,
    ShapeMismatchError,
    UninitializedStateError,
    UnsupportedFormatError,
)
from blocknet.model import Block, Model, Parameter, ParameterType
from blocknet.configs.train_config import TrainingConfig
from blocknet.api import create_config, train_from_config

__all__ = [
    "BlocknetError",
    "ShapeMismatchError",
    "DataTypeMismatchError",
    "UninitializedStateError",
    "SerializationFormatError",
    "UnsupportedFormatError",
    "Block",
    "Model",
    "Parameter",
    "ParameterType",
    "TrainingConfig",
    "create_config",
    "train_from_config",
]
