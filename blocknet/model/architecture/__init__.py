"""
Block Implementations - Package Initializer

PURPOSE:
Makes it easy to import layers from a single location:
- from blocknet.model.architecture import Linear, Conv2D, LSTM

FILES FROM THIS PROJECT:
- core.py: Linear, Embedding
- convolutional.py: Conv1D, Conv2D, Conv3D
- norm.py: BatchNorm, Dropout
- recurrent.py: RNN, LSTM, GRU
- sequential.py: SequentialBlock, LambdaBlock
"""

from .core import Linear, Embedding
from .convolutional import Conv1D, Conv2D, Conv3D
from .norm import BatchNorm, Dropout
from .recurrent import RNN, LSTM, GRU
from .sequential import SequentialBlock, LambdaBlock

__all__ = [
    "Linear",
    "Embedding",
    "Conv1D",
    "Conv2D",
    "Conv3D",
    "BatchNorm",
    "Dropout",
    "RNN",
    "LSTM",
    "GRU",
    "SequentialBlock",
    "LambdaBlock",
]
