"""
Core Layers: Linear and Embedding

PURPOSE:
The two basic parameterized blocks. Linear maps the last axis to `units`
features; Embedding turns integer ids into learned vectors.

TENSOR SHAPES:
- Linear:    (*, in_features) -> (*, units)
- Embedding: (*) of int64 ids -> (*, embedding_size)

PACKAGES USED:
- torch.nn.functional: linear and embedding kernels

FILES FROM THIS PROJECT:
- model/block.py: Block base class
- data_preparation/text/embedding.py: word embedding built on Embedding
"""

from typing import Any, Dict, Hashable, Iterable, Optional, Sequence

import torch
import torch.nn.functional as F

from blocknet.model.block import Block, check_known
from blocknet.model.parameter import Parameter, ParameterType


class Linear(Block):
    """
    Fully connected layer: y = x @ W^T + b

    Weight shape is (units, in_features), resolved from the last axis of the
    first input at initialization.
    """

    def __init__(self, units: int, use_bias: bool = True, name: Optional[str] = None):
        super().__init__(name)
        if units <= 0:
            raise ValueError(f"units must be positive, got {units}")
        self.units = units
        self.use_bias = use_bias
        self.weight = self.add_parameter(Parameter("weight", ParameterType.WEIGHT))
        self.bias = self.add_parameter(Parameter("bias", ParameterType.BIAS)) if use_bias else None

    def get_parameter_shape(self, name, input_shapes):
        in_features = check_known(input_shapes[0][-1], "input feature size", self)
        if name == "weight":
            return (self.units, in_features)
        if name == "bias":
            return (self.units,)
        return super().get_parameter_shape(name, input_shapes)

    def output_shapes(self, input_shapes):
        shape = input_shapes[0]
        if len(shape) < 1:
            raise ValueError(f"Linear '{self.name}' needs at least rank-1 input")
        return [tuple(shape[:-1]) + (self.units,)]

    def _forward(self, inputs, training):
        bias = self.bias.array if self.bias is not None else None
        return [F.linear(inputs[0], self.weight.array, bias)]


class Embedding(Block):
    """
    Lookup table from integer ids to vectors.

    Built either with a plain `num_embeddings`, or from a list of `items`. In
    the second case row 0 is reserved as the fallback for unknown items and
    item i of the list lives in row i + 1.

    Example:
        >>> emb = Embedding(embedding_size=2, items=["a", "b", "c"])
        >>> emb.embed("b"), emb.embed("x")
        (2, 0)
    """

    FALLBACK_INDEX = 0

    def __init__(
        self,
        embedding_size: int,
        num_embeddings: Optional[int] = None,
        items: Optional[Sequence[Hashable]] = None,
        name: Optional[str] = None,
    ):
        super().__init__(name)
        if embedding_size <= 0:
            raise ValueError(f"embedding_size must be positive, got {embedding_size}")

        self._item_index: Optional[Dict[Any, int]] = None
        if items is not None:
            self._item_index = {item: i + 1 for i, item in enumerate(items)}
            num_embeddings = len(items) + 1
        if num_embeddings is None or num_embeddings <= 0:
            raise ValueError("Embedding needs a positive num_embeddings or a list of items")

        self.embedding_size = embedding_size
        self.num_embeddings = num_embeddings
        self.weight = self.add_parameter(Parameter("embedding", ParameterType.WEIGHT))

    def has_item(self, item) -> bool:
        return self._item_index is not None and item in self._item_index

    def embed(self, item) -> int:
        """Row index of an item; unknown items get the fallback row."""
        if self._item_index is None:
            raise TypeError(f"Embedding '{self.name}' was built from ids, not items")
        return self._item_index.get(item, self.FALLBACK_INDEX)

    def embed_items(self, items: Iterable, device: Optional[torch.device] = None) -> torch.Tensor:
        """Row indices for a sequence of items as an int64 tensor."""
        ids = [self.embed(item) for item in items]
        return torch.tensor(ids, dtype=torch.long, device=device)

    def lookup(self, items: Iterable) -> torch.Tensor:
        """Vectors for a sequence of items (one row per item)."""
        ids = self.embed_items(items, device=self.weight.array.device)
        return self.forward([ids])[0]

    def get_parameter_shape(self, name, input_shapes):
        if name == "embedding":
            return (self.num_embeddings, self.embedding_size)
        return super().get_parameter_shape(name, input_shapes)

    def output_shapes(self, input_shapes):
        return [tuple(input_shapes[0]) + (self.embedding_size,)]

    def _forward(self, inputs, training):
        return [F.embedding(inputs[0].long(), self.weight.array)]
