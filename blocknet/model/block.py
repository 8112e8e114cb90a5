"""
Block Base Class

PURPOSE:
A Block is a composable computation unit: it owns parameters, may own child
blocks, maps a list of input tensors to a list of output tensors, and can
tell its output shapes from its input shapes without running anything.

WHAT THIS FILE DOES:
1. Parameter and child registration (membership fixed after initialize)
2. Initialization protocol: resolve shapes, materialize values, idempotent
3. Shape inference entry point (output_shapes)
4. Parameter save/load over binary streams (see model/serialization.py)

PACKAGES USED:
- torch: tensors flowing through forward
- abc: Block is abstract, layers implement the hooks

FILES FROM THIS PROJECT:
- model/parameter.py: Parameter and its states
- model/serialization.py: record codec
- utils/pair_list.py: ordered parameter listing

SHAPES:
Shapes are tuples of ints. -1 marks an unknown batch dimension; it passes
through output_shapes untouched but cannot size a parameter.

THREADING:
A block is single-writer. Concurrent forward/backward calls on the same
block (or its Model) need external serialization.
"""

from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import BinaryIO, List, Optional, Sequence, Tuple

import torch

from blocknet.errors import (
    DataTypeMismatchError,
    SerializationFormatError,
    ShapeMismatchError,
    UninitializedStateError,
)
from blocknet.model.parameter import Parameter, ParameterType
from blocknet.model.serialization import read_record, write_record
from blocknet.training.initializer import Initializer
from blocknet.utils.pair_list import PairList

Shape = Tuple[int, ...]

UNKNOWN_DIM = -1


class Block(ABC):
    """
    Base class for all layers and containers.

    Subclasses implement:
        output_shapes(input_shapes) -> list of shapes
        get_parameter_shape(name, input_shapes) -> shape  (if they own parameters)
        _forward(inputs, training) -> list of tensors
    Containers override initialize_child_blocks.
    """

    def __init__(self, name: Optional[str] = None):
        self.name = name or self.__class__.__name__
        self._children: "OrderedDict[str, Block]" = OrderedDict()
        self._parameters: "OrderedDict[str, Parameter]" = OrderedDict()
        self._input_shapes: Optional[Tuple[Shape, ...]] = None
        self._loaded = False
        self._dtype: Optional[torch.dtype] = None

    # ------------------------------------------------------------------
    # Registration

    def add_parameter(self, parameter: Parameter) -> Parameter:
        """
        Register a parameter owned by this block.

        Raises:
            RuntimeError: After initialization, or if the parameter is owned elsewhere
            ValueError: Duplicate parameter name
        """
        if self._input_shapes is not None:
            raise RuntimeError(f"Parameters of block '{self.name}' are fixed after initialization")
        if parameter.owner is not None and parameter.owner is not self:
            raise RuntimeError(f"Parameter '{parameter.name}' already belongs to block '{parameter.owner.name}'")
        if parameter.name in self._parameters:
            raise ValueError(f"Duplicate parameter name '{parameter.name}' in block '{self.name}'")
        parameter.owner = self
        self._parameters[parameter.name] = parameter
        return parameter

    def add_child_block(self, name: str, block: "Block") -> "Block":
        """Register a child; children run and serialize in insertion order."""
        if self._input_shapes is not None:
            raise RuntimeError(f"Children of block '{self.name}' are fixed after initialization")
        if name in self._children:
            raise ValueError(f"Duplicate child block name '{name}' in block '{self.name}'")
        self._children[name] = block
        return block

    @property
    def children(self) -> PairList:
        return PairList(self._children.items())

    def direct_parameters(self) -> PairList:
        """This block's own parameters, in declaration order."""
        return PairList(self._parameters.items())

    def parameters(self) -> PairList:
        """
        All parameters, depth-first: own parameters first, then each child's
        in insertion order, keyed "<child>_<name>".
        """
        params = self.direct_parameters()
        for child_name, child in self._children.items():
            for key, param in child.parameters():
                params.add(f"{child_name}_{key}", param)
        return params

    def freeze_parameters(self, freeze: bool = True) -> None:
        """Stop (or resume) gradient updates for every parameter."""
        for _, param in self.parameters():
            if param.type in (ParameterType.RUNNING_MEAN, ParameterType.RUNNING_VAR):
                continue
            param.requires_grad = not freeze
            if param.is_initialized and param.array.dtype.is_floating_point:
                param.array.requires_grad_(not freeze)

    # ------------------------------------------------------------------
    # Initialization

    @property
    def is_initialized(self) -> bool:
        """
        True once the block was initialized or had parameters loaded into it,
        and every parameter (recursively) holds values.
        """
        if self._input_shapes is None and not self._loaded:
            return False
        return all(param.is_initialized for _, param in self.parameters())

    @property
    def input_shapes(self) -> Optional[Tuple[Shape, ...]]:
        return self._input_shapes

    def initialize(
        self,
        device: torch.device,
        dtype: torch.dtype,
        *input_shapes: Sequence[int],
        initializer: Optional[Initializer] = None,
    ) -> List[Shape]:
        """
        Resolve parameter shapes from the input shapes and materialize values.

        Args:
            device: Device for the parameter values
            dtype: Parameter data type
            *input_shapes: One shape per input tensor
            initializer: Policy for parameters without their own/type default

        Returns:
            Output shapes for the given input shapes

        Raises:
            ShapeMismatchError: Already initialized with different shapes or dtype
        """
        shapes = tuple(tuple(int(d) for d in shape) for shape in input_shapes)

        if self._input_shapes is not None:
            if shapes != self._input_shapes:
                raise ShapeMismatchError(
                    f"Block '{self.name}' was initialized with input shapes {list(self._input_shapes)}; "
                    f"re-initializing with {list(shapes)} would discard its parameters"
                )
            if dtype != self._dtype:
                raise DataTypeMismatchError(
                    f"Block '{self.name}' was initialized as {self._dtype}, not {dtype}"
                )
            return self.output_shapes(shapes)

        self.initialize_child_blocks(device, dtype, shapes, initializer)
        for name, param in self._parameters.items():
            param.initialize(self.get_parameter_shape(name, shapes), dtype, device, initializer)

        self._input_shapes = shapes
        self._dtype = dtype
        return self.output_shapes(shapes)

    def initialize_child_blocks(
        self,
        device: torch.device,
        dtype: torch.dtype,
        input_shapes: Tuple[Shape, ...],
        initializer: Optional[Initializer],
    ) -> None:
        """Initialize children; leaf blocks have none."""
        for child in self._children.values():
            child.initialize(device, dtype, *input_shapes, initializer=initializer)

    def get_parameter_shape(self, name: str, input_shapes: Tuple[Shape, ...]) -> Shape:
        raise ValueError(f"Block '{self.name}' has no parameter named '{name}'")

    @abstractmethod
    def output_shapes(self, input_shapes: Sequence[Shape]) -> List[Shape]:
        """Output shapes for the given input shapes, without computing anything."""
        pass

    # ------------------------------------------------------------------
    # Execution

    def forward(self, inputs: Sequence[torch.Tensor], training: bool = False) -> List[torch.Tensor]:
        """
        Run the block.

        Args:
            inputs: Input tensors
            training: Training mode (dropout active, batch statistics used)

        Returns:
            Output tensors

        Raises:
            UninitializedStateError: Block was never initialized or loaded
        """
        if not self.is_initialized:
            raise UninitializedStateError(f"Block '{self.name}' must be initialized before forward")
        return self._forward(list(inputs), training)

    __call__ = forward

    @abstractmethod
    def _forward(self, inputs: List[torch.Tensor], training: bool) -> List[torch.Tensor]:
        pass

    # ------------------------------------------------------------------
    # Persistence

    def save_parameters(self, stream: BinaryIO) -> None:
        """
        Write every parameter as one record, in parameters() order.

        Raises:
            UninitializedStateError: Some parameter is still deferred (nothing is written)
        """
        params = self.parameters()
        for key, param in params:
            if not param.is_initialized:
                raise UninitializedStateError(
                    f"Cannot save block '{self.name}': parameter '{key}' has no resolved shape"
                )
        for key, param in params:
            write_record(stream, key, param.array)

    def load_parameters(
        self,
        stream: BinaryIO,
        device: Optional[torch.device] = None,
        expect_end: bool = False,
    ) -> None:
        """
        Read records written by save_parameters into the existing slots.

        All records are decoded and checked before any parameter changes, so
        a failure leaves the block untouched.

        Args:
            stream: Readable binary stream positioned at the first record
            device: Device for parameters that are still deferred (default CPU)
            expect_end: Also require the stream to end after the last record

        Raises:
            SerializationFormatError: Truncated stream, corrupt or out-of-order record
            ShapeMismatchError: Stored shape differs from a materialized slot
            DataTypeMismatchError: Stored dtype differs from a materialized slot
        """
        staged = []
        for key, param in self.parameters():
            name, array = read_record(stream)
            if name != key:
                raise SerializationFormatError(
                    f"Expected record for parameter '{key}' but found '{name}'"
                )
            if param.is_initialized:
                if tuple(array.shape) != param.shape:
                    raise ShapeMismatchError(
                        f"Parameter '{key}' has shape {param.shape}, stored record has {tuple(array.shape)}"
                    )
                if array.dtype != param.dtype:
                    raise DataTypeMismatchError(
                        f"Parameter '{key}' has dtype {param.dtype}, stored record has {array.dtype}"
                    )
            staged.append((param, array))

        if expect_end and stream.read(1):
            raise SerializationFormatError("Unexpected trailing data after the last parameter record")

        for param, array in staged:
            target = param.array.device if param.is_initialized else (device or torch.device("cpu"))
            param.set_array(array.to(target))
        self._mark_loaded()

    def close(self) -> None:
        """Release all parameter values; the block must be initialized again."""
        for _, param in self.parameters():
            param.close()
        self._release_shapes()

    def _release_shapes(self) -> None:
        self._input_shapes = None
        self._loaded = False
        self._dtype = None
        for child in self._children.values():
            child._release_shapes()

    def _mark_loaded(self) -> None:
        self._loaded = True
        for child in self._children.values():
            child._mark_loaded()

    # ------------------------------------------------------------------

    def describe(self, indent: int = 0) -> str:
        """Readable tree of blocks and parameter shapes."""
        pad = "  " * indent
        lines = [f"{pad}{self.name} ({self.__class__.__name__})"]
        for name, param in self._parameters.items():
            shape = param.shape if param.is_initialized else "deferred"
            lines.append(f"{pad}  {name}: {shape}")
        for child in self._children.values():
            lines.append(child.describe(indent + 1))
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


def check_known(dim: int, what: str, block: Block) -> int:
    """A dimension that sizes a parameter must be known."""
    if dim is None or dim < 0:
        raise ShapeMismatchError(f"Block '{block.name}' needs a known {what}, got {dim}")
    return dim


def check_rank(shape: Shape, rank: int, block: Block, layout: str = "") -> Shape:
    if len(shape) != rank:
        hint = f" ({layout})" if layout else ""
        raise ShapeMismatchError(
            f"Block '{block.name}' expects rank-{rank} input{hint}, got shape {shape}"
        )
    return shape
