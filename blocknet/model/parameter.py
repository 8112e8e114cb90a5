"""
Block Parameters

PURPOSE:
A Parameter is a named tensor slot owned by exactly one Block. It is declared
when the block is built, before its shape is known, and materialized later
when the block sees its first input shapes.

WHAT THIS FILE DOES:
1. ParameterType: weight/bias/gamma/beta/running stats, with default initializers
2. DeferredState / MaterializedState: the two states a parameter can be in
3. Parameter: state transitions (initialize, set_array, close)

PACKAGES USED:
- torch: holds the values (the array engine)
- dataclasses / enum: state and type records

FILES FROM THIS PROJECT:
- training/initializer.py: produces the initial values
- model/block.py: owns and enumerates parameters
- model/serialization.py: reads/writes the values

LIFECYCLE:
    Parameter("weight")            -> DeferredState(dtype=None, initializer=None)
    .initialize((3, 2), f32, cpu)  -> MaterializedState(shape=(3, 2), array=...)
    optimizer.step()               -> array mutated in place
    .close()                       -> DeferredState again, values released
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

import torch

from blocknet.errors import DataTypeMismatchError, ShapeMismatchError, UninitializedStateError
from blocknet.training.initializer import ONES, ZEROS, Initializer, get_initializer


class ParameterType(Enum):
    """Role of a parameter inside its block."""

    WEIGHT = "weight"
    BIAS = "bias"
    GAMMA = "gamma"
    BETA = "beta"
    RUNNING_MEAN = "running_mean"
    RUNNING_VAR = "running_var"
    OTHER = "other"

    @property
    def default_initializer(self) -> Optional[Initializer]:
        """Initializer used regardless of the training config, or None."""
        if self in (ParameterType.BIAS, ParameterType.BETA, ParameterType.RUNNING_MEAN):
            return ZEROS
        if self in (ParameterType.GAMMA, ParameterType.RUNNING_VAR):
            return ONES
        return None


@dataclass(frozen=True)
class DeferredState:
    """Declared, shape not yet known."""

    dtype: Optional[torch.dtype] = None


@dataclass
class MaterializedState:
    """Shape resolved and values held by the array engine."""

    shape: Tuple[int, ...]
    array: torch.Tensor


class Parameter:
    """
    Named, owned tensor value learned during training.

    Attributes:
        name: Name unique within the owning block
        type: ParameterType (drives the default initializer)
        requires_grad: False for frozen parameters and running statistics
        initializer: Per-parameter override of the configured initializer
        owner: Block that owns this parameter (set by Block.add_parameter)
    """

    def __init__(
        self,
        name: str,
        type: ParameterType = ParameterType.WEIGHT,
        requires_grad: bool = True,
        initializer: Optional[Union[str, Initializer]] = None,
    ):
        self.name = name
        self.type = type
        self.requires_grad = requires_grad
        self.initializer = get_initializer(initializer) if initializer is not None else None
        self.owner = None
        self.state: Union[DeferredState, MaterializedState] = DeferredState()

    @property
    def is_initialized(self) -> bool:
        return isinstance(self.state, MaterializedState)

    @property
    def shape(self) -> Tuple[int, ...]:
        return self._materialized().shape

    @property
    def array(self) -> torch.Tensor:
        return self._materialized().array

    @property
    def dtype(self) -> Optional[torch.dtype]:
        if isinstance(self.state, MaterializedState):
            return self.state.array.dtype
        return self.state.dtype

    def _materialized(self) -> MaterializedState:
        if not isinstance(self.state, MaterializedState):
            raise UninitializedStateError(
                f"Parameter '{self.name}' has no values yet; initialize the block first"
            )
        return self.state

    def set_initializer(self, initializer: Union[str, Initializer], overwrite: bool = False) -> None:
        """Set the per-parameter override (kept if one exists unless overwrite)."""
        if self.initializer is None or overwrite:
            self.initializer = get_initializer(initializer)

    def initialize(
        self,
        shape: Tuple[int, ...],
        dtype: torch.dtype,
        device: torch.device,
        initializer: Optional[Initializer] = None,
    ) -> None:
        """
        Resolve the shape and create the values.

        Idempotent: a materialized parameter with the same shape and dtype is
        left as is.

        Args:
            shape: Resolved shape
            dtype: Data type
            device: Device for the values
            initializer: Configured initializer, used when neither the
                         parameter nor its type has one

        Raises:
            ShapeMismatchError: Already materialized with another shape
            DataTypeMismatchError: Already materialized with another dtype
            UninitializedStateError: No initializer available at all
        """
        shape = tuple(int(d) for d in shape)
        if isinstance(self.state, MaterializedState):
            if self.state.shape != shape:
                raise ShapeMismatchError(
                    f"Parameter '{self.name}' already materialized with shape "
                    f"{self.state.shape}, cannot re-initialize with {shape}"
                )
            if self.state.array.dtype != dtype:
                raise DataTypeMismatchError(
                    f"Parameter '{self.name}' already materialized as "
                    f"{self.state.array.dtype}, cannot re-initialize as {dtype}"
                )
            return

        policy = self.initializer or self.type.default_initializer or initializer
        if policy is None:
            raise UninitializedStateError(f"No initializer configured for parameter '{self.name}'")

        array = policy.initialize(shape, dtype, device)
        self._adopt(array)

    def set_array(self, array: torch.Tensor) -> None:
        """
        Replace the values.

        A materialized parameter only accepts an array of its own shape and
        dtype; a deferred one adopts the array's shape.
        """
        if isinstance(self.state, MaterializedState):
            if tuple(array.shape) != self.state.shape:
                raise ShapeMismatchError(
                    f"Parameter '{self.name}' expects shape {self.state.shape}, got {tuple(array.shape)}"
                )
            if array.dtype != self.state.array.dtype:
                raise DataTypeMismatchError(
                    f"Parameter '{self.name}' expects dtype {self.state.array.dtype}, got {array.dtype}"
                )
            # In place, so optimizers holding the tensor keep working
            with torch.no_grad():
                self.state.array.copy_(array.to(self.state.array.device))
            return
        self._adopt(array.detach().clone())

    def _adopt(self, array: torch.Tensor) -> None:
        array.requires_grad_(self.requires_grad and array.dtype.is_floating_point)
        self.state = MaterializedState(shape=tuple(array.shape), array=array)

    def close(self) -> None:
        """Release the values; the parameter goes back to the deferred state."""
        if isinstance(self.state, MaterializedState):
            self.state = DeferredState(dtype=self.state.array.dtype)

    def __repr__(self) -> str:
        if isinstance(self.state, MaterializedState):
            return f"Parameter({self.name!r}, shape={self.state.shape}, dtype={self.dtype})"
        return f"Parameter({self.name!r}, deferred)"
