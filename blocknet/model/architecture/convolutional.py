"""
Convolution Layers

PURPOSE:
1-D, 2-D and 3-D convolutions over channel-first inputs.

TENSOR SHAPES:
- Conv1D: (N, C, W)       -> (N, F, W')
- Conv2D: (N, C, H, W)    -> (N, F, H', W')
- Conv3D: (N, C, D, H, W) -> (N, F, D', H', W')

    x' = floor((x + 2 * pad - dilation * (kernel - 1) - 1) / stride) + 1

An unknown (-1) batch or spatial size stays unknown in the output; the
channel count must be known since it sizes the weight.

PACKAGES USED:
- torch.nn.functional: conv1d / conv2d / conv3d kernels
"""

from abc import abstractmethod
from typing import Optional, Sequence, Tuple, Union

import torch.nn.functional as F

from blocknet.model.block import Block, check_known, check_rank
from blocknet.model.parameter import Parameter, ParameterType

IntOrTuple = Union[int, Sequence[int]]


def _expand(value: IntOrTuple, dims: int, what: str) -> Tuple[int, ...]:
    if isinstance(value, int):
        return (value,) * dims
    value = tuple(int(v) for v in value)
    if len(value) != dims:
        raise ValueError(f"{what} must have {dims} values, got {value}")
    return value


class _Convolution(Block):
    """Shared logic for ConvND; subclasses set DIMS, LAYOUT and the kernel fn."""

    DIMS = 0
    LAYOUT = ""

    def __init__(
        self,
        kernel: IntOrTuple,
        num_filters: int,
        stride: IntOrTuple = 1,
        padding: IntOrTuple = 0,
        dilation: IntOrTuple = 1,
        groups: int = 1,
        use_bias: bool = True,
        name: Optional[str] = None,
    ):
        super().__init__(name)
        self.kernel = _expand(kernel, self.DIMS, "kernel")
        self.stride = _expand(stride, self.DIMS, "stride")
        self.padding = _expand(padding, self.DIMS, "padding")
        self.dilation = _expand(dilation, self.DIMS, "dilation")
        if num_filters <= 0 or groups <= 0:
            raise ValueError("num_filters and groups must be positive")
        if num_filters % groups != 0:
            raise ValueError(f"num_filters ({num_filters}) must be divisible by groups ({groups})")
        self.num_filters = num_filters
        self.groups = groups
        self.use_bias = use_bias

        self.weight = self.add_parameter(Parameter("weight", ParameterType.WEIGHT))
        self.bias = self.add_parameter(Parameter("bias", ParameterType.BIAS)) if use_bias else None

    def get_parameter_shape(self, name, input_shapes):
        shape = check_rank(input_shapes[0], self.DIMS + 2, self, self.LAYOUT)
        channels = check_known(shape[1], "channel count", self)
        if channels % self.groups != 0:
            raise ValueError(f"Input channels ({channels}) must be divisible by groups ({self.groups})")
        if name == "weight":
            return (self.num_filters, channels // self.groups) + self.kernel
        if name == "bias":
            return (self.num_filters,)
        return super().get_parameter_shape(name, input_shapes)

    def output_shapes(self, input_shapes):
        shape = check_rank(tuple(input_shapes[0]), self.DIMS + 2, self, self.LAYOUT)
        spatial = []
        for size, k, s, p, d in zip(shape[2:], self.kernel, self.stride, self.padding, self.dilation):
            if size < 0:
                spatial.append(size)
                continue
            out = (size + 2 * p - d * (k - 1) - 1) // s + 1
            if out <= 0:
                raise ValueError(
                    f"{self.__class__.__name__} '{self.name}': kernel {self.kernel} too large for input {shape}"
                )
            spatial.append(out)
        return [(shape[0], self.num_filters) + tuple(spatial)]

    @abstractmethod
    def _conv(self, x, weight, bias):
        pass

    def _forward(self, inputs, training):
        bias = self.bias.array if self.bias is not None else None
        return [self._conv(inputs[0], self.weight.array, bias)]


class Conv1D(_Convolution):
    """1-D convolution over NCW input."""

    DIMS = 1
    LAYOUT = "NCW"

    def _conv(self, x, weight, bias):
        return F.conv1d(x, weight, bias, self.stride, self.padding, self.dilation, self.groups)


class Conv2D(_Convolution):
    """2-D convolution over NCHW input."""

    DIMS = 2
    LAYOUT = "NCHW"

    def _conv(self, x, weight, bias):
        return F.conv2d(x, weight, bias, self.stride, self.padding, self.dilation, self.groups)


class Conv3D(_Convolution):
    """3-D convolution over NCDHW input."""

    DIMS = 3
    LAYOUT = "NCDHW"

    def _conv(self, x, weight, bias):
        return F.conv3d(x, weight, bias, self.stride, self.padding, self.dilation, self.groups)
