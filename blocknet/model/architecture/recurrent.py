"""
Recurrent Layers: RNN, LSTM, GRU

PURPOSE:
Multi-layer (optionally bidirectional) recurrent blocks. Each time step is a
cell update composed from torch ops; gradients come from torch autograd.

TENSOR SHAPES (default TNC layout, batch_first=True switches to NTC):
- Input:  (T, N, C)
- Output: (T, N, state_size * directions)
- States (return_state=True): (num_stacked_layers * directions, N, state_size)
  LSTM returns both the hidden and the cell state.

Optional begin states can be passed as extra inputs in the same layout as
the returned states.

PARAMETERS (per layer l and direction d in {l, r}):
    {d}{l}_i2h_weight  (gates * H, in_l)
    {d}{l}_h2h_weight  (gates * H, H)
    {d}{l}_i2h_bias    (gates * H,)
    {d}{l}_h2h_bias    (gates * H,)
gates = 1 (RNN), 4 (LSTM: i, f, g, o), 3 (GRU: r, z, n), matching the gate
order of torch.nn.LSTM / torch.nn.GRU.

PACKAGES USED:
- torch / torch.nn.functional: linear, sigmoid, tanh, relu
"""

from abc import abstractmethod
from typing import List, Optional, Tuple

import torch
import torch.nn.functional as F

from blocknet.model.block import Block, check_known, check_rank
from blocknet.model.parameter import Parameter, ParameterType


class _RecurrentBlock(Block):
    """Parameter layout, shape inference and the time loop shared by all cells."""

    GATES = 1
    NUM_STATES = 1

    def __init__(
        self,
        state_size: int,
        num_stacked_layers: int = 1,
        bidirectional: bool = False,
        dropout: float = 0.0,
        batch_first: bool = False,
        return_state: bool = False,
        name: Optional[str] = None,
    ):
        super().__init__(name)
        if state_size <= 0 or num_stacked_layers <= 0:
            raise ValueError("state_size and num_stacked_layers must be positive")
        if not 0.0 <= dropout < 1.0:
            raise ValueError(f"dropout must be in [0, 1), got {dropout}")
        self.state_size = state_size
        self.num_stacked_layers = num_stacked_layers
        self.bidirectional = bidirectional
        self.dropout = dropout
        self.batch_first = batch_first
        self.return_state = return_state

        for layer in range(num_stacked_layers):
            for direction in self.directions:
                prefix = f"{direction}{layer}"
                self.add_parameter(Parameter(f"{prefix}_i2h_weight", ParameterType.WEIGHT))
                self.add_parameter(Parameter(f"{prefix}_h2h_weight", ParameterType.WEIGHT))
                self.add_parameter(Parameter(f"{prefix}_i2h_bias", ParameterType.BIAS))
                self.add_parameter(Parameter(f"{prefix}_h2h_bias", ParameterType.BIAS))

    @property
    def directions(self) -> Tuple[str, ...]:
        return ("l", "r") if self.bidirectional else ("l",)

    def get_parameter_shape(self, name, input_shapes):
        shape = check_rank(input_shapes[0], 3, self, "NTC" if self.batch_first else "TNC")
        prefix, _, kind = name.partition("_")
        if prefix[:1] not in ("l", "r") or not prefix[1:].isdigit():
            return super().get_parameter_shape(name, input_shapes)
        layer = int(prefix[1:])
        hidden = self.state_size
        gated = self.GATES * hidden
        if kind == "i2h_weight":
            if layer == 0:
                in_features = check_known(shape[2], "input feature size", self)
            else:
                in_features = hidden * len(self.directions)
            return (gated, in_features)
        if kind == "h2h_weight":
            return (gated, hidden)
        if kind in ("i2h_bias", "h2h_bias"):
            return (gated,)
        return super().get_parameter_shape(name, input_shapes)

    def output_shapes(self, input_shapes):
        shape = check_rank(tuple(input_shapes[0]), 3, self, "NTC" if self.batch_first else "TNC")
        batch = shape[0] if self.batch_first else shape[1]
        outputs = [shape[:2] + (self.state_size * len(self.directions),)]
        if self.return_state:
            state = (self.num_stacked_layers * len(self.directions), batch, self.state_size)
            outputs.extend([state] * self.NUM_STATES)
        return outputs

    @abstractmethod
    def _cell(self, x, states, weights):
        """One time step; returns the new states, hidden state first."""
        pass

    def _forward(self, inputs, training):
        x = inputs[0]
        if self.batch_first:
            x = x.transpose(0, 1)
        steps, batch = x.shape[0], x.shape[1]
        num_dirs = len(self.directions)

        begin = inputs[1 : 1 + self.NUM_STATES]
        if begin and len(begin) != self.NUM_STATES:
            raise ValueError(f"{self.__class__.__name__} expects {self.NUM_STATES} begin state tensor(s)")

        final_states: List[List[torch.Tensor]] = [[] for _ in range(self.NUM_STATES)]
        layer_input = x
        for layer in range(self.num_stacked_layers):
            direction_outputs = []
            for d, direction in enumerate(self.directions):
                prefix = f"{direction}{layer}"
                weights = tuple(
                    self._parameters[f"{prefix}_{kind}"].array
                    for kind in ("i2h_weight", "h2h_weight", "i2h_bias", "h2h_bias")
                )
                index = layer * num_dirs + d
                if begin:
                    states = [s[index] for s in begin]
                else:
                    zeros = x.new_zeros((batch, self.state_size))
                    states = [zeros] * self.NUM_STATES

                order = range(steps - 1, -1, -1) if direction == "r" else range(steps)
                outputs = [None] * steps
                for t in order:
                    states = self._cell(layer_input[t], states, weights)
                    outputs[t] = states[0]
                direction_outputs.append(torch.stack(outputs, dim=0))
                for slot, state in enumerate(states):
                    final_states[slot].append(state)

            layer_input = torch.cat(direction_outputs, dim=2) if num_dirs > 1 else direction_outputs[0]
            if training and self.dropout > 0 and layer < self.num_stacked_layers - 1:
                layer_input = F.dropout(layer_input, p=self.dropout, training=True)

        output = layer_input.transpose(0, 1) if self.batch_first else layer_input
        results = [output]
        if self.return_state:
            results.extend(torch.stack(slot, dim=0) for slot in final_states)
        return results


class RNN(_RecurrentBlock):
    """
    Elman RNN: h' = act(x W_ih^T + b_ih + h W_hh^T + b_hh)

    Args:
        activation: 'tanh' or 'relu'
    """

    def __init__(self, state_size: int, activation: str = "tanh", **kwargs):
        if activation not in ("tanh", "relu"):
            raise ValueError(f"Unknown RNN activation: {activation}. Must be 'tanh' or 'relu'")
        self.activation = activation
        super().__init__(state_size, **kwargs)

    def _cell(self, x, states, weights):
        w_ih, w_hh, b_ih, b_hh = weights
        pre = F.linear(x, w_ih, b_ih) + F.linear(states[0], w_hh, b_hh)
        return [torch.tanh(pre) if self.activation == "tanh" else torch.relu(pre)]


class LSTM(_RecurrentBlock):
    """Long short-term memory; states are (hidden, cell)."""

    GATES = 4
    NUM_STATES = 2

    def _cell(self, x, states, weights):
        w_ih, w_hh, b_ih, b_hh = weights
        h, c = states
        gates = F.linear(x, w_ih, b_ih) + F.linear(h, w_hh, b_hh)
        i, f, g, o = gates.chunk(4, dim=1)
        i, f, g, o = torch.sigmoid(i), torch.sigmoid(f), torch.tanh(g), torch.sigmoid(o)
        c = f * c + i * g
        h = o * torch.tanh(c)
        return [h, c]


class GRU(_RecurrentBlock):
    """Gated recurrent unit."""

    GATES = 3

    def _cell(self, x, states, weights):
        w_ih, w_hh, b_ih, b_hh = weights
        h = states[0]
        i_r, i_z, i_n = F.linear(x, w_ih, b_ih).chunk(3, dim=1)
        h_r, h_z, h_n = F.linear(h, w_hh, b_hh).chunk(3, dim=1)
        r = torch.sigmoid(i_r + h_r)
        z = torch.sigmoid(i_z + h_z)
        n = torch.tanh(i_n + r * h_n)
        return [(1 - z) * n + z * h]
