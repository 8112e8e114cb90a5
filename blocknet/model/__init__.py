"""
blocknet Model Package

Block base class, parameters, the parameter file codec and the Model
container. Layer implementations live in model/architecture/.
"""

from blocknet.model.block import Block, Shape, UNKNOWN_DIM
from blocknet.model.parameter import Parameter, ParameterType
from blocknet.model.model import Model

__all__ = ["Block", "Shape", "UNKNOWN_DIM", "Parameter", "ParameterType", "Model"]
