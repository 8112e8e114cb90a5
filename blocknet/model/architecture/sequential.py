"""
Container Blocks

PURPOSE:
- SequentialBlock: run children one after another; the outputs of one child
  are the inputs of the next
- LambdaBlock: wrap a parameter-free function as a block

Shape inference, initialization, execution and serialization all walk the
children in the order they were added.
"""

from typing import Callable, Iterable, List, Optional, Sequence

from blocknet.model.block import Block, Shape


class SequentialBlock(Block):
    """
    Chain of blocks.

    Children are named "<index:02d><child name>" so that two children of the
    same type get distinct parameter keys.

    Example:
        >>> net = SequentialBlock().add(Linear(8)).add(LambdaBlock(torch.relu)).add(Linear(2))
    """

    def __init__(self, blocks: Optional[Iterable[Block]] = None, name: Optional[str] = None):
        super().__init__(name)
        for block in blocks or ():
            self.add(block)

    def add(self, block: Block) -> "SequentialBlock":
        self.add_child_block(f"{len(self._children):02d}{block.name}", block)
        return self

    def add_all(self, blocks: Iterable[Block]) -> "SequentialBlock":
        for block in blocks:
            self.add(block)
        return self

    def __len__(self) -> int:
        return len(self._children)

    def initialize_child_blocks(self, device, dtype, input_shapes, initializer):
        shapes = input_shapes
        for child in self._children.values():
            shapes = tuple(child.initialize(device, dtype, *shapes, initializer=initializer))

    def output_shapes(self, input_shapes):
        shapes = [tuple(s) for s in input_shapes]
        for child in self._children.values():
            shapes = child.output_shapes(shapes)
        return list(shapes)

    def _forward(self, inputs, training):
        outputs = inputs
        for child in self._children.values():
            outputs = child.forward(outputs, training=training)
        return outputs


class LambdaBlock(Block):
    """
    Parameter-free block around a tensor function.

    Args:
        fn: Function applied to the first input (or to all inputs when
            `all_inputs` is True); may return a tensor or a list of tensors
        output_shapes_fn: Maps input shapes to output shapes; defaults to the
                          identity
    """

    def __init__(
        self,
        fn: Callable,
        output_shapes_fn: Optional[Callable[[Sequence[Shape]], List[Shape]]] = None,
        all_inputs: bool = False,
        name: Optional[str] = None,
    ):
        super().__init__(name or getattr(fn, "__name__", "LambdaBlock"))
        self.fn = fn
        self.output_shapes_fn = output_shapes_fn
        self.all_inputs = all_inputs

    def output_shapes(self, input_shapes):
        if self.output_shapes_fn is None:
            if self.all_inputs:
                return [tuple(s) for s in input_shapes]
            return [tuple(input_shapes[0])]
        return [tuple(s) for s in self.output_shapes_fn(input_shapes)]

    def _forward(self, inputs, training):
        result = self.fn(inputs) if self.all_inputs else self.fn(inputs[0])
        if isinstance(result, (list, tuple)):
            return list(result)
        return [result]
