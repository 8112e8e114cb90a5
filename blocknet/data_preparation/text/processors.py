"""
Text Processors

Each processor maps a list of tokens to a new list of tokens, so processors
can be chained: a raw sentence enters as a one-element list and leaves as
its token sequence.

    tokens = [text]
    for processor in processors:
        tokens = processor.preprocess(tokens)
"""

import re
import string
from abc import ABC, abstractmethod
from typing import List


class TextProcessor(ABC):
    """A step of the text preprocessing chain."""

    @abstractmethod
    def preprocess(self, tokens: List[str]) -> List[str]:
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class SimpleTokenizer(TextProcessor):
    """Splits every token on a delimiter (whitespace by default)."""

    def __init__(self, delimiter: str = None):
        self.delimiter = delimiter

    def tokenize(self, sentence: str) -> List[str]:
        return [token for token in sentence.split(self.delimiter) if token]

    def build_sentence(self, tokens: List[str]) -> str:
        return (self.delimiter or " ").join(tokens)

    def preprocess(self, tokens: List[str]) -> List[str]:
        return [piece for token in tokens for piece in self.tokenize(token)]


class LowerCaseConvertor(TextProcessor):
    def preprocess(self, tokens: List[str]) -> List[str]:
        return [token.lower() for token in tokens]


class PunctuationSeparator(TextProcessor):
    """
    Splits punctuation off into tokens of its own.

    "hello, world!" -> ["hello", ",", "world", "!"] (after SimpleTokenizer)
    """

    PATTERN = re.compile(f"([{re.escape(string.punctuation)}])")

    def preprocess(self, tokens: List[str]) -> List[str]:
        result = []
        for token in tokens:
            result.extend(piece for piece in self.PATTERN.split(token) if piece and not piece.isspace())
        return result


class TextTruncator(TextProcessor):
    """Keeps at most max_length tokens."""

    def __init__(self, max_length: int):
        if max_length < 0:
            raise ValueError(f"max_length must be non-negative, got {max_length}")
        self.max_length = max_length

    def preprocess(self, tokens: List[str]) -> List[str]:
        return tokens[: self.max_length]

    def __repr__(self) -> str:
        return f"TextTruncator(max_length={self.max_length})"


class TextTerminator(TextProcessor):
    """Wraps the sequence in begin/end-of-sentence tokens."""

    def __init__(self, bos: str = "<bos>", eos: str = "<eos>", add_bos: bool = True, add_eos: bool = True):
        self.bos = bos
        self.eos = eos
        self.add_bos = add_bos
        self.add_eos = add_eos

    def preprocess(self, tokens: List[str]) -> List[str]:
        result = list(tokens)
        if self.add_bos:
            result.insert(0, self.bos)
        if self.add_eos:
            result.append(self.eos)
        return result

    def __repr__(self) -> str:
        return f"TextTerminator(bos={self.bos!r}, eos={self.eos!r})"
