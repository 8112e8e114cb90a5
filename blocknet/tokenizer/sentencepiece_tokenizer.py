"""
SentencePiece Adapter

Wraps a trained SentencePiece model so it can be used in the text pipeline:

- SentencePieceTokenizer: text <-> pieces <-> ids; also a TextProcessor, so
  it can replace SimpleTokenizer in a TextData configuration
- SentencePieceVocabulary: the model's piece table as a Vocabulary, so a
  TrainableWordEmbedding can be built directly over it
"""

import logging
from pathlib import Path
from typing import List, Sequence, Union

import sentencepiece as spm

from blocknet.data_preparation.text.processors import TextProcessor
from blocknet.data_preparation.text.vocabulary import Vocabulary

logger = logging.getLogger(__name__)


def load_tokenizer(model_path: Union[str, Path]) -> spm.SentencePieceProcessor:
    """Load a trained SentencePiece model."""
    model_path = Path(model_path)
    if not model_path.exists():
        raise FileNotFoundError(f"Tokenizer model not found: {model_path}")
    sp = spm.SentencePieceProcessor()
    sp.load(str(model_path))
    return sp


class SentencePieceTokenizer(TextProcessor):
    """
    Subword tokenizer backed by a SentencePiece model.

    Example:
        >>> tokenizer = SentencePieceTokenizer("tokenizer/sp.model")
        >>> pieces = tokenizer.tokenize("Hello world")
        >>> tokenizer.build_sentence(pieces)
        'Hello world'
    """

    def __init__(self, model_path: Union[str, Path]):
        self.model_path = Path(model_path)
        self.processor = load_tokenizer(self.model_path)
        logger.debug(f"Loaded SentencePiece model {self.model_path} ({self.processor.get_piece_size()} pieces)")

    def tokenize(self, text: str) -> List[str]:
        return self.processor.encode_as_pieces(text)

    def build_sentence(self, pieces: Sequence[str]) -> str:
        return self.processor.decode_pieces(list(pieces))

    def encode(self, text: str) -> List[int]:
        return self.processor.encode_as_ids(text)

    def decode(self, ids: Sequence[int]) -> str:
        return self.processor.decode_ids([int(i) for i in ids])

    def preprocess(self, tokens: List[str]) -> List[str]:
        return [piece for token in tokens for piece in self.tokenize(token)]

    def __repr__(self) -> str:
        return f"SentencePieceTokenizer(model_path={str(self.model_path)!r})"


class SentencePieceVocabulary(Vocabulary):
    """Vocabulary whose ids are the SentencePiece ids of the model."""

    def __init__(self, processor: spm.SentencePieceProcessor):
        pieces = [processor.id_to_piece(i) for i in range(processor.get_piece_size())]
        super().__init__(pieces, unknown_token=processor.id_to_piece(processor.unk_id()))

    @classmethod
    def from_tokenizer(cls, tokenizer: SentencePieceTokenizer) -> "SentencePieceVocabulary":
        return cls(tokenizer.processor)
