"""
SentencePiece tokenizer module
"""

from blocknet.tokenizer.sentencepiece_tokenizer import (
    SentencePieceTokenizer,
    SentencePieceVocabulary,
    load_tokenizer,
)
from blocknet.tokenizer.train_tokenizer import train_sentencepiece_tokenizer

__all__ = [
    "SentencePieceTokenizer",
    "SentencePieceVocabulary",
    "load_tokenizer",
    "train_sentencepiece_tokenizer",
]
