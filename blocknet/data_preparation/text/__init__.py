"""
Text Pipeline - Package Initializer

FILES FROM THIS PROJECT:
- processors.py: SimpleTokenizer, LowerCaseConvertor, PunctuationSeparator, ...
- vocabulary.py: Vocabulary, VocabularyBuilder
- embedding.py: TrainableWordEmbedding, TrainableTextEmbedding
- text_data.py: TextData and its Configuration
"""

from .processors import (
    LowerCaseConvertor,
    PunctuationSeparator,
    SimpleTokenizer,
    TextProcessor,
    TextTerminator,
    TextTruncator,
)
from .vocabulary import Vocabulary, VocabularyBuilder
from .embedding import TextEmbedding, TrainableTextEmbedding, TrainableWordEmbedding
from .text_data import Configuration, TextData, get_default_configuration

__all__ = [
    "TextProcessor",
    "SimpleTokenizer",
    "LowerCaseConvertor",
    "PunctuationSeparator",
    "TextTruncator",
    "TextTerminator",
    "Vocabulary",
    "VocabularyBuilder",
    "TextEmbedding",
    "TrainableWordEmbedding",
    "TrainableTextEmbedding",
    "Configuration",
    "TextData",
    "get_default_configuration",
]
