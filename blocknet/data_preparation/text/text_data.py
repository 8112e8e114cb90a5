"""
TextData

PURPOSE:
Manage the textual part of a dataset: run the text processors over every
raw sentence, build a vocabulary from the result, replace rare tokens with
the unknown token, and embed sentences on request.

WHAT THIS FILE DOES:
1. Configuration: processors, embedding, train_embedding, embedding_size
2. preprocess(texts): tokenize, count, build vocabulary, substitute unknowns
3. embed_text(index): ids (trainable embedding) or vectors (fixed embedding)

DEFAULTS:
- processors: SimpleTokenizer -> LowerCaseConvertor -> PunctuationSeparator
- embedding_size: 15
- vocabulary: min_frequency 3, reserved tokens <pad>, <bos>, <eos>

FILES FROM THIS PROJECT:
- data_preparation/text/processors.py
- data_preparation/text/vocabulary.py
- data_preparation/text/embedding.py
"""

import logging
from dataclasses import dataclass, fields
from typing import Iterable, List, Optional

import torch

from blocknet.data_preparation.text.embedding import (
    TextEmbedding,
    TrainableTextEmbedding,
    TrainableWordEmbedding,
)
from blocknet.data_preparation.text.processors import (
    LowerCaseConvertor,
    PunctuationSeparator,
    SimpleTokenizer,
    TextProcessor,
)
from blocknet.data_preparation.text.vocabulary import Vocabulary, VocabularyBuilder
from blocknet.errors import UninitializedStateError

logger = logging.getLogger(__name__)

MIN_FREQUENCY = 3
RESERVED_TOKENS = ("<pad>", "<bos>", "<eos>")


@dataclass
class Configuration:
    """TextData settings; None means "not set" so configurations can be layered."""

    text_processors: Optional[List[TextProcessor]] = None
    text_embedding: Optional[TextEmbedding] = None
    train_embedding: Optional[bool] = None
    embedding_size: Optional[int] = None

    def update(self, other: "Configuration") -> "Configuration":
        """Overlay the non-None values of another configuration onto this one."""
        for field in fields(self):
            value = getattr(other, field.name)
            if value is not None:
                setattr(self, field.name, value)
        return self


def get_default_configuration() -> Configuration:
    return Configuration(
        text_processors=[SimpleTokenizer(), LowerCaseConvertor(), PunctuationSeparator()],
        train_embedding=False,
        embedding_size=15,
    )


class TextData:
    """
    Textual data of a dataset.

    Example:
        >>> config = get_default_configuration()
        >>> text_data = TextData(config)
        >>> text_data.preprocess(["The cat sat.", "The cat ran.", "The cat hid."])
        >>> text_data.vocabulary.get_index("cat") != text_data.vocabulary.unknown_index
        True
    """

    def __init__(self, config: Configuration):
        self.text_processors = list(config.text_processors or [])
        self.text_embedding = config.text_embedding
        self.train_embedding = bool(config.train_embedding)
        self.embedding_size = config.embedding_size

        self.text_data: List[List[str]] = []
        self._vocabulary: Optional[Vocabulary] = None
        self._owns_embedding = False

    def process_text(self, text: str) -> List[str]:
        tokens = [text]
        for processor in self.text_processors:
            tokens = processor.preprocess(tokens)
        return tokens

    def preprocess(self, new_text_data: Iterable[str]) -> None:
        """
        Process raw sentences and (re)build the vocabulary over all data seen so far.

        Tokens below the minimum frequency are replaced by the unknown token.
        Creates a trainable embedding when none was configured.
        """
        builder = VocabularyBuilder(min_frequency=MIN_FREQUENCY, reserved_tokens=RESERVED_TOKENS)
        for tokens in self.text_data:
            builder.add(tokens)
        for text in new_text_data:
            tokens = self.process_text(text)
            builder.add(tokens)
            self.text_data.append(tokens)

        vocabulary = builder.build()
        self.text_data = [
            [token if vocabulary.is_known_token(token) else vocabulary.unknown_token for token in tokens]
            for tokens in self.text_data
        ]
        self._vocabulary = vocabulary

        # an embedding created here is rebuilt so its rows follow the new vocabulary
        if self.text_embedding is None or self._owns_embedding:
            if self.embedding_size is None:
                raise ValueError("embedding_size must be set to create a trainable embedding")
            self.text_embedding = TrainableTextEmbedding(TrainableWordEmbedding(vocabulary, self.embedding_size))
            self.train_embedding = True
            self._owns_embedding = True

        logger.info(f"Preprocessed {self.size} texts, vocabulary size {len(vocabulary)}")

    def embed_text(self, index: int, device: Optional[torch.device] = None) -> List[torch.Tensor]:
        """
        Embed the sentence at an index.

        Returns:
            [ids] when the embedding is trained inside the model, otherwise
            [vectors] from the fixed embedding
        """
        if self.text_embedding is None:
            raise UninitializedStateError("TextData.preprocess must be called before embed_text")
        tokens = self.text_data[index]
        if self.train_embedding:
            return [self.text_embedding.preprocess_text_to_embed(tokens, device=device)]
        return [self.text_embedding.embed_text(tokens, device=device)]

    def get_processed_text(self, index: int) -> List[str]:
        return list(self.text_data[index])

    @property
    def vocabulary(self) -> Vocabulary:
        if self._vocabulary is None:
            raise UninitializedStateError("TextData.vocabulary is available after preprocess is called")
        return self._vocabulary

    @property
    def size(self) -> int:
        return len(self.text_data)

    def __len__(self) -> int:
        return self.size
