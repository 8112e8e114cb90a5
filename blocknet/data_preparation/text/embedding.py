"""
Text Embeddings

Word-level and sequence-level embeddings built on the Embedding block.

- TrainableWordEmbedding: Embedding whose rows are vocabulary ids, so the
  vocabulary's unknown id doubles as the fallback row
- TextEmbedding: interface from token sequences to ids / vectors
- TrainableTextEmbedding: TextEmbedding over a TrainableWordEmbedding

A trainable embedding is used in two steps: preprocess_text_to_embed() turns
tokens into an id tensor outside the model (in the dataset), and the word
embedding block maps ids to vectors inside the model, where it is trained.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import torch

from blocknet.data_preparation.text.vocabulary import Vocabulary
from blocknet.model.architecture.core import Embedding


class TrainableWordEmbedding(Embedding):
    """
    Embedding block indexed by a Vocabulary.

    Args:
        vocabulary: Token <-> id mapping; one row per vocabulary entry
        embedding_size: Vector size
    """

    def __init__(self, vocabulary: Vocabulary, embedding_size: int, name: Optional[str] = None):
        super().__init__(embedding_size, num_embeddings=len(vocabulary), name=name)
        self.vocabulary = vocabulary

    def has_item(self, item: str) -> bool:
        return self.vocabulary.is_known_token(item)

    def embed(self, item: str) -> int:
        # unknown words share the vocabulary's unknown row
        return self.vocabulary.get_index(item)

    def embed_word(self, word: str) -> int:
        """Row id for a word (the unknown id when the word is unknown)."""
        return self.embed(word)

    def unembed_word(self, index: int) -> str:
        return self.vocabulary.get_token(int(index))


class TextEmbedding(ABC):
    """Turns token sequences into model inputs."""

    @abstractmethod
    def preprocess_text_to_embed(self, tokens: Sequence[str], device: Optional[torch.device] = None) -> torch.Tensor:
        """Ids to feed a trainable embedding inside the model."""
        pass

    @abstractmethod
    def embed_text(self, tokens: Sequence[str], device: Optional[torch.device] = None) -> torch.Tensor:
        """Embedded vectors, shape (len(tokens), embedding_size)."""
        pass

    @abstractmethod
    def unembed_text(self, ids: torch.Tensor) -> List[str]:
        pass


class TrainableTextEmbedding(TextEmbedding):
    def __init__(self, word_embedding: TrainableWordEmbedding):
        self.word_embedding = word_embedding

    def preprocess_text_to_embed(self, tokens, device=None):
        return self.word_embedding.embed_items(tokens, device=device)

    def embed_text(self, tokens, device=None):
        ids = self.preprocess_text_to_embed(tokens, device=device)
        with torch.no_grad():
            return self.word_embedding.forward([ids])[0]

    def unembed_text(self, ids):
        return [self.word_embedding.unembed_word(i) for i in ids.reshape(-1).tolist()]
