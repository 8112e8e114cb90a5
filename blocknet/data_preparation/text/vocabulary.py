"""
Vocabulary

PURPOSE:
Map tokens to integer ids and back, with a designated unknown token that
stands in for every token the vocabulary does not know.

WHAT THIS FILE DOES:
1. Vocabulary: token <-> id lookup with unknown-token substitution
2. VocabularyBuilder: count tokens, prune by min_frequency / max_tokens
3. JSON save/load (vocab.json)

ID LAYOUT:
- reserved tokens first, in the order given
- the unknown token next (unless it is already reserved)
- counted tokens by descending frequency, ties in first-seen order

PACKAGES USED:
- collections.Counter: token counts
- json: Save/load vocabulary
"""

import json
import logging
from collections import Counter
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

DEFAULT_UNKNOWN_TOKEN = "<unk>"


class Vocabulary:
    """
    Ordered token list with an unknown-token fallback.

    Example:
        >>> vocab = Vocabulary(["<pad>", "<unk>", "hello"])
        >>> vocab.get_index("hello")
        2
        >>> vocab.get_index("never-seen")  # substituted, not raised
        1
    """

    def __init__(self, tokens: Sequence[str], unknown_token: str = DEFAULT_UNKNOWN_TOKEN):
        self._tokens: List[str] = []
        self._index: Dict[str, int] = {}
        for token in tokens:
            self._add(token)
        self.unknown_token = unknown_token
        self._add(unknown_token)

    def _add(self, token: str) -> None:
        if token not in self._index:
            self._index[token] = len(self._tokens)
            self._tokens.append(token)

    @property
    def tokens(self) -> List[str]:
        return list(self._tokens)

    @property
    def unknown_index(self) -> int:
        return self._index[self.unknown_token]

    def is_known_token(self, token: str) -> bool:
        return token in self._index

    def get_index(self, token: str) -> int:
        """Id of the token; unknown tokens map to the unknown id."""
        return self._index.get(token, self.unknown_index)

    def get_token(self, index: int) -> str:
        """
        Token for an id.

        Raises:
            IndexError: id outside [0, size)
        """
        if not 0 <= index < len(self._tokens):
            raise IndexError(f"Token index {index} out of range for vocabulary of size {len(self._tokens)}")
        return self._tokens[index]

    def encode(self, tokens: Iterable[str]) -> List[int]:
        return [self.get_index(token) for token in tokens]

    def decode(self, ids: Iterable[int]) -> List[str]:
        return [self.get_token(int(i)) for i in ids]

    def size(self) -> int:
        return len(self._tokens)

    def __len__(self) -> int:
        return len(self._tokens)

    def __contains__(self, token: str) -> bool:
        return self.is_known_token(token)

    def __repr__(self) -> str:
        return f"Vocabulary(size={len(self._tokens)}, unknown_token={self.unknown_token!r})"

    # ------------------------------------------------------------------
    # Persistence

    def to_dict(self) -> dict:
        return {"unknown_token": self.unknown_token, "tokens": self.tokens}

    @classmethod
    def from_dict(cls, data: dict) -> "Vocabulary":
        return cls(data["tokens"], unknown_token=data.get("unknown_token", DEFAULT_UNKNOWN_TOKEN))

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, ensure_ascii=False, indent=2)
        logger.info(f"Vocabulary saved: {path} ({len(self)} tokens)")
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Vocabulary":
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if "tokens" not in data:
            raise ValueError(f"Vocabulary file {path} has no 'tokens' list")
        return cls.from_dict(data)


class VocabularyBuilder:
    """
    Collects token counts and builds a Vocabulary.

    Args:
        min_frequency: Tokens seen fewer times are left out (mapped to unknown)
        max_tokens: Keep at most this many counted tokens (None = no limit);
            reserved and unknown tokens do not count against it
        reserved_tokens: Always present, always first
        unknown_token: Substitute for tokens outside the vocabulary
    """

    def __init__(
        self,
        min_frequency: int = 1,
        max_tokens: Optional[int] = None,
        reserved_tokens: Sequence[str] = (),
        unknown_token: str = DEFAULT_UNKNOWN_TOKEN,
    ):
        if min_frequency < 1:
            raise ValueError(f"min_frequency must be >= 1, got {min_frequency}")
        if max_tokens is not None and max_tokens < 0:
            raise ValueError(f"max_tokens must be non-negative, got {max_tokens}")
        self.min_frequency = min_frequency
        self.max_tokens = max_tokens
        self.reserved_tokens = list(reserved_tokens)
        self.unknown_token = unknown_token
        self.counts: Counter = Counter()

    def add(self, tokens: Iterable[str]) -> "VocabularyBuilder":
        """Count one token sequence."""
        self.counts.update(tokens)
        return self

    def add_all(self, sequences: Iterable[Iterable[str]]) -> "VocabularyBuilder":
        for tokens in sequences:
            self.add(tokens)
        return self

    def build(self) -> Vocabulary:
        special = set(self.reserved_tokens) | {self.unknown_token}
        # Counter preserves insertion order; sorted() is stable
        counted = sorted(
            (token for token, count in self.counts.items() if count >= self.min_frequency and token not in special),
            key=lambda token: -self.counts[token],
        )
        if self.max_tokens is not None:
            counted = counted[: self.max_tokens]

        vocabulary = Vocabulary(self.reserved_tokens + [self.unknown_token] + counted, self.unknown_token)
        logger.debug(
            f"Built vocabulary: {len(vocabulary)} tokens from {len(self.counts)} distinct "
            f"(min_frequency={self.min_frequency})"
        )
        return vocabulary
