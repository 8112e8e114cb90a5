"""
Ordered (key, value) list

A list of pairs that can also be addressed by key. Blocks use it to expose
their parameters: the order is the serialization order, so it must never be
re-sorted.
"""

from typing import Any, Dict, Generic, Iterable, Iterator, List, Optional, Tuple, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class PairList(Generic[K, V]):
    """
    Ordered, name-addressable collection.

    Duplicate keys are allowed (like the list it wraps); `get` returns the
    first match.

    Example:
        >>> pairs = PairList([("weight", w), ("bias", b)])
        >>> pairs.key_at(1)
        'bias'
    """

    def __init__(self, pairs: Optional[Iterable[Tuple[K, V]]] = None):
        self._keys: List[K] = []
        self._values: List[V] = []
        if pairs is not None:
            for key, value in pairs:
                self.add(key, value)

    def add(self, key: K, value: V) -> None:
        self._keys.append(key)
        self._values.append(value)

    def add_all(self, other: "PairList[K, V]") -> None:
        for key, value in other:
            self.add(key, value)

    def get(self, key: K, default: Any = None) -> Optional[V]:
        for k, v in zip(self._keys, self._values):
            if k == key:
                return v
        return default

    def key_at(self, index: int) -> K:
        return self._keys[index]

    def value_at(self, index: int) -> V:
        return self._values[index]

    def keys(self) -> List[K]:
        return list(self._keys)

    def values(self) -> List[V]:
        return list(self._values)

    def to_dict(self) -> Dict[K, V]:
        """Dict view; later duplicates overwrite earlier ones."""
        return dict(zip(self._keys, self._values))

    def __contains__(self, key) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[Tuple[K, V]]:
        return iter(zip(self._keys, self._values))

    def __getitem__(self, index: int) -> Tuple[K, V]:
        return self._keys[index], self._values[index]

    def __repr__(self) -> str:
        return f"PairList({list(zip(self._keys, self._values))!r})"
