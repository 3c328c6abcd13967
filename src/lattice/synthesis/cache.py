"""Session cache of synthesized converters.

A converter learned from a set of examples is reused whenever the same
operation is asked for with a structurally identical example set. Keys
hash the operation, each example's input and its output together with
the output's type, so ``("1", 1)`` and ``("1", "1")`` stay distinct.
The cache lives as long as its session; when it is full the least
recently used converter is dropped.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections import OrderedDict
from collections.abc import Sequence
from typing import Any

from lattice.logic.terms import Example

logger = logging.getLogger(__name__)


def converter_key(operation: str, examples: Sequence[Example]) -> str:
    """Content key for a converter request."""
    parts = [[e.input, type(e.output).__name__, e.output] for e in examples]
    serialized = json.dumps([operation, parts], sort_keys=True, default=str)
    return hashlib.sha256(serialized.encode()).hexdigest()[:16]


class ConverterCache:
    """LRU map from converter key to converter, with hit statistics."""

    def __init__(self, max_size: int = 1000):
        self._entries: OrderedDict[str, Any] = OrderedDict()
        self._max_size = max_size
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Any | None:
        if key not in self._entries:
            self._misses += 1
            return None
        self._hits += 1
        self._entries.move_to_end(key)
        return self._entries[key]

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = value
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted converter %s", evicted)

    def get_converter(self, operation: str, examples: Sequence[Example]) -> Any | None:
        return self.get(converter_key(operation, examples))

    def cache_converter(self, operation: str, examples: Sequence[Example], converter: Any) -> None:
        self.set(converter_key(operation, examples), converter)

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def hit_rate(self) -> float:
        total = self._hits + self._misses
        return self._hits / total if total > 0 else 0.0

    @property
    def stats(self) -> dict[str, Any]:
        """Size, capacity, hits, misses and hit rate."""
        return {
            "size": len(self._entries),
            "max_size": self._max_size,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self.hit_rate,
        }


__all__ = ["ConverterCache", "converter_key"]
