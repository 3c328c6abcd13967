"""Knowledge base of synthesized components.

Stores regexes, extractors and transformers produced by synthesis so a
later request with similar examples can reuse them instead of searching
again. This is an explicit object: callers create one per session (or
share one deliberately) and pass it to the coordinator.

Entries are indexed two ways:
- By kind (regex, extractor, transformer)
- By a coarse signature of their positive examples (character content
  and length bucket), see ``compute_signature``

Ranking for reuse combines example similarity with each entry's
observed success rate.
"""

from __future__ import annotations

import itertools
import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from lattice.synthesis import extractor as ex
from lattice.synthesis.similarity import compute_signature, example_similarity

logger = logging.getLogger(__name__)


class EntryKind(Enum):
    REGEX = "regex"
    EXTRACTOR = "extractor"
    TRANSFORMER = "transformer"


@dataclass
class KnowledgeEntry:
    """A stored synthesis result.

    Attributes:
        id: Unique id, assigned by the knowledge base when empty
        kind: What the entry is
        name: Short name for display
        description: What the entry was synthesized for
        pattern: Regex source (regex entries, and the match step of composed extractors)
        code: Python expression over ``s`` (extractor and transformer entries)
        ast: Regex or extractor AST
        positive_examples: Inputs the entry was synthesized from
        negative_examples: Inputs a regex entry must reject
        outputs: Expected outputs, parallel to ``positive_examples``
        usage_count: Times the entry was offered for reuse
        success_count: Times reuse verified
        last_used: Time of the last reuse
        composable_with: Ids of entries this one has been fused with
        derived_from: Ids of parent entries, for composed entries
    """

    kind: EntryKind
    name: str
    description: str = ""
    id: str = ""
    pattern: str | None = None
    code: str | None = None
    ast: Any = None
    positive_examples: list[str] = field(default_factory=list)
    negative_examples: list[str] = field(default_factory=list)
    outputs: list[Any] = field(default_factory=list)
    usage_count: int = 0
    success_count: int = 0
    last_used: datetime = field(default_factory=datetime.now)
    composable_with: list[str] = field(default_factory=list)
    derived_from: list[str] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        """Observed reuse success; an unused entry counts as fully reliable."""
        if self.usage_count == 0:
            return 1.0
        return self.success_count / self.usage_count

    def to_dict(self) -> dict[str, Any]:
        ast: Any = None
        if isinstance(self.ast, ex.Extractor):
            ast = ex.to_dict(self.ast)
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "description": self.description,
            "pattern": self.pattern,
            "code": self.code,
            "ast": ast,
            "positive_examples": list(self.positive_examples),
            "negative_examples": list(self.negative_examples),
            "outputs": list(self.outputs),
            "usage_count": self.usage_count,
            "success_count": self.success_count,
            "last_used": self.last_used.isoformat(),
            "composable_with": list(self.composable_with),
            "derived_from": list(self.derived_from),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KnowledgeEntry:
        """Rebuild an entry from ``to_dict`` output.

        Regex ASTs are not exported; the pattern string is the regex's
        canonical form.
        """
        kind = EntryKind(data["kind"])
        ast = None
        if data.get("ast") is not None and kind is not EntryKind.REGEX:
            ast = ex.from_dict(data["ast"])
        last_used = data.get("last_used")
        return cls(
            id=data.get("id", ""),
            kind=kind,
            name=data.get("name", ""),
            description=data.get("description", ""),
            pattern=data.get("pattern"),
            code=data.get("code"),
            ast=ast,
            positive_examples=list(data.get("positive_examples", [])),
            negative_examples=list(data.get("negative_examples", [])),
            outputs=list(data.get("outputs", [])),
            usage_count=data.get("usage_count", 0),
            success_count=data.get("success_count", 0),
            last_used=datetime.fromisoformat(last_used) if last_used else datetime.now(),
            composable_with=list(data.get("composable_with", [])),
            derived_from=list(data.get("derived_from", [])),
        )


class KnowledgeBase:
    """In-memory store of synthesized components.

    Entries are append-mostly: reuse only touches their counters. There
    is no eviction; a session's store stays small.
    """

    def __init__(self) -> None:
        self._entries: dict[str, KnowledgeEntry] = {}
        self._by_kind: dict[EntryKind, set[str]] = {kind: set() for kind in EntryKind}
        self._by_signature: dict[str, set[str]] = {}
        self._ids = itertools.count(1)

    def next_id(self, kind: EntryKind) -> str:
        entry_id = f"{kind.value}_{next(self._ids)}"
        while entry_id in self._entries:
            entry_id = f"{kind.value}_{next(self._ids)}"
        return entry_id

    def add(self, entry: KnowledgeEntry) -> KnowledgeEntry:
        """Add an entry, assigning an id if it has none.

        Adding an entry with an existing id replaces the stored entry.

        Returns:
            The stored entry
        """
        if not entry.id:
            entry.id = self.next_id(entry.kind)
        if entry.id in self._entries:
            self._unindex(self._entries[entry.id])
        self._entries[entry.id] = entry
        self._by_kind[entry.kind].add(entry.id)
        signature = compute_signature(entry.positive_examples)
        self._by_signature.setdefault(signature, set()).add(entry.id)
        logger.info("Knowledge base: added %s %s (%s)", entry.kind.value, entry.id, entry.name)
        return entry

    def _unindex(self, entry: KnowledgeEntry) -> None:
        self._by_kind[entry.kind].discard(entry.id)
        signature = compute_signature(entry.positive_examples)
        self._by_signature.get(signature, set()).discard(entry.id)

    def get(self, entry_id: str) -> KnowledgeEntry | None:
        return self._entries.get(entry_id)

    def by_kind(self, kind: EntryKind | str) -> list[KnowledgeEntry]:
        """All entries of one kind, in insertion order."""
        kind = EntryKind(kind)
        return [e for e in self._entries.values() if e.id in self._by_kind[kind]]

    def by_signature(self, examples: Sequence[str]) -> list[KnowledgeEntry]:
        """Entries whose examples fall into the same structural bucket."""
        ids = self._by_signature.get(compute_signature(examples), set())
        return [e for e in self._entries.values() if e.id in ids]

    def find_similar(
        self,
        examples: Sequence[str],
        kind: EntryKind | str | None = None,
        limit: int | None = None,
    ) -> list[KnowledgeEntry]:
        """Rank entries by example similarity weighted by success rate.

        Args:
            examples: Inputs of the new request
            kind: Restrict to one kind
            limit: Maximum results

        Returns:
            Entries with a nonzero similarity, best first
        """
        candidates = self.by_kind(kind) if kind is not None else list(self._entries.values())
        scored: list[tuple[float, KnowledgeEntry]] = []
        for entry in candidates:
            score = example_similarity(examples, entry.positive_examples)
            if score > 0:
                scored.append((score * entry.success_rate, entry))

        scored.sort(key=lambda x: x[0], reverse=True)
        results = [entry for _, entry in scored]
        return results[:limit] if limit is not None else results

    def find_composable(self, examples: Sequence[str]) -> list[tuple[KnowledgeEntry, KnowledgeEntry]]:
        """Pairs of regex entries that together cover every example.

        Only regexes that match some but not all of the examples are
        considered; a single regex covering everything is a reuse hit,
        not a composition.
        """
        partial: list[tuple[KnowledgeEntry, set[int]]] = []
        for entry in self.by_kind(EntryKind.REGEX):
            if not entry.pattern:
                continue
            try:
                compiled = re.compile(entry.pattern)
            except re.error:
                continue
            covered = {i for i, e in enumerate(examples) if compiled.search(e)}
            if 0 < len(covered) < len(examples):
                partial.append((entry, covered))

        everything = set(range(len(examples)))
        pairs: list[tuple[KnowledgeEntry, KnowledgeEntry]] = []
        for (first, a), (second, b) in itertools.combinations(partial, 2):
            if a | b == everything:
                pairs.append((first, second))
        return pairs

    def record_usage(self, entry_id: str, success: bool) -> None:
        entry = self._entries.get(entry_id)
        if entry is None:
            logger.warning("Knowledge base: usage recorded for unknown entry %s", entry_id)
            return
        entry.usage_count += 1
        if success:
            entry.success_count += 1
        entry.last_used = datetime.now()

    def derive(self, parents: Iterable[str], entry: KnowledgeEntry) -> KnowledgeEntry:
        """Add an entry built from existing ones and link it to its parents."""
        parent_ids = [p for p in parents if p in self._entries]
        entry.derived_from = parent_ids
        stored = self.add(entry)
        for parent_id in parent_ids:
            parent = self._entries[parent_id]
            if stored.id not in parent.composable_with:
                parent.composable_with.append(stored.id)
        return stored

    def derived_from(self, parent_id: str) -> list[KnowledgeEntry]:
        return [e for e in self._entries.values() if parent_id in e.derived_from]

    def export_entries(self) -> list[dict[str, Any]]:
        """All entries as JSON-compatible dicts."""
        return [entry.to_dict() for entry in self._entries.values()]

    def import_entries(self, data: Iterable[dict[str, Any]]) -> int:
        """Load entries exported by ``export_entries``.

        Returns:
            Number of entries imported
        """
        count = 0
        for item in data:
            self.add(KnowledgeEntry.from_dict(item))
            count += 1
        return count

    def clear(self) -> None:
        self._entries.clear()
        for ids in self._by_kind.values():
            ids.clear()
        self._by_signature.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._entries


__all__ = ["EntryKind", "KnowledgeBase", "KnowledgeEntry"]
