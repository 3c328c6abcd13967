"""Synthesis coordinator: one entry point for regex, extractor and format synthesis.

The coordinator checks its knowledge base for a prior entry that still
fits the request before running a synthesizer, and records every new
result so later requests can reuse it. It also owns the converter cache
the solver uses for operations with ``:examples``.

Usage:
    from lattice.synthesis.coordinator import SynthesisCoordinator, SynthesisRequest

    coordinator = SynthesisCoordinator()
    result = coordinator.synthesize(
        SynthesisRequest(kind="regex", positive_examples=["2024-01-15", "2023-12-01"])
    )
    if result.success:
        print(result.regex)
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from lattice.config import SynthesisSettings
from lattice.errors import SynthesisFailure
from lattice.logic.terms import Example, as_examples
from lattice.synthesis import extractor as ex
from lattice.synthesis.cache import ConverterCache
from lattice.synthesis.converters import Converter, build_converter
from lattice.synthesis.knowledge_base import EntryKind, KnowledgeBase, KnowledgeEntry
from lattice.synthesis.regex import full_match, synthesize_regex

logger = logging.getLogger(__name__)


class RequestKind(Enum):
    REGEX = "regex"
    EXTRACTOR = "extractor"
    FORMAT = "format"


@dataclass
class SynthesisRequest:
    """A synthesis request.

    Attributes:
        kind: regex, extractor or format
        positive_examples: Inputs (strings a regex must match, or extractor inputs)
        negative_examples: Strings a regex must not match
        expected_outputs: Extractor outputs, parallel to ``positive_examples``
        description: Free text stored with the knowledge-base entry
    """

    kind: RequestKind | str
    positive_examples: list[str]
    negative_examples: list[str] = field(default_factory=list)
    expected_outputs: list[Any] | None = None
    description: str = ""

    def __post_init__(self) -> None:
        self.kind = RequestKind(self.kind)


@dataclass
class SynthesisResult:
    """Outcome of a synthesis request."""

    success: bool
    kind: RequestKind
    regex: str | None = None
    extractor: ex.Extractor | None = None
    extractor_code: str | None = None
    alternatives: list[ex.Extractor] = field(default_factory=list)
    format: str | None = None
    error: str | None = None
    reused: bool = False
    entry_id: str | None = None
    synthesis_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "kind": self.kind.value,
            "regex": self.regex,
            "extractor": ex.describe(self.extractor) if self.extractor is not None else None,
            "extractor_code": self.extractor_code,
            "format": self.format,
            "error": self.error,
            "reused": self.reused,
            "entry_id": self.entry_id,
        }


@dataclass
class CollectedExample:
    """An example gathered while exploring a document."""

    raw: str
    source: str = "line"  # grep, line or match
    output: Any = None
    line_num: int | None = None


class SynthesisCoordinator:
    """Dispatches synthesis requests and manages reuse.

    Args:
        knowledge_base: Store for reuse; a private one is created when omitted
        cache: Converter cache; a private one is created when omitted
        settings: Synthesis limits and reuse switches
    """

    def __init__(
        self,
        knowledge_base: KnowledgeBase | None = None,
        cache: ConverterCache | None = None,
        settings: SynthesisSettings | None = None,
    ) -> None:
        self.settings = settings or SynthesisSettings()
        self.knowledge_base = knowledge_base if knowledge_base is not None else KnowledgeBase()
        self.cache = cache if cache is not None else ConverterCache(max_size=self.settings.cache_size)
        self.synthesis_count = 0
        self._collected: dict[str, list[CollectedExample]] = {}

    @property
    def _reuse(self) -> bool:
        return self.settings.knowledge_base and self.settings.reuse_top_k > 0

    def synthesize(self, request: SynthesisRequest) -> SynthesisResult:
        """Run one request; failures come back as ``success=False``."""
        start = time.perf_counter()
        self.synthesis_count += 1
        try:
            if request.kind is RequestKind.REGEX:
                result = self.synthesize_regex(
                    request.positive_examples, request.negative_examples, request.description
                )
            elif request.kind is RequestKind.EXTRACTOR:
                if not request.expected_outputs:
                    raise SynthesisFailure("Extractor synthesis requires expected outputs")
                if len(request.expected_outputs) != len(request.positive_examples):
                    raise SynthesisFailure("Mismatched positive examples and expected outputs lengths")
                examples = as_examples(zip(request.positive_examples, request.expected_outputs))
                result = self.synthesize_extractor(examples, request.description)
            else:
                result = self.synthesize_format(request.positive_examples)
        except (SynthesisFailure, TypeError, ValueError) as e:
            result = SynthesisResult(success=False, kind=request.kind, error=str(e))
        result.synthesis_time_ms = (time.perf_counter() - start) * 1000
        return result

    def synthesize_batch(self, requests: Iterable[SynthesisRequest]) -> list[SynthesisResult]:
        return [self.synthesize(r) for r in requests]

    # =========================================================================
    # Regex
    # =========================================================================

    def synthesize_regex(
        self,
        positives: Sequence[str],
        negatives: Sequence[str] = (),
        description: str = "",
    ) -> SynthesisResult:
        """Find or synthesize a regex matching every positive and no negative."""
        kind = RequestKind.REGEX
        positives = list(positives)
        negatives = list(negatives)
        if set(positives) & set(negatives):
            return SynthesisResult(success=False, kind=kind, error="Conflicting positive and negative examples")

        if self._reuse:
            similar = self.knowledge_base.find_similar(
                positives, EntryKind.REGEX, limit=self.settings.reuse_top_k
            )
            for entry in similar:
                if not entry.pattern:
                    continue
                if all(full_match(entry.pattern, p) for p in positives) and not any(
                    full_match(entry.pattern, n) for n in negatives
                ):
                    self.knowledge_base.record_usage(entry.id, True)
                    logger.info("Reused regex %s: %s", entry.id, entry.pattern)
                    return SynthesisResult(
                        success=True, kind=kind, regex=entry.pattern, reused=True, entry_id=entry.id
                    )

        result = synthesize_regex(positives, negatives, max_alternation=self.settings.max_alternation)
        if not result.success or result.pattern is None:
            return SynthesisResult(
                success=False, kind=kind, error=result.error or "Could not synthesize regex pattern"
            )

        entry_id = None
        if self.settings.knowledge_base:
            entry = self.knowledge_base.add(
                KnowledgeEntry(
                    kind=EntryKind.REGEX,
                    name=description or "synthesized_regex",
                    description=description,
                    pattern=result.pattern,
                    ast=result.ast,
                    positive_examples=positives,
                    negative_examples=negatives,
                    usage_count=1,
                    success_count=1,
                )
            )
            entry_id = entry.id
        return SynthesisResult(success=True, kind=kind, regex=result.pattern, entry_id=entry_id)

    # =========================================================================
    # Extractors
    # =========================================================================

    def _reuse_extractor(self, examples: Sequence[Example]) -> SynthesisResult | None:
        inputs = [e.input for e in examples]
        top_k = self.settings.reuse_top_k
        for entry in self.knowledge_base.find_similar(inputs, EntryKind.EXTRACTOR, limit=top_k):
            if isinstance(entry.ast, ex.Extractor) and ex.test_extractor(entry.ast, examples):
                self.knowledge_base.record_usage(entry.id, True)
                logger.info("Reused extractor %s: %s", entry.id, ex.describe(entry.ast))
                return SynthesisResult(
                    success=True,
                    kind=RequestKind.EXTRACTOR,
                    extractor=entry.ast,
                    extractor_code=entry.code,
                    reused=True,
                    entry_id=entry.id,
                )

        # A stored regex feeding a stored transformer may already fit
        regexes = self.knowledge_base.find_similar(inputs, EntryKind.REGEX, limit=top_k)
        transformers = self.knowledge_base.by_kind(EntryKind.TRANSFORMER)
        for regex_entry in regexes:
            for transformer in transformers:
                for group in (0, 1):
                    candidate = self._composed_ast(regex_entry, transformer, group)
                    if candidate is not None and ex.test_extractor(candidate, examples):
                        entry = self.compose(regex_entry.id, transformer.id, group)
                        self.knowledge_base.record_usage(entry.id, True)
                        return SynthesisResult(
                            success=True,
                            kind=RequestKind.EXTRACTOR,
                            extractor=entry.ast,
                            extractor_code=entry.code,
                            reused=True,
                            entry_id=entry.id,
                        )
        return None

    def synthesize_extractor(self, examples: Iterable[Any], description: str = "") -> SynthesisResult:
        """Find or synthesize an extractor reproducing every example.

        Raises:
            SynthesisFailure: If the examples are empty or conflicting
        """
        examples = as_examples(examples)
        if self._reuse and examples and not ex.find_conflicts(examples):
            reused = self._reuse_extractor(examples)
            if reused is not None:
                return reused

        found = ex.synthesize_extractors(examples, max_results=self.settings.max_extractors)
        if not found:
            return SynthesisResult(
                success=False, kind=RequestKind.EXTRACTOR, error="Could not synthesize extractor"
            )

        best = found[0]
        code = ex.to_code(best)
        entry_id = None
        if self.settings.knowledge_base:
            entry = self.knowledge_base.add(
                KnowledgeEntry(
                    kind=EntryKind.EXTRACTOR,
                    name=description or "synthesized_extractor",
                    description=description,
                    code=code,
                    ast=best,
                    positive_examples=[e.input for e in examples],
                    outputs=[e.output for e in examples],
                    usage_count=1,
                    success_count=1,
                )
            )
            entry_id = entry.id
        return SynthesisResult(
            success=True,
            kind=RequestKind.EXTRACTOR,
            extractor=best,
            extractor_code=code,
            alternatives=found[1:],
            entry_id=entry_id,
        )

    # =========================================================================
    # Composition
    # =========================================================================

    def _composed_ast(
        self, regex_entry: KnowledgeEntry, transformer: KnowledgeEntry, group: int
    ) -> ex.Extractor | None:
        if not regex_entry.pattern or not isinstance(transformer.ast, ex.Extractor):
            return None
        try:
            groups = re.compile(regex_entry.pattern).groups
        except re.error:
            return None
        if group > groups:
            return None
        matched = ex.ExMatch(ex.INPUT, regex_entry.pattern, group)
        return ex.substitute_input(transformer.ast, matched)

    def compose(self, regex_id: str, transformer_id: str, group: int = 0) -> KnowledgeEntry:
        """Fuse a regex entry and a transformer entry into an extractor entry.

        The new extractor matches the regex, then runs the transformer on
        the matched text (``group`` of the match).

        Raises:
            SynthesisFailure: If either id is missing or has the wrong kind
        """
        regex_entry = self.knowledge_base.get(regex_id)
        transformer = self.knowledge_base.get(transformer_id)
        if regex_entry is None or regex_entry.kind is not EntryKind.REGEX:
            raise SynthesisFailure(f"Not a regex entry: {regex_id}")
        if transformer is None or transformer.kind is not EntryKind.TRANSFORMER:
            raise SynthesisFailure(f"Not a transformer entry: {transformer_id}")
        composed = self._composed_ast(regex_entry, transformer, group)
        if composed is None:
            raise SynthesisFailure(f"Cannot compose {regex_id} with {transformer_id}")

        for existing in self.knowledge_base.derived_from(regex_id):
            if existing.ast == composed:
                return existing

        entry = self.knowledge_base.derive(
            [regex_id, transformer_id],
            KnowledgeEntry(
                kind=EntryKind.EXTRACTOR,
                name=f"{regex_entry.name}+{transformer.name}",
                description=f"match {regex_entry.pattern} then {transformer.name}",
                pattern=regex_entry.pattern,
                code=ex.to_code(composed),
                ast=composed,
                positive_examples=list(regex_entry.positive_examples),
            ),
        )
        logger.info("Composed %s from %s and %s", entry.id, regex_id, transformer_id)
        return entry

    def register_transformer(self, name: str, extractor: ex.Extractor, examples: Sequence[Example]) -> KnowledgeEntry:
        """Store a string -> value extractor for later composition."""
        code = ex.to_code(extractor)
        for entry in self.knowledge_base.by_kind(EntryKind.TRANSFORMER):
            if entry.ast == extractor:
                return entry
        return self.knowledge_base.add(
            KnowledgeEntry(
                kind=EntryKind.TRANSFORMER,
                name=name,
                description=f"{name} converter",
                code=code,
                ast=extractor,
                positive_examples=[e.input for e in examples],
                outputs=[e.output for e in examples],
                usage_count=1,
                success_count=1,
            )
        )

    # =========================================================================
    # Converters
    # =========================================================================

    def converter(self, operation: str, examples: Iterable[Any]) -> Converter:
        """Converter for an operation, cached by operation and example set.

        Raises:
            SynthesisFailure: If no converter reproduces the examples
        """
        examples = as_examples(examples)
        cached = self.cache.get_converter(operation, examples)
        if cached is not None:
            logger.debug("Converter cache hit for %s", operation)
            return cached

        converter = build_converter(operation, examples, self)
        self.cache.cache_converter(operation, examples, converter)
        if (
            self.settings.knowledge_base
            and converter.ast is not None
            and operation in ("parseCurrency", "parseNumber")
        ):
            self.register_transformer(operation, converter.ast, examples)
        return converter

    # =========================================================================
    # Formats
    # =========================================================================

    def synthesize_format(self, examples: Sequence[str]) -> SynthesisResult:
        """Describe the common format of the examples."""
        kind = RequestKind.FORMAT
        if not examples:
            return SynthesisResult(success=False, kind=kind, error="No examples provided for format synthesis")
        described = detect_date_format(examples) or detect_numeric_format(examples) or detect_general_format(examples)
        if described is None:
            return SynthesisResult(success=False, kind=kind, error="Could not determine format")
        return SynthesisResult(success=True, kind=kind, format=described)

    # =========================================================================
    # Collected examples
    # =========================================================================

    def collect_example(self, category: str, example: CollectedExample) -> None:
        self._collected.setdefault(category, []).append(example)

    def examples_for(self, category: str) -> list[CollectedExample]:
        return list(self._collected.get(category, []))

    def categories(self) -> list[str]:
        return list(self._collected)

    def clear_examples(self, category: str | None = None) -> None:
        if category is None:
            self._collected.clear()
        else:
            self._collected.pop(category, None)

    def synthesize_from_collected(self, category: str, kind: RequestKind | str) -> SynthesisResult:
        """Synthesize from the examples gathered under a category.

        Extractor requests use the examples that carry an output.
        """
        kind = RequestKind(kind)
        collected = self._collected.get(category, [])
        if not collected:
            return SynthesisResult(success=False, kind=kind, error="No examples collected for category")
        if kind is RequestKind.EXTRACTOR:
            labelled = [c for c in collected if c.output is not None]
            if not labelled:
                return SynthesisResult(success=False, kind=kind, error="No expected outputs in collected examples")
            return self.synthesize(
                SynthesisRequest(
                    kind=kind,
                    positive_examples=[c.raw for c in labelled],
                    expected_outputs=[c.output for c in labelled],
                    description=f"Synthesized from {category}",
                )
            )
        return self.synthesize(
            SynthesisRequest(
                kind=kind,
                positive_examples=[c.raw for c in collected],
                description=f"Synthesized from {category}",
            )
        )


_DATE_FORMATS = (
    (re.compile(r"^\d{4}-\d{2}-\d{2}$"), "YYYY-MM-DD (ISO date)"),
    (re.compile(r"^\d{2}/\d{2}/\d{4}$"), "MM/DD/YYYY (US date)"),
    (re.compile(r"^\d{2}\.\d{2}\.\d{4}$"), "DD.MM.YYYY (EU date)"),
    (re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$"), "YYYY-MM-DD HH:MM:SS (ISO datetime)"),
)

_NUMERIC_FORMATS = (
    (re.compile(r"^\$[\d,]+(\.\d{2})?$"), "$(USD) with optional decimals"),
    (re.compile(r"^\d+(\.\d+)?%$"), "Percentage (N%)"),
    (re.compile(r"^\d{1,3}(,\d{3})+$"), "Integer with comma separators"),
)


def detect_date_format(examples: Sequence[str]) -> str | None:
    for pattern, described in _DATE_FORMATS:
        if all(pattern.match(e) for e in examples):
            return described
    return None


def detect_numeric_format(examples: Sequence[str]) -> str | None:
    for pattern, described in _NUMERIC_FORMATS:
        if all(pattern.match(e) for e in examples):
            return described
    return None


def structure_of(text: str) -> str:
    """Shape of a string: letter runs become TEXT, digit runs NUM."""
    shape = re.sub(r"[a-zA-Z]+", "TEXT", text)
    shape = re.sub(r"\d+", "NUM", shape)
    return re.sub(r"\s+", " ", shape)


def detect_general_format(examples: Sequence[str]) -> str | None:
    structures = {structure_of(e) for e in examples}
    return structures.pop() if len(structures) == 1 else None


__all__ = [
    "CollectedExample",
    "RequestKind",
    "SynthesisCoordinator",
    "SynthesisRequest",
    "SynthesisResult",
    "detect_date_format",
    "detect_general_format",
    "detect_numeric_format",
    "structure_of",
]
