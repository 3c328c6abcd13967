"""Per-operation converters learned from examples.

When a query attaches ``:examples`` to an operation (``parseCurrency``,
``parseDate``, ``parseNumber``, ``predicate``, ``classify``, ``extract``,
``synthesize``, ``define-fn``), the solver asks for a converter: a
string -> value function verified against every example.

Each operation tries a short list of format-specific candidates derived
from what the examples look like, then the closed-form parser, and
finally general extractor synthesis through the coordinator. A
converter carries both a callable and an equivalent Python expression
over ``s`` built from the primitives in ``lattice.logic.coercion``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from functools import partial
from typing import TYPE_CHECKING, Any

from lattice.errors import SynthesisFailure
from lattice.logic.coercion import (
    classify_text,
    match_date,
    parse_currency,
    parse_date,
    parse_number,
    regex_test,
)
from lattice.logic.terms import Example
from lattice.synthesis import extractor as ex

if TYPE_CHECKING:
    from lattice.synthesis.coordinator import SynthesisCoordinator

logger = logging.getLogger(__name__)

INPUT = ex.INPUT

_MONTH_NAME_RE = re.compile(r"\b(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)", re.IGNORECASE)
_EU_AMOUNT_RE = re.compile(r"\d\.\d{3},\d{2}")
_THOUSANDS_RE = re.compile(r"\d,\d{3}")
_BRACKET_RE = re.compile(r"\[\w+\]")
_PREFIX_RE = re.compile(r"^(\w+):")
_UPPER_WORD_RE = re.compile(r"\b[A-Z]+\b")
_WORD_RE = re.compile(r"\b\w+\b")
_SPLIT_WORDS_RE = re.compile(r"\W+")

# Tried, case-insensitively, after words shared by every true example.
STANDARD_MARKERS = ("failed", "error", "success", "completed", r"\bfail", r"\berror")


@dataclass
class Converter:
    """A verified string -> value function.

    Attributes:
        operation: Operation the converter was learned for
        strategy: Which candidate produced it
        code: Python expression over ``s`` equivalent to ``fn``
        fn: The callable
        ast: Extractor AST when the converter is one, else None
    """

    operation: str
    strategy: str
    code: str
    fn: Callable[[str], Any] = field(repr=False)
    ast: ex.Extractor | None = None

    def __call__(self, value: Any) -> Any:
        return self.fn(value)

    @classmethod
    def from_extractor(cls, operation: str, strategy: str, extractor: ex.Extractor) -> Converter:
        return cls(
            operation=operation,
            strategy=strategy,
            code=ex.to_code(extractor),
            fn=partial(ex.evaluate, extractor),
            ast=extractor,
        )


def _verified(converter: Converter, examples: Sequence[Example]) -> bool:
    return all(ex.values_equal(converter(e.input), e.output) for e in examples)


def _first_verified(candidates: Iterator[Converter], examples: Sequence[Example]) -> Converter | None:
    for candidate in candidates:
        if _verified(candidate, examples):
            logger.debug("Converter %s via %s: %s", candidate.operation, candidate.strategy, candidate.code)
            return candidate
        logger.debug("Rejected %s candidate %s", candidate.operation, candidate.strategy)
    return None


def _regex_predicate(operation: str, strategy: str, pattern: str, ignore_case: bool = False) -> Converter:
    flags = int(re.IGNORECASE) if ignore_case else 0
    return Converter(
        operation=operation,
        strategy=strategy,
        code=f"regex_test(s, {pattern!r}, {flags})",
        fn=partial(regex_test, pattern=pattern, flags=flags),
    )


def escape_regex(text: str) -> str:
    return re.sub(r"[.*+?^${}()|\[\]\\]", lambda m: "\\" + m.group(0), text)


# =============================================================================
# Currency, number and date candidates
# =============================================================================


def _currency_candidates(examples: Sequence[Example]) -> Iterator[Converter]:
    inputs = [e.input for e in examples]
    op = "parseCurrency"

    if any("'" in i for i in inputs):
        # Swiss grouping: 1'234.50
        yield Converter.from_extractor(
            op, "apostrophe", ex.ExParseFloat(ex.ExReplace(INPUT, r"[^0-9.\-]", ""))
        )
    if any(_EU_AMOUNT_RE.search(i) for i in inputs) or (
        any("€" in i for i in inputs) and any("," in i for i in inputs)
    ):
        stripped = ex.ExReplace(INPUT, r"[€$¥£\s]", "")
        yield Converter.from_extractor(
            op,
            "eu",
            ex.ExParseFloat(ex.ExReplace(ex.ExReplace(stripped, r"\.", ""), ",", ".")),
        )
    if any("¥" in i for i in inputs):
        yield Converter.from_extractor(op, "yen", ex.ExParseInt(ex.ExReplace(INPUT, r"[¥,\s]", "")))
    yield Converter.from_extractor(op, "us", ex.ExParseFloat(ex.ExReplace(INPUT, r"[$€¥£,\s]", "")))
    yield Converter(op, "closed-form", "parse_currency(s)", parse_currency)


def _number_candidates(examples: Sequence[Example]) -> Iterator[Converter]:
    inputs = [e.input for e in examples]
    op = "parseNumber"

    if any("%" in i for i in inputs):
        percent = ex.ExParseFloat(ex.ExMatch(INPUT, r"([\d.]+)%", 1))
        yield Converter.from_extractor(op, "percent", percent)
        yield Converter.from_extractor(op, "percent-fraction", ex.ExDiv(percent, 100))
    if any(_THOUSANDS_RE.search(i) for i in inputs):
        grouped = ex.ExReplace(ex.ExMatch(INPUT, r"(-?[\d,]+(?:\.\d+)?)", 1), ",", "")
        yield Converter.from_extractor(op, "thousands", ex.ExParseFloat(grouped))
    yield Converter.from_extractor(op, "decimal", ex.ExParseFloat(ex.ExMatch(INPUT, r"(-?[\d.]+)", 1)))
    yield Converter(op, "closed-form", "parse_number(s)", parse_number)


_DATE_LAYOUTS: tuple[tuple[str, str, str], ...] = (
    ("iso", r"(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})", "ymd"),
    ("day-month-name", r"(\d{1,2})[-\s]?([a-z]{3,})[-\s,]*(\d{4})", "dmy"),
    ("month-name-day", r"([a-z]{3,})\.?\s+(\d{1,2}),?\s+(\d{4})", "mdy"),
    ("eu-short", r"(\d{1,2})[/.](\d{1,2})[/.](\d{2})(?!\d)", "dmy"),
    ("us-short", r"(\d{1,2})/(\d{1,2})/(\d{2})(?!\d)", "mdy"),
    ("eu", r"(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{4})", "dmy"),
    ("us", r"(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{4})", "mdy"),
)


def _date_candidates(examples: Sequence[Example]) -> Iterator[Converter]:
    inputs = [e.input for e in examples]
    has_month_name = any(_MONTH_NAME_RE.search(i) for i in inputs)
    for name, pattern, order in _DATE_LAYOUTS:
        if name.startswith(("day-month", "month-name")) and not has_month_name:
            continue
        yield Converter(
            operation="parseDate",
            strategy=name,
            code=f"match_date(s, {pattern!r}, {order!r})",
            fn=partial(match_date, pattern=pattern, order=order),
        )
    yield Converter("parseDate", "closed-form", "parse_date(s)", parse_date)


# =============================================================================
# Predicates and classifiers
# =============================================================================


def _common_prefix(strings: Sequence[str]) -> str:
    if not strings:
        return ""
    prefix = strings[0]
    for s in strings[1:]:
        while not s.startswith(prefix):
            prefix = prefix[:-1]
    return prefix


def common_pattern(strings: Sequence[str]) -> str | None:
    """Escaped text every string shares: a prefix, else a substring of 3-10 chars."""
    if not strings:
        return None
    if len(strings) == 1:
        return escape_regex(strings[0])

    prefix = _common_prefix(strings)
    if len(prefix) > 2:
        return escape_regex(prefix)

    first = strings[0]
    for length in range(min(10, len(first)), 2, -1):
        for start in range(len(first) - length + 1):
            sub = first[start : start + length]
            if all(sub in s for s in strings):
                return escape_regex(sub)
    return None


def _is_simple(text: str) -> bool:
    return not re.search(r"[\[\]:{}]", text) and len(text.split()) <= 2


def _distinguishing_patterns(trues: Sequence[str], falses: Sequence[str]) -> Iterator[tuple[str, str]]:
    """Candidate ``(strategy, pattern)`` pairs separating true from false inputs."""
    if len(trues) == 1 and _is_simple(trues[0]):
        yield "exact", f"^{escape_regex(trues[0])}$"

    # Structural markers like [ERROR] before content words
    for bracket in _BRACKET_RE.findall(trues[0]):
        if all(bracket in t for t in trues):
            yield "bracket", escape_regex(bracket)

    common = [w for w in _WORD_RE.findall(trues[0]) if all(w in t for t in trues)]
    for word in sorted(dict.fromkeys(common), key=len, reverse=True):
        yield "keyword", escape_regex(word)

    alternatives: list[str] = []
    for true in trues:
        found = [escape_regex(b) for b in _BRACKET_RE.findall(true)]
        prefix = _PREFIX_RE.match(true)
        if prefix:
            found.append(prefix.group(1))
        found.extend(_UPPER_WORD_RE.findall(true))
        for item in found:
            if not any(re.search(item, f) for f in falses) and item not in alternatives:
                alternatives.append(item)
    if alternatives:
        yield "alternation", "|".join(alternatives)

    pattern = common_pattern(trues)
    if pattern:
        yield "common", pattern


def _marker_patterns(trues: Sequence[str], falses: Sequence[str]) -> Iterator[str]:
    """Case-insensitive word markers, most general first."""
    word_sets = [{w for w in _SPLIT_WORDS_RE.split(t.lower()) if len(w) > 2} for t in trues]
    shared = [w for w in _SPLIT_WORDS_RE.split(trues[0].lower()) if all(w in s for s in word_sets)]
    yield from dict.fromkeys(escape_regex(w) for w in shared)
    yield from STANDARD_MARKERS

    false_words = {w for f in falses for w in _SPLIT_WORDS_RE.split(f.lower())}
    for true in trues:
        for word in _SPLIT_WORDS_RE.split(true.lower()):
            if len(word) > 3 and word not in false_words:
                yield escape_regex(word)


def _split_boolean(examples: Sequence[Example], operation: str) -> tuple[list[str], list[str]]:
    if not all(isinstance(e.output, bool) for e in examples):
        raise SynthesisFailure(f"{operation}: examples must map to true or false")
    trues = [e.input for e in examples if e.output is True]
    falses = [e.input for e in examples if e.output is False]
    if not trues or not falses:
        raise SynthesisFailure(f"{operation}: need both true and false examples")
    return trues, falses


def _predicate_candidates(
    examples: Sequence[Example], operation: str, coordinator: SynthesisCoordinator
) -> Iterator[Converter]:
    trues, falses = _split_boolean(examples, operation)
    if operation == "classify":
        for pattern in _marker_patterns(trues, falses):
            yield _regex_predicate(operation, "marker", pattern, ignore_case=True)
    for strategy, pattern in _distinguishing_patterns(trues, falses):
        yield _regex_predicate(operation, strategy, pattern)

    result = coordinator.synthesize_regex(trues, falses, description=f"{operation} pattern")
    if result.success and result.regex:
        yield _regex_predicate(operation, "regex-synthesis", f"^(?:{result.regex})$")


def _classifier_candidates(examples: Sequence[Example]) -> Iterator[Converter]:
    groups: dict[Any, list[str]] = {}
    for example in examples:
        groups.setdefault(example.output, []).append(example.input)
    rules: list[tuple[str, Any]] = []
    for output, inputs in groups.items():
        pattern = common_pattern(inputs)
        if pattern:
            rules.append((pattern, output))
    if rules:
        yield Converter(
            operation="classify",
            strategy="rules",
            code=f"classify_text(s, {rules!r})",
            fn=partial(classify_text, rules=tuple(rules)),
        )


def _extractor_candidates(
    examples: Sequence[Example], operation: str, coordinator: SynthesisCoordinator
) -> Iterator[Converter]:
    result = coordinator.synthesize_extractor(examples, description=f"{operation} extractor")
    if result.success and result.extractor is not None:
        yield Converter.from_extractor(operation, "extractor", result.extractor)


# =============================================================================
# Entry point
# =============================================================================

CONVERTIBLE_OPERATIONS = (
    "parseCurrency",
    "parseDate",
    "parseNumber",
    "predicate",
    "classify",
    "extract",
    "synthesize",
    "define-fn",
)


def _candidates(
    operation: str, examples: Sequence[Example], coordinator: SynthesisCoordinator
) -> Iterator[Converter]:
    if operation == "parseCurrency":
        yield from _currency_candidates(examples)
    elif operation == "parseNumber":
        yield from _number_candidates(examples)
    elif operation == "parseDate":
        yield from _date_candidates(examples)
    elif operation == "predicate":
        yield from _predicate_candidates(examples, operation, coordinator)
        return
    elif operation == "classify":
        if all(isinstance(e.output, bool) for e in examples):
            yield from _predicate_candidates(examples, operation, coordinator)
            return
        yield from _classifier_candidates(examples)
    elif all(isinstance(e.output, bool) for e in examples) and len({e.output for e in examples}) == 2:
        yield from _predicate_candidates(examples, operation, coordinator)
    yield from _extractor_candidates(examples, operation, coordinator)


def build_converter(
    operation: str,
    examples: Sequence[Example],
    coordinator: SynthesisCoordinator,
) -> Converter:
    """Learn a converter for an operation from examples.

    Args:
        operation: One of CONVERTIBLE_OPERATIONS
        examples: Non-empty, conflict-free examples
        coordinator: Used for regex and extractor synthesis

    Returns:
        The first candidate that reproduces every example

    Raises:
        SynthesisFailure: If the examples are empty or conflicting, or no
            candidate fits
    """
    if not examples:
        raise SynthesisFailure(f"{operation}: no examples provided")
    conflicts = ex.find_conflicts(examples)
    if conflicts:
        raise SynthesisFailure(
            f"{operation}: conflicting examples: same input {conflicts[0]!r} with different outputs"
        )

    converter = _first_verified(_candidates(operation, examples, coordinator), examples)
    if converter is None:
        raise SynthesisFailure(f"{operation}: could not synthesize a converter from {len(examples)} examples")
    logger.info("Learned %s converter (%s) from %d examples", operation, converter.strategy, len(examples))
    return converter


__all__ = [
    "CONVERTIBLE_OPERATIONS",
    "STANDARD_MARKERS",
    "Converter",
    "build_converter",
    "common_pattern",
    "escape_regex",
]
