"""Extractor synthesis: input/output examples to small verified programs.

An extractor is a pure string -> value program over a tiny grammar
(input, literal, match, replace, slice, split, parse-int/float, add,
divide, conditional). Synthesis enumerates candidates from a fixed
library and keeps every one that reproduces all examples:

1. Closed forms: constant output, output equal to input
2. Template library: currency, percentages, key/value, lists, log levels
3. Structural searches: fixed-width slices, delimiter fields,
   embedded currency or numbers, bracket unwrapping
4. Generic lattice: identity and match/parse combinations over common
   sub-patterns

Usage:
    from lattice.synthesis.extractor import evaluate, synthesize_extractors

    extractors = synthesize_extractors([("$1,234", 1234), ("$500", 500)])
    evaluate(extractors[0], "$9,999")  # 9999
"""

from __future__ import annotations

import dataclasses
import logging
import re
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any, ClassVar

from lattice.errors import SynthesisFailure
from lattice.logic.coercion import (
    add_numbers,
    divide,
    is_truthy,
    regex_match,
    regex_replace,
    slice_text,
    split_text,
    to_float,
    to_int,
)
from lattice.logic.terms import Example, as_examples

logger = logging.getLogger(__name__)

EPSILON = 1e-4
DEFAULT_MAX_RESULTS = 5

# =============================================================================
# Extractor AST
# =============================================================================


class Extractor:
    """Base class for extractor nodes."""

    tag: ClassVar[str] = "extractor"


@dataclass(frozen=True)
class ExInput(Extractor):
    tag: ClassVar[str] = "input"


@dataclass(frozen=True)
class ExLit(Extractor):
    tag: ClassVar[str] = "lit"

    value: Any


@dataclass(frozen=True)
class ExMatch(Extractor):
    """Regex search; yields the group text, or None without a match."""

    tag: ClassVar[str] = "match"

    source: Extractor
    pattern: str
    group: int


@dataclass(frozen=True)
class ExReplace(Extractor):
    """Global regex replacement with a literal replacement string."""

    tag: ClassVar[str] = "replace"

    source: Extractor
    pattern: str
    replacement: str


@dataclass(frozen=True)
class ExSlice(Extractor):
    tag: ClassVar[str] = "slice"

    source: Extractor
    start: int
    end: int | None = None


@dataclass(frozen=True)
class ExSplit(Extractor):
    """Split on a delimiter; one field, or all fields when ``index`` is None."""

    tag: ClassVar[str] = "split"

    source: Extractor
    delimiter: str
    index: int | None
    strip: bool = True


@dataclass(frozen=True)
class ExParseInt(Extractor):
    tag: ClassVar[str] = "parseInt"

    source: Extractor


@dataclass(frozen=True)
class ExParseFloat(Extractor):
    tag: ClassVar[str] = "parseFloat"

    source: Extractor


@dataclass(frozen=True)
class ExAdd(Extractor):
    tag: ClassVar[str] = "add"

    left: Extractor
    right: Extractor


@dataclass(frozen=True)
class ExDiv(Extractor):
    tag: ClassVar[str] = "div"

    source: Extractor
    divisor: int | float


@dataclass(frozen=True)
class ExIf(Extractor):
    """Conditional; None, "", 0 and False are falsy."""

    tag: ClassVar[str] = "if"

    condition: Extractor
    then: Extractor
    otherwise: Extractor


EXTRACTOR_TYPES: dict[str, type[Extractor]] = {
    cls.tag: cls
    for cls in (
        ExInput,
        ExLit,
        ExMatch,
        ExReplace,
        ExSlice,
        ExSplit,
        ExParseInt,
        ExParseFloat,
        ExAdd,
        ExDiv,
        ExIf,
    )
}


# =============================================================================
# Evaluation and serialization
# =============================================================================


def evaluate(extractor: Extractor, s: str) -> Any:
    """Run an extractor on one input. Total: never raises for string input."""
    if isinstance(extractor, ExInput):
        return s
    if isinstance(extractor, ExLit):
        return list(extractor.value) if isinstance(extractor.value, tuple) else extractor.value
    if isinstance(extractor, ExMatch):
        return regex_match(evaluate(extractor.source, s), extractor.pattern, extractor.group)
    if isinstance(extractor, ExReplace):
        return regex_replace(
            evaluate(extractor.source, s), extractor.pattern, extractor.replacement
        )
    if isinstance(extractor, ExSlice):
        return slice_text(evaluate(extractor.source, s), extractor.start, extractor.end)
    if isinstance(extractor, ExSplit):
        return split_text(
            evaluate(extractor.source, s), extractor.delimiter, extractor.index, extractor.strip
        )
    if isinstance(extractor, ExParseInt):
        return to_int(evaluate(extractor.source, s))
    if isinstance(extractor, ExParseFloat):
        return to_float(evaluate(extractor.source, s))
    if isinstance(extractor, ExAdd):
        return add_numbers(evaluate(extractor.left, s), evaluate(extractor.right, s))
    if isinstance(extractor, ExDiv):
        return divide(evaluate(extractor.source, s), extractor.divisor)
    if isinstance(extractor, ExIf):
        if is_truthy(evaluate(extractor.condition, s)):
            return evaluate(extractor.then, s)
        return evaluate(extractor.otherwise, s)
    raise TypeError(f"Unknown extractor: {type(extractor).__name__}")


def to_code(extractor: Extractor) -> str:
    """Render an extractor as a Python expression over ``s``.

    The expression calls the primitives in ``lattice.logic.coercion``.
    """
    if isinstance(extractor, ExInput):
        return "s"
    if isinstance(extractor, ExLit):
        value = list(extractor.value) if isinstance(extractor.value, tuple) else extractor.value
        return repr(value)
    if isinstance(extractor, ExMatch):
        return f"regex_match({to_code(extractor.source)}, {extractor.pattern!r}, {extractor.group})"
    if isinstance(extractor, ExReplace):
        return (
            f"regex_replace({to_code(extractor.source)}, {extractor.pattern!r}, "
            f"{extractor.replacement!r})"
        )
    if isinstance(extractor, ExSlice):
        return f"slice_text({to_code(extractor.source)}, {extractor.start}, {extractor.end!r})"
    if isinstance(extractor, ExSplit):
        return (
            f"split_text({to_code(extractor.source)}, {extractor.delimiter!r}, "
            f"{extractor.index!r}, {extractor.strip!r})"
        )
    if isinstance(extractor, ExParseInt):
        return f"to_int({to_code(extractor.source)})"
    if isinstance(extractor, ExParseFloat):
        return f"to_float({to_code(extractor.source)})"
    if isinstance(extractor, ExAdd):
        return f"add_numbers({to_code(extractor.left)}, {to_code(extractor.right)})"
    if isinstance(extractor, ExDiv):
        return f"divide({to_code(extractor.source)}, {extractor.divisor!r})"
    if isinstance(extractor, ExIf):
        return (
            f"({to_code(extractor.then)} if is_truthy({to_code(extractor.condition)}) "
            f"else {to_code(extractor.otherwise)})"
        )
    raise TypeError(f"Unknown extractor: {type(extractor).__name__}")


def describe(extractor: Extractor) -> str:
    """Short S-expression rendering for logs and agent feedback."""
    if isinstance(extractor, ExInput):
        return "input"
    if isinstance(extractor, ExLit):
        return repr(extractor.value)
    parts = [extractor.tag]
    for field in dataclasses.fields(extractor):
        value = getattr(extractor, field.name)
        parts.append(describe(value) if isinstance(value, Extractor) else repr(value))
    return f"({' '.join(parts)})"


def to_dict(extractor: Extractor) -> dict[str, Any]:
    """JSON-compatible form, for knowledge-base export."""
    data: dict[str, Any] = {"tag": extractor.tag}
    for field in dataclasses.fields(extractor):
        value = getattr(extractor, field.name)
        if isinstance(value, Extractor):
            data[field.name] = to_dict(value)
        elif isinstance(value, tuple):
            data[field.name] = list(value)
        else:
            data[field.name] = value
    return data


def from_dict(data: dict[str, Any]) -> Extractor:
    cls = EXTRACTOR_TYPES.get(data.get("tag", ""))
    if cls is None:
        raise ValueError(f"Unknown extractor tag: {data.get('tag')!r}")
    kwargs: dict[str, Any] = {}
    for field in dataclasses.fields(cls):
        if field.name not in data:
            continue
        value = data[field.name]
        if isinstance(value, dict):
            value = from_dict(value)
        elif isinstance(value, list):
            value = tuple(value)
        kwargs[field.name] = value
    return cls(**kwargs)


def substitute_input(extractor: Extractor, replacement: Extractor) -> Extractor:
    """Replace every ``input`` leaf, e.g. to run a transformer on a match."""
    if isinstance(extractor, ExInput):
        return replacement
    changes: dict[str, Any] = {}
    for field in dataclasses.fields(extractor):
        value = getattr(extractor, field.name)
        if isinstance(value, Extractor):
            changes[field.name] = substitute_input(value, replacement)
    return dataclasses.replace(extractor, **changes) if changes else extractor


# =============================================================================
# Verification
# =============================================================================


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def values_equal(actual: Any, expected: Any) -> bool:
    """Example equality: booleans strict, numbers within EPSILON, lists elementwise."""
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual == expected
    if _is_number(actual) and _is_number(expected):
        return abs(actual - expected) < EPSILON
    if isinstance(actual, (list, tuple)) and isinstance(expected, (list, tuple)):
        return len(actual) == len(expected) and all(
            values_equal(a, e) for a, e in zip(actual, expected)
        )
    if isinstance(actual, (list, tuple)) or isinstance(expected, (list, tuple)):
        return False
    return actual == expected


def test_extractor(extractor: Extractor, examples: Iterable[Any]) -> bool:
    """Check that an extractor reproduces every example."""
    return all(values_equal(evaluate(extractor, e.input), e.output) for e in as_examples(examples))


test_extractor.__test__ = False  # not a pytest test


def find_conflicts(examples: Sequence[Example]) -> list[str]:
    """Inputs that appear with two different outputs."""
    seen: dict[str, Any] = {}
    conflicts: list[str] = []
    for example in examples:
        if example.input in seen and not values_equal(seen[example.input], example.output):
            if example.input not in conflicts:
                conflicts.append(example.input)
        seen.setdefault(example.input, example.output)
    return conflicts


# =============================================================================
# Candidate library
# =============================================================================

INPUT = ExInput()


@dataclass(frozen=True)
class ExtractorTemplate:
    """A named extractor tried when every input fits ``guard``."""

    name: str
    guard: str
    extractor: Extractor


EXTRACTOR_TEMPLATES: tuple[ExtractorTemplate, ...] = (
    ExtractorTemplate(
        "currency_integer", r"\$[\d,]+", ExParseInt(ExReplace(INPUT, r"[$,]", ""))
    ),
    ExtractorTemplate(
        "currency_decimal", r"\$[\d,]+\.\d+", ExParseFloat(ExReplace(INPUT, r"[$,]", ""))
    ),
    ExtractorTemplate("integer_plain", r"\d+", ExParseInt(INPUT)),
    ExtractorTemplate("integer_commas", r"[\d,]+", ExParseInt(ExReplace(INPUT, ",", ""))),
    ExtractorTemplate(
        "percentage_to_decimal",
        r"\d+(\.\d+)?%",
        ExDiv(ExParseFloat(ExReplace(INPUT, "%", "")), 100),
    ),
    ExtractorTemplate(
        "key_value_extract_value", r"[^:]+:\s*.+", ExMatch(INPUT, r"^[^:]+:\s*(.+?)\s*$", 1)
    ),
    ExtractorTemplate(
        "key_value_extract_key", r"[^:]+:\s*.+", ExMatch(INPUT, r"^\s*(.+?)\s*:", 1)
    ),
    ExtractorTemplate("key_equals_value_extract", r"[^=]+=.+", ExMatch(INPUT, r"^[^=]+=(.+)$", 1)),
    ExtractorTemplate("split_comma", r"[^,]+,[^,]+(,[^,]+)*", ExSplit(INPUT, ",", None)),
    ExtractorTemplate("split_pipe", r"[^|]+\|[^|]+(\|[^|]+)*", ExSplit(INPUT, "|", None)),
    ExtractorTemplate("bracket_extract", r"\[.+\]", ExSlice(INPUT, 1, -1)),
    ExtractorTemplate(
        "log_level_extract",
        r"(?i)\[.+\]\s*(ERROR|WARN|INFO|DEBUG|TRACE):.*",
        ExMatch(INPUT, r"(?i)\]\s*(ERROR|WARN|INFO|DEBUG|TRACE):", 1),
    ),
)

# Sub-patterns for the generic lattice, most specific first.
COMMON_PATTERNS = (
    r"\$(\d+)",
    r"\$([\d,]+)",
    r"(\d+)%",
    r"(\d+)",
    r"([\d,]+)",
    r":\s*(.+)",
    r"\$([\d,\.]+)",
)

DELIMITERS = (",", "|", "\t", ";", " ")
MAX_FIELD_INDEX = 10


def _template_candidates(examples: Sequence[Example]) -> Iterator[Extractor]:
    for template in EXTRACTOR_TEMPLATES:
        if all(re.fullmatch(template.guard, e.input) for e in examples):
            logger.debug("Extractor template %s fits all inputs", template.name)
            yield template.extractor


def _slice_candidates(examples: Sequence[Example]) -> Iterator[Extractor]:
    """Fixed-width prefix/suffix stripping, located from the first example."""
    if not all(isinstance(e.output, str) and e.output for e in examples):
        return
    first = examples[0]
    output = str(first.output)
    start = first.input.find(output)
    while start != -1:
        trailing = len(first.input) - start - len(output)
        if start or trailing:
            yield ExSlice(INPUT, start, -trailing if trailing else None)
        start = first.input.find(output, start + 1)


def _delimiter_candidates(examples: Sequence[Example]) -> Iterator[Extractor]:
    for delimiter in DELIMITERS:
        if not all(delimiter in e.input for e in examples):
            continue
        for index in range(MAX_FIELD_INDEX):
            yield ExSplit(INPUT, delimiter, index)


def _structured_candidates(examples: Sequence[Example]) -> Iterator[Extractor]:
    if not all(_is_number(e.output) for e in examples):
        return
    yield ExParseFloat(ExReplace(ExMatch(INPUT, r"\$[\d,]+(\.\d+)?", 0), r"[$,]", ""))
    yield ExParseFloat(ExMatch(INPUT, r"\d+(\.\d+)?", 0))


def _wrapper_candidates(examples: Sequence[Example]) -> Iterator[Extractor]:
    for opener, closer in (("[", "]"), ("(", ")")):
        if all(e.input.startswith(opener) and e.input.endswith(closer) for e in examples):
            yield ExSlice(INPUT, 1, -1)


def _lattice_candidates() -> Iterator[Extractor]:
    yield INPUT
    for pattern in COMMON_PATTERNS:
        whole = ExMatch(INPUT, pattern, 0)
        group = ExMatch(INPUT, pattern, 1)
        yield whole
        yield group
        yield ExParseInt(whole)
        yield ExParseInt(group)
        yield ExParseFloat(whole)
        yield ExParseFloat(group)
        yield ExParseFloat(ExReplace(group, ",", ""))
        yield ExParseInt(ExReplace(group, ",", ""))


def generate_candidates(examples: Sequence[Example]) -> Iterator[Extractor]:
    """All candidates in best-first order; duplicates are possible."""
    yield from _template_candidates(examples)
    yield from _slice_candidates(examples)
    yield from _delimiter_candidates(examples)
    yield from _structured_candidates(examples)
    yield from _wrapper_candidates(examples)
    yield from _lattice_candidates()


# =============================================================================
# Synthesis
# =============================================================================


def synthesize_extractors(
    examples: Iterable[Any], max_results: int = DEFAULT_MAX_RESULTS
) -> list[Extractor]:
    """Find extractors that reproduce every example, best first.

    Args:
        examples: Examples, ``(input, output)`` pairs or ``{"input", "output"}`` dicts
        max_results: Cap on the number of extractors returned

    Returns:
        Verified extractors; empty if no candidate fits

    Raises:
        SynthesisFailure: If there are no examples, or two examples share
            an input but disagree on the output
    """
    examples = as_examples(examples)
    if not examples:
        raise SynthesisFailure("No examples provided")
    conflicts = find_conflicts(examples)
    if conflicts:
        raise SynthesisFailure(
            f"Conflicting examples: {', '.join(repr(c) for c in conflicts)} "
            "map to different outputs"
        )

    first = examples[0].output
    if len(examples) > 1 and all(values_equal(e.output, first) for e in examples):
        return [ExLit(first)]
    if all(isinstance(e.output, str) and e.output == e.input for e in examples):
        return [INPUT]

    found: list[Extractor] = []
    for candidate in generate_candidates(examples):
        if len(found) >= max_results:
            break
        if candidate in found:
            continue
        if test_extractor(candidate, examples):
            found.append(candidate)

    if found:
        logger.info(
            "Synthesized %d extractor(s) from %d examples; best: %s",
            len(found),
            len(examples),
            describe(found[0]),
        )
    else:
        logger.info("No extractor fits %d examples", len(examples))
    return found


def synthesize_extractor(examples: Iterable[Any]) -> Extractor | None:
    """The best extractor for the examples, or None."""
    extractors = synthesize_extractors(examples, max_results=1)
    return extractors[0] if extractors else None


__all__ = [
    "COMMON_PATTERNS",
    "EPSILON",
    "EXTRACTOR_TEMPLATES",
    "ExAdd",
    "ExDiv",
    "ExIf",
    "ExInput",
    "ExLit",
    "ExMatch",
    "ExParseFloat",
    "ExParseInt",
    "ExReplace",
    "ExSlice",
    "ExSplit",
    "Extractor",
    "ExtractorTemplate",
    "describe",
    "evaluate",
    "find_conflicts",
    "from_dict",
    "generate_candidates",
    "synthesize_extractor",
    "substitute_input",
    "synthesize_extractors",
    "test_extractor",
    "to_code",
    "to_dict",
    "values_equal",
]
