"""Term model for the query language.

Every node is a frozen dataclass, so terms are immutable, hashable and
compare structurally. Each class carries a ``tag`` naming the concrete
syntax operator it comes from.

Only ``Lambda`` introduces a bound name and only ``Var`` consumes one.
Evaluation threads an environment; nothing in the pipeline rewrites term
text to substitute values.

Construction validates the same invariants the parser enforces (reserved
names, finite numbers, minimum example counts), so printed terms parse
back unchanged.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Union

Scalar = Union[str, int, float, bool]
ExampleOutput = Union[Scalar, tuple[Scalar, ...]]

IDENTIFIER_RE = re.compile(r"(?:[^\W\d]|[⚡∞/])[\w⚡∞/\-]*")
KEYWORD_RE = re.compile(r"[\w\-]+")

# Words that head a special form; they cannot be used as variable names.
OPERATORS = frozenset(
    {
        "input",
        "lit",
        "grep",
        "fuzzy_search",
        "text_stats",
        "lines",
        "filter",
        "map",
        "reduce",
        "sum",
        "count",
        "add",
        "match",
        "replace",
        "split",
        "parseInt",
        "parseFloat",
        "parseDate",
        "parseCurrency",
        "parseNumber",
        "coerce",
        "as",
        "extract",
        "if",
        "classify",
        "synthesize",
        "define-fn",
        "apply-fn",
        "predicate",
        "list_symbols",
        "get_symbol_body",
        "find_references",
        "lambda",
        "λ",
    }
)

RESERVED_NAMES = OPERATORS | {"true", "false"}

COERCION_TYPES = ("date", "currency", "number", "percent", "boolean", "string")


class ConstraintMarker(Enum):
    """Advisory annotations an agent may attach to a term."""

    MAXIMIZE_INFORMATION = "Σ⚡μ"
    HANDLE_EDGE_CASES = "∞/0"
    EFFICIENT_FOCUS = "ε⚡φ"

    @classmethod
    def from_symbol(cls, symbol: str) -> ConstraintMarker:
        for marker in cls:
            if marker.value == symbol:
                return marker
        raise ValueError(f"Unknown constraint marker: {symbol}")


def is_identifier(name: str) -> bool:
    """Check whether ``name`` can be written as a bare variable reference."""
    return bool(IDENTIFIER_RE.fullmatch(name)) and name not in RESERVED_NAMES


def _check_scalar(value: Any, where: str) -> None:
    if not isinstance(value, (str, int, float, bool)):
        raise TypeError(f"{where}: unsupported literal type {type(value).__name__}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"{where}: non-finite number {value!r}")


def _check_identifier(name: str, where: str) -> None:
    if not is_identifier(name):
        raise ValueError(f"{where}: {name!r} is not a valid identifier")


def _check_int(value: Any, where: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{where}: expected int, got {type(value).__name__}")


@dataclass(frozen=True)
class Example:
    """An input/output pair used to drive synthesis."""

    input: str
    output: ExampleOutput

    def __post_init__(self) -> None:
        if not isinstance(self.input, str):
            raise TypeError("Example input must be a string")
        if isinstance(self.output, list):
            object.__setattr__(self, "output", tuple(self.output))
        if isinstance(self.output, tuple):
            for item in self.output:
                _check_scalar(item, "Example output")
        else:
            _check_scalar(self.output, "Example output")

    def to_dict(self) -> dict[str, Any]:
        output = list(self.output) if isinstance(self.output, tuple) else self.output
        return {"input": self.input, "output": output}


def as_examples(pairs: Any) -> tuple[Example, ...]:
    """Normalize ``(input, output)`` pairs, dicts or Examples into a tuple."""
    result: list[Example] = []
    for pair in pairs:
        if isinstance(pair, Example):
            result.append(pair)
        elif isinstance(pair, dict):
            result.append(Example(pair["input"], pair["output"]))
        else:
            source, output = pair
            result.append(Example(source, output))
    return tuple(result)


class Term:
    """Base class for all query language nodes."""

    tag: ClassVar[str] = "term"

    def children(self) -> tuple[Term, ...]:
        """Direct sub-terms, in source order."""
        return tuple(
            value for value in self.__dict__.values() if isinstance(value, Term)
        )


# =============================================================================
# Atoms
# =============================================================================


@dataclass(frozen=True)
class Input(Term):
    """The whole document text."""

    tag: ClassVar[str] = "input"


@dataclass(frozen=True)
class Lit(Term):
    tag: ClassVar[str] = "lit"

    value: Scalar

    def __post_init__(self) -> None:
        _check_scalar(self.value, "lit")


@dataclass(frozen=True)
class Var(Term):
    """Reference to a lambda parameter or a session binding."""

    tag: ClassVar[str] = "var"

    name: str

    def __post_init__(self) -> None:
        _check_identifier(self.name, "var")


# =============================================================================
# Document tools
# =============================================================================


@dataclass(frozen=True)
class Grep(Term):
    tag: ClassVar[str] = "grep"

    pattern: str


@dataclass(frozen=True)
class FuzzySearch(Term):
    tag: ClassVar[str] = "fuzzy_search"

    query: str
    limit: int | None = None  # None: the solver's configured default

    def __post_init__(self) -> None:
        if self.limit is not None:
            _check_int(self.limit, "fuzzy_search limit")


@dataclass(frozen=True)
class CorpusStats(Term):
    tag: ClassVar[str] = "text_stats"


@dataclass(frozen=True)
class Lines(Term):
    """Inclusive, 1-indexed line range of the document."""

    tag: ClassVar[str] = "lines"

    start: int
    end: int

    def __post_init__(self) -> None:
        _check_int(self.start, "lines start")
        _check_int(self.end, "lines end")


# =============================================================================
# Collections
# =============================================================================


@dataclass(frozen=True)
class Filter(Term):
    tag: ClassVar[str] = "filter"

    collection: Term
    predicate: Term


@dataclass(frozen=True)
class Map(Term):
    tag: ClassVar[str] = "map"

    collection: Term
    transform: Term


@dataclass(frozen=True)
class Reduce(Term):
    tag: ClassVar[str] = "reduce"

    collection: Term
    init: Term
    fn: Term


@dataclass(frozen=True)
class Sum(Term):
    tag: ClassVar[str] = "sum"

    collection: Term


@dataclass(frozen=True)
class Count(Term):
    tag: ClassVar[str] = "count"

    collection: Term


# =============================================================================
# Strings and numbers
# =============================================================================


@dataclass(frozen=True)
class Add(Term):
    tag: ClassVar[str] = "add"

    left: Term
    right: Term


@dataclass(frozen=True)
class Match(Term):
    tag: ClassVar[str] = "match"

    string: Term
    pattern: str
    group: int

    def __post_init__(self) -> None:
        _check_int(self.group, "match group")


@dataclass(frozen=True)
class Replace(Term):
    tag: ClassVar[str] = "replace"

    string: Term
    pattern: str
    replacement: str


@dataclass(frozen=True)
class Split(Term):
    tag: ClassVar[str] = "split"

    string: Term
    delimiter: str
    index: int

    def __post_init__(self) -> None:
        _check_int(self.index, "split index")


@dataclass(frozen=True)
class ParseInt(Term):
    tag: ClassVar[str] = "parseInt"

    string: Term


@dataclass(frozen=True)
class ParseFloat(Term):
    tag: ClassVar[str] = "parseFloat"

    string: Term


@dataclass(frozen=True)
class ParseDate(Term):
    tag: ClassVar[str] = "parseDate"

    string: Term
    format_hint: str | None = None
    examples: tuple[Example, ...] = ()


@dataclass(frozen=True)
class ParseCurrency(Term):
    tag: ClassVar[str] = "parseCurrency"

    string: Term
    examples: tuple[Example, ...] = ()


@dataclass(frozen=True)
class ParseNumber(Term):
    tag: ClassVar[str] = "parseNumber"

    string: Term
    examples: tuple[Example, ...] = ()


@dataclass(frozen=True)
class Coerce(Term):
    tag: ClassVar[str] = "coerce"

    term: Term
    target_type: str

    def __post_init__(self) -> None:
        if self.target_type not in COERCION_TYPES:
            raise ValueError(f"coerce: unknown target type {self.target_type!r}")


@dataclass(frozen=True)
class Extract(Term):
    """Regex extraction with optional coercion and example fallback."""

    tag: ClassVar[str] = "extract"

    string: Term
    pattern: str
    group: int
    target_type: str | None = None
    examples: tuple[Example, ...] = ()
    constraints: tuple[tuple[str, Scalar], ...] = ()

    def __post_init__(self) -> None:
        _check_int(self.group, "extract group")
        if self.target_type is not None and self.target_type not in COERCION_TYPES:
            raise ValueError(f"extract: unknown target type {self.target_type!r}")
        for key, value in self.constraints:
            if not KEYWORD_RE.fullmatch(key):
                raise ValueError(f"extract: invalid constraint key {key!r}")
            _check_scalar(value, "extract constraint")


# =============================================================================
# Control and synthesis
# =============================================================================


@dataclass(frozen=True)
class If(Term):
    tag: ClassVar[str] = "if"

    condition: Term
    then: Term
    otherwise: Term


@dataclass(frozen=True)
class Classify(Term):
    tag: ClassVar[str] = "classify"

    examples: tuple[Example, ...]

    def __post_init__(self) -> None:
        if len(self.examples) < 2:
            raise ValueError("classify needs at least 2 examples")


@dataclass(frozen=True)
class Synthesize(Term):
    tag: ClassVar[str] = "synthesize"

    examples: tuple[Example, ...]

    def __post_init__(self) -> None:
        if len(self.examples) < 2:
            raise ValueError("synthesize needs at least 2 examples")


@dataclass(frozen=True)
class DefineFn(Term):
    tag: ClassVar[str] = "define-fn"

    name: str
    examples: tuple[Example, ...]

    def __post_init__(self) -> None:
        if not self.examples:
            raise ValueError("define-fn needs at least 1 example")


@dataclass(frozen=True)
class ApplyFn(Term):
    tag: ClassVar[str] = "apply-fn"

    name: str
    argument: Term


@dataclass(frozen=True)
class Predicate(Term):
    tag: ClassVar[str] = "predicate"

    string: Term
    examples: tuple[Example, ...] = ()


# =============================================================================
# Symbol index queries
# =============================================================================


@dataclass(frozen=True)
class ListSymbols(Term):
    tag: ClassVar[str] = "list_symbols"

    kind: str | None = None


@dataclass(frozen=True)
class GetSymbolBody(Term):
    tag: ClassVar[str] = "get_symbol_body"

    symbol: Term


@dataclass(frozen=True)
class FindReferences(Term):
    tag: ClassVar[str] = "find_references"

    name: str


# =============================================================================
# Lambda calculus
# =============================================================================


@dataclass(frozen=True)
class Lambda(Term):
    tag: ClassVar[str] = "lambda"

    param: str
    body: Term

    def __post_init__(self) -> None:
        _check_identifier(self.param, "lambda parameter")


@dataclass(frozen=True)
class App(Term):
    tag: ClassVar[str] = "app"

    function: Term
    argument: Term


@dataclass(frozen=True)
class Constrained(Term):
    """A term carrying an advisory marker, removed by the resolver."""

    tag: ClassVar[str] = "constrained"

    marker: ConstraintMarker
    term: Term


TERM_TYPES: tuple[type[Term], ...] = (
    Input,
    Lit,
    Var,
    Grep,
    FuzzySearch,
    CorpusStats,
    Lines,
    Filter,
    Map,
    Reduce,
    Sum,
    Count,
    Add,
    Match,
    Replace,
    Split,
    ParseInt,
    ParseFloat,
    ParseDate,
    ParseCurrency,
    ParseNumber,
    Coerce,
    Extract,
    If,
    Classify,
    Synthesize,
    DefineFn,
    ApplyFn,
    Predicate,
    ListSymbols,
    GetSymbolBody,
    FindReferences,
    Lambda,
    App,
    Constrained,
)


def walk(term: Term) -> Iterator[Term]:
    """Yield ``term`` and every sub-term, depth-first."""
    yield term
    for child in term.children():
        yield from walk(child)


__all__ = [
    "COERCION_TYPES",
    "OPERATORS",
    "RESERVED_NAMES",
    "TERM_TYPES",
    "Add",
    "App",
    "ApplyFn",
    "Classify",
    "Coerce",
    "Constrained",
    "ConstraintMarker",
    "CorpusStats",
    "Count",
    "DefineFn",
    "Example",
    "Extract",
    "Filter",
    "FindReferences",
    "FuzzySearch",
    "GetSymbolBody",
    "Grep",
    "If",
    "Input",
    "Lambda",
    "Lines",
    "ListSymbols",
    "Lit",
    "Map",
    "Match",
    "ParseCurrency",
    "ParseDate",
    "ParseFloat",
    "ParseInt",
    "ParseNumber",
    "Predicate",
    "Reduce",
    "Replace",
    "Scalar",
    "Split",
    "Sum",
    "Synthesize",
    "Term",
    "Var",
    "as_examples",
    "is_identifier",
    "walk",
]
