"""Solver: evaluate a resolved term against a document.

Evaluation is big-step, depth-first and call-by-value. Document queries
(grep, fuzzy_search, text_stats, symbol queries) go through a tool object
the caller supplies; everything else is pure. Lambdas close over an
environment and application extends a fresh copy of it, so the caller's
bindings are never modified.

Every step is traced into ``SolveResult.logs`` for the agent. Operator
misuse comes back as ``success=False`` with an error message rather
than an exception.

Usage:
    from lattice.documents import DocumentTools
    from lattice.logic.parser import parse
    from lattice.logic.resolver import resolve
    from lattice.logic.solver import solve

    tools = DocumentTools(text)
    result = solve(resolve(parse('(count (grep "ERROR"))')).term, tools)
    print(result.value, result.logs)
"""

from __future__ import annotations

import logging
import re
from collections import ChainMap
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from lattice.config import SolverConfig
from lattice.errors import ResolutionError, RuntimeTypeError, SynthesisFailure
from lattice.logic.coercion import (
    coerce_value,
    is_truthy,
    normalize_number,
    parse_currency,
    parse_date,
    parse_float_prefix,
    parse_int_prefix,
    parse_number,
    regex_replace,
    to_text,
)
from lattice.logic.resolver import ensure_resolved
from lattice.logic.terms import (
    Add,
    App,
    ApplyFn,
    Classify,
    Coerce,
    Constrained,
    CorpusStats,
    Count,
    DefineFn,
    Extract,
    Filter,
    FindReferences,
    FuzzySearch,
    GetSymbolBody,
    Grep,
    If,
    Input,
    Lambda,
    Lines,
    ListSymbols,
    Lit,
    Map,
    Match,
    ParseCurrency,
    ParseDate,
    ParseFloat,
    ParseInt,
    ParseNumber,
    Predicate,
    Reduce,
    Replace,
    Split,
    Sum,
    Synthesize,
    Term,
    Var,
)
from lattice.synthesis.converters import Converter
from lattice.synthesis.coordinator import SynthesisCoordinator

logger = logging.getLogger(__name__)

# A lone regex metacharacter is almost always meant literally ("$", ".").
_LONE_SPECIAL_RE = re.compile(r"^[\$\.\^\*\+\?\[\]\(\)\{\}\|\\]$")
_AMOUNT_RE = re.compile(r"\$?([\d,]+(?:\.\d+)?)")
_SUM_STRIP_RE = re.compile(r"[$,]")


# =============================================================================
# Tool protocols and values
# =============================================================================


class SolverTools(Protocol):
    """Document queries the solver consumes.

    ``grep`` returns dicts with match, line, lineNum, index and groups;
    ``fuzzy_search`` dicts with line, lineNum and score; ``corpus_stats``
    a dict with length, lineCount and a start/middle/end sample.
    """

    @property
    def context(self) -> str: ...

    def grep(self, pattern: str) -> list[dict[str, Any]]: ...

    def fuzzy_search(self, query: str, limit: int = 10) -> list[dict[str, Any]]: ...

    def corpus_stats(self) -> dict[str, Any]: ...


@runtime_checkable
class SymbolTools(Protocol):
    """Optional symbol-index queries over source code."""

    def list_symbols(self, kind: str | None = None) -> list[dict[str, Any]]: ...

    def get_symbol_body(self, symbol: Any) -> str | None: ...

    def find_references(self, name: str) -> list[dict[str, Any]]: ...


@dataclass
class SolveResult:
    """Outcome of one solve call."""

    success: bool
    value: Any = None
    logs: list[str] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "value": jsonable(self.value),
            "logs": list(self.logs),
            "error": self.error,
        }


def jsonable(value: Any) -> Any:
    """Render a solver value with JSON types only; functions become their text."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [jsonable(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): jsonable(item) for key, item in value.items()}
    return str(value)


@dataclass
class SynthesizedFunction:
    """A function learned by ``define-fn``, callable by name via ``apply-fn``."""

    name: str
    converter: Converter

    @property
    def code(self) -> str:
        return self.converter.code

    def __call__(self, value: Any) -> Any:
        return self.converter(value)

    def __str__(self) -> str:
        return f"<fn {self.name}: {self.code}>"


class Closure:
    """A lambda value: parameter, body and the environment it closed over."""

    def __init__(self, param: str, body: Term, env: Mapping[str, Any], solver: _Solver):
        self.param = param
        self.body = body
        self.env = env
        self._solver = solver

    def __call__(self, value: Any) -> Any:
        return self._solver.eval(self.body, ChainMap({self.param: value}, self.env))

    def __repr__(self) -> str:
        return f"<lambda {self.param}>"


def type_name(value: Any) -> str:
    """Name of a runtime value's type as shown in error messages."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    if callable(value):
        return "function"
    return type(value).__name__


def item_text(item: Any) -> str:
    """What filter, map and predicates see: a match's line, or the item as text."""
    if isinstance(item, dict) and "line" in item:
        return to_text(item["line"])
    return to_text(item)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# =============================================================================
# Evaluation
# =============================================================================


class _Solver:
    def __init__(
        self,
        tools: SolverTools,
        coordinator: SynthesisCoordinator,
        config: SolverConfig,
    ):
        self.tools = tools
        self.coordinator = coordinator
        self.config = config
        self.logs: list[str] = []

    def log(self, message: str) -> None:
        self.logs.append(message)
        logger.debug("%s", message)

    # Helpers

    def _collection(self, op: str, term: Term, env: Mapping[str, Any]) -> list[Any]:
        value = self.eval(term, env)
        if not isinstance(value, list):
            raise RuntimeTypeError(f"{op}: expected array, got {type_name(value)}")
        return value

    def _string(self, op: str, term: Term, env: Mapping[str, Any]) -> str:
        value = self.eval(term, env)
        if not isinstance(value, str):
            raise RuntimeTypeError(f"{op}: expected string, got {type_name(value)}")
        return value

    def _function(self, op: str, term: Term, env: Mapping[str, Any]) -> Any:
        value = self.eval(term, env)
        if not callable(value):
            raise RuntimeTypeError(f"{op}: expected function, got {type_name(value)}")
        return value

    def _compile(self, op: str, pattern: str, flags: int = 0) -> re.Pattern[str]:
        try:
            return re.compile(pattern, flags)
        except re.error as e:
            raise RuntimeTypeError(f"{op}: invalid pattern {pattern!r}: {e}") from e

    def _symbols(self, op: str) -> SymbolTools:
        if not isinstance(self.tools, SymbolTools):
            raise RuntimeTypeError(f"{op}: symbol queries are not available for this document")
        return self.tools

    def _converter(self, operation: str, examples: Any) -> Converter:
        self.log(f"[Synthesis] Learning {operation} from {len(examples)} examples")
        converter = self.coordinator.converter(operation, examples)
        self.log(f"[Synthesis] {operation} via {converter.strategy}: {converter.code}")
        return converter

    def _learned(
        self, operation: str, examples: Any, text: str, closed_form: Callable[[str], Any]
    ) -> Any:
        """Apply a converter learned from examples, or the closed-form parser if none fits."""
        try:
            converter = self._converter(operation, examples)
        except SynthesisFailure as e:
            logger.info("Falling back to closed-form %s: %s", operation, e)
            self.log(f"[Synthesis] {e}; using built-in {operation}")
            return closed_form(text)
        return converter(text)

    def _sample(self, items: list[Any]) -> None:
        for i, item in enumerate(items[: self.config.max_logged_items], start=1):
            if isinstance(item, dict) and "line" in item:
                self.log(f"  {i}. [line {item.get('lineNum')}] {to_text(item['line'])[:80]}")
            else:
                self.log(f"  {i}. {to_text(item)[:80]}")

    def call(self, fn: Any, value: Any) -> Any:
        if not callable(fn):
            raise RuntimeTypeError(f"Cannot apply a value of type {type_name(fn)}")
        return fn(value)

    def eval(self, term: Term, env: Mapping[str, Any]) -> Any:
        # Sources
        if isinstance(term, Input):
            return self.tools.context
        if isinstance(term, Lit):
            return term.value
        if isinstance(term, Var):
            if term.name in env:
                return env[term.name]
            if term.name == "context":
                return self.tools.context
            raise RuntimeTypeError(f"Unbound variable: {term.name}")

        if isinstance(term, Grep):
            pattern = term.pattern
            if _LONE_SPECIAL_RE.match(pattern):
                pattern = "\\" + pattern
                self.log(f'[Solver] Auto-escaped special regex char: "{term.pattern}" -> "{pattern}"')
            self._compile("grep", pattern)
            self.log(f'[Solver] Executing grep("{pattern}")')
            hits = list(self.tools.grep(pattern))
            self.log(f"[Solver] Found {len(hits)} matches")
            self._sample(hits)
            return hits
        if isinstance(term, FuzzySearch):
            limit = term.limit if term.limit is not None else self.config.fuzzy_limit
            self.log(f'[Solver] Executing fuzzy_search("{term.query}", {limit})')
            hits = list(self.tools.fuzzy_search(term.query, limit))
            self.log(f"[Solver] Found {len(hits)} fuzzy matches")
            return hits
        if isinstance(term, CorpusStats):
            stats = self.tools.corpus_stats()
            self.log(f"[Solver] Document: {stats.get('length')} chars, {stats.get('lineCount')} lines")
            return stats
        if isinstance(term, Lines):
            all_lines = self.tools.context.split("\n")
            start = max(0, term.start - 1)
            end = min(len(all_lines), term.end)
            selected = all_lines[start:end]
            self.log(f"[Solver] Retrieved {len(selected)} lines ({term.start}-{term.end})")
            return selected

        # Collections
        if isinstance(term, Filter):
            items = self._collection("filter", term.collection, env)
            predicate = self._function("filter", term.predicate, env)
            kept = [item for item in items if is_truthy(self.call(predicate, item_text(item)))]
            self.log(f"[Solver] Filter kept {len(kept)} of {len(items)} items")
            return kept
        if isinstance(term, Map):
            items = self._collection("map", term.collection, env)
            transform = self._function("map", term.transform, env)
            self.log(f"[Solver] Mapping over {len(items)} items")
            return [self.call(transform, item_text(item)) for item in items]
        if isinstance(term, Reduce):
            items = self._collection("reduce", term.collection, env)
            acc = self.eval(term.init, env)
            fn = self._function("reduce", term.fn, env)
            self.log(f"[Solver] Reducing {len(items)} items")
            for item in items:
                acc = self.call(self.call(fn, acc), item)
            return acc
        if isinstance(term, Sum):
            items = self._collection("sum", term.collection, env)
            total: int | float = 0
            for item in items:
                if _is_number(item):
                    total += item
                elif isinstance(item, str):
                    number = parse_float_prefix(_SUM_STRIP_RE.sub("", item))
                    total += number if number is not None else 0
                elif isinstance(item, dict) and "line" in item:
                    match = _AMOUNT_RE.search(to_text(item["line"]))
                    if match:
                        number = parse_float_prefix(match.group(1).replace(",", ""))
                        total += number if number is not None else 0
            total = normalize_number(total) if isinstance(total, float) else total
            self.log(f"[Solver] Sum of {len(items)} values = {total}")
            return total
        if isinstance(term, Count):
            items = self._collection("count", term.collection, env)
            self.log(f"[Solver] Count = {len(items)}")
            return len(items)

        # Arithmetic and strings
        if isinstance(term, Add):
            left = self.eval(term.left, env)
            right = self.eval(term.right, env)
            if not _is_number(left) or not _is_number(right):
                raise RuntimeTypeError(
                    f"add: expected numbers, got {type_name(left)} and {type_name(right)}"
                )
            return normalize_number(left + right) if isinstance(left + right, float) else left + right
        if isinstance(term, Match):
            text = self._string("match", term.string, env)
            match = self._compile("match", term.pattern, re.IGNORECASE).search(text)
            if not match or not 0 <= term.group <= len(match.groups()):
                return None
            return match.group(term.group)
        if isinstance(term, Replace):
            text = self._string("replace", term.string, env)
            self._compile("replace", term.pattern)
            return regex_replace(text, term.pattern, term.replacement)
        if isinstance(term, Split):
            text = self._string("split", term.string, env)
            if not term.delimiter:
                raise RuntimeTypeError("split: empty delimiter")
            parts = text.split(term.delimiter)
            return parts[term.index] if 0 <= term.index < len(parts) else None
        if isinstance(term, ParseInt):
            value = self.eval(term.string, env)
            return parse_int_prefix(to_text(value).replace(",", ""))
        if isinstance(term, ParseFloat):
            value = self.eval(term.string, env)
            return parse_float_prefix(to_text(value).replace(",", ""))

        # Coercions
        if isinstance(term, ParseDate):
            text = to_text(self.eval(term.string, env))
            if term.examples:
                hint = term.format_hint
                return self._learned("parseDate", term.examples, text, lambda s: parse_date(s, hint))
            parsed = parse_date(text, term.format_hint)
            self.log(f'[Solver] Parsed date "{text}" -> {parsed}')
            return parsed
        if isinstance(term, ParseCurrency):
            text = to_text(self.eval(term.string, env))
            if term.examples:
                return self._learned("parseCurrency", term.examples, text, parse_currency)
            return parse_currency(text)
        if isinstance(term, ParseNumber):
            text = to_text(self.eval(term.string, env))
            if term.examples:
                return self._learned("parseNumber", term.examples, text, parse_number)
            return parse_number(text)
        if isinstance(term, Coerce):
            value = self.eval(term.term, env)
            coerced = coerce_value(value, term.target_type)
            self.log(f'[Solver] Coerced "{to_text(value)}" to {term.target_type}: {coerced}')
            return coerced
        if isinstance(term, Extract):
            return self._extract(term, env)

        # Control
        if isinstance(term, If):
            if is_truthy(self.eval(term.condition, env)):
                return self.eval(term.then, env)
            return self.eval(term.otherwise, env)

        # Synthesis
        if isinstance(term, Classify):
            return self._converter("classify", term.examples)
        if isinstance(term, Synthesize):
            return self._converter("synthesize", term.examples)
        if isinstance(term, DefineFn):
            converter = self._converter("define-fn", term.examples)
            self.log(f'[Solver] Defined function "{term.name}"')
            return SynthesizedFunction(term.name, converter)
        if isinstance(term, ApplyFn):
            fn = env.get(f"_fn_{term.name}")
            if not isinstance(fn, SynthesizedFunction):
                raise RuntimeTypeError(f'apply-fn: function "{term.name}" is not defined')
            value = self.eval(term.argument, env)
            self.log(f'[Solver] Applying "{term.name}" to "{to_text(value)}"')
            return fn(to_text(value))
        if isinstance(term, Predicate):
            text = to_text(self.eval(term.string, env))
            if term.examples:
                return bool(self._converter("predicate", term.examples)(text))
            return bool(text)

        # Symbols
        if isinstance(term, ListSymbols):
            return list(self._symbols("list_symbols").list_symbols(term.kind))
        if isinstance(term, GetSymbolBody):
            tools = self._symbols("get_symbol_body")
            return tools.get_symbol_body(self.eval(term.symbol, env))
        if isinstance(term, FindReferences):
            return list(self._symbols("find_references").find_references(term.name))

        # Functions
        if isinstance(term, Lambda):
            return Closure(term.param, term.body, env, self)
        if isinstance(term, App):
            fn = self.eval(term.function, env)
            return self.call(fn, self.eval(term.argument, env))

        if isinstance(term, Constrained):
            raise ResolutionError("Constrained term reached the solver; call resolve() first")
        raise RuntimeTypeError(f"Unknown term: {type(term).__name__}")

    def _extract(self, term: Extract, env: Mapping[str, Any]) -> Any:
        text = self._string("extract", term.string, env)
        match = self._compile("extract", term.pattern, re.IGNORECASE).search(text)
        extracted = None
        if match and 0 <= term.group <= len(match.groups()):
            extracted = match.group(term.group)

        if extracted is None:
            if term.examples:
                self.log("[Solver] Regex extraction failed, trying synthesis")
                return self._converter("extract", term.examples)(text)
            return None

        value: Any = extracted
        if term.target_type is not None:
            value = coerce_value(extracted, term.target_type)
            if value is None and term.examples:
                self.log(f"[Solver] Coercion to {term.target_type} failed, trying synthesis")
                return self._converter("extract", term.examples)(text)

        for key, bound in term.constraints:
            if key in ("min", "max") and _is_number(value) and _is_number(bound):
                if (key == "min" and value < bound) or (key == "max" and value > bound):
                    self.log(f"[Solver] Extracted {value} violates {key} {bound}")
                    return None
        return value


# =============================================================================
# Entry point
# =============================================================================


def solve(
    term: Term,
    tools: SolverTools,
    bindings: Mapping[str, Any] | None = None,
    coordinator: SynthesisCoordinator | None = None,
    config: SolverConfig | None = None,
) -> SolveResult:
    """Evaluate a resolved term.

    Args:
        term: Term without constraint wrappers
        tools: Document queries
        bindings: Values from earlier turns (``RESULTS``, ``_1``,
            ``_fn_<name>``); read, never modified
        coordinator: Synthesis entry point; a private one is created when omitted
        config: Solver settings

    Returns:
        SolveResult with the value and the trace; operator misuse and
        synthesis failures come back with ``success=False``

    Raises:
        ResolutionError: If the term still carries constraint annotations
    """
    ensure_resolved(term)
    solver = _Solver(tools, coordinator or SynthesisCoordinator(), config or SolverConfig())
    env: Mapping[str, Any] = ChainMap({}, dict(bindings or {}))
    try:
        value = solver.eval(term, env)
    except (RuntimeTypeError, SynthesisFailure) as e:
        solver.log(f"[Solver] Error: {e}")
        return SolveResult(success=False, logs=solver.logs, error=str(e))
    return SolveResult(success=True, value=value, logs=solver.logs)


__all__ = [
    "Closure",
    "SolveResult",
    "SolverTools",
    "SymbolTools",
    "SynthesizedFunction",
    "item_text",
    "jsonable",
    "solve",
    "type_name",
]
