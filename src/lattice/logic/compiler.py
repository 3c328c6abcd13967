"""Compile a resolved term to a standalone Python module.

The module is meant for an external sandbox that runs free-form code.
It embeds the closed-form coercions from ``lattice.logic.coercion`` and
a small runtime prelude, then defines one entry point::

    def run(tools, bindings=None): ...

``tools`` provides the same document queries the solver consumes
(``context``, ``grep``, ``fuzzy_search``, ``corpus_stats`` and, when
symbol queries are used, the symbol methods). Operations that learn from
examples are synthesized at compile time and inlined as the verified
converter's expression, so the emitted code has no dependency on this
package.

Usage:
    from lattice.logic.compiler import compile_term

    source = compile_term(resolve(parse('(count (grep "ERROR"))')).term)
    namespace = {}
    exec(source, namespace)
    print(namespace["run"](tools))
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Sequence

from lattice.config import SolverConfig
from lattice.errors import SynthesisFailure
from lattice.logic import coercion
from lattice.logic.parser import print_term
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
    Example,
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
from lattice.synthesis.coordinator import SynthesisCoordinator

logger = logging.getLogger(__name__)

ENTRY_POINT = "run"

# Runtime helpers for the emitted module. Kept behaviorally in step with
# the solver: same escaping, same item text, same sum rules.
_PRELUDE = r'''
# =============================================================================
# Query runtime
# =============================================================================

_LONE_SPECIAL_RE = re.compile(r"^[\$\.\^\*\+\?\[\]\(\)\{\}\|\\]$")
_AMOUNT_RE = re.compile(r"\$?([\d,]+(?:\.\d+)?)")
_SUM_STRIP_RE = re.compile(r"[$,]")


class QueryError(Exception):
    """An operator received a value of the wrong shape."""


def _item_text(item):
    if isinstance(item, dict) and "line" in item:
        return to_text(item["line"])
    return to_text(item)


def _array(op, value):
    if not isinstance(value, list):
        raise QueryError(f"{op}: expected array, got {type(value).__name__}")
    return value


def _string(op, value):
    if not isinstance(value, str):
        raise QueryError(f"{op}: expected string, got {type(value).__name__}")
    return value


def _lookup(env, name):
    if name not in env:
        raise QueryError(f"Unbound variable: {name}")
    return env[name]


def _apply(fn, value):
    if not callable(fn):
        raise QueryError(f"Cannot apply a value of type {type(fn).__name__}")
    return fn(value)


def _grep(tools, pattern):
    if _LONE_SPECIAL_RE.match(pattern):
        pattern = "\\" + pattern
    return list(tools.grep(pattern))


def _lines(context, start, end):
    all_lines = context.split("\n")
    return all_lines[max(0, start - 1):min(len(all_lines), end)]


def _filter(items, predicate):
    return [item for item in _array("filter", items) if is_truthy(_apply(predicate, _item_text(item)))]


def _map(items, transform):
    return [_apply(transform, _item_text(item)) for item in _array("map", items)]


def _reduce(items, init, fn):
    acc = init
    for item in _array("reduce", items):
        acc = _apply(_apply(fn, acc), item)
    return acc


def _sum(items):
    total = 0
    for item in _array("sum", items):
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
    return normalize_number(total) if isinstance(total, float) else total


def _add(left, right):
    if not _is_number(left) or not _is_number(right):
        raise QueryError("add: expected numbers")
    total = left + right
    return normalize_number(total) if isinstance(total, float) else total


def _match(value, pattern, group):
    return regex_match(_string("match", value), pattern, group, re.IGNORECASE)


def _split(value, delimiter, index):
    return split_text(_string("split", value), delimiter, index, strip=False)


def _extract(value, pattern, group, target_type, bounds, fallback):
    text = _string("extract", value)
    extracted = regex_match(text, pattern, group, re.IGNORECASE)
    if extracted is None:
        return fallback(text) if fallback is not None else None
    result = extracted
    if target_type is not None:
        result = coerce_value(extracted, target_type)
        if result is None and fallback is not None:
            return fallback(text)
    for key, bound in bounds:
        if _is_number(result) and _is_number(bound):
            if (key == "min" and result < bound) or (key == "max" and result > bound):
                return None
    return result


def _apply_fn(env, name, value):
    fn = env.get("_fn_" + name)
    if fn is None:
        raise QueryError(f'apply-fn: function "{name}" is not defined')
    return fn(to_text(value))
'''


def _coercion_source() -> str:
    return inspect.getsource(coercion)


class _Compiler:
    def __init__(self, coordinator: SynthesisCoordinator, config: SolverConfig):
        self.coordinator = coordinator
        self.config = config
        self._counter = 0

    def fresh(self) -> str:
        name = f"_v{self._counter}"
        self._counter += 1
        return name

    def converter(
        self, operation: str, examples: Sequence[Example], closed_form: str | None = None
    ) -> str:
        """Inline a learned converter as a lambda over ``s``.

        When ``closed_form`` is given it replaces a converter that cannot be
        synthesized, as the solver does for the parse operations.
        """
        try:
            converter = self.coordinator.converter(operation, examples)
        except SynthesisFailure as e:
            if closed_form is None:
                raise
            logger.info("Falling back to closed-form %s: %s", operation, e)
            return f"(lambda s: {closed_form})"
        logger.debug("Inlined %s converter: %s", operation, converter.code)
        return f"(lambda s: {converter.code})"

    def expr(self, term: Term, scope: dict[str, str]) -> str:
        """Python expression for a term; ``scope`` maps lambda params to Python names."""
        c = self.expr

        if isinstance(term, Input):
            return "context"
        if isinstance(term, Lit):
            return repr(term.value)
        if isinstance(term, Var):
            if term.name in scope:
                return scope[term.name]
            if term.name == "context":
                return "context"
            return f"_lookup(env, {term.name!r})"

        if isinstance(term, Grep):
            return f"_grep(tools, {term.pattern!r})"
        if isinstance(term, FuzzySearch):
            limit = term.limit if term.limit is not None else self.config.fuzzy_limit
            return f"list(tools.fuzzy_search({term.query!r}, {limit}))"
        if isinstance(term, CorpusStats):
            return "tools.corpus_stats()"
        if isinstance(term, Lines):
            return f"_lines(context, {term.start}, {term.end})"

        if isinstance(term, Filter):
            return f"_filter({c(term.collection, scope)}, {c(term.predicate, scope)})"
        if isinstance(term, Map):
            return f"_map({c(term.collection, scope)}, {c(term.transform, scope)})"
        if isinstance(term, Reduce):
            return f"_reduce({c(term.collection, scope)}, {c(term.init, scope)}, {c(term.fn, scope)})"
        if isinstance(term, Sum):
            return f"_sum({c(term.collection, scope)})"
        if isinstance(term, Count):
            return f"len(_array('count', {c(term.collection, scope)}))"

        if isinstance(term, Add):
            return f"_add({c(term.left, scope)}, {c(term.right, scope)})"
        if isinstance(term, Match):
            return f"_match({c(term.string, scope)}, {term.pattern!r}, {term.group})"
        if isinstance(term, Replace):
            return (
                f"regex_replace(_string('replace', {c(term.string, scope)}), "
                f"{term.pattern!r}, {term.replacement!r})"
            )
        if isinstance(term, Split):
            return f"_split({c(term.string, scope)}, {term.delimiter!r}, {term.index})"
        if isinstance(term, ParseInt):
            return f"parse_int_prefix(to_text({c(term.string, scope)}).replace(',', ''))"
        if isinstance(term, ParseFloat):
            return f"parse_float_prefix(to_text({c(term.string, scope)}).replace(',', ''))"

        if isinstance(term, ParseDate):
            text = f"to_text({c(term.string, scope)})"
            if term.examples:
                closed_form = f"parse_date(s, {term.format_hint!r})"
                return f"{self.converter('parseDate', term.examples, closed_form)}({text})"
            return f"parse_date({text}, {term.format_hint!r})"
        if isinstance(term, ParseCurrency):
            text = f"to_text({c(term.string, scope)})"
            if term.examples:
                return f"{self.converter('parseCurrency', term.examples, 'parse_currency(s)')}({text})"
            return f"parse_currency({text})"
        if isinstance(term, ParseNumber):
            text = f"to_text({c(term.string, scope)})"
            if term.examples:
                return f"{self.converter('parseNumber', term.examples, 'parse_number(s)')}({text})"
            return f"parse_number({text})"
        if isinstance(term, Coerce):
            return f"coerce_value({c(term.term, scope)}, {term.target_type!r})"
        if isinstance(term, Extract):
            fallback = self.converter("extract", term.examples) if term.examples else "None"
            bounds = tuple((k, v) for k, v in term.constraints if k in ("min", "max"))
            return (
                f"_extract({c(term.string, scope)}, {term.pattern!r}, {term.group}, "
                f"{term.target_type!r}, {bounds!r}, {fallback})"
            )

        if isinstance(term, If):
            return (
                f"({c(term.then, scope)} if is_truthy({c(term.condition, scope)}) "
                f"else {c(term.otherwise, scope)})"
            )

        if isinstance(term, Classify):
            return self.converter("classify", term.examples)
        if isinstance(term, Synthesize):
            return self.converter("synthesize", term.examples)
        if isinstance(term, DefineFn):
            return self.converter("define-fn", term.examples)
        if isinstance(term, ApplyFn):
            return f"_apply_fn(env, {term.name!r}, {c(term.argument, scope)})"
        if isinstance(term, Predicate):
            text = f"to_text({c(term.string, scope)})"
            if term.examples:
                return f"bool({self.converter('predicate', term.examples)}({text}))"
            return f"bool({text})"

        if isinstance(term, ListSymbols):
            return f"list(tools.list_symbols({term.kind!r}))"
        if isinstance(term, GetSymbolBody):
            return f"tools.get_symbol_body({c(term.symbol, scope)})"
        if isinstance(term, FindReferences):
            return f"list(tools.find_references({term.name!r}))"

        if isinstance(term, Lambda):
            name = self.fresh()
            return f"(lambda {name}: {c(term.body, {**scope, term.param: name})})"
        if isinstance(term, App):
            return f"_apply({c(term.function, scope)}, {c(term.argument, scope)})"

        raise TypeError(f"Unknown term: {type(term).__name__}")


def compile_expression(
    term: Term,
    coordinator: SynthesisCoordinator | None = None,
    config: SolverConfig | None = None,
) -> str:
    """Compile a term to a single Python expression over the runtime names.

    Raises:
        ResolutionError: If the term still carries constraint annotations
        SynthesisFailure: If an operation's examples cannot be synthesized
    """
    ensure_resolved(term)
    compiler = _Compiler(coordinator or SynthesisCoordinator(), config or SolverConfig())
    return compiler.expr(term, {})


def compile_term(
    term: Term,
    coordinator: SynthesisCoordinator | None = None,
    config: SolverConfig | None = None,
) -> str:
    """Compile a resolved term to the source of a standalone Python module.

    Args:
        term: Term without constraint wrappers
        coordinator: Used for compile-time synthesis of ``:examples``
        config: Supplies the default fuzzy search limit

    Returns:
        Module source defining ``run(tools, bindings=None)``

    Raises:
        ResolutionError: If the term still carries constraint annotations
        SynthesisFailure: If an operation's examples cannot be synthesized
    """
    body = compile_expression(term, coordinator, config)
    header = "\n".join(f"#   {line}" for line in print_term(term).splitlines())
    source = (
        f"# Compiled query:\n{header}\n"
        f"{_coercion_source()}\n{_PRELUDE}\n\n"
        f"def {ENTRY_POINT}(tools, bindings=None):\n"
        f"    env = dict(bindings or {{}})\n"
        f"    context = tools.context\n"
        f"    return {body}\n"
    )
    logger.debug("Compiled query to %d characters of Python", len(source))
    return source


# =============================================================================
# Term inspection
# =============================================================================


def _unwrap(term: Term) -> Term:
    while isinstance(term, Constrained):
        term = term.term
    return term


def is_search_term(term: Term) -> bool:
    """Whether the term is a plain document search."""
    return isinstance(_unwrap(term), (Grep, FuzzySearch))


def is_classify_term(term: Term) -> bool:
    return isinstance(_unwrap(term), Classify)


def validate_classify_examples(term: Term, previous_output: Sequence[str]) -> str | None:
    """Check that a classifier's examples were copied from earlier output.

    Agents sometimes invent placeholder examples instead of quoting lines
    they have seen; those classifiers rarely generalize.

    Returns:
        A message naming the first example not found, or None
    """
    term = _unwrap(term)
    if not isinstance(term, Classify):
        return None
    for example in term.examples:
        found = any(
            example.input in line or (line.strip() and line.strip() in example.input)
            for line in previous_output
        )
        if not found:
            return (
                f'Example "{example.input[:50]}" was not found in earlier output. '
                "Copy exact lines from the output."
            )
    return None


__all__ = [
    "ENTRY_POINT",
    "compile_expression",
    "compile_term",
    "is_classify_term",
    "is_search_term",
    "validate_classify_examples",
]
