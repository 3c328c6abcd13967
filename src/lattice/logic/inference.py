"""Static type inference for query terms.

Predicts the shape of a term's result without running it, so a turn that
is certain to fail can be rejected before it touches the document. The
pass is a heuristic: it only raises for operand shapes the solver is
certain to reject, and anything it cannot decide is typed ``any``.

Usage:
    from lattice.logic.inference import infer_type, type_to_string

    result = infer_type(parse('(count (grep "x"))'))
    if result.valid:
        print(type_to_string(result.type))  # number
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from lattice.errors import InferenceError
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


class TypeTag(Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    FUNCTION = "function"
    ANY = "any"
    VOID = "void"


@dataclass(frozen=True)
class LType:
    """A result type. Arrays carry ``element``; functions ``param``/``result``."""

    tag: TypeTag
    element: LType | None = None
    param: LType | None = None
    result: LType | None = None

    @classmethod
    def array(cls, element: LType) -> LType:
        return cls(TypeTag.ARRAY, element=element)

    @classmethod
    def function(cls, param: LType, result: LType) -> LType:
        return cls(TypeTag.FUNCTION, param=param, result=result)

    def __str__(self) -> str:
        return type_to_string(self)


STRING = LType(TypeTag.STRING)
NUMBER = LType(TypeTag.NUMBER)
BOOLEAN = LType(TypeTag.BOOLEAN)
ANY = LType(TypeTag.ANY)
VOID = LType(TypeTag.VOID)

TypeEnv = Mapping[str, LType]

_COERCION_RESULTS = {
    "date": STRING,
    "currency": NUMBER,
    "number": NUMBER,
    "percent": NUMBER,
    "boolean": BOOLEAN,
    "string": STRING,
}

# Types that can never be treated as a collection or a string operand.
_SCALAR_NON_STRING = (TypeTag.NUMBER, TypeTag.BOOLEAN, TypeTag.FUNCTION, TypeTag.ARRAY)


@dataclass
class InferenceResult:
    """Non-raising inference outcome."""

    valid: bool
    type: LType | None = None
    error: str | None = None


# =============================================================================
# Inference
# =============================================================================


def _require_collection(op: str, t: LType) -> LType:
    if t.tag not in (TypeTag.ARRAY, TypeTag.ANY):
        raise InferenceError(f"{op}: expected array, got {type_to_string(t)}")
    return t


def _require_string(op: str, t: LType) -> None:
    if t.tag in _SCALAR_NON_STRING:
        raise InferenceError(f"{op}: expected string, got {type_to_string(t)}")


def _require_function(op: str, t: LType) -> None:
    if t.tag not in (TypeTag.FUNCTION, TypeTag.ANY):
        raise InferenceError(f"{op}: expected function, got {type_to_string(t)}")


def _require_number(op: str, t: LType) -> None:
    if t.tag not in (TypeTag.NUMBER, TypeTag.ANY):
        raise InferenceError(f"{op}: expected number, got {type_to_string(t)}")


def _result_of(t: LType) -> LType:
    if t.tag is TypeTag.FUNCTION and t.result is not None:
        return t.result
    return ANY


def infer(term: Term, env: TypeEnv | None = None) -> LType:
    """Infer the result type of a term.

    Args:
        term: Term to type; constraint wrappers are looked through
        env: Types of free variables (lambda parameters, session bindings)

    Returns:
        The inferred type; ``any`` where nothing can be decided

    Raises:
        InferenceError: If an operand has a shape the solver always rejects
    """
    env = env or {}

    if isinstance(term, Input):
        return STRING
    if isinstance(term, Lit):
        if isinstance(term.value, bool):
            return BOOLEAN
        if isinstance(term.value, str):
            return STRING
        return NUMBER
    if isinstance(term, Var):
        if term.name == "context":
            return STRING
        return env.get(term.name, ANY)

    if isinstance(term, (Grep, FuzzySearch, ListSymbols, FindReferences)):
        return LType.array(ANY)
    if isinstance(term, CorpusStats):
        return ANY
    if isinstance(term, Lines):
        return LType.array(STRING)
    if isinstance(term, GetSymbolBody):
        return STRING

    if isinstance(term, Filter):
        collection = _require_collection("filter", infer(term.collection, env))
        _require_function("filter", infer(term.predicate, env))
        return collection if collection.tag is TypeTag.ARRAY else LType.array(ANY)
    if isinstance(term, Map):
        _require_collection("map", infer(term.collection, env))
        transform = infer(term.transform, env)
        _require_function("map", transform)
        return LType.array(_result_of(transform))
    if isinstance(term, Reduce):
        _require_collection("reduce", infer(term.collection, env))
        init = infer(term.init, env)
        fn = infer(term.fn, env)
        _require_function("reduce", fn)
        result = _result_of(_result_of(fn))
        return result if result.tag is not TypeTag.ANY else init
    if isinstance(term, Sum):
        _require_collection("sum", infer(term.collection, env))
        return NUMBER
    if isinstance(term, Count):
        _require_collection("count", infer(term.collection, env))
        return NUMBER
    if isinstance(term, Add):
        _require_number("add", infer(term.left, env))
        _require_number("add", infer(term.right, env))
        return NUMBER

    if isinstance(term, (Match, Replace, Split)):
        _require_string(term.tag, infer(term.string, env))
        return STRING
    if isinstance(term, (ParseInt, ParseFloat, ParseCurrency, ParseNumber)):
        infer(term.string, env)
        return NUMBER
    if isinstance(term, ParseDate):
        infer(term.string, env)
        return STRING
    if isinstance(term, Coerce):
        infer(term.term, env)
        return _COERCION_RESULTS[term.target_type]
    if isinstance(term, Extract):
        _require_string("extract", infer(term.string, env))
        if term.target_type is not None:
            return _COERCION_RESULTS[term.target_type]
        return ANY if term.examples else STRING

    if isinstance(term, If):
        infer(term.condition, env)
        then_type = infer(term.then, env)
        else_type = infer(term.otherwise, env)
        return then_type if then_type == else_type else ANY

    if isinstance(term, (Classify, Synthesize, DefineFn)):
        return LType.function(STRING, ANY)
    if isinstance(term, ApplyFn):
        infer(term.argument, env)
        return ANY
    if isinstance(term, Predicate):
        infer(term.string, env)
        return BOOLEAN

    if isinstance(term, Lambda):
        scope = dict(env)
        scope[term.param] = ANY
        return LType.function(ANY, infer(term.body, scope))
    if isinstance(term, App):
        fn = infer(term.function, env)
        infer(term.argument, env)
        if fn.tag is TypeTag.FUNCTION:
            return _result_of(fn)
        if fn.tag is TypeTag.ANY:
            return ANY
        raise InferenceError(f"Cannot apply a value of type {type_to_string(fn)}")
    if isinstance(term, Constrained):
        return infer(term.term, env)

    raise InferenceError(f"Unknown term: {type(term).__name__}")


def infer_type(term: Term, env: TypeEnv | None = None) -> InferenceResult:
    """Infer without raising; failures come back in the result."""
    try:
        return InferenceResult(valid=True, type=infer(term, env))
    except InferenceError as e:
        return InferenceResult(valid=False, error=str(e))


def type_of_value(value: Any) -> LType:
    """Best-effort type of a runtime value, for seeding an environment."""
    if isinstance(value, bool):
        return BOOLEAN
    if isinstance(value, (int, float)):
        return NUMBER
    if isinstance(value, str):
        return STRING
    if isinstance(value, list):
        return LType.array(ANY)
    if callable(value):
        return LType.function(STRING, ANY)
    return ANY


# =============================================================================
# Comparison and display
# =============================================================================


def type_matches(actual: LType, expected: LType) -> bool:
    """Check whether ``actual`` satisfies ``expected``; ``any`` matches both ways."""
    if actual.tag is TypeTag.ANY or expected.tag is TypeTag.ANY:
        return True
    if actual.tag is not expected.tag:
        return False
    if actual.tag is TypeTag.ARRAY:
        return type_matches(actual.element or ANY, expected.element or ANY)
    if actual.tag is TypeTag.FUNCTION:
        # Parameters are contravariant.
        return type_matches(expected.param or ANY, actual.param or ANY) and type_matches(
            actual.result or ANY, expected.result or ANY
        )
    return True


def type_to_string(t: LType) -> str:
    if t.tag is TypeTag.ARRAY:
        return f"{type_to_string(t.element or ANY)}[]"
    if t.tag is TypeTag.FUNCTION:
        return f"({type_to_string(t.param or ANY)} -> {type_to_string(t.result or ANY)})"
    return t.tag.value


_EXPECTED = {
    "string": STRING,
    "number": NUMBER,
    "boolean": BOOLEAN,
    "array": LType.array(ANY),
    "object": ANY,
}


def verify_output_type(term: Term, expected: str, env: TypeEnv | None = None) -> InferenceResult:
    """Check a term against the result shape a query asked for.

    Args:
        term: Term to check
        expected: One of ``string``, ``number``, ``boolean``, ``array``, ``object``
        env: Optional variable types

    Returns:
        InferenceResult; ``valid`` is False on a mismatch, with the inferred
        type still attached
    """
    if expected not in _EXPECTED:
        raise ValueError(f"Unknown expected type: {expected}")
    result = infer_type(term, env)
    if not result.valid or result.type is None:
        return result
    if not type_matches(result.type, _EXPECTED[expected]):
        return InferenceResult(
            valid=False,
            type=result.type,
            error=f"Type mismatch: expected {expected}, got {type_to_string(result.type)}",
        )
    return result


_QUERY_HINTS = (
    ("array", ("list", "all", "find", "which")),
    ("number", ("count", "how many", "sum", "total", "average")),
    ("boolean", ("is there", "does", "are there")),
    ("string", ("what is", "get the", "extract")),
)


def infer_expected_type(query: str) -> str | None:
    """Guess the result shape a natural-language question expects."""
    lower = query.lower()
    for expected, phrases in _QUERY_HINTS:
        if any(phrase in lower for phrase in phrases):
            return expected
    return None


__all__ = [
    "ANY",
    "BOOLEAN",
    "NUMBER",
    "STRING",
    "VOID",
    "InferenceResult",
    "LType",
    "TypeTag",
    "infer",
    "infer_expected_type",
    "infer_type",
    "type_matches",
    "type_of_value",
    "type_to_string",
    "verify_output_type",
]
