"""S-expression parser and printer for the query language.

Grammar:
    term        ::= atom | form | constrained
    atom        ::= string | number | boolean | symbol
    form        ::= "(" operator argument* keyword-argument* ")"
    constrained ::= "[" marker "]" "⊗" term
    examples    ::= ":examples" ( "[" pair* "]" | "(" pair* ")" )
    pair        ::= "(" string output ")" | "[" string output "]"

A form whose head is not an operator is a function application,
curried left to right: ``(f x y)`` is ``((f x) y)``.

Usage:
    from lattice.logic.parser import parse, print_term

    term = parse('(count (grep "ERROR"))')
    assert parse(print_term(term)) == term
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from lattice.errors import ParseError
from lattice.logic.terms import (
    COERCION_TYPES,
    KEYWORD_RE,
    Add,
    App,
    ApplyFn,
    Classify,
    Coerce,
    Constrained,
    ConstraintMarker,
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
    is_identifier,
)

# =============================================================================
# Tokenizer
# =============================================================================


class TokenKind(Enum):
    LPAREN = "("
    RPAREN = ")"
    LBRACKET = "["
    RBRACKET = "]"
    LBRACE = "{"
    RBRACE = "}"
    TENSOR = "⊗"
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    SYMBOL = "symbol"
    KEYWORD = "keyword"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: Any
    position: int


_PUNCTUATION = {
    "(": TokenKind.LPAREN,
    ")": TokenKind.RPAREN,
    "[": TokenKind.LBRACKET,
    "]": TokenKind.RBRACKET,
    "{": TokenKind.LBRACE,
    "}": TokenKind.RBRACE,
    "⊗": TokenKind.TENSOR,
}

_CLOSERS = {
    TokenKind.LPAREN: TokenKind.RPAREN,
    TokenKind.LBRACKET: TokenKind.RBRACKET,
    TokenKind.LBRACE: TokenKind.RBRACE,
}

_CLOSING_KINDS = frozenset(_CLOSERS.values())

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"'}

NUMBER_RE = re.compile(r"-?\d+(\.\d+)?([eE][+-]?\d+)?")
SYMBOL_RE = re.compile(r"(?:[^\W\d]|[⚡∞/])[\w⚡∞/\-]*")
SYMBOL_CHAR_RE = re.compile(r"[\w⚡∞/\-]")


def tokenize(text: str) -> list[Token]:
    """Split query text into tokens.

    Raises:
        ParseError: On an unterminated string, a malformed number or keyword,
            or a character outside the token alphabet.
    """
    tokens: list[Token] = []
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]

        if ch.isspace():
            i += 1
            continue

        if ch in _PUNCTUATION:
            tokens.append(Token(_PUNCTUATION[ch], ch, i))
            i += 1
            continue

        if ch == '"':
            value, end = _read_string(text, i)
            tokens.append(Token(TokenKind.STRING, value, i))
            i = end
            continue

        if ch == ":":
            match = KEYWORD_RE.match(text, i + 1)
            if not match:
                raise ParseError(f"Empty keyword at position {i}", i)
            tokens.append(Token(TokenKind.KEYWORD, match.group(0), i))
            i = match.end()
            continue

        if ch.isdigit() or (ch == "-" and i + 1 < n and text[i + 1].isdigit()):
            match = NUMBER_RE.match(text, i)
            if match is None:
                raise ParseError(f"Malformed number at position {i}", i)
            end = match.end()
            if end < n and SYMBOL_CHAR_RE.match(text[end]):
                raise ParseError(f"Malformed number at position {i}", i)
            literal = match.group(0)
            value: int | float
            if match.group(1) or match.group(2):
                value = float(literal)
                if not math.isfinite(value):
                    raise ParseError(f"Number out of range at position {i}", i)
            else:
                value = int(literal)
            tokens.append(Token(TokenKind.NUMBER, value, i))
            i = end
            continue

        match = SYMBOL_RE.match(text, i)
        if match:
            word = match.group(0)
            if word in ("true", "false"):
                tokens.append(Token(TokenKind.BOOLEAN, word == "true", i))
            else:
                tokens.append(Token(TokenKind.SYMBOL, word, i))
            i = match.end()
            continue

        raise ParseError(f"Unexpected character {ch!r} at position {i}", i)

    return tokens


def _read_string(text: str, start: int) -> tuple[str, int]:
    """Read a quoted string starting at ``start``; return (value, next index)."""
    chars: list[str] = []
    i = start + 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == '"':
            return "".join(chars), i + 1
        if ch == "\\":
            if i + 1 >= n:
                break
            nxt = text[i + 1]
            # Unknown escapes are kept verbatim so regex escapes like \d survive.
            chars.append(_ESCAPES.get(nxt, "\\" + nxt))
            i += 2
            continue
        chars.append(ch)
        i += 1
    raise ParseError(f"Unterminated string literal starting at position {start}", start)


def _describe(token: Token) -> str:
    if token.kind in (TokenKind.STRING, TokenKind.NUMBER, TokenKind.BOOLEAN):
        return f"{token.kind.value} {token.value!r}"
    if token.kind is TokenKind.SYMBOL:
        return f"symbol '{token.value}'"
    if token.kind is TokenKind.KEYWORD:
        return f"keyword ':{token.value}'"
    return f"'{token.kind.value}'"


# =============================================================================
# Parser
# =============================================================================


_ARITY = {
    "input": "no arguments",
    "lit": "1 argument",
    "grep": "1 argument",
    "fuzzy_search": "1-2 arguments",
    "text_stats": "no arguments",
    "lines": "2 arguments",
    "filter": "2 arguments",
    "map": "2 arguments",
    "reduce": "3 arguments",
    "sum": "1 argument",
    "count": "1 argument",
    "add": "2 arguments",
    "match": "3 arguments",
    "replace": "3 arguments",
    "split": "3 arguments",
    "parseInt": "1 argument",
    "parseFloat": "1 argument",
    "parseDate": "1-2 arguments",
    "parseCurrency": "1 argument",
    "parseNumber": "1 argument",
    "coerce": "2 arguments",
    "as": "2 arguments",
    "extract": "3-4 arguments",
    "if": "3 arguments",
    "classify": "at least 2 examples",
    "synthesize": "at least 2 examples",
    "define-fn": "1 argument",
    "apply-fn": "2 arguments",
    "predicate": "1 argument",
    "list_symbols": "0-1 arguments",
    "get_symbol_body": "1 argument",
    "find_references": "1 argument",
    "lambda": "a parameter and a body",
    "λ": "a parameter and a body",
}


class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.pos = 0

    def peek(self) -> Token | None:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def at_eof(self) -> bool:
        return self.pos >= len(self.tokens)

    def never_closed(self, opener: Token) -> ParseError:
        return ParseError(
            f"Unbalanced delimiters: '{opener.kind.value}' at position {opener.position} is never closed",
            opener.position,
        )

    def expect_close(self, opener: Token) -> None:
        closing = _CLOSERS[opener.kind]
        token = self.peek()
        if token is None:
            raise self.never_closed(opener)
        if token.kind is not closing:
            raise ParseError(
                f"Unbalanced delimiters: expected '{closing.value}' to close "
                f"'{opener.kind.value}' at position {opener.position}, found {_describe(token)}",
                token.position,
            )
        self.advance()

    def parse_term(self) -> Term:
        token = self.peek()
        if token is None:
            raise ParseError("Unexpected end of input", len(self.text))

        if token.kind is TokenKind.LBRACKET:
            return self.parse_constrained()
        if token.kind is TokenKind.LPAREN:
            return self.parse_form()
        if token.kind in (TokenKind.STRING, TokenKind.NUMBER, TokenKind.BOOLEAN):
            self.advance()
            return Lit(token.value)
        if token.kind is TokenKind.SYMBOL:
            self.advance()
            if token.value == "input":
                return Input()
            return self.make_var(token)
        if token.kind in _CLOSING_KINDS:
            raise ParseError(
                f"Unbalanced delimiters: unexpected '{token.kind.value}' at position {token.position}",
                token.position,
            )
        raise ParseError(f"Unexpected {_describe(token)} at position {token.position}", token.position)

    def make_var(self, token: Token) -> Var:
        if not is_identifier(token.value):
            raise ParseError(
                f"Reserved word '{token.value}' cannot be used as a variable "
                f"(position {token.position})",
                token.position,
            )
        return Var(token.value)

    def parse_constrained(self) -> Constrained:
        opener = self.advance()
        token = self.peek()
        if token is None:
            raise self.never_closed(opener)
        if token.kind is not TokenKind.SYMBOL:
            raise ParseError(
                f"Expected constraint marker after '[' at position {opener.position}, "
                f"found {_describe(token)}",
                token.position,
            )
        try:
            marker = ConstraintMarker.from_symbol(token.value)
        except ValueError:
            raise ParseError(
                f"Unknown constraint marker '{token.value}' at position {token.position}",
                token.position,
            ) from None
        self.advance()
        self.expect_close(opener)
        tensor = self.peek()
        if tensor is None or tensor.kind is not TokenKind.TENSOR:
            position = tensor.position if tensor else len(self.text)
            raise ParseError(f"Expected '⊗' after constraint marker at position {position}", position)
        self.advance()
        return Constrained(marker, self.parse_term())

    def parse_form(self) -> Term:
        opener = self.advance()
        head = self.peek()
        if head is None:
            raise self.never_closed(opener)

        if head.kind is TokenKind.SYMBOL:
            name = head.value
            if name in _FORM_PARSERS:
                self.advance()
                form = _Form(self, name, opener)
                term = _FORM_PARSERS[name](form)
                form.finish()
                return term
            if name == "input":
                self.advance()
                form = _Form(self, name, opener)
                form.finish()
                return Input()
            self.advance()
            function: Term = self.make_var(head)
        elif head.kind in (TokenKind.LPAREN, TokenKind.LBRACKET):
            function = self.parse_term()
        elif head.kind in (TokenKind.STRING, TokenKind.NUMBER, TokenKind.BOOLEAN):
            # Applying a literal is well-formed syntax; the solver rejects it.
            self.advance()
            function = Lit(head.value)
        elif head.kind is TokenKind.RPAREN:
            raise ParseError(f"Unknown operator: empty form at position {opener.position}", opener.position)
        else:
            raise ParseError(
                f"Unknown operator: {_describe(head)} at position {head.position}", head.position
            )

        while True:
            token = self.peek()
            if token is None or token.kind in _CLOSING_KINDS:
                break
            if token.kind is TokenKind.KEYWORD:
                raise ParseError(
                    f"Unexpected {_describe(token)} in application at position {token.position}",
                    token.position,
                )
            function = App(function, self.parse_term())
        self.expect_close(opener)
        return function

    # -------------------------------------------------------------------------
    # Example lists and keyword values
    # -------------------------------------------------------------------------

    def parse_example_list(self, after: Token) -> tuple[Example, ...]:
        opener = self.peek()
        if opener is None or opener.kind not in (TokenKind.LBRACKET, TokenKind.LPAREN):
            position = opener.position if opener else len(self.text)
            raise ParseError(
                f"Expected example list after ':{after.value}' at position {after.position}", position
            )
        self.advance()
        closing = _CLOSERS[opener.kind]
        examples: list[Example] = []
        while True:
            token = self.peek()
            if token is None:
                self.expect_close(opener)
            elif token.kind is closing:
                self.advance()
                break
            else:
                examples.append(self.parse_pair())
        if not examples:
            raise ParseError(f"Empty example list at position {opener.position}", opener.position)
        return tuple(examples)

    def parse_pair(self) -> Example:
        opener = self.peek()
        if opener is None:
            raise ParseError("Unexpected end of input in example list", len(self.text))
        if opener.kind not in (TokenKind.LPAREN, TokenKind.LBRACKET):
            raise ParseError(
                f"Expected (input output) example pair at position {opener.position}, "
                f"found {_describe(opener)}",
                opener.position,
            )
        self.advance()
        example = self.parse_flat_pair()
        self.expect_close(opener)
        return example

    def parse_flat_pair(self) -> Example:
        token = self.peek()
        if token is None:
            raise ParseError("Unexpected end of input in example", len(self.text))
        if token.kind is not TokenKind.STRING:
            raise ParseError(
                f"Wrong literal kind: example input must be a string, got {_describe(token)}",
                token.position,
            )
        self.advance()
        return Example(token.value, self.parse_example_output())

    def parse_example_output(self) -> Any:
        token = self.peek()
        if token is None:
            raise ParseError("Unexpected end of input in example", len(self.text))
        if token.kind in (TokenKind.STRING, TokenKind.NUMBER, TokenKind.BOOLEAN):
            self.advance()
            return token.value
        if token.kind is TokenKind.LBRACKET:
            self.advance()
            items: list[Any] = []
            while True:
                item = self.peek()
                if item is None:
                    raise self.never_closed(token)
                if item.kind is TokenKind.RBRACKET:
                    self.advance()
                    return tuple(items)
                if item.kind not in (TokenKind.STRING, TokenKind.NUMBER, TokenKind.BOOLEAN):
                    raise ParseError(
                        f"Wrong literal kind: example output list holds literals, got {_describe(item)}",
                        item.position,
                    )
                self.advance()
                items.append(item.value)
        raise ParseError(
            f"Wrong literal kind: example output must be a literal, got {_describe(token)}",
            token.position,
        )

    def parse_constraint_object(self) -> tuple[tuple[str, Any], ...]:
        opener = self.peek()
        if opener is None or opener.kind is not TokenKind.LBRACE:
            position = opener.position if opener else len(self.text)
            raise ParseError(f"Expected '{{' after ':constraints' at position {position}", position)
        self.advance()
        pairs: list[tuple[str, Any]] = []
        while True:
            token = self.peek()
            if token is None:
                self.expect_close(opener)
            elif token.kind is TokenKind.RBRACE:
                self.advance()
                return tuple(pairs)
            elif token.kind is TokenKind.KEYWORD:
                self.advance()
                value = self.peek()
                if value is None or value.kind not in (
                    TokenKind.STRING,
                    TokenKind.NUMBER,
                    TokenKind.BOOLEAN,
                ):
                    position = value.position if value else len(self.text)
                    raise ParseError(
                        f"Wrong literal kind: constraint ':{token.value}' needs a literal value",
                        position,
                    )
                self.advance()
                pairs.append((token.value, value.value))
            else:
                raise ParseError(
                    f"Expected ':key value' in constraint object, found {_describe(token)}",
                    token.position,
                )


class _Form:
    """Argument cursor for one operator form."""

    def __init__(self, parser: _Parser, op: str, opener: Token):
        self.parser = parser
        self.op = op
        self.opener = opener
        self.count = 0

    def _next(self, role: str) -> Token:
        token = self.parser.peek()
        if token is None:
            raise self.parser.never_closed(self.opener)
        if token.kind in _CLOSING_KINDS or token.kind is TokenKind.KEYWORD:
            raise ParseError(
                f"Arity mismatch: '{self.op}' expects {_ARITY[self.op]}, got {self.count} "
                f"(missing {role})",
                token.position,
            )
        return token

    def term(self, role: str) -> Term:
        self._next(role)
        self.count += 1
        return self.parser.parse_term()

    def string(self, role: str) -> str:
        token = self._next(role)
        if token.kind is not TokenKind.STRING:
            raise ParseError(
                f"Wrong literal kind: '{self.op}' expects a string for {role}, "
                f"got {_describe(token)}",
                token.position,
            )
        self.parser.advance()
        self.count += 1
        return token.value

    def integer(self, role: str) -> int:
        token = self._next(role)
        if token.kind is not TokenKind.NUMBER or not isinstance(token.value, int):
            raise ParseError(
                f"Wrong literal kind: '{self.op}' expects an integer for {role}, "
                f"got {_describe(token)}",
                token.position,
            )
        self.parser.advance()
        self.count += 1
        return token.value

    def literal(self, role: str) -> Any:
        token = self._next(role)
        if token.kind not in (TokenKind.STRING, TokenKind.NUMBER, TokenKind.BOOLEAN):
            raise ParseError(
                f"Wrong literal kind: '{self.op}' expects a literal for {role}, "
                f"got {_describe(token)}",
                token.position,
            )
        self.parser.advance()
        self.count += 1
        return token.value

    def optional_string(self) -> str | None:
        token = self.parser.peek()
        if token is not None and token.kind is TokenKind.STRING:
            self.parser.advance()
            self.count += 1
            return token.value
        return None

    def optional_integer(self, role: str) -> int | None:
        token = self.parser.peek()
        if token is not None and token.kind is TokenKind.NUMBER:
            return self.integer(role)
        return None

    def keywords(self, *allowed: str) -> dict[str, Any]:
        """Read trailing ``:keyword value`` arguments."""
        values: dict[str, Any] = {}
        while True:
            token = self.parser.peek()
            if token is None or token.kind is not TokenKind.KEYWORD:
                return values
            name = token.value
            if name not in allowed:
                raise ParseError(
                    f"Unknown keyword ':{name}' for '{self.op}' at position {token.position}",
                    token.position,
                )
            if name in values:
                raise ParseError(
                    f"Duplicate keyword ':{name}' for '{self.op}' at position {token.position}",
                    token.position,
                )
            self.parser.advance()
            if name == "examples":
                values[name] = self.parser.parse_example_list(token)
            elif name == "constraints":
                values[name] = self.parser.parse_constraint_object()
            else:
                value = self.parser.peek()
                if value is None or value.kind is not TokenKind.STRING:
                    position = value.position if value else len(self.parser.text)
                    raise ParseError(
                        f"Wrong literal kind: '{self.op}' expects a string after ':{name}'",
                        position,
                    )
                self.parser.advance()
                values[name] = value.value

    def example_sequence(self) -> tuple[Example, ...]:
        """Examples given by keyword, as pairs, or as flat input/output runs."""
        keyword_values = self.keywords("examples")
        if "examples" in keyword_values:
            return keyword_values["examples"]
        examples: list[Example] = []
        while True:
            token = self.parser.peek()
            if token is None or token.kind in _CLOSING_KINDS:
                break
            if token.kind in (TokenKind.LPAREN, TokenKind.LBRACKET):
                examples.append(self.parser.parse_pair())
            else:
                examples.append(self.parser.parse_flat_pair())
        return tuple(examples)

    def finish(self) -> None:
        token = self.parser.peek()
        if token is None:
            self.parser.expect_close(self.opener)
            return
        if token.kind is TokenKind.KEYWORD:
            raise ParseError(
                f"Unknown keyword ':{token.value}' for '{self.op}' at position {token.position}",
                token.position,
            )
        if token.kind not in _CLOSING_KINDS:
            raise ParseError(
                f"Arity mismatch: '{self.op}' expects {_ARITY[self.op]}, got more "
                f"(unexpected {_describe(token)} at position {token.position})",
                token.position,
            )
        self.parser.expect_close(self.opener)


def _coercion_type(form: _Form, value: str, token_role: str) -> str:
    if value not in COERCION_TYPES:
        raise ParseError(
            f"Unknown coercion type '{value}' for '{form.op}' {token_role}; "
            f"expected one of {', '.join(COERCION_TYPES)}",
            form.opener.position,
        )
    return value


def _min_examples(form: _Form, examples: tuple[Example, ...], minimum: int) -> tuple[Example, ...]:
    if len(examples) < minimum:
        raise ParseError(
            f"Arity mismatch: '{form.op}' expects at least {minimum} example(s), got {len(examples)}",
            form.opener.position,
        )
    return examples


def _parse_lit(form: _Form) -> Term:
    return Lit(form.literal("value"))


def _parse_fuzzy_search(form: _Form) -> Term:
    query = form.string("query")
    limit = form.optional_integer("limit")
    return FuzzySearch(query, limit)


def _parse_parse_date(form: _Form) -> Term:
    string = form.term("string")
    hint = form.optional_string()
    extras = form.keywords("examples", "format")
    if "format" in extras:
        if hint is not None:
            raise ParseError("parseDate: format hint given twice", form.opener.position)
        hint = extras["format"]
    return ParseDate(string, hint, extras.get("examples", ()))


def _parse_extract(form: _Form) -> Term:
    string = form.term("string")
    pattern = form.string("pattern")
    group = form.integer("group")
    target = form.optional_string()
    extras = form.keywords("type", "examples", "constraints")
    if "type" in extras:
        if target is not None:
            raise ParseError("extract: target type given twice", form.opener.position)
        target = extras["type"]
    if target is not None:
        target = _coercion_type(form, target, "target type")
    return Extract(
        string,
        pattern,
        group,
        target,
        extras.get("examples", ()),
        extras.get("constraints", ()),
    )


def _parse_coerce(form: _Form) -> Term:
    term = form.term("term")
    target = _coercion_type(form, form.string("target type"), "target type")
    return Coerce(term, target)


def _parse_define_fn(form: _Form) -> Term:
    name = form.string("name")
    extras = form.keywords("examples")
    if "examples" not in extras:
        raise ParseError(
            f"Arity mismatch: 'define-fn' requires :examples (position {form.opener.position})",
            form.opener.position,
        )
    return DefineFn(name, extras["examples"])


def _parse_lambda(form: _Form) -> Term:
    parser = form.parser
    token = parser.peek()
    if token is None:
        raise parser.never_closed(form.opener)
    params: list[str] = []
    if token.kind is TokenKind.SYMBOL:
        parser.advance()
        params.append(token.value)
    elif token.kind is TokenKind.LPAREN:
        parser.advance()
        while True:
            param = parser.peek()
            if param is None:
                raise parser.never_closed(token)
            if param.kind is TokenKind.RPAREN:
                parser.advance()
                break
            if param.kind is not TokenKind.SYMBOL:
                raise ParseError(
                    f"Wrong literal kind: lambda parameter must be a name, got {_describe(param)}",
                    param.position,
                )
            parser.advance()
            params.append(param.value)
        if not params:
            raise ParseError(
                f"Arity mismatch: '{form.op}' expects {_ARITY[form.op]}, got no parameter",
                token.position,
            )
    else:
        raise ParseError(
            f"Wrong literal kind: '{form.op}' expects a parameter name, got {_describe(token)}",
            token.position,
        )
    for name in params:
        if not is_identifier(name):
            raise ParseError(f"Reserved word '{name}' cannot be used as a parameter", token.position)
    form.count += 1
    body = form.term("body")
    for name in reversed(params):
        body = Lambda(name, body)
    return body


_FORM_PARSERS: dict[str, Callable[[_Form], Term]] = {
    "lit": _parse_lit,
    "grep": lambda f: Grep(f.string("pattern")),
    "fuzzy_search": _parse_fuzzy_search,
    "text_stats": lambda f: CorpusStats(),
    "lines": lambda f: Lines(f.integer("start"), f.integer("end")),
    "filter": lambda f: Filter(f.term("collection"), f.term("predicate")),
    "map": lambda f: Map(f.term("collection"), f.term("transform")),
    "reduce": lambda f: Reduce(f.term("collection"), f.term("init"), f.term("fn")),
    "sum": lambda f: Sum(f.term("collection")),
    "count": lambda f: Count(f.term("collection")),
    "add": lambda f: Add(f.term("left"), f.term("right")),
    "match": lambda f: Match(f.term("string"), f.string("pattern"), f.integer("group")),
    "replace": lambda f: Replace(f.term("string"), f.string("pattern"), f.string("replacement")),
    "split": lambda f: Split(f.term("string"), f.string("delimiter"), f.integer("index")),
    "parseInt": lambda f: ParseInt(f.term("string")),
    "parseFloat": lambda f: ParseFloat(f.term("string")),
    "parseDate": _parse_parse_date,
    "parseCurrency": lambda f: ParseCurrency(
        f.term("string"), f.keywords("examples").get("examples", ())
    ),
    "parseNumber": lambda f: ParseNumber(
        f.term("string"), f.keywords("examples").get("examples", ())
    ),
    "coerce": _parse_coerce,
    "as": _parse_coerce,
    "extract": _parse_extract,
    "if": lambda f: If(f.term("condition"), f.term("then"), f.term("else")),
    "classify": lambda f: Classify(_min_examples(f, f.example_sequence(), 2)),
    "synthesize": lambda f: Synthesize(_min_examples(f, f.example_sequence(), 2)),
    "define-fn": _parse_define_fn,
    "apply-fn": lambda f: ApplyFn(f.string("name"), f.term("argument")),
    "predicate": lambda f: Predicate(f.term("string"), f.keywords("examples").get("examples", ())),
    "list_symbols": lambda f: ListSymbols(f.optional_string()),
    "get_symbol_body": lambda f: GetSymbolBody(f.term("symbol")),
    "find_references": lambda f: FindReferences(f.string("name")),
    "lambda": _parse_lambda,
    "λ": _parse_lambda,
}


# =============================================================================
# Public API
# =============================================================================


@dataclass
class ParseResult:
    """Non-raising parse outcome."""

    success: bool
    term: Term | None = None
    error: str | None = None


def parse(text: str) -> Term:
    """Parse exactly one term.

    Args:
        text: Query text

    Returns:
        The parsed term, possibly still wrapped in constraint annotations

    Raises:
        ParseError: If the text is not exactly one well-formed term
    """
    try:
        parser = _Parser(text)
        if parser.at_eof():
            raise ParseError("Empty input", 0)
        term = parser.parse_term()
        token = parser.peek()
        if token is not None:
            if token.kind in _CLOSING_KINDS:
                raise ParseError(
                    f"Unbalanced delimiters: unexpected '{token.kind.value}' at position {token.position}",
                    token.position,
                )
            raise ParseError(f"Unexpected trailing input at position {token.position}", token.position)
        return term
    except RecursionError:
        raise ParseError("Expression is nested too deeply") from None


def parse_all(text: str) -> list[Term]:
    """Parse a sequence of top-level terms."""
    try:
        parser = _Parser(text)
        terms: list[Term] = []
        while not parser.at_eof():
            # parse_term rejects a stray closing delimiter
            terms.append(parser.parse_term())
        return terms
    except RecursionError:
        raise ParseError("Expression is nested too deeply") from None


def try_parse(text: str) -> ParseResult:
    """Parse without raising; errors are returned in the result."""
    try:
        return ParseResult(success=True, term=parse(text))
    except ParseError as e:
        return ParseResult(success=False, error=str(e))


# =============================================================================
# Printer
# =============================================================================


def quote(value: str) -> str:
    """Render a string literal that parses back to ``value``."""
    out = ['"']
    for ch in value:
        if ch == "\\":
            out.append("\\\\")
        elif ch == '"':
            out.append('\\"')
        elif ch == "\n":
            out.append("\\n")
        elif ch == "\t":
            out.append("\\t")
        elif ch == "\r":
            out.append("\\r")
        else:
            out.append(ch)
    out.append('"')
    return "".join(out)


def print_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return quote(value)
    if isinstance(value, float):
        return repr(value)
    return str(value)


def _print_output(value: Any) -> str:
    if isinstance(value, tuple):
        return "[" + " ".join(print_scalar(v) for v in value) + "]"
    return print_scalar(value)


def print_examples(examples: tuple[Example, ...]) -> str:
    pairs = " ".join(f"({quote(e.input)} {_print_output(e.output)})" for e in examples)
    return f"[{pairs}]"


def _examples_suffix(examples: tuple[Example, ...]) -> str:
    return f" :examples {print_examples(examples)}" if examples else ""


def print_term(term: Term) -> str:
    """Render a term as S-expression text.

    ``parse(print_term(t)) == t`` holds for every term the parser produces.
    """
    p = print_term
    if isinstance(term, Input):
        return "(input)"
    if isinstance(term, Lit):
        return print_scalar(term.value)
    if isinstance(term, Var):
        return term.name
    if isinstance(term, Grep):
        return f"(grep {quote(term.pattern)})"
    if isinstance(term, FuzzySearch):
        if term.limit is None:
            return f"(fuzzy_search {quote(term.query)})"
        return f"(fuzzy_search {quote(term.query)} {term.limit})"
    if isinstance(term, CorpusStats):
        return "(text_stats)"
    if isinstance(term, Lines):
        return f"(lines {term.start} {term.end})"
    if isinstance(term, Filter):
        return f"(filter {p(term.collection)} {p(term.predicate)})"
    if isinstance(term, Map):
        return f"(map {p(term.collection)} {p(term.transform)})"
    if isinstance(term, Reduce):
        return f"(reduce {p(term.collection)} {p(term.init)} {p(term.fn)})"
    if isinstance(term, Sum):
        return f"(sum {p(term.collection)})"
    if isinstance(term, Count):
        return f"(count {p(term.collection)})"
    if isinstance(term, Add):
        return f"(add {p(term.left)} {p(term.right)})"
    if isinstance(term, Match):
        return f"(match {p(term.string)} {quote(term.pattern)} {term.group})"
    if isinstance(term, Replace):
        return f"(replace {p(term.string)} {quote(term.pattern)} {quote(term.replacement)})"
    if isinstance(term, Split):
        return f"(split {p(term.string)} {quote(term.delimiter)} {term.index})"
    if isinstance(term, ParseInt):
        return f"(parseInt {p(term.string)})"
    if isinstance(term, ParseFloat):
        return f"(parseFloat {p(term.string)})"
    if isinstance(term, ParseDate):
        hint = f" {quote(term.format_hint)}" if term.format_hint is not None else ""
        return f"(parseDate {p(term.string)}{hint}{_examples_suffix(term.examples)})"
    if isinstance(term, ParseCurrency):
        return f"(parseCurrency {p(term.string)}{_examples_suffix(term.examples)})"
    if isinstance(term, ParseNumber):
        return f"(parseNumber {p(term.string)}{_examples_suffix(term.examples)})"
    if isinstance(term, Coerce):
        return f"(coerce {p(term.term)} {quote(term.target_type)})"
    if isinstance(term, Extract):
        parts = [f"(extract {p(term.string)} {quote(term.pattern)} {term.group}"]
        if term.target_type is not None:
            parts.append(f" {quote(term.target_type)}")
        parts.append(_examples_suffix(term.examples))
        if term.constraints:
            body = " ".join(f":{k} {print_scalar(v)}" for k, v in term.constraints)
            parts.append(f" :constraints {{{body}}}")
        parts.append(")")
        return "".join(parts)
    if isinstance(term, If):
        return f"(if {p(term.condition)} {p(term.then)} {p(term.otherwise)})"
    if isinstance(term, Classify):
        return f"(classify :examples {print_examples(term.examples)})"
    if isinstance(term, Synthesize):
        pairs = " ".join(f"({quote(e.input)} {_print_output(e.output)})" for e in term.examples)
        return f"(synthesize {pairs})"
    if isinstance(term, DefineFn):
        return f"(define-fn {quote(term.name)} :examples {print_examples(term.examples)})"
    if isinstance(term, ApplyFn):
        return f"(apply-fn {quote(term.name)} {p(term.argument)})"
    if isinstance(term, Predicate):
        return f"(predicate {p(term.string)}{_examples_suffix(term.examples)})"
    if isinstance(term, ListSymbols):
        return "(list_symbols)" if term.kind is None else f"(list_symbols {quote(term.kind)})"
    if isinstance(term, GetSymbolBody):
        return f"(get_symbol_body {p(term.symbol)})"
    if isinstance(term, FindReferences):
        return f"(find_references {quote(term.name)})"
    if isinstance(term, Lambda):
        return f"(λ {term.param} {p(term.body)})"
    if isinstance(term, App):
        return f"({p(term.function)} {p(term.argument)})"
    if isinstance(term, Constrained):
        return f"[{term.marker.value}] ⊗ {p(term.term)}"
    raise TypeError(f"Cannot print {type(term).__name__}")


__all__ = [
    "ParseResult",
    "Token",
    "TokenKind",
    "parse",
    "parse_all",
    "print_examples",
    "print_scalar",
    "print_term",
    "quote",
    "tokenize",
    "try_parse",
]
