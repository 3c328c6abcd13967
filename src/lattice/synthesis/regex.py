"""Regex synthesis from positive and negative examples.

Candidates are tried in a fixed order and the first verified one wins:

1. Template table of common structured-text shapes
2. Positional character-class analysis
3. Literal alternation of the positives (small sets only)

Every candidate is verified as a full match against all positives and no
negatives before it is returned.

Usage:
    from lattice.synthesis.regex import synthesize_regex

    result = synthesize_regex(["$100", "$2,500"])
    if result.success:
        print(result.pattern)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence as SequenceType
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

MAX_ALTERNATION = 10

# =============================================================================
# AST
# =============================================================================


class CharClassKind(Enum):
    DIGIT = "digit"
    WORD = "word"
    WHITESPACE = "whitespace"
    ANY = "any"
    ALPHA = "alpha"
    ALPHA_UPPER = "alphaUpper"
    ALPHA_LOWER = "alphaLower"
    HEX = "hex"
    CUSTOM = "custom"


class RegexNode:
    """Base class for regex AST nodes."""


@dataclass(frozen=True)
class Literal(RegexNode):
    value: str


@dataclass(frozen=True)
class CharClass(RegexNode):
    """A character class; ``chars`` holds the members of a custom set.

    Custom members may use ranges (``a-z``); a literal hyphen goes last.
    """

    kind: CharClassKind
    chars: str = ""


@dataclass(frozen=True)
class Repeat(RegexNode):
    """``child`` repeated between ``min`` and ``max`` times; ``max=None`` is unbounded."""

    child: RegexNode
    min: int
    max: int | None


@dataclass(frozen=True)
class Sequence(RegexNode):
    children: tuple[RegexNode, ...]


@dataclass(frozen=True)
class Alt(RegexNode):
    children: tuple[RegexNode, ...]


@dataclass(frozen=True)
class Group(RegexNode):
    child: RegexNode
    capturing: bool = True


_SPECIAL_RE = re.compile(r"[.*+?^${}()|\[\]\\]")
_CLASS_SPECIAL_RE = re.compile(r"[\\\]\[^]")

_CLASS_TEXT = {
    CharClassKind.DIGIT: r"\d",
    CharClassKind.WORD: r"\w",
    CharClassKind.WHITESPACE: r"\s",
    CharClassKind.ANY: ".",
    CharClassKind.ALPHA: "[a-zA-Z]",
    CharClassKind.ALPHA_UPPER: "[A-Z]",
    CharClassKind.ALPHA_LOWER: "[a-z]",
    CharClassKind.HEX: "[0-9A-Fa-f]",
}


def escape_literal(text: str) -> str:
    return _SPECIAL_RE.sub(lambda m: "\\" + m.group(0), text)


def _quantifier(low: int, high: int | None) -> str:
    if high is None:
        if low == 0:
            return "*"
        if low == 1:
            return "+"
        return f"{{{low},}}"
    if low == 0 and high == 1:
        return "?"
    if low == high:
        return f"{{{low}}}"
    return f"{{{low},{high}}}"


def to_pattern(node: RegexNode) -> str:
    """Serialize an AST node to Python regex syntax."""
    if isinstance(node, Literal):
        return escape_literal(node.value)
    if isinstance(node, CharClass):
        if node.kind is CharClassKind.CUSTOM:
            members = _CLASS_SPECIAL_RE.sub(lambda m: "\\" + m.group(0), node.chars)
            return f"[{members}]"
        return _CLASS_TEXT[node.kind]
    if isinstance(node, Repeat):
        inner = to_pattern(node.child)
        if isinstance(node.child, (Sequence, Alt)):
            inner = f"(?:{inner})"
        return inner + _quantifier(node.min, node.max)
    if isinstance(node, Sequence):
        return "".join(to_pattern(child) for child in node.children)
    if isinstance(node, Alt):
        return "|".join(to_pattern(child) for child in node.children)
    if isinstance(node, Group):
        prefix = "(" if node.capturing else "(?:"
        return f"{prefix}{to_pattern(node.child)})"
    raise TypeError(f"Unknown regex node: {type(node).__name__}")


# =============================================================================
# Templates
# =============================================================================


def _some_digits() -> Repeat:
    return Repeat(CharClass(CharClassKind.DIGIT), 1, None)


def _exact_digits(n: int) -> Repeat:
    return Repeat(CharClass(CharClassKind.DIGIT), n, n)


@dataclass(frozen=True)
class Template:
    name: str
    shape: re.Pattern[str]
    build: Callable[[], RegexNode]

    def test(self, examples: SequenceType[str]) -> bool:
        return all(self.shape.fullmatch(e) for e in examples)


TEMPLATES: tuple[Template, ...] = (
    Template("integer", re.compile(r"\d+"), _some_digits),
    Template(
        "signed-integer",
        re.compile(r"-?\d+"),
        lambda: Sequence((Repeat(Literal("-"), 0, 1), _some_digits())),
    ),
    Template(
        "decimal",
        re.compile(r"\d+\.\d+"),
        lambda: Sequence((_some_digits(), Literal("."), _some_digits())),
    ),
    Template(
        "currency-dollar",
        re.compile(r"\$[\d,]+(\.\d{2})?"),
        lambda: Sequence(
            (
                Literal("$"),
                Repeat(CharClass(CharClassKind.CUSTOM, "0-9,"), 1, None),
                Repeat(Sequence((Literal("."), _exact_digits(2))), 0, 1),
            )
        ),
    ),
    Template(
        "date-iso",
        re.compile(r"\d{4}-\d{2}-\d{2}"),
        lambda: Sequence(
            (_exact_digits(4), Literal("-"), _exact_digits(2), Literal("-"), _exact_digits(2))
        ),
    ),
    Template(
        "date-us",
        re.compile(r"\d{2}/\d{2}/\d{4}"),
        lambda: Sequence(
            (_exact_digits(2), Literal("/"), _exact_digits(2), Literal("/"), _exact_digits(4))
        ),
    ),
    Template(
        "time",
        re.compile(r"\d{2}:\d{2}:\d{2}"),
        lambda: Sequence(
            (_exact_digits(2), Literal(":"), _exact_digits(2), Literal(":"), _exact_digits(2))
        ),
    ),
    Template(
        "email",
        re.compile(r"[\w.+-]+@[\w.-]+\.[a-z]{2,}", re.IGNORECASE),
        lambda: Sequence(
            (
                Repeat(CharClass(CharClassKind.CUSTOM, "a-zA-Z0-9._+-"), 1, None),
                Literal("@"),
                Repeat(CharClass(CharClassKind.CUSTOM, "a-zA-Z0-9.-"), 1, None),
                Literal("."),
                Repeat(CharClass(CharClassKind.ALPHA), 2, None),
            )
        ),
    ),
    Template(
        "ip-address",
        re.compile(r"\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}"),
        lambda: Sequence(
            (
                Repeat(CharClass(CharClassKind.DIGIT), 1, 3),
                Literal("."),
                Repeat(CharClass(CharClassKind.DIGIT), 1, 3),
                Literal("."),
                Repeat(CharClass(CharClassKind.DIGIT), 1, 3),
                Literal("."),
                Repeat(CharClass(CharClassKind.DIGIT), 1, 3),
            )
        ),
    ),
    Template(
        "hex-color",
        re.compile(r"#[0-9A-Fa-f]{6}"),
        lambda: Sequence((Literal("#"), Repeat(CharClass(CharClassKind.HEX), 6, 6))),
    ),
    Template(
        "version",
        re.compile(r"v\d+\.\d+\.\d+"),
        lambda: Sequence(
            (
                Literal("v"),
                _some_digits(),
                Literal("."),
                _some_digits(),
                Literal("."),
                _some_digits(),
            )
        ),
    ),
    Template(
        "phone-simple",
        re.compile(r"\d{3}-\d{4}"),
        lambda: Sequence((_exact_digits(3), Literal("-"), _exact_digits(4))),
    ),
    Template(
        "phrase",
        re.compile(r"[A-Za-z]+(?: [A-Za-z]+)+"),
        lambda: Sequence(
            (
                Repeat(CharClass(CharClassKind.ALPHA), 1, None),
                Repeat(
                    Sequence((Literal(" "), Repeat(CharClass(CharClassKind.ALPHA), 1, None))),
                    1,
                    None,
                ),
            )
        ),
    ),
)


def match_template(examples: SequenceType[str]) -> tuple[str, RegexNode] | None:
    """Return the first template every example fits, as (name, ast)."""
    if not examples:
        return None
    for template in TEMPLATES:
        if template.test(examples):
            return template.name, template.build()
    return None


# =============================================================================
# Positional analysis
# =============================================================================

_DIGIT = re.compile(r"\d")
_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_ALPHA = re.compile(r"[a-zA-Z]")
_WORD = re.compile(r"\w")

_COLUMN_CLASSES = (
    (_DIGIT, CharClassKind.DIGIT),
    (_UPPER, CharClassKind.ALPHA_UPPER),
    (_LOWER, CharClassKind.ALPHA_LOWER),
    (_ALPHA, CharClassKind.ALPHA),
    (_WORD, CharClassKind.WORD),
)


def _analyze_column(examples: SequenceType[str], pos: int) -> str | CharClassKind:
    """A fixed character, or the narrowest class shared by the column."""
    chars = [e[pos] for e in examples]
    if len(set(chars)) == 1:
        return chars[0]
    for pattern, kind in _COLUMN_CLASSES:
        if all(pattern.fullmatch(c) for c in chars):
            return kind
    return CharClassKind.ANY


_WHOLE_CLASSES = (
    (re.compile(r"\d+"), CharClassKind.DIGIT),
    (re.compile(r"[a-zA-Z]+"), CharClassKind.ALPHA),
    (re.compile(r"\w+"), CharClassKind.WORD),
)


def analyze_characters(examples: SequenceType[str]) -> RegexNode | None:
    """Build a pattern from the character classes the examples share.

    Equal-length examples are analyzed column by column, with runs of
    fixed characters merged into literals and runs of one class merged
    into a counted repeat. Otherwise the whole strings are classified
    into one bounded repeat.
    """
    if not examples:
        return None
    lengths = [len(e) for e in examples]
    shortest, longest = min(lengths), max(lengths)

    if shortest == longest:
        if shortest == 0:
            return None
        columns = [_analyze_column(examples, i) for i in range(shortest)]
        children: list[RegexNode] = []
        i = 0
        while i < len(columns):
            current = columns[i]
            j = i + 1
            if isinstance(current, str):
                while j < len(columns) and isinstance(columns[j], str):
                    j += 1
                children.append(Literal("".join(c for c in columns[i:j] if isinstance(c, str))))
            else:
                while j < len(columns) and columns[j] is current:
                    j += 1
                children.append(Repeat(CharClass(current), j - i, j - i))
            i = j
        if len(children) == 1:
            return children[0]
        return Sequence(tuple(children))

    for pattern, kind in _WHOLE_CLASSES:
        if all(pattern.fullmatch(e) for e in examples):
            return Repeat(CharClass(kind), shortest, longest)
    return Repeat(CharClass(CharClassKind.ANY), shortest, longest)


def literal_alternation(examples: SequenceType[str]) -> Alt:
    unique = list(dict.fromkeys(examples))
    return Alt(tuple(Literal(e) for e in unique))


# =============================================================================
# Synthesis
# =============================================================================


@dataclass
class RegexSynthesisResult:
    """Outcome of regex synthesis."""

    success: bool
    pattern: str | None = None
    ast: RegexNode | None = None
    error: str | None = None
    strategy: str | None = None
    rejected: list[str] = field(default_factory=list)


def full_match(pattern: str, text: str) -> bool:
    """Anchored match; alternations are grouped so anchors bind the whole pattern."""
    return re.fullmatch(f"(?:{pattern})", text) is not None


def _verify(
    pattern: str, positives: SequenceType[str], negatives: SequenceType[str]
) -> tuple[list[str], list[str]]:
    missed = [p for p in positives if not full_match(pattern, p)]
    collided = [n for n in negatives if full_match(pattern, n)]
    return missed, collided


def synthesize_regex(
    positives: SequenceType[str],
    negatives: SequenceType[str] = (),
    max_alternation: int = MAX_ALTERNATION,
) -> RegexSynthesisResult:
    """Synthesize a regex matching every positive and no negative.

    Args:
        positives: Strings the pattern must match in full
        negatives: Strings the pattern must not match
        max_alternation: Largest positive set that may fall back to a
            literal alternation

    Returns:
        RegexSynthesisResult with the pattern string and its AST on success
    """
    positives = list(positives)
    negatives = list(negatives)

    if not positives:
        return RegexSynthesisResult(success=False, error="No positive examples provided")

    negative_set = set(negatives)
    conflicts = [p for p in dict.fromkeys(positives) if p in negative_set]
    if conflicts:
        return RegexSynthesisResult(
            success=False, error=f"Conflicting examples: {', '.join(conflicts)}"
        )

    rejected: list[str] = []
    candidates: list[tuple[str, RegexNode]] = []
    template = match_template(positives)
    if template is not None:
        candidates.append((f"template:{template[0]}", template[1]))
    positional = analyze_characters(positives)
    if positional is not None:
        candidates.append(("positional", positional))
    can_alternate = len(set(positives)) <= max_alternation
    if can_alternate:
        candidates.append(("alternation", literal_alternation(positives)))

    for strategy, ast in candidates:
        pattern = to_pattern(ast)
        missed, collided = _verify(pattern, positives, negatives)
        if not missed and not collided:
            logger.debug("Regex synthesized via %s: %s", strategy, pattern)
            return RegexSynthesisResult(
                success=True, pattern=pattern, ast=ast, strategy=strategy, rejected=rejected
            )
        if missed:
            rejected.append(f"{pattern}: misses {', '.join(missed)}")
        else:
            rejected.append(f"{pattern}: matches negatives {', '.join(collided)}")
        logger.debug("Rejected %s candidate %s", strategy, pattern)

    if not can_alternate:
        error = f"Could not synthesize pattern for {len(positives)} examples"
    else:
        error = "Could not synthesize a pattern that excludes every negative"
    return RegexSynthesisResult(success=False, error=error, rejected=rejected)


__all__ = [
    "MAX_ALTERNATION",
    "TEMPLATES",
    "Alt",
    "CharClass",
    "CharClassKind",
    "Group",
    "Literal",
    "RegexNode",
    "RegexSynthesisResult",
    "Repeat",
    "Sequence",
    "Template",
    "analyze_characters",
    "escape_literal",
    "full_match",
    "literal_alternation",
    "match_template",
    "synthesize_regex",
    "to_pattern",
]
