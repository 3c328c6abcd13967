"""Tests for regex synthesis."""

import pytest

from lattice.synthesis.regex import (
    Alt,
    CharClass,
    CharClassKind,
    Group,
    Literal,
    Repeat,
    Sequence,
    analyze_characters,
    escape_literal,
    full_match,
    literal_alternation,
    match_template,
    synthesize_regex,
    to_pattern,
)


class TestToPattern:
    """Tests for AST serialization."""

    def test_literal_escaping(self):
        assert to_pattern(Literal("$1.00")) == r"\$1\.00"
        assert escape_literal("a|b") == r"a\|b"

    def test_char_classes(self):
        assert to_pattern(CharClass(CharClassKind.DIGIT)) == r"\d"
        assert to_pattern(CharClass(CharClassKind.CUSTOM, "0-9,")) == "[0-9,]"
        assert to_pattern(CharClass(CharClassKind.CUSTOM, "a]")) == r"[a\]]"

    @pytest.mark.parametrize(
        "low,high,suffix",
        [(0, None, "*"), (1, None, "+"), (2, None, "{2,}"), (0, 1, "?"), (3, 3, "{3}"), (1, 3, "{1,3}")],
    )
    def test_quantifiers(self, low, high, suffix):
        node = Repeat(CharClass(CharClassKind.DIGIT), low, high)
        assert to_pattern(node) == r"\d" + suffix

    def test_repeat_of_sequence_is_grouped(self):
        node = Repeat(Sequence((Literal("."), CharClass(CharClassKind.DIGIT))), 0, 1)
        assert to_pattern(node) == r"(?:\.\d)?"

    def test_alternation_and_groups(self):
        assert to_pattern(Alt((Literal("a"), Literal("b")))) == "a|b"
        assert to_pattern(Group(Literal("a"))) == "(a)"
        assert to_pattern(Group(Literal("a"), capturing=False)) == "(?:a)"


class TestTemplates:
    """Tests for template matching."""

    @pytest.mark.parametrize(
        "examples,name",
        [
            (["123", "45"], "integer"),
            (["-3", "12"], "signed-integer"),
            (["1.5", "22.75"], "decimal"),
            (["$100", "$2,500"], "currency-dollar"),
            (["2024-01-15", "2023-12-01"], "date-iso"),
            (["01/15/2024"], "date-us"),
            (["12:30:00"], "time"),
            (["a@b.com", "x.y@example.org"], "email"),
            (["192.168.0.1"], "ip-address"),
            (["#FFaa00"], "hex-color"),
            (["v1.2.3"], "version"),
            (["555-1234"], "phone-simple"),
            (["hello world", "big red dog"], "phrase"),
        ],
    )
    def test_first_fitting_template(self, examples, name):
        found = match_template(examples)
        assert found is not None
        assert found[0] == name

    def test_no_template(self):
        assert match_template(["abc", "a1!"]) is None
        assert match_template([]) is None


class TestAnalyzeCharacters:
    """Tests for positional analysis."""

    def test_equal_length_columns(self):
        pattern = to_pattern(analyze_characters(["AB-12", "CD-34"]))
        assert pattern == r"[A-Z]{2}-\d{2}"
        assert full_match(pattern, "XY-99")

    def test_unequal_lengths(self):
        assert to_pattern(analyze_characters(["1", "12345"])) == r"\d{1,5}"
        assert to_pattern(analyze_characters(["ab", "abcd"])) == "[a-zA-Z]{2,4}"

    def test_empty(self):
        assert analyze_characters([]) is None
        assert analyze_characters([""]) is None

    def test_literal_alternation_dedupes(self):
        assert to_pattern(literal_alternation(["a", "b", "a"])) == "a|b"


class TestSynthesizeRegex:
    """Tests for synthesize_regex."""

    def test_currency(self):
        result = synthesize_regex(["$100", "$2,500"])
        assert result.success
        assert result.strategy == "template:currency-dollar"
        assert full_match(result.pattern, "$999")
        assert full_match(result.pattern, "$1,234,567")
        assert not full_match(result.pattern, "100")

    def test_dates(self):
        result = synthesize_regex(["2024-01-15", "2023-12-01"])
        assert result.success
        assert full_match(result.pattern, "1999-07-04")

    def test_negative_forces_fallback(self):
        result = synthesize_regex(["abc", "abd"], negatives=["abe"])
        assert result.success
        assert result.pattern == "abc|abd"
        assert result.strategy == "alternation"
        assert result.rejected

    def test_alternation_anchors_whole_pattern(self):
        assert full_match("abc|abd", "abd")
        assert not full_match("abc|abd", "abdx")

    def test_conflict(self):
        result = synthesize_regex(["a", "b"], negatives=["a"])
        assert not result.success
        assert "Conflicting" in result.error

    def test_no_positives(self):
        result = synthesize_regex([])
        assert not result.success
        assert result.error == "No positive examples provided"

    def test_alternation_limit(self):
        positives = ["abc", "abd"]
        result = synthesize_regex(positives, negatives=["abe"], max_alternation=1)
        assert not result.success
        assert "Could not synthesize" in result.error


class TestDeterminism:
    """Identical inputs give identical results."""

    @pytest.mark.parametrize(
        ("positives", "negatives"),
        [
            (["2024-01-15", "2023-12-01"], []),
            (["AB-12", "CD-34"], ["AB-1"]),
            (["red", "green", "blue"], ["pink"]),
        ],
    )
    def test_repeated_runs_agree(self, positives, negatives):
        first = synthesize_regex(positives, negatives)
        for _ in range(3):
            again = synthesize_regex(list(positives), list(negatives))
            assert again == first
            assert again.pattern == first.pattern
