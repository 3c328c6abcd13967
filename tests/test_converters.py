"""Tests for per-operation converters."""

import pytest

from lattice.errors import SynthesisFailure
from lattice.logic import coercion
from lattice.logic.terms import as_examples
from lattice.synthesis.converters import build_converter, common_pattern, escape_regex
from lattice.synthesis.coordinator import SynthesisCoordinator


@pytest.fixture
def coordinator():
    return SynthesisCoordinator()


def learn(operation, pairs, coordinator):
    return build_converter(operation, as_examples(pairs), coordinator)


def run_code(converter, s):
    return eval(converter.code, dict(vars(coercion)), {"s": s})


class TestCurrencyConverters:
    """Tests for parseCurrency converters."""

    def test_eu_amounts(self, coordinator):
        converter = learn("parseCurrency", [("€1.234,56", 1234.56), ("€99,00", 99.0)], coordinator)
        assert converter.strategy == "eu"
        assert converter("€2.000,50") == pytest.approx(2000.5)
        assert run_code(converter, "€2.000,50") == pytest.approx(2000.5)

    def test_us_amounts(self, coordinator):
        converter = learn("parseCurrency", [("$1,234.56", 1234.56), ("$5", 5)], coordinator)
        assert converter.strategy == "us"
        assert converter("$10,000") == 10000

    def test_swiss_grouping(self, coordinator):
        converter = learn("parseCurrency", [("CHF 1'234.50", 1234.5)], coordinator)
        assert converter.strategy == "apostrophe"
        assert converter("CHF 2'000.00") == 2000


class TestNumberConverters:
    """Tests for parseNumber converters."""

    def test_percent_kept_as_number(self, coordinator):
        assert learn("parseNumber", [("50%", 50)], coordinator).strategy == "percent"

    def test_percent_as_fraction(self, coordinator):
        converter = learn("parseNumber", [("50%", 0.5)], coordinator)
        assert converter.strategy == "percent-fraction"
        assert converter("75%") == pytest.approx(0.75)

    def test_thousands(self, coordinator):
        converter = learn("parseNumber", [("1,234", 1234), ("5", 5)], coordinator)
        assert converter.strategy == "thousands"
        assert converter("Total 12,500 units") == 12500


class TestDateConverters:
    """Tests for parseDate converters."""

    def test_day_first(self, coordinator):
        converter = learn(
            "parseDate", [("15/01/2024", "2024-01-15"), ("31/12/2023", "2023-12-31")], coordinator
        )
        assert converter.strategy == "eu"
        assert converter("02/03/2024") == "2024-03-02"

    def test_month_first(self, coordinator):
        converter = learn("parseDate", [("01/15/2024", "2024-01-15")], coordinator)
        assert converter.strategy == "us"
        assert converter("02/03/2024") == "2024-02-03"

    def test_month_names(self, coordinator):
        converter = learn("parseDate", [("15 Jan 2024", "2024-01-15")], coordinator)
        assert converter.strategy == "day-month-name"
        assert run_code(converter, "3 Feb 2025") == "2025-02-03"


class TestPredicateConverters:
    """Tests for predicate and classify converters."""

    def test_keyword_predicate(self, coordinator):
        converter = learn(
            "predicate", [("ERROR: disk full", True), ("INFO: ok", False)], coordinator
        )
        assert converter.strategy == "keyword"
        assert converter("ERROR: cpu") is True
        assert converter("WARN: cpu") is False

    def test_classify_uses_markers(self, coordinator):
        converter = learn(
            "classify",
            [("Login failed for bob", True), ("Login ok for amy", False)],
            coordinator,
        )
        assert converter.strategy == "marker"
        assert converter("LOGIN FAILED for eve") is True
        assert run_code(converter, "login ok") is False

    def test_classify_labels(self, coordinator):
        converter = learn(
            "classify",
            [("ERROR: disk", "high"), ("ERROR: cpu", "high"), ("WARN: mem", "medium")],
            coordinator,
        )
        assert converter.strategy == "rules"
        assert converter("ERROR: net") == "high"
        assert converter("WARN: mem usage") == "medium"
        assert converter("INFO") is None

    def test_predicate_needs_booleans(self, coordinator):
        with pytest.raises(SynthesisFailure, match="must map to true or false"):
            learn("predicate", [("a", "yes"), ("b", "no")], coordinator)

    def test_predicate_needs_both_outcomes(self, coordinator):
        with pytest.raises(SynthesisFailure, match="need both true and false"):
            learn("predicate", [("a", True), ("b", True)], coordinator)


class TestBuildConverter:
    """Tests for build_converter edge cases."""

    def test_falls_back_to_extractor(self, coordinator):
        converter = learn("extract", [("$1,234", 1234), ("$500", 500)], coordinator)
        assert converter.strategy == "extractor"
        assert converter.ast is not None
        assert converter("$9,999") == 9999

    def test_empty(self, coordinator):
        with pytest.raises(SynthesisFailure, match="no examples provided"):
            build_converter("extract", (), coordinator)

    def test_conflicting(self, coordinator):
        with pytest.raises(SynthesisFailure, match="conflicting examples"):
            learn("extract", [("a", 1), ("a", 2)], coordinator)


class TestCommonPattern:
    def test_prefix(self):
        assert common_pattern(["ERROR: a", "ERROR: b"]) == "ERROR: "

    def test_substring(self):
        assert common_pattern(["x failed", "it failed"]) == " failed"

    def test_none(self):
        assert common_pattern([]) is None
        assert common_pattern(["ab", "cd"]) is None

    def test_escape(self):
        assert escape_regex("[a].b") == r"\[a\]\.b"
