"""Tests for the synthesis coordinator."""

import pytest

from lattice.config import SynthesisSettings
from lattice.errors import SynthesisFailure
from lattice.synthesis.coordinator import (
    CollectedExample,
    RequestKind,
    SynthesisCoordinator,
    SynthesisRequest,
    structure_of,
)
from lattice.synthesis.extractor import evaluate
from lattice.synthesis.knowledge_base import EntryKind

CURRENCY_EXAMPLES = [("$1,234", 1234), ("$500", 500)]


@pytest.fixture
def coordinator():
    return SynthesisCoordinator()


class TestRegexRequests:
    """Tests for regex synthesis and reuse."""

    def test_new_regex_is_stored(self, coordinator):
        result = coordinator.synthesize_regex(["2024-01-15", "2023-12-01"])
        assert result.success
        assert not result.reused
        assert result.entry_id == "regex_1"
        assert coordinator.knowledge_base.get("regex_1").pattern == result.regex

    def test_similar_request_reuses_entry(self, coordinator):
        first = coordinator.synthesize_regex(["2024-01-15", "2023-12-01"])
        second = coordinator.synthesize_regex(["2022-06-30", "2021-02-02"])
        assert second.reused
        assert second.regex == first.regex
        assert second.entry_id == first.entry_id
        assert len(coordinator.knowledge_base) == 1
        assert coordinator.knowledge_base.get(first.entry_id).usage_count == 2

    def test_conflict(self, coordinator):
        result = coordinator.synthesize_regex(["a"], ["a"])
        assert not result.success
        assert result.error == "Conflicting positive and negative examples"

    def test_without_knowledge_base(self):
        settings = SynthesisSettings(knowledge_base=False, reuse_top_k=0, max_extractors=1)
        coordinator = SynthesisCoordinator(settings=settings)
        result = coordinator.synthesize_regex(["2024-01-15"])
        assert result.success
        assert result.entry_id is None
        assert len(coordinator.knowledge_base) == 0


class TestExtractorRequests:
    """Tests for extractor synthesis and reuse."""

    def test_new_extractor(self, coordinator):
        result = coordinator.synthesize_extractor(CURRENCY_EXAMPLES)
        assert result.success
        assert result.entry_id == "extractor_1"
        assert result.extractor_code == "to_int(regex_replace(s, '[$,]', ''))"
        assert evaluate(result.extractor, "$9,999") == 9999

    def test_reuse(self, coordinator):
        first = coordinator.synthesize_extractor(CURRENCY_EXAMPLES)
        second = coordinator.synthesize_extractor([("$7,000", 7000), ("$30", 30)])
        assert second.reused
        assert second.entry_id == first.entry_id

    def test_reuse_by_composition(self, coordinator):
        coordinator.synthesize_regex(["$100", "$2,500"])
        coordinator.converter("parseCurrency", [("$1,234.56", 1234.56), ("$5", 5)])

        result = coordinator.synthesize_extractor([("Total: $3,000", 3000), ("Paid $45", 45)])
        assert result.success
        assert result.reused
        entry = coordinator.knowledge_base.get(result.entry_id)
        assert entry.kind is EntryKind.EXTRACTOR
        assert entry.derived_from == ["regex_1", "transformer_2"]
        assert evaluate(result.extractor, "Due: $12") == 12

    def test_no_fit(self, coordinator):
        result = coordinator.synthesize_extractor([("abc", 1), ("def", 2)])
        assert not result.success
        assert result.error == "Could not synthesize extractor"


class TestSynthesizeRequest:
    """Tests for the request entry point."""

    def test_extractor_request(self, coordinator):
        request = SynthesisRequest(
            kind="extractor", positive_examples=["$1,234", "$500"], expected_outputs=[1234, 500]
        )
        result = coordinator.synthesize(request)
        assert result.success
        assert result.kind is RequestKind.EXTRACTOR
        assert result.synthesis_time_ms >= 0
        assert coordinator.synthesis_count == 1
        assert result.to_dict()["extractor"] == "(parseInt (replace input '[$,]' ''))"

    def test_missing_outputs(self, coordinator):
        result = coordinator.synthesize(SynthesisRequest(kind="extractor", positive_examples=["a"]))
        assert not result.success
        assert result.error == "Extractor synthesis requires expected outputs"

    def test_mismatched_outputs(self, coordinator):
        request = SynthesisRequest(kind="extractor", positive_examples=["a", "b"], expected_outputs=[1])
        result = coordinator.synthesize(request)
        assert result.error == "Mismatched positive examples and expected outputs lengths"

    def test_unsupported_output(self, coordinator):
        request = SynthesisRequest(kind="extractor", positive_examples=["a"], expected_outputs=[{"k": 1}])
        result = coordinator.synthesize(request)
        assert not result.success
        assert "unsupported literal type" in result.error

    def test_non_finite_output(self, coordinator):
        request = SynthesisRequest(
            kind="extractor", positive_examples=["x"], expected_outputs=[float("inf")]
        )
        result = coordinator.synthesize(request)
        assert not result.success
        assert "non-finite" in result.error

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            SynthesisRequest(kind="grammar", positive_examples=["a"])

    def test_batch(self, coordinator):
        results = coordinator.synthesize_batch(
            [
                SynthesisRequest(kind="regex", positive_examples=["123", "45"]),
                SynthesisRequest(kind="format", positive_examples=["2024-01-15"]),
            ]
        )
        assert [r.success for r in results] == [True, True]


class TestFormats:
    """Tests for format description."""

    @pytest.mark.parametrize(
        "examples,expected",
        [
            (["2024-01-15", "2023-12-01"], "YYYY-MM-DD (ISO date)"),
            (["$1,000", "$25.50"], "$(USD) with optional decimals"),
            (["12%", "7.5%"], "Percentage (N%)"),
            (["abc 123", "xyz 9"], "TEXT NUM"),
        ],
    )
    def test_detected(self, coordinator, examples, expected):
        result = coordinator.synthesize(SynthesisRequest(kind="format", positive_examples=examples))
        assert result.success
        assert result.format == expected

    def test_undetermined(self, coordinator):
        result = coordinator.synthesize_format(["abc", "123"])
        assert not result.success
        assert result.error == "Could not determine format"

    def test_empty(self, coordinator):
        assert not coordinator.synthesize_format([]).success

    def test_structure_of(self):
        assert structure_of("ID  42-x") == "TEXT NUM-TEXT"


class TestConverters:
    """Tests for cached converters."""

    def test_cached(self, coordinator):
        examples = [("$1,234.56", 1234.56), ("$5", 5)]
        first = coordinator.converter("parseCurrency", examples)
        second = coordinator.converter("parseCurrency", examples)
        assert second is first
        assert coordinator.cache.stats["hits"] == 1

    def test_registers_transformer(self, coordinator):
        coordinator.converter("parseCurrency", [("$1,234.56", 1234.56), ("$5", 5)])
        transformers = coordinator.knowledge_base.by_kind(EntryKind.TRANSFORMER)
        assert len(transformers) == 1
        assert transformers[0].name == "parseCurrency"

    def test_failure(self, coordinator):
        with pytest.raises(SynthesisFailure):
            coordinator.converter("extract", [("abc", 1), ("def", 2)])


class TestCompose:
    """Tests for compose()."""

    @pytest.fixture
    def parts(self, coordinator):
        regex = coordinator.synthesize_regex(["$100", "$2,500"])
        coordinator.converter("parseCurrency", [("$1,234.56", 1234.56), ("$5", 5)])
        transformer = coordinator.knowledge_base.by_kind(EntryKind.TRANSFORMER)[0]
        return regex.entry_id, transformer.id

    def test_compose(self, coordinator, parts):
        regex_id, transformer_id = parts
        entry = coordinator.compose(regex_id, transformer_id)
        assert entry.derived_from == [regex_id, transformer_id]
        assert entry.id in coordinator.knowledge_base.get(regex_id).composable_with
        assert evaluate(entry.ast, "Total: $3,000") == 3000

    def test_compose_is_idempotent(self, coordinator, parts):
        first = coordinator.compose(*parts)
        assert coordinator.compose(*parts).id == first.id

    def test_wrong_kind(self, coordinator, parts):
        regex_id, transformer_id = parts
        with pytest.raises(SynthesisFailure, match="Not a regex entry"):
            coordinator.compose(transformer_id, regex_id)
        with pytest.raises(SynthesisFailure, match="Not a transformer entry"):
            coordinator.compose(regex_id, regex_id)


class TestCollectedExamples:
    """Tests for example collection."""

    def test_regex_from_collected(self, coordinator):
        coordinator.collect_example("prices", CollectedExample("$100"))
        coordinator.collect_example("prices", CollectedExample("$2,500", source="grep"))
        assert coordinator.categories() == ["prices"]
        assert len(coordinator.examples_for("prices")) == 2

        result = coordinator.synthesize_from_collected("prices", "regex")
        assert result.success
        assert result.regex is not None

    def test_extractor_from_collected(self, coordinator):
        coordinator.collect_example("prices", CollectedExample("$1,234", output=1234))
        coordinator.collect_example("prices", CollectedExample("$500", output=500))
        coordinator.collect_example("prices", CollectedExample("$7"))
        result = coordinator.synthesize_from_collected("prices", RequestKind.EXTRACTOR)
        assert result.success

    def test_missing_category(self, coordinator):
        result = coordinator.synthesize_from_collected("nothing", "regex")
        assert result.error == "No examples collected for category"

    def test_extractor_needs_outputs(self, coordinator):
        coordinator.collect_example("raw", CollectedExample("x"))
        result = coordinator.synthesize_from_collected("raw", "extractor")
        assert result.error == "No expected outputs in collected examples"

    def test_clear(self, coordinator):
        coordinator.collect_example("a", CollectedExample("x"))
        coordinator.collect_example("b", CollectedExample("y"))
        coordinator.clear_examples("a")
        assert coordinator.categories() == ["b"]
        coordinator.clear_examples()
        assert coordinator.categories() == []
