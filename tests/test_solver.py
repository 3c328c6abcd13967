"""Tests for the solver."""

import pytest

from lattice.config import SolverConfig
from lattice.documents import DocumentTools
from lattice.errors import ResolutionError
from lattice.logic.parser import parse
from lattice.logic.resolver import resolve
from lattice.logic.solver import SynthesizedFunction, item_text, jsonable, solve, type_name
from lattice.synthesis.coordinator import SynthesisCoordinator

LOG = (
    "2024-01-01 ERROR disk full\n"
    "2024-01-01 INFO started\n"
    "2024-01-02 ERROR timeout\n"
    "SALES $1,000\n"
    "SALES $2,500.50"
)


class SymbolDocument(DocumentTools):
    """Document that also answers symbol queries."""

    SYMBOLS = [
        {"name": "main", "kind": "function", "line": 1},
        {"name": "Config", "kind": "class", "line": 5},
    ]

    def list_symbols(self, kind=None):
        return [s for s in self.SYMBOLS if kind is None or s["kind"] == kind]

    def get_symbol_body(self, symbol):
        return "def main(): pass" if symbol == "main" else None

    def find_references(self, name):
        return [{"line": 9, "text": f"{name}()"}]


def run(query, text=LOG, bindings=None, tools=None, **kwargs):
    term = resolve(parse(query)).term
    return solve(term, tools or DocumentTools(text), bindings, **kwargs)


def value_of(query, **kwargs):
    result = run(query, **kwargs)
    assert result.success, result.error
    return result.value


class TestSearch:
    """Tests for document queries."""

    def test_grep(self):
        result = run('(grep "ERROR")')
        assert result.success
        assert [hit["lineNum"] for hit in result.value] == [1, 3]
        assert "[Solver] Found 2 matches" in result.logs

    def test_count(self):
        assert value_of('(count (grep "ERROR"))') == 2

    def test_lone_special_char_is_escaped(self):
        result = run('(grep "$")')
        assert len(result.value) == 2
        assert any("Auto-escaped" in line for line in result.logs)

    def test_invalid_pattern(self):
        result = run('(grep "a(")')
        assert not result.success
        assert result.error.startswith("grep: invalid pattern")
        assert result.logs[-1].startswith("[Solver] Error: ")

    def test_fuzzy_search(self):
        hits = value_of('(fuzzy_search "timeout" 1)')
        assert len(hits) == 1
        assert hits[0]["lineNum"] == 3

    def test_fuzzy_search_default_limit(self):
        text = "\n".join(f"error {i}" for i in range(10))
        assert len(value_of('(fuzzy_search "error")', text=text, config=SolverConfig(fuzzy_limit=4))) == 4

    def test_text_stats(self):
        stats = value_of("(text_stats)")
        assert stats["lineCount"] == 5
        assert stats["length"] == len(LOG)

    def test_lines(self):
        assert value_of("(lines 2 3)") == ["2024-01-01 INFO started", "2024-01-02 ERROR timeout"]
        assert len(value_of("(lines 0 100)")) == 5


class TestCollections:
    """Tests for filter, map, reduce and sum."""

    def test_filter_sees_line_text(self):
        kept = value_of('(filter (grep "2024") (lambda l (match l "error" 0)))')
        assert [hit["lineNum"] for hit in kept] == [1, 3]

    def test_map(self):
        assert value_of(r'(map (grep "ERROR") (lambda l (match l "ERROR (\w+)" 1)))') == ["disk", "timeout"]

    def test_reduce(self):
        assert value_of("(reduce (lines 1 3) 0 (lambda acc (lambda x (add acc 1))))") == 3

    def test_reduce_with_curried_lambda(self):
        assert value_of("(reduce (lines 1 4) 0 (lambda (acc x) (add acc 2)))") == 8

    def test_sum_of_matches(self):
        result = run('(sum (grep "SALES"))')
        assert result.value == pytest.approx(3500.5)
        assert "[Solver] Sum of 2 values = 3500.5" in result.logs

    def test_sum_of_parsed_matches(self):
        text = "SALES $1,000\nINFO nothing\nSALES $2,000"
        query = '(sum (map (grep "SALES") (lambda x (parseFloat (match x "[0-9,]+" 0)))))'
        assert value_of(query, text=text) == 3000

    def test_sum_of_mixed_values(self):
        total = value_of("(sum xs)", bindings={"xs": ["$5", "7", 2]})
        assert total == 14
        assert isinstance(total, int)

    def test_count_requires_array(self):
        result = run('(count "abc")')
        assert result.error == "count: expected array, got string"


class TestScalars:
    """Tests for arithmetic, string and coercion operators."""

    def test_add(self):
        assert value_of("(add 1 2)") == 3
        assert value_of("(add 1.5 1.5)") == 3

    def test_add_type_error(self):
        result = run('(add 1 "a")')
        assert not result.success
        assert result.error == "add: expected numbers, got number and string"

    def test_match(self):
        assert value_of('(match "ABC" "b" 0)') == "B"
        assert value_of('(match "abc" "z" 0)') is None
        assert value_of('(match "abc" "(b)" 2)') is None

    def test_negative_group_is_no_match(self):
        result = run('(match "abc" "b" -1)')
        assert result.success
        assert result.value is None

    def test_replace_and_split(self):
        assert value_of('(replace "a-b-c" "-" "+")') == "a+b+c"
        assert value_of('(split "a, b" "," 1)') == " b"
        assert value_of('(split "a, b" "," 5)') is None

    def test_parse_int_and_float(self):
        assert value_of('(parseInt "1,234 items")') == 1234
        assert value_of('(parseFloat "3.5kg")') == 3.5
        assert value_of('(parseInt "abc")') is None

    def test_closed_form_parsers(self):
        assert value_of('(parseDate "15/01/2024" "EU")') == "2024-01-15"
        assert value_of('(parseCurrency "$1,234.56")') == pytest.approx(1234.56)
        assert value_of('(parseNumber "50%")') == pytest.approx(0.5)
        assert value_of('(coerce "yes" "boolean")') is True

    def test_currency_from_examples(self):
        result = run('(parseCurrency "€2.000,50" :examples [("€1.234,56" 1234.56) ("€99,00" 99)])')
        assert result.value == pytest.approx(2000.5)
        assert "[Synthesis] Learning parseCurrency from 2 examples" in result.logs

    def test_unlearnable_examples_fall_back_to_closed_form(self):
        result = run('(parseCurrency "$5" :examples [("abc" 7) ("xyz" 9)])')
        assert result.success
        assert result.value == 5
        assert any("using built-in parseCurrency" in line for line in result.logs)

        assert value_of('(parseNumber "50%" :examples [("a" 1) ("a" 2)])') == pytest.approx(0.5)
        query = '(parseDate "15/01/2024" "EU" :examples [("a" "2024-01-01") ("a" "2024-01-02")])'
        assert value_of(query) == "2024-01-15"

    def test_if(self):
        assert value_of('(if (match "abc" "z" 0) "yes" "no")') == "no"
        assert value_of('(if (match "abc" "b" 0) "yes" "no")') == "yes"


class TestExtract:
    """Tests for extract."""

    def test_typed(self):
        assert value_of(r'(extract "Total: $1,234" "\$([\d,]+)" 1 "currency")') == 1234

    def test_untyped(self):
        assert value_of(r'(extract "id=42" "id=(\d+)" 1)') == "42"

    def test_constraints(self):
        assert value_of(r'(extract "Qty: 500" "(\d+)" 1 "number" :constraints {:max 100})') is None
        assert value_of(r'(extract "Qty: 500" "(\d+)" 1 "number" :constraints {:min 10})') == 500

    def test_negative_group(self):
        assert value_of('(extract "abc" "b" -1)') is None

    def test_no_match(self):
        assert value_of(r'(extract "nothing" "(\d+)" 1)') is None

    def test_falls_back_to_examples(self):
        query = (
            r'(extract "Total 1,234 USD" "\$(\d+)" 1 '
            r':examples [("Total 5 USD" 5) ("Total 1,000 USD" 1000)])'
        )
        result = run(query)
        assert result.value == 1234
        assert "[Solver] Regex extraction failed, trying synthesis" in result.logs


class TestSynthesis:
    """Tests for classify, synthesize, define-fn and predicate."""

    def test_classify_in_filter(self):
        query = (
            '(filter (grep "2024") '
            '(classify "2024-01-01 ERROR disk full" true "2024-01-01 INFO started" false))'
        )
        assert [hit["lineNum"] for hit in value_of(query)] == [1, 3]

    def test_synthesized_function_is_applicable(self):
        converter = value_of('(synthesize ("$1,234" 1234) ("$500" 500))')
        assert callable(converter)
        assert value_of('(f "$9,999")', bindings={"f": converter}) == 9999

    def test_define_and_apply(self):
        fn = value_of('(define-fn "price" :examples [("$1,234" 1234) ("$500" 500)])')
        assert isinstance(fn, SynthesizedFunction)
        assert str(fn).startswith("<fn price:")
        assert value_of('(apply-fn "price" "$9,999")', bindings={"_fn_price": fn}) == 9999

    def test_apply_undefined(self):
        result = run('(apply-fn "price" "$1")')
        assert result.error == 'apply-fn: function "price" is not defined'

    def test_predicate(self):
        assert value_of('(predicate "hello")') is True
        assert value_of('(predicate "")') is False
        query = '(predicate "ERROR: cpu" :examples [("ERROR: disk" true) ("INFO: ok" false)])'
        assert value_of(query) is True

    def test_synthesis_failure_is_an_error_result(self):
        result = run('(synthesize ("abc" 1) ("def" 2))')
        assert not result.success
        assert "could not synthesize" in result.error

    def test_shared_coordinator_caches(self):
        coordinator = SynthesisCoordinator()
        query = '(parseCurrency "$7" :examples [("$1,234.56" 1234.56) ("$5" 5)])'
        run(query, coordinator=coordinator)
        run(query, coordinator=coordinator)
        assert coordinator.cache.stats["hits"] == 1


class TestSymbols:
    """Tests for symbol queries."""

    def test_unavailable(self):
        result = run("(list_symbols)")
        assert result.error == "list_symbols: symbol queries are not available for this document"

    def test_queries(self):
        tools = SymbolDocument("def main(): pass")
        assert len(value_of("(list_symbols)", tools=tools)) == 2
        assert value_of('(list_symbols "class")', tools=tools)[0]["name"] == "Config"
        assert value_of('(get_symbol_body "main")', tools=tools) == "def main(): pass"
        assert value_of('(find_references "main")', tools=tools)[0]["line"] == 9


class TestEnvironment:
    """Tests for variables, bindings and application."""

    def test_context_and_bindings(self):
        assert value_of("context") == LOG
        assert value_of("(count RESULTS)", bindings={"RESULTS": [1, 2, 3]}) == 3

    def test_unbound(self):
        assert run("nope").error == "Unbound variable: nope"

    def test_apply_lambda(self):
        assert value_of("((lambda y (add y 1)) 2)") == 3

    def test_apply_non_function(self):
        result = run("(n 1)", bindings={"n": 5})
        assert result.error == "Cannot apply a value of type number"

    def test_bindings_not_modified(self):
        bindings = {"x": 1}
        assert value_of("((lambda x (add x 1)) 5)", bindings=bindings) == 6
        assert bindings == {"x": 1}

    def test_constrained_term_rejected(self):
        with pytest.raises(ResolutionError):
            solve(parse('[∞/0] ⊗ (grep "x")'), DocumentTools(LOG))


class TestHelpers:
    def test_type_name(self):
        assert type_name(None) == "null"
        assert type_name(True) == "boolean"
        assert type_name(2.5) == "number"
        assert type_name([]) == "array"
        assert type_name({}) == "object"
        assert type_name(len) == "function"

    def test_item_text(self):
        assert item_text({"line": "abc", "lineNum": 1}) == "abc"
        assert item_text(3.0) == "3"

    def test_jsonable(self):
        assert jsonable({"a": (1, None)}) == {"a": [1, None]}
        assert isinstance(jsonable(object()), str)

    def test_to_dict(self):
        data = run('(count (grep "ERROR"))').to_dict()
        assert data["success"] is True
        assert data["value"] == 2
