"""Tests for the Python compiler."""

import pytest

from lattice.documents import DocumentTools
from lattice.errors import ResolutionError, SynthesisFailure
from lattice.logic.compiler import (
    compile_expression,
    compile_term,
    is_classify_term,
    is_search_term,
    validate_classify_examples,
)
from lattice.logic.parser import parse
from lattice.logic.resolver import resolve
from lattice.logic.solver import solve
from lattice.logic.terms import Grep

LOG = (
    "2024-01-01 ERROR disk full\n"
    "2024-01-01 INFO started\n"
    "2024-01-02 ERROR timeout\n"
    "SALES $1,000\n"
    "SALES $2,500.50"
)


def load(query):
    namespace = {}
    exec(compile_term(resolve(parse(query)).term), namespace)
    return namespace


def run_compiled(query, bindings=None, text=LOG):
    return load(query)["run"](DocumentTools(text), bindings)


class TestCompileTerm:
    """Tests for compile_term()."""

    def test_count(self):
        assert run_compiled('(count (grep "ERROR"))') == 2

    def test_header_and_entry_point(self):
        source = compile_term(parse('(count (grep "ERROR"))'))
        assert source.startswith('# Compiled query:\n#   (count (grep "ERROR"))\n')
        assert "def run(tools, bindings=None):" in source

    def test_standalone(self):
        source = compile_term(parse('(parseCurrency "$5" :examples [("$1,234.56" 1234.56) ("$5" 5)])'))
        assert "from lattice" not in source
        assert "import lattice" not in source

    @pytest.mark.parametrize(
        "query",
        [
            '(count (grep "ERROR"))',
            '(sum (grep "SALES"))',
            '(grep "$")',
            "(lines 2 3)",
            '(match "ABC" "b" 0)',
            '(match "abc" "b" -1)',
            '(extract "abc" "b" -1)',
            '(parseCurrency "$5" :examples [("abc" 7) ("xyz" 9)])',
            '(parseNumber "50%" :examples [("a" 1) ("a" 2)])',
            '(split "a, b" "," 1)',
            "(add 1.5 1.5)",
            r'(extract "Total: $1,234" "\$([\d,]+)" 1 "currency")',
            r'(extract "Qty: 500" "(\d+)" 1 "number" :constraints {:max 100})',
            '(if (match "abc" "z" 0) "yes" "no")',
            '(parseInt "1,234 items")',
            '(coerce "25%" "percent")',
            '(parseDate "15/01/2024" "EU")',
            '(replace "a-b" "-" "+")',
            '(count (filter (grep "2024") (lambda l (match l "error" 0))))',
            r'(map (grep "ERROR") (lambda l (match l "ERROR (\w+)" 1)))',
            "(reduce (lines 1 3) 0 (lambda (acc x) (add acc 1)))",
            '(fuzzy_search "timeout" 1)',
            "(text_stats)",
        ],
    )
    def test_matches_solver(self, query):
        term = resolve(parse(query)).term
        expected = solve(term, DocumentTools(LOG))
        assert expected.success
        assert run_compiled(query) == expected.value

    def test_bindings(self):
        assert run_compiled("(count RESULTS)", {"RESULTS": [1, 2]}) == 2
        assert run_compiled('(apply-fn "size" "abcd")', {"_fn_size": len}) == 4

    def test_unbound_variable(self):
        namespace = load("(count RESULTS)")
        with pytest.raises(namespace["QueryError"], match="Unbound variable: RESULTS"):
            namespace["run"](DocumentTools(LOG))

    def test_examples_inlined(self):
        query = '(parseCurrency "€2.000,50" :examples [("€1.234,56" 1234.56) ("€99,00" 99)])'
        assert run_compiled(query) == pytest.approx(2000.5)

    def test_classifier(self):
        classifier = run_compiled('(classify "ERROR a" true "INFO b" false)')
        assert classifier("ERROR z") is True
        assert classifier("INFO z") is False

    def test_constrained_rejected(self):
        with pytest.raises(ResolutionError):
            compile_term(parse('[∞/0] ⊗ (grep "x")'))

    def test_unsynthesizable(self):
        with pytest.raises(SynthesisFailure):
            compile_term(parse('(synthesize ("abc" 1) ("def" 2))'))


class TestCompileExpression:
    def test_grep(self):
        assert compile_expression(Grep("x")) == "_grep(tools, 'x')"

    def test_lambda_names(self):
        expression = compile_expression(parse("(lambda (a b) (add a b))"))
        assert expression == "(lambda _v0: (lambda _v1: _add(_v0, _v1)))"

    def test_variables(self):
        assert compile_expression(parse("context")) == "context"
        assert compile_expression(parse("RESULTS")) == "_lookup(env, 'RESULTS')"


class TestTermInspection:
    """Tests for term inspection helpers."""

    def test_is_search_term(self):
        assert is_search_term(parse('[∞/0] ⊗ (grep "x")'))
        assert is_search_term(parse('(fuzzy_search "x")'))
        assert not is_search_term(parse('(count (grep "x"))'))

    def test_is_classify_term(self):
        assert is_classify_term(parse('(classify "a" true "b" false)'))
        assert not is_classify_term(parse('(grep "x")'))

    def test_validate_classify_examples(self):
        term = parse('(classify "ERROR a" true "INFO b" false)')
        assert validate_classify_examples(term, ["2024 ERROR a happened", "INFO b"]) is None

        message = validate_classify_examples(term, ["nothing"])
        assert message.startswith('Example "ERROR a" was not found in earlier output.')

        assert validate_classify_examples(parse('(grep "x")'), []) is None
