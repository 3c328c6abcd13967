"""Tests for document sessions."""

import pytest

from lattice.config import LatticeConfig, LatticeConfigLoader
from lattice.logic.solver import SynthesizedFunction
from lattice.session import COMMAND_REFERENCE, Session

LOG = "2024-01-01 ERROR disk full\n2024-01-01 INFO started\n2024-01-02 ERROR timeout"


@pytest.fixture
def session():
    return Session.from_content(LOG)


class TestExecute:
    """Tests for Session.execute."""

    def test_no_document(self):
        result = Session().execute('(grep "ERROR")')
        assert not result.success
        assert result.error == "No document loaded. Call load_file() or load_content() first."

    def test_parse_error(self, session):
        result = session.execute('(grep "ERROR"')
        assert not result.success
        assert result.error.startswith("Parse error: ")

    def test_results_carry_over(self, session):
        first = session.execute('(grep "ERROR")')
        assert first.success
        assert len(first.value) == 2
        assert first.type == "any[]"

        second = session.execute("(count RESULTS)")
        assert second.value == 2
        assert second.type == "number"
        assert session.get_bindings() == {"_1": "Array[2]", "RESULTS": "Array[2]", "_2": 2}

    def test_sum_of_sales(self):
        session = Session.from_content("SALES $1,000\nINFO nothing\nSALES $2,000")
        session.execute('(grep "SALES")')
        result = session.execute("(sum RESULTS)")
        assert result.value == 3000

    def test_define_then_apply(self, session):
        defined = session.execute('(define-fn "price" :examples [("$1,234" 1234) ("$500" 500)])')
        assert isinstance(defined.value, SynthesizedFunction)
        assert isinstance(session.get_binding("_fn_price"), SynthesizedFunction)

        applied = session.execute('(apply-fn "price" "$9,999")')
        assert applied.value == 9999

    def test_classify_then_filter(self, session):
        session.execute('(grep "2024")')
        result = session.execute(
            '(filter RESULTS (classify "2024-01-01 ERROR disk full" true '
            '"2024-01-01 INFO started" false))'
        )
        assert result.success
        assert [hit["lineNum"] for hit in result.value] == [1, 3]

    def test_marker_reported(self, session):
        result = session.execute('[Σ⚡μ] ⊗ (count (grep "ERROR"))')
        assert result.value == 2
        assert result.marker == "Σ⚡μ"

    def test_none_is_not_bound(self, session):
        result = session.execute('(match "abc" "z" 0)')
        assert result.success
        assert result.value is None
        assert session.get_bindings() == {}

    def test_failed_turn_is_not_bound(self, session):
        result = session.execute("(count nope)")
        assert not result.success
        assert session.get_binding("RESULTS") is None

    def test_execute_all(self, session):
        results = session.execute_all(['(grep "ERROR")', "(count RESULTS)"])
        assert [r.value for r in results][1] == 2


class TestTypeChecking:
    """Tests for inference before solving."""

    def test_warning_by_default(self, session):
        result = session.execute('(add 1 "a")')
        assert result.warnings
        assert result.warnings[0].startswith("Type check: add: expected number")
        assert result.error == "add: expected numbers, got number and string"

    def test_strict(self):
        config = LatticeConfigLoader().with_strict_types().build()
        session = Session.from_content(LOG, config=config)
        result = session.execute('(add 1 "a")')
        assert not result.success
        assert result.error.startswith("Type error: add: expected number")

    def test_disabled(self):
        session = Session.from_content(LOG, config=LatticeConfig.from_preset("minimal"))
        result = session.execute('(count (grep "ERROR"))')
        assert result.type is None
        assert result.value == 2


class TestSessionState:
    """Tests for loading, bindings and helpers."""

    def test_from_file(self, tmp_path):
        path = tmp_path / "server.log"
        path.write_text(LOG)
        session = Session.from_file(path)
        assert session.is_loaded()
        assert session.content == LOG
        assert session.stats() == {"length": len(LOG), "lineCount": 3}

    def test_unloaded(self):
        session = Session()
        assert not session.is_loaded()
        assert session.content == ""
        assert session.stats() is None

    def test_reset(self, session):
        session.execute('(grep "ERROR")')
        session.reset()
        assert session.get_bindings() == {}
        session.execute('(grep "INFO")')
        assert "_1" in session.get_bindings()

    def test_load_discards_bindings(self, session):
        session.execute('(grep "ERROR")')
        session.load_content("other")
        assert session.get_bindings() == {}

    def test_set_binding(self, session):
        session.set_binding("limit", 5)
        assert session.execute("(add limit 1)").value == 6

    def test_compile(self, session):
        source = session.compile('(count (grep "ERROR"))')
        assert "def run(tools, bindings=None):" in source

    def test_command_reference(self):
        assert Session.command_reference() == COMMAND_REFERENCE
        assert COMMAND_REFERENCE.startswith("Query Command Reference")

    def test_to_dict(self, session):
        result = session.execute('(define-fn "price" :examples [("$1,234" 1234) ("$500" 500)])')
        data = result.to_dict()
        assert data["success"] is True
        assert data["value"].startswith("<fn price:")
