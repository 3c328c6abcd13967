"""Tests for CLI interface."""

import json
from pathlib import Path

import pytest

from lattice.cli import create_parser, main

LOG = "2024-01-01 ERROR disk full\n2024-01-01 INFO started\n2024-01-02 ERROR timeout\n"


@pytest.fixture
def log_file(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "server.log"
    path.write_text(LOG)
    return path


class TestCreateParser:
    """Tests for create_parser."""

    def test_creates_parser(self):
        parser = create_parser()
        assert parser.prog == "lattice"

    def test_has_subcommands(self):
        parser = create_parser()
        subparsers_action = next((a for a in parser._actions if hasattr(a, "_parser_class")), None)
        assert subparsers_action is not None
        for name in (
            "run",
            "parse",
            "infer",
            "compile",
            "synthesize-regex",
            "synthesize-extractor",
            "reference",
        ):
            assert name in subparsers_action.choices


class TestMain:
    """Tests for main entry point."""

    def test_no_command_shows_help(self, capsys):
        assert main([]) == 0
        assert "usage:" in capsys.readouterr().out.lower()

    def test_version(self):
        with pytest.raises(SystemExit) as exc:
            main(["--version"])
        assert exc.value.code == 0


class TestRun:
    """Tests for the run command."""

    def test_single_query(self, log_file, capsys):
        assert main(["run", str(log_file), '(count (grep "ERROR"))']) == 0
        assert capsys.readouterr().out == "2\n"

    def test_queries_share_a_session(self, log_file, capsys):
        assert main(["run", str(log_file), '(grep "ERROR")', "(count RESULTS)"]) == 0
        out = capsys.readouterr().out
        assert '> (grep "ERROR")' in out
        assert out.rstrip().endswith("2")

    def test_json(self, log_file, capsys):
        assert main(["run", str(log_file), '(count (grep "ERROR"))', "--json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data[0]["value"] == 2
        assert data[0]["type"] == "number"

    def test_logs(self, log_file, capsys):
        main(["run", str(log_file), '(grep "ERROR")', "--logs"])
        assert "[Solver] Found 2 matches" in capsys.readouterr().out

    def test_missing_file(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        assert main(["run", str(tmp_path / "nope.log"), '(grep "x")']) == 1
        assert "does not exist" in capsys.readouterr().out

    def test_failing_query(self, log_file, capsys):
        assert main(["run", str(log_file), '(add 1 "a")']) == 1
        out = capsys.readouterr().out
        assert "Warning: Type check:" in out
        assert "Error: add: expected numbers" in out

    def test_config_file(self, log_file, capsys):
        config = log_file.parent / "lattice.toml"
        config.write_text("[lattice.session]\nstrict_types = true\n")
        assert main(["--config", str(config), "run", str(log_file), '(add 1 "a")']) == 1
        assert "Error: Type error:" in capsys.readouterr().out

    def test_preset(self, log_file, capsys):
        assert main(["--preset", "minimal", "run", str(log_file), '(count (grep "INFO"))']) == 0
        assert capsys.readouterr().out == "1\n"


class TestParseAndInfer:
    """Tests for the parse and infer commands."""

    def test_parse(self, capsys):
        assert main(["parse", '(grep   "x")']) == 0
        assert capsys.readouterr().out == '(grep "x")\n'

    def test_parse_json(self, capsys):
        assert main(["parse", '[∞/0] ⊗ (grep "x")', "--json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["resolved"] == '(grep "x")'
        assert data["marker"] == "∞/0"
        assert data["tag"] == "grep"

    def test_parse_error(self, capsys):
        assert main(["parse", '(grep "x"']) == 1
        assert capsys.readouterr().out.startswith("Parse error:")

    def test_infer(self, capsys):
        assert main(["infer", '(count (grep "x"))']) == 0
        assert capsys.readouterr().out == "number\n"

    def test_infer_error(self, capsys):
        assert main(["infer", '(add 1 "a")']) == 1
        assert capsys.readouterr().out.startswith("Type error:")


class TestCompile:
    """Tests for the compile command."""

    def test_stdout(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        assert main(["compile", '(count (grep "ERROR"))']) == 0
        assert "def run(tools, bindings=None):" in capsys.readouterr().out

    def test_output_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        target = tmp_path / "query.py"
        assert main(["compile", '(count (grep "ERROR"))', "-o", str(target)]) == 0
        assert "def run(" in target.read_text()

    def test_error(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        assert main(["compile", '(synthesize ("abc" 1) ("def" 2))']) == 1
        assert capsys.readouterr().out.startswith("Error:")


class TestSynthesize:
    """Tests for the synthesis commands."""

    def test_regex(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        assert main(["synthesize-regex", "2024-01-15", "2023-12-01"]) == 0
        assert capsys.readouterr().out.strip()

    def test_regex_conflict(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        assert main(["synthesize-regex", "a", "-n", "a"]) == 1
        assert "Conflicting" in capsys.readouterr().out

    def test_extractor(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        argv = ["synthesize-extractor", "-e", "$1,234", "1234", "-e", "$500", "500", "-a", "$9,999"]
        assert main(argv) == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines[0] == "to_int(regex_replace(s, '[$,]', ''))"
        assert lines[-1] == "'$9,999' -> 9999"

    def test_extractor_json(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        argv = ["synthesize-extractor", "-e", "$1,234", "1234", "-e", "$500", "500", "-a", "$7", "--json"]
        assert main(argv) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["success"] is True
        assert data["applied"] == {"$7": 7}

    def test_extractor_non_finite_output(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        assert main(["synthesize-extractor", "-e", "x", "1e400"]) == 1
        assert capsys.readouterr().out.startswith("Error:")

    def test_extractor_failure(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        assert main(["synthesize-extractor", "-e", "abc", "1", "-e", "def", "2"]) == 1
        assert capsys.readouterr().out.startswith("Error:")


class TestReference:
    def test_reference(self, capsys):
        assert main(["reference"]) == 0
        assert capsys.readouterr().out.startswith("Query Command Reference")
