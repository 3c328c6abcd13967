"""Tests for document tools."""

import re

import pytest

from lattice.documents import DocumentTools, fuzzy_score

SAMPLE = "alpha\nbeta 42\ngamma 7"


@pytest.fixture
def tools():
    return DocumentTools(SAMPLE)


class TestFuzzyScore:
    """Tests for fuzzy_score."""

    def test_substring(self):
        assert fuzzy_score("Connection failed", "fail") == 104

    def test_case_insensitive(self):
        assert fuzzy_score("Connection FAILED", "failed") == 106

    def test_subsequence(self):
        assert fuzzy_score("connection failed", "cnf") == 30

    def test_adjacent_bonus(self):
        assert fuzzy_score("ab-c", "abc") == 35

    def test_no_match(self):
        assert fuzzy_score("connection", "xyz") == 0
        assert fuzzy_score("connection", "") == 0


class TestGrep:
    """Tests for DocumentTools.grep."""

    def test_match_fields(self, tools):
        results = tools.grep(r"(\d+)")
        assert len(results) == 2
        first = results[0]
        assert first["match"] == "42"
        assert first["line"] == "beta 42"
        assert first["lineNum"] == 2
        assert first["index"] == 11
        assert first["groups"] == ["42"]
        assert results[1]["lineNum"] == 3

    def test_case_insensitive(self, tools):
        assert len(tools.grep("BETA")) == 1

    def test_multiline_anchors(self, tools):
        results = tools.grep("^gamma")
        assert [r["lineNum"] for r in results] == [3]

    def test_no_matches(self, tools):
        assert tools.grep("delta") == []

    def test_invalid_pattern(self, tools):
        with pytest.raises(re.error):
            tools.grep("(")


class TestFuzzySearch:
    """Tests for DocumentTools.fuzzy_search."""

    def test_sorted_by_score(self):
        tools = DocumentTools("connection lost\nconnected ok\nnothing here")
        results = tools.fuzzy_search("connect")
        assert [r["lineNum"] for r in results] == [1, 2]
        assert results[0]["score"] == 107

    def test_limit(self):
        tools = DocumentTools("\n".join(f"error {i}" for i in range(20)))
        assert len(tools.fuzzy_search("error", 3)) == 3


class TestCorpusStats:
    """Tests for DocumentTools.corpus_stats."""

    def test_small_document(self, tools):
        stats = tools.corpus_stats()
        assert stats["length"] == len(SAMPLE)
        assert stats["lineCount"] == 3
        assert stats["sample"]["start"] == SAMPLE

    def test_samples(self):
        lines = [f"line {i}" for i in range(1, 13)]
        stats = DocumentTools("\n".join(lines)).corpus_stats()
        assert stats["sample"]["start"] == "\n".join(lines[:5])
        assert stats["sample"]["middle"] == "\n".join(lines[4:9])
        assert stats["sample"]["end"] == "\n".join(lines[-5:])


class TestLoading:
    def test_from_file(self, tmp_path):
        path = tmp_path / "server.log"
        path.write_text("ERROR one\nINFO two\n")
        tools = DocumentTools.from_file(path)
        assert tools.context == "ERROR one\nINFO two\n"
        assert tools.lines == ["ERROR one", "INFO two", ""]
