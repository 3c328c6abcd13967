"""Document tools: the search primitives the solver runs queries against.

``DocumentTools`` wraps one loaded text and implements the solver's
tool protocol: regex grep over the whole text, fuzzy line search and
corpus statistics. Symbol queries are not provided here; a code-aware
caller can supply its own object implementing ``SymbolTools``.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SAMPLE_LINES = 5


def fuzzy_score(line: str, query: str) -> int:
    """Score how well ``query`` matches ``line``, 0 for no match.

    A case-insensitive substring scores ``100 + len(query)``. Otherwise
    the query must occur as a subsequence of the line: each matched
    character is worth 10 and each one adjacent to the previous match
    another 5.
    """
    line_lower = line.lower()
    query_lower = query.lower()
    if not query_lower:
        return 0
    if query_lower in line_lower:
        return 100 + len(query_lower)

    score = 0
    matched = 0
    previous = -2
    for i, char in enumerate(line_lower):
        if matched == len(query_lower):
            break
        if char == query_lower[matched]:
            score += 10
            if previous == i - 1:
                score += 5
            previous = i
            matched += 1
    return score if matched == len(query_lower) else 0


class DocumentTools:
    """Search primitives over one document.

    Args:
        context: Full document text
    """

    def __init__(self, context: str):
        self._context = context
        self._lines = context.split("\n")
        # Offsets of each line start, for mapping match positions to lines.
        self._line_starts = [0]
        for line in self._lines[:-1]:
            self._line_starts.append(self._line_starts[-1] + len(line) + 1)

    @classmethod
    def from_file(cls, path: str | Path, encoding: str = "utf-8") -> DocumentTools:
        text = Path(path).read_text(encoding=encoding)
        logger.info("Loaded %s: %d chars", path, len(text))
        return cls(text)

    @property
    def context(self) -> str:
        return self._context

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    def _line_index(self, offset: int) -> int:
        low, high = 0, len(self._line_starts) - 1
        while low < high:
            mid = (low + high + 1) // 2
            if self._line_starts[mid] <= offset:
                low = mid
            else:
                high = mid - 1
        return low

    def grep(self, pattern: str) -> list[dict[str, Any]]:
        """Find every match of a case-insensitive, multiline regex.

        Returns:
            One dict per match: match, line, lineNum (1-indexed), index
            (offset into the text) and groups

        Raises:
            re.error: If the pattern is not a valid regex
        """
        regex = re.compile(pattern, re.IGNORECASE | re.MULTILINE)
        results = []
        for match in regex.finditer(self._context):
            index = self._line_index(match.start())
            results.append(
                {
                    "match": match.group(0),
                    "line": self._lines[index],
                    "lineNum": index + 1,
                    "index": match.start(),
                    "groups": list(match.groups()),
                }
            )
        logger.debug("grep %r: %d matches", pattern, len(results))
        return results

    def fuzzy_search(self, query: str, limit: int = 10) -> list[dict[str, Any]]:
        """Best-scoring lines for a query, highest score first."""
        results = []
        for i, line in enumerate(self._lines):
            score = fuzzy_score(line, query)
            if score > 0:
                results.append({"line": line, "lineNum": i + 1, "score": score})
        results.sort(key=lambda r: -r["score"])
        return results[: max(limit, 0)]

    def corpus_stats(self) -> dict[str, Any]:
        middle = len(self._lines) // 2
        return {
            "length": len(self._context),
            "lineCount": len(self._lines),
            "sample": {
                "start": "\n".join(self._lines[:SAMPLE_LINES]),
                "middle": "\n".join(self._lines[max(0, middle - 2) : middle + 3]),
                "end": "\n".join(self._lines[-SAMPLE_LINES:]),
            },
        }


__all__ = ["DocumentTools", "SAMPLE_LINES", "fuzzy_score"]
