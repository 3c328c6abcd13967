"""Session: one loaded document plus the state carried across turns.

A session runs each command through parse, resolve, type check and
solve, then binds the result for later turns:

- ``_1``, ``_2``, ...: the value of each successful turn
- ``RESULTS``: the most recent array result
- ``_fn_<name>``: functions learned by ``define-fn``

The bindings map is only written here, once per turn, after the solver
has returned.

Usage:
    from lattice.session import Session

    session = Session.from_file("server.log")
    session.execute('(grep "ERROR")')
    result = session.execute("(count RESULTS)")
    print(result.value)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from lattice.config import LatticeConfig
from lattice.documents import DocumentTools
from lattice.errors import ParseError
from lattice.logic.compiler import compile_term
from lattice.logic.inference import infer_type, type_of_value, type_to_string
from lattice.logic.parser import parse
from lattice.logic.resolver import resolve
from lattice.logic.solver import SolverTools, SynthesizedFunction, jsonable, solve
from lattice.synthesis.coordinator import SynthesisCoordinator
from lattice.synthesis.knowledge_base import KnowledgeBase

logger = logging.getLogger(__name__)

COMMAND_REFERENCE = """\
Query Command Reference
=======================

SEARCH (reads the document):
  (grep "pattern")              Case-insensitive regex search, returns matches
  (fuzzy_search "query" limit)  Best-matching lines by relevance
  (text_stats)                  Document length, line count and samples
  (lines start end)             Lines in a range (1-indexed, inclusive)

SYMBOLS (code documents with a symbol index):
  (list_symbols)                All symbols
  (list_symbols "kind")         Symbols of one kind ("function", "class", ...)
  (get_symbol_body "name")      Source of a symbol
  (find_references "name")      References to an identifier

COLLECTIONS:
  (filter RESULTS pred)         Keep items where pred is truthy
  (map RESULTS fn)              Transform each item
  (count RESULTS)               Number of items
  (sum RESULTS)                 Sum numbers, or amounts found in lines
  (reduce RESULTS init fn)      Fold with a two-argument lambda

STRINGS AND NUMBERS:
  (match s "pattern" group)     Regex group from a string, or null
  (replace s "pattern" "to")    Replace every match
  (split s "delim" index)       One field of a split
  (parseInt s) (parseFloat s)   Leading number, thousands commas ignored
  (add a b)                     Sum of two numbers

COERCION (closed form, or learned with :examples [("in" out) ...]):
  (parseDate s ["US"|"EU"])     Date as YYYY-MM-DD
  (parseCurrency s)             Amount in US or EU notation
  (parseNumber s)               Number with separators or percent
  (coerce term "type")          date, currency, number, percent, boolean, string
  (extract s "pattern" group ["type"])
                                Regex extraction with optional coercion

SYNTHESIS:
  (classify "line1" true "line2" false)     Classifier from examples
  (predicate s :examples [...])             Learned boolean test
  (synthesize ("in1" out1) ("in2" out2))    Function from examples
  (define-fn "name" :examples [...])        Named function, reusable by name
  (apply-fn "name" s)                       Apply a named function

FUNCTIONS:
  (lambda x body)               Anonymous function (also λ, (lambda (x) body))

VARIABLES:
  RESULTS                       Last array result
  _1, _2, ...                   Result of turn N
  context                       Raw document text
"""

_NO_DOCUMENT = "No document loaded. Call load_file() or load_content() first."


@dataclass
class ExecutionResult:
    """Outcome of one session turn."""

    success: bool
    value: Any = None
    logs: list[str] = field(default_factory=list)
    error: str | None = None
    type: str | None = None
    warnings: list[str] = field(default_factory=list)
    marker: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "value": jsonable(self.value),
            "logs": list(self.logs),
            "error": self.error,
            "type": self.type,
            "warnings": list(self.warnings),
            "marker": self.marker,
        }


class Session:
    """Executes queries against one document, carrying bindings across turns.

    Args:
        tools: Document queries; None until a document is loaded
        config: Session, solver and synthesis settings
        knowledge_base: Shared store; a private one is created when omitted
    """

    def __init__(
        self,
        tools: SolverTools | None = None,
        config: LatticeConfig | None = None,
        knowledge_base: KnowledgeBase | None = None,
    ):
        self.config = config or LatticeConfig()
        self.tools = tools
        self.coordinator = SynthesisCoordinator(
            knowledge_base=knowledge_base, settings=self.config.synthesis
        )
        self._bindings: dict[str, Any] = {}
        self._turn = 0

    @classmethod
    def from_content(cls, content: str, **kwargs: Any) -> Session:
        session = cls(**kwargs)
        session.load_content(content)
        return session

    @classmethod
    def from_file(cls, path: str | Path, **kwargs: Any) -> Session:
        session = cls(**kwargs)
        session.load_file(path)
        return session

    # =========================================================================
    # Document
    # =========================================================================

    def load_content(self, content: str) -> None:
        """Load a document, discarding bindings from the previous one."""
        self.tools = DocumentTools(content)
        self.reset()
        logger.info("Loaded document: %d chars, %d lines", len(content), content.count("\n") + 1)

    def load_file(self, path: str | Path) -> None:
        self.load_content(Path(path).read_text(encoding="utf-8"))

    def is_loaded(self) -> bool:
        return self.tools is not None

    @property
    def content(self) -> str:
        return self.tools.context if self.tools is not None else ""

    def stats(self) -> dict[str, int] | None:
        if self.tools is None:
            return None
        stats = self.tools.corpus_stats()
        return {"length": stats["length"], "lineCount": stats["lineCount"]}

    # =========================================================================
    # Execution
    # =========================================================================

    def execute(self, command: str) -> ExecutionResult:
        """Run one command and bind its result.

        Parse errors and, under ``strict_types``, type errors are returned
        as unsuccessful results. Without strict types an inference failure
        is only a warning, since inference is a heuristic.
        """
        if self.tools is None:
            return ExecutionResult(success=False, error=_NO_DOCUMENT)

        try:
            term = parse(command)
        except ParseError as e:
            return ExecutionResult(success=False, error=f"Parse error: {e}")
        resolved = resolve(term)
        marker = resolved.marker.value if resolved.marker is not None else None

        type_name = None
        warnings: list[str] = []
        if self.config.session.check_types:
            env = {name: type_of_value(value) for name, value in self._bindings.items()}
            inferred = infer_type(resolved.term, env)
            if inferred.valid and inferred.type is not None:
                type_name = type_to_string(inferred.type)
            elif self.config.session.strict_types:
                return ExecutionResult(success=False, error=f"Type error: {inferred.error}", marker=marker)
            else:
                logger.warning("Type check failed, running anyway: %s", inferred.error)
                warnings.append(f"Type check: {inferred.error}")

        result = solve(
            resolved.term,
            self.tools,
            bindings=self._bindings,
            coordinator=self.coordinator,
            config=self.config.solver,
        )
        self._turn += 1
        if result.success and result.value is not None:
            self._bind(result.value)

        return ExecutionResult(
            success=result.success,
            value=result.value,
            logs=result.logs,
            error=result.error,
            type=type_name,
            warnings=warnings,
            marker=marker,
        )

    def _bind(self, value: Any) -> None:
        self._bindings[f"_{self._turn}"] = value
        if isinstance(value, SynthesizedFunction):
            self._bindings[f"_fn_{value.name}"] = value
            logger.debug("Registered function %r as _fn_%s", value.name, value.name)
        elif isinstance(value, list):
            self._bindings["RESULTS"] = value
            logger.debug("Bound %d items to RESULTS and _%d", len(value), self._turn)
        else:
            logger.debug("Bound scalar result to _%d", self._turn)

    def execute_all(self, commands: list[str]) -> list[ExecutionResult]:
        return [self.execute(command) for command in commands]

    def compile(self, command: str) -> str:
        """Compile a command to standalone Python source.

        Raises:
            ParseError: If the command does not parse
            SynthesisFailure: If an operation's examples cannot be synthesized
        """
        term = resolve(parse(command)).term
        return compile_term(term, coordinator=self.coordinator, config=self.config.solver)

    # =========================================================================
    # Bindings
    # =========================================================================

    def get_bindings(self) -> dict[str, Any]:
        """Current bindings, with arrays summarized as ``Array[n]``."""
        summary: dict[str, Any] = {}
        for name, value in self._bindings.items():
            if isinstance(value, list):
                summary[name] = f"Array[{len(value)}]"
            else:
                summary[name] = value
        return summary

    def get_binding(self, name: str) -> Any:
        return self._bindings.get(name)

    def set_binding(self, name: str, value: Any) -> None:
        self._bindings[name] = value

    def reset(self) -> None:
        """Clear bindings and the turn counter. The document stays loaded."""
        self._bindings.clear()
        self._turn = 0

    @staticmethod
    def command_reference() -> str:
        return COMMAND_REFERENCE


__all__ = ["COMMAND_REFERENCE", "ExecutionResult", "Session"]
