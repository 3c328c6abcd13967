"""Lattice: a query language for exploring documents too large to read.

An agent emits small S-expression programs instead of free-form code.
They are parsed, stripped of advisory annotations, checked, and executed
against a document; extraction logic can be synthesized from examples.

Example usage:
    from lattice import Session

    session = Session.from_content(text)
    result = session.execute('(count (grep "ERROR"))')
    if result.success:
        print(result.value)
"""

from .errors import (
    InferenceError,
    LatticeError,
    ParseError,
    ResolutionError,
    RuntimeTypeError,
    SynthesisFailure,
)
from .logic.parser import parse, print_term
from .logic.resolver import resolve
from .logic.solver import SolveResult, solve
from .session import ExecutionResult, Session
from .synthesis.coordinator import SynthesisCoordinator, SynthesisRequest, SynthesisResult
from .synthesis.extractor import synthesize_extractors
from .synthesis.knowledge_base import KnowledgeBase
from .synthesis.regex import synthesize_regex

__version__ = "0.1.0"

__all__ = [
    "ExecutionResult",
    "InferenceError",
    "KnowledgeBase",
    "LatticeError",
    "ParseError",
    "ResolutionError",
    "RuntimeTypeError",
    "Session",
    "SolveResult",
    "SynthesisCoordinator",
    "SynthesisFailure",
    "SynthesisRequest",
    "SynthesisResult",
    "parse",
    "print_term",
    "resolve",
    "solve",
    "synthesize_extractors",
    "synthesize_regex",
    "__version__",
]
