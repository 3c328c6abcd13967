"""Error taxonomy for the query pipeline.

ParseError is reported to the caller verbatim. InferenceError is a hint
the session may downgrade to a warning. RuntimeTypeError is caught by the
solver and surfaced as an error string. SynthesisFailure becomes an
unsuccessful synthesis result. ResolutionError marks a contract violation
such as executing a term that still carries constraint annotations.
"""

from __future__ import annotations


class LatticeError(Exception):
    """Base class for all query pipeline errors."""


class ParseError(LatticeError):
    """Malformed query text."""

    def __init__(self, message: str, position: int | None = None):
        super().__init__(message)
        self.position = position


class ResolutionError(LatticeError):
    """A term reached execution with constraint wrappers still attached."""


class InferenceError(LatticeError):
    """Static type inference predicts the term will fail."""


class RuntimeTypeError(LatticeError):
    """An operator received a value of the wrong shape."""


class SynthesisFailure(LatticeError):
    """No candidate satisfied the examples, or the examples conflict."""
