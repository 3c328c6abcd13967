"""Constraint resolver.

Strips advisory constraint annotations so later stages only ever see plain
terms. Markers never change what a term computes; the outermost one is
recorded so the caller can show it back to the agent.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass

from lattice.errors import ResolutionError
from lattice.logic.terms import Constrained, ConstraintMarker, Term, walk


@dataclass(frozen=True)
class ResolvedTerm:
    """A term with every constraint wrapper removed."""

    term: Term
    marker: ConstraintMarker | None = None


def _strip(term: Term) -> Term:
    while isinstance(term, Constrained):
        term = term.term
    changes = {}
    for field in dataclasses.fields(term):
        value = getattr(term, field.name)
        if isinstance(value, Term):
            stripped = _strip(value)
            if stripped is not value:
                changes[field.name] = stripped
    if not changes:
        return term
    return dataclasses.replace(term, **changes)


def resolve(term: Term) -> ResolvedTerm:
    """Remove constraint annotations at any depth.

    Args:
        term: Parsed term, possibly annotated

    Returns:
        ResolvedTerm with the plain term and the outermost marker, if any
    """
    marker = term.marker if isinstance(term, Constrained) else None
    return ResolvedTerm(term=_strip(term), marker=marker)


def is_resolved(term: Term) -> bool:
    return not any(isinstance(node, Constrained) for node in walk(term))


def ensure_resolved(term: Term) -> Term:
    """Contract check used by the solver and compiler.

    Raises:
        ResolutionError: If a constrained node is still present
    """
    if not is_resolved(term):
        raise ResolutionError("Term still carries constraint annotations; call resolve() first")
    return term


__all__ = ["ResolvedTerm", "ensure_resolved", "is_resolved", "resolve"]
