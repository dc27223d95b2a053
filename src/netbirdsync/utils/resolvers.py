"""
Resolution of remote entities from partial criteria.

``resolve_one`` requires exactly one selected candidate and reports the other
outcomes as distinct errors; ``resolve_all`` is membership-style filtering
where zero or many results are both valid answers.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, TypeVar

from .matcher import FilterCriteria, evaluate

E = TypeVar("E", bound=Mapping[str, Any])


class ResolutionError(Exception):
    """Base class for lookup failures."""

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class InvalidInputError(ResolutionError):
    """Raised when no criterion was supplied, or a selector is not usable."""

    def __init__(self, kind: str, attributes: Iterable[str] = (), message: str = "") -> None:
        names = ", ".join(attributes)
        hint = f"; must add at least one of ({names})" if names else ""
        super().__init__(kind, message or f"No selector for {kind}{hint}")


class NotFoundError(ResolutionError):
    """Raised when no candidate satisfies the criteria."""

    def __init__(self, kind: str, criteria: Dict[str, Any]) -> None:
        super().__init__(kind, f"{kind} matching {criteria} not found")
        self.criteria = criteria


class AmbiguousMatchError(ResolutionError):
    """Raised when more than one candidate satisfies the criteria."""

    def __init__(self, kind: str, criteria: Dict[str, Any], count: int) -> None:
        super().__init__(kind, f"{kind} matching {criteria} is ambiguous ({count} matches)")
        self.criteria = criteria
        self.count = count


def resolve_all(candidates: Iterable[E], criteria: FilterCriteria) -> List[E]:
    """Return every candidate with a positive outcome, in input order."""
    return [c for c in candidates if evaluate(c, criteria).selected]


def resolve_one(candidates: Iterable[E], criteria: FilterCriteria, *, kind: str = "entity") -> E:
    """Return the single candidate matching ``criteria``.

    Raises:
        InvalidInputError: If no criterion is known.
        AmbiguousMatchError: If more than one candidate matches.
        NotFoundError: If no candidate matches.
    """
    if criteria.known_count == 0:
        raise InvalidInputError(kind, [c.attribute for c in criteria])

    matches = resolve_all(candidates, criteria)
    if len(matches) > 1:
        raise AmbiguousMatchError(kind, criteria.known, len(matches))
    if not matches:
        raise NotFoundError(kind, criteria.known)
    return matches[0]
