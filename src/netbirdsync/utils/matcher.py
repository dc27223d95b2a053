"""
Criteria matching for lookups.

Each criterion contributes to a candidate's score:

* unset criterion                          ->  0
* ``equals``, candidate value equal        -> +1
* ``contains_all``, candidate set superset -> +1
* any mismatch                             -> ``MISMATCH_PENALTY``

Selection uses the explicit :class:`MatchOutcome` (no mismatch and at least one
match). :func:`score` keeps the summed integer form, where a single mismatch
always drives the total below zero.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple

from .tristate import UNSET_VALUE, TriState

MISMATCH_PENALTY = -1000

Candidate = Mapping[str, Any]
Extractor = Callable[[Any], Any]


class CriterionKind(str, Enum):
    EQUALS = "equals"
    CONTAINS_ALL = "contains_all"


@dataclass(frozen=True)
class Criterion:
    """One optional filter condition on a candidate attribute.

    ``extract`` projects the raw candidate attribute before comparison, e.g.
    a list of group objects to their ids.
    """
    attribute: str
    value: TriState[Any] = UNSET_VALUE
    kind: CriterionKind = CriterionKind.EQUALS
    extract: Optional[Extractor] = None

    def candidate_value(self, candidate: Candidate) -> Any:
        raw = candidate[self.attribute]
        return self.extract(raw) if self.extract else raw


@dataclass(frozen=True)
class FilterCriteria:
    """Ordered set of criteria, some of which may be unset."""
    criteria: Tuple[Criterion, ...] = ()

    def __iter__(self) -> Iterator[Criterion]:
        return iter(self.criteria)

    def __len__(self) -> int:
        return len(self.criteria)

    @property
    def known_count(self) -> int:
        return sum(1 for c in self.criteria if c.value.is_known)

    @property
    def known(self) -> Dict[str, Any]:
        return {c.attribute: c.value.value for c in self.criteria if c.value.is_known}

    @classmethod
    def build(
        cls,
        kinds: Mapping[str, CriterionKind],
        selector: Mapping[str, Any],
        extractors: Optional[Mapping[str, Extractor]] = None,
    ) -> "FilterCriteria":
        """Build criteria for every attribute in ``kinds``.

        Attributes present in ``selector`` are known, the others unset.

        Raises:
            KeyError: If ``selector`` names an attribute not in ``kinds``.
        """
        unknown = [k for k in selector if k not in kinds]
        if unknown:
            raise KeyError(", ".join(sorted(unknown)))
        extractors = extractors or {}
        return cls(tuple(
            Criterion(
                attribute=name,
                value=TriState.known(selector[name]) if name in selector else UNSET_VALUE,
                kind=kind,
                extract=extractors.get(name),
            )
            for name, kind in kinds.items()
        ))


@dataclass(frozen=True)
class MatchOutcome:
    matched: int = 0
    mismatched: int = 0

    @property
    def selected(self) -> bool:
        return self.mismatched == 0 and self.matched > 0

    @property
    def score(self) -> int:
        return self.matched + MISMATCH_PENALTY * self.mismatched


def _is_superset(candidate_values: Any, required: Any) -> bool:
    if isinstance(required, str):
        required = [required]
    have = list(candidate_values or [])
    return all(item in have for item in (required or []))


def contribution(candidate: Candidate, criterion: Criterion) -> int:
    """Score contribution of a single criterion (0, +1 or ``MISMATCH_PENALTY``)."""
    if not criterion.value.is_known:
        return 0
    actual = criterion.candidate_value(candidate)
    wanted = criterion.value.value
    if criterion.kind is CriterionKind.CONTAINS_ALL:
        ok = _is_superset(actual, wanted)
    else:
        ok = actual == wanted
    return 1 if ok else MISMATCH_PENALTY


def evaluate(candidate: Candidate, criteria: FilterCriteria) -> MatchOutcome:
    """Count matched and mismatched known criteria for one candidate.

    ``candidate`` and ``criteria`` must describe the same schema: a criterion
    naming an attribute the candidate lacks raises ``KeyError``.
    """
    matched = mismatched = 0
    for criterion in criteria:
        c = contribution(candidate, criterion)
        if c > 0:
            matched += 1
        elif c < 0:
            mismatched += 1
    return MatchOutcome(matched=matched, mismatched=mismatched)


def score(candidate: Candidate, criteria: FilterCriteria) -> int:
    """Sum of contributions; negative whenever any known criterion mismatches."""
    return sum(contribution(candidate, c) for c in criteria)
