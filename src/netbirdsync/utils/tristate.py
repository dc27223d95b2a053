"""
Tri-state values for desired configuration fields.

A field read from the desired-state file is in exactly one of two tags:

* unset      -- the caller omitted the field; the remote value is kept.
* known(v)   -- the caller provided the field, even if ``v`` is empty or None.

``known([])`` and ``unset()`` are different things: the first clears a remote
collection, the second leaves it alone.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Generic, Iterable, Mapping, TypeVar

T = TypeVar("T")


class UnsetValueError(LookupError):
    """Raised when reading the value of an unset TriState."""


class DesiredStateError(Exception):
    """Raised when a desired-state document is malformed."""


class _Unset:
    """Marker stored inside an unset TriState."""

    _instance = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "<unset>"

    def __reduce__(self):  # keep singleton on pickle/deepcopy
        return (_Unset, ())


_UNSET = _Unset()


@dataclass(frozen=True)
class TriState(Generic[T]):
    """Either unset, or known with a (possibly empty) value."""

    _raw: Any = _UNSET

    @classmethod
    def unset(cls) -> "TriState[Any]":
        return cls()

    @classmethod
    def known(cls, value: T) -> "TriState[T]":
        return cls(value)

    @property
    def is_known(self) -> bool:
        return self._raw is not _UNSET

    @property
    def value(self) -> T:
        if self._raw is _UNSET:
            raise UnsetValueError("value read from an unset field")
        return self._raw

    def value_or(self, default: Any) -> Any:
        return self._raw if self._raw is not _UNSET else default

    def __repr__(self) -> str:
        if self._raw is _UNSET:
            return "TriState.unset()"
        return f"TriState.known({self._raw!r})"


UNSET_VALUE: TriState[Any] = TriState.unset()


def desired_from_mapping(raw: Mapping[str, Any], allowed: Iterable[str], *, kind: str = "entity") -> Dict[str, TriState[Any]]:
    """Build a desired object from a parsed mapping.

    Every allowed key present in ``raw`` becomes ``known`` (including explicit
    empty values and None); absent keys become ``unset``. Keys outside
    ``allowed`` raise :class:`DesiredStateError`.
    """
    allowed = list(allowed)
    unknown = [k for k in raw if k not in allowed]
    if unknown:
        raise DesiredStateError(f"{kind}: unknown field(s): {', '.join(sorted(map(str, unknown)))}")
    return {name: (TriState.known(raw[name]) if name in raw else UNSET_VALUE) for name in allowed}
