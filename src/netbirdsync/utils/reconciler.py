"""
Reconciler for NetBirdSync.

Merges a sparse desired object (fields as :class:`TriState`) with the
authoritative remote object, and classifies the outcome so handlers can decide
whether a write is needed.

Rules, per field and independent of every other field:

* unset desired  -> remote value, untouched (collections keep their order)
* known desired  -> desired value, replacing the remote one wholesale

Collections and nested composites are replaced as opaque units; there is no
per-element or per-leaf reconciliation.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple

from .tristate import UNSET_VALUE, TriState

DesiredObject = Mapping[str, TriState[Any]]
RemoteObject = Mapping[str, Any]
MergeResult = Dict[str, Any]

Op = Literal["NOOP", "CREATE", "UPDATE"]


class FieldKind(str, Enum):
    SCALAR = "scalar"
    COLLECTION = "collection"
    COMPOSITE = "composite"


@dataclass(frozen=True)
class FieldSpec:
    """One reconcilable field of an entity kind.

    Attributes:
        name: Field name, shared by the desired and remote objects.
        kind: Merge rule family.
        compare: Whether a difference on this field counts as a change.
        mutable: Whether the remote service accepts a new value in place.
        value_type: Python type of a scalar value (bool, int, str); None
            falls back to the type of the schema default, if any.
    """
    name: str
    kind: FieldKind = FieldKind.SCALAR
    compare: bool = True
    mutable: bool = True
    value_type: Optional[type] = None


@dataclass(frozen=True)
class EntitySchema:
    """Ordered field list for an entity kind plus the base object used on create."""
    kind: str
    fields: Tuple[FieldSpec, ...]
    defaults: Mapping[str, Any] = field(default_factory=dict)

    @property
    def names(self) -> List[str]:
        return [f.name for f in self.fields]

    @property
    def compare_keys(self) -> List[str]:
        return [f.name for f in self.fields if f.compare]

    @property
    def immutable_keys(self) -> List[str]:
        return [f.name for f in self.fields if not f.mutable]

    def value_type(self, name: str) -> Optional[type]:
        """Declared scalar type of ``name``, else the type of its default."""
        for spec in self.fields:
            if spec.name == name:
                if spec.value_type is not None:
                    return spec.value_type
                break
        default = self.defaults.get(name)
        return type(default) if isinstance(default, (bool, int, str)) else None

    def base_object(self) -> Dict[str, Any]:
        """Return a fresh copy of ``defaults`` covering every field."""
        return {name: copy.deepcopy(self.defaults.get(name)) for name in self.names}


@dataclass(frozen=True)
class Decision:
    """Outcome of comparing a merge result with the remote object.

    Attributes:
        op: ``"CREATE"`` (no remote entity), ``"UPDATE"`` or ``"NOOP"``.
        reason: Short human explanation, e.g. ``"Field differs: metric"``.
        changed: Every compared field whose value differs.
    """
    op: Op
    reason: str
    changed: Tuple[str, ...] = ()


# ---------- per-field rules ----------

def merge_field(desired: TriState[Any], remote: Any) -> Any:
    """Scalar rule (including remote-optional scalars that may be None)."""
    return desired.value if desired.is_known else remote


def merge_collection(desired: TriState[Any], remote: Any) -> Optional[List[Any]]:
    """Whole-collection replacement; ``known([])`` clears, unset keeps remote order."""
    source = desired.value if desired.is_known else remote
    if source is None:
        return None
    return copy.deepcopy(list(source))


def merge_composite(desired: TriState[Any], remote: Any) -> Any:
    """Nested objects are replaced as a unit, never merged leaf by leaf."""
    return copy.deepcopy(desired.value if desired.is_known else remote)


_RULES = {
    FieldKind.SCALAR: merge_field,
    FieldKind.COLLECTION: merge_collection,
    FieldKind.COMPOSITE: merge_composite,
}


def merge(schema: EntitySchema, desired: DesiredObject, remote: RemoteObject) -> MergeResult:
    """Merge ``desired`` into ``remote`` for every field of ``schema``.

    ``remote`` must be the freshly fetched state of the entity ``desired``
    targets (or ``schema.base_object()`` for a new entity). Keys of either
    input outside the schema are ignored. Neither input is modified.
    """
    out: MergeResult = {}
    for spec in schema.fields:
        rule = _RULES[spec.kind]
        out[spec.name] = rule(desired.get(spec.name, UNSET_VALUE), remote.get(spec.name))
    return out


def decide(merged: Mapping[str, Any], remote: Optional[Mapping[str, Any]], *, compare_keys: List[str]) -> Decision:
    """Classify a merge result against the remote object it was built from."""
    if remote is None:
        return Decision(op="CREATE", reason="Not found")

    changed = tuple(k for k in compare_keys if merged.get(k) != remote.get(k))
    if changed:
        return Decision(op="UPDATE", reason=f"Field differs: {changed[0]}", changed=changed)
    return Decision(op="NOOP", reason="Identical subset")
