"""BaseHandler: orchestrates locate → merge → decide → guard → apply → report.

Concrete handlers declare their schema and the API shape (``to_state``,
``build_create``, ``build_update``); everything else is handled here.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from ..core.netbird_client import EntityEndpoint, HttpError, NetBirdClient
from ..utils.desired_state import KindLayout
from ..utils.matcher import CriterionKind, FilterCriteria
from ..utils.reconciler import Decision, DesiredObject, EntitySchema, MergeResult, decide, merge
from ..utils.resolvers import InvalidInputError, NotFoundError, ResolutionError, resolve_one
from ..utils.tristate import DesiredStateError, TriState

Logger = Union[logging.Logger, logging.LoggerAdapter]


def map_known(desired: DesiredObject, normalizers: Mapping[str, Callable[[Any], Any]]) -> Dict[str, TriState[Any]]:
    """Apply ``normalizers[name]`` to each known, non-None field; unset fields stay unset."""
    out = dict(desired)
    for name, fn in normalizers.items():
        value = desired.get(name)
        if value is not None and value.is_known and value.value is not None:
            out[name] = TriState.known(fn(value.value))
    return out


STATUS_PLANNED = "PLANNED"
STATUS_APPLIED = "APPLIED"
STATUS_UNCHANGED = "UNCHANGED"
STATUS_ERROR = "ERROR"
STATUS_EXCEPTION = "EXCEPTION"


@dataclass
class HandlerResult:
    """Outcome for one desired entity."""
    kind: str
    key: str
    op: str
    status: str
    reason: str = ""
    entity: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status in (STATUS_ERROR, STATUS_EXCEPTION)

    def as_row(self) -> Dict[str, Any]:
        return asdict(self)


class BaseHandler:
    """Abstract base class for all resource handlers.

    Class Attributes:
        kind: Entity kind key, also the desired-state section name.
        path: Collection path under the management URL.
        schema: Reconcilable fields and create defaults.
        singleton: Account-wide object that always exists (fetched, never created).
        identity: Locator keys accepted in the desired file besides the schema.
        required_columns: Columns an XLSX sheet for this kind must carry.
        locate_keys: Fields that together locate an entity when no ``id`` is
            given; empty means the kind is located by ``id`` only.
        parent: Field naming the parent object of a nested kind; ``path``
            carries it as a ``{placeholder}``.
    """

    kind: str = "resource"
    path: str = ""
    schema: EntitySchema = EntitySchema(kind="resource", fields=())
    singleton: bool = False
    identity: Tuple[str, ...] = ("id",)
    required_columns: Tuple[str, ...] = ("name",)
    locate_keys: Tuple[str, ...] = ("name",)
    parent: Optional[str] = None

    def __init__(self, logger: Optional[Logger] = None) -> None:
        self.log = logger or logging.getLogger(f"nbsync.handlers.{self.kind}")

    @classmethod
    def layout(cls) -> KindLayout:
        return KindLayout(
            kind=cls.kind,
            schema=cls.schema,
            singleton=cls.singleton,
            identity=cls.identity,
            required_columns=cls.required_columns,
        )

    # ----- hooks ----------------------------------------------------------
    def endpoint(self, client: NetBirdClient, desired: DesiredObject) -> EntityEndpoint:
        """Collection endpoint for ``desired``, under its parent for nested kinds."""
        if self.parent:
            return client.endpoint(self.path.format(**{self.parent: desired[self.parent].value}))
        return client.endpoint(self.path)

    def fetch_singleton(self, client: NetBirdClient) -> Dict[str, Any]:
        """Return the API object of a singleton kind."""
        raise NotImplementedError

    def validate_desired(self, desired: DesiredObject) -> None:
        """Reject desired objects the handler cannot process."""
        if self.parent:
            value = desired.get(self.parent)
            if value is None or not value.is_known or value.value in (None, ""):
                raise DesiredStateError(f"{self.kind}: {self.parent} is required")

    def validate_merged(self, merged: MergeResult) -> None:
        """Reject a merge result the API would refuse; may fill derived fields."""

    def prepare_desired(self, desired: DesiredObject) -> DesiredObject:
        """Return ``desired`` with known values in the same canonical shape as ``to_state``."""
        return desired

    def to_state(self, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        """Flatten an API object into a RemoteObject covering every schema field."""
        return {name: api_obj.get(name) for name in self.schema.names}

    def build_create(self, merged: MergeResult) -> Dict[str, Any]:
        """Build the API create payload from a merge result."""
        return dict(merged)

    def build_update(self, merged: MergeResult, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        """Build the API update payload from a merge result and the current API object."""
        return dict(merged)

    def write_update(self, client: NetBirdClient, desired: DesiredObject, api_obj: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.endpoint(client, desired).update(str(api_obj["id"]), payload)

    def write_create(self, client: NetBirdClient, desired: DesiredObject, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.endpoint(client, desired).create(payload)

    # ----- helpers --------------------------------------------------------
    def key_of(self, desired: DesiredObject) -> str:
        """Display key: id, else the first locate key, else the kind for singletons."""
        for k in ("id", *self.locate_keys[:1]):
            if k in desired and desired[k].is_known and desired[k].value not in (None, ""):
                return str(desired[k].value)
        return self.kind if self.singleton else "(new)"

    def locate(self, client: NetBirdClient, desired: DesiredObject) -> Optional[Dict[str, Any]]:
        """Return the current API object targeted by ``desired``, or None when it must be created.

        Raises:
            InvalidInputError: Neither ``id`` nor every locate key is known.
            AmbiguousMatchError: Several remote entities share the locate keys.
            HttpError: Transport failure (including 404 on an explicit id).
        """
        if self.singleton:
            return self.fetch_singleton(client)

        ident = desired.get("id")
        if ident is not None and ident.is_known and ident.value:
            return self.endpoint(client, desired).get(str(ident.value))

        if not self.locate_keys:
            return None

        values = {}
        for k in self.locate_keys:
            value = desired.get(k)
            if value is None or not value.is_known or value.value in (None, ""):
                raise InvalidInputError(self.kind, ["id", *self.locate_keys])
            values[k] = value.value

        criteria = FilterCriteria.build({k: CriterionKind.EQUALS for k in self.locate_keys}, values)
        blank = dict.fromkeys(self.locate_keys)
        candidates = [{**blank, **c} for c in self.endpoint(client, desired).list()]
        try:
            return resolve_one(candidates, criteria, kind=self.kind)
        except NotFoundError:
            return None

    # ----- pipeline -------------------------------------------------------
    def apply_one(self, client: NetBirdClient, desired: DesiredObject, dry_run: bool) -> HandlerResult:
        key = self.key_of(desired)
        self.validate_desired(desired)
        desired = self.prepare_desired(desired)

        api_obj = self.locate(client, desired)
        remote = self.to_state(api_obj) if api_obj is not None else None
        merged = merge(self.schema, desired, remote if remote is not None else self.schema.base_object())
        self.validate_merged(merged)
        decision: Decision = decide(merged, remote, compare_keys=self.schema.compare_keys)

        if decision.op == "UPDATE":
            blocked = [k for k in decision.changed if k in self.schema.immutable_keys]
            if blocked:
                return HandlerResult(
                    kind=self.kind,
                    key=key,
                    op=decision.op,
                    status=STATUS_ERROR,
                    reason=decision.reason,
                    entity=remote,
                    error=f"Changing {', '.join(blocked)} requires replacement",
                )

        if decision.op == "NOOP":
            return HandlerResult(self.kind, key, decision.op, STATUS_UNCHANGED, decision.reason, entity=remote)
        if dry_run:
            self.log.info("[dry-run] %s %s %s: %s", decision.op, self.kind, key, decision.reason)
            return HandlerResult(self.kind, key, decision.op, STATUS_PLANNED, decision.reason, entity=merged)

        if decision.op == "CREATE":
            response = self.write_create(client, desired, self.build_create(merged))
        else:
            response = self.write_update(client, desired, api_obj, self.build_update(merged, api_obj))
        self.log.info("%s %s %s: %s", decision.op, self.kind, key, decision.reason)

        entity = self.to_state(response) if response else merged
        if response.get("id"):
            entity = {"id": response["id"], **entity}
        return HandlerResult(self.kind, key, decision.op, STATUS_APPLIED, decision.reason, entity=entity)

    def apply_all(self, client: NetBirdClient, desired_list: Iterable[DesiredObject], dry_run: bool) -> List[HandlerResult]:
        """Process every desired object; one failure never stops the others."""
        results: List[HandlerResult] = []
        for desired in desired_list:
            key = self.key_of(desired)
            try:
                results.append(self.apply_one(client, desired, dry_run))
            except (ResolutionError, HttpError, DesiredStateError) as exc:
                self.log.error("%s %s failed: %s", self.kind, key, str(exc))
                results.append(HandlerResult(self.kind, key, "-", STATUS_ERROR, error=str(exc)))
            except Exception as exc:  # noqa: BLE001 - reported as an EXCEPTION row
                self.log.exception("%s %s raised unexpectedly", self.kind, key)
                results.append(HandlerResult(self.kind, key, "-", STATUS_EXCEPTION, error=f"{type(exc).__name__}: {exc}"))
        return results
