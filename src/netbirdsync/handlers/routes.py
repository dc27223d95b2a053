"""
Routes handler (``/api/routes``).

A route is located by its ``network_id``, the route identifier shown in the
dashboard (not a network object id). It is served either by one ``peer`` or by
``peer_groups``, and routes either a ``network`` CIDR or a list of ``domains``.
"""
from __future__ import annotations

from typing import Any, Dict

from ..utils.reconciler import EntitySchema, FieldKind, FieldSpec, MergeResult
from ..utils.tristate import DesiredStateError
from .base import BaseHandler

_EXCLUSIVE = (("peer", "peer_groups"), ("network", "domains"))


class RoutesHandler(BaseHandler):
    kind = "routes"
    path = "/api/routes"
    locate_keys = ("network_id",)
    required_columns = ("network_id",)
    schema = EntitySchema(
        kind="routes",
        fields=(
            FieldSpec("network_id", value_type=str),
            FieldSpec("description"),
            FieldSpec("enabled"),
            FieldSpec("peer", value_type=str),
            FieldSpec("peer_groups", FieldKind.COLLECTION),
            FieldSpec("network", value_type=str),
            FieldSpec("domains", FieldKind.COLLECTION),
            FieldSpec("metric"),
            FieldSpec("masquerade"),
            FieldSpec("groups", FieldKind.COLLECTION),
            FieldSpec("keep_route"),
            FieldSpec("access_control_groups", FieldKind.COLLECTION),
        ),
        defaults={
            "network_id": "",
            "description": "",
            "enabled": True,
            "peer": None,
            "peer_groups": None,
            "network": None,
            "domains": None,
            "metric": 9999,
            "masquerade": True,
            "groups": [],
            "keep_route": True,
            "access_control_groups": None,
        },
    )

    def validate_merged(self, merged: MergeResult) -> None:
        for one, other in _EXCLUSIVE:
            if merged[one] and merged[other]:
                raise DesiredStateError(f"{self.kind}: {one} and {other} are mutually exclusive")
            if not merged[one] and not merged[other]:
                raise DesiredStateError(f"{self.kind}: one of {one} or {other} is required")

    def to_state(self, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        state = {name: api_obj.get(name) for name in self.schema.names}
        state["peer"] = api_obj.get("peer") or None
        state["description"] = api_obj.get("description") or ""
        # domain routes echo a placeholder network
        if state["domains"]:
            state["network"] = None
        return state

    def build_create(self, merged: MergeResult) -> Dict[str, Any]:
        payload = {k: v for k, v in merged.items() if v is not None}
        payload["groups"] = merged["groups"] or []
        return payload

    def build_update(self, merged: MergeResult, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        return self.build_create(merged)
