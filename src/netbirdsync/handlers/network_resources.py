"""
Network resources handler.

Resources live under their network (``/api/networks/{network_id}/resources``)
and are located by name within it. The API returns the resource groups as
objects; they are flattened to group ids.
"""
from __future__ import annotations

from typing import Any, Dict, List

from ..utils.reconciler import DesiredObject, EntitySchema, FieldKind, FieldSpec, MergeResult
from ..utils.tristate import DesiredStateError
from .base import BaseHandler, map_known


def _group_ids(groups: Any) -> List[str]:
    return [g["id"] if isinstance(g, dict) else str(g) for g in (groups or [])]


class NetworkResourcesHandler(BaseHandler):
    kind = "network_resources"
    path = "/api/networks/{network_id}/resources"
    parent = "network_id"
    identity = ("id", "network_id")
    required_columns = ("network_id", "name")
    schema = EntitySchema(
        kind="network_resources",
        fields=(
            FieldSpec("name"),
            FieldSpec("description", value_type=str),
            FieldSpec("address", value_type=str),
            FieldSpec("enabled"),
            FieldSpec("groups", FieldKind.COLLECTION),
        ),
        defaults={"name": "", "description": None, "address": None, "enabled": True, "groups": []},
    )

    def prepare_desired(self, desired: DesiredObject) -> DesiredObject:
        return map_known(desired, {"groups": _group_ids, "description": lambda d: d or None})

    def validate_merged(self, merged: MergeResult) -> None:
        if not merged["address"]:
            raise DesiredStateError(f"{self.kind}: address is required")

    def to_state(self, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "name": api_obj.get("name"),
            "description": api_obj.get("description") or None,
            "address": api_obj.get("address"),
            "enabled": api_obj.get("enabled"),
            "groups": _group_ids(api_obj.get("groups")),
        }

    def build_create(self, merged: MergeResult) -> Dict[str, Any]:
        payload = {k: v for k, v in merged.items() if v is not None}
        payload["groups"] = merged["groups"] or []
        return payload

    def build_update(self, merged: MergeResult, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        return self.build_create(merged)
