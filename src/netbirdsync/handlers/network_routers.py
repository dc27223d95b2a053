"""
Network routers handler.

Routers live under their network (``/api/networks/{network_id}/routers``) and
have no name, so they are located by ``id`` only; a desired router without an
id is created.
"""
from __future__ import annotations

from typing import Any, Dict

from ..utils.reconciler import EntitySchema, FieldKind, FieldSpec, MergeResult
from .base import BaseHandler


class NetworkRoutersHandler(BaseHandler):
    kind = "network_routers"
    path = "/api/networks/{network_id}/routers"
    parent = "network_id"
    identity = ("id", "network_id")
    required_columns = ("network_id",)
    locate_keys = ()
    schema = EntitySchema(
        kind="network_routers",
        fields=(
            FieldSpec("peer", value_type=str),
            FieldSpec("peer_groups", FieldKind.COLLECTION),
            FieldSpec("metric"),
            FieldSpec("masquerade"),
            FieldSpec("enabled"),
        ),
        defaults={"peer": None, "peer_groups": None, "metric": 9999, "masquerade": True, "enabled": True},
    )

    def build_create(self, merged: MergeResult) -> Dict[str, Any]:
        payload = {k: v for k, v in merged.items() if v is not None}
        if payload.get("peer") == "":
            payload.pop("peer")
        return payload

    def build_update(self, merged: MergeResult, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        return self.build_create(merged)
