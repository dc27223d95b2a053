"""
Groups handler.

The API returns member peers and resources as objects; they are flattened to
peer ids and ``{id, type}`` pairs so they compare with the desired file.
"""
from __future__ import annotations

from typing import Any, Dict, List

from ..utils.reconciler import DesiredObject, EntitySchema, FieldKind, FieldSpec, MergeResult
from ..utils.tristate import DesiredStateError
from .base import BaseHandler, map_known


def _peer_ids(peers: Any) -> List[str]:
    return [p["id"] if isinstance(p, dict) else str(p) for p in (peers or [])]


def _resources(resources: Any) -> List[Dict[str, Any]]:
    out = []
    for r in resources or []:
        if not isinstance(r, dict):
            raise DesiredStateError(f"groups: resource {r!r} must be a mapping with id and type")
        out.append({"id": r.get("id"), "type": r.get("type")})
    return out


class GroupsHandler(BaseHandler):
    kind = "groups"
    path = "/api/groups"
    schema = EntitySchema(
        kind="groups",
        fields=(
            FieldSpec("name"),
            FieldSpec("peers", FieldKind.COLLECTION),
            FieldSpec("resources", FieldKind.COLLECTION),
        ),
        defaults={"name": "", "peers": [], "resources": []},
    )

    def prepare_desired(self, desired: DesiredObject) -> DesiredObject:
        return map_known(desired, {"peers": _peer_ids, "resources": _resources})

    def to_state(self, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "name": api_obj.get("name"),
            "peers": _peer_ids(api_obj.get("peers")),
            "resources": _resources(api_obj.get("resources")),
        }

    def build_create(self, merged: MergeResult) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": merged["name"], "peers": merged["peers"] or []}
        if merged["resources"]:
            payload["resources"] = merged["resources"]
        return payload

    def build_update(self, merged: MergeResult, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "name": merged["name"],
            "peers": merged["peers"] or [],
            "resources": merged["resources"] or [],
        }
