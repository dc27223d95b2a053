"""Networks handler (``/api/networks``); routers and resources are separate kinds."""
from __future__ import annotations

from typing import Any, Dict

from ..utils.reconciler import DesiredObject, EntitySchema, FieldSpec, MergeResult
from .base import BaseHandler, map_known


class NetworksHandler(BaseHandler):
    kind = "networks"
    path = "/api/networks"
    schema = EntitySchema(
        kind="networks",
        fields=(
            FieldSpec("name"),
            FieldSpec("description", value_type=str),
        ),
        defaults={"name": "", "description": None},
    )

    def prepare_desired(self, desired: DesiredObject) -> DesiredObject:
        return map_known(desired, {"description": lambda d: d or None})

    def to_state(self, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        return {"name": api_obj.get("name"), "description": api_obj.get("description") or None}

    def build_create(self, merged: MergeResult) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": merged["name"]}
        if merged["description"] is not None:
            payload["description"] = merged["description"]
        return payload

    def build_update(self, merged: MergeResult, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        return self.build_create(merged)
