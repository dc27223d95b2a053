"""DNS zones handler (``/api/dns/zones``); records are the ``dns_records`` kind."""
from __future__ import annotations

from typing import Any, Dict

from ..utils.reconciler import EntitySchema, FieldKind, FieldSpec, MergeResult
from .base import BaseHandler


class DnsZonesHandler(BaseHandler):
    kind = "dns_zones"
    path = "/api/dns/zones"
    required_columns = ("name", "domain")
    schema = EntitySchema(
        kind="dns_zones",
        fields=(
            FieldSpec("name"),
            FieldSpec("domain"),
            FieldSpec("enabled"),
            FieldSpec("enable_search_domain"),
            FieldSpec("distribution_groups", FieldKind.COLLECTION),
        ),
        defaults={
            "name": "",
            "domain": "",
            "enabled": True,
            "enable_search_domain": False,
            "distribution_groups": [],
        },
    )

    def to_state(self, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        state = {name: api_obj.get(name) for name in self.schema.names}
        state["distribution_groups"] = list(api_obj.get("distribution_groups") or [])
        return state

    def build_create(self, merged: MergeResult) -> Dict[str, Any]:
        return {**merged, "distribution_groups": merged["distribution_groups"] or []}

    def build_update(self, merged: MergeResult, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        return self.build_create(merged)
