"""
Nameserver groups handler (``/api/dns/nameservers``).

A group is either primary (resolves every domain, ``domains`` empty) or
serves a list of match domains. Unset ``primary`` follows ``domains``.
"""
from __future__ import annotations

from typing import Any, Dict, List

from ..utils.reconciler import DesiredObject, EntitySchema, FieldKind, FieldSpec, MergeResult
from ..utils.tristate import DesiredStateError
from .base import BaseHandler, map_known


def _nameservers(items: List[Any]) -> List[Dict[str, Any]]:
    out = []
    for ns in items or []:
        if not isinstance(ns, dict) or not ns.get("ip"):
            raise DesiredStateError(f"nameserver_groups: nameserver {ns!r} must be a mapping with ip")
        try:
            port = int(ns.get("port") or 53)
        except (TypeError, ValueError):
            raise DesiredStateError(f"nameserver_groups: invalid port {ns.get('port')!r}") from None
        out.append({"ip": str(ns["ip"]), "ns_type": ns.get("ns_type") or "udp", "port": port})
    return out


class NameserverGroupsHandler(BaseHandler):
    kind = "nameserver_groups"
    path = "/api/dns/nameservers"
    schema = EntitySchema(
        kind="nameserver_groups",
        fields=(
            FieldSpec("name"),
            FieldSpec("description"),
            FieldSpec("groups", FieldKind.COLLECTION),
            FieldSpec("domains", FieldKind.COLLECTION),
            FieldSpec("nameservers", FieldKind.COLLECTION),
            FieldSpec("enabled"),
            FieldSpec("primary", value_type=bool),
            FieldSpec("search_domains_enabled"),
        ),
        defaults={
            "name": "",
            "description": "",
            "groups": [],
            "domains": [],
            "nameservers": [],
            "enabled": True,
            "primary": None,
            "search_domains_enabled": False,
        },
    )

    def prepare_desired(self, desired: DesiredObject) -> DesiredObject:
        return map_known(desired, {"nameservers": _nameservers})

    def to_state(self, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "name": api_obj.get("name"),
            "description": api_obj.get("description") or "",
            "groups": list(api_obj.get("groups") or []),
            "domains": list(api_obj.get("domains") or []),
            "nameservers": _nameservers(api_obj.get("nameservers") or []),
            "enabled": api_obj.get("enabled"),
            "primary": api_obj.get("primary"),
            "search_domains_enabled": api_obj.get("search_domains_enabled"),
        }

    def validate_merged(self, merged: MergeResult) -> None:
        if merged["primary"] is None:
            merged["primary"] = not merged["domains"]
        if not merged["nameservers"]:
            raise DesiredStateError(f"{self.kind}: at least one nameserver is required")
        if merged["primary"] and merged["search_domains_enabled"]:
            raise DesiredStateError(f"{self.kind}: search_domains_enabled and primary cannot both be true")
        if merged["primary"] and merged["domains"]:
            raise DesiredStateError(f"{self.kind}: a primary group takes no domains")
        if not merged["primary"] and not merged["domains"]:
            raise DesiredStateError(f"{self.kind}: a group that is not primary needs at least one domain")

    def build_create(self, merged: MergeResult) -> Dict[str, Any]:
        return {
            **merged,
            "description": merged["description"] or "",
            "groups": merged["groups"] or [],
            "domains": merged["domains"] or [],
        }

    def build_update(self, merged: MergeResult, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        return self.build_create(merged)
