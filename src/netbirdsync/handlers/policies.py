"""
Policies handler.

Rules are a collection of structured objects replaced as a whole. The API
returns rule sources/destinations as group objects; they are flattened to
group ids, and rule ids are dropped, so rules compare with the desired file.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..utils.reconciler import DesiredObject, EntitySchema, FieldKind, FieldSpec, MergeResult
from .base import BaseHandler, map_known

RULE_DEFAULTS: Dict[str, Any] = {
    "action": "accept",
    "protocol": "all",
    "enabled": True,
    "bidirectional": True,
}


def _ids(items: Optional[List[Any]]) -> Optional[List[str]]:
    if not items:
        return None
    return [i["id"] if isinstance(i, dict) else str(i) for i in items]


def _resource(value: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not value:
        return None
    return {"id": value.get("id"), "type": value.get("type")}


def _port_ranges(value: Optional[List[Dict[str, Any]]]) -> Optional[List[Dict[str, Any]]]:
    if not value:
        return None
    return [{"start": r.get("start"), "end": r.get("end")} for r in value]


def canonical_rule(rule: Dict[str, Any]) -> Dict[str, Any]:
    """One rule in comparable form: defaults applied, empty lists as None, groups as ids."""
    return {
        "name": rule.get("name"),
        "description": rule.get("description") or None,
        "action": rule.get("action") or RULE_DEFAULTS["action"],
        "protocol": rule.get("protocol") or RULE_DEFAULTS["protocol"],
        "enabled": RULE_DEFAULTS["enabled"] if rule.get("enabled") is None else rule["enabled"],
        "bidirectional": RULE_DEFAULTS["bidirectional"] if rule.get("bidirectional") is None else rule["bidirectional"],
        "ports": [str(p) for p in rule["ports"]] if rule.get("ports") else None,
        "port_ranges": _port_ranges(rule.get("port_ranges")),
        "sources": _ids(rule.get("sources")),
        "destinations": _ids(rule.get("destinations")),
        "source_resource": _resource(rule.get("source_resource") or rule.get("sourceResource")),
        "destination_resource": _resource(rule.get("destination_resource") or rule.get("destinationResource")),
    }


def _rules(rules: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [canonical_rule(r) for r in rules]


class PoliciesHandler(BaseHandler):
    kind = "policies"
    path = "/api/policies"
    schema = EntitySchema(
        kind="policies",
        fields=(
            FieldSpec("name"),
            FieldSpec("description", value_type=str),
            FieldSpec("enabled"),
            FieldSpec("source_posture_checks", FieldKind.COLLECTION),
            FieldSpec("rules", FieldKind.COLLECTION),
        ),
        defaults={"name": "", "description": None, "enabled": True, "source_posture_checks": [], "rules": []},
    )

    def prepare_desired(self, desired: DesiredObject) -> DesiredObject:
        return map_known(desired, {"rules": _rules, "description": lambda d: d or None})

    def to_state(self, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "name": api_obj.get("name"),
            "description": api_obj.get("description") or None,
            "enabled": api_obj.get("enabled"),
            "source_posture_checks": list(api_obj.get("source_posture_checks") or []),
            "rules": _rules(api_obj.get("rules") or []),
        }

    def build_create(self, merged: MergeResult) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": merged["name"],
            "enabled": merged["enabled"],
            "source_posture_checks": merged["source_posture_checks"] or [],
            "rules": [{k: v for k, v in r.items() if v is not None} for r in merged["rules"] or []],
        }
        if merged["description"] is not None:
            payload["description"] = merged["description"]
        return payload

    def build_update(self, merged: MergeResult, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        return self.build_create(merged)
