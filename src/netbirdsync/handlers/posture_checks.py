"""
Posture checks handler.

The desired file carries each check as a flat composite; the API nests them in
a ``checks`` block with its own key names::

    netbird_version_check     <-> checks.nb_version_check
    os_version_check          <-> checks.os_version_check.{android,ios,darwin,linux,windows}
    geo_location_check        <-> checks.geo_location_check
    peer_network_range_check  <-> checks.peer_network_range_check
    process_check (list)      <-> checks.process_check.processes

Both sides go through the same normalizers, so a check written with only some
keys compares equal to the API form where the others are null.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..utils.reconciler import DesiredObject, EntitySchema, FieldKind, FieldSpec, MergeResult
from .base import BaseHandler, map_known

# desired key -> (API platform key, API version key)
_OS_KEYS = {
    "android_min_version": ("android", "min_version"),
    "ios_min_version": ("ios", "min_version"),
    "darwin_min_version": ("darwin", "min_version"),
    "linux_min_kernel_version": ("linux", "min_kernel_version"),
    "windows_min_kernel_version": ("windows", "min_kernel_version"),
}
_PROCESS_KEYS = ("linux_path", "mac_path", "windows_path")


# ---------- canonical shapes ----------

def _nb_version(v: Dict[str, Any]) -> Dict[str, Any]:
    return {"min_version": v.get("min_version")}


def _os_version(v: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v.get(k) or None for k in _OS_KEYS}


def _geo(v: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "action": v.get("action"),
        "locations": [
            {"country_code": loc.get("country_code"), "city_name": loc.get("city_name") or None}
            for loc in v.get("locations") or []
        ],
    }


def _network_range(v: Dict[str, Any]) -> Dict[str, Any]:
    return {"ranges": list(v.get("ranges") or []), "action": v.get("action")}


def _processes(v: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # empty paths come back as "" and mean "not set"
    return [{k: p.get(k) or None for k in _PROCESS_KEYS} for p in v]


_NORMALIZERS = {
    "netbird_version_check": _nb_version,
    "os_version_check": _os_version,
    "geo_location_check": _geo,
    "peer_network_range_check": _network_range,
    "process_check": _processes,
}


# ---------- API block conversion ----------

def _os_from_api(block: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for key, (platform, version_key) in _OS_KEYS.items():
        entry = block.get(platform)
        out[key] = entry.get(version_key) if entry else None
    return out


def _os_to_api(value: Dict[str, Any]) -> Dict[str, Any]:
    return {
        platform: {version_key: value[key]}
        for key, (platform, version_key) in _OS_KEYS.items()
        if value.get(key)
    }


def _without_none(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _without_none(v) for k, v in obj.items() if v is not None}
    if isinstance(obj, list):
        return [_without_none(v) for v in obj]
    return obj


def _maybe(fn, value: Optional[Any]) -> Optional[Any]:
    return fn(value) if value else None


class PostureChecksHandler(BaseHandler):
    kind = "posture_checks"
    path = "/api/posture-checks"
    schema = EntitySchema(
        kind="posture_checks",
        fields=(
            FieldSpec("name"),
            FieldSpec("description", value_type=str),
            FieldSpec("netbird_version_check", FieldKind.COMPOSITE),
            FieldSpec("os_version_check", FieldKind.COMPOSITE),
            FieldSpec("geo_location_check", FieldKind.COMPOSITE),
            FieldSpec("peer_network_range_check", FieldKind.COMPOSITE),
            FieldSpec("process_check", FieldKind.COMPOSITE),
        ),
        defaults={"name": "", "description": None},
    )

    def prepare_desired(self, desired: DesiredObject) -> DesiredObject:
        return map_known(desired, _NORMALIZERS)

    def to_state(self, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        checks = api_obj.get("checks") or {}
        os_block = checks.get("os_version_check")
        processes = (checks.get("process_check") or {}).get("processes")
        return {
            "name": api_obj.get("name"),
            "description": api_obj.get("description") or None,
            "netbird_version_check": _maybe(_nb_version, checks.get("nb_version_check")),
            "os_version_check": _os_version(_os_from_api(os_block)) if os_block else None,
            "geo_location_check": _maybe(_geo, checks.get("geo_location_check")),
            "peer_network_range_check": _maybe(_network_range, checks.get("peer_network_range_check")),
            "process_check": _maybe(_processes, processes),
        }

    def build_create(self, merged: MergeResult) -> Dict[str, Any]:
        checks: Dict[str, Any] = {}
        if merged["netbird_version_check"]:
            checks["nb_version_check"] = dict(merged["netbird_version_check"])
        if merged["os_version_check"]:
            checks["os_version_check"] = _os_to_api(merged["os_version_check"])
        if merged["geo_location_check"]:
            checks["geo_location_check"] = _without_none(merged["geo_location_check"])
        if merged["peer_network_range_check"]:
            checks["peer_network_range_check"] = dict(merged["peer_network_range_check"])
        if merged["process_check"]:
            checks["process_check"] = {"processes": _without_none(merged["process_check"])}

        payload: Dict[str, Any] = {"name": merged["name"], "checks": checks}
        if merged["description"] is not None:
            payload["description"] = merged["description"]
        return payload

    def build_update(self, merged: MergeResult, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        return self.build_create(merged)
