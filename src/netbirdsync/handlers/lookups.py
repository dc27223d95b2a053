"""
Read-only lookups of remote entities from partial criteria.

Every lookup lists one collection and resolves it against the selector:
single lookups require exactly one match, ``peers`` returns every match.
Attributes a candidate does not carry are compared as null. Nested kinds
(routers, resources, records) take their parent id as a mandatory selector;
the account-wide settings take none.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ..core.netbird_client import NetBirdClient
from ..utils.matcher import CriterionKind, Extractor, FilterCriteria
from ..utils.resolvers import InvalidInputError, NotFoundError, resolve_all, resolve_one

EQ = CriterionKind.EQUALS
ALL = CriterionKind.CONTAINS_ALL


def group_ids(groups: Any) -> List[str]:
    return [g["id"] if isinstance(g, dict) else str(g) for g in (groups or [])]


@dataclass(frozen=True)
class LookupSpec:
    """One lookup kind.

    Attributes:
        key: Lookup name on the command line.
        path: Collection path listed for candidates.
        kinds: Selectable attributes and how each one is compared.
        extractors: Projections applied to candidate attributes before comparison.
        many: Filter mode (zero or more results) instead of exactly one.
        require_selector: Reject an empty selector even in filter mode.
        display: Columns shown in table output.
        parent: Selector naming the parent object; it fills the ``{placeholder}``
            of ``path`` and is required.
        singleton: ``path`` returns one account-wide object; no selector.
        project: Reshapes the response of a singleton lookup.
        types: Selector values converted to bool or int; others stay text.
    """
    key: str
    path: str
    kinds: Mapping[str, CriterionKind]
    extractors: Mapping[str, Extractor] = field(default_factory=dict)
    many: bool = False
    require_selector: bool = True
    display: Tuple[str, ...] = ("id", "name")
    parent: Optional[str] = None
    singleton: bool = False
    project: Optional[Callable[[Any], Dict[str, Any]]] = None
    types: Mapping[str, type] = field(default_factory=dict)


_ID_NAME = {"id": EQ, "name": EQ}

_PEER_DISPLAY = ("id", "name", "ip", "dns_label", "hostname", "os", "connected")

_PEER_TYPES = {
    "connected": bool,
    "ssh_enabled": bool,
    "inactivity_expiration_enabled": bool,
    "approval_required": bool,
    "login_expiration_enabled": bool,
    "login_expired": bool,
    "geoname_id": int,
}


def account_view(accounts: Any) -> Dict[str, Any]:
    """First account of ``GET /api/accounts``, its settings and extra flags side by side."""
    if not accounts:
        raise NotFoundError("account_settings", {})
    account = accounts[0] if isinstance(accounts, list) else accounts
    settings = dict(account.get("settings") or {})
    extra = settings.pop("extra", None) or {}
    return {"id": account.get("id"), **settings, **extra}


_LOOKUPS: Dict[str, LookupSpec] = {
    s.key: s
    for s in (
        LookupSpec("group", "/api/groups", _ID_NAME),
        LookupSpec(
            "peer",
            "/api/peers",
            {"id": EQ, "name": EQ, "ip": EQ, "dns_label": EQ, "hostname": EQ, "user_id": EQ},
            display=_PEER_DISPLAY,
        ),
        LookupSpec(
            "peers",
            "/api/peers",
            {
                "name": EQ,
                "ip": EQ,
                "connection_ip": EQ,
                "dns_label": EQ,
                "user_id": EQ,
                "hostname": EQ,
                "country_code": EQ,
                "city_name": EQ,
                "os": EQ,
                "connected": EQ,
                "ssh_enabled": EQ,
                "inactivity_expiration_enabled": EQ,
                "approval_required": EQ,
                "login_expiration_enabled": EQ,
                "login_expired": EQ,
                "geoname_id": EQ,
                "extra_dns_labels": ALL,
                "groups": ALL,
            },
            extractors={"groups": group_ids},
            many=True,
            display=_PEER_DISPLAY,
            types=_PEER_TYPES,
        ),
        LookupSpec("user", "/api/users", {"id": EQ, "name": EQ, "email": EQ}, display=("id", "name", "email", "role")),
        LookupSpec("dns_zone", "/api/dns/zones", {"id": EQ, "name": EQ, "domain": EQ}, display=("id", "name", "domain")),
        LookupSpec("nameserver_group", "/api/dns/nameservers", _ID_NAME),
        LookupSpec("route", "/api/routes", {"id": EQ, "network_id": EQ}, display=("id", "network_id", "network", "description")),
        LookupSpec("network", "/api/networks", _ID_NAME),
        LookupSpec(
            "network_router",
            "/api/networks/{network_id}/routers",
            {"network_id": EQ, "id": EQ},
            parent="network_id",
            display=("id", "peer", "peer_groups", "metric", "enabled"),
        ),
        LookupSpec(
            "network_resource",
            "/api/networks/{network_id}/resources",
            {"network_id": EQ, "id": EQ, "name": EQ},
            parent="network_id",
            display=("id", "name", "address", "type", "enabled"),
        ),
        LookupSpec(
            "dns_record",
            "/api/dns/zones/{zone_id}/records",
            {"zone_id": EQ, "id": EQ, "name": EQ, "type": EQ},
            parent="zone_id",
            display=("id", "name", "type", "content", "ttl"),
        ),
        LookupSpec(
            "account_settings",
            "/api/accounts",
            {},
            singleton=True,
            project=account_view,
            display=("id", "peer_login_expiration_enabled", "peer_login_expiration", "jwt_groups_enabled", "peer_approval_enabled"),
        ),
        LookupSpec("dns_settings", "/api/dns/settings", {}, singleton=True, display=("disabled_management_groups",)),
        LookupSpec("setup_key", "/api/setup-keys", _ID_NAME, display=("id", "name", "type", "state")),
        LookupSpec("policy", "/api/policies", _ID_NAME, display=("id", "name", "enabled")),
        LookupSpec("posture_check", "/api/posture-checks", _ID_NAME),
    )
}


def get_lookup(key: str) -> LookupSpec:
    try:
        return _LOOKUPS[key]
    except KeyError:
        raise KeyError(f"Unknown lookup: {key}") from None


def lookup_keys() -> List[str]:
    return list(_LOOKUPS)


def build_criteria(spec: LookupSpec, selector: Mapping[str, Any]) -> FilterCriteria:
    """Criteria for ``selector``; an unknown attribute is an invalid selector."""
    try:
        return FilterCriteria.build(spec.kinds, selector, spec.extractors)
    except KeyError as exc:
        raise InvalidInputError(
            spec.key,
            message=f"Unknown selector for {spec.key}: {exc.args[0]}; expected one of ({', '.join(spec.kinds)})",
        ) from None


def _with_all_attributes(candidate: Dict[str, Any], spec: LookupSpec) -> Dict[str, Any]:
    return {**{name: None for name in spec.kinds}, **candidate}


def run_lookup(client: NetBirdClient, key: str, selector: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Resolve ``selector`` against the collection of lookup ``key``.

    Returns a single-element list for single and singleton lookups, every
    match (in API order) for filter lookups. Entities of nested kinds carry
    their parent id.

    Raises:
        InvalidInputError: Empty or unknown selector, missing parent id, or a
            selector given to a singleton lookup.
        NotFoundError: Single lookup without a match.
        AmbiguousMatchError: Single lookup with several matches.
        HttpError: Transport failure.
    """
    spec = get_lookup(key)
    if spec.singleton:
        if selector:
            raise InvalidInputError(spec.key, message=f"{spec.key} takes no selector")
        data = client.get_json(spec.path)
        return [spec.project(data) if spec.project else data]

    path = spec.path
    if spec.parent:
        parent_id = selector.get(spec.parent)
        if parent_id in (None, ""):
            raise InvalidInputError(spec.key, message=f"{spec.key} needs {spec.parent}=<id>")
        path = spec.path.format(**{spec.parent: parent_id})

    criteria = build_criteria(spec, selector)
    if spec.require_selector and criteria.known_count == 0:
        raise InvalidInputError(spec.key, list(spec.kinds))

    raw = client.endpoint(path).list()
    if spec.parent:
        raw = [{**r, spec.parent: parent_id} for r in raw]
    candidates = [_with_all_attributes(c, spec) for c in raw]
    if spec.many:
        matches = resolve_all(candidates, criteria)
    else:
        matches = [resolve_one(candidates, criteria, kind=spec.key)]
    selected = {id(m) for m in matches}
    return [r for c, r in zip(candidates, raw) if id(c) in selected]
