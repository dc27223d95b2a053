import pytest

from netbirdsync.handlers.account_settings import AccountSettingsHandler
from netbirdsync.handlers.base import map_known
from netbirdsync.handlers.dns_records import DnsRecordsHandler
from netbirdsync.handlers.dns_settings import DnsSettingsHandler
from netbirdsync.handlers.dns_zones import DnsZonesHandler
from netbirdsync.handlers.groups import GroupsHandler
from netbirdsync.handlers.nameserver_groups import NameserverGroupsHandler
from netbirdsync.handlers.network_resources import NetworkResourcesHandler
from netbirdsync.handlers.network_routers import NetworkRoutersHandler
from netbirdsync.handlers.networks import NetworksHandler
from netbirdsync.handlers.policies import PoliciesHandler, canonical_rule
from netbirdsync.handlers.posture_checks import PostureChecksHandler
from netbirdsync.handlers.routes import RoutesHandler
from netbirdsync.handlers.setup_keys import SetupKeysHandler
from netbirdsync.utils.tristate import TriState, desired_from_mapping


def _desired(handler_cls, **raw):
    return desired_from_mapping(raw, handler_cls.layout().allowed, kind=handler_cls.kind)


def _one(handler, client, raw, dry_run=False):
    (result,) = handler.apply_all(client, [_desired(type(handler), **raw)], dry_run)
    return result


# ---------- groups ----------

def test_group_dry_run_makes_no_writes(netbird, client):
    netbird.collections["/api/groups"] = []
    res = _one(GroupsHandler(), client, {"name": "devs", "peers": ["p1"]}, dry_run=True)
    assert (res.op, res.status) == ("CREATE", "PLANNED")
    assert res.entity == {"name": "devs", "peers": ["p1"], "resources": []}
    assert netbird.writes == []


def test_group_create_from_defaults(netbird, client):
    netbird.collections["/api/groups"] = []
    res = _one(GroupsHandler(), client, {"name": "devs"})
    assert (res.op, res.status) == ("CREATE", "APPLIED")
    assert netbird.writes == [("POST", "/api/groups", {"name": "devs", "peers": []})]
    assert res.entity["id"] == "new-1"


def test_group_identical_is_unchanged(netbird, client):
    netbird.collections["/api/groups"] = [
        {"id": "g1", "name": "devs", "peers": [{"id": "p1", "name": "laptop"}], "resources": []},
    ]
    res = _one(GroupsHandler(), client, {"name": "devs", "peers": ["p1"]})
    assert (res.op, res.status, res.reason) == ("NOOP", "UNCHANGED", "Identical subset")
    assert netbird.writes == []


def test_group_known_empty_peers_clears(netbird, client):
    netbird.collections["/api/groups"] = [
        {"id": "g1", "name": "devs", "peers": [{"id": "p1"}], "resources": [{"id": "r1", "type": "host"}]},
    ]
    res = _one(GroupsHandler(), client, {"name": "devs", "peers": []})
    assert (res.op, res.status, res.reason) == ("UPDATE", "APPLIED", "Field differs: peers")
    assert netbird.writes == [
        ("PUT", "/api/groups/g1", {"name": "devs", "peers": [], "resources": [{"id": "r1", "type": "host"}]}),
    ]


def test_group_located_by_id(netbird, client):
    netbird.collections["/api/groups"] = [{"id": "g1", "name": "old", "peers": []}]
    res = _one(GroupsHandler(), client, {"id": "g1", "name": "new"})
    assert res.key == "g1" and res.op == "UPDATE"
    assert netbird.calls("GET", "/api/groups/g1") == 1
    assert netbird.writes[0][2]["name"] == "new"


def test_group_errors_do_not_stop_the_batch(netbird, client):
    netbird.collections["/api/groups"] = [
        {"id": "g1", "name": "dup", "peers": []},
        {"id": "g2", "name": "dup", "peers": []},
    ]
    results = GroupsHandler().apply_all(
        client,
        [
            _desired(GroupsHandler, name="dup"),
            _desired(GroupsHandler, peers=["p1"]),
            _desired(GroupsHandler, id="missing", name="x"),
            _desired(GroupsHandler, name="fresh"),
        ],
        False,
    )
    assert [(r.key, r.op, r.status) for r in results] == [
        ("dup", "-", "ERROR"),
        ("(new)", "-", "ERROR"),
        ("missing", "-", "ERROR"),
        ("fresh", "CREATE", "APPLIED"),
    ]
    assert "ambiguous" in results[0].error
    assert "must add at least one of (id, name)" in results[1].error
    assert "status=404" in results[2].error


def test_unexpected_exception_row(netbird, client, monkeypatch):
    netbird.collections["/api/groups"] = []

    def boom(merged):
        raise RuntimeError("boom")

    handler = GroupsHandler()
    monkeypatch.setattr(handler, "build_create", boom)
    res = _one(handler, client, {"name": "devs"})
    assert res.status == "EXCEPTION" and res.failed
    assert res.error == "RuntimeError: boom"


def test_map_known_leaves_unset_and_none():
    desired = {"a": TriState.known(["x"]), "b": TriState.unset(), "c": TriState.known(None)}
    out = map_known(desired, {"a": lambda v: v + ["y"], "b": list, "c": list})
    assert out["a"].value == ["x", "y"]
    assert not out["b"].is_known
    assert out["c"].value is None


# ---------- setup keys ----------

_KEY = {
    "id": "k1",
    "name": "ci",
    "type": "reusable",
    "usage_limit": 0,
    "ephemeral": True,
    "allow_extra_dns_labels": False,
    "auto_groups": ["g1"],
    "revoked": False,
    "state": "valid",
}


def test_setup_key_immutable_change_is_error(netbird, client):
    netbird.collections["/api/setup-keys"] = [dict(_KEY)]
    res = _one(SetupKeysHandler(), client, {"name": "ci", "type": "one-off", "auto_groups": ["g2"]})
    assert (res.op, res.status) == ("UPDATE", "ERROR")
    assert res.error == "Changing type requires replacement"
    assert netbird.writes == []


def test_setup_key_updates_mutable_fields_only(netbird, client):
    netbird.collections["/api/setup-keys"] = [dict(_KEY)]
    res = _one(SetupKeysHandler(), client, {"name": "ci", "auto_groups": ["g2"], "expires_in": 86400})
    assert (res.op, res.status) == ("UPDATE", "APPLIED")
    assert netbird.writes == [("PUT", "/api/setup-keys/k1", {"revoked": False, "auto_groups": ["g2"]})]


def test_setup_key_create_payload(netbird, client):
    netbird.collections["/api/setup-keys"] = []
    _one(SetupKeysHandler(), client, {"name": "laptops", "type": "reusable", "expires_in": 86400})
    ((_, path, payload),) = netbird.writes
    assert path == "/api/setup-keys"
    assert payload == {
        "name": "laptops",
        "type": "reusable",
        "expires_in": 86400,
        "usage_limit": 0,
        "ephemeral": False,
        "allow_extra_dns_labels": False,
        "auto_groups": [],
    }


# ---------- singletons ----------

def test_account_settings_keeps_unmanaged_extra(netbird, client):
    netbird.collections["/api/accounts"] = [{
        "id": "acc1",
        "settings": {
            "peer_login_expiration": 86400,
            "peer_login_expiration_enabled": True,
            "jwt_allow_groups": [],
            "extra": {"peer_approval_enabled": False, "user_approval_required": True},
        },
    }]
    res = _one(AccountSettingsHandler(), client, {"peer_login_expiration": 3600, "peer_approval_enabled": True})
    assert (res.key, res.op, res.status) == ("account_settings", "UPDATE", "APPLIED")
    ((method, path, payload),) = netbird.writes
    assert (method, path) == ("PUT", "/api/accounts/acc1")
    assert payload["settings"]["peer_login_expiration"] == 3600
    assert payload["settings"]["peer_login_expiration_enabled"] is True
    assert payload["settings"]["extra"] == {"peer_approval_enabled": True, "user_approval_required": True}


def test_account_settings_without_account(netbird, client):
    netbird.collections["/api/accounts"] = []
    res = _one(AccountSettingsHandler(), client, {"peer_login_expiration": 3600})
    assert res.status == "ERROR"


def test_dns_settings_put_on_collection_path(netbird, client):
    netbird.singletons["/api/dns/settings"] = {"disabled_management_groups": ["g1"]}
    res = _one(DnsSettingsHandler(), client, {"disabled_management_groups": []})
    assert res.status == "APPLIED"
    assert netbird.writes == [("PUT", "/api/dns/settings", {"disabled_management_groups": []})]
    assert _one(DnsSettingsHandler(), client, {"disabled_management_groups": []}).status == "UNCHANGED"


# ---------- network routers ----------

def test_router_requires_network_id(netbird, client):
    res = _one(NetworkRoutersHandler(), client, {"peer": "p1"})
    assert res.status == "ERROR" and "network_id is required" in res.error


def test_router_create_and_update(netbird, client):
    netbird.collections["/api/networks/n1/routers"] = [
        {"id": "r1", "peer": None, "peer_groups": ["g1"], "metric": 9999, "masquerade": True, "enabled": True},
    ]
    created = _one(NetworkRoutersHandler(), client, {"network_id": "n1", "peer": "p1"})
    assert created.op == "CREATE"
    assert netbird.writes[-1] == (
        "POST", "/api/networks/n1/routers", {"peer": "p1", "metric": 9999, "masquerade": True, "enabled": True},
    )

    updated = _one(NetworkRoutersHandler(), client, {"id": "r1", "network_id": "n1", "metric": 100})
    assert (updated.op, updated.status) == ("UPDATE", "APPLIED")
    assert netbird.writes[-1] == (
        "PUT", "/api/networks/n1/routers/r1",
        {"peer_groups": ["g1"], "metric": 100, "masquerade": True, "enabled": True},
    )


# ---------- policies and posture checks ----------

_API_POLICY = {
    "id": "pol1",
    "name": "devs-to-servers",
    "description": "",
    "enabled": True,
    "source_posture_checks": [],
    "rules": [{
        "id": "rule1",
        "name": "ssh",
        "action": "accept",
        "protocol": "tcp",
        "bidirectional": False,
        "enabled": True,
        "ports": ["22"],
        "sources": [{"id": "g1", "name": "devs"}],
        "destinations": [{"id": "g2", "name": "servers"}],
    }],
}


def test_canonical_rule_defaults():
    assert canonical_rule({"sources": ["g1"], "ports": [22], "port_ranges": []}) == {
        "name": None,
        "description": None,
        "action": "accept",
        "protocol": "all",
        "enabled": True,
        "bidirectional": True,
        "ports": ["22"],
        "port_ranges": None,
        "sources": ["g1"],
        "destinations": None,
        "source_resource": None,
        "destination_resource": None,
    }


def test_policy_matching_rules_are_unchanged(netbird, client):
    netbird.collections["/api/policies"] = [dict(_API_POLICY)]
    rules = [{"name": "ssh", "protocol": "tcp", "bidirectional": False, "ports": [22],
              "sources": ["g1"], "destinations": ["g2"]}]
    res = _one(PoliciesHandler(), client, {"name": "devs-to-servers", "rules": rules})
    assert res.status == "UNCHANGED"


def test_policy_update_sends_rules_without_nulls(netbird, client):
    netbird.collections["/api/policies"] = [dict(_API_POLICY)]
    res = _one(PoliciesHandler(), client, {"name": "devs-to-servers", "enabled": False})
    assert res.reason == "Field differs: enabled"
    ((_, path, payload),) = netbird.writes
    assert path == "/api/policies/pol1"
    assert payload["enabled"] is False
    assert "description" not in payload
    assert payload["rules"] == [{
        "name": "ssh",
        "action": "accept",
        "protocol": "tcp",
        "enabled": True,
        "bidirectional": False,
        "ports": ["22"],
        "sources": ["g1"],
        "destinations": ["g2"],
    }]


def test_posture_check_round_trip(netbird, client):
    netbird.collections["/api/posture-checks"] = []
    desired = {
        "name": "baseline",
        "netbird_version_check": {"min_version": "0.28.0"},
        "os_version_check": {"linux_min_kernel_version": "5.4"},
        "process_check": [{"linux_path": "/usr/bin/falcon"}],
    }
    created = _one(PostureChecksHandler(), client, desired)
    assert created.op == "CREATE"
    ((_, _, payload),) = netbird.writes
    assert payload == {
        "name": "baseline",
        "checks": {
            "nb_version_check": {"min_version": "0.28.0"},
            "os_version_check": {"linux": {"min_kernel_version": "5.4"}},
            "process_check": {"processes": [{"linux_path": "/usr/bin/falcon"}]},
        },
    }

    # the stored API form compares equal to the same desired object
    again = _one(PostureChecksHandler(), client, desired)
    assert again.status == "UNCHANGED"


# ---------- networks and network resources ----------

def test_network_create_then_update_description(netbird, client):
    netbird.collections["/api/networks"] = []
    created = _one(NetworksHandler(), client, {"name": "corp", "description": ""})
    assert created.op == "CREATE"
    assert netbird.writes == [("POST", "/api/networks", {"name": "corp"})]

    updated = _one(NetworksHandler(), client, {"name": "corp", "description": "office LAN"})
    assert (updated.op, updated.reason) == ("UPDATE", "Field differs: description")
    assert netbird.writes[-1] == ("PUT", "/api/networks/new-1", {"name": "corp", "description": "office LAN"})


def test_resource_requires_network_id(netbird, client):
    res = _one(NetworkResourcesHandler(), client, {"name": "db", "address": "10.0.0.5/32"})
    assert res.status == "ERROR" and "network_id is required" in res.error
    assert netbird.requests == []


def test_resource_located_by_name_within_network(netbird, client):
    netbird.collections["/api/networks/n1/resources"] = [{
        "id": "res1",
        "name": "db",
        "description": "",
        "address": "10.0.0.5/32",
        "enabled": True,
        "groups": [{"id": "g1", "name": "servers"}],
    }]
    same = _one(NetworkResourcesHandler(), client, {"network_id": "n1", "name": "db", "groups": ["g1"]})
    assert same.status == "UNCHANGED"

    moved = _one(NetworkResourcesHandler(), client, {"network_id": "n1", "name": "db", "address": "10.0.0.6/32"})
    assert (moved.op, moved.reason) == ("UPDATE", "Field differs: address")
    assert netbird.writes == [(
        "PUT", "/api/networks/n1/resources/res1",
        {"name": "db", "address": "10.0.0.6/32", "enabled": True, "groups": ["g1"]},
    )]


def test_resource_create_needs_address(netbird, client):
    netbird.collections["/api/networks/n1/resources"] = []
    res = _one(NetworkResourcesHandler(), client, {"network_id": "n1", "name": "db"})
    assert res.status == "ERROR" and "address is required" in res.error
    assert netbird.writes == []


# ---------- routes ----------

_API_DOMAIN_ROUTE = {
    "id": "rt1",
    "network_id": "web",
    "description": "",
    "enabled": True,
    "peer": "",
    "peer_groups": ["g1"],
    "network": "192.0.2.0/32",
    "domains": ["example.com"],
    "metric": 9999,
    "masquerade": True,
    "groups": ["g2"],
    "keep_route": True,
}


def test_route_create_payload(netbird, client):
    netbird.collections["/api/routes"] = []
    res = _one(RoutesHandler(), client, {
        "network_id": "office", "network": "10.0.0.0/24", "peer_groups": ["g1"], "groups": ["g2"],
    })
    assert (res.op, res.status) == ("CREATE", "APPLIED")
    assert netbird.writes == [("POST", "/api/routes", {
        "network_id": "office",
        "description": "",
        "enabled": True,
        "peer_groups": ["g1"],
        "network": "10.0.0.0/24",
        "metric": 9999,
        "masquerade": True,
        "groups": ["g2"],
        "keep_route": True,
    })]


def test_domain_route_ignores_placeholder_network(netbird, client):
    netbird.collections["/api/routes"] = [dict(_API_DOMAIN_ROUTE)]
    same = _one(RoutesHandler(), client, {"network_id": "web", "domains": ["example.com"]})
    assert same.status == "UNCHANGED"

    changed = _one(RoutesHandler(), client, {"network_id": "web", "metric": 10})
    assert (changed.op, changed.reason) == ("UPDATE", "Field differs: metric")
    ((method, path, payload),) = netbird.writes
    assert (method, path) == ("PUT", "/api/routes/rt1")
    assert payload["metric"] == 10
    assert "network" not in payload and "peer" not in payload


@pytest.mark.parametrize("raw, message", [
    ({"network_id": "x", "network": "10.0.0.0/8", "peer": "p1", "peer_groups": ["g1"]}, "mutually exclusive"),
    ({"network_id": "x", "network": "10.0.0.0/8", "domains": ["a.example"], "peer": "p1"}, "mutually exclusive"),
    ({"network_id": "x", "peer": "p1"}, "one of network or domains"),
])
def test_route_conflicting_fields(netbird, client, raw, message):
    netbird.collections["/api/routes"] = []
    res = _one(RoutesHandler(), client, raw)
    assert res.status == "ERROR" and message in res.error
    assert netbird.writes == []


# ---------- nameserver groups ----------

def test_nameserver_group_defaults_to_primary(netbird, client):
    netbird.collections["/api/dns/nameservers"] = []
    desired = {"name": "corp-dns", "groups": ["g1"], "nameservers": [{"ip": "1.1.1.1"}]}
    res = _one(NameserverGroupsHandler(), client, desired)
    assert res.op == "CREATE"
    assert netbird.writes == [("POST", "/api/dns/nameservers", {
        "name": "corp-dns",
        "description": "",
        "groups": ["g1"],
        "domains": [],
        "nameservers": [{"ip": "1.1.1.1", "ns_type": "udp", "port": 53}],
        "enabled": True,
        "primary": True,
        "search_domains_enabled": False,
    })]
    assert _one(NameserverGroupsHandler(), client, desired).status == "UNCHANGED"


@pytest.mark.parametrize("extra, message", [
    ({"primary": True, "domains": ["corp.example"]}, "takes no domains"),
    ({"primary": False}, "needs at least one domain"),
    ({"search_domains_enabled": True}, "cannot both be true"),
    ({"nameservers": []}, "at least one nameserver"),
])
def test_nameserver_group_invalid_combinations(netbird, client, extra, message):
    netbird.collections["/api/dns/nameservers"] = []
    desired = {"name": "corp-dns", "groups": ["g1"], "nameservers": [{"ip": "1.1.1.1"}], **extra}
    res = _one(NameserverGroupsHandler(), client, desired)
    assert res.status == "ERROR" and message in res.error


# ---------- DNS zones and records ----------

def test_zone_create_then_unchanged(netbird, client):
    netbird.collections["/api/dns/zones"] = []
    desired = {"name": "internal", "domain": "corp.internal", "distribution_groups": ["g1"]}
    created = _one(DnsZonesHandler(), client, desired)
    assert created.op == "CREATE"
    assert netbird.writes == [("POST", "/api/dns/zones", {
        "name": "internal",
        "domain": "corp.internal",
        "enabled": True,
        "enable_search_domain": False,
        "distribution_groups": ["g1"],
    })]
    assert _one(DnsZonesHandler(), client, desired).status == "UNCHANGED"


def test_record_located_by_name_and_type(netbird, client):
    netbird.collections["/api/dns/zones/z1/records"] = [
        {"id": "rec1", "name": "www", "type": "A", "content": "10.0.0.10", "ttl": 300},
        {"id": "rec2", "name": "www", "type": "AAAA", "content": "fd00::10", "ttl": 300},
    ]
    res = _one(DnsRecordsHandler(), client, {"zone_id": "z1", "name": "www", "type": "AAAA", "ttl": 60})
    assert (res.key, res.op, res.reason) == ("www", "UPDATE", "Field differs: ttl")
    assert netbird.writes == [(
        "PUT", "/api/dns/zones/z1/records/rec2",
        {"name": "www", "type": "AAAA", "content": "fd00::10", "ttl": 60},
    )]


@pytest.mark.parametrize("raw, message", [
    ({"zone_id": "z1", "name": "www", "type": "MX", "content": "mail"}, "type must be one of"),
    ({"zone_id": "z1", "name": "www", "content": "10.0.0.1"}, "must add at least one of (id, name, type)"),
    ({"zone_id": "z1", "name": "api", "type": "A"}, "content is required"),
    ({"name": "api", "type": "A", "content": "10.0.0.1"}, "zone_id is required"),
])
def test_record_errors(netbird, client, raw, message):
    netbird.collections["/api/dns/zones/z1/records"] = []
    res = _one(DnsRecordsHandler(), client, raw)
    assert res.status == "ERROR" and message in res.error
    assert netbird.writes == []
