"""
Account settings handler.

The account always exists: it is fetched from ``/api/accounts`` (the token
only sees its own account) and updated with ``PUT /api/accounts/{id}``.
Three flags live in the ``settings.extra`` block of the API object.
"""
from __future__ import annotations

from typing import Any, Dict

from ..core.netbird_client import NetBirdClient
from ..utils.reconciler import EntitySchema, FieldKind, FieldSpec, MergeResult
from ..utils.resolvers import NotFoundError
from .base import BaseHandler

_EXTRA_FIELDS = (
    "peer_approval_enabled",
    "network_traffic_logs_enabled",
    "network_traffic_packet_counter_enabled",
)


class AccountSettingsHandler(BaseHandler):
    kind = "account_settings"
    path = "/api/accounts"
    singleton = True
    identity = ()
    required_columns = ()
    locate_keys = ()
    schema = EntitySchema(
        kind="account_settings",
        fields=(
            FieldSpec("jwt_allow_groups", FieldKind.COLLECTION),
            FieldSpec("jwt_groups_claim_name", value_type=str),
            FieldSpec("jwt_groups_enabled", value_type=bool),
            FieldSpec("groups_propagation_enabled", value_type=bool),
            FieldSpec("routing_peer_dns_resolution_enabled", value_type=bool),
            FieldSpec("peer_login_expiration", value_type=int),
            FieldSpec("peer_login_expiration_enabled", value_type=bool),
            FieldSpec("peer_inactivity_expiration", value_type=int),
            FieldSpec("peer_inactivity_expiration_enabled", value_type=bool),
            FieldSpec("regular_users_view_blocked", value_type=bool),
            FieldSpec("peer_approval_enabled", value_type=bool),
            FieldSpec("network_traffic_logs_enabled", value_type=bool),
            FieldSpec("network_traffic_packet_counter_enabled", value_type=bool),
        ),
    )

    def fetch_singleton(self, client: NetBirdClient) -> Dict[str, Any]:
        accounts = client.endpoint(self.path).list()
        if not accounts:
            raise NotFoundError(self.kind, {})
        return accounts[0]

    def to_state(self, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        settings = api_obj.get("settings") or {}
        extra = settings.get("extra") or {}
        state = {}
        for name in self.schema.names:
            state[name] = extra.get(name) if name in _EXTRA_FIELDS else settings.get(name)
        return state

    def build_update(self, merged: MergeResult, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        settings = {k: v for k, v in merged.items() if k not in _EXTRA_FIELDS and v is not None}
        # keep flags of the extra block this tool does not manage
        extra = dict((api_obj.get("settings") or {}).get("extra") or {})
        extra.update({k: merged[k] for k in _EXTRA_FIELDS if merged[k] is not None})
        settings["extra"] = extra
        return {"settings": settings}
