"""DNS settings handler (singleton, ``GET/PUT /api/dns/settings``)."""
from __future__ import annotations

from typing import Any, Dict

from ..core.netbird_client import NetBirdClient
from ..utils.reconciler import DesiredObject, EntitySchema, FieldKind, FieldSpec
from .base import BaseHandler


class DnsSettingsHandler(BaseHandler):
    kind = "dns_settings"
    path = "/api/dns/settings"
    singleton = True
    identity = ()
    required_columns = ()
    locate_keys = ()
    schema = EntitySchema(
        kind="dns_settings",
        fields=(FieldSpec("disabled_management_groups", FieldKind.COLLECTION),),
        defaults={"disabled_management_groups": []},
    )

    def fetch_singleton(self, client: NetBirdClient) -> Dict[str, Any]:
        data = client.get_json(self.path)
        return data if isinstance(data, dict) else {}

    def to_state(self, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        return {"disabled_management_groups": list(api_obj.get("disabled_management_groups") or [])}

    def write_update(self, client: NetBirdClient, desired: DesiredObject, api_obj: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
        data = client.put_json(self.path, payload)
        return data if isinstance(data, dict) else {}
