"""
Setup keys handler.

Only ``auto_groups`` and ``revoked`` can change on an existing key; every
other field is fixed at creation. ``expires_in`` is a create-time input the
API never echoes back, so it is not compared.
"""
from __future__ import annotations

from typing import Any, Dict

from ..utils.reconciler import EntitySchema, FieldKind, FieldSpec, MergeResult
from .base import BaseHandler

_UPDATABLE = ("revoked", "auto_groups")


class SetupKeysHandler(BaseHandler):
    kind = "setup_keys"
    path = "/api/setup-keys"
    schema = EntitySchema(
        kind="setup_keys",
        fields=(
            FieldSpec("name", mutable=False),
            FieldSpec("type", mutable=False),
            FieldSpec("expires_in", compare=False, mutable=False),
            FieldSpec("usage_limit", mutable=False),
            FieldSpec("ephemeral", mutable=False),
            FieldSpec("allow_extra_dns_labels", mutable=False),
            FieldSpec("auto_groups", FieldKind.COLLECTION),
            FieldSpec("revoked"),
        ),
        defaults={
            "name": "",
            "type": "one-off",
            "expires_in": 0,
            "usage_limit": 0,
            "ephemeral": False,
            "allow_extra_dns_labels": False,
            "auto_groups": [],
            "revoked": False,
        },
    )

    def build_create(self, merged: MergeResult) -> Dict[str, Any]:
        payload = {k: v for k, v in merged.items() if k != "revoked"}
        payload["auto_groups"] = payload.get("auto_groups") or []
        return payload

    def build_update(self, merged: MergeResult, api_obj: Dict[str, Any]) -> Dict[str, Any]:
        payload = {k: merged[k] for k in _UPDATABLE}
        payload["auto_groups"] = payload["auto_groups"] or []
        payload["revoked"] = bool(payload["revoked"])
        return payload
