"""
DNS records handler.

Records live under their zone (``/api/dns/zones/{zone_id}/records``). The same
name can carry records of several types, so a record is located by name and
type together.
"""
from __future__ import annotations

from ..utils.reconciler import DesiredObject, EntitySchema, FieldSpec, MergeResult
from ..utils.tristate import DesiredStateError
from .base import BaseHandler

RECORD_TYPES = ("A", "AAAA", "CNAME")


class DnsRecordsHandler(BaseHandler):
    kind = "dns_records"
    path = "/api/dns/zones/{zone_id}/records"
    parent = "zone_id"
    identity = ("id", "zone_id")
    locate_keys = ("name", "type")
    required_columns = ("zone_id", "name", "type")
    schema = EntitySchema(
        kind="dns_records",
        fields=(
            FieldSpec("name"),
            FieldSpec("type"),
            FieldSpec("content", value_type=str),
            FieldSpec("ttl"),
        ),
        defaults={"name": "", "type": "", "content": None, "ttl": 300},
    )

    def validate_desired(self, desired: DesiredObject) -> None:
        super().validate_desired(desired)
        rtype = desired.get("type")
        if rtype is not None and rtype.is_known and rtype.value not in RECORD_TYPES:
            raise DesiredStateError(f"{self.kind}: type must be one of {', '.join(RECORD_TYPES)}, got {rtype.value!r}")

    def validate_merged(self, merged: MergeResult) -> None:
        if not merged["content"]:
            raise DesiredStateError(f"{self.kind}: content is required")
