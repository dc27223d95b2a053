"""Handler registry for NetBirdSync, in apply order."""

from __future__ import annotations

from dataclasses import dataclass, replace
from importlib import import_module
from typing import Dict, Iterable, List, Optional, Type

from ..utils.desired_state import KindLayout, default_sheet_name
from .base import BaseHandler


@dataclass(frozen=True)
class HandlerSpec:
    key: str                # section name in the desired file
    module: str             # module path
    class_name: str         # class symbol in module
    sheet: str              # default XLSX sheet name

    def load_class(self) -> Type[BaseHandler]:
        mod = import_module(self.module)
        return getattr(mod, self.class_name)


def _spec(key: str, class_name: str) -> HandlerSpec:
    return HandlerSpec(
        key=key,
        module=f"netbirdsync.handlers.{key}",
        class_name=class_name,
        sheet=default_sheet_name(key),
    )


# groups before the kinds that reference them, posture checks before policies,
# parents (networks, zones) before their nested kinds
_HANDLERS: Dict[str, HandlerSpec] = {
    s.key: s
    for s in (
        _spec("account_settings", "AccountSettingsHandler"),
        _spec("dns_settings", "DnsSettingsHandler"),
        _spec("groups", "GroupsHandler"),
        _spec("posture_checks", "PostureChecksHandler"),
        _spec("policies", "PoliciesHandler"),
        _spec("setup_keys", "SetupKeysHandler"),
        _spec("networks", "NetworksHandler"),
        _spec("network_resources", "NetworkResourcesHandler"),
        _spec("network_routers", "NetworkRoutersHandler"),
        _spec("routes", "RoutesHandler"),
        _spec("nameserver_groups", "NameserverGroupsHandler"),
        _spec("dns_zones", "DnsZonesHandler"),
        _spec("dns_records", "DnsRecordsHandler"),
    )
}


def get_spec(key: str) -> HandlerSpec:
    try:
        return _HANDLERS[key]
    except KeyError:
        raise KeyError(f"Unknown handler: {key}") from None


def iter_specs(only: Optional[Iterable[str]] = None) -> List[HandlerSpec]:
    """Specs in apply order, optionally restricted to ``only``."""
    if not only:
        return list(_HANDLERS.values())
    wanted = set(only)
    unknown = wanted - set(_HANDLERS)
    if unknown:
        raise KeyError(f"Unknown handler(s): {', '.join(sorted(unknown))}")
    return [s for s in _HANDLERS.values() if s.key in wanted]


def kinds() -> List[str]:
    return list(_HANDLERS)


def layouts() -> Dict[str, KindLayout]:
    return {s.key: replace(s.load_class().layout(), sheet=s.sheet) for s in _HANDLERS.values()}
