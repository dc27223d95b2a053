"""
Desired-state loading (YAML or XLSX).

The loader preserves presence: a key written in the file is ``known`` even when
its value is empty, a key left out is ``unset``. For XLSX an empty cell or a
missing column is ``unset``; the literal ``[]`` is a known empty collection.

YAML layout::

    account_settings:            # singleton kind -> mapping
      peer_login_expiration: 86400
    groups:                      # collection kind -> list of mappings
      - name: devs
        peers: []

XLSX layout: one sheet per kind (``AccountSettings``, ``Groups``, ...), one row
per entity. Collection cells hold ``a|b`` or ``a,b`` (or a YAML list for
structured items), composite cells hold YAML/JSON text. Scalar cells stay text
unless the field is typed bool or int.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd
import yaml

from .reconciler import DesiredObject, EntitySchema, FieldKind
from .tristate import UNSET_VALUE, DesiredStateError, TriState, desired_from_mapping
from .validators import coerce_scalar, require_columns, require_sheets

log = logging.getLogger(__name__)

_YAML_SUFFIXES = {".yml", ".yaml"}
_XLSX_SUFFIXES = {".xlsx", ".xlsm"}


def default_sheet_name(kind: str) -> str:
    """``network_routers`` -> ``NetworkRouters``."""
    return "".join(part.capitalize() for part in kind.split("_"))


@dataclass(frozen=True)
class KindLayout:
    """How one entity kind appears in a desired-state file.

    Attributes:
        kind: Entity kind key (``groups``).
        schema: Reconcilable fields of the kind.
        singleton: True for account-wide objects written as a single mapping.
        identity: Locator keys accepted besides the schema fields.
        required_columns: Columns an XLSX sheet for this kind must carry.
        sheet: XLSX sheet name; defaults to the CamelCase kind.
    """
    kind: str
    schema: EntitySchema
    singleton: bool = False
    identity: Tuple[str, ...] = ("id",)
    required_columns: Tuple[str, ...] = ()
    sheet: str = ""

    @property
    def allowed(self) -> List[str]:
        return list(self.identity) + [n for n in self.schema.names if n not in self.identity]

    def field_kind(self, name: str) -> FieldKind:
        for spec in self.schema.fields:
            if spec.name == name:
                return spec.kind
        return FieldKind.SCALAR

    def value_type(self, name: str) -> Optional[type]:
        # locator keys are ids, always text
        if name in self.identity and name not in self.schema.names:
            return str
        return self.schema.value_type(name)


@dataclass
class DesiredState:
    """Desired objects grouped by kind, in file order."""
    source: str
    objects: Dict[str, List[DesiredObject]] = field(default_factory=dict)

    def kinds(self) -> List[str]:
        return list(self.objects)

    def get(self, kind: str) -> List[DesiredObject]:
        return self.objects.get(kind, [])

    def __len__(self) -> int:
        return sum(len(v) for v in self.objects.values())


# ---------- YAML ----------

def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise DesiredStateError(f"Invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise DesiredStateError(f"Top-level YAML must be a mapping: {path}")
    return data


def _typed_yaml_value(layout: KindLayout, name: str, value: Any, where: str) -> Any:
    kind = layout.field_kind(name)
    if kind is FieldKind.COLLECTION:
        if value is not None and not isinstance(value, list):
            raise DesiredStateError(f"{where}: {name} must be a list, got {value!r}")
        return value
    if kind is FieldKind.COMPOSITE:
        if value is not None and not isinstance(value, (dict, list)):
            raise DesiredStateError(f"{where}: {name} must be a mapping or a list, got {value!r}")
        return value
    if isinstance(value, (dict, list)):
        raise DesiredStateError(f"{where}: {name} must be a single value, got {value!r}")
    try:
        return coerce_scalar(value, layout.value_type(name))
    except ValueError as exc:
        raise DesiredStateError(f"{where}: {name}: {exc}") from exc


def _desired_from_yaml(layout: KindLayout, item: Dict[str, Any], where: str) -> DesiredObject:
    desired = desired_from_mapping(item, layout.allowed, kind=where)
    return {
        name: TriState.known(_typed_yaml_value(layout, name, value.value, where)) if value.is_known else value
        for name, value in desired.items()
    }


def _objects_from_yaml(layout: KindLayout, raw: Any) -> List[DesiredObject]:
    if raw is None:
        return []
    if layout.singleton:
        if not isinstance(raw, dict):
            raise DesiredStateError(f"{layout.kind}: expected a mapping")
        return [_desired_from_yaml(layout, raw, layout.kind)]
    if not isinstance(raw, list):
        raise DesiredStateError(f"{layout.kind}: expected a list of mappings")
    out: List[DesiredObject] = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise DesiredStateError(f"{layout.kind}[{i}]: expected a mapping")
        out.append(_desired_from_yaml(layout, item, f"{layout.kind}[{i}]"))
    return out


# ---------- XLSX cells ----------

def _native(value: Any) -> Any:
    """Unwrap numpy scalars and collapse integral floats."""
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        value = value.item()
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return bool(pd.isna(value)) if not isinstance(value, (list, dict, str)) else False


def _parse_scalar(value: Any, value_type: Optional[type], where: str) -> Any:
    value = _native(value)
    if isinstance(value, str):
        value = value.strip()
    try:
        return coerce_scalar(value, value_type)
    except ValueError as exc:
        raise DesiredStateError(f"{where}: {exc}") from exc


def _parse_collection(value: Any, where: str) -> List[Any]:
    value = _native(value)
    if not isinstance(value, str):
        return [value]
    text = value.strip()
    if text.startswith("["):
        try:
            parsed = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise DesiredStateError(f"{where}: invalid list {text!r}: {exc}") from exc
        if not isinstance(parsed, list):
            raise DesiredStateError(f"{where}: expected a list, got {text!r}")
        return parsed
    sep = "|" if "|" in text else ","
    return [item.strip() for item in text.split(sep) if item.strip()]


def _parse_composite(value: Any, where: str) -> Any:
    value = _native(value)
    if not isinstance(value, str):
        raise DesiredStateError(f"{where}: expected YAML/JSON text, got {value!r}")
    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise DesiredStateError(f"{where}: invalid YAML/JSON: {exc}") from exc
    if parsed is not None and not isinstance(parsed, (dict, list)):
        raise DesiredStateError(f"{where}: expected an object, got {value!r}")
    return parsed


def _cell(layout: KindLayout, name: str, value: Any, where: str) -> TriState[Any]:
    if _is_blank(value):
        return UNSET_VALUE
    kind = layout.field_kind(name)
    if kind is FieldKind.COLLECTION:
        return TriState.known(_parse_collection(value, where))
    if kind is FieldKind.COMPOSITE:
        return TriState.known(_parse_composite(value, where))
    return TriState.known(_parse_scalar(value, layout.value_type(name), where))


def _objects_from_sheet(layout: KindLayout, sheet: str, df: pd.DataFrame) -> List[DesiredObject]:
    require_columns(df, layout.required_columns, context=sheet)
    columns = [str(c).strip() for c in df.columns]
    unknown = [c for c in columns if c not in layout.allowed and not c.startswith("Unnamed")]
    if unknown:
        raise DesiredStateError(f"{sheet}: unknown column(s): {', '.join(sorted(unknown))}")

    out: List[DesiredObject] = []
    for idx, row in enumerate(df.to_dict(orient="records")):
        values = {str(k).strip(): v for k, v in row.items()}
        if all(_is_blank(v) for v in values.values()):
            continue
        obj = {
            name: _cell(layout, name, values.get(name), f"{sheet} row {idx + 2} column {name}")
            for name in layout.allowed
        }
        out.append(obj)

    if layout.singleton and len(out) > 1:
        raise DesiredStateError(f"{sheet}: {layout.kind} takes a single row, found {len(out)}")
    return out


def _read_xlsx(path: Path) -> Dict[str, pd.DataFrame]:
    try:
        return pd.read_excel(path, sheet_name=None, engine="openpyxl", dtype=object)
    except (OSError, ValueError, KeyError) as exc:
        raise DesiredStateError(f"Failed to read {path}: {exc}") from exc


# ---------- Public API ----------

def load_desired_state(
    path: str,
    layouts: Mapping[str, KindLayout],
    *,
    sheet_overrides: Optional[Mapping[str, str]] = None,
    only: Optional[Iterable[str]] = None,
) -> DesiredState:
    """Load a desired-state file into DesiredObjects keyed by kind.

    Args:
        path: ``.yml``/``.yaml`` or ``.xlsx`` file.
        layouts: Known kinds (usually from the handler registry).
        sheet_overrides: XLSX sheet name per kind, replacing the CamelCase default.
        only: Restrict loading to these kinds. With XLSX their sheets become mandatory.

    Raises:
        DesiredStateError: Missing/unreadable file, unknown kinds or fields,
            missing sheets or columns, malformed cells.
    """
    p = Path(path)
    if not p.is_file():
        raise DesiredStateError(f"Desired-state file not found: {path}")

    selected = list(only) if only else list(layouts)
    unknown_kinds = [k for k in selected if k not in layouts]
    if unknown_kinds:
        raise DesiredStateError(f"Unknown kind(s): {', '.join(unknown_kinds)}")

    state = DesiredState(source=str(p))
    suffix = p.suffix.lower()

    if suffix in _YAML_SUFFIXES:
        data = _read_yaml(p)
        extra = [k for k in data if k not in layouts]
        if extra:
            raise DesiredStateError(f"Unknown kind(s) in {p.name}: {', '.join(map(str, extra))}")
        for kind in layouts:
            if kind in selected and kind in data:
                state.objects[kind] = _objects_from_yaml(layouts[kind], data[kind])

    elif suffix in _XLSX_SUFFIXES:
        sheets = _read_xlsx(p)
        names = {
            kind: (sheet_overrides or {}).get(kind) or layout.sheet or default_sheet_name(kind)
            for kind, layout in layouts.items()
        }
        if only:
            require_sheets(sheets, [names[k] for k in selected])
        ignored = set(sheets) - set(names.values())
        if ignored:
            log.debug("Ignoring sheets without a kind: %s", ", ".join(sorted(ignored)))
        for kind in layouts:
            if kind in selected and names[kind] in sheets:
                state.objects[kind] = _objects_from_sheet(layouts[kind], names[kind], sheets[names[kind]])

    else:
        raise DesiredStateError(f"Unsupported desired-state file type: {p.suffix or '(none)'}")

    return state
