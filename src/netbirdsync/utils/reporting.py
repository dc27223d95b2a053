"""
Reporting helpers (table or JSON) for handler results and lookups.

`print_rows` keeps the columns that carry a value in at least one row and
produces a compact table for CLI use. JSON output is also supported for
machine consumption.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Sequence


def _present(v: Any) -> bool:
    return not (v is None or v == "" or v == [] or v == {})


def _fmt(v: Any, limit: int = 60) -> str:
    if isinstance(v, bool):
        return "✓" if v else "✗"
    if isinstance(v, (dict, list)):
        s = json.dumps(v, ensure_ascii=False)
    else:
        s = "" if v is None else str(v)
    if s == "":
        return "—"
    return s if len(s) <= limit else s[: limit - 1] + "…"


def _table(rows: List[Dict[str, Any]], cols: Sequence[str]) -> None:
    widths = {c: len(c) for c in cols}
    for r in rows:
        for c in cols:
            widths[c] = max(widths[c], len(_fmt(r.get(c))))

    print("| " + " | ".join(c.ljust(widths[c]) for c in cols) + " |")
    print("| " + " | ".join("-" * widths[c] for c in cols) + " |")
    for r in rows:
        print("| " + " | ".join(_fmt(r.get(c)).ljust(widths[c]) for c in cols) + " |")


def print_rows(rows: List[Dict[str, Any]], fmt: str = "table") -> None:
    """Render handler result rows as a table or JSON.

    Args:
        rows: Dict rows with kind, key, op, status, reason and error.
        fmt: Either ``"table"`` (default) or ``"json"``.
    """
    if fmt == "json":
        print(json.dumps(rows, indent=2, default=str))
        return

    candidates = ["kind", "key", "op", "status", "reason", "error"]
    mandatory = {"kind", "key", "op", "status"}
    cols = [c for c in candidates if c in mandatory or any(_present(r.get(c)) for r in rows)]
    _table(rows, cols)


def print_entities(entities: List[Dict[str, Any]], fmt: str = "table") -> None:
    """Render lookup results; table columns follow the first entity's key order."""
    if fmt == "json":
        print(json.dumps(entities, indent=2, default=str))
        return
    if not entities:
        print("(no match)")
        return

    cols: List[str] = []
    for e in entities:
        for k in e:
            if k not in cols and any(_present(x.get(k)) for x in entities):
                cols.append(k)
    _table(entities, cols)
