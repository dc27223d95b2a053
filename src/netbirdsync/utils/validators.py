"""
Desired-state validators: required sheets and columns, typed scalar cells.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

import pandas as pd

from .tristate import DesiredStateError


def require_sheets(xlsx_sheets: Dict[str, pd.DataFrame], required: Iterable[str]) -> None:
    """Ensure that all required sheet names are present."""
    missing = [s for s in required if s not in xlsx_sheets]
    if missing:
        raise DesiredStateError(f"Missing required sheets: {', '.join(missing)}")


def require_columns(
    df: pd.DataFrame,
    required: Iterable[str],
    context: Optional[str] = None,
) -> None:
    """Ensure that all required columns are present in a DataFrame.

    Parameters
    ----------
    df : pandas.DataFrame
        The DataFrame to validate.
    required : Iterable[str]
        Column names that must be present in ``df``.
    context : str, optional
        Prepended to the error message (usually the sheet name).

    Raises
    ------
    DesiredStateError
        If one or more required columns are missing.
    """
    missing = [c for c in required if c not in df.columns]
    if missing:
        prefix = f"{context}: " if context else ""
        raise DesiredStateError(f"{prefix}Missing required columns: {', '.join(missing)}")


_TRUE_WORDS = {"true", "yes", "on", "1"}
_FALSE_WORDS = {"false", "no", "off", "0"}


def coerce_scalar(value: Any, value_type: Optional[type]) -> Any:
    """Convert one scalar to ``value_type``; without a type the value is returned as is.

    Text becomes a bool or an int only when the field is typed that way, so a
    name such as ``0123`` or ``off`` stays text. Numbers given for a text field
    become text.

    Raises
    ------
    ValueError
        If ``value`` cannot represent ``value_type``.
    """
    if value is None or value_type is None:
        return value
    if value_type is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)) and value in (0, 1):
            return bool(value)
        if isinstance(value, str):
            word = value.strip().lower()
            if word in _TRUE_WORDS:
                return True
            if word in _FALSE_WORDS:
                return False
        raise ValueError(f"expected true or false, got {value!r}")
    if value_type is int:
        if isinstance(value, bool):
            raise ValueError(f"expected an integer, got {value!r}")
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            text = value.strip()
            try:
                return int(text)
            except ValueError:
                try:
                    number = float(text)
                except ValueError:
                    number = None
                if number is not None and number.is_integer():
                    return int(number)
        raise ValueError(f"expected an integer, got {value!r}")
    if value_type is str:
        if isinstance(value, str):
            return value
        if isinstance(value, bool):
            raise ValueError(f"expected text, got {value!r} (quote it)")
        if isinstance(value, (int, float)):
            return str(value)
        raise ValueError(f"expected text, got {value!r}")
    return value
