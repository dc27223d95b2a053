"""
Logging for NetBirdSync runs.

Sinks hang off one base logger (``nbsync``):

- stderr, INFO and above by default
- ``<base_dir>/app.log``, rotated at UTC midnight, 14 days kept
- ``<base_dir>/YYYY-MM-DD/<action>_<run_id>.log`` on a per-run child logger

Every sink masks personal access tokens and other credentials, and prints the
run id, action and entity kind of each record.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

LOG_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | "
    "run=%(run_id)s action=%(action)s kind=%(kind)s | %(message)s"
)
REDACTED = "***REDACTED***"

_SECRET_PATTERNS = (
    re.compile(r"(Authorization:\s*(?:Token|Bearer)\s+)([A-Za-z0-9._-]+)", re.IGNORECASE),
    re.compile(r"(api[_-]?key\s*[=:]\s*)([A-Za-z0-9._-]+)", re.IGNORECASE),
    re.compile(r"(password\s*[=:]\s*)([^,\s]+)", re.IGNORECASE),
    re.compile(r"(\btoken\s*[=:]\s*)([A-Za-z0-9._-]+)", re.IGNORECASE),
)
_CONTEXT_FIELDS = ("run_id", "action", "kind")


def mask_secrets(text: str) -> str:
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(rf"\1{REDACTED}", text)
    return text


class MaskSecretsFilter(logging.Filter):
    """Masks credentials in the message template and in its string args."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = mask_secrets(record.msg)
        if isinstance(record.args, dict):
            record.args = {k: mask_secrets(v) if isinstance(v, str) else v for k, v in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(mask_secrets(a) if isinstance(a, str) else a for a in record.args)
        return True


class ContextDefaultsFilter(logging.Filter):
    """Gives records logged without the run adapter a ``-`` context."""

    def filter(self, record: logging.LogRecord) -> bool:
        for attr in _CONTEXT_FIELDS:
            if not hasattr(record, attr):
                setattr(record, attr, "-")
        return True


def _formatter() -> logging.Formatter:
    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%SZ")
    fmt.converter = time.gmtime  # type: ignore[attr-defined]
    return fmt


def _level(name: str, default: int) -> int:
    return getattr(logging, str(name).upper(), default)


def _attach(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(_formatter())
    handler.addFilter(MaskSecretsFilter())
    handler.addFilter(ContextDefaultsFilter())
    logger.addHandler(handler)


def _close(logger: logging.Logger, handler: logging.Handler) -> None:
    logger.removeHandler(handler)
    handler.close()


def _reset_console(base: logging.Logger, level: int) -> None:
    # sys.stderr may have been swapped since the last run (pytest capture)
    for h in list(base.handlers):
        if type(h) is logging.StreamHandler:
            _close(base, h)
    _attach(base, logging.StreamHandler(stream=sys.stderr), level)


def _point_app_log(base: logging.Logger, base_dir: str, level: int) -> None:
    os.makedirs(base_dir, exist_ok=True)
    target = os.path.abspath(os.path.join(base_dir, "app.log"))
    present = False
    for h in list(base.handlers):
        if not isinstance(h, logging.handlers.TimedRotatingFileHandler):
            continue
        if os.path.abspath(h.baseFilename) == target:
            present = True
        else:
            _close(base, h)
    if present:
        return
    handler = logging.handlers.TimedRotatingFileHandler(
        target, when="midnight", backupCount=14, encoding="utf-8", utc=True
    )
    _attach(base, handler, level)


def _run_logger(name: str, action: str, run_id: str, base_dir: str, level: int) -> logging.Logger:
    child = logging.getLogger(f"{name}.{action}.{run_id}")
    child.setLevel(logging.DEBUG)
    if not any(isinstance(h, logging.FileHandler) for h in child.handlers):
        day_dir = os.path.join(base_dir, datetime.now(timezone.utc).strftime("%Y-%m-%d"))
        os.makedirs(day_dir, exist_ok=True)
        _attach(child, logging.FileHandler(os.path.join(day_dir, f"{action}_{run_id}.log"), encoding="utf-8"), level)
    return child


def build_logger(
    *,
    name: str = "nbsync",
    run_id: str,
    action: str,
    base_dir: str = "logs",
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    extra: Optional[Dict[str, Any]] = None,
) -> logging.LoggerAdapter:
    """Wire the sinks for one run and return its adapter.

    Records of the returned adapter go to the per-run file and propagate to the
    console and ``app.log``. ``extra`` may carry ``kind``.
    """
    file_lvl = _level(file_level, logging.DEBUG)
    base = logging.getLogger(name)
    base.setLevel(logging.DEBUG)
    _reset_console(base, _level(console_level, logging.INFO))
    _point_app_log(base, base_dir, file_lvl)

    child = _run_logger(name, action, run_id, base_dir, file_lvl)
    adapter = logging.LoggerAdapter(
        child,
        {"run_id": run_id, "action": action, "kind": (extra or {}).get("kind") or "-"},
    )
    adapter.debug("Logger initialised")
    return adapter


def with_kind(logger: logging.LoggerAdapter, kind: str) -> logging.LoggerAdapter:
    """Return a sibling adapter whose records carry ``kind``."""
    return logging.LoggerAdapter(logger.logger, {**logger.extra, "kind": kind})
