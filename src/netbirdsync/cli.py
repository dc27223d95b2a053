"""
Command-line interface for NetBirdSync.

Usage (examples):
  - Plan only:
      nbsync apply --desired ./netbird.yml --dry-run

  - Apply two kinds against a self-hosted management server:
      nbsync apply --desired ./netbird.xlsx --only groups policies \
        --management-url https://netbird.example.com --token "$NB_PAT"

  - Lookups:
      nbsync lookup group --where name=devs
      nbsync lookup peers --where groups=grp1,grp2 --where connected=true --format json
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional

from .core.config import AppConfig, ConfigError, load_config
from .core.logging_setup import build_logger, with_kind
from .core.netbird_client import HttpError, NetBirdClient
from .handlers import registry
from .handlers.base import HandlerResult
from .handlers.lookups import get_lookup, lookup_keys, run_lookup
from .utils.desired_state import load_desired_state
from .utils.matcher import CriterionKind
from .utils.reporting import print_entities, print_rows
from .utils.resolvers import InvalidInputError, ResolutionError
from .utils.tristate import DesiredStateError
from .utils.validators import coerce_scalar

log = logging.getLogger("nbsync.cli")

EXIT_OK = 0
EXIT_GENERIC_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_APPLY_FAILED = 2
EXIT_VALIDATION_ERROR = 3
EXIT_NETWORK_ERROR = 4
EXIT_RESOLUTION_ERROR = 5


def _summarize_counts(counts: Dict[str, int]) -> str:
    keys = ["APPLIED", "PLANNED", "UNCHANGED", "ERROR", "EXCEPTION"]
    return " | ".join(f"{k}={counts.get(k, 0)}" for k in keys)


def _common_options() -> argparse.ArgumentParser:
    c = argparse.ArgumentParser(add_help=False)
    c.add_argument("--config", default=None, help="Config YAML file (default: first of ./netbirdsync.yml, ~/.config/netbirdsync/config.yml, /etc/netbirdsync/config.yml)")
    c.add_argument("--management-url", default=None, help="NetBird management URL (default https://api.netbird.io)")
    c.add_argument("--token", default=None, help="Personal access token (prefer NB_PAT)")
    c.add_argument("--no-verify", action="store_true", help="Disable TLS verification")
    c.add_argument("--timeout-sec", type=int, default=None, help="HTTP timeout seconds")
    c.add_argument("--retries", type=int, default=None, help="HTTP retries of GET/PUT/DELETE on 5xx or network errors")
    c.add_argument("--logs-dir", default=None, help="Logs base directory")
    c.add_argument("--console-level", default=None, help="Console log level (DEBUG..CRITICAL)")
    c.add_argument("--file-level", default=None, help="File log level (DEBUG..CRITICAL)")
    c.add_argument("--format", choices=["table", "json"], default="table", help="Output format")
    return c


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="nbsync", description="Reconcile NetBird configuration from a desired-state file")
    sub = p.add_subparsers(dest="cmd", required=True)
    common = _common_options()

    a = sub.add_parser("apply", parents=[common], help="Reconcile the desired state against NetBird")
    a.add_argument("--desired", default=None, help="Desired-state file (.yml/.yaml/.xlsx)")
    a.add_argument("--only", nargs="+", choices=registry.kinds(), default=None, help="Restrict to these kinds")
    a.add_argument("--dry-run", action="store_true", help="Plan only, no write requests")

    lk = sub.add_parser("lookup", parents=[common], help="Find entities from partial criteria")
    lk.add_argument("kind", choices=lookup_keys(), help="Lookup kind")
    lk.add_argument("--where", action="append", default=[], metavar="KEY=VALUE", help="Selector (repeatable)")

    return p


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Only options given on the command line override file/env settings."""
    sections = {
        "app": {"dry_run": True if getattr(args, "dry_run", False) else None},
        "netbird": {
            "management_url": args.management_url,
            "token": args.token,
            "verify_tls": False if args.no_verify else None,
            "timeout_sec": args.timeout_sec,
            "retries": args.retries,
        },
        "logging": {
            "base_dir": args.logs_dir,
            "console_level": args.console_level,
            "file_level": args.file_level,
        },
        "inputs": {"desired_path": getattr(args, "desired", None)},
    }
    out: Dict[str, Any] = {}
    for section, values in sections.items():
        kept = {k: v for k, v in values.items() if v is not None}
        if kept:
            out[section] = kept
    return out


def _load_cfg(args: argparse.Namespace) -> AppConfig:
    if args.config:
        if not os.path.isfile(args.config):
            raise ConfigError(f"Config file not found: {args.config}")
        return load_config(_cli_overrides(args), files=(args.config,))
    return load_config(_cli_overrides(args))


def _client(cfg: AppConfig, logger: logging.LoggerAdapter) -> NetBirdClient:
    return NetBirdClient(
        base_url=cfg.netbird.management_url,
        token=cfg.netbird.token,
        token_type=cfg.netbird.token_type,
        verify_tls=cfg.netbird.verify_tls,
        timeout_sec=cfg.netbird.timeout_sec,
        retries=cfg.netbird.retries,
        logger=logger,
    )


def _logger(cfg: AppConfig, action: str) -> logging.LoggerAdapter:
    return build_logger(
        run_id=cfg.run_id,
        action=action,
        base_dir=cfg.logging.base_dir,
        console_level=cfg.logging.console_level,
        file_level=cfg.logging.file_level,
    )


def _apply_cmd(args: argparse.Namespace) -> int:
    cfg = _load_cfg(args)
    logger = _logger(cfg, "apply")
    dry_run = bool(cfg.app.dry_run)
    logger.info("Starting nbsync apply (dry_run=%s, desired=%s)", dry_run, cfg.inputs.desired_path)

    state = load_desired_state(
        cfg.inputs.desired_path,
        registry.layouts(),
        sheet_overrides=cfg.inputs.sheet_overrides,
        only=args.only,
    )
    logger.info("Loaded %s desired objects (%s)", len(state), ", ".join(state.kinds()) or "none")

    results: List[HandlerResult] = []
    client = _client(cfg, logger)
    try:
        for spec in registry.iter_specs(args.only):
            desired = state.get(spec.key)
            if not desired:
                continue
            handler = spec.load_class()(logger=with_kind(logger, spec.key))
            results.extend(handler.apply_all(client, desired, dry_run))
    finally:
        client.close()

    print_rows([r.as_row() for r in results], args.format)
    counts = Counter(r.status for r in results)
    logger.info("Apply summary: %s", _summarize_counts(counts))
    return EXIT_APPLY_FAILED if any(r.failed for r in results) else EXIT_OK


def parse_where(kind: str, items: Iterable[str]) -> Dict[str, Any]:
    """``key=value`` pairs to a selector.

    Membership values split on commas; attributes typed bool or int are
    converted, everything else is compared as text (``name=0123`` stays text).
    """
    spec = get_lookup(kind)
    selector: Dict[str, Any] = {}
    for item in items:
        key, sep, raw = item.partition("=")
        key = key.strip()
        if not sep or not key:
            raise InvalidInputError(kind, message=f"--where expects KEY=VALUE, got {item!r}")
        if spec.kinds.get(key) is CriterionKind.CONTAINS_ALL:
            selector[key] = [v.strip() for v in raw.split(",") if v.strip()]
        else:
            try:
                selector[key] = coerce_scalar(raw.strip(), spec.types.get(key))
            except ValueError as exc:
                raise InvalidInputError(kind, message=f"--where {key}: {exc}") from None
    return selector


def _lookup_cmd(args: argparse.Namespace) -> int:
    cfg = _load_cfg(args)
    logger = _logger(cfg, "lookup")
    selector = parse_where(args.kind, args.where)
    logger.info("Lookup %s where %s", args.kind, selector)

    client = _client(cfg, logger)
    try:
        entities = run_lookup(client, args.kind, selector)
    finally:
        client.close()

    if args.format == "table":
        cols = get_lookup(args.kind).display
        entities = [{c: e.get(c) for c in cols} for e in entities]
    print_entities(entities, args.format)
    logger.info("Lookup %s: %s result(s)", args.kind, len(entities))
    return EXIT_OK


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    commands = {"apply": _apply_cmd, "lookup": _lookup_cmd}
    try:
        return commands[args.cmd](args)
    except ConfigError as exc:
        log.error("Configuration error: %s", exc)
        return EXIT_CONFIG_ERROR
    except DesiredStateError as exc:
        log.error("Desired state error: %s", exc)
        return EXIT_VALIDATION_ERROR
    except HttpError as exc:
        log.error("Network error: %s", exc)
        return EXIT_NETWORK_ERROR
    except ResolutionError as exc:
        log.error("Lookup failed: %s", exc)
        return EXIT_RESOLUTION_ERROR
    except Exception:  # safety net
        log.exception("Unexpected error")
        return EXIT_GENERIC_ERROR


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
