"""
Runtime settings for nbsync.

Layers, lowest first: section defaults, the first YAML file found, the
``NB_MANAGEMENT_URL``/``NB_PAT`` variables, ``NBSYNC_<SECTION>__<KEY>``
variables, then CLI overrides. A ``.env`` file only fills variables the
process does not already have.
"""

from __future__ import annotations

import dataclasses
import os
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import find_dotenv, load_dotenv


class ConfigError(ValueError):
    """Settings are missing, malformed or unknown."""


@dataclass
class AppSection:
    run_id: Optional[str] = None
    dry_run: bool = False


@dataclass
class NetBirdSection:
    management_url: str = "https://api.netbird.io"
    token: str = ""
    # "Token" for personal access tokens, "Bearer" for OAuth
    token_type: str = "Token"
    verify_tls: bool = True
    timeout_sec: int = 30
    retries: int = 3


@dataclass
class LoggingSection:
    base_dir: str = "logs"
    console_level: str = "INFO"
    file_level: str = "DEBUG"


@dataclass
class InputsSection:
    desired_path: str = "./netbird.yml"
    sheet_overrides: Dict[str, str] = field(default_factory=dict)


_SECTIONS = {
    "app": AppSection,
    "netbird": NetBirdSection,
    "logging": LoggingSection,
    "inputs": InputsSection,
}


@dataclass
class AppConfig:
    app: AppSection
    netbird: NetBirdSection
    logging: LoggingSection
    inputs: InputsSection

    @property
    def run_id(self) -> str:
        """12 hex chars, drawn on first access when none was configured."""
        if not self.app.run_id:
            self.app.run_id = uuid.uuid4().hex[:12]
        return self.app.run_id


_DEFAULT_FILES: Tuple[str, ...] = (
    "./netbirdsync.yml",
    os.path.expanduser("~/.config/netbirdsync/config.yml"),
    "/etc/netbirdsync/config.yml",
)

_NETBIRD_ENV = {"NB_MANAGEMENT_URL": "management_url", "NB_PAT": "token"}
_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_TRUE = {"1", "true", "yes", "y", "on"}


def _defaults() -> Dict[str, Any]:
    return {name: dataclasses.asdict(cls()) for name, cls in _SECTIONS.items()}


def _overlay(lower: Dict[str, Any], upper: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Nested dicts combine key by key; any other value in ``upper`` replaces."""
    out = dict(lower)
    for key, value in (upper or {}).items():
        below = out.get(key)
        out[key] = _overlay(below, value) if isinstance(value, dict) and isinstance(below, dict) else value
    return out


def _file_layer(files: Tuple[str, ...]) -> Dict[str, Any]:
    path = next((p for p in files if os.path.exists(p)), None)
    if path is None:
        return {}
    with open(path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")
    return data


def _netbird_layer() -> Dict[str, Any]:
    found = {key: os.environ[var] for var, key in _NETBIRD_ENV.items() if os.environ.get(var)}
    return {"netbird": found} if found else {}


def _prefixed_layer(prefix: str) -> Dict[str, Any]:
    # NBSYNC_NETBIRD__VERIFY_TLS=false -> {"netbird": {"verify_tls": "false"}}
    layer: Dict[str, Any] = {}
    for var, value in os.environ.items():
        if not var.startswith(prefix):
            continue
        *parents, leaf = var[len(prefix):].lower().split("__")
        node = layer
        for part in parents:
            node = node.setdefault(part, {})
        node[leaf] = value
    return layer


def _expand(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _expand(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand(v) for v in value]
    if isinstance(value, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), ""), value)
    return value


def _typed(section: str, values: Dict[str, Any]) -> Dict[str, Any]:
    """Cast bool and int settings from their text form, using the section's annotations."""
    cls = _SECTIONS.get(section)
    if cls is None or not isinstance(values, dict):
        return values
    annotations = {f.name: f.type for f in dataclasses.fields(cls)}
    out = dict(values)
    for key, value in values.items():
        kind = annotations.get(key)
        if kind == "bool" and not isinstance(value, bool):
            out[key] = str(value).strip().lower() in _TRUE
        elif kind == "int" and not isinstance(value, int):
            try:
                out[key] = int(value)
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"{section}.{key} must be an integer, got {value!r}") from exc
    return out


def _check_api_settings(netbird: Dict[str, Any]) -> None:
    missing: List[str] = [f"netbird.{k}" for k in ("management_url", "token") if not netbird.get(k)]
    if missing:
        raise ConfigError(
            f"Missing required configuration: {', '.join(missing)}. "
            "Set them in netbirdsync.yml, via NBSYNC_NETBIRD__* or NB_MANAGEMENT_URL/NB_PAT."
        )
    if netbird.get("token_type") not in ("Token", "Bearer"):
        raise ConfigError(f"netbird.token_type must be 'Token' or 'Bearer', got {netbird.get('token_type')!r}")


def load_config(
    cli_overrides: Optional[Dict[str, Any]] = None,
    files: Tuple[str, ...] = _DEFAULT_FILES,
    env_prefix: str = "NBSYNC_",
    validate: bool = True,
) -> AppConfig:
    """Resolve every layer into an :class:`AppConfig`.

    ``${VAR}`` references in string values are expanded after layering.
    With ``validate`` the API URL, token and token type are checked.
    """
    env_path = find_dotenv(usecwd=True)
    if env_path:
        load_dotenv(env_path, override=False)

    resolved = _defaults()
    for layer in (_file_layer(files), _netbird_layer(), _prefixed_layer(env_prefix), cli_overrides):
        resolved = _overlay(resolved, layer)
    resolved = {name: _typed(name, values) for name, values in _expand(resolved).items()}

    if validate:
        _check_api_settings(resolved.get("netbird", {}))

    unknown = sorted(set(resolved) - set(_SECTIONS))
    if unknown:
        raise ConfigError(f"Unknown configuration section(s): {', '.join(unknown)}")
    try:
        return AppConfig(**{name: cls(**resolved[name]) for name, cls in _SECTIONS.items()})
    except TypeError as exc:
        raise ConfigError(f"Unknown configuration key: {exc}") from exc
