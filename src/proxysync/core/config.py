from __future__ import annotations

import os
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import find_dotenv, load_dotenv

from .errors import ProxySyncError


class ConfigError(ProxySyncError, ValueError):
    """Raised when runtime configuration cannot be resolved."""


# ---------- Typed sections ----------

@dataclass
class AppSection:
    run_id: Optional[str] = None
    dry_run: bool = False


@dataclass
class ApiSection:
    base_url: str = "https://compute.googleapis.com/compute/v1"
    token: str = ""          # secret – never log in clear text
    project: str = ""
    verify_tls: bool = True
    timeout_sec: float = 30
    retries: int = 3
    backoff_base_sec: float = 0.5


@dataclass
class NamingSection:
    prefix: str = "k8s"


@dataclass
class OperationsSection:
    wait: bool = True
    interval_sec: float = 1.0
    timeout_sec: float = 180.0


@dataclass
class LoggingSection:
    base_dir: str = "logs"
    console_level: str = "INFO"   # INFO..CRITICAL
    file_level: str = "DEBUG"     # DEBUG..CRITICAL


@dataclass
class AppConfig:
    """Typed configuration object built by `load_config`."""
    app: AppSection
    api: ApiSection
    naming: NamingSection
    operations: OperationsSection
    logging: LoggingSection

    @property
    def run_id(self) -> str:
        """
        Return a stable run identifier for this process.
        Generated lazily when first accessed if not provided.
        """
        if not self.app.run_id:
            self.app.run_id = uuid.uuid4().hex[:12]
        return self.app.run_id


# ---------- Defaults ----------

_DEFAULT_FILES: Tuple[str, ...] = (
    "./proxysync.yml",
    os.path.expanduser("~/.config/proxysync/config.yml"),
    "/etc/proxysync/config.yml",
)

_DEFAULTS: Dict[str, Any] = {
    "app": {"run_id": None, "dry_run": False},
    "api": {
        "base_url": "https://compute.googleapis.com/compute/v1",
        "token": "",
        "project": "",
        "verify_tls": True,
        "timeout_sec": 30,
        "retries": 3,
        "backoff_base_sec": 0.5,
    },
    "naming": {"prefix": "k8s"},
    "operations": {"wait": True, "interval_sec": 1.0, "timeout_sec": 180.0},
    "logging": {"base_dir": "logs", "console_level": "INFO", "file_level": "DEBUG"},
}

_BOOL_KEYS = {"verify_tls", "dry_run", "wait"}
_INT_KEYS = {"retries"}
_FLOAT_KEYS = {"timeout_sec", "backoff_base_sec", "interval_sec"}


# ---------- Utilities ----------

def _deep_merge(base: Dict[str, Any], ext: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Deep-merge for dicts: maps merge recursively, lists/scalars override.
    `ext` wins over `base`. Returns a new dict.
    """
    if not ext:
        return dict(base)
    out: Dict[str, Any] = dict(base)
    for k, v in ext.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _read_yaml_file(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML must be a mapping: {path}")
    return data


def _load_first_existing(files: Tuple[str, ...]) -> Dict[str, Any]:
    for p in files:
        if os.path.exists(p):
            return _read_yaml_file(p)
    return {}


def _env_to_dict(prefix: str = "PSYNC_") -> Dict[str, Any]:
    """
    Convert PSYNC_FOO__BAR=val to {"foo": {"bar": "val"}} (lowercased keys).
    """
    out: Dict[str, Any] = {}
    plen = len(prefix)
    for key, val in os.environ.items():
        if not key.startswith(prefix):
            continue
        path = key[plen:].lower().split("__")
        cursor = out
        for part in path[:-1]:
            cursor = cursor.setdefault(part, {})
        cursor[path[-1]] = val
    return out


def _interpolate_env(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Replace values like "${VAR}" with os.environ["VAR"] when present.
    """
    def repl(v: Any) -> Any:
        if isinstance(v, str) and v.startswith("${") and v.endswith("}"):
            return os.environ.get(v[2:-1], "")
        return v

    def walk(obj: Any) -> Any:
        if isinstance(obj, dict):
            return {k: walk(repl(v)) for k, v in obj.items()}
        if isinstance(obj, list):
            return [walk(x) for x in obj]
        return repl(obj)

    return walk(cfg)


def _coerce_types(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Minimal type coercion for booleans and numbers in known keys.
    """
    def to_bool(x: Any) -> bool:
        return str(x).strip().lower() in {"1", "true", "yes", "y", "on"}

    def walk(obj: Any, key: str = "") -> Any:
        if isinstance(obj, dict):
            return {k: walk(v, k) for k, v in obj.items()}
        if key in _BOOL_KEYS:
            return to_bool(obj)
        try:
            if key in _INT_KEYS:
                return int(obj)
            if key in _FLOAT_KEYS:
                return float(obj)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid value for '{key}': {obj!r}") from exc
        return obj

    return walk(cfg)


def _validate(cfg: Dict[str, Any]) -> None:
    """
    Validate required fields when not in dry_run.
    """
    dry = bool(cfg.get("app", {}).get("dry_run", False))
    if dry:
        return
    missing = []
    if not cfg.get("api", {}).get("base_url"):
        missing.append("api.base_url")
    if not cfg.get("api", {}).get("project"):
        missing.append("api.project")
    if missing:
        raise ConfigError(
            "Missing required configuration for non-dry run: " + ", ".join(missing)
        )


# ---------- Public API ----------

def load_config(
    cli_overrides: Optional[Dict[str, Any]] = None,
    files: Tuple[str, ...] = _DEFAULT_FILES,
    env_prefix: str = "PSYNC_",
    *,
    dotenv: bool = True,
) -> AppConfig:
    """
    Build an AppConfig from (in precedence order):
      1) CLI overrides
      2) Environment variables (prefix PSYNC_, nested via __), after a
         `.env` file found from the working directory has been loaded
      3) YAML file (first existing)
      4) Built-in defaults

    Also performs:
      - ${ENV_VAR} interpolation
      - basic type coercion (bool/int/float)
      - validation of required fields when not in dry_run
    """
    if dotenv:
        env_file = find_dotenv(usecwd=True)
        if env_file:
            # real environment wins over .env
            load_dotenv(env_file, override=False)

    file_cfg = _load_first_existing(files)
    env_cfg = _env_to_dict(env_prefix)

    # Combine: defaults <- file <- env <- cli
    merged = _deep_merge(_DEFAULTS, file_cfg)
    merged = _deep_merge(merged, env_cfg)
    merged = _deep_merge(merged, cli_overrides or {})

    merged = _interpolate_env(merged)
    merged = _coerce_types(merged)

    _validate(merged)

    try:
        return AppConfig(
            app=AppSection(**merged.get("app", {})),
            api=ApiSection(**merged.get("api", {})),
            naming=NamingSection(**merged.get("naming", {})),
            operations=OperationsSection(**merged.get("operations", {})),
            logging=LoggingSection(**merged.get("logging", {})),
        )
    except TypeError as exc:
        raise ConfigError(f"Unknown configuration key: {exc}") from exc
