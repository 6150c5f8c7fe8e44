"""
Central logging for proxysync.

- Console handler: INFO..CRITICAL (no DEBUG)
- Timed rotated file handler: DEBUG (logs/app.log, daily rotation)
- Action-based file handler: DEBUG (logs/YYYY-MM-DD/<action>_<run_id>.log)
- Secret redaction: masks tokens/passwords in both msg and % args
- UTC timestamps in ISO-8601
- Records from library loggers (psync.http, psync.converger, ...) that carry
  no run context are stamped with "-" so the shared format never fails.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

_CONTEXT_FIELDS = ("run_id", "action", "lb", "project")

_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | "
    "run=%(run_id)s action=%(action)s lb=%(lb)s project=%(project)s | "
    "%(message)s"
)


class MaskSecretsFilter(logging.Filter):
    """
    Redact common secrets (bearer tokens, API keys, passwords) from log records.
    """

    _patterns = [
        re.compile(r"(Authorization:\s*Bearer\s+)([A-Za-z0-9._-]+)", re.IGNORECASE),
        re.compile(r"(api[_-]?key\s*[=:]\s*)([A-Za-z0-9._-]+)", re.IGNORECASE),
        re.compile(r"(password\s*[=:]\s*)([^,\s]+)", re.IGNORECASE),
        re.compile(r"(\btoken\s*[=:]\s*)([A-Za-z0-9._-]+)", re.IGNORECASE),
    ]

    @staticmethod
    def _mask(text: str) -> str:
        masked = text
        for pat in MaskSecretsFilter._patterns:
            masked = pat.sub(r"\1***REDACTED***", masked)
        return masked

    def filter(self, record: logging.LogRecord) -> bool:
        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._mask(str(v)) for k, v in record.args.items()}
            else:
                record.args = tuple(
                    self._mask(a) if isinstance(a, str) else a for a in record.args
                )
        if isinstance(record.msg, str):
            record.msg = self._mask(record.msg)
        return True


class ContextDefaultsFilter(logging.Filter):
    """Fill run-context attributes missing from a record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for f in _CONTEXT_FIELDS:
            if not hasattr(record, f):
                setattr(record, f, "-")
        return True


def _level(name: str, default: int) -> int:
    return getattr(logging, str(name).upper(), default)


def _utc_formatter(fmt: str) -> logging.Formatter:
    f = logging.Formatter(fmt=fmt, datefmt="%Y-%m-%dT%H:%M:%SZ")
    f.converter = time.gmtime  # type: ignore[assignment]
    return f


def _decorate(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(ContextDefaultsFilter())
    handler.addFilter(MaskSecretsFilter())
    return handler


def _replace_console_handler(base: logging.Logger, level: int, formatter: logging.Formatter) -> None:
    """
    Keep exactly ONE console handler bound to the current sys.stderr
    (pytest swaps stdio between tests).
    """
    for h in list(base.handlers):
        if type(h) is logging.StreamHandler:
            base.removeHandler(h)
            h.close()
    base.addHandler(_decorate(logging.StreamHandler(stream=sys.stderr), level, formatter))


def _ensure_app_file_handler(base: logging.Logger, base_dir: str, level: int, formatter: logging.Formatter) -> None:
    """
    Keep a single TimedRotatingFileHandler pointing to <base_dir>/app.log;
    handlers aimed at another directory are replaced.
    """
    os.makedirs(base_dir, exist_ok=True)
    desired = os.path.abspath(os.path.join(base_dir, "app.log"))

    found = False
    for h in list(base.handlers):
        if isinstance(h, logging.handlers.TimedRotatingFileHandler):
            if os.path.abspath(h.baseFilename) == desired:
                found = True
                continue
            base.removeHandler(h)
            h.close()
    if found:
        return

    rh = logging.handlers.TimedRotatingFileHandler(
        desired,
        when="midnight",
        backupCount=14,
        encoding="utf-8",
        utc=True,
    )
    base.addHandler(_decorate(rh, level, formatter))


def build_logger(
    *,
    name: str = "psync",
    run_id: str,
    action: str,
    base_dir: str = "logs",
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    extra: Optional[Dict[str, Any]] = None,
) -> logging.LoggerAdapter:
    """
    Configure and return a LoggerAdapter.

    Design:
      - A base logger `<name>` holds console + rotating file handlers.
      - A child logger `<name>.<action>.<run_id>` holds a per-run file handler.
      - Records propagate to base logger so they appear in all sinks.
    """
    formatter = _utc_formatter(_FORMAT)
    flevel = _level(file_level, logging.DEBUG)

    base = logging.getLogger(name)
    base.setLevel(logging.DEBUG)
    _replace_console_handler(base, _level(console_level, logging.INFO), formatter)
    _ensure_app_file_handler(base, base_dir, flevel, formatter)

    child = logging.getLogger(f"{name}.{action}.{run_id}")
    child.setLevel(logging.DEBUG)
    child.propagate = True

    if not getattr(child, "_psync_action_configured", False):
        dated_dir = os.path.join(base_dir, datetime.now(timezone.utc).strftime("%Y-%m-%d"))
        os.makedirs(dated_dir, exist_ok=True)
        action_file = Path(dated_dir) / f"{action}_{run_id}.log"
        child.addHandler(_decorate(logging.FileHandler(action_file, encoding="utf-8"), flevel, formatter))
        child._psync_action_configured = True  # type: ignore[attr-defined]

    adapter = logging.LoggerAdapter(
        child,
        {
            "run_id": run_id,
            "action": action,
            "lb": (extra or {}).get("lb") or "-",
            "project": (extra or {}).get("project") or "-",
        },
    )
    adapter.debug("Logger initialised")
    return adapter
