"""
Operation waiter: poll a remote operation until it reaches DONE.

Write calls on the resource API answer with an operation document:
  {"kind": "compute#operation", "name": "op-1", "status": "RUNNING",
   "selfLink": ".../operations/op-1"}
A DONE operation carrying an "error" block failed.

Config:
  operations:
    interval_sec: 1.0   # between polls
    timeout_sec: 180.0  # overall deadline
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .compute_client import ComputeClient
from .errors import TransportError


class OperationError(TransportError):
    """Raised when an operation finishes with an error."""


class OperationTimeout(TransportError):
    """Raised when an operation does not reach DONE in time."""


@dataclass
class OperationConfig:
    interval_sec: float = 1.0
    timeout_sec: float = 180.0


def is_operation(payload: Any) -> bool:
    return isinstance(payload, dict) and str(payload.get("kind", "")).endswith("#operation")


def _error_text(error: Any) -> str:
    if isinstance(error, dict):
        errs = error.get("errors")
        if isinstance(errs, list) and errs:
            parts = []
            for e in errs:
                if isinstance(e, dict):
                    parts.append(str(e.get("message") or e.get("code") or e))
                else:
                    parts.append(str(e))
            return "; ".join(parts)[:400]
    return str(error)[:400]


class OperationWaiter:
    """Polls an operation's selfLink until DONE."""

    def __init__(
        self,
        client: ComputeClient,
        cfg: Optional[OperationConfig] = None,
        *,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        self.client = client
        self.cfg = cfg or OperationConfig()
        self.log = logger or logging.getLogger("psync.operations")

    def wait(self, operation: Dict[str, Any]) -> Dict[str, Any]:
        """
        Return the final operation document (or `operation` unchanged when it
        is not an operation). Raises OperationError / OperationTimeout.
        Transport errors while polling propagate.
        """
        if not is_operation(operation):
            return operation

        current = operation
        name = current.get("name", "?")
        deadline = time.time() + float(self.cfg.timeout_sec)

        while True:
            status = str(current.get("status", "")).upper()
            if status == "DONE":
                if current.get("error"):
                    raise OperationError(f"operation {name} failed: {_error_text(current['error'])}")
                self.log.debug("operation %s done", name)
                return current

            link = current.get("selfLink")
            if not link:
                raise OperationError(f"operation {name} has no selfLink to poll")
            if time.time() >= deadline:
                raise OperationTimeout(f"timeout waiting for operation {name}; last_status='{status}'")

            self.log.debug("operation %s status=%s", name, status)
            time.sleep(float(self.cfg.interval_sec))
            current = self.client.get_json(link)
