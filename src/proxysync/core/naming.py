"""
Deterministic proxy naming: "<prefix>-<tp|tps>-<load balancer name>".

Names are lower-cased and cut to the 63-character platform limit.
"""

from __future__ import annotations

import re

from .resources import Protocol

MAX_NAME_LENGTH = 63

_INVALID = re.compile(r"[^a-z0-9-]+")


class ProxyNamer:
    def __init__(self, prefix: str = "k8s") -> None:
        self.prefix = _INVALID.sub("-", (prefix or "").strip().lower()).strip("-")

    def resolve_proxy_name(self, lb_name: str, protocol: Protocol) -> str:
        if not lb_name or not lb_name.strip():
            raise ValueError("load balancer name is required")
        parts = [p for p in (self.prefix, protocol.name_prefix, lb_name.strip().lower()) if p]
        name = _INVALID.sub("-", "-".join(parts))
        return name[:MAX_NAME_LENGTH].rstrip("-")
