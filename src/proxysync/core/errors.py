"""
Error kinds raised while converging load-balancer proxies.

The engine never retries or swallows these; callers own retry policy.
"""

from __future__ import annotations


class ProxySyncError(Exception):
    """Base error for proxysync."""


class PreconditionError(ProxySyncError):
    """Raised when an intent lacks something required before any remote call."""


class NotFoundError(ProxySyncError):
    """Raised by read-only queries when the remote resource does not exist."""


class LimitExceededError(ProxySyncError):
    """Raised when more certificates are desired than one proxy can carry."""


class TransportError(ProxySyncError):
    """Opaque failure of a remote call (HTTP, network, remote operation)."""
