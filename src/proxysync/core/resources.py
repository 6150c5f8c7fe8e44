"""
Data model for proxy convergence.

- `LoadBalancerIntent`: what the caller wants (URL map, certificates).
- `ProxyResource`: what the remote side holds (JSON shape `name`, `urlMap`,
  `sslCertificates`, `selfLink`).
- `ResourceId`: parsed resource locator used for logical-identity comparison.
  Full URLs, relative paths and bare names of the same resource compare equal.
- `ReconciliationResult`: handles produced by one pass, returned explicitly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Literal, Optional, Tuple

CertificateRef = str

OutcomeStatus = Literal["CREATED", "UPDATED", "UNCHANGED", "SKIPPED"]

_API_PREFIX = re.compile(r"^https?://[^/]+/compute/[^/]+/", re.IGNORECASE)
_LOCATION_KINDS = ("regions", "zones")


class Protocol(str, Enum):
    HTTP = "HTTP"
    HTTPS = "HTTPS"

    @property
    def collection(self) -> str:
        """Remote collection holding proxies of this protocol."""
        return "targetHttpsProxies" if self is Protocol.HTTPS else "targetHttpProxies"

    @property
    def name_prefix(self) -> str:
        return "tps" if self is Protocol.HTTPS else "tp"


# ---------- Resource identity ----------

@dataclass(frozen=True)
class ResourceId:
    """Parsed locator. Fields left as None were absent from the locator."""
    name: str
    collection: Optional[str] = None
    location: Optional[str] = None
    project: Optional[str] = None

    @classmethod
    def parse(cls, locator: str) -> "ResourceId":
        """
        Accepts:
          https://www.googleapis.com/compute/v1/projects/p/global/urlMaps/um
          projects/p/global/urlMaps/um
          regions/r/urlMaps/um
          urlMaps/um
          um
        Raises ValueError for anything else.
        """
        text = (locator or "").strip()
        if not text:
            raise ValueError("empty resource locator")
        parts = [p for p in _API_PREFIX.sub("", text).split("/") if p]

        project: Optional[str] = None
        if len(parts) >= 2 and parts[0] == "projects":
            project, parts = parts[1], parts[2:]

        if len(parts) == 1 and project is None:
            return cls(name=parts[0])

        location: Optional[str] = None
        if parts and parts[0] == "global":
            location, parts = "global", parts[1:]
        elif len(parts) >= 2 and parts[0] in _LOCATION_KINDS:
            location, parts = f"{parts[0]}/{parts[1]}", parts[2:]

        if len(parts) != 2:
            raise ValueError(f"Cannot parse resource locator: {locator!r}")
        return cls(name=parts[1], collection=parts[0], location=location, project=project)

    def matches(self, other: "ResourceId") -> bool:
        if self.name != other.name:
            return False
        for mine, theirs in (
            (self.collection, other.collection),
            (self.location, other.location),
            (self.project, other.project),
        ):
            if mine is not None and theirs is not None and mine != theirs:
                return False
        return True


def equal_resource_ids(a: Optional[str], b: Optional[str]) -> bool:
    """True when both locators designate the same resource. Unparseable -> False."""
    if not a or not b:
        return False
    if a == b:
        return True
    try:
        return ResourceId.parse(a).matches(ResourceId.parse(b))
    except ValueError:
        return False


# ---------- Desired state ----------

@dataclass(frozen=True)
class LoadBalancerIntent:
    name: str
    url_map: Optional[str] = None
    certificates: Tuple[CertificateRef, ...] = ()

    def __post_init__(self) -> None:
        if isinstance(self.certificates, str):
            raise TypeError("certificates must be a sequence of references, not a string")
        # accept any iterable from callers, store an immutable tuple
        object.__setattr__(self, "certificates", tuple(self.certificates or ()))


# ---------- Remote state ----------

@dataclass(frozen=True)
class ProxyResource:
    name: str
    protocol: Protocol
    url_map: str = ""
    certificates: Tuple[CertificateRef, ...] = ()
    self_link: str = ""

    @classmethod
    def from_api(cls, data: Dict[str, Any], protocol: Protocol) -> "ProxyResource":
        return cls(
            name=str(data.get("name", "")),
            protocol=protocol,
            url_map=str(data.get("urlMap") or ""),
            certificates=tuple(str(c) for c in (data.get("sslCertificates") or [])),
            self_link=str(data.get("selfLink") or ""),
        )

    def to_api(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"name": self.name, "urlMap": self.url_map}
        if self.protocol is Protocol.HTTPS:
            body["sslCertificates"] = list(self.certificates)
        return body


@dataclass(frozen=True)
class ProxyOutcome:
    protocol: Protocol
    status: OutcomeStatus
    proxy: Optional[ProxyResource] = None
    writes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ReconciliationResult:
    """Handles resolved by one pass, for forwarding-rule and certificate consumers."""
    name: str
    outcomes: Tuple[ProxyOutcome, ...] = field(default_factory=tuple)

    def outcome(self, protocol: Protocol) -> Optional[ProxyOutcome]:
        for o in self.outcomes:
            if o.protocol is protocol:
                return o
        return None

    @property
    def http_proxy(self) -> Optional[ProxyResource]:
        o = self.outcome(Protocol.HTTP)
        return o.proxy if o else None

    @property
    def https_proxy(self) -> Optional[ProxyResource]:
        o = self.outcome(Protocol.HTTPS)
        return o.proxy if o else None

    @property
    def writes(self) -> Tuple[str, ...]:
        out: Tuple[str, ...] = ()
        for o in self.outcomes:
            out += o.writes
        return out

    def summary(self) -> str:
        return " ".join(f"{o.protocol.value.lower()}={o.status}" for o in self.outcomes)

