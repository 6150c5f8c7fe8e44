"""
Proxy convergence engine.

One `ProxyStrategy` per protocol drives a remote target proxy toward a
`LoadBalancerIntent`:

  read -> absent?  create, then re-read for the canonical handle
       -> present? rebind URL map if needed, then (TLS only) replace the
                   certificate list if the sets differ

Each call reads fresh remote state and returns the resolved handle; nothing
is cached between calls. Errors from the accessor propagate unchanged, and
partial progress is never rolled back: the next pass finds the proxy in the
"present" branch.

Callers must serialise passes for the same load-balancer name.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import List, Optional, cast

from .certificates import certs_match, check_cert_limit
from .errors import NotFoundError, PreconditionError
from .naming import ProxyNamer
from .proxies import ProxyAccessor
from .resources import (
    CertificateRef,
    LoadBalancerIntent,
    Protocol,
    ProxyOutcome,
    ProxyResource,
    ReconciliationResult,
    equal_resource_ids,
)

WRITE_CREATE = "create"
WRITE_URL_MAP = "setUrlMap"
WRITE_CERTIFICATES = "setSslCertificates"


class ProxyStrategy:
    """Convergence for one protocol. Subclasses add protocol-specific steps."""

    protocol: Protocol = Protocol.HTTP

    def __init__(
        self,
        accessor: ProxyAccessor,
        namer: ProxyNamer,
        *,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        self.accessor = accessor
        self.namer = namer
        self.log = logger or logging.getLogger("psync.converger")

    # ----- protocol hooks -------------------------------------------------
    def wants_proxy(self, intent: LoadBalancerIntent) -> bool:
        return True

    def check_intent(self, intent: LoadBalancerIntent, proxy_name: str) -> None:
        """Validate the intent before any remote call."""

    def build_proxy(self, intent: LoadBalancerIntent, proxy_name: str) -> ProxyResource:
        return ProxyResource(name=proxy_name, protocol=self.protocol, url_map=intent.url_map or "")

    def converge_extra(self, intent: LoadBalancerIntent, proxy: ProxyResource, writes: List[str]) -> ProxyResource:
        """Runs after the URL-map step on an existing proxy."""
        return proxy

    # ----- pipeline -------------------------------------------------------
    def run(self, intent: LoadBalancerIntent) -> ProxyOutcome:
        if not self.wants_proxy(intent):
            return ProxyOutcome(self.protocol, "SKIPPED")
        if not intent.url_map:
            raise PreconditionError("missing URL map")

        proxy_name = self.namer.resolve_proxy_name(intent.name, self.protocol)
        self.check_intent(intent, proxy_name)

        proxy = self.accessor.get_proxy(proxy_name, self.protocol)
        if proxy is None:
            return self._create(intent, proxy_name)

        writes: List[str] = []
        if not equal_resource_ids(proxy.url_map, intent.url_map):
            self.log.info(
                "Proxy %s has the wrong url map, setting %s overwriting %s",
                proxy.name, intent.url_map, proxy.url_map,
            )
            self.accessor.set_url_map(proxy, intent.url_map)
            proxy = dataclasses.replace(proxy, url_map=intent.url_map)
            writes.append(WRITE_URL_MAP)

        proxy = self.converge_extra(intent, proxy, writes)
        status = "UPDATED" if writes else "UNCHANGED"
        self.log.debug("Proxy %s %s", proxy.name, status.lower())
        return ProxyOutcome(self.protocol, status, proxy, tuple(writes))

    def converge(self, intent: LoadBalancerIntent) -> Optional[ProxyResource]:
        return self.run(intent).proxy

    def _create(self, intent: LoadBalancerIntent, proxy_name: str) -> ProxyOutcome:
        new_proxy = self.build_proxy(intent, proxy_name)
        self.log.info("Creating new %s proxy %s for url map %s", self.protocol.value, proxy_name, intent.url_map)
        self.accessor.create_proxy(new_proxy)

        # the remote side may normalise fields; hand back its representation
        proxy = self.accessor.get_proxy(proxy_name, self.protocol)
        if proxy is None:
            raise NotFoundError(f"proxy {proxy_name} not readable after create")
        return ProxyOutcome(self.protocol, "CREATED", proxy, (WRITE_CREATE,))


class PlainProxyStrategy(ProxyStrategy):
    protocol = Protocol.HTTP


class TlsProxyStrategy(ProxyStrategy):
    protocol = Protocol.HTTPS

    def wants_proxy(self, intent: LoadBalancerIntent) -> bool:
        if not intent.certificates:
            # stale TLS proxies are left alone; removal belongs elsewhere
            self.log.debug("No SSL certificates for %s, will not create HTTPS proxy", intent.name)
            return False
        return True

    def check_intent(self, intent: LoadBalancerIntent, proxy_name: str) -> None:
        check_cert_limit(intent.certificates, proxy_name)

    def build_proxy(self, intent: LoadBalancerIntent, proxy_name: str) -> ProxyResource:
        return dataclasses.replace(
            super().build_proxy(intent, proxy_name),
            certificates=tuple(intent.certificates),
        )

    def converge_extra(self, intent: LoadBalancerIntent, proxy: ProxyResource, writes: List[str]) -> ProxyResource:
        if certs_match(intent.certificates, proxy.certificates):
            return proxy
        self.log.info(
            "Https proxy %s has the wrong ssl certs, setting %s overwriting %s",
            proxy.name, list(intent.certificates), list(proxy.certificates),
        )
        self.accessor.set_certificates(proxy, list(intent.certificates))
        writes.append(WRITE_CERTIFICATES)
        return dataclasses.replace(proxy, certificates=tuple(intent.certificates))


class ProxyConverger:
    """Entry point: both protocol paths plus the in-use certificate query."""

    def __init__(
        self,
        accessor: ProxyAccessor,
        namer: Optional[ProxyNamer] = None,
        *,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        self.accessor = accessor
        self.namer = namer or ProxyNamer()
        self.log = logger or logging.getLogger("psync.converger")
        self.plain = PlainProxyStrategy(accessor, self.namer, logger=self.log)
        self.tls = TlsProxyStrategy(accessor, self.namer, logger=self.log)

    def converge_plain_proxy(self, intent: LoadBalancerIntent) -> ProxyResource:
        return cast(ProxyResource, self.plain.converge(intent))

    def converge_tls_proxy(self, intent: LoadBalancerIntent) -> Optional[ProxyResource]:
        return self.tls.converge(intent)

    def reconcile(self, intent: LoadBalancerIntent) -> ReconciliationResult:
        """Plain path first, then TLS. The first error aborts the pass."""
        outcomes = (self.plain.run(intent), self.tls.run(intent))
        result = ReconciliationResult(name=intent.name, outcomes=outcomes)
        self.log.info("Reconciled %s: %s", intent.name, result.summary())
        return result

    def get_certificates_in_use(self, lb_name: str) -> List[CertificateRef]:
        proxy_name = self.namer.resolve_proxy_name(lb_name, Protocol.HTTPS)
        proxy = self.accessor.get_proxy(proxy_name, Protocol.HTTPS)
        if proxy is None:
            raise NotFoundError(f"https proxy {proxy_name} not found")
        return list(proxy.certificates)
