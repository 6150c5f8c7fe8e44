"""
Remote state accessors for target proxies.

`ProxyAccessor` is the boundary the convergence engine talks to. Two
implementations live here:

- `HttpProxyAccessor`: REST calls through `ComputeClient`
    GET  projects/{project}/global/{collection}/{name}
    POST projects/{project}/global/{collection}
    POST .../{collection}/{name}/setUrlMap          {"urlMap": ...}
    POST .../targetHttpsProxies/{name}/setSslCertificates {"sslCertificates": [...]}
  Write responses are waited on through `OperationWaiter` when configured.
- `DryRunAccessor`: reads pass through, writes are recorded as a plan.
"""

from __future__ import annotations

import logging
import typing
from typing import Dict, List, Optional, Sequence, Tuple

from .compute_client import ComputeClient, HttpError
from .operations import OperationWaiter
from .resources import CertificateRef, Protocol, ProxyResource

__all__ = ["ProxyAccessor", "HttpProxyAccessor", "DryRunAccessor"]


class ProxyAccessor(typing.Protocol):
    def get_proxy(self, name: str, protocol: Protocol) -> Optional[ProxyResource]:
        """Return the proxy, or None when it does not exist."""
        ...

    def create_proxy(self, proxy: ProxyResource) -> None:
        ...

    def set_url_map(self, proxy: ProxyResource, url_map: str) -> None:
        ...

    def set_certificates(self, proxy: ProxyResource, certificates: Sequence[CertificateRef]) -> None:
        """Replace the whole certificate list of a TLS proxy."""
        ...


class HttpProxyAccessor:
    def __init__(
        self,
        client: ComputeClient,
        project: str,
        *,
        operations: Optional[OperationWaiter] = None,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        if not project:
            raise ValueError("project is required")
        self.client = client
        self.project = project
        self.operations = operations
        self.log = logger or logging.getLogger("psync.proxies")

    def _collection_path(self, protocol: Protocol) -> str:
        return f"projects/{self.project}/global/{protocol.collection}"

    def _proxy_path(self, proxy: ProxyResource) -> str:
        return f"{self._collection_path(proxy.protocol)}/{proxy.name}"

    def get_proxy(self, name: str, protocol: Protocol) -> Optional[ProxyResource]:
        try:
            data = self.client.get_json(f"{self._collection_path(protocol)}/{name}")
        except HttpError as e:
            if e.status == 404:
                return None
            raise
        return ProxyResource.from_api(data, protocol)

    def create_proxy(self, proxy: ProxyResource) -> None:
        self._write(self._collection_path(proxy.protocol), proxy.to_api())

    def set_url_map(self, proxy: ProxyResource, url_map: str) -> None:
        self._write(f"{self._proxy_path(proxy)}/setUrlMap", {"urlMap": url_map})

    def set_certificates(self, proxy: ProxyResource, certificates: Sequence[CertificateRef]) -> None:
        if proxy.protocol is not Protocol.HTTPS:
            raise ValueError(f"{proxy.name} is not a TLS proxy")
        self._write(f"{self._proxy_path(proxy)}/setSslCertificates", {"sslCertificates": list(certificates)})

    def _write(self, path: str, body: Dict[str, object]) -> None:
        response = self.client.post_json(path, body)
        if self.operations:
            self.operations.wait(response)


class DryRunAccessor:
    """
    Wraps another accessor for planning. Reads are real; writes are appended
    to `planned` and logged. Created proxies are kept in an overlay so the
    read that follows a create sees them.
    """

    def __init__(self, inner: ProxyAccessor, *, logger: Optional[logging.LoggerAdapter] = None) -> None:
        self.inner = inner
        self.planned: List[str] = []
        self._created: Dict[Tuple[str, Protocol], ProxyResource] = {}
        self.log = logger or logging.getLogger("psync.proxies")

    def get_proxy(self, name: str, protocol: Protocol) -> Optional[ProxyResource]:
        created = self._created.get((name, protocol))
        if created is not None:
            return created
        return self.inner.get_proxy(name, protocol)

    def create_proxy(self, proxy: ProxyResource) -> None:
        self._plan(f"create {proxy.protocol.collection}/{proxy.name}")
        self._created[(proxy.name, proxy.protocol)] = proxy

    def set_url_map(self, proxy: ProxyResource, url_map: str) -> None:
        self._plan(f"setUrlMap {proxy.protocol.collection}/{proxy.name} -> {url_map}")

    def set_certificates(self, proxy: ProxyResource, certificates: Sequence[CertificateRef]) -> None:
        self._plan(
            f"setSslCertificates {proxy.protocol.collection}/{proxy.name} -> [{', '.join(certificates)}]"
        )

    def _plan(self, line: str) -> None:
        self.planned.append(line)
        self.log.info("[dry-run] %s", line)
