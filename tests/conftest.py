import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlparse

import pytest

from proxysync.core.resources import ProxyResource


class RecordingAccessor:
    """In-memory accessor that records every call and can be told to fail."""

    def __init__(self):
        self.proxies = {}
        self.calls = []
        self.fail = {}  # call name -> exception raised on that call

    def add(self, proxy):
        self.proxies[(proxy.name, proxy.protocol)] = proxy
        return proxy

    @property
    def writes(self):
        return [c for c in self.calls if c[0] != "get_proxy"]

    def _record(self, *call):
        self.calls.append(call)
        exc = self.fail.pop(call[0], None)
        if exc is not None:
            raise exc

    def get_proxy(self, name, protocol):
        self._record("get_proxy", name, protocol)
        return self.proxies.get((name, protocol))

    def create_proxy(self, proxy):
        self._record("create_proxy", proxy)
        self.proxies[(proxy.name, proxy.protocol)] = ProxyResource(
            name=proxy.name,
            protocol=proxy.protocol,
            url_map=proxy.url_map,
            certificates=proxy.certificates,
            self_link=f"projects/p1/global/{proxy.protocol.collection}/{proxy.name}",
        )

    def set_url_map(self, proxy, url_map):
        self._record("set_url_map", proxy.name, url_map)
        cur = self.proxies[(proxy.name, proxy.protocol)]
        self.proxies[(proxy.name, proxy.protocol)] = ProxyResource(
            cur.name, cur.protocol, url_map, cur.certificates, cur.self_link
        )

    def set_certificates(self, proxy, certificates):
        self._record("set_certificates", proxy.name, list(certificates))
        cur = self.proxies[(proxy.name, proxy.protocol)]
        self.proxies[(proxy.name, proxy.protocol)] = ProxyResource(
            cur.name, cur.protocol, cur.url_map, tuple(certificates), cur.self_link
        )


@pytest.fixture()
def accessor():
    return RecordingAccessor()


# ---------- Fake resource API over HTTP ----------

API_ROOT = "https://www.googleapis.com/compute/v1/"


class FakeComputeApi:
    """
    Serves projects/{p}/global/{targetHttpProxies|targetHttpsProxies}[/{name}[/action]]
    and projects/{p}/global/operations/{op}. Writes answer with a RUNNING
    operation that reads back as DONE. Relative URL map and certificate
    locators are stored as full URLs, the way the real API normalises them.
    """

    def __init__(self):
        self.proxies = {"targetHttpProxies": {}, "targetHttpsProxies": {}}
        self.calls = []
        self.op_counter = 0
        self.base_url = ""
        self.fail_writes_with = None  # HTTP status for every write

    def seed(self, collection, name, url_map, certs=None):
        body = {"name": name, "urlMap": url_map}
        if collection == "targetHttpsProxies":
            body["sslCertificates"] = list(certs or [])
        self.proxies[collection][name] = body

    @property
    def writes(self):
        return [c for c in self.calls if c[0] == "POST"]

    def normalise_ref(self, project, ref):
        if not ref or ref.startswith("http") or "/" not in ref:
            return ref
        if not ref.startswith("projects/"):
            ref = f"projects/{project}/{ref}"
        return API_ROOT + ref

    def new_operation(self, project):
        self.op_counter += 1
        name = f"op-{self.op_counter}"
        return {
            "kind": "compute#operation",
            "name": name,
            "status": "RUNNING",
            "selfLink": f"{self.base_url}/projects/{project}/global/operations/{name}",
        }


def _make_handler(api):
    class _Handler(BaseHTTPRequestHandler):
        protocol_version = "HTTP/1.1"

        def _send_json(self, status, obj):
            raw = json.dumps(obj).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(raw)))
            self.end_headers()
            self.wfile.write(raw)

        def _parts(self):
            return [p for p in urlparse(self.path).path.split("/") if p]

        def do_GET(self):  # noqa: N802
            parts = self._parts()
            api.calls.append(("GET", "/".join(parts)))
            # projects/{p}/global/{collection}/{name}
            if len(parts) == 5 and parts[0] == "projects" and parts[2] == "global":
                collection, name = parts[3], parts[4]
                if collection == "operations":
                    self._send_json(200, {"kind": "compute#operation", "name": name, "status": "DONE"})
                    return
                body = api.proxies.get(collection, {}).get(name)
                if body is None:
                    self._send_json(404, {"error": {"code": 404, "message": "not found"}})
                    return
                self._send_json(200, dict(body, selfLink=f"{API_ROOT}{'/'.join(parts)}"))
                return
            self._send_json(404, {"error": "not found"})

        def do_POST(self):  # noqa: N802
            parts = self._parts()
            length = int(self.headers.get("Content-Length", "0"))
            body = json.loads((self.rfile.read(length) if length else b"{}").decode("utf-8"))
            api.calls.append(("POST", "/".join(parts), body))

            if api.fail_writes_with:
                self._send_json(api.fail_writes_with, {"error": "write refused"})
                return
            if len(parts) < 4 or parts[0] != "projects" or parts[2] != "global":
                self._send_json(404, {"error": "not found"})
                return

            project, collection = parts[1], parts[3]
            store = api.proxies.get(collection)
            if store is None:
                self._send_json(404, {"error": "not found"})
                return

            if len(parts) == 4:
                if body["name"] in store:
                    self._send_json(409, {"error": "already exists"})
                    return
                if len(body.get("sslCertificates") or []) > 10:
                    self._send_json(400, {"error": "too many certificates"})
                    return
                body["urlMap"] = api.normalise_ref(project, body.get("urlMap"))
                if "sslCertificates" in body:
                    body["sslCertificates"] = [api.normalise_ref(project, c) for c in body["sslCertificates"]]
                store[body["name"]] = body
            elif len(parts) == 6 and parts[4] in store:
                target = store[parts[4]]
                if parts[5] == "setUrlMap":
                    target["urlMap"] = api.normalise_ref(project, body.get("urlMap"))
                elif parts[5] == "setSslCertificates":
                    target["sslCertificates"] = [api.normalise_ref(project, c) for c in body.get("sslCertificates") or []]
                else:
                    self._send_json(404, {"error": "unknown action"})
                    return
            else:
                self._send_json(404, {"error": "not found"})
                return
            self._send_json(200, api.new_operation(project))

        def log_message(self, fmt, *args):  # silence test server logs
            return

    return _Handler


@pytest.fixture()
def compute_api():
    api = FakeComputeApi()
    server = ThreadingHTTPServer(("127.0.0.1", 0), _make_handler(api))
    host, port = server.server_address
    api.base_url = f"http://{host}:{port}"
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield api
    server.shutdown()
    server.server_close()
    thread.join(timeout=1.0)

