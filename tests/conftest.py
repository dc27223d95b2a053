import json
import os
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlparse

import pytest

from netbirdsync.core.netbird_client import NetBirdClient


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    """Run every test from an empty directory without NetBird/nbsync variables."""
    for key in list(os.environ):
        if key.startswith(("NB_", "NBSYNC_")):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


class FakeNetBird:
    """In-memory management API state served by ``_NetBirdApi``.

    ``collections`` maps a list path (``/api/groups``) to its entities,
    ``singletons`` maps a path to a single object. ``failures`` queues status
    codes returned before the real answer for ``(method, path)``.
    """

    def __init__(self):
        self.token = "Token TEST"
        self.collections = {}
        self.singletons = {}
        self.failures = {}
        self.requests = []
        self.base_url = ""
        self._next_id = 0

    @property
    def writes(self):
        return [r for r in self.requests if r[0] != "GET"]

    def calls(self, method, path):
        return sum(1 for m, p, _ in self.requests if m == method and p == path)

    def new_id(self):
        self._next_id += 1
        return f"new-{self._next_id}"


class _NetBirdApi(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    @property
    def fake(self) -> FakeNetBird:
        return self.server.fake

    def _send_json(self, status, obj=None):
        raw = json.dumps(obj).encode("utf-8") if obj is not None else b""
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(raw)))
        self.end_headers()
        self.wfile.write(raw)

    def _payload(self):
        length = int(self.headers.get("Content-Length", "0"))
        body = self.rfile.read(length) if length else b""
        return json.loads(body.decode("utf-8")) if body else None

    def _locate(self, path):
        parent, _, ident = path.rpartition("/")
        for item in self.fake.collections.get(parent, []):
            if str(item.get("id")) == ident:
                return parent, item
        return parent, None

    def _begin(self, method):
        path = urlparse(self.path).path
        payload = self._payload() if method in ("POST", "PUT") else None
        self.fake.requests.append((method, path, payload))
        if self.headers.get("Authorization", "") != self.fake.token:
            self._send_json(401, {"message": "unauthorized"})
            return None, None
        queued = self.fake.failures.get((method, path))
        if queued:
            self._send_json(queued.pop(0), {"message": "injected failure"})
            return None, None
        return path, payload

    def do_GET(self):  # noqa: N802
        path, _ = self._begin("GET")
        if path is None:
            return
        if path in self.fake.collections:
            self._send_json(200, self.fake.collections[path])
        elif path in self.fake.singletons:
            self._send_json(200, self.fake.singletons[path])
        else:
            _, item = self._locate(path)
            if item is None:
                self._send_json(404, {"message": "not found"})
            else:
                self._send_json(200, item)

    def do_POST(self):  # noqa: N802
        path, payload = self._begin("POST")
        if path is None:
            return
        created = {"id": self.fake.new_id(), **(payload or {})}
        self.fake.collections.setdefault(path, []).append(created)
        self._send_json(200, created)

    def do_PUT(self):  # noqa: N802
        path, payload = self._begin("PUT")
        if path is None:
            return
        if path in self.fake.singletons:
            self.fake.singletons[path] = payload
            self._send_json(200, payload)
            return
        _, item = self._locate(path)
        if item is None:
            self._send_json(404, {"message": "not found"})
            return
        item.update(payload or {})
        self._send_json(200, item)

    def do_DELETE(self):  # noqa: N802
        path, _ = self._begin("DELETE")
        if path is None:
            return
        parent, item = self._locate(path)
        if item is None:
            self._send_json(404, {"message": "not found"})
            return
        self.fake.collections[parent].remove(item)
        self._send_json(200)

    def log_message(self, fmt, *args):  # silence test server logs
        return


@pytest.fixture
def netbird():
    fake = FakeNetBird()
    server = ThreadingHTTPServer(("127.0.0.1", 0), _NetBirdApi)
    server.fake = fake
    fake.base_url = f"http://{server.server_address[0]}:{server.server_address[1]}"
    t = threading.Thread(target=server.serve_forever, daemon=True)
    t.start()
    yield fake
    server.shutdown()
    server.server_close()


@pytest.fixture
def client(netbird):
    c = NetBirdClient(netbird.base_url, "TEST", timeout_sec=5, retries=2, backoff_base_sec=0)
    yield c
    c.close()
