"""Shared fixtures: upstream response fakes and a live proxy server."""
import http.client
import json
import threading
from unittest.mock import MagicMock
from unittest.mock import patch

import pytest

from ratelimit import RateLimiter
from server import ProxyServer


def fake_response(status_code=200, data=None, invalid=False):
    response = MagicMock()
    response.__enter__.return_value = response
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    content = b"<html>Bad Gateway</html>" if invalid else json.dumps(data).encode("utf-8")
    response.iter_content.return_value = [content[:5], content[5:]]
    return response


@pytest.fixture
def upstream():
    """Patch the outbound HTTP call; tests set return_value or side_effect."""
    with patch("proxy.requests.get") as get:
        get.return_value = fake_response(200, {})
        yield get


class Client:
    def __init__(self, server):
        self.host, self.port = server.server_address[:2]

    def request(self, method, path, headers=None):
        conn = http.client.HTTPConnection(self.host, self.port, timeout=5)
        try:
            conn.request(method, path, headers=headers or {})
            response = conn.getresponse()
            body = response.read().decode("utf-8")
            return response.status, dict(response.getheaders()), body
        finally:
            conn.close()

    def get(self, path, headers=None):
        return self.request("GET", path, headers)

    def get_json(self, path, headers=None):
        status, headers, body = self.get(path, headers)
        return status, headers, json.loads(body)


@pytest.fixture
def make_client():
    servers = []

    def make(limit=100, trusted_hops=0):
        server = ProxyServer(("127.0.0.1", 0),
                             limiter=RateLimiter(limit=limit),
                             trusted_hops=trusted_hops)
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        return Client(server)

    yield make
    for server in servers:
        server.shutdown()
        server.server_close()


@pytest.fixture
def client(make_client):
    return make_client()
