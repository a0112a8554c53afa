#!/usr/bin/env python3

import logging
import os
import proxy

from http.server import BaseHTTPRequestHandler
from http.server import ThreadingHTTPServer
from ratelimit import MESSAGE
from ratelimit import RateLimiter
from urllib.parse import parse_qsl
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

def client_ip(remote_addr, forwarded_for, trusted_hops):
    """
    Return the client address `trusted_hops` proxies back from the socket.

    With zero trusted hops `X-Forwarded-For` is ignored. The chain is read
    right to left, the socket peer counting as the first hop.
    """
    if not trusted_hops or not forwarded_for:
        return remote_addr
    addrs = [remote_addr] + [x.strip() for x in reversed(forwarded_for.split(",")) if x.strip()]
    return addrs[min(trusted_hops, len(addrs) - 1)]

class ProxyServer(ThreadingHTTPServer):

    daemon_threads = True

    def __init__(self, address, limiter=None, trusted_hops=0):
        self.limiter = limiter or RateLimiter()
        self.trusted_hops = trusted_hops
        super().__init__(address, Handler)

class Handler(BaseHTTPRequestHandler):

    server_version = "RobloxProxy/1.0"

    def do_OPTIONS(self):
        self.send_reply(proxy.preflight(self.headers.get("Access-Control-Request-Headers")))

    def do_GET(self):
        self.send_reply(self.route())

    def do_HEAD(self):
        self.send_reply(self.route(), include_body=False)

    def route(self):
        url = urlsplit(self.path)
        ip = client_ip(self.client_address[0],
                       self.headers.get("X-Forwarded-For"),
                       self.server.trusted_hops)
        allowed, headers = self.server.limiter.hit(ip)
        if not allowed:
            logger.warning("Rate limit exceeded for %s", ip)
            return proxy.text_response(429, MESSAGE, headers)
        try:
            reply = proxy.handle(url.path, dict(parse_qsl(url.query)))
        except Exception:
            logger.exception("Unhandled error")
            reply = proxy.error_response(500, "Internal server error")
        reply["headers"].update(headers)
        return reply

    def send_reply(self, reply, include_body=True):
        body = reply["body"].encode("utf-8")
        self.send_response(reply["statusCode"])
        for name, value in reply["headers"].items():
            if name not in proxy.CORS_HEADERS:
                self.send_header(name, value)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if include_body:
            self.wfile.write(body)

    def end_headers(self):
        # Covers the stock error replies too, e.g. 501 for unsupported methods.
        for name, value in proxy.CORS_HEADERS.items():
            self.send_header(name, value)
        super().end_headers()

    def log_message(self, format, *args):
        logger.info("%s - %s", self.address_string(), format % args)

def trusted_hops(environ):
    if (hops := environ.get("TRUST_PROXY_HOPS")) is not None:
        try:
            return int(hops)
        except ValueError:
            raise ValueError(f"TRUST_PROXY_HOPS must be an integer, got {hops!r}") from None
    # Railway sits behind a single reverse proxy.
    return 1 if environ.get("RAILWAY_ENVIRONMENT") else 0

def main(environ=os.environ):
    logging.basicConfig(level=environ.get("LOG_LEVEL", "INFO").upper(),
                        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    host = environ.get("HOST", "0.0.0.0")
    port = int(environ.get("PORT", 3000))
    server = ProxyServer((host, port), trusted_hops=trusted_hops(environ))
    logger.info("Roblox API Proxy running on port %d", port)
    logger.info("Health check: http://localhost:%d/", port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()

if __name__ == "__main__":
    main()
