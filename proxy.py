#!/usr/bin/env python3

import json
import logging
import requests
import sys
import time

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import datetime
from datetime import timezone
from urllib.parse import parse_qsl
from urllib.parse import quote

logger = logging.getLogger(__name__)

TIMEOUT = 10
CHUNK_SIZE = 1024
USER_AGENT = "RobloxProxy/1.0"

CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}
PREFLIGHT_METHODS = "GET,HEAD,PUT,PATCH,POST,DELETE"

class ProxyError(Exception):
    pass

class MissingParameter(ProxyError):

    def __init__(self, name):
        super().__init__(f"{name} parameter is required")
        self.name = name

class UpstreamError(ProxyError):
    pass

class UpstreamStatusError(UpstreamError):

    def __init__(self, status):
        super().__init__(f"Roblox API responded with status: {status}")
        self.status = status

class UpstreamTimeout(UpstreamError):
    pass

class UpstreamNetworkError(UpstreamError):
    pass

class InvalidResponse(UpstreamError):
    pass

def _fetch(url, deadline):
    with requests.get(url, headers={"User-Agent": USER_AGENT}, timeout=TIMEOUT, stream=True) as response:
        if not response.ok:
            raise UpstreamStatusError(response.status_code)
        content = bytearray()
        for chunk in response.iter_content(CHUNK_SIZE):
            if time.monotonic() > deadline:
                raise requests.Timeout("deadline exceeded while reading body")
            content += chunk
        return bytes(content)

def download(url):
    """
    Return upstream JSON from `url` or raise an :class:`UpstreamError`.

    `TIMEOUT` caps the whole exchange, connecting through the last body byte.
    On timeout the worker thread is abandoned and left to finish on its own.
    """
    deadline = time.monotonic() + TIMEOUT
    pool = ThreadPoolExecutor(max_workers=1)
    future = pool.submit(_fetch, url, deadline)
    pool.shutdown(wait=False)
    try:
        content = future.result(timeout=TIMEOUT)
    except (FutureTimeout, requests.Timeout) as error:
        raise UpstreamTimeout(f"Roblox API request timed out after {TIMEOUT} seconds") from error
    except requests.RequestException as error:
        raise UpstreamNetworkError(str(error)) from error
    try:
        return json.loads(content)
    except ValueError as error:
        raise InvalidResponse(f"Invalid JSON response from Roblox API: {error}") from error

def response(status_code, body, headers=None):
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json", **(headers or {})},
        "body": json.dumps(body),
    }

def text_response(status_code, text, headers=None):
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "text/plain; charset=utf-8", **(headers or {})},
        "body": text,
    }

def error_response(status_code, message, details=None):
    body = {"error": message}
    if details is not None:
        body["details"] = details
    return response(status_code, body)

def pass_through(data):
    return response(200, data)

def universe_id(data):
    if isinstance(data, dict) and (value := data.get("universeId")):
        logger.info("Found universe ID: %s", value)
        return text_response(200, str(value))
    return error_response(404, "Universe ID not found")

def votes(data):
    logger.debug("Votes data: %s", data)
    return response(200, data)

@dataclass(frozen=True)
class Route:
    path: str
    param: str
    url: str
    resource: str
    subject: str
    reply: object = pass_through

    def build_url(self, value):
        return self.url.format(quote(value, safe=","))

    def __call__(self, params):
        if not (value := params.get(self.param)):
            raise MissingParameter(self.param)
        logger.info("Fetching %s %s: %s", self.resource, self.subject, value)
        try:
            data = download(self.build_url(value))
        except UpstreamError as error:
            logger.error("Error fetching %s: %s", self.resource, error)
            return error_response(500, f"Failed to fetch {self.resource}", str(error))
        return self.reply(data)

ROUTES = {route.path: route for route in (
    Route("/universes/get-universe-containing-place",
          "placeid",
          "https://apis.roblox.com/universes/v1/places/{}/universe",
          "universe ID",
          "for place",
          universe_id),
    Route("/v1/games/votes",
          "universeIds",
          "https://games.roblox.com/v1/games/votes?universeIds={}",
          "votes",
          "for universe",
          votes),
    Route("/v1/games",
          "universeIds",
          "https://games.roblox.com/v1/games?universeIds={}",
          "game info",
          "for universe"),
)}

def status():
    return response(200, {
        "status": "online",
        "message": "Roblox API Proxy is running!",
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
    })

def handle(path, params):
    """
    Route a GET request for `path` with query `params`.

    Returns a reply dict with keys ``statusCode``, ``headers`` and ``body``.
    Upstream failures become error replies here, anything unexpected
    propagates to the caller.
    """
    path = path.rstrip("/") or "/"
    if path == "/":
        return status()
    if (route := ROUTES.get(path)) is None:
        return error_response(404, "Not found")
    try:
        return route(params)
    except MissingParameter as error:
        return error_response(400, str(error))

def preflight(request_headers=None):
    headers = {**CORS_HEADERS, "Access-Control-Allow-Methods": PREFLIGHT_METHODS}
    if request_headers:
        headers["Access-Control-Allow-Headers"] = request_headers
        headers["Vary"] = "Access-Control-Request-Headers"
    return {"statusCode": 204, "headers": headers, "body": ""}

def _method(event):
    method = event.get("httpMethod") or event.get("requestContext", {}).get("http", {}).get("method", "")
    return (method or "GET").upper()

def lambda_handler(event, context):
    event = event or {}
    headers = {k.lower(): v for k, v in (event.get("headers") or {}).items()}
    if _method(event) == "OPTIONS":
        return preflight(headers.get("access-control-request-headers"))
    path = event.get("rawPath") or event.get("path") or "/"
    params = event.get("queryStringParameters") or {}
    try:
        reply = handle(path, params)
    except Exception:
        logger.exception("Unhandled error")
        reply = error_response(500, "Internal server error")
    reply["headers"].update(CORS_HEADERS)
    return reply

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    reply = handle(sys.argv[1], dict(parse_qsl("&".join(sys.argv[2:]))))
    print(reply["statusCode"])
    print(reply["body"])
