"""
Driver implementations for different execution environments.

This is the third layer in Dave Farley's 4-layer testing architecture.
Drivers know how to translate DSL requests into actual system calls.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List
from urllib.parse import urlencode

from restprimer import Application, HTTPMethod, Request
from restprimer.server import parse_cookies
from .dsl import HttpRequest, HttpResponse


class DriverInterface(ABC):
    """Abstract interface for all drivers."""

    @abstractmethod
    def execute(self, request: HttpRequest) -> HttpResponse:
        """Execute an HTTP request and return the response."""
        pass


def _cookie_header(cookies: Dict[str, str]) -> str:
    return "; ".join(f"{name}={value}" for name, value in cookies.items())


class DirectDriver(DriverInterface):
    """
    Driver that executes requests directly against Application.execute().

    This is the most direct way to test the library without any intermediate layers.
    Bodies are handed over already decoded, the way the ASGI adapter would
    decode them.
    """

    def __init__(self, app: Application):
        """Initialize with an Application instance."""
        self.app = app

    def execute(self, request: HttpRequest) -> HttpResponse:
        """Execute request directly through Application."""
        rp_request = self._convert_to_restprimer_request(request)
        rp_response = asyncio.run(self.app.execute(rp_request))

        body = rp_response.body
        if rp_response.status_code in (204, 304) or request.method == "HEAD":
            body = None

        return HttpResponse(
            status_code=rp_response.status_code,
            headers=dict(rp_response.headers),
            body=body,
            content_type=rp_response.headers.get("Content-Type"),
        )

    def _convert_to_restprimer_request(self, request: HttpRequest) -> Request:
        """Convert DSL HttpRequest to restprimer Request."""
        headers = dict(request.headers)
        cookies: Dict[str, str] = {}
        signed_cookies: Dict[str, str] = {}
        if request.cookies:
            headers["Cookie"] = _cookie_header(request.cookies)
            cookies, signed_cookies = parse_cookies(headers["Cookie"], self.app.asgi.cookie_secret)

        body = request.body
        if isinstance(body, dict) and request.content_type == "application/x-www-form-urlencoded":
            body = {name: str(value) for name, value in body.items()}

        return Request(
            method=HTTPMethod(request.method.upper()),
            path=request.path,
            headers=headers,
            query={name: str(value) for name, value in request.query_params.items()},
            cookies=cookies,
            signed_cookies=signed_cookies,
            body=body,
        )


class AsgiDriver(DriverInterface):
    """
    Driver that executes requests through the ASGI interface.

    Builds an ASGI scope, feeds the body through an in-memory ``receive`` and
    collects the messages passed to ``send``, so it exercises the same code a
    real ASGI server would, without opening sockets.
    """

    def __init__(self, app: Application):
        self.app = app

    def execute(self, request: HttpRequest) -> HttpResponse:
        """Execute request through the ASGI adapter."""
        scope, body = self._build_scope(request)
        messages = asyncio.run(self._call(scope, body))
        return self._convert_from_asgi_messages(messages)

    def _build_scope(self, request: HttpRequest):
        body = b""
        if request.body is not None:
            if request.content_type == "application/x-www-form-urlencoded":
                body = urlencode(request.body).encode("utf-8")
            elif isinstance(request.body, str):
                body = request.body.encode("utf-8")
            else:
                body = json.dumps(request.body).encode("utf-8")

        headers: List[List[bytes]] = [
            [name.lower().encode("latin-1"), str(value).encode("latin-1")]
            for name, value in request.headers.items()
        ]
        if request.cookies:
            headers.append([b"cookie", _cookie_header(request.cookies).encode("latin-1")])
        if body:
            headers.append([b"content-length", str(len(body)).encode("latin-1")])

        scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": request.method.upper(),
            "scheme": "http",
            "path": request.path,
            "query_string": urlencode(request.query_params).encode("latin-1"),
            "headers": headers,
            "server": ("testserver", 80),
            "client": ("testclient", 50000),
        }
        return scope, body

    async def _call(self, scope: Dict[str, Any], body: bytes) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = []
        received = False

        async def receive():
            nonlocal received
            if received:
                return {"type": "http.disconnect"}
            received = True
            return {"type": "http.request", "body": body, "more_body": False}

        async def send(message):
            messages.append(message)

        await self.app(scope, receive, send)
        return messages

    def _convert_from_asgi_messages(self, messages: List[Dict[str, Any]]) -> HttpResponse:
        start = next(m for m in messages if m["type"] == "http.response.start")
        raw_body = b"".join(m.get("body", b"") for m in messages if m["type"] == "http.response.body")

        headers = {
            name.decode("latin-1"): value.decode("latin-1")
            for name, value in start.get("headers", [])
        }
        content_type = headers.get("content-type")

        body: Any = None
        if raw_body:
            text = raw_body.decode("utf-8")
            if content_type and "application/json" in content_type:
                body = json.loads(text)
            else:
                body = text

        return HttpResponse(
            status_code=start["status"],
            headers=headers,
            body=body,
            content_type=content_type,
        )
