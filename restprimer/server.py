"""
ASGI adapter and server helpers for restprimer applications.

The adapter converts between the ASGI protocol and restprimer
``Request``/``Response`` objects: it decodes query strings, cookies (plain
and signed) and JSON, form or text bodies, and encodes response bodies.
"""

import base64
import hashlib
import hmac
import json
import logging
import urllib.parse
from http.cookies import CookieError, SimpleCookie
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from .exceptions import EndpointError
from .models import HTTPMethod, Request, Response

if TYPE_CHECKING:
    from .application import Application

logger = logging.getLogger(__name__)

SIGNED_COOKIE_PREFIX = "s:"


def sign_cookie(value: str, secret: str) -> str:
    """Sign a cookie value (``s:<value>.<signature>``)."""
    digest = hmac.new(secret.encode("utf-8"), value.encode("utf-8"), hashlib.sha256).digest()
    signature = base64.b64encode(digest).decode("ascii").rstrip("=")
    return f"{SIGNED_COOKIE_PREFIX}{value}.{signature}"


def unsign_cookie(signed: str, secret: str) -> Optional[str]:
    """Return the original value of a signed cookie, or None if the signature is wrong."""
    if not signed.startswith(SIGNED_COOKIE_PREFIX) or "." not in signed:
        return None
    value = signed[len(SIGNED_COOKIE_PREFIX):].rsplit(".", 1)[0]
    if hmac.compare_digest(sign_cookie(value, secret), signed):
        return value
    return None


def parse_query(query_string: str) -> Dict[str, Any]:
    """Parse a query string; repeated keys become lists."""
    query: Dict[str, Any] = {}
    for name, values in urllib.parse.parse_qs(query_string, keep_blank_values=True).items():
        query[name] = values[0] if len(values) == 1 else values
    return query


def parse_cookies(header: Optional[str], secret: Optional[str] = None) -> Tuple[Dict[str, str], Dict[str, str]]:
    """Split a Cookie header into plain and signed cookies."""
    cookies: Dict[str, str] = {}
    signed: Dict[str, str] = {}
    if not header:
        return cookies, signed

    jar = SimpleCookie()
    try:
        jar.load(header)
    except CookieError as e:
        logger.warning(f"Ignoring malformed Cookie header: {e}")
        return cookies, signed

    for name, morsel in jar.items():
        value = urllib.parse.unquote(morsel.value)
        if secret and value.startswith(SIGNED_COOKIE_PREFIX):
            unsigned = unsign_cookie(value, secret)
            if unsigned is None:
                logger.warning(f"Dropping cookie {name!r} with an invalid signature")
            else:
                signed[name] = unsigned
            continue
        cookies[name] = value
    return cookies, signed


def parse_body(body: bytes, content_type: Optional[str]) -> Any:
    """Decode a request body according to its media type.

    Raises:
        EndpointError: 400 when a JSON or form body cannot be decoded.
    """
    if not body:
        return None

    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        if content_type in ("application/json", "application/x-www-form-urlencoded"):
            raise EndpointError("Request body is not valid UTF-8.", 400)
        return body

    if content_type == "application/json" or (content_type or "").endswith("+json"):
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise EndpointError("Request body is not valid JSON.", 400, {"error": str(e)})
    if content_type == "application/x-www-form-urlencoded":
        return parse_query(text)
    if content_type is None or content_type.startswith("text/"):
        return text
    return body


def encode_body(body: Any) -> Tuple[bytes, Optional[str]]:
    """Encode a response body, returning the bytes and a default content type."""
    if body is None:
        return b"", None
    if isinstance(body, bytes):
        return body, "application/octet-stream"
    if isinstance(body, str):
        return body.encode("utf-8"), "text/plain; charset=utf-8"
    if isinstance(body, BaseModel):
        return body.model_dump_json().encode("utf-8"), "application/json"
    return json.dumps(body, default=str).encode("utf-8"), "application/json"


class ASGIAdapter:
    """
    ASGI adapter that converts between ASGI protocol and restprimer Request/Response objects.
    """

    def __init__(self, app: "Application", cookie_secret: Optional[str] = None):
        self.app = app
        self.cookie_secret = cookie_secret

    async def __call__(self, scope: Dict[str, Any], receive, send):
        """ASGI application entry point."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return

        if scope["type"] != "http":
            await self._send(send, 404, [[b"content-type", b"text/plain"]], b"Not Found")
            return

        body = await self._read_body(receive)
        try:
            request = self._to_request(scope, body)
        except EndpointError as e:
            await self._send_error(send, e)
            return

        response = await self.app.execute(request)
        await self._to_asgi_response(request, response, send)

    async def _handle_lifespan(self, receive, send):
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await send({"type": "lifespan.shutdown.complete"})
                return

    async def _read_body(self, receive) -> bytes:
        body = b""
        more_body = True
        while more_body:
            message = await receive()
            body += message.get("body", b"")
            more_body = message.get("more_body", False)
        return body

    def _to_request(self, scope: Dict[str, Any], body: bytes) -> Request:
        """Convert ASGI scope and body to a restprimer Request."""
        try:
            method = HTTPMethod(scope["method"].upper())
        except ValueError:
            raise EndpointError(f"Method {scope['method']} is not supported.", 501)

        # Parse headers - normalize all to lowercase for case-insensitive matching
        headers: Dict[str, str] = {}
        for header_name, header_value in scope.get("headers", []):
            name = header_name.decode("latin-1").lower()
            value = header_value.decode("latin-1")
            if name in headers:
                separator = "; " if name == "cookie" else ", "
                headers[name] = f"{headers[name]}{separator}{value}"
            else:
                headers[name] = value

        cookies, signed_cookies = parse_cookies(headers.get("cookie"), self.cookie_secret)
        request = Request(
            method=method,
            path=scope["path"],
            headers=headers,
            query=parse_query(scope.get("query_string", b"").decode("latin-1")),
            cookies=cookies,
            signed_cookies=signed_cookies,
        )
        request.body = parse_body(body, request.get_content_type())
        return request

    async def _to_asgi_response(self, request: Request, response: Response, send):
        """Convert a restprimer Response to ASGI messages."""
        body, default_content_type = encode_body(response.body)
        if response.status_code in (204, 304):
            body = b""

        headers: List[List[bytes]] = []
        has_content_type = False
        for name, value in response.headers.items():
            lowered = name.lower()
            if lowered == "content-length":
                continue
            if lowered == "content-type":
                has_content_type = True
            headers.append([lowered.encode("latin-1"), str(value).encode("latin-1")])

        if not has_content_type and default_content_type and body:
            headers.append([b"content-type", default_content_type.encode("latin-1")])
        if response.status_code not in (204, 304):
            headers.append([b"content-length", str(len(body)).encode("latin-1")])

        if request.method == HTTPMethod.HEAD:
            body = b""

        await self._send(send, response.status_code, headers, body)

    async def _send_error(self, send, error: EndpointError):
        body = json.dumps(error.to_json()).encode("utf-8")
        await self._send(send, error.code, [
            [b"content-type", b"application/json"],
            [b"content-length", str(len(body)).encode("latin-1")],
        ], body)

    async def _send(self, send, status: int, headers: List[List[bytes]], body: bytes):
        await send({
            "type": "http.response.start",
            "status": status,
            "headers": headers,
        })
        await send({
            "type": "http.response.body",
            "body": body,
        })


def serve(app: "Application", host: str = "127.0.0.1", port: int = 8000,
          log_level: str = "info", **kwargs):
    """
    Run an application under Uvicorn.

    Args:
        app: The application returned by ``Router.mount()``
        host: Host to bind to
        port: Port to bind to
        log_level: Logging level
        **kwargs: Additional Uvicorn configuration options
    """
    try:
        import uvicorn
    except ImportError:
        raise ImportError(
            "Uvicorn is not installed. Install with: pip install 'restprimer[uvicorn]'"
        )

    logger.info(f"Starting Uvicorn server on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level=log_level, **kwargs)
