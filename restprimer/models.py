"""
Core data models for the REST framework.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .exceptions import ResponseAlreadySentError


class HTTPMethod(Enum):
    """Enumeration of supported HTTP methods."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


@dataclass
class Request:
    """Represents an HTTP request.

    The facet attributes (``query``, ``params``, ``headers``, ``cookies``,
    ``signed_cookies``, ``body``) are what endpoint schemas validate. Request
    validation may coerce and fill in defaults on them in place, so handlers
    always see the validated values. Header names are lower-cased.
    """

    method: HTTPMethod
    path: str
    headers: Dict[str, str] = field(default_factory=dict)
    query: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)
    signed_cookies: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    state: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.headers = {name.lower(): value for name, value in self.headers.items()}

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name.lower(), default)

    def get_content_type(self) -> Optional[str]:
        """Get the media type of the body, without parameters."""
        content_type = self.headers.get("content-type")
        if not content_type:
            return None
        return content_type.split(";")[0].strip().lower()

    def get_if_none_match(self) -> Optional[List[str]]:
        """Get the If-None-Match header values as a list of ETags."""
        if_none_match = self.headers.get("if-none-match")
        if not if_none_match:
            return None
        return parse_etags(if_none_match)


class Response:
    """A mutable, not yet sent HTTP response.

    Middleware and endpoints write to it; ``send()`` finalizes it. A response
    can only be sent once.
    """

    def __init__(self):
        self.status_code: int = 200
        self.headers: Dict[str, str] = {}
        self.body: Any = None
        self.sent: bool = False

    def set_headers(self, headers: Optional[Dict[str, Any]]) -> "Response":
        for name, value in (headers or {}).items():
            self.headers[name] = str(value)
        return self

    def status(self, status_code: int) -> "Response":
        self.status_code = int(status_code)
        return self

    def send(self, body: Any = None) -> "Response":
        if self.sent:
            raise ResponseAlreadySentError(
                f"Response already sent with status {self.status_code}"
            )
        self.body = body
        self.sent = True
        return self

    def set_etag(self, etag: str, weak: bool = False):
        """Set the ETag header.

        Args:
            etag: The ETag value (without quotes)
            weak: Whether this is a weak ETag (prefixed with W/)
        """
        if weak:
            self.headers["ETag"] = f'W/"{etag}"'
        else:
            self.headers["ETag"] = f'"{etag}"'

    def set_last_modified(self, last_modified: datetime):
        """Set the Last-Modified header.

        Args:
            last_modified: The last modified datetime, in UTC
        """
        # Format as HTTP date: "Mon, 01 Jan 2024 00:00:00 GMT"
        self.headers["Last-Modified"] = last_modified.strftime("%a, %d %b %Y %H:%M:%S GMT")

    def __repr__(self) -> str:
        return f"Response(status_code={self.status_code!r}, sent={self.sent!r})"


@dataclass
class Outcome:
    """What a handler produced: body, status code and headers.

    Handlers return an Outcome to override the endpoint's default status code
    and headers; any other return value is wrapped in one.
    """

    body: Any = ""
    status_code: int = 200
    headers: Dict[str, str] = field(default_factory=dict)


def parse_etags(etag_header: str) -> List[str]:
    """Opaque tags listed in an If-None-Match header.

    The ``W/`` prefix and the quotes are dropped, since the header is only
    ever compared weakly. ``*`` is kept as is.
    """
    tags = []
    for etag in (etag_header or "").split(","):
        etag = etag.strip()
        if etag.startswith("W/"):
            etag = etag[2:]
        if len(etag) >= 2 and etag[0] == etag[-1] == '"':
            etag = etag[1:-1]
        if etag:
            tags.append(etag)
    return tags


def etags_match(tags: List[str], etag: str) -> bool:
    """Weak comparison of a representation's ``etag`` against parsed header tags."""
    return any(tag == "*" or tag == etag for tag in tags)
