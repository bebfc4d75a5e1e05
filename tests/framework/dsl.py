"""
DSL (Domain Specific Language) for RESTful test actions.

This is the second layer in Dave Farley's 4-layer testing architecture:
1. Test Layer (actual test methods)
2. DSL Layer (this file) - describes what we want to do in business terms
3. Driver Layer - knows how to interact with the system
4. System Under Test (restprimer library)
"""

from typing import Dict, Any, Optional, List, Union
from dataclasses import dataclass, field
import json

from restprimer import sign_cookie


@dataclass
class HttpRequest:
    """Represents an HTTP request in business terms."""
    method: str
    path: str
    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)
    body: Optional[Union[str, Dict[str, Any], List[Any]]] = None
    content_type: Optional[str] = None

    def with_json_body(self, data: Any) -> 'HttpRequest':
        """Add JSON body to the request."""
        self.body = data
        self.content_type = "application/json"
        self.headers["Content-Type"] = "application/json"
        return self

    def with_form_body(self, data: Dict[str, str]) -> 'HttpRequest':
        """Add form body to the request."""
        self.body = data
        self.content_type = "application/x-www-form-urlencoded"
        self.headers["Content-Type"] = "application/x-www-form-urlencoded"
        return self

    def with_text_body(self, text: str) -> 'HttpRequest':
        """Add text body to the request."""
        self.body = text
        # Only set content type if not already set
        if "Content-Type" not in self.headers:
            self.content_type = "text/plain"
            self.headers["Content-Type"] = "text/plain"
        return self

    def with_header(self, name: str, value: str) -> 'HttpRequest':
        """Add a header to the request."""
        self.headers[name] = value
        return self

    def with_query(self, **params: str) -> 'HttpRequest':
        """Add query string parameters."""
        self.query_params.update(params)
        return self

    def with_cookie(self, name: str, value: str) -> 'HttpRequest':
        """Add a cookie to the request."""
        self.cookies[name] = value
        return self

    def with_signed_cookie(self, name: str, value: str, secret: str) -> 'HttpRequest':
        """Add a cookie signed with ``secret``."""
        self.cookies[name] = sign_cookie(value, secret)
        return self

    def with_auth(self, token: str) -> 'HttpRequest':
        """Add authorization header."""
        self.headers["Authorization"] = f"Bearer {token}"
        return self


@dataclass
class HttpResponse:
    """Represents an HTTP response in business terms."""
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Union[str, Dict[str, Any], List[Any], int, float, bool]] = None
    content_type: Optional[str] = None

    def is_successful(self) -> bool:
        """Check if response indicates success (2xx)."""
        return 200 <= self.status_code < 300

    def is_client_error(self) -> bool:
        """Check if response indicates client error (4xx)."""
        return 400 <= self.status_code < 500

    def is_server_error(self) -> bool:
        """Check if response indicates server error (5xx)."""
        return 500 <= self.status_code < 600

    def has_header(self, name: str) -> bool:
        """Check if response has a specific header (case-insensitive)."""
        return self.get_header(name) is not None

    def get_header(self, name: str) -> Optional[str]:
        """Get header value (case-insensitive)."""
        for header_name, value in self.headers.items():
            if header_name.lower() == name.lower():
                return value
        return None

    def get_json_body(self):
        """Get response body as JSON object or list."""
        if isinstance(self.body, (dict, list)):
            return self.body
        if isinstance(self.body, str):
            return json.loads(self.body)
        raise ValueError("Response body is not JSON")

    def get_text_body(self) -> str:
        """Get response body as text."""
        if isinstance(self.body, str):
            return self.body
        if isinstance(self.body, (dict, list)):
            return json.dumps(self.body)
        return str(self.body)


class RestApiDsl:
    """
    Domain-Specific Language for REST API testing.

    This provides a high-level, business-focused way to describe REST operations
    without knowing implementation details.
    """

    def __init__(self, driver):
        """Initialize with a driver that knows how to execute requests."""
        self._driver = driver

    # Request builders (fluent interface)
    def get(self, path: str) -> HttpRequest:
        """Create a GET request."""
        return HttpRequest(method="GET", path=path)

    def post(self, path: str) -> HttpRequest:
        """Create a POST request."""
        return HttpRequest(method="POST", path=path)

    def put(self, path: str) -> HttpRequest:
        """Create a PUT request."""
        return HttpRequest(method="PUT", path=path)

    def patch(self, path: str) -> HttpRequest:
        """Create a PATCH request."""
        return HttpRequest(method="PATCH", path=path)

    def delete(self, path: str) -> HttpRequest:
        """Create a DELETE request."""
        return HttpRequest(method="DELETE", path=path)

    def head(self, path: str) -> HttpRequest:
        """Create a HEAD request."""
        return HttpRequest(method="HEAD", path=path)

    # Execution
    def execute(self, request: HttpRequest) -> HttpResponse:
        """Execute a request using the underlying driver."""
        return self._driver.execute(request)

    # Convenience methods for common patterns
    def create_resource(self, path: str, data: Any) -> HttpResponse:
        """Create a resource with JSON data."""
        return self.execute(self.post(path).with_json_body(data))

    def get_resource(self, path: str) -> HttpResponse:
        """Get a resource."""
        return self.execute(self.get(path))

    def search_resources(self, path: str, query: Dict[str, str]) -> HttpResponse:
        """Search resources with query parameters."""
        request = self.get(path)
        request.query_params.update(query)
        return self.execute(request)

    def get_if_none_match(self, path: str, etag: str) -> HttpResponse:
        """Get resource only if ETag doesn't match."""
        return self.execute(self.get(path).with_header("If-None-Match", etag))

    # Testing helpers for assertions
    def expect_successful_retrieval(self, response: HttpResponse):
        """Assert successful resource retrieval and return data."""
        assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.body}"
        return response.get_json_body()

    def expect_not_found(self, response: HttpResponse) -> Dict[str, Any]:
        """Assert resource not found and return the error body."""
        assert response.status_code == 404, f"Expected 404, got {response.status_code}"
        return response.get_json_body()

    def expect_unauthorized(self, response: HttpResponse):
        """Assert unauthorized access."""
        assert response.status_code == 401, f"Expected 401, got {response.status_code}"

    def expect_validation_error(self, response: HttpResponse) -> Dict[str, Any]:
        """Assert a request validation error and return the error body."""
        assert response.status_code == 400, f"Expected 400, got {response.status_code}: {response.body}"
        error = response.get_json_body()
        assert error["message"] == "This request is not valid."
        assert isinstance(error["details"], list) and error["details"]
        return error

    def expect_server_error(self, response: HttpResponse) -> Dict[str, Any]:
        """Assert a structured 500 error and return the error body."""
        assert response.status_code == 500, f"Expected 500, got {response.status_code}: {response.body}"
        return response.get_json_body()

    def expect_not_modified(self, response: HttpResponse):
        """Assert not modified response."""
        assert response.status_code == 304, f"Expected 304, got {response.status_code}"

    # OpenAPI testing helpers
    def fetch_openapi_spec(self, path: str = "/openapi.json") -> Dict[str, Any]:
        """Fetch the served OpenAPI document."""
        return self.expect_successful_retrieval(self.get_resource(path))

    def assert_has_path(self, spec: Dict[str, Any], path: str, method: str):
        """Assert that OpenAPI spec has a specific path and method."""
        assert "paths" in spec, "OpenAPI spec missing paths"
        assert path in spec["paths"], f"Path {path} not found in OpenAPI spec"
        assert method.lower() in spec["paths"][path], f"Method {method} not found for path {path}"

    def get_path_operation(self, spec: Dict[str, Any], path: str, method: str) -> Dict[str, Any]:
        """Get path operation from OpenAPI spec."""
        return spec["paths"][path][method.lower()]
