"""
A small REST toolkit that keeps routing and documentation in one place.

Endpoints declare JSON Schemas for their query, path parameters, headers,
cookies, body and responses. Routers nest them into groups, validate every
request against the declared schemas and assemble an OpenAPI 3 document
describing the whole tree, which can be served from the application itself.
"""

from .application import Application
from .chain import HandlerChain
from .constants import OPEN_API_REFERENCE_ID, OPENAPI_VERSION
from .endpoint import Endpoint, EndpointOptions, RequestSchemas
from .error_models import ErrorResponse
from .exceptions import (
    EndpointError,
    ReferenceCycleError,
    ResponseAlreadySentError,
    UnresolvableReferenceError,
    ValidationError,
)
from .models import HTTPMethod, Outcome, Request, Response
from .router import Router
from .server import ASGIAdapter, serve, sign_cookie
from .validation import SchemaValidator, ValidatorOptions, compile_schema

__version__ = "0.1.0"
__author__ = "restprimer contributors"
__license__ = "MIT"

__all__ = [
    "Application",
    "ASGIAdapter",
    "Endpoint",
    "EndpointError",
    "EndpointOptions",
    "ErrorResponse",
    "HandlerChain",
    "HTTPMethod",
    "OPEN_API_REFERENCE_ID",
    "OPENAPI_VERSION",
    "Outcome",
    "ReferenceCycleError",
    "Request",
    "RequestSchemas",
    "Response",
    "ResponseAlreadySentError",
    "Router",
    "SchemaValidator",
    "UnresolvableReferenceError",
    "ValidationError",
    "ValidatorOptions",
    "compile_schema",
    "serve",
    "sign_cookie",
]
