"""Router module: nested route groups sharing one OpenAPI document."""

import copy
import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type, Union

from .application import Application
from .chain import ErrorHandler, HandlerChain, Middleware
from .constants import SPEC_CACHE_CONTROL
from .endpoint import Endpoint
from .models import HTTPMethod, Request, Response, etags_match
from .openapi import (
    dedupe,
    default_document,
    document_schema,
    get_parameters,
    info_from_metadata,
    join_uris,
    load_package_metadata,
    merge_parameters,
    merge_path_parameters,
    normalize_template,
    unfold,
)

logger = logging.getLogger(__name__)

Methods = Union[str, HTTPMethod, Sequence[Union[str, HTTPMethod]]]


class Router:
    """Router class for registering endpoints and describing them.

    Every router created through ``group()`` shares the root's document, so
    the document always describes the whole tree. Each router keeps its own
    view: the absolute uri prefix, inherited tags, the middleware chain and
    the active security scheme.

    Example:
        router = Router()

        def users(router):
            router.use(load_session)
            router.route("/", ListUsers)
            router.route("/:id(\\d+)", GetUser)

        router.group("/users", users, tags=["users"])
        router.serve_spec("/openapi.json")
        app = router.mount()
    """

    def __init__(self, components: Optional[Dict[str, Any]] = None):
        """Initialize a root router.

        Args:
            components: Extra OpenAPI components (``schemas``, ``responses``, or
                any other namespace) merged into the document. Entries are
                added next to the built-in error schemas and responses.
        """
        self.chain = HandlerChain()
        self.tags: List[str] = []
        self.uri = "/"
        self.middleware: List[Middleware] = []
        self.security_scheme_name = ""
        self.security_requirement: List[str] = []
        self.spec = default_document()
        for namespace, entries in copy.deepcopy(components or {}).items():
            existing = self.spec["components"].get(namespace)
            if isinstance(existing, dict) and isinstance(entries, dict):
                existing.update(entries)
            else:
                self.spec["components"][namespace] = entries

    def _branch(self, uri: str, tags: Optional[Iterable[str]]) -> "Router":
        """A child router that shares the document and snapshots this node's state."""
        child = type(self).__new__(type(self))
        child.chain = HandlerChain()
        child.tags = dedupe(self.tags + list(tags or []))
        child.uri = join_uris(self.uri, uri)
        child.middleware = list(self.middleware)
        child.security_scheme_name = self.security_scheme_name
        child.security_requirement = list(self.security_requirement)
        child.spec = self.spec
        return child

    def group(self, uri: Union[str, Callable[["Router"], Any]],
              closure: Union[Callable[["Router"], Any], Iterable[str], None] = None,
              tags: Optional[Iterable[str]] = None) -> "Router":
        """Register a nested group of routes.

        Accepts ``group(uri, closure, tags=None)`` or ``group(closure, tags=None)``.
        ``closure`` is called right away with the child router. Tags and
        middleware are inherited as they are at this moment; middleware
        added to this router later does not reach the group.
        """
        if callable(uri):
            if tags is None and closure is not None and not callable(closure):
                tags = closure
            uri, closure = "/", uri
        if not callable(closure):
            raise TypeError("group() needs a function that registers the group's routes")

        child = self._branch(uri, tags)
        logger.debug(f"Registering group {child.uri} with tags {child.tags}")
        closure(child)
        self.chain.mount(uri, child.chain)
        return self

    def use(self, middleware: Union[Middleware, Sequence[Middleware]]) -> "Router":
        """Run ``middleware`` ahead of every route registered from now on, here or in child groups."""
        if callable(middleware):
            middleware = [middleware]
        self.middleware.extend(middleware)
        return self

    def secure(self, middleware: Middleware, security_scheme_name: str,
               security_scheme: Dict[str, Any],
               security_requirement: Optional[List[str]] = None) -> "Router":
        """Protect this router's routes with ``middleware`` and document the scheme.

        The scheme is added to ``components.securitySchemes`` and every
        operation registered from here on (including child groups) gets a
        matching ``security`` requirement, unless it declares its own.
        """
        self.spec["components"].setdefault("securitySchemes", {})[security_scheme_name] = security_scheme
        self.security_scheme_name = security_scheme_name
        self.security_requirement = list(security_requirement or [])
        logger.debug(f"Securing {self.uri} with scheme {security_scheme_name!r}")
        return self.use(middleware)

    def route(self, uri: str, endpoint: Union[Endpoint, Type[Endpoint]], methods: Methods = "get") -> "Router":
        """Route ``uri`` to ``endpoint`` and describe it in the document.

        Args:
            uri: Path template, relative to this router. Placeholders use the
                ``:name`` or ``:name(regex)`` syntax.
            endpoint: An Endpoint instance, or an Endpoint subclass to instantiate.
            methods: One HTTP method or a list of them.
        """
        if isinstance(methods, (str, HTTPMethod)):
            methods = [methods]
        if isinstance(endpoint, type):
            endpoint = endpoint()

        middleware = endpoint.create_middleware(self.spec)
        path, operation = self._operation(uri, endpoint)

        for method in methods:
            method_name = (method.value if isinstance(method, HTTPMethod) else method).lower()
            self.chain.route(method_name, uri, *self.middleware, middleware)
            self.spec["paths"].setdefault(path, {})[method_name] = copy.deepcopy(operation)
            logger.debug(f"Registered {method_name.upper()} {path} -> {type(endpoint).__name__}")

        return self

    def _operation(self, uri: str, endpoint: Endpoint) -> Tuple[str, Dict[str, Any]]:
        """Build the OpenAPI path and operation object for a route."""
        options = endpoint.options
        operation = endpoint.operation() or {}

        operation["tags"] = dedupe(self.tags + list(operation.get("tags") or []))

        parameters: List[Dict[str, Any]] = []
        for location, schema in (
            ("query", endpoint.query_schema()),
            ("path", endpoint.params_schema()),
            ("header", endpoint.headers_schema()),
            ("cookie", endpoint.cookies_schema()),
            ("cookie", endpoint.signed_cookies_schema()),
        ):
            parameters.extend(get_parameters(location, schema, self.spec))
        parameters.extend(operation.get("parameters") or [])
        parameters = merge_parameters(parameters)

        path, placeholders = normalize_template(join_uris(self.uri, uri))
        merge_path_parameters(parameters, placeholders)

        if parameters:
            operation["parameters"] = parameters
        else:
            operation.pop("parameters", None)

        responses: Dict[str, Any] = {}
        for code, schema in (endpoint.response_code_schemas() or {}).items():
            resolved = unfold(schema, self.spec) or {}
            media_type = resolved.get("contentMediaType") or options.default_response_media_type
            response: Dict[str, Any] = {
                "description": resolved.get("description") or "Response",
                "content": {media_type: {"schema": document_schema(schema)}},
            }
            headers = options.response_headers.get(str(code)) or options.response_headers.get(code) or {}
            if headers.get(media_type):
                response["headers"] = copy.deepcopy(headers[media_type])
            responses[str(code)] = response

        responses.update(operation.get("responses") or {})
        if not responses:
            responses[str(options.default_response_code)] = {"description": "No response schema given."}
        operation["responses"] = responses

        body_schema = endpoint.body_schema()
        resolved_body = unfold(body_schema, self.spec)
        if resolved_body is not None and "requestBody" not in operation:
            media_type = resolved_body.get("contentMediaType") or options.default_request_body_media_type
            request_body: Dict[str, Any] = {
                "content": {media_type: {"schema": document_schema(body_schema)}},
                "required": options.request_body_required_if_has_schema,
            }
            if resolved_body.get("description"):
                request_body["description"] = resolved_body["description"]
            operation["requestBody"] = request_body

        if self.security_scheme_name and "security" not in operation:
            operation["security"] = [{self.security_scheme_name: list(self.security_requirement)}]

        return path, operation

    def get_spec(self, info: Union[Dict[str, Any], str, None] = None) -> Dict[str, Any]:
        """Merge ``info`` into the document's info object and return the live document.

        Args:
            info: A partial info object, or the name of an installed
                distribution whose metadata supplies title, version,
                contact and license.
        """
        if isinstance(info, str):
            info = info_from_metadata(load_package_metadata(info))
        self.spec["info"].update(info or {})
        return self.spec

    def serve_spec(self, uri: str = "/", info: Union[Dict[str, Any], str, None] = None) -> "Router":
        """Serve the document at ``uri``.

        The ETag is the MD5 of the document and is recomputed on each request,
        so routes registered after this call are still served.
        ``Last-Modified`` moves forward whenever the document changes.
        """
        spec = self.get_spec(info)
        state = {"etag": _document_hash(spec), "last_modified": datetime.now(timezone.utc)}

        def spec_handler(request: Request, response: Response) -> None:
            etag = _document_hash(spec)
            if etag != state["etag"]:
                state["etag"] = etag
                state["last_modified"] = datetime.now(timezone.utc)

            response.set_etag(etag)
            response.set_last_modified(state["last_modified"])
            response.set_headers({"Cache-Control": SPEC_CACHE_CONTROL})

            if etags_match(request.get_if_none_match() or [], etag):
                response.status(304).send(None)
                return

            response.status(200).send(spec)

        self.chain.route("get", uri, *self.middleware, spec_handler)
        logger.debug(f"Serving the OpenAPI document at {join_uris(self.uri, uri)}")
        return self

    def mount(self, error_handlers: Union[ErrorHandler, Sequence[ErrorHandler], None] = None,
              cookie_secret: Optional[str] = None) -> Application:
        """Build the application entry point.

        Args:
            error_handlers: Extra error stages run before the built-in one,
                which turns any error into a structured JSON error response.
            cookie_secret: Secret used to verify signed cookies.
        """
        if error_handlers is None:
            error_handlers = []
        elif callable(error_handlers):
            error_handlers = [error_handlers]
        return Application(self.chain, list(error_handlers), spec=self.spec, cookie_secret=cookie_secret)


def _document_hash(spec: Dict[str, Any]) -> str:
    encoded = json.dumps(spec, sort_keys=True, default=str).encode("utf-8")
    return hashlib.md5(encoded, usedforsecurity=False).hexdigest()
