"""
Endpoints: schema declarations plus a handler.

An ``Endpoint`` declares schemas for the request facets it validates and for
the responses it may produce. Schemas can be passed to the constructor or
supplied by overriding the ``*_schema()`` methods in a subclass::

    class GetUser(Endpoint):
        def params_schema(self):
            return Endpoint.object_schema({"id": {"type": "string"}})

        def handler(self, request):
            return users[request.params["id"]]

    router.route("/users/:id", GetUser)
    router.route("/ping", Endpoint(handler=lambda request: "pong"))

``create_middleware()`` compiles the schemas once and returns the handler that
runs for every request: validate the request, call ``handler``, validate the
response when enabled, then send it.
"""

import copy
import functools
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Optional, Tuple, Union

from .chain import Middleware, call_handler
from .constants import OPEN_API_REFERENCE_ID
from .exceptions import ValidationError
from .models import Outcome, Request, Response
from .validation import SchemaValidator, ValidatorOptions, compile_schema

logger = logging.getLogger(__name__)

Schema = Dict[str, Any]

REQUEST_FACETS = ("query", "params", "headers", "cookies", "signed_cookies", "body")


@dataclass
class RequestSchemas:
    """The schema slots of a request, one per facet."""

    query: Optional[Schema] = None
    params: Optional[Schema] = None
    headers: Optional[Schema] = None
    cookies: Optional[Schema] = None
    signed_cookies: Optional[Schema] = None
    body: Optional[Schema] = None


@dataclass
class EndpointOptions:
    """Per-endpoint configuration.

    Attributes:
        validate_response: Check handler results against ``response_code_schemas()``.
        default_response_code: Status used when the handler returns a bare value.
        default_response_media_type: Media type documented for responses whose
            schema does not declare ``contentMediaType``.
        default_request_body_media_type: Same, for the request body.
        request_facets: Which request facets take part in validation.
        request_body_required_if_has_schema: Documented ``required`` flag of the body.
        default_response_headers: Headers sent with bare handler results.
        response_headers: Documented response headers, keyed by status code
            and then media type.
        request_validation: Engine options for the request validator.
        response_validation: Engine options for the response validators.
    """

    validate_response: bool = False
    default_response_code: int = 200
    default_response_media_type: str = "application/json"
    default_request_body_media_type: str = "application/json"
    request_facets: Tuple[str, ...] = REQUEST_FACETS
    request_body_required_if_has_schema: bool = True
    default_response_headers: Dict[str, str] = field(default_factory=dict)
    response_headers: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    request_validation: ValidatorOptions = ValidatorOptions()
    response_validation: ValidatorOptions = ValidatorOptions()


class variant:
    """Method that returns a modified copy of an endpoint.

    Called on a class it starts from a default instance of that class, so
    ``Endpoint.with_handler(fn)`` and ``endpoint.with_handler(fn)`` both work.
    """

    def __init__(self, func: Callable):
        self.func = func
        functools.update_wrapper(self, func)

    def __get__(self, instance, owner):
        @functools.wraps(self.func)
        def bound(*args, **kwargs):
            endpoint = owner() if instance is None else instance
            return self.func(endpoint, *args, **kwargs)
        return bound


def request_facets(request: Request) -> Dict[str, Any]:
    return {
        "query": request.query,
        "params": request.params,
        "headers": request.headers,
        "cookies": request.cookies,
        "signed_cookies": request.signed_cookies,
        "body": request.body,
    }


def apply_request_facets(request: Request, data: Dict[str, Any]) -> None:
    request.query = data["query"]
    request.params = data["params"]
    request.headers = data["headers"]
    request.cookies = data["cookies"]
    request.signed_cookies = data["signed_cookies"]
    request.body = data["body"]


class Endpoint:
    """A request handler described by schemas."""

    def __init__(
        self,
        handler: Optional[Callable[[Request], Any]] = None,
        *,
        query: Optional[Schema] = None,
        params: Optional[Schema] = None,
        headers: Optional[Schema] = None,
        cookies: Optional[Schema] = None,
        signed_cookies: Optional[Schema] = None,
        body: Optional[Schema] = None,
        responses: Optional[Dict[Union[int, str], Schema]] = None,
        operation: Optional[Dict[str, Any]] = None,
        options: Union[EndpointOptions, Dict[str, Any], None] = None,
    ):
        self._handler = handler
        self.schemas = RequestSchemas(
            query=query,
            params=params,
            headers=headers,
            cookies=cookies,
            signed_cookies=signed_cookies,
            body=body,
        )
        self.responses = responses
        self._operation = operation

        if isinstance(options, EndpointOptions):
            self.options = options
        else:
            self.options = replace(self.default_options(), **(options or {}))

    @classmethod
    def default_options(cls) -> EndpointOptions:
        return EndpointOptions()

    # Declarations. Override these in subclasses or pass the schemas to __init__.

    def operation(self) -> Optional[Dict[str, Any]]:
        """Partial OpenAPI operation (summary, tags, parameters, ...)."""
        return copy.deepcopy(self._operation)

    def query_schema(self) -> Optional[Schema]:
        return self.schemas.query

    def params_schema(self) -> Optional[Schema]:
        return self.schemas.params

    def headers_schema(self) -> Optional[Schema]:
        return self.schemas.headers

    def cookies_schema(self) -> Optional[Schema]:
        return self.schemas.cookies

    def signed_cookies_schema(self) -> Optional[Schema]:
        return self.schemas.signed_cookies

    def body_schema(self) -> Optional[Schema]:
        return self.schemas.body

    def response_code_schemas(self) -> Optional[Dict[Union[int, str], Schema]]:
        """Response schemas keyed by status code."""
        return self.responses

    def handler(self, request: Request) -> Any:
        """Produce the response body, an ``Outcome``, or an awaitable of either."""
        if self._handler is None:
            raise NotImplementedError("Please provide a handler for this endpoint.")
        return self._handler(request)

    def request_schema(self) -> Schema:
        """Combine the declared facet schemas into one object schema."""
        declared = {
            "query": self.query_schema,
            "params": self.params_schema,
            "headers": self.headers_schema,
            "cookies": self.cookies_schema,
            "signed_cookies": self.signed_cookies_schema,
            "body": self.body_schema,
        }
        schema: Schema = {"type": "object", "properties": {}, "required": []}
        for facet in self.options.request_facets:
            facet_schema = declared[facet]()
            if facet_schema is not None:
                schema["properties"][facet] = facet_schema
                schema["required"].append(facet)
        return schema

    def create_request_validator(self, document: Optional[Dict[str, Any]] = None) -> SchemaValidator:
        return compile_schema(self.request_schema(), document, self.options.request_validation)

    def create_response_validators(self, document: Optional[Dict[str, Any]] = None) -> Dict[str, SchemaValidator]:
        schemas = self.response_code_schemas() or {}
        return {
            str(code): compile_schema(schema, document, self.options.response_validation)
            for code, schema in schemas.items()
        }

    def create_middleware(self, document: Optional[Dict[str, Any]] = None) -> Middleware:
        """Compile the schemas and return the per-request handler.

        Args:
            document: Reference document that ``openapi_reference()``
                pointers resolve into.
        """
        request_validator = self.create_request_validator(document)
        response_validators = self.create_response_validators(document)
        options = self.options
        name = type(self).__name__

        async def endpoint_middleware(request: Request, response: Response) -> None:
            data = request_facets(request)
            valid = request_validator(data)
            apply_request_facets(request, data)
            if not valid:
                logger.warning(f"Request validation failed for {request.method.value} {request.path}")
                raise ValidationError(request_validator.errors)

            result = await call_handler(self.handler, request)

            if isinstance(result, Outcome):
                outcome = result
            else:
                outcome = Outcome(result, options.default_response_code, dict(options.default_response_headers))

            response_validator = response_validators.get(str(outcome.status_code))
            if options.validate_response and response_validator and not response_validator(outcome.body):
                logger.warning(
                    f"{name} produced an invalid {outcome.status_code} response for "
                    f"{request.method.value} {request.path}"
                )
                raise ValidationError(
                    response_validator.errors, "Response was not in the expected format.", 500
                )

            response.set_headers(outcome.headers)
            response.status(outcome.status_code).send(outcome.body)

        return endpoint_middleware

    # Variants

    @variant
    def with_handler(self, handler: Callable[[Request], Any]) -> "Endpoint":
        """Return a copy of this endpoint that uses ``handler``."""
        endpoint = copy.copy(self)
        # Instance attribute, so it also wins over a subclass's handler()
        endpoint.handler = handler
        return endpoint

    @variant
    def with_default_options(self, **options: Any) -> "Endpoint":
        """Return a copy of this endpoint with ``options`` merged in."""
        endpoint = copy.copy(self)
        endpoint.options = replace(self.options, **options)
        return endpoint

    # Schema helpers

    @staticmethod
    def openapi_reference(ref: str) -> Dict[str, str]:
        """Pointer to ``ref`` under the document's ``components``.

        ``Endpoint.openapi_reference("schemas/User")`` points at
        ``components.schemas.User`` and works both for validation and for
        the generated document.
        """
        return {"$ref": f"{OPEN_API_REFERENCE_ID}#/components/{ref.lstrip('/')}"}

    @staticmethod
    def object_schema(properties: Optional[Dict[str, Schema]] = None, required: Optional[list] = None) -> Schema:
        """Object schema whose properties are all required unless ``required`` says otherwise."""
        properties = properties or {}
        return {
            "type": "object",
            "properties": properties,
            "required": list(properties) if required is None else list(required),
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} options={self.options!r}>"
