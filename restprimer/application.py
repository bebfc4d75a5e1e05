"""
Application entry point produced by ``Router.mount()``.
"""

import logging
from typing import Any, Dict, List, Optional

from .chain import ErrorHandler, HandlerChain
from .exceptions import EndpointError
from .models import Request, Response
from .server import ASGIAdapter

# Set up logger for this module
logger = logging.getLogger(__name__)


def not_found(request: Request, response: Response) -> None:
    """Last middleware stage: nothing answered the request."""
    raise EndpointError("Not found.", 404)


def handle_endpoint_error(error: BaseException, request: Request, response: Response) -> None:
    """Terminal error stage.

    Sends any error as a structured ``{code, message, details}`` body. Errors
    that are not ``EndpointError`` become a generic 500 so internals never
    reach the client. If a response already went out, the error is raised
    again for the host to deal with.
    """
    if response.sent:
        raise error

    if not isinstance(error, EndpointError):
        logger.error(
            f"Unhandled exception processing {request.method.value} {request.path}: {error!r}",
            exc_info=error,
        )
        error = EndpointError()

    response.set_headers({"Content-Type": "application/json"})
    response.status(error.code).send(error.to_json())


class Application:
    """A mounted router, ready to serve requests.

    ``execute()`` runs one request through the handler chain; the instance is
    also an ASGI application, so it can be handed to any ASGI server.
    """

    def __init__(self, chain: HandlerChain, error_handlers: Optional[List[ErrorHandler]] = None,
                 spec: Optional[Dict[str, Any]] = None, cookie_secret: Optional[str] = None):
        self.spec = spec
        self.chain = HandlerChain()
        self.chain.mount("/", chain)
        self.chain.use(not_found)
        if error_handlers:
            self.chain.catch(*error_handlers)
        self.chain.catch(handle_endpoint_error)
        self.asgi = ASGIAdapter(self, cookie_secret=cookie_secret)

    async def execute(self, request: Request) -> Response:
        """Process a request and return the response that was produced."""
        response = Response()
        logger.debug(f"Dispatching {request.method.value} {request.path}")
        try:
            await self.chain.handle(request, response)
        except Exception as exc:
            if not response.sent:
                handle_endpoint_error(exc, request, response)
                return response
            logger.exception(
                f"Error after the response was sent for {request.method.value} {request.path}"
            )
        if not response.sent:
            handle_endpoint_error(EndpointError(), request, response)
        return response

    async def __call__(self, scope, receive, send):
        await self.asgi(scope, receive, send)
