"""
Mountable handler chains.

A ``HandlerChain`` is an ordered list of layers: middleware, routes, mounted
child chains and error handlers. ``handle()`` walks the layers in
registration order, the way Express routers do:

- middleware and route handlers are called as ``handler(request, response)``;
  raising an exception switches the chain into error mode, sending a response
  finishes it, returning normally moves on to the next handler;
- error handlers are called as ``handler(error, request, response)`` and only
  while an error is pending; sending a response handles the error, returning
  without sending leaves it pending for the next error handler, and raising
  replaces it with the new error.

Handlers may be plain functions or coroutine functions.
"""

import inspect
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from .models import HTTPMethod, Request, Response
from .openapi import parse_placeholder

logger = logging.getLogger(__name__)

Middleware = Callable[[Request, Response], Union[None, Awaitable[None]]]
ErrorHandler = Callable[[BaseException, Request, Response], Union[None, Awaitable[None]]]


def compile_template(template: str, end: bool = True) -> "re.Pattern[str]":
    """Compile a ``:name`` / ``:name(regex)`` template into a regex.

    With ``end=False`` the pattern matches the template as a path prefix that
    stops at a segment boundary.
    """
    parts = []
    for segment in template.split("/"):
        if not segment:
            continue
        if segment.startswith(":"):
            name, regex = parse_placeholder(segment)
            parts.append(f"/(?P<{name}>{regex or '[^/]+'})")
        else:
            parts.append("/" + re.escape(segment))
    pattern = "^" + "".join(parts)
    pattern += "/?$" if end else "(?=/|$)"
    return re.compile(pattern)


async def call_handler(handler: Callable, *args) -> Any:
    """Call a sync or async handler and always await its result."""
    result = handler(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class Layer:
    """One entry of a chain."""

    def __init__(self, path: str, handlers: List[Callable], end: bool,
                 method: Optional[HTTPMethod] = None,
                 chain: Optional["HandlerChain"] = None,
                 error_handler: bool = False):
        self.path = path
        self.handlers = handlers
        self.method = method
        self.chain = chain
        self.error_handler = error_handler
        self.pattern = compile_template(path, end=end)

    def match(self, path: str, method: HTTPMethod) -> Optional[Tuple[Dict[str, str], str]]:
        """Return ``(params, remaining_path)`` when the layer applies."""
        if self.method is not None and self.method != method:
            # HEAD falls back to GET routes
            if not (method == HTTPMethod.HEAD and self.method == HTTPMethod.GET):
                return None
        match = self.pattern.match(path)
        if match is None:
            return None
        remaining = path[match.end():] or "/"
        params = {name: value for name, value in match.groupdict().items() if value is not None}
        return params, remaining

    def __repr__(self) -> str:
        kind = "chain" if self.chain else ("error" if self.error_handler else "handlers")
        method = self.method.value if self.method else "*"
        return f"Layer({method} {self.path!r}, {kind})"


class HandlerChain:
    """An ordered, mountable list of request handlers."""

    def __init__(self):
        self.layers: List[Layer] = []

    def use(self, *handlers: Middleware, path: str = "/") -> "HandlerChain":
        """Run ``handlers`` for every request under ``path``."""
        self.layers.append(Layer(path, list(handlers), end=False))
        return self

    def mount(self, prefix: str, chain: "HandlerChain") -> "HandlerChain":
        """Attach ``chain`` so that it sees paths relative to ``prefix``."""
        self.layers.append(Layer(prefix, [], end=False, chain=chain))
        return self

    def route(self, method: Union[str, HTTPMethod], path: str, *handlers: Middleware) -> "HandlerChain":
        """Run ``handlers`` for requests matching ``method`` and ``path`` exactly."""
        if not isinstance(method, HTTPMethod):
            method = HTTPMethod(method.upper())
        self.layers.append(Layer(path, list(handlers), end=True, method=method))
        return self

    def catch(self, *handlers: ErrorHandler) -> "HandlerChain":
        """Append error-handling stages."""
        self.layers.append(Layer("/", list(handlers), end=False, error_handler=True))
        return self

    async def handle(self, request: Request, response: Response,
                     path: Optional[str] = None, error: Optional[BaseException] = None) -> bool:
        """Dispatch a request through the chain.

        Returns:
            True once the request was answered, False if nothing handled it.

        Raises:
            The pending error, if no error handler in this chain sent a response.
        """
        path = request.path if path is None else path
        base_params = dict(request.params)

        for layer in self.layers:
            if error is not None and not (layer.error_handler or layer.chain):
                continue
            if error is None and layer.error_handler:
                continue

            matched = layer.match(path, request.method)
            if matched is None:
                continue
            params, remaining = matched
            request.params = {**base_params, **params}

            if layer.chain is not None:
                try:
                    if await layer.chain.handle(request, response, remaining, error):
                        return True
                    error = None
                except Exception as exc:
                    error = exc
                continue

            for handler in layer.handlers:
                try:
                    if error is None:
                        await call_handler(handler, request, response)
                    else:
                        await call_handler(handler, error, request, response)
                except Exception as exc:
                    error = exc
                    if not layer.error_handler:
                        break
                    continue
                if response.sent:
                    return True

        if error is not None:
            raise error
        return False
