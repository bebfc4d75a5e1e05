"""
Custom exceptions for the REST framework.
"""

from typing import Any, Dict

from .error_models import ErrorResponse


class EndpointError(Exception):
    """An error that maps to a structured HTTP error response."""

    default_message = "An internal error occurred."
    default_code = 500

    def __init__(self, message: str = None, code: int = None, details: Any = None):
        self.message = message if message is not None else self.default_message
        self.code = code if code is not None else self.default_code
        self.details = details if details is not None else {}
        super().__init__(self.message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(code=self.code, message=self.message, details=self.details)

    def to_json(self) -> Dict[str, Any]:
        """Return the wire representation: ``{code, message, details}``."""
        return self.to_response().model_dump()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, code={self.code!r})"


class ValidationError(EndpointError):
    """Raised when a request (400) or a response (500) fails its schema.

    ``details`` carries the validator's error list unchanged.
    """

    default_message = "This request is not valid."
    default_code = 400

    def __init__(self, errors: Any = None, message: str = None, code: int = None):
        super().__init__(message, code, errors)

    @property
    def errors(self) -> Any:
        return self.details


class ResponseAlreadySentError(RuntimeError):
    """Raised when something tries to send a second response for one request."""

    pass


class ReferenceCycleError(ValueError):
    """Raised when a chain of ``$ref`` pointers revisits itself."""

    def __init__(self, chain):
        self.chain = list(chain)
        super().__init__(f"Reference cycle detected: {' -> '.join(self.chain)}")


class UnresolvableReferenceError(LookupError):
    """Raised when a ``$ref`` pointer names a location that does not exist."""

    def __init__(self, ref: str):
        self.ref = ref
        super().__init__(f"Cannot resolve reference {ref!r}")
