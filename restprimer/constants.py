"""
Shared constants for the API description document.
"""

# Base URI the reference document is registered under. Pointers built with
# Endpoint.openapi_reference() start with this prefix instead of "#/".
OPEN_API_REFERENCE_ID = "openapi.json"

OPENAPI_VERSION = "3.0.0"

DEFAULT_INFO = {
    "title": "restprimer app",
    "version": "1.0.0",
}

SPEC_CACHE_CONTROL = "public, max-age=31536000, must-revalidate"
