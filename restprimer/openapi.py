"""
Helpers for assembling the OpenAPI document.

Pure functions: joining URI segments, parsing ``:name`` / ``:name(regex)``
placeholders, resolving ``$ref`` pointers and turning object schemas into
parameter descriptions.
"""

import copy
import re
from importlib import metadata as importlib_metadata
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .constants import DEFAULT_INFO, OPEN_API_REFERENCE_ID, OPENAPI_VERSION
from .exceptions import ReferenceCycleError, UnresolvableReferenceError

LOCAL_REFERENCE_PREFIX = "#/"
EXTERNAL_REFERENCE_PREFIX = f"{OPEN_API_REFERENCE_ID}#/"

_AUTHOR_PATTERN = re.compile(
    r"^\s*(?P<name>[^<(]*?)\s*(?:<(?P<email>[^>]*)>)?\s*(?:\((?P<url>[^)]*)\))?\s*$"
)


def join_uris(base: str, path: str) -> str:
    """Join two URI fragments with exactly one slash between them.

    The result always starts with a slash. A trailing slash on ``path`` is
    kept, since routing primitives may care about it.

    Examples:
        join_uris("", "/users") -> "/users"
        join_uris("/api/", "/users") -> "/api/users"
        join_uris("/api", "/") -> "/api/"
    """
    base = base.strip("/")
    path = path.lstrip("/")
    if not base:
        return f"/{path}"
    return f"/{base}/{path}"


def parse_placeholder(segment: str) -> Tuple[str, Optional[str]]:
    """Split a ``:name`` or ``:name(regex)`` path segment.

    The regex is everything between the first ``(`` and its matching ``)``,
    so nested groups such as ``:id((?:ab)+)`` survive.

    Returns:
        ``(name, regex)``; regex is None when no constraint was given.
    """
    body = segment[1:] if segment.startswith(":") else segment
    start = body.find("(")
    if start == -1:
        return body, None

    depth = 0
    escaped = False
    for index in range(start, len(body)):
        char = body[index]
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return body[:start], body[start + 1:index]
    # Unbalanced: treat the rest as the constraint
    return body[:start], body[start + 1:]


def normalize_template(uri: str) -> Tuple[str, List[Tuple[str, Optional[str]]]]:
    """Convert a routing template to an OpenAPI path.

    ``/users/:id(\\d+)/`` becomes ``/users/{id}``. Empty segments are
    dropped.

    Returns:
        ``(path, placeholders)`` where placeholders is a list of
        ``(name, regex)`` pairs in path order.
    """
    segments = []
    placeholders = []
    for segment in uri.split("/"):
        if not segment:
            continue
        if segment.startswith(":"):
            name, regex = parse_placeholder(segment)
            placeholders.append((name, regex))
            segments.append(f"{{{name}}}")
        else:
            segments.append(segment)
    return "/" + "/".join(segments), placeholders


def is_reference(value: Any) -> bool:
    return isinstance(value, Mapping) and isinstance(value.get("$ref"), str)


def unfold(value: Any, document: Mapping, references: Optional[Mapping] = None, _seen: Tuple[str, ...] = ()) -> Any:
    """Resolve a ``$ref`` pointer to the value it names.

    Local pointers (``#/components/...``) are walked through ``document``;
    pointers starting with ``OPEN_API_REFERENCE_ID`` are walked through
    ``references`` (defaults to ``document``). Resolution repeats while the
    target is itself a pointer. Anything that is not a pointer is returned
    unchanged, and a missing value resolves to None.

    Raises:
        ReferenceCycleError: if a pointer chain revisits a pointer.
        UnresolvableReferenceError: if a pointer names a missing location.
    """
    if value is None:
        return None
    if not is_reference(value):
        return value

    ref = value["$ref"]
    if ref in _seen:
        raise ReferenceCycleError(_seen + (ref,))

    if ref.startswith(EXTERNAL_REFERENCE_PREFIX):
        target = references if references is not None else document
        pointer = ref[len(EXTERNAL_REFERENCE_PREFIX):]
    elif ref.startswith(LOCAL_REFERENCE_PREFIX):
        target = document
        pointer = ref[len(LOCAL_REFERENCE_PREFIX):]
    else:
        raise UnresolvableReferenceError(ref)

    seen = _seen + (ref,)
    for key in pointer.split("/"):
        key = key.replace("~1", "/").replace("~0", "~")
        target = unfold(target, document, references, seen)
        if isinstance(target, Mapping) and key in target:
            target = target[key]
        elif isinstance(target, list) and key.isdigit() and int(key) < len(target):
            target = target[int(key)]
        else:
            raise UnresolvableReferenceError(ref)

    return unfold(target, document, references, seen)


def get_parameters(location: str, schema: Any, document: Mapping, references: Optional[Mapping] = None) -> List[Dict[str, Any]]:
    """Describe each top-level property of an object schema as a parameter."""
    resolved = unfold(schema, document, references)
    if not resolved:
        return []

    required = resolved.get("required")
    required = required if isinstance(required, list) else []

    parameters = []
    for name, declared in (resolved.get("properties") or {}).items():
        property_schema = unfold(declared, document, references) or {}
        parameter = {
            "name": name,
            "in": location,
            "required": name in required,
        }
        if property_schema.get("description") is not None:
            parameter["description"] = property_schema["description"]
        parameter["schema"] = document_schema(declared)
        parameters.append(parameter)
    return parameters


def merge_path_parameters(parameters: List[Dict[str, Any]], placeholders: List[Tuple[str, Optional[str]]]) -> None:
    """Fold path placeholders into ``parameters`` in place.

    A placeholder that is already described as a path parameter (for example
    through a params schema) gets ``required`` and the pattern merged into the
    existing entry; otherwise a new entry is appended. Unconstrained
    placeholders without a declared schema are documented as strings.
    """
    for name, regex in placeholders:
        parameter = next(
            (p for p in parameters if p.get("name") == name and p.get("in") == "path"),
            None,
        )
        if parameter is None:
            parameter = {"name": name, "in": "path"}
            parameters.append(parameter)

        parameter["required"] = True
        if regex:
            parameter["schema"] = {"type": "string", "pattern": regex}
        else:
            parameter.setdefault("schema", {"type": "string"})


def dedupe(values) -> List[Any]:
    """Order-preserving de-duplication."""
    return list(dict.fromkeys(values))


def parse_author(author: Any) -> Dict[str, str]:
    """Turn an author into an OpenAPI ``contact`` object.

    Accepts a mapping (returned as a copy) or a loose string of the form
    ``"Name <email> (url)"`` where every part is optional.
    """
    if isinstance(author, Mapping):
        return dict(author)

    contact: Dict[str, str] = {}
    match = _AUTHOR_PATTERN.match(str(author))
    if not match:
        contact["name"] = str(author).strip()
        return contact
    for key in ("name", "email", "url"):
        value = match.group(key)
        if value and value.strip():
            contact[key] = value.strip()
    return contact


def info_from_metadata(metadata: Mapping[str, Any]) -> Dict[str, Any]:
    """Build an OpenAPI ``info`` object from package metadata.

    ``metadata`` is keyed by ``name``, ``version``, ``author`` and
    ``license``; missing keys are skipped.
    """
    info: Dict[str, Any] = {}
    if metadata.get("name"):
        info["title"] = metadata["name"]
    if metadata.get("version"):
        info["version"] = metadata["version"]
    if metadata.get("author"):
        info["contact"] = parse_author(metadata["author"])
    if metadata.get("license"):
        info["license"] = {"name": metadata["license"]}
    return info


def default_document() -> Dict[str, Any]:
    """A fresh document with the built-in error schemas and responses."""
    error_properties = {
        "code": {"type": "integer"},
        "message": {"type": "string"},
    }
    return {
        "openapi": OPENAPI_VERSION,
        "info": copy.deepcopy(DEFAULT_INFO),
        "paths": {},
        "components": {
            "schemas": {
                "EndpointError": {
                    "type": "object",
                    "properties": dict(error_properties, details={}),
                    "required": ["code", "message", "details"],
                },
                "ValidationError": {
                    "type": "object",
                    "properties": dict(
                        error_properties,
                        details={
                            "type": "array",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "path": {"type": "string"},
                                    "keyword": {"type": "string"},
                                    "message": {"type": "string"},
                                    "params": {"type": "object"},
                                    "schemaPath": {"type": "string"},
                                },
                            },
                        },
                    ),
                    "required": ["code", "message", "details"],
                },
            },
            "responses": {
                "EndpointError": {
                    "description": "Endpoint Error",
                    "content": {
                        "application/json": {
                            "schema": {"$ref": "#/components/schemas/EndpointError"}
                        }
                    },
                },
                "ValidationError": {
                    "description": "Validation Error",
                    "content": {
                        "application/json": {
                            "schema": {"$ref": "#/components/schemas/ValidationError"}
                        }
                    },
                },
            },
            "securitySchemes": {},
        },
    }


def document_schema(schema: Any) -> Any:
    """Copy of ``schema`` fit for the published document.

    Pointers built with ``Endpoint.openapi_reference()`` are rewritten to
    local ``#/components/...`` pointers, and the top-level
    ``contentMediaType`` hint (already used as the media type key) is dropped.
    """
    def localize(value):
        if isinstance(value, Mapping):
            localized = {key: localize(item) for key, item in value.items()}
            ref = localized.get("$ref")
            if isinstance(ref, str) and ref.startswith(EXTERNAL_REFERENCE_PREFIX):
                localized["$ref"] = LOCAL_REFERENCE_PREFIX + ref[len(EXTERNAL_REFERENCE_PREFIX):]
            return localized
        if isinstance(value, list):
            return [localize(item) for item in value]
        return value

    documented = localize(schema)
    if isinstance(documented, dict):
        documented.pop("contentMediaType", None)
    return documented


def merge_parameters(parameters: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Collapse entries sharing a ``(name, in)`` pair; later entries win field by field."""
    merged: Dict[Tuple[str, str], Dict[str, Any]] = {}
    result: List[Dict[str, Any]] = []
    for parameter in parameters:
        if is_reference(parameter):
            result.append(parameter)
            continue
        key = (parameter.get("name"), parameter.get("in"))
        if key in merged:
            merged[key].update(parameter)
        else:
            merged[key] = dict(parameter)
            result.append(merged[key])
    return result


def load_package_metadata(distribution: str) -> Dict[str, Any]:
    """Read name, version, author and license of an installed distribution."""
    meta = importlib_metadata.metadata(distribution)

    author = meta.get("Author-email") or meta.get("Author")
    if author and "@" in author and "<" not in author:
        author = f"<{author}>"
    home_page = meta.get("Home-page")
    if author and home_page:
        author = f"{author} ({home_page})"

    return {
        "name": meta.get("Name"),
        "version": meta.get("Version"),
        "author": author,
        "license": meta.get("License-Expression") or meta.get("License"),
    }
