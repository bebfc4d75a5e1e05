"""
Schema compilation on top of jsonschema.

``compile_schema(schema, reference_document, options)`` returns a callable
validator. Calling it with data returns a boolean and leaves the error list on
``validator.errors``. Depending on the options, validation also rewrites the
data in place: missing properties receive their schema ``default`` and scalar
values are coerced to the declared ``type`` (``"5"`` becomes ``5`` for an
integer property), the way Ajv's ``useDefaults`` / ``coerceTypes`` behave.
"""

import copy
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional

from jsonschema import Draft7Validator, validators
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT7

from .constants import OPEN_API_REFERENCE_ID

_UNSET = object()


@dataclass(frozen=True)
class ValidatorOptions:
    """Engine options applied when a schema is compiled."""

    use_defaults: bool = True
    coerce_types: bool = True


def _to_number(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if value is None:
        return 0
    if isinstance(value, str) and value.strip():
        try:
            return int(value)
        except ValueError:
            pass
        try:
            number = float(value)
        except ValueError:
            return _UNSET
        return number if math.isfinite(number) else _UNSET
    return _UNSET


def _to_integer(value: Any) -> Any:
    number = _to_number(value)
    if number is _UNSET:
        return _UNSET
    if isinstance(number, float):
        return int(number) if number.is_integer() else _UNSET
    return number


def _to_string(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if value is None:
        return ""
    return _UNSET


def _to_boolean(value: Any) -> Any:
    if value == "true" or (isinstance(value, (int, float)) and not isinstance(value, bool) and value == 1):
        return True
    if value == "false" or value is None or (isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0):
        return False
    return _UNSET


def _to_null(value: Any) -> Any:
    if value == "" or value is False or (isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0):
        return None
    return _UNSET


_COERCIONS = {
    "number": _to_number,
    "integer": _to_integer,
    "string": _to_string,
    "boolean": _to_boolean,
    "null": _to_null,
}


def _coerce(validator, value: Any, declared) -> Any:
    types = [declared] if isinstance(declared, str) else list(declared)
    if any(validator.is_type(value, t) for t in types):
        return value
    if isinstance(value, (dict, list)):
        return value
    for type_name in types:
        coercion = _COERCIONS.get(type_name)
        if coercion is None:
            continue
        coerced = coercion(value)
        if coerced is not _UNSET:
            return coerced
    return value


def _declared(validator, schema: Any, keyword: str) -> Any:
    """First ``keyword`` found in ``schema``, following ``$ref`` and ``allOf``."""
    pending = [(schema, validator._resolver)]
    seen = set()
    while pending:
        current, resolver = pending.pop(0)
        if not isinstance(current, dict) or id(current) in seen:
            continue
        seen.add(id(current))
        if keyword in current:
            return current[keyword]
        ref = current.get("$ref")
        if isinstance(ref, str):
            resolved = resolver.lookup(ref)
            pending.append((resolved.contents, resolved.resolver))
        pending.extend((member, resolver) for member in current.get("allOf") or [])
    return _UNSET


@lru_cache(maxsize=None)
def _validator_class(options: ValidatorOptions):
    """Build a Draft 7 validator class that mutates data per ``options``."""
    validate_properties = Draft7Validator.VALIDATORS["properties"]
    validate_items = Draft7Validator.VALIDATORS["items"]

    def properties(validator, properties, instance, schema):
        if validator.is_type(instance, "object"):
            for name, subschema in properties.items():
                if name in instance:
                    if options.coerce_types:
                        declared = _declared(validator, subschema, "type")
                        if declared is not _UNSET:
                            instance[name] = _coerce(validator, instance[name], declared)
                elif options.use_defaults:
                    default = _declared(validator, subschema, "default")
                    if default is not _UNSET:
                        instance[name] = copy.deepcopy(default)
        yield from validate_properties(validator, properties, instance, schema)

    def items(validator, items, instance, schema):
        if options.coerce_types and validator.is_type(instance, "array") and isinstance(items, dict):
            declared = _declared(validator, items, "type")
            if declared is not _UNSET:
                for index, item in enumerate(instance):
                    instance[index] = _coerce(validator, item, declared)
        yield from validate_items(validator, items, instance, schema)

    return validators.extend(Draft7Validator, {"properties": properties, "items": items})


def _format_error(error) -> Dict[str, Any]:
    return {
        "path": "".join(f"/{part}" for part in error.absolute_path),
        "keyword": error.validator,
        "message": error.message,
        "params": {error.validator: error.validator_value},
        "schemaPath": "#" + "".join(f"/{part}" for part in error.absolute_schema_path),
    }


class SchemaValidator:
    """A compiled schema.

    ``errors`` holds the errors of the most recent call, or ``None`` when it
    succeeded. Read it right after calling the validator.
    """

    def __init__(self, schema: Any, validator):
        self.schema = schema
        self._validator = validator
        self.errors: Optional[List[Dict[str, Any]]] = None

    def __call__(self, data: Any) -> bool:
        errors = [_format_error(error) for error in self._validator.iter_errors(data)]
        self.errors = errors or None
        return not errors


def compile_schema(
    schema: Any,
    reference_document: Optional[Dict[str, Any]] = None,
    options: ValidatorOptions = ValidatorOptions(),
) -> SchemaValidator:
    """Compile ``schema`` into a reusable validator.

    Pointers starting with ``OPEN_API_REFERENCE_ID`` resolve into
    ``reference_document``. The document is held by reference, so schemas
    added to it after compilation are still reachable.

    Raises:
        jsonschema.exceptions.SchemaError: if ``schema`` is not a valid schema.
    """
    cls = _validator_class(options)
    cls.check_schema(schema)

    registry = Registry().with_resource(
        OPEN_API_REFERENCE_ID,
        Resource.from_contents(reference_document or {}, default_specification=DRAFT7),
    )
    return SchemaValidator(schema, cls(schema, registry=registry))
