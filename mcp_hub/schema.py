"""
JSON Schema to pydantic conversion for remote MCP tool parameters.

Remote tools describe their parameters with a subset of JSON Schema. This module
turns that description into pydantic types so arguments can be validated locally
before anything is sent to the hub.

Conversion is total: malformed or unsupported input degrades to a permissive
type instead of raising. Object schemas that declare no properties, or only
optional ones, accept unknown extra keys. Some tool-calling providers reject
schemas with zero declared properties, and callers that cannot express complex
schemas send a single synthetic ``_openai_compat`` key instead.

Scalars are checked strictly, without coercion: ``"5"`` is not a number and
``"yes"`` is not a boolean, matching what the remote schema would accept.
"""

import keyword
import logging
import re
from functools import cache
from typing import Annotated, Any, Literal, Union
from collections.abc import Callable

from pydantic import (
    AfterValidator,
    AnyUrl,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    StringConstraints,
    TypeAdapter,
    ValidationError,
    create_model,
)

from .models import SchemaCheck

logger = logging.getLogger(__name__)

COMPAT_FIELD = "_openai_compat"
COMPAT_FIELDS = frozenset({COMPAT_FIELD})

FALLBACK_SUFFIX = "Fallback"

_PASSTHROUGH_CONFIG = ConfigDict(extra="allow", protected_namespaces=())
_IGNORE_EXTRA_CONFIG = ConfigDict(extra="ignore", protected_namespaces=())

_SAMPLE_VALUES: dict[str, Any] = {
    "string": "",
    "number": 0,
    "integer": 0,
    "boolean": False,
    "array": [],
}


def json_schema_to_type(
    schema: Any,  # noqa: ANN401
    name: str = "Parameters",
    allow_extra_when_optional: bool = True,
) -> Any:  # noqa: ANN401
    """
    Convert a JSON Schema node into a pydantic-compatible type annotation.

    Never raises. Anything that cannot be converted becomes ``Any``.

    Args:
        schema: JSON-Schema-like dict (anything else is treated as "any")
        name: Base name used for generated models
        allow_extra_when_optional: Whether all-optional objects accept unknown keys

    Returns:
        A type usable as a pydantic field annotation or with ``TypeAdapter``

    Example:
        >>> TypeAdapter(json_schema_to_type({"type": "integer"})).validate_python(3)
        3
    """
    try:
        return _convert(schema, _model_name(name), allow_extra_when_optional)
    except Exception as e:
        logger.warning(f"Schema conversion failed for '{name}', using permissive type: {e}")
        return Any


def build_parameter_model(
    schema: Any,  # noqa: ANN401
    name: str = "Parameters",
    allow_extra_when_optional: bool = True,
) -> type[BaseModel]:
    """
    Build the parameter model for a tool from its input schema.

    Tool arguments are always a key-value object. A top-level schema that does
    not describe an object yields a model that accepts any keys. If conversion
    fails outright, the result is a fallback model carrying an optional
    ``schema_error`` field that describes the failure.

    Args:
        schema: The tool's ``inputSchema``
        name: Model name (usually derived from the tool name)
        allow_extra_when_optional: Whether all-optional objects accept unknown keys

    Returns:
        A pydantic model class
    """
    model_name = _model_name(name)
    try:
        converted = _convert(schema, model_name, allow_extra_when_optional)
    except Exception as e:
        logger.warning(f"Schema conversion failed for '{name}', using fallback model: {e}")
        return _fallback_model(model_name, str(e))

    if _is_model(converted):
        return converted
    return create_model(model_name, __config__=_PASSTHROUGH_CONFIG)


def is_fallback_model(model: type[BaseModel]) -> bool:
    """Whether ``model`` is the error-fallback produced by a failed conversion."""
    return model.__name__.endswith(FALLBACK_SUFFIX) and "schema_error" in model.model_fields


def check_parameter_model(model: type[BaseModel], schema: Any) -> SchemaCheck:  # noqa: ANN401
    """
    Validate a converted model against the probe inputs a caller may send.

    Probes, in order: an empty object, an object holding only the compatibility
    field, and a synthesized object with a dummy value for every required field.

    Returns:
        The first probe that validates, or ``SchemaCheck.DEGRADED`` if none do
    """
    probes = [
        (SchemaCheck.EMPTY, {}),
        (SchemaCheck.COMPAT, {COMPAT_FIELD: "compat"}),
        (SchemaCheck.SAMPLE, sample_arguments(schema)),
    ]
    for outcome, probe in probes:
        try:
            model.model_validate(probe)
        except ValidationError:
            continue
        return outcome
    return SchemaCheck.DEGRADED


def sample_arguments(schema: Any) -> dict[str, Any]:  # noqa: ANN401
    """
    Synthesize an argument object populating each required field with a dummy value.

    Example:
        >>> sample_arguments({"type": "object", "properties": {"n": {"type": "number"}},
        ...                   "required": ["n"]})
        {'n': 0}
    """
    if not isinstance(schema, dict):
        return {}
    properties = schema.get("properties")
    if not isinstance(properties, dict):
        properties = {}
    required = schema.get("required")
    if not isinstance(required, list):
        return {}

    return {
        key: _sample_value(properties.get(key))
        for key in required
        if isinstance(key, str)
    }


def strip_compat_fields(arguments: dict[str, Any]) -> dict[str, Any]:
    """Remove synthetic compatibility keys before arguments are forwarded remotely."""
    return {key: value for key, value in arguments.items() if key not in COMPAT_FIELDS}


# ============================================================================
# Conversion internals
# ============================================================================


def _convert(schema: Any, name: str, allow_extra: bool) -> Any:  # noqa: ANN401
    if not isinstance(schema, dict):
        return Any

    schema_type = schema.get("type")
    if schema_type is None and isinstance(schema.get("properties"), dict):
        schema_type = "object"

    if isinstance(schema_type, list):
        return _convert_union(schema, schema_type, name, allow_extra)

    converter = _CONVERTERS.get(schema_type) if isinstance(schema_type, str) else None
    if converter is None:
        if schema_type is not None:
            logger.debug(f"Unsupported JSON schema type '{schema_type}' in '{name}', using Any")
        return Any
    return converter(schema, name, allow_extra)


def _safe_convert(schema: Any, name: str, allow_extra: bool) -> Any:  # noqa: ANN401
    try:
        return _convert(schema, name, allow_extra)
    except Exception as e:
        logger.warning(f"Failed to convert schema node '{name}', using Any: {e}")
        return Any


def _convert_union(schema: dict, types: list, name: str, allow_extra: bool) -> Any:  # noqa: ANN401
    members = []
    for schema_type in types:
        if not isinstance(schema_type, str):
            continue
        member = _safe_convert({**schema, "type": schema_type}, f"{name}_{schema_type}", allow_extra)
        if member is Any:
            return Any
        if member not in members:
            members.append(member)

    if not members:
        return Any
    if len(members) == 1:
        return members[0]
    return Union[tuple(members)]  # noqa: UP007


def _convert_string(schema: dict, name: str, allow_extra: bool) -> Any:  # noqa: ANN401, ARG001
    enum = schema.get("enum")
    if isinstance(enum, list):
        values = tuple(
            value for value in enum
            if value is None or isinstance(value, str | int | float | bool)
        )
        if values:
            return Literal[values]

    constraints = {}
    if _is_count(schema.get("minLength")):
        constraints["min_length"] = schema["minLength"]
    if _is_count(schema.get("maxLength")):
        constraints["max_length"] = schema["maxLength"]

    metadata: list[Any] = []
    if constraints:
        metadata.append(StringConstraints(**constraints))

    string_format = schema.get("format")
    if string_format == "uri":
        metadata.append(AfterValidator(_check_uri))
    elif string_format == "email":
        metadata.append(AfterValidator(_check_email))

    if metadata:
        return Annotated[(StrictStr, *metadata)]
    return StrictStr


def _convert_number(schema: dict, name: str, allow_extra: bool) -> Any:  # noqa: ANN401, ARG001
    base = StrictInt if schema.get("type") == "integer" else StrictFloat

    bounds = {}
    if _is_number(schema.get("minimum")):
        bounds["ge"] = schema["minimum"]
    if _is_number(schema.get("maximum")):
        bounds["le"] = schema["maximum"]
    if _is_number(schema.get("exclusiveMinimum")):
        bounds["gt"] = schema["exclusiveMinimum"]
    if _is_number(schema.get("exclusiveMaximum")):
        bounds["lt"] = schema["exclusiveMaximum"]

    if bounds:
        return Annotated[base, Field(**bounds)]
    return base


def _convert_boolean(schema: dict, name: str, allow_extra: bool) -> Any:  # noqa: ANN401, ARG001
    return StrictBool


def _convert_null(schema: dict, name: str, allow_extra: bool) -> Any:  # noqa: ANN401, ARG001
    return None


def _convert_array(schema: dict, name: str, allow_extra: bool) -> Any:  # noqa: ANN401
    item_type = Any
    if "items" in schema:
        item_type = _safe_convert(schema["items"], f"{name}_item", allow_extra)

    bounds = {}
    if _is_count(schema.get("minItems")):
        bounds["min_length"] = schema["minItems"]
    if _is_count(schema.get("maxItems")):
        bounds["max_length"] = schema["maxItems"]

    if bounds:
        return Annotated[list[item_type], Field(**bounds)]
    return list[item_type]


def _convert_object(schema: dict, name: str, allow_extra: bool) -> type[BaseModel]:
    properties = schema.get("properties")
    if not isinstance(properties, dict) or not properties:
        logger.debug(f"Empty object schema '{name}', accepting additional properties")
        return create_model(name, __config__=_PASSTHROUGH_CONFIG)

    required = schema.get("required")
    required = {key for key in required if isinstance(key, str)} if isinstance(required, list) else set()  # noqa: E501

    fields: dict[str, Any] = {}
    all_optional = True
    for index, (key, prop) in enumerate(properties.items()):
        if not isinstance(key, str):
            continue

        annotation = _safe_convert(prop, f"{name}_{_model_name(key)}", allow_extra)
        prop = prop if isinstance(prop, dict) else {}
        description = prop.get("description") if isinstance(prop.get("description"), str) else None
        field_name = _field_name(key, index, fields)
        alias = key if field_name != key else None

        if key in required and "default" not in prop:
            all_optional = False
            field_info = Field(..., alias=alias, description=description)
        else:
            field_info = Field(default=prop.get("default"), alias=alias, description=description)
        fields[field_name] = (annotation, field_info)

    if not fields:
        return create_model(name, __config__=_PASSTHROUGH_CONFIG)

    config = _PASSTHROUGH_CONFIG if all_optional and allow_extra else _IGNORE_EXTRA_CONFIG
    return create_model(name, __config__=config, **fields)


_CONVERTERS: dict[str, Callable[[dict, str, bool], Any]] = {
    "string": _convert_string,
    "number": _convert_number,
    "integer": _convert_number,
    "boolean": _convert_boolean,
    "null": _convert_null,
    "array": _convert_array,
    "object": _convert_object,
}


def _fallback_model(name: str, error: str) -> type[BaseModel]:
    return create_model(
        f"{name}{FALLBACK_SUFFIX}",
        __config__=_PASSTHROUGH_CONFIG,
        schema_error=(
            str | None,
            Field(default=None, description=f"Schema conversion failed: {error}"),
        ),
    )


@cache
def _uri_adapter() -> TypeAdapter:
    return TypeAdapter(AnyUrl)


@cache
def _email_adapter() -> TypeAdapter:
    return TypeAdapter(EmailStr)


def _check_uri(value: str) -> str:
    # Validate only; the original string is what gets forwarded
    _uri_adapter().validate_python(value)
    return value


def _check_email(value: str) -> str:
    _email_adapter().validate_python(value)
    return value


def _sample_value(prop: Any) -> Any:  # noqa: ANN401
    if not isinstance(prop, dict):
        return {}
    enum = prop.get("enum")
    if isinstance(enum, list) and enum:
        return enum[0]
    schema_type = prop.get("type")
    if isinstance(schema_type, list):
        schema_type = next((t for t in schema_type if t != "null"), None)
    return _SAMPLE_VALUES.get(schema_type, {}) if isinstance(schema_type, str) else {}


def _field_name(key: str, index: int, taken: dict[str, Any]) -> str:
    """Use the remote key as the field name when pydantic allows it, else alias it."""
    usable = (
        key.isidentifier()
        and not keyword.iskeyword(key)
        and not key.startswith("_")
        and not key.startswith("model_")
        and not hasattr(BaseModel, key)
    )
    candidate = key if usable else f"field_{index}"
    while candidate in taken:
        candidate = f"{candidate}_"
    return candidate


def _model_name(name: str) -> str:
    cleaned = re.sub(r"\W+", "_", str(name)).strip("_")
    return cleaned or "Parameters"


def _is_model(tp: Any) -> bool:  # noqa: ANN401
    try:
        return isinstance(tp, type) and issubclass(tp, BaseModel)
    except TypeError:
        return False


def _is_number(value: Any) -> bool:  # noqa: ANN401
    return isinstance(value, int | float) and not isinstance(value, bool)


def _is_count(value: Any) -> bool:  # noqa: ANN401
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0
