"""Turn pydantic failures into the billing ValidationError."""
from typing import Any, Callable, List, Mapping, Optional, Sequence, Set, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from agency_billing.core.exceptions import ValidationError


M = TypeVar("M", bound=BaseModel)


def format_error_location(loc: Sequence[Union[str, int]]) -> str:
    """("items", 0, "quantity") -> "items[0].quantity"."""
    parts: List[str] = []
    for part in loc:
        if part == "body" and not parts:
            continue
        if isinstance(part, int):
            parts.append(f"[{part}]")
        else:
            parts.append(f".{part}" if parts else str(part))
    return "".join(parts) or "payload"


def format_errors(errors: Sequence[Mapping[str, Any]]) -> List[str]:
    """One human readable message per violated field."""
    messages = []
    for error in errors:
        location = format_error_location(error.get("loc", ()))
        messages.append(f"{location}: {error.get('msg', 'invalid value')}")
    return messages

CrossCheck = Callable[[Mapping[str, Any], Set[str]], List[str]]


def failed_fields(errors: Sequence[Mapping[str, Any]]) -> Set[str]:
    """Top-level fields named by pydantic errors, ignoring a leading "body"."""
    fields = set()
    for error in errors:
        loc = [part for part in error.get("loc", ()) if part != "body"]
        if loc:
            fields.add(str(loc[0]))
    return fields


def parse_payload(
    schema: Type[M],
    payload: Union[M, BaseModel, Mapping[str, Any]],
    cross_checks: Optional[CrossCheck] = None,
) -> M:
    """
    Validate a draft against a schema, collecting every violation.

    Accepts an instance of the schema itself (already validated at the HTTP
    layer), another model, or a plain mapping. When field validation fails,
    `cross_checks` still runs over the raw payload so multi-field rules are
    reported in the same error.
    """
    if isinstance(payload, schema):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(exclude_unset=True)
    if not isinstance(payload, Mapping):
        raise ValidationError(["payload: expected an object"])
    try:
        return schema.model_validate(dict(payload))
    except PydanticValidationError as exc:
        errors = exc.errors()
        messages = format_errors(errors)
        if cross_checks is not None:
            messages += cross_checks(payload, failed_fields(errors))
        raise ValidationError(messages) from exc
