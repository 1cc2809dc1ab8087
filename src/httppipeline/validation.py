"""
=============================================================================
DECLARATIVE VALIDATION
=============================================================================

A schema is a strict pydantic model. validate() runs it against a request
body and translates every pydantic error into a {field, message} pair.

    class UserSchema(Schema):
        name: str = Field(min_length=3, max_length=100)
        age: float = Field(gt=0)
        address: str = Field(min_length=5)

=============================================================================
ACCUMULATE, DON'T SHORT-CIRCUIT
=============================================================================

    Body: {"name": "Al", "age": -4}

    ┌──────────┬──────────────────────────┬─────────────────────────────────┐
    │ Field    │ Rule                     │ Outcome                         │
    ├──────────┼──────────────────────────┼─────────────────────────────────┤
    │ name     │ str, 3..100, required    │ "name length must be at least   │
    │          │                          │  3 characters long"             │
    │ age      │ float > 0, required      │ "age must be a positive number" │
    │ address  │ str, min 5, required     │ "address is required"           │
    └──────────┴──────────────────────────┴─────────────────────────────────┘

    Result: Rejected([3 errors])     not just the first one

pydantic already reports every failing field; within a single field a
type error stops further checks.

=============================================================================
NO COERCION
=============================================================================

Schemas run in strict mode, so "42" is not a number and True is not one
either. Accepted(value) carries the exact dict that came in, never the
model instance.

=============================================================================
"""

from dataclasses import dataclass
from typing import Any, Dict, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, ValidationError


class Schema(BaseModel):
    """Base class for request-body schemas: strict, frozen, extras ignored."""

    model_config = ConfigDict(strict=True, frozen=True, extra="ignore")


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


@dataclass(frozen=True)
class Accepted:
    value: Any

    @property
    def accepted(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    errors: Tuple[FieldError, ...]

    @property
    def accepted(self) -> bool:
        return False

    def to_list(self) -> list[dict]:
        return [error.to_dict() for error in self.errors]


ValidationResult = Union[Accepted, Rejected]


# pydantic error type → client-facing wording ({field} plus the error's ctx)
_MESSAGES: Dict[str, str] = {
    "missing": "{field} is required",
    "string_type": "{field} must be a string",
    "float_type": "{field} must be a number",
    "int_type": "{field} must be an integer",
    "bool_type": "{field} must be a boolean",
    "dict_type": "{field} must be an object",
    "list_type": "{field} must be an array",
    "string_too_short": "{field} length must be at least {min_length} characters long",
    "string_too_long": "{field} length must be less than or equal to {max_length} characters long",
    "too_short": "{field} must contain at least {min_length} items",
    "too_long": "{field} must contain at most {max_length} items",
    "greater_than": "{field} must be greater than {gt}",
    "greater_than_equal": "{field} must be greater than or equal to {ge}",
    "less_than": "{field} must be less than {lt}",
    "less_than_equal": "{field} must be less than or equal to {le}",
}


def _message(field: str, error: Dict[str, Any]) -> str:
    ctx = error.get("ctx") or {}
    if error["type"] == "greater_than" and ctx.get("gt") == 0:
        return f"{field} must be a positive number"
    template = _MESSAGES.get(error["type"])
    if template is None:
        return f"{field}: {error['msg']}"
    return template.format(field=field, **ctx)


def _field_errors(exc: ValidationError) -> Tuple[FieldError, ...]:
    errors = []
    for error in exc.errors(include_url=False):
        field = ".".join(str(part) for part in error["loc"]) or "value"
        errors.append(FieldError(field, _message(field, error)))
    return tuple(errors)


def validate(schema: Type[Schema], value: Any) -> ValidationResult:
    """
    Apply `schema` to `value`.

    Returns:
        Accepted(value) with the untouched input, or Rejected(errors) with
        one FieldError per failing field, in schema order.

    Raises:
        TypeError: If `schema` is not a Schema subclass.
    """
    if not (isinstance(schema, type) and issubclass(schema, BaseModel)):
        raise TypeError(f"schema must be a Schema subclass, got {schema!r}")

    if not isinstance(value, dict):
        return Rejected((FieldError("value", "value must be an object"),))

    try:
        schema.model_validate(value)
    except ValidationError as e:
        return Rejected(_field_errors(e))
    return Accepted(value)
