"""Tool argument validation.

Arguments are checked against the tool's input model before the handler
runs. Failures become a list of (field path, message) pairs, rendered as a
domain-level tool error so the calling agent can fix its input.
"""

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class FieldError:
    """One invalid field."""

    path: str
    message: str

    def to_line(self) -> str:
        return f"- {self.path}: {self.message}"


@dataclass
class ValidationOutcome(Generic[ModelT]):
    """Result of validating a tool's arguments."""

    value: ModelT | None
    errors: list[FieldError]

    @property
    def ok(self) -> bool:
        return not self.errors


def _message(error: Any) -> str:
    # Custom validators raise ValueError; show their text without pydantic's prefix
    if error["type"] == "value_error" and "error" in error.get("ctx", {}):
        return str(error["ctx"]["error"])
    return str(error["msg"])


def field_errors(exc: ValidationError) -> list[FieldError]:
    """Convert a pydantic ValidationError into FieldErrors."""
    errors = []
    for error in exc.errors():
        path = ".".join(str(part) for part in error["loc"]) or "(root)"
        errors.append(FieldError(path=path, message=_message(error)))
    return errors


def validate_arguments(
    model: type[ModelT], arguments: dict[str, Any] | None
) -> ValidationOutcome[ModelT]:
    """Validate raw tool arguments against an input model.

    Args:
        model: Pydantic model describing the tool's input.
        arguments: Arguments from ``tools/call``; None is treated as ``{}``.

    Returns:
        ValidationOutcome with the parsed value or the field errors.
    """
    try:
        value = model.model_validate(arguments if arguments is not None else {})
    except ValidationError as exc:
        return ValidationOutcome(value=None, errors=field_errors(exc))
    return ValidationOutcome(value=value, errors=[])


def format_field_errors(errors: list[FieldError]) -> str:
    """Render one line per invalid field."""
    return "\n".join(error.to_line() for error in errors)


__all__ = [
    "FieldError",
    "ValidationOutcome",
    "field_errors",
    "format_field_errors",
    "validate_arguments",
]
