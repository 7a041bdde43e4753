from __future__ import annotations

from typing import Any, Self

from pydantic import BaseModel, ConfigDict, ValidationError

from duedate.core.exceptions import BaseDueDateException, DueDateValueError


def validation_error_message(error: ValidationError) -> str:
    """Flatten a pydantic ValidationError into a readable, single message."""
    messages = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"])
        messages.append(f"{location}: {detail['msg']}" if location else detail["msg"])
    return "; ".join(messages)


def validation_error_types(error: ValidationError) -> set[str]:
    return {detail["type"] for detail in error.errors()}


class FrozenModel(BaseModel):
    """Base class for the immutable value objects the engine works with.

    Fields can be populated either by their Python name or by the camelCase
    alias used in the JSON documents of the circulation and calendar services.

    Validation problems are raised as one of our own exceptions, chosen by
    `_validation_exception`, whether the model is built directly or parsed
    with `from_json`.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
    )

    def __init__(self, /, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as error:
            raise self._validation_exception(error) from error

    @classmethod
    def from_json(cls, data: Any) -> Self:
        """Build the model from a decoded JSON document."""
        try:
            return cls.model_validate(data)
        except ValidationError as error:
            raise cls._validation_exception(error) from error

    @classmethod
    def _validation_exception(cls, error: ValidationError) -> BaseDueDateException:
        return DueDateValueError(f"Invalid {cls.__name__}: {validation_error_message(error)}")
