from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    REQUIRED = "required"
    PATTERN_MISMATCH = "pattern_mismatch"
    INVALID_URL = "invalid_url"
    TYPE_MISMATCH = "type_mismatch"
    INVALID_CHOICE = "invalid_choice"
    INVALID_EXPRESSION = "invalid_expression"


@dataclass(frozen=True)
class FieldError:
    field: str
    code: ErrorCode
    message: str

    def as_dict(self) -> dict[str, Any]:
        return {"field": self.field, "code": self.code.value, "message": self.message}


class ConfigurationError(Exception):
    """A stored or submitted record carries a discriminant nothing knows how to handle."""


class ReadOnlyFieldError(Exception):
    def __init__(self, field: str) -> None:
        super().__init__(f"{field} cannot be changed on an existing record")
        self.field = field


class FieldNotApplicableError(ValueError):
    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"{field} is not applicable: {reason}")
        self.field = field


class SessionClosedError(Exception):
    pass


class SubmissionInProgressError(Exception):
    pass


class SubmissionFailedError(Exception):
    pass


class RecordNotFoundError(LookupError):
    pass


class DuplicateRecordError(Exception):
    pass
