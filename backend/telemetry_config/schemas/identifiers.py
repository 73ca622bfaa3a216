from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Annotated

from pydantic import AfterValidator, StringConstraints
from pydantic_core import PydanticCustomError

from telemetry_config.core.errors import ErrorCode, FieldError


class IdentifierKind(str, Enum):
    PROJECT = "project-name"
    SUBSYSTEM = "subsystem-name"
    DATAPOINT = "datapoint-name"


@dataclass(frozen=True)
class IdentifierRule:
    pattern: re.Pattern[str]
    description: str


_NAME_RULE = "must start with a lowercase letter followed by letters, digits or '_'"

IDENTIFIER_RULES: dict[IdentifierKind, IdentifierRule] = {
    IdentifierKind.PROJECT: IdentifierRule(re.compile(r"[a-z][A-Za-z0-9_]*"), _NAME_RULE),
    IdentifierKind.SUBSYSTEM: IdentifierRule(re.compile(r"[a-z][A-Za-z0-9_]*"), _NAME_RULE),
    IdentifierKind.DATAPOINT: IdentifierRule(
        re.compile(r"[a-z][A-Za-z0-9_.]*"),
        "must start with a lowercase letter followed by letters, digits, '_' or '.'",
    ),
}


def validate_identifier(kind: IdentifierKind, value: str | None, *, field: str = "name") -> FieldError | None:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return FieldError(field=field, code=ErrorCode.REQUIRED, message=f"{kind.value} is required")
    if not isinstance(value, str):
        return FieldError(field=field, code=ErrorCode.TYPE_MISMATCH, message=f"{kind.value} must be a string")
    rule = IDENTIFIER_RULES[kind]
    if rule.pattern.fullmatch(value) is None:
        return FieldError(
            field=field,
            code=ErrorCode.PATTERN_MISMATCH,
            message=f"{kind.value} {rule.description}",
        )
    return None


def matches_identifier(kind: IdentifierKind, value: str) -> bool:
    return IDENTIFIER_RULES[kind].pattern.fullmatch(value) is not None


def _identifier_validator(kind: IdentifierKind):
    def _check(value: str) -> str:
        error = validate_identifier(kind, value)
        if error is not None:
            raise PydanticCustomError(error.code.value, error.message)
        return value

    return _check


ProjectName = Annotated[
    str,
    StringConstraints(strip_whitespace=True),
    AfterValidator(_identifier_validator(IdentifierKind.PROJECT)),
]
SubsystemName = Annotated[
    str,
    StringConstraints(strip_whitespace=True),
    AfterValidator(_identifier_validator(IdentifierKind.SUBSYSTEM)),
]
DatapointName = Annotated[
    str,
    StringConstraints(strip_whitespace=True),
    AfterValidator(_identifier_validator(IdentifierKind.DATAPOINT)),
]
