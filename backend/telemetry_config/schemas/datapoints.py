from __future__ import annotations

from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, FiniteFloat, field_validator, model_validator
from pydantic_core import PydanticCustomError

from telemetry_config.schemas.catalogs import (
    DatasourceType,
    PollInterval,
    ScalingFunction,
    TimeToLive,
)
from telemetry_config.schemas.datasources import (
    Datasource,
    RequiredText,
    TrimmedText,
    WireModel,
    datasource_type_of,
    supports_polling,
)
from telemetry_config.schemas.identifiers import DatapointName, ProjectName, SubsystemName
from telemetry_config.services.scaling import TWO_PARAM_FUNCTIONS


class Processing(WireModel):
    unit: TrimmedText = ""
    scaling: ScalingFunction = ScalingFunction.LIN
    k: FiniteFloat | None = None
    m: FiniteFloat | None = None
    min: FiniteFloat | None = None
    max: FiniteFloat | None = None
    # condition and scalefunc are opaque to this service and passed through as entered.
    condition: str | None = None
    scalefunc: str | None = None

    @model_validator(mode="after")
    def _coefficients_follow_scaling(self) -> "Processing":
        if self.scaling in TWO_PARAM_FUNCTIONS:
            if self.k is None or self.m is None:
                raise ValueError(f"k and m are required for scaling function {self.scaling.value}")
        else:
            self.k = None
            self.m = None
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("min must not be greater than max")
        return self


class DatapointSettings(WireModel):
    project: ProjectName | None = None
    subsystem: SubsystemName | None = None
    name: DatapointName
    pollinterval: PollInterval | None = None
    proc: Processing = Field(default_factory=Processing)
    time_to_live: TimeToLive = TimeToLive.ONE_WEEK
    datasourcetype: DatasourceType
    datasource: Datasource

    @model_validator(mode="after")
    def _datasource_matches_tag(self) -> "DatapointSettings":
        if datasource_type_of(self.datasource) is not self.datasourcetype:
            raise ValueError(
                f"datasource of type {type(self.datasource).__name__} does not match "
                f"datasourcetype {self.datasourcetype.value}"
            )
        if supports_polling(self.datasourcetype):
            if self.pollinterval is None:
                raise ValueError(f"pollinterval is required for {self.datasourcetype.value} datasources")
        else:
            self.pollinterval = None
        return self


class SubsystemSettings(WireModel):
    project: ProjectName | None = None
    name: SubsystemName
    title: RequiredText
    locallocation: RequiredText
    datapoints: list[DatapointSettings] = Field(default_factory=list)


class ProjectSettings(WireModel):
    name: ProjectName
    title: RequiredText
    city: TrimmedText = ""
    country: TrimmedText = ""
    timezone: TrimmedText = "UTC"
    geolocation: TrimmedText = ""
    subsystems: list[SubsystemSettings] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        if value in ("", "UTC"):
            return "UTC"
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise PydanticCustomError(
                "invalid_choice",
                "timezone must be 'UTC' or an IANA zone such as Europe/Stockholm",
            ) from exc
        return value


class FieldErrorResponse(BaseModel):
    field: str
    code: Literal[
        "required",
        "pattern_mismatch",
        "invalid_url",
        "type_mismatch",
        "invalid_choice",
        "invalid_expression",
    ]
    message: str


class ValidationResponse(BaseModel):
    valid: bool
    errors: list[FieldErrorResponse] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    record: dict[str, Any] | None = None
