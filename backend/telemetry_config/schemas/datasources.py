from __future__ import annotations

from typing import Annotated, Any, Union
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator, model_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from telemetry_config.schemas.catalogs import (
    AuthenticationType,
    DatasourceType,
    MqttProtocol,
    OriginDocumentFormat,
    TimestampType,
)

# Names, URLs and expressions are trimmed. Secrets, parameter mappings and
# opaque processing strings are plain `str` and kept exactly as entered.
TrimmedText = Annotated[str, StringConstraints(strip_whitespace=True)]
RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
SecretText = Annotated[str, StringConstraints(min_length=1)]

_WEB_SCHEMES = {"http", "https"}


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def wire_field_names(cls) -> set[str]:
        names: set[str] = set()
        for name, info in cls.model_fields.items():
            names.add(name)
            if info.alias:
                names.add(info.alias)
        return names


def check_web_url(value: str) -> str:
    """Accept absolute http(s) URLs with query and fragment, never with userinfo."""
    try:
        parts = urlsplit(value)
        port = parts.port
    except ValueError as exc:
        raise PydanticCustomError(
            "invalid_url",
            "url could not be parsed: {reason}",
            {"reason": str(exc)},
        ) from exc
    if parts.scheme.lower() not in _WEB_SCHEMES or not parts.hostname or port == 0:
        raise PydanticCustomError("invalid_url", "url must be an absolute http or https URL")
    if parts.username is not None or parts.password is not None or "@" in parts.netloc:
        raise PydanticCustomError(
            "invalid_url",
            "url must not contain embedded credentials; use the authentication settings instead",
        )
    return value


class BasicAuth(WireModel):
    u: str | None = None
    p: str | None = None


class WebDatasource(WireModel):
    url: RequiredText
    authentication_type: AuthenticationType = AuthenticationType.NONE
    auth: BasicAuth | str | None = None
    format: OriginDocumentFormat
    value_expression: RequiredText
    timestamp_type: TimestampType = TimestampType.POLLTIME
    timestamp_expression: TrimmedText | None = None

    @model_validator(mode="before")
    @classmethod
    def _split_composite_auth(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        auth_type = data.get("authenticationType", data.get("authentication_type"))
        auth = data.get("auth")
        if auth_type in (None, AuthenticationType.NONE, AuthenticationType.NONE.value):
            return {**data, "auth": None}
        if auth_type in (AuthenticationType.BASIC, AuthenticationType.BASIC.value) and isinstance(auth, str):
            user, _sep, password = auth.partition(":")
            return {**data, "auth": {"u": user or None, "p": password or None}}
        return data

    @field_validator("url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        return check_web_url(value)


class Ttnv3Datasource(WireModel):
    zone: RequiredText
    application: RequiredText
    device: RequiredText
    point: RequiredText
    fport: int | None = Field(default=None, ge=1, le=223)
    authorizationkey: SecretText
    poll: bool = False
    subscribe: bool = True
    webhook: bool = False


class MqttDatasource(WireModel):
    protocol: MqttProtocol
    address: RequiredText
    port: int = Field(ge=1, le=65535)
    topic: RequiredText
    username: str | None = None
    password: str | None = None
    format: OriginDocumentFormat
    value_expression: RequiredText
    timestamp_type: TimestampType = TimestampType.POLLTIME
    timestamp_expression: TrimmedText | None = None


class ParametersDatasource(WireModel):
    parameters: dict[str, str] = Field(default_factory=dict)


Datasource = Union[WebDatasource, Ttnv3Datasource, MqttDatasource, ParametersDatasource]

DATASOURCE_MODELS: dict[DatasourceType, type[WireModel]] = {
    DatasourceType.WEB: WebDatasource,
    DatasourceType.TTNV3: Ttnv3Datasource,
    DatasourceType.MQTT: MqttDatasource,
    DatasourceType.PARAMETERS: ParametersDatasource,
}

POLLING_DATASOURCES: frozenset[DatasourceType] = frozenset(
    {DatasourceType.WEB, DatasourceType.TTNV3, DatasourceType.PARAMETERS}
)

_DEFAULT_PAYLOADS: dict[DatasourceType, dict[str, Any]] = {
    DatasourceType.WEB: {
        "url": "",
        "authenticationType": AuthenticationType.NONE.value,
        "format": OriginDocumentFormat.JSON.value,
        "valueExpression": "",
        "timestampType": TimestampType.POLLTIME.value,
        "timestampExpression": "",
    },
    DatasourceType.TTNV3: {
        "zone": "eu1",
        "application": "",
        "device": "",
        "point": "",
        "authorizationkey": "",
        "poll": False,
        "subscribe": True,
        "webhook": False,
    },
    DatasourceType.MQTT: {
        "protocol": MqttProtocol.MQTT.value,
        "address": "",
        "port": 1883,
        "topic": "",
        "username": "",
        "password": "",
        "format": OriginDocumentFormat.JSON.value,
        "valueExpression": "",
        "timestampType": TimestampType.POLLTIME.value,
        "timestampExpression": "",
    },
    DatasourceType.PARAMETERS: {"parameters": {}},
}


def supports_polling(variant: DatasourceType) -> bool:
    return variant in POLLING_DATASOURCES


def default_datasource(variant: DatasourceType) -> dict[str, Any]:
    return {
        key: dict(value) if isinstance(value, dict) else value
        for key, value in _DEFAULT_PAYLOADS[variant].items()
    }


def datasource_type_of(datasource: Datasource) -> DatasourceType:
    for variant, model in DATASOURCE_MODELS.items():
        if type(datasource) is model:
            return variant
    raise TypeError(f"not a datasource model: {type(datasource).__name__}")
