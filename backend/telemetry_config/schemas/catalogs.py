from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from telemetry_config.core.errors import ConfigurationError


class PollInterval(str, Enum):
    ONE_MINUTE = "one_minute"
    FIVE_MINUTES = "five_minutes"
    TEN_MINUTES = "ten_minutes"
    FIFTEEN_MINUTES = "fifteen_minutes"
    TWENTY_MINUTES = "twenty_minutes"
    THIRTY_MINUTES = "thirty_minutes"
    ONE_HOUR = "one_hour"
    TWO_HOURS = "two_hours"
    THREE_HOURS = "three_hours"
    SIX_HOURS = "six_hours"
    TWELVE_HOURS = "twelve_hours"
    ONE_DAY = "one_day"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class TimeToLive(str, Enum):
    ONE_WEEK = "one_week"
    ONE_MONTH = "one_month"
    THREE_MONTHS = "three_months"
    SIX_MONTHS = "six_months"
    ONE_YEAR = "one_year"
    TWO_YEARS = "two_years"
    THREE_YEARS = "three_years"
    FOUR_YEARS = "four_years"
    FIVE_YEARS = "five_years"
    TEN_YEARS = "ten_years"
    FOREVER = "forever"


class TimestampType(str, Enum):
    EPOCH_MILLIS = "epochMillis"
    EPOCH_SECONDS = "epochSeconds"
    ISO8601_ZONED = "iso8601_zoned"
    ISO8601_OFFSET = "iso8601_offset"
    POLLTIME = "polltime"


class ScalingFunction(str, Enum):
    LIN = "lin"
    LOG = "log"
    EXP = "exp"
    RAD = "rad"
    DEG = "deg"
    F_TO_C = "fToC"
    C_TO_F = "cToF"
    K_TO_C = "kToC"
    C_TO_K = "cToK"
    F_TO_K = "fToK"
    K_TO_F = "kToF"


class AuthenticationType(str, Enum):
    NONE = "none"
    BASIC = "basic"
    BEARER_TOKEN = "bearerToken"


class OriginDocumentFormat(str, Enum):
    JSON = "jsondoc"
    XML = "xmldoc"


class MqttProtocol(str, Enum):
    MQTT = "mqtt"
    MQTTS = "mqtts"
    TCP = "tcp"
    TLS = "tls"
    WS = "ws"
    WSS = "wss"
    WXS = "wxs"
    ALIS = "alis"


class DatasourceType(str, Enum):
    WEB = "web"
    TTNV3 = "ttnv3"
    MQTT = "mqtt"
    PARAMETERS = "parameters"


class Catalog(str, Enum):
    POLL_INTERVAL = "pollinterval"
    TIME_TO_LIVE = "timeToLive"
    TIMESTAMP_TYPE = "timestampType"
    SCALING_FUNCTION = "scaling"
    AUTHENTICATION_TYPE = "authenticationType"
    ORIGIN_DOCUMENT_FORMAT = "format"
    MQTT_PROTOCOL = "protocol"
    DATASOURCE_TYPE = "datasourcetype"


class CatalogOption(BaseModel):
    label: str
    value: str


class CatalogResponse(BaseModel):
    catalog: Catalog
    default: str
    options: list[CatalogOption] = Field(default_factory=list)


# Label order follows enum declaration order; pickers rely on it.
_LABELS: dict[type[Enum], dict[Enum, str]] = {
    PollInterval: {
        PollInterval.ONE_MINUTE: "1 minute",
        PollInterval.FIVE_MINUTES: "5 minutes",
        PollInterval.TEN_MINUTES: "10 minutes",
        PollInterval.FIFTEEN_MINUTES: "15 minutes",
        PollInterval.TWENTY_MINUTES: "20 minutes",
        PollInterval.THIRTY_MINUTES: "30 minutes",
        PollInterval.ONE_HOUR: "1 hour",
        PollInterval.TWO_HOURS: "2 hours",
        PollInterval.THREE_HOURS: "3 hours",
        PollInterval.SIX_HOURS: "6 hours",
        PollInterval.TWELVE_HOURS: "12 hours",
        PollInterval.ONE_DAY: "1 day",
        PollInterval.WEEKLY: "1 week",
        PollInterval.MONTHLY: "1 month",
    },
    TimeToLive: {
        TimeToLive.ONE_WEEK: "1 week",
        TimeToLive.ONE_MONTH: "1 month",
        TimeToLive.THREE_MONTHS: "3 months",
        TimeToLive.SIX_MONTHS: "6 months",
        TimeToLive.ONE_YEAR: "1 year",
        TimeToLive.TWO_YEARS: "2 years",
        TimeToLive.THREE_YEARS: "3 years",
        TimeToLive.FOUR_YEARS: "4 years",
        TimeToLive.FIVE_YEARS: "5 years",
        TimeToLive.TEN_YEARS: "10 years",
        TimeToLive.FOREVER: "forever",
    },
    TimestampType: {
        TimestampType.EPOCH_MILLIS: "epoch millis",
        TimestampType.EPOCH_SECONDS: "epoch seconds",
        TimestampType.ISO8601_ZONED: "iso8601 zoned",
        TimestampType.ISO8601_OFFSET: "iso8601 offset",
        TimestampType.POLLTIME: "time of poll",
    },
    ScalingFunction: {
        ScalingFunction.LIN: "lin: k * x + m",
        ScalingFunction.LOG: "log: k * ln(m * x)",
        ScalingFunction.EXP: "exp: k * e^(m * x)",
        ScalingFunction.RAD: "deg -> rad",
        ScalingFunction.DEG: "rad -> deg",
        ScalingFunction.F_TO_C: "°F -> °C",
        ScalingFunction.C_TO_F: "°C -> °F",
        ScalingFunction.K_TO_C: "K -> °C",
        ScalingFunction.C_TO_K: "°C -> K",
        ScalingFunction.F_TO_K: "°F -> K",
        ScalingFunction.K_TO_F: "K -> °F",
    },
    AuthenticationType: {
        AuthenticationType.NONE: "None",
        AuthenticationType.BASIC: "User & Password",
        AuthenticationType.BEARER_TOKEN: "Bearer token",
    },
    OriginDocumentFormat: {
        OriginDocumentFormat.JSON: "JSON",
        OriginDocumentFormat.XML: "XML",
    },
    MqttProtocol: {protocol: protocol.value for protocol in MqttProtocol},
    DatasourceType: {
        DatasourceType.WEB: "Web document",
        DatasourceType.TTNV3: "The Things Network v3",
        DatasourceType.MQTT: "MQTT",
        DatasourceType.PARAMETERS: "Parameters",
    },
}

CATALOG_ENUMS: dict[Catalog, type[Enum]] = {
    Catalog.POLL_INTERVAL: PollInterval,
    Catalog.TIME_TO_LIVE: TimeToLive,
    Catalog.TIMESTAMP_TYPE: TimestampType,
    Catalog.SCALING_FUNCTION: ScalingFunction,
    Catalog.AUTHENTICATION_TYPE: AuthenticationType,
    Catalog.ORIGIN_DOCUMENT_FORMAT: OriginDocumentFormat,
    Catalog.MQTT_PROTOCOL: MqttProtocol,
    Catalog.DATASOURCE_TYPE: DatasourceType,
}

INTERNAL_OPTIONS: frozenset[Enum] = frozenset({PollInterval.ONE_MINUTE})

DEFAULT_POLL_INTERVAL_INDEX = 5

_DEFAULTS: dict[Catalog, Enum] = {
    Catalog.POLL_INTERVAL: list(PollInterval)[DEFAULT_POLL_INTERVAL_INDEX],
    Catalog.TIME_TO_LIVE: list(TimeToLive)[0],
    Catalog.TIMESTAMP_TYPE: TimestampType.POLLTIME,
    Catalog.SCALING_FUNCTION: ScalingFunction.LIN,
    Catalog.AUTHENTICATION_TYPE: AuthenticationType.NONE,
    Catalog.ORIGIN_DOCUMENT_FORMAT: OriginDocumentFormat.JSON,
    Catalog.MQTT_PROTOCOL: MqttProtocol.MQTT,
    Catalog.DATASOURCE_TYPE: DatasourceType.WEB,
}


def _resolve_catalog(catalog: Catalog | str) -> Catalog:
    try:
        return Catalog(catalog)
    except ValueError as exc:
        raise ConfigurationError(f"Unknown catalog: {catalog!r}") from exc


def options_for(catalog: Catalog | str, *, include_internal: bool = False) -> list[CatalogOption]:
    resolved = _resolve_catalog(catalog)
    enum_type = CATALOG_ENUMS[resolved]
    labels = _LABELS[enum_type]
    return [
        CatalogOption(label=labels[member], value=member.value)
        for member in enum_type
        if include_internal or member not in INTERNAL_OPTIONS
    ]


def default_for(catalog: Catalog | str) -> str:
    return _DEFAULTS[_resolve_catalog(catalog)].value


def poll_interval_at(index: int) -> PollInterval:
    """Ordinal lookup used when the default cadence is configured by position."""
    members = list(PollInterval)
    if index < 0 or index >= len(members):
        raise ValueError(f"poll interval index out of range: {index}")
    return members[index]


def describe_catalogs(*, include_internal: bool = False) -> list[CatalogResponse]:
    return [
        CatalogResponse(
            catalog=catalog,
            default=default_for(catalog),
            options=options_for(catalog, include_internal=include_internal),
        )
        for catalog in Catalog
    ]
