from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from telemetry_config.core.errors import ConfigurationError, ErrorCode, FieldError
from telemetry_config.schemas.catalogs import (
    AuthenticationType,
    Catalog,
    DatasourceType,
    OriginDocumentFormat,
    PollInterval,
    ScalingFunction,
    TimestampType,
    TimeToLive,
    default_for,
)
from telemetry_config.schemas.datapoints import (
    DatapointSettings,
    Processing,
    ProjectSettings,
    SubsystemSettings,
)
from telemetry_config.schemas.datasources import (
    DATASOURCE_MODELS,
    Ttnv3Datasource,
    WireModel,
    supports_polling,
)
from telemetry_config.schemas.identifiers import IdentifierKind, matches_identifier, validate_identifier
from telemetry_config.services.expressions import check_expression, expression_kind
from telemetry_config.services.scaling import TWO_PARAM_FUNCTIONS

logger = logging.getLogger("telemetry_config.datapoint_validation")

# Union member tags pydantic inserts into error locations.
_UNION_TAGS = {"str", "int", "float", "bool", "BasicAuth"}
_REQUIRED_TYPES = {"missing", "string_too_short"}
_CHOICE_TYPES = {"enum", "literal_error"}
# Kept as entered; only None or "" counts as absent.
_VERBATIM_FIELDS = frozenset({"auth", "username", "password", "authorizationkey", "condition", "scalefunc"})


@dataclass
class ValidationOutcome:
    valid: bool
    errors: list[FieldError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    record: Any = None

    def errors_for(self, field_name: str) -> list[FieldError]:
        return [error for error in self.errors if error.field == field_name]

    def as_dict(self) -> dict[str, Any]:
        record = self.record.to_wire() if isinstance(self.record, WireModel) else None
        return {
            "valid": self.valid,
            "errors": [error.as_dict() for error in self.errors],
            "warnings": list(self.warnings),
            "record": record,
        }


def translate_validation_error(exc: ValidationError, *, prefix: str = "") -> list[FieldError]:
    translated: list[FieldError] = []
    for detail in exc.errors():
        parts = [
            str(part)
            for part in detail["loc"]
            if not (isinstance(part, str) and (part in _UNION_TAGS or "[" in part))
        ]
        path = _join_path(prefix, ".".join(parts)) or "$"
        translated.append(FieldError(field=path, code=_code_for(detail), message=detail["msg"]))
    return _dedupe(translated)


def _code_for(detail: Mapping[str, Any]) -> ErrorCode:
    kind = detail["type"]
    if kind in _REQUIRED_TYPES or ("input" in detail and detail["input"] is None):
        return ErrorCode.REQUIRED
    if kind in _CHOICE_TYPES:
        return ErrorCode.INVALID_CHOICE
    try:
        return ErrorCode(kind)
    except ValueError:
        return ErrorCode.TYPE_MISMATCH


def _dedupe(errors: list[FieldError]) -> list[FieldError]:
    seen: set[tuple[str, ErrorCode]] = set()
    unique: list[FieldError] = []
    for error in errors:
        key = (error.field, error.code)
        if key in seen:
            continue
        seen.add(key)
        unique.append(error)
    return unique


def _join_path(prefix: str, key: str) -> str:
    if not prefix:
        return key
    if not key:
        return prefix
    return f"{prefix}.{key}"


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _is_absent(key: str, value: Any) -> bool:
    if key in _VERBATIM_FIELDS:
        return value is None or value == ""
    return _is_blank(value)


def _normalize_payload(payload: Mapping[str, Any], known: set[str]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if key in known and not _is_absent(key, value)}


def resolve_datasource_type(variant: DatasourceType | str) -> DatasourceType:
    try:
        return DatasourceType(variant)
    except ValueError as exc:
        logger.error("unrecognized datasource type=%r", variant)
        raise ConfigurationError(f"Unrecognized datasource type: {variant!r}") from exc


def _enum_or_default(enum_type: type, value: Any, default: Any) -> Any:
    if _is_blank(value):
        return default
    try:
        return enum_type(value)
    except ValueError:
        return None


def validate_datasource(
    variant: DatasourceType | str,
    payload: Mapping[str, Any] | None,
    *,
    is_new: bool = True,
    enforce_parameter_names: bool = False,
    warn_on_idle_ttnv3: bool = True,
    prefix: str = "datasource",
) -> ValidationOutcome:
    resolved = resolve_datasource_type(variant)
    model = DATASOURCE_MODELS[resolved]
    if payload is not None and not isinstance(payload, Mapping):
        return ValidationOutcome(
            valid=False,
            errors=[FieldError(prefix, ErrorCode.TYPE_MISMATCH, "datasource must be an object")],
        )
    normalized = _normalize_payload(payload or {}, model.wire_field_names())

    errors: list[FieldError] = []
    warnings: list[str] = []
    if resolved is DatasourceType.WEB:
        errors.extend(_web_auth_errors(normalized, prefix))
        errors.extend(_expression_errors(normalized, prefix))
    elif resolved is DatasourceType.MQTT:
        errors.extend(_expression_errors(normalized, prefix))
    elif resolved is DatasourceType.PARAMETERS:
        if normalized.get("parameters") is None:
            normalized["parameters"] = {}
        param_errors, param_warnings = _parameter_issues(
            normalized["parameters"],
            prefix=prefix,
            is_new=is_new,
            enforce_names=enforce_parameter_names,
        )
        errors.extend(param_errors)
        warnings.extend(param_warnings)

    datasource = None
    try:
        datasource = model.model_validate(normalized)
    except ValidationError as exc:
        errors.extend(translate_validation_error(exc, prefix=prefix))

    if (
        warn_on_idle_ttnv3
        and isinstance(datasource, Ttnv3Datasource)
        and not (datasource.poll or datasource.subscribe or datasource.webhook)
    ):
        warnings.append("ttnv3 datasource has poll, subscribe and webhook all disabled; no data will arrive")

    errors = _dedupe(errors)
    if errors:
        return ValidationOutcome(valid=False, errors=errors, warnings=warnings)
    return ValidationOutcome(valid=True, warnings=warnings, record=datasource)


def _web_auth_errors(payload: dict[str, Any], prefix: str) -> list[FieldError]:
    auth_type = _enum_or_default(AuthenticationType, payload.get("authenticationType"), AuthenticationType.NONE)
    auth = payload.get("auth")
    auth_path = _join_path(prefix, "auth")
    if auth_type is AuthenticationType.BASIC:
        if isinstance(auth, str):
            user, _sep, password = auth.partition(":")
            auth = {"u": user, "p": password}
        if auth is None:
            auth = {}
        if not isinstance(auth, Mapping):
            return [FieldError(auth_path, ErrorCode.TYPE_MISMATCH, "basic authentication needs a user and password")]
        errors = []
        if _is_blank(auth.get("u")):
            errors.append(FieldError(_join_path(auth_path, "u"), ErrorCode.REQUIRED, "Username is required"))
        if _is_absent("password", auth.get("p")):
            errors.append(FieldError(_join_path(auth_path, "p"), ErrorCode.REQUIRED, "Password is required"))
        return errors
    if auth_type is AuthenticationType.BEARER_TOKEN:
        if auth is None:
            return [FieldError(auth_path, ErrorCode.REQUIRED, "Bearer token is required")]
        if not isinstance(auth, str):
            return [FieldError(auth_path, ErrorCode.TYPE_MISMATCH, "Bearer token must be a string")]
    return []


def _expression_errors(payload: dict[str, Any], prefix: str) -> list[FieldError]:
    document_format = _enum_or_default(OriginDocumentFormat, payload.get("format"), None)
    timestamp_type = _enum_or_default(TimestampType, payload.get("timestampType"), TimestampType.POLLTIME)
    errors: list[FieldError] = []

    if timestamp_type is TimestampType.POLLTIME:
        payload.pop("timestampExpression", None)
        payload.pop("timestamp_expression", None)
    elif payload.get("timestampExpression") is None:
        errors.append(
            FieldError(
                _join_path(prefix, "timestampExpression"),
                ErrorCode.REQUIRED,
                f"Timestamp expression is required for timestamp type {timestamp_type.value}"
                if timestamp_type is not None
                else "Timestamp expression is required",
            )
        )

    if document_format is None:
        return errors
    for key in ("valueExpression", "timestampExpression"):
        expression = payload.get(key)
        if not isinstance(expression, str):
            continue
        problem = check_expression(document_format, expression.strip())
        if problem is not None:
            errors.append(
                FieldError(
                    _join_path(prefix, key),
                    ErrorCode.INVALID_EXPRESSION,
                    f"{expression_kind(document_format)} expected: {problem}",
                )
            )
    return errors


def _parameter_issues(
    parameters: Any,
    *,
    prefix: str,
    is_new: bool,
    enforce_names: bool,
) -> tuple[list[FieldError], list[str]]:
    path = _join_path(prefix, "parameters")
    if not isinstance(parameters, Mapping):
        # the model reports the type problem
        return [], []
    if is_new and len(parameters) == 0:
        return [FieldError(path, ErrorCode.REQUIRED, "At least one parameter is required")], []
    errors: list[FieldError] = []
    warnings: list[str] = []
    for key in parameters:
        if not isinstance(key, str) or matches_identifier(IdentifierKind.DATAPOINT, key):
            continue
        if enforce_names:
            errors.append(
                FieldError(
                    _join_path(path, key),
                    ErrorCode.PATTERN_MISMATCH,
                    "parameter names must start with a lowercase letter followed by letters, digits, '_' or '.'",
                )
            )
        else:
            warnings.append(f"parameter name {key!r} does not follow the datapoint naming rule")
    return errors, warnings


def _processing(raw: Any) -> tuple[Processing | None, list[FieldError]]:
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        return None, [FieldError("proc", ErrorCode.TYPE_MISMATCH, "proc must be an object")]
    payload = _normalize_payload(raw, Processing.wire_field_names())
    scaling = _enum_or_default(
        ScalingFunction,
        payload.get("scaling"),
        ScalingFunction(default_for(Catalog.SCALING_FUNCTION)),
    )
    if scaling is None:
        return None, [
            FieldError(
                "proc.scaling",
                ErrorCode.INVALID_CHOICE,
                f"Unknown scaling function: {payload.get('scaling')!r}",
            )
        ]
    payload["scaling"] = scaling

    errors: list[FieldError] = []
    if scaling in TWO_PARAM_FUNCTIONS:
        for coefficient in ("k", "m"):
            if payload.get(coefficient) is None:
                errors.append(
                    FieldError(
                        f"proc.{coefficient}",
                        ErrorCode.REQUIRED,
                        f"{coefficient} is required for scaling function {scaling.value}",
                    )
                )
    else:
        payload.pop("k", None)
        payload.pop("m", None)

    try:
        return Processing.model_validate(payload), errors
    except ValidationError as exc:
        translated = translate_validation_error(exc, prefix="proc")
        if errors:
            # the model repeats the missing-coefficient problem at proc level
            translated = [error for error in translated if error.field != "proc"]
        return None, _dedupe(errors + translated)


def validate_datapoint(
    draft: Mapping[str, Any],
    *,
    is_new: bool = True,
    enforce_parameter_names: bool = False,
    warn_on_idle_ttnv3: bool = True,
) -> ValidationOutcome:
    """Validate a datapoint draft in two phases and report every problem at once.

    Phase one covers the aggregate fields (names, poll interval, retention and
    processing); phase two the datasource payload selected by
    ``datasourcetype``. Both phases always run. An unrecognized
    ``datasourcetype`` raises ``ConfigurationError`` instead of producing a
    field error, since no safe editor can be offered for it.
    """
    errors: list[FieldError] = []
    warnings: list[str] = []

    name_error = validate_identifier(IdentifierKind.DATAPOINT, draft.get("name"), field="name")
    if name_error is not None:
        errors.append(name_error)
    for key, kind in (("project", IdentifierKind.PROJECT), ("subsystem", IdentifierKind.SUBSYSTEM)):
        if _is_blank(draft.get(key)):
            continue
        error = validate_identifier(kind, draft.get(key), field=key)
        if error is not None:
            errors.append(error)

    variant: DatasourceType | None = None
    if _is_blank(draft.get("datasourcetype")):
        errors.append(FieldError("datasourcetype", ErrorCode.REQUIRED, "Datasource type is required"))
    else:
        variant = resolve_datasource_type(draft.get("datasourcetype"))

    pollinterval: PollInterval | None = None
    if variant is not None and supports_polling(variant):
        raw_interval = draft.get("pollinterval")
        if _is_blank(raw_interval):
            errors.append(FieldError("pollinterval", ErrorCode.REQUIRED, "Poll interval is required"))
        else:
            pollinterval = _enum_or_default(PollInterval, raw_interval, None)
            if pollinterval is None:
                errors.append(
                    FieldError("pollinterval", ErrorCode.INVALID_CHOICE, f"Unknown poll interval: {raw_interval!r}")
                )

    time_to_live = _enum_or_default(
        TimeToLive,
        draft.get("timeToLive"),
        TimeToLive(default_for(Catalog.TIME_TO_LIVE)),
    )
    if time_to_live is None:
        errors.append(
            FieldError("timeToLive", ErrorCode.INVALID_CHOICE, f"Unknown time to live: {draft.get('timeToLive')!r}")
        )

    proc, proc_errors = _processing(draft.get("proc"))
    errors.extend(proc_errors)

    datasource = None
    if variant is not None:
        datasource_outcome = validate_datasource(
            variant,
            draft.get("datasource"),
            is_new=is_new,
            enforce_parameter_names=enforce_parameter_names,
            warn_on_idle_ttnv3=warn_on_idle_ttnv3,
        )
        errors.extend(datasource_outcome.errors)
        warnings.extend(datasource_outcome.warnings)
        datasource = datasource_outcome.record

    if errors:
        logger.info(
            "datapoint draft rejected name=%s errors=%s fields=%s",
            draft.get("name"),
            len(errors),
            ",".join(sorted({error.field for error in errors})),
        )
        return ValidationOutcome(valid=False, errors=errors, warnings=warnings)

    try:
        record = DatapointSettings(
            project=draft.get("project") or None,
            subsystem=draft.get("subsystem") or None,
            name=draft["name"],
            pollinterval=pollinterval,
            proc=proc,
            time_to_live=time_to_live,
            datasourcetype=variant,
            datasource=datasource,
        )
    except ValidationError as exc:
        return ValidationOutcome(valid=False, errors=translate_validation_error(exc), warnings=warnings)
    return ValidationOutcome(valid=True, warnings=warnings, record=record)


def _validate_form(model: type[WireModel], payload: Mapping[str, Any], *, exclude: set[str]) -> ValidationOutcome:
    known = model.wire_field_names() - exclude
    normalized = {key: value for key, value in payload.items() if key in known}
    try:
        record = model.model_validate(normalized)
    except ValidationError as exc:
        return ValidationOutcome(valid=False, errors=translate_validation_error(exc))
    return ValidationOutcome(valid=True, record=record)


def validate_project(payload: Mapping[str, Any]) -> ValidationOutcome:
    return _validate_form(ProjectSettings, payload, exclude={"subsystems"})


def validate_subsystem(payload: Mapping[str, Any], *, project: str | None = None) -> ValidationOutcome:
    data = dict(payload)
    if project is not None:
        data["project"] = project
    return _validate_form(SubsystemSettings, data, exclude={"datapoints"})
