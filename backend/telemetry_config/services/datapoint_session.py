from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from threading import Lock
from typing import Any, Literal, Protocol

from pydantic import ValidationError

from telemetry_config.core.config import Settings
from telemetry_config.core.errors import (
    ConfigurationError,
    FieldNotApplicableError,
    ReadOnlyFieldError,
    SessionClosedError,
    SubmissionFailedError,
    SubmissionInProgressError,
)
from telemetry_config.schemas.catalogs import (
    AuthenticationType,
    Catalog,
    DatasourceType,
    OriginDocumentFormat,
    ScalingFunction,
    TimestampType,
    default_for,
    poll_interval_at,
)
from telemetry_config.schemas.datapoints import DatapointSettings
from telemetry_config.schemas.datasources import default_datasource, supports_polling
from telemetry_config.services.datapoint_validation import (
    ValidationOutcome,
    resolve_datasource_type,
    validate_datapoint,
)
from telemetry_config.services.expressions import expression_kind
from telemetry_config.services.scaling import TWO_PARAM_FUNCTIONS

SessionState = Literal["draft", "validating", "valid", "invalid", "submitting", "submitted", "cancelled"]

_EXPRESSION_FIELDS = ("valueExpression", "timestampExpression")


class DatapointSink(Protocol):
    def create_datapoint(self, project: str, subsystem: str, datapoint: DatapointSettings) -> None: ...

    def update_datapoint(self, project: str, subsystem: str, datapoint: DatapointSettings) -> None: ...


class DatapointEditSession:
    """One operator's edit of one datapoint, from blank form to persisted record.

    Edits land in a mutable draft; ``snapshot`` holds the last record that
    passed validation. Nothing reaches the sink until ``submit`` validates the
    whole draft, and only one submission may be in flight at a time.
    """

    def __init__(
        self,
        *,
        sink: DatapointSink,
        project: str,
        subsystem: str,
        settings: Settings | None = None,
        existing: DatapointSettings | None = None,
    ) -> None:
        self._sink = sink
        self._project = project
        self._subsystem = subsystem
        self._settings = settings or Settings()
        self._existing = existing
        self._logger = logging.getLogger("telemetry_config.datapoint_session")
        self._submit_lock = Lock()
        self._state: SessionState = "draft"
        self._snapshot: DatapointSettings | None = existing
        self._last_outcome: ValidationOutcome | None = None
        self._edits: dict[str, Any] = existing.to_wire() if existing is not None else self._blank_draft()
        self._edits["project"] = project
        self._edits["subsystem"] = subsystem

    @classmethod
    def for_existing(
        cls,
        record: Mapping[str, Any],
        *,
        sink: DatapointSink,
        settings: Settings | None = None,
    ) -> "DatapointEditSession":
        resolve_datasource_type(record.get("datasourcetype"))
        try:
            existing = DatapointSettings.model_validate(dict(record))
        except ValidationError as exc:
            raise ConfigurationError(f"Stored datapoint {record.get('name')!r} cannot be edited: {exc}") from exc
        if existing.project is None or existing.subsystem is None:
            raise ConfigurationError(f"Stored datapoint {existing.name!r} has no project/subsystem reference")
        return cls(
            sink=sink,
            project=existing.project,
            subsystem=existing.subsystem,
            settings=settings,
            existing=existing,
        )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_existing(self) -> bool:
        return self._existing is not None

    @property
    def snapshot(self) -> DatapointSettings | None:
        if self._snapshot is None:
            return None
        return self._snapshot.model_copy(deep=True)

    @property
    def draft(self) -> dict[str, Any]:
        return copy.deepcopy(self._edits)

    @property
    def last_outcome(self) -> ValidationOutcome | None:
        return self._last_outcome

    @property
    def datasource_type(self) -> DatasourceType:
        return DatasourceType(self._edits["datasourcetype"])

    def _blank_draft(self) -> dict[str, Any]:
        variant = DatasourceType(default_for(Catalog.DATASOURCE_TYPE))
        draft: dict[str, Any] = {
            "name": "",
            "proc": {"unit": "", "scaling": default_for(Catalog.SCALING_FUNCTION)},
            "timeToLive": default_for(Catalog.TIME_TO_LIVE),
            "datasourcetype": variant.value,
            "datasource": default_datasource(variant),
        }
        if supports_polling(variant):
            draft["pollinterval"] = self._default_poll_interval()
        return draft

    def _default_poll_interval(self) -> str:
        return poll_interval_at(self._settings.default_poll_interval_index).value

    def _require_editable(self) -> None:
        if self._state in ("submitted", "cancelled"):
            raise SessionClosedError(f"edit session is {self._state}")
        if self._state == "submitting":
            raise SubmissionInProgressError("datapoint submission is in flight")

    def get(self, path: str, default: Any = None) -> Any:
        current: Any = self._edits
        for part in path.split("."):
            if not isinstance(current, dict) or part not in current:
                return default
            current = current[part]
        return copy.deepcopy(current)

    def set_field(self, path: str, value: Any) -> None:
        self._require_editable()
        parts = path.split(".")
        root = parts[0]

        if root == "name" and self._existing is not None:
            raise ReadOnlyFieldError("name")
        if root in ("project", "subsystem"):
            raise ReadOnlyFieldError(root)

        if path == "datasourcetype":
            self._switch_datasource_type(value)
        elif path == "pollinterval":
            if not supports_polling(self.datasource_type):
                raise FieldNotApplicableError(
                    "pollinterval",
                    f"{self.datasource_type.value} datasources are not polled",
                )
            self._edits["pollinterval"] = value
        elif path == "datasource.format":
            self._switch_format(value)
        elif path == "datasource.authenticationType":
            self._switch_authentication(value)
        elif path == "proc.scaling":
            self._switch_scaling(value)
        else:
            self._assign(parts, value)

        if self._state in ("valid", "invalid"):
            self._state = "draft"

    def _assign(self, parts: list[str], value: Any) -> None:
        target = self._edits
        for part in parts[:-1]:
            child = target.get(part)
            if not isinstance(child, dict):
                child = {}
                target[part] = child
            target = child
        target[parts[-1]] = value

    def _switch_datasource_type(self, value: Any) -> None:
        variant = resolve_datasource_type(value)
        if variant.value == self._edits.get("datasourcetype"):
            return
        self._logger.debug(
            "datasource type switched from=%s to=%s name=%s",
            self._edits.get("datasourcetype"),
            variant.value,
            self._edits.get("name"),
        )
        self._edits["datasourcetype"] = variant.value
        self._edits["datasource"] = default_datasource(variant)
        if supports_polling(variant):
            self._edits.setdefault("pollinterval", self._default_poll_interval())
        else:
            self._edits.pop("pollinterval", None)

    def _switch_format(self, value: Any) -> None:
        datasource = self._edits.setdefault("datasource", {})
        if "format" not in datasource and "valueExpression" not in datasource:
            raise FieldNotApplicableError(
                "datasource.format",
                f"{self.datasource_type.value} datasources have no document format",
            )
        if datasource.get("format") != value:
            for key in _EXPRESSION_FIELDS:
                if key in datasource:
                    datasource[key] = ""
        datasource["format"] = value

    def _switch_authentication(self, value: Any) -> None:
        if self.datasource_type is not DatasourceType.WEB:
            raise FieldNotApplicableError(
                "datasource.authenticationType",
                "only web datasources carry authentication settings",
            )
        datasource = self._edits.setdefault("datasource", {})
        if datasource.get("authenticationType") != value:
            datasource.pop("auth", None)
        datasource["authenticationType"] = value

    def _switch_scaling(self, value: Any) -> None:
        proc = self._edits.setdefault("proc", {})
        proc["scaling"] = value
        try:
            scaling = ScalingFunction(value)
        except ValueError:
            return
        if scaling not in TWO_PARAM_FUNCTIONS:
            proc.pop("k", None)
            proc.pop("m", None)

    def expression_language(self) -> str | None:
        raw = self.get("datasource.format")
        if raw is None:
            return None
        try:
            return expression_kind(OriginDocumentFormat(raw))
        except ValueError:
            return None

    def read_only_fields(self) -> set[str]:
        fields = {"project", "subsystem"}
        if self._existing is not None:
            fields.add("name")
        return fields

    def visible_fields(self) -> list[str]:
        variant = self.datasource_type
        fields = ["name"]
        if supports_polling(variant):
            fields.append("pollinterval")
        fields.extend(["timeToLive", "datasourcetype", "proc.unit", "proc.scaling"])
        scaling = self.get("proc.scaling")
        if scaling in {function.value for function in TWO_PARAM_FUNCTIONS}:
            fields.extend(["proc.k", "proc.m"])
        fields.extend(["proc.min", "proc.max", "proc.condition", "proc.scalefunc"])

        prefix = "datasource."
        if variant is DatasourceType.WEB:
            fields.extend([prefix + "url", prefix + "authenticationType"])
            auth_type = self.get("datasource.authenticationType")
            if auth_type == AuthenticationType.BASIC.value:
                fields.extend([prefix + "auth.u", prefix + "auth.p"])
            elif auth_type == AuthenticationType.BEARER_TOKEN.value:
                fields.append(prefix + "auth")
            fields.extend(self._document_fields(prefix))
        elif variant is DatasourceType.TTNV3:
            fields.extend(
                prefix + key
                for key in (
                    "zone",
                    "application",
                    "device",
                    "point",
                    "fport",
                    "authorizationkey",
                    "poll",
                    "subscribe",
                    "webhook",
                )
            )
        elif variant is DatasourceType.MQTT:
            fields.extend(
                prefix + key for key in ("protocol", "address", "port", "topic", "username", "password")
            )
            fields.extend(self._document_fields(prefix))
        elif variant is DatasourceType.PARAMETERS:
            fields.append(prefix + "parameters")
        return fields

    def _document_fields(self, prefix: str) -> list[str]:
        fields = [prefix + "format", prefix + "valueExpression", prefix + "timestampType"]
        if self.get("datasource.timestampType", TimestampType.POLLTIME.value) != TimestampType.POLLTIME.value:
            fields.append(prefix + "timestampExpression")
        return fields

    def validate(self) -> ValidationOutcome:
        self._require_editable()
        self._state = "validating"
        outcome = validate_datapoint(
            self._edits,
            is_new=self._existing is None,
            enforce_parameter_names=self._settings.enforce_parameter_name_pattern,
            warn_on_idle_ttnv3=self._settings.warn_on_idle_ttnv3,
        )
        self._last_outcome = outcome
        if outcome.valid:
            self._snapshot = outcome.record
            self._state = "valid"
        else:
            self._state = "invalid"
        return outcome

    def submit(self) -> ValidationOutcome:
        if not self._submit_lock.acquire(blocking=False):
            raise SubmissionInProgressError("datapoint submission is in flight")
        try:
            outcome = self.validate()
            if not outcome.valid:
                return outcome
            record: DatapointSettings = outcome.record
            self._state = "submitting"
            try:
                if self._existing is None:
                    self._sink.create_datapoint(self._project, self._subsystem, record)
                else:
                    self._sink.update_datapoint(self._project, self._subsystem, record)
            except Exception as exc:
                self._logger.exception(
                    "datapoint submission failed project=%s subsystem=%s name=%s",
                    self._project,
                    self._subsystem,
                    record.name,
                )
                self._state = "draft"
                raise SubmissionFailedError("Saving the datapoint failed; the draft was kept") from exc
            self._state = "submitted"
            self._logger.info(
                "datapoint submitted project=%s subsystem=%s name=%s datasourcetype=%s",
                self._project,
                self._subsystem,
                record.name,
                record.datasourcetype.value,
            )
            return outcome
        finally:
            self._submit_lock.release()

    def cancel(self) -> None:
        if self._state == "submitting":
            raise SubmissionInProgressError("datapoint submission is in flight")
        self._edits = {}
        self._state = "cancelled"
