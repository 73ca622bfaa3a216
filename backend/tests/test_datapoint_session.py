from __future__ import annotations

import threading
from unittest import TestCase
from unittest.mock import Mock

from telemetry_config.core.config import Settings
from telemetry_config.core.errors import (
    ConfigurationError,
    FieldNotApplicableError,
    ReadOnlyFieldError,
    SessionClosedError,
    SubmissionFailedError,
    SubmissionInProgressError,
)
from telemetry_config.schemas.catalogs import DatasourceType
from telemetry_config.schemas.datasources import default_datasource
from telemetry_config.services.datapoint_session import DatapointEditSession


def _new_session(sink=None, **settings_overrides: object) -> DatapointEditSession:
    return DatapointEditSession(
        sink=sink or Mock(),
        project="plant",
        subsystem="boiler",
        settings=Settings(**settings_overrides),
    )


def _fill_web(session: DatapointEditSession) -> None:
    session.set_field("name", "sensor_1")
    session.set_field("proc.k", 2)
    session.set_field("proc.m", 0)
    session.set_field("datasource.url", "https://example.com/data.json")
    session.set_field("datasource.valueExpression", "$.value")


def _stored_record() -> dict[str, object]:
    return {
        "project": "plant",
        "subsystem": "boiler",
        "name": "sensor_1",
        "pollinterval": "one_hour",
        "proc": {"unit": "", "scaling": "lin", "k": 1.0, "m": 0.0},
        "timeToLive": "one_month",
        "datasourcetype": "web",
        "datasource": {
            "url": "https://example.com/data.json",
            "authenticationType": "none",
            "format": "jsondoc",
            "valueExpression": "$.value",
            "timestampType": "polltime",
        },
    }


class _BlockingSink:
    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()
        self.created: list[object] = []

    def create_datapoint(self, project, subsystem, datapoint) -> None:
        self.entered.set()
        self.release.wait(timeout=5)
        self.created.append(datapoint)

    def update_datapoint(self, project, subsystem, datapoint) -> None:
        raise AssertionError("new datapoints are created, not updated")


class BlankDraftTests(TestCase):
    def test_blank_draft_uses_catalog_defaults(self) -> None:
        session = _new_session()

        self.assertEqual(session.state, "draft")
        self.assertFalse(session.is_existing)
        self.assertIsNone(session.snapshot)
        self.assertEqual(session.get("datasourcetype"), "web")
        self.assertEqual(session.get("pollinterval"), "thirty_minutes")
        self.assertEqual(session.get("timeToLive"), "one_week")
        self.assertEqual(session.get("proc.scaling"), "lin")
        self.assertEqual(session.get("datasource"), default_datasource(DatasourceType.WEB))

    def test_default_poll_interval_follows_settings(self) -> None:
        session = _new_session(default_poll_interval_index=6)
        self.assertEqual(session.get("pollinterval"), "one_hour")

    def test_draft_property_is_a_copy(self) -> None:
        session = _new_session()
        session.draft["datasource"]["url"] = "https://leak.example.com"
        self.assertEqual(session.get("datasource.url"), "")


class FieldReconciliationTests(TestCase):
    def test_switching_variant_and_back_discards_entered_fields(self) -> None:
        session = _new_session()
        _fill_web(session)
        session.set_field("pollinterval", "one_day")

        session.set_field("datasourcetype", "mqtt")
        self.assertEqual(session.get("datasource"), default_datasource(DatasourceType.MQTT))
        self.assertNotIn("pollinterval", session.draft)
        self.assertNotIn("datasource.pollinterval", session.visible_fields())
        self.assertNotIn("pollinterval", session.visible_fields())

        session.set_field("datasourcetype", "web")
        self.assertEqual(session.get("datasource.url"), "")
        self.assertEqual(session.get("datasource.valueExpression"), "")
        self.assertEqual(session.get("pollinterval"), "thirty_minutes")
        self.assertEqual(session.get("name"), "sensor_1")

    def test_reselecting_the_same_variant_keeps_the_payload(self) -> None:
        session = _new_session()
        _fill_web(session)
        session.set_field("datasourcetype", "web")
        self.assertEqual(session.get("datasource.url"), "https://example.com/data.json")

    def test_unknown_variant_is_a_configuration_error(self) -> None:
        session = _new_session()
        with self.assertRaises(ConfigurationError):
            session.set_field("datasourcetype", "modbus")
        self.assertEqual(session.get("datasourcetype"), "web")

    def test_poll_interval_is_not_applicable_to_mqtt(self) -> None:
        session = _new_session()
        session.set_field("datasourcetype", "mqtt")
        with self.assertRaises(FieldNotApplicableError):
            session.set_field("pollinterval", "one_hour")

    def test_format_switch_clears_expressions(self) -> None:
        session = _new_session()
        _fill_web(session)
        session.set_field("datasource.timestampType", "epochMillis")
        session.set_field("datasource.timestampExpression", "$.ts")
        self.assertEqual(session.expression_language(), "JSONPath")

        session.set_field("datasource.format", "xmldoc")

        self.assertEqual(session.get("datasource.valueExpression"), "")
        self.assertEqual(session.get("datasource.timestampExpression"), "")
        self.assertEqual(session.expression_language(), "XPath")

    def test_format_does_not_apply_to_parameters(self) -> None:
        session = _new_session()
        session.set_field("datasourcetype", "parameters")
        with self.assertRaises(FieldNotApplicableError):
            session.set_field("datasource.format", "xmldoc")

    def test_authentication_switch_drops_credentials(self) -> None:
        session = _new_session()
        session.set_field("datasource.authenticationType", "basic")
        session.set_field("datasource.auth.u", "reader")
        session.set_field("datasource.auth.p", "s3cret")
        self.assertIn("datasource.auth.u", session.visible_fields())

        session.set_field("datasource.authenticationType", "bearerToken")

        self.assertIsNone(session.get("datasource.auth"))
        self.assertIn("datasource.auth", session.visible_fields())
        self.assertNotIn("datasource.auth.u", session.visible_fields())

    def test_scaling_switch_to_fixed_conversion_drops_coefficients(self) -> None:
        session = _new_session()
        session.set_field("proc.k", 2)
        session.set_field("proc.m", 1)
        self.assertIn("proc.k", session.visible_fields())

        session.set_field("proc.scaling", "fToC")

        self.assertIsNone(session.get("proc.k"))
        self.assertIsNone(session.get("proc.m"))
        self.assertNotIn("proc.k", session.visible_fields())

    def test_timestamp_expression_visible_only_without_poll_time(self) -> None:
        session = _new_session()
        self.assertNotIn("datasource.timestampExpression", session.visible_fields())
        session.set_field("datasource.timestampType", "iso8601_offset")
        self.assertIn("datasource.timestampExpression", session.visible_fields())

    def test_project_and_subsystem_are_read_only(self) -> None:
        session = _new_session()
        with self.assertRaises(ReadOnlyFieldError):
            session.set_field("project", "other")
        with self.assertRaises(ReadOnlyFieldError):
            session.set_field("subsystem", "other")
        self.assertEqual(session.read_only_fields(), {"project", "subsystem"})


class ValidationStateTests(TestCase):
    def test_invalid_draft_returns_to_draft_on_edit(self) -> None:
        session = _new_session()

        outcome = session.validate()

        self.assertFalse(outcome.valid)
        self.assertEqual(session.state, "invalid")
        self.assertIs(session.last_outcome, outcome)
        fields = {error.field for error in outcome.errors}
        self.assertTrue({"name", "proc.k", "proc.m", "datasource.url", "datasource.valueExpression"} <= fields)

        session.set_field("name", "sensor_1")
        self.assertEqual(session.state, "draft")

    def test_valid_draft_updates_snapshot(self) -> None:
        session = _new_session()
        _fill_web(session)

        outcome = session.validate()

        self.assertTrue(outcome.valid, outcome.errors)
        self.assertEqual(session.state, "valid")
        self.assertEqual(session.snapshot, outcome.record)
        self.assertEqual(session.snapshot.project, "plant")

        session.set_field("datasource.url", "not a url")
        self.assertEqual(session.state, "draft")
        self.assertEqual(session.snapshot.datasource.url, "https://example.com/data.json")


class SubmissionTests(TestCase):
    def test_invalid_draft_is_never_submitted(self) -> None:
        sink = Mock()
        session = _new_session(sink)

        outcome = session.submit()

        self.assertFalse(outcome.valid)
        sink.create_datapoint.assert_not_called()
        self.assertEqual(session.state, "invalid")

    def test_valid_draft_is_created_once(self) -> None:
        sink = Mock()
        session = _new_session(sink)
        _fill_web(session)

        outcome = session.submit()

        self.assertTrue(outcome.valid, outcome.errors)
        sink.create_datapoint.assert_called_once_with("plant", "boiler", outcome.record)
        self.assertEqual(session.state, "submitted")
        with self.assertRaises(SessionClosedError):
            session.set_field("name", "sensor_2")

    def test_transport_failure_preserves_draft(self) -> None:
        sink = Mock()
        sink.create_datapoint.side_effect = ConnectionError("backend unreachable")
        session = _new_session(sink)
        _fill_web(session)

        with self.assertLogs("telemetry_config.datapoint_session", level="ERROR"):
            with self.assertRaises(SubmissionFailedError):
                session.submit()

        self.assertEqual(session.state, "draft")
        self.assertEqual(session.get("name"), "sensor_1")
        self.assertEqual(session.get("datasource.url"), "https://example.com/data.json")

        sink.create_datapoint.side_effect = None
        self.assertTrue(session.submit().valid)
        self.assertEqual(session.state, "submitted")
        self.assertEqual(sink.create_datapoint.call_count, 2)

    def test_second_submit_while_in_flight_is_refused(self) -> None:
        sink = _BlockingSink()
        session = _new_session(sink)
        _fill_web(session)
        errors: list[Exception] = []

        def _submit() -> None:
            try:
                session.submit()
            except Exception as exc:
                errors.append(exc)

        worker = threading.Thread(target=_submit)
        worker.start()
        try:
            self.assertTrue(sink.entered.wait(timeout=5))
            self.assertEqual(session.state, "submitting")
            with self.assertRaises(SubmissionInProgressError):
                session.submit()
            with self.assertRaises(SubmissionInProgressError):
                session.set_field("name", "sensor_2")
            with self.assertRaises(SubmissionInProgressError):
                session.cancel()
        finally:
            sink.release.set()
            worker.join(timeout=5)

        self.assertEqual(errors, [])
        self.assertEqual(len(sink.created), 1)
        self.assertEqual(session.state, "submitted")

    def test_cancel_discards_the_draft(self) -> None:
        sink = Mock()
        session = _new_session(sink)
        _fill_web(session)

        session.cancel()

        self.assertEqual(session.state, "cancelled")
        self.assertEqual(session.draft, {})
        with self.assertRaises(SessionClosedError):
            session.validate()
        sink.create_datapoint.assert_not_called()


class ExistingRecordTests(TestCase):
    def test_existing_record_is_updated_and_name_is_read_only(self) -> None:
        sink = Mock()
        session = DatapointEditSession.for_existing(_stored_record(), sink=sink, settings=Settings())

        self.assertTrue(session.is_existing)
        self.assertIn("name", session.read_only_fields())
        self.assertEqual(session.get("pollinterval"), "one_hour")
        with self.assertRaises(ReadOnlyFieldError):
            session.set_field("name", "renamed")

        session.set_field("timeToLive", "one_year")
        outcome = session.submit()

        self.assertTrue(outcome.valid, outcome.errors)
        sink.update_datapoint.assert_called_once_with("plant", "boiler", outcome.record)
        sink.create_datapoint.assert_not_called()
        self.assertEqual(outcome.record.time_to_live.value, "one_year")

    def test_existing_parameters_record_may_be_empty(self) -> None:
        record = _stored_record()
        record["datasourcetype"] = "parameters"
        record["datasource"] = {"parameters": {}}
        session = DatapointEditSession.for_existing(record, sink=Mock(), settings=Settings())

        self.assertTrue(session.validate().valid)

    def test_unknown_stored_tag_cannot_be_edited(self) -> None:
        record = _stored_record()
        record["datasourcetype"] = "modbus"
        with self.assertRaises(ConfigurationError):
            DatapointEditSession.for_existing(record, sink=Mock(), settings=Settings())

    def test_inconsistent_stored_record_cannot_be_edited(self) -> None:
        record = _stored_record()
        record["datasource"] = {"topic": "plant/boiler"}
        with self.assertRaises(ConfigurationError):
            DatapointEditSession.for_existing(record, sink=Mock(), settings=Settings())
