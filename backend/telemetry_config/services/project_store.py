from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from telemetry_config.core.errors import ConfigurationError, DuplicateRecordError, RecordNotFoundError
from telemetry_config.db.models import Datapoint, Project, Subsystem
from telemetry_config.repositories import projects as repo
from telemetry_config.schemas.datapoints import DatapointSettings, ProjectSettings, SubsystemSettings
from telemetry_config.services.datapoint_validation import resolve_datasource_type


def datapoint_record(row: Datapoint, *, project: str, subsystem: str) -> dict[str, Any]:
    record: dict[str, Any] = {
        "project": project,
        "subsystem": subsystem,
        "name": row.name,
        "proc": dict(row.proc_json or {}),
        "timeToLive": row.time_to_live,
        "datasourcetype": row.datasourcetype,
        "datasource": dict(row.datasource_json or {}),
    }
    if row.pollinterval is not None:
        record["pollinterval"] = row.pollinterval
    return record


def datapoint_from_record(record: dict[str, Any]) -> DatapointSettings:
    resolve_datasource_type(record.get("datasourcetype"))
    try:
        return DatapointSettings.model_validate(record)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Stored datapoint {record.get('project')}/{record.get('subsystem')}/{record.get('name')}"
            f" is inconsistent: {exc}"
        ) from exc


def datapoint_from_row(row: Datapoint, *, project: str, subsystem: str) -> DatapointSettings:
    return datapoint_from_record(datapoint_record(row, project=project, subsystem=subsystem))


def subsystem_from_row(
    row: Subsystem,
    *,
    project: str,
    datapoints: list[DatapointSettings] | None = None,
) -> SubsystemSettings:
    return SubsystemSettings(
        project=project,
        name=row.name,
        title=row.title,
        locallocation=row.locallocation,
        datapoints=datapoints or [],
    )


def project_from_row(row: Project, *, subsystems: list[SubsystemSettings] | None = None) -> ProjectSettings:
    return ProjectSettings(
        name=row.name,
        title=row.title,
        city=row.city,
        country=row.country,
        timezone=row.timezone,
        geolocation=row.geolocation,
        subsystems=subsystems or [],
    )


class ProjectStore:
    """Persistence for projects, subsystems and datapoints.

    Records handed in are already validated; the store only enforces natural
    key uniqueness and parent existence.
    """

    def __init__(self, *, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory
        self._logger = logging.getLogger("telemetry_config.project_store")

    def create_project(self, project: ProjectSettings) -> None:
        with self._session_factory() as db:
            try:
                repo.create_project(db, project)
            except IntegrityError as exc:
                db.rollback()
                raise DuplicateRecordError(f"Project {project.name!r} already exists") from exc
        self._logger.info("project created name=%s", project.name)

    def get_project(self, name: str) -> ProjectSettings:
        with self._session_factory() as db:
            row = self._require_project(db, name)
            subsystems = [self._load_subsystem(db, row, item) for item in repo.list_subsystems(db, row)]
            return project_from_row(row, subsystems=subsystems)

    def list_projects(self) -> list[ProjectSettings]:
        with self._session_factory() as db:
            return [
                project_from_row(
                    row,
                    subsystems=[self._load_subsystem(db, row, item) for item in repo.list_subsystems(db, row)],
                )
                for row in repo.list_projects(db)
            ]

    def list_subsystems(self, project_name: str) -> list[SubsystemSettings]:
        with self._session_factory() as db:
            project = self._require_project(db, project_name)
            return [self._load_subsystem(db, project, row) for row in repo.list_subsystems(db, project)]

    def create_subsystem(self, project_name: str, subsystem: SubsystemSettings) -> None:
        with self._session_factory() as db:
            project = self._require_project(db, project_name)
            try:
                repo.create_subsystem(db, project, subsystem)
            except IntegrityError as exc:
                db.rollback()
                raise DuplicateRecordError(
                    f"Subsystem {subsystem.name!r} already exists in project {project_name!r}"
                ) from exc
        self._logger.info("subsystem created project=%s name=%s", project_name, subsystem.name)

    def list_datapoints(self, project_name: str, subsystem_name: str) -> list[DatapointSettings]:
        with self._session_factory() as db:
            project = self._require_project(db, project_name)
            subsystem = self._require_subsystem(db, project, subsystem_name)
            return [
                datapoint_from_row(row, project=project.name, subsystem=subsystem.name)
                for row in repo.list_datapoints(db, subsystem)
            ]

    def get_datapoint_record(self, project_name: str, subsystem_name: str, name: str) -> dict[str, Any]:
        """Raw stored shape, for callers that must decide themselves whether it is editable."""
        with self._session_factory() as db:
            project = self._require_project(db, project_name)
            subsystem = self._require_subsystem(db, project, subsystem_name)
            row = repo.get_datapoint_by_name(db, subsystem, name)
            if row is None:
                raise RecordNotFoundError(f"Datapoint {project_name}/{subsystem_name}/{name} not found")
            return datapoint_record(row, project=project.name, subsystem=subsystem.name)

    def get_datapoint(self, project_name: str, subsystem_name: str, name: str) -> DatapointSettings:
        return datapoint_from_record(self.get_datapoint_record(project_name, subsystem_name, name))

    def create_datapoint(self, project_name: str, subsystem_name: str, datapoint: DatapointSettings) -> None:
        with self._session_factory() as db:
            project = self._require_project(db, project_name)
            subsystem = self._require_subsystem(db, project, subsystem_name)
            try:
                repo.create_datapoint(db, subsystem, datapoint)
            except IntegrityError as exc:
                db.rollback()
                raise DuplicateRecordError(
                    f"Datapoint {datapoint.name!r} already exists in {project_name}/{subsystem_name}"
                ) from exc
        self._logger.info(
            "datapoint created project=%s subsystem=%s name=%s datasourcetype=%s",
            project_name,
            subsystem_name,
            datapoint.name,
            datapoint.datasourcetype.value,
        )

    def update_datapoint(self, project_name: str, subsystem_name: str, datapoint: DatapointSettings) -> None:
        with self._session_factory() as db:
            project = self._require_project(db, project_name)
            subsystem = self._require_subsystem(db, project, subsystem_name)
            row = repo.get_datapoint_by_name(db, subsystem, datapoint.name)
            if row is None:
                raise RecordNotFoundError(
                    f"Datapoint {project_name}/{subsystem_name}/{datapoint.name} not found"
                )
            repo.update_datapoint(db, row, datapoint)
        self._logger.info(
            "datapoint updated project=%s subsystem=%s name=%s",
            project_name,
            subsystem_name,
            datapoint.name,
        )

    def _load_subsystem(self, db, project: Project, subsystem: Subsystem) -> SubsystemSettings:
        datapoints = [
            datapoint_from_row(row, project=project.name, subsystem=subsystem.name)
            for row in repo.list_datapoints(db, subsystem)
        ]
        return subsystem_from_row(subsystem, project=project.name, datapoints=datapoints)

    def _require_project(self, db, name: str) -> Project:
        project = repo.get_project_by_name(db, name)
        if project is None:
            raise RecordNotFoundError(f"Project {name!r} not found")
        return project

    def _require_subsystem(self, db, project: Project, name: str) -> Subsystem:
        subsystem = repo.get_subsystem_by_name(db, project, name)
        if subsystem is None:
            raise RecordNotFoundError(f"Subsystem {name!r} not found in project {project.name!r}")
        return subsystem
