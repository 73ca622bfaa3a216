from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from telemetry_config.db.models import Datapoint, Project, Subsystem
from telemetry_config.schemas.datapoints import DatapointSettings, ProjectSettings, SubsystemSettings


def list_projects(db: Session) -> list[Project]:
    return list(db.scalars(select(Project).order_by(Project.name)))


def get_project_by_name(db: Session, name: str) -> Project | None:
    return db.scalars(select(Project).where(Project.name == name)).first()


def create_project(db: Session, payload: ProjectSettings) -> Project:
    project = Project(
        name=payload.name,
        title=payload.title,
        city=payload.city,
        country=payload.country,
        timezone=payload.timezone,
        geolocation=payload.geolocation,
    )
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


def list_subsystems(db: Session, project: Project) -> list[Subsystem]:
    return list(
        db.scalars(
            select(Subsystem).where(Subsystem.project_id == project.id).order_by(Subsystem.name)
        )
    )


def get_subsystem_by_name(db: Session, project: Project, name: str) -> Subsystem | None:
    return db.scalars(
        select(Subsystem).where(Subsystem.project_id == project.id, Subsystem.name == name)
    ).first()


def create_subsystem(db: Session, project: Project, payload: SubsystemSettings) -> Subsystem:
    subsystem = Subsystem(
        project_id=project.id,
        name=payload.name,
        title=payload.title,
        locallocation=payload.locallocation,
    )
    db.add(subsystem)
    db.commit()
    db.refresh(subsystem)
    return subsystem


def list_datapoints(db: Session, subsystem: Subsystem) -> list[Datapoint]:
    return list(
        db.scalars(
            select(Datapoint).where(Datapoint.subsystem_id == subsystem.id).order_by(Datapoint.name)
        )
    )


def get_datapoint_by_name(db: Session, subsystem: Subsystem, name: str) -> Datapoint | None:
    return db.scalars(
        select(Datapoint).where(Datapoint.subsystem_id == subsystem.id, Datapoint.name == name)
    ).first()


def _apply_datapoint(row: Datapoint, payload: DatapointSettings) -> None:
    row.pollinterval = payload.pollinterval.value if payload.pollinterval is not None else None
    row.time_to_live = payload.time_to_live.value
    row.datasourcetype = payload.datasourcetype.value
    row.proc_json = payload.proc.to_wire()
    row.datasource_json = payload.datasource.to_wire()


def create_datapoint(db: Session, subsystem: Subsystem, payload: DatapointSettings) -> Datapoint:
    datapoint = Datapoint(subsystem_id=subsystem.id, name=payload.name)
    _apply_datapoint(datapoint, payload)
    db.add(datapoint)
    db.commit()
    db.refresh(datapoint)
    return datapoint


def update_datapoint(db: Session, datapoint: Datapoint, payload: DatapointSettings) -> Datapoint:
    if payload.name != datapoint.name:
        raise ValueError("datapoint name cannot be changed")
    _apply_datapoint(datapoint, payload)
    db.add(datapoint)
    db.commit()
    db.refresh(datapoint)
    return datapoint
