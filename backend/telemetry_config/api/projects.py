from __future__ import annotations

import logging
from typing import Any, NoReturn

from fastapi import APIRouter, Body, Depends, HTTPException, Response, status

from telemetry_config.core.config import Settings
from telemetry_config.core.errors import ConfigurationError, DuplicateRecordError, RecordNotFoundError
from telemetry_config.dependencies import get_project_store, get_settings_from_app
from telemetry_config.schemas.datapoints import (
    DatapointSettings,
    ProjectSettings,
    SubsystemSettings,
    ValidationResponse,
)
from telemetry_config.services.datapoint_validation import (
    ValidationOutcome,
    validate_datapoint,
    validate_project,
    validate_subsystem,
)
from telemetry_config.services.project_store import ProjectStore

router = APIRouter(prefix="/api", tags=["projects"])
logger = logging.getLogger("telemetry_config.projects_api")


def _raise_invalid(outcome: ValidationOutcome) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={
            "message": "Validation failed",
            "errors": [error.as_dict() for error in outcome.errors],
            "warnings": outcome.warnings,
        },
    )


def _raise_not_found(exc: RecordNotFoundError) -> NoReturn:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


def _raise_conflict(exc: DuplicateRecordError) -> NoReturn:
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


def _raise_bad_request(exc: ConfigurationError) -> NoReturn:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _raise_unreadable(detail: str) -> NoReturn:
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


def _validate_datapoint_request(
    payload: dict[str, Any],
    *,
    project_name: str,
    subsystem_name: str,
    settings: Settings,
    is_new: bool,
) -> ValidationOutcome:
    draft = {**payload, "project": project_name, "subsystem": subsystem_name}
    try:
        return validate_datapoint(
            draft,
            is_new=is_new,
            enforce_parameter_names=settings.enforce_parameter_name_pattern,
            warn_on_idle_ttnv3=settings.warn_on_idle_ttnv3,
        )
    except ConfigurationError as exc:
        _raise_bad_request(exc)


@router.get("/projects", response_model=list[ProjectSettings], response_model_exclude_none=True)
def get_all_projects(store: ProjectStore = Depends(get_project_store)) -> list[ProjectSettings]:
    try:
        return store.list_projects()
    except ConfigurationError:
        logger.exception("stored projects unreadable")
        _raise_unreadable("A stored datapoint has an unrecognized configuration")


@router.post("/projects", status_code=status.HTTP_201_CREATED)
def create_project_endpoint(
    payload: dict[str, Any] = Body(...),
    store: ProjectStore = Depends(get_project_store),
) -> Response:
    outcome = validate_project(payload)
    if not outcome.valid:
        _raise_invalid(outcome)
    try:
        store.create_project(outcome.record)
    except DuplicateRecordError as exc:
        _raise_conflict(exc)
    return Response(status_code=status.HTTP_201_CREATED)


@router.get("/projects/{project_name}", response_model=ProjectSettings, response_model_exclude_none=True)
def get_project_endpoint(
    project_name: str,
    store: ProjectStore = Depends(get_project_store),
) -> ProjectSettings:
    try:
        return store.get_project(project_name)
    except RecordNotFoundError as exc:
        _raise_not_found(exc)
    except ConfigurationError:
        logger.exception("stored project unreadable project=%s", project_name)
        _raise_unreadable("A stored datapoint has an unrecognized configuration")


@router.get(
    "/projects/{project_name}/subsystems",
    response_model=list[SubsystemSettings],
    response_model_exclude_none=True,
)
def get_subsystems_endpoint(
    project_name: str,
    store: ProjectStore = Depends(get_project_store),
) -> list[SubsystemSettings]:
    try:
        return store.list_subsystems(project_name)
    except RecordNotFoundError as exc:
        _raise_not_found(exc)
    except ConfigurationError:
        logger.exception("stored subsystems unreadable project=%s", project_name)
        _raise_unreadable("A stored datapoint has an unrecognized configuration")


@router.post("/projects/{project_name}/subsystems", status_code=status.HTTP_201_CREATED)
def create_subsystem_endpoint(
    project_name: str,
    payload: dict[str, Any] = Body(...),
    store: ProjectStore = Depends(get_project_store),
) -> Response:
    outcome = validate_subsystem(payload, project=project_name)
    if not outcome.valid:
        _raise_invalid(outcome)
    try:
        store.create_subsystem(project_name, outcome.record)
    except RecordNotFoundError as exc:
        _raise_not_found(exc)
    except DuplicateRecordError as exc:
        _raise_conflict(exc)
    return Response(status_code=status.HTTP_201_CREATED)


@router.get(
    "/projects/{project_name}/subsystems/{subsystem_name}/datapoints",
    response_model=list[DatapointSettings],
    response_model_exclude_none=True,
)
def get_datapoints_endpoint(
    project_name: str,
    subsystem_name: str,
    store: ProjectStore = Depends(get_project_store),
) -> list[DatapointSettings]:
    try:
        return store.list_datapoints(project_name, subsystem_name)
    except RecordNotFoundError as exc:
        _raise_not_found(exc)
    except ConfigurationError:
        logger.exception("stored datapoints unreadable project=%s subsystem=%s", project_name, subsystem_name)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="A stored datapoint has an unrecognized configuration",
        )


@router.get(
    "/projects/{project_name}/subsystems/{subsystem_name}/datapoints/{datapoint_name}",
    response_model=DatapointSettings,
    response_model_exclude_none=True,
)
def get_datapoint_endpoint(
    project_name: str,
    subsystem_name: str,
    datapoint_name: str,
    store: ProjectStore = Depends(get_project_store),
) -> DatapointSettings:
    try:
        return store.get_datapoint(project_name, subsystem_name, datapoint_name)
    except RecordNotFoundError as exc:
        _raise_not_found(exc)
    except ConfigurationError:
        logger.exception(
            "stored datapoint unreadable project=%s subsystem=%s name=%s",
            project_name,
            subsystem_name,
            datapoint_name,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Stored datapoint has an unrecognized configuration and cannot be edited",
        )


@router.post(
    "/projects/{project_name}/subsystems/{subsystem_name}/datapoints/validate",
    response_model=ValidationResponse,
)
def validate_datapoint_endpoint(
    project_name: str,
    subsystem_name: str,
    payload: dict[str, Any] = Body(...),
    settings: Settings = Depends(get_settings_from_app),
) -> dict[str, Any]:
    outcome = _validate_datapoint_request(
        payload,
        project_name=project_name,
        subsystem_name=subsystem_name,
        settings=settings,
        is_new=True,
    )
    return outcome.as_dict()


@router.post(
    "/projects/{project_name}/subsystems/{subsystem_name}/datapoints",
    status_code=status.HTTP_201_CREATED,
)
def create_datapoint_endpoint(
    project_name: str,
    subsystem_name: str,
    payload: dict[str, Any] = Body(...),
    settings: Settings = Depends(get_settings_from_app),
    store: ProjectStore = Depends(get_project_store),
) -> Response:
    outcome = _validate_datapoint_request(
        payload,
        project_name=project_name,
        subsystem_name=subsystem_name,
        settings=settings,
        is_new=True,
    )
    if not outcome.valid:
        _raise_invalid(outcome)
    try:
        store.create_datapoint(project_name, subsystem_name, outcome.record)
    except RecordNotFoundError as exc:
        _raise_not_found(exc)
    except DuplicateRecordError as exc:
        _raise_conflict(exc)
    return Response(status_code=status.HTTP_201_CREATED)


@router.put("/projects/{project_name}/subsystems/{subsystem_name}/datapoints/{datapoint_name}")
def update_datapoint_endpoint(
    project_name: str,
    subsystem_name: str,
    datapoint_name: str,
    payload: dict[str, Any] = Body(...),
    settings: Settings = Depends(get_settings_from_app),
    store: ProjectStore = Depends(get_project_store),
) -> Response:
    if payload.get("name") not in (None, datapoint_name):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Datapoint name cannot be changed",
        )
    outcome = _validate_datapoint_request(
        {**payload, "name": datapoint_name},
        project_name=project_name,
        subsystem_name=subsystem_name,
        settings=settings,
        is_new=False,
    )
    if not outcome.valid:
        _raise_invalid(outcome)
    try:
        store.update_datapoint(project_name, subsystem_name, outcome.record)
    except RecordNotFoundError as exc:
        _raise_not_found(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
