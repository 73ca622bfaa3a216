from typing import TYPE_CHECKING

from fastapi import HTTPException, Request

from telemetry_config.core.config import Settings

if TYPE_CHECKING:
    from telemetry_config.services.project_store import ProjectStore


def get_settings_from_app(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        raise HTTPException(status_code=503, detail="Application settings are not initialized")
    return settings


def get_project_store(request: Request) -> "ProjectStore":
    store = getattr(request.app.state, "project_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Project store is not initialized")
    return store
