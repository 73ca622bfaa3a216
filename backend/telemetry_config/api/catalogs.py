from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from telemetry_config.core.errors import ConfigurationError
from telemetry_config.schemas.catalogs import (
    CatalogResponse,
    default_for,
    describe_catalogs,
    options_for,
)

router = APIRouter(prefix="/api", tags=["catalogs"])


@router.get("/catalogs", response_model=list[CatalogResponse])
def get_catalogs(include_internal: bool = Query(default=False)) -> list[CatalogResponse]:
    return describe_catalogs(include_internal=include_internal)


@router.get("/catalogs/{catalog}", response_model=CatalogResponse)
def get_catalog(catalog: str, include_internal: bool = Query(default=False)) -> CatalogResponse:
    try:
        options = options_for(catalog, include_internal=include_internal)
        default = default_for(catalog)
    except ConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return CatalogResponse(catalog=catalog, default=default, options=options)
