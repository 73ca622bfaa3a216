import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from sqlalchemy.orm import Session

from telemetry_config.api.catalogs import router as catalogs_router
from telemetry_config.api.projects import router as projects_router
from telemetry_config.core.config import get_settings
from telemetry_config.core.logging import configure_logging
from telemetry_config.db.base import Base
from telemetry_config.db.session import SessionLocal, check_db_connection, engine, get_db
from telemetry_config.schemas.catalogs import Catalog, options_for
from telemetry_config.services.project_store import ProjectStore

logger = logging.getLogger("telemetry_config.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)
    if settings.db_auto_create:
        Base.metadata.create_all(bind=engine)
    app.state.settings = settings
    app.state.project_store = ProjectStore(session_factory=SessionLocal)
    logger.info(
        "telemetry config service started datasource_types=%s",
        ",".join(option.value for option in options_for(Catalog.DATASOURCE_TYPE)),
    )
    yield


app = FastAPI(title="Telemetry Config Backend", lifespan=lifespan)
app.include_router(projects_router)
app.include_router(catalogs_router)


@app.get("/health")
def health():
    return {"status": "ok", "service": "telemetry-config"}


@app.get("/status")
def status(request: Request, db: Session = Depends(get_db)):
    db_ok, db_error = check_db_connection(db)
    settings = getattr(request.app.state, "settings", None)
    return {
        "status": "ok" if db_ok else "degraded",
        "database": {"ok": db_ok, "error": db_error},
        "settings": {
            "default_poll_interval_index": settings.default_poll_interval_index if settings else None,
            "warn_on_idle_ttnv3": settings.warn_on_idle_ttnv3 if settings else None,
            "enforce_parameter_name_pattern": settings.enforce_parameter_name_pattern if settings else None,
        },
    }
