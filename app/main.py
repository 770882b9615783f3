import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.config import settings as core_settings
from app.core.errors import InvalidInputError, NotAuthorizedError, NotFoundError
from app.database import Base, check_database_connection, engine
from app.models.escalation import Escalation, NotificationLog  # noqa: F401
from app.models.match import Match  # noqa: F401
from app.models.notification import Notification  # noqa: F401
from app.models.parcel import Parcel  # noqa: F401
from app.models.trip import Trip  # noqa: F401
from app.models.trip_session import TripSession  # noqa: F401
from app.models.user import User  # noqa: F401
from app.routes.matches import router as matches_router
from app.routes.parcels import router as parcels_router
from app.routes.trip_sessions import router as trip_sessions_router

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    app_name: str = "colib-core"
    app_env: str = "development"
    project_port: int = 8369
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Startup: env=%s push_transport=%s",
        core_settings.ENV,
        core_settings.PUSH_TRANSPORT,
    )
    Base.metadata.create_all(bind=engine)
    yield
    logger.info("Shutdown: %s", settings.app_name)


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(matches_router)
app.include_router(parcels_router)
app.include_router(trip_sessions_router)


@app.exception_handler(NotFoundError)
def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"status": "error", "message": str(exc)})


@app.exception_handler(NotAuthorizedError)
def not_authorized_handler(request: Request, exc: NotAuthorizedError) -> JSONResponse:
    return JSONResponse(status_code=403, content={"status": "error", "message": str(exc)})


@app.exception_handler(InvalidInputError)
def invalid_input_handler(request: Request, exc: InvalidInputError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"status": "error", "message": exc.reason})


@app.get("/health")
def health() -> dict[str, str]:
    database = "connected"
    status_value = "healthy"
    try:
        check_database_connection()
    except Exception:
        database = "disconnected"
        status_value = "degraded"

    return {
        "status": status_value,
        "database": database,
        "environment": settings.app_env,
    }
