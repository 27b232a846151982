from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.db import close_db, init_db
from app.core.locking import close_redis, init_redis
from app.core.logging import setup_logging
from app.core.middleware import StructlogMiddleware
from app.modules.alerts.exceptions import (
    InvalidAlertTransition,
    InvalidRuleDefinition,
    NotFound,
    StoreError,
)
from app.modules.alerts.router import router as alerts_router
from app.modules.alerts.router import rules_router as alert_rules_router
from app.modules.alerts.service import seed_default_rules
from app.modules.vitals.router import router as vitals_router

setup_logging()
log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    if settings.STORE_BACKEND == "mongo":
        app.state.mongo_client = await init_db()
    # Redis is optional; init_redis() returns None when disabled/unavailable and
    # evaluation locks fall back to in-process locks.
    app.state.redis_client = await init_redis()
    await seed_default_rules()

    yield

    # Shutdown
    close_db()
    await close_redis()


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="""
    ## Vital Alerts API

    This API provides:
    * **Vitals**: Record a vital-sign reading; it is evaluated against alert rules immediately
    * **Alerts**: Read, acknowledge and resolve the alerts raised for a patient
    * **Alert rules**: Manage global and patient-specific threshold rules

    ### Authentication
    Endpoints require a Bearer token issued by the identity service, carrying `sub`
    and `roles` claims.
    """,
    version="0.1.0",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

# Set all CORS enabled origins
if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(StructlogMiddleware)


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(InvalidRuleDefinition)
async def invalid_rule_handler(request: Request, exc: InvalidRuleDefinition) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)}
    )


@app.exception_handler(InvalidAlertTransition)
async def invalid_transition_handler(
    request: Request, exc: InvalidAlertTransition
) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    log.error("store_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Storage temporarily unavailable, retry the request"},
    )


app.include_router(
    vitals_router, prefix=f"{settings.API_V1_STR}/vitals", tags=["vitals"]
)
app.include_router(alerts_router, prefix=f"{settings.API_V1_STR}/alerts", tags=["alerts"])
app.include_router(
    alert_rules_router, prefix=f"{settings.API_V1_STR}/alert-rules", tags=["alert-rules"]
)


@app.get("/health")
def health_check() -> dict[str, str]:
    return {"status": "ok"}
