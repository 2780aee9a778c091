# Application entrypoint: configures logging, middleware, error translation, startup routines, and API routers.
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
import logging
import os
import threading
import time

from .db import Base, engine
from .errors import CampusCrateError
from .routes.admin import router as admin_router
from .routes.auth import router as auth_router
from .routes.items import router as items_router
from .routes.lending import router as lending_router
from .routes.messages import router as messages_router
from .routes.reports import router as reports_router
from .routes.reviews import router as reviews_router
from .routes.uploads import router as uploads_router
from .routes.users import router as users_router
from .sweepers import sweep_lending_requests

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("campuscrate")


def _start_lending_sweeper(interval_seconds: int = 300) -> None:
    """
    Launch a daemon thread that advances lending requests whose dates have come due.

    Errors are logged and the loop retries on the next interval.
    """
    def _loop() -> None:
        while True:
            try:
                sweep_lending_requests()
            except Exception:
                logger.exception("sweep.failed")
            time.sleep(interval_seconds)

    t = threading.Thread(target=_loop, name="lending-sweeper", daemon=True)
    t.start()


# Parse CORS origins from a comma-separated env var.
# Note: '*' cannot be used with allow_credentials=True; we fall back to explicit localhost origins for dev.
def _parse_cors_origins(env_value: str | None) -> list[str]:
    default_dev_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    if not env_value:
        return default_dev_origins

    origins = [o.strip() for o in env_value.split(",") if o.strip()]
    if "*" in origins:
        return default_dev_origins

    return origins


app = FastAPI(title="CampusCrate API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_parse_cors_origins(os.getenv("CORS_ORIGINS")),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CampusCrateError)
def _domain_error(request: Request, exc: CampusCrateError) -> JSONResponse:
    # Expected failures: typed and logged at debug only
    logger.debug("request.failed %s %s: %s", request.method, request.url.path, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(OperationalError)
def _store_unavailable(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error("store.unavailable %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Data store unavailable; retry later", "code": "store_unavailable"},
    )


@app.on_event("startup")
def on_startup() -> None:
    # For local SQLite, auto-create tables; production DBs rely on Alembic migrations.
    if os.getenv("DATABASE_URL", "sqlite:///./campuscrate.db").startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
    interval = int(os.getenv("SWEEP_INTERVAL_SECONDS", "300"))
    if interval > 0:
        _start_lending_sweeper(interval_seconds=interval)


# Simple liveness endpoint for container orchestrators and uptime checks
@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


app.include_router(auth_router, prefix="", tags=["auth"])
app.include_router(items_router, prefix="/api/v1", tags=["items"])
app.include_router(lending_router, prefix="/api/v1", tags=["lending"])
app.include_router(messages_router, prefix="/api/v1", tags=["messages"])
app.include_router(reviews_router, prefix="/api/v1", tags=["reviews"])
app.include_router(users_router, prefix="/api/v1", tags=["users"])
app.include_router(uploads_router, prefix="/api/v1", tags=["uploads"])
app.include_router(reports_router, prefix="/api/v1", tags=["reports"])
app.include_router(admin_router, prefix="/api/v1", tags=["admin"])
