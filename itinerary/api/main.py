"""
itinerary.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn itinerary.api.main:app --reload --port 8081

or ``python -m itinerary``.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

load_dotenv()

from itinerary import __version__  # noqa: E402
from itinerary.api.auth import router as auth_router  # noqa: E402
from itinerary.api.deps import get_config, get_engine  # noqa: E402
from itinerary.api.routes.jams import router as jams_router  # noqa: E402
from itinerary.api.routes.projects import router as projects_router  # noqa: E402
from itinerary.api.routes.users import router as users_router  # noqa: E402
from itinerary.database.engine import init_db  # noqa: E402
from itinerary.database.seed import seed_bootstrap_admins  # noqa: E402
from itinerary.engine.sessions import SessionStore  # noqa: E402
from itinerary.errors import (  # noqa: E402
    Conflict,
    Forbidden,
    InvalidRequest,
    ItineraryError,
    NotFound,
    PreconditionFailed,
    Unauthenticated,
)

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle: schema, bootstrap admins, session index."""
    engine = get_engine()
    cfg = get_config()
    init_db(engine)
    seed_bootstrap_admins(engine, cfg.bootstrap_admins)

    store = SessionStore(engine)
    store.load_all()
    app.state.sessions = store

    logger.info("Itinerary API started (%s, %d sessions)", engine.url.database, len(store))
    yield
    logger.info("Itinerary API shutting down")


app = FastAPI(
    title="Itinerary API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error rendering
# ---------------------------------------------------------------------------
def _error_response(exc: ItineraryError, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.to_dict()},
        headers=headers,
    )


# Framework-raised HTTP errors (unknown route, wrong method, …) → our taxonomy
_HTTP_ERRORS: dict[int, tuple[type[ItineraryError], str]] = {
    400: (InvalidRequest, "invalidRequest"),
    401: (Unauthenticated, "missingAuth"),
    403: (Forbidden, "insufficientPermissions"),
    404: (NotFound, "notFound"),
    405: (InvalidRequest, "methodNotAllowed"),
    409: (Conflict, "recordAlreadyExists"),
    412: (PreconditionFailed, "preconditionFailed"),
}


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    cls, code = _HTTP_ERRORS.get(exc.status_code, (ItineraryError, "httpError"))
    if exc.status_code == 404:
        detail = f"Cannot {request.method} {request.url.path}"
    else:
        detail = str(exc.detail)
    err = cls(code, detail)
    # 405 and unmapped statuses keep their own status code
    err.status_code = exc.status_code
    return _error_response(err, headers=getattr(exc, "headers", None))


@app.exception_handler(ItineraryError)
async def itinerary_error_handler(request: Request, exc: ItineraryError):
    if exc.status_code >= 500:
        logger.warning("%s %s → %s (%s)", request.method, request.url.path, exc.code, exc.detail)
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = sorted({
        ".".join(str(p) for p in err["loc"][1:])
        for err in exc.errors()
        if len(err["loc"]) > 1
    })
    detail = "One or more required parameters are missing or malformed"
    if fields:
        detail += f": {', '.join(fields)}"
    return _error_response(InvalidRequest("missingParameters", detail))


# Mount routers
app.include_router(auth_router)
app.include_router(users_router, prefix="/api")
app.include_router(jams_router, prefix="/api")
app.include_router(projects_router, prefix="/api")


@app.get("/")
def root():
    return {"meta": {"version": __version__, "time": datetime.now(UTC).isoformat()}}


@app.get("/api/health")
def health():
    return {"status": "ok"}
