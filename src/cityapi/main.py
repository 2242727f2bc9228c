import logging
import os
from typing import Any, Dict, List, Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.middleware.base import BaseHTTPMiddleware

from cityapi.config import Settings
from cityapi.db import Database
from cityapi.errors import ServiceError
from cityapi.schemas import City, CityCreate, ErrorResponse, HealthStatus, OkResponse

logger = logging.getLogger(__name__)

ENDPOINTS = "GET /health, POST /init, POST /cities, GET /cities"

openapi_tags = [
    {"name": "Health", "description": "Service health checks."},
    {"name": "Schema", "description": "Table initialization."},
    {"name": "Cities", "description": "Insert and list cities."},
]

router = APIRouter()


# PUBLIC_INTERFACE
def get_db(request: Request) -> Database:
    """Dependency returning the Database created by the application factory."""
    return request.app.state.db


def _error_body(message: str) -> Dict[str, Any]:
    return {"ok": False, "error": message}


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p != "body"]
        parts.append(f"{'.'.join(loc) or 'body'}: {err.get('msg', 'invalid')}")
    return "; ".join(parts) or "invalid request"


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=_error_body(str(exc)))


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    message = _format_validation_errors(exc)
    logger.info("%s %s rejected: %s", request.method, request.url.path, message)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_body(message))


async def _catch_unhandled_errors(request: Request, call_next) -> Response:
    # Registered before CORSMiddleware so crash responses still carry CORS headers.
    try:
        return await call_next(request)
    except Exception as exc:
        logger.exception("%s %s crashed", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(str(exc) or exc.__class__.__name__),
        )


@router.get("/health", response_model=HealthStatus, tags=["Health"], summary="Health check")
def health_check() -> Dict[str, str]:
    """Liveness check. Never touches the database."""
    return {"status": "OK"}


@router.post(
    "/init",
    response_model=OkResponse,
    response_model_exclude_none=True,
    responses={500: {"model": ErrorResponse}},
    tags=["Schema"],
    summary="Create the cities table",
)
def init_table(db: Database = Depends(get_db)) -> OkResponse:
    """Create the cities table if it does not exist yet. Safe to call repeatedly."""
    db.execute(
        """
        CREATE TABLE IF NOT EXISTS cities(
          id SERIAL PRIMARY KEY,
          name TEXT NOT NULL,
          country TEXT NOT NULL,
          created_at TIMESTAMPTZ DEFAULT NOW()
        )
        """
    )
    return OkResponse(ok=True, msg="table ready")


@router.post(
    "/cities",
    response_model=OkResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Cities"],
    summary="Insert a city",
)
def create_city(payload: CityCreate, db: Database = Depends(get_db)) -> OkResponse:
    """Insert one row; id and created_at are assigned by PostgreSQL."""
    db.execute("INSERT INTO cities (name, country) VALUES (%s, %s)", [payload.name, payload.country])
    return OkResponse(ok=True)


@router.get(
    "/cities",
    response_model=List[City],
    responses={500: {"model": ErrorResponse}},
    tags=["Cities"],
    summary="List cities",
)
def list_cities(db: Database = Depends(get_db)) -> List[Dict[str, Any]]:
    """List all cities, newest id first."""
    return db.fetch_all("SELECT id, name, country, created_at FROM cities ORDER BY id DESC")


# PUBLIC_INTERFACE
def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Settings are resolved once here and shared through app.state; handlers get
    the Database via the get_db dependency. Nothing connects to PostgreSQL until
    a request needs it.
    """
    settings = settings or Settings.from_env()

    app = FastAPI(
        title="City API",
        description=(
            "Minimal JSON API storing cities in a single PostgreSQL table.\n\n"
            "Call `POST /init` once to create the table."
        ),
        version="1.0.0",
        openapi_tags=openapi_tags,
    )
    app.state.settings = settings
    app.state.db = db if db is not None else Database(settings)

    app.add_middleware(BaseHTTPMiddleware, dispatch=_catch_unhandled_errors)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allow_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    app.include_router(router)

    # Mounted last so API routes always take precedence over files.
    if settings.static_dir and os.path.isdir(settings.static_dir):
        app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")
        logger.info("Serving static files from %s", settings.static_dir)

    return app


# .env is loaded before the module-level app reads the environment, so both
# `uvicorn cityapi.main:app` and the `cityapi` script see it.
load_dotenv(override=False)

app = create_app()


# PUBLIC_INTERFACE
def run() -> None:
    """Console entrypoint: configure logging and serve the module-level app with uvicorn."""
    settings = app.state.settings

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting server on port %s", settings.port)
    logger.info("Endpoints: %s", ENDPOINTS)

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
