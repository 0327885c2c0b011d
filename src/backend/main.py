import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.backend.api.v1.routes_analysis import router as analysis_router_v1
from src.backend.api.v1.routes_auth import router as auth_router_v1
from src.backend.api.v1.routes_system import router as system_router_v1
from src.backend.config import settings
from src.backend.domain.errors import AppError, InternalError, ValidationError
from src.backend.infra.db.bootstrap import init_sql_repositories

logger = logging.getLogger(__name__)

app = FastAPI(title="Sales Coach API")


@app.on_event("startup")
async def on_startup() -> None:
    """Application startup hook.

    When USE_SQL_REPOS is enabled and a DATABASE_URL is configured, accounts
    are stored in the SQL database. Otherwise (tests, local dev) the
    in-memory account store remains active.
    """

    if settings.uses_insecure_jwt_secret:
        logger.warning("JWT_SECRET is not set; session tokens are signed with an insecure default key")
    init_sql_repositories()


# CORS configuration. Tighten via CORS_ALLOW_ORIGINS in production deployments.
allow_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


def _error_response(exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "code": exc.code},
        headers=exc.headers,
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.code)
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed bodies (wrong types, invalid JSON) get the same 400 shape as
    # service-level validation failures.
    fields = sorted({".".join(str(part) for part in err.get("loc", ())[1:]) for err in exc.errors()} - {""})
    message = f"Invalid request body: {', '.join(fields)}." if fields else "Invalid request body."
    return _error_response(ValidationError(message))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(InternalError())


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    """Basic liveness check for the API root."""
    return {"status": "ok"}


# Versioned API routers
app.include_router(system_router_v1, prefix="/api/v1")
app.include_router(auth_router_v1, prefix="/api/v1")
app.include_router(analysis_router_v1, prefix="/api/v1")
