'''
Application factory: lifespan, CORS, exception handlers and routers.
'''
import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, TimeoutError as PoolTimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .database.engine import create_db_engine_and_session_factory, dispose_db_engine
from .common.config import settings
from .common.exceptions import InternalError, ServiceUnavailableError, TutorateError
from .common.logger import log
from .models.envelope import error_body
from .api import admin, applications, payments, tuitions, tutors, users

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "INVALID_TOKEN",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handles application startup and shutdown events.
    """
    # --- On App Startup ---
    log.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}...")
    create_db_engine_and_session_factory()

    yield # --- Application is now running ---

    # --- On App Shutdown ---
    if not settings.TEST_MODE:
        log.info("Application lifespan shutdown...")
        await dispose_db_engine()
    else:
        log.info("Skipping database engine disposal in TEST_MODE.")


def register_exception_handlers(app: FastAPI) -> None:
    """
    Every error leaves as the standard envelope { success: false, error, code }.
    Exception context and stack traces are logged, never returned.
    """

    @app.exception_handler(TutorateError)
    async def handle_tutorate_error(request: Request, exc: TutorateError):
        if isinstance(exc, InternalError):
            log.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message} | Context: {exc.context}")
            message = "An unexpected error occurred. Please try again later."
        else:
            if exc.status_code >= 500:
                log.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message} | Context: {exc.context}")
            message = exc.message
        return JSONResponse(status_code=exc.status_code, content=error_body(message, exc.code))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        """Malformed ids, missing identity parameter or an invalid body."""
        details = "; ".join(
            f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        )
        log.warning(f"Request validation failed on {request.method} {request.url.path}: {details}")
        return JSONResponse(status_code=400, content=error_body(details or "Validation failed.", "VALIDATION_ERROR"))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        code = HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
        return JSONResponse(status_code=exc.status_code, content=error_body(str(exc.detail), code), headers=exc.headers)

    async def handle_store_unavailable(request: Request, exc: Exception):
        """Pool timeouts and dropped connections are retriable."""
        log.error(f"Store unavailable on {request.method} {request.url.path}: {exc}")
        unavailable = ServiceUnavailableError(code="STORE_UNAVAILABLE")
        return JSONResponse(status_code=503, content=error_body(unavailable.message, unavailable.code))

    for exc_class in (PoolTimeoutError, OperationalError, InterfaceError, asyncio.TimeoutError):
        app.add_exception_handler(exc_class, handle_store_unavailable)

    @app.exception_handler(DBAPIError)
    async def handle_dbapi_error(request: Request, exc: DBAPIError):
        if exc.connection_invalidated:
            return await handle_store_unavailable(request, exc)
        log.error(f"Database error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content=error_body(InternalError.default_message, InternalError.default_code))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        log.error(f"Unexpected error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=error_body("An unexpected error occurred. Please try again later.", InternalError.default_code),
        )


# ---- CREATING THE APP ----
app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# --- Add CORS Middleware ---
origins = [
    "http://localhost",
    "http://localhost:3000",
    "http://localhost:5173",
]

# Extend with environment-specific origins
origins.extend(settings.BACKEND_CORS_ORIGINS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],)
# --- End of CORS Middleware ---

register_exception_handlers(app)


@app.get("/")
async def health_check():
    return {"success": True, "message": f"{settings.APP_NAME} is running"}

app.include_router(users.router)
app.include_router(tutors.router)
app.include_router(tuitions.router)
app.include_router(applications.router)
app.include_router(payments.router)
app.include_router(admin.router)
