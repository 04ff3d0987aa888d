"""
Module: billing_api.app
Responsibility: FastAPI application factory.  Wires the routers, binds
    request-scoped log context and translates kernel exceptions into
    ``{"kind", "code", "message"}`` JSON bodies.
Architecture position: Outer surface.  Imports the kernel; the kernel
    never imports from here.

Error mapping:
    BillingKernelError      -> its own ``status_code`` (400/404/409)
    IntegrityError          -> 409 CONFLICT (unique index backstop)
    RequestValidationError  -> 400 VALIDATION
    anything else           -> 500 INTERNAL (logged with traceback)
"""

from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from billing_api.routes import (
    documents_router,
    payments_router,
    periods_router,
    sequences_router,
    statements_router,
)
from billing_api.schemas import ErrorOut
from billing_kernel.config import BillingSettings, load_settings
from billing_kernel.db.engine import engine_initialized, init_engine
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.exceptions import BillingKernelError
from billing_kernel.logging_config import LogContext, get_logger

logger = get_logger("api")

CORRELATION_HEADER = "X-Correlation-Id"


def _error(status_code: int, kind: str, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorOut(kind=kind, code=code, message=message).model_dump(),
    )


def create_app(
    settings: BillingSettings | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    """
    Build the billing API.

    The engine is initialized from ``settings`` (or ``load_settings()``)
    unless one is already configured, which lets tests bind their own.
    """
    if not engine_initialized():
        init_engine(settings or load_settings())

    app = FastAPI(title="School Billing Ledger API", version="0.1.0")
    app.state.clock = clock or SystemClock()

    @app.middleware("http")
    async def bind_log_context(request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid4())
        with LogContext.bind(
            correlation_id=correlation_id,
            actor_id=request.headers.get("X-Actor-Id"),
        ):
            response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response

    @app.exception_handler(BillingKernelError)
    async def handle_kernel_error(request: Request, exc: BillingKernelError):
        logger.info(
            "request_rejected",
            extra={"path": request.url.path, "code": exc.code, "status": exc.status_code},
        )
        return _error(exc.status_code, exc.kind, exc.code, str(exc))

    @app.exception_handler(IntegrityError)
    async def handle_integrity_error(request: Request, exc: IntegrityError):
        logger.warning(
            "integrity_conflict",
            extra={"path": request.url.path, "error": type(exc.orig).__name__},
        )
        return _error(409, "CONFLICT", "INTEGRITY_CONFLICT", "Conflicting write rejected by the database")

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = "; ".join(
            f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
            for err in errors
        )
        return _error(400, "VALIDATION", "INVALID_REQUEST", message or "Invalid request")

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("unhandled_error", extra={"path": request.url.path})
        return _error(500, "INTERNAL", "INTERNAL_ERROR", "Internal server error")

    @app.get("/health")
    def health_check():
        return {"status": "ok"}

    app.include_router(periods_router)
    app.include_router(sequences_router)
    app.include_router(documents_router)
    app.include_router(payments_router)
    app.include_router(statements_router)

    return app
