"""
FastAPI application and API routes for Calc Service.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from calc_service import __version__
from calc_service.config import EvaluationMode, Settings, get_settings
from calc_service.errors import RecordNotFoundError, StoreError
from calc_service.logging_config import configure_logging
from calc_service.models import CalculateRequest, CalculationRecord, ExpressionEnvelope, ExpressionList
from calc_service.service import CalculationService
from calc_service.store import create_store
from calc_service.workers import EvaluationWorkerPool

logger = structlog.get_logger()

router = APIRouter()


def get_service(request: Request) -> CalculationService:
    """Get the calculation service for dependency injection."""
    return request.app.state.service


# =============================================================================
# Calculations API
# =============================================================================

@router.post("/calculate", response_model=CalculationRecord, status_code=201)
async def calculate(
    body: CalculateRequest,
    service: CalculationService = Depends(get_service),
):
    """Submit an expression; failures to evaluate are reported on the record."""
    return await service.submit(body.expression)


@router.get("/expressions", response_model=ExpressionList)
async def list_expressions(service: CalculationService = Depends(get_service)):
    """List every submitted expression, oldest first."""
    return ExpressionList(expressions=await service.list())


@router.get("/expressions/{record_id}", response_model=ExpressionEnvelope)
async def get_expression(
    record_id: int,
    service: CalculationService = Depends(get_service),
):
    """Get a single submitted expression."""
    return ExpressionEnvelope(expression=await service.get(record_id))


# =============================================================================
# Error Handlers
# =============================================================================

async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "invalid_request", "detail": jsonable_encoder(exc.errors())},
    )


async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    if isinstance(exc, RecordNotFoundError):
        return JSONResponse(status_code=404, content={"error": "not_found"})
    logger.error("Unhandled store error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"error": "internal_error"})


# =============================================================================
# Application Factory
# =============================================================================

def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application for the given settings."""
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        # Startup
        store = create_store(settings)
        await store.init()

        pool = None
        if settings.evaluation_mode is EvaluationMode.ASYNC:
            pool = EvaluationWorkerPool(
                store,
                workers=settings.workers,
                operation_delays_ms=settings.operation_delays_ms,
                max_depth=settings.max_nesting_depth,
                max_length=settings.max_expression_length,
                monitor_interval_seconds=settings.monitor_interval_seconds,
            )
            await pool.start()

        app.state.store = store
        app.state.pool = pool
        app.state.service = CalculationService(store, settings, pool=pool)
        logger.info(
            "Calc Service started",
            store=settings.store_backend,
            mode=settings.evaluation_mode.value,
        )
        yield
        # Shutdown
        if pool is not None:
            await pool.stop()
        await store.close()

    app = FastAPI(
        title=settings.app_name,
        description="Arithmetic expression evaluation with submission history",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )

    # CORS middleware for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StoreError, store_error_handler)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
