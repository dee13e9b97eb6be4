from fastapi import FastAPI, Depends, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import structlog

from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from fxengine.config import settings
from fxengine.database import init_db, close_db, get_db
from fxengine.logging_config import setup_logging
from fxengine.middleware.correlation import CorrelationIdMiddleware
from fxengine.middleware.rate_limit import rate_limit_middleware
from fxengine.services.cache import cache
from fxengine.services.rate_limiter import build_rate_limiter

# Import models so they are registered with Base.metadata
import fxengine.models  # noqa: F401

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("starting_fxengine", env=settings.ENVIRONMENT)
    await init_db()
    app.state.rate_limiter = build_rate_limiter()
    yield
    await cache.aclose()
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Global exception handlers normalize all errors to the structured format
# {"error": {"code": "...", "message": "..."}}
# Registered on the Starlette base class so router 404/405 are covered too.
# ---------------------------------------------------------------------------

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, str):
        detail = {"error": {"code": "HTTP_ERROR", "message": detail}}
    elif isinstance(detail, dict) and "error" not in detail:
        detail = {"error": detail}
    return JSONResponse(status_code=exc.status_code, content=detail, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": jsonable_errors(exc),
            }
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # pydantic puts the raw exception object in ctx; keep it printable
    errors = []
    for err in exc.errors():
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        errors.append(err)
    return errors


app.middleware("http")(rate_limit_middleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "X-Request-ID"],
)


@app.get("/health", tags=["System"])
async def health(response: Response, db: AsyncSession = Depends(get_db)):
    health_status = {"status": "healthy", "version": settings.APP_VERSION, "checks": {}}

    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["db"] = "ok"
    except Exception as e:
        logger.error("health_check_db_failed", error=str(e))
        health_status["checks"]["db"] = "error"
        health_status["status"] = "unhealthy"

    if cache.configured:
        try:
            await cache.ping()
            health_status["checks"]["redis"] = "ok"
        except Exception as e:
            logger.error("health_check_redis_failed", error=str(e))
            health_status["checks"]["redis"] = "error"
            health_status["status"] = "unhealthy"

    if health_status["status"] == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return health_status


# --- Routers ---
from fxengine.routes.exchange_rates import router as exchange_rates_router  # noqa: E402
from fxengine.routes.favorites import router as favorites_router  # noqa: E402
from fxengine.routes.aggregation import router as aggregation_router  # noqa: E402
from fxengine.jobs.scheduled import router as jobs_router  # noqa: E402

app.include_router(exchange_rates_router, prefix="/api/v1/exchange-rates", tags=["Exchange Rates"])
app.include_router(favorites_router, prefix="/api/v1/favorites", tags=["Favorites"])
app.include_router(aggregation_router, prefix="/api/v1/aggregate", tags=["Aggregation"])
app.include_router(jobs_router, prefix="/internal/jobs", tags=["Internal Jobs"])
