"""FastAPI application entry point"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from prometheus_fastapi_instrumentator import Instrumentator

from policy_service.api import health, policies
from policy_service.config import settings
from policy_service.core.validation import format_errors
from policy_service.database import Database
from policy_service.services.events import EventPublisher
from policy_service.utils.logger import logger, setup_logging

# Setup logging
setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler; owns the database and event publisher"""
    # Startup
    database = Database(
        settings.DATABASE_URL,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_timeout=settings.DATABASE_POOL_TIMEOUT,
        pool_recycle=settings.DATABASE_POOL_RECYCLE,
    )
    if settings.DATABASE_AUTO_CREATE:
        database.create_all()
    events = EventPublisher.from_settings(settings)

    app.state.database = database
    app.state.events = events

    logger.info("Policy service starting up", extra={"action": "startup"})
    yield
    # Shutdown
    logger.info("Policy service shutting down", extra={"action": "shutdown"})
    events.shutdown()
    database.dispose()


# Create FastAPI app
app = FastAPI(
    title="Policy Service",
    description="Access-control policy storage with rule-to-principal assignment resolution",
    version=health.SERVICE_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# ===== Middleware Setup =====

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Monitoring middleware
if settings.METRICS_ENABLED:
    from policy_service.middleware.monitoring import MonitoringMiddleware
    app.add_middleware(MonitoringMiddleware)

    # Prometheus metrics
    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics", "/health", "/health/ready", "/health/live"],
        inprogress_name="policy_service_requests_inprogress",
        inprogress_labels=True
    )
    instrumentator.instrument(app)
    instrumentator.expose(app, endpoint=settings.METRICS_PATH, include_in_schema=False)

# Rate limiting
if settings.RATE_LIMIT_ENABLED:
    from slowapi.middleware import SlowAPIMiddleware
    from policy_service.middleware.rate_limit import limiter
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        """Handle rate limit exceeded errors"""
        logger.warning(
            "Rate limit exceeded",
            extra={"action": f"{request.method} {request.url.path}"}
        )
        return JSONResponse(
            status_code=429,
            content={
                "success": False,
                "message": "Too many requests. Please try again later.",
                "error": str(exc.detail)
            }
        )

# ===== Route Setup =====

app.include_router(health.router)
app.include_router(policies.router)


@app.get("/")
def root():
    """Root endpoint"""
    return {
        "service": "policy-service",
        "version": health.SERVICE_VERSION,
        "status": "operational",
        "docs": "/docs",
        "health": "/health",
        "endpoints": policies.AVAILABLE_ENDPOINTS,
        "metrics": settings.METRICS_PATH if settings.METRICS_ENABLED else None
    }


# ===== Error Handlers =====

@app.exception_handler(404)
async def not_found_handler(request: Request, exc: Exception):
    """Unknown routes list what is available"""
    return JSONResponse(
        status_code=404,
        content={
            "success": False,
            "message": f"Route {request.method} {request.url.path} not found",
            "availableEndpoints": policies.AVAILABLE_ENDPOINTS
        }
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Unparseable bodies get the same shape as policy validation failures"""
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "message": "Validation failed",
            "errors": format_errors(exc.errors())
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for uncaught errors"""
    logger.error(
        f"Unhandled exception: {str(exc)}",
        extra={"action": f"{request.method} {request.url.path}"},
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "Internal server error",
            "error": str(exc)
        }
    )


def run():
    """Serve the application with uvicorn"""
    import uvicorn

    uvicorn.run("policy_service.main:app", host=settings.HOST, port=settings.PORT, log_config=None)


if __name__ == "__main__":
    run()
