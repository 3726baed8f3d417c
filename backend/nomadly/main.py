import logging
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
import structlog
from prometheus_fastapi_instrumentator import Instrumentator

from nomadly.api import auth, itinerary, pois, trips
from nomadly.api.deps import limiter
from nomadly.core.errors import SchedulingError
from nomadly.core.scheduling.producer import HeuristicPlanProducer
from nomadly.core.settings import Settings
from nomadly.db.session import database_health_check, db_manager, init_db
from nomadly.middleware.logging import RequestLoggingMiddleware

settings = Settings()

SENSITIVE_KEYS = {"password", "password_hash", "access_token", "authorization", "jwt_secret"}

_BEARER_RE = re.compile(r'(Bearer\s+)[A-Za-z0-9\-_\.=]+', re.IGNORECASE)
_JWT_RE = re.compile(r'eyJ[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+')


# Redaction processor to scrub credentials from any value in the event dict
def redact_secrets(logger, method_name, event_dict):
    def scrub(v):
        if isinstance(v, str):
            v = _BEARER_RE.sub(r'\1REDACTED', v)
            v = _JWT_RE.sub('REDACTED', v)
            return v
        if isinstance(v, list):
            return [scrub(x) for x in v]
        if isinstance(v, dict):
            return {k: "REDACTED" if str(k).lower() in SENSITIVE_KEYS else scrub(vv) for k, vv in v.items()}
        return v

    for k, v in list(event_dict.items()):
        event_dict[k] = "REDACTED" if str(k).lower() in SENSITIVE_KEYS else scrub(v)
    return event_dict


# Configure structured logging with JSON output
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Standard library logging to console, plus a file when LOG_FILE is set
handlers = [logging.StreamHandler()]
if settings.LOG_FILE:
    handlers.append(logging.FileHandler(settings.LOG_FILE))
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(message)s',  # structlog handles formatting
    handlers=handlers,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application...")
    try:
        await init_db()
    except Exception:
        logger.exception("Failed to initialize database manager")
        raise

    yield

    logger.info("Shutting down application...")
    try:
        await db_manager.close()
    except Exception as e:
        logger.error("database_cleanup_failed", error=str(e))


app = FastAPI(
    title="Nomadly API",
    description="Trip day scheduling with conflict-free agendas",
    version="1.0.0",
    lifespan=lifespan
)

app.state.limiter = limiter
app.state.plan_producer = HeuristicPlanProducer()
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize Prometheus metrics instrumentation
Instrumentator().instrument(app).expose(app, endpoint="/metrics")


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    logger.warning(
        "scheduling_error",
        error_type=type(exc).__name__,
        detail=exc.message,
        field=exc.field,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


@app.get("/")
def root():
    return {"status": "API active", "version": "1.0.0"}


@app.get("/health")
async def health_check_detailed():
    """Database connectivity plus pool counters"""
    db_health = await database_health_check()
    db_status = db_health.get("status", "unhealthy")
    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "version": "1.0.0",
        "components": {
            "database": db_status,
            "api": "healthy"
        },
        "connections": db_manager.get_connection_stats(),
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


prefix = "/api/v1"

app.include_router(auth.router, prefix=prefix)
app.include_router(trips.router, prefix=prefix)
app.include_router(itinerary.router, prefix=prefix)
app.include_router(pois.router, prefix=prefix)
