import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: launch the outbox relay
    from app.services.notifications.relay import start_relay, stop_relay

    if settings.OUTBOX_RELAY_ENABLED:
        start_relay()
    yield
    # Shutdown: stop the outbox relay
    stop_relay()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _validation_detail(errors) -> str:
    parts = []
    for error in errors:
        field = ".".join(str(p) for p in error.get("loc", ()) if p not in ("body", "query", "path"))
        parts.append(f"{field}: {error['msg']}" if field else error["msg"])
    return "; ".join(parts) or "Validation failed"


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Malformed bodies and missing fields answer like any other ValidationError
    return JSONResponse(status_code=400, content={"detail": _validation_detail(exc.errors())})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    # Details stay in the log, never in the response
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ── Routers ───────────────────────────────────────────────────────────────────
from app.api.v1.auth import router as auth_router  # noqa: E402
from app.api.v1.organizations import router as org_router  # noqa: E402
from app.api.v1.invitations import router as invitations_router  # noqa: E402
from app.api.v1.teams import router as teams_router  # noqa: E402
from app.api.v1.leave_types import router as leave_types_router  # noqa: E402
from app.api.v1.leave import router as leave_router  # noqa: E402
from app.api.v1.jobs import router as jobs_router  # noqa: E402
from app.api.v1.outbox import router as outbox_router  # noqa: E402

app.include_router(auth_router, prefix="/api/v1")
app.include_router(org_router, prefix="/api/v1")
app.include_router(invitations_router, prefix="/api/v1")
app.include_router(teams_router, prefix="/api/v1")
app.include_router(leave_types_router, prefix="/api/v1")
app.include_router(leave_router, prefix="/api/v1")
app.include_router(jobs_router, prefix="/api/v1")
app.include_router(outbox_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": settings.APP_NAME}
