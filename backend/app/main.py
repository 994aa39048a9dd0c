import logging
import os

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import sentry_sdk
from slowapi.errors import RateLimitExceeded

from .routers import (
    auth,
    matches,
    roles,
    scoring,
    streams,
    tournaments,
)
from .exceptions import DomainException, PersistenceTimeout, ProblemDetail
from .config import API_PREFIX, PERSISTENCE_TIMEOUT_SECONDS, parse_allowed_origins
from .utils.sentry import init_sentry

logger = logging.getLogger(__name__)
SENTRY_DSN = os.getenv("SENTRY_DSN")

init_sentry()

# Fail fast on unsafe CORS settings or a weak signing secret.
ALLOWED_ORIGINS = parse_allowed_origins(os.getenv("ALLOWED_ORIGINS"))
ALLOW_CREDENTIALS = os.getenv("ALLOW_CREDENTIALS", "true").lower() == "true"
auth.get_jwt_secret()

app = FastAPI(
    title="SportsLink Live Scoring API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.state.limiter = auth.limiter
app.add_exception_handler(RateLimitExceeded, auth.rate_limit_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

logger.info("API_PREFIX=%r origins=%s", API_PREFIX, ", ".join(ALLOWED_ORIGINS))


def _problem_response(
    problem: ProblemDetail, headers: dict[str, str] | None = None
) -> JSONResponse:
    return JSONResponse(
        status_code=problem.status,
        content=problem.model_dump(),
        headers=headers,
        media_type="application/problem+json",
    )


@app.exception_handler(DomainException)
async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    headers = None
    if isinstance(exc, PersistenceTimeout):
        # Clients may retry once the store has had a full timeout window.
        headers = {"Retry-After": str(max(1, round(PERSISTENCE_TIMEOUT_SECONDS)))}
    problem = ProblemDetail(
        type=exc.type,
        title=exc.title,
        detail=exc.detail,
        status=exc.status_code,
        code=exc.code,
        instance=request.url.path,
    )
    return _problem_response(problem, headers)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    problem = ProblemDetail(
        title=detail,
        detail=detail,
        status=exc.status_code,
        code=getattr(exc, "code", f"http_{exc.status_code}"),
        instance=request.url.path,
    )
    return _problem_response(problem, getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception", exc_info=(type(exc), exc, exc.__traceback__))
    problem = ProblemDetail(
        title="Internal Server Error",
        status=500,
        detail=str(exc),
        code="internal_server_error",
        instance=request.url.path,
    )
    return _problem_response(problem)


@app.get("/healthz", tags=["health"])  # Unprefixed for reverse proxy / uptime checks
def root_healthz():
    return {"status": "ok"}


api_router = APIRouter(prefix=API_PREFIX, tags=["meta"])


@api_router.get("/healthz", tags=["health"])
def api_healthz():
    return {"status": "ok"}


@api_router.get("")
def api_root():
    return {"message": "SportsLink live scoring API. See /docs."}


@api_router.post("/sentry-test", tags=["health"])
def sentry_test_check():
    if not SENTRY_DSN:
        raise HTTPException(status_code=400, detail="Sentry is not configured (SENTRY_DSN missing)")

    event_id = sentry_sdk.capture_message("Sentry self-test trigger", level="info")
    return {"status": "sent", "eventId": str(event_id)}


v0_router = APIRouter(prefix="/v0")
for router_module in (auth, tournaments, matches, scoring, streams, roles):
    v0_router.include_router(router_module.router)

api_router.include_router(v0_router)
app.include_router(api_router)
