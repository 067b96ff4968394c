import logging
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import API_PREFIX
from .dependencies import event_channel
from .exceptions import REQUEST_ERROR_CODES, DomainException, ProblemDetail
from .routers import players, streams, tournaments
from .utils.sentry import init_sentry

logger = logging.getLogger(__name__)

init_sentry()

app = FastAPI(
    title="Court Rounds API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Every tournament transition is relayed to websocket listeners via Redis.
event_channel.subscribe(streams.forward_event)

logger.info("Serving court rounds API under %s/v0", API_PREFIX)


def _problem_response(
    problem: ProblemDetail, headers: Optional[dict[str, str]] = None
) -> JSONResponse:
    return JSONResponse(
        status_code=problem.status,
        content=problem.model_dump(),
        media_type="application/problem+json",
        headers=headers,
    )


# -----------------------------------------------------------------------------
# Error handling
# -----------------------------------------------------------------------------
@app.exception_handler(DomainException)
async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Domain error on %s: %s", request.url.path, exc.detail)
    problem = exc.to_problem()
    problem.instance = request.url.path
    # A retryable conflict can be re-submitted immediately after a fresh read.
    headers = {"Retry-After": "0"} if exc.retryable else None
    return _problem_response(problem, headers)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _problem_response(
        ProblemDetail(
            title=detail,
            detail=detail,
            status=exc.status_code,
            instance=request.url.path,
            code=f"http_{exc.status_code}",
        )
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    first = errors[0].get("type", "") if errors else ""
    code = first if first in REQUEST_ERROR_CODES else "validation_error"
    detail = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in errors
    )
    return _problem_response(
        ProblemDetail(
            title="Validation error",
            detail=detail or None,
            status=422,
            instance=request.url.path,
            code=code,
        )
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception", exc_info=(type(exc), exc, exc.__traceback__))
    return _problem_response(
        ProblemDetail(
            title="Internal Server Error",
            status=500,
            detail=str(exc),
            code="internal_server_error",
        )
    )


# -----------------------------------------------------------------------------
# Routers
# -----------------------------------------------------------------------------
@app.get("/healthz", tags=["health"])  # Unprefixed for reverse proxy / uptime checks
def root_healthz():
    return {"status": "ok"}


api_router = APIRouter(prefix=API_PREFIX, tags=["meta"])


@api_router.get("/healthz", tags=["health"])
def api_healthz():
    return {"status": "ok"}


v0_router = APIRouter(prefix="/v0")
for module in (players, tournaments, streams):
    v0_router.include_router(module.router)

api_router.include_router(v0_router)
app.include_router(api_router)
