"""
FastAPI front end for the first-buyers pipeline.

    GET /health                                 uptime + breaker states
    GET /first-buyers?address=<ADDR>&limit=<N>  ranked buyers, bundle split

Requests to ``/first-buyers`` are rate limited per client IP (slowapi).
Fatal analysis conditions map to 400 / 404 / 502; anything unexpected is
logged with its traceback and returned as a bare 500.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from config import (
    ANALYSIS_TIMEOUT_SECONDS,
    API_HOST,
    API_PORT,
    CORS_ORIGINS,
    DEFAULT_BUYER_LIMIT,
    ETHEREUM_RPC_URL,
    RATE_LIMIT_ANALYZE,
    SENTRY_DSN,
    SENTRY_ENVIRONMENT,
    SENTRY_TRACES_SAMPLE_RATE,
)
from .analyzer import analyze_first_buyers
from .data_sources._clients import build_data_sources
from .exceptions import (
    AnalysisError,
    InvalidAddressError,
    NoBuyersError,
    NoTransactionsError,
    TransferLogUnavailableError,
)
from .logging_config import generate_request_id, request_id_ctx, setup_logging
from .models import ClassificationResult
from .utils import is_eth_address

setup_logging()
logger = logging.getLogger(__name__)

_ERROR_STATUS: dict[type[AnalysisError], int] = {
    InvalidAddressError: 400,
    NoTransactionsError: 404,
    NoBuyersError: 404,
    TransferLogUnavailableError: 502,
}


def _skip_client_errors(event, hint):
    """Sentry ``before_send``: HTTP 4xx raised by handlers is not an incident."""
    exc = (hint.get("exc_info") or (None, None, None))[1]
    if isinstance(exc, HTTPException) and (exc.status_code or 500) < 500:
        return None
    return event


if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=SENTRY_ENVIRONMENT,
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        send_default_pii=False,
        before_send=_skip_client_errors,
    )
    logger.info("Error tracking on, Sentry environment %s", SENTRY_ENVIRONMENT)
else:
    logger.info("No SENTRY_DSN, error tracking off")

_started_at = time.monotonic()
limiter = Limiter(key_func=get_remote_address)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Build the data sources on startup, close them on shutdown."""
    if not ETHEREUM_RPC_URL or not ETHEREUM_RPC_URL.startswith("http"):
        logger.error("ETHEREUM_RPC_URL is not a valid URL: %s", ETHEREUM_RPC_URL)
        raise RuntimeError("ETHEREUM_RPC_URL must be an http(s) URL")

    application.state.sources = build_data_sources()
    logger.info("Data sources ready (rpc=%s)", ETHEREUM_RPC_URL.split("?")[0])
    try:
        yield
    finally:
        await application.state.sources.aclose()
        logger.info("Data sources closed")


app = FastAPI(
    title="First Buyers Agent API",
    description="First buyers of an ERC-20 token, split into launch bundle and snipers.",
    version="1.0.0",
    lifespan=lifespan,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["Content-Type", "Accept"],
)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request's log lines with an id, echoed as ``X-Request-ID``."""

    async def dispatch(self, request: Request, call_next):
        request_id = generate_request_id()
        ctx_token = request_id_ctx.set(request_id)
        t0 = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "%s %s %d in %.0f ms",
                request.method, request.url.path, response.status_code,
                (time.perf_counter() - t0) * 1000,
            )
            return response
        finally:
            request_id_ctx.reset(ctx_token)


app.add_middleware(RequestIdMiddleware)


@app.get("/", include_in_schema=False)
async def root():
    return RedirectResponse(url="/docs")


@app.get("/health", tags=["system"])
async def health(request: Request) -> dict:
    """Uptime and per-service circuit breaker status."""
    sources = getattr(request.app.state, "sources", None)
    return {
        "status": "ok",
        "uptime_seconds": round(time.monotonic() - _started_at, 1),
        "circuit_breakers": sources.health() if sources is not None else {},
    }


@app.get("/first-buyers", response_model=ClassificationResult, tags=["analysis"])
@limiter.limit(RATE_LIMIT_ANALYZE)
async def get_first_buyers(
    request: Request,
    address: str = Query(..., description="ERC-20 contract address (0x + 40 hex)"),
    limit: int = Query(DEFAULT_BUYER_LIMIT, description="Buyers to return (clamped to 1..MAX_BUYER_LIMIT)"),
) -> ClassificationResult:
    """Return the first buyers of *address* with the bundle / sniper split."""
    if not is_eth_address(address):
        raise HTTPException(
            status_code=400,
            detail="Invalid contract address. Expected 0x followed by 40 hex characters.",
        )
    try:
        return await asyncio.wait_for(
            analyze_first_buyers(address, limit, sources=request.app.state.sources),
            timeout=ANALYSIS_TIMEOUT_SECONDS,
        )
    except AnalysisError as exc:
        status = _ERROR_STATUS.get(type(exc), 500)
        raise HTTPException(status_code=status, detail=exc.user_message) from exc
    except asyncio.TimeoutError:
        raise HTTPException(
            status_code=504,
            detail=f"Analysis timed out after {ANALYSIS_TIMEOUT_SECONDS}s. Try again.",
        )
    except Exception as exc:
        logger.exception("Unexpected failure analysing %s", address)
        raise HTTPException(status_code=500, detail="Internal server error") from exc


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=API_HOST, port=API_PORT)
