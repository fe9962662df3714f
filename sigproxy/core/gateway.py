"""FastAPI app entry."""

from __future__ import annotations

import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from sigproxy.adapters.proxy.router import router as proxy_router
from sigproxy.adapters.proxy.upstream import close_upstream_async_client
from sigproxy.config.constants import BYPASS_SIGNATURE, PATCHED_MODEL_ID, UPSTREAM_BASE_URL
from sigproxy.config.settings import settings
from sigproxy.util.logger import logger

app = FastAPI(title=settings.app_name, docs_url=None, redoc_url=None, openapi_url=None)
app.include_router(proxy_router)


@app.middleware("http")
async def request_boundary_middleware(request: Request, call_next):
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as exc:  # pragma: no cover - fail-safe
        logger.exception("gateway unhandled exception method=%s path=%s", request.method, request.url.path)
        return JSONResponse(
            status_code=502,
            content={"error": "proxy_error", "details": f"gateway internal error: {exc}"},
        )
    logger.debug(
        "request done method=%s path=%s status=%s elapsed_ms=%.1f",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
    )
    return response


@app.on_event("startup")
async def startup_log() -> None:
    logger.info(
        "proxy ready upstream=%s patched_model=%s marker=%s",
        UPSTREAM_BASE_URL,
        PATCHED_MODEL_ID,
        BYPASS_SIGNATURE,
    )


@app.on_event("shutdown")
async def shutdown_cleanup() -> None:
    await close_upstream_async_client()
