from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.adapters.api.controllers.detours import router as detours_router
from src.adapters.api.dependencies import build_monitor_service
from src.adapters.aws import env_bool
from src.adapters.settings import MonitorRuntimeConfig

logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Optionally run the detour monitor in-process alongside the API."""

    runtime = MonitorRuntimeConfig.from_env()
    if not runtime.monitor_enabled:
        yield
        return

    monitor = build_monitor_service(runtime)
    stop = asyncio.Event()
    task = asyncio.create_task(
        monitor.run_forever(poll_interval_s=runtime.poll_interval_s, stop=stop)
    )
    logger.info("Detour monitor started (every %.1fs)", runtime.poll_interval_s)
    try:
        yield
    finally:
        stop.set()
        await task


app = FastAPI(title="RouteWatch", lifespan=lifespan)
app.include_router(detours_router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return unhandled errors as JSON instead of Starlette's plain-text 500."""

    logger.exception("Unhandled exception", extra={"path": str(request.url.path)})

    reveal = env_bool("ROUTEWATCH_REVEAL_ERRORS")
    if reveal or isinstance(exc, (FileNotFoundError, ValueError)):
        detail = str(exc) or exc.__class__.__name__
    else:
        detail = "Internal Server Error"

    return JSONResponse(status_code=500, content={"detail": detail})


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
