"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config.settings import settings
from src.rz_account.api.router import router as account_router
from src.rz_cashout.api.router import router as cashout_router
from src.rz_common.database import engine
from src.rz_common.errors import AppError
from src.rz_common.events import close_event_bus, event_bus
from src.rz_common.response import error_response
from src.rz_exchange.api.router import router as exchange_router
from src.rz_fast.api.router import router as fast_router
from src.rz_gateway.middleware.request_log import RequestLogMiddleware, request_id_of
from src.rz_market.api.router import router as market_router
from src.rz_reconciliation.api.router import router as reconciliation_router

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB + Redis connections. Shutdown: dispose."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    await event_bus().ping()
    yield
    await engine.dispose()
    await close_event_bus()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(exc.code, exc.message)
    resp.request_id = request_id_of(request) or resp.request_id
    return JSONResponse(
        status_code=exc.http_status,
        content=resp.model_dump(),
    )


app.include_router(account_router, prefix="/api/v1")
app.include_router(market_router, prefix="/api/v1")
app.include_router(cashout_router, prefix="/api/v1")
app.include_router(exchange_router, prefix="/api/v1")
app.include_router(fast_router, prefix="/api/v1")
app.include_router(reconciliation_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
