"""Shopping FastAPI application.

Serves the cart and coupon endpoints. Commands run synchronously inside
the request.

Usage:
    uvicorn shopping.app:app --host 0.0.0.0 --port 8000 --reload
"""

import os
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from shopping.api import cart_router, coupon_router
from shopping.domain import shopping
from shopping.utils.db import configure_database, setup_db
from shopping.utils.logging import configure_logging, get_environment

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    configure_database(shopping)
    shopping.init()
    setup_db(shopping)
    logger.info("shopping_api_started", environment=get_environment())
    yield


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Shopping API",
    description="Carts, coupons and payment summaries",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the shopping domain context for each request."""
    with shopping.domain_context():
        return await call_next(request)


app.include_router(cart_router)
app.include_router(coupon_router)
register_exception_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": shopping.name, "environment": get_environment()})


def main() -> None:
    uvicorn.run(
        "shopping.app:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
