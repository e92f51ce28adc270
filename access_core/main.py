"""
FastAPI application entry point for the access core API.

Run with:
    uvicorn access_core.main:app
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from access_core.api.routes import access
from access_core.entitlements.guard import LookupFailurePolicy
from access_core.entitlements.loader import get_plans_config_loader

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting access core API")

    # Fail fast on a missing or malformed plans config
    loader = get_plans_config_loader()
    logger.info("Plans available: %s", loader.plan_ids)

    policy = LookupFailurePolicy.from_env()
    if policy == LookupFailurePolicy.FAIL_CLOSED:
        logger.warning("Subscription lookup failures will DENY access (fail-closed)")
    else:
        logger.info("Subscription lookup failures will allow access (fail-open)")

    yield

    logger.info("Shutting down access core API")


app = FastAPI(
    title="Access Core API",
    description="Subscription, entitlement and role/permission evaluation for multi-tenant access",
    version="1.0.0",
    lifespan=lifespan
)

cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(access.router)


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "access_core.main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "development"
    )
