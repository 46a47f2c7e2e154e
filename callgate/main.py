import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException

from callgate.core.config import settings, validate_config
from callgate.core.database import create_all_tables
from callgate.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from callgate.core.logging import configure_logging
from callgate.core.middleware.request_id import RequestIdMiddleware
from callgate.api import entitlements, health
from callgate.features.personalities.service import seed_personalities
from callgate.features.plans.service import validate_plan_configs
from callgate.features.subscriptions.service import list_subscribed_plan_ids

configure_logging(settings.ENV, settings.LOG_LEVEL)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("callgate")
    logger.info("Starting callgate...")
    create_all_tables()
    # A subscription on a plan without a duration cap is fatal, not a per-request error
    validate_plan_configs(required_plan_ids=list_subscribed_plan_ids())
    seed_personalities()
    try:
        yield
    finally:
        logger.info("Stopping callgate...")


app = FastAPI(title="callgate - entitlements", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.include_router(entitlements.router)
app.include_router(health.root_router)
