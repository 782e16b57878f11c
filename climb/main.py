import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

load_dotenv()

from climb.api import agent, health, telemetry
from climb.core.config import settings, validate_config
from climb.core.database import create_all_tables, dispose_engine, get_database_url
from climb.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from climb.core.logging import configure_logging
from climb.core.middleware.request_id import RequestIdMiddleware
from climb.core.ratelimit import BucketStore, FixedWindowLimiter, now_ms
from climb.features.ai.llm import CompletionClient
from climb.features.billing.service import (
    DatabasePlanStore,
    InMemoryPlanStore,
    PlanStore,
    shutdown_lookup_executor,
)
from climb.features.usage.service import AIUsageMeter

configure_logging(settings.ENV)
validate_config(strict=settings.CONFIG_STRICT)

logger = logging.getLogger("climb")


def _default_plan_store() -> PlanStore:
    if get_database_url():
        return DatabasePlanStore()
    logger.warning("DATABASE_URL not set; every user resolves to the free plan")
    return InMemoryPlanStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Climb backend...")
    if isinstance(app.state.usage_meter.plan_store, DatabasePlanStore):
        create_all_tables()
    try:
        yield
    finally:
        shutdown_lookup_executor()
        dispose_engine()
        logger.info("Stopping Climb backend...")


def create_app(
    *,
    plan_store: Optional[PlanStore] = None,
    completion_client: Optional[CompletionClient] = None,
    time_fn: Callable[[], int] = now_ms,
) -> FastAPI:
    """Build the API with its own limiter tables, plan store and LLM client."""
    application = FastAPI(title="Climb - Backend", lifespan=lifespan)

    application.state.request_guard = FixedWindowLimiter(BucketStore(), time_fn=time_fn)
    application.state.usage_meter = AIUsageMeter(
        plan_store if plan_store is not None else _default_plan_store(),
        store=BucketStore(),
        time_fn=time_fn,
        sweep_threshold=settings.AI_USAGE_SWEEP_THRESHOLD,
        billing_timeout=settings.BILLING_LOOKUP_TIMEOUT_SECONDS,
    )
    application.state.completion_client = completion_client or CompletionClient()

    application.add_middleware(RequestIdMiddleware)

    application.add_exception_handler(AppError, app_error_handler)
    application.add_exception_handler(HTTPException, http_error_handler)
    application.add_exception_handler(RequestValidationError, request_validation_handler)
    application.add_exception_handler(Exception, unhandled_exception_handler)

    application.include_router(health.router)
    application.include_router(agent.router)
    application.include_router(telemetry.router)
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("climb.main:app", host="0.0.0.0", port=8000, reload=False)
