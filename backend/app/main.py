import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.responses import build_meta
from app.api.router import api_router
from app.auth.policy import PolicyCache
from app.config import settings
from app.database import async_session_factory
from app.errors import VerificationError
from app.middleware.logging import RequestLoggingMiddleware
from app.notifications.queue import build_notification_queue
from app.schemas.common import ErrorBody, ErrorResponse
from app.webhooks.dispatcher import WebhookDispatcher
from app.webhooks.service import WebhookService

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Initialize Sentry if DSN is configured
    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.environment,
            )
            logger.info("Sentry initialized (env=%s)", settings.environment)
        except Exception as e:
            logger.warning("Failed to initialize Sentry: %s", e)

    dispatcher = WebhookDispatcher(WebhookService(settings), async_session_factory)
    queue = build_notification_queue(settings)
    app.state.webhook_dispatcher = dispatcher
    app.state.notification_queue = queue
    app.state.policy_cache = PolicyCache(ttl_seconds=settings.policy_cache_ttl_seconds)

    logger.info("Starting verification service (env=%s)", settings.environment)
    yield
    logger.info("Shutting down verification service (%d webhook(s) in flight)", dispatcher.pending)
    await dispatcher.drain()
    if queue is not None:
        await queue.close()


app = FastAPI(
    title="Verification Case Service",
    description="Identity-verification case intake, document extraction and scoring, reviewer decisions and signed client webhooks",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)


def _error_response(request: Request, status_code: int, code: str, message: str, details=None) -> JSONResponse:
    body = ErrorResponse(
        error=ErrorBody(code=code, message=message, details=details),
        meta=build_meta(request),
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


@app.exception_handler(VerificationError)
async def verification_error_handler(request: Request, exc: VerificationError) -> JSONResponse:
    return _error_response(request, exc.status_code, exc.code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(p) for p in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return _error_response(request, 400, "VALIDATION_ERROR", "Invalid request", details)


app.include_router(api_router, prefix="/api")
