"""FastAPI app for the DobleLabs video personalization service."""
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from src.api.routes import admin, billing, credits, generation, integrations, notifications, projects
from src.billing.stripe_checkout import PackageNotFoundError, StripeWebhookError
from src.config.env import load_env
from src.config.settings import AppConfig, ConfigError
from src.credits.ledger import CreditError, InsufficientCreditsError, NoActiveSubscriptionError
from src.crm.close import CloseError
from src.lipdub.client import LipDubError
from src.pipeline.generation import GenerationError
from src.storage.transfer import TransferError
from src.utils.logging import get_logger
from src.utils.polling import PollTimeoutError

load_env()

logger = get_logger(__name__)


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_error(_request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        details = [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors]
        return _error(400, message, details=details)

    @app.exception_handler(InsufficientCreditsError)
    async def insufficient_credits(_request: Request, exc: InsufficientCreditsError) -> JSONResponse:
        return _error(
            402,
            "INSUFFICIENT_CREDITS",
            credits_remaining=exc.remaining,
            credits_needed=exc.needed,
        )

    @app.exception_handler(NoActiveSubscriptionError)
    async def no_subscription(_request: Request, exc: NoActiveSubscriptionError) -> JSONResponse:
        return _error(404, "No active subscription found")

    @app.exception_handler(PackageNotFoundError)
    async def package_not_found(_request: Request, exc: PackageNotFoundError) -> JSONResponse:
        return _error(404, str(exc))

    @app.exception_handler(ConfigError)
    async def config_error(_request: Request, exc: ConfigError) -> JSONResponse:
        logger.error("Configuration error: %s", exc)
        return _error(500, str(exc))

    @app.exception_handler(ValueError)
    async def bad_request(_request: Request, exc: ValueError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(StripeWebhookError)
    async def webhook_error(_request: Request, exc: StripeWebhookError) -> JSONResponse:
        return _error(exc.status_code, str(exc))

    @app.exception_handler(TransferError)
    async def transfer_error(_request: Request, exc: TransferError) -> JSONResponse:
        logger.error("Transfer failed: %s", exc)
        extra = {"details": exc.details} if exc.details else {}
        return _error(exc.status_code, str(exc), **extra)

    @app.exception_handler(LipDubError)
    async def lipdub_error(_request: Request, exc: LipDubError) -> JSONResponse:
        logger.error("LipDub error: %s", exc)
        extra = {"details": exc.body} if exc.body else {}
        return _error(exc.status_code or 502, str(exc), **extra)

    @app.exception_handler(CloseError)
    async def close_error(_request: Request, exc: CloseError) -> JSONResponse:
        return _error(500, str(exc))

    @app.exception_handler(GenerationError)
    async def generation_error(_request: Request, exc: GenerationError) -> JSONResponse:
        return _error(500, str(exc), step=exc.step, refunded=exc.refunded)

    @app.exception_handler(PollTimeoutError)
    async def poll_timeout(_request: Request, exc: PollTimeoutError) -> JSONResponse:
        logger.warning("Polling timed out: %s", exc)
        return _error(504, str(exc))

    @app.exception_handler(CreditError)
    async def credit_error(_request: Request, exc: CreditError) -> JSONResponse:
        logger.error("Credit operation failed: %s", exc)
        return _error(500, str(exc))


def create_app(config: AppConfig | None = None) -> FastAPI:
    config = config or AppConfig.from_env()
    app = FastAPI(
        title="DobleLabs API",
        version="0.1.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    for module in (projects, credits, generation, billing, admin, integrations, notifications):
        app.include_router(module.router)
    return app


app = create_app()
