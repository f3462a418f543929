"""FastAPI server for the newsletter: subscriptions, health and the run trigger."""

from __future__ import annotations

import hmac
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from fastapi import Body, Depends, FastAPI, Header, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from ai_newsletter.config.settings import Settings, get_settings
from ai_newsletter.models.errors import ConfigurationError, NewsletterError
from ai_newsletter.services.plunk_client import PlunkClient
from ai_newsletter.services.subscriptions import InvalidEmail, SubscriptionService
from ai_newsletter.tools.lock import RunInProgress, RunLock
from ai_newsletter.workflows.run_newsletter import REQUIRED_KEYS, NewsletterPipeline, build_pipeline

logger = logging.getLogger(__name__)


class SubscribeRequest(BaseModel):
    email: str | None = None


class TriggerRequest(BaseModel):
    recipient: str | None = None
    broadcast: bool | None = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------
# Dependencies
# ---------------------------

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_pipeline_factory(settings: Settings = Depends(get_app_settings)) -> Callable[[], NewsletterPipeline]:
    # built only after the caller is authorized
    return lambda: build_pipeline(settings)


def get_subscriptions(settings: Settings = Depends(get_app_settings)) -> SubscriptionService:
    return SubscriptionService(PlunkClient(settings), settings)


def _extract_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    parts = authorization.split(None, 1)
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1].strip()
    return None


def _authorized(settings: Settings, authorization: str | None) -> bool:
    token = _extract_bearer(authorization)
    if not token:
        return False
    # compare against every secret so timing doesn't reveal which one matched
    matched = False
    for secret in settings.trigger_secrets:
        if hmac.compare_digest(token.encode(), secret.encode()):
            matched = True
    return matched


# ---------------------------
# App
# ---------------------------

def create_app(settings: Settings | None = None) -> FastAPI:
    app = FastAPI(title="AI News Newsletter API")
    app.state.settings = settings or get_settings()

    # subscribe/confirm are called from the public landing page
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": "Invalid request format"},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
            return JSONResponse(
                status_code=exc.status_code,
                content={"success": False, "error": "Method not allowed."},
            )
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail})

    @app.get("/health")
    def health(settings: Settings = Depends(get_app_settings)) -> dict[str, Any]:
        """Process status plus which secrets are configured (never their values)."""
        return {
            "status": "healthy",
            "timestamp": _now(),
            "environment": settings.environment,
            "hasOpenAIKey": bool(settings.openai_api_key),
            "hasPlunkKey": bool(settings.plunk_api_key),
            "hasRecipientEmail": bool(settings.recipient_email),
            "hasCronSecret": bool(settings.cron_secret),
            "hasTriggerSecret": bool(settings.trigger_secret),
            "broadcastMode": settings.broadcast_mode,
        }

    @app.post("/subscribe")
    def subscribe(
        payload: SubscribeRequest | None = Body(None),
        service: SubscriptionService = Depends(get_subscriptions),
    ) -> JSONResponse:
        try:
            result = service.subscribe(payload.email if payload else None)
        except InvalidEmail as e:
            return JSONResponse(status_code=400, content={"success": False, "error": str(e)})
        except ConfigurationError as e:
            logger.error("Subscribe unavailable: %s", e)
            return JSONResponse(status_code=500, content={"success": False, "error": "Server configuration error"})
        except NewsletterError as e:
            logger.error("Subscription failed: %s", e)
            code = getattr(e, "status", None) or 500
            return JSONResponse(
                status_code=code if 400 <= code < 600 else 500,
                content={"success": False, "error": "Failed to subscribe. Please try again."},
            )
        return JSONResponse(status_code=200, content=result.to_dict())

    @app.get("/confirm")
    def confirm(
        confirm: str | None = None,
        service: SubscriptionService = Depends(get_subscriptions),
    ) -> RedirectResponse:
        return RedirectResponse(service.confirm(confirm), status_code=status.HTTP_302_FOUND)

    def _trigger(
        settings: Settings,
        pipeline_factory: Callable[[], NewsletterPipeline],
        authorization: str | None,
        payload: TriggerRequest | None,
    ) -> JSONResponse:
        logger.info("Newsletter trigger received at %s", _now())
        if not _authorized(settings, authorization):
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"error": "Unauthorized", "message": "This endpoint requires authorization"},
            )

        missing = settings.missing(*REQUIRED_KEYS)
        if missing:
            err = ConfigurationError(missing)
            logger.error("Newsletter not started: %s", err)
            return JSONResponse(
                status_code=500,
                content={"success": False, "error": str(err), "timestamp": _now()},
            )

        payload = payload or TriggerRequest()
        try:
            with RunLock(settings.lock_path, settings.lock_timeout_seconds):
                try:
                    pipeline = pipeline_factory()
                except Exception as e:
                    logger.exception("Could not build the newsletter pipeline")
                    return JSONResponse(
                        status_code=500,
                        content={"success": False, "error": str(e), "timestamp": _now()},
                    )
                result = pipeline.run(recipient=payload.recipient, broadcast=payload.broadcast)
        except RunInProgress as e:
            logger.warning("Newsletter trigger refused: %s", e)
            return JSONResponse(
                status_code=status.HTTP_409_CONFLICT,
                content={"success": False, "error": str(e), "timestamp": _now()},
            )

        if result.success:
            logger.info("Newsletter sent successfully")
            return JSONResponse(
                status_code=200,
                content={"message": "Newsletter sent successfully", **result.to_dict()},
            )
        logger.error("Newsletter failed: %s", result.error)
        return JSONResponse(status_code=500, content=result.to_dict())

    @app.get("/newsletter")
    def scheduled_newsletter(
        settings: Settings = Depends(get_app_settings),
        authorization: str | None = Header(None),
        pipeline_factory: Callable[[], NewsletterPipeline] = Depends(get_pipeline_factory),
    ) -> JSONResponse:
        return _trigger(settings, pipeline_factory, authorization, None)

    @app.post("/newsletter")
    def manual_newsletter(
        payload: TriggerRequest | None = Body(None),
        settings: Settings = Depends(get_app_settings),
        authorization: str | None = Header(None),
        pipeline_factory: Callable[[], NewsletterPipeline] = Depends(get_pipeline_factory),
    ) -> JSONResponse:
        return _trigger(settings, pipeline_factory, authorization, payload)

    return app


app = create_app()
