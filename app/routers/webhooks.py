import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from app.config.loader import get_media_settings, get_webhook_settings
from app.services.errors import WebhookVerificationError
from app.services.media import MediaClient, get_media_client
from app.services.session_coordinator import SessionCoordinator, get_session_coordinator
from app.services.webhook_reconciler import (
    MediaWebhookEvent,
    WebhookOutcome,
    WebhookReconciler,
)

logger = logging.getLogger("webhooks")

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


def get_webhook_reconciler(
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
) -> WebhookReconciler:
    return WebhookReconciler(
        coordinator,
        egress_identity_prefix=get_media_settings()["egress_identity_prefix"],
    )


def _decode_unsigned(body: str) -> dict:
    try:
        payload = json.loads(body or "{}")
    except ValueError as exc:
        raise WebhookVerificationError("Malformed webhook payload") from exc
    if not isinstance(payload, dict):
        raise WebhookVerificationError("Malformed webhook payload")
    return payload


@router.post("/media", response_model=WebhookOutcome)
async def receive_media_webhook(
    request: Request,
    media: MediaClient = Depends(get_media_client),
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
):
    """
    Receive a media infrastructure event.

    The delivery is authenticated before anything is reconciled. Every
    verified event is acknowledged with 200 unless an internal failure
    occurs, so the sender does not retry transitions already satisfied.
    """
    body = (await request.body()).decode("utf-8", errors="replace")
    authorization = request.headers.get("Authorization")

    if not authorization and get_webhook_settings()["allow_unsigned"]:
        logger.warning("Accepting unsigned media webhook (allow_unsigned is enabled)")
        payload = _decode_unsigned(body)
    else:
        payload = media.verify_webhook(body, authorization)

    try:
        event = MediaWebhookEvent.model_validate(payload)
    except ValidationError as exc:
        logger.warning(f"Rejected malformed media webhook: {exc}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Malformed webhook payload",
        )

    return await reconciler.process(event)
