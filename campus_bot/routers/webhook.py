import json
from typing import Optional

from fastapi import APIRouter, Request
from pydantic import ValidationError

from campus_bot.bot.dispatcher import DispatcherClosedError
from campus_bot.logging_config import get_logger
from campus_bot.schemas.webhook import MessengerUpdate, WebhookResponse

logger = get_logger("webhook")

router = APIRouter()

SECRET_HEADER = "X-Webhook-Secret"


async def parse_update(request: Request) -> Optional[dict]:
    """
    Parse messenger update with tolerant decoding to avoid utf-8 crashes.
    Returns dict or None.
    """
    try:
        return await request.json()
    except ValueError as e:
        logger.warning(f"Standard request.json() failed: {e}, fallback decoding")

    raw = await request.body()
    for enc in ("utf-8", "latin-1"):
        try:
            decoded = raw.decode(enc, errors="replace")
            return json.loads(decoded)
        except ValueError:
            continue

    logger.error("Failed to decode webhook payload after fallbacks")
    return None


@router.post("/webhook", response_model=WebhookResponse)
async def handle_webhook(request: Request):
    """
    Handle messenger updates:
    - message_created -> routed by command or by the user's current step
    - message_callback -> routed by callback payload
    Other update types are acknowledged and ignored.
    """
    secret = request.app.state.settings.webhook_secret
    if secret and request.headers.get(SECRET_HEADER) != secret:
        logger.warning("Webhook secret mismatch")
        return WebhookResponse(success=False, message="Invalid webhook secret")

    try:
        body = await parse_update(request)
        if not isinstance(body, dict):
            return WebhookResponse(success=False, message="Invalid payload")

        logger.debug(f"Webhook received: {body.get('update_type')}")

        update = MessengerUpdate(**body)
        event = update.to_event()
        if event is None:
            logger.debug(f"Ignoring update type {update.update_type}")
            return WebhookResponse(success=True, message="Ignored")

        await request.app.state.dispatcher.dispatch(event)
        return WebhookResponse(success=True, message="OK")

    except DispatcherClosedError:
        return WebhookResponse(success=False, message="Shutting down")
    except ValidationError as e:
        logger.warning(f"Malformed update: {e}")
        return WebhookResponse(success=False, message="Malformed update")
    except Exception as e:
        logger.error(f"Webhook error: {e}", exc_info=True)
        return WebhookResponse(success=False, message=str(e))
