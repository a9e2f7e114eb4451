"""
LINE Webhook Handler - Bot Gateway Layer

Turns LINE webhook events into conversation inputs and hands each one to
the conversation service. Only message (text / location) and postback
events are processed; follow, unfollow and the rest are acknowledged and
ignored.
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from triplog.api.dependencies.line_signature import verify_line_signature
from triplog.core.exceptions import AppException
from triplog.core.logging import get_logger, mask_user_id
from triplog.db.database import get_db
from triplog.db.models.webhook_event import WebhookEvent
from triplog.domain.services.conversation_service import ConversationService, get_conversation_engine
from triplog.domain.services.messaging import BaseMessagingProvider, get_messaging_provider
from triplog.state_machine.engine import ConversationEngine
from triplog.state_machine.events import ActionInput, ConversationInput, LocationInput, TextInput

logger = get_logger(__name__)

router = APIRouter()

_PLATFORM = "line"
# A row left in processing longer than this is treated as stuck and may be retried
_STALE_PROCESSING_SECONDS = 120


class LineSource(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    user_id: Optional[str] = Field(default=None, alias="userId")


class LineMessage(BaseModel):
    id: Optional[str] = None
    type: str
    text: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None


class LinePostback(BaseModel):
    data: str = ""


class LineDeliveryContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_redelivery: bool = Field(default=False, alias="isRedelivery")


class LineEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    reply_token: Optional[str] = Field(default=None, alias="replyToken")
    source: Optional[LineSource] = None
    message: Optional[LineMessage] = None
    postback: Optional[LinePostback] = None
    webhook_event_id: Optional[str] = Field(default=None, alias="webhookEventId")
    delivery_context: Optional[LineDeliveryContext] = Field(default=None, alias="deliveryContext")


class LineWebhookBody(BaseModel):
    destination: Optional[str] = None
    events: List[LineEvent] = []


def to_conversation_input(event: LineEvent) -> ConversationInput | None:
    """Normalized input for a LINE event, None for events the bot ignores"""
    if event.type == "postback" and event.postback is not None:
        return ActionInput.from_postback(event.postback.data)

    if event.type != "message" or event.message is None:
        return None

    message = event.message
    if message.type == "text" and message.text is not None:
        return TextInput(message.text.strip())
    if message.type == "location" and message.latitude is not None and message.longitude is not None:
        return LocationInput(latitude=message.latitude, longitude=message.longitude)
    return None


# ──────────────────────────────────────────────
#  Idempotency - DB based.
#  A row is inserted as processing before handling and committed at once,
#  so a failing event blocks immediate redelivery until it turns stale.
#  Only completed rows block redeliveries permanently.
# ──────────────────────────────────────────────


async def _try_acquire_event(db: AsyncSession, event_id: str | None) -> bool:
    """True when the event is new (or a stale retry) and may be processed"""
    if not event_id:
        return True

    try:
        async with db.begin_nested():
            db.add(WebhookEvent(
                event_id=event_id,
                platform=_PLATFORM,
                status="processing",
                created_at=datetime.now(timezone.utc),
            ))
        await db.commit()
        return True
    except IntegrityError:
        pass

    result = await db.execute(
        select(WebhookEvent.status).where(WebhookEvent.event_id == event_id)
    )
    row = result.one_or_none()
    if not row or row.status == "completed":
        logger.info("Skipping duplicate webhook event", extra_data={"event_id": event_id})
        return False

    threshold = datetime.now(timezone.utc) - timedelta(seconds=_STALE_PROCESSING_SECONDS)
    update_result = await db.execute(
        update(WebhookEvent)
        .where(
            WebhookEvent.event_id == event_id,
            WebhookEvent.status == "processing",
            WebhookEvent.created_at < threshold,
        )
        .values(created_at=datetime.now(timezone.utc))
    )
    if update_result.rowcount > 0:
        await db.commit()
        logger.warning("Retrying stale webhook event", extra_data={"event_id": event_id})
        return True

    logger.info("Skipping in-progress webhook event", extra_data={"event_id": event_id})
    return False


async def _mark_event_completed(db: AsyncSession, event_id: str | None) -> None:
    if not event_id:
        return
    await db.execute(
        update(WebhookEvent)
        .where(WebhookEvent.event_id == event_id)
        .values(status="completed")
    )
    await db.commit()


async def _process_event(
    db: AsyncSession,
    event: LineEvent,
    provider: BaseMessagingProvider,
    engine: ConversationEngine,
) -> bool:
    """Handle one event; True when a reply was sent"""
    inp = to_conversation_input(event)
    user_id = event.source.user_id if event.source else None
    if inp is None or not user_id or not event.reply_token:
        logger.debug(
            "Ignoring LINE event",
            extra_data={
                "type": event.type,
                "message_type": event.message.type if event.message else None,
            },
        )
        return False

    if not await _try_acquire_event(db, event.webhook_event_id):
        return False

    service = ConversationService(db, provider, engine=engine)
    try:
        await service.handle(user_id, inp, event.reply_token)
    except AppException as e:
        # Reply token is single-use; the failure is only logged
        logger.error(
            "Failed to process LINE event",
            extra_data={
                "user_id": mask_user_id(user_id),
                "event_id": event.webhook_event_id,
                "error_code": e.error_code.value,
                "error": e.message,
            },
        )
        return False

    await _mark_event_completed(db, event.webhook_event_id)
    return True


@router.post(
    "/webhook",
    summary="Webhook - LINE Messaging API",
    description=(
        "Entry point for LINE webhook events. "
        "Text, location and postback events drive the trip entry conversation."
    ),
    responses={403: {"description": "Missing or invalid X-Line-Signature"}},
)
async def line_webhook(
    body: LineWebhookBody,
    db: AsyncSession = Depends(get_db),
    provider: BaseMessagingProvider = Depends(get_messaging_provider),
    engine: ConversationEngine = Depends(get_conversation_engine),
    _: None = Depends(verify_line_signature),
) -> dict:
    """
    Handle incoming LINE events.

    LINE sends an empty ``events`` list when verifying the webhook URL; it
    is answered with 200 like any other request.
    """
    processed = 0
    for event in body.events:
        if event.delivery_context and event.delivery_context.is_redelivery:
            logger.info("LINE redelivered event", extra_data={"event_id": event.webhook_event_id})
        if await _process_event(db, event, provider, engine):
            processed += 1

    return {"status": "ok", "processed": processed}
