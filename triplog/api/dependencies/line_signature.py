"""
LINE webhook signature verification.

LINE signs every webhook request body with the channel secret and sends
``X-Line-Signature: base64(HMAC-SHA256(secret, body))``.

Usage:
    @router.post("/webhook")
    async def line_webhook(
        ...,
        _: None = Depends(verify_line_signature),
    ):
        ...
"""
import base64
import hashlib
import hmac

from fastapi import Header, HTTPException, Request, status

from triplog.core.config import settings
from triplog.core.logging import get_logger

logger = get_logger(__name__)


def compute_signature(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


async def verify_line_signature(
    request: Request,
    x_line_signature: str | None = Header(None),
) -> None:
    """
    - ``LINE_CHANNEL_SECRET`` not set: accepted in DEBUG only, otherwise 403
    - header missing or not matching: 403
    """
    secret = settings.LINE_CHANNEL_SECRET
    if not secret:
        if settings.DEBUG:
            logger.warning("LINE_CHANNEL_SECRET not set, accepting unsigned webhook (DEBUG)")
            return
        logger.error("LINE_CHANNEL_SECRET not set, rejecting webhook")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Webhook signature cannot be verified",
        )

    if not x_line_signature:
        logger.warning("LINE webhook without X-Line-Signature header")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing webhook signature",
        )

    body = await request.body()
    if not hmac.compare_digest(x_line_signature, compute_signature(secret, body)):
        logger.warning("LINE webhook with invalid signature")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid webhook signature",
        )
