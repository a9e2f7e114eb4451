"""
LINE Messaging API provider (reply endpoint)
"""
from __future__ import annotations

import httpx

from triplog.core.circuit_breaker import CircuitBreaker, get_line_circuit_breaker
from triplog.core.config import settings
from triplog.core.exceptions import LineMessagingError, ServiceTimeoutError
from triplog.core.logging import get_logger
from triplog.domain.services.messaging.base_provider import BaseMessagingProvider
from triplog.state_machine.responses import (
    Button,
    MessageResponse,
    QuickAction,
    QuickActionKind,
    ResponseKind,
)

logger = get_logger(__name__)

# LINE platform limits
MAX_MESSAGES_PER_REPLY = 5
MAX_QUICK_REPLY_ITEMS = 13
MAX_LABEL_CHARS = 20
MAX_BUTTONS_TEXT_CHARS = 160
MAX_CONFIRM_TEXT_CHARS = 240
MAX_ALT_TEXT_CHARS = 400

_TIMEOUT_SECONDS = 10.0


def _label(text: str) -> str:
    return text[:MAX_LABEL_CHARS]


class LineMessagingProvider(BaseMessagingProvider):
    """Converts ``MessageResponse`` to LINE messages and calls the reply API"""

    def __init__(
        self,
        access_token: str | None = None,
        api_base_url: str | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        timeout: float = _TIMEOUT_SECONDS,
    ):
        self.access_token = access_token if access_token is not None else settings.LINE_CHANNEL_ACCESS_TOKEN
        self.api_base_url = (api_base_url or settings.LINE_API_BASE_URL).rstrip("/")
        self.circuit_breaker = circuit_breaker or get_line_circuit_breaker()
        self.timeout = timeout

    # ── payload conversion ──

    def to_payload(self, message: MessageResponse) -> dict:
        if message.kind == ResponseKind.CHOICES:
            payload = self._buttons_template(message)
        elif message.kind == ResponseKind.CONFIRM:
            payload = self._confirm_template(message)
        elif message.kind == ResponseKind.SUMMARY_CARD:
            payload = self._flex_bubble(message)
        else:
            payload = {"type": "text", "text": message.text}

        if message.quick_actions:
            payload["quickReply"] = {
                "items": [self._quick_reply_item(a) for a in message.quick_actions[:MAX_QUICK_REPLY_ITEMS]]
            }
        return payload

    @staticmethod
    def _postback_action(button: Button) -> dict:
        return {
            "type": "postback",
            "label": _label(button.label),
            "data": button.data,
            "displayText": button.label,
        }

    @staticmethod
    def _quick_reply_item(action: QuickAction) -> dict:
        if action.kind == QuickActionKind.LOCATION:
            return {"type": "action", "action": {"type": "location", "label": _label(action.label)}}
        return {
            "type": "action",
            "action": {
                "type": "postback",
                "label": _label(action.label),
                "data": action.data,
                "displayText": action.label,
            },
        }

    def _buttons_template(self, message: MessageResponse) -> dict:
        return {
            "type": "template",
            "altText": message.text[:MAX_ALT_TEXT_CHARS],
            "template": {
                "type": "buttons",
                "text": message.text[:MAX_BUTTONS_TEXT_CHARS],
                "actions": [
                    {"type": "message", "label": _label(choice.label), "text": choice.data}
                    for choice in message.choices
                ],
            },
        }

    def _confirm_template(self, message: MessageResponse) -> dict:
        return {
            "type": "template",
            "altText": message.text[:MAX_ALT_TEXT_CHARS],
            "template": {
                "type": "confirm",
                "text": message.text[:MAX_CONFIRM_TEXT_CHARS],
                "actions": [self._postback_action(b) for b in message.buttons[:2]],
            },
        }

    @staticmethod
    def _info_row(label: str, value: str) -> dict:
        return {
            "type": "box",
            "layout": "horizontal",
            "contents": [
                {"type": "text", "text": label, "size": "sm", "color": "#555555", "flex": 0, "wrap": True},
                {"type": "text", "text": value or "-", "size": "sm", "color": "#111111",
                 "align": "end", "wrap": True},
            ],
        }

    def _flex_bubble(self, message: MessageResponse) -> dict:
        footer_buttons = []
        for index, button in enumerate(message.buttons):
            item = {
                "type": "button",
                "style": "primary" if index == 0 else "secondary",
                "action": self._postback_action(button),
            }
            if index == 0:
                item["color"] = "#17c950"
            footer_buttons.append(item)

        return {
            "type": "flex",
            "altText": message.text[:MAX_ALT_TEXT_CHARS],
            "contents": {
                "type": "bubble",
                "body": {
                    "type": "box",
                    "layout": "vertical",
                    "contents": [
                        {"type": "text", "text": message.text, "weight": "bold", "size": "xl", "margin": "md"},
                        {"type": "separator", "margin": "md"},
                        {
                            "type": "box",
                            "layout": "vertical",
                            "margin": "lg",
                            "spacing": "sm",
                            "contents": [self._info_row(label, value) for label, value in message.rows],
                        },
                    ],
                },
                "footer": {
                    "type": "box",
                    "layout": "vertical",
                    "spacing": "sm",
                    "contents": footer_buttons,
                },
            },
        }

    # ── delivery ──

    async def reply(self, reply_token: str, messages: list[MessageResponse]) -> None:
        if not messages:
            return
        if not self.access_token:
            logger.warning("LINE_CHANNEL_ACCESS_TOKEN not configured, reply skipped")
            return

        if len(messages) > MAX_MESSAGES_PER_REPLY:
            logger.warning(
                "Reply exceeds LINE message limit, truncating",
                extra_data={"count": len(messages), "limit": MAX_MESSAGES_PER_REPLY},
            )
            messages = messages[:MAX_MESSAGES_PER_REPLY]

        url = f"{self.api_base_url}/v2/bot/message/reply"
        payload = {
            "replyToken": reply_token,
            "messages": [self.to_payload(m) for m in messages],
        }
        headers = {"Authorization": f"Bearer {self.access_token}"}

        async def _send() -> None:
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=payload, headers=headers)
            except httpx.TimeoutException:
                raise ServiceTimeoutError("line", self.timeout)
            except httpx.HTTPError as e:
                raise LineMessagingError(f"reply request failed: {e}")
            if response.status_code != 200:
                raise LineMessagingError.from_response("reply", response)

        await self.circuit_breaker.execute(_send)
        logger.debug("LINE reply sent", extra_data={"message_count": len(messages)})
