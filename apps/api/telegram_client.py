"""Telegram Bot API client.

Fire-and-forget: every call logs its failure and returns None instead of
raising, so a Telegram outage never fails the request that triggered it.
"""

from typing import Any, Dict, List, Optional

import httpx
import structlog

from apps.api.core.config import Settings, get_settings

logger = structlog.get_logger()

API_BASE_URL = "https://api.telegram.org"


class TelegramClient:
    def __init__(
        self,
        token: str,
        timeout: float = 10.0,
        base_url: str = API_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.timeout = timeout
        self.base_url = base_url
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.token)

    async def call(self, method: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """POST one Bot API method; the decoded body on success, else None."""
        if not self.enabled:
            logger.warning("telegram_disabled", method=method)
            return None

        url = f"{self.base_url}/bot{self.token}/{method}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, json=payload)
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("telegram_request_failed", method=method, error=str(e))
            return None

        if not data.get("ok"):
            logger.error(
                "telegram_api_error",
                method=method,
                status_code=response.status_code,
                description=data.get("description"),
            )
            return None
        return data

    async def send_message(
        self,
        chat_id,
        text: str,
        reply_markup: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        payload: Dict[str, Any] = {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return await self.call("sendMessage", payload)

    async def edit_message_text(
        self,
        chat_id,
        message_id: int,
        text: str,
        reply_markup: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text,
            "parse_mode": "HTML",
        }
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return await self.call("editMessageText", payload)

    async def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None):
        payload: Dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        return await self.call("answerCallbackQuery", payload)

    async def set_my_commands(self, commands: List[Dict[str, str]]):
        return await self.call("setMyCommands", {"commands": commands})

    async def set_chat_menu_button(self, chat_id, web_app_url: Optional[str] = None):
        """Point the chat menu button at a web app, or back to the command list."""
        if web_app_url:
            menu_button = {"type": "web_app", "text": "Open App", "web_app": {"url": web_app_url}}
        else:
            menu_button = {"type": "commands"}
        return await self.call("setChatMenuButton", {"chat_id": chat_id, "menu_button": menu_button})


def get_telegram_client() -> TelegramClient:
    settings: Settings = get_settings()
    return TelegramClient(settings.TELEGRAM_BOT_TOKEN, timeout=settings.TELEGRAM_TIMEOUT_SECONDS)
