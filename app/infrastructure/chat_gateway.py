"""
Messaging gateway: WallMessage for reading chats, Inboxino for sending.
"""

import logging
from functools import lru_cache
from typing import List, Optional

import httpx

from app.config.settings import Settings, get_settings
from app.domain.follow_up import SendResult

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Raised when the upstream chat API fails or returns an unusable payload."""


class ChatGateway:
    """Thin async client over the upstream WhatsApp APIs."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.settings = settings
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.gateway_timeout_seconds,
            transport=self._transport,
        )

    @staticmethod
    def _json_headers() -> dict:
        return {
            "accept": "application/json",
            "Content-Type": "application/json",
        }

    def _send_headers(self) -> dict:
        token = self.settings.inboxino_api_token
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "api-token": token,
            "Authorization": f"Bearer {token}",
        }

    async def _post_wallmessage(self, url: str, payload: dict) -> dict:
        try:
            async with self._client() as client:
                response = await client.post(
                    url,
                    params={"token": self.settings.wallmessage_token},
                    headers=self._json_headers(),
                    json=payload,
                )
        except httpx.HTTPError as e:
            raise GatewayError(f"WallMessage request failed: {e}") from e

        if not response.is_success:
            raise GatewayError(f"WallMessage returned status {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise GatewayError("WallMessage returned invalid JSON") from e

        if not isinstance(data, dict) or not isinstance(data.get("value"), list):
            raise GatewayError("WallMessage response has no value list")
        return data

    async def list_chats(self) -> List[str]:
        """
        List the ids of all active chats.

        Returns:
            Chat ids in provider order (may contain repeats)

        Raises:
            GatewayError: On transport failure or a non-success response
        """
        data = await self._post_wallmessage(self.settings.wallmessage_chats_url, {})
        chat_ids = [
            str(chat["chatId"])
            for chat in data["value"]
            if isinstance(chat, dict) and chat.get("chatId")
        ]
        logger.info(f"Fetched {len(chat_ids)} chats")
        return chat_ids

    async def read_messages(self, chat_id: str, mobile: str, limit: int = 5) -> List[str]:
        """
        Read the most recent message bodies of a chat.

        Args:
            chat_id: Chat to read
            mobile: Local mobile number of the participant
            limit: Maximum number of messages

        Returns:
            Up to ``limit`` message bodies, most recent first

        Raises:
            GatewayError: On transport failure, non-success status or isSuccess=false
        """
        data = await self._post_wallmessage(
            self.settings.wallmessage_messages_url,
            {
                "chatId": chat_id,
                "mobile": mobile,
                "total": limit,
                "ignoreData": True,
            },
        )
        if not data.get("isSuccess"):
            raise GatewayError(f"WallMessage could not read messages for {chat_id}")

        return [
            str(item.get("message", ""))
            for item in data["value"][:limit]
            if isinstance(item, dict)
        ]

    async def send_message(self, recipient: str, text: str) -> SendResult:
        """
        Send a WhatsApp text message through Inboxino.

        Args:
            recipient: Local mobile number
            text: Message body

        Returns:
            SendResult; failures are reported, never raised
        """
        payload = {
            "messages": [
                {
                    "message": text,
                    "message_type": "message",
                    "attachment_file": "",
                }
            ],
            "recipients": [recipient],
            "platforms": ["whatsapp"],
            "setting": {"expired_minutes": ""},
            "with_country_code": True,
            "country_code": f"+{self.settings.country_code}",
        }

        try:
            async with self._client() as client:
                response = await client.post(
                    self.settings.inboxino_url,
                    headers=self._send_headers(),
                    json=payload,
                )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to send message to {recipient}: {e}")
            return SendResult(
                success=False,
                message="Failed to send the message.",
                error=str(e),
            )

        try:
            body = response.json()
        except ValueError:
            body = None

        return SendResult(success=True, message="Message sent successfully.", body=body)


@lru_cache()
def get_chat_gateway() -> ChatGateway:
    """Get the shared gateway client."""
    return ChatGateway(get_settings())
