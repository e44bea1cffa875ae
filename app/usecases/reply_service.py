"""
Reply relay: answer a participant when their latest message matches.
"""

import logging

from app.config.settings import Settings
from app.domain.follow_up import ReplyRequest, SendResult
from app.infrastructure.chat_gateway import ChatGateway, GatewayError
from app.utils.phone import chat_id_for_mobile

logger = logging.getLogger(__name__)


class ReplyMismatchError(Exception):
    """The latest chat message could not be read or did not match."""


class ReplyService:
    """Service class for the reply-message webhook."""
    
    def __init__(self, gateway: ChatGateway, settings: Settings):
        self.gateway = gateway
        self.settings = settings
    
    async def handle(self, request: ReplyRequest) -> SendResult:
        """
        Validate the participant's latest message and send the answer.
        
        Args:
            request: Incoming reply request
        
        Returns:
            Result of sending the answer
        
        Raises:
            ReplyMismatchError: If messages could not be read or the latest
                one differs from ``specific_message``
        """
        chat_id = chat_id_for_mobile(
            request.mobile,
            suffix=self.settings.chat_id_suffix,
            country_code=self.settings.country_code,
            trunk_prefix=self.settings.trunk_prefix,
        )
        
        try:
            messages = await self.gateway.read_messages(chat_id, request.mobile, limit=1)
        except GatewayError as e:
            logger.warning(f"Could not read messages for {chat_id}: {e}")
            raise ReplyMismatchError(str(e)) from e
        
        if not messages or messages[0] != request.specific_message:
            logger.info(f"Latest message from {request.mobile} did not match, not replying")
            raise ReplyMismatchError("specific message did not match")
        
        return await self.gateway.send_message(request.mobile, request.answer_message)
