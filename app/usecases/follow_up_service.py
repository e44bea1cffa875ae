"""
Follow-up orchestration: find chats that sent the trigger message and
send each participant one follow-up per suppression window.
"""

import logging
from datetime import timedelta
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError

from app.config.settings import get_settings
from app.domain.follow_up import (
    ChatParticipant,
    FollowUpCandidate,
    FollowUpConfig,
    OutcomeReport,
    nudge_delay,
)
from app.infrastructure.chat_gateway import ChatGateway, GatewayError, get_chat_gateway
from app.infrastructure.rate_limiter import MinIntervalRateLimiter, get_rate_limiter
from app.infrastructure.scheduler import NudgeScheduler
from app.usecases.sent_registry import SentRegistry, get_sent_registry
from app.utils.phone import normalize_chat_id

logger = logging.getLogger(__name__)


class DelayedNudgeScheduler(Protocol):
    async def schedule(self, recipient: str, message: str, fire_after: timedelta) -> bool: ...


class FollowUpOrchestrator:
    """Runs orchestration passes against the gateway and the sent registry."""

    def __init__(
        self,
        gateway: ChatGateway,
        registry: SentRegistry,
        nudge_scheduler: DelayedNudgeScheduler,
        rate_limiter: MinIntervalRateLimiter,
        config: FollowUpConfig
    ):
        self.gateway = gateway
        self.registry = registry
        self.nudge_scheduler = nudge_scheduler
        self.rate_limiter = rate_limiter
        self.config = config

    async def run_once(self) -> OutcomeReport:
        """
        Run one orchestration pass.

        1. List chats; a failure here aborts the pass before any side effect.
        2. Collapse repeated chat ids and derive one participant per chat.
        3. Read each chat's recent messages and keep those containing the trigger.
        4. Drop participants already in the sent registry.
        5. Claim each recipient, send the follow-up, schedule the nudges, then
           record every successful recipient in one batch and drop the claims.

        Returns:
            OutcomeReport describing the pass
        """
        await self.rate_limiter.wait()
        try:
            chat_ids = await self.gateway.list_chats()
        except GatewayError as e:
            logger.error(f"Failed to list chats: {e}")
            return OutcomeReport(success=False, message="Failed to check chats")

        participants = self._participants(chat_ids)
        candidates = await self._find_candidates(participants)

        try:
            candidates = await self._remove_already_sent(candidates)
        except SQLAlchemyError as e:
            logger.exception(f"Failed to check sent registry: {e}")
            return OutcomeReport(success=False, message="Failed to check sent numbers")

        if not candidates:
            logger.info("No users to follow up with.")
            return OutcomeReport(
                success=True,
                message="Chats have been checked. No users to follow up with.",
            )

        claimed: List[str] = []
        try:
            sent, failed, nudges_failed = await self._send_follow_ups(candidates, claimed)

            try:
                await self.registry.insert_many(sent)
            except SQLAlchemyError as e:
                logger.exception(f"Failed to record sent numbers {sent}: {e}")
                return OutcomeReport(
                    success=False,
                    message="Follow up messages sent but could not be recorded.",
                    sent_count=len(sent),
                    sent=sent,
                    failed=failed,
                    nudges_failed=nudges_failed,
                )
        finally:
            # Claims are held until the batch is committed
            self.registry.release(claimed)

        return OutcomeReport(
            success=True,
            message="Follow up messages sent.",
            sent_count=len(sent),
            sent=sent,
            failed=failed,
            nudges_failed=nudges_failed,
        )

    def _participants(self, chat_ids: Sequence[str]) -> List[ChatParticipant]:
        unique: Dict[str, None] = dict.fromkeys(chat_ids)
        return [
            ChatParticipant(
                chat_id=chat_id,
                mobile=normalize_chat_id(
                    chat_id,
                    suffix=self.config.chat_id_suffix,
                    country_code=self.config.country_code,
                    trunk_prefix=self.config.trunk_prefix,
                ),
            )
            for chat_id in unique
        ]

    async def _find_candidates(self, participants: List[ChatParticipant]) -> List[FollowUpCandidate]:
        candidates = []
        limit = self.config.read_message_limit
        trigger = self.config.trigger_message

        for participant in participants:
            await self.rate_limiter.wait()
            try:
                messages = await self.gateway.read_messages(
                    participant.chat_id, participant.mobile, limit=limit
                )
            except GatewayError as e:
                logger.warning(f"Skipping {participant.mobile}, could not read messages: {e}")
                continue

            if any(message == trigger for message in messages[:limit]):
                candidates.append(
                    FollowUpCandidate(participant=participant, trigger_message=trigger)
                )

        logger.info(f"{len(candidates)} of {len(participants)} chats need a follow-up")
        return candidates

    async def _remove_already_sent(self, candidates: List[FollowUpCandidate]) -> List[FollowUpCandidate]:
        remaining = []
        for candidate in candidates:
            if await self.registry.exists(candidate.recipient):
                logger.info(f"Message to {candidate.recipient} already sent. Skipping...")
                continue
            remaining.append(candidate)
        return remaining

    async def _send_follow_ups(
        self,
        candidates: List[FollowUpCandidate],
        claimed: List[str]
    ) -> Tuple[List[str], List[str], List[str]]:
        sent: List[str] = []
        failed: List[str] = []
        nudges_failed: List[str] = []

        for candidate in candidates:
            recipient = candidate.recipient

            # Another pass may be sending to or have committed this recipient
            try:
                if not await self.registry.claim(recipient):
                    logger.info(f"{recipient} was followed up by another pass. Skipping...")
                    continue
            except SQLAlchemyError as e:
                logger.error(f"Could not re-check {recipient}, skipping: {e}")
                failed.append(recipient)
                continue

            claimed.append(recipient)

            await self.rate_limiter.wait()
            result = await self.gateway.send_message(recipient, self.config.follow_up_message)

            if not result.success:
                logger.error(f"Failed to send message to {recipient}: {result.error}")
                failed.append(recipient)
                continue

            logger.info(f"Message sent to {recipient} successfully.")
            scheduled = [
                await self.nudge_scheduler.schedule(recipient, nudge.message, nudge_delay(nudge))
                for nudge in self.config.nudges
            ]
            if not all(scheduled):
                logger.warning(f"Some nudges for {recipient} could not be scheduled")
                nudges_failed.append(recipient)
            sent.append(recipient)

        return sent, failed, nudges_failed


def build_follow_up_orchestrator(
    gateway: Optional[ChatGateway] = None,
    registry: Optional[SentRegistry] = None
) -> FollowUpOrchestrator:
    """Wire an orchestrator from application settings."""
    settings = get_settings()
    return FollowUpOrchestrator(
        gateway=gateway or get_chat_gateway(),
        registry=registry or get_sent_registry(),
        nudge_scheduler=NudgeScheduler(),
        rate_limiter=get_rate_limiter(),
        config=FollowUpConfig.from_settings(settings),
    )
