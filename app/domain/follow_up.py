"""
Follow-up domain schemas.
"""

from datetime import timedelta
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from app.config.settings import NudgeTemplate, Settings


class ChatParticipant(BaseModel):
    """A chat and the recipient number derived from it."""
    chat_id: str
    mobile: str


class FollowUpCandidate(BaseModel):
    """A participant whose recent messages contain the trigger."""
    participant: ChatParticipant
    trigger_message: str

    @property
    def recipient(self) -> str:
        return self.participant.mobile


class OutcomeReport(BaseModel):
    """Result of one orchestration pass."""
    success: bool
    message: str
    sent_count: int = 0
    sent: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    nudges_failed: List[str] = Field(default_factory=list)


class FollowUpConfig(BaseModel):
    """Templates and knobs the orchestrator works with."""
    trigger_message: str = "1"
    read_message_limit: int = 5
    follow_up_message: str
    nudges: List[NudgeTemplate]
    chat_id_suffix: str = "@c.us"
    country_code: str = "98"
    trunk_prefix: str = "0"

    @classmethod
    def from_settings(cls, settings: Settings) -> "FollowUpConfig":
        return cls(
            trigger_message=settings.trigger_message,
            read_message_limit=settings.read_message_limit,
            follow_up_message=settings.follow_up_message,
            nudges=settings.nudges,
            chat_id_suffix=settings.chat_id_suffix,
            country_code=settings.country_code,
            trunk_prefix=settings.trunk_prefix,
        )


class ReplyRequest(BaseModel):
    """Schema for the reply-message webhook."""
    mobile: str = Field(..., min_length=1)
    specific_message: str = Field(..., min_length=1, alias="specificMessage")
    answer_message: str = Field(..., min_length=1, alias="answerMessage")

    class Config:
        populate_by_name = True


class SendResult(BaseModel):
    """Outcome of a single outbound message."""
    success: bool
    message: str
    body: Optional[Any] = None
    error: Optional[str] = None


def nudge_delay(nudge: NudgeTemplate) -> timedelta:
    """Delay after which a nudge fires."""
    return timedelta(minutes=nudge.delay_minutes)
