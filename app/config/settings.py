"""
Application settings and configuration.
All secrets are loaded from environment variables.
"""

from typing import List

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings
from functools import lru_cache


DEFAULT_FOLLOW_UP_MESSAGE = (
    "سلام وقتتون بخیر\n"
    "تخفیف های ما :\n"
    "تخفیف پاییزه برای همه کالا ها ۲۰٪\n"
    "تخفیف ویژه کسانی که تازه ثبت نام کرده اند ۴۰٪\n"
    "جوایز ما:\n"
    "قرعه کشی و جوایز ۱۰ میلیون ریالی"
)


class NudgeTemplate(BaseModel):
    """A delayed message sent after a successful follow-up."""
    message: str = Field(..., min_length=1)
    delay_minutes: int = Field(..., ge=1)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # WallMessage (chat listing and message reading)
    wallmessage_chats_url: str = "https://api.wallmessage.com/api/getChats/"
    wallmessage_messages_url: str = "https://api.wallmessage.com/api/getChatMessages/"
    wallmessage_token: str = ""

    # Inboxino (outbound sending)
    inboxino_url: str = "https://back.inboxino.com/api/message/send"
    inboxino_api_token: str = ""

    gateway_timeout_seconds: float = 30.0

    # Chat id <-> mobile number conversion
    chat_id_suffix: str = "@c.us"
    country_code: str = "98"
    trunk_prefix: str = "0"

    # Follow-up orchestration
    trigger_message: str = "1"
    read_message_limit: int = Field(default=5, ge=1)
    min_call_interval_seconds: float = Field(default=11.0, ge=0)
    follow_up_message: str = DEFAULT_FOLLOW_UP_MESSAGE
    nudges: List[NudgeTemplate] = [
        NudgeTemplate(message="Where are you ?", delay_minutes=4),
        NudgeTemplate(message="You forgot your Discount ?", delay_minutes=120),
    ]

    # How long a recipient stays in the already-sent registry
    suppression_window_minutes: int = Field(default=20, ge=1)

    # Recurring jobs
    follow_up_interval_minutes: int = Field(default=10, ge=1)
    cleanup_interval_minutes: int = Field(default=1, ge=1)
    enable_follow_up_schedule: bool = True
    enable_cleanup_schedule: bool = True

    # Database - sqlite files are kept under DATA_DIR
    data_dir: str = "."

    @property
    def database_url(self) -> str:
        """Async database URL for the sent-number registry."""
        return f"sqlite+aiosqlite:///{self.data_dir}/followups.db"

    @property
    def jobs_database_url(self) -> str:
        """Sync database URL for the APScheduler job store."""
        return f"sqlite:///{self.data_dir}/jobs.db"

    # Application Settings
    debug: bool = False
    timezone: str = "Asia/Tehran"

    @field_validator("nudges")
    @classmethod
    def _exactly_two_distinct_nudges(cls, value: List[NudgeTemplate]) -> List[NudgeTemplate]:
        if len(value) != 2:
            raise ValueError("exactly two nudges must be configured")
        if value[0].delay_minutes == value[1].delay_minutes:
            raise ValueError("nudge delays must differ")
        if value[0].message == value[1].message:
            raise ValueError("nudge messages must differ")
        return value

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
