"""
Already-sent registry model.
Tracks recipients that received a follow-up inside the suppression window.
"""

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import declarative_base

from app.utils.time import utcnow

Base = declarative_base()


class SentNumber(Base):
    """SQLAlchemy model for a recipient already sent a follow-up."""
    
    __tablename__ = "already_sent_numbers"
    
    recipient = Column(String(32), primary_key=True)
    sent_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    
    def __repr__(self) -> str:
        return f"<SentNumber(recipient={self.recipient}, sent_at={self.sent_at})>"
