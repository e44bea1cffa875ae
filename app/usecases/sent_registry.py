"""
Registry of recipients already sent a follow-up in the suppression window.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Iterable, Optional, Set

from sqlalchemy import select, delete
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.domain.sent_number import SentNumber
from app.utils.time import utcnow

logger = logging.getLogger(__name__)


class SentRegistry:
    """
    Persisted set of recently followed-up recipients.
    
    Every operation runs in its own short transaction, so a cleanup sweep and
    an orchestration pass can interleave freely. Recipients being sent to
    right now are held in an in-memory claim set until their record is
    committed, so passes sharing one registry never send to the same
    recipient twice.
    """
    
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self._in_flight: Set[str] = set()
        self._claim_lock = asyncio.Lock()
    
    async def exists(self, recipient: str) -> bool:
        """
        Check whether a recipient already has a live record.
        
        Args:
            recipient: Local mobile number
        
        Returns:
            True if a follow-up was already sent in this window
        """
        async with self.session_factory() as session:
            result = await session.execute(
                select(SentNumber.recipient).where(SentNumber.recipient == recipient)
            )
            return result.scalar_one_or_none() is not None
    
    async def claim(self, recipient: str) -> bool:
        """
        Reserve a recipient for sending.
        
        Fails if the recipient already has a record or another pass holds
        a claim on it. Claims must be given back with ``release`` once the
        send outcome has been recorded.
        
        Args:
            recipient: Local mobile number
        
        Returns:
            True if the caller may send to the recipient
        """
        async with self._claim_lock:
            if recipient in self._in_flight:
                return False
            if await self.exists(recipient):
                return False
            self._in_flight.add(recipient)
            return True
    
    def release(self, recipients: Iterable[str]) -> None:
        """Drop claims taken with ``claim``."""
        for recipient in recipients:
            self._in_flight.discard(recipient)
    
    async def insert_many(self, recipients: Iterable[str], at: Optional[datetime] = None) -> None:
        """
        Record recipients as sent.
        
        Recipients that already have a record keep their original ``sent_at``;
        only the cleanup sweep ends a suppression window.
        
        Args:
            recipients: Local mobile numbers
            at: Timestamp to record (defaults to now, naive UTC)
        """
        sent_at = at or utcnow()
        rows = [
            {"recipient": recipient, "sent_at": sent_at}
            for recipient in dict.fromkeys(recipients)
        ]
        if not rows:
            return
        
        statement = (
            sqlite_insert(SentNumber)
            .values(rows)
            .on_conflict_do_nothing(index_elements=[SentNumber.recipient])
        )
        async with self.session_factory() as session:
            await session.execute(statement)
            await session.commit()
        logger.info(f"Recorded {len(rows)} sent numbers")
    
    async def evict_older_than(self, window: timedelta, now: Optional[datetime] = None) -> int:
        """
        Delete records whose suppression window has ended.
        
        Args:
            window: Suppression window length
            now: Reference time (defaults to now, naive UTC)
        
        Returns:
            Number of records removed
        """
        cutoff = (now or utcnow()) - window
        async with self.session_factory() as session:
            result = await session.execute(
                delete(SentNumber).where(SentNumber.sent_at < cutoff)
            )
            await session.commit()
        
        removed = result.rowcount or 0
        if removed:
            logger.info(f"Evicted {removed} sent numbers older than {cutoff}")
        return removed


@lru_cache()
def get_sent_registry() -> SentRegistry:
    """Get the process-wide registry shared by every pass."""
    from app.infrastructure.database import async_session_factory
    
    return SentRegistry(async_session_factory)
