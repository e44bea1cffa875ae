"""
Tests for nudge scheduling and the recurring jobs.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from app.domain.follow_up import SendResult
from app.infrastructure.scheduler import (
    CLEANUP_JOB_ID,
    FOLLOW_UP_JOB_ID,
    NudgeScheduler,
    cleanup_sent_numbers,
    register_periodic_jobs,
    send_delayed_message,
)


class TestNudgeScheduler:
    
    @pytest.mark.asyncio
    async def test_schedule_adds_date_job(self):
        sched = MagicMock()
        
        ok = await NudgeScheduler(sched).schedule(
            "09121111111", "Where are you ?", timedelta(minutes=4)
        )
        
        assert ok is True
        sched.add_job.assert_called_once()
        args, kwargs = sched.add_job.call_args
        assert args[0] is send_delayed_message
        assert isinstance(kwargs["trigger"], DateTrigger)
        assert kwargs["id"] == "nudge_09121111111_240"
        assert kwargs["replace_existing"] is True
        assert kwargs["misfire_grace_time"] is None
        assert kwargs["coalesce"] is True
        assert kwargs["kwargs"] == {"recipient": "09121111111", "message": "Where are you ?"}
    
    @pytest.mark.asyncio
    async def test_schedule_failure_is_reported(self):
        sched = MagicMock()
        sched.add_job.side_effect = RuntimeError("job store unavailable")
        
        ok = await NudgeScheduler(sched).schedule(
            "09121111111", "Where are you ?", timedelta(minutes=4)
        )
        
        assert ok is False

    @pytest.mark.asyncio
    async def test_nudge_due_during_downtime_runs_after_restart(self, tmp_path):
        """Test that a persisted nudge missed while stopped is sent on restart."""
        url = f"sqlite:///{tmp_path}/jobs.db"
        gateway = MagicMock()
        gateway.send_message = AsyncMock(
            return_value=SendResult(success=True, message="Message sent successfully.")
        )
        
        before = AsyncIOScheduler(jobstores={"default": SQLAlchemyJobStore(url=url)})
        before.start(paused=True)
        await NudgeScheduler(before).schedule(
            "09121111111", "Where are you ?", timedelta(seconds=0)
        )
        before.shutdown(wait=False)
        
        # Well past APScheduler's default one second grace time
        await asyncio.sleep(2)
        
        after = AsyncIOScheduler(jobstores={"default": SQLAlchemyJobStore(url=url)})
        with patch("app.infrastructure.chat_gateway.get_chat_gateway", return_value=gateway):
            after.start()
            try:
                for _ in range(50):
                    if gateway.send_message.await_count:
                        break
                    await asyncio.sleep(0.1)
            finally:
                after.shutdown(wait=False)
        
        gateway.send_message.assert_awaited_once_with("09121111111", "Where are you ?")


class TestJobs:
    
    @pytest.mark.asyncio
    async def test_send_delayed_message_uses_gateway(self):
        gateway = MagicMock()
        gateway.send_message = AsyncMock(
            return_value=SendResult(success=True, message="Message sent successfully.")
        )
        
        with patch("app.infrastructure.chat_gateway.get_chat_gateway", return_value=gateway):
            await send_delayed_message("09121111111", "Where are you ?")
        
        gateway.send_message.assert_awaited_once_with("09121111111", "Where are you ?")
    
    @pytest.mark.asyncio
    async def test_send_delayed_message_swallows_errors(self):
        gateway = MagicMock()
        gateway.send_message = AsyncMock(side_effect=RuntimeError("boom"))
        
        with patch("app.infrastructure.chat_gateway.get_chat_gateway", return_value=gateway):
            await send_delayed_message("09121111111", "Where are you ?")
    
    @pytest.mark.asyncio
    async def test_cleanup_evicts_with_suppression_window(self):
        with patch("app.usecases.sent_registry.SentRegistry.evict_older_than", new_callable=AsyncMock) as mock_evict:
            await cleanup_sent_numbers()
        
        window = mock_evict.await_args.args[0]
        assert window == timedelta(minutes=20)
    
    def test_register_periodic_jobs(self):
        sched = MagicMock()
        
        register_periodic_jobs(sched)
        
        ids = {call.kwargs["id"]: call.kwargs["trigger"] for call in sched.add_job.call_args_list}
        assert set(ids) == {FOLLOW_UP_JOB_ID, CLEANUP_JOB_ID}
        assert all(isinstance(trigger, IntervalTrigger) for trigger in ids.values())
