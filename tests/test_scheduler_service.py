from __future__ import annotations

import logging
from datetime import timedelta

import pytest
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from iptv_epg.services.scheduler_service import JOB_ID, IPTVScheduler
from iptv_epg.utils.timezone import utc_now


class RecordingRefresh:
    def __init__(self, result: dict | None = None, error: Exception | None = None) -> None:
        self.calls = 0
        self.result = result if result is not None else {"status": "success"}
        self.error = error

    async def __call__(self) -> dict:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
async def make_scheduler():
    created: list[IPTVScheduler] = []

    def factory(refresh=None, **kwargs) -> IPTVScheduler:
        scheduler = IPTVScheduler(refresh or RecordingRefresh(), **kwargs)
        created.append(scheduler)
        return scheduler

    yield factory

    for scheduler in created:
        scheduler.stop_iptv_refresh()


async def test_interval_job_is_armed_with_single_instance(make_scheduler):
    scheduler = make_scheduler(interval_hours=6, misfire_grace_sec=120)

    scheduler.schedule_iptv_refresh()

    assert scheduler.is_running() is True
    job = scheduler.scheduler.get_job(JOB_ID)
    assert isinstance(job.trigger, IntervalTrigger)
    assert job.trigger.interval == timedelta(hours=6)
    assert job.max_instances == 1
    assert job.coalesce is True
    assert job.misfire_grace_time == 120


async def test_next_run_time_follows_interval(make_scheduler):
    scheduler = make_scheduler(interval_hours=12)
    assert scheduler.get_next_run_time() is None

    before = utc_now()
    scheduler.schedule_iptv_refresh()
    next_run = scheduler.get_next_run_time()

    assert next_run is not None
    assert before + timedelta(hours=11) < next_run <= utc_now() + timedelta(hours=12)


async def test_cron_overrides_interval(make_scheduler):
    scheduler = make_scheduler(interval_hours=12, cron="0 */6 * * *")

    scheduler.schedule_iptv_refresh()

    job = scheduler.scheduler.get_job(JOB_ID)
    assert isinstance(job.trigger, CronTrigger)
    assert scheduler.get_next_run_time().minute == 0


async def test_invalid_cron_raises_on_arm(make_scheduler):
    scheduler = make_scheduler(cron="not a cron")

    with pytest.raises(ValueError):
        scheduler.schedule_iptv_refresh()

    assert scheduler.is_running() is False


async def test_arming_twice_keeps_one_scheduler(make_scheduler):
    scheduler = make_scheduler()

    scheduler.schedule_iptv_refresh()
    first = scheduler.scheduler
    scheduler.schedule_iptv_refresh()

    assert scheduler.scheduler is first
    assert len(first.get_jobs()) == 1


async def test_stop_disarms(make_scheduler):
    scheduler = make_scheduler()
    scheduler.schedule_iptv_refresh()

    scheduler.stop_iptv_refresh()

    assert scheduler.is_running() is False
    assert scheduler.get_next_run_time() is None
    scheduler.stop_iptv_refresh()


async def test_job_runs_callback(make_scheduler):
    refresh = RecordingRefresh()
    scheduler = make_scheduler(refresh)

    await scheduler._refresh_job()

    assert refresh.calls == 1


async def test_job_logs_error_result(make_scheduler, caplog):
    scheduler = make_scheduler(RecordingRefresh(result={"error": "feed unreachable"}))

    with caplog.at_level(logging.ERROR, logger="iptv_epg.services.scheduler_service"):
        await scheduler._refresh_job()

    assert "feed unreachable" in caplog.text


async def test_job_swallows_callback_exception(make_scheduler, caplog):
    scheduler = make_scheduler(RecordingRefresh(error=RuntimeError("boom")))

    with caplog.at_level(logging.ERROR, logger="iptv_epg.services.scheduler_service"):
        await scheduler._refresh_job()

    assert "boom" in caplog.text
