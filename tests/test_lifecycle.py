"""Tests for the scheduler lifecycle controller and its mutation API."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from conftest import NOW, make_reminder

from finance_tracker.scheduler.catch_up import CATCH_UP_JOB
from finance_tracker.scheduler.reminder import ReminderScheduler, SchedulerState


@pytest.fixture
async def controller(reminder_store, dispatcher):
    controller = ReminderScheduler(reminder_store, dispatcher, catch_up_cron="0 8 * * *", clock=lambda: NOW)
    yield controller
    if controller.scheduler.running:
        controller.scheduler.shutdown(wait=False)


def _job_ids(controller):
    return sorted(job.id for job in controller.scheduler.get_jobs())


class TestStartStop:
    async def test_start_registers_catch_up_and_active_reminders(self, controller, reminder_store):
        reminder_store.reminders = {
            1: make_reminder(id=1),
            2: make_reminder(id=2, frequency="weekly", day_of_week=0, time="10:00"),
            3: make_reminder(id=3, is_active=False),
            4: make_reminder(id=4, frequency="custom", custom_cron="definitely not cron"),
        }

        await controller.start()

        assert controller.state is SchedulerState.RUNNING
        assert controller.scheduler.running
        assert _job_ids(controller) == ["daily_check", "reminder_1", "reminder_2"]
        assert CATCH_UP_JOB in controller.registry

    async def test_start_twice_is_a_warning(self, controller, reminder_store, caplog):
        reminder_store.reminders = {1: make_reminder(id=1)}
        await controller.start()
        await controller.start()

        assert "already running" in caplog.text
        assert _job_ids(controller) == ["daily_check", "reminder_1"]

    async def test_start_survives_store_failure(self, controller, reminder_store):
        reminder_store.fail_loading = True

        await controller.start()

        assert controller.running
        assert _job_ids(controller) == ["daily_check"]

    async def test_stop_cancels_everything_and_is_idempotent(self, controller, reminder_store, caplog):
        reminder_store.reminders = {1: make_reminder(id=1), 2: make_reminder(id=2)}
        await controller.start()

        controller.stop()

        assert controller.state is SchedulerState.STOPPED
        assert len(controller.registry) == 0
        assert controller.scheduler.get_jobs() == []

        controller.stop()
        assert "already stopped" in caplog.text

    async def test_restart_after_stop(self, controller, reminder_store):
        reminder_store.reminders = {1: make_reminder(id=1)}
        await controller.start()
        controller.stop()
        await controller.start()

        assert _job_ids(controller) == ["daily_check", "reminder_1"]

    async def test_stop_while_loading_abandons_start(self, controller, reminder_store, caplog):
        reminder_store.reminders = {1: make_reminder(id=1), 2: make_reminder(id=2)}
        loading = asyncio.Event()
        release = asyncio.Event()
        load_active = reminder_store.find_active_reminders

        async def slow_load():
            loading.set()
            await release.wait()
            return await load_active()

        reminder_store.find_active_reminders = slow_load

        starting = asyncio.ensure_future(controller.start())
        await loading.wait()
        assert controller.state is SchedulerState.STARTING

        controller.stop()
        release.set()
        await starting

        assert controller.state is SchedulerState.STOPPED
        assert len(controller.registry) == 0
        assert not controller.scheduler.running
        assert "stopped during start-up" in caplog.text

        reminder_store.find_active_reminders = load_active
        await controller.start()
        assert _job_ids(controller) == ["daily_check", "reminder_1", "reminder_2"]

    async def test_catch_up_job_runs_the_sweeper(self, controller):
        await controller.start()
        job = controller.registry.get(CATCH_UP_JOB)
        assert job.func == controller.sweeper.sweep


class TestMutations:
    async def test_add_reminder(self, controller):
        await controller.start()

        assert controller.add_reminder(make_reminder(id=8)) is True
        assert "reminder_8" in _job_ids(controller)

    async def test_add_inactive_reminder_schedules_nothing(self, controller):
        await controller.start()

        assert controller.add_reminder(make_reminder(id=8, is_active=False)) is False
        assert _job_ids(controller) == ["daily_check"]

    async def test_update_replaces_job(self, controller):
        await controller.start()
        controller.add_reminder(make_reminder(id=8, frequency="daily"))

        controller.update_reminder(make_reminder(id=8, frequency="monthly", day_of_month=15))

        jobs = [job for job in controller.scheduler.get_jobs() if job.id == "reminder_8"]
        assert len(jobs) == 1
        assert "day='15'" in str(jobs[0].trigger)

    async def test_update_to_inactive_removes_job(self, controller):
        await controller.start()
        controller.add_reminder(make_reminder(id=8))

        assert controller.update_reminder(make_reminder(id=8, is_active=False)) is False
        assert 8 not in controller.registry

    async def test_update_with_bad_cron_leaves_reminder_unscheduled(self, controller):
        await controller.start()
        controller.add_reminder(make_reminder(id=8))

        controller.update_reminder(make_reminder(id=8, frequency="custom", custom_cron="61 25 * * *"))

        assert 8 not in controller.registry

    async def test_remove_reminder(self, controller):
        await controller.start()
        controller.add_reminder(make_reminder(id=8))

        assert controller.remove_reminder(8) is True
        assert controller.remove_reminder(8) is False
        assert _job_ids(controller) == ["daily_check"]

    async def test_other_reminders_are_untouched(self, controller, reminder_store):
        reminder_store.reminders = {1: make_reminder(id=1), 2: make_reminder(id=2)}
        await controller.start()
        before = controller.registry.get(2)

        controller.update_reminder(make_reminder(id=1, time="07:00"))
        controller.remove_reminder(1)

        assert controller.registry.get(2) is before


class TestFire:
    async def test_fire_dispatches_and_advances_next_send(self, controller, reminder_store, email_sender):
        reminder_store.reminders = {1: make_reminder(id=1, frequency="daily", time="20:00")}

        await controller._fire(1)

        assert len(email_sender.sent) == 1
        assert reminder_store.last_fired == {1: NOW}
        assert reminder_store.next_fire_at == {1: datetime(2024, 4, 2, 20, 0, tzinfo=timezone.utc)}

    async def test_fire_uses_trigger_for_custom_next_send(self, controller, reminder_store):
        reminder_store.reminders = {1: make_reminder(id=1, frequency="custom", custom_cron="0 6 * * *")}

        await controller._fire(1)

        assert reminder_store.next_fire_at == {1: datetime(2024, 4, 3, 6, 0, tzinfo=timezone.utc)}

    async def test_fire_for_deleted_reminder_removes_job(self, controller):
        await controller.start()
        controller.add_reminder(make_reminder(id=5))

        await controller._fire(5)

        assert 5 not in controller.registry

    async def test_failed_dispatch_leaves_next_send(self, controller, reminder_store, email_sender):
        email_sender.failing_addresses.add("alice@example.com")
        reminder_store.reminders = {1: make_reminder(id=1)}

        await controller._fire(1)

        assert reminder_store.next_fire_at == {}

    async def test_sweep_after_native_fire_does_not_resend(self, controller, reminder_store, email_sender):
        reminder_store.reminders = {1: make_reminder(id=1, frequency="daily", time="09:00", next_send=NOW)}

        await controller._fire(1)
        await controller.sweeper.sweep(NOW)

        assert len(email_sender.sent) == 1


class TestPassThrough:
    async def test_send_reminder(self, controller, email_sender):
        assert await controller.send_reminder(make_reminder(id=3)) is True
        assert email_sender.sent[0][1] == "reminder"

    async def test_send_monthly_summary(self, controller, email_sender):
        summary = await controller.send_monthly_summary(2, 2024, 3)
        assert summary is not None
        assert email_sender.sent[0][:2] == ("bob@example.com", "monthlySummary")
