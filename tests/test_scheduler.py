"""Tests for the scheduler and the scheduled submission flow."""

from datetime import datetime, timedelta

import httpx
import pytest

from clinicsend.errors import PastScheduleError
from clinicsend.scheduling import (
    UNIQUE_JOB_NAME,
    DeferredJobQueue,
    JobInput,
    Scheduler,
    ScheduleStore,
    SubmissionWorker,
    WorkResult,
)
from tests.conftest import (
    UTC_ZONE,
    GateSleep,
    RecordingNotifier,
    RecordingSleep,
    mock_transport,
)


@pytest.fixture
def build(tmp_path, clock, make_client):
    """Wire a scheduler around a mock transport."""

    def factory(transport=None, queue_sleep=None, worker_sleep=None):
        client = make_client(transport or mock_transport(200, "saved"))
        worker = SubmissionWorker(
            client,
            RecordingNotifier(),
            fallback_payload=lambda: "{}",
            sleep=worker_sleep or RecordingSleep(),
        )
        queue = DeferredJobQueue(
            tmp_path / "jobs.json",
            runner=worker.run,
            sleep=queue_sleep or RecordingSleep(),
        )
        store = ScheduleStore(tmp_path / "one_time_schedule.txt")
        return Scheduler(store, queue, client, timezone=UTC_ZONE, now=clock)

    return factory


async def idle_runner(job_input, still_owned):
    return WorkResult.SUCCESS


class TestScheduleAt:
    """Tests for Scheduler.schedule_at()."""

    def test_past_time_is_rejected_without_side_effects(self, build, clock, tmp_path):
        scheduler = build()

        with pytest.raises(PastScheduleError, match="Pick a future time"):
            scheduler.schedule_at(clock() - timedelta(minutes=1), "{}")

        assert scheduler.store.read() is None
        assert scheduler.pending() is None
        assert not (tmp_path / "jobs.json").exists()
        assert not (tmp_path / "one_time_schedule.txt").exists()

    def test_now_is_rejected(self, build, clock):
        scheduler = build()
        with pytest.raises(ValueError):
            scheduler.schedule_at(clock(), "{}")

    def test_persists_time_and_job(self, build, clock):
        scheduler = build()
        target = clock() + timedelta(hours=1)

        assert scheduler.schedule_at(target, '{"a": 1}')

        assert scheduler.store.read() == target.isoformat()
        record = scheduler.pending()
        assert record.name == UNIQUE_JOB_NAME
        assert record.input.payload_json == '{"a": 1}'
        assert record.input.scheduled_iso == target.isoformat()
        assert record.input.attempt == 0

    def test_naive_time_uses_scheduler_timezone(self, build, clock):
        scheduler = build()
        naive = (clock() + timedelta(hours=1)).replace(tzinfo=None)

        scheduler.schedule_at(naive, "{}")

        assert scheduler.store.read() == naive.replace(tzinfo=UTC_ZONE).isoformat()

    def test_second_schedule_supersedes_first(self, build, clock):
        scheduler = build()
        first = clock() + timedelta(hours=1)
        second = clock() + timedelta(hours=2)

        scheduler.schedule_at(first, "first")
        scheduler.schedule_at(second, "second")

        assert scheduler.store.read() == second.isoformat()
        assert scheduler.pending().input.payload_json == "second"

    def test_cancel_leaves_stored_time(self, build, clock):
        scheduler = build()
        scheduler.schedule_at(clock() + timedelta(hours=1), "{}")

        assert scheduler.cancel()

        assert scheduler.pending() is None
        assert scheduler.store.read() is not None


class TestScheduledSubmission:
    """End-to-end runs of a scheduled job."""

    async def test_success_records_history_and_clears_slot(
        self, build, clock, history
    ):
        queue_sleep = RecordingSleep()
        scheduler = build(queue_sleep=queue_sleep)

        scheduler.schedule_at(clock() + timedelta(seconds=5), '{"PatientName": "A"}')
        result = await scheduler.wait()

        assert result is WorkResult.SUCCESS
        assert 0 < queue_sleep.calls[0] <= 5
        entries = history.read()
        assert len(entries) == 1
        assert entries[0].status == "200"
        assert entries[0].summary.patient_name == "A"
        assert scheduler.store.read() is None
        assert scheduler.pending() is None

    async def test_persistent_failure_exhausts_retries(self, build, clock, history):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        worker_sleep = RecordingSleep()
        scheduler = build(
            transport=httpx.MockTransport(handler), worker_sleep=worker_sleep
        )

        scheduler.schedule_at(clock() + timedelta(seconds=5), "{}")
        result = await scheduler.wait()

        assert result is WorkResult.FAILURE
        assert worker_sleep.calls == [30.0, 30.0]
        entries = history.read()
        assert len(entries) == 3
        assert all(e.is_error for e in entries)
        assert scheduler.store.read() is None

    async def test_superseded_job_never_sends(self, build, clock, history):
        gate = GateSleep()
        scheduler = build(queue_sleep=gate)

        old, new = '{"PatientName": "old"}', '{"PatientName": "new"}'
        scheduler.schedule_at(clock() + timedelta(minutes=1), old)
        await gate.entered.wait()
        scheduler.schedule_at(clock() + timedelta(minutes=2), new)
        gate.release()

        assert await scheduler.wait() is WorkResult.SUCCESS
        assert [e.summary.patient_name for e in history.read()] == ["new"]

    async def test_cancel_during_backoff_stops_further_attempts(
        self, build, clock, history
    ):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        backoff = GateSleep()
        scheduler = build(
            transport=httpx.MockTransport(handler), worker_sleep=backoff
        )

        scheduler.schedule_at(clock() + timedelta(seconds=1), "{}")
        await backoff.entered.wait()

        assert scheduler.cancel()
        scheduler.store.clear()
        backoff.release()

        assert await scheduler.wait() is None
        assert len(history.read()) == 1
        assert scheduler.store.read() is None

    async def test_cancel_from_other_process_stops_retries(
        self, build, clock, history, tmp_path
    ):
        posts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal posts
            posts += 1
            raise httpx.ConnectError("refused", request=request)

        backoff = GateSleep()
        scheduler = build(
            transport=httpx.MockTransport(handler), worker_sleep=backoff
        )
        scheduler.schedule_at(clock() + timedelta(seconds=1), "{}")
        await backoff.entered.wait()

        other = DeferredJobQueue(tmp_path / "jobs.json", runner=idle_runner)
        assert other.cancel_unique(UNIQUE_JOB_NAME)
        backoff.release()

        assert await scheduler.wait() is None
        assert posts == 1
        assert len(history.read()) == 1

    async def test_replace_from_other_process_stops_old_retries(
        self, build, clock, history, tmp_path
    ):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        backoff = GateSleep()
        scheduler = build(
            transport=httpx.MockTransport(handler), worker_sleep=backoff
        )
        scheduler.schedule_at(clock() + timedelta(seconds=1), "old")
        await backoff.entered.wait()

        other_sleep = GateSleep()
        other = DeferredJobQueue(
            tmp_path / "jobs.json", runner=idle_runner, sleep=other_sleep
        )
        new_input = JobInput("new", "2026-01-12T10:00:00+00:00")
        other.enqueue_unique(UNIQUE_JOB_NAME, timedelta(hours=1), new_input)
        scheduler.store.save("2026-01-12T10:00:00+00:00")
        backoff.release()

        assert await scheduler.wait() is None
        assert len(history.read()) == 1
        assert scheduler.pending().input.payload_json == "new"
        assert scheduler.store.read() == "2026-01-12T10:00:00+00:00"
        await other.shutdown()

    async def test_error_then_success_records_both_attempts(
        self, build, clock, history
    ):
        posts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal posts
            posts += 1
            if posts == 1:
                raise httpx.ReadTimeout("timeout", request=request)
            return httpx.Response(200, text="saved")

        worker_sleep = RecordingSleep()
        scheduler = build(
            transport=httpx.MockTransport(handler), worker_sleep=worker_sleep
        )

        scheduler.schedule_at(clock() + timedelta(seconds=5), "{}")
        result = await scheduler.wait()

        assert result is WorkResult.SUCCESS
        assert worker_sleep.calls == [30.0]
        entries = history.read()
        assert len(entries) == 2
        assert entries[0].status == "200"
        assert entries[1].is_error
        assert entries[1].response_body == "timeout"
        assert scheduler.store.read() is None
        assert scheduler.pending() is None

    async def test_restore_runs_saved_job(self, build, clock, tmp_path):
        scheduler = build()
        scheduler.schedule_at(clock() + timedelta(minutes=1), "{}")
        await scheduler.queue.shutdown()

        restarted = build()
        assert await restarted.restore()
        assert await restarted.wait() is WorkResult.SUCCESS
        assert restarted.store.read() is None


class TestSendNow:
    """Tests for the immediate send path."""

    async def test_single_attempt_even_on_error(self, build, history):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            raise httpx.ConnectError("refused", request=request)

        scheduler = build(transport=httpx.MockTransport(handler))

        result = await scheduler.send_now("{}")

        assert result == "Error: refused"
        assert calls == 1
        assert len(history.read()) == 1

    async def test_returns_status_and_body(self, build):
        scheduler = build(transport=mock_transport(201, "created"))
        assert await scheduler.send_now("{}") == "Status: 201\ncreated"


def test_scheduler_clock_defaults_to_now(tmp_path, make_client):
    async def runner(job_input, still_owned):
        return WorkResult.SUCCESS

    client = make_client(mock_transport())
    queue = DeferredJobQueue(tmp_path / "jobs.json", runner=runner)
    scheduler = Scheduler(
        ScheduleStore(tmp_path / "slot.txt"), queue, client, timezone=UTC_ZONE
    )
    with pytest.raises(PastScheduleError):
        scheduler.schedule_at(datetime(2000, 1, 1, tzinfo=UTC_ZONE), "{}")
