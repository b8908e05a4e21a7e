"""Tests for the schedule slot and schedule types."""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from clinicsend.errors import ScheduleParseError
from clinicsend.scheduling import JobInput, JobRecord, ScheduleStore, parse_zoned
from clinicsend.scheduling.types import format_zoned

DHAKA = ZoneInfo("Asia/Dhaka")


@pytest.fixture
def store(tmp_path) -> ScheduleStore:
    return ScheduleStore(tmp_path / "one_time_schedule.txt")


class TestScheduleStore:
    """Tests for ScheduleStore."""

    def test_read_missing_is_absent(self, store):
        assert store.read() is None

    def test_save_then_read(self, store):
        assert store.save("2026-01-12T09:00:00+06:00")
        assert store.read() == "2026-01-12T09:00:00+06:00"

    def test_save_overwrites(self, store):
        store.save("2026-01-12T09:00:00+06:00")
        store.save("2026-01-13T10:30:00+06:00")
        assert store.read() == "2026-01-13T10:30:00+06:00"

    def test_read_strips_whitespace(self, store):
        store.schedule_file.write_text("  2026-01-12T09:00:00+06:00\n")
        assert store.read() == "2026-01-12T09:00:00+06:00"

    def test_clear_reads_as_absent(self, store):
        store.save("2026-01-12T09:00:00+06:00")
        assert store.clear()
        assert store.read() is None

    def test_blank_reads_as_absent(self, store):
        store.schedule_file.write_text("   \n")
        assert store.read() is None

    def test_save_failure_returns_false(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        assert ScheduleStore(blocker / "slot.txt").save("x") is False

    def test_read_datetime_raises_on_garbage(self, store):
        store.save("not a date")
        with pytest.raises(ScheduleParseError):
            store.read_datetime()

    def test_read_datetime(self, store):
        store.save("2026-01-12T09:00:00+06:00")
        value = store.read_datetime()
        assert value == datetime(2026, 1, 12, 9, 0, tzinfo=DHAKA)


class TestParseZoned:
    """Tests for parse_zoned()."""

    def test_offset(self):
        value = parse_zoned("2026-01-12T09:00:00+06:00")
        assert value.utcoffset() == timedelta(hours=6)

    def test_zone_id_suffix(self):
        value = parse_zoned("2026-01-12T09:00+06:00[Asia/Dhaka]")
        assert value.tzinfo == DHAKA
        assert value.hour == 9

    def test_naive_uses_default_zone(self):
        value = parse_zoned("2026-01-12T09:00:00", DHAKA)
        assert value.tzinfo == DHAKA

    def test_unknown_zone_id(self):
        with pytest.raises(ScheduleParseError):
            parse_zoned("2026-01-12T09:00+06:00[Nowhere/Nothing]")

    def test_garbage(self):
        with pytest.raises(ScheduleParseError):
            parse_zoned("tomorrow morning")

    def test_parse_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_zoned("")

    def test_format_requires_aware(self):
        with pytest.raises(ValueError):
            format_zoned(datetime(2026, 1, 12, 9, 0))


class TestJobRecord:
    """Tests for JobRecord persistence format."""

    def test_to_dict_uses_input_keys(self):
        record = JobRecord(
            name="job",
            run_at=datetime(2026, 1, 12, 9, 0, tzinfo=DHAKA),
            input=JobInput(
                payload_json="{}", scheduled_iso="2026-01-12T09:00:00+06:00"
            ),
        )
        data = record.to_dict()
        assert data["input"] == {
            "payloadJson": "{}",
            "scheduledIso": "2026-01-12T09:00:00+06:00",
            "attempt": 0,
        }
        assert JobRecord.from_dict("job", data) == record

    def test_missing_payload_stays_none(self):
        job_input = JobInput.from_dict({"scheduledIso": "x", "attempt": "bad"})
        assert job_input.payload_json is None
        assert job_input.attempt == 0

    def test_malformed_record_is_none(self):
        assert JobRecord.from_dict("job", {"run_at": "soon"}) is None
        assert JobRecord.from_dict("job", {"input": {}}) is None
