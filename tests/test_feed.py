from datetime import datetime, timedelta, timezone

from attendance_core.feed import RecordFeed, new_records
from attendance_core.models import AccessStatus, AttendancePage, AttendanceRecord

T0 = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


def _record(minutes, status=AccessStatus.GRANTED, employee_id="E001"):
    return AttendanceRecord(
        record_id=minutes,
        timestamp=T0 + timedelta(minutes=minutes),
        temperature=36.4,
        employee_id=employee_id,
        employee_name="Juan",
        machine_name="Gate 1",
        status=status,
    )


def _page(*records):
    return AttendancePage(records=list(records), total_count=len(records))


def test_new_records_by_key():
    old = [_record(0), _record(1)]
    current = [_record(2), _record(1), _record(0), _record(1, AccessStatus.DENIED)]

    added = new_records(old, current)

    assert [(r.record_id, r.status) for r in added] == [
        (2, AccessStatus.GRANTED), (1, AccessStatus.DENIED),
    ]


def test_first_commit_reports_nothing_new():
    feed = RecordFeed()
    seq = feed.next_sequence()

    assert feed.commit(seq, _page(_record(0), _record(1))) == []
    assert feed.total_count == 2
    assert feed.last_updated is not None


def test_later_commit_reports_added():
    feed = RecordFeed()
    feed.commit(feed.next_sequence(), _page(_record(0)))

    added = feed.commit(feed.next_sequence(), _page(_record(1), _record(0)))

    assert [r.record_id for r in added] == [1]


def test_stale_result_is_discarded():
    feed = RecordFeed()
    slow = feed.next_sequence()
    fast = feed.next_sequence()

    assert feed.commit(fast, _page(_record(5))) == []
    assert feed.commit(slow, _page(_record(0))) is None
    assert [r.record_id for r in feed.records] == [5]
    assert feed.committed_sequence == fast
