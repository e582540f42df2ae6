from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from attendance_core.errors import ServerError, Unauthorized
from attendance_core.models import AccessStatus, AttendancePage, AttendanceRecord, Signal
from attendance_core.monitor import LiveMonitor
from attendance_core.realtime import RealtimeChannel

from conftest import TimerFactory


def _record(record_id):
    return AttendanceRecord(
        record_id=record_id,
        timestamp=datetime(2024, 3, 1, 8, record_id, tzinfo=timezone.utc),
        temperature=36.5,
        employee_id="E001",
        employee_name="Juan",
        machine_name="Gate 1",
        status=AccessStatus.GRANTED,
    )


def _page(*ids):
    return AttendancePage(records=[_record(i) for i in ids], total_count=len(ids))


@pytest.fixture
def fetcher():
    mock = MagicMock()
    mock.fetch.return_value = _page(1)
    return mock


@pytest.fixture
def negotiator():
    mock = MagicMock()
    mock.negotiate.return_value = "tok"
    return mock


@pytest.fixture
def poll_timers():
    return TimerFactory()


@pytest.fixture
def updates():
    return []


@pytest.fixture
def monitor(config, store, sockets, timers, poll_timers, fetcher, negotiator, updates):
    store.set("sessionCookies", "sid=1")
    channel = RealtimeChannel(config, socket_factory=sockets, timer_factory=timers)
    return LiveMonitor(
        "E001", fetcher, channel, negotiator, store,
        on_update=lambda records, added: updates.append((list(records), list(added))),
        poll_interval=30,
        run_async=lambda fn: fn(),
        timer_factory=poll_timers,
    )


def test_start_loads_and_connects(monitor, fetcher, negotiator, sockets, poll_timers):
    assert monitor.start() is True

    fetcher.fetch.assert_called_once_with("E001", length=None)
    negotiator.negotiate.assert_called_once_with("sid=1")
    assert sockets.last.header["Cookie"] == "sid=1"
    assert not monitor.polling
    assert poll_timers.timers == []


def test_connected_triggers_refresh(monitor, fetcher, sockets):
    monitor.start()
    sockets.last.open()
    assert fetcher.fetch.call_count == 2


def test_notification_refresh_reports_new_records(monitor, fetcher, sockets, updates):
    monitor.start()
    sockets.last.open()
    fetcher.fetch.return_value = _page(2, 1)

    sockets.last.receive({"M": [{"H": "biohub", "M": "update", "A": []}]})

    assert monitor.signal_count == 1
    records, added = updates[-1]
    assert [r.record_id for r in added] == [2]
    assert [r.record_id for r in records] == [2, 1]


def test_disconnect_falls_back_to_polling(monitor, fetcher, sockets, poll_timers):
    monitor.start()
    sockets.last.open()
    sockets.last.fail()

    assert monitor.polling
    assert poll_timers.timers[-1].delay == 30

    calls = fetcher.fetch.call_count
    poll_timers.timers[-1].fire()
    assert fetcher.fetch.call_count == calls + 1
    assert len(poll_timers.pending) == 1


def test_reconnect_stops_polling(monitor, sockets, timers, poll_timers):
    monitor.start()
    sockets.last.fail()
    assert monitor.polling

    timers.pending[-1].fire()
    sockets.last.open()

    assert not monitor.polling
    assert poll_timers.pending == []


def test_no_token_means_polling(monitor, negotiator, sockets, poll_timers):
    negotiator.negotiate.return_value = None

    assert monitor.start() is False

    assert sockets.sockets == []
    assert monitor.polling
    assert len(poll_timers.pending) == 1


def test_unauthorized_calls_hook(config, store, sockets, timers, fetcher, negotiator):
    expired = MagicMock()
    fetcher.fetch.side_effect = Unauthorized("Session rejected: HTTP 401", 401)
    channel = RealtimeChannel(config, socket_factory=sockets, timer_factory=timers)
    mon = LiveMonitor("E001", fetcher, channel, negotiator, store,
                      on_unauthorized=expired, run_async=lambda fn: fn(),
                      timer_factory=TimerFactory())

    assert mon.refresh() is None
    expired.assert_called_once_with()


def test_failed_refresh_keeps_previous_records(monitor, fetcher):
    monitor.start()
    fetcher.fetch.side_effect = ServerError("API error: HTTP 500", 500)

    assert monitor.refresh() is None
    assert [r.record_id for r in monitor.feed.records] == [1]


def test_stop_tears_down(monitor, sockets, poll_timers):
    monitor.start()
    sockets.last.fail()
    assert monitor.polling

    monitor.stop()

    assert not monitor.polling
    assert poll_timers.pending == []
    assert len(monitor._channel.dispatcher) == 0


def test_polling_survives_unexpected_refresh_error(monitor, fetcher, negotiator, poll_timers):
    negotiator.negotiate.return_value = None
    monitor.start()
    fetcher.fetch.side_effect = ValueError("year 3170843 is out of range")

    poll_timers.pending[-1].fire()

    assert monitor.polling
    assert len(poll_timers.pending) == 1

    fetcher.fetch.side_effect = None
    fetcher.fetch.return_value = _page(2, 1)
    poll_timers.pending[-1].fire()
    assert [r.record_id for r in monitor.feed.records] == [2, 1]


def test_polling_survives_failing_update_callback(monitor, negotiator, poll_timers):
    negotiator.negotiate.return_value = None
    monitor.start()
    monitor._on_update = MagicMock(side_effect=RuntimeError("display gone"))

    poll_timers.pending[-1].fire()

    assert monitor.polling


def test_notification_refresh_error_is_contained(monitor, fetcher, sockets):
    monitor.start()
    sockets.last.open()
    fetcher.fetch.side_effect = ValueError("bad payload")

    sockets.last.receive({"M": [{"H": "biohub", "M": "update", "A": []}]})

    assert monitor.signal_count == 1
    assert sockets.last.sent[0]["M"] == "Join"
