from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from attendance_core import runner
from attendance_core.models import AccessStatus, AttendanceRecord


@pytest.fixture
def auth():
    mock = MagicMock()
    mock.stored_identity.return_value = "E001"
    mock.session_cookie.return_value = "sid=1"
    return mock


def test_reuses_working_session(auth, monkeypatch):
    monkeypatch.setattr(runner.getpass, "getpass", MagicMock(side_effect=AssertionError("prompted")))
    auth.test_access.return_value = True

    assert runner.ensure_session(auth) == "E001"
    auth.login.assert_not_called()


def test_expired_session_prompts_for_password(auth, monkeypatch):
    monkeypatch.setattr(runner.getpass, "getpass", lambda prompt: "pw")
    auth.test_access.return_value = False
    auth.login.return_value = True

    assert runner.ensure_session(auth) == "E001"
    auth.login.assert_called_once_with("E001", "pw")


def test_failed_login_prints_message(auth, monkeypatch, capsys):
    monkeypatch.setattr(runner.getpass, "getpass", lambda prompt: "wrong")
    auth.login.return_value = False

    assert runner.ensure_session(auth, "E009") is None
    assert "Login failed" in capsys.readouterr().out


def test_format_record():
    record = AttendanceRecord(
        record_id=1,
        timestamp=datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc),
        temperature=None,
        employee_id="E001",
        employee_name="Juan",
        machine_name="Gate 1",
        status=AccessStatus.DENIED,
    )
    line = runner.format_record(record)
    assert "N/A" in line
    assert "DENIED" in line
    assert line.endswith("Juan")


def test_logout_flag(tmp_path, monkeypatch):
    monkeypatch.setenv("ATTENDANCE_HOME", str(tmp_path))
    monkeypatch.setattr(runner, "setup_logging", lambda verbose=False: None)
    (tmp_path / "session.json").write_text('{"employeeId": "E001", "sessionCookies": "sid=1"}')

    assert runner.main(["--logout"]) == 0
    assert (tmp_path / "session.json").read_text().strip() == "{}"


def test_summary_counts_today_and_denied():
    now = datetime.now(timezone.utc)
    records = [
        AttendanceRecord(1, now, 36.5, "E001", "Juan", "Gate 1", AccessStatus.GRANTED),
        AttendanceRecord(2, now, 36.5, "E001", "Juan", "Gate 1", AccessStatus.DENIED),
        AttendanceRecord(3, datetime(2020, 1, 1, tzinfo=timezone.utc), None,
                         "E001", "Juan", "Gate 1", AccessStatus.DENIED),
        AttendanceRecord(4, None, None, "E001", "Juan", "Gate 1", AccessStatus.GRANTED),
    ]
    assert runner.summarize(records) == (2, 2)


def test_month_argument_accepts_numbers():
    assert runner.parse_args(["--month", "3"]).month == "March"
    assert runner.parse_args(["--month", "june"]).month == "June"
    with pytest.raises(SystemExit):
        runner.parse_args(["--month", "13"])
