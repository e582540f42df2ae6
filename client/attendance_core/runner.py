"""
Entry point: login (or reuse the stored session), list records, live mode.
"""

import argparse
import getpass
import sys
import threading
from datetime import datetime

from .constants import CLIENT_VERSION, LOGIN_FAILED_MESSAGE
from .config import log, safe_print, setup_logging, load_config
from .attendance import AttendanceFetcher, month_name
from .auth import SessionAuthenticator
from .http_client import create_session
from .models import Signal
from .monitor import LiveMonitor
from .negotiate import TokenNegotiator
from .realtime import RealtimeChannel
from .store import JsonFileStore


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="attendance-client",
        description="Attendance records with live updates.",
    )
    parser.add_argument("--employee-id", help="log in as this employee (prompts for password)")
    parser.add_argument("--live", action="store_true", help="keep running and show new records")
    parser.add_argument("--logout", action="store_true", help="forget the stored session and exit")
    parser.add_argument("--length", type=int, help="number of records to fetch")
    parser.add_argument("--year", type=int)
    parser.add_argument("--month", type=month_name, help="month name or number, e.g. March or 3")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


# ─── Output ──────────────────────────────────────────────────────

def format_record(record):
    stamp = record.timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S") if record.timestamp else "?"
    temp = f"{record.temperature:.1f}" if record.temperature is not None else "N/A"
    status = "GRANTED" if record.granted else "DENIED"
    return f"{stamp:<19}  {temp:>5}  {status:<7}  {record.machine_name:<18}  {record.employee_name}"


def summarize(records, today=None):
    """Counts shown above the table: (records from today, denied records)."""
    today = today or datetime.now().astimezone().date()
    today_count = sum(
        1 for r in records if r.timestamp and r.timestamp.astimezone().date() == today
    )
    denied = sum(1 for r in records if not r.granted)
    return today_count, denied


def print_records(records, title="Attendance"):
    today_count, denied = summarize(records)
    safe_print(f"\n{title} ({len(records)} records, {today_count} today, {denied} denied)")
    safe_print("-" * 78)
    for record in records:
        safe_print(format_record(record))
    safe_print("-" * 78)


# ─── Session ─────────────────────────────────────────────────────

def ensure_session(auth, employee_id=None):
    """
    Reuse the stored session when it still works; otherwise prompt for the
    password and log in. Returns the employee ID or None.
    """
    stored = auth.stored_identity()
    if employee_id is None and stored and auth.session_cookie():
        if auth.test_access(stored):
            log.info("Reusing stored session for %s", stored)
            return stored
        log.info("Stored session for %s expired, please log in again", stored)

    employee_id = employee_id or stored
    if not employee_id:
        employee_id = input("Employee ID: ").strip()
    if not employee_id:
        safe_print("Employee ID is required.")
        return None

    password = getpass.getpass(f"Password for {employee_id}: ")
    if not password:
        safe_print("Password is required.")
        return None
    if not auth.login(employee_id, password):
        safe_print(LOGIN_FAILED_MESSAGE)
        return None
    return employee_id


# ─── Live mode ───────────────────────────────────────────────────

def _print_signal(signal, payload):
    if signal is Signal.CONNECTED:
        safe_print("● Real-time active")
    elif signal is Signal.RECONNECTING:
        safe_print(f"○ Reconnecting (attempt {payload['attempt']}, {payload['delay_ms'] // 1000}s)")
    elif signal is Signal.CONNECTION_FAILED:
        safe_print(f"○ {payload['error']}. Auto-refresh only.")


def _print_update(records, added):
    now = datetime.now().strftime("%H:%M:%S")
    if added:
        for record in added:
            safe_print(f"[{now}] NEW  {format_record(record)}")
    else:
        safe_print(f"[{now}] refreshed ({len(records)} records)")


def run_live(config, store, auth, fetcher, employee_id, length=None):
    """Run the live monitor until Ctrl+C, re-authenticating when the session expires."""
    while True:
        expired = threading.Event()
        channel = RealtimeChannel(config)
        channel.add_subscriber(_print_signal)
        monitor = LiveMonitor(
            employee_id,
            fetcher,
            channel,
            TokenNegotiator(config, create_session(retry=True)),
            store,
            on_update=_print_update,
            on_unauthorized=expired.set,
            poll_interval=config.get("pollIntervalSec"),
            length=length,
        )
        try:
            monitor.start()
            safe_print("Live updates running. Ctrl+C to stop.")
            while not expired.wait(1):
                pass
        finally:
            monitor.stop()

        safe_print("Session expired.")
        if ensure_session(auth, employee_id) is None:
            return 1


def main(argv=None):
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)
    log.info("Attendance client v%s", CLIENT_VERSION)

    config = load_config()
    store = JsonFileStore()
    session = create_session()
    auth = SessionAuthenticator(config, store, session)

    if args.logout:
        auth.logout()
        safe_print("Logged out.")
        return 0

    employee_id = ensure_session(auth, args.employee_id)
    if not employee_id:
        return 1

    fetcher = AttendanceFetcher(config, store, session)
    page = fetcher.fetch_or_none(
        employee_id, length=args.length, year=args.year, month=args.month,
    )
    if page is None:
        safe_print("Could not load attendance records.")
    else:
        print_records(page.records, f"Attendance for {employee_id} ({page.total_count} total)")

    if not args.live:
        return 0 if page is not None else 1

    try:
        return run_live(config, store, auth, fetcher, employee_id, args.length)
    except KeyboardInterrupt:
        safe_print("\nStopped.")
        return 0


def run():
    sys.exit(main())
