"""
Attendance Client — terminal front end
======================================
Logs in to the attendance portal, lists recent biometric records and, with
--live, keeps the list current over the SignalR channel (falls back to
polling when the channel is down).

Only the employee ID and the session cookie are stored on disk. The password
is asked for on every fresh login.

Usage:
    python client.py [--employee-id E001] [--live]
"""

from attendance_core.runner import run

if __name__ == "__main__":
    run()
