"""
attendance_core — Attendance client with live updates v1.2
==========================================================
Architecture: explicitly constructed components, no module-level singletons.

  constants.py    → Endpoints, SignalR values, timeouts, reconnect policy
  config.py       → Paths, logging, config load/save, safe_print
  errors.py       → Error taxonomy (auth / fetch / channel)
  http_client.py  → requests sessions with pooling, CA bundle, retry policy
  store.py        → Credential store (JSON file, in-memory)
  models.py       → SessionArtifacts, AttendanceRecord, enums
  auth.py         → SessionAuthenticator (token handshake, login/logout)
  attendance.py   → AttendanceFetcher (DataTables query + row parsing)
  feed.py         → RecordFeed (sequence-guarded latest record set)
  negotiate.py    → SignalR connection-token negotiation
  dispatcher.py   → NotificationDispatcher (ordered, isolated fan-out)
  realtime.py     → RealtimeChannel (state machine, bounded reconnects)
  monitor.py      → LiveMonitor (refresh on signals, polling fallback)
  runner.py       → main() CLI
"""
