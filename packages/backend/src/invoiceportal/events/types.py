"""Wire frame type constants.

Learn: Centralizing frame types as constants prevents typos and makes
it easy to discover everything that can travel over the live-update
socket. The values are part of the wire protocol — never rename them.
"""

# ─── Domain events ───────────────────────────────────────

NEW_UPLOAD = "NEW_UPLOAD"
UPLOAD_DELETED = "UPLOAD_DELETED"
REFRESH_DATA = "REFRESH_DATA"

# ─── Heartbeat control frames ────────────────────────────

PING = "PING"
PONG = "PONG"

CONTROL_TYPES = frozenset({PING, PONG})
