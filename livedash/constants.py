"""Constants used across livedash.

This module defines shared defaults so the config layer, the controller and
the API server agree on them.
"""

# Node defaults
DEFAULT_LOCAL_NODE = "nonode@nohost"

# Refresh scheduling
DEFAULT_REFRESH_SECONDS = 15
MIN_REFRESH_SECONDS = 1
MAX_REFRESH_SECONDS = 3600
MAX_REFRESH_DIGITS = 6  # longer digit strings are rejected before int()
REFRESH_OPTIONS = (1, 2, 5, 15, 30)

# Capability negotiation must never block a session queue for longer than this
NEGOTIATION_TIMEOUT_S = 5.0

# Routing
HOME_ROUTE = "home"
DASHBOARD_PATH_PREFIX = "/dashboard"
NODE_PARAM = "node"
PAGE_PARAM = "page"
INFO_PARAM = "info"
DETAIL_PARAM = "detail"  # Alias accepted for INFO_PARAM

# API server
API_TCP_HOST = "127.0.0.1"
API_TCP_PORT = 4000
API_WS_PING_INTERVAL_S = 20.0
API_WS_PING_TIMEOUT_S = 20.0
API_TIMEOUT_KEEP_ALIVE_S = 5

# Session runner shutdown
RUNNER_STOP_TIMEOUT_S = 5.0

# Peer liveness
PEER_HEARTBEAT_INTERVAL_S = 30.0
PEER_HEALTH_TIMEOUT_S = 2.0
PEER_OFFLINE_THRESHOLD = 2  # consecutive failed polls before a peer is marked down
