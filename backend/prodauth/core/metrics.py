"""Prometheus metrics shared by the app and the auth routes"""

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNT = Counter(
    "prodauth_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "prodauth_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
LOGIN_FAILURES = Counter("prodauth_login_failures_total", "Failed login attempts")
LOGIN_LOCKOUTS = Counter(
    "prodauth_login_lockouts_total",
    "Login attempts rejected by the failed-login gate",
    ["scope"],
)
REFRESH_REPLAYS = Counter(
    "prodauth_refresh_replays_total",
    "Refresh token reuse detections (each revokes a token family)",
)
ACCESS_DENIED = Counter(
    "prodauth_project_access_denied_total",
    "Project authorization failures",
    ["reason"],
)
WORKER_UP_GAUGE = Gauge(
    "prodauth_worker_up",
    "Background worker liveness (1 running, 0 stopped)",
    ["worker"],
)
