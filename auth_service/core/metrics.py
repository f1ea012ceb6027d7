# auth_service/core/metrics.py
from prometheus_client import Counter

REFRESH_REUSE = Counter(
    "auth_refresh_token_reuse_total",
    "Refresh tokens presented again after they were rotated.",
)
REFRESH_FAILURES = Counter(
    "auth_refresh_token_failures_total",
    "Refresh token validation failures by reason.",
    ["reason"],
)
PROVIDER_FAILURES = Counter(
    "auth_provider_verification_failures_total",
    "Identity provider verification failures.",
    ["provider", "kind"],
)
