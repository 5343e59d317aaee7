"""Mock GitHub rate limit fixtures.

Headers as returned on every contents API response, plus the
GET /rate_limit payload used by the rate-limit command.

See: https://docs.github.com/en/rest/rate-limit/rate-limit
"""

import time

# -----------------------------------------------------------------------------
# Helper to generate reset timestamps
# -----------------------------------------------------------------------------


def future_reset_timestamp(seconds_from_now: int = 3600) -> int:
    """Generate a Unix timestamp for reset time in the future."""
    return int(time.time()) + seconds_from_now


# -----------------------------------------------------------------------------
# Full Rate Limit API Response (GET /rate_limit)
# -----------------------------------------------------------------------------

RATE_LIMIT_RESPONSE_HEALTHY = {
    "resources": {
        "core": {
            "limit": 5000,
            "remaining": 4500,
            "used": 500,
            "reset": future_reset_timestamp(3600),
        },
        "search": {
            "limit": 30,
            "remaining": 28,
            "used": 2,
            "reset": future_reset_timestamp(60),
        },
    },
    "rate": {
        "limit": 5000,
        "remaining": 4500,
        "used": 500,
        "reset": future_reset_timestamp(3600),
    },
}


# -----------------------------------------------------------------------------
# Response Headers (returned on every API call)
# -----------------------------------------------------------------------------


def make_rate_limit_headers(
    remaining: int = 4999,
    limit: int = 5000,
    used: int = 1,
    reset_in_seconds: int = 3600,
    resource: str = "core",
) -> dict[str, str]:
    """Create rate limit headers as returned by GitHub API.

    Args:
        remaining: Requests remaining in window
        limit: Maximum requests allowed
        used: Requests used in window
        reset_in_seconds: Seconds until reset (negative for a reset in the past)
        resource: Rate limit resource pool

    Returns:
        Dict of header name -> value (all strings)
    """
    return {
        "x-ratelimit-limit": str(limit),
        "x-ratelimit-remaining": str(remaining),
        "x-ratelimit-used": str(used),
        "x-ratelimit-reset": str(int(time.time()) + reset_in_seconds),
        "x-ratelimit-resource": resource,
    }


# Pre-built header fixtures for common scenarios
HEADERS_HEALTHY = make_rate_limit_headers(
    remaining=4500, limit=5000, used=500, reset_in_seconds=3600
)

HEADERS_LOW = make_rate_limit_headers(
    remaining=5, limit=5000, used=4995, reset_in_seconds=600
)

# Exhausted quota whose reset has already passed, so the pause is the minimum wait
HEADERS_EXHAUSTED_RESET_PASSED = make_rate_limit_headers(
    remaining=0, limit=5000, used=5000, reset_in_seconds=-60
)


# -----------------------------------------------------------------------------
# Edge Cases
# -----------------------------------------------------------------------------

# Headers with missing fields (partial response)
HEADERS_PARTIAL = {
    "x-ratelimit-remaining": "100",
    "x-ratelimit-limit": "5000",
    # Missing: used, reset, resource
}

# Headers with malformed values
HEADERS_MALFORMED = {
    "x-ratelimit-remaining": "lots",
    "x-ratelimit-limit": "5000",
    "x-ratelimit-reset": "",
}
