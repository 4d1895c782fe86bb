"""
Reading GitHub rate limit headers.
"""

from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional, Union

import httpx

RESOURCE_HEADER = "X-RateLimit-Resource"
RESET_HEADER = "X-RateLimit-Reset"
RETRY_AFTER_HEADER = "Retry-After"

HeaderSource = Optional[Union[httpx.Headers, Mapping[str, str]]]


def _parse_int(value: str) -> Optional[int]:
    try:
        return int(value.strip())
    except ValueError:
        return None


def get_resource(headers: HeaderSource) -> Optional[str]:
    """Name of the limited resource (core, search, graphql...)."""
    return httpx.Headers(headers).get(RESOURCE_HEADER)


def get_rate_limit_reset(
    headers: HeaderSource,
    fallback_seconds: int = 30,
    now: Optional[datetime] = None,
) -> datetime:
    """
    Compute when a rate limited call can be attempted again.

    ``X-RateLimit-Reset`` (epoch seconds) takes precedence over
    ``Retry-After`` (seconds from now). A present but blank, unparsable or
    negative value yields the fallback, as does the absence of both headers.

    Args:
        headers: Headers of the rate limited response.
        fallback_seconds: Delay used when no usable header is found.
        now: Current instant, UTC.

    Returns:
        The reset instant, timezone aware (UTC).
    """
    now = now or datetime.now(timezone.utc)
    fallback = now + timedelta(seconds=fallback_seconds)

    headers = httpx.Headers(headers)
    reset = headers.get(RESET_HEADER)
    if reset is not None:
        epoch = _parse_int(reset)
        if epoch is None or epoch < 0:
            return fallback
        return datetime.fromtimestamp(epoch, tz=timezone.utc)

    retry_after = headers.get(RETRY_AFTER_HEADER)
    if retry_after is not None:
        seconds = _parse_int(retry_after)
        if seconds is None or seconds < 0:
            return fallback
        return now + timedelta(seconds=seconds)

    return fallback
