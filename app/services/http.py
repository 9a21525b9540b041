"""Shared JSON GET helper used by every catalog adapter."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from ..concurrency import RateLimiter
from ..outcome import Err, ErrorKind, Ok, Outcome

logger = logging.getLogger(__name__)


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    source: str,
    limiter: RateLimiter | None = None,
    params: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
    follow_redirects: bool = False,
) -> Outcome[Any]:
    """Issue a single GET and decode its JSON body.

    Failures are logged and reported as ``Err`` values; nothing is retried.
    """

    if limiter is not None:
        await limiter.acquire(source)

    try:
        response = await client.get(
            url,
            params=params,
            headers=headers,
            follow_redirects=follow_redirects,
        )
    except httpx.HTTPError as exc:
        logger.warning("%s request to %s failed: %s", source, url, exc)
        return Err(ErrorKind.NETWORK_FAILURE, str(exc))

    if response.status_code == 404:
        logger.info("%s returned 404 for %s", source, url)
        return Err(ErrorKind.NOT_FOUND, url)
    if not response.is_success:
        logger.warning(
            "%s request to %s returned %s", source, url, response.status_code
        )
        return Err(ErrorKind.BAD_STATUS, str(response.status_code))

    try:
        return Ok(response.json())
    except ValueError:
        logger.warning("Unexpected non-JSON %s response for %s", source, url)
        return Err(ErrorKind.PARSE_FAILURE, url)


def unexpected_shape(source: str, url: str) -> Err:
    logger.warning("Unexpected %s response structure for %s", source, url)
    return Err(ErrorKind.PARSE_FAILURE, url)
