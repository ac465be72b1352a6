"""
Retrying HTTP helpers for the Etherscan and JSON-RPC adapters.

One backoff loop serves both verbs.  Attempt *n* (0-based) waits
``backoff_base * 2**n`` before the next one, or the server's
``Retry-After`` on a 429.  403 is final: it means a bad key or a method
the endpoint refuses, and retrying only burns quota.

Neither helper raises for network or protocol trouble; callers get
``None`` and take their degraded path.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

logger = logging.getLogger(__name__)

# Flags a 200 body that is really a quota notice (Etherscan does this).
BodyPredicate = Callable[[Any], bool]

_GIVE_UP = object()
_RETRY = object()


def _retry_after(resp: httpx.Response, fallback: float) -> float:
    """Seconds from a numeric ``Retry-After`` header, else *fallback*."""
    value = resp.headers.get("retry-after")
    if value is None:
        return fallback
    try:
        return max(float(value), 0.5)
    except (TypeError, ValueError):
        return fallback


async def _with_backoff(
    send: Callable[[], Awaitable[httpx.Response]],
    read: Callable[[Any], Any],
    *,
    max_retries: int,
    backoff_base: float,
    label: str,
) -> Optional[Any]:
    """Run *send* until *read* accepts the decoded body.

    *read* returns the value to hand back, ``_RETRY`` to try again or
    ``_GIVE_UP`` to stop with ``None``.
    """
    for attempt in range(max_retries):
        delay = backoff_base * (2 ** attempt)
        try:
            resp = await send()
            if resp.status_code == 403:
                logger.warning("%s refused (403), not retrying", label)
                return None
            if resp.status_code == 429:
                delay = _retry_after(resp, delay)
                logger.warning("%s got 429, backing off %.1fs", label, delay)
            else:
                resp.raise_for_status()
                outcome = read(resp.json())
                if outcome is _GIVE_UP:
                    return None
                if outcome is not _RETRY:
                    return outcome
        except httpx.HTTPStatusError as exc:
            logger.warning("%s answered HTTP %d", label, exc.response.status_code)
        except httpx.RequestError as exc:
            logger.warning("%s transport error: %s", label, exc)
        except ValueError as exc:
            logger.warning("%s body is not JSON: %s", label, exc)
        if attempt + 1 < max_retries:
            await asyncio.sleep(delay)
    logger.warning("%s failed after %d attempts", label, max_retries)
    return None


async def async_http_get(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: Optional[dict[str, Any]] = None,
    max_retries: int = 3,
    backoff_base: float = 1.0,
    label: str = "HTTP",
    is_throttled: Optional[BodyPredicate] = None,
) -> Optional[Any]:
    """GET *url* and return the decoded JSON body, or ``None``.

    A body for which *is_throttled* is true is retried like a 429.
    """

    def read(body: Any) -> Any:
        if is_throttled is not None and is_throttled(body):
            logger.warning("%s throttled by quota notice", label)
            return _RETRY
        return body

    return await _with_backoff(
        lambda: client.get(url, params=params), read,
        max_retries=max_retries, backoff_base=backoff_base, label=label,
    )


async def async_http_post_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    json_payload: Any,
    max_retries: int = 3,
    backoff_base: float = 1.5,
    label: str = "RPC",
) -> Optional[Any]:
    """POST a JSON-RPC request and return its ``result`` member.

    A JSON-RPC ``error`` (revert, unknown method) is deterministic, so it
    yields ``None`` straight away.
    """

    def read(body: Any) -> Any:
        if "error" in body:
            logger.warning("%s error: %s", label, body["error"])
            return _GIVE_UP
        return body.get("result")

    return await _with_backoff(
        lambda: client.post(url, json=json_payload), read,
        max_retries=max_retries, backoff_base=backoff_base, label=label,
    )
