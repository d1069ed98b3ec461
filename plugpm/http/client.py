# plugpm/http/client.py
from __future__ import annotations
import asyncio
import json
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Any, TypeVar

import httpx

logger = logging.getLogger(__name__)

__all__ = [
    "RETRYABLE_STATUSES",
    "HTTPError",
    "RetryPolicy",
    "HttpResponse",
    "retryAfterSeconds",
    "request",
    "download",
]

T = TypeVar("T")

# Transient statuses worth another attempt
RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})



class HTTPError(Exception):
    """Non-2xx/3xx response. `retryAfter` keeps the raw Retry-After header."""
    def __init__(self, status: int, body: str, *, url: str = "", retryAfter: str | None = None):
        super().__init__(f"HTTP {status}: {body[:200]}")
        self.status = status
        self.body = body
        self.url = url
        self.retryAfter = retryAfter

    @property
    def retryable(self) -> bool:
        return self.status in RETRYABLE_STATUSES



def retryAfterSeconds(value: str | None) -> float | None:
    """Seconds requested by a Retry-After header (delta-seconds or HTTP-date), None if unusable."""
    if not value:
        return None
    value = value.strip()
    if value.lstrip("-").replace(".", "", 1).isdigit():
        seconds = float(value)
        return seconds if seconds >= 0 else None
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())



@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Total deadline per attempt plus bounded retries with exponential backoff (±25% jitter)."""
    timeoutMs: int = 30_000
    retries: int = 2
    backoffBaseMs: int = 250
    backoffMaxMs: int = 1_000

    @property
    def deadlineSeconds(self) -> float:
        return max(1, self.timeoutMs) / 1_000

    def timeout(self) -> httpx.Timeout:
        """Per-operation httpx limits; the whole attempt is also bounded by deadlineSeconds."""
        return httpx.Timeout(self.deadlineSeconds)

    @property
    def maxRetries(self) -> int:
        return max(0, self.retries)

    def backoffSeconds(self, attempt: int) -> float:
        """Delay before retry number `attempt + 1` (attempt is 0-based)."""
        base = min(self.backoffMaxMs, self.backoffBaseMs * (2 ** attempt))
        jitter = base * 0.25
        return max(0.0, base + random.uniform(-jitter, jitter)) / 1_000

    def delayFor(self, attempt: int, err: Exception) -> float:
        if isinstance(err, HTTPError):
            suggested = retryAfterSeconds(err.retryAfter)
            if suggested is not None:
                return suggested
        return self.backoffSeconds(attempt)



@dataclass(slots=True, frozen=True)
class HttpResponse:
    status: int
    content: bytes
    headers: dict[str, str] = field(default_factory=dict)  # duplicate keys collapsed

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Parsed body. Raises ValueError when it is not JSON."""
        return json.loads(self.content)



async def _withDeadline(policy: RetryPolicy, label: str, attemptFn: Callable[[], Awaitable[T]]) -> T:
    try:
        async with asyncio.timeout(policy.deadlineSeconds):
            return await attemptFn()
    except TimeoutError as err:
        raise httpx.TimeoutException(f"{label} exceeded {policy.timeoutMs} ms") from err



async def _withRetries(policy: RetryPolicy, label: str, attemptFn: Callable[[], Awaitable[T]]) -> T:
    attempt = 0
    while True:
        try:
            return await _withDeadline(policy, label, attemptFn)
        except HTTPError as err:
            if not err.retryable or attempt >= policy.maxRetries:
                raise
            lastError: Exception = err
        except httpx.HTTPError as err:
            if attempt >= policy.maxRetries:
                raise
            lastError = err

        delay = policy.delayFor(attempt, lastError)
        attempt += 1
        logger.debug("%s failed (%s), retry %d/%d in %.3fs", label, lastError, attempt, policy.maxRetries, delay)
        await asyncio.sleep(delay)



async def request(
    method: str,
    url: str,
    *,
    policy: RetryPolicy | None = None,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
) -> HttpResponse:
    """
    Sends one request, following redirects, and returns the buffered response.

    Raises HTTPError for any status >= 400 (retryable ones only after the
    policy's retries are used up) and httpx.HTTPError for transport errors
    that outlast the retries.
    """
    policy = policy or RetryPolicy()
    method = str(method).upper()
    label = f"HTTP {method} {url}"

    async with httpx.AsyncClient(timeout=policy.timeout(), follow_redirects=True) as cli:
        async def attempt() -> HttpResponse:
            resp = await cli.request(method, url, headers=headers, params=params)
            if resp.status_code >= 400:
                raise HTTPError(resp.status_code, resp.text, url=url, retryAfter=resp.headers.get("Retry-After"))
            return HttpResponse(status=resp.status_code, content=resp.content, headers=dict(resp.headers))

        logger.debug("%s (timeoutMs=%d, retries=%d)", label, policy.timeoutMs, policy.maxRetries)
        out = await _withRetries(policy, label, attempt)

    logger.debug("%s -> %d (%d bytes)", label, out.status, len(out.content))
    return out



async def download(
    url: str,
    destination: Path,
    *,
    policy: RetryPolicy | None = None,
    chunkSize: int = 64 * 1024,
) -> int:
    """
    Streams `url` into `destination` (parent directories are created) and
    returns the number of bytes written. Retries like request(); the partial
    file is removed before each retry and whenever the download fails.
    """
    policy = policy or RetryPolicy()
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    label = f"Download {url}"

    async with httpx.AsyncClient(timeout=policy.timeout(), follow_redirects=True) as cli:
        async def attempt() -> int:
            try:
                async with cli.stream("GET", url) as resp:
                    if resp.status_code >= 400:
                        body = (await resp.aread()).decode("utf-8", errors="replace")
                        raise HTTPError(resp.status_code, body, url=url, retryAfter=resp.headers.get("Retry-After"))
                    written = 0
                    with destination.open("wb") as fh:
                        async for chunk in resp.aiter_bytes(chunkSize):
                            fh.write(chunk)
                            written += len(chunk)
                    return written
            except BaseException:
                destination.unlink(missing_ok=True)
                raise

        logger.debug("%s -> %s", label, destination)
        written = await _withRetries(policy, label, attempt)

    logger.debug("Downloaded %s (%d bytes)", destination, written)
    return written
