from __future__ import annotations

import asyncio
from collections import deque
from time import monotonic
from typing import Any

import httpx

from app.core.config import get_settings
from app.core.logging import log_debug, log_error


class ClickUpConfigurationError(RuntimeError):
    """Raised when ClickUp integration settings are incomplete."""


class ClickUpAPIError(RuntimeError):
    """Raised when ClickUp responds with an error status or cannot be reached."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


_RATE_LIMITER_CACHE: tuple[int, "AsyncRateLimiter"] | None = None
_RATE_LIMITER_LOCK = asyncio.Lock()


def _normalise_base_url(base: Any) -> str:
    return str(base or "").strip().rstrip("/")


def _coerce_rate_limit(value: Any) -> int:
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return 100
    return limit if limit > 0 else 100


def _get_effective_settings() -> dict[str, Any]:
    settings = get_settings()
    base_url = _normalise_base_url(settings.clickup_api_base_url)
    if not base_url:
        raise ClickUpConfigurationError("ClickUp base URL is not configured")
    token = str(settings.clickup_api_token or "").strip()
    if not token:
        raise ClickUpConfigurationError("ClickUp API token is not configured")
    return {
        "base_url": base_url,
        "api_token": token,
        "rate_limit_per_minute": _coerce_rate_limit(settings.clickup_rate_limit_per_minute),
        "timeout": float(settings.clickup_request_timeout or 15.0),
    }


async def _get_or_create_rate_limiter(limit: int) -> "AsyncRateLimiter":
    global _RATE_LIMITER_CACHE
    async with _RATE_LIMITER_LOCK:
        if _RATE_LIMITER_CACHE and _RATE_LIMITER_CACHE[0] == limit:
            return _RATE_LIMITER_CACHE[1]
        limiter = AsyncRateLimiter(limit=limit, interval=60.0)
        _RATE_LIMITER_CACHE = (limit, limiter)
        return limiter


async def get_rate_limiter() -> "AsyncRateLimiter":
    settings = get_settings()
    return await _get_or_create_rate_limiter(
        _coerce_rate_limit(settings.clickup_rate_limit_per_minute)
    )


class AsyncRateLimiter:
    """Coroutine-friendly token bucket limiting requests per interval."""

    __slots__ = ("_limit", "_interval", "_lock", "_events")

    def __init__(self, limit: int, interval: float) -> None:
        if limit <= 0:
            raise ValueError("limit must be positive")
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._limit = limit
        self._interval = interval
        self._lock = asyncio.Lock()
        self._events: deque[float] = deque()

    async def acquire(self) -> None:
        while True:
            async with self._lock:
                now = monotonic()
                while self._events and now - self._events[0] >= self._interval:
                    self._events.popleft()
                if len(self._events) < self._limit:
                    self._events.append(now)
                    return
                earliest = self._events[0]
                wait_time = self._interval - (now - earliest)
            await asyncio.sleep(max(wait_time, 0.05))


async def _request(
    method: str,
    path: str,
    *,
    params: dict[str, Any] | None = None,
    rate_limiter: AsyncRateLimiter | None = None,
) -> Any:
    """Call the ClickUp API and return the decoded payload.

    A 404 response yields ``None``. Any other error status, and any transport
    failure including timeouts, raises :class:`ClickUpAPIError`.
    """

    settings = _get_effective_settings()
    limiter = rate_limiter or await _get_or_create_rate_limiter(settings["rate_limit_per_minute"])
    await limiter.acquire()
    url = f"{settings['base_url']}{path if path.startswith('/') else f'/{path}'}"
    headers = {
        "Authorization": settings["api_token"],
        "Content-Type": "application/json",
    }
    log_debug("Calling ClickUp API", url=url, method=method)

    async with httpx.AsyncClient(timeout=settings["timeout"]) as client:
        try:
            response = await client.request(
                method,
                url,
                headers=headers,
                params=params,
            )
        except httpx.HTTPError as exc:
            log_error("ClickUp API request failed", url=url, error=str(exc))
            raise ClickUpAPIError(str(exc) or exc.__class__.__name__) from exc

    if response.status_code == httpx.codes.NOT_FOUND:
        return None
    if response.status_code >= 400:
        log_error(
            "ClickUp API responded with error",
            url=url,
            status=response.status_code,
            body=response.text[:500],
        )
        raise ClickUpAPIError(
            f"ClickUp API responded with {response.status_code}",
            status_code=response.status_code,
        )
    if response.status_code == httpx.codes.NO_CONTENT:
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise ClickUpAPIError("ClickUp API returned a non-JSON body") from exc


async def get_task(
    task_id: str,
    *,
    rate_limiter: AsyncRateLimiter | None = None,
) -> dict[str, Any] | None:
    """Return a single ClickUp task payload or ``None`` if it no longer exists."""

    payload = await _request("GET", f"/task/{task_id}", rate_limiter=rate_limiter)
    if isinstance(payload, dict) and payload.get("id"):
        return dict(payload)
    return None


async def list_tasks(
    list_id: str,
    *,
    page: int = 0,
    limit: int = 50,
    include_closed: bool = False,
    rate_limiter: AsyncRateLimiter | None = None,
) -> list[dict[str, Any]]:
    """Fetch one page of tasks from a ClickUp list. Pages start at zero."""

    params = {
        "page": page,
        "limit": limit,
        "include_closed": "true" if include_closed else "false",
    }
    payload = await _request(
        "GET",
        f"/list/{list_id}/task",
        params=params,
        rate_limiter=rate_limiter,
    )
    if payload is None:
        raise ClickUpAPIError(f"ClickUp list {list_id} was not found", status_code=404)
    tasks = payload.get("tasks") if isinstance(payload, dict) else None
    if not isinstance(tasks, list):
        return []
    return [dict(task) for task in tasks if isinstance(task, dict)]
