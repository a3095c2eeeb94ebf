import httpx
import pytest

from app.services import clickup
from app.services.clickup import AsyncRateLimiter, ClickUpAPIError, ClickUpConfigurationError


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def reset_clickup_caches(monkeypatch):
    monkeypatch.setattr(clickup, "_RATE_LIMITER_CACHE", None)
    return monkeypatch


class DummyResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self._text = text if text is not None else ("" if payload is None else "{}")

    @property
    def text(self) -> str:
        return self._text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def _client_factory(recorded, response=None, error=None):
    class DummyClient:
        def __init__(self, *args, **kwargs):
            recorded["client_kwargs"] = kwargs

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

        async def request(self, method, url, headers=None, params=None):
            recorded.setdefault("requests", []).append(
                {"method": method, "url": url, "headers": headers, "params": params}
            )
            if error is not None:
                raise error
            return response

    return DummyClient


@pytest.mark.anyio
async def test_get_task_calls_task_endpoint_with_raw_token(reset_clickup_caches):
    recorded: dict[str, object] = {}
    response = DummyResponse(payload={"id": "86c0abcdef12", "name": "Råttor"})
    reset_clickup_caches.setattr(clickup.httpx, "AsyncClient", _client_factory(recorded, response))

    task = await clickup.get_task("86c0abcdef12")

    request = recorded["requests"][0]
    assert task == {"id": "86c0abcdef12", "name": "Råttor"}
    assert request["method"] == "GET"
    assert request["url"] == "https://api.clickup.com/api/v2/task/86c0abcdef12"
    assert request["headers"]["Authorization"] == "pk_test_token"
    assert recorded["client_kwargs"]["timeout"] == 15.0


@pytest.mark.anyio
async def test_get_task_returns_none_when_task_is_missing(reset_clickup_caches):
    recorded: dict[str, object] = {}
    reset_clickup_caches.setattr(
        clickup.httpx, "AsyncClient", _client_factory(recorded, DummyResponse(status_code=404, text="{}"))
    )

    assert await clickup.get_task("gone") is None


@pytest.mark.anyio
async def test_error_status_raises_api_error(reset_clickup_caches):
    recorded: dict[str, object] = {}
    reset_clickup_caches.setattr(
        clickup.httpx,
        "AsyncClient",
        _client_factory(recorded, DummyResponse(status_code=500, text="boom")),
    )

    with pytest.raises(ClickUpAPIError) as excinfo:
        await clickup.get_task("86c0abcdef12")

    assert excinfo.value.status_code == 500


@pytest.mark.anyio
async def test_timeout_raises_api_error(reset_clickup_caches):
    recorded: dict[str, object] = {}
    reset_clickup_caches.setattr(
        clickup.httpx,
        "AsyncClient",
        _client_factory(recorded, error=httpx.ReadTimeout("timed out")),
    )

    with pytest.raises(ClickUpAPIError):
        await clickup.get_task("86c0abcdef12")


@pytest.mark.anyio
async def test_missing_token_raises_configuration_error(reset_clickup_caches):
    settings = clickup.get_settings().model_copy(update={"clickup_api_token": None})
    reset_clickup_caches.setattr(clickup, "get_settings", lambda: settings)

    with pytest.raises(ClickUpConfigurationError):
        await clickup.get_task("86c0abcdef12")


@pytest.mark.anyio
async def test_list_tasks_sends_paging_parameters(reset_clickup_caches):
    recorded: dict[str, object] = {}
    payload = {"tasks": [{"id": "a"}, {"id": "b"}, "junk"]}
    reset_clickup_caches.setattr(
        clickup.httpx, "AsyncClient", _client_factory(recorded, DummyResponse(payload=payload))
    )

    tasks = await clickup.list_tasks("901204857438", page=2, limit=25, include_closed=True)

    request = recorded["requests"][0]
    assert tasks == [{"id": "a"}, {"id": "b"}]
    assert request["url"] == "https://api.clickup.com/api/v2/list/901204857438/task"
    assert request["params"] == {"page": 2, "limit": 25, "include_closed": "true"}


@pytest.mark.anyio
async def test_list_tasks_raises_when_list_is_missing(reset_clickup_caches):
    recorded: dict[str, object] = {}
    reset_clickup_caches.setattr(
        clickup.httpx, "AsyncClient", _client_factory(recorded, DummyResponse(status_code=404, text=""))
    )

    with pytest.raises(ClickUpAPIError):
        await clickup.list_tasks("404")


@pytest.mark.anyio
async def test_rate_limiter_is_shared_per_limit(reset_clickup_caches):
    first = await clickup.get_rate_limiter()
    second = await clickup.get_rate_limiter()

    assert first is second


@pytest.mark.anyio
async def test_rate_limiter_allows_requests_within_limit():
    limiter = AsyncRateLimiter(limit=3, interval=60.0)

    for _ in range(3):
        await limiter.acquire()


def test_rate_limiter_rejects_invalid_configuration():
    with pytest.raises(ValueError):
        AsyncRateLimiter(limit=0, interval=60.0)
    with pytest.raises(ValueError):
        AsyncRateLimiter(limit=10, interval=0)
