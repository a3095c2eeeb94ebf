import pytest

from app.services import case_importer, technicians
from app.services.case_importer import CaseImportSummary
from app.services.case_lists import business_list_binding, private_list_binding
from app.services.clickup import AsyncRateLimiter, ClickUpAPIError
from app.services.technicians import TechnicianResolver


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def limiter():
    return AsyncRateLimiter(limit=1000, interval=60.0)


@pytest.fixture
def store(monkeypatch):
    """Replace the case repository with an in-memory table keyed by (table, task id)."""

    records: dict[tuple[str, str], object] = {}

    async def fake_case_exists(table, task_id):
        return (table, task_id) in records

    async def fake_get_case(table, task_id):
        return records.get((table, task_id))

    async def fake_upsert(record):
        records[(record.table, record.external_task_id)] = record

    monkeypatch.setattr(technicians, "_RESOLVER", TechnicianResolver(()))
    monkeypatch.setattr(case_importer.cases_repo, "case_exists", fake_case_exists)
    monkeypatch.setattr(case_importer.cases_repo, "get_case_by_task_id", fake_get_case)
    monkeypatch.setattr(case_importer.cases_repo, "upsert_case", fake_upsert)
    return records


def _tasks(prefix, count):
    return [
        {"id": f"{prefix}{index}", "name": f"Ärende {index}", "status": {"status": "open"}}
        for index in range(count)
    ]


def _paged_lister(pages_by_list, calls):
    async def fake_list_tasks(list_id, page=0, limit=50, include_closed=False, rate_limiter=None):
        calls.append({"list_id": list_id, "page": page, "limit": limit, "include_closed": include_closed})
        pages = pages_by_list[list_id]
        if isinstance(pages, Exception):
            raise pages
        return pages[page] if page < len(pages) else []

    return fake_list_tasks


@pytest.mark.anyio
async def test_second_import_skips_existing_cases(monkeypatch, store, limiter):
    calls: list[dict] = []
    monkeypatch.setattr(
        case_importer.clickup,
        "list_tasks",
        _paged_lister({"901204857438": [_tasks("p", 3)]}, calls),
    )

    first = await case_importer.import_from_request(list_type="A", page_size=50, rate_limiter=limiter)
    second = await case_importer.import_from_request(list_type="A", page_size=50, rate_limiter=limiter)

    assert first.summary.as_dict() == {"processed": 3, "imported": 3, "errors": 0, "skipped": 0}
    assert second.summary.as_dict() == {"processed": 3, "imported": 0, "errors": 0, "skipped": 3}
    assert len(store) == 3
    assert first.message == "Import completed: 3 cases imported of 3 processed"


@pytest.mark.anyio
async def test_force_reimport_rewrites_existing_cases(monkeypatch, store, limiter):
    calls: list[dict] = []
    monkeypatch.setattr(
        case_importer.clickup,
        "list_tasks",
        _paged_lister({"901204857574": [_tasks("b", 2)]}, calls),
    )

    await case_importer.import_from_request(list_type="B", page_size=50, rate_limiter=limiter)
    report = await case_importer.import_from_request(
        list_type="B",
        page_size=50,
        force_reimport=True,
        include_closed=True,
        rate_limiter=limiter,
    )

    assert report.summary.imported == 2
    assert report.summary.skipped == 0
    assert calls[-1]["include_closed"] is True
    assert all(table == "business_cases" for table, _ in store)


@pytest.mark.anyio
@pytest.mark.parametrize(
    "page_sizes, expected_calls, expected_processed",
    [
        ([2, 2, 1], 3, 5),
        ([2, 2, 0], 3, 4),
        ([0], 1, 0),
        ([1], 1, 1),
    ],
)
async def test_pagination_stops_on_short_page(
    monkeypatch, store, limiter, page_sizes, expected_calls, expected_processed
):
    pages = [_tasks(f"p{number}-", size) for number, size in enumerate(page_sizes)]
    calls: list[dict] = []
    monkeypatch.setattr(
        case_importer.clickup,
        "list_tasks",
        _paged_lister({"901204857438": pages}, calls),
    )

    stats = await case_importer.import_list(
        private_list_binding(),
        page_size=2,
        rate_limiter=limiter,
        page_delay=0,
    )

    assert len(calls) == expected_calls
    assert [call["page"] for call in calls] == list(range(expected_calls))
    assert stats.processed == expected_processed
    assert stats.imported == expected_processed


@pytest.mark.anyio
async def test_task_failures_are_counted_and_import_continues(monkeypatch, store, limiter):
    calls: list[dict] = []
    tasks = _tasks("p", 2) + [{"name": "saknar id"}]
    monkeypatch.setattr(
        case_importer.clickup,
        "list_tasks",
        _paged_lister({"901204857438": [tasks]}, calls),
    )

    stats = await case_importer.import_list(
        private_list_binding(),
        page_size=50,
        rate_limiter=limiter,
        page_delay=0,
    )

    assert stats == CaseImportSummary(processed=3, imported=2, skipped=0, errors=1)


@pytest.mark.anyio
async def test_list_failure_is_reported_per_list(monkeypatch, store, limiter):
    calls: list[dict] = []
    monkeypatch.setattr(
        case_importer.clickup,
        "list_tasks",
        _paged_lister(
            {
                "901204857438": [_tasks("p", 2)],
                "901204857574": ClickUpAPIError("ClickUp API responded with 500", status_code=500),
            },
            calls,
        ),
    )

    report = await case_importer.import_from_request(list_type="both", page_size=50, rate_limiter=limiter)
    body = report.as_dict()

    assert body["success"] is True
    assert body["summary"] == {"processed": 2, "imported": 2, "errors": 1, "skipped": 0}
    assert body["results"][0]["list_name"] == private_list_binding().list_name
    assert body["results"][0]["stats"]["imported"] == 2
    assert body["results"][1]["list_id"] == business_list_binding().list_id
    assert "500" in body["results"][1]["error"]


def test_unknown_list_type_is_rejected():
    with pytest.raises(ValueError):
        case_importer.bindings_for_list_type("C")
