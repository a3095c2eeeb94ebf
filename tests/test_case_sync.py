from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app.services import case_sync, technicians
from app.services.case_lists import ListBinding
from app.services.case_mapper import CaseFamily, CasePriority, CaseRecord
from app.services.case_sync import CaseSyncError
from app.services.technicians import TechnicianResolver

BUSINESS = ListBinding("901204857574", CaseFamily.STANDALONE_BUSINESS, "Företag")


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _empty_technician_directory(monkeypatch):
    monkeypatch.setattr(technicians, "_RESOLVER", TechnicianResolver(()))


def _stored_record(**overrides):
    values = dict(
        external_task_id="86c0abcdef12",
        case_number="cdef12",
        case_family=CaseFamily.STANDALONE_BUSINESS,
        title="Getingbo vid entré",
        description="Bo under takfoten",
        status_name="completed",
        status_code="sc901_done",
        priority=CasePriority.NORMAL,
        synced_at=datetime(2024, 4, 1, 8, 0, tzinfo=timezone.utc),
        completed_date=datetime(2024, 3, 30, 15, 0, tzinfo=timezone.utc),
        price=Decimal("1250"),
        commission_amount=Decimal("50.00"),
        commission_calculated_at=datetime(2024, 3, 30, 15, 0, tzinfo=timezone.utc),
        family_fields={"org_number": "556677-8899", "invoice_marking": None, "invoice_email": None, "orderer": None},
    )
    values.update(overrides)
    return CaseRecord(**values)


@pytest.mark.anyio
async def test_sync_task_maps_and_upserts(monkeypatch):
    stored: list[CaseRecord] = []

    async def fake_get_task(task_id):
        return {
            "id": task_id,
            "name": "Getingbo vid entré",
            "status": {"status": "bokat"},
            "date_created": "1700000000000",
            "custom_fields": [{"name": "Pris", "type": "currency", "value": 1250}],
        }

    async def fake_get_case(table, task_id):
        assert table == "business_cases"
        return None

    async def fake_upsert(record):
        stored.append(record)

    monkeypatch.setattr(case_sync.clickup, "get_task", fake_get_task)
    monkeypatch.setattr(case_sync.cases_repo, "get_case_by_task_id", fake_get_case)
    monkeypatch.setattr(case_sync.cases_repo, "upsert_case", fake_upsert)

    outcome = await case_sync.sync_task("86c0abcdef12", BUSINESS)

    assert outcome.action == "upserted"
    assert outcome.changed
    assert stored[0].status_name == "booked"
    assert stored[0].price == Decimal("1250")
    assert stored[0].commission_amount is None
    assert stored[0].synced_at.microsecond == 0


@pytest.mark.anyio
async def test_sync_task_is_noop_when_task_was_deleted_upstream(monkeypatch):
    async def fake_get_task(task_id):
        return None

    async def fail_upsert(record):  # pragma: no cover - must not be called
        raise AssertionError("upsert should not run")

    monkeypatch.setattr(case_sync.clickup, "get_task", fake_get_task)
    monkeypatch.setattr(case_sync.cases_repo, "upsert_case", fail_upsert)

    outcome = await case_sync.sync_task("gone", BUSINESS)

    assert outcome.action == "skipped"
    assert not outcome.changed


@pytest.mark.anyio
async def test_persistence_failure_raises_case_sync_error(monkeypatch):
    async def fake_get_task(task_id):
        return {"id": task_id, "name": "x", "status": {"status": "open"}}

    async def fake_get_case(table, task_id):
        return None

    async def broken_upsert(record):
        raise RuntimeError("Lost connection to MySQL server")

    monkeypatch.setattr(case_sync.clickup, "get_task", fake_get_task)
    monkeypatch.setattr(case_sync.cases_repo, "get_case_by_task_id", fake_get_case)
    monkeypatch.setattr(case_sync.cases_repo, "upsert_case", broken_upsert)

    with pytest.raises(CaseSyncError):
        await case_sync.sync_task("86c0abcdef12", BUSINESS)


@pytest.mark.anyio
async def test_mark_task_removed_keeps_prior_fields(monkeypatch):
    existing = _stored_record()
    stored: list[CaseRecord] = []

    async def fake_get_case(table, task_id):
        return existing

    async def fake_upsert(record):
        stored.append(record)

    monkeypatch.setattr(case_sync.cases_repo, "get_case_by_task_id", fake_get_case)
    monkeypatch.setattr(case_sync.cases_repo, "upsert_case", fake_upsert)

    outcome = await case_sync.mark_task_removed("86c0abcdef12", BUSINESS)

    removed = stored[0]
    assert outcome.action == "removed"
    assert removed.status_name == "removed"
    assert replace(removed, status_name="completed", synced_at=existing.synced_at) == existing


@pytest.mark.anyio
async def test_mark_task_removed_ignores_unknown_case(monkeypatch):
    async def fake_get_case(table, task_id):
        return None

    monkeypatch.setattr(case_sync.cases_repo, "get_case_by_task_id", fake_get_case)

    outcome = await case_sync.mark_task_removed("unknown", BUSINESS)

    assert outcome.action == "skipped"
