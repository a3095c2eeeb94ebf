import pytest

from app.services import status_registry
from app.services.status_registry import (
    STATUS_BOOKED,
    STATUS_COMPLETED,
    STATUS_OPEN,
    STATUS_REMOVED,
    build_registry,
)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_registry():
    status_registry.set_status_registry(None)
    yield
    status_registry.set_status_registry(None)


def test_known_clickup_status_ids_resolve_to_canonical_names():
    registry = build_registry()

    assert registry.resolve("c127553498_fwlMbGKH", "Whatever") == STATUS_OPEN
    assert registry.resolve("c127553498_E9tR4uKl", None) == STATUS_BOOKED


def test_label_is_used_when_status_id_is_unknown():
    registry = build_registry()

    name = registry.resolve("sc901_unknown", "Slutförd")

    assert name == STATUS_COMPLETED
    assert registry.is_terminal(name)


def test_unknown_status_passes_through_unchanged():
    registry = build_registry()

    assert registry.canonical_name("Väntar på kund") == "Väntar på kund"
    assert registry.resolve(None, "Väntar på kund") == "Väntar på kund"
    assert registry.resolve("sc_only_id", None) == "sc_only_id"
    assert registry.canonical_name(None) == ""
    assert not registry.is_terminal("Väntar på kund")


def test_terminal_classification_comes_from_entries():
    registry = build_registry()

    assert registry.is_terminal(STATUS_COMPLETED)
    assert registry.is_terminal("closed")
    assert registry.is_terminal(STATUS_REMOVED)
    assert not registry.is_terminal(STATUS_OPEN)
    assert not registry.is_terminal("in_progress")


def test_table_rows_override_and_extend_defaults():
    registry = build_registry(
        [
            {"external_code": "Att göra", "canonical_name": "booked", "is_terminal": 0},
            {"external_code": "sc_archived", "canonical_name": "archived", "is_terminal": 1},
            {"external_code": "", "canonical_name": "ignored", "is_terminal": 1},
        ]
    )

    assert registry.resolve(None, "att göra") == STATUS_BOOKED
    assert registry.resolve("sc_archived", "Arkiverad") == "archived"
    assert registry.is_terminal("archived")
    assert registry.lookup("") is None


@pytest.mark.anyio
async def test_load_status_registry_reads_table_once(monkeypatch):
    calls = {"count": 0}

    async def fake_list_statuses():
        calls["count"] += 1
        return [{"external_code": "sc_custom", "canonical_name": "closed", "is_terminal": True}]

    monkeypatch.setattr(status_registry.case_statuses_repo, "list_statuses", fake_list_statuses)

    first = await status_registry.load_status_registry()
    second = await status_registry.load_status_registry()

    assert first is second
    assert calls["count"] == 1
    assert first.resolve("sc_custom", None) == "closed"
    assert status_registry.get_status_registry() is first


def test_get_status_registry_defaults_without_loading():
    registry = status_registry.get_status_registry()

    assert registry.resolve(None, "Bokat") == STATUS_BOOKED
