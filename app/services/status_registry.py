"""Bidirectional mapping between ClickUp status identifiers and case statuses.

The registry is data driven: built-in defaults are merged with the rows of the
``case_statuses`` table so operators can reclassify a status (or add a new
ClickUp status id) without a code change. Both the webhook handler and the
batch importer read the same process-wide instance.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from app.core.logging import log_error, log_info
from app.repositories import case_statuses as case_statuses_repo

STATUS_OPEN = "open"
STATUS_BOOKED = "booked"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_CLOSED = "closed"
STATUS_REMOVED = "removed"


@dataclass(frozen=True, slots=True)
class StatusEntry:
    external_code: str
    canonical_name: str
    is_terminal: bool = False


DEFAULT_STATUS_ENTRIES: tuple[StatusEntry, ...] = (
    StatusEntry("c127553498_fwlMbGKH", STATUS_OPEN),
    StatusEntry("c127553498_E9tR4uKl", STATUS_BOOKED),
    StatusEntry("open", STATUS_OPEN),
    StatusEntry("öppen", STATUS_OPEN),
    StatusEntry("att göra", STATUS_OPEN),
    StatusEntry("to do", STATUS_OPEN),
    StatusEntry("booked", STATUS_BOOKED),
    StatusEntry("bokat", STATUS_BOOKED),
    StatusEntry("in_progress", STATUS_IN_PROGRESS),
    StatusEntry("in progress", STATUS_IN_PROGRESS),
    StatusEntry("under hantering", STATUS_IN_PROGRESS),
    StatusEntry("pågående", STATUS_IN_PROGRESS),
    StatusEntry("completed", STATUS_COMPLETED, True),
    StatusEntry("complete", STATUS_COMPLETED, True),
    StatusEntry("slutförd", STATUS_COMPLETED, True),
    StatusEntry("klar", STATUS_COMPLETED, True),
    StatusEntry("genomförd", STATUS_COMPLETED, True),
    StatusEntry("avslutad", STATUS_COMPLETED, True),
    StatusEntry("avslutat", STATUS_COMPLETED, True),
    StatusEntry("closed", STATUS_CLOSED, True),
    StatusEntry("stängd", STATUS_CLOSED, True),
    StatusEntry("removed", STATUS_REMOVED, True),
    StatusEntry("deleted", STATUS_REMOVED, True),
)


def _normalise_key(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().casefold()


class StatusRegistry:
    """Immutable lookup table of status entries."""

    __slots__ = ("_by_code", "_terminal_names", "_entries")

    def __init__(self, entries: Iterable[StatusEntry]) -> None:
        by_code: dict[str, StatusEntry] = {}
        for entry in entries:
            key = _normalise_key(entry.external_code)
            if not key:
                continue
            by_code[key] = entry
        terminal: dict[str, bool] = {}
        for entry in by_code.values():
            name = _normalise_key(entry.canonical_name)
            terminal[name] = terminal.get(name, False) or entry.is_terminal
        self._by_code: Mapping[str, StatusEntry] = MappingProxyType(by_code)
        self._terminal_names = frozenset(name for name, flag in terminal.items() if flag)
        self._entries = tuple(by_code.values())

    @property
    def entries(self) -> tuple[StatusEntry, ...]:
        return self._entries

    def lookup(self, code: Any) -> StatusEntry | None:
        return self._by_code.get(_normalise_key(code))

    def canonical_name(self, code: Any) -> str:
        """Return the canonical name for ``code``, or the raw code when unknown."""
        entry = self.lookup(code)
        if entry is not None:
            return entry.canonical_name
        return "" if code is None else str(code)

    def is_terminal(self, canonical_name: Any) -> bool:
        return _normalise_key(canonical_name) in self._terminal_names

    def resolve(self, code: Any, label: Any = None) -> str:
        """Resolve a ClickUp status by id first, then by its label."""
        for candidate in (code, label):
            entry = self.lookup(candidate)
            if entry is not None:
                return entry.canonical_name
        if label not in (None, ""):
            return str(label).strip()
        return self.canonical_name(code)


def build_registry(rows: Iterable[Mapping[str, Any]] = ()) -> StatusRegistry:
    """Merge operator-defined rows over the built-in defaults."""

    entries = list(DEFAULT_STATUS_ENTRIES)
    for row in rows:
        code = str(row.get("external_code") or "").strip()
        if not code:
            continue
        entries.append(
            StatusEntry(
                external_code=code,
                canonical_name=str(row.get("canonical_name") or code).strip(),
                is_terminal=bool(row.get("is_terminal")),
            )
        )
    return StatusRegistry(entries)


_REGISTRY: StatusRegistry | None = None
_REGISTRY_LOCK = asyncio.Lock()


async def load_status_registry() -> StatusRegistry:
    """Load the registry from the database once per process."""

    global _REGISTRY
    if _REGISTRY is not None:
        return _REGISTRY
    async with _REGISTRY_LOCK:
        if _REGISTRY is not None:
            return _REGISTRY
        try:
            rows = await case_statuses_repo.list_statuses()
        except Exception as exc:  # pragma: no cover - database may be unavailable during startup
            log_error("Unable to load case statuses, using built-in defaults", error=str(exc))
            rows = []
        _REGISTRY = build_registry(rows)
        log_info(
            "Status registry loaded",
            entries=len(_REGISTRY.entries),
            overrides=len(rows),
        )
    return _REGISTRY


def get_status_registry() -> StatusRegistry:
    global _REGISTRY
    if _REGISTRY is None:
        _REGISTRY = build_registry()
    return _REGISTRY


def set_status_registry(registry: StatusRegistry | None) -> None:
    global _REGISTRY
    _REGISTRY = registry
