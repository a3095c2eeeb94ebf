"""Resolve ClickUp assignees to entries of the technician directory."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Protocol, Sequence

from app.core.logging import log_debug, log_error, log_info
from app.repositories import technicians as technicians_repo

MAX_ASSIGNEES = 3


@dataclass(frozen=True, slots=True)
class TechnicianEntry:
    id: str
    display_name: str
    email: str | None = None


@dataclass(frozen=True, slots=True)
class CaseAssignee:
    technician_id: str | None
    display_name: str | None
    email: str | None


class TechnicianProvider(Protocol):
    async def list_technicians(self) -> Sequence[TechnicianEntry]:
        ...


class DatabaseTechnicianProvider:
    """Reads active technicians from the ``technicians`` table."""

    async def list_technicians(self) -> list[TechnicianEntry]:
        rows = await technicians_repo.list_active_technicians()
        return [
            TechnicianEntry(id=row["id"], display_name=row["display_name"], email=row.get("email"))
            for row in rows
            if row.get("id")
        ]


def _fold(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().casefold()


def _name_tokens(display_name: str) -> tuple[str, ...]:
    parts = [part for part in _fold(display_name).split() if part]
    if not parts:
        return ()
    if len(parts) == 1:
        return (parts[0],)
    return (parts[0], parts[-1])


def _assignee_name(assignee: Mapping[str, Any]) -> str | None:
    for key in ("username", "name"):
        value = assignee.get(key)
        if value and str(value).strip():
            return str(value).strip()
    return None


def _assignee_email(assignee: Mapping[str, Any]) -> str | None:
    value = assignee.get("email")
    if value and str(value).strip():
        return str(value).strip()
    return None


class TechnicianResolver:
    """Matches assignees by email first and then by name tokens."""

    __slots__ = ("_entries", "_by_email")

    def __init__(self, entries: Iterable[TechnicianEntry]) -> None:
        self._entries = tuple(entries)
        by_email: dict[str, TechnicianEntry] = {}
        for entry in self._entries:
            key = _fold(entry.email)
            if key and key not in by_email:
                by_email[key] = entry
        self._by_email = by_email

    @property
    def entries(self) -> tuple[TechnicianEntry, ...]:
        return self._entries

    def resolve(self, assignee: Mapping[str, Any]) -> TechnicianEntry | None:
        if not isinstance(assignee, Mapping):
            return None
        email = _fold(_assignee_email(assignee))
        if email and email in self._by_email:
            return self._by_email[email]
        name = _fold(_assignee_name(assignee))
        if not name:
            return None
        for entry in self._entries:
            for token in _name_tokens(entry.display_name):
                if token in name or name in token:
                    return entry
        return None

    def resolve_assignees(self, raw_assignees: Any) -> tuple[CaseAssignee, ...]:
        """Map up to three ClickUp assignees onto positional case roles."""

        if not isinstance(raw_assignees, (list, tuple)):
            return ()
        candidates = [item for item in raw_assignees if isinstance(item, Mapping)]
        if len(candidates) > MAX_ASSIGNEES:
            log_debug(
                "Dropping surplus assignees",
                received=len(candidates),
                kept=MAX_ASSIGNEES,
            )
            candidates = candidates[:MAX_ASSIGNEES]
        resolved: list[CaseAssignee] = []
        for assignee in candidates:
            match = self.resolve(assignee)
            email = _assignee_email(assignee)
            if email is None and match is not None:
                email = match.email
            resolved.append(
                CaseAssignee(
                    technician_id=match.id if match else None,
                    display_name=_assignee_name(assignee),
                    email=email,
                )
            )
        return tuple(resolved)


_RESOLVER: TechnicianResolver | None = None
_RESOLVER_LOCK = asyncio.Lock()


async def load_technician_resolver(
    provider: TechnicianProvider | None = None,
) -> TechnicianResolver:
    """Load the technician directory once per process."""

    global _RESOLVER
    if _RESOLVER is not None:
        return _RESOLVER
    async with _RESOLVER_LOCK:
        if _RESOLVER is not None:
            return _RESOLVER
        source = provider or DatabaseTechnicianProvider()
        try:
            entries = list(await source.list_technicians())
        except Exception as exc:  # pragma: no cover - database may be unavailable during startup
            log_error("Unable to load technician directory", error=str(exc))
            return TechnicianResolver(())
        _RESOLVER = TechnicianResolver(entries)
        log_info("Technician directory loaded", technicians=len(entries))
    return _RESOLVER


def get_technician_resolver() -> TechnicianResolver:
    if _RESOLVER is None:
        return TechnicianResolver(())
    return _RESOLVER


def set_technician_resolver(resolver: TechnicianResolver | None) -> None:
    global _RESOLVER
    _RESOLVER = resolver
