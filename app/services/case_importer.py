from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from app.core.config import get_settings
from app.core.logging import log_error, log_info
from app.repositories import cases as cases_repo
from app.services import clickup
from app.services.case_lists import ListBinding, business_list_binding, private_list_binding
from app.services.case_sync import load_existing_case, map_and_upsert

LIST_TYPE_PRIVATE = "A"
LIST_TYPE_BUSINESS = "B"
LIST_TYPE_BOTH = "both"


@dataclass(slots=True)
class CaseImportSummary:
    processed: int = 0
    imported: int = 0
    skipped: int = 0
    errors: int = 0

    def merge(self, other: "CaseImportSummary") -> None:
        self.processed += other.processed
        self.imported += other.imported
        self.skipped += other.skipped
        self.errors += other.errors

    def as_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "imported": self.imported,
            "errors": self.errors,
            "skipped": self.skipped,
        }


@dataclass(slots=True)
class CaseImportReport:
    summary: CaseImportSummary = field(default_factory=CaseImportSummary)
    results: list[dict[str, Any]] = field(default_factory=list)

    @property
    def message(self) -> str:
        return (
            f"Import completed: {self.summary.imported} cases imported "
            f"of {self.summary.processed} processed"
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "summary": self.summary.as_dict(),
            "results": list(self.results),
            "message": self.message,
        }


def bindings_for_list_type(list_type: str) -> list[ListBinding]:
    key = str(list_type or "").strip()
    if key == LIST_TYPE_PRIVATE:
        return [private_list_binding()]
    if key == LIST_TYPE_BUSINESS:
        return [business_list_binding()]
    if key == LIST_TYPE_BOTH:
        return [private_list_binding(), business_list_binding()]
    raise ValueError("list_type must be one of 'A', 'B' or 'both'")


async def _import_task(
    task: dict[str, Any],
    binding: ListBinding,
    *,
    force_reimport: bool,
) -> str:
    task_id = str(task.get("id") or "").strip()
    if not task_id:
        raise ValueError("ClickUp task is missing an id")
    exists = await cases_repo.case_exists(binding.table, task_id)
    if exists and not force_reimport:
        return "skipped"
    existing = await load_existing_case(binding, task_id) if exists else None
    await map_and_upsert(task, binding, existing=existing)
    return "imported"


async def import_list(
    binding: ListBinding,
    *,
    page_size: int,
    include_closed: bool = False,
    force_reimport: bool = False,
    summary: CaseImportSummary | None = None,
    rate_limiter: clickup.AsyncRateLimiter | None = None,
    page_delay: float | None = None,
) -> CaseImportSummary:
    """Import every task of one ClickUp list.

    Per-task failures are counted and logged. A failure to fetch a page is
    raised to the caller; ``summary`` keeps the counts reached before it.
    """

    stats = summary if summary is not None else CaseImportSummary()
    limiter = rate_limiter or await clickup.get_rate_limiter()
    delay = get_settings().import_page_delay_seconds if page_delay is None else page_delay
    log_info(
        "Starting ClickUp list import",
        list_id=binding.list_id,
        table=binding.table,
        page_size=page_size,
        include_closed=include_closed,
        force=force_reimport,
    )
    page = 0
    while True:
        tasks = await clickup.list_tasks(
            binding.list_id,
            page=page,
            limit=page_size,
            include_closed=include_closed,
            rate_limiter=limiter,
        )
        for task in tasks:
            stats.processed += 1
            try:
                outcome = await _import_task(task, binding, force_reimport=force_reimport)
            except Exception as exc:
                log_error(
                    "Failed to import ClickUp task",
                    task_id=task.get("id"),
                    table=binding.table,
                    error=str(exc),
                )
                stats.errors += 1
                continue
            if outcome == "skipped":
                stats.skipped += 1
            else:
                stats.imported += 1
        if len(tasks) < page_size:
            break
        page += 1
        if delay > 0:
            await asyncio.sleep(delay)
    log_info(
        "ClickUp list import completed",
        list_id=binding.list_id,
        table=binding.table,
        pages=page + 1,
        **stats.as_dict(),
    )
    return stats


async def import_from_request(
    *,
    list_type: str,
    page_size: int | None = None,
    include_closed: bool = False,
    force_reimport: bool = False,
    rate_limiter: clickup.AsyncRateLimiter | None = None,
) -> CaseImportReport:
    bindings = bindings_for_list_type(list_type)
    size = page_size or get_settings().import_default_page_size
    limiter = rate_limiter or await clickup.get_rate_limiter()
    report = CaseImportReport()
    log_info(
        "Initialising ClickUp case import",
        list_type=list_type,
        lists=len(bindings),
        page_size=size,
    )
    for binding in bindings:
        stats = CaseImportSummary()
        result: dict[str, Any] = {
            "list_name": binding.list_name,
            "list_id": binding.list_id,
            "table": binding.table,
        }
        try:
            await import_list(
                binding,
                page_size=size,
                include_closed=include_closed,
                force_reimport=force_reimport,
                summary=stats,
                rate_limiter=limiter,
            )
        except clickup.ClickUpAPIError as exc:
            log_error(
                "ClickUp list import aborted",
                list_id=binding.list_id,
                table=binding.table,
                error=str(exc),
            )
            stats.errors += 1
            result["error"] = str(exc)
        else:
            result["stats"] = stats.as_dict()
        report.summary.merge(stats)
        report.results.append(result)
    log_info("ClickUp case import completed", **report.summary.as_dict())
    return report
