"""Sync orchestration shared by the webhook handler and the batch importer."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Mapping

from app.core.config import get_settings
from app.core.logging import log_info
from app.repositories import cases as cases_repo
from app.services import clickup
from app.services.case_lists import ListBinding
from app.services.case_mapper import CaseRecord, map_task_to_case
from app.services.commissions import CommissionPolicy
from app.services.status_registry import STATUS_REMOVED, get_status_registry
from app.services.technicians import load_technician_resolver


class CaseSyncError(RuntimeError):
    """Raised when a case cannot be read from or written to the datastore."""


@dataclass(slots=True)
class SyncOutcome:
    action: str
    task_id: str
    table: str
    message: str

    @property
    def changed(self) -> bool:
        return self.action in {"upserted", "removed"}


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


async def load_existing_case(binding: ListBinding, task_id: str) -> CaseRecord | None:
    try:
        return await cases_repo.get_case_by_task_id(binding.table, task_id)
    except Exception as exc:
        raise CaseSyncError(f"Unable to read case {task_id} from {binding.table}: {exc}") from exc


async def map_and_upsert(
    task: Mapping[str, Any],
    binding: ListBinding,
    *,
    existing: CaseRecord | None = None,
    now: datetime | None = None,
) -> CaseRecord:
    """Run the case mapper against ``task`` and persist the result."""

    settings = get_settings()
    resolver = await load_technician_resolver()
    record = map_task_to_case(
        task,
        binding,
        registry=get_status_registry(),
        resolver=resolver,
        now=now or utc_now(),
        existing=existing,
        policy=CommissionPolicy.from_value(settings.commission_policy),
        timezone_name=settings.default_timezone,
        start_hour=settings.default_start_hour,
    )
    try:
        await cases_repo.upsert_case(record)
    except Exception as exc:
        raise CaseSyncError(
            f"Unable to store case {record.external_task_id} in {record.table}: {exc}"
        ) from exc
    return record


async def sync_task(task_id: str, binding: ListBinding) -> SyncOutcome:
    """Re-fetch a task from ClickUp and upsert its mapped case."""

    task = await clickup.get_task(task_id)
    if task is None:
        log_info("ClickUp task no longer exists, nothing to sync", task_id=task_id)
        return SyncOutcome(
            action="skipped",
            task_id=task_id,
            table=binding.table,
            message="Task not found in ClickUp",
        )
    existing = await load_existing_case(binding, task_id)
    record = await map_and_upsert(task, binding, existing=existing)
    log_info(
        "Case synced from ClickUp",
        task_id=task_id,
        table=binding.table,
        status=record.status_name,
        created=existing is None,
    )
    return SyncOutcome(
        action="upserted",
        task_id=task_id,
        table=binding.table,
        message=f"Case {'created' if existing is None else 'updated'} in {binding.table}",
    )


async def mark_task_removed(task_id: str, binding: ListBinding) -> SyncOutcome:
    """Soft delete: keep the stored row and switch it to the removed status."""

    existing = await load_existing_case(binding, task_id)
    if existing is None:
        return SyncOutcome(
            action="skipped",
            task_id=task_id,
            table=binding.table,
            message="Case not found, nothing to remove",
        )
    record = replace(existing, status_name=STATUS_REMOVED, synced_at=utc_now())
    try:
        await cases_repo.upsert_case(record)
    except Exception as exc:
        raise CaseSyncError(f"Unable to mark case {task_id} as removed: {exc}") from exc
    log_info("Case marked as removed", task_id=task_id, table=binding.table)
    return SyncOutcome(
        action="removed",
        task_id=task_id,
        table=binding.table,
        message=f"Case marked as removed in {binding.table}",
    )
