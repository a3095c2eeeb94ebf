"""ClickUp webhook ingestion and batch case import endpoints."""

from __future__ import annotations

import hashlib
import hmac
import json
from enum import Enum
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.api.dependencies.database import require_database
from app.core.config import get_settings
from app.core.logging import log_error, log_info, log_warning
from app.schemas.clickup import CaseImportRequest, CaseImportResponse, ClickUpWebhookPayload
from app.services import case_importer, case_lists, case_sync

router = APIRouter(prefix="/api/clickup", tags=["ClickUp"])

SIGNATURE_HEADER = "X-Signature"


class WebhookAction(str, Enum):
    UPSERT = "upsert"
    DELETE = "delete"


_EVENT_ACTIONS: dict[str, WebhookAction] = {
    "created": WebhookAction.UPSERT,
    "taskcreated": WebhookAction.UPSERT,
    "updated": WebhookAction.UPSERT,
    "taskupdated": WebhookAction.UPSERT,
    "status-updated": WebhookAction.UPSERT,
    "taskstatusupdated": WebhookAction.UPSERT,
    "assignee-updated": WebhookAction.UPSERT,
    "taskassigneeupdated": WebhookAction.UPSERT,
    "deleted": WebhookAction.DELETE,
    "taskdeleted": WebhookAction.DELETE,
}


def classify_event(event: str | None) -> WebhookAction | None:
    """Return the action for a ClickUp event name, or ``None`` to ignore it."""

    if not event:
        return None
    return _EVENT_ACTIONS.get(event.strip().lower())


def verify_webhook_signature(payload: bytes, signature: str | None, secret: str) -> bool:
    """Check a hex HMAC-SHA256 signature of the raw body.

    An optional ``sha256=`` prefix on the header value is accepted.
    """

    if not signature or not secret:
        return False
    candidate = signature.strip()
    if candidate.lower().startswith("sha256="):
        candidate = candidate.split("=", 1)[1]
    if not candidate.isascii():
        return False
    expected = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(candidate.lower().encode("ascii"), expected.encode("ascii"))


def _error_response(status_code: int, message: str, exc: Exception | None = None) -> JSONResponse:
    body: dict[str, Any] = {"error": message}
    if exc is not None and get_settings().expose_error_details:
        body["debug"] = str(exc)
    return JSONResponse(status_code=status_code, content=body)


_IMPORT_FIELD_MESSAGES = {
    "list_type": 'list_type is required: "A", "B" or "both"',
    "page_size": "page_size must be an integer between 1 and 100",
    "include_closed": "include_closed must be a boolean",
    "force_reimport": "force_reimport must be a boolean",
}

_IMPORT_FIELD_ALIASES = {
    "listType": "list_type",
    "pageSize": "page_size",
    "includeClosed": "include_closed",
    "forceReimport": "force_reimport",
}


def _describe_import_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors or not errors[0].get("loc"):
        return "Import request must be a JSON object"
    field = str(errors[0]["loc"][0])
    field = _IMPORT_FIELD_ALIASES.get(field, field)
    return _IMPORT_FIELD_MESSAGES.get(field, f"Invalid value for {field}")


def _ignored(message: str) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_200_OK, content={"message": message})


@router.post("/webhook", name="clickup_webhook", dependencies=[Depends(require_database)])
async def receive_webhook(request: Request) -> JSONResponse:
    raw_body = await request.body()
    try:
        decoded = json.loads(raw_body or b"null")
    except ValueError:
        return _error_response(status.HTTP_400_BAD_REQUEST, "Invalid JSON payload")
    if not isinstance(decoded, dict):
        return _error_response(status.HTTP_400_BAD_REQUEST, "Webhook payload must be a JSON object")
    try:
        payload = ClickUpWebhookPayload.model_validate(decoded)
    except ValidationError:
        return _error_response(status.HTTP_400_BAD_REQUEST, "Webhook payload is missing task_id")

    secret = get_settings().clickup_webhook_secret
    if secret:
        signature = request.headers.get(SIGNATURE_HEADER)
        if not verify_webhook_signature(raw_body, signature, secret):
            log_warning(
                "Rejected ClickUp webhook with invalid signature",
                task_id=payload.task_id,
                has_signature=bool(signature),
            )
            return _error_response(status.HTTP_401_UNAUTHORIZED, "Invalid webhook signature")

    action = classify_event(payload.event)
    if action is None:
        log_info("Ignoring unsupported ClickUp event", clickup_event=payload.event, task_id=payload.task_id)
        return _ignored(f"Event {payload.event or 'unknown'} ignored")

    list_id = payload.resolve_list_id()
    try:
        binding = await case_lists.resolve_list_binding(list_id)
    except Exception as exc:
        log_error("Failed to resolve ClickUp list", list_id=list_id, error=str(exc))
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Webhook processing failed", exc)
    if binding is None:
        log_info("Ignoring ClickUp event for unknown list", list_id=list_id, task_id=payload.task_id)
        return _ignored("List is not connected to any case table")

    try:
        if action is WebhookAction.DELETE:
            outcome = await case_sync.mark_task_removed(payload.task_id, binding)
        else:
            outcome = await case_sync.sync_task(payload.task_id, binding)
    except Exception as exc:
        log_error(
            "ClickUp webhook processing failed",
            clickup_event=payload.event,
            task_id=payload.task_id,
            table=binding.table,
            error=str(exc),
        )
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Webhook processing failed", exc)

    if not outcome.changed:
        return _ignored(outcome.message)
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"success": True, "message": outcome.message},
    )


@router.post(
    "/import",
    name="clickup_import",
    response_model=CaseImportResponse,
    dependencies=[Depends(require_database)],
)
async def import_cases(request: Request) -> JSONResponse:
    try:
        body = await request.json()
    except ValueError:
        return _error_response(status.HTTP_400_BAD_REQUEST, "Invalid JSON payload")
    try:
        payload = CaseImportRequest.model_validate(body)
    except ValidationError as exc:
        return _error_response(status.HTTP_400_BAD_REQUEST, _describe_import_error(exc))

    try:
        report = await case_importer.import_from_request(
            list_type=payload.list_type.value,
            page_size=payload.page_size,
            include_closed=payload.include_closed,
            force_reimport=payload.force_reimport,
        )
    except Exception as exc:
        log_error("ClickUp case import failed", list_type=payload.list_type.value, error=str(exc))
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Import failed", exc)
    return JSONResponse(status_code=status.HTTP_200_OK, content=report.as_dict())
