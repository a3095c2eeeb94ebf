from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class ImportListType(str, Enum):
    PRIVATE = "A"
    BUSINESS = "B"
    BOTH = "both"


_LIST_TYPE_ALIASES = {
    "a": ImportListType.PRIVATE,
    "private": ImportListType.PRIVATE,
    "privatperson": ImportListType.PRIVATE,
    "b": ImportListType.BUSINESS,
    "business": ImportListType.BUSINESS,
    "foretag": ImportListType.BUSINESS,
    "företag": ImportListType.BUSINESS,
    "both": ImportListType.BOTH,
}


class CaseImportRequest(BaseModel):
    list_type: ImportListType = Field(
        ...,
        validation_alias=AliasChoices("list_type", "listType"),
    )
    page_size: Optional[int] = Field(
        default=None,
        ge=1,
        le=100,
        validation_alias=AliasChoices("page_size", "pageSize"),
    )
    include_closed: bool = Field(
        default=False,
        validation_alias=AliasChoices("include_closed", "includeClosed"),
    )
    force_reimport: bool = Field(
        default=False,
        validation_alias=AliasChoices("force_reimport", "forceReimport"),
    )

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("list_type", mode="before")
    @classmethod
    def _resolve_list_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _LIST_TYPE_ALIASES.get(value.strip().lower(), value)
        return value


class ImportStats(BaseModel):
    processed: int = 0
    imported: int = 0
    errors: int = 0
    skipped: int = 0


class ImportListResult(BaseModel):
    list_name: str
    list_id: str
    table: str
    stats: Optional[ImportStats] = None
    error: Optional[str] = None


class CaseImportResponse(BaseModel):
    success: bool
    summary: ImportStats
    results: list[ImportListResult]
    message: str


class ClickUpWebhookPayload(BaseModel):
    """Subset of a ClickUp webhook delivery used for routing."""

    event: Optional[str] = None
    task_id: str = Field(..., min_length=1)
    list_id: Optional[str] = None
    webhook_id: Optional[str] = None
    history_items: list[dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")

    @field_validator("task_id", "list_id", "webhook_id", mode="before")
    @classmethod
    def _coerce_identifier(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, (int, str)):
            text = str(value).strip()
            return text or None
        return value

    @field_validator("history_items", mode="before")
    @classmethod
    def _coerce_history(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    def resolve_list_id(self) -> str | None:
        if self.list_id:
            return self.list_id
        if self.history_items:
            parent = self.history_items[0].get("parent_id")
            if parent not in (None, ""):
                return str(parent)
        return None
