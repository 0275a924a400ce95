from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CleanupConfigRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool
    keep_latest: bool = True
    delete_older_than_days: int = Field(default=30, ge=0, le=3650)


class CleanupConfigResponse(BaseModel):
    owner_id: str
    enabled: bool
    keep_latest: bool
    delete_older_than_days: int


class RecordSelectionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    record_ids: list[str] = Field(min_length=1, max_length=1000)


class ProtectRecordsRequest(RecordSelectionRequest):
    protected: bool = True


class MutationCountResponse(BaseModel):
    affected: int


class DuplicateFileResponse(BaseModel):
    id: str
    title: str
    created_at: datetime
    is_protected: bool
    will_be_deleted: bool
    reason: str


class DuplicateGroupResponse(BaseModel):
    checksum: str
    files: list[DuplicateFileResponse]


class CleanupPreviewResponse(BaseModel):
    state: str
    total_to_delete: int
    groups: list[DuplicateGroupResponse]


class GroupSummaryResponse(BaseModel):
    checksum: str
    title: str
    count: int
    oldest_created_at: datetime
    newest_created_at: datetime
    total_size_bytes: int
    wasted_size_bytes: int
    priority: str
    recommendations: list[str]


class DuplicateReportResponse(BaseModel):
    generated_at: datetime
    total_records: int
    total_groups: int
    total_extra_copies: int
    total_wasted_bytes: int
    groups: list[GroupSummaryResponse]


class CleanupRunResponse(BaseModel):
    state: str
    dry_run: bool
    files_deleted: int
    space_freed_bytes: int
    groups_found: int
    deleted_ids: list[str]


class CleanupHistoryResponse(BaseModel):
    id: int
    files_deleted: int
    space_freed_bytes: int
    groups_found: int
    dry_run: bool
    status: str
    error_message: str | None
    created_at: datetime
