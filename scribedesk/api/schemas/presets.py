from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PresetRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=4096)
    filter_data: dict[str, Any] = Field(default_factory=dict)


class PresetResponse(BaseModel):
    id: str
    name: str
    description: str | None
    filter_data: dict[str, Any]
    created_at: datetime
    updated_at: datetime


class ConflictResponse(BaseModel):
    index: int
    name: str
    existing_id: str | None


class ImportFileErrorResponse(BaseModel):
    filename: str
    message: str


class ImportAnalysisResponse(BaseModel):
    total: int
    presets: list[str]
    conflicts: list[ConflictResponse]
    errors: list[ImportFileErrorResponse]


class ImportResponse(BaseModel):
    imported: int
    updated: int
    skipped: int
    backups: int
    presets: list[PresetResponse]
    errors: list[ImportFileErrorResponse]


class BackupResponse(BaseModel):
    id: str
    original_preset_id: str | None
    preset_name: str
    preset_description: str | None
    preset_filter_data: dict[str, Any]
    backup_reason: str
    backed_up_at: datetime


class RestoreResponse(BaseModel):
    action: str
    preset: PresetResponse


class RetentionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    retention_days: int = Field(ge=1, le=3650)
    auto_cleanup_enabled: bool


class RetentionResponse(BaseModel):
    owner_id: str
    retention_days: int
    auto_cleanup_enabled: bool


class BackupCleanupResponse(BaseModel):
    total_deleted: int
    processed_owners: int
    generated_at: datetime
