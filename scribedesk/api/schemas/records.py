from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from scribedesk.db.models import RecordStatus


class CreateRecordRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1, max_length=1024)
    checksum: str | None = Field(default=None, max_length=128)
    status: RecordStatus = RecordStatus.COMPLETED
    size_bytes: int | None = Field(default=None, ge=0)
    is_protected: bool = False
    created_at: datetime | None = None


class RecordResponse(BaseModel):
    id: str
    title: str
    checksum: str | None
    created_at: datetime
    is_protected: bool
    size_bytes: int | None
    status: str
