from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum as SAEnum,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class RecordStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class CleanupRunStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class BackupReason(str, Enum):
    IMPORT_OVERWRITE = "import_overwrite"
    OVERWRITE = "overwrite"


class TranscriptionRecord(Base):
    __tablename__ = "transcription_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(1024), nullable=False)
    checksum: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[RecordStatus] = mapped_column(
        SAEnum(RecordStatus, native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=RecordStatus.COMPLETED,
    )
    size_bytes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    is_protected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_transcription_records_owner_checksum", "owner_id", "checksum", "created_at"),
        Index("ix_transcription_records_owner_created", "owner_id", "created_at"),
        Index("ix_transcription_records_owner_protected", "owner_id", "is_protected"),
    )


class FilterPreset(Base):
    __tablename__ = "filter_presets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    filter_data: Mapped[dict[str, Any]] = mapped_column(JSON(none_as_null=True), nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("owner_id", "name", name="uq_filter_presets_owner_id_name"),
        Index("ix_filter_presets_owner_created", "owner_id", "created_at"),
    )


class PresetBackup(Base):
    __tablename__ = "preset_backups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    original_preset_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    preset_name: Mapped[str] = mapped_column(String(255), nullable=False)
    preset_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    preset_filter_data: Mapped[dict[str, Any]] = mapped_column(JSON(none_as_null=True), nullable=False, default=dict)
    backup_reason: Mapped[BackupReason] = mapped_column(
        SAEnum(BackupReason, native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=BackupReason.OVERWRITE,
    )
    backed_up_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_preset_backups_owner_backed_up", "owner_id", "backed_up_at"),
    )


class BackupRetentionSettings(Base):
    __tablename__ = "backup_retention_settings"

    owner_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    retention_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    auto_cleanup_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class CleanupConfig(Base):
    __tablename__ = "cleanup_configs"

    owner_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    keep_latest: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    delete_older_than_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class CleanupHistory(Base):
    __tablename__ = "cleanup_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    files_deleted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    space_freed_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    groups_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    dry_run: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[CleanupRunStatus] = mapped_column(
        SAEnum(CleanupRunStatus, native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=CleanupRunStatus.COMPLETED,
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("ix_cleanup_history_owner_created", "owner_id", "created_at"),)


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action_type: Mapped[str] = mapped_column(String(64), nullable=False)
    action_description: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON(none_as_null=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("ix_activity_logs_owner_created", "owner_id", "created_at", "id"),)


class UserPreference(Base):
    __tablename__ = "user_preferences"

    owner_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[dict[str, Any]] = mapped_column(JSON(none_as_null=True), nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class SchemaMigration(Base):
    __tablename__ = "schema_migrations"

    version: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
