from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from sqlalchemy import Connection, Engine, inspect, text


@dataclass(frozen=True)
class MigrationStep:
    version: int
    name: str
    apply: Callable[[Connection], None]


def _ensure_schema_migrations_table(conn: Connection) -> None:
    conn.execute(
        text(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                name VARCHAR(255) NOT NULL,
                applied_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
    )


def _table_exists(conn: Connection, table_name: str) -> bool:
    inspector = inspect(conn)
    return inspector.has_table(table_name)


def _column_exists(conn: Connection, table_name: str, column_name: str) -> bool:
    if not _table_exists(conn, table_name):
        return False

    if conn.engine.dialect.name == "sqlite":
        rows = conn.execute(text(f"PRAGMA table_info('{table_name}')")).mappings().all()
        return any(str(row["name"]) == column_name for row in rows)

    inspector = inspect(conn)
    return any(col["name"] == column_name for col in inspector.get_columns(table_name))


def _migration_0001_baseline(_conn: Connection) -> None:
    return


def _migration_0002_record_protection_flag(conn: Connection) -> None:
    if not _table_exists(conn, "transcription_records"):
        return
    if not _column_exists(conn, "transcription_records", "is_protected"):
        conn.execute(
            text("ALTER TABLE transcription_records ADD COLUMN is_protected BOOLEAN NOT NULL DEFAULT 0")
        )
    conn.execute(
        text(
            "CREATE INDEX IF NOT EXISTS ix_transcription_records_owner_protected "
            "ON transcription_records (owner_id, is_protected)"
        )
    )


def _migration_0003_cleanup_history_run_details(conn: Connection) -> None:
    if not _table_exists(conn, "cleanup_history"):
        return
    if not _column_exists(conn, "cleanup_history", "groups_found"):
        conn.execute(text("ALTER TABLE cleanup_history ADD COLUMN groups_found INTEGER NOT NULL DEFAULT 0"))
    if not _column_exists(conn, "cleanup_history", "dry_run"):
        conn.execute(text("ALTER TABLE cleanup_history ADD COLUMN dry_run BOOLEAN NOT NULL DEFAULT 0"))


def _migration_0004_preset_name_uniqueness(conn: Connection) -> None:
    if not _table_exists(conn, "filter_presets"):
        return
    duplicated = conn.execute(
        text(
            """
            SELECT owner_id, name
            FROM filter_presets
            GROUP BY owner_id, name
            HAVING COUNT(1) > 1
            LIMIT 1
            """
        )
    ).first()
    if duplicated is not None:
        raise RuntimeError(
            f"filter_presets contains duplicated names for owner {duplicated[0]}: {duplicated[1]!r}"
        )
    conn.execute(
        text(
            "CREATE UNIQUE INDEX IF NOT EXISTS uq_filter_presets_owner_name_idx "
            "ON filter_presets (owner_id, name)"
        )
    )


def _migration_0005_preset_backup_indexes(conn: Connection) -> None:
    if not _table_exists(conn, "preset_backups"):
        return
    conn.execute(
        text(
            "CREATE INDEX IF NOT EXISTS ix_preset_backups_owner_backed_up "
            "ON preset_backups (owner_id, backed_up_at)"
        )
    )


MIGRATIONS: tuple[MigrationStep, ...] = (
    MigrationStep(version=1, name="baseline", apply=_migration_0001_baseline),
    MigrationStep(version=2, name="record_protection_flag", apply=_migration_0002_record_protection_flag),
    MigrationStep(
        version=3,
        name="cleanup_history_run_details",
        apply=_migration_0003_cleanup_history_run_details,
    ),
    MigrationStep(version=4, name="preset_name_uniqueness", apply=_migration_0004_preset_name_uniqueness),
    MigrationStep(version=5, name="preset_backup_indexes", apply=_migration_0005_preset_backup_indexes),
)


def apply_migrations(engine: Engine) -> list[int]:
    """Apply pending steps in version order and return the versions applied."""
    applied: list[int] = []
    with engine.begin() as conn:
        _ensure_schema_migrations_table(conn)

        existing_versions = {
            int(row[0])
            for row in conn.execute(text("SELECT version FROM schema_migrations ORDER BY version ASC")).all()
        }

        for step in MIGRATIONS:
            if step.version in existing_versions:
                continue

            step.apply(conn)
            conn.execute(
                text("INSERT INTO schema_migrations(version, name) VALUES (:version, :name)"),
                {"version": step.version, "name": step.name},
            )
            applied.append(step.version)
    return applied


def current_schema_version(conn: Connection) -> int:
    if not _table_exists(conn, "schema_migrations"):
        return 0
    return int(conn.execute(text("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")).scalar_one())


def optimize_sqlite(engine: Engine) -> None:
    # refresh planner statistics after schema changes
    if engine.dialect.name != "sqlite":
        return
    with engine.connect() as conn:
        conn.execute(text("PRAGMA optimize;"))
        conn.commit()
