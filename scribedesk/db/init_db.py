from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from scribedesk.db.migrations import apply_migrations, current_schema_version, optimize_sqlite
from scribedesk.db.models import Base
from scribedesk.db.session import get_engine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatabaseStatus:
    reachable: bool
    schema_version: int


def initialize_database() -> list[int]:
    """Create missing tables and bring the schema up to the latest migration.

    Returns the migration versions applied by this call.
    """
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    applied = apply_migrations(engine)
    if applied:
        logger.info("Applied schema migrations %s on %s", applied, engine.url.render_as_string(hide_password=True))
    optimize_sqlite(engine)
    return applied


def check_database() -> DatabaseStatus:
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
            version = current_schema_version(conn)
    except SQLAlchemyError:
        logger.exception("Database check failed")
        return DatabaseStatus(reachable=False, schema_version=0)
    return DatabaseStatus(reachable=True, schema_version=version)
