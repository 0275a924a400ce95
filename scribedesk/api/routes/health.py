from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Response, status

from scribedesk.core.config import get_settings
from scribedesk.db.init_db import check_database

router = APIRouter(tags=["health"])


@router.get("/health")
def get_health(response: Response) -> dict[str, object]:
    """Liveness plus a database round trip; an unreachable database answers 503."""
    settings = get_settings()
    database = check_database()
    if not database.reachable:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {
        "status": "ok" if database.reachable else "degraded",
        "service": settings.app_name,
        "environment": settings.environment,
        "dry_run": settings.dry_run,
        "database": {"reachable": database.reachable, "schema_version": database.schema_version},
        "export_version": settings.preset_export_version,
        "timestamp": datetime.now(tz=timezone.utc),
    }
