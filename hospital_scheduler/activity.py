import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

from hospital_scheduler.database import Repository
from hospital_scheduler.models import Activity

logger = logging.getLogger(__name__)


def record_activity(
    repo: Repository,
    activity_type: str,
    description: str,
    now: datetime,
    metadata: dict[str, Any] | None = None,
) -> Activity:
    activity = Activity(
        id=uuid.uuid4().hex,
        type=activity_type,
        description=description,
        created_at=now,
        metadata=metadata or {},
    )
    repo.add_activity(activity)
    logger.debug("activity %s: %s", activity_type, description)
    return activity


def recent_activity(
    repo: Repository, now: datetime, hours: float = 24
) -> list[Activity]:
    """Entries from the last `hours`, newest first."""
    cutoff = now - timedelta(hours=hours)
    entries = [a for a in repo.get_activity() if a.created_at >= cutoff]
    return sorted(entries, key=lambda a: a.created_at, reverse=True)
