import logging
from typing import Optional

from ..models import SystemLog


logger = logging.getLogger(__name__)


def log_activity(
    session,
    entity_type: str,
    action: str,
    description: str,
    entity_id: Optional[object] = None,
    user_id: Optional[int] = None,
) -> SystemLog:
    """Queue an activity row on ``session``; the caller's commit persists it."""
    entry = SystemLog(
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        action=action,
        description=description,
        user_id=user_id,
    )
    session.add(entry)
    logger.info("%s %s: %s", entity_type, action, description)
    return entry
