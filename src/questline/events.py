"""Best-effort Redis pub/sub events for live feeds."""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

QUEST_COMPLETED_CHANNEL = "pubsub:quest_completed"
ACHIEVEMENT_UNLOCKED_CHANNEL = "pubsub:achievement_unlocked"


async def publish_event(redis: object | None, channel: str, payload: dict[str, Any]) -> bool:
    """Publish a JSON payload. Returns False when Redis is absent or the publish fails.

    A failed publish is logged and never raised.
    """
    if redis is None:
        return False
    try:
        await redis.publish(channel, json.dumps(payload, default=str))  # type: ignore[attr-defined]
    except Exception:
        logger.warning("Failed to publish %s event", channel, exc_info=True)
        return False
    return True
