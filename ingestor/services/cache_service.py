import json
import time
from typing import Any

import redis
import structlog

from ingestor.config import settings
from ingestor.constants import DATA_CHANGED_EVENT

logger = structlog.get_logger()


class InvalidationPublisher:
    """Publish data-changed events for the cache invalidation subscriber"""

    def __init__(self, redis_client: redis.Redis = None, channel: str = None):
        self.redis_client = redis_client or redis.Redis.from_url(
            settings.REDIS_URL, decode_responses=True
        )
        self.channel = channel or settings.CACHE_INVALIDATION_CHANNEL

    def publish(self, event: str, **payload: Any) -> bool:
        """Publish an event; failures are logged, never raised"""
        message = json.dumps({"event": event, "at": int(time.time()), **payload}, default=str)
        try:
            receivers = self.redis_client.publish(self.channel, message)
            logger.debug("Published invalidation", channel=self.channel, event=event, receivers=receivers)
            return True
        except Exception as e:
            logger.error("Cache invalidation publish failed", channel=self.channel, event=event, error=str(e))
            return False

    def publish_data_changed(self, **payload: Any) -> bool:
        return self.publish(DATA_CHANGED_EVENT, **payload)

    def close(self) -> None:
        try:
            self.redis_client.close()
        except Exception as e:
            logger.warning("Error closing redis client", error=str(e))
