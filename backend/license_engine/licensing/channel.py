"""
Push channel: topic-based publish/subscribe with room addressing.

Rooms:
    admins         every connected super-admin
    tenant:<id>    every member of one college
    user:<id>      one user's private topic

The engine only publishes. Subscription management belongs to the
transport (websocket gateway subscribed to Redis).

RedisPushChannel is used when REDIS_URL is set. Otherwise the process falls
back to InMemoryPushChannel, which keeps published messages for inspection
and delivers them nowhere.
"""

import json
import logging
import os
from threading import Lock
from typing import Any, Dict, List, Optional, Tuple

import redis

logger = logging.getLogger(__name__)

ADMINS_TOPIC = "admins"


def admins_topic() -> str:
    return ADMINS_TOPIC


def tenant_topic(tenant_id: str) -> str:
    return f"tenant:{tenant_id}"


def user_topic(user_id: str) -> str:
    return f"user:{user_id}"


class PushChannel:
    """
    Base publisher.

    Subclasses implement _send(). publish() applies the topic prefix and
    JSON-encodes the message. Failures propagate to the caller.
    """

    def __init__(self, topic_prefix: str = ""):
        self.topic_prefix = topic_prefix or ""

    def full_topic(self, topic: str) -> str:
        return f"{self.topic_prefix}{topic}"

    def publish(self, topic: str, message: Dict[str, Any]) -> int:
        """Publish message to topic. Returns the transport's receiver count."""
        payload = json.dumps(message, default=str)
        return self._send(self.full_topic(topic), payload)

    def _send(self, topic: str, payload: str) -> int:
        raise NotImplementedError

    def close(self) -> None:
        pass


class RedisPushChannel(PushChannel):
    """Publishes onto Redis pub/sub channels named after the room."""

    def __init__(
        self,
        redis_url: str,
        topic_prefix: str = "",
        client: Optional["redis.Redis"] = None,
    ):
        super().__init__(topic_prefix)
        self._redis = client or redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
        )

    def ping(self) -> bool:
        try:
            return bool(self._redis.ping())
        except redis.RedisError as e:
            logger.warning("Redis ping failed", extra={"error": str(e)})
            return False

    def _send(self, topic: str, payload: str) -> int:
        return self._redis.publish(topic, payload)

    def close(self) -> None:
        self._redis.close()


class InMemoryPushChannel(PushChannel):
    """
    Process-local channel that records every published message.

    Used when Redis is not configured and by the test suite.
    """

    def __init__(self, topic_prefix: str = ""):
        super().__init__(topic_prefix)
        self._messages: List[Tuple[str, Dict[str, Any]]] = []
        self._lock = Lock()

    def _send(self, topic: str, payload: str) -> int:
        with self._lock:
            self._messages.append((topic, json.loads(payload)))
        return 0

    @property
    def messages(self) -> List[Tuple[str, Dict[str, Any]]]:
        with self._lock:
            return list(self._messages)

    def messages_for(self, topic: str) -> List[Dict[str, Any]]:
        full = self.full_topic(topic)
        return [message for t, message in self.messages if t == full]

    def events(self, topic: Optional[str] = None) -> List[str]:
        """Event names in publish order, optionally for one topic."""
        if topic is not None:
            return [m["event"] for m in self.messages_for(topic)]
        return [m["event"] for _, m in self.messages]

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()


def create_push_channel(topic_prefix: str = "") -> PushChannel:
    """Build the process push channel from REDIS_URL."""
    redis_url = os.getenv("REDIS_URL")
    if not redis_url:
        logger.warning("REDIS_URL not configured - license notifications stay in-process")
        return InMemoryPushChannel(topic_prefix)

    channel = RedisPushChannel(redis_url, topic_prefix=topic_prefix)
    if channel.ping():
        logger.info("Redis push channel established for license notifications")
    return channel
