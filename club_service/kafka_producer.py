"""
Kafka producer for publishing community events
"""
from aiokafka import AIOKafkaProducer
from typing import Any, Dict, Optional
from datetime import datetime, timezone
import json
import logging

from .config import settings

logger = logging.getLogger(__name__)


def _encode_value(value: Dict[str, Any]) -> bytes:
    return json.dumps(value).encode("utf-8")


def _encode_key(key: Optional[str]) -> Optional[bytes]:
    return key.encode("utf-8") if key else None


def _event(event_type: str, club_id: str, post_id: str, **fields) -> Dict[str, Any]:
    return {
        "event_type": event_type,
        "club_id": club_id,
        "post_id": post_id,
        **fields,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class KafkaProducerManager:
    """Publishes post and comment events; every publish degrades to a no-op without a broker"""

    def __init__(self):
        self.producer: Optional[AIOKafkaProducer] = None

    async def start(self):
        if not settings.KAFKA_ENABLED:
            logger.warning("Kafka disabled; community events will not be published")
            return

        producer = AIOKafkaProducer(
            bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
            value_serializer=_encode_value,
            key_serializer=_encode_key,
        )
        try:
            await producer.start()
        except Exception as e:
            logger.error(f"Event producer could not reach {settings.KAFKA_BOOTSTRAP_SERVERS}: {e}")
            return

        self.producer = producer
        logger.info(f"Event producer connected to {settings.KAFKA_BOOTSTRAP_SERVERS}")

    async def stop(self):
        if self.producer is not None:
            await self.producer.stop()
            self.producer = None
            logger.info("Event producer closed")

    async def publish_event(self, topic: str, key: str, event_data: Dict[str, Any]) -> bool:
        """
        Send one event and wait for the broker acknowledgement

        Returns False instead of raising when the event was not delivered, so
        callers can fall back to doing the work inline.
        """
        if self.producer is None:
            logger.debug(f"No producer, {event_data.get('event_type')} for {key} not sent")
            return False

        try:
            await self.producer.send_and_wait(topic, value=event_data, key=key)
        except Exception as e:
            logger.error(f"{event_data.get('event_type')} for {key} not delivered to {topic}: {e}")
            return False

        logger.debug(f"{event_data.get('event_type')} for {key} delivered to {topic}")
        return True

    async def publish_post_created(self, club_id: str, post_id: str, author_id: str) -> bool:
        event = _event("post_created", club_id, post_id, author_id=author_id)
        return await self.publish_event(settings.KAFKA_TOPIC_POST_CREATED, post_id, event)

    async def publish_comment_written(
        self,
        club_id: str,
        post_id: str,
        comment_id: str,
        before: Optional[Dict[str, Any]],
        after: Optional[Dict[str, Any]]
    ) -> bool:
        """A created comment has ``before=None``, a removed one ``after=None``."""
        event = _event("comment_written", club_id, post_id, comment_id=comment_id, before=before, after=after)
        # Keyed by post so count updates for one post stay ordered
        return await self.publish_event(settings.KAFKA_TOPIC_COMMENT_WRITTEN, post_id, event)


kafka_producer = KafkaProducerManager()


async def get_kafka_producer() -> KafkaProducerManager:
    return kafka_producer
