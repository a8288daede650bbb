"""
Kafka consumer keeping post comment counts in sync with comment writes
"""
from aiokafka import AIOKafkaConsumer
from typing import Awaitable, Callable, Dict, Optional
import json
import asyncio
import logging

from .config import settings
from .application.services import CommentCountUpdater, comment_count_delta

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict], Awaitable[None]]


def _decode(raw: bytes) -> dict:
    return json.loads(raw.decode("utf-8"))


class KafkaConsumerManager:
    """Owns the comment-count consumer and its background loop"""

    def __init__(self):
        self.consumer: Optional[AIOKafkaConsumer] = None
        self.comment_counter: Optional[CommentCountUpdater] = None
        self.running = False
        self.task: Optional[asyncio.Task] = None

    @property
    def handlers(self) -> Dict[str, EventHandler]:
        return {settings.KAFKA_TOPIC_COMMENT_WRITTEN: self._on_comment_written}

    async def start(self, comment_counter: CommentCountUpdater):
        self.comment_counter = comment_counter

        if not settings.KAFKA_ENABLED:
            logger.warning("Kafka disabled; comment counts are updated inline")
            return

        consumer = AIOKafkaConsumer(
            *self.handlers,
            bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
            group_id=settings.KAFKA_CONSUMER_GROUP,
            value_deserializer=_decode,
            auto_offset_reset="earliest",
            enable_auto_commit=True,
        )
        try:
            await consumer.start()
        except Exception as e:
            logger.error(f"Comment count consumer could not connect: {e}")
            return

        self.consumer = consumer
        self.running = True
        self.task = asyncio.create_task(self._run())
        logger.info(f"Comment count consumer joined group {settings.KAFKA_CONSUMER_GROUP}")

    async def stop(self):
        self.running = False

        if self.task is not None:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None

        if self.consumer is not None:
            await self.consumer.stop()
            self.consumer = None
            logger.info("Comment count consumer closed")

    async def _run(self):
        try:
            async for record in self.consumer:
                if not self.running:
                    break
                try:
                    await self.process_message(record.topic, record.value)
                except Exception as e:
                    # One bad record must not stop the loop
                    logger.error(f"Failed to handle record at {record.topic}:{record.offset}: {e}")
        except asyncio.CancelledError:
            logger.info("Comment count consumer loop cancelled")
        except Exception as e:
            logger.error(f"Comment count consumer loop crashed: {e}")

    async def process_message(self, topic: str, value: dict):
        """Route one decoded record to the handler for its topic"""
        handler = self.handlers.get(topic)
        if handler is None:
            logger.warning(f"No handler for topic {topic}, record dropped")
            return

        logger.debug(f"Handling {value.get('event_type', 'event')} from {topic}")
        await handler(value)

    async def _on_comment_written(self, event: dict):
        """
        Shift the post's comment count by the visibility change of one comment

        ``before``/``after`` are ``{"hidden": bool}`` snapshots; a created
        comment has no ``before`` and a deleted one has no ``after``.
        """
        club_id = event.get("club_id")
        post_id = event.get("post_id")

        if not club_id or not post_id:
            logger.error(f"Dropping comment_written without club or post: {event.get('comment_id')}")
            return

        delta = comment_count_delta(event.get("before"), event.get("after"))
        if delta == 0:
            return

        count = await self.comment_counter.apply(club_id, post_id, delta)
        logger.info(f"clubs/{club_id}/posts/{post_id} comments_count -> {count}")


kafka_consumer = KafkaConsumerManager()
