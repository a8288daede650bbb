from unittest.mock import AsyncMock, MagicMock

import pytest

from club_service.config import settings
from club_service.kafka_consumer import KafkaConsumerManager
from club_service.kafka_producer import KafkaProducerManager


@pytest.fixture
def consumer():
    manager = KafkaConsumerManager()
    manager.comment_counter = MagicMock()
    manager.comment_counter.apply = AsyncMock(return_value=3)
    return manager


@pytest.mark.asyncio
async def test_comment_written_applies_delta(consumer):
    await consumer.process_message(settings.KAFKA_TOPIC_COMMENT_WRITTEN, {
        "event_type": "comment_written",
        "club_id": "club-1",
        "post_id": "post-1",
        "comment_id": "c1",
        "before": {"hidden": False},
        "after": {"hidden": True},
    })

    consumer.comment_counter.apply.assert_awaited_once_with("club-1", "post-1", -1)


@pytest.mark.asyncio
async def test_comment_edit_without_visibility_change_is_ignored(consumer):
    await consumer.process_message(settings.KAFKA_TOPIC_COMMENT_WRITTEN, {
        "club_id": "club-1",
        "post_id": "post-1",
        "before": {"hidden": False},
        "after": {"hidden": False},
    })

    consumer.comment_counter.apply.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("event", [
    {"post_id": "post-1", "before": None, "after": {"hidden": False}},
    {"club_id": "club-1", "before": None, "after": {"hidden": False}},
])
async def test_comment_written_without_ids_is_dropped(consumer, event):
    await consumer.process_message(settings.KAFKA_TOPIC_COMMENT_WRITTEN, event)

    consumer.comment_counter.apply.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_topic_is_ignored(consumer):
    await consumer.process_message("club.unknown", {"club_id": "club-1", "post_id": "post-1"})

    consumer.comment_counter.apply.assert_not_awaited()


@pytest.mark.asyncio
async def test_publish_without_producer_reports_failure():
    producer = KafkaProducerManager()

    assert await producer.publish_comment_written("club-1", "post-1", "c1", None, {"hidden": False}) is False


@pytest.mark.asyncio
async def test_comment_written_is_keyed_by_post():
    producer = KafkaProducerManager()
    producer.producer = MagicMock()
    producer.producer.send_and_wait = AsyncMock()

    assert await producer.publish_comment_written("club-1", "post-1", "c1", None, {"hidden": False}) is True

    args, kwargs = producer.producer.send_and_wait.call_args
    assert args == (settings.KAFKA_TOPIC_COMMENT_WRITTEN,)
    assert kwargs["key"] == "post-1"
    assert kwargs["value"]["before"] is None
    assert kwargs["value"]["after"] == {"hidden": False}


@pytest.mark.asyncio
async def test_publish_failure_is_reported_not_raised():
    producer = KafkaProducerManager()
    producer.producer = MagicMock()
    producer.producer.send_and_wait = AsyncMock(side_effect=RuntimeError("broker down"))

    assert await producer.publish_post_created("club-1", "post-1", "member-1") is False
