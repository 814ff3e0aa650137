"""Tests for the deduplicated notification queue."""

import asyncio

from rental_alerts.db.storage import ListingStorage
from rental_alerts.models import EnqueueResult, NotificationStatus
from rental_alerts.notifiers.queue import NotificationQueue


class TestNotificationQueue:
    async def test_enqueue_creates_pending_record(self, storage: ListingStorage) -> None:
        queue = NotificationQueue(storage)

        assert await queue.enqueue("user-1", "1001") == EnqueueResult.ENQUEUED

        [record] = await storage.get_notifications(user_id="user-1")
        assert record.listing_id == "1001"
        assert record.status == NotificationStatus.PENDING

    async def test_second_enqueue_is_noop(self, storage: ListingStorage) -> None:
        queue = NotificationQueue(storage)
        await queue.enqueue("user-1", "1001")

        assert await queue.enqueue("user-1", "1001") == EnqueueResult.ALREADY_QUEUED
        assert len(await storage.get_notifications()) == 1

    async def test_enqueue_after_delivery_is_noop(self, storage: ListingStorage) -> None:
        queue = NotificationQueue(storage)
        await queue.enqueue("user-1", "1001")
        [claimed] = await storage.claim_pending_notifications(1)
        await storage.finish_notification(
            claimed.record.id, claimed.claim_token, NotificationStatus.SENT
        )

        assert await queue.enqueue("user-1", "1001") == EnqueueResult.ALREADY_QUEUED

        [record] = await storage.get_notifications()
        assert record.status == NotificationStatus.SENT

    async def test_concurrent_enqueues_create_one_record(self, storage: ListingStorage) -> None:
        queue = NotificationQueue(storage)

        results = await asyncio.gather(*(queue.enqueue("user-1", "1001") for _ in range(5)))

        assert results.count(EnqueueResult.ENQUEUED) == 1
        assert results.count(EnqueueResult.ALREADY_QUEUED) == 4
        assert len(await storage.get_notifications()) == 1

    async def test_pairs_are_independent(self, storage: ListingStorage) -> None:
        queue = NotificationQueue(storage)

        assert await queue.enqueue("user-1", "1001") == EnqueueResult.ENQUEUED
        assert await queue.enqueue("user-2", "1001") == EnqueueResult.ENQUEUED
        assert await queue.enqueue("user-1", "1002") == EnqueueResult.ENQUEUED
