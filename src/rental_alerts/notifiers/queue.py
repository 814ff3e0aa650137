"""Deduplicated notification queue."""

from rental_alerts.db.storage import ListingStorage
from rental_alerts.logging import get_logger
from rental_alerts.models import EnqueueResult

logger = get_logger(__name__)


class NotificationQueue:
    """Queue at most one notification per (user, listing) pair, ever.

    ``enqueue`` is insert-if-absent: when a record for the pair already exists
    in any state (pending, in flight, sent or failed) the call is a no-op that
    reports ``ALREADY_QUEUED``. No existence check precedes the insert; the
    store's unique key on the pair decides.
    """

    def __init__(self, storage: ListingStorage) -> None:
        self.storage = storage

    async def enqueue(self, user_id: str, listing_id: str) -> EnqueueResult:
        inserted = await self.storage.insert_notification_if_absent(user_id, listing_id)
        if not inserted:
            logger.debug("notification_already_queued", user_id=user_id, listing_id=listing_id)
            return EnqueueResult.ALREADY_QUEUED

        logger.info("notification_enqueued", user_id=user_id, listing_id=listing_id)
        return EnqueueResult.ENQUEUED
