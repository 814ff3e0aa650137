"""Drain the notification queue through the delivery bridge."""

from dataclasses import dataclass
from datetime import timedelta
from typing import Protocol

from rental_alerts.db.storage import ListingStorage
from rental_alerts.logging import get_logger
from rental_alerts.models import (
    ClaimedNotification,
    DeliveryFailure,
    NotificationStatus,
)
from rental_alerts.notifiers.whatsapp import format_listing_message

logger = get_logger(__name__)


class MessageSender(Protocol):
    async def send_message(self, recipient: str, message: str) -> bool: ...


@dataclass
class DispatchSummary:
    """Counts from one dispatcher run."""

    claimed: int = 0
    sent: int = 0
    failed: int = 0
    requeued: int = 0
    released: int = 0


class NotificationDispatcher:
    """Deliver pending notifications in bounded batches.

    State machine per record::

        pending -> processing -> sent | failed
                           \\-> pending   (only while delivery attempts remain)

    Records are claimed atomically before delivery, so overlapping runs never
    send the same record twice. ``sent`` and ``failed`` are final.
    """

    def __init__(
        self,
        storage: ListingStorage,
        sender: MessageSender,
        *,
        batch_size: int = 10,
        max_attempts: int = 1,
        claim_timeout: timedelta = timedelta(minutes=30),
    ) -> None:
        """Initialize the dispatcher.

        Args:
            storage: Store holding the queue.
            sender: Delivery channel.
            batch_size: Maximum records handled per run.
            max_attempts: Delivery attempts per record; 1 means a failed send
                is never retried.
            claim_timeout: Age after which an unfinished claim is released.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.storage = storage
        self.sender = sender
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.claim_timeout = claim_timeout

    async def run_once(self) -> DispatchSummary:
        """Claim one batch of pending records and deliver each."""
        summary = DispatchSummary()
        summary.released = await self.storage.release_stale_claims(self.claim_timeout)

        batch = await self.storage.claim_pending_notifications(self.batch_size)
        summary.claimed = len(batch)
        if not batch:
            logger.info("no_pending_notifications")
            return summary

        logger.info("dispatching_notifications", count=len(batch))

        for claimed in batch:
            try:
                status = await self._deliver(claimed)
            except Exception:
                logger.error(
                    "notification_dispatch_error",
                    notification_id=claimed.record.id,
                    exc_info=True,
                )
                status = NotificationStatus.FAILED

            applied = await self.storage.finish_notification(
                claimed.record.id, claimed.claim_token, status
            )
            if not applied:
                continue
            if status == NotificationStatus.SENT:
                summary.sent += 1
            elif status == NotificationStatus.PENDING:
                summary.requeued += 1
            else:
                summary.failed += 1

        logger.info(
            "dispatch_complete",
            claimed=summary.claimed,
            sent=summary.sent,
            failed=summary.failed,
            requeued=summary.requeued,
        )
        return summary

    async def _deliver(self, claimed: ClaimedNotification) -> NotificationStatus:
        """Attempt delivery and return the status the record should move to."""
        record = claimed.record
        if claimed.listing is None or not claimed.phone_number:
            logger.error(
                "notification_incomplete",
                notification_id=record.id,
                reason=DeliveryFailure.INCOMPLETE_DATA.value,
                has_listing=claimed.listing is not None,
                has_phone=bool(claimed.phone_number),
            )
            return NotificationStatus.FAILED

        message = format_listing_message(claimed.listing)
        if await self.sender.send_message(claimed.phone_number, message):
            logger.info(
                "notification_sent",
                notification_id=record.id,
                user_id=record.user_id,
                listing_id=record.listing_id,
            )
            return NotificationStatus.SENT

        # attempts already counts this delivery (incremented when claimed)
        retry = record.attempts < self.max_attempts
        logger.warning(
            "notification_send_failed",
            notification_id=record.id,
            reason=DeliveryFailure.SEND_FAILURE.value,
            attempts=record.attempts,
            will_retry=retry,
        )
        return NotificationStatus.PENDING if retry else NotificationStatus.FAILED
