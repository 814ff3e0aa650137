"""Notification queueing and delivery."""

from rental_alerts.notifiers.dispatcher import DispatchSummary, NotificationDispatcher
from rental_alerts.notifiers.queue import NotificationQueue
from rental_alerts.notifiers.whatsapp import WhatsAppNotifier, format_listing_message

__all__ = [
    "DispatchSummary",
    "NotificationDispatcher",
    "NotificationQueue",
    "WhatsAppNotifier",
    "format_listing_message",
]
