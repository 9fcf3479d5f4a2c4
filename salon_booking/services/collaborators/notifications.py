# salon_booking/services/collaborators/notifications.py
"""
Fire-and-forget hooks: customer notifications and freed-slot waitlist matching.
Both are handed to Celery; the request that triggered them never waits.
"""
import logging
from typing import Any, Dict, Protocol

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    def dispatch(self, event_type: str, salon_id, payload: Dict[str, Any]) -> None:
        ...


class FreedSlotPublisher(Protocol):
    def publish(self, appointment) -> None:
        ...


class CeleryNotificationDispatcher:
    """Enqueues the webhook delivery task"""

    def dispatch(self, event_type: str, salon_id, payload: Dict[str, Any]) -> None:
        from salon_booking.tasks.notification_tasks import dispatch_notification

        try:
            dispatch_notification.delay(event_type, str(salon_id), payload)
        except Exception as e:
            logger.error(f"Failed to enqueue {event_type} notification for salon {salon_id}: {e}")


class CeleryFreedSlotPublisher:
    """Enqueues waitlist matching for an interval that just became free"""

    def publish(self, appointment) -> None:
        from salon_booking.tasks.waitlist_tasks import match_freed_slot

        try:
            match_freed_slot.delay(str(appointment.id), str(appointment.salon_id))
        except Exception as e:
            logger.error(f"Failed to enqueue waitlist match for appointment {appointment.id}: {e}")
