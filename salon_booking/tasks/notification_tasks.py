# ===== salon_booking/tasks/notification_tasks.py =====
from typing import Any, Dict
import logging

import httpx

from salon_booking.config.celery_config import celery_app
from salon_booking.config.settings import get_settings
from salon_booking.schemas.task_payloads import NotificationPayload

logger = logging.getLogger(__name__)
settings = get_settings()


@celery_app.task(bind=True, max_retries=settings.MAX_RETRY_ATTEMPTS)
def dispatch_notification(self, event_type: str, salon_id: str, data: Dict[str, Any]):
    """
    Deliver a booking event to the notification service.

    Args:
        event_type: e.g. "appointment.confirmed", "waitlist.matched"
        salon_id: Tenant the event belongs to
        data: Event body
    """
    if not settings.NOTIFICATION_WEBHOOK_URL:
        logger.info(f"No notification endpoint configured, dropping {event_type} for salon {salon_id}")
        return {"status": "skipped", "event_type": event_type}

    payload = NotificationPayload(event_type=event_type, salon_id=salon_id, data=data)

    try:
        response = httpx.post(
            settings.NOTIFICATION_WEBHOOK_URL,
            content=payload.model_dump_json(),
            headers={
                "Content-Type": "application/json",
                "X-Event-Type": event_type,
                "X-Event-Id": payload.event_id,
            },
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
        response.raise_for_status()

        logger.info(f"Delivered {event_type} notification for salon {salon_id}")
        return {"status": "delivered", "event_type": event_type, "status_code": response.status_code}

    except httpx.HTTPError as exc:
        logger.error(f"Failed to deliver {event_type} notification for salon {salon_id}: {exc}")

        # Retry with exponential backoff: 1min, 2min, 4min
        raise self.retry(
            exc=exc,
            countdown=60 * (2 ** self.request.retries)
        )
