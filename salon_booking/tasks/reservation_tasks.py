# ===== salon_booking/tasks/reservation_tasks.py =====
import logging

from salon_booking.config.celery_config import celery_app
from salon_booking.config.database import SessionLocal
from salon_booking.services.reservation.reservation_manager import ReservationManager

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def expire_stale_reservations(self):
    """Cancel holds whose reserved_until has passed. Runs from beat; overlapping runs are harmless."""
    try:
        db = SessionLocal()
        try:
            expired = ReservationManager(db).expire_stale()
            return {"status": "completed", "expired": expired}
        finally:
            db.close()

    except Exception as exc:
        logger.error(f"Reservation sweep failed: {exc}")
        raise self.retry(exc=exc, countdown=10 * (self.request.retries + 1))
