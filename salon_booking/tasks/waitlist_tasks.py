# ===== salon_booking/tasks/waitlist_tasks.py =====
import logging

from salon_booking.config.celery_config import celery_app
from salon_booking.config.database import SessionLocal
from salon_booking.core.tenancy import TenantContext, as_uuid
from salon_booking.models.appointment import Appointment
from salon_booking.services.waitlist.waitlist_manager import WaitlistManager

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def match_freed_slot(self, appointment_id: str, salon_id: str):
    """Offer the interval of a cancelled appointment to matching waitlist entries"""
    try:
        db = SessionLocal()
        try:
            ctx = TenantContext.system(as_uuid(salon_id))
            appointment = db.get(Appointment, as_uuid(appointment_id))
            if not appointment or appointment.salon_id != ctx.salon_id:
                logger.error(f"Appointment {appointment_id} not found in salon {salon_id}")
                return {"status": "failed", "reason": "appointment_not_found"}

            matched = WaitlistManager(db).match_new_slot(
                ctx,
                appointment.staff_id,
                appointment.starts_at,
                appointment.ends_at,
                appointment.service_ids,
            )
            return {"status": "completed", "matched": [str(entry.id) for entry in matched]}
        finally:
            db.close()

    except Exception as exc:
        logger.error(f"Waitlist matching failed for appointment {appointment_id}: {exc}")
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))


@celery_app.task(bind=True, max_retries=3)
def expire_waitlist_entries(self):
    try:
        db = SessionLocal()
        try:
            expired = WaitlistManager(db).expire_stale_entries()
            return {"status": "completed", "expired": expired}
        finally:
            db.close()

    except Exception as exc:
        logger.error(f"Waitlist sweep failed: {exc}")
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))
