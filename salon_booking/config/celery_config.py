"""Celery application and periodic task schedule"""
from celery import Celery

from salon_booking.config.settings import get_settings

settings = get_settings()


def create_celery_app() -> Celery:
    """Create and configure the Celery application"""
    app = Celery(
        "salon_booking",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
        include=[
            "salon_booking.tasks.reservation_tasks",
            "salon_booking.tasks.waitlist_tasks",
            "salon_booking.tasks.notification_tasks",
        ],
    )

    app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        task_routes={
            "salon_booking.tasks.reservation_tasks.*": {"queue": "reservations"},
            "salon_booking.tasks.waitlist_tasks.*": {"queue": "waitlist"},
            "salon_booking.tasks.notification_tasks.*": {"queue": "notifications"},
        },
        beat_schedule={
            # Every instance may run the sweep; each row update is conditional
            "expire-stale-reservations": {
                "task": "salon_booking.tasks.reservation_tasks.expire_stale_reservations",
                "schedule": float(settings.RESERVATION_SWEEP_INTERVAL_SECONDS),
            },
            "expire-waitlist-entries": {
                "task": "salon_booking.tasks.waitlist_tasks.expire_waitlist_entries",
                "schedule": float(settings.WAITLIST_SWEEP_INTERVAL_SECONDS),
            },
        },
    )

    return app


celery_app = create_celery_app()
