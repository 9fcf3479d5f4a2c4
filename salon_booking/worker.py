"""
Celery worker entry point
Runs reservation expiry, waitlist matching and notification delivery
"""
import logging
from celery.signals import worker_ready, worker_shutdown

from salon_booking.config.celery_config import celery_app
from salon_booking.utils.my_logging import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


@worker_ready.connect
def worker_ready_handler(sender=None, **kwargs):
    logger.info("Celery worker ready")
    logger.info(f"Registered tasks: {sorted(name for name in celery_app.tasks if name.startswith('salon_booking'))}")


@worker_shutdown.connect
def worker_shutdown_handler(sender=None, **kwargs):
    logger.info("Celery worker shutting down")


if __name__ == "__main__":
    # Beat is embedded so a single process can run the sweeps in development
    celery_app.start([
        'worker',
        '--beat',
        '--loglevel=info',
        '--concurrency=4',
        '--max-tasks-per-child=1000',
        '-Q', 'reservations,waitlist,notifications',
    ])
