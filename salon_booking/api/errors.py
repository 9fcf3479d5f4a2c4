# salon_booking/api/errors.py
"""Maps domain errors to HTTP responses"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from salon_booking.core.exceptions import SchedulingError

logger = logging.getLogger(__name__)


async def scheduling_error_handler(request: Request, exc: SchedulingError):
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    logger.info(
        f"{request.method} {request.url.path} rejected: {exc.code} ({exc.message})",
        extra={"correlation_id": correlation_id},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SchedulingError, scheduling_error_handler)
