# salon_booking/services/booking_rules/booking_rules_engine.py
"""
Booking policy checks. Pure functions over a rules row and a request;
nothing here touches the database.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence
from uuid import UUID

from salon_booking.core.exceptions import PolicyViolation, ValidationError
from salon_booking.models.salon import BookingRules
from salon_booking.models.service import Service
from salon_booking.services.scheduling.time_ranges import ensure_utc

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass
class BookingRequest:
    """What the rules engine needs to know about a booking attempt"""
    starts_at: datetime
    service_ids: Sequence[UUID] = field(default_factory=list)
    salon_bookings_on_day: int = 0
    deposit_required: bool = False
    deposit_amount_chf: Optional[Decimal] = None


class BookingRulesEngine:
    """Validates booking requests against a salon's BookingRules"""

    @staticmethod
    def validate(
            salon_id: UUID,
            rules: BookingRules,
            request: BookingRequest,
            now: datetime,
            customer_existing_reservation_count: int = 0,
    ) -> None:
        """
        Raise on the first broken rule, checked in this order:
        lead_time, horizon, max_per_day, max_concurrent, deposit_inconsistent.

        Values are never clamped into range; the request is rejected as is.
        """
        now = ensure_utc(now)
        starts_at = ensure_utc(request.starts_at)

        max_services = rules.max_services_per_appointment
        if max_services is not None and len(request.service_ids) > max_services:
            raise ValidationError(f"At most {max_services} services can be booked in one appointment")

        if starts_at < now + timedelta(minutes=rules.min_lead_time_minutes):
            raise PolicyViolation(PolicyViolation.LEAD_TIME)

        if starts_at > now + timedelta(days=rules.max_booking_horizon_days):
            raise PolicyViolation(PolicyViolation.HORIZON)

        if rules.max_bookings_per_day is not None and request.salon_bookings_on_day >= rules.max_bookings_per_day:
            raise PolicyViolation(PolicyViolation.MAX_PER_DAY)

        max_concurrent = rules.max_concurrent_reservations_per_customer
        if max_concurrent is not None and customer_existing_reservation_count >= max_concurrent:
            raise PolicyViolation(PolicyViolation.MAX_CONCURRENT)

        BookingRulesEngine.check_deposit(request.deposit_required, request.deposit_amount_chf)

        logger.debug(f"Booking request for salon {salon_id} at {starts_at.isoformat()} passed rules")

    @staticmethod
    def check_deposit(deposit_required: bool, deposit_amount_chf: Optional[Decimal]) -> None:
        if deposit_required and not deposit_amount_chf:
            raise PolicyViolation(PolicyViolation.DEPOSIT_INCONSISTENT)

    @staticmethod
    def resolve_deposit_amount(
            rules: BookingRules,
            services: List[Service],
            total_price: Decimal,
    ) -> Optional[Decimal]:
        """
        Deposit owed for a booking, or None when no deposit applies.

        Explicit per-service deposits are summed; a salon-wide percentage
        raises that amount to at least the percentage of the total price.
        A required deposit that resolves to zero is returned as 0.00 so the
        validator can reject it.
        """
        explicit = sum(
            (Decimal(service.deposit_amount_chf or 0) for service in services if service.requires_deposit),
            Decimal("0"),
        )
        percent = Decimal(rules.deposit_required_percent or 0)
        service_requires = any(service.requires_deposit for service in services)

        if percent > 0:
            amount = max(explicit, Decimal(total_price) * percent / Decimal(100))
        elif service_requires:
            amount = explicit
        else:
            return None

        return amount.quantize(CENTS, rounding=ROUND_HALF_UP)

    @staticmethod
    def is_within_cancellation_cutoff(rules: BookingRules, starts_at: datetime, now: datetime) -> bool:
        cutoff = timedelta(hours=rules.cancellation_cutoff_hours or 0)
        return ensure_utc(starts_at) - ensure_utc(now) < cutoff
