# salon_booking/services/waitlist/waitlist_manager.py
"""Waitlist entries and matching of freed slots"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from salon_booking.config.settings import get_settings
from salon_booking.core.exceptions import ValidationError
from salon_booking.core.tenancy import STAFF_ROLES, Role, TenantContext, TenantScopeGuard, as_uuid
from salon_booking.models.salon import Salon
from salon_booking.models.service import Service
from salon_booking.models.staff import StaffMember
from salon_booking.models.waitlist import TimeOfDay, WaitlistEntry, WaitlistStatus
from salon_booking.services.catalog.catalog_service import CatalogService
from salon_booking.services.collaborators.notifications import CeleryNotificationDispatcher, NotificationDispatcher
from salon_booking.services.scheduling.time_ranges import (
    ensure_utc,
    local_date,
    minute_of_day,
    salon_zone,
)

logger = logging.getLogger(__name__)
settings = get_settings()

W = WaitlistStatus

# Entries the expiry sweep still looks at
LIVE_STATUSES = (W.ACTIVE.value, W.NOTIFIED.value)


class WaitlistManager:
    """Submits, withdraws, matches and expires waitlist entries"""

    def __init__(self, db: Session, notifier: Optional[NotificationDispatcher] = None):
        self.db = db
        self.notifier = notifier or CeleryNotificationDispatcher()

    def submit(
            self,
            ctx: TenantContext,
            customer_id: UUID,
            service_id: UUID,
            date_range_start=None,
            date_range_end=None,
            preferred_time_of_day: Optional[Iterable[str]] = None,
            preferred_weekdays: Optional[Iterable[int]] = None,
            preferred_staff_id: Optional[UUID] = None,
            customer_notes: Optional[str] = None,
            auto_expire_days: Optional[int] = None,
            now: Optional[datetime] = None,
    ) -> WaitlistEntry:
        now = ensure_utc(now or datetime.now(timezone.utc))
        TenantScopeGuard.ensure_customer_access(ctx, customer_id)

        service = TenantScopeGuard.load(self.db, ctx, Service, service_id, "Service")
        if preferred_staff_id is not None:
            TenantScopeGuard.load(self.db, ctx, StaffMember, preferred_staff_id, "Staff member")

        if date_range_start and date_range_end and date_range_end < date_range_start:
            raise ValidationError("date_range_end must not be before date_range_start")

        times_of_day = self._normalize_times_of_day(preferred_time_of_day)
        weekdays = self._normalize_weekdays(preferred_weekdays)

        expire_days = auto_expire_days or settings.WAITLIST_AUTO_EXPIRE_DAYS
        if expire_days <= 0:
            raise ValidationError("auto_expire_days must be positive")

        entry = WaitlistEntry(
            salon_id=ctx.salon_id,
            customer_id=customer_id,
            desired_service_id=service.id,
            date_range_start=date_range_start,
            date_range_end=date_range_end,
            preferred_time_of_day=times_of_day,
            preferred_weekdays=weekdays,
            preferred_staff_id=preferred_staff_id,
            customer_notes=customer_notes,
            status=W.ACTIVE.value,
            notification_count=0,
            auto_expire_days=expire_days,
            expires_at=now + timedelta(days=expire_days),
            created_at=now,
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)

        logger.info(f"Waitlist entry {entry.id} created for customer {customer_id}, service {service.id}")
        return entry

    def withdraw(self, ctx: TenantContext, entry_id: UUID) -> WaitlistEntry:
        entry = TenantScopeGuard.load(self.db, ctx, WaitlistEntry, entry_id, "Waitlist entry")
        TenantScopeGuard.ensure_customer_access(ctx, entry.customer_id)

        if entry.status not in LIVE_STATUSES:
            raise ValidationError(f"Waitlist entry is already {entry.status}")

        entry.status = W.CANCELLED.value
        self.db.commit()
        self.db.refresh(entry)
        logger.info(f"Waitlist entry {entry.id} withdrawn")
        return entry

    def list_entries(
            self,
            ctx: TenantContext,
            status: Optional[str] = None,
            customer_id: Optional[UUID] = None,
    ) -> List[WaitlistEntry]:
        """Entries of the salon in FIFO order; customers only ever see their own."""
        query = self.db.query(WaitlistEntry).filter(WaitlistEntry.salon_id == ctx.salon_id)

        if ctx.role == Role.CUSTOMER:
            customer_id = ctx.principal_id
        if customer_id is not None:
            query = query.filter(WaitlistEntry.customer_id == customer_id)
        if status:
            if status not in {s.value for s in W}:
                raise ValidationError(f"Unknown waitlist status '{status}'")
            query = query.filter(WaitlistEntry.status == status)

        return query.order_by(WaitlistEntry.created_at.asc(), WaitlistEntry.id.asc()).all()

    def match_new_slot(
            self,
            ctx: TenantContext,
            freed_staff_id: UUID,
            freed_starts_at: datetime,
            freed_ends_at: datetime,
            service_ids: Sequence[UUID],
            now: Optional[datetime] = None,
    ) -> List[WaitlistEntry]:
        """
        Active entries that fit a freed interval, oldest first.

        Matched entries move to notified and a notification is handed off
        for each one.
        """
        TenantScopeGuard.require_role(ctx, *STAFF_ROLES)
        now = ensure_utc(now or datetime.now(timezone.utc))
        salon = CatalogService.get_salon(self.db, ctx)
        tz = salon_zone(salon.timezone)

        freed_staff_id = as_uuid(freed_staff_id)
        service_ids = [as_uuid(service_id) for service_id in service_ids]
        freed_starts_at = ensure_utc(freed_starts_at)
        freed_day = local_date(freed_starts_at, tz)
        freed_bucket = TimeOfDay.for_minute(minute_of_day(freed_starts_at, freed_day, tz)).value
        freed_weekday = freed_day.isoweekday()

        candidates = self.db.query(WaitlistEntry).filter(
            WaitlistEntry.salon_id == salon.id,
            WaitlistEntry.status == W.ACTIVE.value,
            WaitlistEntry.desired_service_id.in_(service_ids),
        ).order_by(WaitlistEntry.created_at.asc(), WaitlistEntry.id.asc()).all()

        matched: List[WaitlistEntry] = []
        for entry in candidates:
            if self._is_expired(entry, now, tz):
                entry.status = W.EXPIRED.value
                continue
            if entry.date_range_start and freed_day < entry.date_range_start:
                continue
            if entry.date_range_end and freed_day > entry.date_range_end:
                continue
            if entry.preferred_time_of_day and freed_bucket not in entry.preferred_time_of_day:
                continue
            if entry.preferred_weekdays and freed_weekday not in entry.preferred_weekdays:
                continue
            if entry.preferred_staff_id and entry.preferred_staff_id != freed_staff_id:
                continue

            entry.status = W.NOTIFIED.value
            entry.notified_at = now
            entry.notification_count = (entry.notification_count or 0) + 1
            matched.append(entry)

        self.db.commit()

        for entry in matched:
            self.notifier.dispatch("waitlist.matched", salon.id, {
                "waitlist_entry_id": str(entry.id),
                "customer_id": str(entry.customer_id),
                "service_id": str(entry.desired_service_id),
                "staff_id": str(freed_staff_id),
                "starts_at": freed_starts_at.isoformat(),
                "ends_at": ensure_utc(freed_ends_at).isoformat(),
            })

        logger.info(
            f"Freed slot {freed_starts_at.isoformat()} for staff {freed_staff_id} "
            f"matched {len(matched)} waitlist entr{'y' if len(matched) == 1 else 'ies'}"
        )
        return matched

    def expire_stale_entries(self, now: Optional[datetime] = None, salon_id: Optional[UUID] = None) -> int:
        """Mark entries past their expiry or date range as expired. Safe to run repeatedly."""
        now = ensure_utc(now or datetime.now(timezone.utc))
        query = self.db.query(WaitlistEntry, Salon.timezone).join(Salon, Salon.id == WaitlistEntry.salon_id).filter(
            WaitlistEntry.status.in_(LIVE_STATUSES),
        )
        if salon_id is not None:
            query = query.filter(WaitlistEntry.salon_id == salon_id)

        expired = 0
        for entry, tz_name in query.all():
            if self._is_expired(entry, now, salon_zone(tz_name)):
                entry.status = W.EXPIRED.value
                expired += 1

        self.db.commit()
        if expired:
            logger.info(f"Expired {expired} waitlist entr{'y' if expired == 1 else 'ies'}")
        return expired

    @staticmethod
    def _is_expired(entry: WaitlistEntry, now: datetime, tz) -> bool:
        if entry.expires_at is not None:
            if ensure_utc(entry.expires_at) < now:
                return True
        elif entry.created_at is not None:
            if ensure_utc(entry.created_at) + timedelta(days=entry.auto_expire_days or 0) < now:
                return True
        return entry.date_range_end is not None and entry.date_range_end < local_date(now, tz)

    @staticmethod
    def _normalize_times_of_day(values: Optional[Iterable[str]]) -> List[str]:
        result = []
        for value in values or []:
            try:
                bucket = TimeOfDay(value).value
            except ValueError:
                raise ValidationError(f"Unknown time of day '{value}'")
            if bucket not in result:
                result.append(bucket)
        return result

    @staticmethod
    def _normalize_weekdays(values: Optional[Iterable[int]]) -> List[int]:
        result = []
        for value in values or []:
            if not isinstance(value, int) or not 1 <= value <= 7:
                raise ValidationError(f"Weekday must be between 1 (Monday) and 7 (Sunday), got {value}")
            if value not in result:
                result.append(value)
        return sorted(result)
