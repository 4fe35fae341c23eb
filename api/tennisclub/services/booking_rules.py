"""Reservation rules enforcement.

All reservation validation logic lives here, separate from the route handlers.
Each rule returns a violation or None if the rule passes.
The main validate_reservation() function runs all rules and collects violations.
"""

from datetime import UTC, date, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tennisclub.core.config import settings
from tennisclub.models.reservation import Reservation, ReservationStatus


class ReservationViolation(Exception):
    """Raised when a reservation rule is violated."""

    def __init__(self, rule: str, message: str):
        self.rule = rule
        self.message = message
        super().__init__(message)


def _fmt_hours(hours: int) -> str:
    return f"{hours} hour{'s' if hours != 1 else ''}"


async def validate_reservation(
    db: AsyncSession,
    reservation_date: date,
    time_slot: int,
    duration: int,
) -> list[ReservationViolation]:
    """Run all reservation rules and return a list of violations (empty = valid)."""
    violations: list[ReservationViolation] = []

    for v in (
        check_duration(duration),
        check_court_hours(time_slot, duration),
        check_not_in_past(reservation_date),
    ):
        if v:
            violations.append(v)

    # Overlap is only meaningful once the range itself is sane
    if not violations:
        v = await check_court_conflict(db, reservation_date, time_slot, time_slot + duration)
        if v:
            violations.append(v)

    return violations


def check_duration(duration: int) -> ReservationViolation | None:
    if duration < 1 or duration > settings.max_duration_hours:
        return ReservationViolation(
            "duration",
            f"Duration {_fmt_hours(duration)} not allowed. Book between 1 and {_fmt_hours(settings.max_duration_hours)}.",
        )
    return None


def check_court_hours(time_slot: int, duration: int) -> ReservationViolation | None:
    """The court is open from opening_hour until closing_hour."""
    if time_slot < settings.opening_hour or time_slot >= settings.closing_hour:
        return ReservationViolation(
            "court_hours",
            f"Court opens at {settings.opening_hour:02d}:00 and closes at {settings.closing_hour:02d}:00.",
        )
    if time_slot + duration > settings.closing_hour:
        return ReservationViolation(
            "court_hours",
            f"Reservation would end after closing time ({settings.closing_hour:02d}:00).",
        )
    return None


def check_not_in_past(reservation_date: date) -> ReservationViolation | None:
    """Cannot book a date that has already passed."""
    if reservation_date < datetime.now(UTC).date():
        return ReservationViolation("past_reservation", "Cannot book a date in the past.")
    return None


async def check_court_conflict(
    db: AsyncSession,
    reservation_date: date,
    start_slot: int,
    end_slot: int,
    exclude_id: int | None = None,
) -> ReservationViolation | None:
    """No two non-cancelled reservations can overlap on the same date."""
    query = select(Reservation).where(
        Reservation.date == reservation_date,
        Reservation.status != ReservationStatus.CANCELLED,
        Reservation.time_slot < end_slot,
        Reservation.end_time_slot > start_slot,
    )
    if exclude_id is not None:
        query = query.where(Reservation.id != exclude_id)
    result = await db.execute(query.limit(1))
    conflict = result.scalar_one_or_none()

    if conflict:
        return ReservationViolation(
            "court_conflict",
            f"Court already booked from {conflict.time_slot:02d}:00 to {conflict.end_time_slot:02d}:00.",
        )

    return None
