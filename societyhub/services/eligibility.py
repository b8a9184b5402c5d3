from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import NamedTuple

from sqlalchemy.orm import Session as DbSession

from ..constants import ATTENDANCE_PRESENT, PAYMENT_APPROVED, REGISTRATION_REGISTERED
from ..models import Attendance, Event, Registration, Society, User


class RegistrationContext(NamedTuple):
    """Snapshot of everything issuance needs to know about one registration."""

    registration_id: int
    event_id: int
    user_id: int
    registration_status: str
    payment_required: bool
    fee_amount: Decimal | None
    payment_status: str | None
    student_name: str
    student_email: str
    event_title: str
    event_date: date | None
    venue: str | None
    is_paid: bool
    base_fee_amount: Decimal | None
    society_id: int
    society_name: str
    attendance_status: str | None


def load_registration_context(
    session: DbSession, registration_id: int
) -> RegistrationContext | None:
    row = (
        session.query(Registration, User, Event, Society)
        .join(User, User.user_id == Registration.user_id)
        .join(Event, Event.event_id == Registration.event_id)
        .join(Society, Society.society_id == Event.society_id)
        .filter(Registration.registration_id == registration_id)
        .one_or_none()
    )
    if row is None:
        return None
    registration, user, event, society = row

    attendance_status = (
        session.query(Attendance.attendance_status)
        .filter(
            Attendance.event_id == event.event_id,
            Attendance.user_id == user.user_id,
        )
        .order_by(Attendance.marked_at.desc(), Attendance.attendance_id.desc())
        .limit(1)
        .scalar()
    )

    return RegistrationContext(
        registration_id=registration.registration_id,
        event_id=event.event_id,
        user_id=user.user_id,
        registration_status=registration.status,
        payment_required=bool(registration.payment_required),
        fee_amount=registration.fee_amount,
        payment_status=registration.payment_status,
        student_name=user.name,
        student_email=user.email,
        event_title=event.title,
        event_date=event.event_date,
        venue=event.venue,
        is_paid=bool(event.is_paid),
        base_fee_amount=event.base_fee_amount,
        society_id=society.society_id,
        society_name=society.name,
        attendance_status=attendance_status,
    )


def eligibility_failure(
    ctx: RegistrationContext | None,
    *,
    require_past_event: bool = False,
    today: date | None = None,
) -> str | None:
    """Return why ``ctx`` cannot receive a participant certificate, or None."""
    if ctx is None:
        return "not eligible: registration not found"
    if ctx.registration_status != REGISTRATION_REGISTERED:
        return "not eligible: registration is not active"
    if ctx.is_paid and ctx.payment_required and ctx.payment_status != PAYMENT_APPROVED:
        return "not eligible: payment has not been approved"
    if ctx.attendance_status != ATTENDANCE_PRESENT:
        return "not eligible: attendance not marked present"
    if require_past_event and ctx.event_date is not None:
        if today is None:
            raise ValueError("today is required when require_past_event is set")
        if ctx.event_date > today:
            return "not eligible: event has not taken place yet"
    return None


def is_participant_eligible(
    ctx: RegistrationContext | None,
    *,
    require_past_event: bool = False,
    today: date | None = None,
) -> bool:
    return (
        eligibility_failure(ctx, require_past_event=require_past_event, today=today)
        is None
    )
