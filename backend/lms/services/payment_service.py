"""Admin review of manually verified payments.

Approving a verification turns it into an active course subscription and a
paid enrollment. No money moves here.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, time, timezone
from typing import Any, Mapping

from ..errors import NotFound, ValidationFailed
from ..repositories import enrollments as enrollments_repo
from ..repositories import payment_verifications as payments_repo
from ..repositories import subscriptions as subscriptions_repo

logger = logging.getLogger(__name__)

_REVIEW_STATUSES = ("approved", "rejected")


def _add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def subscription_expiry(plan: Mapping[str, Any], *, now: datetime | None = None) -> datetime:
    """`duration_months` counts from now; otherwise the plan runs until a fixed date."""

    start = now or datetime.now(timezone.utc)
    months = plan.get("duration_months")
    if months:
        return _add_months(start, int(months))
    until = plan.get("duration_until_date")
    if isinstance(until, datetime):
        return until if until.tzinfo else until.replace(tzinfo=timezone.utc)
    if isinstance(until, date):
        return datetime.combine(until, time.min, tzinfo=timezone.utc)
    if isinstance(until, str) and until:
        try:
            parsed = datetime.fromisoformat(until)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValidationFailed("Invalid subscription plan duration")


async def _resolve_plan(verification: Mapping[str, Any]) -> dict[str, Any]:
    plan = None
    plan_id = verification.get("subscription_plan_id")
    if plan_id:
        plan = await subscriptions_repo.get_plan(str(plan_id))
    if plan is None and verification.get("amount"):
        plan = await subscriptions_repo.find_active_plan_by_price(verification["amount"])
    if plan is None:
        raise ValidationFailed("Subscription plan not found")
    return plan


async def review_payment(
    payment_id: str,
    *,
    status: str | None,
    notes: str | None,
    reviewer_id: str,
) -> dict[str, Any]:
    if status not in _REVIEW_STATUSES:
        raise ValidationFailed("Valid status (approved/rejected) is required")

    verification = await payments_repo.get_payment_verification(payment_id)
    if not verification:
        raise NotFound("Payment verification not found")
    if verification.get("status") != "pending":
        raise ValidationFailed("Payment verification has already been processed")

    plan = None
    expires_at = None
    now = datetime.now(timezone.utc)
    if status == "approved":
        plan = await _resolve_plan(verification)
        expires_at = subscription_expiry(plan, now=now)

    updated = await payments_repo.mark_processed(
        payment_id, status=status, verified_by=reviewer_id, notes=notes
    )
    if updated is None:
        # another reviewer got there first
        raise ValidationFailed("Payment verification has already been processed")

    result: dict[str, Any] = {
        "message": f"Payment verification {status} successfully",
        "paymentVerification": updated,
    }
    if plan is None:
        logger.info("Payment verification rejected payment_id=%s", payment_id)
        return result

    student_id = str(verification["student_id"])
    course_id = str(verification["course_id"])
    subscription = await subscriptions_repo.create_subscription(
        user_id=student_id,
        course_id=course_id,
        plan_id=str(plan["id"]),
        starts_at=now,
        expires_at=expires_at,
    )
    await enrollments_repo.upsert_paid_enrollment(student_id, course_id)
    logger.info(
        "Payment approved payment_id=%s student_id=%s course_id=%s plan_id=%s",
        payment_id,
        student_id,
        course_id,
        plan["id"],
    )
    result["subscription"] = subscription
    return result


__all__ = ["review_payment", "subscription_expiry"]
