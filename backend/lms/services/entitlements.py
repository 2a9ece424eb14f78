"""Entitlement decisions for course recordings and live classes.

`evaluate` is pure: callers gather role, subscription, demo and publish state
and get a `Decision` back. `check_user_access` is the store-backed wrapper used
by the API; it fails closed when a lookup errors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Mapping

from .. import metrics
from ..repositories import demo_access as demo_access_repo
from ..repositories import subscriptions as subscriptions_repo
from ..roles import AccessType, Role, plan_covers

logger = logging.getLogger(__name__)


class DecisionReason(StrEnum):
    staff = "staff"
    subscription = "subscription"
    demo = "demo"
    not_published = "not_published"
    no_entitlement = "no_entitlement"
    forbidden_role = "forbidden_role"
    lookup_failed = "lookup_failed"


@dataclass(frozen=True, slots=True)
class Decision:
    allowed: bool
    reason: DecisionReason
    message: str | None = None
    requires_subscription: bool = False

    @property
    def access_type(self) -> str:
        if self.reason is DecisionReason.subscription:
            return "subscription"
        if self.reason is DecisionReason.demo:
            return "demo"
        return "none"


@dataclass(slots=True)
class AccessResult:
    has_access: bool
    access_type: str
    message: str | None = None
    subscription: dict[str, Any] | None = None
    demo_access: dict[str, Any] | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "hasAccess": self.has_access,
            "accessType": self.access_type,
        }
        if self.message:
            payload["message"] = self.message
        if self.subscription:
            payload["subscription"] = self.subscription
        if self.demo_access:
            payload["demoAccess"] = self.demo_access
        return payload


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def _is_unexpired(row: Mapping[str, Any] | None, now: datetime) -> bool:
    if not row:
        return False
    expires_at = _as_aware(row.get("expires_at"))
    return expires_at is not None and expires_at > now


def subscription_covers(
    subscription: Mapping[str, Any] | None,
    resource_type: AccessType,
    *,
    now: datetime | None = None,
) -> bool:
    if not _is_unexpired(subscription, now or _now()):
        return False
    status = (subscription.get("status") or "active").lower()
    if status != "active":
        return False
    return plan_covers(subscription.get("plan_type"), resource_type)


def evaluate(
    role: Role | None,
    *,
    is_course_staff: bool = False,
    is_published: bool = True,
    subscription: Mapping[str, Any] | None = None,
    demo_grant: Mapping[str, Any] | None = None,
    resource_type: AccessType = AccessType.lecture_recording,
    now: datetime | None = None,
) -> Decision:
    """Decide access for one caller; the first matching rule wins.

    `is_course_staff` means the caller is assigned to the course or uploaded the
    recording. Admins and superadmins need neither.
    """

    now = now or _now()
    if role is None:
        return Decision(False, DecisionReason.forbidden_role, "Forbidden")
    if role.is_admin:
        return Decision(True, DecisionReason.staff)
    if role is Role.teacher:
        if is_course_staff:
            return Decision(True, DecisionReason.staff)
        return Decision(False, DecisionReason.forbidden_role, "Forbidden")

    if not is_published:
        return Decision(False, DecisionReason.not_published, "Recording not published")
    if subscription_covers(subscription, resource_type, now=now):
        return Decision(True, DecisionReason.subscription)
    if _is_unexpired(demo_grant, now) and (
        demo_grant.get("access_type") in (None, resource_type.value)
    ):
        return Decision(True, DecisionReason.demo)
    return Decision(
        False,
        DecisionReason.no_entitlement,
        f"No {resource_type.value} access found for this course",
        requires_subscription=True,
    )


def _iso(value: Any) -> Any:
    return value.isoformat() if isinstance(value, datetime) else value


async def check_user_access(
    user_id: str, course_id: str, resource_type: AccessType
) -> AccessResult:
    """Subscription-or-demo check for a student in one course."""

    try:
        subscription = await subscriptions_repo.get_active_subscription(
            user_id, course_id, resource_type
        )
        demo_grant = None
        if not subscription_covers(subscription, resource_type):
            demo_grant = await demo_access_repo.get_active_demo_access(
                user_id, course_id, resource_type.value
            )
    except Exception:
        logger.exception(
            "Entitlement lookup failed user_id=%s course_id=%s resource_type=%s",
            user_id,
            course_id,
            resource_type.value,
        )
        metrics.entitlement_decisions_total.labels(
            outcome="denied", reason=DecisionReason.lookup_failed.value
        ).inc()
        return AccessResult(
            has_access=False,
            access_type="none",
            message="Error checking access permissions",
        )

    decision = evaluate(
        Role.student,
        subscription=subscription,
        demo_grant=demo_grant,
        resource_type=resource_type,
    )
    metrics.entitlement_decisions_total.labels(
        outcome="granted" if decision.allowed else "denied",
        reason=decision.reason.value,
    ).inc()

    result = AccessResult(
        has_access=decision.allowed,
        access_type=decision.access_type,
        message=decision.message,
    )
    if decision.reason is DecisionReason.subscription and subscription:
        result.subscription = {
            "id": str(subscription.get("id")),
            "planName": subscription.get("plan_name"),
            "planType": subscription.get("plan_type"),
            "expiresAt": _iso(subscription.get("expires_at")),
        }
    elif decision.reason is DecisionReason.demo and demo_grant:
        result.demo_access = {
            "id": str(demo_grant.get("id")),
            "accessType": demo_grant.get("access_type"),
            "expiresAt": _iso(demo_grant.get("expires_at")),
        }
    return result


async def can_access_lecture_recordings(user_id: str, course_id: str) -> AccessResult:
    return await check_user_access(user_id, course_id, AccessType.lecture_recording)


__all__ = [
    "AccessResult",
    "Decision",
    "DecisionReason",
    "can_access_lecture_recordings",
    "check_user_access",
    "evaluate",
    "subscription_covers",
]
