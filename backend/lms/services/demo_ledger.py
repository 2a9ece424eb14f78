"""24-hour demo access grants.

Grants are keyed by (user, course, access type) and only ever written through
an upsert on that key. Tracking a viewed recording updates the existing grant
instead of adding rows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from .. import metrics
from ..config import settings
from ..errors import Forbidden, NotFound, ValidationFailed
from ..repositories import courses as courses_repo
from ..repositories import demo_access as demo_access_repo
from ..repositories import enrollments as enrollments_repo
from ..repositories import users as users_repo
from ..roles import AccessType, EnrollmentType, parse_access_type

logger = logging.getLogger(__name__)

_INVALID_ACCESS_TYPE = 'Invalid accessType. Must be "lecture_recording" or "live_class"'
_LIST_STATUSES = ("all", "active", "expired")


@dataclass(slots=True)
class GrantResult:
    grant: dict[str, Any]
    created: bool
    enrollment: dict[str, Any] | None = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def demo_expiry(now: datetime | None = None) -> datetime:
    return (now or _now()) + timedelta(hours=settings.demo_access_hours)


def _is_active(grant: Mapping[str, Any], now: datetime) -> bool:
    expires_at = grant.get("expires_at")
    if not isinstance(expires_at, datetime):
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at > now


def require_access_type(value: str | None) -> AccessType:
    access_type = parse_access_type(value)
    if access_type is None:
        raise ValidationFailed(_INVALID_ACCESS_TYPE)
    return access_type


async def ensure_demo_enrollment(user_id: str, course_id: str) -> dict[str, Any] | None:
    """Make sure a demo enrollment exists; failures are logged and never raised."""

    try:
        existing = await enrollments_repo.get_enrollment(user_id, course_id)
        if existing:
            return existing
        return await enrollments_repo.create_enrollment(
            user_id, course_id, EnrollmentType.demo.value
        )
    except Exception:
        logger.exception(
            "Failed to ensure demo enrollment user_id=%s course_id=%s",
            user_id,
            course_id,
        )
        return None


async def grant_demo(
    user_id: str,
    course_id: str | None,
    access_type: str | None,
    resource_id: str | None = None,
) -> GrantResult:
    """Self-service grant. An active grant is returned as-is; its window is not renewed."""

    if not course_id or not access_type:
        raise ValidationFailed("Missing required fields: courseId, accessType")
    kind = require_access_type(access_type)
    if not await courses_repo.get_course(course_id):
        raise NotFound("Course not found")

    active = await demo_access_repo.get_active_demo_access(user_id, course_id, kind.value)
    if active:
        enrollment = await ensure_demo_enrollment(user_id, course_id)
        return GrantResult(grant=active, created=False, enrollment=enrollment)

    grant = await demo_access_repo.upsert_demo_access(
        user_id=user_id,
        course_id=course_id,
        access_type=kind.value,
        expires_at=demo_expiry(),
        resource_id=resource_id,
    )
    metrics.demo_grants_total.labels(source="self", access_type=kind.value).inc()
    logger.info(
        "Demo access granted user_id=%s course_id=%s access_type=%s",
        user_id,
        course_id,
        kind.value,
    )
    enrollment = await ensure_demo_enrollment(user_id, course_id)
    return GrantResult(grant=grant, created=True, enrollment=enrollment)


async def admin_grant_demo(
    target_user_id: str | None,
    course_id: str | None,
    access_type: str | None,
    *,
    granted_by: str | None = None,
) -> dict[str, Any]:
    """Grant or refresh a demo for another user; the 24 hour window always restarts."""

    if not target_user_id or not course_id or not access_type:
        raise ValidationFailed("Missing required fields: userId, courseId, accessType")
    kind = require_access_type(access_type)

    target = await users_repo.get_user(target_user_id)
    if not target:
        raise NotFound("User not found")
    course = await courses_repo.get_course(course_id)
    if not course:
        raise NotFound("Course not found")

    grant = await demo_access_repo.upsert_demo_access(
        user_id=target_user_id,
        course_id=course_id,
        access_type=kind.value,
        expires_at=demo_expiry(),
    )
    metrics.demo_grants_total.labels(source="admin", access_type=kind.value).inc()
    logger.info(
        "Admin demo grant user_id=%s course_id=%s access_type=%s granted_by=%s",
        target_user_id,
        course_id,
        kind.value,
        granted_by,
    )
    await ensure_demo_enrollment(target_user_id, course_id)
    return {
        "demoAccess": grant,
        "user": {
            "id": str(target["id"]),
            "name": target.get("full_name"),
            "email": target.get("email"),
        },
        "course": {"id": str(course["id"]), "title": course.get("title")},
    }


async def track_video_view(
    user_id: str,
    course_id: str | None,
    recording_id: str | None,
    access_type: str | None,
) -> dict[str, Any]:
    if not course_id or not recording_id or not access_type:
        raise ValidationFailed("Missing required fields: courseId, recordingId, accessType")
    kind = require_access_type(access_type)

    active = await demo_access_repo.get_active_demo_access(user_id, course_id, kind.value)
    if not active:
        raise Forbidden("No active demo access found")
    if active.get("resource_id") is not None and str(active["resource_id"]) == str(recording_id):
        return {
            "success": True,
            "message": "Video usage already tracked",
            "alreadyTracked": True,
        }

    usage = await demo_access_repo.record_video_view(
        user_id=user_id,
        course_id=course_id,
        access_type=kind.value,
        resource_id=recording_id,
    )
    if usage is None:
        # expired between the two statements
        raise Forbidden("No active demo access found")
    return {
        "success": True,
        "message": "Video usage tracked successfully",
        "usage": usage,
    }


async def video_usage(
    user_id: str, course_id: str | None, access_type: str | None = None
) -> dict[str, Any]:
    if not course_id:
        raise ValidationFailed("Missing courseId parameter")
    kind = require_access_type(access_type or AccessType.lecture_recording.value)
    rows = await demo_access_repo.list_watched_resources(user_id, course_id, kind.value)
    watched = [str(row["resource_id"]) for row in rows]
    return {
        "success": True,
        "watchedVideos": watched,
        "count": len(watched),
        "hasUsedDemo": bool(watched),
    }


async def _purge_expired(expired: list[dict[str, Any]]) -> None:
    for grant in expired:
        user_id = str(grant["user_id"])
        course_id = str(grant["course_id"])
        try:
            await enrollments_repo.delete_demo_enrollment(user_id, course_id)
            await demo_access_repo.delete_demo_access(str(grant["id"]))
        except Exception:
            logger.exception(
                "Failed to purge expired demo grant grant_id=%s", grant.get("id")
            )
        else:
            logger.info(
                "Purged expired demo grant grant_id=%s user_id=%s course_id=%s",
                grant.get("id"),
                user_id,
                course_id,
            )


async def demo_status(
    user_id: str, course_id: str | None, access_type: str | None = None
) -> dict[str, Any]:
    """Active grants for the caller; expired ones are removed with their demo enrollment."""

    if not course_id:
        raise ValidationFailed("Missing courseId parameter")
    kind = require_access_type(access_type) if access_type else None

    grants = await demo_access_repo.list_demo_access_for_user(
        user_id, course_id, kind.value if kind else None
    )
    now = _now()
    active = [grant for grant in grants if _is_active(grant, now)]
    expired = [grant for grant in grants if not _is_active(grant, now)]
    if expired:
        await _purge_expired(expired)
    return {"hasAccess": bool(active), "demoAccess": active}


async def revoke_demo(grant_id: str | None) -> None:
    if not grant_id:
        raise ValidationFailed("Missing demo access ID")
    deleted = await demo_access_repo.delete_demo_access(grant_id)
    if not deleted:
        raise NotFound("Demo access not found")
    logger.info("Demo access revoked grant_id=%s", grant_id)


def _present_listed(row: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "id": str(row["id"]),
        "user_id": str(row["user_id"]),
        "course_id": str(row["course_id"]),
        "access_type": row.get("access_type"),
        "resource_id": row.get("resource_id"),
        "expires_at": row.get("expires_at"),
        "used_at": row.get("used_at"),
        "users": {
            "id": str(row["user_id"]),
            "full_name": row.get("user_name"),
            "email": row.get("user_email"),
        },
        "courses": {"id": str(row["course_id"]), "title": row.get("course_title")},
    }


async def list_demos(course_id: str | None = None, status: str | None = None) -> dict[str, Any]:
    wanted = (status or "all").strip().lower()
    if wanted not in _LIST_STATUSES:
        raise ValidationFailed("Invalid status. Must be one of: active, expired, all")

    rows = await demo_access_repo.list_demo_access(course_id)
    now = _now()
    if wanted == "active":
        rows = [row for row in rows if _is_active(row, now)]
    elif wanted == "expired":
        rows = [row for row in rows if not _is_active(row, now)]

    active_count = sum(1 for row in rows if _is_active(row, now))
    by_type = {kind.value: 0 for kind in AccessType}
    for row in rows:
        if row.get("access_type") in by_type:
            by_type[row["access_type"]] += 1
    return {
        "demos": [_present_listed(row) for row in rows],
        "stats": {
            "total": len(rows),
            "active": active_count,
            "expired": len(rows) - active_count,
            "byType": by_type,
        },
    }


__all__ = [
    "GrantResult",
    "admin_grant_demo",
    "demo_expiry",
    "demo_status",
    "ensure_demo_enrollment",
    "grant_demo",
    "list_demos",
    "require_access_type",
    "revoke_demo",
    "track_video_view",
    "video_usage",
]
