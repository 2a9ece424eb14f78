"""Closed vocabularies shared by auth, entitlements and the demo ledger.

String values match the database columns, so they are stable.
"""

from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    student = "student"
    teacher = "teacher"
    admin = "admin"
    superadmin = "superadmin"

    @property
    def is_admin(self) -> bool:
        return self in (Role.admin, Role.superadmin)

    @property
    def is_staff(self) -> bool:
        return self is not Role.student


class AccessType(StrEnum):
    lecture_recording = "lecture_recording"
    live_class = "live_class"


class PlanType(StrEnum):
    recordings_only = "recordings_only"
    live_classes_only = "live_classes_only"
    recordings_and_live = "recordings_and_live"


class EnrollmentType(StrEnum):
    paid = "paid"
    demo = "demo"


PLAN_COVERAGE: dict[PlanType, frozenset[AccessType]] = {
    PlanType.recordings_only: frozenset({AccessType.lecture_recording}),
    PlanType.live_classes_only: frozenset({AccessType.live_class}),
    PlanType.recordings_and_live: frozenset(
        {AccessType.lecture_recording, AccessType.live_class}
    ),
}


def parse_role(value: str | None) -> Role | None:
    normalized = (value or "").strip().lower()
    try:
        return Role(normalized)
    except ValueError:
        return None


def parse_access_type(value: str | None) -> AccessType | None:
    normalized = (value or "").strip().lower()
    try:
        return AccessType(normalized)
    except ValueError:
        return None


def plan_covers(plan_type: str | None, access_type: AccessType) -> bool:
    try:
        plan = PlanType((plan_type or "").strip().lower())
    except ValueError:
        return False
    return access_type in PLAN_COVERAGE[plan]


def covering_plan_types(access_type: AccessType) -> list[str]:
    return sorted(plan.value for plan, covered in PLAN_COVERAGE.items() if access_type in covered)


__all__ = [
    "AccessType",
    "EnrollmentType",
    "PLAN_COVERAGE",
    "PlanType",
    "covering_plan_types",
    "Role",
    "parse_access_type",
    "parse_role",
    "plan_covers",
]
