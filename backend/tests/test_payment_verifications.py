from datetime import date, datetime, timezone

import pytest

from lms.errors import ValidationFailed
from lms.roles import AccessType
from lms.services.payment_service import subscription_expiry

from .fakes import auth_header

pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture
def admin(fake_db):
    return fake_db.add_user("admin", token="admin-token")


def _url(payment):
    return f"/api/payment-verifications/{payment['id']}"


async def test_approval_creates_subscription_and_paid_enrollment(async_client, fake_db, admin):
    student = fake_db.add_user("student")
    course = fake_db.add_course()
    plan = fake_db.add_plan("recordings_only", duration_months=3)
    fake_db.add_demo_grant(student["id"], course["id"])
    await fake_db.create_enrollment(student["id"], course["id"], "demo")
    payment = fake_db.add_payment(student["id"], course["id"], subscription_plan_id=plan["id"])

    resp = await async_client.patch(
        _url(payment), json={"status": "approved", "notes": "bank ref 991"},
        headers=auth_header("admin-token"),
    )

    assert resp.status_code == 200, resp.text
    assert resp.json()["message"] == "Payment verification approved successfully"
    assert fake_db.payments[payment["id"]]["status"] == "approved"
    assert fake_db.payments[payment["id"]]["verified_by"] == admin["id"]
    (subscription,) = fake_db.subscriptions
    assert subscription["subscription_plan_id"] == plan["id"]
    assert fake_db.enrollments[(student["id"], course["id"])]["enrollment_type"] == "paid"
    assert await fake_db.get_active_subscription(
        student["id"], course["id"], AccessType.lecture_recording
    )


async def test_approval_falls_back_to_plan_price(async_client, fake_db, admin):
    student = fake_db.add_user("student")
    course = fake_db.add_course()
    plan = fake_db.add_plan("recordings_and_live", price_pkr=12000)
    payment = fake_db.add_payment(student["id"], course["id"], amount=12000)

    resp = await async_client.patch(
        _url(payment), json={"status": "approved"}, headers=auth_header("admin-token")
    )

    assert resp.status_code == 200
    assert fake_db.subscriptions[0]["subscription_plan_id"] == plan["id"]


async def test_approval_without_plan_keeps_payment_pending(async_client, fake_db, admin):
    student = fake_db.add_user("student")
    course = fake_db.add_course()
    payment = fake_db.add_payment(student["id"], course["id"], amount=1)

    resp = await async_client.patch(
        _url(payment), json={"status": "approved"}, headers=auth_header("admin-token")
    )

    assert resp.status_code == 400
    assert resp.json()["error"] == "Subscription plan not found"
    assert fake_db.payments[payment["id"]]["status"] == "pending"


async def test_rejection_creates_nothing(async_client, fake_db, admin):
    student = fake_db.add_user("student")
    course = fake_db.add_course()
    payment = fake_db.add_payment(student["id"], course["id"])

    resp = await async_client.patch(
        _url(payment), json={"status": "rejected"}, headers=auth_header("admin-token")
    )

    assert resp.status_code == 200
    assert fake_db.subscriptions == []
    assert fake_db.payments[payment["id"]]["status"] == "rejected"


async def test_already_processed(async_client, fake_db, admin):
    student = fake_db.add_user("student")
    course = fake_db.add_course()
    payment = fake_db.add_payment(student["id"], course["id"], status="approved")

    resp = await async_client.patch(
        _url(payment), json={"status": "rejected"}, headers=auth_header("admin-token")
    )

    assert resp.status_code == 400
    assert resp.json()["error"] == "Payment verification has already been processed"


async def test_invalid_status_and_unknown_payment(async_client, fake_db, admin):
    bad_status = await async_client.patch(
        "/api/payment-verifications/x", json={"status": "maybe"}, headers=auth_header("admin-token")
    )
    unknown = await async_client.patch(
        "/api/payment-verifications/x", json={"status": "approved"}, headers=auth_header("admin-token")
    )

    assert bad_status.status_code == 400
    assert unknown.status_code == 404


async def test_students_cannot_review(async_client, fake_db):
    fake_db.add_user("student", token="student-token")

    resp = await async_client.patch(
        "/api/payment-verifications/x", json={"status": "approved"}, headers=auth_header("student-token")
    )

    assert resp.status_code == 403


def test_expiry_adds_calendar_months():
    now = datetime(2024, 1, 31, 9, 0, tzinfo=timezone.utc)

    assert subscription_expiry({"duration_months": 1}, now=now) == datetime(
        2024, 2, 29, 9, 0, tzinfo=timezone.utc
    )
    assert subscription_expiry({"duration_months": 12}, now=now).year == 2025


def test_expiry_uses_fixed_end_date():
    expires = subscription_expiry({"duration_until_date": date(2025, 6, 30)})

    assert expires == datetime(2025, 6, 30, tzinfo=timezone.utc)


def test_expiry_requires_a_duration():
    with pytest.raises(ValidationFailed):
        subscription_expiry({})
