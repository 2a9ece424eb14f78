from datetime import timedelta

import pytest

from lms.config import settings
from lms.services import access_tokens

from .fakes import auth_header

pytestmark = pytest.mark.anyio("asyncio")

ENDPOINT = "/api/lecture-recordings/access-token"


def _decode(token: str):
    return access_tokens.verify_token(token, secret=settings.lecture_stream_secret)


async def test_guest_gets_token_for_first_published_recording(async_client, fake_db):
    course = fake_db.add_course()
    first = fake_db.add_recording(course["id"])
    fake_db.add_recording(course["id"])

    resp = await async_client.post(ENDPOINT, json={"recordingId": first["id"]})

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["success"] is True
    payload = _decode(body["token"])
    assert payload.subject == "guest"
    assert payload.key == first["video_key"]
    assert payload.course_id == course["id"]


async def test_guest_token_expires_after_ten_minutes(async_client, fake_db):
    course = fake_db.add_course()
    first = fake_db.add_recording(course["id"])

    resp = await async_client.post(ENDPOINT, json={"recordingId": first["id"]})
    token = resp.json()["token"]
    payload = _decode(token)

    with pytest.raises(access_tokens.AccessTokenError):
        access_tokens.verify_token(
            token, secret=settings.lecture_stream_secret, now=payload.expires_at
        )
    assert access_tokens.verify_token(
        token, secret=settings.lecture_stream_secret, now=payload.expires_at - 1
    )


async def test_guest_is_refused_later_recordings(async_client, fake_db):
    course = fake_db.add_course()
    fake_db.add_recording(course["id"])
    second = fake_db.add_recording(course["id"])

    resp = await async_client.post(ENDPOINT, json={"recordingId": second["id"]})

    assert resp.status_code == 403
    assert resp.json() == {"error": "Preview access only available for the first lecture"}


async def test_unpublished_first_recording_is_skipped_for_guests(async_client, fake_db):
    course = fake_db.add_course()
    draft = fake_db.add_recording(course["id"], published=False)
    fake_db.add_recording(course["id"])

    resp = await async_client.post(ENDPOINT, json={"recordingId": draft["id"]})

    assert resp.status_code == 403


async def test_missing_recording_id(async_client, fake_db):
    resp = await async_client.post(ENDPOINT, json={})

    assert resp.status_code == 400
    assert resp.json()["error"] == "recordingId is required"


async def test_unknown_recording(async_client, fake_db):
    resp = await async_client.post(ENDPOINT, json={"recordingId": "does-not-exist"})

    assert resp.status_code == 404
    assert resp.json()["error"] == "Recording not found"


async def test_recording_without_video_key_is_not_found(async_client, fake_db):
    course = fake_db.add_course()
    recording = fake_db.add_recording(course["id"], video_key="")

    resp = await async_client.post(ENDPOINT, json={"recordingId": recording["id"]})

    assert resp.status_code == 404


async def test_unresolvable_session_is_unauthorized(async_client, fake_db):
    course = fake_db.add_course()
    recording = fake_db.add_recording(course["id"])

    resp = await async_client.post(
        ENDPOINT, json={"recordingId": recording["id"]}, headers=auth_header("bogus")
    )

    assert resp.status_code == 401


async def test_student_with_subscription_gets_personal_token(async_client, fake_db):
    student = fake_db.add_user("student", token="student-token")
    course = fake_db.add_course()
    fake_db.add_recording(course["id"])
    second = fake_db.add_recording(course["id"])
    fake_db.add_subscription(student["id"], course["id"], fake_db.add_plan("recordings_only"))

    resp = await async_client.post(
        ENDPOINT, json={"recordingId": second["id"]}, headers=auth_header("student-token")
    )

    assert resp.status_code == 200, resp.text
    assert _decode(resp.json()["token"]).subject == student["id"]


async def test_student_with_expired_demo_needs_subscription(async_client, fake_db):
    student = fake_db.add_user("student", token="student-token")
    course = fake_db.add_course()
    recording = fake_db.add_recording(course["id"])
    fake_db.add_demo_grant(student["id"], course["id"], expires_in=timedelta(seconds=-1))

    resp = await async_client.post(
        ENDPOINT, json={"recordingId": recording["id"]}, headers=auth_header("student-token")
    )

    assert resp.status_code == 403
    body = resp.json()
    assert body["error"] == "Access denied"
    assert body["requiresSubscription"] is True
    assert body["message"] == "No lecture_recording access found for this course"


async def test_student_with_active_demo_gets_token(async_client, fake_db):
    student = fake_db.add_user("student", token="student-token")
    course = fake_db.add_course()
    recording = fake_db.add_recording(course["id"])
    fake_db.add_demo_grant(student["id"], course["id"])

    resp = await async_client.post(
        ENDPOINT, json={"recordingId": recording["id"]}, headers=auth_header("student-token")
    )

    assert resp.status_code == 200


async def test_student_cannot_get_unpublished_recording(async_client, fake_db):
    student = fake_db.add_user("student", token="student-token")
    course = fake_db.add_course()
    recording = fake_db.add_recording(course["id"], published=False)
    fake_db.add_subscription(student["id"], course["id"], fake_db.add_plan())

    resp = await async_client.post(
        ENDPOINT, json={"recordingId": recording["id"]}, headers=auth_header("student-token")
    )

    assert resp.status_code == 403
    assert resp.json()["error"] == "Recording not published"


async def test_teacher_access_follows_course_assignment(async_client, fake_db):
    teacher = fake_db.add_user("teacher", token="teacher-token")
    course = fake_db.add_course()
    other_course = fake_db.add_course("Chemistry")
    recording = fake_db.add_recording(course["id"], published=False)
    foreign = fake_db.add_recording(other_course["id"])
    fake_db.assign_teacher(teacher["id"], course["id"])

    own = await async_client.post(
        ENDPOINT, json={"recordingId": recording["id"]}, headers=auth_header("teacher-token")
    )
    other = await async_client.post(
        ENDPOINT, json={"recordingId": foreign["id"]}, headers=auth_header("teacher-token")
    )

    assert own.status_code == 200
    assert other.status_code == 403


async def test_uploading_teacher_keeps_access(async_client, fake_db):
    teacher = fake_db.add_user("teacher", token="teacher-token")
    course = fake_db.add_course()
    recording = fake_db.add_recording(course["id"], teacher_id=teacher["id"])

    resp = await async_client.post(
        ENDPOINT, json={"recordingId": recording["id"]}, headers=auth_header("teacher-token")
    )

    assert resp.status_code == 200


async def test_admin_needs_no_assignment(async_client, fake_db):
    fake_db.add_user("superadmin", token="root-token")
    course = fake_db.add_course()
    recording = fake_db.add_recording(course["id"], published=False)

    resp = await async_client.post(
        ENDPOINT, json={"recordingId": recording["id"]}, headers=auth_header("root-token")
    )

    assert resp.status_code == 200


async def test_unknown_role_is_forbidden(async_client, fake_db):
    fake_db.add_user("parent", token="odd-token")
    course = fake_db.add_course()
    recording = fake_db.add_recording(course["id"])

    resp = await async_client.post(
        ENDPOINT, json={"recordingId": recording["id"]}, headers=auth_header("odd-token")
    )

    assert resp.status_code == 403


async def test_missing_secret_is_a_server_error(async_client, fake_db, monkeypatch):
    monkeypatch.setattr(settings, "lecture_stream_secret", None, raising=False)
    course = fake_db.add_course()
    recording = fake_db.add_recording(course["id"])

    resp = await async_client.post(ENDPOINT, json={"recordingId": recording["id"]})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Streaming not configured"}
    assert "token" not in resp.text
