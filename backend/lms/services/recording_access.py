from __future__ import annotations

import logging
from typing import Any, Mapping

from .. import metrics
from ..auth import bearer_token, load_user, resolve_session
from ..errors import Forbidden, Misconfigured, NotFound, Unauthorized, ValidationFailed
from ..logging_context import bind_recording_context
from ..repositories import courses as courses_repo
from ..repositories import recordings as recordings_repo
from ..roles import Role
from . import access_tokens, entitlements

logger = logging.getLogger(__name__)


async def authorize_guest(recording: Mapping[str, Any]) -> None:
    """Guests may preview only the oldest published recording of a course."""

    first_id = await recordings_repo.get_first_published_recording_id(
        str(recording["course_id"])
    )
    if first_id is None or first_id != str(recording["id"]):
        raise Forbidden("Preview access only available for the first lecture")
    if not recording.get("is_published"):
        raise Forbidden("Recording not published")


async def authorize_user(user: Mapping[str, Any], recording: Mapping[str, Any]) -> None:
    role: Role | None = user.get("role")
    user_id = str(user["id"])
    course_id = str(recording["course_id"])

    if role is Role.student:
        if not recording.get("is_published"):
            raise Forbidden("Recording not published")
        result = await entitlements.can_access_lecture_recordings(user_id, course_id)
        if not result.has_access:
            raise Forbidden(
                "Access denied",
                message=result.message,
                requires_subscription=True,
            )
        return

    is_course_staff = False
    if role is Role.teacher:
        is_course_staff = user_id == str(recording.get("teacher_id")) or (
            await courses_repo.is_teacher_assigned(user_id, course_id)
        )
    decision = entitlements.evaluate(
        role,
        is_course_staff=is_course_staff,
        is_published=bool(recording.get("is_published")),
    )
    if not decision.allowed:
        logger.info(
            "Recording access denied user_id=%s role=%s course_id=%s",
            user_id,
            role,
            course_id,
        )
        raise Forbidden("Forbidden")


async def issue_access_token(recording_id: str | None, caller: Mapping[str, Any] | None) -> str:
    """Mint a stream token for one recording; `caller` None means an anonymous guest."""

    if not access_tokens.is_signing_enabled():
        raise Misconfigured("Streaming not configured")
    if not recording_id:
        raise ValidationFailed("recordingId is required")

    recording = await recordings_repo.get_recording(recording_id)
    if not recording or not recording.get("video_key"):
        raise NotFound("Recording not found")
    bind_recording_context(recording)

    if caller is None:
        await authorize_guest(recording)
        subject = access_tokens.GUEST_SUBJECT
    else:
        await authorize_user(caller, recording)
        subject = str(caller["id"])

    payload = access_tokens.build_payload(
        subject, recording["video_key"], str(recording["course_id"])
    )
    try:
        token = access_tokens.sign_token(payload)
    except access_tokens.StreamingNotConfigured as exc:
        raise Misconfigured("Streaming not configured") from exc
    metrics.access_tokens_issued_total.labels(
        subject="guest" if payload.is_guest else "user"
    ).inc()
    return token


async def _recording_for_key(key: str) -> dict[str, Any]:
    recording = await recordings_repo.get_recording_by_key(key)
    if not recording:
        raise NotFound("Recording not found")
    bind_recording_context(recording)
    return recording


async def _authorize_signed_token(token: str, key: str) -> dict[str, Any]:
    try:
        payload = access_tokens.verify_token(token)
    except access_tokens.StreamingNotConfigured as exc:
        raise Misconfigured("Streaming not configured") from exc
    except access_tokens.AccessTokenError as exc:
        raise Unauthorized(str(exc)) from exc
    if payload.key != key:
        raise Forbidden("Token not valid for this recording")

    recording = await _recording_for_key(key)
    if payload.course_id != str(recording["course_id"]):
        raise Forbidden("Token not valid for this recording")

    if payload.is_guest:
        await authorize_guest(recording)
        return recording

    user = await load_user(payload.subject)
    if user is None:
        raise Unauthorized("Unauthorized")
    await authorize_user(user, recording)
    return recording


async def authorize_stream(
    key: str | None,
    *,
    authorization: str | None,
    query_token: str | None,
) -> dict[str, Any]:
    """Resolve the recording behind `key` if the caller may stream it.

    An Authorization bearer is always treated as a session. A query token shaped
    like a signed access token must pass signature and expiry checks and is then
    re-checked against current permissions; any other query token is a session.
    """

    if not authorization and not query_token:
        raise Unauthorized("Authorization required")
    if not key:
        raise ValidationFailed("Missing key")

    session = bearer_token(authorization)
    if session is None and authorization is None:
        if access_tokens.looks_like_access_token(query_token):
            return await _authorize_signed_token(query_token, key)
        session = query_token
    if not session:
        raise Unauthorized("Unauthorized")

    user = await resolve_session(session)
    if user is None:
        raise Unauthorized("Unauthorized")
    recording = await _recording_for_key(key)
    await authorize_user(user, recording)
    return recording


__all__ = [
    "authorize_guest",
    "authorize_stream",
    "authorize_user",
    "issue_access_token",
]
