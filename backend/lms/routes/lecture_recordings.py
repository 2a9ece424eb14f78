from __future__ import annotations

import logging
import re
import secrets
import time
from typing import Annotated, AsyncIterator

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from .. import metrics, schemas
from ..auth import get_optional_user
from ..config import settings
from ..errors import (
    Forbidden,
    LmsError,
    Misconfigured,
    NotFound,
    RangeNotSatisfiable,
    ValidationFailed,
)
from ..permissions import StaffUser, SuperAdminUser
from ..repositories import courses as courses_repo
from ..repositories import recordings as recordings_repo
from ..services import access_tokens, recording_access
from ..services.storage_service import (
    StorageObjectNotFoundError,
    StorageServiceError,
    get_storage_service,
)
from ..services.upload_progress import UploadProgressRegistry, get_upload_progress
from ..utils.byte_ranges import parse_range_header

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/lecture-recordings", tags=["lecture-recordings"])

_UPLOAD_READ_SIZE = 1024 * 1024
_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")

ProgressRegistry = Annotated[UploadProgressRegistry, Depends(get_upload_progress)]


@router.post("/access-token", response_model=schemas.AccessTokenResponse)
async def create_access_token(payload: schemas.AccessTokenRequest, request: Request):
    if not access_tokens.is_signing_enabled():
        raise Misconfigured("Streaming not configured")
    caller = await get_optional_user(request)
    token = await recording_access.issue_access_token(payload.recording_id, caller)
    return schemas.AccessTokenResponse(token=token)


def _stream_error(exc: LmsError) -> Response:
    if isinstance(exc, Forbidden) and exc.requires_subscription:
        response: Response = JSONResponse(exc.to_payload(), status_code=exc.status_code)
    else:
        response = PlainTextResponse(exc.detail, status_code=exc.status_code)
    if isinstance(exc, RangeNotSatisfiable) and exc.total_length is not None:
        response.headers["Content-Range"] = f"bytes */{exc.total_length}"
    return response


@router.get("/stream")
async def stream_recording(
    request: Request,
    key: str | None = Query(default=None),
    token: str | None = Query(default=None),
):
    try:
        response = await _build_stream_response(request, key, token)
    except LmsError as exc:
        response = _stream_error(exc)
    except StorageServiceError:
        logger.exception("Lecture stream failed key=%s", key)
        response = PlainTextResponse("Failed to stream video", status_code=500)
    metrics.stream_responses_total.labels(status=str(response.status_code)).inc()
    return response


async def _build_stream_response(
    request: Request, key: str | None, token: str | None
) -> Response:
    recording = await recording_access.authorize_stream(
        key,
        authorization=request.headers.get("authorization"),
        query_token=token,
    )
    video_key = recording["video_key"]
    storage = get_storage_service()
    try:
        meta = await storage.head_object(video_key)
    except StorageObjectNotFoundError as exc:
        raise NotFound("Recording not found") from exc

    headers = {
        "Accept-Ranges": "bytes",
        "Cache-Control": "no-store",
        "Content-Disposition": "inline",
        "X-Content-Type-Options": "nosniff",
    }
    byte_range = parse_range_header(request.headers.get("range"), meta.content_length)
    try:
        if byte_range is not None:
            upstream = await storage.open_object(
                video_key, start=byte_range.start, end=byte_range.end
            )
        else:
            upstream = await storage.open_object(video_key)
    except StorageObjectNotFoundError as exc:
        raise NotFound("Recording not found") from exc

    if byte_range is not None:
        headers["Content-Range"] = byte_range.content_range
        headers["Content-Length"] = str(byte_range.length)
        status_code = 206
    else:
        headers["Content-Length"] = str(meta.content_length)
        status_code = 200

    return StreamingResponse(
        upstream.iter_bytes(),
        status_code=status_code,
        media_type=meta.content_type,
        headers=headers,
        background=BackgroundTask(upstream.aclose),
    )


def _recording_key(course_id: str, title: str, filename: str | None) -> str:
    slug = _NON_ALNUM.sub("-", title).lower()
    name = filename or ""
    extension = name.rsplit(".", 1)[1] if "." in name else "mp4"
    stamp = int(time.time() * 1000)
    return f"lecture-recordings/{course_id}/{slug}-{stamp}-{secrets.token_hex(6)}.{extension}"


async def _upload_chunks(file: UploadFile) -> AsyncIterator[bytes]:
    while True:
        chunk = await file.read(_UPLOAD_READ_SIZE)
        if not chunk:
            break
        yield chunk


@router.post("/upload", response_model=schemas.UploadResponse, response_model_by_alias=True)
async def upload_recording(
    current: StaffUser,
    registry: ProgressRegistry,
    file: UploadFile | None = File(default=None),
    course_id: str | None = Form(default=None, alias="courseId"),
    title: str | None = Form(default=None),
    description: str | None = Form(default=None),
    duration: str | None = Form(default=None),
    progress_id: str | None = Form(default=None, alias="progressId"),
):
    if file is None:
        raise ValidationFailed("No file provided")
    if not course_id or not title or not title.strip():
        raise ValidationFailed("Course ID and title are required")
    if file.content_type not in settings.recording_allowed_content_types:
        raise ValidationFailed(
            "Invalid file type. Only MP4, WebM, QuickTime, AVI, and WMV files are allowed."
        )
    size = file.size or 0
    if size > settings.recording_upload_max_bytes:
        raise ValidationFailed("File too large. Maximum size is 500MB.")

    if not current["role"].is_admin and not await courses_repo.is_teacher_assigned(
        current["id"], course_id
    ):
        raise Forbidden("You are not assigned to this course")

    parsed_duration = None
    if duration:
        try:
            parsed_duration = int(duration)
        except ValueError as exc:
            raise ValidationFailed("duration must be an integer") from exc

    key = _recording_key(course_id, title, file.filename)
    storage = get_storage_service()

    def on_progress(sent: int, total: int) -> None:
        if progress_id and total:
            registry.publish(progress_id, round(sent * 100 / total))

    try:
        stored = await storage.upload_object(
            key,
            _upload_chunks(file),
            size=size,
            content_type=file.content_type,
            on_progress=on_progress,
        )
    except StorageServiceError as exc:
        if progress_id:
            registry.fail(progress_id)
        logger.exception("Recording upload failed course_id=%s key=%s", course_id, key)
        raise LmsError("Upload failed") from exc
    if progress_id:
        registry.complete(progress_id)

    try:
        recording = await recordings_repo.create_recording(
            course_id=course_id,
            teacher_id=current["id"],
            title=title.strip(),
            description=(description or "").strip() or None,
            video_key=stored.key,
            video_url=stored.url,
            file_size=size,
            duration=parsed_duration,
        )
    except Exception as exc:
        logger.exception("Failed to save lecture recording course_id=%s", course_id)
        try:
            await storage.delete_object(stored.key)
        except StorageServiceError:
            logger.exception("Failed to delete orphaned upload key=%s", stored.key)
        raise LmsError("Failed to save lecture recording") from exc

    logger.info(
        "Lecture recording uploaded recording_id=%s course_id=%s size=%s",
        recording["id"],
        course_id,
        size,
    )
    return schemas.UploadResponse(
        lecture_recording=schemas.LectureRecordingSummary(
            id=str(recording["id"]),
            title=recording["title"],
            description=recording.get("description"),
            video_url=recording.get("video_url"),
            file_size=recording.get("file_size"),
            is_published=bool(recording.get("is_published")),
            created_at=recording.get("created_at"),
        )
    )


@router.get("/progress")
async def upload_progress_events(
    registry: ProgressRegistry,
    progress_id: str | None = Query(default=None, alias="id"),
):
    if not progress_id:
        return PlainTextResponse("Missing id", status_code=400)

    async def _events() -> AsyncIterator[str]:
        async for event in registry.listen(progress_id):
            yield event.encode()

    return StreamingResponse(
        _events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.post("/set-demo")
async def set_demo_recording(payload: schemas.SetDemoRequest, current: SuperAdminUser):
    if not payload.course_id or not payload.recording_id:
        raise ValidationFailed("Missing courseId or recordingId")
    updated = await recordings_repo.set_demo_recording(payload.course_id, payload.recording_id)
    if updated is None:
        raise NotFound("Recording not found in course")
    logger.info(
        "Demo recording set course_id=%s recording_id=%s by=%s",
        payload.course_id,
        payload.recording_id,
        current["id"],
    )
    return {"success": True, "recording": updated}
