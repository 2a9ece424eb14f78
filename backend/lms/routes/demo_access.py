from fastapi import APIRouter, Query, Response, status

from .. import schemas
from ..auth import CurrentUser
from ..permissions import AdminUser
from ..services import demo_ledger

router = APIRouter(prefix="/api/demo-access", tags=["demo-access"])


@router.get("")
async def get_demo_access(
    response: Response,
    current: CurrentUser,
    course_id: str | None = Query(default=None, alias="courseId"),
    access_type: str | None = Query(default=None, alias="accessType"),
):
    result = await demo_ledger.demo_status(current["id"], course_id, access_type)
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
    return result


@router.post("")
async def grant_demo_access(
    payload: schemas.DemoGrantRequest, response: Response, current: CurrentUser
):
    result = await demo_ledger.grant_demo(
        current["id"],
        payload.course_id,
        payload.access_type,
        payload.resource_id,
    )
    if not result.created:
        return {"message": "Demo access already active", "demoAccess": result.grant}
    response.status_code = status.HTTP_201_CREATED
    return {
        "demoAccess": result.grant,
        "enrollment": result.enrollment,
        "message": "Demo access granted successfully",
    }


@router.delete("")
async def revoke_demo_access(
    current: AdminUser,
    grant_id: str | None = Query(default=None, alias="id"),
):
    await demo_ledger.revoke_demo(grant_id)
    return {"message": "Demo access revoked successfully"}


@router.post("/track-video")
async def track_video(payload: schemas.TrackVideoRequest, current: CurrentUser):
    return await demo_ledger.track_video_view(
        current["id"],
        payload.course_id,
        payload.recording_id,
        payload.access_type,
    )


@router.get("/video-usage")
async def video_usage(
    current: CurrentUser,
    course_id: str | None = Query(default=None, alias="courseId"),
    access_type: str | None = Query(default=None, alias="accessType"),
):
    return await demo_ledger.video_usage(current["id"], course_id, access_type)
