from fastapi import APIRouter, Query, status

from .. import schemas
from ..permissions import AdminUser
from ..services import demo_ledger

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/demo/grant", status_code=status.HTTP_201_CREATED)
async def admin_grant_demo(payload: schemas.AdminDemoGrantRequest, current: AdminUser):
    granted = await demo_ledger.admin_grant_demo(
        payload.user_id,
        payload.course_id,
        payload.access_type,
        granted_by=current["id"],
    )
    return {
        "success": True,
        "message": "Demo access granted successfully",
        **granted,
    }


@router.get("/demo/list")
async def admin_list_demos(
    current: AdminUser,
    course_id: str | None = Query(default=None, alias="courseId"),
    demo_status: str | None = Query(default=None, alias="status"),
):
    return await demo_ledger.list_demos(course_id, demo_status)
