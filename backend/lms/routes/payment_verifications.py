from fastapi import APIRouter

from .. import schemas
from ..permissions import AdminUser
from ..services import payment_service

router = APIRouter(prefix="/api/payment-verifications", tags=["payments"])


@router.patch("/{payment_id}")
async def review_payment_verification(
    payment_id: str,
    payload: schemas.PaymentReviewRequest,
    current: AdminUser,
):
    return await payment_service.review_payment(
        payment_id,
        status=payload.status,
        notes=payload.notes,
        reviewer_id=current["id"],
    )
