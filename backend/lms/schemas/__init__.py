from .demo_access import AdminDemoGrantRequest, DemoGrantRequest, TrackVideoRequest
from .lecture_recordings import (
    AccessTokenRequest,
    AccessTokenResponse,
    LectureRecordingSummary,
    SetDemoRequest,
    UploadResponse,
)
from .payments import PaymentReviewRequest

__all__ = [
    "AccessTokenRequest",
    "AccessTokenResponse",
    "AdminDemoGrantRequest",
    "DemoGrantRequest",
    "LectureRecordingSummary",
    "PaymentReviewRequest",
    "SetDemoRequest",
    "TrackVideoRequest",
    "UploadResponse",
]
