from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AccessTokenRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recording_id: Optional[str] = Field(default=None, alias="recordingId")


class AccessTokenResponse(BaseModel):
    success: bool = True
    token: str


class SetDemoRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    course_id: Optional[str] = Field(default=None, alias="courseId")
    recording_id: Optional[str] = Field(default=None, alias="recordingId")


class LectureRecordingSummary(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    video_url: Optional[str] = None
    file_size: Optional[int] = None
    is_published: bool = False
    created_at: Optional[datetime] = None


class UploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    lecture_recording: LectureRecordingSummary = Field(alias="lectureRecording")
