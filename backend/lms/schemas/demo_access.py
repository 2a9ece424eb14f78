from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DemoGrantRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    course_id: Optional[str] = Field(default=None, alias="courseId")
    access_type: Optional[str] = Field(default=None, alias="accessType")
    resource_id: Optional[str] = Field(default=None, alias="resourceId")


class AdminDemoGrantRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    course_id: Optional[str] = Field(default=None, alias="courseId")
    access_type: Optional[str] = Field(default=None, alias="accessType")


class TrackVideoRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    course_id: Optional[str] = Field(default=None, alias="courseId")
    recording_id: Optional[str] = Field(default=None, alias="recordingId")
    access_type: Optional[str] = Field(default=None, alias="accessType")
