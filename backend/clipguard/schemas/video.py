"""Pydantic schemas for video API payloads and broadcast events."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from clipguard.core.constants import SensitivityStatus


class VideoCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=256)
    description: str = ""
    filename: str = ""
    media_url: str = Field(min_length=1)


class VideoUpdateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None


class VideoOut(BaseModel):
    id: str
    title: str
    description: str
    filename: str
    media_url: str
    sensitivity_status: SensitivityStatus
    created_at: datetime
    updated_at: datetime


class StatusEvent(BaseModel):
    video_id: str = Field(serialization_alias="videoId")
    status: SensitivityStatus
