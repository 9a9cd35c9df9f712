"""Persistence helpers for video records."""

from __future__ import annotations

from typing import Optional, Union

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from clipguard.core.constants import SensitivityStatus
from clipguard.models.video import Video
from clipguard.schemas.video import VideoOut


def to_video_out(video: Video) -> VideoOut:
    return VideoOut(
        id=video.id,
        title=video.title,
        description=video.description or "",
        filename=video.filename or "",
        media_url=video.media_url,
        sensitivity_status=SensitivityStatus(video.sensitivity_status),
        created_at=video.created_at,
        updated_at=video.updated_at,
    )


def create_video(
    db: Session,
    *,
    video_id: str,
    title: str,
    media_url: str,
    description: str = "",
    filename: str = "",
) -> Video:
    video = Video(
        id=video_id,
        title=title,
        description=description,
        filename=filename,
        media_url=media_url,
        sensitivity_status=SensitivityStatus.PENDING.value,
    )
    db.add(video)
    db.flush()
    return video


def get_video(db: Session, video_id: str) -> Optional[Video]:
    return db.get(Video, video_id)


def list_videos(
    db: Session,
    sensitivity: Optional[Union[SensitivityStatus, str]] = None,
) -> list[Video]:
    stmt = select(Video).order_by(Video.created_at.desc())
    if sensitivity:
        value = sensitivity.value if isinstance(sensitivity, SensitivityStatus) else sensitivity
        stmt = stmt.where(Video.sensitivity_status == value)
    return list(db.scalars(stmt))


def update_video(
    db: Session,
    video_id: str,
    *,
    title: Optional[str] = None,
    description: Optional[str] = None,
) -> Optional[Video]:
    video = get_video(db, video_id)
    if not video:
        return None
    if title:
        video.title = title
    if description:
        video.description = description
    db.flush()
    return video


def delete_video(db: Session, video_id: str) -> bool:
    video = get_video(db, video_id)
    if not video:
        return False
    db.delete(video)
    db.flush()
    return True


def set_sensitivity_status(
    db: Session,
    video_id: str,
    status: Union[SensitivityStatus, str],
) -> Optional[Video]:
    value = SensitivityStatus(status)
    if value is SensitivityStatus.PENDING:
        raise ValueError(f"refusing to move video {video_id} back to pending")

    video = get_video(db, video_id)
    if not video:
        return None
    video.sensitivity_status = value.value
    db.flush()
    return video


def list_pending_video_ids(db: Session) -> list[str]:
    stmt = (
        select(Video.id)
        .where(Video.sensitivity_status == SensitivityStatus.PENDING.value)
        .order_by(Video.created_at.asc())
    )
    return list(db.scalars(stmt))


def count_pending(db: Session) -> int:
    stmt = select(func.count()).select_from(Video).where(
        Video.sensitivity_status == SensitivityStatus.PENDING.value
    )
    return int(db.scalar(stmt) or 0)
