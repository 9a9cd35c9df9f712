"""FastAPI route definitions."""

from __future__ import annotations

import json
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse
from sse_starlette.sse import EventSourceResponse
from sqlalchemy.orm import Session

from clipguard.core.constants import STATUS_EVENT_NAME, SensitivityStatus
from clipguard.core.settings import APP_VERSION
from clipguard.db.session import get_db_session
from clipguard.schemas.config import AppConfig
from clipguard.schemas.video import VideoCreateRequest, VideoOut, VideoUpdateRequest
from clipguard.services import repository
from clipguard.services.broadcast import broadcaster
from clipguard.services.config_store import load_config, save_config
from clipguard.workers.dispatch import enqueue_job

router = APIRouter(prefix="/api", tags=["api"])


@router.get("/health")
def health(db: Session = Depends(get_db_session)) -> dict[str, object]:
    return {
        "version": APP_VERSION,
        "analysis_configured": load_config().analysis_enabled(),
        "pending_videos": repository.count_pending(db),
        "observers": broadcaster.subscriber_count,
    }


@router.get("/config", response_model=AppConfig)
def get_config() -> AppConfig:
    return load_config()


@router.put("/config", response_model=AppConfig)
def put_config(config: AppConfig) -> AppConfig:
    return save_config(config)


@router.post("/videos", response_model=VideoOut, status_code=201)
async def create_video(payload: VideoCreateRequest, db: Session = Depends(get_db_session)) -> VideoOut:
    video = repository.create_video(
        db,
        video_id=uuid.uuid4().hex,
        title=payload.title.strip(),
        description=payload.description.strip(),
        filename=payload.filename.strip(),
        media_url=payload.media_url.strip(),
    )
    db.commit()
    db.refresh(video)

    enqueue_job(video.id)
    return repository.to_video_out(video)


@router.get("/videos", response_model=list[VideoOut])
def list_videos(
    sensitivity: Optional[SensitivityStatus] = Query(None),
    db: Session = Depends(get_db_session),
) -> list[VideoOut]:
    return [repository.to_video_out(v) for v in repository.list_videos(db, sensitivity)]


@router.get("/videos/events")
async def stream_status_events(request: Request) -> EventSourceResponse:
    async def event_generator():
        async with broadcaster.subscribe() as queue:
            while not await request.is_disconnected():
                event = await queue.get()
                yield {
                    "event": STATUS_EVENT_NAME,
                    "data": json.dumps(event.model_dump(by_alias=True, mode="json")),
                }

    return EventSourceResponse(event_generator())


@router.get("/videos/{video_id}", response_model=VideoOut)
def get_video(video_id: str, db: Session = Depends(get_db_session)) -> VideoOut:
    video = repository.get_video(db, video_id)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")
    return repository.to_video_out(video)


@router.get("/videos/{video_id}/stream")
def stream_video(video_id: str, db: Session = Depends(get_db_session)) -> RedirectResponse:
    video = repository.get_video(db, video_id)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")
    return RedirectResponse(video.media_url)


@router.put("/videos/{video_id}", response_model=VideoOut)
@router.patch("/videos/{video_id}", response_model=VideoOut)
def update_video(
    video_id: str,
    payload: VideoUpdateRequest,
    db: Session = Depends(get_db_session),
) -> VideoOut:
    video = repository.update_video(
        db,
        video_id,
        title=(payload.title or "").strip() or None,
        description=(payload.description or "").strip() or None,
    )
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")
    db.commit()
    db.refresh(video)
    return repository.to_video_out(video)


@router.delete("/videos/{video_id}")
def delete_video(video_id: str, db: Session = Depends(get_db_session)) -> dict[str, object]:
    deleted = repository.delete_video(db, video_id)
    db.commit()
    if not deleted:
        raise HTTPException(status_code=404, detail="Video not found")
    return {"deleted": True, "video_id": video_id}


@router.post("/videos/{video_id}/analyze", status_code=202)
async def reanalyze_video(video_id: str, db: Session = Depends(get_db_session)) -> dict[str, object]:
    video = repository.get_video(db, video_id)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")
    if video.sensitivity_status != SensitivityStatus.PENDING.value:
        raise HTTPException(
            status_code=409,
            detail=f"Video already classified as {video.sensitivity_status}",
        )

    enqueue_job(video_id)
    return {"queued": True, "video_id": video_id}
