from __future__ import annotations

from typing import Iterable, Optional

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from clipguard.db.base import Base
from clipguard.models import Video  # noqa: F401
from clipguard.schemas.config import AnalysisConfig, AppConfig, PipelineConfig

MEDIA_URL = "https://media.example.com/videos/clip.mp4"
UPLOAD_SESSION_URL = "https://upload.example.com/session/1"
FLAGGED_ANSWER = '```json\n{"status": "flagged", "reason": "graphic violence"}\n```'


class FakeProvider:
    """Serves the media host and the analysis provider from one MockTransport."""

    def __init__(
        self,
        states: Iterable[str] = ("PROCESSING", "ACTIVE"),
        answer: str = FLAGGED_ANSWER,
        media: bytes = b"fake-video-bytes",
        media_status: int = 200,
        upload_status: int = 200,
    ) -> None:
        self.states = list(states)
        self.answer = answer
        self.media = media
        self.media_status = media_status
        self.upload_status = upload_status
        self.files: dict[str, int] = {}
        self.deleted: list[str] = []
        self.uploads = 0
        self.generate_calls = 0
        self.media_requests = 0

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path

        if request.url.host == "media.example.com":
            self.media_requests += 1
            if self.media_status >= 400:
                return httpx.Response(self.media_status, text="missing")
            return httpx.Response(200, content=self.media)

        if request.url.host == "upload.example.com":
            self.uploads += 1
            name = f"files/upload{self.uploads}"
            self.files[name] = 0
            return httpx.Response(
                200,
                json={
                    "file": {
                        "name": name,
                        "uri": f"https://generativelanguage.googleapis.com/v1beta/{name}",
                        "mimeType": "video/mp4",
                        "state": "PROCESSING",
                    }
                },
            )

        if path == "/upload/v1beta/files":
            if self.upload_status >= 400:
                return httpx.Response(self.upload_status, text="provider down")
            return httpx.Response(200, headers={"x-goog-upload-url": UPLOAD_SESSION_URL})

        if path.endswith(":generateContent"):
            self.generate_calls += 1
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": self.answer}]}}]})

        if path.startswith("/v1beta/files/"):
            name = path[len("/v1beta/"):]
            if request.method == "DELETE":
                if name not in self.files:
                    return httpx.Response(404, json={"error": {"code": 404}})
                del self.files[name]
                self.deleted.append(name)
                return httpx.Response(200, json={})
            if name not in self.files:
                return httpx.Response(404, json={"error": {"code": 404}})
            polls = self.files[name]
            self.files[name] = polls + 1
            state = self.states[min(polls, len(self.states) - 1)]
            return httpx.Response(200, json={"name": name, "state": state})

        return httpx.Response(404)


def make_config(api_key: str = "test-key", analysis: Optional[dict] = None, **pipeline: object) -> AppConfig:
    analysis_fields = {"poll_interval_s": 0, "max_polls": 5, **(analysis or {})}
    return AppConfig(
        analysis=AnalysisConfig(api_key=api_key, api_key_env="", **analysis_fields),
        pipeline=PipelineConfig(**pipeline),
    )


@pytest.fixture
def session_factory() -> sessionmaker:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, class_=Session, autoflush=False)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


def seed_video(factory: sessionmaker, video_id: str = "v1", media_url: Optional[str] = MEDIA_URL) -> None:
    from clipguard.services import repository

    with factory() as db:
        repository.create_video(db, video_id=video_id, title="Demo clip", media_url=media_url)
        db.commit()


@pytest.fixture
def make_provider():
    return FakeProvider


@pytest.fixture
def config_factory():
    return make_config


@pytest.fixture
def seed(session_factory):
    def _seed(video_id: str = "v1", media_url: str = MEDIA_URL) -> None:
        seed_video(session_factory, video_id, media_url)

    return _seed
