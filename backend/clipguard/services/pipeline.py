"""End-to-end moderation job execution."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

import httpx
from sqlalchemy.orm import sessionmaker

from clipguard.core.settings import PATHS
from clipguard.db.session import SessionLocal
from clipguard.schemas.config import AppConfig
from clipguard.services import repository
from clipguard.services.analysis_client import AnalysisClient
from clipguard.services.config_store import load_config
from clipguard.services.errors import RETRYABLE_ERRORS, AnalysisTimeout
from clipguard.services.publisher import StatusPublisher
from clipguard.services.staging import StagingStore
from clipguard.services.verdict import Verdict, parse_verdict

logger = logging.getLogger(__name__)


@dataclass
class Job:
    video_id: str
    remote_media_url: str
    display_name: str
    attempt: int = 1
    local_stage_path: Optional[Path] = None
    remote_artifact_id: Optional[str] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> str:
        return f"{self.video_id}-{self.attempt}"


@dataclass(frozen=True)
class _Source:
    media_url: str
    title: str


class ModerationPipeline:
    def __init__(
        self,
        publisher: StatusPublisher,
        *,
        session_factory: sessionmaker = SessionLocal,
        config_loader: Callable[[], AppConfig] = load_config,
        staging_root: Path = PATHS.staging_root,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.publisher = publisher
        self.session_factory = session_factory
        self.config_loader = config_loader
        self.staging_root = staging_root
        self.transport = transport

    def _load_source(self, video_id: str) -> Optional[_Source]:
        with self.session_factory() as db:
            video = repository.get_video(db, video_id)
            if not video:
                return None
            return _Source(media_url=video.media_url, title=video.title or video_id)

    async def run(self, video_id: str) -> None:
        """Run one job. Outcomes are observed through the record and broadcasts only."""
        try:
            await self._run(video_id)
        except Exception:  # noqa: BLE001
            logger.exception("Moderation job for video %s failed; status left unchanged", video_id)

    async def _run(self, video_id: str) -> None:
        source = await asyncio.to_thread(self._load_source, video_id)
        if source is None:
            logger.info("Video %s no longer exists, skipping analysis", video_id)
            return

        config = self.config_loader()
        if not config.analysis_enabled():
            logger.warning("Analysis is not configured; video %s stays pending", video_id)
            return

        staging = StagingStore(config.staging, root=self.staging_root, transport=self.transport)
        client = AnalysisClient(config.analysis, transport=self.transport)
        max_attempts = max(1, config.pipeline.max_attempts)

        for attempt in range(1, max_attempts + 1):
            job = Job(
                video_id=video_id,
                remote_media_url=source.media_url,
                display_name=source.title,
                attempt=attempt,
            )
            try:
                verdict = await self._attempt(job, staging, client, config.pipeline.job_timeout_s)
            except RETRYABLE_ERRORS as exc:
                if attempt >= max_attempts:
                    raise
                logger.warning(
                    "Attempt %d/%d for video %s failed (%s); retrying", attempt, max_attempts, video_id, exc
                )
                continue

            elapsed = (datetime.now(timezone.utc) - job.started_at).total_seconds()
            logger.info(
                "Video %s processed in %.1fs. Final status: %s (%s)",
                video_id,
                elapsed,
                verdict.status.value,
                verdict.reason,
            )
            return

    async def _attempt(
        self,
        job: Job,
        staging: StagingStore,
        client: AnalysisClient,
        timeout_s: int,
    ) -> Verdict:
        try:
            return await asyncio.wait_for(self._process(job, staging, client), timeout=max(1, timeout_s))
        except asyncio.TimeoutError as exc:
            raise AnalysisTimeout(f"job {job.key} exceeded {timeout_s}s") from exc
        finally:
            await self._release(job, staging, client)

    async def _process(self, job: Job, staging: StagingStore, client: AnalysisClient) -> Verdict:
        # Set before the download so a cancelled download is still removed.
        job.local_stage_path = staging.path_for(job.remote_media_url, job.key)
        job.local_stage_path = await staging.stage(job.remote_media_url, job.key)

        def remember_artifact(artifact_id: str) -> None:
            job.remote_artifact_id = artifact_id

        raw_text = await client.classify(job.local_stage_path, job.display_name, on_created=remember_artifact)

        verdict = parse_verdict(raw_text)
        if verdict.fallback:
            logger.warning(
                "Unparseable classification for video %s, defaulting to safe: %r",
                job.video_id,
                raw_text[:300],
            )

        # Shielded: a committed write always gets its broadcast.
        await asyncio.shield(self.publisher.publish(job.video_id, verdict.status))
        return verdict

    async def _release(self, job: Job, staging: StagingStore, client: AnalysisClient) -> None:
        try:
            staging.unstage(job.local_stage_path)
        except OSError as exc:
            logger.warning("Could not remove staged media %s: %s", job.local_stage_path, exc)
        await client.release(job.remote_artifact_id)
