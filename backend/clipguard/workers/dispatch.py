"""Detached asyncio job dispatch and enqueue helpers."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from clipguard.services.broadcast import broadcaster
from clipguard.services.pipeline import ModerationPipeline
from clipguard.services.publisher import StatusPublisher

logger = logging.getLogger(__name__)


class JobRunner:
    """Spawns one detached task per video and keeps it alive until done.

    A second submit for a video whose job is still in flight is ignored.
    """

    def __init__(self, pipeline: ModerationPipeline) -> None:
        self.pipeline = pipeline
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def running(self) -> bool:
        return self._loop is not None

    def in_flight(self) -> set[str]:
        return set(self._tasks)

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop or asyncio.get_running_loop()

    def submit(self, video_id: str) -> None:
        if self._loop is None:
            raise RuntimeError("job runner is not started")

        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None

        if current is self._loop:
            self._spawn(video_id)
        else:
            self._loop.call_soon_threadsafe(self._spawn, video_id)

    def _spawn(self, video_id: str) -> None:
        if self._loop is None:
            logger.warning("Job runner stopped before video %s could be queued", video_id)
            return
        if video_id in self._tasks:
            logger.info("Job for video %s already in flight, ignoring submit", video_id)
            return
        task = self._loop.create_task(self.pipeline.run(video_id), name=f"moderation-{video_id}")
        self._tasks[video_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(video_id, None))
        logger.info("Queued moderation job for video %s", video_id)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d in-flight moderation jobs", len(tasks))
        self._tasks.clear()
        self._loop = None


runner = JobRunner(ModerationPipeline(StatusPublisher(broadcaster)))


def enqueue_job(video_id: str) -> None:
    runner.submit(video_id)
