"""Persist a terminal verdict and announce it."""

from __future__ import annotations

import asyncio
import logging
from typing import Union

from sqlalchemy.orm import sessionmaker

from clipguard.core.constants import SensitivityStatus, TERMINAL_STATUSES
from clipguard.db.session import SessionLocal, session_scope
from clipguard.schemas.video import StatusEvent
from clipguard.services import repository
from clipguard.services.broadcast import StatusBroadcaster

logger = logging.getLogger(__name__)


class StatusPublisher:
    def __init__(self, broadcaster: StatusBroadcaster, session_factory: sessionmaker = SessionLocal) -> None:
        self.broadcaster = broadcaster
        self.session_factory = session_factory

    def _write(self, video_id: str, status: SensitivityStatus) -> bool:
        with session_scope(self.session_factory) as db:
            return repository.set_sensitivity_status(db, video_id, status) is not None

    async def publish(self, video_id: str, status: Union[SensitivityStatus, str]) -> bool:
        value = SensitivityStatus(status)
        if value not in TERMINAL_STATUSES:
            raise ValueError(f"only terminal statuses can be published, got {value.value}")

        written = await asyncio.to_thread(self._write, video_id, value)
        if not written:
            logger.info("Video %s disappeared before its verdict was stored", video_id)
            return False

        delivered = self.broadcaster.publish(StatusEvent(video_id=video_id, status=value))
        logger.info("Video %s -> %s (delivered to %d observers)", video_id, value.value, delivered)
        return True
