"""Scoped local copies of remote media, one directory per job."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import httpx

from clipguard.core.settings import PATHS
from clipguard.schemas.config import StagingConfig
from clipguard.services.errors import StagingIOError

logger = logging.getLogger(__name__)

DEFAULT_SUFFIX = ".mp4"


def _suffix_for(url: str) -> str:
    suffix = Path(urlparse(url).path).suffix.lower()
    if suffix and len(suffix) <= 6 and suffix[1:].isalnum():
        return suffix
    return DEFAULT_SUFFIX


class StagingStore:
    def __init__(
        self,
        cfg: StagingConfig,
        root: Path = PATHS.staging_root,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.cfg = cfg
        self.root = root
        self._transport = transport

    def path_for(self, remote_url: str, job_key: str) -> Path:
        return self.root / job_key / f"{job_key}{_suffix_for(remote_url)}"

    async def stage(self, remote_url: str, job_key: str) -> Path:
        target = self.path_for(remote_url, job_key)
        max_bytes = int(self.cfg.max_download_mb) * 1024 * 1024
        written = 0

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            async with httpx.AsyncClient(
                timeout=self.cfg.download_timeout_s,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                async with client.stream("GET", remote_url) as resp:
                    if resp.status_code >= 400:
                        raise StagingIOError(f"Media download failed: {resp.status_code} {remote_url}")
                    with target.open("wb") as f:
                        async for chunk in resp.aiter_bytes(self.cfg.chunk_size):
                            written += len(chunk)
                            if written > max_bytes:
                                raise StagingIOError(
                                    f"Media exceeds {self.cfg.max_download_mb} MB limit: {remote_url}"
                                )
                            await asyncio.to_thread(f.write, chunk)
        except StagingIOError:
            self.unstage(target)
            raise
        except (httpx.HTTPError, OSError) as exc:
            self.unstage(target)
            raise StagingIOError(f"Media download failed: {remote_url}: {exc}") from exc

        logger.info("Staged %s (%d bytes) at %s", remote_url, written, target)
        return target

    def unstage(self, path: Optional[Path]) -> None:
        if path is None:
            return
        path = Path(path)
        path.unlink(missing_ok=True)
        job_dir = path.parent
        if job_dir != self.root and job_dir.parent == self.root and job_dir.exists():
            shutil.rmtree(job_dir, ignore_errors=True)
