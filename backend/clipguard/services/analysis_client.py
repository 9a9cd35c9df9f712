"""HTTP client for the Gemini Files + generateContent endpoints."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Optional

import httpx

from clipguard.core.constants import PROVIDER_STATES, ArtifactState
from clipguard.schemas.config import AnalysisConfig
from clipguard.services.errors import (
    AnalysisRejected,
    AnalysisTimeout,
    AnalysisUnavailable,
)

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class RemoteArtifact:
    artifact_id: str
    uri: str
    mime_type: str
    state: ArtifactState = ArtifactState.UPLOADING


def _deep_find(data: Any, keys: set[str]) -> list[Any]:
    found: list[Any] = []
    if isinstance(data, dict):
        for k, v in data.items():
            if k in keys:
                found.append(v)
            found.extend(_deep_find(v, keys))
    elif isinstance(data, list):
        for item in data:
            found.extend(_deep_find(item, keys))
    return found


def _first_string(values: list[Any]) -> Optional[str]:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


async def _iter_file(path: Path, chunk_size: int = UPLOAD_CHUNK_SIZE) -> AsyncIterator[bytes]:
    try:
        with path.open("rb") as f:
            while True:
                chunk = await asyncio.to_thread(f.read, chunk_size)
                if not chunk:
                    break
                yield chunk
    except OSError as exc:
        raise AnalysisUnavailable(f"Cannot read staged media {path}: {exc}") from exc


def guess_mime_type(path: Path) -> str:
    guessed, _ = mimetypes.guess_type(path.name)
    if guessed and guessed.startswith("video/"):
        return guessed
    return "video/mp4"


def parse_provider_state(payload: dict[str, Any]) -> ArtifactState:
    raw = (_first_string(_deep_find(payload, {"state"})) or "").upper()
    return PROVIDER_STATES.get(raw, ArtifactState.PROCESSING)


def parse_generation_text(payload: dict[str, Any]) -> str:
    candidates = payload.get("candidates")
    if isinstance(candidates, list) and candidates:
        first = candidates[0]
        if isinstance(first, dict):
            content = first.get("content")
            parts = content.get("parts") if isinstance(content, dict) else None
            if isinstance(parts, list):
                texts = [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
                if texts:
                    return "".join(texts).strip()

    text = _first_string(_deep_find(payload, {"text"}))
    return text or ""


def _artifact_from_payload(payload: dict[str, Any], mime_type: str) -> RemoteArtifact:
    file_info = payload.get("file") if isinstance(payload.get("file"), dict) else payload
    name = file_info.get("name")
    if not isinstance(name, str) or not name.strip():
        raise AnalysisUnavailable(f"Upload response missing file name: {str(payload)[:300]}")
    return RemoteArtifact(
        artifact_id=name.strip(),
        uri=str(file_info.get("uri") or ""),
        mime_type=str(file_info.get("mimeType") or mime_type),
        state=parse_provider_state(file_info),
    )


class AnalysisClient:
    def __init__(
        self,
        cfg: AnalysisConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.cfg = cfg
        self._transport = transport

    @property
    def _base(self) -> str:
        return self.cfg.base_url.rstrip("/")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.cfg.timeout_s,
            headers={"x-goog-api-key": self.cfg.resolved_api_key()},
            transport=self._transport,
        )

    @staticmethod
    async def _send(client: httpx.AsyncClient, method: str, url: str, what: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            raise AnalysisUnavailable(f"{what} failed: {exc}") from exc
        if resp.status_code >= 400:
            raise AnalysisUnavailable(f"{what} failed: {resp.status_code} {resp.text[:500]}")
        return resp

    async def submit(
        self,
        local_path: Path,
        display_name: str,
        on_created: Optional[Callable[[str], None]] = None,
    ) -> RemoteArtifact:
        """Upload staged media.

        ``on_created`` receives the artifact id as soon as the provider has
        acknowledged the file, before anything else can suspend.
        """
        mime_type = guess_mime_type(local_path)
        try:
            size = local_path.stat().st_size
        except OSError as exc:
            raise AnalysisUnavailable(f"Cannot read staged media {local_path}: {exc}") from exc

        async with self._client() as client:
            start = await self._send(
                client,
                "POST",
                f"{self._base}/upload/v1beta/files",
                "Upload start",
                headers={
                    "X-Goog-Upload-Protocol": "resumable",
                    "X-Goog-Upload-Command": "start",
                    "X-Goog-Upload-Header-Content-Length": str(size),
                    "X-Goog-Upload-Header-Content-Type": mime_type,
                },
                json={"file": {"display_name": display_name}},
            )
            upload_url = start.headers.get("x-goog-upload-url")
            if not upload_url:
                raise AnalysisUnavailable("Upload start response missing x-goog-upload-url")

            finish = await self._send(
                client,
                "POST",
                upload_url,
                "Upload",
                headers={
                    "Content-Length": str(size),
                    "X-Goog-Upload-Offset": "0",
                    "X-Goog-Upload-Command": "upload, finalize",
                },
                content=_iter_file(local_path),
            )
            artifact = _artifact_from_payload(finish.json(), mime_type)
            if on_created is not None:
                on_created(artifact.artifact_id)

        logger.info("Uploaded %s as %s (%d bytes)", local_path.name, artifact.artifact_id, size)
        return artifact

    async def get_state(self, artifact_id: str, client: Optional[httpx.AsyncClient] = None) -> ArtifactState:
        if client is None:
            async with self._client() as own:
                return await self.get_state(artifact_id, own)
        resp = await self._send(client, "GET", f"{self._base}/v1beta/{artifact_id}", "Artifact status")
        return parse_provider_state(resp.json())

    async def wait_until_ready(self, artifact: RemoteArtifact) -> RemoteArtifact:
        deadline = time.monotonic() + max(1, int(self.cfg.max_wait_s))
        max_polls = max(1, int(self.cfg.max_polls))
        interval = max(0.0, float(self.cfg.poll_interval_s))
        polls = 0

        async with self._client() as client:
            while True:
                state = await self.get_state(artifact.artifact_id, client)
                polls += 1

                if state is ArtifactState.READY:
                    return replace(artifact, state=state)
                if state is ArtifactState.FAILED:
                    raise AnalysisRejected(f"Provider failed to process {artifact.artifact_id}")

                if polls >= max_polls or time.monotonic() >= deadline:
                    raise AnalysisTimeout(
                        f"{artifact.artifact_id} not ready after {polls} polls / {self.cfg.max_wait_s}s"
                    )

                logger.debug("Waiting for %s (poll %d, state=%s)", artifact.artifact_id, polls, state.value)
                await asyncio.sleep(interval)

    async def generate(self, artifact: RemoteArtifact) -> str:
        payload = {
            "contents": [
                {
                    "parts": [
                        {"file_data": {"mime_type": artifact.mime_type, "file_uri": artifact.uri}},
                        {"text": self.cfg.moderation_prompt},
                    ]
                }
            ]
        }
        async with self._client() as client:
            resp = await self._send(
                client,
                "POST",
                f"{self._base}/v1beta/models/{self.cfg.model}:generateContent",
                "Classification",
                json=payload,
            )
        return parse_generation_text(resp.json())

    async def classify(
        self,
        local_path: Path,
        display_name: str,
        on_created: Optional[Callable[[str], None]] = None,
    ) -> str:
        """Submit, wait for readiness and classify; the artifact is released on every path."""
        artifact = await self.submit(local_path, display_name, on_created=on_created)
        try:
            ready = await self.wait_until_ready(artifact)
            return await self.generate(ready)
        finally:
            await self.release(artifact.artifact_id)

    async def release(self, artifact_id: Optional[str]) -> None:
        """Delete a remote artifact. Safe to call repeatedly or with unknown ids."""
        if not artifact_id:
            return
        try:
            async with self._client() as client:
                resp = await client.delete(f"{self._base}/v1beta/{artifact_id}")
        except httpx.HTTPError as exc:
            logger.warning("Could not release artifact %s: %s", artifact_id, exc)
            return

        if resp.status_code == 404:
            logger.debug("Artifact %s already gone", artifact_id)
        elif resp.status_code >= 400:
            logger.warning("Artifact %s release failed: %s %s", artifact_id, resp.status_code, resp.text[:200])
        else:
            logger.info("Released artifact %s", artifact_id)
