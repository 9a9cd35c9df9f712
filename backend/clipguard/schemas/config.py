"""Pydantic schemas for persisted app configuration."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field

from clipguard.core.constants import PLACEHOLDER_API_KEYS

DEFAULT_MODERATION_PROMPT = """
Analyze this video for content moderation.
Check for:
1. Violence or Gore
2. Hate Speech or Harassment
3. Sexually Explicit Content
4. Dangerous Activities

Return a strict JSON object with:
{
    "status": "safe" | "flagged",
    "reason": "Brief explanation if flagged, or 'Content is safe' if safe"
}
""".strip()


class AnalysisConfig(BaseModel):
    base_url: str = "https://generativelanguage.googleapis.com"
    api_key: str = ""
    api_key_env: str = "GEMINI_API_KEY"
    model: str = "gemini-2.5-flash"
    timeout_s: int = 120
    poll_interval_s: float = 5
    max_wait_s: int = 600
    max_polls: int = 120
    moderation_prompt: str = DEFAULT_MODERATION_PROMPT

    def resolved_api_key(self) -> str:
        key = self.api_key.strip()
        if not key and self.api_key_env:
            key = os.environ.get(self.api_key_env, "").strip()
        return key

    def is_configured(self) -> bool:
        key = self.resolved_api_key()
        return bool(key) and key.lower() not in PLACEHOLDER_API_KEYS


class StagingConfig(BaseModel):
    download_timeout_s: int = 180
    max_download_mb: int = 500
    chunk_size: int = 1024 * 1024


class PipelineConfig(BaseModel):
    enabled: bool = True
    job_timeout_s: int = 900
    max_attempts: int = Field(default=1, ge=1)
    resume_pending_on_startup: bool = True
    subscriber_queue_size: int = 100


class AppConfig(BaseModel):
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    staging: StagingConfig = Field(default_factory=StagingConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    def analysis_enabled(self) -> bool:
        return self.pipeline.enabled and self.analysis.is_configured()
