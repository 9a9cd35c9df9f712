"""Error taxonomy for the moderation pipeline."""

from __future__ import annotations


class PipelineError(RuntimeError):
    pass


class StagingIOError(PipelineError):
    """Remote media could not be fetched or written locally."""


class AnalysisError(PipelineError):
    pass


class AnalysisUnavailable(AnalysisError):
    """Provider unreachable or answered with an HTTP error."""


class AnalysisTimeout(AnalysisError):
    """Artifact never became ready within the configured bounds."""


class AnalysisRejected(AnalysisError):
    """Provider marked the artifact as failed."""


class VerdictParseError(ValueError):
    pass


# Whole-job retry is only attempted for these.
RETRYABLE_ERRORS = (StagingIOError, AnalysisUnavailable)
