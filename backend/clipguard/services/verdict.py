"""Turn free-form provider output into a typed safety verdict."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

from clipguard.core.constants import SensitivityStatus
from clipguard.services.errors import VerdictParseError

UNPARSEABLE_REASON = "unparseable response"

_DEFAULT_REASONS = {
    SensitivityStatus.SAFE: "Content is safe",
    SensitivityStatus.FLAGGED: "Flagged without explanation",
}


@dataclass(frozen=True)
class Verdict:
    status: SensitivityStatus
    reason: str
    fallback: bool = False


FALLBACK_VERDICT = Verdict(SensitivityStatus.SAFE, UNPARSEABLE_REASON, fallback=True)


def strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = re.sub(r"^```[a-zA-Z]*", "", text).strip()
        text = re.sub(r"```$", "", text).strip()
    return text


def decode_payload(text: str) -> Any:
    """Decode the JSON payload of a model answer.

    Prefers the whole (fence-stripped) text; falls back to the first
    ``{...}`` block when the model wrapped its JSON in prose.
    """
    text = strip_code_fence(text or "")
    if not text:
        raise VerdictParseError("empty response")

    try:
        return json.loads(text)
    except ValueError:
        # JSONDecodeError, or int strings past the interpreter digit limit.
        pass

    match = re.search(r"\{.*\}", text, flags=re.DOTALL)
    if not match:
        raise VerdictParseError("no json object found in response")
    try:
        return json.loads(match.group(0))
    except ValueError as exc:
        raise VerdictParseError(str(exc)) from exc


def parse_verdict(raw_text: object) -> Verdict:
    """Never raises. Anything undecodable becomes the default safe verdict."""
    try:
        payload = decode_payload(raw_text if isinstance(raw_text, str) else "")
    except (VerdictParseError, ValueError, RecursionError):
        return FALLBACK_VERDICT

    status_value = payload.get("status") if isinstance(payload, dict) else None
    status = SensitivityStatus.FLAGGED if status_value == "flagged" else SensitivityStatus.SAFE

    reason = payload.get("reason") if isinstance(payload, dict) else None
    if not isinstance(reason, str) or not reason.strip():
        reason = _DEFAULT_REASONS[status]
    return Verdict(status=status, reason=reason.strip())
