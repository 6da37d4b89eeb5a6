"""Fingerprint generator — deterministic cache keys from a generation context.

Normalization rules:
  - only the last ``window`` recent interaction ids count (order is kept)
  - key concepts are a set: de-duplicated and sorted
  - free text is whitespace-collapsed
  - volatile keys (timestamps, session ids) are dropped from ``extra`` at any depth
"""

import hashlib
import json
from typing import Any

from app.orchestrator.schemas import GenerationContext

VOLATILE_KEYS = frozenset({
    "timestamp",
    "session_id",
    "sessionId",
    "requested_at",
    "requestedAt",
    "generated_at",
    "generatedAt",
    "created_at",
    "updated_at",
    "request_id",
    "requestId",
})

FINGERPRINT_LENGTH = 32


def make_fingerprint(
    phase_id: str,
    interaction_kind: str,
    context: GenerationContext,
    window: int = 3,
) -> str:
    """Return a short, stable key for semantically identical contexts."""
    normalized = normalize_context(phase_id, interaction_kind, context, window)
    canonical = json.dumps(normalized, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(canonical.encode()).hexdigest()[:FINGERPRINT_LENGTH]


def normalize_context(
    phase_id: str,
    interaction_kind: str,
    context: GenerationContext,
    window: int = 3,
) -> dict[str, Any]:
    recent = context.recent_interaction_ids[-window:] if window > 0 else []
    concepts = sorted({
        (_collapse(c.title), _collapse(c.description)) for c in context.key_concepts
    })
    return {
        "phase_id": str(phase_id).strip(),
        "interaction_kind": interaction_kind.strip().lower(),
        "user_level": context.user_level.value,
        "recent": list(recent),
        "objective": _collapse(context.objective),
        "key_concepts": [list(c) for c in concepts],
        "user_input": _collapse(context.user_input or ""),
        "extra": _strip_volatile(context.extra),
    }


def _collapse(text: str) -> str:
    return " ".join(text.split())


def _strip_volatile(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            str(k): _strip_volatile(v)
            for k, v in value.items()
            if k not in VOLATILE_KEYS
        }
    if isinstance(value, (list, tuple)):
        return [_strip_volatile(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted(_strip_volatile(v) for v in value)
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)
