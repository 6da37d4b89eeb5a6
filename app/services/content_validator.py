"""Content guard for generated learning markup.

normalize_content() unwraps whatever document shell the upstream model
returned and guarantees the ``llm-container`` wrapper.
validate_content() rejects output that is empty, too short, structurally
unmarked, or (for beginner phases) carries code markup.
"""

import logging
import re

from app.errors import ContentValidationError

logger = logging.getLogger(__name__)

CONTAINER_CLASS = "llm-container"
TEXT_MARKERS = ("llm-title", "llm-text", "llm-subtitle")
DEFAULT_INTERACTION_ID = "continue-learning"

# Code markup is out of place in beginner phases
BEGINNER_CODE_PATTERNS = [
    r"```",
    r"<pre[\s>]",
    r"<code[\s>]",
]

_FENCE = re.compile(r"^\s*```[a-zA-Z]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)
_DOCTYPE = re.compile(r"<!DOCTYPE[^>]*>", re.IGNORECASE)
_HEAD = re.compile(r"<head[\s>].*?</head>", re.IGNORECASE | re.DOTALL)
_SHELL_TAGS = re.compile(r"</?(?:html|body)(?:\s[^>]*)?>", re.IGNORECASE)
_BUTTON = re.compile(r"<button(?![^>]*data-interaction-id)([^>]*)>", re.IGNORECASE)


def normalize_content(raw: str) -> str:
    """Strip document-level wrapping and ensure the content container."""
    content = (raw or "").strip()

    fence = _FENCE.match(content)
    if fence:
        content = fence.group(1).strip()

    content = _DOCTYPE.sub("", content)
    content = _HEAD.sub("", content)
    content = _SHELL_TAGS.sub("", content).strip()

    if not content:
        return ""

    if CONTAINER_CLASS not in content:
        content = f'<div class="{CONTAINER_CLASS}">{content}</div>'

    content = _BUTTON.sub(rf'<button\1 data-interaction-id="{DEFAULT_INTERACTION_ID}">', content)
    return content


def validate_content(content: str, difficulty: str = "beginner", min_length: int = 200) -> str:
    """Return the content unchanged or raise ContentValidationError."""
    text = (content or "").strip()
    if not text:
        raise ContentValidationError("empty content")

    if len(text) < min_length:
        raise ContentValidationError(f"content too short ({len(text)} < {min_length} chars)")

    if CONTAINER_CLASS not in text:
        raise ContentValidationError(f"missing {CONTAINER_CLASS}")

    if not any(marker in text for marker in TEXT_MARKERS):
        raise ContentValidationError("no structural text markers")

    if difficulty == "beginner":
        for pattern in BEGINNER_CODE_PATTERNS:
            if re.search(pattern, text, re.IGNORECASE):
                raise ContentValidationError(f"code markup in beginner content: {pattern}")

    return content


def is_valid_content(content: str, difficulty: str = "beginner", min_length: int = 200) -> bool:
    try:
        validate_content(content, difficulty, min_length)
    except ContentValidationError as e:
        logger.info("Content rejected | difficulty=%s | %s", difficulty, e)
        return False
    return True
