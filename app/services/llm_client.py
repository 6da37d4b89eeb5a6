"""Async Anthropic API wrapper with logging and JSON extraction.

The client does not retry or race a timer itself: callers wrap it in
with_retry() and their own time budget. Every upstream failure surfaces as
UpstreamError so the retry controller can tell it apart from timeouts.
"""

import json
import logging
import re
import time
from pathlib import Path
from typing import Any

import anthropic
import httpx

from app.errors import UpstreamError

logger = logging.getLogger(__name__)

# Any other status is reported as non-retryable
RETRYABLE_STATUSES = (408, 409, 429, 500, 502, 503, 504, 529)


def load_prompt(name: str) -> str:
    """Load a prompt template from app/prompts/{name}.txt."""
    prompt_path = Path(__file__).parent.parent / "prompts" / f"{name}.txt"
    return prompt_path.read_text(encoding="utf-8")


class LLMClient:
    """Thin async client for the hosted generative-text service."""

    def __init__(self, api_key: str, model: str, request_timeout: float = 60.0):
        self.model = model
        self._client: anthropic.AsyncAnthropic | None = None
        if api_key:
            self._client = anthropic.AsyncAnthropic(
                api_key=api_key,
                timeout=httpx.Timeout(request_timeout, connect=10.0),
                max_retries=0,
            )

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    async def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 800,
        response_schema: dict[str, Any] | None = None,
    ) -> str:
        """Send one prompt and return the raw text response."""
        if self._client is None:
            raise UpstreamError("Generative service is not configured", retryable=False)

        if response_schema is not None:
            schema_text = json.dumps(response_schema, ensure_ascii=False)
            schema_note = f"Respond only with a JSON object matching this JSON schema:\n{schema_text}"
            system = f"{system}\n\n{schema_note}" if system else schema_note

        params: dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            params["system"] = system

        start = time.monotonic()
        try:
            response = await self._client.messages.create(**params)
        except anthropic.APIStatusError as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.warning(
                "LLM error | model=%s | status=%d | %dms | %s",
                self.model, e.status_code, elapsed_ms, str(e)[:200],
            )
            if e.status_code in RETRYABLE_STATUSES:
                raise UpstreamError(f"LLM status {e.status_code}", e.status_code) from e
            raise UpstreamError(f"LLM status {e.status_code}", e.status_code, retryable=False) from e
        except (anthropic.APITimeoutError, anthropic.APIConnectionError) as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.warning("LLM connection error | model=%s | %dms", self.model, elapsed_ms)
            raise UpstreamError(f"LLM connection error: {str(e)[:200]}") from e
        except anthropic.APIError as e:
            logger.warning("LLM API error | model=%s | %s", self.model, str(e)[:200])
            raise UpstreamError(f"LLM API error: {str(e)[:200]}", retryable=False) from e

        elapsed_ms = int((time.monotonic() - start) * 1000)
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        usage = response.usage
        logger.info(
            "LLM OK | model=%s | tokens_in=%d tokens_out=%d | %dms",
            self.model, usage.input_tokens, usage.output_tokens, elapsed_ms,
        )
        if not text.strip():
            raise UpstreamError("LLM returned an empty response")
        return text

    async def complete_json(
        self,
        prompt: str,
        *,
        response_schema: dict[str, Any],
        system: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4000,
    ) -> dict:
        """Call the model with a structured-output schema and parse the JSON object."""
        text = await self.complete(
            prompt,
            system=system,
            temperature=temperature,
            max_tokens=max_tokens,
            response_schema=response_schema,
        )
        artifact = extract_json(text)
        if artifact is None:
            raise UpstreamError("LLM response did not contain a JSON object")
        check_artifact(artifact, response_schema)
        return artifact


def check_artifact(artifact: dict, schema: dict[str, Any]) -> None:
    """Raise UpstreamError unless every required field is present with its declared JSON type."""
    properties = schema.get("properties", {})
    problems = []
    for key in schema.get("required", []):
        if key not in artifact:
            problems.append(f"{key} missing")
            continue
        declared = properties.get(key, {}).get("type")
        expected = _JSON_TYPES.get(declared)
        if expected is None:
            continue
        value = artifact[key]
        # bool is an int subclass; only a boolean field accepts it
        if not isinstance(value, expected) or (isinstance(value, bool) and declared != "boolean"):
            problems.append(f"{key} is not {declared}")
    if problems:
        raise UpstreamError(f"LLM JSON has invalid fields: {', '.join(problems)}")


_JSON_TYPES: dict[str, type | tuple[type, ...]] = {
    "string": str,
    "number": (int, float),
    "integer": int,
    "boolean": bool,
    "array": list,
    "object": dict,
}


def extract_json(text: str) -> dict | None:
    """Find the step artifact in model output.

    Models sometimes wrap the object in a ```json fence or surround it with
    prose. Tried in turn: the fenced block, the whole reply, then the first
    brace-balanced object that parses.
    """
    fence = re.search(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```", text)
    if fence:
        artifact = _parse_object(fence.group(1))
        if artifact is not None:
            return artifact

    reply = text.strip()
    if reply.startswith("{"):
        artifact = _parse_object(reply)
        if artifact is not None:
            return artifact

    for candidate in _balanced_objects(text):
        artifact = _parse_object(candidate)
        if artifact is not None:
            return artifact
    return None


def _parse_object(candidate: str) -> dict | None:
    try:
        parsed = json.loads(candidate)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _balanced_objects(text: str):
    """Yield each top-level {...} span, skipping braces inside JSON strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = escaped = False
        end = None
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    end = i
                    break
        if end is None:
            return
        yield text[start:end + 1]
        start = text.find("{", end + 1)
