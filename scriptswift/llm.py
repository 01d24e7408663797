"""
scriptswift/llm.py — Structured completions over the Anthropic SDK
==================================================================
Every model call in the project goes through `complete_json()`: send a
system + user prompt, wait (bounded by a timeout), then pull the JSON object
the prompt asked for out of a <tag>...</tag> block.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re

from anthropic import Anthropic, AnthropicError

from .config import ScriptConfig
from .errors import NoOutputError, LLMTimeoutError

logger = logging.getLogger("scriptswift.llm")

_BARE_JSON_RE = re.compile(r"\{.*\}", re.DOTALL)

_client: Anthropic | None = None


def get_client() -> Anthropic:
    """Shared client, created on first use so imports don't need an API key."""
    global _client
    if _client is None:
        _client = Anthropic()
    return _client


def _tag_re(tag: str) -> re.Pattern:
    return re.compile(rf"<{tag}>\s*(.*?)\s*</{tag}>", re.DOTALL)


def extract_tagged_json(text: str, tag: str):
    """Return the parsed JSON inside <tag>...</tag>, or None.

    Falls back to the outermost bare {...} when the model forgot the tags.
    """
    if not text:
        return None

    candidates = []
    match = _tag_re(tag).search(text)
    if match:
        candidates.append(match.group(1))
    bare = _BARE_JSON_RE.search(text)
    if bare:
        candidates.append(bare.group(0))

    for raw in candidates:
        raw = raw.strip()
        # ```json fences inside the tag
        raw = re.sub(r"^```(?:json)?\s*|\s*```$", "", raw)
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse <{tag}> JSON: {e}")
    return None


def _response_text(response) -> str:
    blocks = [b.text for b in response.content if getattr(b, "type", "") == "text"]
    return "\n".join(blocks)


async def complete_json(
    system: str,
    user_prompt: str,
    tag: str,
    *,
    max_tokens: int | None = None,
    temperature: float | None = None,
    timeout: float | None = None,
    error_cls: type[NoOutputError] = NoOutputError,
):
    """Run one completion and return the JSON object inside <tag>.

    Raises:
        LLMTimeoutError: the call exceeded `timeout` seconds.
        error_cls: the API failed or no parseable JSON came back.
    """
    timeout = timeout if timeout is not None else ScriptConfig.LLM_TIMEOUT_SECONDS

    try:
        client = get_client()
        response = await asyncio.wait_for(
            asyncio.to_thread(
                client.messages.create,
                model=ScriptConfig.CLAUDE_MODEL,
                max_tokens=max_tokens or ScriptConfig.LLM_MAX_TOKENS,
                temperature=temperature if temperature is not None else ScriptConfig.LLM_TEMPERATURE,
                system=system,
                messages=[{"role": "user", "content": user_prompt}],
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.error(f"Model call for <{tag}> timed out after {timeout}s")
        raise LLMTimeoutError(f"The AI model did not respond within {timeout:g} seconds.")
    except AnthropicError as e:
        logger.error(f"Model call for <{tag}> failed: {e}")
        raise error_cls(f"The AI model request failed: {e}") from e

    text = _response_text(response)
    data = extract_tagged_json(text, tag)
    if data is None:
        logger.warning(f"No <{tag}> output (stop_reason={getattr(response, 'stop_reason', None)})")
        raise error_cls("The AI model did not return the expected output.")
    return data
