"""
scriptswift/script_generator.py — Script turn generation
========================================================
Asks the model for the opening turn of the call, and for each following
turn given the history so far. Output is validated into a ScriptTurn with
2-4 prospect responses; anything else is a GenerationError. No retries.
"""

from __future__ import annotations

import logging

from .errors import GenerationError
from .prompt_builder import (
    NEXT_TURN_SYSTEM_PROMPT,
    OPENING_SYSTEM_PROMPT,
    SCRIPT_TURN_TAG,
    build_next_turn_prompt,
    build_opening_prompt,
)
from .schemas import ProspectResponseOption, ScriptTurn, SessionContext, parse_script_turn
from . import llm

logger = logging.getLogger("scriptswift.script_generator")


async def generate_opening_turn(ctx: SessionContext, complete=None) -> ScriptTurn:
    """Generate the first turn: the hook plus likely prospect replies.

    Args:
        ctx: Resolved session context.
        complete: Optional stand-in for llm.complete_json (same signature).

    Raises:
        GenerationError: no parseable turn came back.
        LLMTimeoutError: the model call timed out.
    """
    complete = complete or llm.complete_json
    data = await complete(
        OPENING_SYSTEM_PROMPT,
        build_opening_prompt(ctx),
        SCRIPT_TURN_TAG,
        error_cls=GenerationError,
    )
    turn = parse_script_turn(data)
    logger.info(f"Opening turn generated with {len(turn.prospect_response_options)} options")
    return turn


async def generate_next_turn(
    ctx: SessionContext,
    history,
    last_response: ProspectResponseOption,
    complete=None,
) -> ScriptTurn:
    """Generate the salesperson's reply to `last_response`.

    `history` is the full list of completed turns, oldest first, and is sent
    without truncation.
    """
    complete = complete or llm.complete_json
    data = await complete(
        NEXT_TURN_SYSTEM_PROMPT,
        build_next_turn_prompt(ctx, history, last_response),
        SCRIPT_TURN_TAG,
        error_cls=GenerationError,
    )
    turn = parse_script_turn(data)
    logger.info(
        f"Turn {len(history) + 1} generated after {last_response.response_type} response "
        f"({len(turn.prospect_response_options)} options)"
    )
    return turn
