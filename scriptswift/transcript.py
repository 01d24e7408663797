"""
scriptswift/transcript.py — Plain-text script rendering
=======================================================
Renders a conversation as the text the user copies or downloads.
"""

from __future__ import annotations

from .schemas import NEGATIVE_OBJECTION, NEUTRAL, POSITIVE, BusinessInfo, ScriptTurn

TRANSCRIPT_FILENAME = "sales_script.txt"

RESPONSE_TYPE_LABELS = {
    POSITIVE: "Positive",
    NEUTRAL: "Neutral",
    NEGATIVE_OBJECTION: "Objection",
}


def _label(response_type: str) -> str:
    return RESPONSE_TYPE_LABELS.get(response_type, response_type)


def format_transcript(
    history,
    current_turn: ScriptTurn | None = None,
    business_info: BusinessInfo | None = None,
    company_name: str | None = None,
) -> str:
    """Render completed turns, then the open turn and its response options.

    Returns an empty string when there is nothing to show.
    """
    if not history and current_turn is None:
        return ""

    speaker = business_info.user_name if business_info else "Salesperson"
    lines = []

    title = "Cold Call Script"
    if business_info:
        title += f" — {business_info.business_name}"
    if company_name:
        title += f" → {company_name}"
    lines.append(f"## {title}")
    lines.append("")

    for i, turn in enumerate(history, start=1):
        chosen = turn.chosen_prospect_response
        lines.append(f"### Turn {i}")
        lines.append(f"{speaker}: {turn.salesperson_utterance}")
        lines.append(f"Prospect: {chosen.response_text} [{_label(chosen.response_type)}]")
        lines.append("")

    if current_turn is not None:
        lines.append(f"### Turn {len(history) + 1}")
        lines.append(f"{speaker}: {current_turn.salesperson_utterance}")
        lines.append("Possible responses:")
        for n, option in enumerate(current_turn.prospect_response_options, start=1):
            lines.append(f"  {n}. {option.response_text} [{_label(option.response_type)}]")
        lines.append("")

    return "\n".join(lines).strip() + "\n"


def session_transcript(session) -> str:
    """format_transcript() for a ConversationSession."""
    context = session.context
    return format_transcript(
        session.history,
        session.current_turn,
        business_info=context.business_info if context else None,
        company_name=context.customer_company_name if context else None,
    )
