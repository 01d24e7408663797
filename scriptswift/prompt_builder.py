"""
scriptswift/prompt_builder.py — Prompt assembly for analysis and script turns
=============================================================================
Static template text plus small builder functions that slot in the session
fields. No LLM call here — pure string assembly, so every prompt can be
inspected in tests.
"""

from __future__ import annotations

import json
import re

from .config import ScriptConfig
from .schemas import CompletedScriptTurn, ProspectResponseOption, SessionContext


SCRIPT_TURN_TAG = "script_turn"
ANALYSIS_TAG = "customer_analysis"

_PLACEHOLDER_RE = re.compile(
    "|".join(re.escape(p) for p in ScriptConfig.PLACEHOLDER_PHRASES),
    re.IGNORECASE,
)
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.;!?])\s+")

_SCRIPT_TURN_FORMAT = f"""Output your answer as a JSON object wrapped in <{SCRIPT_TURN_TAG}> tags:

<{SCRIPT_TURN_TAG}>
{{
  "salespersonUtterance": "What the salesperson says",
  "prospectResponseOptions": [
    {{"responseText": "Okay, what is it?", "responseType": "positive"}},
    {{"responseText": "I'm busy right now.", "responseType": "neutral"}},
    {{"responseText": "Not interested.", "responseType": "negative_objection"}}
  ]
}}
</{SCRIPT_TURN_TAG}>

- prospectResponseOptions: {ScriptConfig.MIN_RESPONSE_OPTIONS}-{ScriptConfig.MAX_RESPONSE_OPTIONS} distinct, plausible, short replies. They become buttons.
- responseType is exactly one of "positive" (interest), "neutral" (inquiry or deferral), "negative_objection" (disinterest or an objection).
- Plain text only. No markdown."""


# ---------------------------------------------------------------------------
# Website analysis
# ---------------------------------------------------------------------------
ANALYSIS_SYSTEM_PROMPT = f"""You are an expert marketing analyst. Your task is to analyze website content and extract key information for sales script personalization.

From the website content, identify the company name and write a concise summary covering:
- Core Products/Services: what they primarily offer (if not clear, state "Not clearly specified")
- Target Audience: who their typical customers are (if not clear, state "Not clearly specified")
- Key Value Propositions: what makes them stand out, what problems they solve (if not clear, state "Not clearly specified")
- Recent News/Notable Mentions (optional): a product launch, award or major event, if one stands out

The summary must be factual and derived only from the content. It will be passed to another AI that writes a sales script. Do not put the company name inside the summary.

Output a JSON object wrapped in <{ANALYSIS_TAG}> tags:

<{ANALYSIS_TAG}>
{{"companyName": "Acme Corp", "summary": "..."}}
</{ANALYSIS_TAG}>

Omit companyName or leave it empty if the company cannot be clearly identified."""


def build_analysis_prompt(url: str, website_content: str) -> str:
    content = website_content[:ScriptConfig.WEBSITE_CONTENT_MAX_CHARS]
    return f"""Website URL: {url}

Website content:
{content}"""


# ---------------------------------------------------------------------------
# Customer context helpers
# ---------------------------------------------------------------------------
def usable_insights(customer_context: str) -> str:
    """Drop sentences carrying placeholder phrases like "Not clearly specified"."""
    kept_lines = []
    for line in customer_context.splitlines():
        sentences = [
            s for s in _SENTENCE_SPLIT_RE.split(line)
            if s.strip() and not _PLACEHOLDER_RE.search(s)
        ]
        if sentences:
            kept_lines.append(" ".join(s.strip() for s in sentences))
    return "\n".join(kept_lines).strip()


def is_sparse_context(customer_context: str) -> bool:
    """True when nothing concrete is left after removing placeholders."""
    return not usable_insights(customer_context)


def _company_label(ctx: SessionContext, fallback: str) -> str:
    return ctx.customer_company_name if ctx.customer_company_name else fallback


# ---------------------------------------------------------------------------
# Opening turn
# ---------------------------------------------------------------------------
OPENING_SYSTEM_PROMPT = """You are an expert sales scriptwriter creating the opening of a cold call. Tone: confident, empathetic, respectful and human."""

_SPECIFIC_HOOK = """- Create a hook by referencing a specific, positive or noteworthy insight about {company} from the insights above.
- Example structure: "Hi, this is {user_name} from {business_name}. I noticed {company_possessive} [specific positive detail], and it sparked a quick idea about how we help with [brief link to the product] that I thought you'd find interesting.\""""

_GENERIC_HOOK = """- Specific insights about this prospect are scarce. Do NOT mention that information is missing.
  1. Infer their likely industry from the company name or any fragment of the insights.
  2. Hook on a general benefit of {product_service} that would appeal to companies in that industry.
  3. If the industry is also unclear, make a short, intriguing statement about a common business challenge that {product_service} addresses.
- Example structure: "Hi, this is {user_name} from {business_name}. We're helping businesses in [their likely industry] to [key benefit], and I had a brief thought for {company}.\""""


def build_opening_prompt(ctx: SessionContext) -> str:
    """User prompt for the first turn of the call."""
    info = ctx.business_info
    company = _company_label(ctx, "the prospect's company")
    company_possessive = (
        f"{ctx.customer_company_name}'s" if ctx.customer_company_name else "your company's"
    )
    insights = usable_insights(ctx.customer_context)
    sparse = not insights

    hook = (_GENERIC_HOOK if sparse else _SPECIFIC_HOOK).format(
        company=company,
        company_possessive=company_possessive,
        user_name=info.user_name,
        business_name=info.business_name,
        product_service=info.product_service,
    )

    return f"""Write an ultra-concise opening statement (1-2 short sentences, 5-7 seconds spoken) for {info.user_name} from {info.business_name}. Its only goal is to capture attention and earn a few more seconds.

Salesperson Details:
- Name: {info.user_name}
- Company: {info.business_name}
- Product/Service: {info.product_service}
- Call Objective: {info.sales_goals}

Target Customer:
- Company: {company}
- Insights: {insights or "None available."}

Instructions:
- It MUST be ultra-concise and grab attention immediately.
{hook}
- Never repeat phrases like "Not clearly specified" or "Placeholder content".
- Sound natural and engaging, not formal or robotic.

{_SCRIPT_TURN_FORMAT}

Generate the initial script turn."""


# ---------------------------------------------------------------------------
# Next turn
# ---------------------------------------------------------------------------
NEXT_TURN_SYSTEM_PROMPT = """You are an expert sales coach guiding a salesperson through a live cold call, one turn at a time."""

_SENTIMENT_GUIDANCE = {
    "negative_objection": "The prospect objected. Acknowledge it, then gently pivot or ask a clarifying question.",
    "positive": "The prospect is interested. Build on that interest.",
    "neutral": "The prospect is noncommittal. Engage further or qualify.",
}


def render_turn(turn: CompletedScriptTurn) -> str:
    chosen = turn.chosen_prospect_response
    return (
        f"salesperson: {turn.salesperson_utterance}\n"
        f"prospect: {chosen.response_text} ({chosen.response_type})"
    )


def render_history(history) -> str:
    """Chronological transcript of completed turns, one block per turn."""
    return "\n\n".join(render_turn(t) for t in history)


def build_next_turn_prompt(
    ctx: SessionContext,
    history,
    last_response: ProspectResponseOption,
) -> str:
    """User prompt for the turn after `last_response`.

    Args:
        ctx: Session context resolved at conversation start.
        history: All completed turns, oldest first. Sent in full.
        last_response: The option the prospect just picked.
    """
    info = ctx.business_info
    if ctx.customer_company_name:
        speaking_with = ctx.customer_company_name
    else:
        speaking_with = f"a company matching this description: {usable_insights(ctx.customer_context) or 'unknown'}"
    guidance = _SENTIMENT_GUIDANCE.get(last_response.response_type, _SENTIMENT_GUIDANCE["neutral"])

    return f"""You are guiding {info.user_name} from {info.business_name}.
They are selling: {info.product_service}.
Their goal for this call is: {info.sales_goals}.
They are speaking with a representative from {speaking_with}.

Conversation History:
{render_history(history)}

The prospect just said: {json.dumps(last_response.response_text)} ({last_response.response_type})

What should {info.user_name} say next?
- Concise, human-like and conversational.
- {guidance}
- Reference the prospect's last response directly if natural.
- Keep the call objective ({info.sales_goals}) in mind.

{_SCRIPT_TURN_FORMAT}

Generate the next script turn."""
