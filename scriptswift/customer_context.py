"""
scriptswift/customer_context.py — Customer context resolution
=============================================================
Turns the customer half of the form into a (summary, company name) pair.
URLs go through the content fetcher and an LLM summary; free text is used
as-is with a best-effort guess at the company name.
"""

from __future__ import annotations

import asyncio
import logging
import re

from .config import ScriptConfig
from .errors import FetchError, SummarizationError
from .prompt_builder import ANALYSIS_SYSTEM_PROMPT, ANALYSIS_TAG, build_analysis_prompt
from .schemas import CustomerContext, CustomerInfo
from . import llm
from . import web_scrape

logger = logging.getLogger("scriptswift.customer_context")

_COMPANY_LABEL_RE = re.compile(
    r"(?:Company Name|Business Name|Company|Business):\s*([^,\n;]+)",
    re.IGNORECASE,
)


def extract_company_name(text: str) -> str | None:
    """Guess the company name from a free-text customer summary.

    Tries a "Company Name: X" style label first, then falls back to the first
    line when it is short and doesn't look like a sentence or a URL. The
    fallback is permissive and can misfire; treat the result as a hint.
    """
    match = _COMPANY_LABEL_RE.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()

    first_line = text.split("\n", 1)[0].strip()
    lowered = first_line.lower()
    if (
        first_line
        and len(first_line) < ScriptConfig.COMPANY_NAME_MAX_LENGTH
        and "." not in first_line
        and not lowered.startswith("http")
        and "services" not in lowered
    ):
        return first_line
    return None


async def summarize_website(url: str, website_content: str) -> CustomerContext:
    """LLM summary of fetched website text.

    Raises:
        SummarizationError: the model returned no summary.
    """
    data = await llm.complete_json(
        ANALYSIS_SYSTEM_PROMPT,
        build_analysis_prompt(url, website_content),
        ANALYSIS_TAG,
        max_tokens=ScriptConfig.SUMMARY_MAX_TOKENS,
        temperature=ScriptConfig.SUMMARY_TEMPERATURE,
        error_cls=SummarizationError,
    )
    if not isinstance(data, dict):
        raise SummarizationError("AI model did not return expected output for website analysis.")

    summary = str(data.get("summary") or "").strip()
    if not summary:
        raise SummarizationError("AI model did not return expected output for website analysis.")

    company_name = str(data.get("companyName") or "").strip() or None
    logger.info(f"Website analysis complete for {url}: company={company_name!r}")
    return CustomerContext(summary=summary, company_name=company_name)


async def _fetch_with_timeout(fetch, url: str) -> str:
    timeout = ScriptConfig.FETCH_TIMEOUT_SECONDS
    try:
        return await asyncio.wait_for(fetch(url), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error(f"Content fetch for {url} timed out after {timeout}s")
        raise FetchError(f"Timed out fetching {url}.", retryable=True)


async def resolve_customer_context(
    customer_info: CustomerInfo,
    fetch=None,
    summarize=None,
) -> CustomerContext:
    """Resolve the customer context for a new conversation.

    Args:
        customer_info: Validated customer half of the form.
        fetch: async (url) -> str. Defaults to web_scrape.fetch_website_content.
        summarize: async (url, text) -> CustomerContext. Defaults to summarize_website.

    Raises:
        FetchError: the URL could not be fetched.
        SummarizationError: the summary model returned nothing.
    """
    fetch = fetch or web_scrape.fetch_website_content
    summarize = summarize or summarize_website

    if customer_info.type == "url" and customer_info.url:
        url = customer_info.url
        raw_text = await _fetch_with_timeout(fetch, url)
        logger.info(f"Fetched {len(raw_text)} chars from {url}")
        context = await summarize(url, raw_text)
        if context is None or not context.summary:
            raise SummarizationError("AI model did not return expected output for website analysis.")
        return context

    if customer_info.type == "text" and customer_info.text:
        text = customer_info.text
        company_name = extract_company_name(text)
        logger.info(f"Using text summary ({len(text)} chars), company={company_name!r}")
        return CustomerContext(summary=text, company_name=company_name)

    return CustomerContext(summary=ScriptConfig.NO_CUSTOMER_DETAILS)
