"""
scriptswift/web_scrape.py — Website content fetcher
===================================================
Placeholder fetcher: simulates the network round trip and returns stand-in
text. No HTML is downloaded or parsed.
"""

import asyncio
import logging

from .config import ScriptConfig
from .errors import FetchError

logger = logging.getLogger("scriptswift.web_scrape")


async def fetch_website_content(url: str) -> str:
    """Return the text content of `url`.

    Raises:
        FetchError: for anything that is not an http(s) URL.
    """
    logger.info(f"Fetching content from {url}")
    await asyncio.sleep(ScriptConfig.FETCH_SIMULATED_DELAY)

    if not url.startswith(("http://", "https://")):
        logger.error(f"Invalid URL provided for content fetch: {url}")
        raise FetchError(f"Invalid URL: {url}. Could not extract content.")

    return (
        f"Placeholder content for {url}. This would normally be the extracted "
        f"text from the website. This service currently does not implement "
        f"full web scraping."
    )
