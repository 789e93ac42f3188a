"""
Raw content fetcher implementation using the aiohttp library.

This module provides an implementation of the RawContentFetcher interface used
by both the deep analysis and the upstream analysis stages. Each fetch is an
independent, time-bounded request; the connection is released when the request
context exits, including on timeout or cancellation.
"""

import asyncio
import logging
from typing import Optional

import aiohttp

from serp_diagnostics.contracts import RawContentFetcher
from serp_diagnostics.domain import RawContent

# Module logger
logger = logging.getLogger(__name__)

USER_AGENT = "SerpApi-Diagnostic-Workbench/1.0"
ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

TIMEOUT_STATUS = 408


def _decode(body: bytes, charset: Optional[str]) -> str:
    try:
        return body.decode(charset or "utf-8", errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


class AiohttpRawFetcher(RawContentFetcher):
    """
    A concrete implementation of RawContentFetcher using the aiohttp library.

    It uses a shared aiohttp ClientSession and never raises for network
    failures: timeouts map to status 408 and other errors to status 0.
    """

    def __init__(self, session: aiohttp.ClientSession) -> None:
        """
        Initializes the fetcher with a shared aiohttp ClientSession.

        Args:
            session: An active aiohttp.ClientSession to be used for requests.
        """
        self._session: aiohttp.ClientSession = session

    async def fetch(self, url: str, timeout: float, max_bytes: Optional[int] = None) -> RawContent:
        """
        Performs a GET request and reads at most max_bytes of the body.

        Args:
            url: The URL to fetch.
            timeout: Timeout in seconds for the whole request.
            max_bytes: Optional cap on the body size; excess content is dropped.

        Returns:
            RawContent: The outcome of the request.
        """
        logger.debug(f"Fetching raw content: {url}")
        try:
            async with self._session.get(
                url,
                timeout=aiohttp.ClientTimeout(total=timeout),
                headers={"User-Agent": USER_AGENT, "Accept": ACCEPT},
            ) as response:
                if max_bytes is None:
                    body = await response.read()
                    truncated = False
                else:
                    # One extra byte tells whether the cap was exceeded.
                    body = await response.content.read(max_bytes + 1)
                    truncated = len(body) > max_bytes
                    body = body[:max_bytes]

                return RawContent(
                    ok=200 <= response.status < 300,
                    status=response.status,
                    body=_decode(body, response.charset),
                    truncated=truncated,
                )

        except asyncio.TimeoutError:
            logger.warning(f"Timed out after {timeout}s fetching {url}")
            return RawContent(
                ok=False, status=TIMEOUT_STATUS, error=f"Request timed out after {timeout}s"
            )
        except aiohttp.ClientError as e:
            logger.warning(f"Error fetching {url}: {e}")
            return RawContent(ok=False, status=0, error=str(e) or type(e).__name__)
