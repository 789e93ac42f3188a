"""
SerpApi client implementation using the aiohttp library.

This module provides the SearchApiClient used by the scan orchestrator. It
measures latency, maps timeouts to a 408 result and keeps informational errors
that SerpApi embeds in successful responses (empty results, missing transcript).
"""

import asyncio
import logging
import time
from typing import Any, Dict, Mapping, Optional

import aiohttp

from serp_diagnostics.contracts import SearchApiClient
from serp_diagnostics.domain import ApiCallResult

# Module logger
logger = logging.getLogger(__name__)

SERPAPI_BASE_URL = "https://serpapi.com/search.json"


def build_query(params: Mapping[str, Any], api_key: str) -> Dict[str, str]:
    """
    Builds the query string parameters of a search request.

    None values are dropped and an api_key present in params never overrides
    the credential.
    """
    query: Dict[str, str] = {"api_key": api_key}
    for key, value in params.items():
        if key == "api_key" or value is None:
            continue
        query[key] = str(value).lower() if isinstance(value, bool) else str(value)
    return query


def get_item_count(response: Mapping[str, Any]) -> Optional[int]:
    """
    Returns the number of primary items in a response, if it has any.

    Checks organic, news, shopping and transcript results, in that order.
    """
    for key in ("organic_results", "news_results", "shopping_results", "transcript"):
        items = response.get(key)
        if isinstance(items, list) and items:
            return len(items)
    return None


class SerpApiClient(SearchApiClient):
    """
    A concrete implementation of SearchApiClient for the SerpApi search endpoint.
    """

    def __init__(self, session: aiohttp.ClientSession, base_url: str = SERPAPI_BASE_URL) -> None:
        self._session: aiohttp.ClientSession = session
        self._base_url: str = base_url

    async def call(self, params: Mapping[str, Any], api_key: str, timeout: float) -> ApiCallResult:
        """
        Performs one search request.

        Args:
            params: Request parameters, including the engine.
            api_key: The SerpApi credential.
            timeout: Timeout in seconds for the whole request.

        Returns:
            ApiCallResult: The outcome of the call. Never raises for HTTP or
                network failures.
        """
        start_time: float = time.perf_counter()

        def elapsed_ms() -> int:
            return round((time.perf_counter() - start_time) * 1000)

        try:
            async with self._session.get(
                self._base_url,
                params=build_query(params, api_key),
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                if not 200 <= response.status < 300:
                    error_text = await response.text()
                    return ApiCallResult(
                        success=False,
                        status_code=response.status,
                        latency_ms=elapsed_ms(),
                        error=f"HTTP {response.status}: {error_text}",
                    )

                data = await response.json(content_type=None)
                if not isinstance(data, dict):
                    return ApiCallResult(
                        success=False,
                        status_code=response.status,
                        latency_ms=elapsed_ms(),
                        error=f"Unexpected response body: {type(data).__name__}",
                    )

                embedded_error = data.get("error")
                if embedded_error:
                    logger.info(f"SerpApi returned an informational error: {embedded_error}")

                return ApiCallResult(
                    success=True,
                    status_code=response.status,
                    latency_ms=elapsed_ms(),
                    response=data,
                    error=embedded_error,
                )

        except asyncio.TimeoutError:
            return ApiCallResult(
                success=False,
                status_code=408,
                latency_ms=elapsed_ms(),
                error=f"Request timeout after {round(timeout * 1000)}ms",
            )
        except (aiohttp.ClientError, ValueError) as e:
            logger.exception("SerpApi request failed")
            return ApiCallResult(
                success=False,
                status_code=0,
                latency_ms=elapsed_ms(),
                error=str(e) or type(e).__name__,
            )
