"""
HTTP client configuration module for the search diagnostics system.

One aiohttp session is shared by the SerpApi client and the raw HTML fetcher.
Per-request timeouts are set by the callers, not by the session.
"""

import logging

import aiohttp

from serp_diagnostics.config.diagnostics_context import DiagnosticsContext

# Module logger
logger = logging.getLogger(__name__)

# Each scanned engine performs up to three requests: API, deep analysis, upstream.
REQUESTS_PER_ENGINE = 3


def get_http_session(context: DiagnosticsContext) -> aiohttp.ClientSession:
    """
    Create the shared HTTP client session.

    The connection limit follows the scan concurrency so that a recurring pass
    never waits on the connector.

    Args:
        context: Configuration context containing the concurrency settings.

    Returns:
        aiohttp.ClientSession: The session to share between HTTP collaborators.
    """
    limit = max(context.max_concurrency * REQUESTS_PER_ENGINE, 10)
    logger.debug(f"Creating HTTP session (connection limit: {limit}).")
    return aiohttp.ClientSession(connector=aiohttp.TCPConnector(limit=limit))
