"""
Main entry point for the search diagnostics application.

This module sets up logging, creates the database and HTTP connections, wires
the diagnostic components together and either runs recurring passes until the
application is terminated or performs a single on-demand scan.
"""

import asyncio
import logging
import sys
from typing import List

import aiohttp
import asyncpg

from serp_diagnostics.analysis.deep_analysis import DeepAnalyzer
from serp_diagnostics.analysis.status import status_reason
from serp_diagnostics.analysis.upstream import UpstreamAnalyzer
from serp_diagnostics.config import SCAN_ALL, DiagnosticsContext, get_context
from serp_diagnostics.config.db_config import initiate_db_pool
from serp_diagnostics.config.http_config import get_http_session
from serp_diagnostics.config.logging_config import configure_logging
from serp_diagnostics.domain import ScanOutcome
from serp_diagnostics.fetcher.aiohttp_fetcher import AiohttpRawFetcher
from serp_diagnostics.fetcher.serpapi_client import SerpApiClient
from serp_diagnostics.orchestrator import ScanOrchestrator
from serp_diagnostics.repository.asyncpg_store import PostgresHistoryStore
from serp_diagnostics.repository.target_provider import StaticTargetProvider
from serp_diagnostics.scheduler.interval_scheduler import IntervalScheduler
from serp_diagnostics.worker import DiagnosticsWorker

logger: logging.Logger = logging.getLogger(__name__)


def build_orchestrator(
    context: DiagnosticsContext,
    http_session: aiohttp.ClientSession,
    store: PostgresHistoryStore,
    target_provider: StaticTargetProvider,
) -> ScanOrchestrator:
    """
    Wires the diagnostic components around the shared resources.

    Raises:
        ValueError: If the API key is missing.
    """
    fetcher = AiohttpRawFetcher(session=http_session)
    return ScanOrchestrator(
        api_client=SerpApiClient(session=http_session),
        deep_analyzer=DeepAnalyzer(
            fetcher,
            timeout=context.deep_analysis_timeout,
            fetch_timeout=context.html_fetch_timeout,
            max_html_bytes=context.max_html_bytes,
        ),
        upstream_analyzer=UpstreamAnalyzer(fetcher, timeout=context.upstream_timeout),
        store=store,
        target_provider=target_provider,
        api_key=context.api_key,
        api_timeout=context.api_timeout,
        scan_timeout=context.scan_timeout,
        max_concurrency=context.max_concurrency,
        history_depth=context.history_depth,
    )


def log_outcomes(outcomes: List[ScanOutcome]) -> None:
    for outcome in outcomes:
        logger.info(
            f"{outcome.engine_id}: {outcome.status.value} - "
            f"{outcome.error or status_reason(outcome.status, outcome.summary)}"
        )


async def main(context: DiagnosticsContext) -> None:
    """
    Set up and run the search diagnostics application.

    Args:
        context: Configuration context containing all application settings.

    Raises:
        ValueError: If the API key is missing.
        Exception: If the database cannot be reached.
    """
    logger.info("Starting application...")

    if not context.api_key:
        raise ValueError("SERPAPI_API_KEY not configured")

    db_pool: asyncpg.pool.Pool = await initiate_db_pool(context)
    logger.info("initialized: db_pool")

    http_session: aiohttp.ClientSession = get_http_session(context)
    logger.info("configured: http_session")

    worker = None
    try:
        target_provider = StaticTargetProvider()
        store = PostgresHistoryStore(db_pool)
        await store.ensure_schema(await target_provider.list_targets())

        orchestrator = build_orchestrator(context, http_session, store, target_provider)

        if context.scan_request is not None:
            engine_id = None if context.scan_request == SCAN_ALL else context.scan_request
            outcomes = await orchestrator.trigger_scan(engine_id)
            if not outcomes:
                logger.warning(f"No engine matched: {context.scan_request}")
            log_outcomes(outcomes)
            return

        if not context.monitoring_enabled:
            logger.info("Monitoring disabled, nothing to do.")
            return

        worker = DiagnosticsWorker(
            worker_id=context.worker_id,
            scheduler=IntervalScheduler(target_provider, interval_hours=context.interval_hours),
            orchestrator=orchestrator,
        )
        logger.info(f"Worker initialized. Running passes every {context.interval_hours}h...")
        await worker.start()

    except asyncio.CancelledError:
        logger.info("Application shutdown requested.")
    finally:
        logger.info("Shutting down resources...")
        if worker:
            await worker.stop()
        await http_session.close()
        await db_pool.close()
        logger.info("Shutdown complete.")


if __name__ == "__main__":
    try:
        serp_diagnostics_context: DiagnosticsContext = get_context()

        configure_logging(serp_diagnostics_context)

        asyncio.run(main(serp_diagnostics_context))
    except KeyboardInterrupt:
        logging.info("Shutdown initiated by user (Ctrl+C).")
    except ValueError as e:
        logging.critical(f"Fatal configuration error: {e}")
        sys.exit(1)
