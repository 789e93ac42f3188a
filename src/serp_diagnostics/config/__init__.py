"""
Configuration module for the search diagnostics system.

This module provides functionality to parse command-line arguments and environment
variables to create a configuration context for the diagnostics system. It defines
default values and help text for all configurable parameters.
"""

import argparse
import os
from typing import Any, Optional
from uuid import uuid4

from serp_diagnostics.config.constants import (
    DEFAULT_API_TIMEOUT,
    DEFAULT_DB_POOL_SIZE,
    DEFAULT_DEEP_ANALYSIS_TIMEOUT,
    DEFAULT_DSN,
    DEFAULT_HISTORY_DEPTH,
    DEFAULT_HTML_FETCH_TIMEOUT,
    DEFAULT_INTERVAL_HOURS,
    DEFAULT_LOGGING_CONFIG_FILE,
    DEFAULT_LOGGING_TYPE,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_HTML_BYTES,
    DEFAULT_MONITORING_ENABLED,
    DEFAULT_SCAN_TIMEOUT,
    DEFAULT_UPSTREAM_TIMEOUT,
    DEFAULT_WORKER_ID_PREFIX,
)
from serp_diagnostics.config.diagnostics_context import DiagnosticsContext

ENV_PREFIX = "SERP_DIAGNOSTICS_"
SCAN_ALL = "all"


def _env(name: str, default: Any) -> Any:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def get_context() -> DiagnosticsContext:
    """
    Parse command-line arguments and environment variables to create a configuration context.

    For each option, a command-line argument takes precedence, then the
    SERP_DIAGNOSTICS_* environment variable, and finally the default value.
    The API key is read from SERPAPI_API_KEY.

    Returns:
        DiagnosticsContext: A configuration context object containing all parsed settings.
    """
    parser = argparse.ArgumentParser(
        description="Periodic diagnostics of SerpApi engines: parsing gaps and upstream blocking."
    )

    parser.add_argument(
        "-dsn",
        type=str,
        default=_env("DSN", DEFAULT_DSN),
        help="Specifies the DSN (connection string) for the PostgreSQL database.\n"
        "If not provided, the value is read from the SERP_DIAGNOSTICS_DSN environment variable.\n"
        "If that is also absent, a default value for a local database is used.",
    )

    parser.add_argument(
        "-wid",
        "--worker-id",
        type=str,
        default=_env("WORKER_ID", f"{DEFAULT_WORKER_ID_PREFIX}{uuid4()}"),
        help="Specifies the worker ID attached to every log record.\n"
        "If not provided, the value is read from the SERP_DIAGNOSTICS_WORKER_ID environment variable.\n"
        f"If that is also absent, the default value will be {DEFAULT_WORKER_ID_PREFIX}uuid4().",
    )

    parser.add_argument(
        "-ps",
        "--db-pool-size",
        type=int,
        default=int(_env("DB_POOL_SIZE", DEFAULT_DB_POOL_SIZE)),
        help="Specifies the maximum number of connections in the database connection pool.\n"
        f"Environment variable: SERP_DIAGNOSTICS_DB_POOL_SIZE. Default: {DEFAULT_DB_POOL_SIZE}.",
    )

    parser.add_argument(
        "-lt",
        "--logging-type",
        type=str,
        default=_env("LOGGING_TYPE", DEFAULT_LOGGING_TYPE),
        help="Specifies the logging configuration type to use.\n"
        "Allowed values: dev, prod, custom (case insensitive).\n"
        "For 'dev' and 'prod', system will use built-in configurations.\n"
        "For 'custom', the --logging-config-file argument is required.",
    )

    parser.add_argument(
        "-lcf",
        "--logging-config-file",
        type=str,
        default=_env("LOGGING_CONFIG_FILE", DEFAULT_LOGGING_CONFIG_FILE),
        help="Path to custom logging configuration file.\n"
        "Required when --logging-type is set to 'custom'.",
    )

    parser.add_argument(
        "-k",
        "--api-key",
        type=str,
        default=os.getenv("SERPAPI_API_KEY"),
        help="Specifies the SerpApi credential.\n"
        "If not provided, the value is read from the SERPAPI_API_KEY environment variable.\n"
        "The application refuses to start without it.",
    )

    parser.add_argument(
        "-me",
        "--monitoring-enabled",
        type=str,
        default=_env("MONITORING_ENABLED", DEFAULT_MONITORING_ENABLED),
        help="Specifies whether recurring diagnostic passes are run (true/false).\n"
        f"Environment variable: SERP_DIAGNOSTICS_MONITORING_ENABLED. Default: {DEFAULT_MONITORING_ENABLED}.",
    )

    parser.add_argument(
        "-ih",
        "--interval-hours",
        type=int,
        default=int(_env("INTERVAL_HOURS", DEFAULT_INTERVAL_HOURS)),
        help="Specifies the time between two recurring passes, in hours.\n"
        f"Environment variable: SERP_DIAGNOSTICS_INTERVAL_HOURS. Default: {DEFAULT_INTERVAL_HOURS}.",
    )

    parser.add_argument(
        "-mc",
        "--max-concurrency",
        type=int,
        default=int(_env("MAX_CONCURRENCY", DEFAULT_MAX_CONCURRENCY)),
        help="Specifies the maximum number of engines scanned at once in a recurring pass.\n"
        f"Environment variable: SERP_DIAGNOSTICS_MAX_CONCURRENCY. Default: {DEFAULT_MAX_CONCURRENCY}.",
    )

    parser.add_argument(
        "--api-timeout",
        type=float,
        default=float(_env("API_TIMEOUT", DEFAULT_API_TIMEOUT)),
        help="Timeout in seconds for a search API call.\n"
        f"Environment variable: SERP_DIAGNOSTICS_API_TIMEOUT. Default: {DEFAULT_API_TIMEOUT}.",
    )

    parser.add_argument(
        "--scan-timeout",
        type=float,
        default=float(_env("SCAN_TIMEOUT", DEFAULT_SCAN_TIMEOUT)),
        help="Time limit in seconds for one engine in an on-demand scan.\n"
        f"Environment variable: SERP_DIAGNOSTICS_SCAN_TIMEOUT. Default: {DEFAULT_SCAN_TIMEOUT}.",
    )

    parser.add_argument(
        "--deep-analysis-timeout",
        type=float,
        default=float(_env("DEEP_ANALYSIS_TIMEOUT", DEFAULT_DEEP_ANALYSIS_TIMEOUT)),
        help="Time budget in seconds for the HTML versus JSON comparison.\n"
        "Environment variable: SERP_DIAGNOSTICS_DEEP_ANALYSIS_TIMEOUT. "
        f"Default: {DEFAULT_DEEP_ANALYSIS_TIMEOUT}.",
    )

    parser.add_argument(
        "--html-fetch-timeout",
        type=float,
        default=float(_env("HTML_FETCH_TIMEOUT", DEFAULT_HTML_FETCH_TIMEOUT)),
        help="Timeout in seconds for downloading the raw HTML.\n"
        "Environment variable: SERP_DIAGNOSTICS_HTML_FETCH_TIMEOUT. "
        f"Default: {DEFAULT_HTML_FETCH_TIMEOUT}.",
    )

    parser.add_argument(
        "--upstream-timeout",
        type=float,
        default=float(_env("UPSTREAM_TIMEOUT", DEFAULT_UPSTREAM_TIMEOUT)),
        help="Timeout in seconds for the upstream analysis fetch.\n"
        f"Environment variable: SERP_DIAGNOSTICS_UPSTREAM_TIMEOUT. Default: {DEFAULT_UPSTREAM_TIMEOUT}.",
    )

    parser.add_argument(
        "--max-html-bytes",
        type=int,
        default=int(_env("MAX_HTML_BYTES", DEFAULT_MAX_HTML_BYTES)),
        help="Size cap in bytes applied to raw HTML before parsing.\n"
        f"Environment variable: SERP_DIAGNOSTICS_MAX_HTML_BYTES. Default: {DEFAULT_MAX_HTML_BYTES}.",
    )

    parser.add_argument(
        "--history-depth",
        type=int,
        default=int(_env("HISTORY_DEPTH", DEFAULT_HISTORY_DEPTH)),
        help="Number of prior runs considered by anomaly detection.\n"
        f"Environment variable: SERP_DIAGNOSTICS_HISTORY_DEPTH. Default: {DEFAULT_HISTORY_DEPTH}.",
    )

    parser.add_argument(
        "--scan",
        dest="scan_request",
        nargs="?",
        const=SCAN_ALL,
        default=None,
        help="Runs one on-demand scan and exits instead of running recurring passes.\n"
        "Give an engine id to scan that engine, even if disabled, or no value to scan "
        "every enabled engine.",
    )

    # Parse the command-line arguments
    args: Any = parser.parse_args()

    api_key: Optional[str] = args.api_key.strip() if args.api_key else None

    return DiagnosticsContext(
        dsn=args.dsn,
        worker_id=args.worker_id,
        logging_type=args.logging_type,
        logging_config_file=args.logging_config_file,
        db_pool_size=args.db_pool_size,
        api_key=api_key or None,
        monitoring_enabled=args.monitoring_enabled.lower() == "true",
        interval_hours=args.interval_hours,
        max_concurrency=args.max_concurrency,
        api_timeout=args.api_timeout,
        scan_timeout=args.scan_timeout,
        deep_analysis_timeout=args.deep_analysis_timeout,
        html_fetch_timeout=args.html_fetch_timeout,
        upstream_timeout=args.upstream_timeout,
        max_html_bytes=args.max_html_bytes,
        history_depth=args.history_depth,
        scan_request=args.scan_request,
    )
