"""
Configuration context for the search diagnostics system.

This module defines a data structure that holds all configuration parameters
for the diagnostics system. It serves as a central point for passing configuration
throughout the application.
"""

from typing import NamedTuple, Optional


class DiagnosticsContext(NamedTuple):
    """
    A data structure containing all configuration parameters for the diagnostics system.

    This class is immutable and is created by parsing command-line arguments
    and environment variables.

    Attributes:
        dsn: Database connection string for PostgreSQL.
        worker_id: Unique identifier for this worker instance.
        logging_type: Type of logging configuration to use (dev, prod, or custom).
        logging_config_file: Path to custom logging configuration file (if logging_type is 'custom').
        db_pool_size: Maximum number of connections in the database connection pool.
        api_key: The SerpApi credential, None if not configured.
        monitoring_enabled: Whether recurring passes are run.
        interval_hours: Time between two recurring passes, in hours.
        max_concurrency: Maximum number of engines scanned at once in a recurring pass.
        api_timeout: Timeout in seconds for a search API call.
        scan_timeout: Time limit in seconds for one engine in an on-demand scan.
        deep_analysis_timeout: Time budget in seconds for the HTML versus JSON comparison.
        html_fetch_timeout: Timeout in seconds for downloading the raw HTML.
        upstream_timeout: Timeout in seconds for the upstream analysis fetch.
        max_html_bytes: Size cap applied to raw HTML before parsing.
        history_depth: Number of prior runs considered by anomaly detection.
        scan_request: Engine to scan once on demand, "all" for every enabled engine,
            or None to run recurring passes.
    """

    dsn: str
    worker_id: str
    logging_type: str
    logging_config_file: str
    db_pool_size: int
    api_key: Optional[str]
    monitoring_enabled: bool
    interval_hours: int
    max_concurrency: int
    api_timeout: float
    scan_timeout: float
    deep_analysis_timeout: float
    html_fetch_timeout: float
    upstream_timeout: float
    max_html_bytes: int
    history_depth: int
    scan_request: Optional[str] = None
