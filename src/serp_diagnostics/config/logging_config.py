"""
Logging configuration module for the search diagnostics system.

Logging is configured from a JSON dictConfig file: one of the built-in 'dev' or
'prod' files shipped next to this module, or a custom file. Every record is
tagged with the worker id so that log lines of concurrent instances can be told
apart.
"""

import json
import logging.config
import os
from typing import Any, Dict

from serp_diagnostics.config.diagnostics_context import DiagnosticsContext

BUILT_IN_CONFIGS: Dict[str, str] = {
    "dev": "logging-config-dev.json",
    "prod": "logging-config-prod.json",
}


def configure_logging(context: DiagnosticsContext) -> None:
    """
    Configure logging for the application based on the provided configuration.

    Args:
        context: Configuration context containing logging settings.

    Raises:
        ValueError: If the logging type is invalid, or if no file is given for
            the 'custom' type.
        RuntimeError: If the configuration file cannot be loaded.
    """
    logging_type: str = context.logging_type.lower()
    if not logging_type:
        raise ValueError("Logging type must be provided.")

    if logging_type in BUILT_IN_CONFIGS:
        config_file = _get_local_package_file_path(BUILT_IN_CONFIGS[logging_type])
    elif logging_type == "custom":
        if not context.logging_config_file:
            raise ValueError("Custom logging configuration file must be provided.")
        config_file = context.logging_config_file
    else:
        raise ValueError(
            f"Invalid logging type: {context.logging_type}. Allowed values are: dev, prod, custom"
        )

    _load_logging_config(config_file)

    root_logger = logging.getLogger()
    root_logger.addFilter(_WorkerIdFilter(worker_id=context.worker_id))
    for handler in root_logger.handlers:
        # Records from child loggers reach handlers without passing logger filters.
        handler.addFilter(_WorkerIdFilter(worker_id=context.worker_id))

    logging.debug(f"Logging configured from {config_file}.")


def _load_logging_config(config_file: str) -> None:
    """
    Load a dictConfig logging configuration from a JSON file.

    Raises:
        RuntimeError: If the file is missing, is not valid JSON, or is rejected
            by dictConfig.
    """
    try:
        with open(config_file, encoding="utf-8") as f:
            config: Dict[str, Any] = json.load(f)
        logging.config.dictConfig(config)
    except FileNotFoundError as err:
        raise RuntimeError(f"Logging config file not found: {config_file}") from err
    except json.JSONDecodeError as err:
        raise RuntimeError(f"Invalid JSON format in logging config file: {config_file}") from err
    except (ValueError, TypeError, AttributeError, ImportError) as err:
        raise RuntimeError(f"Error loading logging config: {err}") from err


def _get_local_package_file_path(config_file: str) -> str:
    return os.path.join(os.path.dirname(__file__), config_file)


class _WorkerIdFilter(logging.Filter):
    """
    A logging filter that injects the worker ID into every log record.

    Formatters can then reference it as %(worker_id)s.
    """

    def __init__(self, worker_id: str) -> None:
        super().__init__()
        self._worker_id: str = worker_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.worker_id = self._worker_id
        return True
