"""
Tests for the logging_config module in the serp_diagnostics.config package.

This module contains tests for the configure_logging function and the _WorkerIdFilter class,
which are used to configure logging for the application.
"""

import json
import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from serp_diagnostics.config.diagnostics_context import DiagnosticsContext
from serp_diagnostics.config.logging_config import (
    BUILT_IN_CONFIGS,
    _get_local_package_file_path,
    _load_logging_config,
    _WorkerIdFilter,
    configure_logging,
)


class TestConfigureLogging:
    """Tests for the configure_logging function."""

    def test_configure_logging_should_raise_error_for_empty_logging_type(
        self, mock_context: DiagnosticsContext
    ) -> None:
        # Arrange
        context = mock_context._replace(logging_type="")

        # Act & Assert
        with pytest.raises(ValueError, match="Logging type must be provided."):
            configure_logging(context)

    def test_configure_logging_should_raise_error_for_invalid_logging_type(
        self, mock_context: DiagnosticsContext
    ) -> None:
        # Arrange
        context = mock_context._replace(logging_type="invalid")

        # Act & Assert
        with pytest.raises(ValueError, match="Invalid logging type: invalid"):
            configure_logging(context)

    def test_configure_logging_should_raise_error_for_custom_type_without_file(
        self, mock_context: DiagnosticsContext
    ) -> None:
        # Arrange
        context = mock_context._replace(logging_type="custom", logging_config_file="")

        # Act & Assert
        with pytest.raises(ValueError, match="Custom logging configuration file must be provided."):
            configure_logging(context)

    @pytest.mark.parametrize("logging_type", ["dev", "prod", "PROD"])
    @patch("serp_diagnostics.config.logging_config._get_local_package_file_path")
    @patch("serp_diagnostics.config.logging_config._load_logging_config")
    def test_configure_logging_should_load_built_in_config(
        self,
        mock_load_config: MagicMock,
        mock_get_path: MagicMock,
        logging_type: str,
        mock_context: DiagnosticsContext,
    ) -> None:
        """
        Test that the built-in file matching the logging type is loaded, case insensitively.
        """
        # Arrange
        context = mock_context._replace(logging_type=logging_type)
        mock_get_path.return_value = "/path/to/config.json"

        # Act
        with patch("logging.getLogger") as mock_get_logger:
            mock_get_logger.return_value = MagicMock()
            configure_logging(context)

        # Assert
        mock_get_path.assert_called_once_with(BUILT_IN_CONFIGS[logging_type.lower()])
        mock_load_config.assert_called_once_with("/path/to/config.json")

    @patch("serp_diagnostics.config.logging_config._load_logging_config")
    def test_configure_logging_should_load_custom_config_and_add_worker_filter(
        self, mock_load_config: MagicMock, mock_context: DiagnosticsContext
    ) -> None:
        """
        Test that a custom file is loaded and every root handler gets the worker id filter.
        """
        # Arrange
        context = mock_context._replace(
            logging_type="custom", logging_config_file="/etc/serp/logging.json"
        )
        root_logger = MagicMock()
        handler = MagicMock()
        root_logger.handlers = [handler]

        # Act
        with patch("logging.getLogger", return_value=root_logger):
            configure_logging(context)

        # Assert
        mock_load_config.assert_called_once_with("/etc/serp/logging.json")
        root_filter = root_logger.addFilter.call_args.args[0]
        handler_filter = handler.addFilter.call_args.args[0]
        assert isinstance(root_filter, _WorkerIdFilter)
        assert isinstance(handler_filter, _WorkerIdFilter)


class TestLoadLoggingConfig:
    """Tests for the _load_logging_config function."""

    def test_load_logging_config_should_apply_valid_file(self, tmp_path: Path) -> None:
        # Arrange
        config = {"version": 1, "root": {"level": "INFO"}}
        config_file = tmp_path / "logging.json"
        config_file.write_text(json.dumps(config), encoding="utf-8")

        # Act
        with patch("logging.config.dictConfig") as mock_dict_config:
            _load_logging_config(str(config_file))

        # Assert
        mock_dict_config.assert_called_once_with(config)

    def test_load_logging_config_should_raise_for_missing_file(self, tmp_path: Path) -> None:
        # Act & Assert
        with pytest.raises(RuntimeError, match="Logging config file not found"):
            _load_logging_config(str(tmp_path / "missing.json"))

    def test_load_logging_config_should_raise_for_invalid_json(self, tmp_path: Path) -> None:
        # Arrange
        config_file = tmp_path / "logging.json"
        config_file.write_text("{not json", encoding="utf-8")

        # Act & Assert
        with pytest.raises(RuntimeError, match="Invalid JSON format"):
            _load_logging_config(str(config_file))

    def test_load_logging_config_should_raise_for_rejected_config(self, tmp_path: Path) -> None:
        # Arrange
        config_file = tmp_path / "logging.json"
        config_file.write_text(json.dumps({"version": 99}), encoding="utf-8")

        # Act & Assert
        with pytest.raises(RuntimeError, match="Error loading logging config"):
            _load_logging_config(str(config_file))

    @pytest.mark.parametrize("file_name", sorted(BUILT_IN_CONFIGS.values()))
    def test_built_in_configs_should_reference_worker_id(self, file_name: str) -> None:
        """
        Test that the shipped configurations exist and tag records with the worker id.
        """
        # Act
        with open(_get_local_package_file_path(file_name), encoding="utf-8") as f:
            config = json.load(f)

        # Assert
        assert config["version"] == 1
        assert any("%(worker_id)s" in f["format"] for f in config["formatters"].values())
        assert "serp_diagnostics" in config["loggers"]


def test_worker_id_filter_should_tag_records() -> None:
    # Arrange
    record = logging.LogRecord("serp_diagnostics", logging.INFO, __file__, 1, "msg", None, None)

    # Act
    kept = _WorkerIdFilter(worker_id="worker-123").filter(record)

    # Assert
    assert kept is True
    assert record.worker_id == "worker-123"
