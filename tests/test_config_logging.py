"""Tests for config and logging."""

import json
import logging
import os
import sys
from unittest.mock import patch

from circulation.config import DatabaseConfig, LibraryConfig
from circulation.logging import JsonFormatter, get_logger, setup_logging


class TestDatabaseConfig:
    def test_default_values(self) -> None:
        config = DatabaseConfig()

        assert config.url == "sqlite:///./library.db"
        assert config.echo is False
        assert config.is_sqlite

    def test_postgres_url_is_not_sqlite(self) -> None:
        config = DatabaseConfig(url="postgresql://library:secret@db:5432/library")
        assert not config.is_sqlite


class TestLibraryConfig:
    def test_default_values(self) -> None:
        config = LibraryConfig()

        assert config.log_level == "INFO"
        assert config.log_format == "standard"
        assert config.conflict_retries == 3
        assert isinstance(config.database, DatabaseConfig)

    def test_from_env(self) -> None:
        env = {
            "LIBRARY_DATABASE_URL": "postgresql://u:p@db/library",
            "LIBRARY_DB_ECHO": "true",
            "LOG_LEVEL": "DEBUG",
            "LOG_FORMAT": "json",
            "LIBRARY_CONFLICT_RETRIES": "5",
        }
        with patch.dict(os.environ, env, clear=True):
            config = LibraryConfig.from_env()

        assert config.database.url == "postgresql://u:p@db/library"
        assert config.database.echo is True
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"
        assert config.conflict_retries == 5

    def test_from_env_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            config = LibraryConfig.from_env()

        assert config.database.url == "sqlite:///./library.db"
        assert config.database.echo is False
        assert config.conflict_retries == 3


class TestSetupLogging:
    def teardown_method(self) -> None:
        setup_logging("INFO")

    def test_standard_format(self) -> None:
        setup_logging("DEBUG")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, logging.Formatter)
        assert not isinstance(root.handlers[0].formatter, JsonFormatter)
        assert logging.getLogger("circulation").level == logging.DEBUG

    def test_json_format(self) -> None:
        setup_logging("WARNING", format_type="json")

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert isinstance(root.handlers[0].formatter, JsonFormatter)

    def test_unknown_level_falls_back_to_info(self) -> None:
        setup_logging("LOUD")
        assert logging.getLogger().level == logging.INFO


class TestJsonFormatter:
    def _record(self, **kwargs) -> logging.LogRecord:
        return logging.LogRecord(
            name="circulation.coordinator",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="Returned loan %s",
            args=(7,),
            exc_info=kwargs.get("exc_info"),
        )

    def test_basic_fields(self) -> None:
        payload = json.loads(JsonFormatter().format(self._record()))

        assert payload["level"] == "INFO"
        assert payload["logger"] == "circulation.coordinator"
        assert payload["message"] == "Returned loan 7"
        assert "timestamp" in payload

    def test_timestamp_comes_from_record(self) -> None:
        record = self._record()
        record.created = 0.0

        payload = json.loads(JsonFormatter().format(record))

        assert payload["timestamp"] == "1970-01-01T00:00:00+00:00"
        assert set(payload) == {"timestamp", "level", "logger", "message"}

    def test_exception_info(self) -> None:
        try:
            raise ValueError("boom")
        except ValueError:
            record = self._record(exc_info=sys.exc_info())

        payload = json.loads(JsonFormatter().format(record))

        assert "ValueError: boom" in payload["exception"]


def test_get_logger() -> None:
    logger = get_logger("circulation.test")
    assert logger.name == "circulation.test"
