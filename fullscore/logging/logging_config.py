"""Centralized logging configuration for fullscore.

@public

Loggers are created through Prefect's logging factory so that controllers
running inside Prefect flows report into the flow run log. Configuration
comes from a YAML file when one is given, otherwise from built-in defaults.

Usage:
    >>> from fullscore.logging import get_score_logger
    >>> logger = get_score_logger(__name__)
    >>> logger.info("Epoch minted")

Environment variables:
    FULLSCORE_LOGGING_CONFIG: Path to custom logging.yml
    FULLSCORE_LOG_LEVEL: Default level of the ``fullscore`` logger tree
    PREFECT_LOGGING_SETTINGS_PATH: Fallback config path shared with Prefect
"""

import logging.config
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from prefect.logging import get_logger

DEFAULT_LOG_LEVELS = {
    "fullscore": "INFO",
    "fullscore.beat": "INFO",
    "fullscore.rhythm": "INFO",
    "fullscore.slot_store": "INFO",
    "fullscore.transport": "INFO",
}


class LoggingConfig:
    """Loads and applies the logging configuration.

    @public

    Configuration precedence:
        1. Explicit config_path parameter
        2. FULLSCORE_LOGGING_CONFIG environment variable
        3. PREFECT_LOGGING_SETTINGS_PATH environment variable
        4. Default configuration

    Example:
        >>> config = LoggingConfig()
        >>> config.apply()
    """

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or self._get_default_config_path()
        self._config: Optional[Dict[str, Any]] = None

    @staticmethod
    def _get_default_config_path() -> Optional[Path]:
        """Config path from the environment, or None for the defaults."""
        if env_path := os.environ.get("FULLSCORE_LOGGING_CONFIG"):
            return Path(env_path)

        if prefect_path := os.environ.get("PREFECT_LOGGING_SETTINGS_PATH"):
            return Path(prefect_path)

        return None

    def load_config(self) -> Dict[str, Any]:
        """Load the dictConfig mapping from file or defaults.

        The result is cached; create a new LoggingConfig to reload from disk.
        """
        if self._config is None:
            if self.config_path and self.config_path.exists():
                with open(self.config_path, "r") as f:
                    self._config = yaml.safe_load(f)
            else:
                self._config = self._get_default_config()
        assert self._config is not None
        return self._config

    @staticmethod
    def _get_default_config() -> Dict[str, Any]:
        """Console logging, ``fullscore`` at FULLSCORE_LOG_LEVEL, root at WARNING."""
        return {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": "%(asctime)s.%(msecs)03d | %(levelname)-7s | %(name)s - %(message)s",
                    "datefmt": "%H:%M:%S",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "standard",
                    "stream": "ext://sys.stdout",
                },
            },
            "loggers": {
                "fullscore": {
                    "level": os.environ.get("FULLSCORE_LOG_LEVEL", "INFO"),
                    "handlers": ["console"],
                    "propagate": False,
                },
            },
            "root": {
                "level": "WARNING",
                "handlers": ["console"],
            },
        }

    def apply(self):
        """Apply the configuration with logging.config.dictConfig.

        A ``prefect`` logger entry in the configuration also seeds
        PREFECT_LOGGING_LEVEL when it is not already set.
        """
        config = self.load_config()
        logging.config.dictConfig(config)

        if "prefect" in config.get("loggers", {}):
            prefect_level = config["loggers"]["prefect"].get("level", "INFO")
            os.environ.setdefault("PREFECT_LOGGING_LEVEL", prefect_level)


_logging_config: Optional[LoggingConfig] = None


def setup_logging(config_path: Optional[Path] = None, level: Optional[str] = None):
    """Configure logging for fullscore.

    @public

    Args:
        config_path: Optional YAML logging configuration file.
        level: Optional level override applied to every fullscore logger.

    Example:
        >>> setup_logging(level="DEBUG")
    """
    global _logging_config

    _logging_config = LoggingConfig(config_path)
    _logging_config.apply()

    if level:
        for logger_name in DEFAULT_LOG_LEVELS:
            logger = get_logger(logger_name)
            logger.setLevel(level)


def get_score_logger(name: str):
    """Get a logger for a fullscore component.

    @public

    Initializes logging on first use.

    Args:
        name: Logger name, typically ``__name__``.
    """
    if _logging_config is None:
        setup_logging()

    return get_logger(name)
