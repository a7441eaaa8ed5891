"""CLI entry point for the npm-serve package server.

Sets up logging, assembles the server configuration from an optional YAML
file and the command line, prints the startup banner and runs the server.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, Dict, Optional

import yaml

from common.logging_utils import configure_logging
from constants import Constants, ExitCodes

logger = logging.getLogger(__name__)


def _load_serve_config(config_path: Optional[str]) -> Dict[str, Any]:
    """Load server settings from a YAML file.

    Args:
        config_path: Path to the YAML config file.

    Returns:
        Settings from the ``serve`` section (or the whole document).
    """
    if not config_path:
        return {}

    if not os.path.isfile(config_path):
        logger.error("Config file not found: %s", config_path)
        sys.exit(ExitCodes.CONFIG_ERROR.value)

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error("Failed to load config: %s", e)
        sys.exit(ExitCodes.CONFIG_ERROR.value)

    if not isinstance(data, dict):
        logger.error("Config file %s must contain a mapping", config_path)
        sys.exit(ExitCodes.CONFIG_ERROR.value)
    section = data.get("serve", data)
    return section if isinstance(section, dict) else {}


def _setup_logging(args: Any) -> None:
    """Configure logging based on CLI arguments.

    Args:
        args: Parsed CLI arguments.
    """
    configure_logging(getattr(args, "LOG_LEVEL", None))

    # Add file handler if --logfile specified
    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(Constants.LOG_FILE_FORMAT))
        logging.getLogger().addHandler(file_handler)
        logger.info("Logging to file: %s", log_file)


def _banner(config: Any, level: str) -> str:
    return (
        f"\n"
        f"  npm-serve {Constants.VERSION}\n"
        f"  =============\n"
        f"  Listening:            http://{config.host}:{config.port}\n"
        f"  Log level:            {level}\n"
        f"  Prefix for packages:  {config.prefix}\n"
        f"  Storage:              {config.storage}\n"
        f"  Fetching packages:    {config.registry}\n"
        f"  Static files:         {config.document_root or '(disabled)'}\n"
        f"  Cache max-age:        {config.max_age}\n"
        f"  npm update interval:  {config.update_interval}\n"
        f"  CORS headers enabled: {config.cors}\n"
        f"\n"
        f"  Press Ctrl+C to stop\n"
    )


def run_server(args: Any) -> None:
    """Entry point for serving packages.

    Args:
        args: Parsed CLI arguments namespace.
    """
    _setup_logging(args)

    # Lazy import to keep --help free of aiohttp
    from proxy.server import ServeConfig, run_server_sync  # pylint: disable=import-outside-toplevel

    config_path = getattr(args, "CONFIG", None)
    overrides = _load_serve_config(config_path)
    if overrides:
        logger.info("Loaded settings from: %s", config_path)

    config = ServeConfig.from_args(args, overrides)

    if config.document_root and not os.path.isdir(config.document_root):
        logger.error("Document root is not a directory: %s", config.document_root)
        sys.exit(ExitCodes.FILE_ERROR.value)

    if not getattr(args, "QUIET", False):
        print(_banner(config, logging.getLevelName(logging.getLogger().getEffectiveLevel())))

    run_server_sync(config)
