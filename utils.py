# utils.py
"""
Utility functions for the particle framework.

This module provides helper functions, such as logging setup, config
loading and vector coercion, that are used across different parts of the
application but do not belong to the simulation or the rendering.
"""
import logging
import logging.handlers
import json
import os
import numpy as np
from typing import Dict, Any, Sequence

# --- Data Contracts ---
#
# setup_logging(config: Dict[str, Any]) -> None:
#   - Inputs:
#     - config: A dictionary that may contain a "logging" key with "level",
#       "format", and "log_file" sub-keys.
#   - Outputs: None
#   - Side Effects: Configures the root Python logger with a console
#     handler and a rotating file handler. Creates the log directory.
#
# load_config(path: str) -> Dict[str, Any]:
#   - Outputs: the parsed JSON document.
#   - Side Effects: Logs and re-raises FileNotFoundError / JSONDecodeError.
#
# as_vector3(value, name: str) -> np.ndarray:
#   - Outputs: a float64 array of shape (3,).
#   - Side Effects: Raises ValueError if `value` does not hold 3 numbers.

DEFAULT_LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
DEFAULT_LOG_FILE = 'logs/simulation.log'


def setup_logging(config: Dict[str, Any]) -> None:
    """
    Configures the logging system from a configuration dictionary.

    Logs go both to the console and to a rotating file.
    """
    log_config = config.get('logging', {})
    log_level = log_config.get('level', 'INFO').upper()
    log_format = log_config.get('format', DEFAULT_LOG_FORMAT)
    log_file_path = log_config.get('log_file', DEFAULT_LOG_FILE)

    log_dir = os.path.dirname(log_file_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    logger = logging.getLogger()
    logger.setLevel(log_level)

    # Re-running setup must not stack handlers
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(log_format)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # 1MB per file, 5 backups
    file_handler = logging.handlers.RotatingFileHandler(
        log_file_path, maxBytes=1024*1024, backupCount=5
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    logging.info("Logging system initialized.")
    logging.debug(f"Log level set to {log_level}, writing to {log_file_path}.")


def load_config(path: str) -> Dict[str, Any]:
    """Loads a JSON configuration file."""
    logging.info(f"Loading configuration from {path}...")
    try:
        with open(path, 'r') as f:
            config = json.load(f)
        logging.info("Configuration loaded successfully.")
        return config
    except FileNotFoundError:
        logging.error(f"Configuration file not found at {path}.")
        raise
    except json.JSONDecodeError:
        logging.error(f"Error decoding JSON from {path}.")
        raise


def as_vector3(value: Sequence[float], name: str) -> np.ndarray:
    """Coerces a config value (list, tuple or array) into a 3-vector."""
    try:
        vector = np.array(value, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Configuration error: '{name}' is not numeric: {value!r}") from e
    if vector.shape != (3,):
        raise ValueError(f"Configuration error: '{name}' must have 3 components, got {value!r}")
    return vector
