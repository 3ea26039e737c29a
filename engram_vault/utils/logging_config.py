"""
Logging helpers for Engram Vault.

The library itself only creates loggers under the ``engram_vault``
namespace and never installs handlers. Applications can call these
helpers to get sensible output without configuring logging by hand.
"""

import logging
import os
import sys


PACKAGE_LOGGER = "engram_vault"
NOISY_LOGGERS = ("chromadb", "sentence_transformers", "transformers", "httpx", "openai")


def configure_quiet_mode(quiet: bool = True) -> None:
    """
    Silence chatty embedding and database libraries.

    Args:
        quiet: If True, raise third-party loggers to WARNING and turn off
            Hugging Face progress bars. If False, restore their defaults.
    """
    level = logging.WARNING if quiet else logging.NOTSET
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level)

    if quiet:
        os.environ["HF_HUB_DISABLE_PROGRESS_BARS"] = "1"
        os.environ["TOKENIZERS_PARALLELISM"] = "false"
    else:
        os.environ.pop("HF_HUB_DISABLE_PROGRESS_BARS", None)


def enable_debug_logging() -> logging.Logger:
    """Send engram_vault debug output to stderr and return the package logger."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG)

    if not any(isinstance(h, logging.StreamHandler) and h.stream == sys.stderr for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        ))
        logger.addHandler(handler)
    return logger
