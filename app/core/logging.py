"""Logging for the payment service.

Everything logs under the ``paygate`` namespace through one stdout
handler.  The handler carries a ``RedactSecrets`` filter so the gateway
API key and private key are masked even if a gateway error message
echoes them back.
"""

import logging
import sys
from typing import Iterable

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MASK = "***"


class RedactSecrets(logging.Filter):
    """Replace every occurrence of the configured secrets with ``***``."""

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        super().__init__()
        self.secrets = [s for s in secrets if s]

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True
        message = record.getMessage()
        redacted = message
        for secret in self.secrets:
            redacted = redacted.replace(secret, MASK)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(level: str = "INFO", secrets: Iterable[str] = ()) -> logging.Logger:
    """Configure and return the ``paygate`` logger.

    Args:
        level: The log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        secrets: Values that must never appear in log output.

    Returns:
        The configured application logger.
    """
    logger = logging.getLogger("paygate")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Called again on reload: reuse the handler, refresh its secrets
    if logger.handlers:
        handler = logger.handlers[0]
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)

    for old in [f for f in handler.filters if isinstance(f, RedactSecrets)]:
        handler.removeFilter(old)
    handler.addFilter(RedactSecrets(secrets))

    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """Child logger under ``paygate``, e.g. ``get_logger(__name__)``."""
    return logging.getLogger(f"paygate.{name}")
