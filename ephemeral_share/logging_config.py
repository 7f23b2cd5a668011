"""
Application logging configuration.

Every module obtains the same named logger through ``setup_logging()`` so
that output from the gateway, the storage layer and the expiry sweep shares
one handler and one format.
"""
import logging
import sys

LOGGER_NAME = "ephemeral_share"


def setup_logging() -> logging.Logger:
    """
    Configure and return the application logger.

    The logger writes to stdout with timestamp, logger name, level and
    message, which works for both uvicorn in development and containerized
    deployments that collect stdout.

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.INFO)

    # Prevent duplicate handlers if called multiple times
    if not logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)

        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger
