import logging
import os
import sys
from typing import List
from typing import Protocol

from loki_logger_handler.loki_logger_handler import LokiLoggerHandler

from coldvault.upload_context import NO_PART
from coldvault.upload_context import part_number_context
from coldvault.upload_context import upload_id_context


UPLOAD_LOG_FORMAT = "%(asctime)s - [%(upload_id)s part=%(part_number)s] - %(name)s - %(levelname)s - %(message)s"
PLAIN_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class LoggingConfig(Protocol):
    log_level: str
    loki_enabled: bool
    loki_url: str
    environment: str


class UploadContextFilter(logging.Filter):
    """Stamps upload_id and part_number on every record that lacks them.

    Values come from the upload contextvars; records logged outside an upload
    get 'no-upload-id' and '-' so the format string never fails.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "upload_id"):
            record.upload_id = upload_id_context.get()
        if not hasattr(record, "part_number"):
            part_number = part_number_context.get()
            record.part_number = NO_PART if part_number is None else part_number
        return True


def _loki_handler(config: LoggingConfig, service_name: str) -> LokiLoggerHandler:
    return LokiLoggerHandler(
        url=config.loki_url,
        labels={
            "service": service_name,
            "environment": config.environment,
            "host": os.getenv("HOSTNAME", "unknown"),
        },
        timeout=10,
        compressed=True,
    )


def setup_loki_logging(config: LoggingConfig, service_name: str, include_upload_context: bool = True) -> logging.Logger:
    """
    Configure stderr logging, plus Loki shipping when enabled.

    Args:
        config: Client configuration
        service_name: Name of the calling tool (e.g., "treehash"), used as the Loki service label
        include_upload_context: Prefix every line with the upload id and part number (default: True)

    Returns:
        Logger named after service_name
    """
    log_level = getattr(logging, config.log_level.upper(), logging.INFO)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.loki_enabled and config.loki_url:
        handlers.append(_loki_handler(config, service_name))

    if include_upload_context:
        context_filter = UploadContextFilter()
        for handler in handlers:
            handler.addFilter(context_filter)

    logging.basicConfig(
        level=log_level,
        format=UPLOAD_LOG_FORMAT if include_upload_context else PLAIN_LOG_FORMAT,
        handlers=handlers,
    )

    logger = logging.getLogger(service_name)
    if config.loki_enabled and not config.loki_url:
        logger.warning("LOKI_ENABLED is set but LOKI_URL is empty; logging to stderr only")
    return logger
