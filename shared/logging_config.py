"""
logging_config.py - Centralized JSON Logging Configuration

PURPOSE:
    Structured JSON logging for the storefront service with timezone-aware
    timestamps and order/customer context injection.

JSON LOG FIELDS:
    - timestamp: ISO 8601 in the configured timezone (default Asia/Kolkata)
    - level: Log level (INFO, ERROR, WARNING, DEBUG, CRITICAL)
    - logger: Module name where the log originated (e.g., "services.storefront.inventory")
    - message: The actual log message
    - service_name: Name of the service (injected automatically)
    - order_id / user_id: Optional, passed through ``extra=``
    - exception: Full stack trace (only when exc_info is set)

USAGE:
    from shared.logging_config import setup_logging
    setup_logging("storefront-service", level="INFO")

    logger = logging.getLogger(__name__)
    logger.info("Order placed", extra={"order_id": order.id, "user_id": user.id})

EXAMPLE JSON OUTPUT:
    {
        "timestamp": "2026-10-18T12:48:51.001014+05:30",
        "level": "INFO",
        "logger": "services.storefront.orders",
        "message": "Order placed",
        "service_name": "storefront-service",
        "order_id": "4f3c...",
        "user_id": "9a63..."
    }
"""

import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict
from zoneinfo import ZoneInfo

CONTEXT_FIELDS = ("service_name", "order_id", "user_id")


class JsonFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per log record."""

    def __init__(self, timezone_name: str = "Asia/Kolkata"):
        super().__init__()
        self.tz = ZoneInfo(timezone_name)

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, self.tz).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ServiceFilter(logging.Filter):
    """Stamp every record with the name of the running service."""

    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = self.service_name
        return True


def setup_logging(service_name: str, level: str = "INFO", timezone_name: str = "Asia/Kolkata") -> None:
    """Setup JSON logging for a service."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter(timezone_name))
    handler.addFilter(ServiceFilter(service_name))

    logger = logging.getLogger()
    logger.setLevel(level)

    # Replace a handler installed by an earlier call instead of stacking them
    for existing in list(logger.handlers):
        if isinstance(existing.formatter, JsonFormatter):
            logger.removeHandler(existing)
    logger.addHandler(handler)
