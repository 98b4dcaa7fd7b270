"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = "donation-gateway"


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_gateway_outcome(
    operation: str,
    outcome: str,
    http_status: Optional[int],
    duration_ms: float,
    reference_number: Optional[str] = None,
) -> None:
    """One summary record per gateway call"""
    logging.info(
        "Gateway call completed",
        extra={
            "step": "gateway_call",
            "operation": operation,
            "outcome": outcome,
            "http_status": http_status,
            "reference_number": reference_number,
            "duration_ms": duration_ms,
        },
    )


def log_notification_dispatch(
    reference_number: str,
    result: str,
    sent: int,
    errors: list[str],
) -> None:
    """One summary record per notification dispatch"""
    level = logging.WARNING if errors else logging.INFO
    logging.log(
        level,
        "Notification dispatch completed",
        extra={
            "step": "notification_dispatch",
            "reference_number": reference_number,
            "result": result,
            "messages_sent": sent,
            "errors": errors,
        },
    )
