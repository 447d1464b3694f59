"""
Structured Logging Configuration

Provides JSON-formatted logging with:
- Request ID tracking
- Account context
- Entity (draft/booking/link) context
- Structured output for log aggregation
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Optional, Any, Dict
from contextvars import ContextVar

# Context variables for request tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')
account_id_var: ContextVar[str] = ContextVar('account_id', default='')


class JSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging.
    Outputs logs in JSON format for easy parsing by log aggregators.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        account_id = account_id_var.get()
        if account_id:
            log_data["account_id"] = account_id

        log_data["module"] = record.module
        log_data["function"] = record.funcName
        log_data["line"] = record.lineno

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_data'):
            log_data["data"] = record.extra_data

        if hasattr(record, 'entity_type'):
            log_data["entity_type"] = record.entity_type
        if hasattr(record, 'entity_id'):
            log_data["entity_id"] = record.entity_id

        return json.dumps(log_data, ensure_ascii=False, default=str)


class StructuredLogger(logging.LoggerAdapter):
    """
    Logger adapter that adds structured context to log messages.
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.get('extra', {})
        extra.update(self.extra)
        kwargs['extra'] = extra
        return msg, kwargs

    def log_with_context(
        self,
        level: int,
        msg: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        **extra_data
    ):
        """Log with additional structured context."""
        extra = {}
        if entity_type:
            extra['entity_type'] = entity_type
        if entity_id:
            extra['entity_id'] = entity_id
        if extra_data:
            extra['extra_data'] = extra_data

        self.log(level, msg, extra=extra)

    def draft_created(self, draft_id: str, offer_id: str, passengers: int, total: str):
        self.log_with_context(
            logging.INFO,
            f"Draft created for offer {offer_id}",
            entity_type="draft",
            entity_id=draft_id,
            offer_id=offer_id,
            passengers=passengers,
            total=total
        )

    def draft_transition(self, draft_id: str, old_status: str, new_status: str, **extra_data):
        self.log_with_context(
            logging.INFO,
            f"Draft status changed: {old_status} -> {new_status}",
            entity_type="draft",
            entity_id=draft_id,
            old_status=old_status,
            new_status=new_status,
            **extra_data
        )

    def booking_created(self, booking_id: str, draft_id: str, total: str):
        self.log_with_context(
            logging.INFO,
            f"Booking created from draft {draft_id}",
            entity_type="booking",
            entity_id=booking_id,
            draft_id=draft_id,
            total=total
        )

    def booking_status_changed(self, booking_id: str, old_status: str, new_status: str):
        self.log_with_context(
            logging.INFO,
            f"Booking status changed: {old_status} -> {new_status}",
            entity_type="booking",
            entity_id=booking_id,
            old_status=old_status,
            new_status=new_status
        )

    def confirmation_sent(self, booking_id: str, provider: str, message_id: Optional[str]):
        self.log_with_context(
            logging.INFO,
            f"Confirmation sent via {provider}",
            entity_type="booking",
            entity_id=booking_id,
            provider=provider,
            message_id=message_id
        )

    def confirmation_skipped(self, booking_id: str, sent_at: datetime):
        self.log_with_context(
            logging.INFO,
            "Confirmation already sent - skipping",
            entity_type="booking",
            entity_id=booking_id,
            sent_at=sent_at.isoformat()
        )

    def link_issued(self, booking_id: str, token_prefix: str, expires_at: datetime):
        self.log_with_context(
            logging.INFO,
            "Guest booking link issued",
            entity_type="booking",
            entity_id=booking_id,
            token=token_prefix,
            expires_at=expires_at.isoformat()
        )

    def link_rejected(self, token_prefix: str, reason: str):
        self.log_with_context(
            logging.WARNING,
            f"Guest booking link rejected: {reason}",
            entity_type="booking_link",
            token=token_prefix,
            reason=reason
        )


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    include_uvicorn: bool = True
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON format (True for production)
        include_uvicorn: Also configure uvicorn loggers
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    logging.getLogger("tripbook").setLevel(log_level)

    if include_uvicorn:
        for logger_name in ["uvicorn", "uvicorn.access", "uvicorn.error"]:
            uvicorn_logger = logging.getLogger(logger_name)
            uvicorn_logger.handlers = [handler]

    # Reduce noise from third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for the given module."""
    base_logger = logging.getLogger(name)
    return StructuredLogger(base_logger, {})


def set_request_context(request_id: str, account_id: Optional[str] = None):
    """Set context for the current request."""
    request_id_var.set(request_id)
    if account_id:
        account_id_var.set(account_id)


def clear_request_context():
    """Clear request context."""
    request_id_var.set('')
    account_id_var.set('')
