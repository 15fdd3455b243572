"""
Logging configuration for claimledger.

Structured JSON logging plus an audit logger for ledger events. Audit
records never contain plaintext amounts or risk levels: only claim ids,
principals and ciphertext handle ids.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Optional

# Context variable for request ID tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')


# Extra fields that would carry decrypted values; never written to a record
PLAINTEXT_FIELDS = frozenset({"loss_amount", "risk_level", "payout_value", "plaintext"})

# Identifying fields placed right after the envelope, in this order
LEAD_FIELDS = ("event_type", "claim_id")


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per record.

    The envelope (timestamp, level, logger, ledger, request_id) comes first,
    then event_type and claim_id when the record has them, then the
    remaining audit fields. Source location is only added at DEBUG and for
    records carrying an exception.
    """

    def __init__(self, ledger_address: Optional[str] = None):
        super().__init__()
        self.ledger_address = ledger_address

    def format(self, record: logging.LogRecord) -> str:
        millis = int(record.msecs)
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%S', time.gmtime(record.created)) + f".{millis:03d}Z",
            "level": record.levelname,
            "logger": record.name,
        }
        if self.ledger_address:
            log_data["ledger"] = self.ledger_address

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        fields = {
            k: v for k, v in getattr(record, 'extra_fields', {}).items()
            if k not in PLAINTEXT_FIELDS
        }
        for key in LEAD_FIELDS:
            if key in fields:
                log_data[key] = fields.pop(key)

        log_data["message"] = record.getMessage()
        if not fields.get("request_id"):
            fields.pop("request_id", None)
        log_data.update(fields)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        if record.exc_info or record.levelno <= logging.DEBUG:
            log_data["source"] = f"{record.module}:{record.funcName}:{record.lineno}"

        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Logger for ledger audit events.

    One method per event type; each emits a record whose extra_fields carry
    the event_type and its identifiers.
    """

    def __init__(self, name: str = "claimledger.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        if not self._logger.isEnabledFor(level):
            return
        extra = {
            "event_type": event_type,
            "request_id": request_id_var.get(),
            **kwargs
        }
        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def claim_submitted(self, claim_id: int, submitter: str, loss_handle: str, risk_handle: str) -> None:
        self._log(
            logging.INFO,
            "CLAIM_SUBMITTED",
            claim_id=claim_id,
            submitter=submitter,
            loss_handle=loss_handle,
            risk_handle=risk_handle,
            message=f"Claim {claim_id} submitted by {submitter}"
        )

    def claim_evaluated(self, claim_id: int, caller: str, payout_handle: str) -> None:
        self._log(
            logging.INFO,
            "CLAIM_EVALUATED",
            claim_id=claim_id,
            caller=caller,
            payout_handle=payout_handle,
            message=f"Claim {claim_id} evaluated by {caller}"
        )

    def access_granted(self, handle: str, principal: str) -> None:
        self._log(
            logging.DEBUG,
            "ACCESS_GRANTED",
            handle=handle,
            principal=principal,
            message=f"{principal} granted access to {handle}"
        )

    def proof_rejected(self, submitter: str, reason: str) -> None:
        self._log(
            logging.WARNING,
            "PROOF_REJECTED",
            submitter=submitter,
            reason=reason,
            message=f"Input proof from {submitter} rejected: {reason}"
        )

    def claim_not_found(self, claim_id: int, operation: str) -> None:
        self._log(
            logging.WARNING,
            "CLAIM_NOT_FOUND",
            claim_id=claim_id,
            operation=operation,
            message=f"{operation} on unknown claim {claim_id}"
        )

    def delay_integrity_failure(self, reason: str) -> None:
        self._log(
            logging.CRITICAL,
            "DELAY_INTEGRITY_FAILURE",
            reason=reason,
            message=f"Rate limit delay integrity failure: {reason}"
        )

    def rate_limit_wait(self, seconds: float) -> None:
        self._log(
            logging.DEBUG,
            "RATE_LIMIT_WAIT",
            seconds=round(seconds, 6),
            message=f"Waiting {seconds:.3f}s before next backend call"
        )


def configure_logging(
    level: Optional[str] = None,
    json_format: bool = True,
    log_file: Optional[str] = None,
    ledger_address: Optional[str] = None,
) -> None:
    """
    Configure root logging for a ledger process.

    Args:
        level: Log level name; defaults to the configured level
            (CLAIMLEDGER_LOG_LEVEL, or DEBUG with CLAIMLEDGER_DEBUG)
        json_format: StructuredFormatter records instead of plain lines
        log_file: Optional file path receiving the same records
        ledger_address: Stamped on every JSON record as "ledger"
    """
    from .config import default_log_level

    root_logger = logging.getLogger()
    root_logger.setLevel((level or default_log_level()).upper())
    root_logger.handlers[:] = []

    if json_format:
        formatter: logging.Formatter = StructuredFormatter(ledger_address)
    else:
        prefix = f"[{ledger_address}] " if ledger_address else ""
        formatter = logging.Formatter(f"%(asctime)s %(levelname)-8s {prefix}%(name)s: %(message)s")

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the request ID for the current context, generating one if None."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


# Global audit logger instance
audit_log = AuditLogger()
