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
        log_record["service"] = "midi-financing"


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_decision(
    request_id: str,
    financing_request_id: str,
    applicant_id: str,
    status: str,
    risk_score: Optional[int],
    duration_ms: float,
) -> None:
    """Log structured decision outcome for analysis"""
    logging.info(
        "Decision completed",
        extra={
            "request_id": request_id,
            "financing_request_id": financing_request_id,
            "applicant_id": applicant_id,
            "step": "decision_complete",
            "decision_outcome": status,
            "risk_score": risk_score,
            "duration_ms": duration_ms,
        },
    )


def log_repayment(request_id: str, financing_request_id: str, amount: int, repaid_amount: int) -> None:
    logging.info(
        "Repayment completed",
        extra={
            "request_id": request_id,
            "financing_request_id": financing_request_id,
            "step": "repayment_complete",
            "amount": amount,
            "repaid_amount": repaid_amount,
        },
    )


def log_ledger_effect(request_id: str, financing_request_id: str, applicant_id: str, applied: bool) -> None:
    """Log whether the approval credit is posted or still pending operator action"""
    logging.log(
        logging.INFO if applied else logging.WARNING,
        "Ledger effect applied" if applied else "Ledger effect pending",
        extra={
            "request_id": request_id,
            "financing_request_id": financing_request_id,
            "applicant_id": applicant_id,
            "step": "ledger_effect",
            "ledger_effect_applied": applied,
        },
    )
