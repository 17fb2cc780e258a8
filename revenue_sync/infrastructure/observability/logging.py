"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

from revenue_sync.config import settings
from revenue_sync.domain.models import RevenueReport, SyncResult


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_sync_result(result: SyncResult, duration_ms: float) -> None:
    """Log structured sync outcome for reconciliation audits"""
    log = logging.info if result.success else logging.warning
    log(
        "Sync completed" if result.success else "Sync failed",
        extra={
            "company_id": result.company_id,
            "bank_account_id": result.bank_account_id,
            "step": "sync_complete",
            "sync_status": result.status.value,
            "transactions_fetched": result.transactions_fetched,
            "transactions_inserted": result.transactions_inserted,
            "transactions_updated": result.transactions_updated,
            "transactions_skipped": result.transactions_skipped,
            "total_deposits": str(result.total_deposits),
            "total_withdrawals": str(result.total_withdrawals),
            "errors": result.errors,
            "warnings": result.warnings,
            "duration_ms": duration_ms,
        },
    )


def log_report_created(report: RevenueReport) -> None:
    logging.info(
        "Revenue report created",
        extra={
            "company_id": report.company_id,
            "report_id": report.id,
            "step": "report_created",
            "period": f"{report.report_year}-{report.report_month:02d}",
            "report_status": report.status.value,
            "net_revenue": str(report.net_revenue),
            "dividend_pool": str(report.dividend_pool),
            "anomalous_transactions": report.anomalous_transactions,
        },
    )
