"""Unit tests for structured logging and metrics helpers"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from prometheus_client import REGISTRY
from revenue_sync.domain.models import SyncResult, SyncStatus
from revenue_sync.infrastructure.observability.logging import CustomJsonFormatter, setup_logging
from revenue_sync.infrastructure.observability.metrics import record_sync_result


def test_setup_logging_installs_json_formatter():
    """Test root logger emits JSON with service metadata"""
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        setup_logging("DEBUG")

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        formatter = root.handlers[0].formatter
        assert isinstance(formatter, CustomJsonFormatter)

        record = logging.LogRecord("revenue_sync.test", logging.INFO, __file__, 1, "Sync completed", None, None)
        record.company_id = "company_c"
        payload = json.loads(formatter.format(record))

        assert payload["message"] == "Sync completed"
        assert payload["level"] == "INFO"
        assert payload["service"] == "revenue-sync"
        assert payload["company_id"] == "company_c"
        assert "timestamp" in payload
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


def test_record_sync_result_counts_outcomes():
    """Test sync metrics count runs by status and transactions by outcome"""

    def sample(name, labels):
        return REGISTRY.get_sample_value(name, labels) or 0.0

    runs_before = sample("revenue_sync_runs_total", {"status": "completed"})
    inserted_before = sample("revenue_sync_transactions_total", {"outcome": "inserted"})
    skipped_before = sample("revenue_sync_transactions_total", {"outcome": "skipped"})

    result = SyncResult(
        company_id="company_c",
        bank_account_id="acct_1",
        start_date=datetime(2024, 10, 1),
        end_date=datetime(2024, 10, 31),
        synced_at=datetime.now(timezone.utc),
        success=True,
        status=SyncStatus.COMPLETED,
        transactions_fetched=5,
        transactions_inserted=3,
        transactions_skipped=2,
        total_deposits=Decimal("100"),
    )
    record_sync_result(result)

    assert sample("revenue_sync_runs_total", {"status": "completed"}) == runs_before + 1
    assert sample("revenue_sync_transactions_total", {"outcome": "inserted"}) == inserted_before + 3
    assert sample("revenue_sync_transactions_total", {"outcome": "skipped"}) == skipped_before + 2
