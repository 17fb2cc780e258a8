"""Integration tests for the transaction store and anomaly detector"""

import pytest
from datetime import datetime
from decimal import Decimal
from revenue_sync.domain.models import (
    AnomalyType,
    BankTransaction,
    Severity,
    TransactionCategory,
    TransactionStatus,
    TransactionType,
)
from revenue_sync.infrastructure.database.repositories import TransactionRepository
from revenue_sync.services.anomalies import AnomalyDetector
from revenue_sync.services.transaction_store import TransactionStore


@pytest.fixture
def no_history_scan(monkeypatch):
    """Fail if a rule evaluation loads the full company history"""

    def refuse(*args, **kwargs):
        raise AssertionError("company history loaded for rule evaluation")

    monkeypatch.setattr(TransactionRepository, "list_by_company", refuse)


def store_raw(
    store,
    ref: str,
    amount: str,
    txn_type=TransactionType.DEBIT,
    description="Vendor invoice",
    when=None,
    account="acct_1",
):
    """Insert a row directly, bypassing categorization and validation"""
    with store.session() as db:
        return TransactionRepository(db).add(
            BankTransaction(
                id=None,
                company_id="company_c",
                bank_account_id=account,
                transaction_date=when or datetime(2024, 10, 5, 12),
                transaction_type=txn_type,
                amount=Decimal(amount),
                currency="USD",
                balance_after=Decimal("5000"),
                description=description,
                reference=None,
                bank_reference=ref,
            )
        )


def test_process_incoming_inserts_categorized_transaction(transaction_store: TransactionStore, make_txn):
    """Test new record is normalized, categorized and stored once"""
    raw = make_txn("ref-1", datetime(2024, 10, 5, 9), "1200", type="debit", description="Monthly payroll")

    first = transaction_store.process_incoming("company_c", "acct_1", raw)
    second = transaction_store.process_incoming("company_c", "acct_1", raw)

    assert first.inserted and not first.skipped
    assert second.skipped and second.transaction_id == first.transaction_id

    stored = transaction_store.get_transactions("company_c")
    assert len(stored) == 1
    assert stored[0].transaction_type == TransactionType.DEBIT
    assert stored[0].category == TransactionCategory.SALARY
    assert stored[0].status == TransactionStatus.COMPLETED
    assert stored[0].raw_data["transactionId"] == "ref-1"


def test_process_incoming_flags_anomalies(store, transaction_store: TransactionStore, make_txn):
    """Test a record breaking a rule is stored flagged with its anomalies"""
    raw = make_txn("ref-big", datetime(2024, 10, 5, 9), "250000", description="Asset sale")

    outcome = transaction_store.process_incoming("company_c", "acct_1", raw)

    stored = transaction_store.get_transactions("company_c")[0]
    assert outcome.inserted
    assert stored.is_anomalous is True
    assert stored.status == TransactionStatus.FLAGGED

    anomalies = AnomalyDetector(store).get_company_anomalies("company_c")
    assert [(a.anomaly_type, a.severity) for a in anomalies] == [(AnomalyType.UNUSUAL_AMOUNT, Severity.CRITICAL)]
    assert anomalies[0].transaction_id == stored.id


def test_categorize_transactions_backfills_uncategorized(store, transaction_store: TransactionStore):
    """Test sweep assigns categories and persists them"""
    store_raw(store, "r1", "100", description="Vendor invoice")
    store_raw(store, "r2", "200", description="Office rent")
    store_raw(store, "r3", "300", txn_type=TransactionType.CREDIT, description="POS batch")

    result = transaction_store.categorize_transactions("company_c")

    assert result.categorized == 3
    assert result.by_category == {"supplier_payment": 1, "rent": 1, "pos_sale": 1}
    assert transaction_store.get_transactions("company_c", category=TransactionCategory.UNCATEGORIZED) == []
    assert transaction_store.categorize_transactions("company_c").categorized == 0


def test_get_transactions_filters_and_pages(store, transaction_store: TransactionStore):
    """Test date/type filters and newest-first pagination"""
    store_raw(store, "r1", "10", when=datetime(2024, 10, 1))
    store_raw(store, "r2", "20", when=datetime(2024, 10, 2))
    store_raw(store, "r3", "30", txn_type=TransactionType.CREDIT, when=datetime(2024, 10, 3))
    store_raw(store, "r4", "40", when=datetime(2024, 11, 1))

    october = transaction_store.get_transactions(
        "company_c", from_date=datetime(2024, 10, 1), to_date=datetime(2024, 10, 31, 23, 59)
    )
    assert [t.bank_reference for t in october] == ["r3", "r2", "r1"]

    debits = transaction_store.get_transactions("company_c", transaction_type=TransactionType.DEBIT, limit=2, offset=1)
    assert [t.bank_reference for t in debits] == ["r2", "r1"]

    assert transaction_store.get_transactions("other_company") == []


def test_net_revenue_for_range(store, transaction_store: TransactionStore):
    """Test totals and per-day breakdown over an inclusive range"""
    store_raw(store, "r1", "500", txn_type=TransactionType.CREDIT, when=datetime(2024, 10, 1, 9))
    store_raw(store, "r2", "250.25", txn_type=TransactionType.CREDIT, when=datetime(2024, 10, 1, 18))
    store_raw(store, "r3", "100", when=datetime(2024, 10, 3, 9))
    store_raw(store, "r4", "999", txn_type=TransactionType.CREDIT, when=datetime(2024, 10, 4, 0, 0))

    revenue = transaction_store.calculate_net_revenue_for_range(
        "company_c", datetime(2024, 10, 1), datetime(2024, 10, 3, 23, 59, 59)
    )

    assert revenue.total_deposits == Decimal("750.25")
    assert revenue.total_withdrawals == Decimal("100")
    assert revenue.net_revenue == Decimal("650.25")
    assert [d.date.day for d in revenue.daily_breakdown] == [1, 2, 3]
    assert revenue.daily_breakdown[0].deposit_count == 2
    assert revenue.daily_breakdown[1].net_revenue == Decimal("0")
    assert revenue.daily_breakdown[2].withdrawal_count == 1


def test_detect_anomalies_flags_once(store, no_history_scan):
    """Test sweep flags rows inserted without validation and reuses stored findings"""
    store_raw(store, "r1", "100", description="Card settlement")
    store_raw(store, "r2", "100", description="Card settlement")
    store_raw(store, None, "100", description="Office supplies", when=datetime(2024, 10, 7))
    detector = AnomalyDetector(store)

    first = detector.detect_anomalies("company_c")
    second = detector.detect_anomalies("company_c")

    assert first.flagged_transaction_count == 3
    assert second.flagged_transaction_count == 0
    assert sorted(a.anomaly_type.value for a in first.anomalies) == ["duplicate", "duplicate", "missing_reference"]
    assert len(second.anomalies) == len(first.anomalies)
    assert detector.get_high_priority_anomalies("company_c") == []


def test_high_priority_subset(store, no_history_scan):
    """Test only high and critical anomalies are returned as priority"""
    store_raw(store, "r1", "100", when=datetime(2024, 10, 1))
    store_raw(store, "r2", "120", when=datetime(2024, 10, 2), description="Parts order")
    store_raw(store, "r3", "9000", when=datetime(2024, 10, 3), description="Machine purchase")
    detector = AnomalyDetector(store)

    priority = detector.get_high_priority_anomalies("company_c")

    assert [a.severity for a in priority] == [Severity.HIGH]
    assert priority[0].actual_amount == Decimal("9000")
    assert all(a.severity.is_priority for a in priority)


def test_detect_anomalies_scopes_envelope_to_account(store, no_history_scan):
    """Test a large account is judged by its own history, not the company's"""
    for day in (1, 2, 3):
        store_raw(store, f"small-{day}", "100", when=datetime(2024, 10, day), description=f"Supplies {day}")
    store_raw(store, "lease-1", "5000", when=datetime(2024, 10, 1), description="Equipment lease", account="acct_2")
    store_raw(store, "lease-2", "5000", when=datetime(2024, 10, 2), description="Equipment lease", account="acct_2")

    result = AnomalyDetector(store).detect_anomalies("company_c")

    assert result.flagged_transaction_count == 0
    assert result.anomalies == []


def test_process_incoming_rules_use_aggregates(store, transaction_store: TransactionStore, make_txn, no_history_scan):
    """Test insert-time rules see the account average and same-day matches"""
    for day in range(1, 6):
        raw = make_txn(f"pay-{day}", datetime(2024, 10, day, 9), "100")
        transaction_store.process_incoming("company_c", "acct_1", raw)
    transaction_store.process_incoming("company_c", "acct_2", make_txn("lease", datetime(2024, 10, 6, 9), "2000"))

    big = transaction_store.process_incoming("company_c", "acct_1", make_txn("big", datetime(2024, 10, 20, 9), "2000"))
    transaction_store.process_incoming(
        "company_c", "acct_1", make_txn("card-1", datetime(2024, 10, 21, 9), "100", description="Card settlement")
    )
    repeat = transaction_store.process_incoming(
        "company_c", "acct_1", make_txn("card-2", datetime(2024, 10, 21, 15), "100", description="Card settlement")
    )

    findings = {
        (a.transaction_id, a.anomaly_type, a.severity)
        for a in AnomalyDetector(store).get_company_anomalies("company_c")
    }
    assert findings == {
        (big.transaction_id, AnomalyType.UNUSUAL_AMOUNT, Severity.HIGH),
        (repeat.transaction_id, AnomalyType.DUPLICATE, Severity.MEDIUM),
    }
