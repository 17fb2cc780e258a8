"""Transaction store - idempotent ingestion, categorization and revenue aggregation"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from revenue_sync.config import settings
from revenue_sync.domain.anomalies import AnomalyThresholds, HistoryProfile, evaluate_transaction
from revenue_sync.domain.categorization import categorize_transaction
from revenue_sync.domain.dedup import DedupMatch, DedupStrategy, ReferenceThenFallbackStrategy
from revenue_sync.domain.models import (
    AnomalyType,
    BankTransaction,
    CategorizationResult,
    DailyRevenue,
    GatewayTransaction,
    ProcessOutcome,
    RangeRevenue,
    Severity,
    TransactionAnomaly,
    TransactionCategory,
    TransactionStatus,
    TransactionType,
    ZERO,
)
from revenue_sync.infrastructure.database.repositories import AnomalyRepository, TransactionRepository
from revenue_sync.infrastructure.database.session import RevenueStore
from revenue_sync.infrastructure.observability.metrics import anomaly_counter, low_confidence_match_counter
from revenue_sync.utils.date_utils import end_of_day, generate_date_range, start_of_day

logger = logging.getLogger(__name__)


def normalize_transaction(company_id: str, bank_account_id: str, raw: GatewayTransaction) -> BankTransaction:
    """Map a gateway feed record onto the stored transaction shape"""
    return BankTransaction(
        id=None,
        company_id=company_id,
        bank_account_id=bank_account_id,
        transaction_date=raw.date,
        transaction_type=TransactionType.CREDIT if raw.type == "credit" else TransactionType.DEBIT,
        amount=raw.amount,
        currency=raw.currency,
        balance_after=raw.balance,
        description=raw.description,
        reference=raw.reference,
        bank_reference=raw.transaction_id,
        raw_data=raw.raw,
    )


class TransactionStore:
    """Persists gateway transactions exactly once per dedup key"""

    def __init__(
        self,
        store: RevenueStore,
        strategy: Optional[DedupStrategy] = None,
        thresholds: Optional[AnomalyThresholds] = None,
    ):
        self.store = store
        self.strategy = strategy or ReferenceThenFallbackStrategy()
        self.thresholds = thresholds or AnomalyThresholds.from_settings(settings)

    def process_incoming(
        self,
        company_id: str,
        bank_account_id: str,
        raw: GatewayTransaction,
        force: bool = False,
    ) -> ProcessOutcome:
        """
        Insert, update or skip one gateway record.

        - Known record, no force: skipped
        - Known record, force: stored row updated in place
        - Unknown record: categorized, validated and inserted

        A low-confidence fallback match is never duplicated; the stored
        transaction gets a possible_duplicate anomaly for manual review.

        Returns:
            ProcessOutcome with exactly one of inserted/updated/skipped set
        """
        candidate = normalize_transaction(company_id, bank_account_id, raw)

        with self.store.session() as db:
            transactions = TransactionRepository(db)
            match = self.strategy.find_match(transactions, candidate)

            if match is not None:
                if match.is_low_confidence:
                    self._flag_possible_duplicate(db, match, candidate)

                if force:
                    candidate.category = categorize_transaction(candidate.transaction_type, candidate.description)
                    updated = transactions.update(match.transaction.id, candidate)
                    return ProcessOutcome(
                        updated=True,
                        low_confidence=match.is_low_confidence,
                        transaction_id=updated.id if updated else match.transaction.id,
                    )

                return ProcessOutcome(
                    skipped=True,
                    low_confidence=match.is_low_confidence,
                    transaction_id=match.transaction.id,
                )

            candidate.category = categorize_transaction(candidate.transaction_type, candidate.description)
            profile = HistoryProfile(
                average_amount=transactions.average_amount(company_id, bank_account_id, candidate.transaction_type),
                same_day_matches=transactions.count_same_day_matches(candidate),
            )
            anomalies = evaluate_transaction(candidate, profile, self.thresholds)
            if anomalies:
                candidate.is_anomalous = True
                candidate.status = TransactionStatus.FLAGGED

            stored = transactions.add(candidate)
            if anomalies:
                AnomalyRepository(db).add_many(stored.id, anomalies)
                for anomaly in anomalies:
                    anomaly_counter.labels(severity=anomaly.severity.value).inc()

            return ProcessOutcome(inserted=True, transaction_id=stored.id)

    def _flag_possible_duplicate(self, db: Session, match: DedupMatch, candidate: BankTransaction) -> None:
        existing = match.transaction
        anomalies = AnomalyRepository(db)
        if anomalies.has_anomaly(existing.id, AnomalyType.POSSIBLE_DUPLICATE):
            return

        anomalies.add_many(
            existing.id,
            [
                TransactionAnomaly(
                    transaction_id=existing.id,
                    anomaly_type=AnomalyType.POSSIBLE_DUPLICATE,
                    severity=Severity.MEDIUM,
                    description=(
                        f"Incoming record (reference {candidate.bank_reference or 'none'}) matched only on "
                        f"amount, date and description; review before treating as the same event"
                    ),
                    actual_amount=candidate.amount,
                    confidence=0.5,
                    expected_amount=existing.amount,
                    detected_at=datetime.now(timezone.utc),
                )
            ],
        )
        TransactionRepository(db).mark_anomalous(existing.id)
        low_confidence_match_counter.inc()
        anomaly_counter.labels(severity=Severity.MEDIUM.value).inc()
        logger.warning(
            "Low-confidence duplicate match flagged for review",
            extra={
                "company_id": existing.company_id,
                "transaction_id": existing.id,
                "incoming_reference": candidate.bank_reference,
            },
        )

    def categorize_transactions(self, company_id: str) -> CategorizationResult:
        """Backfill categories for every UNCATEGORIZED transaction of a company"""
        by_category: Dict[str, int] = {}
        categorized = 0

        with self.store.session() as db:
            transactions = TransactionRepository(db)
            for txn in transactions.list_by_company(company_id, category=TransactionCategory.UNCATEGORIZED):
                category = categorize_transaction(txn.transaction_type, txn.description)
                if category == TransactionCategory.UNCATEGORIZED:
                    continue
                transactions.set_category(txn.id, category)
                categorized += 1
                by_category[category.value] = by_category.get(category.value, 0) + 1

        return CategorizationResult(categorized=categorized, by_category=by_category)

    def get_transactions(
        self,
        company_id: str,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        transaction_type: Optional[TransactionType] = None,
        category: Optional[TransactionCategory] = None,
        status: Optional[TransactionStatus] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[BankTransaction]:
        with self.store.session() as db:
            return TransactionRepository(db).list_by_company(
                company_id,
                from_date=from_date,
                to_date=to_date,
                transaction_type=transaction_type,
                category=category,
                status=status,
                limit=limit,
                offset=offset,
            )

    def calculate_net_revenue_for_range(self, company_id: str, from_date: datetime, to_date: datetime) -> RangeRevenue:
        """
        Aggregate deposits and withdrawals over an inclusive datetime range.

        The daily breakdown has one entry per calendar day in the range,
        including days without transactions.
        """
        transactions = self.get_transactions(company_id, from_date=from_date, to_date=to_date)

        breakdown = []
        total_deposits = ZERO
        total_withdrawals = ZERO
        for day in generate_date_range(from_date.date(), to_date.date()):
            day_start, day_end = start_of_day(day), end_of_day(day)
            same_day = [t for t in transactions if day_start <= t.transaction_date <= day_end]
            credits = [t.amount for t in same_day if t.transaction_type == TransactionType.CREDIT]
            debits = [t.amount for t in same_day if t.transaction_type == TransactionType.DEBIT]

            deposits = sum(credits, ZERO)
            withdrawals = sum(debits, ZERO)
            breakdown.append(
                DailyRevenue(
                    date=day,
                    company_id=company_id,
                    total_deposits=deposits,
                    deposit_count=len(credits),
                    total_withdrawals=withdrawals,
                    withdrawal_count=len(debits),
                    net_revenue=deposits - withdrawals,
                )
            )
            total_deposits += deposits
            total_withdrawals += withdrawals

        return RangeRevenue(
            total_deposits=total_deposits,
            total_withdrawals=total_withdrawals,
            net_revenue=total_deposits - total_withdrawals,
            daily_breakdown=breakdown,
        )
