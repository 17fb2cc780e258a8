"""Anomaly detector - re-validates stored transactions and surfaces findings for review"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from revenue_sync.config import settings
from revenue_sync.domain.anomalies import (
    AnomalyThresholds,
    HistoryProfile,
    evaluate_transaction,
    validate_transaction,
)
from revenue_sync.domain.models import BankTransaction, DetectionResult, TransactionAnomaly, TransactionType
from revenue_sync.infrastructure.database.repositories import AnomalyRepository, TransactionRepository
from revenue_sync.infrastructure.database.session import RevenueStore
from revenue_sync.infrastructure.observability.metrics import anomaly_counter

logger = logging.getLogger(__name__)


def profile_from_aggregates(
    transaction: BankTransaction,
    totals: Dict[Tuple[str, TransactionType], Tuple[Decimal, int]],
    same_day: Dict[Tuple[TransactionType, Decimal, str, str], int],
) -> HistoryProfile:
    """History profile of a stored transaction, leaving the transaction itself out"""
    total, count = totals.get((transaction.bank_account_id, transaction.transaction_type), (Decimal("0"), 0))
    others = count - 1
    day_key = (
        transaction.transaction_type,
        transaction.amount,
        transaction.description,
        transaction.transaction_date.date().isoformat(),
    )
    return HistoryProfile(
        average_amount=(total - transaction.amount) / others if others > 0 else None,
        same_day_matches=max(same_day.get(day_key, 1) - 1, 0),
    )


class AnomalyDetector:
    """Evaluates company transactions against the anomaly rule catalogue"""

    def __init__(self, store: RevenueStore, thresholds: Optional[AnomalyThresholds] = None):
        self.store = store
        self.thresholds = thresholds or AnomalyThresholds.from_settings(settings)

    def validate(self, transaction: BankTransaction, history: Iterable[BankTransaction]) -> List[TransactionAnomaly]:
        return validate_transaction(transaction, history, self.thresholds)

    def detect_anomalies(self, company_id: str) -> DetectionResult:
        """
        Sweep a company's transactions for anomalies.

        Transactions not yet flagged are re-validated against per-account
        totals and same-day counts aggregated once for the whole sweep; new
        findings are stored and the transaction flagged. Already-flagged
        transactions contribute their stored anomalies.

        Returns:
            DetectionResult with every anomaly found and the number of
            transactions newly flagged by this sweep
        """
        flagged = 0

        with self.store.session() as db:
            transactions = TransactionRepository(db)
            anomalies = AnomalyRepository(db)
            found = anomalies.list_for_company(company_id)
            totals = transactions.amount_totals(company_id)
            same_day = transactions.same_day_counts(company_id)

            for txn in transactions.list_unflagged(company_id):
                detected = evaluate_transaction(txn, profile_from_aggregates(txn, totals, same_day), self.thresholds)
                if not detected:
                    continue

                found.extend(anomalies.add_many(txn.id, detected))
                transactions.mark_anomalous(txn.id)
                flagged += 1
                for anomaly in detected:
                    anomaly_counter.labels(severity=anomaly.severity.value).inc()

        if flagged:
            logger.info(
                "Anomaly sweep flagged transactions",
                extra={"company_id": company_id, "flagged_transactions": flagged, "anomalies": len(found)},
            )
        return DetectionResult(anomalies=found, flagged_transaction_count=flagged)

    def get_high_priority_anomalies(self, company_id: str) -> List[TransactionAnomaly]:
        """High and critical anomalies requiring review"""
        return [a for a in self.detect_anomalies(company_id).anomalies if a.severity.is_priority]

    def get_company_anomalies(self, company_id: str) -> List[TransactionAnomaly]:
        with self.store.session() as db:
            return AnomalyRepository(db).list_for_company(company_id)
