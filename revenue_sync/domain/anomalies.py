"""Anomaly rules - validates transactions against fixed business thresholds"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from revenue_sync.domain.models import (
    AnomalyType,
    BankTransaction,
    Severity,
    TransactionAnomaly,
)


@dataclass
class AnomalyThresholds:
    """
    Detection thresholds.

    - unusual_amount_multiplier: amount above N x the historical average is unusual
    - max_single_transaction: any single amount above this is critical
    - negative_balance_threshold: balances below this are critical, not just medium
    """

    unusual_amount_multiplier: Decimal = Decimal("3")
    max_single_transaction: Decimal = Decimal("100000")
    negative_balance_threshold: Decimal = Decimal("-1000")

    @classmethod
    def from_settings(cls, settings) -> "AnomalyThresholds":
        return cls(
            unusual_amount_multiplier=settings.unusual_amount_multiplier,
            max_single_transaction=settings.max_single_transaction,
            negative_balance_threshold=settings.negative_balance_threshold,
        )


@dataclass
class HistoryProfile:
    """
    What the rules need to know about a transaction's stored history.

    - average_amount: mean of same-direction amounts on the same bank account
    - same_day_matches: other transactions with the same direction, amount
      and description on the same calendar day
    """

    average_amount: Optional[Decimal] = None
    same_day_matches: int = 0

    @classmethod
    def from_history(cls, transaction: BankTransaction, history: Iterable[BankTransaction]) -> "HistoryProfile":
        others = [t for t in history if t.id is None or t.id != transaction.id]
        envelope = [
            t.amount
            for t in others
            if t.bank_account_id == transaction.bank_account_id and t.transaction_type == transaction.transaction_type
        ]
        return cls(
            average_amount=sum(envelope, Decimal("0")) / len(envelope) if envelope else None,
            same_day_matches=sum(1 for t in others if is_same_day_match(t, transaction)),
        )


def is_same_day_match(candidate: BankTransaction, transaction: BankTransaction) -> bool:
    return (
        candidate.transaction_type == transaction.transaction_type
        and candidate.amount == transaction.amount
        and candidate.description == transaction.description
        and candidate.transaction_date.date() == transaction.transaction_date.date()
    )


def _anomaly(
    transaction: BankTransaction,
    anomaly_type: AnomalyType,
    severity: Severity,
    description: str,
    confidence: float,
    expected_amount: Optional[Decimal] = None,
) -> TransactionAnomaly:
    return TransactionAnomaly(
        transaction_id=transaction.id,
        anomaly_type=anomaly_type,
        severity=severity,
        description=description,
        actual_amount=transaction.amount,
        confidence=confidence,
        expected_amount=expected_amount,
        detected_at=datetime.now(timezone.utc),
    )


def check_unusual_amount(
    transaction: BankTransaction,
    average: Optional[Decimal],
    thresholds: AnomalyThresholds,
) -> Optional[TransactionAnomaly]:
    """Flag amounts above the hard ceiling or far outside the historical envelope"""
    if transaction.amount > thresholds.max_single_transaction:
        return _anomaly(
            transaction,
            AnomalyType.UNUSUAL_AMOUNT,
            Severity.CRITICAL,
            f"Transaction amount ({transaction.amount}) exceeds maximum threshold "
            f"({thresholds.max_single_transaction})",
            confidence=1.0,
            expected_amount=thresholds.max_single_transaction,
        )

    if average is None or average <= 0:
        return None

    threshold = average * thresholds.unusual_amount_multiplier
    if transaction.amount <= threshold:
        return None

    # Twice past the threshold is high severity
    severity = Severity.HIGH if transaction.amount > threshold * 2 else Severity.MEDIUM
    return _anomaly(
        transaction,
        AnomalyType.UNUSUAL_AMOUNT,
        severity,
        f"Transaction amount ({transaction.amount}) is "
        f"{transaction.amount / average:.1f}x the average ({average:.2f})",
        confidence=float(min(transaction.amount / (threshold * 2), Decimal("1"))),
        expected_amount=average,
    )


def check_negative_balance(
    transaction: BankTransaction,
    thresholds: AnomalyThresholds,
) -> Optional[TransactionAnomaly]:
    if transaction.balance_after is None or transaction.balance_after >= 0:
        return None

    severity = (
        Severity.CRITICAL
        if transaction.balance_after < thresholds.negative_balance_threshold
        else Severity.MEDIUM
    )
    return _anomaly(
        transaction,
        AnomalyType.NEGATIVE_BALANCE,
        severity,
        f"Account balance went negative: {transaction.balance_after}",
        confidence=1.0,
    )


def check_duplicate_pattern(transaction: BankTransaction, same_day_matches: int) -> Optional[TransactionAnomaly]:
    """Same amount, direction and description on the same day under a different key"""
    if same_day_matches <= 0:
        return None

    return _anomaly(
        transaction,
        AnomalyType.DUPLICATE,
        Severity.MEDIUM,
        f"Possible duplicate transaction ({same_day_matches} similar on the same day)",
        confidence=min(same_day_matches / 3, 1.0),
    )


def check_missing_reference(transaction: BankTransaction) -> Optional[TransactionAnomaly]:
    if transaction.bank_reference:
        return None
    return _anomaly(
        transaction,
        AnomalyType.MISSING_REFERENCE,
        Severity.LOW,
        "Transaction has no bank reference; deduplication relies on the fallback key",
        confidence=1.0,
    )


def evaluate_transaction(
    transaction: BankTransaction,
    profile: HistoryProfile,
    thresholds: Optional[AnomalyThresholds] = None,
) -> List[TransactionAnomaly]:
    """
    Run every rule against a transaction.

    Args:
        transaction: Transaction under review
        profile: Summary of its stored history
        thresholds: Detection thresholds (defaults when omitted)

    Returns:
        Detected anomalies, empty when the transaction is clean
    """
    thresholds = thresholds or AnomalyThresholds()

    checks = [
        check_unusual_amount(transaction, profile.average_amount, thresholds),
        check_negative_balance(transaction, thresholds),
        check_duplicate_pattern(transaction, profile.same_day_matches),
        check_missing_reference(transaction),
    ]
    return [anomaly for anomaly in checks if anomaly is not None]


def validate_transaction(
    transaction: BankTransaction,
    history: Iterable[BankTransaction],
    thresholds: Optional[AnomalyThresholds] = None,
) -> List[TransactionAnomaly]:
    """Run every rule against a transaction and an in-memory history"""
    return evaluate_transaction(transaction, HistoryProfile.from_history(transaction, history), thresholds)
