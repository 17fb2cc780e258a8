"""Deduplication strategies for incoming gateway transactions"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Protocol

from revenue_sync.domain.models import BankTransaction


class MatchConfidence(str, Enum):
    EXACT = "exact"  # Same bank reference
    FALLBACK = "fallback"  # Same (amount, date, description), nothing contradicts it
    LOW = "low"  # Fallback key matched but other fields disagree


@dataclass
class DedupMatch:
    transaction: BankTransaction
    confidence: MatchConfidence

    @property
    def is_low_confidence(self) -> bool:
        return self.confidence == MatchConfidence.LOW


class TransactionLookup(Protocol):
    """Read access a strategy needs from the transaction store"""

    def find_by_bank_reference(self, company_id: str, bank_reference: str) -> Optional[BankTransaction]:
        ...

    def find_by_fallback_key(
        self, company_id: str, amount: Decimal, transaction_date: datetime, description: str
    ) -> List[BankTransaction]:
        ...


class DedupStrategy(Protocol):
    def find_match(self, lookup: TransactionLookup, candidate: BankTransaction) -> Optional[DedupMatch]:
        ...


class ReferenceOnlyStrategy:
    """Strict matching: only a shared bank reference identifies the same event"""

    def find_match(self, lookup: TransactionLookup, candidate: BankTransaction) -> Optional[DedupMatch]:
        if not candidate.bank_reference:
            return None
        existing = lookup.find_by_bank_reference(candidate.company_id, candidate.bank_reference)
        if existing is None:
            return None
        return DedupMatch(existing, MatchConfidence.EXACT)


class ReferenceThenFallbackStrategy(ReferenceOnlyStrategy):
    """
    Match on bank reference, then on the (amount, date, description) triple.

    Two records carrying different bank references are distinct events even
    when their triples agree. A triple match where one side lacks a reference,
    or where the balances after the transaction differ, is reported as LOW
    confidence so the caller can route it to manual review.
    """

    def find_match(self, lookup: TransactionLookup, candidate: BankTransaction) -> Optional[DedupMatch]:
        match = super().find_match(lookup, candidate)
        if match is not None:
            return match

        for existing in lookup.find_by_fallback_key(
            candidate.company_id,
            candidate.amount,
            candidate.transaction_date,
            candidate.description,
        ):
            if existing.bank_reference and candidate.bank_reference:
                continue
            return DedupMatch(existing, self._fallback_confidence(existing, candidate))

        return None

    @staticmethod
    def _fallback_confidence(existing: BankTransaction, candidate: BankTransaction) -> MatchConfidence:
        if bool(existing.bank_reference) != bool(candidate.bank_reference):
            return MatchConfidence.LOW
        if existing.balance_after is not None and candidate.balance_after is not None:
            if existing.balance_after != candidate.balance_after:
                return MatchConfidence.LOW
        return MatchConfidence.FALLBACK
