"""Data access layer for transactions, anomalies, revenue reports and sync history"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from revenue_sync.domain.models import (
    AnomalyType,
    BankTransaction,
    ReportStatus,
    RevenueReport,
    Severity,
    SyncResult,
    SyncStatus,
    TransactionAnomaly,
    TransactionCategory,
    TransactionStatus,
    TransactionType,
)
from revenue_sync.infrastructure.database.models import (
    BankTransactionRecord,
    RevenueReportRecord,
    SyncResultRecord,
    TransactionAnomalyRecord,
)
from revenue_sync.utils.date_utils import end_of_day, start_of_day


def _parse_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _to_transaction(record: BankTransactionRecord) -> BankTransaction:
    return BankTransaction(
        id=str(record.id),
        company_id=record.company_id,
        bank_account_id=record.bank_account_id,
        transaction_date=record.transaction_date,
        transaction_type=TransactionType(record.transaction_type),
        amount=record.amount,
        currency=record.currency,
        balance_after=record.balance_after,
        description=record.description,
        reference=record.reference,
        bank_reference=record.bank_reference,
        category=TransactionCategory(record.category),
        status=TransactionStatus(record.status),
        is_anomalous=record.is_anomalous,
        raw_data=record.raw_data or {},
    )


def _to_anomaly(record: TransactionAnomalyRecord) -> TransactionAnomaly:
    return TransactionAnomaly(
        transaction_id=str(record.transaction_id),
        anomaly_type=AnomalyType(record.anomaly_type),
        severity=Severity(record.severity),
        description=record.description,
        actual_amount=record.actual_amount,
        confidence=record.confidence,
        expected_amount=record.expected_amount,
        detected_at=record.detected_at,
    )


def _to_report(record: RevenueReportRecord) -> RevenueReport:
    return RevenueReport(
        id=str(record.id),
        company_id=record.company_id,
        report_year=record.report_year,
        report_month=record.report_month,
        period_start=record.period_start,
        period_end=record.period_end,
        total_deposits=record.total_deposits,
        total_withdrawals=record.total_withdrawals,
        net_revenue=record.net_revenue,
        operating_costs=record.operating_costs,
        other_expenses=record.other_expenses,
        manual_adjustments=record.manual_adjustments,
        gross_profit=record.gross_profit,
        platform_fee=record.platform_fee,
        net_profit=record.net_profit,
        dividend_pool=record.dividend_pool,
        reinvestment_amount=record.reinvestment_amount,
        dividend_per_share=record.dividend_per_share,
        total_shares=record.total_shares,
        status=ReportStatus(record.status),
        total_transactions=record.total_transactions,
        anomalous_transactions=record.anomalous_transactions,
        verified_by=record.verified_by,
        verified_at=record.verified_at,
        verification_notes=record.verification_notes,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _to_sync_result(record: SyncResultRecord) -> SyncResult:
    return SyncResult(
        company_id=record.company_id,
        bank_account_id=record.bank_account_id,
        start_date=record.start_date,
        end_date=record.end_date,
        synced_at=record.synced_at,
        success=record.success,
        status=SyncStatus(record.status),
        transactions_fetched=record.transactions_fetched,
        transactions_inserted=record.transactions_inserted,
        transactions_updated=record.transactions_updated,
        transactions_skipped=record.transactions_skipped,
        total_deposits=record.total_deposits,
        total_withdrawals=record.total_withdrawals,
        errors=list(record.errors or []),
        warnings=list(record.warnings or []),
    )


class TransactionRepository:
    """Repository for normalized bank transactions"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, transaction: BankTransaction) -> BankTransaction:
        """Persist a new transaction and return it with its generated id"""
        record = BankTransactionRecord(
            company_id=transaction.company_id,
            bank_account_id=transaction.bank_account_id,
            transaction_date=transaction.transaction_date,
            transaction_type=transaction.transaction_type.value,
            amount=transaction.amount,
            currency=transaction.currency,
            balance_after=transaction.balance_after,
            description=transaction.description,
            reference=transaction.reference,
            bank_reference=transaction.bank_reference,
            category=transaction.category.value,
            status=transaction.status.value,
            is_anomalous=transaction.is_anomalous,
            raw_data=transaction.raw_data,
        )
        self.db.add(record)
        self.db.flush()  # Get ID without committing
        return _to_transaction(record)

    def update(self, transaction_id: str, incoming: BankTransaction) -> Optional[BankTransaction]:
        """Overwrite feed-sourced fields of a stored transaction in place"""
        record = self._get_record(transaction_id)
        if record is None:
            return None

        record.transaction_date = incoming.transaction_date
        record.transaction_type = incoming.transaction_type.value
        record.amount = incoming.amount
        record.currency = incoming.currency
        record.balance_after = incoming.balance_after
        record.description = incoming.description
        record.reference = incoming.reference
        record.bank_reference = incoming.bank_reference or record.bank_reference
        record.raw_data = incoming.raw_data
        if record.category == TransactionCategory.UNCATEGORIZED.value:
            record.category = incoming.category.value
        self.db.flush()
        return _to_transaction(record)

    def get(self, transaction_id: str) -> Optional[BankTransaction]:
        record = self._get_record(transaction_id)
        return _to_transaction(record) if record else None

    def find_by_bank_reference(self, company_id: str, bank_reference: str) -> Optional[BankTransaction]:
        record = (
            self.db.query(BankTransactionRecord)
            .filter(
                BankTransactionRecord.company_id == company_id,
                BankTransactionRecord.bank_reference == bank_reference,
            )
            .first()
        )
        return _to_transaction(record) if record else None

    def find_by_fallback_key(
        self, company_id: str, amount: Decimal, transaction_date: datetime, description: str
    ) -> List[BankTransaction]:
        records = (
            self.db.query(BankTransactionRecord)
            .filter(
                BankTransactionRecord.company_id == company_id,
                BankTransactionRecord.transaction_date == transaction_date,
                BankTransactionRecord.description == description,
            )
            .order_by(BankTransactionRecord.created_at)
            .all()
        )
        # Amount compared in Python to keep Decimal equality exact across backends
        return [_to_transaction(r) for r in records if r.amount == amount]

    def list_by_company(
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
        """Fetch company transactions newest-first with optional filters"""
        query = self.db.query(BankTransactionRecord).filter(BankTransactionRecord.company_id == company_id)

        if from_date is not None:
            query = query.filter(BankTransactionRecord.transaction_date >= from_date)
        if to_date is not None:
            query = query.filter(BankTransactionRecord.transaction_date <= to_date)
        if transaction_type is not None:
            query = query.filter(BankTransactionRecord.transaction_type == transaction_type.value)
        if category is not None:
            query = query.filter(BankTransactionRecord.category == category.value)
        if status is not None:
            query = query.filter(BankTransactionRecord.status == status.value)

        query = query.order_by(BankTransactionRecord.transaction_date.desc(), BankTransactionRecord.id)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        return [_to_transaction(r) for r in query.all()]

    def list_unflagged(self, company_id: str) -> List[BankTransaction]:
        records = (
            self.db.query(BankTransactionRecord)
            .filter(
                BankTransactionRecord.company_id == company_id,
                BankTransactionRecord.is_anomalous.is_(False),
            )
            .order_by(BankTransactionRecord.transaction_date.desc(), BankTransactionRecord.id)
            .all()
        )
        return [_to_transaction(r) for r in records]

    def average_amount(
        self, company_id: str, bank_account_id: str, transaction_type: TransactionType
    ) -> Optional[Decimal]:
        """Mean amount of one account's transactions in one direction, None without history"""
        total, count = (
            self.db.query(func.sum(BankTransactionRecord.amount), func.count(BankTransactionRecord.id))
            .filter(
                BankTransactionRecord.company_id == company_id,
                BankTransactionRecord.bank_account_id == bank_account_id,
                BankTransactionRecord.transaction_type == transaction_type.value,
            )
            .one()
        )
        if not count:
            return None
        return Decimal(str(total)) / count

    def count_same_day_matches(self, transaction: BankTransaction) -> int:
        """Stored transactions sharing direction, amount and description on the transaction's day"""
        day = transaction.transaction_date.date()
        query = self.db.query(BankTransactionRecord.amount).filter(
            BankTransactionRecord.company_id == transaction.company_id,
            BankTransactionRecord.transaction_type == transaction.transaction_type.value,
            BankTransactionRecord.description == transaction.description,
            BankTransactionRecord.transaction_date >= start_of_day(day),
            BankTransactionRecord.transaction_date <= end_of_day(day),
        )
        txn_uuid = _parse_uuid(transaction.id) if transaction.id else None
        if txn_uuid is not None:
            query = query.filter(BankTransactionRecord.id != txn_uuid)

        # Amount compared in Python, as in find_by_fallback_key
        return sum(1 for (amount,) in query.all() if amount == transaction.amount)

    def amount_totals(self, company_id: str) -> Dict[Tuple[str, TransactionType], Tuple[Decimal, int]]:
        """(sum, count) of amounts per bank account and direction"""
        rows = (
            self.db.query(
                BankTransactionRecord.bank_account_id,
                BankTransactionRecord.transaction_type,
                func.sum(BankTransactionRecord.amount),
                func.count(BankTransactionRecord.id),
            )
            .filter(BankTransactionRecord.company_id == company_id)
            .group_by(BankTransactionRecord.bank_account_id, BankTransactionRecord.transaction_type)
            .all()
        )
        return {
            (account_id, TransactionType(txn_type)): (Decimal(str(total)), count)
            for account_id, txn_type, total, count in rows
        }

    def same_day_counts(self, company_id: str) -> Dict[Tuple[TransactionType, Decimal, str, str], int]:
        """Transaction counts keyed by (direction, amount, description, ISO day)"""
        day = func.date(BankTransactionRecord.transaction_date)
        rows = (
            self.db.query(
                BankTransactionRecord.transaction_type,
                BankTransactionRecord.amount,
                BankTransactionRecord.description,
                day,
                func.count(BankTransactionRecord.id),
            )
            .filter(BankTransactionRecord.company_id == company_id)
            .group_by(
                BankTransactionRecord.transaction_type,
                BankTransactionRecord.amount,
                BankTransactionRecord.description,
                day,
            )
            .all()
        )
        # SQLite returns the day as text, PostgreSQL as a date
        return {
            (TransactionType(txn_type), amount, description, str(txn_day)[:10]): count
            for txn_type, amount, description, txn_day, count in rows
        }

    def set_category(self, transaction_id: str, category: TransactionCategory) -> None:
        record = self._get_record(transaction_id)
        if record is not None:
            record.category = category.value
            self.db.flush()

    def mark_anomalous(self, transaction_id: str) -> None:
        record = self._get_record(transaction_id)
        if record is not None:
            record.is_anomalous = True
            record.status = TransactionStatus.FLAGGED.value
            self.db.flush()

    def _get_record(self, transaction_id: str) -> Optional[BankTransactionRecord]:
        txn_uuid = _parse_uuid(transaction_id)
        if txn_uuid is None:
            return None
        return self.db.get(BankTransactionRecord, txn_uuid)


class AnomalyRepository:
    """Repository for transaction anomalies"""

    def __init__(self, db: Session):
        self.db = db

    def add_many(self, transaction_id: str, anomalies: List[TransactionAnomaly]) -> List[TransactionAnomaly]:
        """Attach anomalies to a stored transaction"""
        txn_uuid = uuid.UUID(transaction_id)
        records = []
        for anomaly in anomalies:
            record = TransactionAnomalyRecord(
                transaction_id=txn_uuid,
                anomaly_type=anomaly.anomaly_type.value,
                severity=anomaly.severity.value,
                description=anomaly.description,
                expected_amount=anomaly.expected_amount,
                actual_amount=anomaly.actual_amount,
                confidence=anomaly.confidence,
                detected_at=anomaly.detected_at,
            )
            self.db.add(record)
            records.append(record)
        self.db.flush()
        return [_to_anomaly(r) for r in records]

    def list_for_transaction(self, transaction_id: str) -> List[TransactionAnomaly]:
        txn_uuid = _parse_uuid(transaction_id)
        if txn_uuid is None:
            return []
        records = (
            self.db.query(TransactionAnomalyRecord)
            .filter(TransactionAnomalyRecord.transaction_id == txn_uuid)
            .order_by(TransactionAnomalyRecord.detected_at)
            .all()
        )
        return [_to_anomaly(r) for r in records]

    def list_for_company(self, company_id: str) -> List[TransactionAnomaly]:
        records = (
            self.db.query(TransactionAnomalyRecord)
            .join(BankTransactionRecord, TransactionAnomalyRecord.transaction_id == BankTransactionRecord.id)
            .filter(BankTransactionRecord.company_id == company_id)
            .order_by(BankTransactionRecord.transaction_date.desc(), TransactionAnomalyRecord.detected_at)
            .all()
        )
        return [_to_anomaly(r) for r in records]

    def has_anomaly(self, transaction_id: str, anomaly_type: AnomalyType) -> bool:
        return (
            self.db.query(TransactionAnomalyRecord.id)
            .filter(
                TransactionAnomalyRecord.transaction_id == uuid.UUID(transaction_id),
                TransactionAnomalyRecord.anomaly_type == anomaly_type.value,
            )
            .first()
            is not None
        )


class ReportRepository:
    """Repository for monthly revenue reports"""

    def __init__(self, db: Session):
        self.db = db

    def insert_if_absent(self, report: RevenueReport) -> Tuple[RevenueReport, bool]:
        """
        Insert a report unless one already exists for its period.

        Must run in a unit of work of its own: a unique-constraint conflict
        rolls the whole session back before the winning report is returned.

        Returns:
            (report, created) where report is the stored one for the period
        """
        existing = self.get_for_month(report.company_id, report.report_year, report.report_month)
        if existing is not None:
            return existing, False

        record = RevenueReportRecord(
            id=uuid.UUID(report.id),
            company_id=report.company_id,
            report_year=report.report_year,
            report_month=report.report_month,
            period_start=report.period_start,
            period_end=report.period_end,
            total_deposits=report.total_deposits,
            total_withdrawals=report.total_withdrawals,
            net_revenue=report.net_revenue,
            operating_costs=report.operating_costs,
            other_expenses=report.other_expenses,
            manual_adjustments=report.manual_adjustments,
            gross_profit=report.gross_profit,
            platform_fee=report.platform_fee,
            net_profit=report.net_profit,
            dividend_pool=report.dividend_pool,
            reinvestment_amount=report.reinvestment_amount,
            dividend_per_share=report.dividend_per_share,
            total_shares=report.total_shares,
            status=report.status.value,
            total_transactions=report.total_transactions,
            anomalous_transactions=report.anomalous_transactions,
            created_at=report.created_at,
            updated_at=report.updated_at,
        )
        try:
            self.db.add(record)
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            winner = self.get_for_month(report.company_id, report.report_year, report.report_month)
            if winner is None:
                raise
            return winner, False

        return _to_report(record), True

    def get(self, report_id: str) -> Optional[RevenueReport]:
        record = self._get_record(report_id)
        return _to_report(record) if record else None

    def get_for_month(self, company_id: str, year: int, month: int) -> Optional[RevenueReport]:
        record = (
            self.db.query(RevenueReportRecord)
            .filter(
                RevenueReportRecord.company_id == company_id,
                RevenueReportRecord.report_year == year,
                RevenueReportRecord.report_month == month,
            )
            .first()
        )
        return _to_report(record) if record else None

    def list_by_company(
        self,
        company_id: str,
        year: Optional[int] = None,
        status: Optional[ReportStatus] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[RevenueReport]:
        """Fetch company reports newest-first by year then month"""
        query = self.db.query(RevenueReportRecord).filter(RevenueReportRecord.company_id == company_id)
        if year is not None:
            query = query.filter(RevenueReportRecord.report_year == year)
        if status is not None:
            query = query.filter(RevenueReportRecord.status == status.value)

        query = query.order_by(RevenueReportRecord.report_year.desc(), RevenueReportRecord.report_month.desc())
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return [_to_report(r) for r in query.all()]

    def list_all(self) -> List[RevenueReport]:
        return [_to_report(r) for r in self.db.query(RevenueReportRecord).all()]

    def set_verification(
        self,
        report_id: str,
        status: ReportStatus,
        verified_by: str,
        verified_at: datetime,
        notes: Optional[str],
    ) -> Optional[RevenueReport]:
        record = self._get_record(report_id)
        if record is None:
            return None

        record.status = status.value
        record.verified_by = verified_by
        record.verified_at = verified_at
        record.verification_notes = notes
        record.updated_at = verified_at
        self.db.flush()
        return _to_report(record)

    def _get_record(self, report_id: str) -> Optional[RevenueReportRecord]:
        report_uuid = _parse_uuid(report_id)
        if report_uuid is None:
            return None
        return self.db.get(RevenueReportRecord, report_uuid)


class SyncHistoryRepository:
    """Repository for append-only sync results"""

    def __init__(self, db: Session):
        self.db = db

    def append(self, result: SyncResult, keep: int) -> None:
        """Store a result and evict the company's oldest entries beyond keep"""
        self.db.add(
            SyncResultRecord(
                company_id=result.company_id,
                bank_account_id=result.bank_account_id,
                success=result.success,
                status=result.status.value,
                start_date=result.start_date,
                end_date=result.end_date,
                synced_at=result.synced_at,
                transactions_fetched=result.transactions_fetched,
                transactions_inserted=result.transactions_inserted,
                transactions_updated=result.transactions_updated,
                transactions_skipped=result.transactions_skipped,
                total_deposits=result.total_deposits,
                total_withdrawals=result.total_withdrawals,
                errors=list(result.errors),
                warnings=list(result.warnings),
            )
        )
        self.db.flush()

        stale_ids = [
            row.id
            for row in self.db.query(SyncResultRecord.id)
            .filter(SyncResultRecord.company_id == result.company_id)
            .order_by(SyncResultRecord.id.desc())
            .offset(keep)
            .all()
        ]
        if stale_ids:
            self.db.query(SyncResultRecord).filter(SyncResultRecord.id.in_(stale_ids)).delete(
                synchronize_session=False
            )

    def list_by_company(self, company_id: str, limit: int) -> List[SyncResult]:
        """Fetch sync results most-recent-first"""
        records = (
            self.db.query(SyncResultRecord)
            .filter(SyncResultRecord.company_id == company_id)
            .order_by(SyncResultRecord.id.desc())
            .limit(limit)
            .all()
        )
        return [_to_sync_result(r) for r in records]
