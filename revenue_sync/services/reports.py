"""Revenue report lifecycle - monthly report creation, verification and queries"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import AsyncIterator, Dict, List, Optional, Tuple, Union

from revenue_sync.domain.categorization import get_category_display_name
from revenue_sync.domain.distribution import (
    calculate_dividend_per_share,
    calculate_net_revenue,
    calculate_profit_distribution,
)
from revenue_sync.domain.exceptions import (
    BankAccountNotFoundError,
    InvalidReportStatusError,
    ReportNotFoundError,
)
from revenue_sync.domain.models import (
    ReportStatus,
    RevenueReport,
    RevenueReportDetail,
    RevenueStats,
    RevenueSummary,
    TERMINAL_REPORT_STATUSES,
    TransactionType,
    ZERO,
)
from revenue_sync.domain.summary import build_revenue_stats, build_revenue_summary
from revenue_sync.infrastructure.database.repositories import ReportRepository
from revenue_sync.infrastructure.database.session import RevenueStore
from revenue_sync.infrastructure.observability.logging import log_report_created
from revenue_sync.infrastructure.observability.metrics import (
    report_created_counter,
    report_verification_counter,
)
from revenue_sync.services.anomalies import AnomalyDetector
from revenue_sync.services.sync import SyncOrchestrator
from revenue_sync.services.transaction_store import TransactionStore
from revenue_sync.utils.date_utils import month_bounds, utc_today

logger = logging.getLogger(__name__)


class RevenueReportManager:
    """Builds monthly revenue reports and governs their review state"""

    def __init__(
        self,
        store: RevenueStore,
        sync: SyncOrchestrator,
        transaction_store: Optional[TransactionStore] = None,
        anomaly_detector: Optional[AnomalyDetector] = None,
    ):
        self.store = store
        self.sync = sync
        self.transaction_store = transaction_store or sync.transaction_store
        self.anomaly_detector = anomaly_detector or AnomalyDetector(store, self.transaction_store.thresholds)
        # period -> (lock, callers holding or awaiting it)
        self._period_locks: Dict[Tuple[str, int, int], Tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def _period_lock(self, period: Tuple[str, int, int]) -> AsyncIterator[None]:
        lock, users = self._period_locks.get(period, (asyncio.Lock(), 0))
        self._period_locks[period] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._period_locks[period]
            if users == 1:
                del self._period_locks[period]
            else:
                self._period_locks[period] = (lock, users - 1)

    async def calculate_monthly_revenue(
        self,
        company_id: str,
        year: int,
        month: int,
        total_shares: int,
        operating_costs: Decimal = ZERO,
        other_expenses: Decimal = ZERO,
        manual_adjustments: Decimal = ZERO,
    ) -> RevenueReport:
        """
        Create the revenue report for one company and calendar month.

        Steps:
        1. Return the stored report if the period already has one
        2. Sync the exact period so the report reflects the freshest feed
        3. Aggregate deposits and withdrawals and split the net revenue
        4. Count in-period transactions and anomalous ones
        5. Insert the report, PENDING_REVIEW when any transaction is anomalous

        Calls for the same period are serialized by a per-period lock, and the
        store's unique constraint settles races across processes.

        Example:
            deposits 100000, withdrawals 20000, 1000 shares →
            net revenue 80000, dividend pool 45600, 45.6 per share
        """
        async with self._period_lock((company_id, year, month)):
            existing = self.get_revenue_report_for_month(company_id, year, month)
            if existing is not None:
                logger.info(
                    "Revenue report already exists for period",
                    extra={"company_id": company_id, "period": f"{year}-{month:02d}", "report_id": existing.id},
                )
                return existing

            period_start, period_end = month_bounds(year, month)

            try:
                await self.sync.sync_transactions(company_id, from_date=period_start, to_date=period_end)
            except BankAccountNotFoundError:
                logger.warning(
                    "No bank account to sync; reporting on stored transactions",
                    extra={"company_id": company_id, "period": f"{year}-{month:02d}"},
                )

            revenue = self.transaction_store.calculate_net_revenue_for_range(company_id, period_start, period_end)
            net_revenue = calculate_net_revenue(
                revenue.total_deposits,
                revenue.total_withdrawals,
                operating_costs=Decimal(operating_costs),
                other_expenses=Decimal(other_expenses),
                manual_adjustments=Decimal(manual_adjustments),
            )
            distribution = calculate_profit_distribution(net_revenue)

            transactions = self.transaction_store.get_transactions(
                company_id, from_date=period_start, to_date=period_end
            )
            anomalous_count = sum(1 for t in transactions if t.is_anomalous)

            now = datetime.now(timezone.utc)
            report = RevenueReport(
                id=str(uuid.uuid4()),
                company_id=company_id,
                report_year=year,
                report_month=month,
                period_start=period_start,
                period_end=period_end,
                total_deposits=revenue.total_deposits,
                total_withdrawals=revenue.total_withdrawals,
                net_revenue=distribution.net_revenue,
                operating_costs=Decimal(operating_costs),
                other_expenses=Decimal(other_expenses),
                manual_adjustments=Decimal(manual_adjustments),
                gross_profit=distribution.net_revenue,
                platform_fee=distribution.platform_fee,
                net_profit=distribution.net_profit,
                dividend_pool=distribution.dividend_pool,
                reinvestment_amount=distribution.reinvestment_amount,
                dividend_per_share=calculate_dividend_per_share(distribution.dividend_pool, total_shares),
                total_shares=total_shares,
                status=ReportStatus.PENDING_REVIEW if anomalous_count > 0 else ReportStatus.AUTO_VERIFIED,
                total_transactions=len(transactions),
                anomalous_transactions=anomalous_count,
                created_at=now,
                updated_at=now,
            )

            with self.store.session() as db:
                stored, created = ReportRepository(db).insert_if_absent(report)

            if created:
                report_created_counter.labels(status=stored.status.value).inc()
                log_report_created(stored)
            return stored

    def verify_revenue_report(
        self,
        report_id: str,
        admin_id: str,
        status: Union[ReportStatus, str],
        notes: Optional[str] = None,
    ) -> RevenueReport:
        """
        Record an administrator's verdict on a report.

        Raises:
            InvalidReportStatusError: status is not VERIFIED or REJECTED
            ReportNotFoundError: report_id is unknown
        """
        try:
            status = ReportStatus(status)
        except ValueError as e:
            raise InvalidReportStatusError(f"Unknown report status: {status}") from e
        if status not in TERMINAL_REPORT_STATUSES:
            raise InvalidReportStatusError(f"Reports can only be marked verified or rejected, not {status.value}")

        with self.store.session() as db:
            report = ReportRepository(db).set_verification(
                report_id,
                status=status,
                verified_by=admin_id,
                verified_at=datetime.now(timezone.utc),
                notes=notes,
            )
        if report is None:
            raise ReportNotFoundError(f"Revenue report not found: {report_id}")

        report_verification_counter.labels(status=status.value).inc()
        logger.info(
            "Revenue report verified",
            extra={"report_id": report_id, "admin_id": admin_id, "report_status": status.value},
        )
        return report

    def get_revenue_report(self, report_id: str) -> RevenueReport:
        with self.store.session() as db:
            report = ReportRepository(db).get(report_id)
        if report is None:
            raise ReportNotFoundError(f"Revenue report not found: {report_id}")
        return report

    def get_revenue_reports_by_company(
        self,
        company_id: str,
        year: Optional[int] = None,
        status: Optional[ReportStatus] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[RevenueReport]:
        with self.store.session() as db:
            return ReportRepository(db).list_by_company(company_id, year=year, status=status, limit=limit, offset=offset)

    def get_revenue_report_for_month(self, company_id: str, year: int, month: int) -> Optional[RevenueReport]:
        with self.store.session() as db:
            return ReportRepository(db).get_for_month(company_id, year, month)

    def get_current_month_revenue(self, company_id: str, today: Optional[date] = None) -> Optional[RevenueReport]:
        today = today or utc_today()
        return self.get_revenue_report_for_month(company_id, today.year, today.month)

    def get_revenue_stats(self) -> RevenueStats:
        with self.store.session() as db:
            reports = ReportRepository(db).list_all()
        return build_revenue_stats(reports)

    def get_revenue_summary(self, company_id: str, company_name: str, today: Optional[date] = None) -> RevenueSummary:
        return build_revenue_summary(company_id, company_name, self.get_revenue_reports_by_company(company_id), today)

    def generate_revenue_report(self, company_id: str, year: int, month: int) -> RevenueReportDetail:
        """
        Assemble a report with its daily breakdown, debit totals by category
        and the company's anomalies. Empty detail when the report is absent.
        """
        report = self.get_revenue_report_for_month(company_id, year, month)
        if report is None:
            return RevenueReportDetail(report=None, daily_breakdown=[], category_breakdown={}, anomalies=[])

        period_start, period_end = month_bounds(year, month)
        revenue = self.transaction_store.calculate_net_revenue_for_range(company_id, period_start, period_end)

        category_breakdown: Dict[str, Decimal] = {}
        for txn in self.transaction_store.get_transactions(
            company_id, from_date=period_start, to_date=period_end, transaction_type=TransactionType.DEBIT
        ):
            name = get_category_display_name(txn.category)
            category_breakdown[name] = category_breakdown.get(name, ZERO) + txn.amount

        return RevenueReportDetail(
            report=report,
            daily_breakdown=revenue.daily_breakdown,
            category_breakdown=category_breakdown,
            anomalies=self.anomaly_detector.detect_anomalies(company_id).anomalies,
        )
