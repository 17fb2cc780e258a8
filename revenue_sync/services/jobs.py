"""Scheduled entry points for the daily sync and the monthly revenue calculation"""

import logging
from datetime import date
from typing import Dict, List, Optional, Protocol

from revenue_sync.domain.models import RevenueReport, SyncResult
from revenue_sync.services.reports import RevenueReportManager
from revenue_sync.services.sync import SyncOrchestrator
from revenue_sync.utils.date_utils import previous_day_bounds, previous_month, utc_today

logger = logging.getLogger(__name__)


class SharesLookup(Protocol):
    """Source of outstanding share counts per company"""

    def get_total_shares(self, company_id: str) -> int:
        ...


class StaticSharesLookup:
    """Share counts from a fixed mapping; unknown companies have none"""

    def __init__(self, shares: Dict[str, int]):
        self.shares = dict(shares)

    def get_total_shares(self, company_id: str) -> int:
        return self.shares.get(company_id, 0)


async def run_daily_sync(sync: SyncOrchestrator, today: Optional[date] = None) -> List[SyncResult]:
    """Sync every account for the previous calendar day"""
    from_date, to_date = previous_day_bounds(today or utc_today())
    logger.info("Daily sync started", extra={"from_date": from_date.isoformat(), "to_date": to_date.isoformat()})

    results = await sync.sync_all_accounts(from_date=from_date, to_date=to_date)

    failed = [r for r in results if not r.success]
    logger.info(
        "Daily sync finished",
        extra={"accounts_synced": len(results), "accounts_failed": len(failed)},
    )
    return results


async def run_monthly_revenue_calculation(
    reports: RevenueReportManager,
    shares_lookup: SharesLookup,
    today: Optional[date] = None,
) -> List[RevenueReport]:
    """
    Create last month's revenue report for every company with a bank account.

    Companies are processed one after another; a company whose calculation
    raises is logged and skipped.

    Returns:
        Reports for the companies that succeeded
    """
    year, month = previous_month(today or utc_today())
    accounts = await reports.sync.gateway.get_all_bank_accounts()

    company_ids: List[str] = []
    for account in accounts:
        if account.company_id not in company_ids:
            company_ids.append(account.company_id)

    logger.info(
        "Monthly revenue calculation started",
        extra={"period": f"{year}-{month:02d}", "company_count": len(company_ids)},
    )

    created: List[RevenueReport] = []
    for company_id in company_ids:
        try:
            total_shares = shares_lookup.get_total_shares(company_id)
            created.append(await reports.calculate_monthly_revenue(company_id, year, month, total_shares))
        except Exception:
            logger.exception(
                "Monthly revenue calculation failed",
                extra={"company_id": company_id, "period": f"{year}-{month:02d}"},
            )

    return created
