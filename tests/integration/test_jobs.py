"""Integration tests for the scheduled daily sync and monthly calculation"""

from datetime import date, datetime
from decimal import Decimal
from revenue_sync.domain.models import SyncStatus
from revenue_sync.services.jobs import StaticSharesLookup, run_daily_sync, run_monthly_revenue_calculation
from revenue_sync.services.reports import RevenueReportManager
from revenue_sync.services.sync import SyncOrchestrator


async def test_daily_sync_covers_previous_day(orchestrator: SyncOrchestrator, gateway, make_txn):
    """Test only yesterday's transactions are pulled for every account"""
    gateway.add_account(
        "acct_1",
        "company_a",
        [
            make_txn("a-old", datetime(2024, 11, 3, 10), "10"),
            make_txn("a-new", datetime(2024, 11, 4, 23, 30), "20"),
        ],
    )
    gateway.add_account("acct_2", "company_b", [make_txn("b-new", datetime(2024, 11, 4, 0, 5), "30")])

    results = await run_daily_sync(orchestrator, today=date(2024, 11, 5))

    assert {r.bank_account_id for r in results} == {"acct_1", "acct_2"}
    assert all(r.status == SyncStatus.COMPLETED for r in results)
    assert sum(r.transactions_inserted for r in results) == 2
    assert results[0].start_date == datetime(2024, 11, 4)


async def test_monthly_calculation_for_every_company(report_manager: RevenueReportManager, gateway, october_feed, make_txn):
    """Test one report per company for the previous month, with looked-up shares"""
    gateway.add_account("acct_1", "company_c", october_feed)
    gateway.add_account("acct_2", "company_c", [])
    gateway.add_account("acct_3", "company_d", [make_txn("d-1", datetime(2024, 10, 9), "5000")])
    shares = StaticSharesLookup({"company_c": 1000, "company_d": 500})

    reports = await run_monthly_revenue_calculation(report_manager, shares, today=date(2024, 11, 1))

    by_company = {r.company_id: r for r in reports}
    assert len(reports) == 2
    assert by_company["company_c"].report_month == 10
    assert by_company["company_c"].dividend_per_share == Decimal("45.6")
    assert by_company["company_d"].total_shares == 500


async def test_monthly_calculation_skips_failures(report_manager: RevenueReportManager, gateway, october_feed):
    """Test a company whose shares lookup fails is skipped"""

    class FlakyShares:
        def get_total_shares(self, company_id: str) -> int:
            if company_id == "company_bad":
                raise RuntimeError("cap table unavailable")
            return 1000

    gateway.add_account("acct_1", "company_bad", [])
    gateway.add_account("acct_2", "company_c", october_feed)

    reports = await run_monthly_revenue_calculation(report_manager, FlakyShares(), today=date(2024, 11, 1))

    assert [r.company_id for r in reports] == ["company_c"]


def test_static_shares_lookup_defaults_to_zero():
    """Test unknown companies have no shares"""
    lookup = StaticSharesLookup({"company_c": 1000})

    assert lookup.get_total_shares("company_c") == 1000
    assert lookup.get_total_shares("other") == 0
