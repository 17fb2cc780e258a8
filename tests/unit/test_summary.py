"""Unit tests for revenue summary and stats aggregation"""

from datetime import date, datetime
from decimal import Decimal
from revenue_sync.domain.distribution import calculate_profit_distribution
from revenue_sync.domain.models import ReportStatus, RevenueReport
from revenue_sync.domain.summary import (
    build_revenue_stats,
    build_revenue_summary,
    consecutive_profitable_months,
    growth_percent,
)


def make_report(year: int, month: int, net_revenue: str, status: ReportStatus = ReportStatus.AUTO_VERIFIED) -> RevenueReport:
    dist = calculate_profit_distribution(Decimal(net_revenue))
    return RevenueReport(
        id=f"{year}-{month}",
        company_id="company_c",
        report_year=year,
        report_month=month,
        period_start=datetime(year, month, 1),
        period_end=datetime(year, month, 28),
        total_deposits=max(dist.net_revenue, Decimal("0")),
        total_withdrawals=Decimal("0"),
        net_revenue=dist.net_revenue,
        operating_costs=Decimal("0"),
        other_expenses=Decimal("0"),
        manual_adjustments=Decimal("0"),
        gross_profit=dist.net_revenue,
        platform_fee=dist.platform_fee,
        net_profit=dist.net_profit,
        dividend_pool=dist.dividend_pool,
        reinvestment_amount=dist.reinvestment_amount,
        dividend_per_share=Decimal("0"),
        total_shares=0,
        status=status,
        total_transactions=0,
        anomalous_transactions=0,
    )


def test_profitable_streak_stops_at_first_loss():
    """Test streak over net profits [+5, +3, -1, +9] newest-first is 2"""
    reports = [
        make_report(2024, 10, "5"),
        make_report(2024, 9, "3"),
        make_report(2024, 8, "-1"),
        make_report(2024, 7, "9"),
    ]

    assert consecutive_profitable_months(reports) == 2


def test_summary_sorts_newest_first_before_streak():
    """Test streak is computed on reports regardless of input order"""
    reports = [
        make_report(2024, 7, "9"),
        make_report(2024, 8, "-1"),
        make_report(2024, 10, "5"),
        make_report(2024, 9, "3"),
    ]

    summary = build_revenue_summary("company_c", "Company C", reports, today=date(2024, 11, 5))

    assert summary.consecutive_profitable_months == 2
    assert summary.total_reports == 4


def test_summary_empty_history():
    """Test zero reports gives an all-zero summary"""
    summary = build_revenue_summary("company_c", "Company C", [])

    assert summary.total_reports == 0
    assert summary.ytd_revenue == Decimal("0")
    assert summary.revenue_growth == Decimal("0")
    assert summary.consecutive_profitable_months == 0


def test_summary_growth_and_ytd():
    """Test month-over-month growth and year-to-date sums"""
    reports = [
        make_report(2024, 10, "110000"),
        make_report(2024, 9, "100000"),
        make_report(2023, 12, "50000"),
    ]

    summary = build_revenue_summary("company_c", "Company C", reports, today=date(2024, 11, 5))

    assert summary.current_month_revenue == Decimal("110000")
    assert summary.last_month_revenue == Decimal("100000")
    assert summary.revenue_growth == Decimal("10.00")
    assert summary.profit_growth == Decimal("10.00")
    assert summary.ytd_revenue == Decimal("210000.00")
    assert summary.ytd_dividends == Decimal("119700.00")
    assert summary.average_monthly_revenue == Decimal("86666.67")
    # Dividend pool is 57% of net revenue for every profitable report
    assert summary.average_dividend_yield == Decimal("57.00")


def test_growth_without_usable_baseline_is_zero():
    """Test no prior report and a zero prior value both give 0 growth"""
    assert growth_percent(Decimal("500"), None) == Decimal("0")
    assert growth_percent(Decimal("500"), Decimal("0")) == Decimal("0")

    reports = [make_report(2024, 10, "1000"), make_report(2024, 9, "0")]
    summary = build_revenue_summary("company_c", "Company C", reports, today=date(2024, 11, 5))

    assert summary.revenue_growth == Decimal("0")
    # Zero-revenue month contributes 0 to the yield average
    assert summary.average_dividend_yield == Decimal("28.50")


def test_revenue_stats():
    """Test counts by status and platform-wide totals"""
    reports = [
        make_report(2024, 10, "80000"),
        make_report(2024, 9, "20000", status=ReportStatus.PENDING_REVIEW),
        make_report(2024, 8, "10000", status=ReportStatus.VERIFIED),
    ]

    stats = build_revenue_stats(reports)

    assert stats.total_reports == 3
    assert stats.by_status == {"auto_verified": 1, "pending_review": 1, "verified": 1}
    assert stats.total_revenue == Decimal("110000.00")
    assert stats.total_platform_fees == Decimal("5500.00")
    assert stats.total_dividends == Decimal("62700.00")
