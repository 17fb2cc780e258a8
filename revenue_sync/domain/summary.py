"""Revenue summary - year-to-date and trend analytics over report history"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from revenue_sync.domain.models import RevenueReport, RevenueStats, RevenueSummary, ZERO
from revenue_sync.utils.date_utils import utc_today

CENTS = Decimal("0.01")
HUNDRED = Decimal("100")


def _round(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def growth_percent(current: Decimal, previous: Optional[Decimal]) -> Decimal:
    """Percentage change from previous to current; 0 when there is no usable baseline"""
    if previous is None or previous == 0:
        return ZERO
    return (current - previous) / previous * HUNDRED


def dividend_yield(report: RevenueReport) -> Decimal:
    if report.net_revenue == 0:
        return ZERO
    return report.dividend_pool / report.net_revenue * HUNDRED


def consecutive_profitable_months(reports: List[RevenueReport]) -> int:
    """Streak of net_profit > 0 walking newest-first, stopping at the first miss"""
    streak = 0
    for report in reports:
        if report.net_profit > 0:
            streak += 1
        else:
            break
    return streak


def sort_newest_first(reports: List[RevenueReport]) -> List[RevenueReport]:
    return sorted(reports, key=lambda r: (r.report_year, r.report_month), reverse=True)


def build_revenue_summary(
    company_id: str,
    company_name: str,
    reports: List[RevenueReport],
    today: Optional[date] = None,
) -> RevenueSummary:
    """
    Derive the company revenue summary from its report history.

    - YTD sums cover reports in today's calendar year
    - Growth compares the newest report to the one before it
    - Averages span the whole history

    An empty history yields an all-zero summary.
    """
    if not reports:
        return RevenueSummary(company_id=company_id, company_name=company_name)

    today = today or utc_today()
    ordered = sort_newest_first(reports)
    current = ordered[0]
    previous = ordered[1] if len(ordered) > 1 else None
    count = Decimal(len(ordered))

    ytd = [r for r in ordered if r.report_year == today.year]

    return RevenueSummary(
        company_id=company_id,
        company_name=company_name,
        current_month_revenue=current.net_revenue,
        current_month_profit=current.net_profit,
        current_month_dividend=current.dividend_pool,
        ytd_revenue=_round(sum((r.net_revenue for r in ytd), ZERO)),
        ytd_profit=_round(sum((r.net_profit for r in ytd), ZERO)),
        ytd_dividends=_round(sum((r.dividend_pool for r in ytd), ZERO)),
        last_month_revenue=previous.net_revenue if previous else ZERO,
        last_month_profit=previous.net_profit if previous else ZERO,
        revenue_growth=_round(
            growth_percent(current.net_revenue, previous.net_revenue if previous else None)
        ),
        profit_growth=_round(
            growth_percent(current.net_profit, previous.net_profit if previous else None)
        ),
        average_monthly_revenue=_round(sum((r.net_revenue for r in ordered), ZERO) / count),
        average_monthly_profit=_round(sum((r.net_profit for r in ordered), ZERO) / count),
        average_dividend_yield=_round(sum((dividend_yield(r) for r in ordered), ZERO) / count),
        total_reports=len(ordered),
        consecutive_profitable_months=consecutive_profitable_months(ordered),
    )


def build_revenue_stats(reports: List[RevenueReport]) -> RevenueStats:
    """Aggregate counts by status and platform-wide totals"""
    by_status: dict = {}
    for report in reports:
        by_status[report.status.value] = by_status.get(report.status.value, 0) + 1

    return RevenueStats(
        total_reports=len(reports),
        by_status=by_status,
        total_revenue=_round(sum((r.net_revenue for r in reports), ZERO)),
        total_dividends=_round(sum((r.dividend_pool for r in reports), ZERO)),
        total_platform_fees=_round(sum((r.platform_fee for r in reports), ZERO)),
    )
