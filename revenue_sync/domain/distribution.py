"""Profit distribution - splits net revenue into platform fee, dividends and reinvestment"""

from decimal import Decimal

from revenue_sync.domain.models import ProfitDistribution, ZERO

PLATFORM_FEE_RATE = Decimal("0.05")
DIVIDEND_POOL_RATE = Decimal("0.60")
REINVESTMENT_RATE = Decimal("1") - DIVIDEND_POOL_RATE


def calculate_net_revenue(
    total_deposits: Decimal,
    total_withdrawals: Decimal,
    operating_costs: Decimal = ZERO,
    other_expenses: Decimal = ZERO,
    manual_adjustments: Decimal = ZERO,
) -> Decimal:
    """Deposits minus withdrawals and costs, plus manual adjustments"""
    return total_deposits - total_withdrawals - operating_costs - other_expenses + manual_adjustments


def calculate_profit_distribution(net_revenue: Decimal) -> ProfitDistribution:
    """
    Split net revenue according to platform policy.

    Rules:
    - Platform fee: 5% of net revenue
    - Net profit: net revenue minus platform fee
    - Dividend pool: 60% of net profit
    - Reinvestment: remainder of net profit after the dividend pool

    Reinvestment is derived as a remainder, never computed independently,
    so dividend_pool + reinvestment_amount == net_profit exactly.

    Example:
        80000 → fee 4000, net profit 76000, dividends 45600, reinvestment 30400
    """
    net_revenue = Decimal(net_revenue)
    platform_fee = net_revenue * PLATFORM_FEE_RATE
    net_profit = net_revenue - platform_fee
    dividend_pool = net_profit * DIVIDEND_POOL_RATE
    reinvestment_amount = net_profit - dividend_pool

    return ProfitDistribution(
        net_revenue=net_revenue,
        platform_fee=platform_fee,
        net_profit=net_profit,
        dividend_pool=dividend_pool,
        reinvestment_amount=reinvestment_amount,
    )


def calculate_dividend_per_share(dividend_pool: Decimal, total_shares: int) -> Decimal:
    """Dividend pool spread over outstanding shares; zero shares yields zero"""
    if total_shares <= 0:
        return ZERO
    return Decimal(dividend_pool) / Decimal(total_shares)
