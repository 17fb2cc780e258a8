"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

ZERO = Decimal("0")


class TransactionType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionCategory(str, Enum):
    """Closed set of categories; UNCATEGORIZED marks rows awaiting a sweep"""

    SALES = "sales"
    POS_SALE = "pos_sale"
    TRANSFER = "transfer"
    WITHDRAWAL = "withdrawal"
    SUPPLIER_PAYMENT = "supplier_payment"
    SALARY = "salary"
    RENT = "rent"
    UTILITIES = "utilities"
    TAX = "tax"
    INVENTORY = "inventory"
    EQUIPMENT = "equipment"
    MARKETING = "marketing"
    INSURANCE = "insurance"
    INTEREST = "interest"
    FEE = "fee"
    OTHER = "other"
    UNCATEGORIZED = "uncategorized"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REVERSED = "reversed"
    FLAGGED = "flagged"


class AnomalyType(str, Enum):
    UNUSUAL_AMOUNT = "unusual_amount"
    DUPLICATE = "duplicate"
    NEGATIVE_BALANCE = "negative_balance"
    MISSING_REFERENCE = "missing_reference"
    POSSIBLE_DUPLICATE = "possible_duplicate"


class Severity(str, Enum):
    """Anomaly severity, ordered low < medium < high < critical"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return list(Severity).index(self)

    @property
    def is_priority(self) -> bool:
        return self.rank >= Severity.HIGH.rank


class ReportStatus(str, Enum):
    AUTO_VERIFIED = "auto_verified"
    PENDING_REVIEW = "pending_review"
    VERIFIED = "verified"
    REJECTED = "rejected"


TERMINAL_REPORT_STATUSES = (ReportStatus.VERIFIED, ReportStatus.REJECTED)


class SyncStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class BankAccount:
    """Company account linked through the banking gateway"""

    id: str
    company_id: str
    account_number: str
    account_name: str = ""
    currency: str = "USD"
    last_sync_at: Optional[datetime] = None


@dataclass
class GatewayTransaction:
    """Raw transaction record as delivered by the banking gateway"""

    transaction_id: Optional[str]
    date: datetime
    type: str  # "credit" or "debit"
    amount: Decimal
    currency: str
    balance: Optional[Decimal]
    description: str
    reference: Optional[str] = None
    counterparty_name: Optional[str] = None
    counterparty_account: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TransactionPage:
    """One page of the gateway transaction feed"""

    transactions: List[GatewayTransaction]
    total_credits: Decimal
    total_debits: Decimal
    has_more: bool


@dataclass
class BankTransaction:
    """Normalized, stored bank transaction"""

    id: Optional[str]
    company_id: str
    bank_account_id: str
    transaction_date: datetime
    transaction_type: TransactionType
    amount: Decimal
    currency: str
    balance_after: Optional[Decimal]
    description: str
    reference: Optional[str]
    bank_reference: Optional[str]
    category: TransactionCategory = TransactionCategory.UNCATEGORIZED
    status: TransactionStatus = TransactionStatus.COMPLETED
    is_anomalous: bool = False
    raw_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TransactionAnomaly:
    transaction_id: Optional[str]
    anomaly_type: AnomalyType
    severity: Severity
    description: str
    actual_amount: Decimal
    confidence: float
    expected_amount: Optional[Decimal] = None
    detected_at: Optional[datetime] = None


@dataclass
class ProcessOutcome:
    """Result of handing one gateway record to the transaction store"""

    inserted: bool = False
    updated: bool = False
    skipped: bool = False
    low_confidence: bool = False
    transaction_id: Optional[str] = None


@dataclass
class CategorizationResult:
    categorized: int
    by_category: Dict[str, int]


@dataclass
class DetectionResult:
    anomalies: List[TransactionAnomaly]
    flagged_transaction_count: int


@dataclass
class DailyRevenue:
    date: date
    company_id: str
    total_deposits: Decimal
    deposit_count: int
    total_withdrawals: Decimal
    withdrawal_count: int
    net_revenue: Decimal


@dataclass
class RangeRevenue:
    total_deposits: Decimal
    total_withdrawals: Decimal
    net_revenue: Decimal
    daily_breakdown: List[DailyRevenue]


@dataclass
class ProfitDistribution:
    """Derived split of net revenue; always recomputed, never stored on its own"""

    net_revenue: Decimal
    platform_fee: Decimal
    net_profit: Decimal
    dividend_pool: Decimal
    reinvestment_amount: Decimal


@dataclass
class SyncResult:
    """Outcome of one sync run against one bank account"""

    company_id: str
    bank_account_id: str
    start_date: datetime
    end_date: datetime
    synced_at: datetime
    success: bool = False
    status: SyncStatus = SyncStatus.IN_PROGRESS
    transactions_fetched: int = 0
    transactions_inserted: int = 0
    transactions_updated: int = 0
    transactions_skipped: int = 0
    total_deposits: Decimal = ZERO
    total_withdrawals: Decimal = ZERO
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class RevenueReport:
    id: str
    company_id: str
    report_year: int
    report_month: int
    period_start: datetime
    period_end: datetime
    total_deposits: Decimal
    total_withdrawals: Decimal
    net_revenue: Decimal
    operating_costs: Decimal
    other_expenses: Decimal
    manual_adjustments: Decimal
    gross_profit: Decimal
    platform_fee: Decimal
    net_profit: Decimal
    dividend_pool: Decimal
    reinvestment_amount: Decimal
    dividend_per_share: Decimal
    total_shares: int
    status: ReportStatus
    total_transactions: int
    anomalous_transactions: int
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    verification_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class RevenueReportDetail:
    """Report with the breakdowns an auditor reviews alongside it"""

    report: Optional[RevenueReport]
    daily_breakdown: List[DailyRevenue]
    category_breakdown: Dict[str, Decimal]
    anomalies: List[TransactionAnomaly]


@dataclass
class RevenueSummary:
    company_id: str
    company_name: str
    current_month_revenue: Decimal = ZERO
    current_month_profit: Decimal = ZERO
    current_month_dividend: Decimal = ZERO
    ytd_revenue: Decimal = ZERO
    ytd_profit: Decimal = ZERO
    ytd_dividends: Decimal = ZERO
    last_month_revenue: Decimal = ZERO
    last_month_profit: Decimal = ZERO
    revenue_growth: Decimal = ZERO
    profit_growth: Decimal = ZERO
    average_monthly_revenue: Decimal = ZERO
    average_monthly_profit: Decimal = ZERO
    average_dividend_yield: Decimal = ZERO
    total_reports: int = 0
    consecutive_profitable_months: int = 0


@dataclass
class RevenueStats:
    total_reports: int
    by_status: Dict[str, int]
    total_revenue: Decimal
    total_dividends: Decimal
    total_platform_fees: Decimal
