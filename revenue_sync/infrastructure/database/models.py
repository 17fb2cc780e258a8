"""SQLAlchemy ORM models for transactions, anomalies, revenue reports and sync history"""

import uuid
from sqlalchemy import (
    Column,
    String,
    Boolean,
    Float,
    DateTime,
    Integer,
    BigInteger,
    ForeignKey,
    Numeric,
    Text,
    JSON,
    UniqueConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

# Money columns: 6 places holds fee and dividend fractions of cent amounts exactly
Money = Numeric(20, 6)
# Per-share amounts of large share counts fall far below a cent
PerShare = Numeric(28, 12)


class BankTransactionRecord(Base):
    """Normalized bank transaction ingested from the gateway"""

    __tablename__ = "bank_transaction"
    __table_args__ = (
        UniqueConstraint("company_id", "bank_reference", name="uq_bank_transaction_reference"),
        Index("ix_bank_transaction_company_date", "company_id", "transaction_date"),
        Index("ix_bank_transaction_account_type", "company_id", "bank_account_id", "transaction_type"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Text, nullable=False, index=True)
    bank_account_id = Column(Text, nullable=False)
    transaction_date = Column(DateTime, nullable=False)
    transaction_type = Column(String(16), nullable=False)
    amount = Column(Money, nullable=False)
    currency = Column(String(8), nullable=False)
    balance_after = Column(Money, nullable=True)
    description = Column(Text, nullable=False, default="")
    reference = Column(Text, nullable=True)
    bank_reference = Column(Text, nullable=True)
    category = Column(String(32), nullable=False, default="uncategorized")
    status = Column(String(16), nullable=False, default="completed")
    is_anomalous = Column(Boolean, nullable=False, default=False)
    raw_data = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    anomalies = relationship("TransactionAnomalyRecord", back_populates="transaction", cascade="all, delete-orphan")


class TransactionAnomalyRecord(Base):
    """Severity-tagged finding against one transaction"""

    __tablename__ = "transaction_anomaly"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_id = Column(
        UUID(as_uuid=True), ForeignKey("bank_transaction.id", ondelete="CASCADE"), nullable=False, index=True
    )
    anomaly_type = Column(String(32), nullable=False)
    severity = Column(String(16), nullable=False)
    description = Column(Text, nullable=False)
    expected_amount = Column(Money, nullable=True)
    actual_amount = Column(Money, nullable=False)
    confidence = Column(Float, nullable=False)
    detected_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    transaction = relationship("BankTransactionRecord", back_populates="anomalies")


class RevenueReportRecord(Base):
    """Monthly revenue report; one per company and calendar month"""

    __tablename__ = "revenue_report"
    __table_args__ = (
        UniqueConstraint("company_id", "report_year", "report_month", name="uq_revenue_report_period"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Text, nullable=False, index=True)
    report_year = Column(Integer, nullable=False)
    report_month = Column(Integer, nullable=False)
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)
    total_deposits = Column(Money, nullable=False)
    total_withdrawals = Column(Money, nullable=False)
    net_revenue = Column(Money, nullable=False)
    operating_costs = Column(Money, nullable=False, default=0)
    other_expenses = Column(Money, nullable=False, default=0)
    manual_adjustments = Column(Money, nullable=False, default=0)
    gross_profit = Column(Money, nullable=False)
    platform_fee = Column(Money, nullable=False)
    net_profit = Column(Money, nullable=False)
    dividend_pool = Column(Money, nullable=False)
    reinvestment_amount = Column(Money, nullable=False)
    dividend_per_share = Column(PerShare, nullable=False)
    total_shares = Column(BigInteger, nullable=False)
    status = Column(String(32), nullable=False)
    total_transactions = Column(Integer, nullable=False, default=0)
    anomalous_transactions = Column(Integer, nullable=False, default=0)
    verified_by = Column(Text, nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    verification_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SyncResultRecord(Base):
    """Append-only sync history, capped per company"""

    __tablename__ = "sync_result"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Text, nullable=False, index=True)
    bank_account_id = Column(Text, nullable=False)
    success = Column(Boolean, nullable=False)
    status = Column(String(16), nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    synced_at = Column(DateTime(timezone=True), nullable=False)
    transactions_fetched = Column(Integer, nullable=False, default=0)
    transactions_inserted = Column(Integer, nullable=False, default=0)
    transactions_updated = Column(Integer, nullable=False, default=0)
    transactions_skipped = Column(Integer, nullable=False, default=0)
    total_deposits = Column(Money, nullable=False, default=0)
    total_withdrawals = Column(Money, nullable=False, default=0)
    errors = Column(JSON, nullable=False, default=list)
    warnings = Column(JSON, nullable=False, default=list)
