"""Pytest fixtures for testing"""

import pytest
from datetime import datetime
from decimal import Decimal
from typing import Dict, Generator, List, Optional
from revenue_sync.config import Settings
from revenue_sync.domain.exceptions import BankAPIError
from revenue_sync.domain.models import BankAccount, GatewayTransaction, TransactionPage
from revenue_sync.infrastructure.database.session import RevenueStore
from revenue_sync.services.reports import RevenueReportManager
from revenue_sync.services.sync import SyncOrchestrator
from revenue_sync.services.transaction_store import TransactionStore


class FakeGateway:
    """In-memory banking gateway serving paged feeds per account"""

    def __init__(self):
        self.accounts: Dict[str, BankAccount] = {}
        self.feeds: Dict[str, List[GatewayTransaction]] = {}
        self.fail_on_page: Dict[str, int] = {}
        self.always_has_more = False
        self.pages_fetched: List[int] = []

    def add_account(self, account_id: str, company_id: str, transactions: Optional[List[GatewayTransaction]] = None):
        self.accounts[account_id] = BankAccount(
            id=account_id,
            company_id=company_id,
            account_number=f"ACC-{account_id}",
            account_name=f"{company_id} operating",
        )
        self.feeds[account_id] = list(transactions or [])
        return self.accounts[account_id]

    async def get_bank_account(self, account_id: str) -> Optional[BankAccount]:
        return self.accounts.get(account_id)

    async def get_bank_accounts_by_company(self, company_id: str) -> List[BankAccount]:
        return [a for a in self.accounts.values() if a.company_id == company_id]

    async def get_all_bank_accounts(self) -> List[BankAccount]:
        return list(self.accounts.values())

    async def update_bank_account(self, account_id: str, last_sync_at: datetime) -> None:
        self.accounts[account_id].last_sync_at = last_sync_at

    async def fetch_transactions(
        self,
        account_id: str,
        account_number: str,
        from_date: datetime,
        to_date: datetime,
        page: int,
        limit: int,
    ) -> TransactionPage:
        self.pages_fetched.append(page)
        if self.fail_on_page.get(account_id) == page:
            raise BankAPIError("Bank API error: 503")

        in_range = [t for t in self.feeds[account_id] if from_date <= t.date <= to_date]
        batch = in_range[(page - 1) * limit : page * limit]
        return TransactionPage(
            transactions=batch,
            total_credits=sum((t.amount for t in batch if t.type == "credit"), Decimal("0")),
            total_debits=sum((t.amount for t in batch if t.type == "debit"), Decimal("0")),
            has_more=self.always_has_more or page * limit < len(in_range),
        )


def _gateway_txn(
    transaction_id: Optional[str],
    when: datetime,
    amount: str,
    type: str = "credit",
    description: str = "Customer payment",
    balance: Optional[str] = "50000",
) -> GatewayTransaction:
    return GatewayTransaction(
        transaction_id=transaction_id,
        date=when,
        type=type,
        amount=Decimal(amount),
        currency="USD",
        balance=Decimal(balance) if balance is not None else None,
        description=description,
        reference=f"INV-{transaction_id}" if transaction_id else None,
        raw={"transactionId": transaction_id, "amount": amount, "type": type},
    )


@pytest.fixture
def make_txn():
    """Factory for gateway feed records"""
    return _gateway_txn


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url="sqlite://",
        sync_batch_size=2,
        sync_max_pages=100,
        bank_retry_delay_seconds=0,
    )


@pytest.fixture
def store() -> Generator[RevenueStore, None, None]:
    """Create in-memory test database"""
    store = RevenueStore("sqlite://")
    store.create_all()
    try:
        yield store
    finally:
        store.dispose()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def transaction_store(store: RevenueStore) -> TransactionStore:
    return TransactionStore(store)


@pytest.fixture
def orchestrator(gateway: FakeGateway, store: RevenueStore, transaction_store: TransactionStore, test_settings: Settings):
    return SyncOrchestrator(gateway, store, transaction_store, settings=test_settings)


@pytest.fixture
def report_manager(store: RevenueStore, orchestrator: SyncOrchestrator) -> RevenueReportManager:
    return RevenueReportManager(store, orchestrator)


@pytest.fixture
def october_feed(make_txn) -> List[GatewayTransaction]:
    """Company C, October 2024: deposits 100000, withdrawals 20000, all clean"""
    return [
        make_txn("oct-1", datetime(2024, 10, 1, 9), "25000", description="Invoice 1001 settlement"),
        make_txn("oct-2", datetime(2024, 10, 8, 9), "25000", description="Invoice 1002 settlement"),
        make_txn("oct-3", datetime(2024, 10, 15, 9), "25000", description="Invoice 1003 settlement"),
        make_txn("oct-4", datetime(2024, 10, 22, 9), "25000", description="Invoice 1004 settlement"),
        make_txn("oct-5", datetime(2024, 10, 10, 9), "12000", type="debit", description="Monthly payroll"),
        make_txn("oct-6", datetime(2024, 10, 20, 9), "8000", type="debit", description="Office rent"),
    ]
