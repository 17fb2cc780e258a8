"""Sync orchestrator - paginated ingestion from the banking gateway"""

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from revenue_sync.config import Settings, settings as default_settings
from revenue_sync.domain.exceptions import BankAccountNotFoundError
from revenue_sync.domain.models import BankAccount, SyncResult, SyncStatus
from revenue_sync.infrastructure.clients.bank import BankGateway
from revenue_sync.infrastructure.database.repositories import SyncHistoryRepository
from revenue_sync.infrastructure.database.session import RevenueStore
from revenue_sync.infrastructure.observability.logging import log_sync_result
from revenue_sync.infrastructure.observability.metrics import record_sync_result
from revenue_sync.services.transaction_store import TransactionStore
from revenue_sync.utils.date_utils import utc_now

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Pulls gateway feeds into the transaction store one account at a time"""

    def __init__(
        self,
        gateway: BankGateway,
        store: RevenueStore,
        transaction_store: Optional[TransactionStore] = None,
        settings: Optional[Settings] = None,
    ):
        self.gateway = gateway
        self.store = store
        self.transaction_store = transaction_store or TransactionStore(store)
        self.settings = settings or default_settings

    async def sync_transactions(
        self,
        company_id: str,
        bank_account_id: Optional[str] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        force: bool = False,
    ) -> SyncResult:
        """
        Sync one account's transactions for a date range.

        Pages are fetched sequentially in fixed batches until the gateway
        reports no more data or the page ceiling is hit. Re-running the same
        range is safe: known transactions are skipped, or updated with force.

        Args:
            company_id: Company owning the account
            bank_account_id: Account to sync (first company account when omitted)
            from_date: Range start (defaults to settings.default_sync_days ago)
            to_date: Range end (defaults to now)
            force: Update already-stored transactions instead of skipping them

        Returns:
            SyncResult, COMPLETED or FAILED; counts accumulated before a
            failure are preserved

        Raises:
            BankAccountNotFoundError: No account resolves for the company
        """
        account = await self._resolve_account(company_id, bank_account_id)

        to_date = to_date or utc_now()
        from_date = from_date or (to_date - timedelta(days=self.settings.default_sync_days))

        result = SyncResult(
            company_id=company_id,
            bank_account_id=account.id,
            start_date=from_date,
            end_date=to_date,
            synced_at=datetime.now(timezone.utc),
        )
        started = time.perf_counter()

        try:
            await self._sync_pages(account, result, force)

            await self.gateway.update_bank_account(account.id, last_sync_at=datetime.now(timezone.utc))
            result.success = True
            result.status = SyncStatus.COMPLETED

        except Exception as e:
            result.success = False
            result.status = SyncStatus.FAILED
            result.errors.append(str(e) or e.__class__.__name__)
            logger.exception("Sync failed", extra={"company_id": company_id, "bank_account_id": account.id})

        with self.store.session() as db:
            SyncHistoryRepository(db).append(result, keep=self.settings.sync_history_limit)

        record_sync_result(result)
        log_sync_result(result, duration_ms=(time.perf_counter() - started) * 1000)
        return result

    async def _resolve_account(self, company_id: str, bank_account_id: Optional[str]) -> BankAccount:
        if bank_account_id:
            account = await self.gateway.get_bank_account(bank_account_id)
        else:
            accounts = await self.gateway.get_bank_accounts_by_company(company_id)
            account = accounts[0] if accounts else None

        if account is None:
            raise BankAccountNotFoundError(f"No bank account found for company {company_id}")
        return account

    async def _sync_pages(self, account: BankAccount, result: SyncResult, force: bool) -> None:
        page = 1
        while True:
            response = await self.gateway.fetch_transactions(
                account.id,
                account.account_number,
                result.start_date,
                result.end_date,
                page=page,
                limit=self.settings.sync_batch_size,
            )

            result.transactions_fetched += len(response.transactions)
            for raw in response.transactions:
                outcome = self.transaction_store.process_incoming(result.company_id, account.id, raw, force)
                if outcome.inserted:
                    result.transactions_inserted += 1
                elif outcome.updated:
                    result.transactions_updated += 1
                else:
                    result.transactions_skipped += 1

                if outcome.low_confidence:
                    result.warnings.append(
                        f"Low-confidence duplicate match for transaction {outcome.transaction_id}; "
                        f"flagged for manual review"
                    )

            result.total_deposits += response.total_credits
            result.total_withdrawals += response.total_debits

            if not response.has_more:
                return

            if page >= self.settings.sync_max_pages:
                result.warnings.append(f"Reached maximum page limit ({self.settings.sync_max_pages})")
                return
            page += 1

    async def sync_all_accounts(
        self,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> List[SyncResult]:
        """
        Sync every known account concurrently.

        Concurrency is bounded by settings.sync_concurrency. An account that
        raises is logged and omitted; the others still complete.
        """
        accounts = await self.gateway.get_all_bank_accounts()
        semaphore = asyncio.Semaphore(self.settings.sync_concurrency)

        logger.info("Starting sync for all accounts", extra={"account_count": len(accounts)})

        async def sync_one(account: BankAccount) -> Optional[SyncResult]:
            async with semaphore:
                try:
                    return await self.sync_transactions(
                        account.company_id,
                        bank_account_id=account.id,
                        from_date=from_date,
                        to_date=to_date,
                    )
                except Exception:
                    logger.exception(
                        "Failed to sync account",
                        extra={"company_id": account.company_id, "bank_account_id": account.id},
                    )
                    return None

        results = await asyncio.gather(*(sync_one(account) for account in accounts))
        return [result for result in results if result is not None]

    def get_sync_history(self, company_id: str, limit: Optional[int] = None) -> List[SyncResult]:
        """Sync results for a company, most recent first"""
        with self.store.session() as db:
            return SyncHistoryRepository(db).list_by_company(
                company_id, limit=limit or self.settings.sync_history_limit
            )
