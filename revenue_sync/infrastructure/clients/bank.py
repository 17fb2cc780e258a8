"""Banking gateway HTTP client for accounts and paginated transaction feeds"""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Protocol

import httpx

from revenue_sync.config import settings
from revenue_sync.domain.exceptions import BankAPIError, InvalidTransactionDataError
from revenue_sync.domain.models import BankAccount, GatewayTransaction, TransactionPage
from revenue_sync.infrastructure.observability.metrics import (
    bank_fetch_failures_counter,
    bank_fetch_latency_histogram,
)

logger = logging.getLogger(__name__)

# Rate limiting is the only 4xx worth retrying
RETRYABLE_STATUS_CODES = {429}


class BankGateway(Protocol):
    """Functional contract the sync orchestrator needs from the banking gateway"""

    async def get_bank_account(self, account_id: str) -> Optional[BankAccount]:
        ...

    async def get_bank_accounts_by_company(self, company_id: str) -> List[BankAccount]:
        ...

    async def get_all_bank_accounts(self) -> List[BankAccount]:
        ...

    async def update_bank_account(self, account_id: str, last_sync_at: datetime) -> None:
        ...

    async def fetch_transactions(
        self,
        account_id: str,
        account_number: str,
        from_date: datetime,
        to_date: datetime,
        page: int,
        limit: int,
    ) -> TransactionPage:
        ...


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO date or datetime into a naive UTC datetime"""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _decimal(value: Any) -> Decimal:
    # Via str so JSON floats keep their printed digits
    return Decimal(str(value))


def parse_transaction(data: Dict[str, Any]) -> GatewayTransaction:
    """
    Convert one gateway feed record into a GatewayTransaction.

    Raises:
        InvalidTransactionDataError: Missing fields, unknown type or non-numeric amounts
    """
    try:
        txn_type = data["type"]
        if txn_type not in ("credit", "debit"):
            raise ValueError(f"unknown transaction type {txn_type!r}")
        balance = data.get("balance")
        return GatewayTransaction(
            transaction_id=data.get("transactionId") or None,
            date=parse_timestamp(data["date"]),
            type=txn_type,
            amount=_decimal(data["amount"]),
            currency=data.get("currency") or "USD",
            balance=_decimal(balance) if balance is not None else None,
            description=data.get("description") or "",
            reference=data.get("reference"),
            counterparty_name=data.get("counterpartyName"),
            counterparty_account=data.get("counterpartyAccount"),
            raw=dict(data),
        )
    except (KeyError, ValueError, TypeError, InvalidOperation) as e:
        raise InvalidTransactionDataError(f"Invalid transaction data from bank: {e}") from e


def parse_account(data: Dict[str, Any]) -> BankAccount:
    last_sync_at = data.get("lastSyncAt")
    return BankAccount(
        id=data["id"],
        company_id=data["companyId"],
        account_number=data["accountNumber"],
        account_name=data.get("accountName") or "",
        currency=data.get("currency") or "USD",
        last_sync_at=parse_timestamp(last_sync_at) if last_sync_at else None,
    )


class BankClient:
    """Client for the external banking gateway REST API"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or settings.bank_api_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = max_retries or settings.bank_retry_attempts
        self.retry_delay = settings.bank_retry_delay_seconds if retry_delay is None else retry_delay
        self.transport = transport

    async def get_bank_account(self, account_id: str) -> Optional[BankAccount]:
        data = await self._request("GET", f"/accounts/{account_id}", allow_not_found=True)
        if data is None:
            return None
        return self._parse_accounts([data])[0]

    async def get_bank_accounts_by_company(self, company_id: str) -> List[BankAccount]:
        data = await self._request("GET", "/accounts", params={"company_id": company_id})
        return self._parse_accounts(data.get("accounts", []))

    async def get_all_bank_accounts(self) -> List[BankAccount]:
        data = await self._request("GET", "/accounts")
        return self._parse_accounts(data.get("accounts", []))

    async def update_bank_account(self, account_id: str, last_sync_at: datetime) -> None:
        await self._request(
            "PATCH",
            f"/accounts/{account_id}",
            json={"lastSyncAt": last_sync_at.isoformat()},
        )

    async def fetch_transactions(
        self,
        account_id: str,
        account_number: str,
        from_date: datetime,
        to_date: datetime,
        page: int,
        limit: int,
    ) -> TransactionPage:
        """
        Fetch one page of the account's transaction feed.

        Summary totals in the response cover the returned page.

        Raises:
            BankAPIError: On exhausted retries, HTTP errors, or invalid response
            InvalidTransactionDataError: When a feed record is malformed
        """
        data = await self._request(
            "GET",
            f"/accounts/{account_id}/transactions",
            params={
                "account_number": account_number,
                "from_date": from_date.date().isoformat(),
                "to_date": to_date.date().isoformat(),
                "page": page,
                "limit": limit,
            },
        )

        try:
            summary = data.get("summary") or {}
            pagination = data.get("pagination") or {}
            return TransactionPage(
                transactions=[parse_transaction(txn) for txn in data.get("transactions", [])],
                total_credits=_decimal(summary.get("totalCredits", 0)),
                total_debits=_decimal(summary.get("totalDebits", 0)),
                has_more=bool(pagination.get("hasMore", False)),
            )
        except (AttributeError, InvalidOperation) as e:
            raise BankAPIError(f"Invalid transaction page from bank: {e}") from e

    def _parse_accounts(self, items: List[Dict[str, Any]]) -> List[BankAccount]:
        try:
            return [parse_account(item) for item in items]
        except (KeyError, ValueError, TypeError) as e:
            raise BankAPIError(f"Invalid account data from bank: {e}") from e

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        allow_not_found: bool = False,
    ) -> Any:
        """
        Send a request with bounded retries.

        Retry strategy:
        - Fixed delay between attempts (settings.bank_retry_delay_seconds)
        - Retries on timeouts, network failures, 5xx and 429 responses
        - Tracks latency histogram and failure counter

        Returns:
            Decoded JSON body, or None for an allowed 404 or an empty body

        Raises:
            BankAPIError: When the final attempt fails or the error is not retryable
        """
        attempt = 0
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
            while attempt < self.max_retries:
                attempt += 1
                try:
                    with bank_fetch_latency_histogram.time():
                        response = await client.request(method, path, params=params, json=json)
                    if allow_not_found and response.status_code == 404:
                        return None
                    response.raise_for_status()
                    return response.json() if response.content else None

                except httpx.TimeoutException as e:
                    error = BankAPIError(f"Bank API timeout after {self.timeout}s")
                    cause: Exception = e
                    retryable = True
                except httpx.HTTPStatusError as e:
                    status_code = e.response.status_code
                    error = BankAPIError(f"Bank API error: {status_code}")
                    cause = e
                    retryable = status_code >= 500 or status_code in RETRYABLE_STATUS_CODES
                except httpx.RequestError as e:
                    error = BankAPIError(f"Bank API unavailable: {e}")
                    cause = e
                    retryable = True
                except ValueError as e:
                    raise BankAPIError(f"Invalid JSON from bank: {e}") from e

                bank_fetch_failures_counter.inc()
                if not retryable or attempt >= self.max_retries:
                    # Final failure after all retries
                    raise error from cause

                logger.warning(
                    "Bank API call failed, retrying",
                    extra={"method": method, "path": path, "attempt": attempt, "error": str(error)},
                )
                await asyncio.sleep(self.retry_delay)

        raise BankAPIError("Bank API retries exhausted")
