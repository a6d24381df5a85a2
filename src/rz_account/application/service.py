"""AccountApplicationService — thin composition layer.

Combines repository calls with schema transformations.
Deposit and withdraw commit explicitly and roll back on any error.
Other operations (get_balance, list_ledger) are read-only.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from src.rz_account.application.schemas import (
    BalanceResponse,
    FundingResponse,
    LedgerEntryItem,
    LedgerResponse,
    cursor_decode,
    cursor_encode,
    display_for,
)
from src.rz_account.domain.repository import AccountRepositoryProtocol
from src.rz_account.infrastructure.persistence import AccountRepository
from src.rz_common.enums import LedgerEntryType
from src.rz_common.errors import InvalidAmountError
from src.rz_common.events import BALANCE_CHANGED, EventPublisher, publish_event


class AccountApplicationService:
    def __init__(
        self,
        repo: AccountRepositoryProtocol | None = None,
        publisher: EventPublisher = publish_event,
    ) -> None:
        self._repo: AccountRepositoryProtocol = repo or AccountRepository()
        self._publish = publisher

    async def get_balance(self, db: AsyncSession, user_id: str) -> BalanceResponse:
        account = await self._repo.get_account(db, user_id)
        if account is None:
            # Users that never touched the engine simply hold nothing yet
            return BalanceResponse.from_cents(user_id=user_id, coin=0, fiat=0)
        return BalanceResponse.from_cents(
            user_id=user_id,
            coin=account.available_balance,
            fiat=account.fiat_balance,
        )

    async def deposit(
        self, db: AsyncSession, user_id: str, currency: str, amount_cents: int
    ) -> FundingResponse:
        if amount_cents <= 0:
            raise InvalidAmountError(amount_cents)
        try:
            await self._repo.ensure_account(db, user_id)
            account, entry = await self._repo.credit(
                db, user_id, currency, amount_cents,
                LedgerEntryType.DEPOSIT, f"Deposit {display_for(currency, amount_cents)}",
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        await self._publish(BALANCE_CHANGED, {"user_id": user_id, "currency": currency})
        return FundingResponse.from_result(
            currency, amount_cents, account.balance_of(currency), entry.id
        )

    async def withdraw(
        self, db: AsyncSession, user_id: str, currency: str, amount_cents: int
    ) -> FundingResponse:
        if amount_cents <= 0:
            raise InvalidAmountError(amount_cents)
        try:
            account, entry = await self._repo.debit(
                db, user_id, currency, amount_cents,
                LedgerEntryType.WITHDRAW, f"Withdraw {display_for(currency, amount_cents)}",
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        await self._publish(BALANCE_CHANGED, {"user_id": user_id, "currency": currency})
        return FundingResponse.from_result(
            currency, amount_cents, account.balance_of(currency), entry.id
        )

    async def list_ledger(
        self,
        db: AsyncSession,
        user_id: str,
        cursor: str | None,
        limit: int,
        entry_type: str | None,
    ) -> LedgerResponse:
        cursor_id = cursor_decode(cursor)
        # Fetch limit+1 to detect has_more without a COUNT(*) query
        entries = await self._repo.list_transactions(
            db, user_id, cursor_id, limit + 1, entry_type
        )
        has_more = len(entries) > limit
        page = entries[:limit]

        items = [
            LedgerEntryItem(
                id=e.id,
                direction=e.direction,
                currency=e.currency,
                entry_type=e.entry_type,
                amount_cents=e.amount,
                amount_display=display_for(e.currency, e.amount),
                balance_after_cents=e.balance_after,
                balance_after_display=display_for(e.currency, e.balance_after),
                market_id=e.market_id,
                reference_type=e.reference_type,
                reference_id=e.reference_id,
                description=e.description,
                created_at=e.created_at.isoformat() if e.created_at else "",
            )
            for e in page
        ]

        next_cursor = cursor_encode(page[-1].id) if has_more and page else None
        return LedgerResponse(items=items, next_cursor=next_cursor, has_more=has_more)
