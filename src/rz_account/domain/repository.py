"""Repository Protocol — dependency inversion for testability.

Every balance mutation goes through credit() or debit(), which update the
account row AND append the matching ledger row in the caller's transaction.
There is no method that changes a balance without a ledger row.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.rz_account.domain.models import Account, LedgerTransaction


class AccountRepositoryProtocol(Protocol):
    async def get_account(self, db: AsyncSession, user_id: str) -> Account | None: ...

    async def ensure_account(self, db: AsyncSession, user_id: str) -> Account: ...

    async def credit(
        self,
        db: AsyncSession,
        user_id: str,
        currency: str,
        amount: int,
        entry_type: str,
        description: str,
        market_id: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> tuple[Account, LedgerTransaction]: ...

    async def debit(
        self,
        db: AsyncSession,
        user_id: str,
        currency: str,
        amount: int,
        entry_type: str,
        description: str,
        market_id: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> tuple[Account, LedgerTransaction]: ...

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        entry_type: str | None,
    ) -> list[LedgerTransaction]: ...
