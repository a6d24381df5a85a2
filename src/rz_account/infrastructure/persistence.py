"""AccountRepository — concrete implementation of AccountRepositoryProtocol.

All balance-mutating operations use atomic PostgreSQL UPDATE ... RETURNING.
A result of 0 rows on a debit means the balance was insufficient.

Transaction ownership: the CALLER (application service) commits or rolls back.
The balance update and its ledger insert are issued back to back on the same
session, so they commit together or not at all.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.rz_account.domain.models import Account, LedgerTransaction
from src.rz_common.enums import Currency, LedgerDirection
from src.rz_common.errors import AccountNotFoundError, InsufficientBalanceError, InternalError

_ACCOUNT_COLUMNS = "id, user_id, available_balance, fiat_balance, version, created_at, updated_at"

# Currency -> balance column. Only these two identifiers ever reach the SQL text.
_BALANCE_COLUMN = {
    Currency.COIN: "available_balance",
    Currency.FIAT: "fiat_balance",
}

_GET_ACCOUNT_SQL = text(f"""
    SELECT {_ACCOUNT_COLUMNS}
    FROM accounts
    WHERE user_id = :user_id
""")

_ENSURE_ACCOUNT_SQL = text(f"""
    INSERT INTO accounts (user_id)
    VALUES (:user_id)
    ON CONFLICT (user_id) DO UPDATE
        SET user_id = EXCLUDED.user_id
    RETURNING {_ACCOUNT_COLUMNS}
""")

_CREDIT_SQL = {
    currency: text(f"""
        UPDATE accounts
        SET {column} = {column} + :amount,
            version = version + 1,
            updated_at = NOW()
        WHERE user_id = :user_id
        RETURNING {_ACCOUNT_COLUMNS}
    """)
    for currency, column in _BALANCE_COLUMN.items()
}

_DEBIT_SQL = {
    currency: text(f"""
        UPDATE accounts
        SET {column} = {column} - :amount,
            version = version + 1,
            updated_at = NOW()
        WHERE user_id = :user_id AND {column} >= :amount
        RETURNING {_ACCOUNT_COLUMNS}
    """)
    for currency, column in _BALANCE_COLUMN.items()
}

_INSERT_LEDGER_SQL = text("""
    INSERT INTO ledger_transactions
        (user_id, direction, currency, amount, balance_after, entry_type,
         description, market_id, reference_type, reference_id)
    VALUES
        (:user_id, :direction, :currency, :amount, :balance_after, :entry_type,
         :description, :market_id, :reference_type, :reference_id)
    RETURNING id, user_id, direction, currency, amount, balance_after, entry_type,
              description, market_id, reference_type, reference_id, created_at
""")

_LIST_LEDGER_SQL = text("""
    SELECT id, user_id, direction, currency, amount, balance_after, entry_type,
           description, market_id, reference_type, reference_id, created_at
    FROM ledger_transactions
    WHERE user_id = :user_id
      AND (CAST(:cursor_id AS BIGINT) IS NULL OR id < :cursor_id)
      AND (CAST(:entry_type AS VARCHAR) IS NULL OR entry_type = :entry_type)
    ORDER BY id DESC
    LIMIT :limit
""")


def _row_to_account(row: object) -> Account:
    return Account(
        id=str(row.id),  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        available_balance=row.available_balance,  # type: ignore[attr-defined]
        fiat_balance=row.fiat_balance,  # type: ignore[attr-defined]
        version=row.version,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _row_to_ledger(row: object) -> LedgerTransaction:
    return LedgerTransaction(
        id=row.id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        direction=row.direction,  # type: ignore[attr-defined]
        currency=row.currency,  # type: ignore[attr-defined]
        amount=row.amount,  # type: ignore[attr-defined]
        balance_after=row.balance_after,  # type: ignore[attr-defined]
        entry_type=row.entry_type,  # type: ignore[attr-defined]
        description=row.description,  # type: ignore[attr-defined]
        market_id=row.market_id,  # type: ignore[attr-defined]
        reference_type=row.reference_type,  # type: ignore[attr-defined]
        reference_id=row.reference_id,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


class AccountRepository:
    """Concrete repository — balance + ledger row written as one unit."""

    async def get_account(self, db: AsyncSession, user_id: str) -> Account | None:
        result = await db.execute(_GET_ACCOUNT_SQL, {"user_id": user_id})
        row = result.fetchone()
        return _row_to_account(row) if row else None

    async def ensure_account(self, db: AsyncSession, user_id: str) -> Account:
        result = await db.execute(_ENSURE_ACCOUNT_SQL, {"user_id": user_id})
        row = result.fetchone()
        if row is None:
            raise InternalError(f"Account upsert returned no rows for user {user_id}")
        return _row_to_account(row)

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
    ) -> tuple[Account, LedgerTransaction]:
        result = await db.execute(
            _CREDIT_SQL[Currency(currency)], {"user_id": user_id, "amount": amount}
        )
        row = result.fetchone()
        if row is None:
            raise AccountNotFoundError(user_id)
        account = _row_to_account(row)
        entry = await self._append_ledger(
            db, account, LedgerDirection.CREDIT, currency, amount, entry_type,
            description, market_id, reference_type, reference_id,
        )
        return account, entry

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
    ) -> tuple[Account, LedgerTransaction]:
        result = await db.execute(
            _DEBIT_SQL[Currency(currency)], {"user_id": user_id, "amount": amount}
        )
        row = result.fetchone()
        if row is None:
            current = await self.get_account(db, user_id)
            if current is None:
                raise AccountNotFoundError(user_id)
            raise InsufficientBalanceError(currency, amount, current.balance_of(currency))
        account = _row_to_account(row)
        entry = await self._append_ledger(
            db, account, LedgerDirection.DEBIT, currency, amount, entry_type,
            description, market_id, reference_type, reference_id,
        )
        return account, entry

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        entry_type: str | None,
    ) -> list[LedgerTransaction]:
        result = await db.execute(
            _LIST_LEDGER_SQL,
            {
                "user_id": user_id,
                "cursor_id": cursor_id,
                "entry_type": entry_type,
                "limit": limit,
            },
        )
        return [_row_to_ledger(row) for row in result.fetchall()]

    async def _append_ledger(
        self,
        db: AsyncSession,
        account: Account,
        direction: str,
        currency: str,
        amount: int,
        entry_type: str,
        description: str,
        market_id: str | None,
        reference_type: str | None,
        reference_id: str | None,
    ) -> LedgerTransaction:
        result = await db.execute(
            _INSERT_LEDGER_SQL,
            {
                "user_id": account.user_id,
                "direction": direction,
                "currency": currency,
                "amount": amount,
                "balance_after": account.balance_of(currency),
                "entry_type": entry_type,
                "description": description,
                "market_id": market_id,
                "reference_type": reference_type,
                "reference_id": reference_id,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Ledger insert returned no rows — this should never happen")
        return _row_to_ledger(row)
