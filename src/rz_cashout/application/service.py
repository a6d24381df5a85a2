"""CashoutQuoter — quote and execute early exit from an active position.

The quote is always recomputed from the live pools; a client-held quote is
never trusted. Execution flips the position ``active -> cashed_out`` with a
guarded UPDATE and credits the net amount in the same transaction, so a
second attempt finds no active row and is rejected.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.rz_account.domain.models import LedgerTransaction
from src.rz_account.domain.repository import AccountRepositoryProtocol
from src.rz_account.infrastructure.persistence import AccountRepository
from src.rz_cashout.domain.quote import CashoutQuote, quote_from_multiple
from src.rz_common.datetime_utils import utc_now
from src.rz_common.enums import Currency, LedgerEntryType, MarketStatus, PositionStatus
from src.rz_common.errors import (
    CashoutNotAllowedError,
    PositionNotActiveError,
    PositionNotFoundError,
)
from src.rz_common.events import (
    BALANCE_CHANGED,
    POSITION_CASHED_OUT,
    EventPublisher,
    publish_event,
)
from src.rz_common.money import cents_to_display
from src.rz_market.application.service import MarketApplicationService
from src.rz_market.domain.models import Position
from src.rz_market.domain.repository import MarketRepositoryProtocol
from src.rz_market.infrastructure.persistence import MarketRepository

logger = logging.getLogger(__name__)


class CashoutService:
    def __init__(
        self,
        market_repo: MarketRepositoryProtocol | None = None,
        account_repo: AccountRepositoryProtocol | None = None,
        fee_bps: int | None = None,
        pool_fee_bps: int | None = None,
        clock: Callable[[], datetime] = utc_now,
        publisher: EventPublisher = publish_event,
    ) -> None:
        self._markets: MarketRepositoryProtocol = market_repo or MarketRepository()
        self._accounts: AccountRepositoryProtocol = account_repo or AccountRepository()
        self._fee_bps = settings.CASHOUT_FEE_BPS if fee_bps is None else fee_bps
        self._pools = MarketApplicationService(
            repo=self._markets, account_repo=self._accounts, fee_bps=pool_fee_bps
        )
        self._clock = clock
        self._publish = publisher

    async def _active_position(self, db: AsyncSession, position_id: str) -> Position:
        position = await self._markets.get_position(db, position_id)
        if position is None:
            raise PositionNotFoundError(position_id)
        if position.status != PositionStatus.ACTIVE:
            raise PositionNotActiveError(position_id, position.status)
        return position

    async def _quote(self, db: AsyncSession, position: Position) -> CashoutQuote:
        market = await self._markets.get_market(db, position.market_id)
        if market is None or market.status == MarketStatus.SETTLED:
            raise CashoutNotAllowedError(f"market {position.market_id} is settled")
        snapshot = await self._pools.compute_pools(db, position.market_id)
        option = snapshot.option(position.option_chosen)
        if option is None:
            raise CashoutNotAllowedError(
                f"option '{position.option_chosen}' is not part of market {market.id}"
            )
        return quote_from_multiple(
            position.id, position.stake_amount, option.payout_multiplier_bps, self._fee_bps
        )

    async def quote_cashout(self, db: AsyncSession, position_id: str) -> CashoutQuote:
        position = await self._active_position(db, position_id)
        return await self._quote(db, position)

    async def perform_cashout(
        self, db: AsyncSession, position_id: str, user_id: str
    ) -> tuple[CashoutQuote, LedgerTransaction, int]:
        """Returns (quote, ledger entry, coin balance after)."""
        position = await self._active_position(db, position_id)
        if position.user_id != user_id:
            # Do not reveal other users' positions
            raise PositionNotFoundError(position_id)

        quote = await self._quote(db, position)
        if quote.net <= 0:
            raise CashoutNotAllowedError(f"net amount is {quote.net}")

        try:
            moved = await self._markets.transition_position(
                db, position_id, PositionStatus.CASHED_OUT, quote.net, self._clock()
            )
            if moved is None:
                raise PositionNotActiveError(position_id, "not active")
            account, entry = await self._accounts.credit(
                db, user_id, Currency.COIN, quote.net, LedgerEntryType.CASHOUT,
                f"Cashout {cents_to_display(quote.net)} "
                f"(gross {cents_to_display(quote.gross)}, fee {cents_to_display(quote.fee)})",
                market_id=position.market_id, reference_type="position",
                reference_id=position_id,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Position %s cashed out: gross=%d fee=%d net=%d",
            position_id, quote.gross, quote.fee, quote.net,
        )
        await self._publish(BALANCE_CHANGED, {"user_id": user_id, "currency": Currency.COIN})
        await self._publish(
            POSITION_CASHED_OUT,
            {"market_id": position.market_id, "position_id": position_id, "net": quote.net},
        )
        return quote, entry, account.available_balance
