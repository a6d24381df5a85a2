"""MarketApplicationService — pools, positions and market settlement.

compute_pools() is read-only. open_position() is one transaction: stake
debit + ledger row + position insert. settle_market() pays each winner in
its own savepoint so one bad position cannot block the others; the market
is only marked SETTLED once every active position has been resolved.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.rz_account.domain.repository import AccountRepositoryProtocol
from src.rz_account.infrastructure.persistence import AccountRepository
from src.rz_common.datetime_utils import utc_now
from src.rz_common.enums import Currency, LedgerEntryType, MarketStatus, PositionStatus
from src.rz_common.errors import (
    InvalidAmountError,
    InvalidOptionError,
    MarketAlreadySettledError,
    MarketNotActiveError,
    MarketNotFoundError,
)
from src.rz_common.events import (
    BALANCE_CHANGED,
    MARKET_SETTLED,
    POSITION_OPENED,
    EventPublisher,
    publish_event,
)
from src.rz_common.id_generator import generate_id
from src.rz_common.money import cents_to_display
from src.rz_market.domain.models import DEFAULT_OPTIONS, Market, PoolSnapshot, Position
from src.rz_market.domain.pools import accumulate_pools, settlement_payout
from src.rz_market.domain.repository import MarketRepositoryProtocol
from src.rz_market.infrastructure.persistence import MarketRepository

logger = logging.getLogger(__name__)

# Positions whose stake is still in the pot (cashed-out stakes have left it)
_IN_POOL_STATUSES = (PositionStatus.ACTIVE, PositionStatus.WON, PositionStatus.LOST)


class MarketApplicationService:
    def __init__(
        self,
        repo: MarketRepositoryProtocol | None = None,
        account_repo: AccountRepositoryProtocol | None = None,
        fee_bps: int | None = None,
        clock: Callable[[], datetime] = utc_now,
        publisher: EventPublisher = publish_event,
    ) -> None:
        self._repo: MarketRepositoryProtocol = repo or MarketRepository()
        self._accounts: AccountRepositoryProtocol = account_repo or AccountRepository()
        self._fee_bps = settings.POOL_FEE_BPS if fee_bps is None else fee_bps
        self._clock = clock
        self._publish = publisher

    async def get_market(self, db: AsyncSession, market_id: str) -> Market:
        market = await self._repo.get_market(db, market_id)
        if market is None:
            raise MarketNotFoundError(market_id)
        return market

    async def create_market(
        self,
        db: AsyncSession,
        title: str,
        options: list[str] | None = None,
        closes_at: datetime | None = None,
    ) -> Market:
        try:
            market = await self._repo.create_market(
                db, generate_id(), title, options or list(DEFAULT_OPTIONS), closes_at
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return market

    async def compute_pools(self, db: AsyncSession, market_id: str) -> PoolSnapshot:
        """Current pools from active positions only. No side effects."""
        market = await self.get_market(db, market_id)
        positions = await self._repo.list_market_positions(
            db, market_id, (PositionStatus.ACTIVE,)
        )
        return accumulate_pools(market.id, market.options, positions, self._fee_bps)

    async def open_position(
        self, db: AsyncSession, user_id: str, market_id: str, option: str, stake: int
    ) -> Position:
        if stake <= 0:
            raise InvalidAmountError(stake)
        market = await self.get_market(db, market_id)
        if market.status != MarketStatus.ACTIVE or (
            market.closes_at is not None and market.closes_at <= self._clock()
        ):
            raise MarketNotActiveError(market_id, market.status)
        if option not in market.options:
            raise InvalidOptionError(option, market.options)

        snapshot = await self.compute_pools(db, market_id)
        chosen = snapshot.option(option)
        position = Position(
            id=generate_id(),
            user_id=user_id,
            market_id=market_id,
            option_chosen=option,
            stake_amount=stake,
            entry_multiple_bps=chosen.payout_multiplier_bps if chosen else 10000,
            status=PositionStatus.ACTIVE,
        )
        try:
            await self._accounts.debit(
                db, user_id, Currency.COIN, stake, LedgerEntryType.POSITION_STAKE,
                f"Stake {cents_to_display(stake)} on '{option}'",
                market_id=market_id, reference_type="position", reference_id=position.id,
            )
            position = await self._repo.insert_position(db, position)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await self._publish(BALANCE_CHANGED, {"user_id": user_id, "currency": Currency.COIN})
        await self._publish(
            POSITION_OPENED,
            {"market_id": market_id, "position_id": position.id, "option": option},
        )
        return position

    async def list_positions(
        self,
        db: AsyncSession,
        user_id: str,
        market_id: str | None = None,
        status: str | None = None,
    ) -> list[Position]:
        return await self._repo.list_user_positions(db, user_id, market_id, status)

    async def settle_market(
        self, db: AsyncSession, market_id: str, winning_option: str
    ) -> dict[str, Any]:
        market = await self.get_market(db, market_id)
        if market.status == MarketStatus.SETTLED:
            raise MarketAlreadySettledError(market_id)
        if winning_option not in market.options:
            raise InvalidOptionError(winning_option, market.options)

        positions = await self._repo.list_market_positions(db, market_id, _IN_POOL_STATUSES)
        winning_pool = sum(p.stake_amount for p in positions if p.option_chosen == winning_option)
        losing_pool = sum(p.stake_amount for p in positions) - winning_pool
        now = self._clock()

        winners = losers = failed = 0
        total_payout = 0
        paid_users: set[str] = set()
        try:
            for position in positions:
                if position.status != PositionStatus.ACTIVE:
                    continue
                try:
                    async with db.begin_nested():
                        if position.option_chosen == winning_option:
                            payout = settlement_payout(
                                position.stake_amount, winning_pool, losing_pool, self._fee_bps
                            )
                            moved = await self._repo.transition_position(
                                db, position.id, PositionStatus.WON, payout, now
                            )
                            if moved is None:
                                continue
                            if payout > 0:
                                await self._accounts.credit(
                                    db, position.user_id, Currency.COIN, payout,
                                    LedgerEntryType.MARKET_PAYOUT,
                                    f"Payout {cents_to_display(payout)} for '{winning_option}'",
                                    market_id=market_id, reference_type="position",
                                    reference_id=position.id,
                                )
                            winners += 1
                            total_payout += payout
                            paid_users.add(position.user_id)
                        else:
                            moved = await self._repo.transition_position(
                                db, position.id, PositionStatus.LOST, 0, now
                            )
                            if moved is not None:
                                losers += 1
                except Exception:
                    failed += 1
                    logger.exception(
                        "Settlement failed for position %s in market %s", position.id, market_id
                    )

            if failed == 0:
                await self._repo.mark_market_settled(db, market_id, winning_option, now)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Market %s settled on '%s': winners=%d losers=%d payout=%d failed=%d",
            market_id, winning_option, winners, losers, total_payout, failed,
        )
        for user_id in sorted(paid_users):
            await self._publish(BALANCE_CHANGED, {"user_id": user_id, "currency": Currency.COIN})
        if failed == 0:
            await self._publish(
                MARKET_SETTLED, {"market_id": market_id, "winning_option": winning_option}
            )

        return {
            "success": failed == 0,
            "message": (
                f"Market settled: {winners} winners paid {cents_to_display(total_payout)}"
                if failed == 0
                else f"{failed} positions failed; market left open for retry"
            ),
            "market_id": market_id,
            "winning_option": winning_option,
            "winners_count": winners,
            "losers_count": losers,
            "total_payout": total_payout,
            "failed_count": failed,
        }

    async def close_expired_markets(self, db: AsyncSession) -> dict[str, Any]:
        try:
            closed = await self._repo.close_expired_markets(db, self._clock())
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        if closed:
            logger.info("Closed %d expired markets: %s", len(closed), ", ".join(closed))
        return {
            "success": True,
            "message": f"{len(closed)} markets closed",
            "closed_count": len(closed),
        }
