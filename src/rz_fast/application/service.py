"""FastPoolScheduler — 60-second up/down rounds per asset.

Round lifecycle: active -> processing -> completed, with an orthogonal
``paused`` flag. Every entry point is safe to call repeatedly from an
external scheduler:

  * ensure_rounds() only opens rounds for assets that have none running.
  * settle_pool() captures the closing price once (active -> processing),
    then pays each unprocessed bet in its own savepoint. A pool with any
    failed bet stays ``processing`` so the next call pays the remainder.
  * refund_paused_asset() refunds unprocessed bets, one savepoint each.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.rz_account.domain.repository import AccountRepositoryProtocol
from src.rz_account.infrastructure.persistence import AccountRepository
from src.rz_common.datetime_utils import floor_to_minute, utc_now
from src.rz_common.enums import (
    Currency,
    FastBetSide,
    FastPoolOutcome,
    FastPoolStatus,
    LedgerEntryType,
)
from src.rz_common.errors import (
    AppError,
    BettingClosedError,
    FastPoolNotFoundError,
    InvalidAmountError,
    InvalidOrderError,
)
from src.rz_common.events import (
    BALANCE_CHANGED,
    POOL_REFUNDED,
    POOL_SETTLED,
    EventPublisher,
    publish_event,
)
from src.rz_common.id_generator import generate_id
from src.rz_common.money import cents_to_display
from src.rz_exchange.domain.models import PriceSample
from src.rz_exchange.domain.pricing import ensure_fresh
from src.rz_exchange.domain.repository import PriceOracle
from src.rz_exchange.infrastructure.price_oracle import RatesPriceOracle
from src.rz_fast.domain.catalogue import assets_for, resolve_category
from src.rz_fast.domain.models import FastBet, FastPool, FastPoolResult
from src.rz_fast.domain.repository import FastPoolRepositoryProtocol
from src.rz_fast.domain.rounds import (
    ROUND_SECONDS,
    bet_payout,
    betting_closed_reason,
    is_winning_side,
    price_change_percent,
    round_outcome,
)
from src.rz_fast.infrastructure.persistence import FastPoolRepository

logger = logging.getLogger(__name__)


class FastPoolScheduler:
    def __init__(
        self,
        repo: FastPoolRepositoryProtocol | None = None,
        account_repo: AccountRepositoryProtocol | None = None,
        oracle: PriceOracle | None = None,
        lockout_seconds: int | None = None,
        base_odds_bps: int | None = None,
        adjust_window_seconds: int | None = None,
        max_price_age_seconds: int | None = None,
        clock: Callable[[], datetime] = utc_now,
        publisher: EventPublisher = publish_event,
    ) -> None:
        self._repo: FastPoolRepositoryProtocol = repo or FastPoolRepository()
        self._accounts: AccountRepositoryProtocol = account_repo or AccountRepository()
        self._oracle: PriceOracle = oracle or RatesPriceOracle()
        self._lockout = (
            settings.FAST_POOL_LOCKOUT_SECONDS if lockout_seconds is None else lockout_seconds
        )
        self._base_odds = base_odds_bps or settings.FAST_POOL_BASE_ODDS_BPS
        self._adjust_window = (
            settings.FAST_POOL_ADJUST_WINDOW_SECONDS
            if adjust_window_seconds is None else adjust_window_seconds
        )
        self._max_age = (
            settings.PRICE_MAX_AGE_SECONDS if max_price_age_seconds is None
            else max_price_age_seconds
        )
        self._clock = clock
        self._publish = publisher

    async def _fresh_price(self, db: AsyncSession, symbol: str, now: datetime) -> PriceSample:
        sample = await self._oracle.get_current_price(db, symbol)
        ensure_fresh(sample, now, self._max_age)
        return sample

    async def _get_pool(self, db: AsyncSession, pool_id: str) -> FastPool:
        pool = await self._repo.get_pool(db, pool_id)
        if pool is None:
            raise FastPoolNotFoundError(pool_id)
        return pool

    # ------------------------------------------------------------------
    # Round rollover
    # ------------------------------------------------------------------

    async def ensure_rounds(self, db: AsyncSession, category: str | None) -> dict[str, Any]:
        """Open a round for every asset of the category that has none running."""
        category = resolve_category(category)
        now = self._clock()
        open_pools = await self._repo.list_open_pools(db, category, now)
        covered = {p.asset_symbol for p in open_pools if not p.paused}
        missing = [a for a in assets_for(category) if a.symbol not in covered]
        if not missing:
            return {
                "success": True,
                "message": f"All {category} rounds already running",
                "created_count": 0,
                "skipped_count": 0,
                "pools": open_pools,
            }

        round_start = floor_to_minute(now)
        round_end = round_start + timedelta(seconds=ROUND_SECONDS)
        created: list[FastPool] = []
        skipped = 0
        try:
            round_number = await self._repo.next_round_number(db)
            for asset in missing:
                try:
                    sample = await self._fresh_price(db, asset.symbol, now)
                except AppError as e:
                    # No opening price, no round; the next rollover call retries
                    skipped += 1
                    logger.warning("Not opening %s round: %s", asset.symbol, e.message)
                    continue
                pool = await self._repo.insert_pool(
                    db,
                    FastPool(
                        id=generate_id(),
                        round_number=round_number,
                        category=category,
                        asset_symbol=asset.symbol,
                        asset_name=asset.name,
                        question=asset.question,
                        round_start=round_start,
                        round_end=round_end,
                        opening_price=sample.price,
                        status=FastPoolStatus.ACTIVE,
                        paused=False,
                        base_odds_bps=self._base_odds,
                    ),
                )
                if pool is None:
                    # Another rollover already opened this asset's round for the window
                    logger.info("%s round at %s already exists", asset.symbol, round_start)
                    continue
                created.append(pool)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Opened %d %s rounds (#%d), skipped %d",
            len(created), category, round_number, skipped,
        )
        return {
            "success": skipped == 0,
            "message": f"{len(created)} rounds opened, {skipped} skipped",
            "created_count": len(created),
            "skipped_count": skipped,
            "pools": [p for p in open_pools if not p.paused] + created,
        }

    async def adjust_opening_price(self, db: AsyncSession, pool_id: str) -> dict[str, Any]:
        """Refresh the opening price, only during the first seconds of a round."""
        pool = await self._get_pool(db, pool_id)
        now = self._clock()
        elapsed = (now - pool.round_start).total_seconds()
        if pool.status != FastPoolStatus.ACTIVE or elapsed > self._adjust_window:
            return {
                "success": False,
                "message": (
                    f"Opening price can only be adjusted in the first "
                    f"{self._adjust_window}s of an active round"
                ),
                "opening_price": str(pool.opening_price),
            }
        try:
            sample = await self._fresh_price(db, pool.asset_symbol, now)
            updated = await self._repo.update_opening_price(db, pool_id, sample.price)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        price = updated.opening_price if updated else pool.opening_price
        return {
            "success": updated is not None,
            "message": "Opening price updated" if updated else "Round is no longer active",
            "opening_price": str(price),
        }

    # ------------------------------------------------------------------
    # Bets
    # ------------------------------------------------------------------

    async def place_bet(
        self, db: AsyncSession, user_id: str, pool_id: str, side: str, stake: int
    ) -> FastBet:
        if side not in (FastBetSide.UP, FastBetSide.DOWN):
            raise InvalidOrderError(f"side must be 'up' or 'down', got {side}")
        if stake <= 0:
            raise InvalidAmountError(stake)
        pool = await self._get_pool(db, pool_id)
        reason = betting_closed_reason(pool, self._clock(), self._lockout)
        if reason is not None:
            raise BettingClosedError(pool_id, reason)

        bet = FastBet(
            id=generate_id(),
            user_id=user_id,
            pool_id=pool_id,
            side=side,
            stake=stake,
            odds_bps=pool.base_odds_bps,
        )
        cutoff = self._clock() + timedelta(seconds=self._lockout)
        try:
            await self._accounts.debit(
                db, user_id, Currency.COIN, stake, LedgerEntryType.FAST_BET,
                f"Fast bet {side} on {pool.asset_symbol} #{pool.round_number}",
                reference_type="fast_bet", reference_id=bet.id,
            )
            inserted = await self._repo.insert_bet(db, bet, cutoff)
            if inserted is None:
                raise BettingClosedError(pool_id, "round closed while placing the bet")
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await self._publish(BALANCE_CHANGED, {"user_id": user_id, "currency": Currency.COIN})
        return inserted

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    async def settle_pool(self, db: AsyncSession, pool_id: str) -> dict[str, Any]:
        pool = await self._get_pool(db, pool_id)
        report: dict[str, Any] = {
            "pool_id": pool_id,
            "result": pool.result,
            "price_change_percent": (
                str(pool.price_change_percent) if pool.price_change_percent is not None else None
            ),
            "winners_count": 0,
            "total_payout": 0,
            "processed_count": 0,
            "failed_count": 0,
        }
        if pool.status == FastPoolStatus.COMPLETED:
            return {**report, "success": True, "message": "Pool already completed"}

        now = self._clock()
        if now < pool.round_end:
            return {**report, "success": False, "message": f"Round ends at {pool.round_end.isoformat()}"}

        try:
            if pool.status == FastPoolStatus.ACTIVE:
                try:
                    sample = await self._fresh_price(db, pool.asset_symbol, now)
                except AppError as e:
                    logger.warning("Pool %s not settled: %s", pool_id, e.message)
                    return {**report, "success": False, "message": e.message}
                outcome = round_outcome(pool.opening_price, sample.price)
                moved = await self._repo.start_processing(
                    db, pool_id, sample.price, outcome.value,
                    price_change_percent(pool.opening_price, sample.price),
                )
                if moved is None:
                    await db.rollback()
                    return {**report, "success": False, "message": "Pool is being settled elsewhere"}
                pool = moved

            outcome_value = pool.result or FastPoolOutcome.FLAT.value
            entry_type = (
                LedgerEntryType.FAST_REFUND if outcome_value == FastPoolOutcome.FLAT
                else LedgerEntryType.FAST_PAYOUT
            )
            bets = await self._repo.list_pool_bets(db, pool_id)
            processed = failed = 0
            paid_users: set[str] = set()
            for bet in bets:
                if bet.processed:
                    continue
                payout = bet_payout(bet.side, bet.stake, bet.odds_bps, outcome_value)
                try:
                    async with db.begin_nested():
                        marked = await self._repo.mark_bet_processed(db, bet.id, payout)
                        if marked is None:
                            continue
                        if payout > 0:
                            await self._accounts.credit(
                                db, bet.user_id, Currency.COIN, payout, entry_type,
                                f"Fast {pool.asset_symbol} #{pool.round_number} {outcome_value}: "
                                f"{cents_to_display(payout)}",
                                reference_type="fast_bet", reference_id=bet.id,
                            )
                            paid_users.add(bet.user_id)
                    bet.processed, bet.payout_amount = True, payout
                    processed += 1
                except Exception:
                    failed += 1
                    logger.exception("Fast bet %s in pool %s could not be settled", bet.id, pool_id)

            # Refunds in a flat round are not wins
            winners = [
                b for b in bets
                if b.processed and b.payout_amount and is_winning_side(b.side, outcome_value)
            ]
            total_payout = sum(b.payout_amount or 0 for b in bets if b.processed)
            if failed == 0:
                await self._repo.complete_pool(db, pool_id)
                await self._repo.insert_result(
                    db,
                    FastPoolResult(
                        pool_id=pool_id,
                        asset_symbol=pool.asset_symbol,
                        opening_price=pool.opening_price,
                        closing_price=pool.closing_price,  # type: ignore[arg-type]
                        price_change_percent=pool.price_change_percent,  # type: ignore[arg-type]
                        result=outcome_value,
                        total_up=sum(b.stake for b in bets if b.side == FastBetSide.UP),
                        total_down=sum(b.stake for b in bets if b.side == FastBetSide.DOWN),
                        winners_count=len(winners),
                        total_payout=total_payout,
                    ),
                )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Pool %s (%s) %s: processed=%d failed=%d payout=%d",
            pool_id, pool.asset_symbol, outcome_value, processed, failed, total_payout,
        )
        for user_id in sorted(paid_users):
            await self._publish(BALANCE_CHANGED, {"user_id": user_id, "currency": Currency.COIN})
        if failed == 0:
            await self._publish(
                POOL_SETTLED,
                {"pool_id": pool_id, "asset_symbol": pool.asset_symbol, "result": outcome_value},
            )
        return {
            **report,
            "success": failed == 0,
            "message": (
                f"Pool settled: {outcome_value}" if failed == 0
                else f"{failed} bets failed; pool left processing for retry"
            ),
            "result": outcome_value,
            "price_change_percent": str(pool.price_change_percent),
            "winners_count": len(winners),
            "total_payout": total_payout,
            "processed_count": processed,
            "failed_count": failed,
        }

    async def settle_due_pools(self, db: AsyncSession) -> dict[str, Any]:
        """Settle every round past its end. One pool's failure never blocks another."""
        due = await self._repo.list_due_pools(db, self._clock())
        settled = pending = errored = 0
        for pool in due:
            try:
                report = await self.settle_pool(db, pool.id)
            except Exception:
                errored += 1
                logger.exception("Settling pool %s raised", pool.id)
                continue
            if report["success"]:
                settled += 1
            else:
                pending += 1
        return {
            "success": errored == 0 and pending == 0,
            "message": f"{settled} settled, {pending} pending, {errored} errored",
            "due_count": len(due),
            "settled_count": settled,
            "pending_count": pending,
            "failed_count": errored,
        }

    # ------------------------------------------------------------------
    # Feed failure: pause + refund
    # ------------------------------------------------------------------

    async def refund_paused_asset(self, db: AsyncSession, asset_symbol: str) -> dict[str, Any]:
        """Pause every active round of the asset and refund its unprocessed bets."""
        pools = await self._repo.list_active_pools_for_asset(db, asset_symbol)
        refunded = total = 0
        errors: list[str] = []
        refunded_users: set[str] = set()
        try:
            # Pause first so no new bet lands while refunds run
            await self._repo.pause_pools(db, [p.id for p in pools])
            for pool in pools:
                for bet in await self._repo.list_pool_bets(db, pool.id):
                    if bet.processed:
                        continue
                    total += 1
                    try:
                        async with db.begin_nested():
                            marked = await self._repo.mark_bet_processed(db, bet.id, bet.stake)
                            if marked is None:
                                continue
                            await self._accounts.credit(
                                db, bet.user_id, Currency.COIN, bet.stake,
                                LedgerEntryType.FAST_REFUND,
                                f"Refund: {asset_symbol} feed paused",
                                reference_type="fast_bet", reference_id=bet.id,
                            )
                        refunded += 1
                        refunded_users.add(bet.user_id)
                    except Exception as e:
                        errors.append(f"bet {bet.id}: {e}")
                        logger.exception("Refund failed for fast bet %s", bet.id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Asset %s paused: %d/%d bets refunded across %d pools",
            asset_symbol, refunded, total, len(pools),
        )
        for user_id in sorted(refunded_users):
            await self._publish(BALANCE_CHANGED, {"user_id": user_id, "currency": Currency.COIN})
        await self._publish(
            POOL_REFUNDED,
            {"asset_symbol": asset_symbol, "refunded_bets": refunded, "failed_count": len(errors)},
        )
        return {
            "success": not errors,
            "message": f"{refunded} of {total} bets refunded, {len(pools)} pools paused",
            "refunded_bets": refunded,
            "total_bets": total,
            "failed_count": len(errors),
            "paused_pools": len(pools),
            "errors": errors,
        }

    # ------------------------------------------------------------------
    # Read views
    # ------------------------------------------------------------------

    async def get_active_pools(self, db: AsyncSession, category: str | None) -> list[FastPool]:
        return await self._repo.list_open_pools(db, resolve_category(category), self._clock())

    async def get_pool_history(
        self, db: AsyncSession, asset_symbol: str, limit: int = 20
    ) -> list[FastPoolResult]:
        return await self._repo.list_results(db, asset_symbol, limit)
