"""In-memory repositories and a transactional fake session for unit tests.

FakeSession gives the services the same commit / rollback / savepoint
semantics they get from Postgres: every repository attached to it is
snapshotted when a transaction autobegins and at each ``begin_nested()``, and restored
when the block raises or the session rolls back. Repositories hand out
copies, never their stored rows, the way a real query would.
"""

import copy
import functools
import inspect
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import pytest

from src.rz_account.domain.models import Account, LedgerTransaction
from src.rz_common.enums import (
    Currency,
    ExchangeOrderStatus,
    FastPoolStatus,
    LedgerDirection,
    LedgerEntryType,
    MarketStatus,
    OrderType,
    PositionStatus,
)
from src.rz_common.errors import (
    AccountNotFoundError,
    InsufficientBalanceError,
    PriceUnavailableError,
)
from src.rz_exchange.domain.models import ExchangeOrder, PriceSample
from src.rz_fast.domain.models import FastBet, FastPool, FastPoolResult
from src.rz_market.domain.models import Market, Position
from src.rz_reconciliation.domain.models import ReconciliationReport, UserDiscrepancy

T0 = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)


class InjectedFailure(RuntimeError):
    pass


# ---------------------------------------------------------------------------
# Session / clock / events
# ---------------------------------------------------------------------------


class FakeSession:
    def __init__(self, *stores: Any) -> None:
        self._stores = list(stores)
        self.commits = 0
        self.rollbacks = 0
        self._begin_state: list[dict[str, Any]] | None = None

    def _snapshot(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(vars(s)) for s in self._stores]

    def _restore(self, snapshot: list[dict[str, Any]]) -> None:
        for store, state in zip(self._stores, snapshot):
            vars(store).clear()
            vars(store).update(copy.deepcopy(state))

    def autobegin(self) -> None:
        if self._begin_state is None:
            self._begin_state = self._snapshot()

    async def commit(self) -> None:
        self.commits += 1
        self._begin_state = None

    async def rollback(self) -> None:
        self.rollbacks += 1
        if self._begin_state is not None:
            self._restore(self._begin_state)
        self._begin_state = None

    @asynccontextmanager
    async def begin_nested(self) -> AsyncIterator["FakeSession"]:
        self.autobegin()
        savepoint = self._snapshot()
        try:
            yield self
        except BaseException:
            self._restore(savepoint)
            raise


def transactional(cls: type) -> type:
    """Every repository call opens the session's transaction, like SQLAlchemy autobegin."""

    def wrap(fn: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(fn)
        async def wrapper(self: Any, db: Any, *args: Any, **kwargs: Any) -> Any:
            if isinstance(db, FakeSession):
                db.autobegin()
            return await fn(self, db, *args, **kwargs)

        return wrapper

    for name, fn in list(vars(cls).items()):
        if inspect.iscoroutinefunction(fn):
            setattr(cls, name, wrap(fn))
    return cls


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class EventRecorder:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def __call__(self, event_type: str, payload: dict[str, Any]) -> None:
        self.events.append((event_type, payload))

    def types(self) -> list[str]:
        return [t for t, _ in self.events]


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


@transactional
class FakeAccountRepository:
    def __init__(self) -> None:
        self.accounts: dict[str, Account] = {}
        self.ledger: list[LedgerTransaction] = []
        self.fail_credit_for: set[str] = set()
        self._next_entry = 1

    def seed(self, user_id: str, coin: int = 0, fiat: int = 0) -> None:
        """Fund a user through ledgered deposits so the books stay balanced."""
        self.accounts.setdefault(user_id, Account(f"acc-{user_id}", user_id, 0, 0, 0))
        for currency, amount in ((Currency.COIN, coin), (Currency.FIAT, fiat)):
            if amount:
                self._move(user_id, currency.value, amount, LedgerDirection.CREDIT,
                           LedgerEntryType.DEPOSIT, "seed", None, None, None)

    def balance(self, user_id: str, currency: str = "COIN") -> int:
        return self.accounts[user_id].balance_of(currency)

    def entries(self, user_id: str | None = None, entry_type: str | None = None) -> list[LedgerTransaction]:
        return [
            e for e in self.ledger
            if (user_id is None or e.user_id == user_id)
            and (entry_type is None or e.entry_type == entry_type)
        ]

    def _move(
        self,
        user_id: str,
        currency: str,
        amount: int,
        direction: str,
        entry_type: str,
        description: str,
        market_id: str | None,
        reference_type: str | None,
        reference_id: str | None,
    ) -> tuple[Account, LedgerTransaction]:
        account = self.accounts[user_id]
        delta = amount if direction == LedgerDirection.CREDIT else -amount
        if currency == Currency.COIN:
            account.available_balance += delta
        else:
            account.fiat_balance += delta
        account.version += 1
        entry = LedgerTransaction(
            id=self._next_entry,
            user_id=user_id,
            direction=direction,
            currency=currency,
            amount=amount,
            balance_after=account.balance_of(currency),
            entry_type=entry_type,
            description=description,
            market_id=market_id,
            reference_type=reference_type,
            reference_id=reference_id,
            created_at=T0,
        )
        self._next_entry += 1
        self.ledger.append(entry)
        return replace(account), replace(entry)

    async def get_account(self, db: Any, user_id: str) -> Account | None:
        account = self.accounts.get(user_id)
        return replace(account) if account else None

    async def ensure_account(self, db: Any, user_id: str) -> Account:
        self.accounts.setdefault(user_id, Account(f"acc-{user_id}", user_id, 0, 0, 0))
        return replace(self.accounts[user_id])

    async def credit(
        self, db: Any, user_id: str, currency: str, amount: int, entry_type: str,
        description: str, market_id: str | None = None,
        reference_type: str | None = None, reference_id: str | None = None,
    ) -> tuple[Account, LedgerTransaction]:
        if user_id in self.fail_credit_for:
            raise InjectedFailure(f"credit to {user_id} failed")
        if user_id not in self.accounts:
            raise AccountNotFoundError(user_id)
        return self._move(user_id, currency, amount, LedgerDirection.CREDIT, entry_type,
                          description, market_id, reference_type, reference_id)

    async def debit(
        self, db: Any, user_id: str, currency: str, amount: int, entry_type: str,
        description: str, market_id: str | None = None,
        reference_type: str | None = None, reference_id: str | None = None,
    ) -> tuple[Account, LedgerTransaction]:
        if user_id not in self.accounts:
            raise AccountNotFoundError(user_id)
        available = self.accounts[user_id].balance_of(currency)
        if available < amount:
            raise InsufficientBalanceError(currency, amount, available)
        return self._move(user_id, currency, amount, LedgerDirection.DEBIT, entry_type,
                          description, market_id, reference_type, reference_id)

    async def list_transactions(
        self, db: Any, user_id: str, cursor_id: int | None, limit: int, entry_type: str | None
    ) -> list[LedgerTransaction]:
        rows = [
            replace(e) for e in reversed(self.ledger)
            if e.user_id == user_id
            and (cursor_id is None or e.id < cursor_id)
            and (entry_type is None or e.entry_type == entry_type)
        ]
        return rows[:limit]


# ---------------------------------------------------------------------------
# Markets / positions
# ---------------------------------------------------------------------------


@transactional
class FakeMarketRepository:
    def __init__(self) -> None:
        self.markets: dict[str, Market] = {}
        self.positions: dict[str, Position] = {}

    def add_market(self, market_id: str = "mkt-1", options: list[str] | None = None,
                   status: str = MarketStatus.ACTIVE, closes_at: datetime | None = None) -> Market:
        market = Market(market_id, "Will it rain?", options or ["sim", "nao"], status, closes_at)
        self.markets[market_id] = market
        return market

    def add_position(self, position_id: str, user_id: str, option: str, stake: int,
                     market_id: str = "mkt-1", status: str = PositionStatus.ACTIVE) -> Position:
        position = Position(position_id, user_id, market_id, option, stake, 10000, status)
        self.positions[position_id] = position
        return position

    async def create_market(self, db: Any, market_id: str, title: str, options: list[str],
                            closes_at: datetime | None) -> Market:
        self.markets[market_id] = Market(market_id, title, list(options), MarketStatus.ACTIVE, closes_at)
        return replace(self.markets[market_id])

    async def get_market(self, db: Any, market_id: str) -> Market | None:
        market = self.markets.get(market_id)
        return replace(market) if market else None

    async def mark_market_settled(self, db: Any, market_id: str, winning_option: str,
                                  settled_at: datetime) -> bool:
        market = self.markets[market_id]
        if market.status == MarketStatus.SETTLED:
            return False
        market.status, market.winning_option, market.settled_at = (
            MarketStatus.SETTLED, winning_option, settled_at
        )
        return True

    async def close_expired_markets(self, db: Any, now: datetime) -> list[str]:
        closed = []
        for market in self.markets.values():
            if market.status == MarketStatus.ACTIVE and market.closes_at and market.closes_at <= now:
                market.status = MarketStatus.CLOSED
                closed.append(market.id)
        return closed

    async def insert_position(self, db: Any, position: Position) -> Position:
        self.positions[position.id] = replace(position, created_at=T0)
        return replace(self.positions[position.id])

    async def get_position(self, db: Any, position_id: str) -> Position | None:
        position = self.positions.get(position_id)
        return replace(position) if position else None

    async def list_market_positions(self, db: Any, market_id: str,
                                    statuses: tuple[str, ...]) -> list[Position]:
        return [
            replace(p) for p in self.positions.values()
            if p.market_id == market_id and p.status in statuses
        ]

    async def list_user_positions(self, db: Any, user_id: str, market_id: str | None,
                                  status: str | None) -> list[Position]:
        return [
            replace(p) for p in self.positions.values()
            if p.user_id == user_id
            and (market_id is None or p.market_id == market_id)
            and (status is None or p.status == status)
        ]

    async def transition_position(self, db: Any, position_id: str, new_status: str,
                                  payout_amount: int, settled_at: datetime) -> Position | None:
        position = self.positions.get(position_id)
        if position is None or position.status != PositionStatus.ACTIVE:
            return None
        position.status, position.payout_amount, position.settled_at = (
            new_status, payout_amount, settled_at
        )
        return replace(position)


# ---------------------------------------------------------------------------
# Exchange
# ---------------------------------------------------------------------------


@transactional
class FakeOracle:
    def __init__(self) -> None:
        self.samples: dict[str, PriceSample] = {}

    def set(self, symbol: str, price: str | Decimal, observed_at: datetime = T0) -> None:
        self.samples[symbol] = PriceSample(symbol, Decimal(price), observed_at)

    async def get_current_price(self, db: Any, symbol: str) -> PriceSample:
        if symbol not in self.samples:
            raise PriceUnavailableError(symbol)
        return self.samples[symbol]

    async def record_price(self, db: Any, symbol: str, price: Decimal,
                           observed_at: datetime) -> PriceSample:
        current = self.samples.get(symbol)
        if current is None or current.observed_at < observed_at:
            self.samples[symbol] = PriceSample(symbol, price, observed_at)
        return self.samples[symbol]


@transactional
class FakeExchangeOrderRepository:
    def __init__(self) -> None:
        self.orders: dict[str, ExchangeOrder] = {}

    def add_limit(self, order_id: str, user_id: str, side: str, amount_coin: int,
                  limit_price: str, expires_at: datetime | None = None) -> ExchangeOrder:
        order = ExchangeOrder(
            id=order_id, user_id=user_id, order_type=OrderType.LIMIT, side=side,
            amount_coin=amount_coin, amount_fiat=0, status=ExchangeOrderStatus.PENDING,
            limit_price=Decimal(limit_price), expires_at=expires_at, created_at=T0,
        )
        self.orders[order_id] = order
        return order

    async def insert_order(self, db: Any, order: ExchangeOrder) -> ExchangeOrder:
        self.orders[order.id] = replace(order, created_at=T0)
        return replace(self.orders[order.id])

    async def get_order(self, db: Any, order_id: str) -> ExchangeOrder | None:
        order = self.orders.get(order_id)
        return replace(order) if order else None

    async def list_user_orders(self, db: Any, user_id: str, status: str | None,
                               limit: int) -> list[ExchangeOrder]:
        rows = [
            replace(o) for o in reversed(list(self.orders.values()))
            if o.user_id == user_id and (status is None or o.status == status)
        ]
        return rows[:limit]

    async def list_pending_limit_orders(self, db: Any, limit: int) -> list[ExchangeOrder]:
        rows = [
            replace(o) for o in self.orders.values()
            if o.order_type == OrderType.LIMIT and o.status == ExchangeOrderStatus.PENDING
        ]
        return rows[:limit]

    async def fill_pending_order(self, db: Any, order_id: str, amount_coin: int, amount_fiat: int,
                                 executed_price: Decimal, fee_coin: int, fee_fiat: int,
                                 filled_at: datetime) -> ExchangeOrder | None:
        order = self.orders.get(order_id)
        if order is None or order.status != ExchangeOrderStatus.PENDING:
            return None
        order.status = ExchangeOrderStatus.FILLED
        order.amount_coin, order.amount_fiat = amount_coin, amount_fiat
        order.executed_price, order.fee_coin, order.fee_fiat = executed_price, fee_coin, fee_fiat
        order.filled_at = filled_at
        return replace(order)

    async def close_pending_order(self, db: Any, order_id: str, new_status: str, at: datetime,
                                  reason: str | None = None) -> ExchangeOrder | None:
        order = self.orders.get(order_id)
        if order is None or order.status != ExchangeOrderStatus.PENDING:
            return None
        order.status, order.cancelled_at, order.failure_reason = new_status, at, reason
        return replace(order)

    async def expire_overdue_orders(self, db: Any, now: datetime) -> list[str]:
        expired = []
        for order in self.orders.values():
            if (order.status == ExchangeOrderStatus.PENDING
                    and order.expires_at is not None and order.expires_at <= now):
                order.status, order.cancelled_at = ExchangeOrderStatus.EXPIRED, now
                expired.append(order.id)
        return expired


# ---------------------------------------------------------------------------
# Fast pools
# ---------------------------------------------------------------------------


@transactional
class FakeFastPoolRepository:
    def __init__(self) -> None:
        self.pools: dict[str, FastPool] = {}
        self.bets: dict[str, FastBet] = {}
        self.results: dict[str, FastPoolResult] = {}

    def add_pool(self, pool_id: str = "pool-1", asset_symbol: str = "BTC",
                 opening_price: str = "100", round_start: datetime = T0,
                 duration: int = 60, odds_bps: int = 16500, category: str = "crypto") -> FastPool:
        pool = FastPool(
            id=pool_id, round_number=1, category=category, asset_symbol=asset_symbol,
            asset_name=asset_symbol, question=f"{asset_symbol} up?", round_start=round_start,
            round_end=round_start + timedelta(seconds=duration),
            opening_price=Decimal(opening_price), status=FastPoolStatus.ACTIVE,
            paused=False, base_odds_bps=odds_bps,
        )
        self.pools[pool_id] = pool
        return pool

    def add_bet(self, bet_id: str, user_id: str, side: str, stake: int,
                pool_id: str = "pool-1") -> FastBet:
        bet = FastBet(bet_id, user_id, pool_id, side, stake, self.pools[pool_id].base_odds_bps)
        self.bets[bet_id] = bet
        return bet

    async def next_round_number(self, db: Any) -> int:
        return max((p.round_number for p in self.pools.values()), default=0) + 1

    async def insert_pool(self, db: Any, pool: FastPool) -> FastPool | None:
        if any(
            p.asset_symbol == pool.asset_symbol and p.round_start == pool.round_start
            for p in self.pools.values()
        ):
            return None
        self.pools[pool.id] = replace(pool)
        return replace(pool)

    async def get_pool(self, db: Any, pool_id: str) -> FastPool | None:
        pool = self.pools.get(pool_id)
        return replace(pool) if pool else None

    async def list_open_pools(self, db: Any, category: str, now: datetime) -> list[FastPool]:
        return [
            replace(p) for p in self.pools.values()
            if p.category == category and p.status == FastPoolStatus.ACTIVE and p.round_end > now
        ]

    async def list_due_pools(self, db: Any, now: datetime) -> list[FastPool]:
        return [
            replace(p) for p in self.pools.values()
            if p.status in (FastPoolStatus.ACTIVE, FastPoolStatus.PROCESSING) and p.round_end <= now
        ]

    async def list_active_pools_for_asset(self, db: Any, asset_symbol: str) -> list[FastPool]:
        return [
            replace(p) for p in self.pools.values()
            if p.asset_symbol == asset_symbol and p.status == FastPoolStatus.ACTIVE
        ]

    async def update_opening_price(self, db: Any, pool_id: str,
                                   opening_price: Decimal) -> FastPool | None:
        pool = self.pools.get(pool_id)
        if pool is None or pool.status != FastPoolStatus.ACTIVE:
            return None
        pool.opening_price = opening_price
        return replace(pool)

    async def start_processing(self, db: Any, pool_id: str, closing_price: Decimal, result: str,
                               price_change_percent: Decimal) -> FastPool | None:
        pool = self.pools.get(pool_id)
        if pool is None or pool.status != FastPoolStatus.ACTIVE:
            return None
        pool.status = FastPoolStatus.PROCESSING
        pool.closing_price, pool.result = closing_price, result
        pool.price_change_percent = price_change_percent
        return replace(pool)

    async def complete_pool(self, db: Any, pool_id: str) -> bool:
        pool = self.pools[pool_id]
        if pool.status != FastPoolStatus.PROCESSING:
            return False
        pool.status = FastPoolStatus.COMPLETED
        return True

    async def pause_pools(self, db: Any, pool_ids: list[str]) -> int:
        for pool_id in pool_ids:
            self.pools[pool_id].paused = True
        return len(pool_ids)

    async def insert_bet(self, db: Any, bet: FastBet, cutoff: datetime) -> FastBet | None:
        pool = self.pools.get(bet.pool_id)
        if (pool is None or pool.status != FastPoolStatus.ACTIVE
                or pool.paused or pool.round_end <= cutoff):
            return None
        self.bets[bet.id] = replace(bet, created_at=T0)
        return replace(self.bets[bet.id])

    async def list_pool_bets(self, db: Any, pool_id: str) -> list[FastBet]:
        return [replace(b) for b in self.bets.values() if b.pool_id == pool_id]

    async def mark_bet_processed(self, db: Any, bet_id: str,
                                 payout_amount: int) -> FastBet | None:
        bet = self.bets.get(bet_id)
        if bet is None or bet.processed:
            return None
        bet.processed, bet.payout_amount = True, payout_amount
        return replace(bet)

    async def insert_result(self, db: Any, result: FastPoolResult) -> None:
        self.results.setdefault(result.pool_id, replace(result, created_at=T0))

    async def list_results(self, db: Any, asset_symbol: str, limit: int) -> list[FastPoolResult]:
        rows = [replace(r) for r in reversed(list(self.results.values()))
                if r.asset_symbol == asset_symbol]
        return rows[:limit]


# ---------------------------------------------------------------------------
# Reconciliation (reads the fake account store)
# ---------------------------------------------------------------------------


class FakeReconciliationRepository:
    def __init__(self, accounts: FakeAccountRepository) -> None:
        self._accounts = accounts
        self.reports: list[ReconciliationReport] = []
        self.snapshots = 0

    async def begin_snapshot(self, db: Any) -> None:
        self.snapshots += 1

    async def observed_totals(self, db: Any, currency: str) -> tuple[int, int]:
        accounts = list(self._accounts.accounts.values())
        return len(accounts), sum(a.balance_of(currency) for a in accounts)

    async def ledger_total(self, db: Any, currency: str) -> int:
        return sum(e.signed_amount for e in self._accounts.ledger if e.currency == currency)

    async def user_discrepancies(self, db: Any, currency: str, epsilon_cents: int,
                                 limit: int) -> list[UserDiscrepancy]:
        derived: dict[str, int] = {}
        for e in self._accounts.ledger:
            if e.currency == currency:
                derived[e.user_id] = derived.get(e.user_id, 0) + e.signed_amount
        users = set(derived) | set(self._accounts.accounts)
        rows = []
        for user_id in users:
            account = self._accounts.accounts.get(user_id)
            observed = account.balance_of(currency) if account else 0
            ledger = derived.get(user_id, 0)
            if abs(observed - ledger) > epsilon_cents:
                rows.append(UserDiscrepancy(user_id, observed, ledger, observed - ledger))
        rows.sort(key=lambda u: (-abs(u.difference), u.user_id))
        return rows[:limit]

    async def insert_report(self, db: Any, report: ReconciliationReport) -> ReconciliationReport:
        saved = replace(report, id=len(self.reports) + 1, checked_at=T0)
        self.reports.append(saved)
        return replace(saved)

    async def list_reports(self, db: Any, limit: int) -> list[ReconciliationReport]:
        return [replace(r) for r in reversed(self.reports)][:limit]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def events() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def accounts() -> FakeAccountRepository:
    return FakeAccountRepository()


@pytest.fixture
def markets() -> FakeMarketRepository:
    return FakeMarketRepository()


@pytest.fixture
def orders() -> FakeExchangeOrderRepository:
    return FakeExchangeOrderRepository()


@pytest.fixture
def oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def fast_repo() -> FakeFastPoolRepository:
    return FakeFastPoolRepository()


@pytest.fixture
def recon_repo(accounts: FakeAccountRepository) -> FakeReconciliationRepository:
    return FakeReconciliationRepository(accounts)


@pytest.fixture
def db(
    accounts: FakeAccountRepository,
    markets: FakeMarketRepository,
    orders: FakeExchangeOrderRepository,
    oracle: FakeOracle,
    fast_repo: FakeFastPoolRepository,
    recon_repo: FakeReconciliationRepository,
) -> FakeSession:
    # recon_repo only holds a reference to accounts; keep it out of the snapshots
    return FakeSession(accounts, markets, orders, oracle, fast_repo)
