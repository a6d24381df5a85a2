"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth
  2xxx: Account
  3xxx: Market / Position
  4xxx: Exchange order
  5xxx: Fast pool
  6xxx: Cashout
  9xxx: System (pricing, internal)
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Auth ---

class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1003, "Invalid or expired token", 401)


class AdminRequiredError(AppError):
    def __init__(self) -> None:
        super().__init__(1006, "Admin access required", 403)


# --- 2xxx: Account ---

class InsufficientBalanceError(AppError):
    def __init__(self, currency: str, required: int, available: int) -> None:
        super().__init__(
            2001,
            f"Insufficient {currency} balance: required {required} cents, "
            f"available {available} cents",
            422,
        )
        self.currency = currency
        self.required = required
        self.available = available


class AccountNotFoundError(AppError):
    def __init__(self, user_id: str) -> None:
        super().__init__(2002, f"Account not found for user {user_id}", 404)


class InvalidAmountError(AppError):
    def __init__(self, amount: object) -> None:
        super().__init__(2003, f"Amount must be greater than 0, got {amount}", 422)


# --- 3xxx: Market / Position ---

class MarketNotFoundError(AppError):
    def __init__(self, market_id: str) -> None:
        super().__init__(3001, f"Market not found: {market_id}", 404)


class MarketNotActiveError(AppError):
    def __init__(self, market_id: str, status: str) -> None:
        super().__init__(3002, f"Market {market_id} is not active (status={status})", 422)


class InvalidOptionError(AppError):
    def __init__(self, option: str, options: list[str]) -> None:
        super().__init__(
            3003,
            f"Invalid option: {option}. Must be one of: {', '.join(options)}",
            422,
        )


class MarketAlreadySettledError(AppError):
    def __init__(self, market_id: str) -> None:
        super().__init__(3004, f"Market is already settled: {market_id}", 409)


class PositionNotFoundError(AppError):
    def __init__(self, position_id: str) -> None:
        super().__init__(3005, f"Position not found: {position_id}", 404)


class PositionNotActiveError(AppError):
    def __init__(self, position_id: str, status: str) -> None:
        super().__init__(
            3006, f"Position {position_id} is not active (status={status})", 409
        )


# --- 4xxx: Exchange order ---

class InvalidOrderError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4001, f"Invalid order: {detail}", 422)


class OrderNotFoundError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(4004, f"Order not found: {order_id}", 404)


class OrderNotCancellableError(AppError):
    def __init__(self, order_id: str, status: str) -> None:
        super().__init__(4006, f"Order {order_id} in status {status} cannot be cancelled", 422)


# --- 5xxx: Fast pool ---

class FastPoolNotFoundError(AppError):
    def __init__(self, pool_id: str) -> None:
        super().__init__(5001, f"Fast pool not found: {pool_id}", 404)


class BettingClosedError(AppError):
    def __init__(self, pool_id: str, reason: str) -> None:
        super().__init__(5002, f"Pool {pool_id} is not accepting bets: {reason}", 422)


# --- 6xxx: Cashout ---

class CashoutNotAllowedError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(6001, f"Cashout not allowed: {detail}", 422)


# --- 9xxx: System ---

class StalePriceError(AppError):
    def __init__(self, symbol: str, age_seconds: float, max_age_seconds: int) -> None:
        super().__init__(
            9003,
            f"Price for {symbol} is stale: {age_seconds:.0f}s old (max {max_age_seconds}s)",
            503,
        )
        self.symbol = symbol
        self.age_seconds = age_seconds


class PriceUnavailableError(AppError):
    def __init__(self, symbol: str) -> None:
        super().__init__(9004, f"No price available for {symbol}", 503)


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)
