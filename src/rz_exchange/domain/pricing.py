"""Fill arithmetic for the COIN/FIAT pair and the price freshness gate.

``price`` is FIAT per COIN. Conversions round down, fees round up, and the
fee is always taken from the currency the user receives.
"""

from datetime import datetime
from decimal import Decimal

from src.rz_common.enums import Currency, ExchangeSide
from src.rz_common.errors import InvalidOrderError, StalePriceError
from src.rz_common.money import calculate_fee, coin_to_fiat, fiat_to_coin
from src.rz_exchange.domain.models import Fill, PriceSample


def ensure_fresh(sample: PriceSample, now: datetime, max_age_seconds: int) -> None:
    """Raise StalePriceError if the sample is older than max_age_seconds."""
    age = (now - sample.observed_at).total_seconds()
    if age > max_age_seconds:
        raise StalePriceError(sample.symbol, age, max_age_seconds)


def plan_fill(
    side: str,
    amount_input: int,
    input_currency: str,
    price: Decimal,
    fee_bps: int,
) -> Fill:
    if amount_input <= 0:
        raise InvalidOrderError(f"amount must be greater than 0, got {amount_input}")
    if price <= 0:
        raise InvalidOrderError(f"price must be positive, got {price}")
    if side not in (ExchangeSide.BUY_COIN, ExchangeSide.SELL_COIN):
        raise InvalidOrderError(f"unknown side {side}")
    if input_currency not in (Currency.COIN, Currency.FIAT):
        raise InvalidOrderError(f"unknown currency {input_currency}")

    if side == ExchangeSide.BUY_COIN:
        pay_currency, receive_currency = Currency.FIAT, Currency.COIN
        if input_currency == Currency.FIAT:
            pay, receive = amount_input, fiat_to_coin(amount_input, price)
        else:
            pay, receive = coin_to_fiat(amount_input, price), amount_input
    else:
        pay_currency, receive_currency = Currency.COIN, Currency.FIAT
        if input_currency == Currency.COIN:
            pay, receive = amount_input, coin_to_fiat(amount_input, price)
        else:
            pay, receive = fiat_to_coin(amount_input, price), amount_input

    fee = calculate_fee(receive, fee_bps)
    if pay <= 0 or receive - fee <= 0:
        raise InvalidOrderError(f"amount {amount_input} is too small at price {price}")
    return Fill(
        side=side,
        price=price,
        pay_currency=pay_currency.value,
        pay_amount=pay,
        receive_currency=receive_currency.value,
        receive_gross=receive,
        fee=fee,
    )


def limit_is_executable(side: str, current_price: Decimal, limit_price: Decimal) -> bool:
    """Buy when the price is at or below the limit; sell when at or above."""
    if side == ExchangeSide.BUY_COIN:
        return current_price <= limit_price
    return current_price >= limit_price
