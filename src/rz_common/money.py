"""Integer arithmetic for balances, fees and multipliers.

Amounts are int cents. Rates are int basis points (10000 = 100% = 1.00x).
Reference prices are Decimal; converting price x amount back to cents
always rounds down.
"""

from decimal import ROUND_DOWN, Decimal

BPS = 10000


def cents_to_display(cents: int, symbol: str = "RZ") -> str:
    """Convert cents to display string: 6500 -> 'RZ 65.00', -1200 -> '-RZ 12.00'."""
    sign = "-" if cents < 0 else ""
    abs_cents = abs(cents)
    return f"{sign}{symbol} {abs_cents // 100:,}.{abs_cents % 100:02d}"


def bps_to_display(bps: int) -> str:
    """13400 -> '1.34x'."""
    return f"{bps // BPS}.{(bps % BPS) // 100:02d}x"


def calculate_fee(amount: int, fee_bps: int) -> int:
    """Fee with ceiling division (platform never loses).

    fee = ceil(amount * fee_bps / 10000)
    """
    if amount == 0 or fee_bps == 0:
        return 0
    return (amount * fee_bps + BPS - 1) // BPS


def apply_multiplier(amount: int, multiplier_bps: int) -> int:
    """floor(amount * multiplier) — payouts never round up."""
    return amount * multiplier_bps // BPS


def ratio_to_multiplier_bps(numerator: int, denominator: int) -> int:
    """numerator/denominator as bps, rounded half-up to two decimals (x.yz)."""
    if denominator <= 0:
        raise ValueError(f"denominator must be positive, got {denominator}")
    hundredths = (200 * numerator + denominator) // (2 * denominator)
    return hundredths * 100


def share_to_percent_hundredths(part: int, total: int) -> int:
    """100 * part/total in hundredths of a percent, rounded half-up. 0 if total is 0."""
    if total <= 0:
        return 0
    return (2 * BPS * part + total) // (2 * total)


def fiat_to_coin(fiat_cents: int, price: Decimal) -> int:
    """Coin cents bought by fiat_cents at price (fiat per coin), rounded down."""
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    return int((Decimal(fiat_cents) / price).to_integral_value(rounding=ROUND_DOWN))


def coin_to_fiat(coin_cents: int, price: Decimal) -> int:
    """Fiat cents worth of coin_cents at price (fiat per coin), rounded down."""
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    return int((Decimal(coin_cents) * price).to_integral_value(rounding=ROUND_DOWN))
