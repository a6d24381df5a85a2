"""Early-exit quote for an active position. Pure arithmetic, no I/O."""

from dataclasses import dataclass

from src.rz_common.money import apply_multiplier, calculate_fee


@dataclass(frozen=True)
class CashoutQuote:
    position_id: str
    stake: int
    multiple_now_bps: int
    gross: int
    fee: int
    net: int


def quote_from_multiple(
    position_id: str, stake: int, multiple_now_bps: int, fee_bps: int
) -> CashoutQuote:
    gross = apply_multiplier(stake, multiple_now_bps)
    fee = calculate_fee(gross, fee_bps)
    return CashoutQuote(
        position_id=position_id,
        stake=stake,
        multiple_now_bps=multiple_now_bps,
        gross=gross,
        fee=fee,
        net=max(gross - fee, 0),
    )
