"""Assets offered as 60-second rounds, per category."""

from dataclasses import dataclass


@dataclass(frozen=True)
class AssetConfig:
    symbol: str
    name: str
    question: str


DEFAULT_CATEGORY = "crypto"

ASSETS_BY_CATEGORY: dict[str, tuple[AssetConfig, ...]] = {
    "crypto": (
        AssetConfig("BTC", "Bitcoin", "Will Bitcoin go up in the next 60 seconds?"),
        AssetConfig("ETH", "Ethereum", "Will Ethereum go up in the next 60 seconds?"),
        AssetConfig("SOL", "Solana", "Will Solana go up in the next 60 seconds?"),
    ),
    "commodities": (
        AssetConfig("OIL", "WTI Crude Oil", "Will oil go up in the next 60 seconds?"),
        AssetConfig("GOLD", "Gold", "Will gold go up in the next 60 seconds?"),
        AssetConfig("SILVER", "Silver", "Will silver go up in the next 60 seconds?"),
    ),
    "forex": (
        AssetConfig("BRLUSD", "Real/Dollar", "Will the Real rise against the Dollar in the next 60 seconds?"),
        AssetConfig("EURUSD", "Euro/Dollar", "Will the Euro rise against the Dollar in the next 60 seconds?"),
        AssetConfig("JPYUSD", "Yen/Dollar", "Will the Yen rise against the Dollar in the next 60 seconds?"),
    ),
    "stocks": (
        AssetConfig("TSLA", "Tesla", "Will Tesla go up in the next 60 seconds?"),
        AssetConfig("AAPL", "Apple", "Will Apple go up in the next 60 seconds?"),
        AssetConfig("AMZN", "Amazon", "Will Amazon go up in the next 60 seconds?"),
    ),
}


def resolve_category(category: str | None) -> str:
    """Unknown or missing categories fall back to crypto."""
    if category and category in ASSETS_BY_CATEGORY:
        return category
    return DEFAULT_CATEGORY


def assets_for(category: str | None) -> tuple[AssetConfig, ...]:
    return ASSETS_BY_CATEGORY[resolve_category(category)]
