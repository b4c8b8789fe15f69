"""
Venue Fee Model

Static maker/taker/withdrawal fees per venue and the cost of a
buy-here/sell-there arbitrage.

Arbitrage legs are assumed to execute immediately against the book, so
trading fees always use taker rates. Unknown venues fall back to a
conservative default profile: under-estimating cost would turn into false
profit signals, so the default errs high.

Usage:
    from core.fees import FeeModel

    fees = FeeModel()
    breakdown = fees.arbitrage_fees("binance", "kraken", 50_000.0, 50_600.0)
    print(breakdown.total)
"""

from typing import Dict, Mapping, Optional

from core.schemas import FeeBreakdown, FeeProfile


# (maker, taker, withdrawal USD). Verify current fees before production use.
_FEE_TABLE = {
    # Major venues
    "binance": (0.001, 0.001, 15.0),
    "coinbase": (0.004, 0.006, 25.0),
    "kraken": (0.0016, 0.0026, 10.0),
    "gemini": (0.001, 0.0035, 20.0),

    # International venues
    "bybit": (0.001, 0.001, 12.0),
    "okx": (0.0008, 0.001, 10.0),
    "gateio": (0.002, 0.002, 15.0),
    "kucoin": (0.001, 0.001, 10.0),
    "bitget": (0.001, 0.001, 12.0),
    "mexc": (0.0002, 0.0002, 8.0),
    "huobi": (0.002, 0.002, 15.0),
    "bitfinex": (0.001, 0.002, 20.0),
    "bitstamp": (0.004, 0.005, 15.0),

    # Derivatives venues (negative maker = rebate)
    "binanceusdm": (0.0002, 0.0004, 10.0),
    "deribit": (0.0002, 0.0005, 5.0),
    "phemex": (-0.00025, 0.00075, 8.0),
    "bitmex": (-0.00025, 0.00075, 10.0),
}

VENUE_FEES: Dict[str, FeeProfile] = {
    venue: FeeProfile(venue_id=venue, maker_rate=maker, taker_rate=taker, withdrawal_fee_usd=withdrawal)
    for venue, (maker, taker, withdrawal) in _FEE_TABLE.items()
}

DEFAULT_FEE_PROFILE = FeeProfile(
    venue_id="default",
    maker_rate=0.002,
    taker_rate=0.002,
    withdrawal_fee_usd=20.0,
)


class FeeModel:
    """
    Stateless fee lookup.

    Args:
        overrides: Optional venue -> FeeProfile mapping layered over the
                   static table (the table itself is never mutated)
        default: Profile used for venues missing from both

    Example:
        >>> model = FeeModel()
        >>> model.trading_fee("coinbase", 1_000.0)
        6.0
        >>> model.fees_for("unknown-venue").taker_rate
        0.002
    """

    def __init__(
        self,
        overrides: Optional[Mapping[str, FeeProfile]] = None,
        default: FeeProfile = DEFAULT_FEE_PROFILE
    ):
        self._profiles: Dict[str, FeeProfile] = dict(VENUE_FEES)
        if overrides:
            self._profiles.update({k.lower(): v for k, v in overrides.items()})
        self._default = default

    def fees_for(self, venue_id: str) -> FeeProfile:
        """Fee profile of a venue (case-insensitive), or the default profile."""
        return self._profiles.get(venue_id.lower(), self._default)

    def is_known(self, venue_id: str) -> bool:
        return venue_id.lower() in self._profiles

    def trading_fee(self, venue_id: str, notional: float, is_maker: bool = False) -> float:
        """
        Fee for trading `notional` (quote currency) on a venue.

        Args:
            venue_id: Venue identifier
            notional: Trade value (price x quantity)
            is_maker: Use the maker rate instead of the taker rate
        """
        profile = self.fees_for(venue_id)
        rate = profile.maker_rate if is_maker else profile.taker_rate
        return notional * rate

    def withdrawal_fee(self, venue_id: str) -> float:
        return self.fees_for(venue_id).withdrawal_fee_usd

    def arbitrage_fees(
        self,
        buy_venue: str,
        sell_venue: str,
        buy_notional: float,
        sell_notional: float,
        include_withdrawal: bool = True
    ) -> FeeBreakdown:
        """
        Total cost of buying on one venue and selling on another.

        The withdrawal fee is charged by the buy venue, only when the asset
        has to move (buy venue != sell venue) and the caller opted in.

        Args:
            buy_venue: Venue the asset is bought on
            sell_venue: Venue the asset is sold on
            buy_notional: Value of the buy leg
            sell_notional: Value of the sell leg
            include_withdrawal: Whether to charge the transfer

        Returns:
            FeeBreakdown with buy, sell, withdrawal and total fees
        """
        buy_fee = self.trading_fee(buy_venue, buy_notional, is_maker=False)
        sell_fee = self.trading_fee(sell_venue, sell_notional, is_maker=False)

        withdrawal_fee = 0.0
        if include_withdrawal and buy_venue.lower() != sell_venue.lower():
            withdrawal_fee = self.withdrawal_fee(buy_venue)

        return FeeBreakdown(
            buy_fee=buy_fee,
            sell_fee=sell_fee,
            withdrawal_fee=withdrawal_fee,
            total=buy_fee + sell_fee + withdrawal_fee,
        )
