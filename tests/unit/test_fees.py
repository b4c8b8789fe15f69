"""
Unit Tests for the Venue Fee Model

Run with:
    pytest tests/unit/test_fees.py -v
"""

import pytest

from core.fees import DEFAULT_FEE_PROFILE, FeeModel
from core.schemas import FeeProfile


@pytest.fixture
def fees():
    return FeeModel()


class TestFeeLookup:
    """Tests for fees_for and the static table"""

    @pytest.mark.parametrize("venue, maker, taker, withdrawal", [
        ("binance", 0.001, 0.001, 15.0),
        ("coinbase", 0.004, 0.006, 25.0),
        ("kraken", 0.0016, 0.0026, 10.0),
        ("mexc", 0.0002, 0.0002, 8.0),
        ("phemex", -0.00025, 0.00075, 8.0),
    ])
    def test_known_venue_rates(self, fees, venue, maker, taker, withdrawal):
        """Verify table entries"""
        profile = fees.fees_for(venue)
        assert profile.maker_rate == maker
        assert profile.taker_rate == taker
        assert profile.withdrawal_fee_usd == withdrawal

    def test_lookup_is_case_insensitive(self, fees):
        """Verify 'KRAKEN' resolves to the kraken profile"""
        assert fees.fees_for("KRAKEN") == fees.fees_for("kraken")

    def test_unknown_venue_uses_default(self, fees):
        """Verify unknown venues fall back to the conservative default"""
        profile = fees.fees_for("somewhere")
        assert profile == DEFAULT_FEE_PROFILE
        assert profile.taker_rate == 0.002
        assert profile.withdrawal_fee_usd == 20.0
        assert fees.is_known("somewhere") is False

    def test_overrides_layer_over_table(self):
        """Verify constructor overrides win without touching other venues"""
        custom = FeeProfile(venue_id="binance", maker_rate=0.0, taker_rate=0.0005, withdrawal_fee_usd=1.0)
        model = FeeModel(overrides={"Binance": custom})
        assert model.fees_for("binance") == custom
        assert FeeModel().fees_for("binance").taker_rate == 0.001


class TestTradingFees:
    """Tests for trading_fee and withdrawal_fee"""

    def test_taker_fee_by_default(self, fees):
        """Verify trading_fee uses the taker rate unless told otherwise"""
        assert fees.trading_fee("coinbase", 1000.0) == pytest.approx(6.0)

    def test_maker_fee(self, fees):
        """Verify is_maker switches to the maker rate"""
        assert fees.trading_fee("coinbase", 1000.0, is_maker=True) == pytest.approx(4.0)

    def test_maker_rebate_is_negative(self, fees):
        """Verify negative maker rates produce a rebate"""
        assert fees.trading_fee("bitmex", 10_000.0, is_maker=True) == pytest.approx(-2.5)

    def test_withdrawal_fee(self, fees):
        assert fees.withdrawal_fee("deribit") == 5.0


class TestArbitrageFees:
    """Tests for arbitrage_fees"""

    def test_cross_venue_includes_buy_side_withdrawal(self, fees):
        """Verify taker fees on both legs plus the buy venue's withdrawal fee"""
        breakdown = fees.arbitrage_fees("binance", "kraken", 50_000.0, 50_600.0)
        assert breakdown.buy_fee == pytest.approx(50.0)
        assert breakdown.sell_fee == pytest.approx(50_600.0 * 0.0026)
        assert breakdown.withdrawal_fee == 15.0
        assert breakdown.total == pytest.approx(breakdown.buy_fee + breakdown.sell_fee + 15.0)

    def test_same_venue_has_no_withdrawal(self, fees):
        """Verify no transfer is charged when buying and selling on one venue"""
        breakdown = fees.arbitrage_fees("okx", "OKX", 1000.0, 1000.0)
        assert breakdown.withdrawal_fee == 0.0

    def test_withdrawal_can_be_excluded(self, fees):
        """Verify include_withdrawal=False drops the transfer fee"""
        breakdown = fees.arbitrage_fees("binance", "kraken", 1000.0, 1000.0, include_withdrawal=False)
        assert breakdown.withdrawal_fee == 0.0
        assert breakdown.total == pytest.approx(breakdown.buy_fee + breakdown.sell_fee)
