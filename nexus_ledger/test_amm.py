"""
AMM pool accounting.

Tests the constant product formula, LP share bookkeeping with exact
arithmetic, and the guards that keep reserves from reaching zero.
"""
import pytest
from decimal import Decimal
from fractions import Fraction

from nexus_ledger.amm_state import (
    AMMError,
    LiquidityPoolState,
    format_fraction,
    pair_key,
)

CREATOR = "rO...Operational"
LP = "rLiquidityProvider"


@pytest.fixture
def pool():
    """XRP/USD pool, 1000 XRP : 500 USD, 0.5% fee."""
    return LiquidityPoolState.create(pair_key("XRP", "USD"), "1000", "500", 500, CREATOR)


class TestCreation:
    def test_initial_lp_is_geometric_mean(self, pool):
        assert format_fraction(pool.lp_token_supply) == "707.106781"
        assert pool.lp_balance(CREATOR) == pool.lp_token_supply

    def test_price(self, pool):
        assert pool.current_price == Decimal("0.5")

    def test_fee_fraction(self, pool):
        assert pool.fee_fraction == Fraction(1, 200)

    @pytest.mark.parametrize("base,quote", [("0", "500"), ("1000", "0"), ("-1", "5")])
    def test_both_sides_must_be_positive(self, base, quote):
        with pytest.raises(AMMError):
            LiquidityPoolState.create("XRP/USD", base, quote, 0, CREATOR)

    def test_dict_round_trip(self, pool):
        restored = LiquidityPoolState.from_dict({
            'pair': pool.pair,
            'base_reserve': pool.base_reserve,
            'quote_reserve': pool.quote_reserve,
            'lp_token_supply': pool.lp_token_supply,
            'trading_fee': pool.trading_fee,
            'positions': pool.positions,
        })
        assert restored.to_dict() == pool.to_dict()


class TestDeposits:
    def test_deposit_then_withdraw_restores_reserves(self, pool):
        """Withdrawing exactly the LP tokens minted returns the pool to its prior reserves."""
        base_before, quote_before = pool.base_reserve, pool.quote_reserve
        supply_before = pool.lp_token_supply

        lp_tokens, base_used, quote_used = pool.deposit_two_asset(LP, "100", "50")
        base_out, quote_out = pool.withdraw_lp(LP, lp_tokens)

        assert (base_out, quote_out) == (base_used, quote_used)
        assert pool.base_reserve == base_before
        assert pool.quote_reserve == quote_before
        assert pool.lp_token_supply == supply_before
        assert pool.lp_balance(LP) == 0

    def test_unbalanced_deposit_uses_pool_ratio(self, pool):
        lp_tokens, base_used, quote_used = pool.deposit_two_asset(LP, "100", "80")
        assert base_used == 100
        assert quote_used == 50
        assert pool.current_price == Decimal("0.5")

    def test_single_asset_deposit_credits_lp(self, pool):
        k_before = pool.invariant
        lp_tokens = pool.deposit_single_asset(LP, quote_amount="50")
        assert lp_tokens > 0
        assert pool.quote_reserve == 550
        assert pool.base_reserve == 1000
        assert pool.invariant > k_before
        assert pool.lp_balance(LP) == lp_tokens

    def test_single_asset_deposit_pays_half_fee(self, pool):
        free_pool = LiquidityPoolState.create("XRP/USD", "1000", "500", 0, CREATOR)
        assert pool.deposit_single_asset(LP, base_amount="100") < free_pool.deposit_single_asset(LP, base_amount="100")

    def test_single_asset_deposit_takes_exactly_one_side(self, pool):
        with pytest.raises(AMMError):
            pool.deposit_single_asset(LP, "10", "10")
        with pytest.raises(AMMError):
            pool.deposit_single_asset(LP)

    def test_zero_deposit_rejected(self, pool):
        with pytest.raises(AMMError):
            pool.deposit_two_asset(LP, "0", "10")


class TestWithdrawals:
    def test_cannot_withdraw_more_than_held(self, pool):
        pool.deposit_two_asset(LP, "10", "5")
        with pytest.raises(AMMError):
            pool.withdraw_lp(LP, pool.lp_balance(LP) + 1)

    def test_withdraw_all_removes_position(self, pool):
        pool.deposit_two_asset(LP, "100", "50")
        base_out, quote_out = pool.withdraw_all(LP)
        assert base_out == 100 and quote_out == 50
        assert LP not in pool.positions

    def test_withdraw_all_without_position(self, pool):
        with pytest.raises(AMMError):
            pool.withdraw_all(LP)

    def test_last_provider_empties_pool(self, pool):
        pool.withdraw_all(CREATOR)
        assert pool.is_empty
        assert pool.base_reserve == 0 and pool.quote_reserve == 0


class TestConstantProductInvariant:
    """Test that x * y = k is maintained."""

    def test_swap_output_formula(self):
        pool = LiquidityPoolState.create("XRP/USD", "1000", "500", 0, CREATOR)
        assert pool.get_swap_output("100", input_is_base=True) == Fraction(500 * 100, 1100)

    def test_swap_never_decreases_k(self, pool):
        k_before = pool.invariant
        output = pool.apply_swap("100", input_is_base=True)
        assert output > 0
        assert pool.invariant >= k_before
        assert pool.volume_24h == output

    def test_fee_stays_in_pool(self, pool):
        k_before = pool.invariant
        pool.apply_swap("50", input_is_base=False)
        assert pool.invariant > k_before

    def test_zero_swap_rejected(self, pool):
        assert pool.get_swap_output("0", True) == 0
        with pytest.raises(AMMError):
            pool.apply_swap("0", True)

    def test_required_amounts_follow_ratio(self, pool):
        assert pool.get_required_quote("10") == 5
        assert pool.get_required_base("5") == 10

    def test_curve_points_lie_on_curve(self, pool):
        points = pool.curve_points(count=5)
        assert len(points) == 5
        k = Decimal(format_fraction(pool.invariant))
        for x, y in points:
            assert abs(x * y - k) < Decimal("0.01")
        assert points[0][0] == Decimal("500.000000")
        assert points[-1][0] == Decimal("1500.000000")
