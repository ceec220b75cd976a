"""
Template compiler: every intent maps to exactly one well-formed template or
is rejected with ValidationError.
"""
import pytest

from nexus_ledger.amm_state import lp_token_currency, pool_account
from nexus_ledger.compiler import (
    DepositStrategy,
    OrderSide,
    TemplateCompiler,
    TrustSetMode,
    WithdrawMode,
    decode_account_set_flags,
    issued_amount,
)
from nexus_ledger.config import FeeConfig
from nexus_ledger.core import (
    AccountSet,
    IssuedAmount,
    TF_PARTIAL_PAYMENT,
    ValidationError,
)

ISSUER = "rK...ColdWallet"
HOLDER = "rU...UserWallet"


@pytest.fixture
def compiler():
    return TemplateCompiler()


class TestAccountSet:
    def test_both_toggles_become_two_transactions(self, compiler):
        templates = compiler.compile_account_set(ISSUER, require_auth=True, default_ripple=True)
        assert [t.set_flag for t in templates] == [8, 7]
        assert all(t.tick_size == 5 and t.transfer_rate == 0 for t in templates)

    def test_toggles_are_recoverable(self, compiler):
        for require_auth in (True, False):
            for default_ripple in (True, False):
                templates = compiler.compile_account_set(ISSUER, require_auth, default_ripple)
                assert decode_account_set_flags(templates) == (require_auth, default_ripple)

    def test_no_toggles(self, compiler):
        templates = compiler.compile_account_set(ISSUER, False, False)
        assert templates == [AccountSet(account=ISSUER)]

    def test_account_required(self, compiler):
        with pytest.raises(ValidationError):
            compiler.compile_account_set("", True, False)


class TestTrustSet:
    def test_authorize_forces_zero_limit(self, compiler):
        tx = compiler.compile_trust_set(ISSUER, HOLDER, "USD", "5000", TrustSetMode.AUTHORIZE)
        assert tx.flags == 65536
        assert tx.limit_amount == IssuedAmount("USD", HOLDER, "0")

    def test_freeze(self, compiler):
        tx = compiler.compile_trust_set(ISSUER, HOLDER, "USD", "0", TrustSetMode.FREEZE)
        assert tx.flags == 1048576
        assert tx.to_dict()["LimitAmount"]["issuer"] == HOLDER

    def test_limit(self, compiler):
        tx = compiler.compile_trust_set(HOLDER, ISSUER, "USD", "1,000", TrustSetMode.LIMIT)
        assert tx.flags == 131072
        assert tx.limit_amount.value == "1000"

    def test_authorize_and_freeze_together_rejected(self, compiler):
        with pytest.raises(ValidationError):
            compiler.compile_trust_set_from_toggles(ISSUER, HOLDER, "USD", "0",
                                                    authorize=True, freeze=True)

    def test_toggles_select_mode(self, compiler):
        tx = compiler.compile_trust_set_from_toggles(ISSUER, HOLDER, "USD", "0", freeze=True)
        assert tx.flags == TrustSetMode.FREEZE.value

    def test_same_account_rejected(self, compiler):
        with pytest.raises(ValidationError):
            compiler.compile_trust_set(ISSUER, ISSUER, "USD", "1", TrustSetMode.LIMIT)

    def test_bad_mode(self, compiler):
        with pytest.raises(ValidationError):
            compiler.compile_trust_set(ISSUER, HOLDER, "USD", "1", 65536)


class TestClawbackAndPayment:
    def test_clawback_fields(self, compiler):
        data = compiler.compile_clawback(ISSUER, HOLDER, "USD", "10").to_dict()
        assert data["Amount"] == {"currency": "USD", "issuer": ISSUER, "value": "10"}
        assert data["Destination"] == HOLDER

    def test_clawback_from_self_rejected(self, compiler):
        with pytest.raises(ValidationError):
            compiler.compile_clawback(ISSUER, ISSUER, "USD", "10")

    def test_native_payment_in_drops(self, compiler):
        tx = compiler.compile_payment(HOLDER, ISSUER, "2.5")
        assert tx.amount == "2500000"
        data = tx.to_dict()
        assert "SendMax" not in data and "DeliverMin" not in data and "Flags" not in data

    def test_deliver_min_sets_partial_payment(self, compiler):
        eur = issued_amount("EUR", ISSUER, "500")
        tx = compiler.compile_payment(HOLDER, ISSUER, eur, send_max="600", deliver_min=eur)
        assert tx.flags == TF_PARTIAL_PAYMENT
        assert tx.send_max == "600000000"

    def test_issuance(self, compiler):
        tx = compiler.compile_issuance(ISSUER, "GLD", "1000000")
        assert tx.is_issuance
        assert tx.destination == ISSUER
        assert tx.amount.value == "1000000"

    def test_issuance_beyond_default_precision(self, compiler):
        supply = "1" + "0" * 30
        tx = compiler.compile_issuance(ISSUER, "GLD", supply)
        assert tx.amount.value == supply

    @pytest.mark.parametrize("amount", ["0", "-5", "abc"])
    def test_non_positive_amounts_rejected(self, compiler, amount):
        with pytest.raises(ValidationError):
            compiler.compile_issuance(ISSUER, "GLD", amount)

    def test_native_currency_cannot_be_issued(self, compiler):
        with pytest.raises(ValidationError):
            compiler.compile_issuance(ISSUER, "XRP", "10")

    def test_sub_drop_native_amount_rejected(self, compiler):
        with pytest.raises(ValidationError):
            compiler.compile_payment(HOLDER, ISSUER, "0.0000001")


class TestAMM:
    def test_create(self, compiler):
        tx = compiler.compile_amm_create("rO...Operational", ISSUER, "USD", "1000", "500", 500)
        data = tx.to_dict()
        assert data["Amount"] == "1000000000"
        assert data["Amount2"]["value"] == "500"
        assert data["TradingFee"] == 500
        assert data["Fee"] == "200000"

    @pytest.mark.parametrize("fee", [-1, 65001, 1.5, True])
    def test_create_fee_range(self, compiler, fee):
        with pytest.raises(ValidationError):
            compiler.compile_amm_create("rO", ISSUER, "USD", "1000", "500", fee)

    def test_two_asset_deposit(self, compiler):
        tx = compiler.compile_amm_deposit(HOLDER, ISSUER, "USD", DepositStrategy.TWO_ASSET, "10", "5")
        assert tx.flags == 1048576
        assert tx.amount == "10000000"
        assert tx.amount2.value == "5"

    def test_two_asset_deposit_needs_both(self, compiler):
        with pytest.raises(ValidationError):
            compiler.compile_amm_deposit(HOLDER, ISSUER, "USD", DepositStrategy.TWO_ASSET, "10")

    def test_single_asset_deposit(self, compiler):
        data = compiler.compile_amm_deposit(HOLDER, ISSUER, "USD", DepositStrategy.SINGLE_ASSET,
                                            token_value="5").to_dict()
        assert data["Flags"] == 524288
        assert "Amount" not in data
        assert data["Amount2"]["value"] == "5"

    @pytest.mark.parametrize("native,token", [("10", "5"), (None, None)])
    def test_single_asset_deposit_needs_exactly_one(self, compiler, native, token):
        with pytest.raises(ValidationError):
            compiler.compile_amm_deposit(HOLDER, ISSUER, "USD", DepositStrategy.SINGLE_ASSET,
                                         native, token)

    def test_withdraw_lp_tokens(self, compiler):
        tx = compiler.compile_amm_withdraw(HOLDER, ISSUER, "USD", WithdrawMode.LP_TOKEN, "12.5")
        assert tx.flags == 65536
        assert tx.lp_token_in.currency == lp_token_currency("XRP/USD")
        assert tx.lp_token_in.issuer == pool_account("XRP/USD")
        assert tx.lp_token_in.currency.startswith("03") and len(tx.lp_token_in.currency) == 40

    def test_withdraw_lp_tokens_needs_amount(self, compiler):
        with pytest.raises(ValidationError):
            compiler.compile_amm_withdraw(HOLDER, ISSUER, "USD", WithdrawMode.LP_TOKEN)

    def test_withdraw_all_forbids_amount(self, compiler):
        with pytest.raises(ValidationError):
            compiler.compile_amm_withdraw(HOLDER, ISSUER, "USD", WithdrawMode.WITHDRAW_ALL, "1")
        tx = compiler.compile_amm_withdraw(HOLDER, ISSUER, "USD", WithdrawMode.WITHDRAW_ALL)
        assert tx.flags == 131072
        assert "LPTokenIn" not in tx.to_dict()


class TestOfferCreate:
    def test_buy(self, compiler):
        data = compiler.compile_offer_create(HOLDER, OrderSide.BUY, "100", "0.55", "USD", ISSUER).to_dict()
        assert data["TakerPays"] == "100000000"
        assert data["TakerGets"] == {"currency": "USD", "issuer": ISSUER, "value": "55.0000"}
        assert data["Flags"] == 0

    def test_sell_swaps_sides(self, compiler):
        data = compiler.compile_offer_create(HOLDER, OrderSide.SELL, "100", "0.55", "USD", ISSUER).to_dict()
        assert data["TakerGets"] == "100000000"
        assert data["TakerPays"]["value"] == "55.0000"
        assert data["Flags"] == 524288

    def test_zero_price_rejected(self, compiler):
        with pytest.raises(ValidationError):
            compiler.compile_offer_create(HOLDER, OrderSide.BUY, "100", "0", "USD", ISSUER)

    def test_quote_rounding_to_zero_rejected(self, compiler):
        with pytest.raises(ValidationError):
            compiler.compile_offer_create(HOLDER, OrderSide.BUY, "0.0001", "0.1", "USD", ISSUER)


def test_custom_fee_schedule():
    compiler = TemplateCompiler(FeeConfig(base_fee="15", amm_create_fee="250000"))
    assert compiler.compile_clawback(ISSUER, HOLDER, "USD", "1").fee == "15"
    assert compiler.compile_amm_create("rO", ISSUER, "USD", "1", "1", 0).fee == "250000"
