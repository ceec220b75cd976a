"""
Transaction templates: wire field names and dict/msgpack round-trips.
"""
import pytest

from nexus_ledger.core import (
    TF_SELL,
    AccountSet,
    AMMDeposit,
    Clawback,
    Issue,
    IssuedAmount,
    OfferCreate,
    Payment,
    TrustSet,
    ValidationError,
    decode_template,
    encode_template,
    template_from_dict,
)

ISSUER = "rIssuer"
HOLDER = "rHolder"
USD = IssuedAmount(currency="USD", issuer=ISSUER, value="500")


class TestWireFormat:
    def test_payment_optional_fields_absent(self):
        data = Payment(account=ISSUER, destination=HOLDER, amount="1000000").to_dict()
        assert data == {
            "TransactionType": "Payment",
            "Account": ISSUER,
            "Destination": HOLDER,
            "Amount": "1000000",
            "Fee": "12",
        }

    def test_payment_optional_fields_present(self):
        data = Payment(account=HOLDER, destination=ISSUER, amount=USD,
                       send_max="2000000", deliver_min=USD, flags=131072).to_dict()
        assert data["SendMax"] == "2000000"
        assert data["DeliverMin"] == USD.to_dict()
        assert data["Flags"] == 131072

    def test_account_set_without_flag(self):
        data = AccountSet(account=ISSUER).to_dict()
        assert "SetFlag" not in data
        assert data["TickSize"] == 5
        assert data["TransferRate"] == 0

    def test_issuance_detection(self):
        assert Payment(account=ISSUER, destination=ISSUER, amount=USD).is_issuance
        assert not Payment(account=HOLDER, destination=ISSUER, amount=USD).is_issuance
        assert not Payment(account=ISSUER, destination=HOLDER, amount="10").is_issuance

    def test_amm_native_asset_has_no_issuer(self):
        tx = AMMDeposit(account=HOLDER, asset=Issue("XRP"), asset2=Issue("USD", ISSUER),
                        flags=1048576, amount="1000000")
        data = tx.to_dict()
        assert data["Asset"] == {"currency": "XRP"}
        assert "Amount2" not in data


class TestRoundTrip:
    """Every variant survives dict and msgpack encoding unchanged."""

    @pytest.fixture(params=[
        AccountSet(account=ISSUER, set_flag=8),
        TrustSet(account=ISSUER, limit_amount=IssuedAmount("USD", HOLDER, "0"), flags=65536),
        Clawback(account=ISSUER, amount=USD, destination=HOLDER),
        Payment(account=HOLDER, destination=ISSUER, amount=USD, send_max="5"),
        OfferCreate(account=HOLDER, taker_pays=USD, taker_gets="100000000", flags=TF_SELL),
    ])
    def template(self, request):
        return request.param

    def test_dict_round_trip(self, template):
        restored = template_from_dict(template.to_dict())
        assert type(restored) is type(template)
        assert restored == template

    def test_msgpack_round_trip(self, template):
        assert decode_template(encode_template(template)) == template

    def test_signing_data_is_deterministic(self, template):
        assert template.get_signing_data() == template.get_signing_data()


class TestDecodingErrors:
    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            template_from_dict({"TransactionType": "EscrowCreate"})

    def test_missing_field(self):
        with pytest.raises(ValidationError):
            template_from_dict({"TransactionType": "Clawback", "Account": ISSUER})
