"""
Core transaction templates for the ledger.

Every transaction kind is its own frozen dataclass carrying only the fields
that are valid for it. ``to_dict`` produces the wire-format record (XRPL field
names) and ``template_from_dict`` restores the exact variant.
"""
import msgpack
from dataclasses import dataclass
from typing import ClassVar, Optional, Union

NATIVE_CURRENCY = "XRP"
DROPS_PER_XRP = 1_000_000

BASE_FEE = "12"
AMM_CREATE_FEE = "200000"

# AccountSet SetFlag values
ASF_REQUIRE_AUTH = 7
ASF_DEFAULT_RIPPLE = 8

# TrustSet flags
TF_SET_AUTH = 65536
TF_SET_NO_RIPPLE = 131072
TF_SET_FREEZE = 1048576

# Payment flags
TF_PARTIAL_PAYMENT = 131072

# OfferCreate flags
TF_SELL = 524288

# AMMDeposit flags
TF_TWO_ASSET = 1048576
TF_SINGLE_ASSET = 524288

# AMMWithdraw flags
TF_LP_TOKEN = 65536
TF_WITHDRAW_ALL = 131072


class ValidationError(ValueError):
    """Raised when an intent cannot be compiled into a valid template."""
    pass


@dataclass(frozen=True)
class IssuedAmount:
    """Issued-currency amount: ``{currency, issuer, value}``."""
    currency: str
    issuer: str
    value: str

    def to_dict(self) -> dict:
        return {"currency": self.currency, "issuer": self.issuer, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict):
        return cls(currency=data["currency"], issuer=data["issuer"], value=data["value"])


@dataclass(frozen=True)
class Issue:
    """A currency without an amount, as used by AMM ``Asset`` fields."""
    currency: str
    issuer: Optional[str] = None

    def to_dict(self) -> dict:
        if self.issuer is None:
            return {"currency": self.currency}
        return {"currency": self.currency, "issuer": self.issuer}

    @classmethod
    def from_dict(cls, data: dict):
        return cls(currency=data["currency"], issuer=data.get("issuer"))


# Native amounts travel as drop strings, issued amounts as triples.
Amount = Union[str, IssuedAmount]


def amount_to_wire(amount: Amount):
    if isinstance(amount, IssuedAmount):
        return amount.to_dict()
    return amount


def amount_from_wire(data) -> Amount:
    if isinstance(data, dict):
        return IssuedAmount.from_dict(data)
    return str(data)


class TransactionTemplate:
    """Base class for all template variants."""

    transaction_type: ClassVar[str] = ""

    @property
    def tx_type(self) -> str:
        return self.transaction_type

    def to_dict(self) -> dict:
        raise NotImplementedError

    def get_signing_data(self) -> bytes:
        """Returns the canonical byte representation of the template."""
        return encode_template(self)


@dataclass(frozen=True)
class AccountSet(TransactionTemplate):
    transaction_type: ClassVar[str] = "AccountSet"

    account: str
    set_flag: Optional[int] = None
    fee: str = BASE_FEE
    tick_size: int = 5
    transfer_rate: int = 0

    def to_dict(self) -> dict:
        data = {
            "TransactionType": self.transaction_type,
            "Account": self.account,
            "Fee": self.fee,
            "TickSize": self.tick_size,
            "TransferRate": self.transfer_rate,
        }
        if self.set_flag is not None:
            data["SetFlag"] = self.set_flag
        return data

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            account=data["Account"],
            set_flag=data.get("SetFlag"),
            fee=data["Fee"],
            tick_size=data["TickSize"],
            transfer_rate=data["TransferRate"],
        )


@dataclass(frozen=True)
class TrustSet(TransactionTemplate):
    transaction_type: ClassVar[str] = "TrustSet"

    account: str
    limit_amount: IssuedAmount
    flags: int
    fee: str = BASE_FEE

    def to_dict(self) -> dict:
        return {
            "TransactionType": self.transaction_type,
            "Account": self.account,
            "LimitAmount": self.limit_amount.to_dict(),
            "Flags": self.flags,
            "Fee": self.fee,
        }

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            account=data["Account"],
            limit_amount=IssuedAmount.from_dict(data["LimitAmount"]),
            flags=data["Flags"],
            fee=data["Fee"],
        )


@dataclass(frozen=True)
class Clawback(TransactionTemplate):
    transaction_type: ClassVar[str] = "Clawback"

    account: str
    amount: IssuedAmount
    destination: str
    fee: str = BASE_FEE

    def to_dict(self) -> dict:
        return {
            "TransactionType": self.transaction_type,
            "Account": self.account,
            "Amount": self.amount.to_dict(),
            "Destination": self.destination,
            "Fee": self.fee,
        }

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            account=data["Account"],
            amount=IssuedAmount.from_dict(data["Amount"]),
            destination=data["Destination"],
            fee=data["Fee"],
        )


@dataclass(frozen=True)
class Payment(TransactionTemplate):
    transaction_type: ClassVar[str] = "Payment"

    account: str
    destination: str
    amount: Amount
    fee: str = BASE_FEE
    send_max: Optional[Amount] = None
    deliver_min: Optional[Amount] = None
    flags: int = 0

    @property
    def is_issuance(self) -> bool:
        """A payment of the sender's own issued currency mints new supply."""
        return isinstance(self.amount, IssuedAmount) and self.amount.issuer == self.account

    def to_dict(self) -> dict:
        data = {
            "TransactionType": self.transaction_type,
            "Account": self.account,
            "Destination": self.destination,
            "Amount": amount_to_wire(self.amount),
            "Fee": self.fee,
        }
        if self.send_max is not None:
            data["SendMax"] = amount_to_wire(self.send_max)
        if self.deliver_min is not None:
            data["DeliverMin"] = amount_to_wire(self.deliver_min)
        if self.flags:
            data["Flags"] = self.flags
        return data

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            account=data["Account"],
            destination=data["Destination"],
            amount=amount_from_wire(data["Amount"]),
            fee=data["Fee"],
            send_max=amount_from_wire(data["SendMax"]) if "SendMax" in data else None,
            deliver_min=amount_from_wire(data["DeliverMin"]) if "DeliverMin" in data else None,
            flags=data.get("Flags", 0),
        )


@dataclass(frozen=True)
class AMMCreate(TransactionTemplate):
    transaction_type: ClassVar[str] = "AMMCreate"

    account: str
    amount: str
    amount2: IssuedAmount
    trading_fee: int
    fee: str = AMM_CREATE_FEE

    def to_dict(self) -> dict:
        return {
            "TransactionType": self.transaction_type,
            "Account": self.account,
            "Amount": self.amount,
            "Amount2": self.amount2.to_dict(),
            "TradingFee": self.trading_fee,
            "Fee": self.fee,
        }

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            account=data["Account"],
            amount=data["Amount"],
            amount2=IssuedAmount.from_dict(data["Amount2"]),
            trading_fee=data["TradingFee"],
            fee=data["Fee"],
        )


@dataclass(frozen=True)
class AMMDeposit(TransactionTemplate):
    transaction_type: ClassVar[str] = "AMMDeposit"

    account: str
    asset: Issue
    asset2: Issue
    flags: int
    amount: Optional[str] = None
    amount2: Optional[IssuedAmount] = None
    fee: str = BASE_FEE

    def to_dict(self) -> dict:
        data = {
            "TransactionType": self.transaction_type,
            "Account": self.account,
            "Asset": self.asset.to_dict(),
            "Asset2": self.asset2.to_dict(),
            "Flags": self.flags,
            "Fee": self.fee,
        }
        if self.amount is not None:
            data["Amount"] = self.amount
        if self.amount2 is not None:
            data["Amount2"] = self.amount2.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            account=data["Account"],
            asset=Issue.from_dict(data["Asset"]),
            asset2=Issue.from_dict(data["Asset2"]),
            flags=data["Flags"],
            amount=data.get("Amount"),
            amount2=IssuedAmount.from_dict(data["Amount2"]) if "Amount2" in data else None,
            fee=data["Fee"],
        )


@dataclass(frozen=True)
class AMMWithdraw(TransactionTemplate):
    transaction_type: ClassVar[str] = "AMMWithdraw"

    account: str
    asset: Issue
    asset2: Issue
    flags: int
    lp_token_in: Optional[IssuedAmount] = None
    fee: str = BASE_FEE

    def to_dict(self) -> dict:
        data = {
            "TransactionType": self.transaction_type,
            "Account": self.account,
            "Asset": self.asset.to_dict(),
            "Asset2": self.asset2.to_dict(),
            "Flags": self.flags,
            "Fee": self.fee,
        }
        if self.lp_token_in is not None:
            data["LPTokenIn"] = self.lp_token_in.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            account=data["Account"],
            asset=Issue.from_dict(data["Asset"]),
            asset2=Issue.from_dict(data["Asset2"]),
            flags=data["Flags"],
            lp_token_in=IssuedAmount.from_dict(data["LPTokenIn"]) if "LPTokenIn" in data else None,
            fee=data["Fee"],
        )


@dataclass(frozen=True)
class OfferCreate(TransactionTemplate):
    transaction_type: ClassVar[str] = "OfferCreate"

    account: str
    taker_pays: Amount
    taker_gets: Amount
    flags: int = 0
    fee: str = BASE_FEE

    @property
    def is_sell(self) -> bool:
        return bool(self.flags & TF_SELL)

    def to_dict(self) -> dict:
        return {
            "TransactionType": self.transaction_type,
            "Account": self.account,
            "TakerPays": amount_to_wire(self.taker_pays),
            "TakerGets": amount_to_wire(self.taker_gets),
            "Fee": self.fee,
            "Flags": self.flags,
        }

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            account=data["Account"],
            taker_pays=amount_from_wire(data["TakerPays"]),
            taker_gets=amount_from_wire(data["TakerGets"]),
            fee=data["Fee"],
            flags=data["Flags"],
        )


TEMPLATE_TYPES = {
    cls.transaction_type: cls
    for cls in (AccountSet, TrustSet, Clawback, Payment, AMMCreate, AMMDeposit, AMMWithdraw, OfferCreate)
}


def template_from_dict(data: dict) -> TransactionTemplate:
    """Creates the template variant named by ``TransactionType``."""
    tx_type = data.get("TransactionType")
    cls = TEMPLATE_TYPES.get(tx_type)
    if cls is None:
        raise ValidationError(f"Unknown transaction type: {tx_type}")
    try:
        return cls.from_dict(data)
    except KeyError as e:
        raise ValidationError(f"{tx_type} missing field {e}") from e


def encode_template(template: TransactionTemplate) -> bytes:
    return msgpack.packb(template.to_dict(), use_bin_type=True)


def decode_template(encoded: bytes) -> TransactionTemplate:
    return template_from_dict(msgpack.unpackb(encoded, raw=False))
