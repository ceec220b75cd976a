"""
Transaction template compiler.

Pure translation of user intent into transaction templates. Nothing here reads
or writes ledger state; every invalid intent is rejected with
``ValidationError`` before a template is produced.
"""
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from nexus_ledger.amm_state import lp_token_currency, pool_account, pair_key
from nexus_ledger.amounts import (
    parse_decimal,
    parse_positive,
    format_decimal,
    xrp_to_drops,
    validate_currency,
    validate_account,
)
from nexus_ledger.config import FeeConfig
from nexus_ledger.core import (
    NATIVE_CURRENCY,
    ASF_DEFAULT_RIPPLE,
    ASF_REQUIRE_AUTH,
    TF_SET_AUTH,
    TF_SET_FREEZE,
    TF_SET_NO_RIPPLE,
    TF_PARTIAL_PAYMENT,
    TF_SELL,
    TF_TWO_ASSET,
    TF_SINGLE_ASSET,
    TF_LP_TOKEN,
    TF_WITHDRAW_ALL,
    AccountSet,
    TrustSet,
    Clawback,
    Payment,
    AMMCreate,
    AMMDeposit,
    AMMWithdraw,
    OfferCreate,
    IssuedAmount,
    Issue,
    Amount,
    ValidationError,
)

MAX_TRADING_FEE = 65000
QUOTE_QUANTUM = Decimal("0.0001")


class TrustSetMode(Enum):
    AUTHORIZE = TF_SET_AUTH
    FREEZE = TF_SET_FREEZE
    LIMIT = TF_SET_NO_RIPPLE


class DepositStrategy(Enum):
    TWO_ASSET = TF_TWO_ASSET
    SINGLE_ASSET = TF_SINGLE_ASSET


class WithdrawMode(Enum):
    LP_TOKEN = TF_LP_TOKEN
    WITHDRAW_ALL = TF_WITHDRAW_ALL


class OrderSide(Enum):
    BUY = "Buy"
    SELL = "Sell"


def issued_amount(currency: str, issuer: str, value) -> IssuedAmount:
    """Build a validated issued-currency triple."""
    validate_currency(currency)
    validate_account(issuer, "issuer")
    return IssuedAmount(currency=currency, issuer=issuer, value=format_decimal(parse_positive(value)))


def native_amount(value) -> str:
    """Validate a positive native amount and return it in drops."""
    parse_positive(value, "native amount")
    drops = xrp_to_drops(value)
    if int(drops) <= 0:
        raise ValidationError(f"native amount rounds to zero drops: {value!r}")
    return drops


def decode_account_set_flags(templates) -> tuple[bool, bool]:
    """Recover ``(require_auth, default_ripple)`` from compiled AccountSet templates."""
    flags = {t.set_flag for t in templates if t.set_flag is not None}
    return ASF_REQUIRE_AUTH in flags, ASF_DEFAULT_RIPPLE in flags


class TemplateCompiler:
    """Compiles intents into templates using the configured fee schedule."""

    def __init__(self, fees: Optional[FeeConfig] = None):
        self.fees = fees or FeeConfig()

    def compile_account_set(self, account: str, require_auth: bool,
                            default_ripple: bool) -> list[AccountSet]:
        """
        Issuer configuration.

        SetFlag holds a single value, so each enabled toggle becomes its own
        AccountSet, submitted in order. With no toggles a bare AccountSet is
        returned.
        """
        validate_account(account)
        flags = []
        if default_ripple:
            flags.append(ASF_DEFAULT_RIPPLE)
        if require_auth:
            flags.append(ASF_REQUIRE_AUTH)
        if not flags:
            return [AccountSet(account=account, fee=self.fees.base_fee)]
        return [AccountSet(account=account, set_flag=flag, fee=self.fees.base_fee) for flag in flags]

    def compile_trust_set(self, account: str, counterparty: str, currency: str,
                          limit, mode: TrustSetMode) -> TrustSet:
        """
        Trust line management, one mode per template.

        For LIMIT the account is the holder and ``counterparty`` the issuer.
        AUTHORIZE and FREEZE are sent by the issuer with the holder as
        ``counterparty``. Authorization always carries a zero limit; freezing
        keeps the limit supplied.
        """
        validate_account(account)
        if not isinstance(mode, TrustSetMode):
            raise ValidationError(f"Unknown trust line mode: {mode!r}")
        if account == counterparty:
            raise ValidationError("A trust line needs two distinct accounts")
        if mode is TrustSetMode.LIMIT:
            limit_amount = issued_amount(currency, counterparty, limit)
        else:
            validate_currency(currency)
            validate_account(counterparty, "counterparty")
            value = "0" if mode is TrustSetMode.AUTHORIZE else format_decimal(parse_decimal(limit or 0, "limit"))
            if value.startswith("-"):
                raise ValidationError("Trust line limit cannot be negative")
            limit_amount = IssuedAmount(currency=currency, issuer=counterparty, value=value)
        return TrustSet(account=account, limit_amount=limit_amount, flags=mode.value, fee=self.fees.base_fee)

    def compile_trust_set_from_toggles(self, account: str, counterparty: str, currency: str,
                                       limit, authorize: bool = False,
                                       freeze: bool = False) -> TrustSet:
        """Selects the trust line mode from UI toggles, rejecting ambiguous combinations."""
        if authorize and freeze:
            raise ValidationError("Authorize and freeze are mutually exclusive")
        if authorize:
            mode = TrustSetMode.AUTHORIZE
        elif freeze:
            mode = TrustSetMode.FREEZE
        else:
            mode = TrustSetMode.LIMIT
        return self.compile_trust_set(account, counterparty, currency, limit, mode)

    def compile_clawback(self, issuer: str, holder: str, currency: str, amount) -> Clawback:
        validate_account(holder, "holder")
        if holder == issuer:
            raise ValidationError("Issuer cannot claw back from itself")
        return Clawback(
            account=issuer,
            amount=issued_amount(currency, issuer, amount),
            destination=holder,
            fee=self.fees.base_fee,
        )

    def _amount(self, amount: Union[Amount, Decimal, int]) -> Amount:
        if isinstance(amount, IssuedAmount):
            return issued_amount(amount.currency, amount.issuer, amount.value)
        return native_amount(amount)

    def compile_payment(self, account: str, destination: str, amount,
                        send_max=None, deliver_min=None) -> Payment:
        """
        Payment of native (decimal units, emitted as drops) or issued currency.

        ``send_max`` and ``deliver_min`` are included only when supplied.
        """
        validate_account(account)
        validate_account(destination, "destination")
        flags = 0
        if deliver_min is not None:
            flags |= TF_PARTIAL_PAYMENT
        return Payment(
            account=account,
            destination=destination,
            amount=self._amount(amount),
            fee=self.fees.base_fee,
            send_max=self._amount(send_max) if send_max is not None else None,
            deliver_min=self._amount(deliver_min) if deliver_min is not None else None,
            flags=flags,
        )

    def compile_issuance(self, issuer: str, currency: str, supply,
                         destination: Optional[str] = None) -> Payment:
        """Issuance is a payment of the issuer's own currency."""
        validate_account(issuer, "issuer")
        return self.compile_payment(
            issuer,
            destination or issuer,
            issued_amount(currency, issuer, supply),
        )

    def compile_amm_create(self, account: str, issuer: str, currency: str,
                           native_value, token_value, trading_fee: int) -> AMMCreate:
        validate_account(account)
        if isinstance(trading_fee, bool) or not isinstance(trading_fee, int):
            raise ValidationError(f"TradingFee must be an integer, got {trading_fee!r}")
        if not 0 <= trading_fee <= MAX_TRADING_FEE:
            raise ValidationError(f"TradingFee must be within 0..{MAX_TRADING_FEE}, got {trading_fee}")
        return AMMCreate(
            account=account,
            amount=native_amount(native_value),
            amount2=issued_amount(currency, issuer, token_value),
            trading_fee=trading_fee,
            fee=self.fees.amm_create_fee,
        )

    def compile_amm_deposit(self, account: str, issuer: str, currency: str,
                            strategy: DepositStrategy, native_value=None,
                            token_value=None) -> AMMDeposit:
        """
        Deposit into the XRP/``currency`` pool.

        The flag comes from ``strategy``: two-asset needs both sides,
        single-asset needs exactly one.
        """
        validate_account(account)
        validate_currency(currency)
        if not isinstance(strategy, DepositStrategy):
            raise ValidationError(f"Unknown deposit strategy: {strategy!r}")

        supplied = (native_value is not None, token_value is not None)
        if strategy is DepositStrategy.TWO_ASSET and supplied != (True, True):
            raise ValidationError("Two-asset deposit requires both amounts")
        if strategy is DepositStrategy.SINGLE_ASSET and sum(supplied) != 1:
            raise ValidationError("Single-asset deposit requires exactly one amount")

        return AMMDeposit(
            account=account,
            asset=Issue(NATIVE_CURRENCY),
            asset2=Issue(currency, issuer),
            flags=strategy.value,
            amount=native_amount(native_value) if native_value is not None else None,
            amount2=issued_amount(currency, issuer, token_value) if token_value is not None else None,
            fee=self.fees.base_fee,
        )

    def compile_amm_withdraw(self, account: str, issuer: str, currency: str,
                             mode: WithdrawMode, lp_token_value=None) -> AMMWithdraw:
        validate_account(account)
        validate_currency(currency)
        validate_account(issuer, "issuer")
        if not isinstance(mode, WithdrawMode):
            raise ValidationError(f"Unknown withdraw mode: {mode!r}")

        lp_token_in = None
        if mode is WithdrawMode.LP_TOKEN:
            if lp_token_value is None:
                raise ValidationError("LP-token withdrawal requires an LP token amount")
            pair = pair_key(NATIVE_CURRENCY, currency)
            lp_token_in = IssuedAmount(
                currency=lp_token_currency(pair),
                issuer=pool_account(pair),
                value=format_decimal(parse_positive(lp_token_value, "LP token amount")),
            )
        elif lp_token_value is not None:
            raise ValidationError("Withdraw-all takes no LP token amount")

        return AMMWithdraw(
            account=account,
            asset=Issue(NATIVE_CURRENCY),
            asset2=Issue(currency, issuer),
            flags=mode.value,
            lp_token_in=lp_token_in,
            fee=self.fees.base_fee,
        )

    def compile_offer_create(self, account: str, side: OrderSide, base_value, price,
                             quote_currency: str, quote_issuer: str) -> OfferCreate:
        """
        Limit order on the XRP/``quote_currency`` book.

        Buy: TakerPays is the base (what the account wants), TakerGets the quote.
        Sell: the two are swapped and tfSell is set.
        """
        validate_account(account)
        if not isinstance(side, OrderSide):
            raise ValidationError(f"Unknown order side: {side!r}")
        base = parse_positive(base_value, "base amount")
        quote_value = (base * parse_positive(price, "price")).quantize(QUOTE_QUANTUM)
        if quote_value <= 0:
            raise ValidationError("Quote amount rounds to zero")

        validate_currency(quote_currency)
        validate_account(quote_issuer, "quote issuer")
        drops = native_amount(base)
        quote = IssuedAmount(currency=quote_currency, issuer=quote_issuer, value=str(quote_value))

        if side is OrderSide.BUY:
            return OfferCreate(account=account, taker_pays=drops, taker_gets=quote,
                               flags=0, fee=self.fees.base_fee)
        return OfferCreate(account=account, taker_pays=quote, taker_gets=drops,
                           flags=TF_SELL, fee=self.fees.base_fee)
