"""
AMM (Automated Market Maker) liquidity pool state.
Implements constant product formula: x * y = k

Reserves and LP balances are kept as exact fractions so that deposits and
withdrawals can be compared for equality; decimal strings are produced only
for display.
"""
from decimal import Decimal, localcontext
from fractions import Fraction
from typing import Optional

from nexus_ledger.amounts import parse_decimal
from nexus_ledger.core import ValidationError
from nexus_ledger.crypto import generate_hash

# TradingFee is expressed in units of 1/100,000 of the traded amount.
FEE_DENOMINATOR = 100_000

DISPLAY_PLACES = 6
SQRT_PRECISION = 50


class AMMError(ValidationError):
    """Raised when a pool operation would break the pool invariants."""
    pass


def pair_key(base: str, quote: str) -> str:
    return f"{base}/{quote}"


def lp_token_currency(pair: str) -> str:
    """LP tokens use a 160-bit currency code prefixed with 0x03."""
    return ("03" + generate_hash(pair.encode("utf-8")).hex()[:38]).upper()


def pool_account(pair: str) -> str:
    """Pseudo-account that issues the pool's LP tokens."""
    return "rAMM" + generate_hash(b"AMM:" + pair.encode("utf-8")).hex()[:28]


def to_fraction(value) -> Fraction:
    if isinstance(value, Fraction):
        return value
    if isinstance(value, int):
        return Fraction(value)
    return Fraction(parse_decimal(value))


def _sqrt(value: Fraction) -> Fraction:
    with localcontext() as ctx:
        ctx.prec = SQRT_PRECISION
        root = (Decimal(value.numerator) / Decimal(value.denominator)).sqrt()
    return Fraction(root)


def format_fraction(value: Fraction, places: int = DISPLAY_PLACES) -> str:
    """Render an exact value as a decimal string with ``places`` decimals."""
    with localcontext() as ctx:
        ctx.prec = SQRT_PRECISION
        result = Decimal(value.numerator) / Decimal(value.denominator)
        return str(result.quantize(Decimal(1).scaleb(-places)))


class LiquidityPoolState:
    """
    Represents an AMM pool between the native currency (base) and one issued
    currency (quote).

    Uses the constant product formula:
    base_reserve * quote_reserve = k (constant, grows only with fees and deposits)
    """

    def __init__(self, data: dict = None):
        """
        Initialize liquidity pool state.

        Args:
            data: Dict with pair, reserves, LP token supply and positions
        """
        if data is None:
            data = {
                'pair': pair_key("XRP", "USD"),
                'base_reserve': 0,
                'quote_reserve': 0,
                'lp_token_supply': 0,
                'trading_fee': 0,
                'volume_24h': 0,
                'positions': {},
            }

        self.pair = data['pair']
        self.base_reserve = to_fraction(data['base_reserve'])
        self.quote_reserve = to_fraction(data['quote_reserve'])
        self.lp_token_supply = to_fraction(data['lp_token_supply'])
        self.trading_fee = int(data.get('trading_fee', 0))
        self.volume_24h = to_fraction(data.get('volume_24h', 0))
        self.positions = {
            account: to_fraction(amount)
            for account, amount in data.get('positions', {}).items()
        }

    @classmethod
    def create(cls, pair: str, base_amount, quote_amount, trading_fee: int,
               account: str) -> 'LiquidityPoolState':
        """
        Create a new pool. The creator receives sqrt(base * quote) LP tokens.
        """
        base = to_fraction(base_amount)
        quote = to_fraction(quote_amount)
        if base <= 0 or quote <= 0:
            raise AMMError("Both pool sides must be positive")

        lp_tokens = _sqrt(base * quote)
        return cls({
            'pair': pair,
            'base_reserve': base,
            'quote_reserve': quote,
            'lp_token_supply': lp_tokens,
            'trading_fee': trading_fee,
            'volume_24h': 0,
            'positions': {account: lp_tokens},
        })

    @classmethod
    def from_dict(cls, data: dict) -> 'LiquidityPoolState':
        return cls(data)

    def to_dict(self) -> dict:
        """
        Convert to dict of decimal strings for display.
        """
        return {
            'pair': self.pair,
            'base_reserve': format_fraction(self.base_reserve),
            'quote_reserve': format_fraction(self.quote_reserve),
            'lp_token_supply': format_fraction(self.lp_token_supply),
            'trading_fee': self.trading_fee,
            'volume_24h': format_fraction(self.volume_24h),
            'positions': {a: format_fraction(v) for a, v in self.positions.items()},
        }

    @property
    def fee_fraction(self) -> Fraction:
        return Fraction(self.trading_fee, FEE_DENOMINATOR)

    @property
    def invariant(self) -> Fraction:
        """k = base_reserve * quote_reserve"""
        return self.base_reserve * self.quote_reserve

    @property
    def is_empty(self) -> bool:
        return self.lp_token_supply == 0

    @property
    def current_price(self) -> Decimal:
        """
        Price of one base unit in quote units.

        Price = Quote Reserve / Base Reserve
        """
        if self.base_reserve == 0:
            return Decimal('0')
        price = self.quote_reserve / self.base_reserve
        with localcontext() as ctx:
            ctx.prec = SQRT_PRECISION
            return Decimal(price.numerator) / Decimal(price.denominator)

    def lp_balance(self, account: str) -> Fraction:
        return self.positions.get(account, Fraction(0))

    def _credit(self, account: str, lp_tokens: Fraction):
        self.positions[account] = self.lp_balance(account) + lp_tokens
        self.lp_token_supply += lp_tokens

    def deposit_two_asset(self, account: str, base_amount, quote_amount) -> tuple[Fraction, Fraction, Fraction]:
        """
        Balanced deposit. Only the amounts matching the pool ratio are taken.

        Returns:
            (lp_tokens_minted, base_used, quote_used)
        """
        base = to_fraction(base_amount)
        quote = to_fraction(quote_amount)
        if base <= 0 or quote <= 0:
            raise AMMError("Cannot add zero liquidity")
        if self.is_empty:
            raise AMMError(f"Pool {self.pair} has no liquidity")

        ratio = min(base / self.base_reserve, quote / self.quote_reserve)
        lp_tokens = self.lp_token_supply * ratio
        base_used = self.base_reserve * ratio
        quote_used = self.quote_reserve * ratio

        self.base_reserve += base_used
        self.quote_reserve += quote_used
        self._credit(account, lp_tokens)
        return lp_tokens, base_used, quote_used

    def deposit_single_asset(self, account: str, base_amount=None,
                             quote_amount=None) -> Fraction:
        """
        Single-sided deposit. Half the trading fee is charged on the amount
        that implicitly swaps into the other side.

        lp = supply * (sqrt(1 + amount * (1 - fee/2) / reserve) - 1)
        """
        if (base_amount is None) == (quote_amount is None):
            raise AMMError("Single-asset deposit takes exactly one side")
        if self.is_empty:
            raise AMMError(f"Pool {self.pair} has no liquidity")

        deposit_base = base_amount is not None
        amount = to_fraction(base_amount if deposit_base else quote_amount)
        if amount <= 0:
            raise AMMError("Cannot add zero liquidity")

        reserve = self.base_reserve if deposit_base else self.quote_reserve
        effective = amount * (1 - self.fee_fraction / 2)
        lp_tokens = self.lp_token_supply * (_sqrt(1 + effective / reserve) - 1)
        if lp_tokens <= 0:
            raise AMMError("Liquidity addition too small")

        if deposit_base:
            self.base_reserve += amount
        else:
            self.quote_reserve += amount
        self._credit(account, lp_tokens)
        return lp_tokens

    def withdraw_lp(self, account: str, lp_amount) -> tuple[Fraction, Fraction]:
        """
        Redeem LP tokens for a proportional share of both reserves.

        Returns:
            (base_out, quote_out)
        """
        lp_tokens = to_fraction(lp_amount)
        if lp_tokens <= 0:
            raise AMMError("LP token amount must be positive")
        if self.lp_balance(account) < lp_tokens:
            raise AMMError("Insufficient LP tokens.")
        if self.is_empty:
            raise AMMError("No liquidity in pool")

        share = lp_tokens / self.lp_token_supply
        base_out = self.base_reserve * share
        quote_out = self.quote_reserve * share

        self.base_reserve -= base_out
        self.quote_reserve -= quote_out
        self.lp_token_supply -= lp_tokens
        remaining = self.lp_balance(account) - lp_tokens
        if remaining:
            self.positions[account] = remaining
        else:
            del self.positions[account]
        return base_out, quote_out

    def withdraw_all(self, account: str) -> tuple[Fraction, Fraction]:
        """Remove the account's entire position."""
        held = self.lp_balance(account)
        if held <= 0:
            raise AMMError(f"{account} holds no LP tokens in {self.pair}")
        return self.withdraw_lp(account, held)

    def get_swap_output(self, input_amount, input_is_base: bool) -> Fraction:
        """
        Calculate swap output using constant product formula with fees.

        Formula: (x + dx * (1 - f)) * (y - dy) = x * y
        Solving for dy: dy = (y * dx * (1 - f)) / (x + dx * (1 - f))
        """
        amount = to_fraction(input_amount)
        if amount <= 0:
            return Fraction(0)

        input_with_fee = amount * (1 - self.fee_fraction)
        if input_is_base:
            reserve_in, reserve_out = self.base_reserve, self.quote_reserve
        else:
            reserve_in, reserve_out = self.quote_reserve, self.base_reserve

        denominator = reserve_in + input_with_fee
        if denominator == 0:
            return Fraction(0)
        return reserve_out * input_with_fee / denominator

    def apply_swap(self, input_amount, input_is_base: bool) -> Fraction:
        """
        Execute a swap against the pool. The whole input, fee included, stays
        in the pool, so k never decreases. Volume is tracked in quote units.
        """
        amount = to_fraction(input_amount)
        output = self.get_swap_output(amount, input_is_base)
        if output <= 0:
            raise AMMError("Swap output is zero")

        if input_is_base:
            self.base_reserve += amount
            self.quote_reserve -= output
            self.volume_24h += output
        else:
            self.quote_reserve += amount
            self.base_reserve -= output
            self.volume_24h += amount
        return output

    def get_required_quote(self, base_amount) -> Fraction:
        """Quote amount that keeps the pool ratio for a given base amount."""
        if self.base_reserve == 0:
            return to_fraction(base_amount)
        return to_fraction(base_amount) * self.quote_reserve / self.base_reserve

    def get_required_base(self, quote_amount) -> Fraction:
        if self.quote_reserve == 0:
            return to_fraction(quote_amount)
        return to_fraction(quote_amount) * self.base_reserve / self.quote_reserve

    def curve_points(self, count: int = 20, span: Optional[Fraction] = None) -> list[tuple[Decimal, Decimal]]:
        """
        Points along x * y = k around the current reserves, for charting.

        ``span`` is the relative distance either side of the base reserve
        (default 0.5, i.e. from 50% to 150% of the reserve).
        """
        if count < 2:
            raise ValueError("count must be at least 2")
        if self.base_reserve == 0:
            return []
        span = Fraction(1, 2) if span is None else to_fraction(span)
        k = self.invariant
        start = self.base_reserve * (1 - span)
        step = self.base_reserve * 2 * span / (count - 1)
        points = []
        for i in range(count):
            x = start + step * i
            if x <= 0:
                continue
            points.append((Decimal(format_fraction(x)), Decimal(format_fraction(k / x))))
        return points

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"LiquidityPoolState("
            f"pair={self.pair}, "
            f"base_reserve={format_fraction(self.base_reserve)}, "
            f"quote_reserve={format_fraction(self.quote_reserve)}, "
            f"lp_supply={format_fraction(self.lp_token_supply)}, "
            f"price={self.current_price:.6f})"
        )
