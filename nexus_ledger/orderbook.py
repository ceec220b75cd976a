"""
Central limit order book snapshot for the native/issued pair.

Orders are ephemeral: the book is a display ladder, not matched or persisted.
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from nexus_ledger.amounts import drops_to_xrp, parse_positive
from nexus_ledger.core import IssuedAmount, OfferCreate, ValidationError

PRICE_QUANTUM = Decimal("0.0001")


class OrderType(Enum):
    BID = "bid"
    ASK = "ask"


@dataclass(frozen=True)
class Order:
    price: Decimal
    amount: Decimal
    total: Decimal
    type: OrderType

    def to_dict(self) -> dict:
        return {
            'price': str(self.price),
            'amount': str(self.amount),
            'total': str(self.total),
            'type': self.type.value,
        }


def order_from_offer(offer: OfferCreate) -> Order:
    """Turn an OfferCreate into a book entry. Buy offers are bids, sells are asks."""
    if offer.is_sell:
        native, quote = offer.taker_gets, offer.taker_pays
        order_type = OrderType.ASK
    else:
        native, quote = offer.taker_pays, offer.taker_gets
        order_type = OrderType.BID
    if not isinstance(quote, IssuedAmount) or isinstance(native, IssuedAmount):
        raise ValidationError("Book orders trade native units against an issued currency")

    amount = drops_to_xrp(native)
    total = parse_positive(quote.value, "quote amount")
    price = (total / amount).quantize(PRICE_QUANTUM)
    return Order(price=price, amount=amount, total=total, type=order_type)


class OrderBook:
    """Bid/ask ladder. Bids are best-first descending, asks best-first ascending."""

    def __init__(self, pair: str = "XRP/USD", bids: list = None, asks: list = None):
        self.pair = pair
        self.bids: list[Order] = []
        self.asks: list[Order] = []
        for order in (bids or []) + (asks or []):
            self.add(order)

    def add(self, order: Order):
        if order.type is OrderType.BID:
            self.bids.append(order)
            self.bids.sort(key=lambda o: o.price, reverse=True)
        else:
            self.asks.append(order)
            self.asks.sort(key=lambda o: o.price)

    @property
    def best_bid(self) -> Optional[Decimal]:
        return self.bids[0].price if self.bids else None

    @property
    def best_ask(self) -> Optional[Decimal]:
        return self.asks[0].price if self.asks else None

    @property
    def spread(self) -> Optional[Decimal]:
        if self.best_bid is None or self.best_ask is None:
            return None
        return self.best_ask - self.best_bid

    @property
    def mid_price(self) -> Optional[Decimal]:
        if self.best_bid is None or self.best_ask is None:
            return None
        return ((self.best_bid + self.best_ask) / 2).quantize(PRICE_QUANTUM)

    def depth(self, order_type: OrderType) -> list[tuple[Order, Decimal]]:
        """Each level paired with the running cumulative amount up to it."""
        levels = self.bids if order_type is OrderType.BID else self.asks
        running = Decimal(0)
        result = []
        for order in levels:
            running += order.amount
            result.append((order, running))
        return result

    def to_dict(self) -> dict:
        return {
            'pair': self.pair,
            'bids': [o.to_dict() for o in self.bids],
            'asks': [o.to_dict() for o in self.asks],
        }

    def __len__(self):
        return len(self.bids) + len(self.asks)
