"""
Order book ladder and offer conversion.
"""
import pytest
from decimal import Decimal

from nexus_ledger.compiler import OrderSide, TemplateCompiler
from nexus_ledger.core import IssuedAmount, OfferCreate, ValidationError
from nexus_ledger.genesis import build_state, default_genesis
from nexus_ledger.orderbook import Order, OrderBook, OrderType, order_from_offer

ISSUER = "rK...ColdWallet"


def bid(price, amount):
    return Order(Decimal(price), Decimal(amount), Decimal(price) * Decimal(amount), OrderType.BID)


def ask(price, amount):
    return Order(Decimal(price), Decimal(amount), Decimal(price) * Decimal(amount), OrderType.ASK)


@pytest.fixture
def book():
    return build_state(default_genesis()).order_book


class TestLadder:
    def test_seeded_book_is_sorted(self, book):
        assert [o.price for o in book.bids] == sorted((o.price for o in book.bids), reverse=True)
        assert [o.price for o in book.asks] == sorted(o.price for o in book.asks)
        assert len(book) == 10

    def test_best_prices_and_spread(self, book):
        assert book.best_bid == Decimal("0.5490")
        assert book.best_ask == Decimal("0.5510")
        assert book.spread == Decimal("0.0020")
        assert book.mid_price == Decimal("0.5500")

    def test_new_orders_keep_sort(self):
        book = OrderBook(bids=[bid("0.50", "10")], asks=[ask("0.60", "10")])
        book.add(bid("0.55", "1"))
        book.add(ask("0.58", "1"))
        assert book.best_bid == Decimal("0.55")
        assert book.best_ask == Decimal("0.58")

    def test_depth_is_cumulative(self, book):
        depth = book.depth(OrderType.BID)
        assert [running for _, running in depth][:3] == [Decimal(12000), Decimal(20500), Decimal(45500)]

    def test_empty_book(self):
        book = OrderBook()
        assert book.best_bid is None
        assert book.spread is None
        assert book.mid_price is None
        assert book.to_dict() == {'pair': "XRP/USD", 'bids': [], 'asks': []}


class TestOfferConversion:
    def test_buy_offer_is_bid(self):
        offer = TemplateCompiler().compile_offer_create("rU", OrderSide.BUY, "100", "0.55", "USD", ISSUER)
        order = order_from_offer(offer)
        assert order.type is OrderType.BID
        assert order.price == Decimal("0.5500")
        assert order.amount == Decimal("100")
        assert order.total == Decimal("55")

    def test_sell_offer_is_ask(self):
        offer = TemplateCompiler().compile_offer_create("rU", OrderSide.SELL, "200", "0.56", "USD", ISSUER)
        order = order_from_offer(offer)
        assert order.type is OrderType.ASK
        assert order.price == Decimal("0.5600")

    def test_issued_for_issued_offer_rejected(self):
        usd = IssuedAmount("USD", ISSUER, "1")
        eur = IssuedAmount("EUR", ISSUER, "1")
        with pytest.raises(ValidationError):
            order_from_offer(OfferCreate(account="rU", taker_pays=usd, taker_gets=eur))
