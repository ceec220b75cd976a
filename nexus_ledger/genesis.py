"""
Genesis state tool.

Builds the initial ledger state (issued assets, trust line holders, AMM
pools, the order book ladder and any historical audit entries) from a JSON
genesis description, or from the built-in demo description.
"""
import argparse
import json
from decimal import Decimal

from nexus_ledger.amm_state import LiquidityPoolState
from nexus_ledger.ledger_state import (
    Asset,
    AssetFlags,
    AuditLogEntry,
    AuditStatus,
    HolderStatus,
    LedgerState,
    TrustLineHolder,
)
from nexus_ledger.orderbook import Order, OrderBook, OrderType

COLD_WALLET = "rK...ColdWallet"
HOT_WALLET = "rOperational...HotWallet"
POOL_CREATOR = "rO...Operational"


def default_genesis() -> dict:
    """The demo network: three issued assets, a USD pool and a populated book."""
    return {
        "assets": [
            {
                "id": "1", "currency": "USD", "supply": "10000000", "issuer": COLD_WALLET,
                "flags": {"requireAuth": True, "defaultRipple": True, "freeze": False},
                "holders": [
                    {"address": "rU...UserWallet", "balance": "2500.00", "limit": "100000", "tier": 2},
                    {"address": HOT_WALLET, "balance": "750000.00", "limit": "10000000", "tier": 3},
                    {"address": "rNexusTester...X7z9", "balance": "120.50", "limit": "5000",
                     "status": "frozen"},
                ],
            },
            {
                "id": "2", "currency": "EUR", "supply": "5000000", "issuer": COLD_WALLET,
                "flags": {"requireAuth": True, "defaultRipple": True, "freeze": False},
                "holders": [
                    {"address": HOT_WALLET, "balance": "400000.00", "limit": "5000000", "tier": 3},
                ],
            },
            {
                "id": "3", "currency": "GOLD", "supply": "50000", "issuer": COLD_WALLET,
                "flags": {"requireAuth": False, "defaultRipple": False, "freeze": True},
                "holders": [],
            },
        ],
        "pools": [
            {"pair": "XRP/USD", "base_reserve": "1000", "quote_reserve": "500",
             "trading_fee": 500, "creator": POOL_CREATOR},
        ],
        "order_book": {
            "pair": "XRP/USD",
            "bids": [
                {"price": "0.5490", "amount": "12000", "total": "6588"},
                {"price": "0.5485", "amount": "8500", "total": "4662"},
                {"price": "0.5480", "amount": "25000", "total": "13700"},
                {"price": "0.5475", "amount": "5000", "total": "2737"},
                {"price": "0.5460", "amount": "15400", "total": "8408"},
            ],
            "asks": [
                {"price": "0.5510", "amount": "4500", "total": "2479"},
                {"price": "0.5515", "amount": "12000", "total": "6618"},
                {"price": "0.5520", "amount": "8000", "total": "4416"},
                {"price": "0.5535", "amount": "6500", "total": "3597"},
                {"price": "0.5550", "amount": "21000", "total": "11655"},
            ],
        },
        # Oldest first
        "audit_log": [
            {"hash": "3A5F...8E1C", "type": "AMMDeposit", "status": "validated",
             "timestamp": "2023-10-23 14:05:00", "details": "Pool: XRP/USD"},
            {"hash": "1C9B...7A2D", "type": "Payment", "status": "failed",
             "timestamp": "2023-10-23 16:20:10", "details": "Pathfinding Error: No liquidity",
             "engine_result": "tecPATH_DRY"},
            {"hash": "8D1E...2F4A", "type": "TrustSet", "status": "validated",
             "timestamp": "2023-10-24 09:15:33", "details": "Set Trust USD (rK...)"},
            {"hash": "5F2A...9B3C", "type": "OfferCreate", "status": "validated",
             "timestamp": "2023-10-24 10:42:01", "details": "Buy 5000 XRP @ 0.55"},
        ],
    }


def _order(data: dict, order_type: OrderType) -> Order:
    return Order(
        price=Decimal(data["price"]),
        amount=Decimal(data["amount"]),
        total=Decimal(data["total"]),
        type=order_type,
    )


def build_state(genesis: dict) -> LedgerState:
    """Populate a fresh ``LedgerState`` from a genesis description."""
    book = genesis.get("order_book", {})
    state = LedgerState(OrderBook(
        pair=book.get("pair", "XRP/USD"),
        bids=[_order(o, OrderType.BID) for o in book.get("bids", [])],
        asks=[_order(o, OrderType.ASK) for o in book.get("asks", [])],
    ))

    for asset_info in genesis.get("assets", []):
        flags = asset_info.get("flags", {})
        asset = state.add_asset(Asset(
            id=str(asset_info.get("id") or state.new_asset_id()),
            currency=asset_info["currency"],
            supply=str(asset_info["supply"]),
            issuer=asset_info["issuer"],
            flags=AssetFlags(
                require_auth=flags.get("requireAuth", False),
                default_ripple=flags.get("defaultRipple", False),
                freeze=flags.get("freeze", False),
            ),
        ))
        for holder in asset_info.get("holders", []):
            state.add_holder(asset.id, TrustLineHolder(
                address=holder["address"],
                balance=holder.get("balance", "0.00"),
                limit=holder.get("limit", "0"),
                status=HolderStatus(holder.get("status", "active")),
                tier=int(holder.get("tier", 1)),
            ))

    for pool_info in genesis.get("pools", []):
        state.set_pool(LiquidityPoolState.create(
            pool_info["pair"],
            pool_info["base_reserve"],
            pool_info["quote_reserve"],
            int(pool_info.get("trading_fee", 0)),
            pool_info.get("creator", POOL_CREATOR),
        ))

    for entry in genesis.get("audit_log", []):
        state.append_audit(AuditLogEntry(
            id=state.next_audit_id(),
            hash=entry["hash"],
            type=entry["type"],
            status=AuditStatus(entry["status"]),
            timestamp=entry["timestamp"],
            details=entry["details"],
            engine_result=entry.get("engine_result", "tesSUCCESS"),
        ))
    return state


def load_genesis(path: str) -> LedgerState:
    with open(path, 'r') as f:
        return build_state(json.load(f))


def generate_sample_config(output_path: str):
    """Writes the demo genesis description to ``output_path``."""
    with open(output_path, 'w') as f:
        json.dump(default_genesis(), f, indent=2)
    print(f"Generated sample genesis configuration at: {output_path}")


def describe(path: str):
    state = load_genesis(path)
    print(f"Assets: {len(state.list_assets())}")
    for asset in state.list_assets():
        print(f"  - {asset.currency} ({asset.id}) supply {asset.supply}, "
              f"{len(state.list_holders(asset.id))} holders")
    print(f"Pools: {', '.join(p.pair for p in state.list_pools()) or 'none'}")
    print(f"Order book: {len(state.order_book.bids)} bids, {len(state.order_book.asks)} asks")
    print(f"Audit entries: {len(state)}")


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description="Genesis State Tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parser_sample = subparsers.add_parser("sample-config", help="Generate a sample genesis.json")
    parser_sample.add_argument("--output", type=str, default="genesis.json", help="Output file path")

    parser_check = subparsers.add_parser("check", help="Load a genesis file and summarize it")
    parser_check.add_argument("--config", type=str, default="genesis.json", help="Path to genesis file")

    args = parser.parse_args()

    if args.command == "sample-config":
        generate_sample_config(args.output)
    elif args.command == "check":
        describe(args.config)
