"""
In-memory ledger state: assets, trust line holders, AMM pools, the order book
snapshot and the append-only audit log.

A ``LedgerState`` is constructed explicitly and passed to whoever needs it;
there is no module-level instance. The submission pipeline is its only
writer, and it writes inside ``mutation()`` so a failed transaction leaves no
partial changes behind.
"""
import copy
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Optional

from nexus_ledger.amm_state import LiquidityPoolState
from nexus_ledger.amounts import format_balance, format_decimal, parse_decimal
from nexus_ledger.orderbook import OrderBook

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when a write would break a store invariant."""
    pass


class HolderStatus(Enum):
    ACTIVE = "active"
    FROZEN = "frozen"


class AuditStatus(Enum):
    VALIDATED = "validated"
    PENDING = "pending"
    FAILED = "failed"


@dataclass(frozen=True)
class AssetFlags:
    require_auth: bool = False
    default_ripple: bool = False
    freeze: bool = False

    def to_dict(self) -> dict:
        return {
            'requireAuth': self.require_auth,
            'defaultRipple': self.default_ripple,
            'freeze': self.freeze,
        }


@dataclass
class Asset:
    id: str
    currency: str
    supply: str
    issuer: str
    flags: AssetFlags = field(default_factory=AssetFlags)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'currency': self.currency,
            'supply': self.supply,
            'issuer': self.issuer,
            'flags': self.flags.to_dict(),
        }


@dataclass
class TrustLineHolder:
    address: str
    balance: str = "0.00"
    limit: str = "0"
    status: HolderStatus = HolderStatus.ACTIVE
    tier: int = 1

    @property
    def is_frozen(self) -> bool:
        return self.status is HolderStatus.FROZEN

    def to_dict(self) -> dict:
        return {
            'address': self.address,
            'balance': self.balance,
            'limit': self.limit,
            'status': self.status.value,
            'tier': self.tier,
        }


@dataclass(frozen=True)
class AuditLogEntry:
    id: str
    hash: str
    type: str
    status: AuditStatus
    timestamp: str
    details: str
    engine_result: str = "tesSUCCESS"

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'hash': self.hash,
            'type': self.type,
            'status': self.status.value,
            'timestamp': self.timestamp,
            'details': self.details,
            'engine_result': self.engine_result,
        }


@dataclass(frozen=True)
class LedgerSnapshot:
    """Detached copy of the store for readers."""
    assets: list
    holders: dict
    pools: dict
    order_book: OrderBook
    audit_log: list


class LedgerState:
    def __init__(self, order_book: Optional[OrderBook] = None):
        self.assets: dict[str, Asset] = {}
        # {asset_id: {address: TrustLineHolder}}
        self.holders: dict[str, dict[str, TrustLineHolder]] = {}
        self.pools: dict[str, LiquidityPoolState] = {}
        # Issuer account settings, inherited by assets issued later
        self.account_flags: dict[str, AssetFlags] = {}
        self.order_book = order_book or OrderBook()
        self._audit_log: list[AuditLogEntry] = []
        self._audit_index: dict[str, AuditLogEntry] = {}
        self._next_asset_id = 1
        self._mutating = False

    # ------------------------------------------------------------------
    # Mutation scope
    # ------------------------------------------------------------------

    def _capture(self) -> tuple:
        # The audit log is append-only, so its length is enough to roll it back
        return copy.deepcopy((
            self.assets,
            self.holders,
            self.pools,
            self.account_flags,
            self.order_book,
            self._next_asset_id,
        )), len(self._audit_log)

    def _restore(self, saved: tuple):
        collections, audit_size = saved
        (self.assets, self.holders, self.pools, self.account_flags,
         self.order_book, self._next_asset_id) = collections
        for entry in self._audit_log[audit_size:]:
            self._audit_index.pop(entry.hash, None)
        del self._audit_log[audit_size:]

    @contextmanager
    def mutation(self):
        """
        All-or-nothing write scope. If the body raises, every collection is
        restored to its state on entry and the exception propagates.
        Nested scopes join the outermost one.
        """
        if self._mutating:
            yield self
            return

        saved = self._capture()
        self._mutating = True
        try:
            yield self
        except BaseException:
            self._restore(saved)
            logger.debug("Ledger mutation rolled back")
            raise
        finally:
            self._mutating = False

    def snapshot(self) -> LedgerSnapshot:
        """Consistent deep copy of the whole store."""
        return LedgerSnapshot(
            assets=copy.deepcopy(self.list_assets()),
            holders=copy.deepcopy(self.holders),
            pools=copy.deepcopy(self.pools),
            order_book=copy.deepcopy(self.order_book),
            audit_log=self.audit_log(),
        )

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def new_asset_id(self) -> str:
        asset_id = str(self._next_asset_id)
        self._next_asset_id += 1
        return asset_id

    def add_asset(self, asset: Asset) -> Asset:
        if asset.id in self.assets:
            raise StoreError(f"Asset id {asset.id} already exists")
        if self.find_asset(asset.currency, asset.issuer) is not None:
            raise StoreError(f"Asset {asset.currency} from {asset.issuer} already exists")
        if parse_decimal(asset.supply, "supply") < 0:
            raise StoreError("Asset supply cannot be negative")
        self.assets[asset.id] = asset
        self.holders.setdefault(asset.id, {})
        if asset.id.isdigit():
            self._next_asset_id = max(self._next_asset_id, int(asset.id) + 1)
        logger.debug(f"Added asset {asset.currency} ({asset.id})")
        return asset

    def get_asset(self, asset_id: str) -> Optional[Asset]:
        return self.assets.get(asset_id)

    def require_asset(self, asset_id: str) -> Asset:
        asset = self.assets.get(asset_id)
        if asset is None:
            raise StoreError(f"Unknown asset {asset_id}")
        return asset

    def find_asset(self, currency: str, issuer: str) -> Optional[Asset]:
        for asset in self.assets.values():
            if asset.currency == currency and asset.issuer == issuer:
                return asset
        return None

    def assets_for_issuer(self, issuer: str) -> list[Asset]:
        return [a for a in self.assets.values() if a.issuer == issuer]

    def list_assets(self) -> list[Asset]:
        return list(self.assets.values())

    def update_asset_flags(self, asset_id: str, **changes) -> Asset:
        asset = self.require_asset(asset_id)
        asset.flags = replace(asset.flags, **changes)
        return asset

    def get_account_flags(self, address: str) -> AssetFlags:
        return self.account_flags.get(address, AssetFlags())

    def set_account_flags(self, address: str, **changes) -> AssetFlags:
        flags = replace(self.get_account_flags(address), **changes)
        self.account_flags[address] = flags
        for asset in self.assets_for_issuer(address):
            asset.flags = replace(asset.flags, **changes)
        return flags

    def set_asset_supply(self, asset_id: str, supply: Decimal) -> Asset:
        if supply < 0:
            raise StoreError("Asset supply cannot be negative")
        asset = self.require_asset(asset_id)
        asset.supply = format_decimal(supply)
        return asset

    # ------------------------------------------------------------------
    # Trust line holders
    # ------------------------------------------------------------------

    def add_holder(self, asset_id: str, holder: TrustLineHolder) -> TrustLineHolder:
        self.require_asset(asset_id)
        lines = self.holders.setdefault(asset_id, {})
        if holder.address in lines:
            raise StoreError(f"{holder.address} already holds a line for asset {asset_id}")
        if parse_decimal(holder.balance, "balance") < 0:
            raise StoreError("Holder balance cannot be negative")
        lines[holder.address] = holder
        return holder

    def get_holder(self, asset_id: str, address: str) -> Optional[TrustLineHolder]:
        return self.holders.get(asset_id, {}).get(address)

    def require_holder(self, asset_id: str, address: str) -> TrustLineHolder:
        holder = self.get_holder(asset_id, address)
        if holder is None:
            raise StoreError(f"{address} has no trust line for asset {asset_id}")
        return holder

    def list_holders(self, asset_id: str) -> list[TrustLineHolder]:
        return list(self.holders.get(asset_id, {}).values())

    def set_holder_status(self, asset_id: str, address: str, status: HolderStatus) -> TrustLineHolder:
        holder = self.require_holder(asset_id, address)
        holder.status = status
        return holder

    def set_holder_balance(self, asset_id: str, address: str, balance) -> TrustLineHolder:
        value = parse_decimal(balance, "balance")
        if value < 0:
            raise StoreError(f"Balance of {address} cannot go negative")
        holder = self.require_holder(asset_id, address)
        holder.balance = format_balance(value)
        return holder

    def adjust_balance(self, asset_id: str, address: str, delta: Decimal) -> TrustLineHolder:
        holder = self.require_holder(asset_id, address)
        return self.set_holder_balance(asset_id, address, parse_decimal(holder.balance) + delta)

    # ------------------------------------------------------------------
    # Pools
    # ------------------------------------------------------------------

    def get_pool(self, pair: str) -> Optional[LiquidityPoolState]:
        return self.pools.get(pair)

    def set_pool(self, pool: LiquidityPoolState):
        if pool.base_reserve < 0 or pool.quote_reserve < 0:
            raise StoreError(f"Pool {pool.pair} reserves cannot go negative")
        if pool.is_empty:
            self.pools.pop(pool.pair, None)
            logger.info(f"Pool {pool.pair} fully withdrawn and removed")
            return
        if pool.base_reserve == 0 or pool.quote_reserve == 0:
            raise StoreError(f"Pool {pool.pair} reserve would reach zero")
        self.pools[pool.pair] = pool

    def list_pools(self) -> list[LiquidityPoolState]:
        return list(self.pools.values())

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    def next_audit_id(self) -> str:
        return str(len(self._audit_log) + 1)

    def append_audit(self, entry: AuditLogEntry) -> AuditLogEntry:
        if entry.hash in self._audit_index:
            raise StoreError(f"Duplicate transaction hash {entry.hash}")
        self._audit_log.append(entry)
        self._audit_index[entry.hash] = entry
        return entry

    def audit_log(self, limit: Optional[int] = None) -> list[AuditLogEntry]:
        """Entries newest first."""
        entries = list(reversed(self._audit_log))
        return entries if limit is None else entries[:limit]

    def find_audit(self, tx_hash: str) -> Optional[AuditLogEntry]:
        return self._audit_index.get(tx_hash)

    def __len__(self):
        return len(self._audit_log)
