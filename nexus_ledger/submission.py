"""
Submission pipeline: the single writer of the ledger state.

A submission waits out a simulated consensus delay, receives an opaque hash,
then applies its side effects and appends its audit entry inside one store
mutation scope. A rule violation rolls the side effects back and leaves a
failed audit entry in their place.
"""
import asyncio
import itertools
import logging
import random
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from nexus_ledger.amm_state import AMMError, LiquidityPoolState, pair_key
from nexus_ledger.amounts import drops_to_xrp, format_decimal, parse_decimal
from nexus_ledger.config import SubmissionConfig
from nexus_ledger.core import (
    ASF_DEFAULT_RIPPLE,
    ASF_REQUIRE_AUTH,
    NATIVE_CURRENCY,
    TF_SET_AUTH,
    TF_SET_FREEZE,
    TF_SINGLE_ASSET,
    TF_WITHDRAW_ALL,
    AccountSet,
    AMMCreate,
    AMMDeposit,
    AMMWithdraw,
    Clawback,
    IssuedAmount,
    OfferCreate,
    Payment,
    TransactionTemplate,
    TrustSet,
    ValidationError,
)
from nexus_ledger.crypto import transaction_hash
from nexus_ledger.ledger_state import (
    Asset,
    AuditLogEntry,
    AuditStatus,
    HolderStatus,
    LedgerState,
    StoreError,
    TrustLineHolder,
)
from nexus_ledger.orderbook import order_from_offer

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
SUCCESS = "tesSUCCESS"
FAULT = "tefFAILURE"
ALREADY = "tefALREADY"

FLAG_NAMES = {
    ASF_REQUIRE_AUTH: "asfRequireAuth",
    ASF_DEFAULT_RIPPLE: "asfDefaultRipple",
}


class LedgerRejected(Exception):
    """A transaction the simulated ledger refused, with its engine result code."""

    def __init__(self, engine_result: str, message: str):
        super().__init__(f"{engine_result}: {message}")
        self.engine_result = engine_result
        self.message = message


class VerificationStatus(Enum):
    NOT_FOUND = "not_found"
    VALIDATED = "validated"
    FAILED = "failed"
    PENDING = "pending"


@dataclass(frozen=True)
class SubmissionResult:
    status: AuditStatus
    engine_result: str
    message: str
    entry: Optional[AuditLogEntry]

    @property
    def ok(self) -> bool:
        return self.status is AuditStatus.VALIDATED

    def raise_for_status(self):
        if not self.ok:
            raise LedgerRejected(self.engine_result, self.message)


@dataclass(frozen=True)
class VerificationResult:
    status: VerificationStatus
    entry: Optional[AuditLogEntry] = None


def _display_value(amount) -> tuple[str, str]:
    if isinstance(amount, IssuedAmount):
        return amount.value, amount.currency
    return format_decimal(drops_to_xrp(amount)), NATIVE_CURRENCY


def summarize(template: TransactionTemplate) -> str:
    """Human-readable one-liner for the audit log."""
    if isinstance(template, Payment):
        value, currency = _display_value(template.amount)
        if template.is_issuance:
            return f"Issued {value} {currency}"
        return f"Sent {value} {currency}"
    if isinstance(template, OfferCreate):
        return "Sell Limit Order" if template.is_sell else "Buy Limit Order"
    if isinstance(template, TrustSet):
        limit = template.limit_amount
        if template.flags & TF_SET_AUTH:
            return f"Authorized {limit.currency} line for {limit.issuer}"
        if template.flags & TF_SET_FREEZE:
            return f"Froze {limit.currency} line for {limit.issuer}"
        return f"Set Trust {limit.currency} ({limit.issuer})"
    if isinstance(template, Clawback):
        return f"Clawback {template.amount.value} {template.amount.currency} from {template.destination}"
    if isinstance(template, AccountSet):
        if template.set_flag is None:
            return "Account settings update"
        name = FLAG_NAMES.get(template.set_flag, "flag")
        return f"Set Flag {name} ({template.set_flag})"
    if isinstance(template, AMMCreate):
        return f"Created Pool: {NATIVE_CURRENCY}/{template.amount2.currency}"
    if isinstance(template, (AMMDeposit, AMMWithdraw)):
        return f"Pool: {NATIVE_CURRENCY}/{template.asset2.currency}"
    return template.tx_type


class SubmissionPipeline:
    """
    Simulated submission, validation and application of templates.

    Every collaborator with nondeterminism (latency, sleep, hashing, clock,
    fault injection) is injectable.
    """

    def __init__(self, state: LedgerState, config: Optional[SubmissionConfig] = None,
                 hash_generator: Optional[Callable[[TransactionTemplate], str]] = None,
                 latency: Optional[Callable[[], float]] = None,
                 sleep: Optional[Callable] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 rng: Optional[random.Random] = None,
                 notifier: Optional[Callable[[str, str, str], None]] = None,
                 monitor=None):
        self.state = state
        self.config = config or SubmissionConfig()
        self.rng = rng or random.Random()
        self.hash_generator = hash_generator or (lambda t: transaction_hash(t.get_signing_data()))
        self.latency = latency or self._random_latency
        self.sleep = sleep or asyncio.sleep
        self.clock = clock or datetime.now
        self.notifier = notifier
        self.monitor = monitor

        # {ticket: template} for submissions still waiting on consensus
        self.pending: dict[int, TransactionTemplate] = {}
        self._tickets = itertools.count(1)
        # Serializes the apply phase so audit order equals completion order
        self._lock = asyncio.Lock()
        self.stats = {
            'total_submitted': 0,
            'total_validated': 0,
            'total_failed': 0,
            'total_cancelled': 0,
        }

    def _random_latency(self) -> float:
        return self.rng.uniform(self.config.min_latency, self.config.max_latency)

    @property
    def pending_count(self) -> int:
        return len(self.pending)

    async def submit(self, template: TransactionTemplate) -> tuple[str, SubmissionResult]:
        """
        Submit one template.

        Cancelling the returned coroutine while it waits leaves the store
        untouched.

        Returns:
            (tx_hash, SubmissionResult)
        """
        ticket = next(self._tickets)
        self.pending[ticket] = template
        self.stats['total_submitted'] += 1
        delay = self.latency()
        started = time.monotonic()
        logger.debug(f"Submitting {template.tx_type} (ticket {ticket}, delay {delay:.2f}s)")

        try:
            await self.sleep(delay)
            async with self._lock:
                tx_hash, result = self._commit(template)
        except asyncio.CancelledError:
            self.stats['total_cancelled'] += 1
            logger.info(f"Submission of {template.tx_type} cancelled before validation")
            raise
        finally:
            self.pending.pop(ticket, None)

        if self.monitor:
            self.monitor.record_submission(template.tx_type, result.status.value, time.monotonic() - started)
            self.monitor.update_state(self.state)
        self._notify(template, result)
        return tx_hash, result

    async def submit_many(self, templates) -> list[tuple[str, SubmissionResult]]:
        """Submit in order, stopping after the first failure."""
        results = []
        for template in templates:
            tx_hash, result = await self.submit(template)
            results.append((tx_hash, result))
            if not result.ok:
                break
        return results

    def verify(self, tx_hash: str) -> VerificationResult:
        entry = self.state.find_audit(tx_hash)
        if entry is None:
            return VerificationResult(VerificationStatus.NOT_FOUND)
        return VerificationResult(VerificationStatus(entry.status.value), entry)

    def get_stats(self) -> dict:
        return {
            **self.stats,
            'pending': self.pending_count,
            'audit_log_size': len(self.state),
        }

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def _commit(self, template: TransactionTemplate) -> tuple[str, SubmissionResult]:
        tx_hash = self.hash_generator(template)
        summary = summarize(template)

        if self.state.find_audit(tx_hash) is not None:
            # The audit log is keyed by hash, so nothing is recorded
            message = f"Transaction {tx_hash} already in the audit log"
            logger.warning(f"{template.tx_type} rejected: {message}")
            self.stats['total_failed'] += 1
            return tx_hash, SubmissionResult(AuditStatus.FAILED, ALREADY, message, None)

        try:
            with self.state.mutation():
                self._inject_fault()
                self._apply(template)
                entry = self._record(tx_hash, template, AuditStatus.VALIDATED, summary, SUCCESS)
        except (LedgerRejected, ValidationError, StoreError) as e:
            rejection = self._as_rejection(e)
        else:
            self.stats['total_validated'] += 1
            logger.info(f"{template.tx_type} validated: {summary} ({tx_hash[:16]})")
            return tx_hash, SubmissionResult(AuditStatus.VALIDATED, SUCCESS, summary, entry)

        if not self.config.enforce_ledger_rules and rejection.engine_result != FAULT:
            logger.warning(f"{template.tx_type} side effects skipped: {rejection}")
            with self.state.mutation():
                entry = self._record(tx_hash, template, AuditStatus.VALIDATED, summary, SUCCESS)
            self.stats['total_validated'] += 1
            return tx_hash, SubmissionResult(AuditStatus.VALIDATED, SUCCESS, summary, entry)

        logger.warning(f"{template.tx_type} rejected: {rejection}")
        with self.state.mutation():
            entry = self._record(tx_hash, template, AuditStatus.FAILED,
                                 rejection.message, rejection.engine_result)
        self.stats['total_failed'] += 1
        return tx_hash, SubmissionResult(AuditStatus.FAILED, rejection.engine_result,
                                         rejection.message, entry)

    @staticmethod
    def _as_rejection(error: Exception) -> LedgerRejected:
        if isinstance(error, LedgerRejected):
            return error
        if isinstance(error, AMMError):
            return LedgerRejected("tecAMM_BALANCE", str(error))
        if isinstance(error, ValidationError):
            return LedgerRejected("temMALFORMED", str(error))
        return LedgerRejected("tecINTERNAL", str(error))

    def _inject_fault(self):
        rate = self.config.fault_injection_rate
        if rate > 0 and self.rng.random() < rate:
            raise LedgerRejected(FAULT, "Injected network failure")

    def _record(self, tx_hash: str, template: TransactionTemplate, status: AuditStatus,
                details: str, engine_result: str) -> AuditLogEntry:
        entry = AuditLogEntry(
            id=self.state.next_audit_id(),
            hash=tx_hash,
            type=template.tx_type,
            status=status,
            timestamp=self.clock().strftime(TIMESTAMP_FORMAT),
            details=details,
            engine_result=engine_result,
        )
        return self.state.append_audit(entry)

    def _notify(self, template: TransactionTemplate, result: SubmissionResult):
        if self.notifier is None:
            return
        if result.ok:
            self.notifier("success", f"{template.tx_type} Validated", result.message)
        else:
            self.notifier("error", f"{template.tx_type} Failed", result.message)

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    def _apply(self, template: TransactionTemplate):
        if isinstance(template, AccountSet):
            self._apply_account_set(template)
        elif isinstance(template, TrustSet):
            self._apply_trust_set(template)
        elif isinstance(template, Clawback):
            self._apply_clawback(template)
        elif isinstance(template, Payment):
            self._apply_payment(template)
        elif isinstance(template, AMMCreate):
            self._apply_amm_create(template)
        elif isinstance(template, AMMDeposit):
            self._apply_amm_deposit(template)
        elif isinstance(template, AMMWithdraw):
            self._apply_amm_withdraw(template)
        elif isinstance(template, OfferCreate):
            self._apply_offer(template)
        else:
            raise LedgerRejected("temUNKNOWN", f"Unknown transaction type: {template.tx_type}")

    def _require(self, condition: bool, engine_result: str, message: str):
        """Ledger rule check. Outside hardened mode a violation is only logged."""
        if condition:
            return
        if self.config.enforce_ledger_rules:
            raise LedgerRejected(engine_result, message)
        logger.debug(f"Rule not enforced ({engine_result}): {message}")

    def _find_asset(self, currency: str, issuer: str) -> Asset:
        asset = self.state.find_asset(currency, issuer)
        if asset is None:
            raise LedgerRejected("tecNO_ISSUER", f"No {currency} asset issued by {issuer}")
        return asset

    def _apply_account_set(self, tx: AccountSet):
        if tx.set_flag == ASF_REQUIRE_AUTH:
            self.state.set_account_flags(tx.account, require_auth=True)
        elif tx.set_flag == ASF_DEFAULT_RIPPLE:
            self.state.set_account_flags(tx.account, default_ripple=True)

    def _apply_trust_set(self, tx: TrustSet):
        limit = tx.limit_amount
        issuer_side = self.state.find_asset(limit.currency, tx.account)

        if tx.flags & (TF_SET_AUTH | TF_SET_FREEZE):
            # Issuer-initiated: LimitAmount.issuer names the holder
            if issuer_side is None:
                raise LedgerRejected("tecNO_PERMISSION",
                                     f"{tx.account} does not issue {limit.currency}")
            holder = self.state.get_holder(issuer_side.id, limit.issuer)
            if tx.flags & TF_SET_AUTH:
                if holder is None:
                    self.state.add_holder(issuer_side.id, TrustLineHolder(address=limit.issuer))
                return
            if holder is None:
                raise LedgerRejected("tecNO_LINE", f"{limit.issuer} has no {limit.currency} line")
            self.state.set_holder_status(issuer_side.id, limit.issuer, HolderStatus.FROZEN)
            return

        # Holder-initiated limit change
        asset = self._find_asset(limit.currency, limit.issuer)
        holder = self.state.get_holder(asset.id, tx.account)
        if holder is None:
            self._require(not asset.flags.require_auth, "tecNO_AUTH",
                          f"{limit.currency} requires authorization before {tx.account} can hold it")
            self.state.add_holder(asset.id, TrustLineHolder(address=tx.account, limit=limit.value))
        else:
            holder.limit = limit.value

    def _apply_clawback(self, tx: Clawback):
        asset = self._find_asset(tx.amount.currency, tx.account)
        self._require(asset.flags.require_auth, "tecNO_PERMISSION",
                      f"Clawback is not enabled for {asset.currency}")
        holder = self.state.get_holder(asset.id, tx.destination)
        if holder is None:
            raise LedgerRejected("tecNO_LINE", f"{tx.destination} has no {asset.currency} line")
        balance = parse_decimal(holder.balance)
        self._require(balance > 0, "tecINSUFFICIENT_FUNDS",
                      f"{tx.destination} holds no {asset.currency}")

        requested = parse_decimal(tx.amount.value)
        self._require(requested <= balance, "tecINSUFFICIENT_FUNDS",
                      f"Clawback of {tx.amount.value} exceeds {tx.destination} balance {holder.balance}")

        clawed = min(requested, balance)
        self.state.set_holder_balance(asset.id, tx.destination, balance - clawed)
        self.state.set_asset_supply(asset.id, max(parse_decimal(asset.supply) - clawed, 0))

    def _apply_payment(self, tx: Payment):
        if not isinstance(tx.amount, IssuedAmount):
            # Native balances are not tracked
            return
        amount = parse_decimal(tx.amount.value)

        if tx.is_issuance:
            asset = self.state.find_asset(tx.amount.currency, tx.account)
            if asset is None:
                asset = self.state.add_asset(Asset(
                    id=self.state.new_asset_id(),
                    currency=tx.amount.currency,
                    supply="0",
                    issuer=tx.account,
                    flags=self.state.get_account_flags(tx.account),
                ))
                logger.info(f"New asset {asset.currency} issued by {tx.account}")
            self.state.set_asset_supply(asset.id, parse_decimal(asset.supply) + amount)
            if tx.destination != tx.account:
                if self.state.get_holder(asset.id, tx.destination) is None:
                    self.state.add_holder(asset.id, TrustLineHolder(address=tx.destination))
                self.state.adjust_balance(asset.id, tx.destination, amount)
            return

        asset = self._find_asset(tx.amount.currency, tx.amount.issuer)
        sender = self.state.get_holder(asset.id, tx.account)
        if sender is None:
            raise LedgerRejected("tecNO_LINE", f"{tx.account} has no {asset.currency} line")
        if sender.is_frozen:
            raise LedgerRejected("tecFROZEN", f"{asset.currency} line of {tx.account} is frozen")
        if parse_decimal(sender.balance) < amount:
            raise LedgerRejected("tecUNFUNDED_PAYMENT",
                                 f"{tx.account} holds less than {tx.amount.value} {asset.currency}")
        self.state.adjust_balance(asset.id, tx.account, -amount)

        if tx.destination == asset.issuer:
            # Redemption
            self.state.set_asset_supply(asset.id, parse_decimal(asset.supply) - amount)
            return
        receiver = self.state.get_holder(asset.id, tx.destination)
        if receiver is None:
            raise LedgerRejected("tecNO_LINE", f"{tx.destination} has no {asset.currency} line")
        if receiver.is_frozen:
            raise LedgerRejected("tecFROZEN", f"{asset.currency} line of {tx.destination} is frozen")
        self.state.adjust_balance(asset.id, tx.destination, amount)

    def _apply_amm_create(self, tx: AMMCreate):
        pair = pair_key(NATIVE_CURRENCY, tx.amount2.currency)
        if self.state.get_pool(pair) is not None:
            raise LedgerRejected("tecDUPLICATE", f"Pool {pair} already exists")
        pool = LiquidityPoolState.create(
            pair,
            drops_to_xrp(tx.amount),
            parse_decimal(tx.amount2.value),
            tx.trading_fee,
            tx.account,
        )
        self.state.set_pool(pool)
        logger.info(f"Created pool {pool}")

    def _pool_for(self, tx) -> LiquidityPoolState:
        pair = pair_key(tx.asset.currency, tx.asset2.currency)
        pool = self.state.get_pool(pair)
        if pool is None:
            raise LedgerRejected("terNO_AMM", f"No pool for {pair}")
        return pool

    def _apply_amm_deposit(self, tx: AMMDeposit):
        pool = self._pool_for(tx)
        base = drops_to_xrp(tx.amount) if tx.amount is not None else None
        quote = parse_decimal(tx.amount2.value) if tx.amount2 is not None else None
        if tx.flags & TF_SINGLE_ASSET:
            pool.deposit_single_asset(tx.account, base, quote)
        else:
            pool.deposit_two_asset(tx.account, base, quote)
        self.state.set_pool(pool)

    def _apply_amm_withdraw(self, tx: AMMWithdraw):
        pool = self._pool_for(tx)
        if tx.flags & TF_WITHDRAW_ALL:
            pool.withdraw_all(tx.account)
        else:
            pool.withdraw_lp(tx.account, tx.lp_token_in.value)
        self.state.set_pool(pool)

    def _apply_offer(self, tx: OfferCreate):
        order = order_from_offer(tx)
        quote = tx.taker_pays if tx.is_sell else tx.taker_gets
        if pair_key(NATIVE_CURRENCY, quote.currency) != self.state.order_book.pair:
            logger.debug(f"Offer for {quote.currency} is outside the displayed book")
            return
        self.state.order_book.add(order)
