"""
Compliance workflow: freeze and clawback actions on a single asset's holders.

State Flow:
    IDLE → HOLDER_ACTION_SELECTED → EXECUTING → COMMITTED
                    ↓                   ↓
                CANCELLED             IDLE (rejected by the ledger)

COMMITTED and CANCELLED accept a new selection, as does IDLE.
"""
import logging
from enum import Enum, auto
from typing import Callable, Optional

from nexus_ledger.amounts import parse_decimal
from nexus_ledger.compiler import TemplateCompiler, TrustSetMode
from nexus_ledger.ledger_state import LedgerState, TrustLineHolder
from nexus_ledger.submission import SubmissionPipeline, SubmissionResult

logger = logging.getLogger(__name__)


class ComplianceState(Enum):
    IDLE = auto()
    HOLDER_ACTION_SELECTED = auto()
    EXECUTING = auto()
    COMMITTED = auto()
    CANCELLED = auto()


class ComplianceAction(Enum):
    FREEZE = "freeze"
    CLAWBACK = "clawback"


class InvalidTransition(Exception):
    pass


StateChangeCallback = Callable[[ComplianceState, ComplianceState], None]

SELECTABLE_FROM = (ComplianceState.IDLE, ComplianceState.COMMITTED, ComplianceState.CANCELLED)


class ComplianceWorkflow:
    """
    Drives one holder action at a time through the compiler and the pipeline.

    Usage:
        >>> workflow = ComplianceWorkflow(state, compiler, pipeline, "1", issuer)
        >>> workflow.select("rHolder", ComplianceAction.FREEZE)
        >>> await workflow.confirm()
    """

    def __init__(self, state: LedgerState, compiler: TemplateCompiler,
                 pipeline: SubmissionPipeline, asset_id: str, issuer: str):
        self.ledger = state
        self.compiler = compiler
        self.pipeline = pipeline
        self.asset_id = asset_id
        self.issuer = issuer

        self.state = ComplianceState.IDLE
        self.holder: Optional[str] = None
        self.action: Optional[ComplianceAction] = None
        self.last_result: Optional[SubmissionResult] = None
        self.last_hash: Optional[str] = None
        self._state_change_callbacks: list[StateChangeCallback] = []

    def on_state_change(self, callback: StateChangeCallback):
        self._state_change_callbacks.append(callback)

    def _transition(self, next_state: ComplianceState):
        old_state = self.state
        self.state = next_state
        logger.debug(f"Compliance {old_state.name} -> {next_state.name}")
        for callback in self._state_change_callbacks:
            try:
                callback(old_state, next_state)
            except Exception as e:
                logger.error(f"State change callback failed: {e}", exc_info=True)

    def _require_state(self, *allowed: ComplianceState):
        if self.state not in allowed:
            names = ", ".join(s.name for s in allowed)
            raise InvalidTransition(f"Expected state in ({names}), workflow is {self.state.name}")

    def select(self, holder: str, action: ComplianceAction):
        """Choose a holder and an action. Clawback needs an authorization-gated asset."""
        self._require_state(*SELECTABLE_FROM)
        if not isinstance(action, ComplianceAction):
            raise InvalidTransition(f"Unknown compliance action: {action!r}")

        asset = self.ledger.get_asset(self.asset_id)
        if asset is None:
            raise InvalidTransition(f"Unknown asset {self.asset_id}")
        record = self.ledger.get_holder(self.asset_id, holder)
        if record is None:
            raise InvalidTransition(f"{holder} holds no {asset.currency} line")
        if action is ComplianceAction.CLAWBACK:
            if not asset.flags.require_auth:
                raise InvalidTransition(f"Clawback requires requireAuth on {asset.currency}")
            if parse_decimal(record.balance) <= 0:
                raise InvalidTransition(f"{holder} has no {asset.currency} balance to claw back")

        self.holder = holder
        self.action = action
        self.last_result = None
        self.last_hash = None
        self._transition(ComplianceState.HOLDER_ACTION_SELECTED)

    def preview(self):
        """The template ``confirm`` would submit."""
        self._require_state(ComplianceState.HOLDER_ACTION_SELECTED)
        return self._compile(self.ledger.require_holder(self.asset_id, self.holder))

    def _compile(self, record: TrustLineHolder):
        asset = self.ledger.require_asset(self.asset_id)
        if self.action is ComplianceAction.FREEZE:
            return self.compiler.compile_trust_set(
                self.issuer, self.holder, asset.currency, "0", TrustSetMode.FREEZE
            )
        return self.compiler.compile_clawback(self.issuer, self.holder, asset.currency, record.balance)

    async def confirm(self) -> SubmissionResult:
        self._require_state(ComplianceState.HOLDER_ACTION_SELECTED)
        template = self._compile(self.ledger.require_holder(self.asset_id, self.holder))
        self._transition(ComplianceState.EXECUTING)

        try:
            tx_hash, result = await self.pipeline.submit(template)
        except BaseException:
            self._transition(ComplianceState.IDLE)
            raise

        self.last_hash = tx_hash
        self.last_result = result
        if result.ok:
            logger.info(f"Compliance {self.action.value} committed for {self.holder}")
            self._transition(ComplianceState.COMMITTED)
        else:
            logger.warning(f"Compliance {self.action.value} rejected: {result.engine_result}")
            self._transition(ComplianceState.IDLE)
        return result

    def cancel(self):
        self._require_state(ComplianceState.HOLDER_ACTION_SELECTED)
        self._transition(ComplianceState.CANCELLED)

    def reset(self):
        """Back to IDLE from any state except EXECUTING."""
        if self.state is ComplianceState.EXECUTING:
            raise InvalidTransition("Cannot reset while a submission is in flight")
        self.holder = None
        self.action = None
        self._transition(ComplianceState.IDLE)
