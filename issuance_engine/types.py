"""
Issuance Engine - Types.

============================================================
PURPOSE
============================================================
All type definitions for the Issuance Engine.

CRITICAL PRINCIPLE:
    "The engine never stores component balances."
    "Every flow is re-derived from the ledger on every call."

============================================================
"""

from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Tuple, Union
from dataclasses import dataclass, field
from enum import Enum


# ============================================================
# ADDRESSES
# ============================================================

ZERO_ADDRESS: str = "0x" + "0" * 40
"""Null address."""


def is_null_address(address: Optional[str]) -> bool:
    """Check if an address is unset."""
    return not address or address == ZERO_ADDRESS


# ============================================================
# MODULE STATE
# ============================================================

class ModuleState(Enum):
    """Module enablement state on a basket token."""

    NONE = "NONE"
    """Module not added."""

    PENDING = "PENDING"
    """Added by the manager, awaiting initialization."""

    INITIALIZED = "INITIALIZED"
    """Initialized and allowed to mutate the basket token."""


# ============================================================
# ISSUANCE LIFECYCLE
# ============================================================

class FlowDirection(Enum):
    """Direction of a supply change."""

    ISSUE = "ISSUE"
    REDEEM = "REDEEM"

    @property
    def is_issue(self) -> bool:
        return self is FlowDirection.ISSUE


class IssuancePhase(Enum):
    """
    Phase of a single issuance or redemption call.

    Issuance:
        IDLE -> PRE_HOOKS_RUNNING -> FLOWS_COMPUTED -> EQUITY_COLLECTED
             -> MODULE_HOOKS_POSTING -> SUPPLY_MINTED -> IDLE

    Redemption:
        IDLE -> PRE_HOOKS_RUNNING -> SUPPLY_BURNED -> FLOWS_COMPUTED
             -> MODULE_HOOKS_POSTING -> EQUITY_RETURNED -> SUPPLY_MINTED -> IDLE

    Any non-idle phase can transition to REVERTED.
    """

    IDLE = "IDLE"
    PRE_HOOKS_RUNNING = "PRE_HOOKS_RUNNING"
    SUPPLY_BURNED = "SUPPLY_BURNED"
    FLOWS_COMPUTED = "FLOWS_COMPUTED"
    EQUITY_COLLECTED = "EQUITY_COLLECTED"
    MODULE_HOOKS_POSTING = "MODULE_HOOKS_POSTING"
    EQUITY_RETURNED = "EQUITY_RETURNED"
    SUPPLY_MINTED = "SUPPLY_MINTED"
    REVERTED = "REVERTED"


# ============================================================
# POSITION LEDGER
# ============================================================

@dataclass
class ExternalPosition:
    """External position held by one module on one component."""

    unit: int = 0
    """Signed per-basket-unit amount."""

    data: bytes = b""
    """Opaque module data."""


@dataclass
class ComponentPosition:
    """All positions of a single component."""

    default_unit: int = 0
    """Equity held directly by the basket token, per basket unit."""

    external_modules: List[str] = field(default_factory=list)
    """Modules with an external position, in insertion order."""

    external_positions: Dict[str, ExternalPosition] = field(default_factory=dict)
    """External positions keyed by module address."""


@dataclass(frozen=True)
class EquityUnit:
    """Positive external unit: additive with the default position."""

    unit: int


@dataclass(frozen=True)
class DebtUnit:
    """Negative external unit: debt owed in `token`."""

    token: str
    unit: int
    """Absolute debt per basket unit."""


ExternalUnit = Union[EquityUnit, DebtUnit]


def classify_external_unit(component: str, unit: int) -> Optional[ExternalUnit]:
    """
    Interpret a signed external unit.

    Args:
        component: Component the position is recorded on
        unit: Signed external unit

    Returns:
        EquityUnit, DebtUnit, or None for a zero unit
    """
    if unit > 0:
        return EquityUnit(unit=unit)
    if unit < 0:
        return DebtUnit(token=component, unit=-unit)
    return None


# ============================================================
# SETTINGS
# ============================================================

@dataclass(frozen=True)
class IssuanceSettings:
    """
    Per basket token issuance configuration.

    Immutable; updates replace the whole record.
    """

    max_manager_fee: int = 0
    """Upper bound for both fees, fixed at initialization."""

    manager_issue_fee: int = 0
    """Issue fee, 1e18 = 100%."""

    manager_redeem_fee: int = 0
    """Redeem fee, 1e18 = 100%."""

    fee_recipient: str = ZERO_ADDRESS
    """Receives the manager share of fees."""

    manager_issuance_hook: Optional[Any] = None
    """Optional ManagerIssuanceHook invoked before every issuance."""


# ============================================================
# FLOWS
# ============================================================

@dataclass(frozen=True)
class FeeBreakdown:
    """Fee split for one issuance or redemption."""

    total_quantity: int
    """Quantity whose component flows must move."""

    manager_fee: int
    """Basket units minted to the manager fee recipient."""

    protocol_fee: int
    """Basket units minted to the protocol fee recipient."""

    @property
    def total_fees(self) -> int:
        return self.manager_fee + self.protocol_fee


@dataclass(frozen=True)
class ComponentFlow:
    """Flows for a single component."""

    component: str
    equity: int
    debt: int


@dataclass(frozen=True)
class IssuanceFlows:
    """
    Required component flows for one call.

    Unpacks like the (components, equity_flows, debt_flows) triple.
    """

    components: Tuple[str, ...] = ()
    equity_flows: Tuple[int, ...] = ()
    debt_flows: Tuple[int, ...] = ()

    def __iter__(self) -> Iterator[Tuple]:
        return iter((self.components, self.equity_flows, self.debt_flows))

    def __len__(self) -> int:
        return len(self.components)

    def rows(self) -> List[ComponentFlow]:
        """Flows as per-component rows."""
        return [
            ComponentFlow(component=c, equity=e, debt=d)
            for c, e, d in zip(self.components, self.equity_flows, self.debt_flows)
        ]

    def flow_for(self, component: str) -> Optional[ComponentFlow]:
        """Get the flow row for a component."""
        for row in self.rows():
            if row.component == component:
                return row
        return None


# ============================================================
# EVENTS
# ============================================================

def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class BasketTokenIssued:
    """Issuance completed."""

    event_type: ClassVar[str] = "ISSUED"

    basket_token: str
    issuer: str
    to: str
    hook_contract: Optional[str]
    quantity: int
    manager_fee: int
    protocol_fee: int
    emitted_at: datetime = field(default_factory=_utc_now, compare=False)


@dataclass(frozen=True)
class BasketTokenRedeemed:
    """Redemption completed."""

    event_type: ClassVar[str] = "REDEEMED"

    basket_token: str
    redeemer: str
    to: str
    quantity: int
    manager_fee: int
    protocol_fee: int
    hook_contract: Optional[str] = None
    emitted_at: datetime = field(default_factory=_utc_now, compare=False)


@dataclass(frozen=True)
class FeeRecipientUpdated:
    event_type: ClassVar[str] = "FEE_RECIPIENT_UPDATED"

    basket_token: str
    new_fee_recipient: str
    emitted_at: datetime = field(default_factory=_utc_now, compare=False)


@dataclass(frozen=True)
class IssueFeeUpdated:
    event_type: ClassVar[str] = "ISSUE_FEE_UPDATED"

    basket_token: str
    new_issue_fee: int
    emitted_at: datetime = field(default_factory=_utc_now, compare=False)


@dataclass(frozen=True)
class RedeemFeeUpdated:
    event_type: ClassVar[str] = "REDEEM_FEE_UPDATED"

    basket_token: str
    new_redeem_fee: int
    emitted_at: datetime = field(default_factory=_utc_now, compare=False)


IssuanceEvent = Union[
    BasketTokenIssued,
    BasketTokenRedeemed,
    FeeRecipientUpdated,
    IssueFeeUpdated,
    RedeemFeeUpdated,
]


# ============================================================
# EXCEPTIONS
# ============================================================

class IssuanceEngineError(Exception):
    """Base exception for the Issuance Engine."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.context = context or {}


class PreconditionError(IssuanceEngineError):
    """Input or state precondition failed."""
    pass


class AuthorizationError(PreconditionError):
    """Caller is not allowed to perform the operation."""
    pass


class HookRegistryError(PreconditionError):
    """Duplicate or missing hook registration."""
    pass


class InvariantViolationError(IssuanceEngineError):
    """A cross-component invariant would be violated."""
    pass


class CollateralizationError(InvariantViolationError):
    """Component balance would fall below the ledger requirement."""
    pass


class CollaboratorError(IssuanceEngineError):
    """Basket token or token primitive failed."""
    pass


class TokenTransferError(CollaboratorError):
    """Token balance, allowance, or post-transfer check failed."""
    pass


class ReentrancyError(IssuanceEngineError):
    """Guarded entry point was re-entered."""
    pass
