"""
Issuance Engine Package.

============================================================
PURPOSE
============================================================
Issues and redeems basket tokens whose components are held
as default (in-contract) equity, external equity and debt.

CRITICAL PRINCIPLE:
    "The engine never stores component balances."
    "Every flow is re-derived from the position ledger."

AUTHORITY BOUNDARIES:
    CAN:
        - Pull equity from issuers, pay equity to redeemers
        - Pass borrowed debt to issuers, collect repayment
        - Mint and burn basket units, mint fees

    MUST NOT:
        - Edit positions directly (modules own their positions)
        - Leave partial effects behind on failure

============================================================
MODULES
============================================================
- types: Ledger, settings, flow and event types
- errors: Error taxonomy and codes
- precise_math: 18-decimal fixed point arithmetic
- chain: Execution environment, atomic journal
- tokens: Fungible component tokens
- controller: Global protocol registry
- basket_token: Basket token and position ledger
- position: Position helper library
- hooks: Hook protocols and registry
- settings: Per basket token fee settings
- config: Engine configuration
- validation: Preconditions and collateralization checks
- flow_calculator: Fee and component flow computation
- state_machine: Issuance call lifecycle
- reconciliation: Ledger vs. balance reconciliation
- debt_issuance_module: Main issuance orchestrator
- modules: Debt, external equity and manager hook modules
- models: ORM models for persistence
- database: Async engine and sessions
- repository: Database operations

============================================================
"""

# ============================================================
# TYPES
# ============================================================
from .types import (
    # Addresses
    ZERO_ADDRESS,
    is_null_address,
    # Enums
    ModuleState,
    FlowDirection,
    IssuancePhase,
    # Ledger
    ExternalPosition,
    ComponentPosition,
    EquityUnit,
    DebtUnit,
    classify_external_unit,
    # Settings and flows
    IssuanceSettings,
    FeeBreakdown,
    ComponentFlow,
    IssuanceFlows,
    # Events
    BasketTokenIssued,
    BasketTokenRedeemed,
    FeeRecipientUpdated,
    IssueFeeUpdated,
    RedeemFeeUpdated,
    IssuanceEvent,
    # Exceptions
    IssuanceEngineError,
    PreconditionError,
    AuthorizationError,
    HookRegistryError,
    InvariantViolationError,
    CollateralizationError,
    CollaboratorError,
    TokenTransferError,
    ReentrancyError,
)

# ============================================================
# ERRORS
# ============================================================
from .errors import (
    ErrorCategory,
    ErrorSeverity,
    ErrorCodeInfo,
    ERROR_CODES,
    get_error_info,
    build_error,
    is_invariant_error,
)

# ============================================================
# FIXED POINT MATH
# ============================================================
from .precise_math import (
    PRECISE_UNIT,
    precise_mul,
    precise_mul_ceil,
    precise_mul_signed,
    precise_div,
    precise_div_ceil,
    mul_div,
    mul_div_ceil,
    ether,
)

# ============================================================
# ENVIRONMENT
# ============================================================
from .chain import Stateful, Chain
from .tokens import ComponentToken, RoundingErrorToken
from .controller import ProtocolRegistry, Controller

# ============================================================
# LEDGER
# ============================================================
from .basket_token import BasketToken, create_basket_token
from . import position

# ============================================================
# CONFIGURATION
# ============================================================
from .config import (
    ValidationConfig,
    ProtocolFeeConfig,
    ReconciliationConfig,
    PersistenceConfig,
    IssuanceEngineConfig,
)

# ============================================================
# ENGINE
# ============================================================
from .hooks import ModuleIssuanceHook, ManagerIssuanceHook, HookRegistry
from .settings import IssuanceSettingsStore
from .validation import ValidationResult, PreconditionValidator, CollateralizationValidator
from .flow_calculator import FlowCalculator, fee_adjusted_quantity
from .state_machine import IssuanceStateMachine, PhaseTransitionEvent, TransitionGuard
from .reconciliation import (
    MismatchType,
    MismatchSeverity,
    ReconciliationMismatch,
    ReconciliationResult,
    PositionReconciler,
)
from .debt_issuance_module import DebtIssuanceModule

# ============================================================
# MODULES
# ============================================================
from .modules import (
    ModuleBase,
    DebtModule,
    ExternalPositionModule,
    AllowListIssuanceHook,
    IssuerNotAllowedError,
)

# ============================================================
# PERSISTENCE
# ============================================================
from .models import (
    Base,
    IssuanceEventModel,
    FeeUpdateEventModel,
    IssuanceSettingsModel,
    ReconciliationLogModel,
)
from .database import IssuanceDatabase
from .repository import IssuanceRepository, EventRecorder


__all__ = [
    # Types
    "ZERO_ADDRESS",
    "is_null_address",
    "ModuleState",
    "FlowDirection",
    "IssuancePhase",
    "ExternalPosition",
    "ComponentPosition",
    "EquityUnit",
    "DebtUnit",
    "classify_external_unit",
    "IssuanceSettings",
    "FeeBreakdown",
    "ComponentFlow",
    "IssuanceFlows",
    "BasketTokenIssued",
    "BasketTokenRedeemed",
    "FeeRecipientUpdated",
    "IssueFeeUpdated",
    "RedeemFeeUpdated",
    "IssuanceEvent",
    "IssuanceEngineError",
    "PreconditionError",
    "AuthorizationError",
    "HookRegistryError",
    "InvariantViolationError",
    "CollateralizationError",
    "CollaboratorError",
    "TokenTransferError",
    "ReentrancyError",
    # Errors
    "ErrorCategory",
    "ErrorSeverity",
    "ErrorCodeInfo",
    "ERROR_CODES",
    "get_error_info",
    "build_error",
    "is_invariant_error",
    # Math
    "PRECISE_UNIT",
    "precise_mul",
    "precise_mul_ceil",
    "precise_mul_signed",
    "precise_div",
    "precise_div_ceil",
    "mul_div",
    "mul_div_ceil",
    "ether",
    # Environment
    "Stateful",
    "Chain",
    "ComponentToken",
    "RoundingErrorToken",
    "ProtocolRegistry",
    "Controller",
    # Ledger
    "BasketToken",
    "create_basket_token",
    "position",
    # Config
    "ValidationConfig",
    "ProtocolFeeConfig",
    "ReconciliationConfig",
    "PersistenceConfig",
    "IssuanceEngineConfig",
    # Engine
    "ModuleIssuanceHook",
    "ManagerIssuanceHook",
    "HookRegistry",
    "IssuanceSettingsStore",
    "ValidationResult",
    "PreconditionValidator",
    "CollateralizationValidator",
    "FlowCalculator",
    "fee_adjusted_quantity",
    "IssuanceStateMachine",
    "PhaseTransitionEvent",
    "TransitionGuard",
    "MismatchType",
    "MismatchSeverity",
    "ReconciliationMismatch",
    "ReconciliationResult",
    "PositionReconciler",
    "DebtIssuanceModule",
    # Modules
    "ModuleBase",
    "DebtModule",
    "ExternalPositionModule",
    "AllowListIssuanceHook",
    "IssuerNotAllowedError",
    # Persistence
    "Base",
    "IssuanceEventModel",
    "FeeUpdateEventModel",
    "IssuanceSettingsModel",
    "ReconciliationLogModel",
    "IssuanceDatabase",
    "IssuanceRepository",
    "EventRecorder",
]

__version__ = "1.0.0"
