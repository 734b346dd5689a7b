"""
Issuance Engine - Error Taxonomy.

============================================================
PURPOSE
============================================================
Comprehensive error classification for issuance failures.

ERROR CATEGORIES:
1. Precondition Errors - Invalid token, zero quantity, fee bounds
2. Authorization Errors - Caller is not manager / module
3. Registry Errors - Duplicate or missing hook registration
4. Invariant Errors - Cross-component invariants at risk
5. Collaborator Errors - Token / ledger primitive failures
6. Reentrancy Errors - Hook called back into the engine

All errors are deterministic given the same ledger state.
Nothing here is retryable: a caller resubmits the call.

============================================================
"""

from enum import Enum
from typing import Any, Dict, Set
from dataclasses import dataclass

from .types import (
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
# ERROR CATEGORIES
# ============================================================

class ErrorCategory(Enum):
    """Error category classification."""

    PRECONDITION = "PRECONDITION"
    """Input or state precondition failed before any mutation."""

    AUTHORIZATION = "AUTHORIZATION"
    """Caller lacks the required role."""

    REGISTRY = "REGISTRY"
    """Hook registry membership check failed."""

    INVARIANT = "INVARIANT"
    """Cross-component invariant would be violated."""

    COLLABORATOR = "COLLABORATOR"
    """Token or basket token primitive failed."""

    REENTRANCY = "REENTRANCY"
    """Reentrant call into a guarded entry point."""


class ErrorSeverity(Enum):
    """Error severity levels."""

    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# ============================================================
# ERROR CODE REGISTRY
# ============================================================

@dataclass(frozen=True)
class ErrorCodeInfo:
    """Information about an error code."""

    code: str
    """Error code."""

    category: ErrorCategory
    """Error category."""

    severity: ErrorSeverity
    """Error severity."""

    message: str
    """Exact revert message raised to the caller."""

    description: str = ""
    """Human-readable description."""


def _info(
    code: str,
    category: ErrorCategory,
    message: str,
    description: str = "",
    severity: ErrorSeverity = ErrorSeverity.ERROR,
) -> ErrorCodeInfo:
    return ErrorCodeInfo(
        code=code,
        category=category,
        severity=severity,
        message=message,
        description=description,
    )


ERROR_CODES: Dict[str, ErrorCodeInfo] = {
    # ========== PRECONDITION ERRORS ==========
    "PRE_INVALID_BASKET": _info(
        "PRE_INVALID_BASKET",
        ErrorCategory.PRECONDITION,
        "Must be a valid and initialized SetToken",
        "Basket token is not enabled on the controller or the engine is not initialized on it",
    ),
    "PRE_BASKET_NOT_ENABLED": _info(
        "PRE_BASKET_NOT_ENABLED",
        ErrorCategory.PRECONDITION,
        "Must be controller-enabled SetToken",
    ),
    "PRE_NOT_PENDING": _info(
        "PRE_NOT_PENDING",
        ErrorCategory.PRECONDITION,
        "Must be pending initialization",
    ),
    "PRE_ZERO_ISSUE": _info(
        "PRE_ZERO_ISSUE",
        ErrorCategory.PRECONDITION,
        "Issue quantity must be > 0",
    ),
    "PRE_ZERO_REDEEM": _info(
        "PRE_ZERO_REDEEM",
        ErrorCategory.PRECONDITION,
        "Redeem quantity must be > 0",
    ),
    "FEE_MAX_EXCEEDS_UNIT": _info(
        "FEE_MAX_EXCEEDS_UNIT",
        ErrorCategory.PRECONDITION,
        "Max manager fee can't exceed 100%",
    ),
    "FEE_INIT_ISSUE_EXCEEDS_MAX": _info(
        "FEE_INIT_ISSUE_EXCEEDS_MAX",
        ErrorCategory.PRECONDITION,
        "Issue fee can't exceed maximum fee",
    ),
    "FEE_INIT_REDEEM_EXCEEDS_MAX": _info(
        "FEE_INIT_REDEEM_EXCEEDS_MAX",
        ErrorCategory.PRECONDITION,
        "Redeem fee can't exceed maximum fee",
    ),
    "FEE_ISSUE_EXCEEDS_MAX": _info(
        "FEE_ISSUE_EXCEEDS_MAX",
        ErrorCategory.PRECONDITION,
        "Issue fee can't exceed maximum",
    ),
    "FEE_REDEEM_EXCEEDS_MAX": _info(
        "FEE_REDEEM_EXCEEDS_MAX",
        ErrorCategory.PRECONDITION,
        "Redeem fee can't exceed maximum",
    ),
    "FEE_ISSUE_UNCHANGED": _info(
        "FEE_ISSUE_UNCHANGED",
        ErrorCategory.PRECONDITION,
        "New issue fee must be different",
    ),
    "FEE_REDEEM_UNCHANGED": _info(
        "FEE_REDEEM_UNCHANGED",
        ErrorCategory.PRECONDITION,
        "New redeem fee must be different",
    ),
    "FEE_RECIPIENT_NULL": _info(
        "FEE_RECIPIENT_NULL",
        ErrorCategory.PRECONDITION,
        "Fee Recipient must be non-zero address.",
    ),
    "FEE_RECIPIENT_UNCHANGED": _info(
        "FEE_RECIPIENT_UNCHANGED",
        ErrorCategory.PRECONDITION,
        "Same fee recipient passed",
    ),

    # ========== AUTHORIZATION ERRORS ==========
    "AUT_NOT_MANAGER": _info(
        "AUT_NOT_MANAGER",
        ErrorCategory.AUTHORIZATION,
        "Must be the SetToken manager",
    ),
    "AUT_NOT_MODULE": _info(
        "AUT_NOT_MODULE",
        ErrorCategory.AUTHORIZATION,
        "Only the module can call",
    ),
    "AUT_ONLY_MANAGER": _info(
        "AUT_ONLY_MANAGER",
        ErrorCategory.AUTHORIZATION,
        "Only manager can call",
    ),

    # ========== REGISTRY ERRORS ==========
    "REG_ALREADY_REGISTERED": _info(
        "REG_ALREADY_REGISTERED",
        ErrorCategory.REGISTRY,
        "Module already registered.",
        severity=ErrorSeverity.WARNING,
    ),
    "REG_NOT_REGISTERED": _info(
        "REG_NOT_REGISTERED",
        ErrorCategory.REGISTRY,
        "Module not registered.",
        severity=ErrorSeverity.WARNING,
    ),

    # ========== INVARIANT ERRORS ==========
    "INV_REGISTERED_MODULES": _info(
        "INV_REGISTERED_MODULES",
        ErrorCategory.INVARIANT,
        "Registered modules must be removed.",
        "Hook registry must be empty before the issuance settings are discarded",
        severity=ErrorSeverity.CRITICAL,
    ),
    "INV_UNDERCOLLATERALIZED_IN": _info(
        "INV_UNDERCOLLATERALIZED_IN",
        ErrorCategory.INVARIANT,
        "Invalid transfer in. Results in undercollateralization",
        severity=ErrorSeverity.CRITICAL,
    ),
    "INV_UNDERCOLLATERALIZED_OUT": _info(
        "INV_UNDERCOLLATERALIZED_OUT",
        ErrorCategory.INVARIANT,
        "Invalid transfer out. Results in undercollateralization",
        severity=ErrorSeverity.CRITICAL,
    ),
    "INV_LEDGER_MISMATCH": _info(
        "INV_LEDGER_MISMATCH",
        ErrorCategory.INVARIANT,
        "Position ledger does not match component balances",
        severity=ErrorSeverity.CRITICAL,
    ),

    # ========== COLLABORATOR ERRORS ==========
    "TOK_INSUFFICIENT_BALANCE": _info(
        "TOK_INSUFFICIENT_BALANCE",
        ErrorCategory.COLLABORATOR,
        "ERC20: transfer amount exceeds balance",
    ),
    "TOK_INSUFFICIENT_ALLOWANCE": _info(
        "TOK_INSUFFICIENT_ALLOWANCE",
        ErrorCategory.COLLABORATOR,
        "ERC20: transfer amount exceeds allowance",
    ),
    "TOK_BURN_EXCEEDS_BALANCE": _info(
        "TOK_BURN_EXCEEDS_BALANCE",
        ErrorCategory.COLLABORATOR,
        "ERC20: burn amount exceeds balance",
    ),
    "TOK_MINT_TO_ZERO": _info(
        "TOK_MINT_TO_ZERO",
        ErrorCategory.COLLABORATOR,
        "ERC20: mint to the zero address",
    ),
    "TOK_NEGATIVE_AMOUNT": _info(
        "TOK_NEGATIVE_AMOUNT",
        ErrorCategory.COLLABORATOR,
        "Token amount must be non-negative",
    ),
    "LED_INVALID_POST_TRANSFER": _info(
        "LED_INVALID_POST_TRANSFER",
        ErrorCategory.COLLABORATOR,
        "Invalid post transfer balance",
    ),
    "LED_DATA_NOT_NULL": _info(
        "LED_DATA_NOT_NULL",
        ErrorCategory.COLLABORATOR,
        "Passed data must be null",
    ),
    "LED_EXTERNAL_NOT_ZERO": _info(
        "LED_EXTERNAL_NOT_ZERO",
        ErrorCategory.COLLABORATOR,
        "External positions must be 0 to remove component",
    ),
    "LED_MODULE_NOT_ENABLED": _info(
        "LED_MODULE_NOT_ENABLED",
        ErrorCategory.COLLABORATOR,
        "Must be enabled module",
    ),
    "LED_MODULE_ALREADY_ADDED": _info(
        "LED_MODULE_ALREADY_ADDED",
        ErrorCategory.COLLABORATOR,
        "Module must not be added",
    ),
    "LED_MODULE_NOT_PENDING": _info(
        "LED_MODULE_NOT_PENDING",
        ErrorCategory.COLLABORATOR,
        "Module must be pending",
    ),
    "LED_MODULE_NOT_ADDED": _info(
        "LED_MODULE_NOT_ADDED",
        ErrorCategory.COLLABORATOR,
        "Module must be added",
    ),
    "LED_UNKNOWN_ADDRESS": _info(
        "LED_UNKNOWN_ADDRESS",
        ErrorCategory.COLLABORATOR,
        "Address is not deployed",
    ),

    # ========== REENTRANCY ERRORS ==========
    "REENTRANT_CALL": _info(
        "REENTRANT_CALL",
        ErrorCategory.REENTRANCY,
        "ReentrancyGuard: reentrant call",
        severity=ErrorSeverity.CRITICAL,
    ),
}


# ============================================================
# CATEGORY -> EXCEPTION MAPPING
# ============================================================

_CATEGORY_EXCEPTIONS = {
    ErrorCategory.PRECONDITION: PreconditionError,
    ErrorCategory.AUTHORIZATION: AuthorizationError,
    ErrorCategory.REGISTRY: HookRegistryError,
    ErrorCategory.INVARIANT: InvariantViolationError,
    ErrorCategory.COLLABORATOR: CollaboratorError,
    ErrorCategory.REENTRANCY: ReentrancyError,
}

_CODE_EXCEPTIONS = {
    "INV_UNDERCOLLATERALIZED_IN": CollateralizationError,
    "INV_UNDERCOLLATERALIZED_OUT": CollateralizationError,
    "TOK_INSUFFICIENT_BALANCE": TokenTransferError,
    "TOK_INSUFFICIENT_ALLOWANCE": TokenTransferError,
    "TOK_BURN_EXCEEDS_BALANCE": TokenTransferError,
    "TOK_MINT_TO_ZERO": TokenTransferError,
    "LED_INVALID_POST_TRANSFER": TokenTransferError,
}


def get_error_info(code: str) -> ErrorCodeInfo:
    """
    Get error info for a code.

    Args:
        code: Error code

    Returns:
        ErrorCodeInfo

    Raises:
        KeyError: If the code is not registered
    """
    return ERROR_CODES[code]


def build_error(code: str, **context: Any) -> IssuanceEngineError:
    """
    Build the exception for an error code.

    The exception message is the registered revert message so
    callers can match on it exactly.

    Args:
        code: Registered error code
        **context: Debug context attached to the exception

    Returns:
        Exception instance (not raised)
    """
    info = get_error_info(code)
    exc_class = _CODE_EXCEPTIONS.get(code) or _CATEGORY_EXCEPTIONS[info.category]
    return exc_class(info.message, code=code, context=context)


def is_invariant_error(code: str) -> bool:
    """Check if a code protects a cross-component invariant."""
    return get_error_info(code).category == ErrorCategory.INVARIANT


# ============================================================
# ERROR SETS
# ============================================================

INVARIANT_ERROR_CODES: Set[str] = {
    code for code, info in ERROR_CODES.items()
    if info.category == ErrorCategory.INVARIANT
}

CRITICAL_ERROR_CODES: Set[str] = {
    code for code, info in ERROR_CODES.items()
    if info.severity == ErrorSeverity.CRITICAL
}
