"""
Issuance Engine - Validation.

============================================================
PURPOSE
============================================================
Deterministic checks run by the engine before and during a
call.

VALIDATION STEPS:
1. Basket token is controller-enabled and the engine is
   initialized on it
2. Quantity is positive
3. Caller holds the required role (manager / module)
4. Fee settings stay within their bounds
5. Component balances still cover the ledger after every
   transfer (collateralization)

CRITICAL PRINCIPLE:
    "Fail fast, fail pure. No state is touched before every
     precondition has passed."

============================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .basket_token import BasketToken
from .config import ValidationConfig
from .controller import ProtocolRegistry
from .errors import build_error, get_error_info
from .precise_math import precise_mul_ceil
from .types import FlowDirection, IssuanceSettings, is_null_address


logger = logging.getLogger(__name__)


# ============================================================
# VALIDATION RESULT
# ============================================================

@dataclass
class ValidationResult:
    """Result of a validation step."""

    is_valid: bool
    """Whether validation passed."""

    error_code: Optional[str] = None
    """Error code if invalid."""

    error_message: Optional[str] = None
    """Error message if invalid."""

    context: Dict[str, Any] = field(default_factory=dict)
    """Values the check was made against."""

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(is_valid=True)

    @classmethod
    def failure(cls, error_code: str, **context: Any) -> "ValidationResult":
        return cls(
            is_valid=False,
            error_code=error_code,
            error_message=get_error_info(error_code).message,
            context=context,
        )

    def raise_if_invalid(self) -> None:
        """Raise the registered exception for a failed result."""
        if not self.is_valid:
            raise build_error(self.error_code, **self.context)


# ============================================================
# PRECONDITION VALIDATOR
# ============================================================

class PreconditionValidator:
    """
    Validates callers, basket tokens, quantities and fee settings.

    All checks read state only.
    """

    def __init__(
        self,
        controller: ProtocolRegistry,
        module_address: str,
        config: Optional[ValidationConfig] = None,
    ):
        """
        Initialize validator.

        Args:
            controller: Global registry
            module_address: Address of the engine the checks are made for
            config: Validation configuration
        """
        self._controller = controller
        self._module_address = module_address
        self._config = config or ValidationConfig()

    # --------------------------------------------------------
    # BASKET TOKEN
    # --------------------------------------------------------

    def validate_basket(self, basket: BasketToken) -> ValidationResult:
        """Basket token must be enabled and have the engine initialized."""
        if not self._controller.is_set(basket.address) or not basket.is_initialized_module(self._module_address):
            logger.warning(f"Validation failed: {basket.address} is not a valid and initialized basket token")
            return ValidationResult.failure("PRE_INVALID_BASKET", basket_token=basket.address)
        return ValidationResult.ok()

    def validate_pending(self, basket: BasketToken) -> ValidationResult:
        """Basket token must be enabled and have the engine pending."""
        if not self._controller.is_set(basket.address):
            return ValidationResult.failure("PRE_BASKET_NOT_ENABLED", basket_token=basket.address)
        if not basket.is_pending_module(self._module_address):
            return ValidationResult.failure("PRE_NOT_PENDING", basket_token=basket.address)
        return ValidationResult.ok()

    def validate_quantity(self, quantity: int, direction: FlowDirection) -> ValidationResult:
        if quantity <= 0:
            code = "PRE_ZERO_ISSUE" if direction.is_issue else "PRE_ZERO_REDEEM"
            return ValidationResult.failure(code, quantity=quantity)
        return ValidationResult.ok()

    # --------------------------------------------------------
    # CALLERS
    # --------------------------------------------------------

    def validate_manager(self, basket: BasketToken, caller: str) -> ValidationResult:
        if caller != basket.manager:
            logger.warning(f"Validation failed: {caller} is not the manager of {basket.address}")
            return ValidationResult.failure("AUT_NOT_MANAGER", basket_token=basket.address, caller=caller)
        return ValidationResult.ok()

    def validate_hook_module(self, basket: BasketToken, module: str) -> ValidationResult:
        """Caller must be an initialized, controller-enabled module."""
        if not basket.is_initialized_module(module) or not self._controller.is_module(module):
            logger.warning(f"Validation failed: {module} is not an initialized module on {basket.address}")
            return ValidationResult.failure("AUT_NOT_MODULE", basket_token=basket.address, caller=module)
        return ValidationResult.ok()

    # --------------------------------------------------------
    # FEES
    # --------------------------------------------------------

    def validate_initial_settings(
        self,
        max_manager_fee: int,
        manager_issue_fee: int,
        manager_redeem_fee: int,
        fee_recipient: str,
    ) -> ValidationResult:
        if max_manager_fee < 0 or max_manager_fee > self._config.max_fee_ceiling:
            return ValidationResult.failure("FEE_MAX_EXCEEDS_UNIT", max_manager_fee=max_manager_fee)
        if manager_issue_fee < 0 or manager_issue_fee > max_manager_fee:
            return ValidationResult.failure(
                "FEE_INIT_ISSUE_EXCEEDS_MAX", fee=manager_issue_fee, max_manager_fee=max_manager_fee,
            )
        if manager_redeem_fee < 0 or manager_redeem_fee > max_manager_fee:
            return ValidationResult.failure(
                "FEE_INIT_REDEEM_EXCEEDS_MAX", fee=manager_redeem_fee, max_manager_fee=max_manager_fee,
            )
        if is_null_address(fee_recipient):
            return ValidationResult.failure("FEE_RECIPIENT_NULL")
        return ValidationResult.ok()

    def validate_fee_update(
        self,
        settings: IssuanceSettings,
        new_fee: int,
        direction: FlowDirection,
    ) -> ValidationResult:
        if direction.is_issue:
            current = settings.manager_issue_fee
            exceeds, unchanged = "FEE_ISSUE_EXCEEDS_MAX", "FEE_ISSUE_UNCHANGED"
        else:
            current = settings.manager_redeem_fee
            exceeds, unchanged = "FEE_REDEEM_EXCEEDS_MAX", "FEE_REDEEM_UNCHANGED"

        if new_fee < 0 or new_fee > settings.max_manager_fee:
            return ValidationResult.failure(exceeds, fee=new_fee, max_manager_fee=settings.max_manager_fee)
        if new_fee == current:
            return ValidationResult.failure(unchanged, fee=new_fee)
        return ValidationResult.ok()

    def validate_fee_recipient_update(
        self,
        settings: IssuanceSettings,
        new_fee_recipient: str,
    ) -> ValidationResult:
        if is_null_address(new_fee_recipient):
            return ValidationResult.failure("FEE_RECIPIENT_NULL")
        if new_fee_recipient == settings.fee_recipient:
            return ValidationResult.failure("FEE_RECIPIENT_UNCHANGED", fee_recipient=new_fee_recipient)
        return ValidationResult.ok()


# ============================================================
# COLLATERALIZATION VALIDATOR
# ============================================================

class CollateralizationValidator:
    """
    Checks component balances against the ledger around transfers.

    Requirements use the ceiling of supply * default unit so a
    token that delivers even one base unit less than requested
    is caught.
    """

    def __init__(self, config: Optional[ValidationConfig] = None):
        self._config = config or ValidationConfig()

    @property
    def enabled(self) -> bool:
        return self._config.validate_collateralization

    def required_balance(self, basket: BasketToken, component: str, supply: int) -> int:
        return precise_mul_ceil(supply, basket.get_default_position_unit(component))

    def validate_transfer_in(
        self,
        basket: BasketToken,
        component: str,
        initial_supply: int,
        quantity: int,
    ) -> ValidationResult:
        """
        Check the balance after pulling `quantity` in for an issuance.

        Runs before component hooks, so the incoming quantity must be
        fully present on top of the existing requirement.
        """
        if not self.enabled:
            return ValidationResult.ok()

        balance = basket.component_balance(component)
        required = self.required_balance(basket, component, initial_supply) + quantity
        if balance < required:
            logger.warning(
                f"Collateralization check failed on transfer in: {component} "
                f"balance={balance} required={required}"
            )
            return ValidationResult.failure(
                "INV_UNDERCOLLATERALIZED_IN",
                component=component,
                balance=balance,
                required=required,
            )
        return ValidationResult.ok()

    def validate_transfer_out(
        self,
        basket: BasketToken,
        component: str,
        final_supply: int,
    ) -> ValidationResult:
        """Check the balance after paying out a redemption."""
        if not self.enabled:
            return ValidationResult.ok()

        balance = basket.component_balance(component)
        required = self.required_balance(basket, component, final_supply)
        if balance < required:
            logger.warning(
                f"Collateralization check failed on transfer out: {component} "
                f"balance={balance} required={required}"
            )
            return ValidationResult.failure(
                "INV_UNDERCOLLATERALIZED_OUT",
                component=component,
                balance=balance,
                required=required,
            )
        return ValidationResult.ok()
