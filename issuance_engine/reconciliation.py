"""
Issuance Engine - Position Reconciliation.

============================================================
PURPOSE
============================================================
Compares a basket token's Position Ledger with the component
balances it actually holds.

RESPONSIBILITIES:
- Detect undercollateralized components
- Report balances in excess of the ledger (airdrops, dust)
- Detect external positions owned by modules that are no
  longer initialized on the basket token

CRITICAL INVARIANT:
    "For every component,
     balanceOf(basket) >= ceil(totalSupply * defaultUnit)."

External units are held by their modules and are not part of
the basket token's own balance.

============================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from .basket_token import BasketToken
from .config import ReconciliationConfig
from .errors import build_error
from .precise_math import precise_mul_ceil


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# RECONCILIATION TYPES
# ============================================================

class MismatchType(Enum):
    """Types of reconciliation mismatches."""

    UNDERCOLLATERALIZED = "UNDERCOLLATERALIZED"
    """Balance below what the ledger requires."""

    EXCESS_BALANCE = "EXCESS_BALANCE"
    """Balance above what the ledger requires."""

    ORPHANED_EXTERNAL_POSITION = "ORPHANED_EXTERNAL_POSITION"
    """External position owned by a module that is not initialized."""


class MismatchSeverity(Enum):
    """Severity of mismatch."""

    INFO = "INFO"
    """Informational."""

    WARNING = "WARNING"
    """Needs attention but not critical."""

    CRITICAL = "CRITICAL"
    """Ledger overstates holdings."""


@dataclass
class ReconciliationMismatch:
    """A detected mismatch."""

    mismatch_type: MismatchType
    """Type of mismatch."""

    severity: MismatchSeverity
    """Severity level."""

    component: str
    """Component the mismatch is on."""

    expected_value: Optional[int] = None
    """Balance the ledger requires."""

    actual_value: Optional[int] = None
    """Balance actually held."""

    module: Optional[str] = None
    """Module involved, for external position mismatches."""

    message: str = ""
    """Human-readable message."""

    detected_at: datetime = field(default_factory=_utc_now)
    """When detected."""


@dataclass
class ReconciliationResult:
    """Result of a reconciliation run."""

    run_id: str
    """Unique run identifier."""

    basket_token: str
    """Basket token reconciled."""

    total_supply: int
    """Supply the requirements were computed against."""

    started_at: datetime = field(default_factory=_utc_now)
    """When reconciliation started."""

    components_checked: int = 0
    """Number of components checked."""

    mismatches: List[ReconciliationMismatch] = field(default_factory=list)
    """Detected mismatches."""

    @property
    def has_critical(self) -> bool:
        """Whether there are critical mismatches."""
        return any(m.severity == MismatchSeverity.CRITICAL for m in self.mismatches)

    @property
    def is_consistent(self) -> bool:
        """Whether the ledger is covered by balances."""
        return not self.has_critical


# ============================================================
# RECONCILER
# ============================================================

class PositionReconciler:
    """
    Reconciles a basket token's ledger with its balances.

    Read-only; never edits positions.
    """

    def __init__(self, config: Optional[ReconciliationConfig] = None):
        self._config = config or ReconciliationConfig()
        self._history: List[ReconciliationResult] = []
        self._max_history = 100
        self._run_counter = 0

    def reconcile(self, basket: BasketToken) -> ReconciliationResult:
        """
        Run a reconciliation pass.

        Args:
            basket: Basket token to check

        Returns:
            ReconciliationResult
        """
        self._run_counter += 1
        supply = basket.total_supply()
        result = ReconciliationResult(
            run_id=f"REC_{self._run_counter:06d}",
            basket_token=basket.address,
            total_supply=supply,
        )

        for component in basket.get_components():
            result.components_checked += 1
            result.mismatches.extend(self._check_component(basket, component, supply))

        self._history.append(result)
        if len(self._history) > self._max_history:
            self._history.pop(0)

        if result.has_critical:
            logger.critical(f"Reconciliation {result.run_id}: {basket.address} is undercollateralized")
        elif result.mismatches:
            logger.warning(
                f"Reconciliation {result.run_id}: {len(result.mismatches)} mismatches on {basket.address}"
            )
        else:
            logger.debug(
                f"Reconciliation {result.run_id}: {result.components_checked} components consistent"
            )

        return result

    def enforce(self, basket: BasketToken) -> ReconciliationResult:
        """
        Reconcile and raise on a critical mismatch when configured to.

        Raises:
            InvariantViolationError: If the ledger is not covered
        """
        result = self.reconcile(basket)
        if result.has_critical and self._config.raise_on_mismatch:
            critical = [m for m in result.mismatches if m.severity == MismatchSeverity.CRITICAL]
            raise build_error(
                "INV_LEDGER_MISMATCH",
                basket_token=basket.address,
                components=[m.component for m in critical],
            )
        return result

    def _check_component(
        self,
        basket: BasketToken,
        component: str,
        supply: int,
    ) -> List[ReconciliationMismatch]:
        mismatches: List[ReconciliationMismatch] = []

        required = precise_mul_ceil(supply, basket.get_default_position_unit(component))
        balance = basket.component_balance(component)

        if balance + self._config.tolerance < required:
            mismatches.append(ReconciliationMismatch(
                mismatch_type=MismatchType.UNDERCOLLATERALIZED,
                severity=MismatchSeverity.CRITICAL,
                component=component,
                expected_value=required,
                actual_value=balance,
                message=f"{component}: holds {balance}, ledger requires {required}",
            ))
        elif balance > required:
            mismatches.append(ReconciliationMismatch(
                mismatch_type=MismatchType.EXCESS_BALANCE,
                severity=MismatchSeverity.INFO,
                component=component,
                expected_value=required,
                actual_value=balance,
                message=f"{component}: holds {balance - required} above the ledger",
            ))

        for module in basket.get_external_position_modules(component):
            if not basket.is_initialized_module(module):
                mismatches.append(ReconciliationMismatch(
                    mismatch_type=MismatchType.ORPHANED_EXTERNAL_POSITION,
                    severity=MismatchSeverity.WARNING,
                    component=component,
                    module=module,
                    message=f"{component}: external position held by uninitialized module {module}",
                ))

        return mismatches

    def get_last_result(self) -> Optional[ReconciliationResult]:
        return self._history[-1] if self._history else None

    def get_history(self, limit: int = 10) -> List[ReconciliationResult]:
        return list(self._history[-limit:])
