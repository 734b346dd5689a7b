"""
Issuance Engine - Flow Calculator.

============================================================
PURPOSE
============================================================
Computes fees and per-component token flows for an issuance
or redemption. Read-only: safe to call off-line to size token
approvals.

ALGORITHM:
1. Fee-adjust the quantity
   - issue:  total = quantity + ceil(quantity * fee)
   - redeem: total = quantity - ceil(quantity * fee)
2. Per component, sum units from the ledger
   - equity = default unit + positive external units
   - debt   = |negative external units|
3. Scale by the adjusted quantity
   - equity: ceil on issue, floor on redeem
   - debt:   ceil on both

ROUNDING RULE:
    "Flows paid BY the caller round up.
     Flows paid TO the caller round down."
    Debt is the exception: it always rounds up, in favor of the
    module that settles it.

============================================================
"""

import logging
from typing import List, Optional, Tuple

from .basket_token import BasketToken
from .config import IssuanceEngineConfig
from .controller import ProtocolRegistry
from .precise_math import PRECISE_UNIT, precise_mul, precise_mul_ceil
from .settings import IssuanceSettingsStore
from .types import (
    DebtUnit,
    EquityUnit,
    FeeBreakdown,
    FlowDirection,
    IssuanceFlows,
    classify_external_unit,
)


logger = logging.getLogger(__name__)


class FlowCalculator:
    """
    Fee and flow computation for one engine instance.

    Every call re-reads the ledger, the fee settings and the
    protocol fee split; nothing is cached between calls.
    """

    def __init__(
        self,
        controller: ProtocolRegistry,
        settings: IssuanceSettingsStore,
        module_address: str,
        config: Optional[IssuanceEngineConfig] = None,
    ):
        """
        Initialize calculator.

        Args:
            controller: Source of the protocol fee split
            settings: Fee settings store
            module_address: Engine address the protocol fee is keyed on
            config: Engine configuration
        """
        self._controller = controller
        self._settings = settings
        self._module_address = module_address
        self._config = config or IssuanceEngineConfig()

    # --------------------------------------------------------
    # FEES
    # --------------------------------------------------------

    def protocol_fee_split(self) -> int:
        return self._controller.get_module_fee(
            self._module_address,
            self._config.protocol_fee.split_index,
        )

    def calculate_total_fees(
        self,
        basket: BasketToken,
        quantity: int,
        is_issue: bool,
    ) -> FeeBreakdown:
        """
        Split the fee charged on `quantity`.

        The total fee is rounded up; the protocol share is rounded
        down and the manager takes the rest.

        Args:
            basket: Basket token
            quantity: Requested issue or redeem quantity
            is_issue: True for issuance

        Returns:
            FeeBreakdown with the fee-adjusted quantity
        """
        settings = self._settings.get(basket.address)
        fee_rate = settings.manager_issue_fee if is_issue else settings.manager_redeem_fee

        total_fees = precise_mul_ceil(quantity, fee_rate)
        protocol_fee = precise_mul(total_fees, self.protocol_fee_split())
        manager_fee = total_fees - protocol_fee

        total_quantity = quantity + total_fees if is_issue else quantity - total_fees

        return FeeBreakdown(
            total_quantity=total_quantity,
            manager_fee=manager_fee,
            protocol_fee=protocol_fee,
        )

    # --------------------------------------------------------
    # UNITS
    # --------------------------------------------------------

    def get_total_issuance_units(self, basket: BasketToken) -> IssuanceFlows:
        """
        Equity and debt per basket unit, for every component that has any.

        Components come in ledger order. Debt-only components are
        present because any non-zero external position adds its
        component to the ledger.
        """
        components: List[str] = []
        equity_units: List[int] = []
        debt_units: List[int] = []

        for component in basket.get_components():
            equity = basket.get_default_position_unit(component)
            debt = 0

            for module in basket.get_external_position_modules(component):
                external = classify_external_unit(
                    component,
                    basket.get_external_position_unit(component, module),
                )
                if isinstance(external, EquityUnit):
                    equity += external.unit
                elif isinstance(external, DebtUnit):
                    debt += external.unit

            if equity == 0 and debt == 0:
                continue

            components.append(component)
            equity_units.append(equity)
            debt_units.append(debt)

        return IssuanceFlows(
            components=tuple(components),
            equity_flows=tuple(equity_units),
            debt_flows=tuple(debt_units),
        )

    # --------------------------------------------------------
    # FLOWS
    # --------------------------------------------------------

    def compute_issuance_flows(self, basket: BasketToken, quantity: int) -> IssuanceFlows:
        """Flows the caller must supply (equity) and receives (debt) to issue `quantity`."""
        return self.calculate_flows(basket, quantity, FlowDirection.ISSUE)[1]

    def compute_redemption_flows(self, basket: BasketToken, quantity: int) -> IssuanceFlows:
        """Flows the caller receives (equity) and must supply (debt) to redeem `quantity`."""
        return self.calculate_flows(basket, quantity, FlowDirection.REDEEM)[1]

    def calculate_flows(
        self,
        basket: BasketToken,
        quantity: int,
        direction: FlowDirection,
    ) -> Tuple[FeeBreakdown, IssuanceFlows]:
        """
        Fees and flows for one call, computed from a single read of the ledger.

        Returns:
            (FeeBreakdown, IssuanceFlows)
        """
        fees = self.calculate_total_fees(basket, quantity, direction.is_issue)
        flows = self.scale_units(self.get_total_issuance_units(basket), fees.total_quantity, direction)

        if self._config.log_flows:
            logger.debug(
                f"{direction.value} flows for {basket.address} q={quantity} "
                f"adjusted={fees.total_quantity}: "
                + ", ".join(
                    f"{row.component}(equity={row.equity}, debt={row.debt})"
                    for row in flows.rows()
                )
            )

        return fees, flows

    def scale_units(
        self,
        units: IssuanceFlows,
        total_quantity: int,
        direction: FlowDirection,
    ) -> IssuanceFlows:
        """Scale per-unit flows by an already fee-adjusted quantity."""
        if direction.is_issue:
            equity = tuple(precise_mul_ceil(total_quantity, unit) for unit in units.equity_flows)
        else:
            equity = tuple(precise_mul(total_quantity, unit) for unit in units.equity_flows)
        debt = tuple(precise_mul_ceil(total_quantity, unit) for unit in units.debt_flows)

        return IssuanceFlows(
            components=units.components,
            equity_flows=equity,
            debt_flows=debt,
        )


def fee_adjusted_quantity(quantity: int, fee: int, is_issue: bool) -> int:
    """
    Closed form of the fee-adjusted quantity.

    issue:  ceil(quantity * (1e18 + fee) / 1e18)
    redeem: floor(quantity * (1e18 - fee) / 1e18)
    """
    if is_issue:
        return precise_mul_ceil(quantity, PRECISE_UNIT + fee)
    return precise_mul(quantity, PRECISE_UNIT - fee)
