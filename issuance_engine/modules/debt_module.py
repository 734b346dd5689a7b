"""
Issuance Engine Modules - Debt Module.

============================================================
RESPONSIBILITY
============================================================
Lending-market style module holding debt on behalf of basket
tokens.

- Tracks the total debt notional per (basket token, asset)
- Borrows from its own reserve on issuance, repays on
  redemption
- Debt changes outside issuance: interest accrual and
  liquidation
- Re-derives its external unit from the notional on every
  issuance / redemption pre-hook

LEDGER:
    external unit = -ceil(notional * 1e18 / totalSupply)

The unit rounds up so the ledger never understates what a
redeemer must repay.

============================================================
"""

import logging
from typing import Dict, List, Optional

from ..basket_token import BasketToken
from ..chain import Chain
from ..controller import ProtocolRegistry
from ..position import calculate_and_edit_default_position
from ..precise_math import PRECISE_UNIT, precise_div_ceil, precise_mul_ceil
from .base import ModuleBase


logger = logging.getLogger(__name__)


class DebtModule(ModuleBase):
    """
    Debt module registered as an issuance hook.

    Lends from its own token balance (the reserve).
    """

    _journal_fields = ("_debt", "_issuance_modules", "issue_hook_calls", "redeem_hook_calls")

    def __init__(
        self,
        chain: Chain,
        controller: ProtocolRegistry,
        address: Optional[str] = None,
    ):
        super().__init__(chain, controller, address)
        self._debt: Dict[str, Dict[str, int]] = {}
        self._issuance_modules: Dict[str, str] = {}
        self.issue_hook_calls = 0
        self.redeem_hook_calls = 0

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    def initialize(self, basket_token: str, issuance_module: str, *, caller: str) -> None:
        """Enable on a basket token and register with the issuance engine."""
        basket = self._pending_basket(basket_token, caller)
        with self._chain.atomic(f"initialize debt module on {basket.symbol}"):
            basket.initialize_module(caller=self.address)
            self._chain.resolve(issuance_module).register_to_issuance_module(
                basket.address, caller=self.address,
            )
            self._issuance_modules[basket.address] = issuance_module
            self._debt.setdefault(basket.address, {})
        logger.info(f"Debt module initialized on {basket.symbol} with engine {issuance_module}")

    def remove_module(self, basket_token: str) -> None:
        """Unregister from the engine and clear this module's positions."""
        basket = self._basket(basket_token)
        issuance_module = self._issuance_modules.pop(basket_token, None)
        if issuance_module is not None:
            self._chain.resolve(issuance_module).unregister_from_issuance_module(
                basket_token, caller=self.address,
            )
        for token in self._debt.pop(basket_token, {}):
            if basket.get_external_position_unit(token, self.address) != 0:
                basket.edit_external_position(token, self.address, 0, b"", caller=self.address)
        super().remove_module(basket_token)

    # --------------------------------------------------------
    # DEBT
    # --------------------------------------------------------

    def add_debt(self, basket_token: str, token: str, unit: int, *, caller: str) -> None:
        """
        Open a debt position of `unit` per basket unit.

        The notional is sized against the current supply; no
        tokens move.
        """
        if unit <= 0:
            raise ValueError(f"Debt unit must be positive, got {unit}")
        basket = self._managed_basket(basket_token, caller)
        basket.edit_external_position(token, self.address, -unit, b"", caller=self.address)
        debts = self._debt.setdefault(basket.address, {})
        debts[token] = debts.get(token, 0) + precise_mul_ceil(basket.total_supply(), unit)
        logger.info(f"{basket.symbol}: debt position on {token} opened at -{unit}")

    def debt_notional(self, basket_token: str, token: str) -> int:
        return self._debt.get(basket_token, {}).get(token, 0)

    def debt_tokens(self, basket_token: str) -> List[str]:
        return list(self._debt.get(basket_token, {}))

    def accrue_interest(self, basket_token: str, token: str, rate: int) -> int:
        """
        Grow a debt notional by `rate` (1e18 = 100%).

        The ledger is not touched until the next sync.

        Returns:
            New notional
        """
        debts = self._debt.get(basket_token, {})
        if token not in debts:
            raise ValueError(f"No debt in {token} for {basket_token}")
        debts[token] = precise_mul_ceil(debts[token], PRECISE_UNIT + rate)
        logger.info(f"Interest accrued on {basket_token}/{token}: notional={debts[token]}")
        return debts[token]

    def liquidate(
        self,
        basket_token: str,
        token: str,
        repay_notional: int,
        collateral: str,
        seized_amount: int,
        *,
        liquidator: str,
    ) -> None:
        """
        Repay part of a basket token's debt and seize its collateral.

        The liquidator pays `repay_notional` of `token` into the
        reserve and receives `seized_amount` of `collateral` from the
        basket token. The collateral's default unit is recomputed
        from the remaining balance and the debt unit is re-synced.
        """
        basket = self._basket(basket_token)
        debts = self._debt.get(basket.address, {})
        if repay_notional > debts.get(token, 0):
            raise ValueError(f"Repay {repay_notional} exceeds debt {debts.get(token, 0)}")

        with self._chain.atomic(f"liquidate {basket.symbol}"):
            self._chain.resolve(token).transfer(liquidator, self.address, repay_notional)
            debts[token] -= repay_notional

            supply = basket.total_supply()
            pre_balance = basket.component_balance(collateral)
            basket.invoke_transfer(collateral, liquidator, seized_amount, caller=self.address)
            calculate_and_edit_default_position(basket, collateral, supply, pre_balance, caller=self.address)

            self.sync(basket.address)

        logger.warning(
            f"{basket.symbol} liquidated: repaid {repay_notional} of {token}, "
            f"seized {seized_amount} of {collateral}"
        )

    def sync(self, basket_token: str) -> None:
        """Re-derive every external debt unit from its notional."""
        basket = self._basket(basket_token)
        supply = basket.total_supply()
        if supply == 0:
            return

        for token, notional in self._debt.get(basket.address, {}).items():
            unit = precise_div_ceil(notional, supply)
            current = -basket.get_external_position_unit(token, self.address)
            if unit == current:
                continue
            basket.edit_external_position(token, self.address, -unit, b"", caller=self.address)
            logger.debug(f"{basket.symbol}: debt unit on {token} {current} -> {unit}")

    # --------------------------------------------------------
    # ISSUANCE HOOKS
    # --------------------------------------------------------

    def module_issue_hook(self, basket_token: str, quantity: int) -> None:
        self.issue_hook_calls += 1
        self.sync(basket_token)

    def module_redeem_hook(self, basket_token: str, quantity: int) -> None:
        self.redeem_hook_calls += 1
        self.sync(basket_token)

    def component_issue_hook(
        self,
        basket_token: str,
        quantity: int,
        component: str,
        is_equity: bool,
    ) -> None:
        """Borrow the debt for `quantity` into the basket token."""
        if is_equity:
            return
        basket = self._basket(basket_token)
        amount = self._notional_for(basket, quantity, component)
        if amount == 0:
            return
        self._chain.resolve(component).transfer(self.address, basket.address, amount)
        debts = self._debt.setdefault(basket.address, {})
        debts[component] = debts.get(component, 0) + amount

    def component_redeem_hook(
        self,
        basket_token: str,
        quantity: int,
        component: str,
        is_equity: bool,
    ) -> None:
        """Pull the repayment for `quantity` out of the basket token."""
        if is_equity:
            return
        basket = self._basket(basket_token)
        amount = self._notional_for(basket, quantity, component)
        if amount == 0:
            return
        basket.invoke_transfer(component, self.address, amount, caller=self.address)
        debts = self._debt.setdefault(basket.address, {})
        debts[component] = max(debts.get(component, 0) - amount, 0)

    def _notional_for(self, basket: BasketToken, quantity: int, component: str) -> int:
        unit = -basket.get_external_position_unit(component, self.address)
        if unit <= 0:
            return 0
        return precise_mul_ceil(quantity, unit)
