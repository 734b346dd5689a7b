"""
Issuance Engine Modules - External Equity Module.

============================================================
RESPONSIBILITY
============================================================
Holds part of a component outside the basket token as a
positive external position (staked / deposited collateral of
the same component).

- Issuance: takes ceil(quantity * unit) of the incoming
  equity from the basket token into custody
- Redemption: returns floor(quantity * unit) to the basket
  token before the engine pays the equity out

Custody never falls below unit * total_supply.

============================================================
"""

import logging

from ..basket_token import BasketToken
from ..precise_math import precise_mul, precise_mul_ceil
from .base import ModuleBase


logger = logging.getLogger(__name__)


class ExternalPositionModule(ModuleBase):
    """Custodian of positive external positions."""

    def initialize(self, basket_token: str, *, caller: str) -> None:
        basket = self._pending_basket(basket_token, caller)
        basket.initialize_module(caller=self.address)

    def add_external_position(self, basket_token: str, component: str, unit: int, *, caller: str) -> None:
        """Set this module's external unit on `component` (0 removes it)."""
        if unit < 0:
            raise ValueError(f"External equity unit must be non-negative, got {unit}")
        basket = self._managed_basket(basket_token, caller)
        basket.edit_external_position(component, self.address, unit, b"", caller=self.address)
        logger.info(f"{basket.symbol}: external position on {component} set to {unit}")

    def remove_module(self, basket_token: str) -> None:
        basket = self._basket(basket_token)
        for component in basket.get_components():
            if basket.is_external_position_module(component, self.address):
                basket.edit_external_position(component, self.address, 0, b"", caller=self.address)
        super().remove_module(basket_token)

    def component_issue_hook(
        self,
        basket_token: str,
        quantity: int,
        component: str,
        is_equity: bool,
    ) -> None:
        if not is_equity:
            return
        basket = self._basket(basket_token)
        unit = self._unit(basket, component)
        if unit <= 0:
            return
        amount = precise_mul_ceil(quantity, unit)
        basket.invoke_transfer(component, self.address, amount, caller=self.address)

    def component_redeem_hook(
        self,
        basket_token: str,
        quantity: int,
        component: str,
        is_equity: bool,
    ) -> None:
        if not is_equity:
            return
        basket = self._basket(basket_token)
        unit = self._unit(basket, component)
        if unit <= 0:
            return
        amount = precise_mul(quantity, unit)
        self._chain.resolve(component).transfer(self.address, basket.address, amount)

    def _unit(self, basket: BasketToken, component: str) -> int:
        return basket.get_external_position_unit(component, self.address)
