"""
Issuance Engine - Basket Token.

============================================================
PURPOSE
============================================================
The basket token: supply, holder balances and the Position
Ledger, plus the per-module enablement state.

POSITION LEDGER:
- Ordered component list
- Per component a default (equity) unit
- Per component an ordered list of external position modules,
  each with a signed unit and opaque data

MODULE LIFECYCLE:
    NONE ──add_module──► PENDING ──initialize_module──► INITIALIZED
      ▲                                                     │
      └────────────────────remove_module────────────────────┘

Only INITIALIZED, controller-enabled modules may edit positions,
mint, burn or move tokens held by the basket token.

============================================================
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from .chain import Chain, Stateful
from .controller import ProtocolRegistry
from .errors import build_error
from .types import ComponentPosition, ExternalPosition, ModuleState, is_null_address


logger = logging.getLogger(__name__)


class BasketToken(Stateful):
    """Basket token holding the authoritative Position Ledger."""

    _journal_fields = (
        "_balances",
        "_total_supply",
        "_components",
        "_positions",
        "_module_states",
        "_modules",
        "manager",
    )

    def __init__(
        self,
        chain: Chain,
        controller: ProtocolRegistry,
        address: str,
        manager: str,
        components: Sequence[str] = (),
        units: Sequence[int] = (),
        modules: Iterable[str] = (),
        name: str = "Basket",
        symbol: str = "BSKT",
    ):
        if len(components) != len(units):
            raise ValueError("Component and unit lengths must be equal")
        if any(unit <= 0 for unit in units):
            raise ValueError("Units must be greater than 0")
        if len(set(components)) != len(components):
            raise ValueError("Components must not have a duplicate")

        self._chain = chain
        self._controller = controller
        self.address = address
        self.manager = manager
        self.name = name
        self.symbol = symbol

        self._balances: Dict[str, int] = {}
        self._total_supply = 0
        self._components: List[str] = list(components)
        self._positions: Dict[str, ComponentPosition] = {
            component: ComponentPosition(default_unit=unit)
            for component, unit in zip(components, units)
        }
        self._module_states: Dict[str, ModuleState] = {
            module: ModuleState.PENDING for module in modules
        }
        self._modules: List[str] = []

    def __repr__(self) -> str:
        return f"BasketToken({self.symbol}@{self.address})"

    # --------------------------------------------------------
    # ERC20
    # --------------------------------------------------------

    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, holder: str) -> int:
        return self._balances.get(holder, 0)

    def transfer(self, sender: str, to: str, amount: int) -> None:
        """Move basket units between holders."""
        balance = self.balance_of(sender)
        if amount < 0:
            raise build_error("TOK_NEGATIVE_AMOUNT", amount=amount)
        if balance < amount:
            raise build_error(
                "TOK_INSUFFICIENT_BALANCE",
                token=self.symbol,
                holder=sender,
                balance=balance,
                amount=amount,
            )
        self._balances[sender] = balance - amount
        self._balances[to] = self.balance_of(to) + amount

    def mint(self, to: str, quantity: int, caller: str) -> None:
        self._require_module(caller)
        if is_null_address(to):
            raise build_error("TOK_MINT_TO_ZERO", token=self.symbol, quantity=quantity)
        if quantity < 0:
            raise build_error("TOK_NEGATIVE_AMOUNT", amount=quantity)
        self._balances[to] = self.balance_of(to) + quantity
        self._total_supply += quantity

    def burn(self, holder: str, quantity: int, caller: str) -> None:
        self._require_module(caller)
        if quantity < 0:
            raise build_error("TOK_NEGATIVE_AMOUNT", amount=quantity)
        if self.balance_of(holder) < quantity:
            raise build_error(
                "TOK_BURN_EXCEEDS_BALANCE",
                token=self.symbol,
                holder=holder,
                balance=self.balance_of(holder),
                amount=quantity,
            )
        self._balances[holder] -= quantity
        self._total_supply -= quantity

    # --------------------------------------------------------
    # POSITION READS
    # --------------------------------------------------------

    def get_components(self) -> List[str]:
        """Components in ledger order (copy)."""
        return list(self._components)

    def is_component(self, component: str) -> bool:
        return component in self._positions

    def get_default_position_unit(self, component: str) -> int:
        position = self._positions.get(component)
        return position.default_unit if position else 0

    def get_external_position_modules(self, component: str) -> List[str]:
        """External modules on a component in insertion order (copy)."""
        position = self._positions.get(component)
        return list(position.external_modules) if position else []

    def is_external_position_module(self, component: str, module: str) -> bool:
        return module in self.get_external_position_modules(component)

    def get_external_position_unit(self, component: str, module: str) -> int:
        external = self._external(component, module)
        return external.unit if external else 0

    def get_external_position_data(self, component: str, module: str) -> bytes:
        external = self._external(component, module)
        return external.data if external else b""

    def get_total_component_unit(self, component: str) -> int:
        """Default unit plus every signed external unit."""
        total = self.get_default_position_unit(component)
        for module in self.get_external_position_modules(component):
            total += self.get_external_position_unit(component, module)
        return total

    def component_balance(self, component: str) -> int:
        """Balance of `component` held by this basket token."""
        return self._chain.resolve(component).balance_of(self.address)

    def _external(self, component: str, module: str) -> Optional[ExternalPosition]:
        position = self._positions.get(component)
        if position is None:
            return None
        return position.external_positions.get(module)

    # --------------------------------------------------------
    # POSITION WRITES
    # --------------------------------------------------------

    def edit_default_position(self, component: str, unit: int, caller: str) -> None:
        """
        Set the default unit of a component.

        A new component with a positive unit is appended. A zero unit
        removes the component when no external module tracks it.
        """
        self._require_module(caller)
        if unit < 0:
            raise ValueError(f"Default unit must be non-negative, got {unit}")

        is_component = self.is_component(component)
        if not is_component and unit > 0:
            self._add_component(component)
        elif is_component and unit == 0 and not self.get_external_position_modules(component):
            self._remove_component(component)
            logger.debug(f"{self.symbol}: removed component {component}")
            return

        if self.is_component(component):
            self._positions[component].default_unit = unit

    def edit_external_position(
        self,
        component: str,
        module: str,
        unit: int,
        data: bytes,
        caller: str,
    ) -> None:
        """
        Set an external position.

        A non-zero unit adds the component and the module when new.
        A zero unit requires empty data and removes the module, and
        the component too when nothing else holds it.
        """
        self._require_module(caller)

        if unit != 0:
            if not self.is_component(component):
                self._add_component(component)
            position = self._positions[component]
            if module not in position.external_modules:
                position.external_modules.append(module)
            position.external_positions[module] = ExternalPosition(unit=unit, data=bytes(data))
            return

        if data:
            raise build_error("LED_DATA_NOT_NULL", component=component, module=module)
        if not self.is_component(component):
            return

        modules = self.get_external_position_modules(component)
        if len(modules) == 1 and self.get_default_position_unit(component) == 0:
            if modules[0] != module:
                raise build_error("LED_EXTERNAL_NOT_ZERO", component=component, module=module)
            self._remove_component(component)
            logger.debug(f"{self.symbol}: removed component {component}")
            return

        position = self._positions[component]
        if module in position.external_modules:
            position.external_modules.remove(module)
        position.external_positions.pop(module, None)

    def _add_component(self, component: str) -> None:
        self._components.append(component)
        self._positions[component] = ComponentPosition()

    def _remove_component(self, component: str) -> None:
        self._components.remove(component)
        del self._positions[component]

    # --------------------------------------------------------
    # INVOKE (token moves executed as the basket token)
    # --------------------------------------------------------

    def invoke_transfer(self, token: str, to: str, amount: int, caller: str) -> None:
        self._require_module(caller)
        if amount > 0:
            self._chain.resolve(token).transfer(self.address, to, amount)

    def strict_invoke_transfer(self, token: str, to: str, amount: int, caller: str) -> None:
        """Transfer and verify the basket balance dropped by exactly `amount`."""
        self._require_module(caller)
        if amount <= 0:
            return
        erc20 = self._chain.resolve(token)
        existing = erc20.balance_of(self.address)
        erc20.transfer(self.address, to, amount)
        if erc20.balance_of(self.address) != existing - amount:
            raise build_error(
                "LED_INVALID_POST_TRANSFER",
                token=token,
                expected=existing - amount,
                actual=erc20.balance_of(self.address),
            )

    def invoke_approve(self, token: str, spender: str, amount: int, caller: str) -> None:
        self._require_module(caller)
        self._chain.resolve(token).approve(self.address, spender, amount)

    # --------------------------------------------------------
    # MODULES
    # --------------------------------------------------------

    def module_state(self, module: str) -> ModuleState:
        return self._module_states.get(module, ModuleState.NONE)

    def is_initialized_module(self, module: str) -> bool:
        return self.module_state(module) is ModuleState.INITIALIZED

    def is_pending_module(self, module: str) -> bool:
        return self.module_state(module) is ModuleState.PENDING

    def get_modules(self) -> List[str]:
        """Initialized modules in initialization order (copy)."""
        return list(self._modules)

    def add_module(self, module: str, caller: str) -> None:
        self._require_manager(caller)
        if self.module_state(module) is not ModuleState.NONE:
            raise build_error("LED_MODULE_ALREADY_ADDED", module=module)
        if not self._controller.is_module(module):
            raise build_error("LED_MODULE_NOT_ENABLED", module=module)
        self._module_states[module] = ModuleState.PENDING
        logger.info(f"{self.symbol}: module {module} added (pending)")

    def initialize_module(self, caller: str) -> None:
        """Called by a pending module to complete enablement."""
        if self.module_state(caller) is not ModuleState.PENDING:
            raise build_error("LED_MODULE_NOT_PENDING", module=caller)
        self._module_states[caller] = ModuleState.INITIALIZED
        self._modules.append(caller)
        logger.info(f"{self.symbol}: module {caller} initialized")

    def remove_module(self, module: str, caller: str) -> None:
        """Remove an initialized module, running its removal hook first."""
        self._require_manager(caller)
        if not self.is_initialized_module(module):
            raise build_error("LED_MODULE_NOT_ADDED", module=module)

        with self._chain.atomic(f"remove_module {module}"):
            self._chain.resolve(module).remove_module(self.address)
            self._module_states.pop(module, None)
            self._modules.remove(module)

        logger.info(f"{self.symbol}: module {module} removed")

    def remove_pending_module(self, module: str, caller: str) -> None:
        self._require_manager(caller)
        if not self.is_pending_module(module):
            raise build_error("LED_MODULE_NOT_PENDING", module=module)
        self._module_states.pop(module, None)

    def set_manager(self, new_manager: str, caller: str) -> None:
        self._require_manager(caller)
        self.manager = new_manager
        logger.info(f"{self.symbol}: manager set to {new_manager}")

    # --------------------------------------------------------
    # GUARDS
    # --------------------------------------------------------

    def _require_module(self, caller: str) -> None:
        if not self.is_initialized_module(caller):
            raise build_error("AUT_NOT_MODULE", caller=caller, basket_token=self.address)
        if not self._controller.is_module(caller):
            raise build_error("LED_MODULE_NOT_ENABLED", module=caller)

    def _require_manager(self, caller: str) -> None:
        if caller != self.manager:
            raise build_error("AUT_ONLY_MANAGER", caller=caller, basket_token=self.address)


def create_basket_token(
    chain: Chain,
    controller,
    manager: str,
    components: Sequence[str],
    units: Sequence[int],
    modules: Iterable[str],
    name: str = "Basket",
    symbol: str = "BSKT",
) -> BasketToken:
    """
    Deploy a basket token and enable it on the controller.

    Every module must already be enabled on the controller.
    """
    modules = list(modules)
    for module in modules:
        if not controller.is_module(module):
            raise build_error("LED_MODULE_NOT_ENABLED", module=module)

    basket = BasketToken(
        chain=chain,
        controller=controller,
        address=chain.new_address(),
        manager=manager,
        components=components,
        units=units,
        modules=modules,
        name=name,
        symbol=symbol,
    )
    chain.deploy(basket)
    controller.add_set(basket.address)
    logger.info(f"Created basket token {symbol} at {basket.address} with {len(components)} components")
    return basket
