"""
Issuance Engine - Debt Issuance Module.

============================================================
PURPOSE
============================================================
Issues and redeems basket tokens whose components include
external positions and debt held by other modules.

ISSUANCE:
1. Validate basket token and quantity
2. Manager pre-issue hook, then module issue hooks in
   registration order
3. Compute fees and flows from the post-hook ledger
4. Pull equity from the caller, checking collateralization
5. Component hooks: external modules settle their positions,
   borrowed debt is passed on to the caller
6. Mint the quantity to the recipient and the fees to the
   manager and protocol fee recipients
7. Emit BasketTokenIssued

REDEMPTION:
1. Validate basket token and quantity
2. Module redeem hooks in registration order
3. Burn the quantity from the caller
4. Compute fees and flows net of fees
5. Pull debt from the caller, modules retire it
6. Modules return external equity, equity is paid out,
   checking collateralization
7. Mint the fees, emit BasketTokenRedeemed

CRITICAL INVARIANT:
    "A call either completes or leaves no trace."
    Every entry point runs inside Chain.atomic(); events are
    delivered only after the outermost commit.

============================================================
"""

import functools
import logging
from typing import Any, Callable, List, Optional

from .basket_token import BasketToken
from .chain import Chain, Stateful
from .config import IssuanceEngineConfig
from .controller import ProtocolRegistry
from .errors import build_error
from .flow_calculator import FlowCalculator
from .hooks import HookRegistry, ManagerIssuanceHook
from .reconciliation import PositionReconciler
from .settings import IssuanceSettingsStore
from .state_machine import IssuanceStateMachine
from .types import (
    ZERO_ADDRESS,
    BasketTokenIssued,
    BasketTokenRedeemed,
    FeeBreakdown,
    FeeRecipientUpdated,
    FlowDirection,
    IssuanceEvent,
    IssuanceFlows,
    IssuancePhase,
    IssuanceSettings,
    IssueFeeUpdated,
    RedeemFeeUpdated,
)
from .validation import CollateralizationValidator, PreconditionValidator


logger = logging.getLogger(__name__)


def non_reentrant(method: Callable) -> Callable:
    """Reject calls made while another guarded call is in progress."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        if self._entered:
            raise build_error("REENTRANT_CALL", method=method.__name__)
        self._entered = True
        try:
            return method(self, *args, **kwargs)
        finally:
            self._entered = False

    return wrapper


class DebtIssuanceModule(Stateful):
    """
    Issuance engine for basket tokens with debt and external positions.

    Owns the fee settings and the hook registry of every basket
    token it is initialized on. Component balances are never
    stored; every flow is re-derived from the ledger.
    """

    def __init__(
        self,
        chain: Chain,
        controller: ProtocolRegistry,
        address: Optional[str] = None,
        config: Optional[IssuanceEngineConfig] = None,
    ):
        """
        Initialize the engine.

        Args:
            chain: Execution environment
            controller: Global registry (enablement, protocol fees)
            address: Engine address (allocated from the chain if omitted)
            config: Engine configuration
        """
        self._chain = chain
        self._controller = controller
        self.address = address or chain.new_address()
        self._config = config or IssuanceEngineConfig()

        self._settings = IssuanceSettingsStore()
        self._hooks = HookRegistry()
        self._validator = PreconditionValidator(controller, self.address, self._config.validation)
        self._collateral = CollateralizationValidator(self._config.validation)
        self._calculator = FlowCalculator(controller, self._settings, self.address, self._config)
        self._state_machine = IssuanceStateMachine()
        self._reconciler = PositionReconciler(self._config.reconciliation)

        self._events: List[IssuanceEvent] = []
        self._listeners: List[Callable[[IssuanceEvent], Any]] = []
        self._entered = False

    @classmethod
    def deploy(
        cls,
        chain: Chain,
        controller: ProtocolRegistry,
        config: Optional[IssuanceEngineConfig] = None,
    ) -> "DebtIssuanceModule":
        """Create an engine and register it on the chain."""
        return chain.deploy(cls(chain, controller, config=config))

    # --------------------------------------------------------
    # JOURNAL
    # --------------------------------------------------------

    def snapshot(self):
        return {
            "settings": self._settings.snapshot(),
            "hooks": self._hooks.snapshot(),
        }

    def restore(self, state) -> None:
        self._settings.restore(state["settings"])
        self._hooks.restore(state["hooks"])

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def config(self) -> IssuanceEngineConfig:
        return self._config

    @property
    def calculator(self) -> FlowCalculator:
        return self._calculator

    @property
    def state_machine(self) -> IssuanceStateMachine:
        return self._state_machine

    @property
    def reconciler(self) -> PositionReconciler:
        return self._reconciler

    @property
    def phase(self) -> IssuancePhase:
        return self._state_machine.phase

    @property
    def events(self) -> List[IssuanceEvent]:
        """Committed events, oldest first (copy)."""
        return list(self._events)

    def add_listener(self, listener: Callable[[IssuanceEvent], Any]) -> None:
        """Receive every event after its transaction commits."""
        self._listeners.append(listener)

    # ========================================================
    # ISSUANCE
    # ========================================================

    @non_reentrant
    def issue(self, basket_token: str, quantity: int, to: str, *, caller: str) -> BasketTokenIssued:
        """
        Deposit components and mint basket tokens.

        The caller must have approved this engine for every equity
        flow returned by get_required_component_issuance_units.

        Args:
            basket_token: Basket token address
            quantity: Basket units to mint to `to`
            to: Recipient of the minted basket units
            caller: Account supplying the equity and receiving the debt

        Returns:
            BasketTokenIssued
        """
        basket = self._basket(basket_token)
        self._validator.validate_basket(basket).raise_if_invalid()
        self._validator.validate_quantity(quantity, FlowDirection.ISSUE).raise_if_invalid()

        return self._run(
            basket,
            FlowDirection.ISSUE,
            lambda: self._issue(basket, quantity, to, caller),
        )

    def _issue(self, basket: BasketToken, quantity: int, to: str, caller: str) -> BasketTokenIssued:
        sm = self._state_machine

        hook_contract = self._call_manager_pre_issue_hook(basket, quantity, caller, to)
        self._call_module_pre_issue_hooks(basket, quantity)

        sm.transition_to(IssuancePhase.FLOWS_COMPUTED, "Pre-issue hooks complete")
        initial_supply = basket.total_supply()
        fees, flows = self._calculator.calculate_flows(basket, quantity, FlowDirection.ISSUE)

        sm.transition_to(IssuancePhase.EQUITY_COLLECTED, "Collecting equity")
        self._collect_equity(basket, flows, caller, initial_supply)

        sm.transition_to(IssuancePhase.MODULE_HOOKS_POSTING, "Settling external positions")
        self._resolve_issue_external_positions(basket, flows, fees.total_quantity, caller)

        sm.transition_to(IssuancePhase.SUPPLY_MINTED, "Minting supply")
        basket.mint(to, quantity, caller=self.address)
        self._resolve_fees(basket, fees)

        self._reconcile_if_configured(basket)

        event = BasketTokenIssued(
            basket_token=basket.address,
            issuer=caller,
            to=to,
            hook_contract=hook_contract,
            quantity=quantity,
            manager_fee=fees.manager_fee,
            protocol_fee=fees.protocol_fee,
        )
        self._emit(event)
        logger.info(
            f"Issued {quantity} {basket.symbol} to {to} "
            f"(manager_fee={fees.manager_fee}, protocol_fee={fees.protocol_fee})"
        )
        return event

    def _collect_equity(
        self,
        basket: BasketToken,
        flows: IssuanceFlows,
        caller: str,
        initial_supply: int,
    ) -> None:
        for row in flows.rows():
            if row.equity <= 0:
                continue
            self._chain.resolve(row.component).transfer_from(
                self.address, caller, basket.address, row.equity,
            )
            self._collateral.validate_transfer_in(
                basket, row.component, initial_supply, row.equity,
            ).raise_if_invalid()

    def _resolve_issue_external_positions(
        self,
        basket: BasketToken,
        flows: IssuanceFlows,
        total_quantity: int,
        caller: str,
    ) -> None:
        rows = flows.rows()
        for row in rows:
            if row.equity > 0:
                self._execute_external_position_hooks(basket, total_quantity, row.component, True, True)
        for row in rows:
            if row.debt > 0:
                self._execute_external_position_hooks(basket, total_quantity, row.component, True, False)
                basket.strict_invoke_transfer(row.component, caller, row.debt, caller=self.address)

    # ========================================================
    # REDEMPTION
    # ========================================================

    @non_reentrant
    def redeem(self, basket_token: str, quantity: int, to: str, *, caller: str) -> BasketTokenRedeemed:
        """
        Burn basket tokens and withdraw components.

        The caller must have approved this engine for every debt
        flow returned by get_required_component_redemption_units.

        Args:
            basket_token: Basket token address
            quantity: Basket units to burn from the caller
            to: Recipient of the equity
            caller: Holder of the basket units, supplies the debt

        Returns:
            BasketTokenRedeemed
        """
        basket = self._basket(basket_token)
        self._validator.validate_basket(basket).raise_if_invalid()
        self._validator.validate_quantity(quantity, FlowDirection.REDEEM).raise_if_invalid()

        return self._run(
            basket,
            FlowDirection.REDEEM,
            lambda: self._redeem(basket, quantity, to, caller),
        )

    def _redeem(self, basket: BasketToken, quantity: int, to: str, caller: str) -> BasketTokenRedeemed:
        sm = self._state_machine

        self._call_module_pre_redeem_hooks(basket, quantity)

        sm.transition_to(IssuancePhase.SUPPLY_BURNED, "Pre-redeem hooks complete")
        initial_supply = basket.total_supply()
        basket.burn(caller, quantity, caller=self.address)

        sm.transition_to(IssuancePhase.FLOWS_COMPUTED, "Supply burned")
        fees, flows = self._calculator.calculate_flows(basket, quantity, FlowDirection.REDEEM)
        final_supply = initial_supply - fees.total_quantity

        sm.transition_to(IssuancePhase.MODULE_HOOKS_POSTING, "Retiring debt")
        for row in flows.rows():
            if row.debt > 0:
                self._chain.resolve(row.component).transfer_from(
                    self.address, caller, basket.address, row.debt,
                )
                self._execute_external_position_hooks(basket, fees.total_quantity, row.component, False, False)

        sm.transition_to(IssuancePhase.EQUITY_RETURNED, "Returning equity")
        for row in flows.rows():
            if row.equity > 0:
                self._execute_external_position_hooks(basket, fees.total_quantity, row.component, False, True)
                basket.invoke_transfer(row.component, to, row.equity, caller=self.address)
                self._collateral.validate_transfer_out(
                    basket, row.component, final_supply,
                ).raise_if_invalid()

        sm.transition_to(IssuancePhase.SUPPLY_MINTED, "Minting fees")
        self._resolve_fees(basket, fees)

        self._reconcile_if_configured(basket)

        event = BasketTokenRedeemed(
            basket_token=basket.address,
            redeemer=caller,
            to=to,
            quantity=quantity,
            manager_fee=fees.manager_fee,
            protocol_fee=fees.protocol_fee,
        )
        self._emit(event)
        logger.info(
            f"Redeemed {quantity} {basket.symbol} for {to} "
            f"(manager_fee={fees.manager_fee}, protocol_fee={fees.protocol_fee})"
        )
        return event

    # ========================================================
    # VIEWS
    # ========================================================

    def get_required_component_issuance_units(self, basket_token: str, quantity: int) -> IssuanceFlows:
        """Equity the caller supplies and debt the caller receives for an issuance."""
        return self._calculator.compute_issuance_flows(self._basket(basket_token), quantity)

    def get_required_component_redemption_units(self, basket_token: str, quantity: int) -> IssuanceFlows:
        """Equity the caller receives and debt the caller supplies for a redemption."""
        return self._calculator.compute_redemption_flows(self._basket(basket_token), quantity)

    def calculate_total_fees(self, basket_token: str, quantity: int, is_issue: bool) -> FeeBreakdown:
        return self._calculator.calculate_total_fees(self._basket(basket_token), quantity, is_issue)

    def get_issuance_settings(self, basket_token: str) -> IssuanceSettings:
        return self._settings.get(basket_token)

    def get_module_issuance_hooks(self, basket_token: str) -> List[str]:
        return self._hooks.get_module_hooks(basket_token)

    def is_module_issuance_hook(self, basket_token: str, module: str) -> bool:
        return self._hooks.contains(basket_token, module)

    # ========================================================
    # HOOK REGISTRY
    # ========================================================

    @non_reentrant
    def register_to_issuance_module(self, basket_token: str, *, caller: str) -> None:
        """Register the calling module for issuance hooks."""
        basket = self._basket(basket_token)
        self._validator.validate_hook_module(basket, caller).raise_if_invalid()
        self._validator.validate_basket(basket).raise_if_invalid()
        self._hooks.register(basket.address, caller)

    @non_reentrant
    def unregister_from_issuance_module(self, basket_token: str, *, caller: str) -> None:
        """Unregister the calling module."""
        basket = self._basket(basket_token)
        self._validator.validate_hook_module(basket, caller).raise_if_invalid()
        self._validator.validate_basket(basket).raise_if_invalid()
        self._hooks.unregister(basket.address, caller)

    # ========================================================
    # FEE SETTINGS
    # ========================================================

    @non_reentrant
    def initialize(
        self,
        basket_token: str,
        max_manager_fee: int,
        manager_issue_fee: int,
        manager_redeem_fee: int,
        fee_recipient: str,
        manager_issuance_hook: Optional[ManagerIssuanceHook] = None,
        *,
        caller: str,
    ) -> IssuanceSettings:
        """
        Configure fees and enable the engine on a basket token.

        Only the manager can call, once, while the engine is pending.
        max_manager_fee cannot be changed afterwards.
        """
        basket = self._basket(basket_token, pending=True)
        self._validator.validate_manager(basket, caller).raise_if_invalid()
        self._validator.validate_pending(basket).raise_if_invalid()
        self._validator.validate_initial_settings(
            max_manager_fee, manager_issue_fee, manager_redeem_fee, fee_recipient,
        ).raise_if_invalid()

        with self._chain.atomic(f"initialize {basket.symbol}"):
            settings = self._settings.initialize(
                basket.address,
                max_manager_fee=max_manager_fee,
                manager_issue_fee=manager_issue_fee,
                manager_redeem_fee=manager_redeem_fee,
                fee_recipient=fee_recipient,
                manager_issuance_hook=manager_issuance_hook,
            )
            basket.initialize_module(caller=self.address)
        return settings

    @non_reentrant
    def update_fee_recipient(self, basket_token: str, new_fee_recipient: str, *, caller: str) -> None:
        basket = self._manager_basket(basket_token, caller)
        self._validator.validate_fee_recipient_update(
            self._settings.get(basket.address), new_fee_recipient,
        ).raise_if_invalid()

        self._settings.set_fee_recipient(basket.address, new_fee_recipient)
        self._emit(FeeRecipientUpdated(basket_token=basket.address, new_fee_recipient=new_fee_recipient))
        logger.info(f"{basket.symbol}: fee recipient updated to {new_fee_recipient}")

    @non_reentrant
    def update_issue_fee(self, basket_token: str, new_issue_fee: int, *, caller: str) -> None:
        basket = self._manager_basket(basket_token, caller)
        self._validator.validate_fee_update(
            self._settings.get(basket.address), new_issue_fee, FlowDirection.ISSUE,
        ).raise_if_invalid()

        self._settings.set_issue_fee(basket.address, new_issue_fee)
        self._emit(IssueFeeUpdated(basket_token=basket.address, new_issue_fee=new_issue_fee))
        logger.info(f"{basket.symbol}: issue fee updated to {new_issue_fee}")

    @non_reentrant
    def update_redeem_fee(self, basket_token: str, new_redeem_fee: int, *, caller: str) -> None:
        basket = self._manager_basket(basket_token, caller)
        self._validator.validate_fee_update(
            self._settings.get(basket.address), new_redeem_fee, FlowDirection.REDEEM,
        ).raise_if_invalid()

        self._settings.set_redeem_fee(basket.address, new_redeem_fee)
        self._emit(RedeemFeeUpdated(basket_token=basket.address, new_redeem_fee=new_redeem_fee))
        logger.info(f"{basket.symbol}: redeem fee updated to {new_redeem_fee}")

    def remove_module(self, basket_token: str) -> None:
        """
        Removal hook, called by the basket token when the manager
        removes this engine.

        Raises:
            InvariantViolationError: If any module is still registered
        """
        if not self._hooks.is_empty(basket_token):
            raise build_error(
                "INV_REGISTERED_MODULES",
                basket_token=basket_token,
                modules=self._hooks.get_module_hooks(basket_token),
            )
        self._settings.reset(basket_token)

    # ========================================================
    # INTERNALS
    # ========================================================

    def _run(self, basket: BasketToken, direction: FlowDirection, body: Callable[[], Any]) -> Any:
        """Run a call body atomically under the phase state machine."""
        self._state_machine.begin(basket.address, direction)
        try:
            with self._chain.atomic(f"{direction.value.lower()} {basket.symbol}"):
                result = body()
        except Exception as e:
            self._state_machine.abort(e)
            raise
        self._state_machine.complete()
        return result

    def _basket(self, basket_token: str, pending: bool = False) -> BasketToken:
        if not self._chain.is_deployed(basket_token):
            code = "PRE_BASKET_NOT_ENABLED" if pending else "PRE_INVALID_BASKET"
            raise build_error(code, basket_token=basket_token)
        basket = self._chain.resolve(basket_token)
        if not isinstance(basket, BasketToken):
            raise build_error("PRE_INVALID_BASKET", basket_token=basket_token)
        return basket

    def _manager_basket(self, basket_token: str, caller: str) -> BasketToken:
        basket = self._basket(basket_token)
        self._validator.validate_manager(basket, caller).raise_if_invalid()
        self._validator.validate_basket(basket).raise_if_invalid()
        return basket

    def _call_manager_pre_issue_hook(
        self,
        basket: BasketToken,
        quantity: int,
        caller: str,
        to: str,
    ) -> str:
        hook = self._settings.get(basket.address).manager_issuance_hook
        if hook is None:
            return ZERO_ADDRESS
        hook.invoke_pre_issue_hook(basket.address, quantity, caller, to)
        return hook.address

    def _call_module_pre_issue_hooks(self, basket: BasketToken, quantity: int) -> None:
        for module in self._hooks.get_module_hooks(basket.address):
            self._chain.resolve(module).module_issue_hook(basket.address, quantity)

    def _call_module_pre_redeem_hooks(self, basket: BasketToken, quantity: int) -> None:
        for module in self._hooks.get_module_hooks(basket.address):
            self._chain.resolve(module).module_redeem_hook(basket.address, quantity)

    def _execute_external_position_hooks(
        self,
        basket: BasketToken,
        quantity: int,
        component: str,
        is_issue: bool,
        is_equity: bool,
    ) -> None:
        for module in basket.get_external_position_modules(component):
            hook = self._chain.resolve(module)
            if is_issue:
                hook.component_issue_hook(basket.address, quantity, component, is_equity)
            else:
                hook.component_redeem_hook(basket.address, quantity, component, is_equity)

    def _resolve_fees(self, basket: BasketToken, fees: FeeBreakdown) -> None:
        if fees.protocol_fee > 0:
            basket.mint(self._controller.fee_recipient(), fees.protocol_fee, caller=self.address)
        if fees.manager_fee > 0:
            fee_recipient = self._settings.get(basket.address).fee_recipient
            basket.mint(fee_recipient, fees.manager_fee, caller=self.address)

    def _reconcile_if_configured(self, basket: BasketToken) -> None:
        if self._config.reconciliation.reconcile_after_call:
            self._reconciler.enforce(basket)

    def _emit(self, event: IssuanceEvent) -> None:
        self._chain.on_commit(lambda: self._deliver(event))

    def _deliver(self, event: IssuanceEvent) -> None:
        self._events.append(event)
        for listener in self._listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Issuance event listener error: {e}")
