"""
Issuance Engine - Hook Capabilities and Registry.

============================================================
PURPOSE
============================================================
Capability protocols for modules and managers that hook into
issuance, and the per basket token registry of modules whose
hooks the engine fans out to.

ORDERING:
    Hooks run in registration order. A module that syncs debt
    must be able to run before another module reads positions,
    so the registry is an insertion-ordered list, never a set.

============================================================
"""

import logging
from typing import Dict, List, Protocol, runtime_checkable

from .chain import Stateful
from .errors import build_error


logger = logging.getLogger(__name__)


# ============================================================
# CAPABILITIES
# ============================================================

@runtime_checkable
class ModuleIssuanceHook(Protocol):
    """Hooks implemented by modules holding external positions."""

    address: str

    def module_issue_hook(self, basket_token: str, quantity: int) -> None:
        """Runs before flows are computed for an issuance."""
        ...

    def module_redeem_hook(self, basket_token: str, quantity: int) -> None:
        """Runs before flows are computed for a redemption."""
        ...

    def component_issue_hook(
        self,
        basket_token: str,
        quantity: int,
        component: str,
        is_equity: bool,
    ) -> None:
        """Settle the module's external position on `component` for an issuance."""
        ...

    def component_redeem_hook(
        self,
        basket_token: str,
        quantity: int,
        component: str,
        is_equity: bool,
    ) -> None:
        """Settle the module's external position on `component` for a redemption."""
        ...


@runtime_checkable
class ManagerIssuanceHook(Protocol):
    """Optional manager hook run once before every issuance."""

    address: str

    def invoke_pre_issue_hook(
        self,
        basket_token: str,
        quantity: int,
        sender: str,
        to: str,
    ) -> None:
        """Raise to block the issuance."""
        ...


# ============================================================
# REGISTRY
# ============================================================

class HookRegistry(Stateful):
    """
    Insertion-ordered module hook sets, one per basket token.

    Pure bookkeeping; authorization is checked by the caller.
    """

    _journal_fields = ("_hooks",)

    def __init__(self):
        self._hooks: Dict[str, List[str]] = {}

    def register(self, basket_token: str, module: str) -> None:
        """
        Add a module to a basket token's hook set.

        Raises:
            HookRegistryError: If the module is already registered
        """
        hooks = self._hooks.setdefault(basket_token, [])
        if module in hooks:
            raise build_error("REG_ALREADY_REGISTERED", basket_token=basket_token, module=module)
        hooks.append(module)
        logger.info(f"Registered issuance hook {module} on {basket_token} (#{len(hooks)})")

    def unregister(self, basket_token: str, module: str) -> None:
        """
        Remove a module from a basket token's hook set.

        Raises:
            HookRegistryError: If the module is not registered
        """
        hooks = self._hooks.get(basket_token, [])
        if module not in hooks:
            raise build_error("REG_NOT_REGISTERED", basket_token=basket_token, module=module)
        hooks.remove(module)
        if not hooks:
            del self._hooks[basket_token]
        logger.info(f"Unregistered issuance hook {module} from {basket_token}")

    def get_module_hooks(self, basket_token: str) -> List[str]:
        """Registered modules in registration order (copy)."""
        return list(self._hooks.get(basket_token, []))

    def contains(self, basket_token: str, module: str) -> bool:
        return module in self._hooks.get(basket_token, [])

    def is_empty(self, basket_token: str) -> bool:
        return not self._hooks.get(basket_token)
