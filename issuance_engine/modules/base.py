"""
Issuance Engine Modules - Base.

============================================================
RESPONSIBILITY
============================================================
Shared plumbing for modules that live on a basket token.

- Address allocation and deployment on the chain
- Basket token resolution
- Manager / enablement checks
- Default no-op issuance hooks

============================================================
"""

import logging
from typing import Optional

from ..basket_token import BasketToken
from ..chain import Chain, Stateful
from ..controller import ProtocolRegistry
from ..errors import build_error
from ..validation import PreconditionValidator


logger = logging.getLogger(__name__)


class ModuleBase(Stateful):
    """Base class for basket token modules."""

    def __init__(
        self,
        chain: Chain,
        controller: ProtocolRegistry,
        address: Optional[str] = None,
    ):
        self._chain = chain
        self._controller = controller
        self.address = address or chain.new_address()
        self._validator = PreconditionValidator(controller, self.address)

    @classmethod
    def deploy(cls, chain: Chain, controller: ProtocolRegistry, **kwargs) -> "ModuleBase":
        """Create a module and register it on the chain."""
        return chain.deploy(cls(chain, controller, **kwargs))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.address})"

    # --------------------------------------------------------
    # CHECKS
    # --------------------------------------------------------

    def _basket(self, basket_token: str) -> BasketToken:
        if not self._chain.is_deployed(basket_token):
            raise build_error("PRE_INVALID_BASKET", basket_token=basket_token)
        return self._chain.resolve(basket_token)

    def _pending_basket(self, basket_token: str, caller: str) -> BasketToken:
        """Basket token managed by `caller` with this module pending."""
        basket = self._basket(basket_token)
        self._validator.validate_manager(basket, caller).raise_if_invalid()
        self._validator.validate_pending(basket).raise_if_invalid()
        return basket

    def _managed_basket(self, basket_token: str, caller: str) -> BasketToken:
        """Basket token managed by `caller` with this module initialized."""
        basket = self._basket(basket_token)
        self._validator.validate_manager(basket, caller).raise_if_invalid()
        self._validator.validate_basket(basket).raise_if_invalid()
        return basket

    # --------------------------------------------------------
    # HOOKS
    # --------------------------------------------------------

    def module_issue_hook(self, basket_token: str, quantity: int) -> None:
        pass

    def module_redeem_hook(self, basket_token: str, quantity: int) -> None:
        pass

    def component_issue_hook(
        self,
        basket_token: str,
        quantity: int,
        component: str,
        is_equity: bool,
    ) -> None:
        pass

    def component_redeem_hook(
        self,
        basket_token: str,
        quantity: int,
        component: str,
        is_equity: bool,
    ) -> None:
        pass

    def remove_module(self, basket_token: str) -> None:
        """Called by the basket token when the manager removes this module."""
        logger.info(f"{self!r} removed from {basket_token}")
