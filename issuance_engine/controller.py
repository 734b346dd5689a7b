"""
Issuance Engine - Controller.

============================================================
PURPOSE
============================================================
Global registry consulted by the engine at call time.

RESPONSIBILITIES:
- Track controller-enabled basket tokens
- Track controller-enabled modules
- Hold the per-module protocol fee table
- Hold the protocol fee recipient

The engine depends only on the ProtocolRegistry protocol and
receives the registry through its constructor.

============================================================
"""

import logging
from typing import Dict, Protocol, Set, Tuple, runtime_checkable

from .errors import build_error
from .precise_math import PRECISE_UNIT
from .types import ZERO_ADDRESS


logger = logging.getLogger(__name__)


@runtime_checkable
class ProtocolRegistry(Protocol):
    """Read surface of the global registry used by the engine."""

    def is_set(self, basket_token: str) -> bool:
        """Check if a basket token is controller-enabled."""
        ...

    def is_module(self, module: str) -> bool:
        """Check if a module is controller-enabled."""
        ...

    def get_module_fee(self, module: str, fee_index: int) -> int:
        """Protocol fee split for a module, 1e18 = 100%."""
        ...

    def fee_recipient(self) -> str:
        """Protocol fee recipient."""
        ...


class Controller:
    """
    In-memory ProtocolRegistry.

    Owned by a single admin account; mutating calls take the
    caller explicitly.
    """

    def __init__(self, address: str, owner: str, fee_recipient: str = ZERO_ADDRESS):
        self.address = address
        self.owner = owner
        self._fee_recipient = fee_recipient
        self._sets: Set[str] = set()
        self._modules: Set[str] = set()
        self._fees: Dict[Tuple[str, int], int] = {}

    # --------------------------------------------------------
    # BASKET TOKENS
    # --------------------------------------------------------

    def add_set(self, basket_token: str) -> None:
        if basket_token in self._sets:
            raise ValueError(f"Set {basket_token} already exists")
        self._sets.add(basket_token)
        logger.info(f"Controller enabled basket token {basket_token}")

    def remove_set(self, basket_token: str) -> None:
        if basket_token not in self._sets:
            raise ValueError(f"Set {basket_token} does not exist")
        self._sets.discard(basket_token)
        logger.info(f"Controller disabled basket token {basket_token}")

    def is_set(self, basket_token: str) -> bool:
        return basket_token in self._sets

    # --------------------------------------------------------
    # MODULES
    # --------------------------------------------------------

    def add_module(self, module: str) -> None:
        if module in self._modules:
            raise ValueError(f"Module {module} already exists")
        self._modules.add(module)
        logger.info(f"Controller enabled module {module}")

    def remove_module(self, module: str) -> None:
        if module not in self._modules:
            raise ValueError(f"Module {module} does not exist")
        self._modules.discard(module)
        logger.info(f"Controller disabled module {module}")

    def is_module(self, module: str) -> bool:
        return module in self._modules

    # --------------------------------------------------------
    # FEES
    # --------------------------------------------------------

    def add_fee(self, module: str, fee_index: int, fee: int, caller: str) -> None:
        """Register the protocol fee split for a module."""
        self._require_owner(caller)
        if module not in self._modules:
            raise ValueError(f"Module {module} does not exist")
        if not 0 <= fee <= PRECISE_UNIT:
            raise ValueError(f"Fee {fee} must be within [0, 1e18]")
        self._fees[(module, fee_index)] = fee
        logger.info(f"Protocol fee for {module}[{fee_index}] set to {fee}")

    def edit_fee(self, module: str, fee_index: int, fee: int, caller: str) -> None:
        if (module, fee_index) not in self._fees:
            raise ValueError(f"Fee {module}[{fee_index}] does not exist")
        self.add_fee(module, fee_index, fee, caller)

    def get_module_fee(self, module: str, fee_index: int) -> int:
        return self._fees.get((module, fee_index), 0)

    def fee_recipient(self) -> str:
        return self._fee_recipient

    def edit_fee_recipient(self, new_fee_recipient: str, caller: str) -> None:
        self._require_owner(caller)
        self._fee_recipient = new_fee_recipient
        logger.info(f"Protocol fee recipient set to {new_fee_recipient}")

    def _require_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise build_error("AUT_ONLY_MANAGER", caller=caller)
