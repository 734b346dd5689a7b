"""
Issuance Engine - Transactional Execution Environment.

============================================================
PURPOSE
============================================================
In-memory stand-in for the host chain the engine runs on.

RESPONSIBILITIES:
- Address book: resolve deployed objects by address
- Atomic execution: snapshot every deployed stateful object on
  entry of the outermost transaction, restore all of them if
  anything raises
- Commit-time delivery: callbacks queued during a transaction
  (event emission) run only after the outermost commit

CRITICAL INVARIANT:
    "A call either completes or leaves no trace."

============================================================
"""

import copy
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Tuple

from .errors import build_error


logger = logging.getLogger(__name__)


# ============================================================
# STATEFUL MIXIN
# ============================================================

class Stateful:
    """
    Mixin for objects whose state is journaled by the Chain.

    Subclasses list the attributes to capture. Attributes in
    `_journal_fields` are deep-copied; attributes in
    `_shallow_journal_fields` are copied one level deep, for
    containers of immutable records or of object references
    whose identity must survive a restore.
    """

    _journal_fields: Tuple[str, ...] = ()
    _shallow_journal_fields: Tuple[str, ...] = ()

    def snapshot(self) -> Dict[str, Any]:
        """Capture journaled state."""
        state = {name: copy.deepcopy(getattr(self, name)) for name in self._journal_fields}
        for name in self._shallow_journal_fields:
            state[name] = copy.copy(getattr(self, name))
        return state

    def restore(self, state: Dict[str, Any]) -> None:
        """Restore journaled state captured by snapshot()."""
        for name, value in state.items():
            setattr(self, name, value)


# ============================================================
# CHAIN
# ============================================================

class Chain:
    """
    Address book and transaction journal.

    Objects are registered with deploy(). Only Stateful objects
    take part in rollback.
    """

    def __init__(self):
        self._contracts: Dict[str, Any] = {}
        self._address_nonce = 0
        self._depth = 0
        self._snapshots: List[Tuple[Stateful, Dict[str, Any]]] = []
        self._deployed_in_tx: List[str] = []
        self._pending_commit: List[Callable[[], None]] = []

    # --------------------------------------------------------
    # ADDRESSES
    # --------------------------------------------------------

    def new_address(self) -> str:
        """Allocate a fresh deterministic address."""
        self._address_nonce += 1
        return "0x" + format(self._address_nonce, "040x")

    def deploy(self, contract: Any) -> Any:
        """
        Register an object under its `address` attribute.

        Args:
            contract: Object exposing `address`

        Returns:
            The same object
        """
        address = contract.address
        if address in self._contracts:
            raise ValueError(f"Address {address} already deployed")
        self._contracts[address] = contract
        if self._depth > 0:
            self._deployed_in_tx.append(address)
        return contract

    def resolve(self, address: str) -> Any:
        """Get the object deployed at an address."""
        try:
            return self._contracts[address]
        except KeyError:
            raise build_error("LED_UNKNOWN_ADDRESS", address=address) from None

    def is_deployed(self, address: str) -> bool:
        return address in self._contracts

    # --------------------------------------------------------
    # TRANSACTIONS
    # --------------------------------------------------------

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextmanager
    def atomic(self, label: str = "") -> Iterator[None]:
        """
        Run a block atomically.

        Nested blocks join the outermost transaction; only the
        outermost block snapshots, restores and commits.

        Args:
            label: Name used in logs
        """
        outermost = self._depth == 0
        if outermost:
            self._snapshots = [
                (contract, contract.snapshot())
                for contract in self._contracts.values()
                if isinstance(contract, Stateful)
            ]
            self._deployed_in_tx = []
            self._pending_commit = []

        self._depth += 1
        try:
            yield
        except Exception as e:
            if outermost:
                self._rollback()
                logger.warning(f"Transaction reverted ({label or 'unnamed'}): {e}")
            raise
        finally:
            self._depth -= 1

        if outermost:
            callbacks = self._pending_commit
            self._snapshots = []
            self._deployed_in_tx = []
            self._pending_commit = []
            for callback in callbacks:
                callback()

    def on_commit(self, callback: Callable[[], None]) -> None:
        """
        Run a callback after the current transaction commits.

        Outside a transaction the callback runs immediately.
        """
        if self._depth == 0:
            callback()
        else:
            self._pending_commit.append(callback)

    def _rollback(self) -> None:
        for contract, state in self._snapshots:
            contract.restore(state)
        for address in self._deployed_in_tx:
            self._contracts.pop(address, None)
        self._snapshots = []
        self._deployed_in_tx = []
        self._pending_commit = []
