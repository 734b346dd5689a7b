"""
Issuance Engine Modules - Allow-List Issuance Hook.

============================================================
RESPONSIBILITY
============================================================
Manager issuance hook that only lets allow-listed accounts
issue. Installed through DebtIssuanceModule.initialize.

============================================================
"""

import logging
from typing import Iterable, Optional, Set

from ..chain import Chain, Stateful


logger = logging.getLogger(__name__)


class IssuerNotAllowedError(PermissionError):
    """Issuer is not on the allow list."""

    def __init__(self, issuer: str):
        super().__init__(f"Issuer {issuer} is not allowed")
        self.issuer = issuer


class AllowListIssuanceHook(Stateful):
    """Blocks issuance by accounts outside the allow list."""

    _journal_fields = ("_allowed", "invocations")

    def __init__(
        self,
        chain: Chain,
        owner: str,
        allowed: Iterable[str] = (),
        address: Optional[str] = None,
    ):
        self.address = address or chain.new_address()
        self.owner = owner
        self._allowed: Set[str] = set(allowed)
        self.invocations = 0

    @classmethod
    def deploy(cls, chain: Chain, owner: str, allowed: Iterable[str] = ()) -> "AllowListIssuanceHook":
        return chain.deploy(cls(chain, owner, allowed))

    def allow(self, account: str, *, caller: str) -> None:
        self._require_owner(caller)
        self._allowed.add(account)
        logger.info(f"Allow list {self.address}: added {account}")

    def disallow(self, account: str, *, caller: str) -> None:
        self._require_owner(caller)
        self._allowed.discard(account)
        logger.info(f"Allow list {self.address}: removed {account}")

    def is_allowed(self, account: str) -> bool:
        return account in self._allowed

    def invoke_pre_issue_hook(self, basket_token: str, quantity: int, sender: str, to: str) -> None:
        self.invocations += 1
        if sender not in self._allowed:
            logger.warning(f"Issuance of {quantity} on {basket_token} blocked for {sender}")
            raise IssuerNotAllowedError(sender)

    def _require_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise PermissionError(f"{caller} is not the allow list owner")
