"""
Issuance Engine - Fee Settings Store.

============================================================
PURPOSE
============================================================
Holds one IssuanceSettings record per basket token.

Records are immutable; every update swaps in a new record with
dataclasses.replace. max_manager_fee is carried over unchanged
by every update, so it is fixed for the life of the record.

Bounds are checked by the PreconditionValidator before the
store is touched.

============================================================
"""

import logging
from dataclasses import replace
from typing import Dict, Optional

from .chain import Stateful
from .types import IssuanceSettings


logger = logging.getLogger(__name__)


class IssuanceSettingsStore(Stateful):
    """Per basket token IssuanceSettings."""

    # Frozen records; manager hooks are kept by reference
    _shallow_journal_fields = ("_settings",)

    def __init__(self):
        self._settings: Dict[str, IssuanceSettings] = {}

    def get(self, basket_token: str) -> IssuanceSettings:
        """Settings for a basket token (zero values if never initialized)."""
        return self._settings.get(basket_token, IssuanceSettings())

    def initialize(
        self,
        basket_token: str,
        max_manager_fee: int,
        manager_issue_fee: int,
        manager_redeem_fee: int,
        fee_recipient: str,
        manager_issuance_hook: Optional[object] = None,
    ) -> IssuanceSettings:
        settings = IssuanceSettings(
            max_manager_fee=max_manager_fee,
            manager_issue_fee=manager_issue_fee,
            manager_redeem_fee=manager_redeem_fee,
            fee_recipient=fee_recipient,
            manager_issuance_hook=manager_issuance_hook,
        )
        self._settings[basket_token] = settings
        logger.info(
            f"Issuance settings initialized for {basket_token}: "
            f"max={max_manager_fee} issue={manager_issue_fee} redeem={manager_redeem_fee}"
        )
        return settings

    def set_issue_fee(self, basket_token: str, fee: int) -> IssuanceSettings:
        return self._update(basket_token, manager_issue_fee=fee)

    def set_redeem_fee(self, basket_token: str, fee: int) -> IssuanceSettings:
        return self._update(basket_token, manager_redeem_fee=fee)

    def set_fee_recipient(self, basket_token: str, fee_recipient: str) -> IssuanceSettings:
        return self._update(basket_token, fee_recipient=fee_recipient)

    def reset(self, basket_token: str) -> None:
        """Return a basket token to its pre-initialization settings."""
        self._settings.pop(basket_token, None)
        logger.info(f"Issuance settings cleared for {basket_token}")

    def _update(self, basket_token: str, **changes) -> IssuanceSettings:
        settings = replace(self.get(basket_token), **changes)
        self._settings[basket_token] = settings
        return settings
