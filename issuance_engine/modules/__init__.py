"""
Issuance Engine Modules.

Basket token modules that cooperate with the issuance engine:

- base: Shared module plumbing
- debt_module: Debt positions, registered as an issuance hook
- external_position_module: Positive external equity positions
- allow_list_hook: Manager pre-issue hook
"""

from .base import ModuleBase
from .debt_module import DebtModule
from .external_position_module import ExternalPositionModule
from .allow_list_hook import AllowListIssuanceHook, IssuerNotAllowedError


__all__ = [
    "ModuleBase",
    "DebtModule",
    "ExternalPositionModule",
    "AllowListIssuanceHook",
    "IssuerNotAllowedError",
]
