"""
Issuance Engine - Component Tokens.

============================================================
PURPOSE
============================================================
In-memory fungible token with ERC20 transfer semantics.

Components, debt assets and any other token moved by the
engine are ComponentTokens. Failure messages match the
standard ERC20 revert strings and are propagated unmodified
by the engine.

============================================================
"""

import logging
from typing import Dict, Tuple

from .chain import Stateful
from .errors import build_error


logger = logging.getLogger(__name__)


class ComponentToken(Stateful):
    """Fungible token with balances and allowances."""

    _journal_fields = ("_balances", "_allowances", "_total_supply")

    def __init__(self, address: str, symbol: str, decimals: int = 18):
        self.address = address
        self.symbol = symbol
        self.decimals = decimals
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._total_supply = 0

    def __repr__(self) -> str:
        return f"ComponentToken({self.symbol}@{self.address})"

    # --------------------------------------------------------
    # VIEWS
    # --------------------------------------------------------

    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, holder: str) -> int:
        return self._balances.get(holder, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    # --------------------------------------------------------
    # SUPPLY
    # --------------------------------------------------------

    def mint(self, to: str, amount: int) -> None:
        """Create tokens (faucet)."""
        self._require_amount(amount)
        self._balances[to] = self.balance_of(to) + amount
        self._total_supply += amount

    def burn(self, holder: str, amount: int) -> None:
        self._require_amount(amount)
        if self.balance_of(holder) < amount:
            raise build_error("TOK_BURN_EXCEEDS_BALANCE", token=self.symbol, holder=holder)
        self._balances[holder] -= amount
        self._total_supply -= amount

    # --------------------------------------------------------
    # TRANSFERS
    # --------------------------------------------------------

    def approve(self, owner: str, spender: str, amount: int) -> None:
        self._require_amount(amount)
        self._allowances[(owner, spender)] = amount

    def transfer(self, sender: str, to: str, amount: int) -> None:
        """Move tokens held by `sender`."""
        self._require_amount(amount)
        balance = self.balance_of(sender)
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

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> None:
        """Move tokens on behalf of `owner` using `spender`'s allowance."""
        self._require_amount(amount)
        allowed = self.allowance(owner, spender)
        if allowed < amount:
            raise build_error(
                "TOK_INSUFFICIENT_ALLOWANCE",
                token=self.symbol,
                owner=owner,
                spender=spender,
                allowance=allowed,
                amount=amount,
            )
        self.transfer(owner, to, amount)
        self._allowances[(owner, spender)] = allowed - amount

    @staticmethod
    def _require_amount(amount: int) -> None:
        if amount < 0:
            raise build_error("TOK_NEGATIVE_AMOUNT", amount=amount)


class RoundingErrorToken(ComponentToken):
    """
    Token whose reported balances are off by a fixed error.

    Used to exercise the collateralization checks against tokens
    that round balances (rebasing and share-based tokens).
    """

    _journal_fields = ComponentToken._journal_fields + ("_error",)

    def __init__(self, address: str, symbol: str, decimals: int = 18):
        super().__init__(address, symbol, decimals)
        self._error = 0

    def set_error(self, error: int) -> None:
        self._error = error

    def balance_of(self, holder: str) -> int:
        balance = super().balance_of(holder)
        if balance == 0:
            return 0
        return max(balance + self._error, 0)

    def transfer(self, sender: str, to: str, amount: int) -> None:
        # Transfers act on the true balance
        self._require_amount(amount)
        balance = self._balances.get(sender, 0)
        if balance < amount:
            raise build_error(
                "TOK_INSUFFICIENT_BALANCE",
                token=self.symbol,
                holder=sender,
                balance=balance,
                amount=amount,
            )
        self._balances[sender] = balance - amount
        self._balances[to] = self._balances.get(to, 0) + amount
