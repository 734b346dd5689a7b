"""
Issuance Engine - ORM Models.

============================================================
PURPOSE
============================================================
SQLAlchemy ORM models for issuance audit persistence.

TABLES:
- issuance_events: Issuance and redemption records
- issuance_fee_updates: Fee setting change records
- issuance_settings: Latest settings per basket token
- issuance_reconciliation_logs: Ledger reconciliation runs

AUDIT REQUIREMENTS:
- Every committed issuance and redemption is persisted
- Every fee setting change is persisted
- Token amounts are stored as decimal strings (uint256 range)

============================================================
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    Boolean,
    Text,
    Index,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# uint256 fits in 78 decimal digits
AMOUNT_LENGTH = 78
ADDRESS_LENGTH = 42


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# BASE
# ============================================================

class Base(DeclarativeBase):
    """Base class for ORM models."""
    pass


# ============================================================
# ISSUANCE EVENT MODEL
# ============================================================

class IssuanceEventModel(Base):
    """
    Persisted issuance or redemption.

    One row per committed BasketTokenIssued / BasketTokenRedeemed.
    """

    __tablename__ = "issuance_events"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identifiers
    event_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    basket_token: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False, index=True)

    # Parties
    account: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False)
    to: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False)
    hook_contract: Mapped[Optional[str]] = mapped_column(String(ADDRESS_LENGTH))

    # Amounts
    quantity: Mapped[str] = mapped_column(String(AMOUNT_LENGTH), nullable=False)
    manager_fee: Mapped[str] = mapped_column(String(AMOUNT_LENGTH), default="0")
    protocol_fee: Mapped[str] = mapped_column(String(AMOUNT_LENGTH), default="0")

    # Timestamps
    emitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    __table_args__ = (
        Index("ix_issuance_events_basket_emitted", "basket_token", "emitted_at"),
    )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "basket_token": self.basket_token,
            "account": self.account,
            "to": self.to,
            "hook_contract": self.hook_contract,
            "quantity": int(self.quantity),
            "manager_fee": int(self.manager_fee),
            "protocol_fee": int(self.protocol_fee),
            "emitted_at": self.emitted_at.isoformat() if self.emitted_at else None,
        }


# ============================================================
# FEE UPDATE MODEL
# ============================================================

class FeeUpdateEventModel(Base):
    """Fee recipient, issue fee or redeem fee change."""

    __tablename__ = "issuance_fee_updates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    basket_token: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False, index=True)

    # Exactly one of the two is set
    new_fee: Mapped[Optional[str]] = mapped_column(String(AMOUNT_LENGTH))
    new_fee_recipient: Mapped[Optional[str]] = mapped_column(String(ADDRESS_LENGTH))

    emitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "basket_token": self.basket_token,
            "new_fee": int(self.new_fee) if self.new_fee is not None else None,
            "new_fee_recipient": self.new_fee_recipient,
            "emitted_at": self.emitted_at.isoformat() if self.emitted_at else None,
        }


# ============================================================
# SETTINGS MODEL
# ============================================================

class IssuanceSettingsModel(Base):
    """Latest issuance settings snapshot of a basket token."""

    __tablename__ = "issuance_settings"

    basket_token: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), primary_key=True)
    max_manager_fee: Mapped[str] = mapped_column(String(AMOUNT_LENGTH), nullable=False)
    manager_issue_fee: Mapped[str] = mapped_column(String(AMOUNT_LENGTH), nullable=False)
    manager_redeem_fee: Mapped[str] = mapped_column(String(AMOUNT_LENGTH), nullable=False)
    fee_recipient: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False)
    manager_issuance_hook: Mapped[Optional[str]] = mapped_column(String(ADDRESS_LENGTH))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now,
    )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "basket_token": self.basket_token,
            "max_manager_fee": int(self.max_manager_fee),
            "manager_issue_fee": int(self.manager_issue_fee),
            "manager_redeem_fee": int(self.manager_redeem_fee),
            "fee_recipient": self.fee_recipient,
            "manager_issuance_hook": self.manager_issuance_hook,
        }


# ============================================================
# RECONCILIATION LOG MODEL
# ============================================================

class ReconciliationLogModel(Base):
    """
    Reconciliation run log.
    """

    __tablename__ = "issuance_reconciliation_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    basket_token: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False, index=True)
    total_supply: Mapped[str] = mapped_column(String(AMOUNT_LENGTH), nullable=False)

    # Results
    components_checked: Mapped[int] = mapped_column(Integer, default=0)
    mismatches_found: Mapped[int] = mapped_column(Integer, default=0)
    is_consistent: Mapped[bool] = mapped_column(Boolean, default=True)
    has_critical: Mapped[bool] = mapped_column(Boolean, default=False)
    mismatches_json: Mapped[Optional[str]] = mapped_column(Text)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "run_id": self.run_id,
            "basket_token": self.basket_token,
            "total_supply": int(self.total_supply),
            "components_checked": self.components_checked,
            "mismatches_found": self.mismatches_found,
            "is_consistent": self.is_consistent,
            "has_critical": self.has_critical,
            "started_at": self.started_at.isoformat() if self.started_at else None,
        }
