"""
Issuance Engine - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the Issuance Engine.

CRITICAL CONSTRAINTS:
- Fees are bounded by 100%
- Collateralization is checked on every token move
- Deterministic behavior

Values can be loaded from the environment (ISSUANCE_ prefix),
with a .env file picked up by python-dotenv.

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .precise_math import PRECISE_UNIT


ENV_PREFIX = "ISSUANCE_"


def _env(name: str) -> Optional[str]:
    return os.getenv(ENV_PREFIX + name)


def _env_bool(name: str, default: bool) -> bool:
    value = _env(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = _env(name)
    return int(value) if value is not None else default


# ============================================================
# VALIDATION CONFIGURATION
# ============================================================

@dataclass
class ValidationConfig:
    """
    Validation configuration.

    SAFETY: Collateralization checks guard against tokens whose
    transfers deliver less than requested.
    """

    validate_collateralization: bool = True
    """Check component balances against the ledger after each transfer."""

    max_fee_ceiling: int = PRECISE_UNIT
    """Upper bound for max_manager_fee (1e18 = 100%)."""


# ============================================================
# PROTOCOL FEE CONFIGURATION
# ============================================================

@dataclass
class ProtocolFeeConfig:
    """Where the protocol fee split is read from on the controller."""

    split_index: int = 0
    """Fee index passed to get_module_fee."""


# ============================================================
# RECONCILIATION CONFIGURATION
# ============================================================

@dataclass
class ReconciliationConfig:
    """Ledger reconciliation configuration."""

    reconcile_after_call: bool = False
    """Run the reconciler after every issuance and redemption."""

    raise_on_mismatch: bool = True
    """Revert the call on a critical mismatch."""

    tolerance: int = 0
    """Balance shortfall (in token base units) tolerated before flagging."""


# ============================================================
# PERSISTENCE CONFIGURATION
# ============================================================

@dataclass
class PersistenceConfig:
    """Event persistence configuration."""

    database_url: str = "sqlite+aiosqlite:///./issuance.db"
    """SQLAlchemy async database URL."""

    echo: bool = False
    """Echo SQL statements."""

    persist_events: bool = True
    """Whether committed events are written to the database."""


# ============================================================
# MASTER CONFIGURATION
# ============================================================

@dataclass
class IssuanceEngineConfig:
    """
    Master configuration for the Issuance Engine.
    """

    validation: ValidationConfig = field(default_factory=ValidationConfig)
    """Validation configuration."""

    protocol_fee: ProtocolFeeConfig = field(default_factory=ProtocolFeeConfig)
    """Protocol fee configuration."""

    reconciliation: ReconciliationConfig = field(default_factory=ReconciliationConfig)
    """Reconciliation configuration."""

    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    """Persistence configuration."""

    log_flows: bool = True
    """Log computed flows at DEBUG level."""

    @classmethod
    def for_testing(cls) -> "IssuanceEngineConfig":
        """Get configuration for testing."""
        return cls(
            reconciliation=ReconciliationConfig(reconcile_after_call=True),
            persistence=PersistenceConfig(database_url="sqlite+aiosqlite:///:memory:"),
        )

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "IssuanceEngineConfig":
        """
        Get configuration from ISSUANCE_* environment variables.

        Args:
            env_file: .env file to load first (searched for if omitted)
        """
        load_dotenv(env_file)
        defaults = cls()
        return cls(
            validation=ValidationConfig(
                validate_collateralization=_env_bool(
                    "VALIDATE_COLLATERALIZATION",
                    defaults.validation.validate_collateralization,
                ),
                max_fee_ceiling=_env_int("MAX_FEE_CEILING", defaults.validation.max_fee_ceiling),
            ),
            protocol_fee=ProtocolFeeConfig(
                split_index=_env_int("PROTOCOL_FEE_INDEX", defaults.protocol_fee.split_index),
            ),
            reconciliation=ReconciliationConfig(
                reconcile_after_call=_env_bool(
                    "RECONCILE_AFTER_CALL",
                    defaults.reconciliation.reconcile_after_call,
                ),
                raise_on_mismatch=_env_bool(
                    "RAISE_ON_MISMATCH",
                    defaults.reconciliation.raise_on_mismatch,
                ),
                tolerance=_env_int("RECONCILE_TOLERANCE", defaults.reconciliation.tolerance),
            ),
            persistence=PersistenceConfig(
                database_url=_env("DATABASE_URL") or defaults.persistence.database_url,
                echo=_env_bool("DB_ECHO", defaults.persistence.echo),
                persist_events=_env_bool("PERSIST_EVENTS", defaults.persistence.persist_events),
            ),
            log_flows=_env_bool("LOG_FLOWS", defaults.log_flows),
        )
