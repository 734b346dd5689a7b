"""
Tests for Position Reconciliation.

============================================================
PURPOSE
============================================================
Ledger against balance checks, run after calls or on demand.

TEST CATEGORIES:
- Consistent ledgers
- Excess balances (airdrops)
- Undercollateralized components
- Orphaned external positions
- Enforcement inside engine calls

============================================================
"""

import pytest

from conftest import ISSUER, MANAGER

from issuance_engine import (
    DebtIssuanceModule,
    IssuanceEngineConfig,
    InvariantViolationError,
    MismatchSeverity,
    MismatchType,
    ModuleBase,
    PositionReconciler,
    ReconciliationConfig,
    ValidationConfig,
    create_basket_token,
    ether,
)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def issued_basket(initialized_basket, engine, funded_issuer):
    """Initialized basket token with 2 units outstanding."""
    engine.issue(initialized_basket.address, ether(2), ISSUER, caller=ISSUER)
    return initialized_basket


@pytest.fixture
def reconciler():
    return PositionReconciler()


# ============================================================
# RECONCILER TESTS
# ============================================================

class TestPositionReconciler:
    """Tests for PositionReconciler."""

    def test_consistent_ledger(self, issued_basket, reconciler):
        result = reconciler.reconcile(issued_basket)
        assert result.is_consistent
        assert result.mismatches == []
        assert result.components_checked == 1
        assert result.total_supply == ether(2)

    def test_airdrop_is_informational(self, issued_basket, reconciler, weth):
        weth.mint(issued_basket.address, ether("0.5"))

        result = reconciler.reconcile(issued_basket)

        assert result.is_consistent
        [mismatch] = result.mismatches
        assert mismatch.mismatch_type is MismatchType.EXCESS_BALANCE
        assert mismatch.severity is MismatchSeverity.INFO
        assert mismatch.expected_value == ether(2)
        assert mismatch.actual_value == ether("2.5")

    def test_shortfall_is_critical(self, issued_basket, reconciler, weth):
        weth.burn(issued_basket.address, 1)

        result = reconciler.reconcile(issued_basket)

        assert result.has_critical
        assert not result.is_consistent
        assert result.mismatches[0].mismatch_type is MismatchType.UNDERCOLLATERALIZED

    def test_enforce_raises_on_shortfall(self, issued_basket, reconciler, weth):
        weth.burn(issued_basket.address, 1)
        with pytest.raises(InvariantViolationError, match="Position ledger does not match component balances"):
            reconciler.enforce(issued_basket)

    def test_enforce_can_report_only(self, issued_basket, weth):
        reconciler = PositionReconciler(ReconciliationConfig(raise_on_mismatch=False))
        weth.burn(issued_basket.address, 1)
        assert reconciler.enforce(issued_basket).has_critical

    def test_tolerance(self, issued_basket, weth):
        reconciler = PositionReconciler(ReconciliationConfig(tolerance=1))
        weth.burn(issued_basket.address, 1)
        assert reconciler.reconcile(issued_basket).is_consistent

        weth.burn(issued_basket.address, 1)
        assert not reconciler.reconcile(issued_basket).is_consistent

    def test_orphaned_external_position(self, chain, controller, issued_basket, reconciler, weth):
        module = chain.deploy(ModuleBase(chain, controller))
        controller.add_module(module.address)
        issued_basket.add_module(module.address, caller=MANAGER)
        issued_basket.initialize_module(caller=module.address)
        issued_basket.edit_external_position(weth.address, module.address, 5, b"", caller=module.address)

        # The base removal hook leaves its positions behind
        issued_basket.remove_module(module.address, caller=MANAGER)
        result = reconciler.reconcile(issued_basket)

        assert result.is_consistent
        [mismatch] = result.mismatches
        assert mismatch.mismatch_type is MismatchType.ORPHANED_EXTERNAL_POSITION
        assert mismatch.severity is MismatchSeverity.WARNING
        assert mismatch.module == module.address

    def test_debt_is_not_held_by_the_basket(self, leveraged_basket, engine, funded_issuer, reconciler):
        engine.issue(leveraged_basket.address, ether(1), ISSUER, caller=ISSUER)
        result = reconciler.reconcile(leveraged_basket)
        assert result.components_checked == 2
        assert result.mismatches == []

    def test_history(self, issued_basket, reconciler):
        for _ in range(3):
            reconciler.reconcile(issued_basket)
        history = reconciler.get_history(limit=2)
        assert [result.run_id for result in history] == ["REC_000002", "REC_000003"]
        assert reconciler.get_last_result() is history[-1]


# ============================================================
# ENGINE ENFORCEMENT TESTS
# ============================================================

class TestEngineEnforcement:
    """Reconciliation run by the engine after each call."""

    def test_runs_after_each_call(self, issued_basket, engine):
        result = engine.reconciler.get_last_result()
        assert result.basket_token == issued_basket.address
        assert result.total_supply == ether(2)

    def test_disabled_by_default(self, chain, controller):
        engine = DebtIssuanceModule(chain, controller)
        assert not engine.config.reconciliation.reconcile_after_call

    def test_catches_shortfall_when_transfer_checks_are_off(self, chain, controller, weth):
        engine = DebtIssuanceModule.deploy(
            chain,
            controller,
            config=IssuanceEngineConfig(
                validation=ValidationConfig(validate_collateralization=False),
                reconciliation=ReconciliationConfig(reconcile_after_call=True),
            ),
        )
        controller.add_module(engine.address)
        basket = create_basket_token(chain, controller, MANAGER, [weth.address], [ether(1)], [engine.address])
        engine.initialize(basket.address, 0, 0, 0, MANAGER, caller=MANAGER)
        weth.mint(ISSUER, ether(10))
        weth.approve(ISSUER, engine.address, ether(10))
        engine.issue(basket.address, ether(2), ISSUER, caller=ISSUER)

        weth.burn(basket.address, 1)
        with pytest.raises(InvariantViolationError):
            engine.redeem(basket.address, ether(1), ISSUER, caller=ISSUER)

        assert basket.balance_of(ISSUER) == ether(2)
        assert weth.balance_of(ISSUER) == ether(8)
