"""
Position Library Tests.

Default unit recomputation after balance changes, and the
ledger predicates used by modules.
"""

import pytest

from conftest import MANAGER, OUTSIDER

from issuance_engine import ether, position


@pytest.fixture
def module(basket, external_module):
    external_module.initialize(basket.address, caller=MANAGER)
    return external_module.address


class TestPredicates:
    """Tests for ledger predicates."""

    def test_default_position(self, basket, weth, dai):
        assert position.has_default_position(basket, weth.address)
        assert not position.has_default_position(basket, dai.address)

    def test_external_position(self, basket, weth, module):
        assert not position.has_external_position(basket, weth.address)
        basket.edit_external_position(weth.address, module, 5, b"", caller=module)
        assert position.has_external_position(basket, weth.address)
        assert position.has_sufficient_external_units(basket, weth.address, module, 5)
        assert not position.has_sufficient_external_units(basket, weth.address, module, 6)

    def test_sufficient_default_units(self, basket, weth):
        assert position.has_sufficient_default_units(basket, weth.address, ether(1))
        assert not position.has_sufficient_default_units(basket, weth.address, ether(1) + 1)


class TestConversions:
    """Tests for unit / notional conversions."""

    def test_total_notional_rounds_down(self):
        assert position.get_default_total_notional(3, ether(1) // 3) == 0
        assert position.get_default_total_notional(ether(3), ether(2)) == ether(6)

    def test_position_unit_rounds_down(self):
        assert position.get_default_position_unit(ether(3), ether(1)) == ether(1) // 3

    def test_tracked_balance(self, basket, weth, module):
        basket.mint(OUTSIDER, ether(2), caller=module)
        assert position.get_default_tracked_balance(basket, weth.address) == ether(2)


class TestEditPositionUnit:
    """Tests for calculate_default_edit_position_unit."""

    def test_decrease_rounds_unit_down(self):
        # 1 wei leaves 3 units of supply: the unit drops by ceil(1e18 / 3)
        new_unit = position.calculate_default_edit_position_unit(
            supply=3, pre_total_notional=10, post_total_notional=9, pre_position_unit=ether(1),
        )
        assert new_unit == ether(1) - (ether(1) // 3 + 1)

    def test_increase_rounds_unit_down(self):
        new_unit = position.calculate_default_edit_position_unit(
            supply=3, pre_total_notional=9, post_total_notional=10, pre_position_unit=ether(1),
        )
        assert new_unit == ether(1) + ether(1) // 3

    def test_unchanged_balance_keeps_unit(self):
        assert position.calculate_default_edit_position_unit(
            supply=ether(5), pre_total_notional=ether(7), post_total_notional=ether(7),
            pre_position_unit=ether("1.4"),
        ) == ether("1.4")

    def test_airdrop_not_absorbed(self):
        # 1.5 held against a 1.0 ledger; 0.5 leaves: only the delta moves the unit
        new_unit = position.calculate_default_edit_position_unit(
            supply=ether(1), pre_total_notional=ether("1.5"), post_total_notional=ether(1),
            pre_position_unit=ether(1),
        )
        assert new_unit == ether("0.5")


class TestCalculateAndEdit:
    """Tests for calculate_and_edit_default_position."""

    def test_edits_after_outflow(self, basket, weth, module):
        basket.mint(OUTSIDER, ether(1), caller=module)
        weth.mint(basket.address, ether(1))

        pre = basket.component_balance(weth.address)
        basket.invoke_transfer(weth.address, OUTSIDER, ether("0.25"), caller=module)
        balance, old_unit, new_unit = position.calculate_and_edit_default_position(
            basket, weth.address, basket.total_supply(), pre, caller=module,
        )

        assert balance == ether("0.75")
        assert old_unit == ether(1)
        assert new_unit == ether("0.75")
        assert basket.get_default_position_unit(weth.address) == ether("0.75")

    def test_empty_balance_removes_component(self, basket, weth, module):
        basket.mint(OUTSIDER, ether(1), caller=module)
        weth.mint(basket.address, ether(1))

        basket.invoke_transfer(weth.address, OUTSIDER, ether(1), caller=module)
        position.calculate_and_edit_default_position(
            basket, weth.address, basket.total_supply(), ether(1), caller=module,
        )
        assert not basket.is_component(weth.address)
