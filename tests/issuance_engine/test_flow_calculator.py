"""
Flow Calculator Tests.

============================================================
PURPOSE
============================================================
Fee split and component flow computation.

TEST CATEGORIES:
- Fees: total fee rounding and protocol / manager split
- Units: equity / debt aggregation from the ledger
- Flows: rounding direction per flow

============================================================
"""

import pytest

from conftest import FEE_RECIPIENT, MANAGER, OWNER

from issuance_engine import (
    PRECISE_UNIT,
    FlowDirection,
    IssuanceFlows,
    PreconditionError,
    create_basket_token,
    ether,
    fee_adjusted_quantity,
)


THIRD = PRECISE_UNIT // 3


def _initialize(engine, basket, issue_fee=0, redeem_fee=0, max_fee=None):
    engine.initialize(
        basket.address,
        max_manager_fee=max_fee if max_fee is not None else ether("0.1"),
        manager_issue_fee=issue_fee,
        manager_redeem_fee=redeem_fee,
        fee_recipient=FEE_RECIPIENT,
        caller=MANAGER,
    )


@pytest.fixture
def third_basket(chain, controller, weth, engine):
    """Basket token holding one third of a WETH per unit."""
    basket = create_basket_token(
        chain, controller, MANAGER, [weth.address], [THIRD], [engine.address], symbol="THIRD",
    )
    _initialize(engine, basket)
    return basket


# ============================================================
# FEE TESTS
# ============================================================

class TestFees:
    """Tests for calculate_total_fees."""

    def test_issue_fee(self, basket, engine):
        _initialize(engine, basket, issue_fee=ether("0.005"))
        fees = engine.calculate_total_fees(basket.address, ether(1), True)
        assert fees.total_quantity == ether("1.005")
        assert fees.manager_fee == ether("0.005")
        assert fees.protocol_fee == 0

    def test_redeem_fee_reduces_quantity(self, basket, engine):
        _initialize(engine, basket, redeem_fee=ether("0.01"))
        fees = engine.calculate_total_fees(basket.address, ether(1), False)
        assert fees.total_quantity == ether("0.99")
        assert fees.total_fees == ether("0.01")

    def test_total_fee_rounds_up(self, basket, engine):
        _initialize(engine, basket, issue_fee=ether("0.005"))
        fees = engine.calculate_total_fees(basket.address, 1, True)
        assert fees.total_fees == 1
        assert fees.total_quantity == 2

    def test_protocol_split_rounds_down(self, basket, engine, controller):
        controller.add_fee(engine.address, 0, ether("0.3"), caller=OWNER)
        _initialize(engine, basket, issue_fee=ether("0.01"))

        fees = engine.calculate_total_fees(basket.address, 1000, True)
        # total = 10, protocol = floor(3.0) = 3
        assert fees.protocol_fee == 3
        assert fees.manager_fee == 7

        fees = engine.calculate_total_fees(basket.address, 1100, True)
        # total = 11, protocol = floor(3.3) = 3
        assert fees.protocol_fee == 3
        assert fees.manager_fee == 8

    def test_zero_fee(self, initialized_basket, engine):
        fees = engine.calculate_total_fees(initialized_basket.address, ether(7), True)
        assert fees.total_quantity == ether(7)
        assert fees.total_fees == 0

    def test_closed_form_matches(self, basket, engine):
        _initialize(engine, basket, issue_fee=ether("0.0137"), redeem_fee=ether("0.0137"))
        for quantity in (1, 3, 999, ether(1) + 7, ether(12345) + 1):
            issue = engine.calculate_total_fees(basket.address, quantity, True)
            redeem = engine.calculate_total_fees(basket.address, quantity, False)
            assert issue.total_quantity == fee_adjusted_quantity(quantity, ether("0.0137"), True)
            assert redeem.total_quantity == fee_adjusted_quantity(quantity, ether("0.0137"), False)


# ============================================================
# UNIT TESTS
# ============================================================

class TestTotalIssuanceUnits:
    """Tests for get_total_issuance_units."""

    def test_equity_includes_positive_external_units(self, initialized_basket, engine, external_module, weth):
        external_module.initialize(initialized_basket.address, caller=MANAGER)
        external_module.add_external_position(initialized_basket.address, weth.address, ether("0.5"), caller=MANAGER)

        units = engine.calculator.get_total_issuance_units(initialized_basket)
        assert units.components == (weth.address,)
        assert units.equity_flows == (ether("1.5"),)
        assert units.debt_flows == (0,)

    def test_debt_from_negative_external_units(self, leveraged_basket, engine, weth, dai):
        components, equity, debt = engine.calculator.get_total_issuance_units(leveraged_basket)
        assert components == (weth.address, dai.address)
        assert equity == (ether(1), 0)
        assert debt == (0, ether(100))


# ============================================================
# FLOW TESTS
# ============================================================

class TestFlows:
    """Tests for issuance / redemption flows."""

    def test_issuance_equity_rounds_up(self, third_basket, engine, weth):
        flows = engine.get_required_component_issuance_units(third_basket.address, 2)
        assert flows.flow_for(weth.address).equity == 1

    def test_redemption_equity_rounds_down(self, third_basket, engine, weth):
        flows = engine.get_required_component_redemption_units(third_basket.address, 2)
        assert flows.flow_for(weth.address).equity == 0

    def test_debt_rounds_up_both_ways(self, leveraged_basket, engine, debt_module, dai):
        debt_module.add_debt(leveraged_basket.address, dai.address, ether(100) + 1, caller=MANAGER)
        quantity = PRECISE_UNIT // 2 + 1

        issue = engine.get_required_component_issuance_units(leveraged_basket.address, quantity)
        redeem = engine.get_required_component_redemption_units(leveraged_basket.address, quantity)

        expected = -(-quantity * (ether(100) + 1) // PRECISE_UNIT)
        assert issue.flow_for(dai.address).debt == expected
        assert redeem.flow_for(dai.address).debt == expected

    def test_worked_issuance_example(self, basket, engine, debt_module, weth, dai):
        _initialize(engine, basket, issue_fee=ether("0.005"))
        debt_module.initialize(basket.address, engine.address, caller=MANAGER)
        debt_module.add_debt(basket.address, dai.address, ether(100), caller=MANAGER)

        flows = engine.get_required_component_issuance_units(basket.address, ether(1))
        assert flows.flow_for(weth.address).equity == ether("1.005")
        assert flows.flow_for(dai.address).debt == ether("100.5")

    @pytest.mark.parametrize("quantity", [1, 7, PRECISE_UNIT // 3, ether(1), ether(25)])
    def test_flows_scale_linearly(self, leveraged_basket, engine, weth, dai, quantity):
        for view in (
            engine.get_required_component_issuance_units,
            engine.get_required_component_redemption_units,
        ):
            single = view(leveraged_basket.address, quantity)
            double = view(leveraged_basket.address, 2 * quantity)
            assert double.components == single.components
            assert double.equity_flows == tuple(2 * flow for flow in single.equity_flows)
            assert double.debt_flows == tuple(2 * flow for flow in single.debt_flows)
            assert single.flow_for(dai.address).debt == 100 * quantity

    def test_flows_are_read_only(self, leveraged_basket, engine, weth):
        before = leveraged_basket.get_total_component_unit(weth.address)
        engine.get_required_component_issuance_units(leveraged_basket.address, ether(3))
        engine.get_required_component_redemption_units(leveraged_basket.address, ether(3))
        assert leveraged_basket.get_total_component_unit(weth.address) == before
        assert leveraged_basket.total_supply() == 0

    def test_scale_units_direction(self, third_basket, engine):
        units = IssuanceFlows(components=("c",), equity_flows=(THIRD,), debt_flows=(THIRD,))
        issue = engine.calculator.scale_units(units, 2, FlowDirection.ISSUE)
        redeem = engine.calculator.scale_units(units, 2, FlowDirection.REDEEM)
        assert issue.equity_flows == (1,)
        assert redeem.equity_flows == (0,)
        assert issue.debt_flows == redeem.debt_flows == (1,)

    def test_unknown_basket(self, engine):
        with pytest.raises(PreconditionError):
            engine.get_required_component_issuance_units("0x" + "99" * 20, 1)
