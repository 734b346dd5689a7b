"""
Issuance Engine - Position Helpers.

============================================================
PURPOSE
============================================================
Conversions between per-unit positions and total notionals,
and recomputation of a default position from actual balances.

Used by modules after they move tokens held by the basket
token, so the ledger reflects what the basket token really
holds.

============================================================
"""

import logging
from typing import Tuple

from .basket_token import BasketToken
from .precise_math import precise_div, precise_div_ceil, precise_mul


logger = logging.getLogger(__name__)


# ============================================================
# PREDICATES
# ============================================================

def has_default_position(basket: BasketToken, component: str) -> bool:
    return basket.get_default_position_unit(component) > 0


def has_external_position(basket: BasketToken, component: str) -> bool:
    return len(basket.get_external_position_modules(component)) > 0


def has_sufficient_default_units(basket: BasketToken, component: str, unit: int) -> bool:
    return basket.get_default_position_unit(component) >= unit


def has_sufficient_external_units(
    basket: BasketToken,
    component: str,
    module: str,
    unit: int,
) -> bool:
    return basket.get_external_position_unit(component, module) >= unit


# ============================================================
# CONVERSIONS
# ============================================================

def get_default_total_notional(supply: int, unit: int) -> int:
    """Total notional for a per-unit position, rounded down."""
    return precise_mul(supply, unit)


def get_default_position_unit(supply: int, total_notional: int) -> int:
    """Per-unit position for a total notional, rounded down."""
    return precise_div(total_notional, supply)


def get_default_tracked_balance(basket: BasketToken, component: str) -> int:
    """Balance the ledger says the basket token must hold."""
    return precise_mul(basket.total_supply(), basket.get_default_position_unit(component))


def calculate_default_edit_position_unit(
    supply: int,
    pre_total_notional: int,
    post_total_notional: int,
    pre_position_unit: int,
) -> int:
    """
    New default unit after the basket balance changed.

    Only the delta is applied to the previous unit so tokens
    airdropped to the basket token are not absorbed. A decrease is
    rounded up and an increase is rounded down, so the resulting
    unit never overstates the balance.
    """
    if pre_total_notional >= post_total_notional:
        unit_to_sub = precise_div_ceil(pre_total_notional - post_total_notional, supply)
        return pre_position_unit - unit_to_sub
    unit_to_add = precise_div(post_total_notional - pre_total_notional, supply)
    return pre_position_unit + unit_to_add


def calculate_and_edit_default_position(
    basket: BasketToken,
    component: str,
    supply: int,
    pre_total_notional: int,
    caller: str,
) -> Tuple[int, int, int]:
    """
    Recompute and write the default unit of a component.

    Args:
        basket: Basket token
        component: Component whose balance changed
        supply: Basket token supply the units are measured against
        pre_total_notional: Basket balance before the action
        caller: Initialized module performing the edit

    Returns:
        (current balance, previous unit, new unit)
    """
    current_balance = basket.component_balance(component)
    position_unit = basket.get_default_position_unit(component)

    if current_balance > 0:
        new_unit = calculate_default_edit_position_unit(
            supply, pre_total_notional, current_balance, position_unit,
        )
    else:
        new_unit = 0

    basket.edit_default_position(component, new_unit, caller)
    logger.debug(
        f"{basket.symbol}: default unit of {component} {position_unit} -> {new_unit}"
    )
    return current_balance, position_unit, new_unit
