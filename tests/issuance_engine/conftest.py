"""
Shared fixtures for Issuance Engine tests.

Builds a basket token with one equity component (WETH, 1:1),
a debt asset (DAI) lent by a DebtModule, an external equity
module, and an engine initialized with zero fees.
"""

import pytest

from issuance_engine import (
    Chain,
    ComponentToken,
    Controller,
    DebtIssuanceModule,
    DebtModule,
    ExternalPositionModule,
    IssuanceEngineConfig,
    create_basket_token,
    ether,
)


OWNER = "0x" + "0a" * 20
MANAGER = "0x" + "0b" * 20
ISSUER = "0x" + "0c" * 20
RECIPIENT = "0x" + "0d" * 20
FEE_RECIPIENT = "0x" + "0e" * 20
PROTOCOL_FEE_RECIPIENT = "0x" + "0f" * 20
OUTSIDER = "0x" + "1a" * 20

INFINITE = 2 ** 256 - 1


@pytest.fixture
def chain():
    return Chain()


@pytest.fixture
def controller(chain):
    return Controller(chain.new_address(), owner=OWNER, fee_recipient=PROTOCOL_FEE_RECIPIENT)


@pytest.fixture
def weth(chain):
    return chain.deploy(ComponentToken(chain.new_address(), "WETH"))


@pytest.fixture
def dai(chain):
    return chain.deploy(ComponentToken(chain.new_address(), "DAI"))


@pytest.fixture
def engine(chain, controller):
    module = DebtIssuanceModule.deploy(chain, controller, config=IssuanceEngineConfig.for_testing())
    controller.add_module(module.address)
    return module


@pytest.fixture
def debt_module(chain, controller):
    module = DebtModule.deploy(chain, controller)
    controller.add_module(module.address)
    return module


@pytest.fixture
def external_module(chain, controller):
    module = ExternalPositionModule.deploy(chain, controller)
    controller.add_module(module.address)
    return module


@pytest.fixture
def basket(chain, controller, weth, engine, debt_module, external_module):
    """Basket token with the engine and both modules pending."""
    return create_basket_token(
        chain,
        controller,
        MANAGER,
        components=[weth.address],
        units=[ether(1)],
        modules=[engine.address, debt_module.address, external_module.address],
        name="Leveraged ETH",
        symbol="LETH",
    )


@pytest.fixture
def initialized_basket(basket, engine):
    """Basket token with the engine initialized at zero fees."""
    engine.initialize(
        basket.address,
        max_manager_fee=ether("0.02"),
        manager_issue_fee=0,
        manager_redeem_fee=0,
        fee_recipient=FEE_RECIPIENT,
        caller=MANAGER,
    )
    return basket


@pytest.fixture
def funded_issuer(weth, dai, engine):
    """ISSUER holding WETH and DAI with unlimited approvals to the engine."""
    weth.mint(ISSUER, ether(1000))
    dai.mint(ISSUER, ether(100000))
    weth.approve(ISSUER, engine.address, INFINITE)
    dai.approve(ISSUER, engine.address, INFINITE)
    return ISSUER


@pytest.fixture
def leveraged_basket(initialized_basket, engine, debt_module, dai):
    """
    Initialized basket token owing 100 DAI per unit.

    The debt module is registered as an issuance hook and holds a
    DAI reserve to lend from.
    """
    debt_module.initialize(initialized_basket.address, engine.address, caller=MANAGER)
    dai.mint(debt_module.address, ether(1000000))
    debt_module.add_debt(initialized_basket.address, dai.address, ether(100), caller=MANAGER)
    return initialized_basket
