"""
Shared fixtures: mocked collaborators for the simulation engine
"""

import pytest
from unittest.mock import Mock, AsyncMock

from vaultsim.models.simulation import ApprovalState, ApprovalTransaction, SimulationResult
from tests.helpers import ONE_POINT_O_FIVE, USDC, USER, YV_DAI, make_quote, make_vault


@pytest.fixture
def vault_reader():
    reader = Mock()
    reader.get_vault = AsyncMock(return_value=make_vault())
    reader.share_price = AsyncMock(return_value=(18, ONE_POINT_O_FIVE))
    reader.allowance = AsyncMock(return_value=10 ** 30)
    reader.send_approval = AsyncMock(return_value="0xapprovalhash")
    return reader


@pytest.fixture
def backend():
    backend = Mock()
    backend.create_fork = AsyncMock(side_effect=["fork-1", "fork-2", "fork-3"])
    backend.simulate = AsyncMock(side_effect=[
        SimulationResult(simulation_id="approval-1", success=True),
        SimulationResult(simulation_id="approval-2", success=True),
    ])
    backend.simulate_vault_interaction = AsyncMock(return_value=950)
    backend.simulate_call_output = AsyncMock(return_value=2 * 10 ** 18)
    return backend


@pytest.fixture
def zapper():
    zapper = Mock()
    zapper.approval_state = AsyncMock(return_value=ApprovalState(is_approved=True))
    zapper.approval_transaction = AsyncMock(return_value=ApprovalTransaction(
        from_address=USER, to=USDC, data="0x095ea7b3", gas_price=30_000_000_000
    ))
    zapper.zap_in = AsyncMock(return_value=make_quote())
    zapper.zap_out = AsyncMock(return_value=make_quote(buy_token_address=USDC, sell_token_address=YV_DAI))
    return zapper


@pytest.fixture
def oracle():
    """Values every token at one USDC unit per smallest unit"""
    oracle = Mock()
    oracle.get_normalized_value_usdc = AsyncMock(side_effect=lambda token, amount: amount)
    return oracle


@pytest.fixture
def notifier():
    notifier = Mock()
    notifier.send_message = AsyncMock(return_value=True)
    return notifier
