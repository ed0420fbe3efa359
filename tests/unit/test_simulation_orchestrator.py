"""
Unit tests for Simulation Orchestrator
"""

import pytest

from vaultsim.core.error_handling import (
    ApprovalQueryFailed,
    ApprovalSimulationFailed,
    MissingSlippage,
    QuoteGenerationFailed,
    SimulationReverted,
    UnsupportedRoute,
)
from vaultsim.models.simulation import (
    ETH_ADDRESS,
    ZERO_ADDRESS,
    SimulationOptions,
)
from vaultsim.services.simulation_orchestrator import SimulationOrchestrator
from tests.helpers import DAI, USDC, USER, YV_DAI, ZAP_CONTRACT, make_vault

APPROVE_SELECTOR = "0x095ea7b3"
DEPOSIT_SELECTOR = "0xb6b55f25"
WITHDRAW_SELECTOR = "0x2e1a7d4d"


@pytest.fixture
def orchestrator(vault_reader, backend, zapper, oracle, notifier):
    return SimulationOrchestrator(
        vault_reader=vault_reader,
        backend=backend,
        route_providers={"yearn": zapper, "pickle": zapper},
        oracle=oracle,
        notifier=notifier,
    )


def primary_calls(backend):
    return [call.args[0] for call in backend.simulate_vault_interaction.await_args_list]


class TestDirectDeposit:
    """Test cases for direct deposits"""

    @pytest.mark.asyncio
    async def test_approved_deposit_runs_without_fork(self, orchestrator, backend, vault_reader):
        """Test an approved deposit runs without a fork"""
        outcome = await orchestrator.deposit(USER, DAI, 1000, YV_DAI)

        backend.create_fork.assert_not_awaited()
        backend.simulate.assert_not_awaited()
        call = primary_calls(backend)[0]
        assert call.to == YV_DAI
        assert call.data.startswith(DEPOSIT_SELECTOR)
        assert call.fork_id is None
        assert call.save is False

        assert outcome.target_token_amount == 950
        assert outcome.target_underlying_token_amount == 997
        assert outcome.conversion_rate == 1.0
        assert outcome.slippage == 0.0
        vault_reader.allowance.assert_awaited_once_with(DAI, USER, YV_DAI)

    @pytest.mark.asyncio
    async def test_slippage_not_required_for_direct_path(self, orchestrator):
        """Test slippage is optional on a direct path"""
        outcome = await orchestrator.deposit(USER, DAI, 1000, YV_DAI, SimulationOptions(slippage=None))
        assert outcome.slippage == 0.0

    @pytest.mark.asyncio
    async def test_insufficient_allowance_simulates_approval_first(self, orchestrator, backend, vault_reader):
        """Test insufficient allowance simulates the approval first"""
        vault_reader.allowance.return_value = 10

        await orchestrator.deposit(USER, DAI, 1000, YV_DAI)

        backend.create_fork.assert_awaited_once()
        approval_call = backend.simulate.await_args.args[0]
        assert approval_call.to == DAI
        assert approval_call.data.startswith(APPROVE_SELECTOR)
        assert approval_call.save is True
        assert approval_call.fork_id == "fork-1"

        primary = primary_calls(backend)[0]
        assert primary.fork_id == "fork-1"
        assert primary.root == "approval-1"

    @pytest.mark.asyncio
    async def test_caller_fork_is_reused_for_approval(self, orchestrator, backend, vault_reader):
        """Test the caller fork is reused for the approval"""
        vault_reader.allowance.return_value = 0

        await orchestrator.deposit(USER, DAI, 1000, YV_DAI,
                                   SimulationOptions(fork_id="caller-fork", root="caller-root"))

        backend.create_fork.assert_not_awaited()
        approval_call = backend.simulate.await_args.args[0]
        assert approval_call.fork_id == "caller-fork"
        assert approval_call.root == "caller-root"
        assert primary_calls(backend)[0].root == "approval-1"

    @pytest.mark.asyncio
    async def test_caller_fork_and_root_pass_through_without_approval(self, orchestrator, backend):
        """Test caller fork and root pass through without approval"""
        await orchestrator.deposit(USER, DAI, 1000, YV_DAI,
                                   SimulationOptions(fork_id="caller-fork", root="caller-root"))

        primary = primary_calls(backend)[0]
        assert primary.fork_id == "caller-fork"
        assert primary.root == "caller-root"

    @pytest.mark.asyncio
    async def test_allowance_failure_is_typed(self, orchestrator, vault_reader, backend):
        """Test allowance read failures are typed"""
        vault_reader.allowance.side_effect = RuntimeError("rpc down")

        with pytest.raises(ApprovalQueryFailed):
            await orchestrator.deposit(USER, DAI, 1000, YV_DAI)

        backend.simulate_vault_interaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_approval_simulation_failure_is_typed(self, orchestrator, vault_reader, backend):
        """Test approval simulation failures are typed"""
        vault_reader.allowance.return_value = 0
        backend.simulate.side_effect = SimulationReverted("approve reverted")

        with pytest.raises(ApprovalSimulationFailed):
            await orchestrator.deposit(USER, DAI, 1000, YV_DAI)

    @pytest.mark.asyncio
    async def test_repeated_deposit_gives_same_outcome(self, orchestrator):
        """Test repeated deposits give the same outcome"""
        first = await orchestrator.deposit(USER, DAI, 1000, YV_DAI)
        second = await orchestrator.deposit(USER, DAI, 1000, YV_DAI)

        assert first == second


class TestZapIn:
    """Test cases for zap in deposits"""

    @pytest.mark.asyncio
    async def test_missing_slippage_fails_before_any_side_effect(self, orchestrator, backend, zapper, oracle):
        """Test missing slippage fails before any side effect"""
        with pytest.raises(MissingSlippage):
            await orchestrator.deposit(USER, USDC, 1_000_000, YV_DAI)

        backend.create_fork.assert_not_awaited()
        backend.simulate.assert_not_awaited()
        backend.simulate_vault_interaction.assert_not_awaited()
        zapper.approval_state.assert_not_awaited()
        zapper.zap_in.assert_not_awaited()
        oracle.get_normalized_value_usdc.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_zero_slippage_is_accepted(self, orchestrator, zapper):
        """Test zero slippage is accepted"""
        await orchestrator.deposit(USER, USDC, 1_000_000, YV_DAI, SimulationOptions(slippage=0))
        assert zapper.zap_in.await_args.args[5] == 0

    @pytest.mark.asyncio
    async def test_quote_is_fetched_before_simulating(self, orchestrator, backend, zapper):
        """Test the quote is fetched before simulating"""
        async def check_quoted(*args):
            assert zapper.zap_in.await_count == 1
            return 950

        backend.simulate_vault_interaction.side_effect = check_quoted

        await orchestrator.deposit(USER, USDC, 1_000_000, YV_DAI, SimulationOptions(slippage=0.01))

        call = primary_calls(backend)[0]
        assert call.to == ZAP_CONTRACT
        assert call.data == "0xdeadbeef"
        assert call.gas_limit == 450_000

    @pytest.mark.asyncio
    async def test_zap_quote_arguments(self, orchestrator, zapper):
        """Test zap quote arguments"""
        await orchestrator.deposit(USER, USDC, 1_000_000, YV_DAI,
                                   SimulationOptions(slippage=0.01, gas_price=25))

        zapper.approval_state.assert_awaited_once_with(USER, USDC, "yearn", direction="zap-in")
        zapper.zap_in.assert_awaited_once_with(USER, USDC, 1_000_000, YV_DAI, 25, 0.01, False, "yearn")

    @pytest.mark.asyncio
    async def test_unapproved_zap_skips_gas_estimate(self, orchestrator, backend, zapper):
        """Test an unapproved zap skips the gas estimate"""
        zapper.approval_state.return_value.is_approved = False

        await orchestrator.deposit(USER, USDC, 1_000_000, YV_DAI,
                                   SimulationOptions(slippage=0.01, gas_limit=600_000))

        assert zapper.zap_in.await_args.args[6] is True
        primary = primary_calls(backend)[0]
        assert primary.gas_limit == 600_000
        assert primary.fork_id == "fork-1"
        assert primary.root == "approval-1"

    @pytest.mark.asyncio
    async def test_native_deposit_never_checks_approval(self, orchestrator, backend, zapper):
        """Test a native deposit never checks approval"""
        await orchestrator.deposit(USER, ETH_ADDRESS, 10 ** 18, YV_DAI, SimulationOptions(slippage=0.01))

        zapper.approval_state.assert_not_awaited()
        backend.create_fork.assert_not_awaited()
        backend.simulate.assert_not_awaited()
        assert zapper.zap_in.await_args.args[1] == ZERO_ADDRESS

    @pytest.mark.asyncio
    async def test_approval_state_failure_is_typed(self, orchestrator, zapper):
        """Test approval state failures are typed"""
        zapper.approval_state.side_effect = RuntimeError("zapper 500")

        with pytest.raises(ApprovalQueryFailed):
            await orchestrator.deposit(USER, USDC, 1, YV_DAI, SimulationOptions(slippage=0.01))

    @pytest.mark.asyncio
    async def test_quote_failure_is_typed(self, orchestrator, zapper, backend):
        """Test quote failures are typed"""
        zapper.zap_in.side_effect = RuntimeError("no route")

        with pytest.raises(QuoteGenerationFailed):
            await orchestrator.deposit(USER, USDC, 1, YV_DAI, SimulationOptions(slippage=0.01))

        backend.simulate_vault_interaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_family_is_unsupported(self, orchestrator, vault_reader, zapper):
        """Test an unknown vault family is unsupported"""
        vault_reader.get_vault.return_value = make_vault(family="curve")

        with pytest.raises(UnsupportedRoute):
            await orchestrator.deposit(USER, USDC, 1, YV_DAI, SimulationOptions(slippage=0.01))

        zapper.approval_state.assert_not_awaited()


class TestWithdraw:
    """Test cases for withdrawals"""

    @pytest.mark.asyncio
    async def test_direct_withdraw(self, orchestrator, backend, vault_reader):
        """Test a direct withdraw"""
        backend.simulate_vault_interaction.return_value = 997

        outcome = await orchestrator.withdraw(USER, YV_DAI, 950, DAI)

        vault_reader.allowance.assert_not_awaited()
        vault_reader.share_price.assert_not_awaited()
        call = primary_calls(backend)[0]
        assert call.data.startswith(WITHDRAW_SELECTOR)
        assert backend.simulate_vault_interaction.await_args.args[1] == DAI

        assert outcome.source_token_address == YV_DAI
        assert outcome.target_token_address == DAI
        assert outcome.target_underlying_token_amount == 997
        assert outcome.slippage == 0.0

    @pytest.mark.asyncio
    async def test_zap_out_to_native_reads_call_output(self, orchestrator, backend, zapper):
        """Test a zap out to the native token reads the call output"""
        outcome = await orchestrator.withdraw(USER, YV_DAI, 10 ** 18, ETH_ADDRESS,
                                              SimulationOptions(slippage=0.02))

        zapper.approval_state.assert_awaited_once_with(USER, YV_DAI, "yearn", direction="zap-out")
        assert zapper.zap_out.await_args.args[1] == ZERO_ADDRESS
        backend.simulate_call_output.assert_awaited_once()
        backend.simulate_vault_interaction.assert_not_awaited()
        assert outcome.target_token_amount == 2 * 10 ** 18

    @pytest.mark.asyncio
    async def test_zap_out_missing_slippage(self, orchestrator, zapper):
        """Test a zap out without slippage fails"""
        with pytest.raises(MissingSlippage):
            await orchestrator.withdraw(USER, YV_DAI, 10 ** 18, USDC)

        zapper.zap_out.assert_not_awaited()


class TestResimulation:
    """Test cases for re-simulation on failure"""

    @pytest.mark.asyncio
    async def test_failed_primary_retries_on_new_fork(self, orchestrator, backend, notifier):
        """Test a failed primary call retries on a new fork"""
        backend.simulate_vault_interaction.side_effect = [SimulationReverted("reverted"), 950]

        outcome = await orchestrator.deposit(USER, DAI, 1000, YV_DAI)

        assert outcome.target_token_amount == 950
        backend.create_fork.assert_awaited_once()
        forks = [call.fork_id for call in primary_calls(backend)]
        assert forks == [None, "fork-1"]
        notifier.send_message.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retry_replays_approval_on_new_fork(self, orchestrator, backend, vault_reader):
        """Test the retry replays the approval on the new fork"""
        vault_reader.allowance.return_value = 0
        backend.simulate_vault_interaction.side_effect = [SimulationReverted("reverted"), 950]

        await orchestrator.deposit(USER, DAI, 1000, YV_DAI)

        assert backend.create_fork.await_count == 2
        replay = backend.simulate.await_args_list[1].args[0]
        assert replay.fork_id == "fork-2"
        assert replay.save is True
        assert replay.root is None

        retry = primary_calls(backend)[1]
        assert retry.fork_id == "fork-2"
        assert retry.root == "approval-2"

    @pytest.mark.asyncio
    async def test_second_failure_surfaces(self, orchestrator, backend):
        """Test a second failure surfaces to the caller"""
        backend.simulate_vault_interaction.side_effect = [
            SimulationReverted("first"), SimulationReverted("second"), 950,
        ]

        with pytest.raises(SimulationReverted, match="second"):
            await orchestrator.deposit(USER, DAI, 1000, YV_DAI)

        assert backend.simulate_vault_interaction.await_count == 2
        assert backend.create_fork.await_count == 1


class TestApprove:
    """Test cases for real approvals"""

    @pytest.mark.asyncio
    async def test_approve_sends_real_transaction(self, orchestrator, vault_reader, backend):
        """Test approve sends a real transaction"""
        tx_hash = await orchestrator.approve(USER, DAI, 1000, YV_DAI)

        assert tx_hash == "0xapprovalhash"
        vault_reader.send_approval.assert_awaited_once_with(USER, DAI, YV_DAI, 1000)
        backend.simulate.assert_not_awaited()

