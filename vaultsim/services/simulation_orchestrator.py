"""
Simulation Orchestrator
Sequences approval detection, fork acquisition, primary call simulation with
retry, and outcome normalization for vault deposits and withdrawals
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from eth_utils import to_checksum_address

from vaultsim.core.error_handling import (
    ApprovalQueryFailed,
    ApprovalSimulationFailed,
    BackendUnavailable,
    MissingSlippage,
    QuoteGenerationFailed,
    SimulationError,
    VaultReadFailed,
)
from vaultsim.core.logging import get_logger
from vaultsim.models.simulation import (
    ZERO_ADDRESS,
    ApprovalData,
    ApprovalNotNeeded,
    ApprovalSimulated,
    ApprovalTransaction,
    DirectPath,
    RoutedPath,
    SimulatedCall,
    SimulationOptions,
    SimulationState,
    TransactionOutcome,
    TransferKind,
    TransferPath,
    TransferRequest,
    VaultInfo,
    ZapProtocol,
    ZapQuote,
    is_native_asset,
)
from vaultsim.adapters.notifications import get_notifier
from vaultsim.adapters.oracle import get_oracle_adapter
from vaultsim.adapters.pickle import get_pickle_adapter
from vaultsim.adapters.simulation_backend import get_simulation_backend
from vaultsim.adapters.vault_reader import encode_approve, encode_deposit, encode_withdraw, get_vault_reader
from vaultsim.adapters.zapper import ZAP_PATHS, get_zapper_adapter
from vaultsim.services.outcome_normalizer import OutcomeNormalizer
from vaultsim.services.path_resolver import PathResolver
from vaultsim.services.simulation_executor import SimulationExecutor

logger = get_logger(__name__)


@dataclass
class TransferRun:
    """Per-transfer bookkeeping; never shared between transfers"""
    request: TransferRequest
    transfer_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: SimulationState = SimulationState.START
    attempts: int = 0

    def __post_init__(self):
        self.log = logger.bind(
            transfer_id=self.transfer_id,
            kind=self.request.kind.value,
            initiator=self.request.initiator,
            vault=self.request.vault,
        )

    def advance(self, state: SimulationState, **context):
        self.log.info("Simulation state changed", previous=self.state.value, state=state.value, **context)
        self.state = state


@dataclass
class PrimaryCall:
    """Primary call template; fork and root are filled per attempt"""
    call: SimulatedCall
    target_token: Optional[str]
    quote: Optional[ZapQuote] = None


class SimulationOrchestrator:
    """
    Entry point for simulated deposits and withdrawals.
    All collaborators are injected; see get_simulation_orchestrator for the default wiring.
    """

    def __init__(
        self,
        vault_reader,
        backend,
        route_providers: Dict[str, Any],
        oracle,
        partner_pricing: Optional[Dict[str, Any]] = None,
        notifier=None,
        resolver: Optional[PathResolver] = None,
        normalizer: Optional[OutcomeNormalizer] = None,
        executor: Optional[SimulationExecutor] = None,
    ):
        self.vault_reader = vault_reader
        self.backend = backend
        self.resolver = resolver or PathResolver(route_providers)
        self.normalizer = normalizer or OutcomeNormalizer(oracle, partner_pricing)
        self.executor = executor or SimulationExecutor(backend, notifier)

    async def deposit(self, initiator: str, source_token: str, amount: int, vault: str,
                      options: Optional[SimulationOptions] = None) -> TransactionOutcome:
        """Simulate depositing amount of source_token into vault"""
        request = TransferRequest(
            initiator=initiator,
            source_token=source_token,
            destination=vault,
            amount=int(amount),
            kind=TransferKind.DEPOSIT,
            options=options or SimulationOptions(),
        )
        return await self._simulate(request)

    async def withdraw(self, initiator: str, vault: str, amount: int, destination_token: str,
                       options: Optional[SimulationOptions] = None) -> TransactionOutcome:
        """Simulate withdrawing amount of vault shares into destination_token"""
        request = TransferRequest(
            initiator=initiator,
            source_token=vault,
            destination=destination_token,
            amount=int(amount),
            kind=TransferKind.WITHDRAW,
            options=options or SimulationOptions(),
        )
        return await self._simulate(request)

    async def approve(self, initiator: str, token: str, amount: int, vault: str) -> str:
        """Send a real approval of vault for token, outside of any simulation"""
        return await self.vault_reader.send_approval(initiator, token, vault, int(amount))

    async def _simulate(self, request: TransferRequest) -> TransactionOutcome:
        run = TransferRun(request)
        try:
            return await self._run(run)
        except SimulationError as e:
            run.advance(SimulationState.FAILED, error_kind=e.kind.value, error=e.message)
            raise

    async def _run(self, run: TransferRun) -> TransactionOutcome:
        request = run.request
        vault = await self._read_vault(request.vault)
        path = self.resolver.classify(request, vault)

        if isinstance(path, RoutedPath) and request.options.slippage is None:
            raise MissingSlippage("slippage needs to be specified for a zap",
                                  {"vault": vault.address, "token": request.token})

        run.advance(SimulationState.RESOLVING_APPROVAL, path=type(path).__name__)
        approval = await self._resolve_approval(run, path)
        if isinstance(approval, ApprovalSimulated):
            run.advance(SimulationState.APPROVAL_SIMULATED, fork_id=approval.fork_id, root=approval.root)
        else:
            run.advance(SimulationState.NO_APPROVAL_NEEDED)

        run.advance(SimulationState.BUILDING_PRIMARY_CALL)
        primary = await self._build_primary_call(request, vault, path, approval)

        if isinstance(approval, ApprovalSimulated):
            fork_id, root = approval.fork_id, approval.root
        else:
            fork_id, root = request.options.fork_id, request.options.root

        async def produce(save: bool, attempt_fork_id: Optional[str]) -> int:
            run.attempts += 1
            if run.attempts > 1:
                run.advance(SimulationState.RETRYING_WITH_NEW_SANDBOX, fork_id=attempt_fork_id)
            attempt_root = root
            if attempt_fork_id != fork_id:
                attempt_root = await self._replay_approval(approval, attempt_fork_id)
            return await self._execute_primary(primary, request, attempt_fork_id, attempt_root, save)

        run.advance(SimulationState.SIMULATING, fork_id=fork_id, root=root)
        received = await self.executor.execute_with_resimulation_on_failure(produce, fork_id)
        run.advance(SimulationState.SUCCEEDED, received=str(received), attempts=run.attempts)

        run.advance(SimulationState.NORMALIZING)
        if request.kind == TransferKind.DEPOSIT:
            vault.decimals, vault.price_per_share = await self._read_share_price(vault.address)

        if isinstance(path, DirectPath):
            outcome = await self.normalizer.direct(request, vault, received)
        else:
            outcome = await self.normalizer.routed(request, vault, path, primary.quote, received)

        run.advance(SimulationState.DONE, conversion_rate=outcome.conversion_rate, slippage=outcome.slippage)
        return outcome

    async def _read_vault(self, vault: str) -> VaultInfo:
        try:
            return await self.vault_reader.get_vault(vault)
        except Exception as e:
            raise VaultReadFailed("Failed to read vault metadata", {"vault": vault}) from e

    async def _read_share_price(self, vault: str):
        try:
            return await self.vault_reader.share_price(vault)
        except Exception as e:
            raise VaultReadFailed("Failed to read vault share price", {"vault": vault}) from e

    @staticmethod
    def _direction(request: TransferRequest) -> str:
        return "zap-in" if request.kind == TransferKind.DEPOSIT else "zap-out"

    async def _needs_approval(self, request: TransferRequest, path: TransferPath) -> bool:
        if not self.resolver.requires_approval_check(request):
            return False

        if isinstance(path, RoutedPath):
            provider = self.resolver.provider_for(path)
            try:
                state = await provider.approval_state(
                    request.initiator, request.source_token, path.family,
                    direction=self._direction(request),
                )
            except Exception as e:
                raise ApprovalQueryFailed(
                    "Failed to fetch zap approval state",
                    {"family": path.family, "token": request.source_token}
                ) from e
            return not state.is_approved

        if request.kind == TransferKind.WITHDRAW:
            # Burning own shares needs no allowance
            return False

        try:
            allowance = await self.vault_reader.allowance(request.source_token, request.initiator, request.vault)
        except Exception as e:
            raise ApprovalQueryFailed(
                "Failed to get allowance from the token contract",
                {"token": request.source_token, "spender": request.vault}
            ) from e
        return allowance < request.amount

    async def _approval_transaction(self, request: TransferRequest, path: TransferPath) -> ApprovalTransaction:
        if isinstance(path, DirectPath):
            return ApprovalTransaction(
                from_address=request.initiator,
                to=request.source_token,
                data=encode_approve(request.vault, request.amount),
                gas_price=request.options.gas_price,
            )

        provider = self.resolver.provider_for(path)
        try:
            return await provider.approval_transaction(
                request.initiator, request.source_token, request.options.gas_price or 0, path.family,
                direction=self._direction(request),
            )
        except Exception as e:
            raise ApprovalSimulationFailed(
                "Failed to build zap approval transaction", {"family": path.family}
            ) from e

    async def _simulate_approval(self, transaction: ApprovalTransaction, fork_id: str,
                                 root: Optional[str] = None) -> str:
        """Simulate the approval with save=True so later calls in the fork observe it"""
        call = SimulatedCall(
            from_address=transaction.from_address,
            to=transaction.to,
            data=transaction.data,
            gas_price=transaction.gas_price,
            fork_id=fork_id,
            save=True,
            root=root,
        )
        try:
            result = await self.backend.simulate(call)
        except BackendUnavailable:
            raise
        except Exception as e:
            raise ApprovalSimulationFailed("Approval simulation failed", {"fork_id": fork_id}) from e

        if not result.simulation_id:
            raise ApprovalSimulationFailed("Approval simulation returned no id", {"fork_id": fork_id})
        return result.simulation_id

    async def _resolve_approval(self, run: TransferRun, path: TransferPath) -> ApprovalData:
        request = run.request
        if not await self._needs_approval(request, path):
            return ApprovalNotNeeded()

        transaction = await self._approval_transaction(request, path)
        fork_id = request.options.fork_id or await self.executor.create_fork()
        root = await self._simulate_approval(transaction, fork_id, request.options.root)
        return ApprovalSimulated(fork_id=fork_id, root=root, transaction=transaction)

    async def _replay_approval(self, approval: ApprovalData, fork_id: Optional[str]) -> Optional[str]:
        """A retry fork starts from chain state, so a prior approval must be simulated again"""
        if isinstance(approval, ApprovalSimulated) and fork_id:
            return await self._simulate_approval(approval.transaction, fork_id)
        return None

    async def _quote(self, request: TransferRequest, vault: VaultInfo, path: RoutedPath,
                     skip_gas_estimate: bool) -> ZapQuote:
        provider = self.resolver.provider_for(path)
        options = request.options
        gas_price = options.gas_price or 0
        # Zap APIs take the zero address for the native asset
        zap_token = ZERO_ADDRESS if is_native_asset(request.token) else request.token

        try:
            if request.kind == TransferKind.DEPOSIT:
                return await provider.zap_in(
                    request.initiator, zap_token, request.amount, vault.address, gas_price,
                    options.slippage, skip_gas_estimate, path.family,
                )
            return await provider.zap_out(
                request.initiator, zap_token, request.amount, vault.address, gas_price,
                options.slippage, skip_gas_estimate, path.family,
            )
        except Exception as e:
            raise QuoteGenerationFailed(
                "Failed to generate zap quote",
                {"family": path.family, "direction": self._direction(request)}
            ) from e

    async def _build_primary_call(self, request: TransferRequest, vault: VaultInfo, path: TransferPath,
                                  approval: ApprovalData) -> PrimaryCall:
        options = request.options

        if isinstance(path, DirectPath):
            if request.kind == TransferKind.DEPOSIT:
                data, target_token = encode_deposit(request.amount), vault.address
            else:
                data, target_token = encode_withdraw(request.amount), request.destination
            call = SimulatedCall(
                from_address=request.initiator,
                to=vault.address,
                data=data,
                gas_limit=options.gas_limit,
                gas_price=options.gas_price,
            )
            return PrimaryCall(call=call, target_token=target_token)

        # TODO: decouple skipGasEstimate from approval state once zap providers
        # can estimate gas against a fork
        skip_gas_estimate = isinstance(approval, ApprovalSimulated)
        quote = await self._quote(request, vault, path, skip_gas_estimate)

        gas_limit = options.gas_limit
        if not skip_gas_estimate and quote.gas:
            gas_limit = quote.gas

        if request.kind == TransferKind.DEPOSIT:
            target_token = vault.address
        elif is_native_asset(request.destination):
            target_token = None
        else:
            target_token = request.destination

        call = SimulatedCall(
            from_address=quote.from_address or request.initiator,
            to=quote.to,
            data=quote.data,
            value=quote.value,
            gas_limit=gas_limit,
            gas_price=options.gas_price or quote.gas_price,
        )
        return PrimaryCall(call=call, target_token=target_token, quote=quote)

    async def _execute_primary(self, primary: PrimaryCall, request: TransferRequest,
                               fork_id: Optional[str], root: Optional[str], save: bool) -> int:
        template = primary.call
        call = SimulatedCall(
            from_address=template.from_address,
            to=template.to,
            data=template.data,
            value=template.value,
            gas_limit=template.gas_limit,
            gas_price=template.gas_price,
            fork_id=fork_id,
            save=save,
            root=root,
        )

        if primary.target_token is None:
            # Native output: the zap's return value is the amount received
            return await self.backend.simulate_call_output(call)
        return await self.backend.simulate_vault_interaction(
            call, primary.target_token, to_checksum_address(request.initiator)
        )


_orchestrator: Optional[SimulationOrchestrator] = None


def get_simulation_orchestrator() -> SimulationOrchestrator:
    """Get global simulation orchestrator wired to the default adapters"""
    global _orchestrator
    if _orchestrator is None:
        zapper = get_zapper_adapter()
        _orchestrator = SimulationOrchestrator(
            vault_reader=get_vault_reader(),
            backend=get_simulation_backend(),
            route_providers={family: zapper for family in ZAP_PATHS},
            oracle=get_oracle_adapter(),
            partner_pricing={ZapProtocol.PICKLE.value: get_pickle_adapter()},
            notifier=get_notifier(),
        )
    return _orchestrator
