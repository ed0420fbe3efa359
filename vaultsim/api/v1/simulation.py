"""
Vault transaction simulation API endpoints
Pre-flight deposit and withdrawal outcomes on forked chain state
"""

from typing import Optional

from eth_utils import is_address, to_checksum_address
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, validator

from vaultsim.core.error_handling import SimulationError
from vaultsim.core.logging import get_logger
from vaultsim.core.response import create_response, simulation_error_response, status_code_for
from vaultsim.models.simulation import SimulationOptions
from vaultsim.services.simulation_orchestrator import SimulationOrchestrator, get_simulation_orchestrator

logger = get_logger(__name__)
router = APIRouter()


class SimulationOptionsModel(BaseModel):
    """Optional simulation parameters"""
    slippage: Optional[float] = Field(default=None, ge=0, lt=1, description="Zap slippage tolerance, e.g. 0.01")
    fork_id: Optional[str] = Field(default=None, description="Existing fork to simulate on")
    root: Optional[str] = Field(default=None, description="Simulation id to chain from")
    gas_price: Optional[int] = Field(default=None, ge=0)
    gas_limit: Optional[int] = Field(default=None, gt=0)

    def to_options(self) -> SimulationOptions:
        return SimulationOptions(
            slippage=self.slippage,
            fork_id=self.fork_id,
            root=self.root,
            gas_price=self.gas_price,
            gas_limit=self.gas_limit,
        )


class TransferRequestModel(BaseModel):
    """Fields shared by deposit and withdraw requests"""
    from_address: str = Field(..., description="Initiating wallet")
    vault: str = Field(..., description="Vault address")
    token: str = Field(..., description="Non-vault side of the transfer")
    amount: str = Field(..., description="Amount in smallest units")
    options: SimulationOptionsModel = Field(default_factory=SimulationOptionsModel)

    @validator('from_address', 'token', 'vault')
    def validate_address(cls, v):
        if not is_address(v):
            raise ValueError(f"Invalid address: {v}")
        return to_checksum_address(v)

    @validator('amount')
    def validate_amount(cls, v):
        if not v.isdigit() or int(v) <= 0:
            raise ValueError("amount must be a positive integer in the token's smallest unit")
        return v


class DepositRequest(TransferRequestModel):
    """Simulated deposit of token into vault"""
    pass


class WithdrawRequest(TransferRequestModel):
    """Simulated withdrawal of vault shares into token"""
    pass


def _error_response(exc: SimulationError) -> JSONResponse:
    return JSONResponse(status_code=status_code_for(exc), content=simulation_error_response(exc))


@router.post("/deposit")
async def simulate_deposit(
    request: DepositRequest,
    orchestrator: SimulationOrchestrator = Depends(get_simulation_orchestrator)
):
    """Simulate a vault deposit, zapping in when the token is not the vault's underlying"""
    try:
        outcome = await orchestrator.deposit(
            request.from_address,
            request.token,
            int(request.amount),
            request.vault,
            request.options.to_options(),
        )
    except SimulationError as e:
        logger.warning("Deposit simulation failed", vault=request.vault, kind=e.kind.value, error=e.message)
        return _error_response(e)

    return create_response(success=True, data=outcome.to_dict(), message="Deposit simulated")


@router.post("/withdraw")
async def simulate_withdraw(
    request: WithdrawRequest,
    orchestrator: SimulationOrchestrator = Depends(get_simulation_orchestrator)
):
    """Simulate a vault withdrawal, zapping out when the token is not the vault's underlying"""
    try:
        outcome = await orchestrator.withdraw(
            request.from_address,
            request.vault,
            int(request.amount),
            request.token,
            request.options.to_options(),
        )
    except SimulationError as e:
        logger.warning("Withdraw simulation failed", vault=request.vault, kind=e.kind.value, error=e.message)
        return _error_response(e)

    return create_response(success=True, data=outcome.to_dict(), message="Withdrawal simulated")
