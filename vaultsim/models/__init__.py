"""
Simulation domain models
"""

from .simulation import (
    ApprovalData,
    ApprovalNotNeeded,
    ApprovalSimulated,
    ApprovalState,
    ApprovalTransaction,
    DirectPath,
    RoutedPath,
    SimulatedCall,
    SimulationOptions,
    SimulationResult,
    SimulationState,
    TransactionOutcome,
    TransferKind,
    TransferRequest,
    VaultInfo,
    ZapProtocol,
    ZapQuote,
)

__all__ = [
    "ApprovalData",
    "ApprovalNotNeeded",
    "ApprovalSimulated",
    "ApprovalState",
    "ApprovalTransaction",
    "DirectPath",
    "RoutedPath",
    "SimulatedCall",
    "SimulationOptions",
    "SimulationResult",
    "SimulationState",
    "TransactionOutcome",
    "TransferKind",
    "TransferRequest",
    "VaultInfo",
    "ZapProtocol",
    "ZapQuote",
]
