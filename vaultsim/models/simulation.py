"""
Transaction simulation models
Request, sandbox call and outcome types shared by the simulation engine
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from eth_utils import is_same_address


# Sentinel address used for the chain's native gas token
ETH_ADDRESS = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def is_native_asset(address: str) -> bool:
    return is_same_address(address, ETH_ADDRESS)


class TransferKind(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


class ZapProtocol(str, Enum):
    """Known route families; providers are registered per family value"""
    YEARN = "yearn"
    PICKLE = "pickle"


class SimulationState(str, Enum):
    START = "start"
    RESOLVING_APPROVAL = "resolving_approval"
    APPROVAL_SIMULATED = "approval_simulated"
    NO_APPROVAL_NEEDED = "no_approval_needed"
    BUILDING_PRIMARY_CALL = "building_primary_call"
    SIMULATING = "simulating"
    SUCCEEDED = "succeeded"
    RETRYING_WITH_NEW_SANDBOX = "retrying_with_new_sandbox"
    NORMALIZING = "normalizing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SimulationOptions:
    """Caller supplied simulation options"""
    slippage: Optional[float] = None
    fork_id: Optional[str] = None
    root: Optional[str] = None
    gas_price: Optional[int] = None
    gas_limit: Optional[int] = None


@dataclass
class TransferRequest:
    """A single deposit or withdrawal to simulate"""
    initiator: str
    source_token: str
    destination: str
    amount: int
    kind: TransferKind
    options: SimulationOptions = field(default_factory=SimulationOptions)

    def __post_init__(self):
        if self.amount <= 0:
            raise ValueError(f"amount must be positive, got {self.amount}")

    @property
    def vault(self) -> str:
        return self.destination if self.kind == TransferKind.DEPOSIT else self.source_token

    @property
    def token(self) -> str:
        """The non-vault side of the transfer"""
        return self.source_token if self.kind == TransferKind.DEPOSIT else self.destination


@dataclass
class SimulatedCall:
    """One call submitted to the simulation backend"""
    from_address: str
    to: str
    data: str
    value: int = 0
    gas_limit: Optional[int] = None
    gas_price: Optional[int] = None
    fork_id: Optional[str] = None
    save: bool = False
    root: Optional[str] = None


@dataclass
class CallTrace:
    output: Optional[str]
    calls: List["CallTrace"] = field(default_factory=list)


@dataclass
class TransferLog:
    """Decoded ERC20 Transfer event"""
    token: str
    sender: str
    recipient: str
    amount: int


@dataclass
class SimulationResult:
    """Raw result of one simulated call"""
    simulation_id: Optional[str]
    success: bool
    call_trace: Optional[CallTrace] = None
    transfers: List[TransferLog] = field(default_factory=list)
    error_message: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ApprovalState:
    is_approved: bool
    allowance: Optional[int] = None


@dataclass
class ApprovalTransaction:
    from_address: str
    to: str
    data: str
    gas_price: Optional[int] = None


@dataclass
class ZapQuote:
    """Executable zap transaction returned by a route provider"""
    to: str
    data: str
    value: int
    gas: Optional[int]
    gas_price: Optional[int]
    buy_token_address: str
    sell_token_address: Optional[str] = None
    from_address: Optional[str] = None


@dataclass
class VaultInfo:
    """Vault metadata; share price fields are only read for deposits"""
    address: str
    underlying_token: str
    route_family: str = ZapProtocol.YEARN.value
    decimals: Optional[int] = None
    price_per_share: Optional[int] = None


@dataclass(frozen=True)
class DirectPath:
    pass


@dataclass(frozen=True)
class RoutedPath:
    family: str


TransferPath = Union[DirectPath, RoutedPath]


@dataclass(frozen=True)
class ApprovalNotNeeded:
    pass


@dataclass(frozen=True)
class ApprovalSimulated:
    """Approval simulated and persisted in a dedicated fork"""
    fork_id: str
    root: str
    transaction: ApprovalTransaction


ApprovalData = Union[ApprovalNotNeeded, ApprovalSimulated]


@dataclass
class TransactionOutcome:
    """Canonical outcome of a simulated deposit or withdrawal"""
    source_token_address: str
    source_token_amount: int
    target_token_address: str
    target_token_amount: int
    target_token_amount_usdc: int
    target_underlying_token_address: str
    target_underlying_token_amount: int
    conversion_rate: float
    slippage: float

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        # Token amounts can exceed JSON safe integers
        for key in ("source_token_amount", "target_token_amount",
                    "target_token_amount_usdc", "target_underlying_token_amount"):
            data[key] = str(data[key])
        return data
