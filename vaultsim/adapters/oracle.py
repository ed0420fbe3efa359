"""
Price Oracle Adapter
USDC-normalized token values from the on-chain price oracle
"""

from typing import Optional

from web3 import AsyncWeb3

from vaultsim.core.config import settings
from vaultsim.core.error_handling import track_errors
from vaultsim.core.logging import get_logger
from vaultsim.services.web3_provider import get_web3

logger = get_logger(__name__)

ORACLE_ABI = [
    {
        "name": "getNormalizedValueUsdc",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "tokenAddress", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]


class OracleAdapter:
    """Reads USDC values (6 decimals) from the price oracle contract"""

    def __init__(self, web3: Optional[AsyncWeb3] = None, oracle_address: Optional[str] = None):
        self.web3 = web3 or get_web3()
        self.address = AsyncWeb3.to_checksum_address(oracle_address or settings.ORACLE_ADDRESS)
        self.contract = self.web3.eth.contract(address=self.address, abi=ORACLE_ABI)

    async def get_normalized_value_usdc(self, token: str, amount: int) -> int:
        """USDC value of amount units of token"""
        async with track_errors("oracle", {"token": token, "amount": str(amount)}):
            value = await self.contract.functions.getNormalizedValueUsdc(
                AsyncWeb3.to_checksum_address(token), int(amount)
            ).call()

        logger.debug("Oracle value fetched", token=token, amount=str(amount), usdc=str(value))
        return int(value)


_oracle_adapter: Optional[OracleAdapter] = None


def get_oracle_adapter() -> OracleAdapter:
    """Get global oracle adapter instance"""
    global _oracle_adapter
    if _oracle_adapter is None:
        _oracle_adapter = OracleAdapter()
    return _oracle_adapter
