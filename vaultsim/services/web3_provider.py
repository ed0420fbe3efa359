"""
Web3 Provider Service
Shared async connection to the chain for contract reads and approval sends
"""

from typing import Optional

from web3 import AsyncWeb3, AsyncHTTPProvider

from vaultsim.core.config import settings
from vaultsim.core.logging import get_logger

logger = get_logger(__name__)

_web3: Optional[AsyncWeb3] = None


def get_web3(rpc_url: Optional[str] = None) -> AsyncWeb3:
    """Get the global AsyncWeb3 instance, creating it on first use"""
    global _web3
    if rpc_url:
        return AsyncWeb3(AsyncHTTPProvider(rpc_url))
    if _web3 is None:
        _web3 = AsyncWeb3(AsyncHTTPProvider(settings.ETHEREUM_RPC_URL))
        logger.info("Web3 provider initialized", rpc_url=settings.ETHEREUM_RPC_URL)
    return _web3
