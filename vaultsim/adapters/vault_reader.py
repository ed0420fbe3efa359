"""
Vault Reader Adapter
On-chain vault metadata, ERC20 allowances, call encoding and approval sends
"""

import asyncio
from typing import List, Optional

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address
from web3 import AsyncWeb3

from vaultsim.core.config import settings
from vaultsim.core.error_handling import track_errors
from vaultsim.core.logging import get_logger
from vaultsim.models.simulation import VaultInfo, ZapProtocol
from vaultsim.services.web3_provider import get_web3

logger = get_logger(__name__)

VAULT_ABI = [
    {"name": "token", "type": "function", "stateMutability": "view",
     "inputs": [], "outputs": [{"name": "", "type": "address"}]},
    {"name": "decimals", "type": "function", "stateMutability": "view",
     "inputs": [], "outputs": [{"name": "", "type": "uint256"}]},
    {"name": "pricePerShare", "type": "function", "stateMutability": "view",
     "inputs": [], "outputs": [{"name": "", "type": "uint256"}]},
    {"name": "getRatio", "type": "function", "stateMutability": "view",
     "inputs": [], "outputs": [{"name": "", "type": "uint256"}]},
]

ERC20_ABI = [
    {"name": "allowance", "type": "function", "stateMutability": "view",
     "inputs": [{"name": "owner", "type": "address"}, {"name": "spender", "type": "address"}],
     "outputs": [{"name": "", "type": "uint256"}]},
]


def encode_call(signature: str, arg_types: List[str], args: list) -> str:
    """ABI-encode a call from its text signature, e.g. deposit(uint256)"""
    selector = function_signature_to_4byte_selector(signature)
    return "0x" + (selector + encode(arg_types, args)).hex()


def encode_deposit(amount: int) -> str:
    return encode_call("deposit(uint256)", ["uint256"], [int(amount)])


def encode_withdraw(amount: int) -> str:
    return encode_call("withdraw(uint256)", ["uint256"], [int(amount)])


def encode_approve(spender: str, amount: int) -> str:
    return encode_call("approve(address,uint256)", ["address", "uint256"],
                       [to_checksum_address(spender), int(amount)])


class VaultReader:
    """
    Reads vault state through web3
    Pickle jars expose getRatio() where yearn vaults expose pricePerShare()
    """

    def __init__(self, web3: Optional[AsyncWeb3] = None, pickle_jars: Optional[List[str]] = None):
        self.web3 = web3 or get_web3()
        self.pickle_jars = {to_checksum_address(jar) for jar in (pickle_jars or [])}

    def route_family(self, vault: str) -> str:
        if to_checksum_address(vault) in self.pickle_jars:
            return ZapProtocol.PICKLE.value
        return ZapProtocol.YEARN.value

    def _vault(self, vault: str):
        return self.web3.eth.contract(address=to_checksum_address(vault), abi=VAULT_ABI)

    async def underlying_token(self, vault: str) -> str:
        async with track_errors("vault_reader", {"vault": vault, "operation": "token"}):
            return to_checksum_address(await self._vault(vault).functions.token().call())

    async def share_price(self, vault: str) -> tuple:
        """(decimals, price per share), read concurrently"""
        contract = self._vault(vault)
        pps_call = (contract.functions.getRatio() if self.route_family(vault) == ZapProtocol.PICKLE.value
                    else contract.functions.pricePerShare())

        async with track_errors("vault_reader", {"vault": vault, "operation": "share_price"}):
            decimals, price_per_share = await asyncio.gather(
                contract.functions.decimals().call(),
                pps_call.call(),
            )
        return int(decimals), int(price_per_share)

    async def get_vault(self, vault: str) -> VaultInfo:
        """Underlying asset and route family; share price is read separately"""
        return VaultInfo(
            address=to_checksum_address(vault),
            underlying_token=await self.underlying_token(vault),
            route_family=self.route_family(vault),
        )

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        contract = self.web3.eth.contract(address=to_checksum_address(token), abi=ERC20_ABI)
        async with track_errors("vault_reader", {"token": token, "operation": "allowance"}):
            return int(await contract.functions.allowance(
                to_checksum_address(owner), to_checksum_address(spender)
            ).call())

    async def send_approval(self, owner: str, token: str, spender: str, amount: int) -> str:
        """Send a real approve(spender, amount) through the node-managed signer"""
        transaction = {
            "from": to_checksum_address(owner),
            "to": to_checksum_address(token),
            "data": encode_approve(spender, amount),
        }
        async with track_errors("vault_reader", {"token": token, "operation": "send_approval"}):
            tx_hash = await self.web3.eth.send_transaction(transaction)

        logger.info("Approval transaction sent", owner=owner, token=token, spender=spender,
                    tx_hash=AsyncWeb3.to_hex(tx_hash))
        return AsyncWeb3.to_hex(tx_hash)


_vault_reader: Optional[VaultReader] = None


def get_vault_reader() -> VaultReader:
    """Get global vault reader instance"""
    global _vault_reader
    if _vault_reader is None:
        _vault_reader = VaultReader(pickle_jars=settings.pickle_jars)
    return _vault_reader
