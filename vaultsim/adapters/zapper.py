"""
Zapper Route Provider Adapter
Approval state, approval transactions and zap in/out quotes per route family
"""

import asyncio
from typing import Any, Dict, Optional

import aiohttp

from vaultsim.core.config import settings
from vaultsim.core.error_handling import track_errors
from vaultsim.core.logging import get_logger
from vaultsim.models.simulation import ApprovalState, ApprovalTransaction, ZapProtocol, ZapQuote

logger = get_logger(__name__)


class ZapperAPIError(Exception):
    """Zapper API returned an error or an unusable payload"""
    pass


# Zapper path segment for each supported route family
ZAP_PATHS = {
    ZapProtocol.YEARN.value: "vault/yearn",
    ZapProtocol.PICKLE.value: "pickle",
}


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, str) and value.startswith("0x"):
        return int(value, 16)
    return int(value)


class ZapperAdapter:
    """
    Zapper zap API integration
    One adapter serves every family listed in ZAP_PATHS
    """

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key or settings.ZAPPER_API_KEY
        self.base_url = (base_url or settings.ZAPPER_API_BASE).rstrip("/")
        self.session: Optional[aiohttp.ClientSession] = None

        if not self.api_key:
            logger.warning("Zapper API key not set - requests may be rejected")

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self):
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=30, connect=10)
            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers={'Accept': 'application/json', 'User-Agent': 'vaultsim/1.0'}
            )

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()
            self.session = None

    def _url(self, direction: str, family: str, endpoint: str) -> str:
        try:
            zap_path = ZAP_PATHS[family]
        except KeyError:
            raise ZapperAPIError(f"Zapper has no zap path for family {family}")
        return f"{self.base_url}/{direction}/{zap_path}/{endpoint}"

    async def _get(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        await self._ensure_session()
        query = {key: str(value) for key, value in params.items() if value is not None}
        query["api_key"] = self.api_key

        try:
            async with self.session.get(url, params=query) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error("Zapper request failed",
                                 url=url, status=response.status, error=error_text[:300])
                    raise ZapperAPIError(f"Zapper returned HTTP {response.status}")
                return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ZapperAPIError(f"Zapper request failed: {e}") from e

    async def approval_state(self, owner: str, token: str, family: str, direction: str = "zap-in") -> ApprovalState:
        """Whether owner already approved the zap contract for token"""
        params = {"ownerAddress": owner, "sellTokenAddress": token}
        async with track_errors("zapper", {"operation": "approval_state", "family": family}):
            data = await self._get(self._url(direction, family, "approval-state"), params)

        return ApprovalState(
            is_approved=bool(data.get("isApproved")),
            allowance=_optional_int(data.get("allowance")),
        )

    async def approval_transaction(self, owner: str, token: str, gas_price: int, family: str,
                                   direction: str = "zap-in") -> ApprovalTransaction:
        """Unsigned approval transaction for the zap contract"""
        params = {"ownerAddress": owner, "sellTokenAddress": token, "gasPrice": gas_price}
        async with track_errors("zapper", {"operation": "approval_transaction", "family": family}):
            data = await self._get(self._url(direction, family, "approval-transaction"), params)

        try:
            return ApprovalTransaction(
                from_address=data["from"],
                to=data["to"],
                data=data["data"],
                gas_price=_optional_int(data.get("gasPrice")),
            )
        except KeyError as e:
            raise ZapperAPIError(f"Approval transaction missing field {e}") from e

    async def zap_in(self, from_address: str, sell_token: str, amount: int, vault: str, gas_price: int,
                     slippage: float, skip_gas_estimate: bool, family: str) -> ZapQuote:
        """Quote a zap into vault from sell_token"""
        params = {
            "ownerAddress": from_address,
            "sellTokenAddress": sell_token,
            "sellAmount": amount,
            "poolAddress": vault.lower(),
            "gasPrice": gas_price,
            "slippagePercentage": slippage,
            "skipGasEstimate": str(skip_gas_estimate).lower(),
        }
        async with track_errors("zapper", {"operation": "zap_in", "family": family}):
            data = await self._get(self._url("zap-in", family, "transaction"), params)

        return self._parse_quote(data)

    async def zap_out(self, from_address: str, to_token: str, amount: int, vault: str, gas_price: int,
                      slippage: float, skip_gas_estimate: bool, family: str) -> ZapQuote:
        """Quote a zap out of vault into to_token"""
        params = {
            "ownerAddress": from_address,
            "toTokenAddress": to_token,
            "sellAmount": amount,
            "poolAddress": vault.lower(),
            "gasPrice": gas_price,
            "slippagePercentage": slippage,
            "skipGasEstimate": str(skip_gas_estimate).lower(),
            "shouldSellEntireBalance": "false",
        }
        async with track_errors("zapper", {"operation": "zap_out", "family": family}):
            data = await self._get(self._url("zap-out", family, "transaction"), params)

        return self._parse_quote(data)

    @staticmethod
    def _parse_quote(data: Dict[str, Any]) -> ZapQuote:
        try:
            return ZapQuote(
                to=data["to"],
                data=data["data"],
                value=_optional_int(data.get("value")) or 0,
                gas=_optional_int(data.get("gas")),
                gas_price=_optional_int(data.get("gasPrice")),
                buy_token_address=data.get("buyTokenAddress"),
                sell_token_address=data.get("sellTokenAddress"),
                from_address=data.get("from"),
            )
        except KeyError as e:
            raise ZapperAPIError(f"Zap quote missing field {e}") from e


_zapper_adapter: Optional[ZapperAdapter] = None


def get_zapper_adapter() -> ZapperAdapter:
    """Get global Zapper adapter instance"""
    global _zapper_adapter
    if _zapper_adapter is None:
        _zapper_adapter = ZapperAdapter()
    return _zapper_adapter
