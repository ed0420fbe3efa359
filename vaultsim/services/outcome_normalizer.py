"""
Outcome Normalizer
Turns simulated token amounts into a TransactionOutcome with USD value and slippage
"""

from decimal import Decimal
from typing import Any, Dict, Optional

from vaultsim.core.config import settings
from vaultsim.core.error_handling import PartnerPriceLookupFailed, PrimaryOracleLookupFailed
from vaultsim.core.logging import get_logger
from vaultsim.models.simulation import (
    RoutedPath,
    TransactionOutcome,
    TransferKind,
    TransferRequest,
    VaultInfo,
    ZapQuote,
    is_native_asset,
)

logger = get_logger(__name__)


def underlying_amount(shares: int, vault: VaultInfo) -> int:
    """Shares expressed in underlying units: shares / 10^decimals * pricePerShare, floored"""
    return shares * vault.price_per_share // (10 ** vault.decimals)


class OutcomeNormalizer:
    """
    Prices simulated outputs.
    Families listed in partner_pricing are valued with the partner's spot price
    instead of the general oracle.
    """

    def __init__(self, oracle, partner_pricing: Optional[Dict[str, Any]] = None,
                 wrapped_native_address: Optional[str] = None):
        self.oracle = oracle
        self.partner_pricing = dict(partner_pricing or {})
        self.wrapped_native_address = wrapped_native_address or settings.WETH_ADDRESS

    def _oracle_token(self, token: str) -> str:
        return self.wrapped_native_address if is_native_asset(token) else token

    async def _oracle_value(self, token: str, amount: int) -> int:
        try:
            return int(await self.oracle.get_normalized_value_usdc(self._oracle_token(token), amount))
        except Exception as e:
            raise PrimaryOracleLookupFailed(
                "Error fetching price from oracle", {"token": token, "amount": str(amount)}
            ) from e

    async def _partner_value(self, family: str, vault: VaultInfo, amount: int) -> int:
        try:
            price = int(await self.partner_pricing[family].get_price_usdc(vault.address))
        except Exception as e:
            raise PartnerPriceLookupFailed(
                f"Error fetching {family} partner price", {"vault": vault.address}
            ) from e
        return price * amount // (10 ** vault.decimals)

    @staticmethod
    def _conversion_rate(target_usdc: int, source_usdc: int) -> float:
        if source_usdc == 0:
            raise PrimaryOracleLookupFailed("Source value priced at zero, conversion rate undefined")
        return float(Decimal(target_usdc) / Decimal(source_usdc))

    async def direct(self, request: TransferRequest, vault: VaultInfo, received: int) -> TransactionOutcome:
        """Direct deposit or withdrawal: conversion rate 1, slippage 0 by definition"""
        if request.kind == TransferKind.DEPOSIT:
            target_token = vault.address
            target_usdc = await self._oracle_value(vault.address, received)
            underlying = underlying_amount(received, vault)
        else:
            target_token = request.destination
            target_usdc = await self._oracle_value(request.destination, received)
            underlying = received

        return TransactionOutcome(
            source_token_address=request.source_token,
            source_token_amount=request.amount,
            target_token_address=target_token,
            target_token_amount=received,
            target_token_amount_usdc=target_usdc,
            target_underlying_token_address=vault.underlying_token if request.kind == TransferKind.DEPOSIT
            else request.destination,
            target_underlying_token_amount=underlying,
            conversion_rate=1.0,
            slippage=0.0,
        )

    async def routed(self, request: TransferRequest, vault: VaultInfo, path: RoutedPath,
                     quote: ZapQuote, received: int) -> TransactionOutcome:
        """Zap in or out: conversion rate is received USD over given USD, not clamped"""
        if request.kind == TransferKind.DEPOSIT:
            if path.family in self.partner_pricing:
                target_usdc = await self._partner_value(path.family, vault, received)
            else:
                target_usdc = await self._oracle_value(vault.address, received)
            source_usdc = await self._oracle_value(request.source_token, request.amount)
            target_token = quote.buy_token_address or vault.address
            underlying_token = vault.underlying_token
            underlying = underlying_amount(received, vault)
        else:
            target_usdc = await self._oracle_value(request.destination, received)
            source_usdc = await self._oracle_value(vault.address, request.amount)
            target_token = request.destination
            underlying_token = request.destination
            underlying = received

        conversion_rate = self._conversion_rate(target_usdc, source_usdc)

        logger.info("Zap outcome priced",
                    family=path.family,
                    kind=request.kind.value,
                    target_usdc=str(target_usdc),
                    source_usdc=str(source_usdc),
                    conversion_rate=conversion_rate)

        return TransactionOutcome(
            source_token_address=request.source_token,
            source_token_amount=request.amount,
            target_token_address=target_token,
            target_token_amount=received,
            target_token_amount_usdc=target_usdc,
            target_underlying_token_address=underlying_token,
            target_underlying_token_amount=underlying,
            conversion_rate=conversion_rate,
            slippage=1 - conversion_rate,
        )
