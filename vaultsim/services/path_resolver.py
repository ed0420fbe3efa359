"""
Path Resolver
Classifies a transfer as direct or routed through a zap family
"""

from typing import Any, Dict, Iterable

from eth_utils import is_same_address

from vaultsim.core.error_handling import UnsupportedRoute
from vaultsim.core.logging import get_logger
from vaultsim.models.simulation import (
    DirectPath,
    RoutedPath,
    TransferKind,
    TransferPath,
    TransferRequest,
    VaultInfo,
    is_native_asset,
)

logger = get_logger(__name__)


class PathResolver:
    """Decides the execution path; route families are an open set keyed by name"""

    def __init__(self, route_providers: Dict[str, Any]):
        self.route_providers = dict(route_providers)

    @property
    def supported_families(self) -> Iterable[str]:
        return self.route_providers.keys()

    def classify(self, request: TransferRequest, vault: VaultInfo) -> TransferPath:
        """Direct if the non-vault token is the vault's underlying asset, routed otherwise"""
        if is_same_address(request.token, vault.underlying_token):
            return DirectPath()

        family = vault.route_family
        if family not in self.route_providers:
            raise UnsupportedRoute(
                f"No route provider for family '{family}'",
                {"vault": vault.address, "family": family,
                 "supported": sorted(self.supported_families)}
            )

        logger.debug("Transfer requires a zap", vault=vault.address, token=request.token, family=family)
        return RoutedPath(family=family)

    def provider_for(self, path: RoutedPath):
        return self.route_providers[path.family]

    @staticmethod
    def requires_approval_check(request: TransferRequest) -> bool:
        """Native gas-token transfers never need an approval"""
        if request.kind == TransferKind.DEPOSIT:
            return not is_native_asset(request.source_token)
        return not is_native_asset(request.vault)
