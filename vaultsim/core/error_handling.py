"""
Simulation error taxonomy and error tracking
Typed failures for every collaborator the orchestrator talks to
"""

import asyncio
import traceback
from collections import deque
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from vaultsim.core.logging import get_logger

logger = get_logger(__name__)


class ErrorKind(str, Enum):
    MISSING_SLIPPAGE = "missing_slippage"
    UNSUPPORTED_ROUTE = "unsupported_route"
    APPROVAL_QUERY_FAILED = "approval_query_failed"
    APPROVAL_SIMULATION_FAILED = "approval_simulation_failed"
    QUOTE_GENERATION_FAILED = "quote_generation_failed"
    PRIMARY_ORACLE_LOOKUP_FAILED = "primary_oracle_lookup_failed"
    PARTNER_PRICE_LOOKUP_FAILED = "partner_price_lookup_failed"
    SIMULATION_REVERTED = "simulation_reverted"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    VAULT_READ_FAILED = "vault_read_failed"


class SimulationError(Exception):
    """Base class for every failure surfaced by the simulation engine"""

    kind: ErrorKind

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


class MissingSlippage(SimulationError):
    """Routed transfer requested without a slippage tolerance"""
    kind = ErrorKind.MISSING_SLIPPAGE


class UnsupportedRoute(SimulationError):
    """Vault declares a route family with no registered provider"""
    kind = ErrorKind.UNSUPPORTED_ROUTE


class ApprovalQueryFailed(SimulationError):
    kind = ErrorKind.APPROVAL_QUERY_FAILED


class ApprovalSimulationFailed(SimulationError):
    kind = ErrorKind.APPROVAL_SIMULATION_FAILED


class QuoteGenerationFailed(SimulationError):
    kind = ErrorKind.QUOTE_GENERATION_FAILED


class PrimaryOracleLookupFailed(SimulationError):
    kind = ErrorKind.PRIMARY_ORACLE_LOOKUP_FAILED


class PartnerPriceLookupFailed(SimulationError):
    kind = ErrorKind.PARTNER_PRICE_LOOKUP_FAILED


class SimulationReverted(SimulationError):
    """The sandboxed execution trace reported a revert"""
    kind = ErrorKind.SIMULATION_REVERTED


class BackendUnavailable(SimulationError):
    """Transport failure or non-2xx response from the simulation backend"""
    kind = ErrorKind.BACKEND_UNAVAILABLE


class VaultReadFailed(SimulationError):
    """On-chain read of vault or token state failed"""
    kind = ErrorKind.VAULT_READ_FAILED


class ErrorTracker:
    """Track and analyze errors across the system"""

    def __init__(self, max_errors: int = 1000):
        self.errors: Deque[Dict[str, Any]] = deque(maxlen=max_errors)
        self.error_counts: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def record_error(self, service: str, error: Exception, context: Dict[str, Any] = None):
        """Record an error with context"""
        async with self._lock:
            error_record = {
                "timestamp": datetime.utcnow().isoformat(),
                "service": service,
                "error_type": type(error).__name__,
                "error_kind": getattr(getattr(error, "kind", None), "value", None),
                "error_message": str(error),
                "traceback": traceback.format_exc(),
                "context": context or {}
            }
            self.errors.append(error_record)

            error_key = f"{service}:{type(error).__name__}"
            self.error_counts[error_key] = self.error_counts.get(error_key, 0) + 1

            logger.error("Error recorded",
                         service=service,
                         error_type=error_record["error_type"],
                         error=error_record["error_message"])

    async def get_error_summary(self, hours: int = 24) -> Dict[str, Any]:
        """Get error summary for the last N hours"""
        async with self._lock:
            cutoff_time = datetime.utcnow() - timedelta(hours=hours)
            recent_errors: List[Dict[str, Any]] = [
                error for error in self.errors
                if datetime.fromisoformat(error["timestamp"]) > cutoff_time
            ]

            service_errors: Dict[str, int] = {}
            kind_counts: Dict[str, int] = {}
            for error in recent_errors:
                service_errors[error["service"]] = service_errors.get(error["service"], 0) + 1
                kind = error["error_kind"] or error["error_type"]
                kind_counts[kind] = kind_counts.get(kind, 0) + 1

            return {
                "time_period_hours": hours,
                "total_errors": len(recent_errors),
                "service_errors": service_errors,
                "error_kind_counts": kind_counts,
                "most_recent_errors": recent_errors[-10:],
                "timestamp": datetime.utcnow().isoformat()
            }


_error_tracker: Optional[ErrorTracker] = None


def get_error_tracker() -> ErrorTracker:
    """Get global error tracker instance"""
    global _error_tracker
    if _error_tracker is None:
        _error_tracker = ErrorTracker()
    return _error_tracker


@asynccontextmanager
async def track_errors(service_name: str, context: Dict[str, Any] = None):
    """Context manager to automatically track errors"""
    error_tracker = get_error_tracker()

    try:
        yield
    except Exception as e:
        await error_tracker.record_error(service_name, e, context)
        raise
