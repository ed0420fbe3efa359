"""
Standardized API Response Helpers
"""

from typing import Any, Dict, Optional
from datetime import datetime

from fastapi import status

from vaultsim.core.error_handling import ErrorKind, SimulationError


# HTTP status for each error kind surfaced to API callers
ERROR_STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.MISSING_SLIPPAGE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNSUPPORTED_ROUTE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.SIMULATION_REVERTED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.APPROVAL_QUERY_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.APPROVAL_SIMULATION_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.QUOTE_GENERATION_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.PRIMARY_ORACLE_LOOKUP_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.PARTNER_PRICE_LOOKUP_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.VAULT_READ_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.BACKEND_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def create_response(
    success: bool = True,
    data: Any = None,
    error: Optional[str] = None,
    message: Optional[str] = None
) -> Dict[str, Any]:
    """Create standardized API response"""

    response = {
        "success": success,
        "timestamp": datetime.utcnow().isoformat()
    }

    if data is not None:
        response["data"] = data

    if error:
        response["error"] = error
        response["success"] = False

    if message:
        response["message"] = message

    return response


def simulation_error_response(exc: SimulationError) -> Dict[str, Any]:
    """Error body carrying the error kind so clients can pick their messaging"""
    response = create_response(success=False, error=exc.message, data=exc.details or None)
    response["kind"] = exc.kind.value
    return response


def status_code_for(exc: SimulationError) -> int:
    return ERROR_STATUS_CODES.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
