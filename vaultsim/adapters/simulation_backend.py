"""
Simulation Backend Adapter
Thin transport to the fork-capable transaction simulation service
"""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp
from eth_utils import is_same_address, to_checksum_address

from vaultsim.core.config import settings
from vaultsim.core.error_handling import BackendUnavailable, SimulationReverted, track_errors
from vaultsim.core.logging import get_logger
from vaultsim.models.simulation import CallTrace, SimulatedCall, SimulationResult, TransferLog

logger = get_logger(__name__)

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def parse_amount(value: Optional[str]) -> int:
    """Parse a hex (0x-prefixed) or decimal integer string"""
    if value is None or value in ("", "0x"):
        raise ValueError("empty amount")
    if isinstance(value, int):
        return value
    if value.startswith("0x"):
        return int(value, 16)
    return int(value)


def _parse_call_trace(data: Optional[Dict[str, Any]]) -> Optional[CallTrace]:
    if not data:
        return None
    return CallTrace(
        output=data.get("output"),
        calls=[_parse_call_trace(call) for call in data.get("calls") or []],
    )


def _parse_transfer_logs(logs: List[Dict[str, Any]]) -> List[TransferLog]:
    transfers = []
    for log in logs or []:
        raw = log.get("raw") or {}
        topics = raw.get("topics") or []
        if len(topics) != 3 or topics[0].lower() != TRANSFER_TOPIC:
            continue
        try:
            transfers.append(TransferLog(
                token=to_checksum_address(raw["address"]),
                sender=to_checksum_address("0x" + topics[1][-40:]),
                recipient=to_checksum_address("0x" + topics[2][-40:]),
                amount=parse_amount(raw.get("data")),
            ))
        except (KeyError, ValueError) as e:
            logger.warning("Skipping undecodable transfer log", error=str(e))
    return transfers


class SimulationBackendAdapter:
    """
    Client for the simulation backend
    Creates forks and submits single simulated calls against them
    """

    def __init__(self, base_url: Optional[str] = None, network_id: Optional[int] = None):
        self.base_url = (base_url or settings.SIMULATION_API_BASE).rstrip("/")
        self.network_id = network_id or settings.SIMULATION_NETWORK_ID
        self.default_gas_limit = settings.SIMULATION_GAS_LIMIT
        self.session: Optional[aiohttp.ClientSession] = None

        logger.info("Simulation backend adapter initialized",
                    base_url=self.base_url,
                    network_id=self.network_id)

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self):
        """Ensure aiohttp session is available"""
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=settings.SIMULATION_REQUEST_TIMEOUT)
            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers={
                    'Content-Type': 'application/json',
                    'Accept': 'application/json',
                    'User-Agent': 'vaultsim/1.0'
                }
            )

    async def close(self):
        """Close aiohttp session"""
        if self.session and not self.session.closed:
            await self.session.close()
            self.session = None

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST a JSON body, mapping transport and HTTP failures to BackendUnavailable"""
        await self._ensure_session()
        url = f"{self.base_url}{path}"

        try:
            async with self.session.post(url, json=body) as response:
                if response.status >= 300:
                    error_text = await response.text()
                    raise BackendUnavailable(
                        f"Simulation backend returned HTTP {response.status}",
                        {"url": url, "status": response.status, "body": error_text[:500]}
                    )
                try:
                    data = await response.json()
                except ValueError as e:
                    raise BackendUnavailable(
                        "Simulation backend returned invalid JSON", {"url": url}
                    ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise BackendUnavailable(
                f"Simulation backend unreachable: {e}", {"url": url}
            ) from e

        if not isinstance(data, dict):
            raise BackendUnavailable(
                "Simulation backend returned a non-object body",
                {"url": url, "body_type": type(data).__name__}
            )
        return data

    async def create_fork(self) -> str:
        """Create a new fork and return its id"""
        body = {
            "alias": "",
            "description": "",
            "network_id": str(self.network_id),
        }

        async with track_errors("simulation_backend", {"operation": "create_fork"}):
            data = await self._post("/fork", body)
            try:
                fork_id = data["simulation_fork"]["id"]
            except (KeyError, TypeError) as e:
                raise BackendUnavailable("Malformed fork response", {"response": data}) from e

        logger.info("Fork created", fork_id=fork_id)
        return fork_id

    def _build_body(self, call: SimulatedCall) -> Dict[str, Any]:
        body = {
            "network_id": str(self.network_id),
            "from": call.from_address,
            "to": call.to,
            "input": call.data,
            "gas": call.gas_limit or self.default_gas_limit,
            "gas_price": str(call.gas_price or 0),
            "value": str(call.value or 0),
            "simulation_type": "full",
            "save": call.save,
        }
        if call.root:
            body["root"] = call.root
        return body

    async def simulate(self, call: SimulatedCall) -> SimulationResult:
        """Submit one simulated call; raise SimulationReverted if the trace reports failure"""
        path = f"/fork/{call.fork_id}/simulate" if call.fork_id else "/simulate"
        context = {"operation": "simulate", "fork_id": call.fork_id, "to": call.to}

        async with track_errors("simulation_backend", context):
            data = await self._post(path, self._build_body(call))
            result = self._parse_simulation(data)

            if not result.success:
                raise SimulationReverted(
                    result.error_message or "Simulated transaction reverted",
                    {"simulation_id": result.simulation_id, "fork_id": call.fork_id}
                )

        logger.debug("Simulation completed",
                     simulation_id=result.simulation_id,
                     fork_id=call.fork_id,
                     save=call.save,
                     root=call.root)
        return result

    @staticmethod
    def _parse_simulation(data: Dict[str, Any]) -> SimulationResult:
        if not isinstance(data, dict):
            raise BackendUnavailable("Malformed simulation response", {"response": data})

        transaction = data.get("transaction")
        if not isinstance(transaction, dict):
            raise BackendUnavailable("Malformed simulation response", {"response": data})

        info = transaction.get("transaction_info")
        simulation = data.get("simulation")
        if not isinstance(info, dict):
            info = {}
        if not isinstance(simulation, dict):
            simulation = {}

        return SimulationResult(
            simulation_id=simulation.get("id"),
            success=bool(transaction.get("status")),
            call_trace=_parse_call_trace(info.get("call_trace")),
            transfers=_parse_transfer_logs(info.get("logs")),
            error_message=transaction.get("error_message"),
            raw=data,
        )

    async def simulate_vault_interaction(self, call: SimulatedCall, target_token: str, recipient: str) -> int:
        """Simulate a call and return the amount of target_token transferred to recipient"""
        result = await self.simulate(call)

        received = [
            transfer.amount for transfer in result.transfers
            if is_same_address(transfer.token, target_token) and is_same_address(transfer.recipient, recipient)
        ]
        if received:
            return sum(received)

        return self.trace_output_amount(result)

    async def simulate_call_output(self, call: SimulatedCall) -> int:
        """Simulate a call and return its decoded top-level return value"""
        result = await self.simulate(call)
        return self.trace_output_amount(result)

    @staticmethod
    def trace_output_amount(result: SimulationResult) -> int:
        output = result.call_trace.output if result.call_trace else None
        try:
            return parse_amount(output)
        except ValueError as e:
            raise SimulationReverted(
                "Simulation produced no token amount",
                {"simulation_id": result.simulation_id}
            ) from e


# Global adapter instance
_simulation_backend: Optional[SimulationBackendAdapter] = None


def get_simulation_backend() -> SimulationBackendAdapter:
    """Get global simulation backend adapter instance"""
    global _simulation_backend
    if _simulation_backend is None:
        _simulation_backend = SimulationBackendAdapter()
    return _simulation_backend
