"""
Simulation Executor
Runs a simulation once and, on failure, exactly once more on a brand-new fork
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar, Union

from vaultsim.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# produce(save, fork_id) -> outcome
Producer = Callable[[bool, Optional[str]], Awaitable[T]]


@dataclass(frozen=True)
class AttemptFailed:
    error: Exception
    fork_id: Optional[str]


class SimulationExecutor:
    """Retry policy around an arbitrary async producer"""

    def __init__(self, backend, notifier=None):
        self.backend = backend
        self.notifier = notifier

    async def create_fork(self) -> str:
        return await self.backend.create_fork()

    async def _attempt(self, produce: Producer, fork_id: Optional[str]) -> Union[T, AttemptFailed]:
        try:
            return await produce(False, fork_id)
        except Exception as e:
            return AttemptFailed(error=e, fork_id=fork_id)

    async def execute_with_resimulation_on_failure(self, produce: Producer,
                                                   fork_id: Optional[str] = None) -> T:
        """
        First attempt reuses fork_id (or the backend's implicit sandbox when None).
        If it fails, one new fork is allocated and the producer runs once more
        against it; a second failure propagates unchanged.
        """
        first = await self._attempt(produce, fork_id)
        if not isinstance(first, AttemptFailed):
            return first

        logger.warning("Simulation failed, re-simulating on a new fork",
                       fork_id=fork_id,
                       error_type=type(first.error).__name__,
                       error=str(first.error))
        await self._notify_failure(first)

        new_fork_id = await self.create_fork()
        return await produce(False, new_fork_id)

    async def _notify_failure(self, failure: AttemptFailed):
        if self.notifier is None:
            return
        text = (
            "Simulation failed, now re-attempting on a new fork\n"
            f"fork: {failure.fork_id or 'implicit'}\n"
            f"error: {type(failure.error).__name__}: {failure.error}"
        )
        try:
            await self.notifier.send_message(text)
        except Exception as e:
            logger.warning("Failure notification could not be sent", error=str(e))
