"""At-most-one active pipeline run per card id within a process."""

import asyncio
from typing import Awaitable, Callable, Dict, Literal

from ..core.types import RunOutcome
from ..utils.error_handler import RunAlreadyActive
from ..utils.log import LoggerMixin

ConflictPolicy = Literal["reject", "attach"]


class RunRegistry(LoggerMixin):
    """
    Tracks in-flight runs keyed by card id.

    The check-and-register step happens under a lock, so two concurrent
    requests for the same card can never both start a run. A conflicting
    request is either rejected or attached to the in-flight run's outcome.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._active: Dict[str, "asyncio.Future[RunOutcome]"] = {}

    def is_active(self, card_id: str) -> bool:
        return card_id in self._active

    async def run_once(
        self,
        card_id: str,
        factory: Callable[[], Awaitable[RunOutcome]],
        on_conflict: ConflictPolicy = "reject",
    ) -> RunOutcome:
        """
        Start ``factory()`` for ``card_id`` unless a run is already active.

        Raises:
            RunAlreadyActive: If a run is active and ``on_conflict`` is "reject"
        """
        async with self._lock:
            task = self._active.get(card_id)
            if task is not None:
                if on_conflict == "reject":
                    raise RunAlreadyActive(
                        f"A run is already active for card {card_id}",
                        details={"card_id": card_id},
                    )
                self.logger.info("Attaching to in-flight run", card_id=card_id)
            else:
                task = asyncio.ensure_future(factory())
                self._active[card_id] = task
                task.add_done_callback(lambda done, key=card_id: self._release(key, done))

        # Cancelling one waiter must not cancel the shared run
        return await asyncio.shield(task)

    def _release(self, card_id: str, task: "asyncio.Future[RunOutcome]") -> None:
        if self._active.get(card_id) is task:
            del self._active[card_id]
