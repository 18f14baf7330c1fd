"""Cancellation token and interruptible waits for simulation runs."""

import threading
from typing import Optional

from .exceptions import SimulationAborted


class CancellationToken:
    """Abort signal scoped to a single simulation run.

    The token can only move from active to cancelled; a new run needs a new
    token. It is safe to cancel from another thread while a run is waiting.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request that the run stop as soon as possible."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Non-blocking check of whether cancellation was requested."""
        return self._event.is_set()

    def raise_if_cancelled(self, run_id: Optional[str] = None) -> None:
        """Raise SimulationAborted if the token has been cancelled."""
        if self._event.is_set():
            raise SimulationAborted(run_id=run_id)

    def wait(self, seconds: float, run_id: Optional[str] = None) -> None:
        """
        Sleep for ``seconds``, returning early if the token is cancelled.

        Args:
            seconds: Duration of the simulated work
            run_id: Run identifier attached to the abort error

        Raises:
            SimulationAborted: If the token is cancelled before or during the wait
        """
        self.raise_if_cancelled(run_id)
        if seconds > 0 and self._event.wait(timeout=seconds):
            raise SimulationAborted(run_id=run_id)
