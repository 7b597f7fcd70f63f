# FILE: progress.py
# LOCATION: mathpro/progress.py

"""Simulated progress for a request whose real progress is unknown.

The simulator ticks every 50 ms and advances toward 99% over a nominal
duration, whether or not the network call has finished. It only reads the
in-flight flag: while the flag is down it holds its value. The orchestrator is
the only writer of the final 100%.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

TICK_SECONDS = 0.05
MAX_SIMULATED = 99
SOLVE_DURATION = 3.0
EXPLAIN_DURATION = 5.0

READY_STATUS = "Ready to start."
COMPLETE_STATUS = "Complete (100%)."


@dataclass
class ProgressState:
    value: float = 0.0
    status: str = READY_STATUS

    @property
    def percent(self) -> int:
        return int(math.floor(self.value))

    def reset(self) -> None:
        self.value = 0.0
        self.status = READY_STATUS

    def complete(self) -> None:
        self.value = 100.0
        self.status = COMPLETE_STATUS


def status_for(percent: int, final_label: str) -> str:
    if percent < 35:
        return f"Analyzing input... ({percent}%)"
    if percent < 75:
        return f"Processing core solution... ({percent}%)"
    return f"{final_label}... ({percent}%)"


class ProgressSimulator:
    def __init__(
        self,
        state: ProgressState,
        nominal_duration: float,
        in_flight: Callable[[], bool],
        final_label: str = "Finalizing solution",
        *,
        tick: float = TICK_SECONDS,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        if nominal_duration <= 0 or tick <= 0:
            raise ValueError("nominal_duration and tick must be positive")
        self.state = state
        self.in_flight = in_flight
        self.final_label = final_label
        self.tick = tick
        self.increment = MAX_SIMULATED / (nominal_duration / tick)
        self._sleep = sleep

    def step(self) -> bool:
        """Advance one tick. Returns False once the 99% ceiling is reached."""
        if not self.in_flight():
            return True

        new_value = self.state.value + self.increment
        if new_value < MAX_SIMULATED:
            self.state.value = new_value
            self.state.status = status_for(math.floor(new_value), self.final_label)
            return True

        self.state.value = MAX_SIMULATED
        self.state.status = f"Finalizing response... ({MAX_SIMULATED}%)"
        return False

    async def run(self) -> None:
        """Tick until the ceiling is reached or the task is cancelled."""
        self.state.value = 1.0
        self.state.status = status_for(1, self.final_label)
        while True:
            await self._sleep(self.tick)
            if not self.step():
                logger.debug("Simulated progress reached %d%%", MAX_SIMULATED)
                return
