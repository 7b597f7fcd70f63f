"""Tests for the simulated progress ticker."""

import pytest

from helpers import no_sleep
from mathpro.progress import (
    COMPLETE_STATUS,
    READY_STATUS,
    ProgressSimulator,
    ProgressState,
    status_for,
)


def _simulator(state, in_flight=lambda: True, duration=3.0):
    return ProgressSimulator(state, duration, in_flight, "Finalizing solution", sleep=no_sleep)


def test_increment_follows_nominal_duration():
    assert _simulator(ProgressState(), duration=3.0).increment == pytest.approx(99 / 60)
    assert _simulator(ProgressState(), duration=5.0).increment == pytest.approx(99 / 100)


def test_rejects_non_positive_duration():
    with pytest.raises(ValueError):
        _simulator(ProgressState(), duration=0)


def test_monotonic_and_capped_at_99():
    state = ProgressState(value=1.0)
    simulator = _simulator(state)

    values = [state.value]
    while simulator.step():
        values.append(state.value)
        assert len(values) < 1000
    values.append(state.value)

    assert values == sorted(values)
    assert max(values) == 99
    assert state.status == "Finalizing response... (99%)"


def test_stalls_while_nothing_in_flight():
    state = ProgressState(value=10.0)
    simulator = _simulator(state, in_flight=lambda: False)

    for _ in range(20):
        assert simulator.step()
    assert state.value == 10.0


def test_status_bands():
    assert status_for(5, "Finalizing solution") == "Analyzing input... (5%)"
    assert status_for(50, "Finalizing solution") == "Processing core solution... (50%)"
    assert status_for(80, "Generating simplified explanation") == "Generating simplified explanation... (80%)"


async def test_run_stops_at_99_and_never_writes_100():
    state = ProgressState()
    seen = []

    def in_flight():
        seen.append(state.value)
        return True

    await _simulator(state, in_flight=in_flight).run()

    assert state.value == 99
    assert max(seen) < 99
    assert seen[0] == 1.0


def test_state_reset_and_complete():
    state = ProgressState(value=42.5, status="Processing core solution... (42%)")
    assert state.percent == 42

    state.complete()
    assert (state.value, state.status) == (100.0, COMPLETE_STATUS)

    state.reset()
    assert (state.value, state.status) == (0.0, READY_STATUS)
