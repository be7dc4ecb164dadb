"""
Tests for the instance power-state transition protocol.
"""

import itertools

import pytest

from ravel.errors import NoKnownTransition
from ravel.handlers.base import PowerControl
from ravel.power import (
    ACTION_TARGETS,
    TRANSITIONS,
    PowerAction,
    PowerState,
    reach_power_state,
    transition_actions,
)


class FakeServer(PowerControl):
    """One server whose actions settle immediately, logging everything it is asked."""

    def __init__(self, state, volumes=None, transitional=None):
        self.state = state
        self.transitional = list(transitional or [])
        self.volumes = {vid: list(states) for vid, states in (volumes or {}).items()}
        self.log = []

    def power_state(self, server_id):
        if self.transitional:
            return self.transitional.pop(0)
        return self.state

    def power_action(self, server_id, action):
        self.log.append(("action", action))
        self.state = ACTION_TARGETS[action].value

    def attached_volumes(self, server_id):
        return list(self.volumes)

    def volume_state(self, volume_id):
        self.log.append(("volume", volume_id))
        states = self.volumes[volume_id]
        return states.pop(0) if len(states) > 1 else states[0]

    def actions(self):
        return [entry[1] for entry in self.log if entry[0] == "action"]


def no_sleep(seconds):
    pass


class TestTransitionTable:
    """Test transition lookup."""

    @pytest.mark.parametrize("from_state,to_state,expected", [
        ("stopped", "running", [PowerAction.POWER_ON]),
        ("stopped", "stopped-in-place", [PowerAction.POWER_ON, PowerAction.STOP_IN_PLACE]),
        ("running", "stopped", [PowerAction.POWER_OFF]),
        ("running", "stopped-in-place", [PowerAction.STOP_IN_PLACE]),
        ("stopped-in-place", "running", [PowerAction.POWER_ON]),
        ("stopped-in-place", "stopped", [PowerAction.POWER_ON, PowerAction.POWER_OFF]),
    ])
    def test_known_transitions(self, from_state, to_state, expected):
        assert transition_actions("srv-1", from_state, to_state) == expected

    @pytest.mark.parametrize("state", [s.value for s in PowerState])
    def test_same_state_is_empty(self, state):
        assert transition_actions("srv-1", state, state) == []

    def test_every_pair_has_an_answer(self):
        """Every ordered pair of stable states is either in the table or an error."""
        for from_state, to_state in itertools.product(PowerState, PowerState):
            if from_state == to_state:
                continue
            assert (from_state, to_state) in TRANSITIONS

    def test_unknown_state_raises(self):
        with pytest.raises(NoKnownTransition) as exc_info:
            transition_actions("srv-1", "rebooting", "running")

        assert exc_info.value.server_id == "srv-1"
        assert exc_info.value.from_state == "rebooting"
        assert "srv-1" in str(exc_info.value)

    def test_every_sequence_ends_in_target(self):
        for (from_state, to_state), actions in TRANSITIONS.items():
            assert ACTION_TARGETS[actions[-1]] == to_state

    def test_returned_list_is_a_copy(self):
        actions = transition_actions("srv-1", "running", "stopped")
        actions.append(PowerAction.POWER_ON)

        assert TRANSITIONS[(PowerState.RUNNING, PowerState.STOPPED)] == [PowerAction.POWER_OFF]


class TestReachPowerState:
    """Test driving a server through the protocol."""

    def test_running_to_stopped(self):
        server = FakeServer("running")

        state = reach_power_state(server, "srv-1", "stopped", interval=0.01, sleep=no_sleep)

        assert state == "stopped"
        assert server.actions() == [PowerAction.POWER_OFF]

    def test_two_step_transition(self):
        server = FakeServer("stopped-in-place")

        state = reach_power_state(server, "srv-1", PowerState.STOPPED, interval=0.01, sleep=no_sleep)

        assert state == "stopped"
        assert server.actions() == [PowerAction.POWER_ON, PowerAction.POWER_OFF]

    def test_already_there(self):
        server = FakeServer("stopped", volumes={"vol-1": ["attaching"]})

        state = reach_power_state(server, "srv-1", "stopped", interval=0.01, sleep=no_sleep)

        assert state == "stopped"
        assert server.log == []

    def test_waits_for_volumes_before_acting(self):
        server = FakeServer("running", volumes={"vol-1": ["attaching", "attaching", "available"]})

        reach_power_state(server, "srv-1", "stopped", interval=0.01, timeout=5, sleep=no_sleep)

        assert server.log == [
            ("volume", "vol-1"),
            ("volume", "vol-1"),
            ("volume", "vol-1"),
            ("action", PowerAction.POWER_OFF),
        ]

    def test_settles_transitional_state_first(self):
        server = FakeServer("stopped", transitional=["stopping", "stopping"])

        state = reach_power_state(server, "srv-1", "running", interval=0.01, timeout=5, sleep=no_sleep)

        assert state == "running"
        assert server.actions() == [PowerAction.POWER_ON]

    def test_invalid_target(self):
        server = FakeServer("running")

        with pytest.raises(ValueError):
            reach_power_state(server, "srv-1", "exploded", sleep=no_sleep)
