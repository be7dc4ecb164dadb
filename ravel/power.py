"""
Instance power-state transitions.

A fixed table maps (from, to) pairs to the ordered actions that get a server
from one stable state to the other. Pairs missing from the table are errors,
never silent no-ops.
"""

import logging
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .errors import NoKnownTransition
from .wait import Deadline, wait_until

logger = logging.getLogger(__name__)


class PowerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    STOPPED_IN_PLACE = "stopped-in-place"


class PowerAction(str, Enum):
    POWER_ON = "power-on"
    POWER_OFF = "power-off"
    STOP_IN_PLACE = "stop-in-place"


VOLUME_AVAILABLE = "available"

TRANSITIONS: Dict[Tuple[PowerState, PowerState], List[PowerAction]] = {
    (PowerState.STOPPED, PowerState.RUNNING): [PowerAction.POWER_ON],
    (PowerState.STOPPED, PowerState.STOPPED_IN_PLACE): [PowerAction.POWER_ON, PowerAction.STOP_IN_PLACE],
    (PowerState.RUNNING, PowerState.STOPPED): [PowerAction.POWER_OFF],
    (PowerState.RUNNING, PowerState.STOPPED_IN_PLACE): [PowerAction.STOP_IN_PLACE],
    (PowerState.STOPPED_IN_PLACE, PowerState.RUNNING): [PowerAction.POWER_ON],
    (PowerState.STOPPED_IN_PLACE, PowerState.STOPPED): [PowerAction.POWER_ON, PowerAction.POWER_OFF],
}

# State each action settles in.
ACTION_TARGETS: Dict[PowerAction, PowerState] = {
    PowerAction.POWER_ON: PowerState.RUNNING,
    PowerAction.POWER_OFF: PowerState.STOPPED,
    PowerAction.STOP_IN_PLACE: PowerState.STOPPED_IN_PLACE,
}

STABLE_STATES = frozenset(s.value for s in PowerState)


def transition_actions(server_id: str, from_state: str, to_state: str) -> List[PowerAction]:
    """
    Look up the actions that take a server from from_state to to_state.

    Raises:
        NoKnownTransition: the pair is not in the table
    """
    if from_state == to_state:
        return []
    try:
        key = (PowerState(from_state), PowerState(to_state))
    except ValueError:
        raise NoKnownTransition(server_id, from_state, to_state)
    if key not in TRANSITIONS:
        raise NoKnownTransition(server_id, from_state, to_state)
    return list(TRANSITIONS[key])


def reach_power_state(
    control,
    server_id: str,
    to_state: str,
    interval: float = 5.0,
    timeout: float = 600.0,
    deadline: Optional[Deadline] = None,
    sleep=None,
) -> str:
    """
    Drive a server into to_state.

    control is any object with the power-control capability
    (power_state, power_action, attached_volumes, volume_state); in practice
    the instance handler.

    Args:
        control: Power-control capable handler
        server_id: Server to act on
        to_state: Target PowerState value
        interval: Poll interval for every wait
        timeout: Timeout for every individual wait
        deadline: Optional outer deadline
        sleep: Optional sleep override, forwarded to wait_until

    Returns:
        The state reached

    Raises:
        NoKnownTransition: the table has no entry for the observed pair
        NotFound: the server does not exist
    """
    wait_kwargs = {"interval": interval, "timeout": timeout, "deadline": deadline}
    if sleep is not None:
        wait_kwargs["sleep"] = sleep

    current = control.power_state(server_id)
    if current not in STABLE_STATES:
        logger.info(f"Server {server_id} is {current}, waiting for it to settle")
        current = wait_until(
            lambda: control.power_state(server_id),
            lambda s: s in STABLE_STATES,
            description=f"server {server_id} to settle",
            **wait_kwargs,
        )

    to_state = PowerState(to_state).value
    actions = transition_actions(server_id, current, to_state)
    if not actions:
        return current

    for volume_id in control.attached_volumes(server_id):
        wait_until(
            lambda: control.volume_state(volume_id),
            lambda s: s == VOLUME_AVAILABLE,
            description=f"volume {volume_id} to be available",
            **wait_kwargs,
        )

    for action in actions:
        target = ACTION_TARGETS[action].value
        logger.info(f"Server {server_id}: {action.value} ({current} -> {target})")
        control.power_action(server_id, action)
        current = wait_until(
            lambda: control.power_state(server_id),
            lambda s, target=target: s == target,
            description=f"server {server_id} to be {target}",
            **wait_kwargs,
        )

    return current
