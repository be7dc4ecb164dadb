"""
Event logging utilities for NDJSON format.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from .state import get_run_dir


def emit_event(run_id: str, event_type: str, data: Dict[str, Any]) -> None:
    """
    Emit an event to the run's events.ndjson file.

    Args:
        run_id: Run ID
        event_type: Event type (e.g., "RECONCILE_START", "RESOURCE_DELETED")
        data: Event data
    """
    events_file = get_run_dir(run_id) / "events.ndjson"

    event = {
        "ts": datetime.now().isoformat(),
        "type": event_type,
        "data": data
    }

    with open(events_file, "a") as f:
        f.write(json.dumps(event, default=str) + "\n")
        f.flush()


def read_events(run_id: str) -> List[Dict[str, Any]]:
    """
    Read all events from a run's events.ndjson file.

    Args:
        run_id: Run ID

    Returns:
        List of events
    """
    events_file = get_run_dir(run_id) / "events.ndjson"

    if not events_file.exists():
        return []

    events = []
    with open(events_file, "r") as f:
        for line in f:
            line = line.strip()
            if line:
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    continue  # Skip malformed lines

    return events


def get_last_event(run_id: str) -> Optional[Dict[str, Any]]:
    events = read_events(run_id)
    return events[-1] if events else None


def get_status_from_events(run_id: str) -> str:
    """
    Determine run status from events.

    Args:
        run_id: Run ID

    Returns:
        Status string
    """
    last_event = get_last_event(run_id)
    if not last_event:
        return "unknown"

    status_map = {
        EventTypes.RECONCILE_START: "reconciling",
        EventTypes.TASK_DONE: "reconciling",
        EventTypes.INVENTORY_BUILT: "tearing_down",
        EventTypes.TEARDOWN_PASS: "tearing_down",
        EventTypes.RESOURCE_DELETED: "tearing_down",
        EventTypes.RESOURCE_ALREADY_GONE: "tearing_down",
        EventTypes.PLAN_READY: "planned",
        EventTypes.TEARDOWN_STUCK: "stuck",
        EventTypes.ERROR: "failed",
        EventTypes.DONE: "succeeded",
    }

    return status_map.get(last_event.get("type", ""), "unknown")


class EventTypes:
    # Reconcile
    RECONCILE_START = "RECONCILE_START"
    TASK_DONE = "TASK_DONE"
    # Teardown
    INVENTORY_BUILT = "INVENTORY_BUILT"
    PLAN_READY = "PLAN_READY"
    TEARDOWN_PASS = "TEARDOWN_PASS"
    RESOURCE_DELETED = "RESOURCE_DELETED"
    RESOURCE_ALREADY_GONE = "RESOURCE_ALREADY_GONE"
    TEARDOWN_STUCK = "TEARDOWN_STUCK"
    # Terminal
    ERROR = "ERROR"
    DONE = "DONE"
