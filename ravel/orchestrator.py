"""
Entry points for reconciling a cluster and deleting its resources.

Both record a run under $RAVEL_HOME: run.json with what was asked,
events.ndjson as it progresses and report.json with the aggregated result.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from .errors import TeardownStuck
from .events import EventTypes, emit_event, get_status_from_events, read_events
from .handlers.base import PowerControl
from .handlers.registry import HandlerRegistry
from .ids import is_valid_run_id, new_run_id
from .inventory import DEFAULT_DEPENDENCIES, DependencyTable, build_inventory
from .model import INSTANCE, DesiredState
from .power import reach_power_state
from .reconcile import ReconcileContext, TaskResult, reconcile_all
from .state import create_run_dir, read_report_json, read_run_json, run_exists, write_report_json, write_run_json
from .teardown import TeardownScheduler, plan_teardown
from .wait import Deadline

logger = logging.getLogger(__name__)


def _start_run(run_id: Optional[str], operation: str, cluster_name: str, settings: Dict[str, Any]) -> str:
    if run_id is None:
        run_id = new_run_id()
    create_run_dir(run_id)
    write_run_json(run_id, operation, cluster_name, settings)
    return run_id


def _finish(run_id: str, result: Dict[str, Any]) -> Dict[str, Any]:
    if result["status"] == "succeeded":
        emit_event(run_id, EventTypes.DONE, {"status": result["status"]})
    write_report_json(run_id, result)
    return result


def _error_result(run_id: str, result: Dict[str, Any], error: Exception) -> Dict[str, Any]:
    logger.error(f"Run {run_id} failed: {error}")
    emit_event(run_id, EventTypes.ERROR, {
        "reason": str(error),
        "error_type": type(error).__name__,
    })
    result["status"] = "failed"
    result["error"] = str(error)
    result["error_type"] = type(error).__name__
    return result


def reconcile_cluster(
    cluster_name: str,
    desired_states: Iterable[DesiredState],
    registry: HandlerRegistry,
    run_id: Optional[str] = None,
    deadline: Optional[Deadline] = None,
    settings: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Converge every desired state of a cluster.

    Args:
        cluster_name: Cluster name
        desired_states: Desired states, in any order
        registry: Handlers to reconcile through
        run_id: Optional run ID (generated if not provided)
        deadline: Optional overall deadline
        settings: Extra settings recorded in run.json

    Returns:
        Result dictionary with status, per-resource results, outputs and,
        on failure, the first fatal error
    """
    desired_states = list(desired_states)
    run_id = _start_run(run_id, "reconcile", cluster_name, settings or {})
    emit_event(run_id, EventTypes.RECONCILE_START, {
        "cluster": cluster_name,
        "resources": len(desired_states),
    })

    context = ReconcileContext(cluster_name=cluster_name, registry=registry, deadline=deadline)
    results: List[TaskResult] = []

    def on_result(result: TaskResult) -> None:
        results.append(result)
        emit_event(run_id, EventTypes.TASK_DONE, result.to_dict())

    result: Dict[str, Any] = {"run_id": run_id, "cluster": cluster_name, "operation": "reconcile"}
    try:
        reconcile_all(desired_states, context, on_result=on_result)
        result["status"] = "succeeded"
    except Exception as e:
        _error_result(run_id, result, e)

    result["results"] = [r.to_dict() for r in results]
    result["outputs"] = {f"{kind}/{name}": values for (kind, name), values in context.outputs.items()}
    return _finish(run_id, result)


def delete_cluster_resources(
    cluster_name: str,
    registry: HandlerRegistry,
    dependencies: Optional[DependencyTable] = None,
    max_workers: int = 1,
    deadline: Optional[Deadline] = None,
    refresh: bool = False,
    dry_run: bool = False,
    run_id: Optional[str] = None,
    settings: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Delete every resource tagged for a cluster, in dependency order.

    Args:
        cluster_name: Cluster name
        registry: Handlers to list and delete through
        dependencies: Dependency table (defaults to DEFAULT_DEPENDENCIES)
        max_workers: Concurrent deletions per pass
        deadline: Optional overall deadline
        refresh: Re-list the inventory after every pass
        dry_run: Only plan the teardown
        run_id: Optional run ID (generated if not provided)
        settings: Extra settings recorded in run.json

    Returns:
        Result dictionary with status ("succeeded", "planned", "stuck" or
        "failed"), the plan, the teardown report and, when stuck, every
        remaining resource with its unresolved blockers
    """
    dependencies = dependencies or DEFAULT_DEPENDENCIES
    run_settings = dict(settings or {})
    run_settings.update({"max_workers": max_workers, "refresh": refresh, "dry_run": dry_run})
    run_id = _start_run(run_id, "teardown", cluster_name, run_settings)

    result: Dict[str, Any] = {"run_id": run_id, "cluster": cluster_name, "operation": "teardown"}
    try:
        inventory = build_inventory(registry, cluster_name, dependencies)
        emit_event(run_id, EventTypes.INVENTORY_BUILT, {
            "cluster": cluster_name,
            "count": len(inventory),
            "keys": sorted(inventory),
        })

        plan = plan_teardown(inventory)
        result["plan"] = plan
        if dry_run:
            emit_event(run_id, EventTypes.PLAN_READY, {"passes": plan})
            result["status"] = "planned"
            return _finish(run_id, result)

        scheduler = TeardownScheduler(
            registry,
            max_workers=max_workers,
            deadline=deadline,
            on_event=lambda event_type, data: emit_event(run_id, event_type, data),
            refresh=(lambda: build_inventory(registry, cluster_name, dependencies)) if refresh else None,
        )
        report = scheduler.run(inventory)
        result["report"] = report.to_dict()
        result["status"] = "succeeded"
    except TeardownStuck as e:
        if "plan" not in result:
            # Stuck while planning; the scheduler never ran to report it.
            emit_event(run_id, EventTypes.TEARDOWN_STUCK, {"remaining": e.report()})
        logger.error(f"Teardown of {cluster_name} is stuck: {e}")
        result["status"] = "stuck"
        result["error"] = str(e)
        result["error_type"] = type(e).__name__
        result["stuck"] = e.report()
    except Exception as e:
        _error_result(run_id, result, e)

    return _finish(run_id, result)


def set_power_state(
    registry: HandlerRegistry,
    server_id: str,
    to_state: str,
    interval: float = 5.0,
    timeout: float = 600.0,
    deadline: Optional[Deadline] = None,
) -> str:
    """
    Drive one server into a power state.

    The power-control capability is looked up through the registry, so a
    cloud without it fails with UnsupportedOperation.

    Returns:
        The state reached
    """
    control = registry.capability(INSTANCE, PowerControl)
    return reach_power_state(control, server_id, to_state, interval=interval, timeout=timeout, deadline=deadline)


def status(run_id: str) -> Dict[str, Any]:
    """
    Get a run's status and, once it has finished, its report.

    Args:
        run_id: Run ID

    Returns:
        Status dictionary; status is "not_found" for unknown runs
    """
    if not is_valid_run_id(run_id) or not run_exists(run_id):
        return {"run_id": run_id, "status": "not_found"}

    run = read_run_json(run_id)
    result = {
        "run_id": run_id,
        "operation": run.get("operation"),
        "cluster": run.get("cluster"),
        "created_at": run.get("created_at"),
        "status": get_status_from_events(run_id),
    }
    report = read_report_json(run_id)
    if report is not None:
        result["report"] = report
    return result


def logs(run_id: str) -> List[Dict[str, Any]]:
    """Events of a run, oldest first; empty for unknown runs."""
    if not is_valid_run_id(run_id) or not run_exists(run_id):
        return []
    return read_events(run_id)
