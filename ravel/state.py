"""
On-disk state for reconcile and teardown runs.
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .ids import is_valid_run_id


def get_ravel_home() -> Path:
    """
    Get the ravel home directory.

    Returns:
        Path: ravel home directory
    """
    ravel_home = os.environ.get("RAVEL_HOME", ".ravel")
    return Path(ravel_home).resolve()


def get_run_dir(run_id: str) -> Path:
    """
    Get the directory for a specific run.

    Args:
        run_id: Run ID

    Returns:
        Path: Run directory

    Raises:
        ValueError: If run ID is invalid
    """
    if not is_valid_run_id(run_id):
        raise ValueError(f"Invalid run ID: {run_id}")

    return get_ravel_home() / run_id


def create_run_dir(run_id: str) -> Path:
    """
    Create run directory and return its path.

    Args:
        run_id: Run ID

    Returns:
        Path: Created run directory
    """
    run_dir = get_run_dir(run_id)
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir


def write_run_json(run_id: str, operation: str, cluster_name: str, settings: Dict[str, Any]) -> None:
    """
    Write what was asked for to run.json.

    Args:
        run_id: Run ID
        operation: "reconcile" or "teardown"
        cluster_name: Cluster the run acts on
        settings: Extra settings worth keeping (region, workers, ...)
    """
    run_dir = get_run_dir(run_id)
    run_data = {
        "run_id": run_id,
        "operation": operation,
        "cluster": cluster_name,
        "settings": settings,
        "created_at": datetime.now().isoformat()
    }

    with open(run_dir / "run.json", "w") as f:
        json.dump(run_data, f, indent=2)


def read_run_json(run_id: str) -> Dict[str, Any]:
    """
    Read run metadata from run.json.

    Raises:
        FileNotFoundError: If run.json doesn't exist
    """
    run_file = get_run_dir(run_id) / "run.json"

    if not run_file.exists():
        raise FileNotFoundError(f"Run {run_id} not found")

    with open(run_file, "r") as f:
        return json.load(f)


def write_report_json(run_id: str, report: Dict[str, Any]) -> None:
    """
    Write the aggregated run result to report.json.

    Args:
        run_id: Run ID
        report: Result dictionary
    """
    run_dir = get_run_dir(run_id)

    with open(run_dir / "report.json", "w") as f:
        json.dump(report, f, indent=2, default=str)


def read_report_json(run_id: str) -> Optional[Dict[str, Any]]:
    """
    Read the run result from report.json.

    Returns:
        Dict: Report or None if the run has not finished
    """
    report_file = get_run_dir(run_id) / "report.json"

    if not report_file.exists():
        return None

    with open(report_file, "r") as f:
        return json.load(f)


def run_exists(run_id: str) -> bool:
    run_dir = get_run_dir(run_id)
    return run_dir.exists() and (run_dir / "run.json").exists()

