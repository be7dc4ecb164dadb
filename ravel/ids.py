"""
Run ID generation and cluster-derived resource names.
"""

import random
import string
from datetime import datetime


def new_run_id() -> str:
    """
    Generate a new run ID in format: r-YYYYMMDD-hhmmss-XXXX

    Returns:
        str: Unique run ID
    """
    now = datetime.now()
    date_str = now.strftime("%Y%m%d")
    time_str = now.strftime("%H%M%S")

    # Generate 4 random alphanumeric characters
    random_suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=4))

    return f"r-{date_str}-{time_str}-{random_suffix}"


def is_valid_run_id(run_id: str) -> bool:
    """
    Validate run ID format.

    Args:
        run_id: ID to validate

    Returns:
        bool: True if valid format
    """
    if not run_id.startswith("r-"):
        return False

    parts = run_id.split("-")
    if len(parts) != 4:
        return False

    # Check date format (YYYYMMDD)
    if len(parts[1]) != 8 or not parts[1].isdigit():
        return False

    # Check time format (HHMMSS)
    if len(parts[2]) != 6 or not parts[2].isdigit():
        return False

    # Check random suffix (4 alphanumeric)
    if len(parts[3]) != 4 or not parts[3].isalnum():
        return False

    return True


def load_balancer_name(cluster_name: str) -> str:
    """
    Name of the API load balancer for a cluster.

    ELB names allow only alphanumerics and hyphens, 32 characters at most.
    """
    name = "api-" + cluster_name.replace(".", "-")
    return name[:32].rstrip("-")


def private_network_name(cluster_name: str) -> str:
    return "vpc-" + cluster_name


def gateway_name(cluster_name: str) -> str:
    return "gw-" + cluster_name
