"""
Tagging utilities for consistent cluster ownership tags.
"""

from typing import Dict, List, Optional


TAG_CLUSTER_NAME = "KubernetesCluster"
TAG_NAME = "Name"
TAG_INSTANCE_GROUP = "instance-group"

# Tags ravel manages itself; never reported as user tag drift.
RESERVED_TAGS = frozenset({TAG_NAME})


def cluster_tags(cluster_name: str, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """
    Generate the ownership tags for a cluster resource.

    Args:
        cluster_name: Cluster name
        extra: Additional tags to include

    Returns:
        Dictionary of tags to apply to resources
    """
    tags = dict(extra or {})
    # The ownership tag always wins over a user tag of the same key.
    tags[TAG_CLUSTER_NAME] = cluster_name

    return tags


def parse_user_tags(tag_strings: List[str]) -> Dict[str, str]:
    """
    Parse user-provided tag strings in format "key=value".

    Args:
        tag_strings: List of tag strings in "key=value" format

    Returns:
        Dictionary of parsed tags

    Raises:
        ValueError: If tag string format is invalid
    """
    tags = {}

    for tag_str in tag_strings:
        if "=" not in tag_str:
            raise ValueError(f"Invalid tag format: {tag_str}. Expected 'key=value'")

        key, value = tag_str.split("=", 1)
        if not key.strip() or not value.strip():
            raise ValueError(f"Invalid tag format: {tag_str}. Key and value must not be empty")

        tags[key.strip()] = value.strip()

    return tags


def to_aws_tags(tags: Dict[str, str]) -> List[Dict[str, str]]:
    """Convert a tag dict into the [{"Key": ..., "Value": ...}] list AWS expects."""
    return [{"Key": k, "Value": v} for k, v in sorted(tags.items())]


def from_aws_tags(tag_list: Optional[List[Dict[str, str]]]) -> Dict[str, str]:
    """Convert an AWS tag list into a dict."""
    return {tag["Key"]: tag["Value"] for tag in tag_list or []}


def user_tags(tags: Dict[str, str]) -> Dict[str, str]:
    """Drop reserved tags such as Name."""
    return {k: v for k, v in tags.items() if k not in RESERVED_TAGS}


def tag_specifications(resource_type: str, name: str, tags: Dict[str, str]) -> List[Dict]:
    """Build an EC2 TagSpecifications entry naming the resource."""
    all_tags = dict(tags)
    all_tags[TAG_NAME] = name
    return [{"ResourceType": resource_type, "Tags": to_aws_tags(all_tags)}]


def cluster_filter(cluster_name: str) -> Dict[str, object]:
    """EC2 describe_* filter matching resources owned by a cluster."""
    return {"Name": f"tag:{TAG_CLUSTER_NAME}", "Values": [cluster_name]}


def name_filter(name: str) -> Dict[str, object]:
    return {"Name": f"tag:{TAG_NAME}", "Values": [name]}


def get_cluster_from_tags(tags: Dict[str, str]) -> Optional[str]:
    """
    Extract cluster name from resource tags.

    Args:
        tags: Resource tags

    Returns:
        Cluster name if found, None otherwise
    """
    return tags.get(TAG_CLUSTER_NAME)


def tag_changes(actual: Dict[str, str], desired: Dict[str, str]):
    """
    Work out which tags to set and which to remove.

    Returns:
        Tuple of (tags_to_set, keys_to_remove)
    """
    to_set = {k: v for k, v in desired.items() if actual.get(k) != v}
    to_remove = sorted(k for k in actual if k not in desired)
    return to_set, to_remove
