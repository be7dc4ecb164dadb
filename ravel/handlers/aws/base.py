"""
Shared plumbing for the AWS handlers.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional

from ...config import CloudConfig
from ...tags import cluster_filter, get_cluster_from_tags, name_filter, tag_changes
from ...wait import Deadline, wait_until, wait_until_gone
from ..base import ResourceHandler
from .session import CloudSession, translate_errors


class AwsHandler(ResourceHandler):
    """Base for handlers backed by a CloudSession."""

    def __init__(self, session: CloudSession, config: CloudConfig, deadline: Optional[Deadline] = None):
        self.session = session
        self.config = config
        self.deadline = deadline

    def _wait(self, describe: Callable[[], Any], predicate: Callable[[Any], bool], description: str) -> Any:
        return wait_until(
            describe,
            predicate,
            interval=self.config.wait_interval,
            timeout=self.config.wait_timeout,
            description=description,
            deadline=self.deadline,
        )

    def _wait_gone(self, describe: Callable[[], Any], description: str) -> None:
        wait_until_gone(
            describe,
            interval=self.config.wait_interval,
            timeout=self.config.wait_timeout,
            description=description,
            deadline=self.deadline,
        )

    def _retag_ec2(self, resource_ids: Iterable[str], actual: Dict[str, str], desired: Dict[str, str]) -> None:
        """Bring EC2 tags on resource_ids from actual to desired."""
        ids: List[str] = list(resource_ids)
        if not ids:
            return
        to_set, to_remove = tag_changes(actual, desired)
        ec2 = self.session.ec2
        with translate_errors(self.kind, ",".join(ids)):
            if to_set:
                ec2.create_tags(Resources=ids, Tags=[{"Key": k, "Value": v} for k, v in sorted(to_set.items())])
            if to_remove:
                ec2.delete_tags(Resources=ids, Tags=[{"Key": k} for k in to_remove])

    def _ownership_filters(self, desired) -> List[Dict[str, object]]:
        """describe_* filters matching desired's Name tag and, when tagged, its cluster."""
        filters = [name_filter(desired.name)]
        cluster = get_cluster_from_tags(desired.tags)
        if cluster:
            filters.append(cluster_filter(cluster))
        return filters
