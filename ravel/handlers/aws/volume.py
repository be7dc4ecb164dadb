"""
Block volumes (EBS).
"""

import logging
from typing import Dict, List, Optional

from ...errors import NotFound
from ...model import VOLUME, ResourceHandle, Volume
from ...power import VOLUME_AVAILABLE
from ...tags import TAG_NAME, cluster_filter, from_aws_tags, tag_specifications, user_tags
from .base import AwsHandler
from .session import translate_errors

logger = logging.getLogger(__name__)

GONE_STATES = ("deleting", "deleted")


def ebs_volume_state(volume: Dict) -> str:
    """
    Collapse an EBS volume's state into "available" or its transitional state.

    A volume is available when it is detached and idle, or attached with
    every attachment settled.
    """
    state = volume.get("State", "")
    if state == "available":
        return VOLUME_AVAILABLE
    if state == "in-use":
        attachments = volume.get("Attachments", [])
        pending = [a.get("State") for a in attachments if a.get("State") != "attached"]
        if not pending:
            return VOLUME_AVAILABLE
        return pending[0]
    return state


def describe_volume(ec2, volume_id: str) -> Dict:
    """
    Raises:
        NotFound: the volume does not exist or is being deleted
    """
    with translate_errors(VOLUME, volume_id):
        volumes = ec2.describe_volumes(VolumeIds=[volume_id]).get("Volumes", [])
    if not volumes or volumes[0].get("State") in GONE_STATES:
        raise NotFound(VOLUME, volume_id)
    return volumes[0]


class VolumeHandler(AwsHandler):
    kind = VOLUME

    def _handle(self, volume: Dict) -> ResourceHandle:
        tags = from_aws_tags(volume.get("Tags"))
        return ResourceHandle(
            kind=self.kind,
            id=volume["VolumeId"],
            name=tags.get(TAG_NAME, volume["VolumeId"]),
            raw=volume,
            outputs={"state": volume.get("State")},
        )

    def _describe(self, filters) -> List[Dict]:
        paginator = self.session.ec2.get_paginator("describe_volumes")
        volumes = []
        with translate_errors(self.kind):
            for page in paginator.paginate(Filters=filters):
                volumes.extend(v for v in page.get("Volumes", []) if v.get("State") not in GONE_STATES)
        return volumes

    def list(self, cluster_name: str) -> List[ResourceHandle]:
        return [self._handle(v) for v in self._describe([cluster_filter(cluster_name)])]

    def get(self, resource_id: str) -> ResourceHandle:
        return self._handle(describe_volume(self.session.ec2, resource_id))

    def find(self, desired: Volume) -> Optional[Volume]:
        volumes = self._describe(self._ownership_filters(desired))
        if not volumes:
            return None
        if len(volumes) > 1:
            logger.warning(f"{len(volumes)} volumes named {desired.name}, using the first")
        volume = volumes[0]
        return Volume(
            name=desired.name,
            zone=volume.get("AvailabilityZone"),
            size_gb=volume.get("Size"),
            volume_type=volume.get("VolumeType"),
            tags=user_tags(from_aws_tags(volume.get("Tags"))),
            ids=(volume["VolumeId"],),
        )

    def create(self, desired: Volume) -> ResourceHandle:
        logger.info(f"Creating volume {desired.name} ({desired.size_gb} GB in {desired.zone})")
        with translate_errors(self.kind, desired.name):
            volume = self.session.ec2.create_volume(
                AvailabilityZone=desired.zone,
                Size=desired.size_gb,
                VolumeType=desired.volume_type,
                TagSpecifications=tag_specifications("volume", desired.name, desired.tags),
            )
        volume_id = volume["VolumeId"]
        self._wait(lambda: self.volume_state(volume_id), lambda s: s == VOLUME_AVAILABLE,
                   f"volume {volume_id} to be available")
        return self.get(volume_id)

    def delete(self, handle: ResourceHandle) -> None:
        logger.info(f"Deleting volume {handle.id} ({handle.name})")
        with translate_errors(self.kind, handle.id):
            self.session.ec2.delete_volume(VolumeId=handle.id)
        self._wait_gone(lambda: self.get(handle.id), f"volume {handle.id} to be deleted")

    def update(self, actual: Volume, desired: Volume, delta) -> None:
        if "tags" in delta.mutable_changes:
            self._retag_ec2(actual.ids, actual.tags, desired.tags)

    def volume_state(self, volume_id: str) -> str:
        return ebs_volume_state(describe_volume(self.session.ec2, volume_id))
