"""
Compute instances (EC2), including the power-control capability.

An Instance desired state describes a group: every server carrying the
group's Name tag is a member.
"""

import logging
from typing import Dict, List, Optional

from ...errors import NotFound, UnsupportedOperation
from ...model import INSTANCE, Instance, ResourceHandle
from ...power import PowerAction, PowerState, reach_power_state
from ...tags import TAG_NAME, cluster_filter, from_aws_tags, tag_specifications, user_tags
from ..base import PowerControl
from .base import AwsHandler
from .network import subnet_for_network
from .session import translate_errors
from .volume import describe_volume, ebs_volume_state

logger = logging.getLogger(__name__)

GONE_STATES = ("shutting-down", "terminated")
LIVE_STATES = ["pending", "running", "stopping", "stopped"]
HIBERNATE_REASON = "Client.UserInitiatedHibernate"


class InstanceHandler(AwsHandler, PowerControl):
    kind = INSTANCE
    capabilities = (PowerControl,)

    def _handle(self, instance: Dict) -> ResourceHandle:
        tags = from_aws_tags(instance.get("Tags"))
        return ResourceHandle(
            kind=self.kind,
            id=instance["InstanceId"],
            name=tags.get(TAG_NAME, instance["InstanceId"]),
            raw=instance,
            outputs={
                "private_ip": instance.get("PrivateIpAddress"),
                "public_ip": instance.get("PublicIpAddress"),
                "state": instance.get("State", {}).get("Name"),
            },
        )

    def _describe(self, filters) -> List[Dict]:
        filters = list(filters) + [{"Name": "instance-state-name", "Values": LIVE_STATES}]
        paginator = self.session.ec2.get_paginator("describe_instances")
        instances = []
        with translate_errors(self.kind):
            for page in paginator.paginate(Filters=filters):
                for reservation in page.get("Reservations", []):
                    instances.extend(reservation.get("Instances", []))
        return instances

    def _instances_by_id(self, instance_id: str) -> List[Dict]:
        with translate_errors(self.kind, instance_id):
            response = self.session.ec2.describe_instances(InstanceIds=[instance_id])
        return [i for r in response.get("Reservations", []) for i in r.get("Instances", [])]

    def _instance(self, instance_id: str) -> Dict:
        for instance in self._instances_by_id(instance_id):
            if instance.get("State", {}).get("Name") not in GONE_STATES:
                return instance
        raise NotFound(self.kind, instance_id)

    def _termination_state(self, instance_id: str) -> str:
        """
        Raw state of an instance being terminated.

        shutting-down still holds the instance's volumes and interfaces, so
        only terminated counts as gone here.
        """
        for instance in self._instances_by_id(instance_id):
            state = instance.get("State", {}).get("Name", "")
            if state != "terminated":
                return state
        raise NotFound(self.kind, instance_id)

    def list(self, cluster_name: str) -> List[ResourceHandle]:
        return [self._handle(i) for i in self._describe([cluster_filter(cluster_name)])]

    def get(self, resource_id: str) -> ResourceHandle:
        return self._handle(self._instance(resource_id))

    def find(self, desired: Instance) -> Optional[Instance]:
        instances = self._describe(self._ownership_filters(desired))
        if not instances:
            return None
        instances.sort(key=lambda i: i["InstanceId"])
        first = instances[0]
        # Image, network and user data are not reported back in a comparable
        # form, so the group keeps what was asked for.
        return Instance(
            name=desired.name,
            zone=first.get("Placement", {}).get("AvailabilityZone"),
            commercial_type=first.get("InstanceType"),
            image=first.get("ImageId"),
            network=desired.network,
            user_data=desired.user_data,
            count=len(instances),
            tags=user_tags(from_aws_tags(first.get("Tags"))),
            ids=tuple(i["InstanceId"] for i in instances),
        )

    def create(self, desired: Instance) -> ResourceHandle:
        """
        Launch one member of the group and wait until it is running.

        The reconciler calls this once per missing member.
        """
        params = {
            "ImageId": desired.image,
            "InstanceType": desired.commercial_type,
            "MinCount": 1,
            "MaxCount": 1,
            "Placement": {"AvailabilityZone": desired.zone},
            "TagSpecifications": (
                tag_specifications("instance", desired.name, desired.tags)
                + tag_specifications("volume", desired.name, desired.tags)
            ),
        }
        if desired.network:
            params["SubnetId"] = subnet_for_network(self.session.ec2, desired.network)["SubnetId"]
        if desired.user_data:
            params["UserData"] = desired.user_data

        logger.info(f"Launching {desired.commercial_type} instance for {desired.name} in {desired.zone}")
        with translate_errors(self.kind, desired.name):
            response = self.session.ec2.run_instances(**params)
        instance_id = response["Instances"][0]["InstanceId"]

        self._wait(lambda: self.power_state(instance_id), lambda s: s == PowerState.RUNNING.value,
                   f"instance {instance_id} to be running")
        return self.get(instance_id)

    def delete(self, handle: ResourceHandle) -> None:
        """Stop the server, terminate it and wait until it is gone."""
        reach_power_state(
            self,
            handle.id,
            PowerState.STOPPED,
            interval=self.config.wait_interval,
            timeout=self.config.wait_timeout,
            deadline=self.deadline,
        )
        logger.info(f"Terminating instance {handle.id} ({handle.name})")
        with translate_errors(self.kind, handle.id):
            self.session.ec2.terminate_instances(InstanceIds=[handle.id])
        self._wait_gone(lambda: self._termination_state(handle.id), f"instance {handle.id} to be terminated")

    def update(self, actual: Instance, desired: Instance, delta) -> None:
        if "tags" in delta.mutable_changes:
            self._retag_ec2(actual.ids, actual.tags, desired.tags)

    # Power control

    def power_state(self, server_id: str) -> str:
        instance = self._instance(server_id)
        state = instance.get("State", {}).get("Name", "")
        if state == "stopped" and instance.get("StateReason", {}).get("Code") == HIBERNATE_REASON:
            return PowerState.STOPPED_IN_PLACE.value
        return state

    def power_action(self, server_id: str, action) -> None:
        action = PowerAction(action)
        ec2 = self.session.ec2
        with translate_errors(self.kind, server_id):
            if action == PowerAction.POWER_ON:
                ec2.start_instances(InstanceIds=[server_id])
            elif action == PowerAction.POWER_OFF:
                ec2.stop_instances(InstanceIds=[server_id])
            else:
                ec2.stop_instances(InstanceIds=[server_id], Hibernate=True)

    def attached_volumes(self, server_id: str) -> List[str]:
        instance = self._instance(server_id)
        return [
            mapping["Ebs"]["VolumeId"]
            for mapping in instance.get("BlockDeviceMappings", [])
            if "Ebs" in mapping
        ]

    def volume_state(self, volume_id: str) -> str:
        return ebs_volume_state(describe_volume(self.session.ec2, volume_id))

    def detach_instance(self, server_id: str) -> None:
        raise UnsupportedOperation(self.kind, "detach_instance")

    def deregister_instance(self, server_id: str) -> None:
        raise UnsupportedOperation(self.kind, "deregister_instance")
