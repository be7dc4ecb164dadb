"""
Private networks: a VPC plus the one subnet servers and load balancers use.
"""

import logging
from typing import Dict, List, Optional

from ...errors import NotFound
from ...model import PRIVATE_NETWORK, PrivateNetwork, ResourceHandle
from ...tags import TAG_NAME, cluster_filter, from_aws_tags, name_filter, tag_specifications, user_tags
from .base import AwsHandler
from .session import translate_errors

logger = logging.getLogger(__name__)


def lookup_vpc(ec2, name: str) -> Optional[Dict]:
    """Find a VPC by its Name tag."""
    with translate_errors(PRIVATE_NETWORK, name):
        vpcs = ec2.describe_vpcs(Filters=[name_filter(name)]).get("Vpcs", [])
    return vpcs[0] if vpcs else None


def lookup_subnets(ec2, vpc_id: str) -> List[Dict]:
    with translate_errors(PRIVATE_NETWORK, vpc_id):
        return ec2.describe_subnets(Filters=[{"Name": "vpc-id", "Values": [vpc_id]}]).get("Subnets", [])


def subnet_for_network(ec2, name: str) -> Dict:
    """
    Resolve a private network name to its subnet.

    Raises:
        NotFound: the network or its subnet does not exist yet
    """
    vpc = lookup_vpc(ec2, name)
    if vpc is None:
        raise NotFound(PRIVATE_NETWORK, name)
    subnets = lookup_subnets(ec2, vpc["VpcId"])
    if not subnets:
        raise NotFound(PRIVATE_NETWORK, name)
    return subnets[0]


def vpc_name(ec2, vpc_id: str) -> Optional[str]:
    """Name tag of a VPC, or None."""
    with translate_errors(PRIVATE_NETWORK, vpc_id):
        vpcs = ec2.describe_vpcs(VpcIds=[vpc_id]).get("Vpcs", [])
    if not vpcs:
        return None
    return from_aws_tags(vpcs[0].get("Tags")).get(TAG_NAME)


class PrivateNetworkHandler(AwsHandler):
    kind = PRIVATE_NETWORK

    def _handle(self, vpc: Dict) -> ResourceHandle:
        tags = from_aws_tags(vpc.get("Tags"))
        return ResourceHandle(
            kind=self.kind,
            id=vpc["VpcId"],
            name=tags.get(TAG_NAME, vpc["VpcId"]),
            raw=vpc,
            outputs={"cidr": vpc.get("CidrBlock")},
        )

    def list(self, cluster_name: str) -> List[ResourceHandle]:
        ec2 = self.session.ec2
        with translate_errors(self.kind):
            vpcs = ec2.describe_vpcs(Filters=[cluster_filter(cluster_name)]).get("Vpcs", [])
        return [self._handle(vpc) for vpc in vpcs]

    def get(self, resource_id: str) -> ResourceHandle:
        with translate_errors(self.kind, resource_id):
            vpcs = self.session.ec2.describe_vpcs(VpcIds=[resource_id]).get("Vpcs", [])
        if not vpcs:
            raise NotFound(self.kind, resource_id)
        return self._handle(vpcs[0])

    def find(self, desired: PrivateNetwork) -> Optional[PrivateNetwork]:
        ec2 = self.session.ec2
        with translate_errors(self.kind, desired.name):
            vpcs = ec2.describe_vpcs(Filters=self._ownership_filters(desired)).get("Vpcs", [])
        if not vpcs:
            return None
        vpc = vpcs[0]
        subnets = lookup_subnets(ec2, vpc["VpcId"])
        if not subnets:
            # A VPC without its subnet is a create that did not finish.
            logger.info(f"Private network {desired.name} has no subnet yet, treating it as absent")
            return None
        subnet = subnets[0]
        return PrivateNetwork(
            name=desired.name,
            zone=subnet.get("AvailabilityZone"),
            ip_range=vpc.get("CidrBlock"),
            tags=user_tags(from_aws_tags(vpc.get("Tags"))),
            ids=(vpc["VpcId"],),
            subnet_id=subnet["SubnetId"],
        )

    def create(self, desired: PrivateNetwork) -> ResourceHandle:
        ec2 = self.session.ec2
        vpc = lookup_vpc(ec2, desired.name)
        if vpc is None:
            logger.info(f"Creating VPC {desired.name} ({desired.ip_range})")
            with translate_errors(self.kind, desired.name):
                vpc = ec2.create_vpc(
                    CidrBlock=desired.ip_range,
                    TagSpecifications=tag_specifications("vpc", desired.name, desired.tags),
                )["Vpc"]
        else:
            logger.info(f"Reusing VPC {vpc['VpcId']} for {desired.name}")

        vpc_id = vpc["VpcId"]
        self._wait(lambda: self.get(vpc_id).raw.get("State"), lambda s: s == "available",
                   f"VPC {vpc_id} to be available")

        logger.info(f"Creating subnet for {desired.name} in {desired.zone}")
        with translate_errors(self.kind, vpc_id):
            subnet = ec2.create_subnet(
                VpcId=vpc_id,
                CidrBlock=desired.ip_range,
                AvailabilityZone=desired.zone,
                TagSpecifications=tag_specifications("subnet", desired.name, desired.tags),
            )["Subnet"]

        handle = self.get(vpc_id)
        handle.outputs["subnet_id"] = subnet["SubnetId"]
        return handle

    def delete(self, handle: ResourceHandle) -> None:
        ec2 = self.session.ec2
        for subnet in lookup_subnets(ec2, handle.id):
            subnet_id = subnet["SubnetId"]
            logger.info(f"Deleting subnet {subnet_id} of {handle.name}")
            try:
                with translate_errors(self.kind, subnet_id):
                    ec2.delete_subnet(SubnetId=subnet_id)
            except NotFound:
                logger.warning(f"Subnet {subnet_id} already gone")

        logger.info(f"Deleting VPC {handle.id} ({handle.name})")
        with translate_errors(self.kind, handle.id):
            ec2.delete_vpc(VpcId=handle.id)
        self._wait_gone(lambda: self.get(handle.id), f"VPC {handle.id} to be deleted")

    def update(self, actual: PrivateNetwork, desired: PrivateNetwork, delta) -> None:
        if "tags" in delta.mutable_changes:
            ids = list(actual.ids) + ([actual.subnet_id] if actual.subnet_id else [])
            self._retag_ec2(ids, actual.tags, desired.tags)
