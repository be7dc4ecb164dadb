"""
Gateways: internet gateways attached to a private network's VPC.
"""

import logging
from typing import Dict, List, Optional

from ...errors import NotFound
from ...model import GATEWAY, PRIVATE_NETWORK, Gateway, ResourceHandle
from ...tags import TAG_NAME, cluster_filter, from_aws_tags, tag_specifications, user_tags
from .base import AwsHandler
from .network import lookup_vpc, vpc_name
from .session import translate_errors

logger = logging.getLogger(__name__)


class GatewayHandler(AwsHandler):
    kind = GATEWAY

    def _handle(self, gateway: Dict) -> ResourceHandle:
        tags = from_aws_tags(gateway.get("Tags"))
        attachments = [a["VpcId"] for a in gateway.get("Attachments", [])]
        return ResourceHandle(
            kind=self.kind,
            id=gateway["InternetGatewayId"],
            name=tags.get(TAG_NAME, gateway["InternetGatewayId"]),
            raw=gateway,
            outputs={"vpc_ids": attachments},
        )

    def _describe(self, **kwargs) -> List[Dict]:
        with translate_errors(self.kind, ",".join(kwargs.get("InternetGatewayIds", [])) or None):
            return self.session.ec2.describe_internet_gateways(**kwargs).get("InternetGateways", [])

    def list(self, cluster_name: str) -> List[ResourceHandle]:
        return [self._handle(g) for g in self._describe(Filters=[cluster_filter(cluster_name)])]

    def get(self, resource_id: str) -> ResourceHandle:
        gateways = self._describe(InternetGatewayIds=[resource_id])
        if not gateways:
            raise NotFound(self.kind, resource_id)
        return self._handle(gateways[0])

    def find(self, desired: Gateway) -> Optional[Gateway]:
        gateways = self._describe(Filters=self._ownership_filters(desired))
        if not gateways:
            return None
        gateway = gateways[0]
        attachments = gateway.get("Attachments", [])
        if not attachments:
            # Created but never attached; create() picks it up again.
            logger.info(f"Gateway {desired.name} is not attached yet, treating it as absent")
            return None
        return Gateway(
            name=desired.name,
            network=vpc_name(self.session.ec2, attachments[0]["VpcId"]),
            tags=user_tags(from_aws_tags(gateway.get("Tags"))),
            ids=(gateway["InternetGatewayId"],),
        )

    def create(self, desired: Gateway) -> ResourceHandle:
        ec2 = self.session.ec2
        vpc = lookup_vpc(ec2, desired.network)
        if vpc is None:
            raise NotFound(PRIVATE_NETWORK, desired.network)

        existing = [g for g in self._describe(Filters=self._ownership_filters(desired))
                    if not g.get("Attachments")]
        if existing:
            gateway_id = existing[0]["InternetGatewayId"]
            logger.info(f"Reusing unattached gateway {gateway_id} for {desired.name}")
        else:
            logger.info(f"Creating gateway {desired.name}")
            with translate_errors(self.kind, desired.name):
                gateway_id = ec2.create_internet_gateway(
                    TagSpecifications=tag_specifications("internet-gateway", desired.name, desired.tags),
                )["InternetGateway"]["InternetGatewayId"]

        logger.info(f"Attaching gateway {gateway_id} to {vpc['VpcId']}")
        with translate_errors(self.kind, gateway_id):
            ec2.attach_internet_gateway(InternetGatewayId=gateway_id, VpcId=vpc["VpcId"])
        return self.get(gateway_id)

    def delete(self, handle: ResourceHandle) -> None:
        ec2 = self.session.ec2
        current = self.get(handle.id)
        for vpc_id in current.outputs["vpc_ids"]:
            logger.info(f"Detaching gateway {handle.id} from {vpc_id}")
            with translate_errors(self.kind, handle.id):
                ec2.detach_internet_gateway(InternetGatewayId=handle.id, VpcId=vpc_id)

        logger.info(f"Deleting gateway {handle.id} ({handle.name})")
        with translate_errors(self.kind, handle.id):
            ec2.delete_internet_gateway(InternetGatewayId=handle.id)
        self._wait_gone(lambda: self.get(handle.id), f"gateway {handle.id} to be deleted")

    def update(self, actual: Gateway, desired: Gateway, delta) -> None:
        if "tags" in delta.mutable_changes:
            self._retag_ec2(actual.ids, actual.tags, desired.tags)
