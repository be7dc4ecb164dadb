"""
Load balancers (ELBv2 network load balancers).
"""

import logging
from typing import Dict, List, Optional

from ...errors import NotFound
from ...model import LOAD_BALANCER, LoadBalancer, ResourceHandle
from ...tags import TAG_CLUSTER_NAME, TAG_NAME, from_aws_tags, tag_changes, to_aws_tags, user_tags
from .base import AwsHandler
from .network import subnet_for_network, vpc_name
from .session import translate_errors

logger = logging.getLogger(__name__)

# describe_tags accepts at most 20 ARNs per call.
TAGS_BATCH = 20


class LoadBalancerHandler(AwsHandler):
    kind = LOAD_BALANCER

    def _handle(self, lb: Dict) -> ResourceHandle:
        return ResourceHandle(
            kind=self.kind,
            id=lb["LoadBalancerArn"],
            name=lb["LoadBalancerName"],
            raw=lb,
            outputs={"address": lb.get("DNSName"), "state": lb.get("State", {}).get("Code")},
        )

    def _tags(self, arns: List[str]) -> Dict[str, Dict[str, str]]:
        elbv2 = self.session.elbv2
        result = {}
        for i in range(0, len(arns), TAGS_BATCH):
            with translate_errors(self.kind):
                response = elbv2.describe_tags(ResourceArns=arns[i:i + TAGS_BATCH])
            for desc in response.get("TagDescriptions", []):
                result[desc["ResourceArn"]] = from_aws_tags(desc.get("Tags"))
        return result

    def list(self, cluster_name: str) -> List[ResourceHandle]:
        paginator = self.session.elbv2.get_paginator("describe_load_balancers")
        lbs = []
        with translate_errors(self.kind):
            for page in paginator.paginate():
                lbs.extend(page.get("LoadBalancers", []))
        if not lbs:
            return []

        tags = self._tags([lb["LoadBalancerArn"] for lb in lbs])
        return [
            self._handle(lb) for lb in lbs
            if tags.get(lb["LoadBalancerArn"], {}).get(TAG_CLUSTER_NAME) == cluster_name
        ]

    def get(self, resource_id: str) -> ResourceHandle:
        with translate_errors(self.kind, resource_id):
            lbs = self.session.elbv2.describe_load_balancers(LoadBalancerArns=[resource_id]).get("LoadBalancers", [])
        if not lbs:
            raise NotFound(self.kind, resource_id)
        return self._handle(lbs[0])

    def find(self, desired: LoadBalancer) -> Optional[LoadBalancer]:
        try:
            with translate_errors(self.kind, desired.name):
                lbs = self.session.elbv2.describe_load_balancers(Names=[desired.name]).get("LoadBalancers", [])
        except NotFound:
            return None
        if not lbs:
            return None
        lb = lbs[0]
        arn = lb["LoadBalancerArn"]
        return LoadBalancer(
            name=desired.name,
            network=vpc_name(self.session.ec2, lb["VpcId"]) if lb.get("VpcId") else None,
            scheme=lb.get("Scheme"),
            tags=user_tags(self._tags([arn]).get(arn, {})),
            ids=(arn,),
            address=lb.get("DNSName"),
        )

    def create(self, desired: LoadBalancer) -> ResourceHandle:
        subnet = subnet_for_network(self.session.ec2, desired.network)
        all_tags = dict(desired.tags)
        all_tags[TAG_NAME] = desired.name

        logger.info(f"Creating load balancer {desired.name} in {subnet['SubnetId']}")
        with translate_errors(self.kind, desired.name):
            lb = self.session.elbv2.create_load_balancer(
                Name=desired.name,
                Subnets=[subnet["SubnetId"]],
                Scheme=desired.scheme,
                Type="network",
                Tags=to_aws_tags(all_tags),
            )["LoadBalancers"][0]

        arn = lb["LoadBalancerArn"]
        self._wait(lambda: self.get(arn).outputs["state"], lambda s: s == "active",
                   f"load balancer {desired.name} to be active")
        return self.get(arn)

    def delete(self, handle: ResourceHandle) -> None:
        logger.info(f"Deleting load balancer {handle.name}")
        with translate_errors(self.kind, handle.id):
            self.session.elbv2.delete_load_balancer(LoadBalancerArn=handle.id)
        self._wait_gone(lambda: self.get(handle.id), f"load balancer {handle.name} to be deleted")
        # The NLB's interfaces outlive it and keep its subnet in use.
        self._wait(lambda: self._interfaces(handle.name), lambda interfaces: not interfaces,
                   f"interfaces of load balancer {handle.name} to be released")

    def _interfaces(self, name: str) -> List[Dict]:
        with translate_errors(self.kind, name):
            return self.session.ec2.describe_network_interfaces(
                Filters=[{"Name": "description", "Values": [f"ELB net/{name}/*"]}],
            ).get("NetworkInterfaces", [])

    def update(self, actual: LoadBalancer, desired: LoadBalancer, delta) -> None:
        if "tags" not in delta.mutable_changes:
            return
        arn = actual.ids[0]
        to_set, to_remove = tag_changes(actual.tags, desired.tags)
        elbv2 = self.session.elbv2
        with translate_errors(self.kind, arn):
            if to_set:
                elbv2.add_tags(ResourceArns=[arn], Tags=to_aws_tags(to_set))
            if to_remove:
                elbv2.remove_tags(ResourceArns=[arn], TagKeys=to_remove)
