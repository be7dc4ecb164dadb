"""
DNS records (Route 53 record sets) in the configured hosted zone.

Record IDs are "<fqdn>|<type>", e.g. "api.example.com|A". A record belongs
to a cluster when its name is the cluster name or a sub-domain of it.
"""

import logging
from typing import Dict, List, Optional

from ...errors import NotFound
from ...model import DNS_RECORD, DNSRecord, ResourceHandle
from .base import AwsHandler
from .session import translate_errors

logger = logging.getLogger(__name__)

GOSSIP_SUFFIX = ".k8s.local"
# Zone apex records are managed with the zone, never by a cluster.
SKIPPED_TYPES = ("NS", "SOA")


def normalize_name(name: str) -> str:
    """Lower-case, strip the trailing dot and undo Route 53's escaping of '*'."""
    return name.replace("\\052", "*").rstrip(".").lower()


def is_gossip_cluster(cluster_name: str) -> bool:
    return normalize_name(cluster_name).endswith(GOSSIP_SUFFIX)


def owned_by_cluster(record_name: str, cluster_name: str) -> bool:
    """
    Check whether a record belongs to a cluster.

    Args:
        record_name: Record name as Route 53 returns it
        cluster_name: Cluster name

    Returns:
        True when the name equals the cluster name or ends with "." + cluster name
    """
    if is_gossip_cluster(cluster_name):
        return False
    name = normalize_name(record_name)
    cluster = normalize_name(cluster_name)
    return name == cluster or name.endswith("." + cluster)


def record_id(name: str, record_type: str) -> str:
    return f"{normalize_name(name)}|{record_type}"


def split_record_id(resource_id: str):
    name, sep, record_type = resource_id.rpartition("|")
    if not sep or not name or not record_type:
        raise ValueError(f"Invalid DNS record id: {resource_id}")
    return name, record_type


class DNSRecordHandler(AwsHandler):
    kind = DNS_RECORD

    def __init__(self, session, config, deadline=None):
        super().__init__(session, config, deadline)
        self._zone_id: Optional[str] = config.hosted_zone_id

    @property
    def zone_id(self) -> str:
        """Hosted zone ID, looked up by name on first use."""
        if self._zone_id is None:
            self._zone_id = self._lookup_zone(self.config.dns_zone)
        return self._zone_id

    def _lookup_zone(self, zone_name: str) -> str:
        wanted = normalize_name(zone_name)
        with translate_errors("hosted-zone", zone_name):
            zones = self.session.route53.list_hosted_zones_by_name(DNSName=wanted).get("HostedZones", [])
        for zone in zones:
            if normalize_name(zone["Name"]) == wanted:
                zone_id = zone["Id"].split("/")[-1]
                logger.debug(f"Resolved hosted zone {zone_name} to {zone_id}")
                return zone_id
        raise NotFound("hosted-zone", zone_name)

    def _handle(self, rrset: Dict) -> ResourceHandle:
        name = normalize_name(rrset["Name"])
        return ResourceHandle(
            kind=self.kind,
            id=record_id(name, rrset["Type"]),
            name=name,
            raw=rrset,
            outputs={"values": [r["Value"] for r in rrset.get("ResourceRecords", [])]},
        )

    def _change(self, action: str, rrset: Dict) -> None:
        route53 = self.session.route53
        rid = record_id(rrset["Name"], rrset["Type"])
        logger.info(f"{action} DNS record {rid}")
        with translate_errors(self.kind, rid):
            change = route53.change_resource_record_sets(
                HostedZoneId=self.zone_id,
                ChangeBatch={"Changes": [{"Action": action, "ResourceRecordSet": rrset}]},
            )["ChangeInfo"]
        self._wait_insync(change["Id"])

    def _wait_insync(self, change_id: str) -> None:
        def describe():
            with translate_errors("dns-change", change_id):
                return self.session.route53.get_change(Id=change_id)["ChangeInfo"]["Status"]

        self._wait(describe, lambda s: s == "INSYNC", f"DNS change {change_id} to propagate")

    def list(self, cluster_name: str) -> List[ResourceHandle]:
        if is_gossip_cluster(cluster_name):
            logger.debug(f"Cluster {cluster_name} uses gossip DNS, no records to list")
            return []

        paginator = self.session.route53.get_paginator("list_resource_record_sets")
        handles = []
        with translate_errors(self.kind):
            for page in paginator.paginate(HostedZoneId=self.zone_id):
                for rrset in page.get("ResourceRecordSets", []):
                    if rrset["Type"] in SKIPPED_TYPES:
                        continue
                    if owned_by_cluster(rrset["Name"], cluster_name):
                        handles.append(self._handle(rrset))
        return handles

    def get(self, resource_id: str) -> ResourceHandle:
        name, record_type = split_record_id(resource_id)
        with translate_errors(self.kind, resource_id):
            rrsets = self.session.route53.list_resource_record_sets(
                HostedZoneId=self.zone_id,
                StartRecordName=name,
                StartRecordType=record_type,
                MaxItems="1",
            ).get("ResourceRecordSets", [])
        for rrset in rrsets:
            if normalize_name(rrset["Name"]) == name and rrset["Type"] == record_type:
                return self._handle(rrset)
        raise NotFound(self.kind, resource_id)

    def find(self, desired: DNSRecord) -> Optional[DNSRecord]:
        try:
            handle = self.get(record_id(desired.name, desired.record_type))
        except NotFound:
            return None
        return DNSRecord(
            name=desired.name,
            record_type=handle.raw["Type"],
            ttl=handle.raw.get("TTL"),
            values=tuple(sorted(handle.outputs["values"])),
            ids=(handle.id,),
        )

    def _rrset(self, desired: DNSRecord) -> Dict:
        return {
            "Name": desired.name,
            "Type": desired.record_type,
            "TTL": desired.ttl,
            "ResourceRecords": [{"Value": v} for v in desired.values],
        }

    def create(self, desired: DNSRecord) -> ResourceHandle:
        self._change("UPSERT", self._rrset(desired))
        return self.get(record_id(desired.name, desired.record_type))

    def update(self, actual: DNSRecord, desired: DNSRecord, delta) -> None:
        self._change("UPSERT", self._rrset(desired))

    def delete(self, handle: ResourceHandle) -> None:
        # DELETE must match the live record set exactly.
        rrset = handle.raw if handle.raw is not None else self.get(handle.id).raw
        self._change("DELETE", rrset)
