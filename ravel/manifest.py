"""
Desired-state manifests.

A manifest is a YAML document naming a cluster and listing its resources:

    cluster: demo.example.com
    resources:
      - kind: private-network
        ip_range: 10.0.0.0/16
      - kind: instance
        name: nodes
        commercial_type: t3.medium
        image: ami-0123456789abcdef0
        count: 3
"""

from pathlib import Path
from typing import Annotated, Dict, List, Literal, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import CloudConfig
from .errors import RavelError
from .ids import gateway_name, load_balancer_name, private_network_name
from .model import DNSRecord, DesiredState, Gateway, Instance, LoadBalancer, PrivateNetwork, Volume
from .tags import TAG_INSTANCE_GROUP, cluster_tags


class ManifestError(RavelError):
    """The manifest could not be read or is invalid."""


class _Spec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    tags: Dict[str, str] = Field(default_factory=dict)


class InstanceSpec(_Spec):
    kind: Literal["instance"]
    zone: Optional[str] = None
    commercial_type: Optional[str] = None
    image: Optional[str] = None
    network: Optional[str] = None
    user_data: Optional[str] = None
    count: int = Field(1, ge=0)


class VolumeSpec(_Spec):
    kind: Literal["volume"]
    zone: Optional[str] = None
    size_gb: Optional[int] = Field(None, gt=0)
    volume_type: str = "gp3"


class PrivateNetworkSpec(_Spec):
    kind: Literal["private-network"]
    zone: Optional[str] = None
    ip_range: Optional[str] = None


class GatewaySpec(_Spec):
    kind: Literal["gateway"]
    network: Optional[str] = None


class LoadBalancerSpec(_Spec):
    kind: Literal["load-balancer"]
    network: Optional[str] = None
    scheme: Literal["internet-facing", "internal"] = "internet-facing"


class DNSRecordSpec(_Spec):
    kind: Literal["dns-record"]
    record_type: str = "A"
    ttl: int = Field(300, gt=0)
    values: List[str] = Field(default_factory=list)


ResourceSpec = Annotated[
    Union[InstanceSpec, VolumeSpec, PrivateNetworkSpec, GatewaySpec, LoadBalancerSpec, DNSRecordSpec],
    Field(discriminator="kind"),
]


class Manifest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    cluster: str = Field(min_length=1)
    resources: List[ResourceSpec] = Field(default_factory=list)


def _to_desired(spec, cluster: str, config: CloudConfig, default_network: Optional[str],
                extra_tags: Dict[str, str]) -> DesiredState:
    tags = cluster_tags(cluster, {**extra_tags, **spec.tags})
    network = getattr(spec, "network", None) or default_network
    zone = getattr(spec, "zone", None) or config.default_zone

    if isinstance(spec, InstanceSpec):
        if not spec.name:
            raise ManifestError("instance resources need a name")
        tags.setdefault(TAG_INSTANCE_GROUP, spec.name)
        return Instance(
            name=spec.name, zone=zone, commercial_type=spec.commercial_type, image=spec.image,
            network=network, user_data=spec.user_data, count=spec.count, tags=tags,
        )
    if isinstance(spec, VolumeSpec):
        if not spec.name:
            raise ManifestError("volume resources need a name")
        return Volume(name=spec.name, zone=zone, size_gb=spec.size_gb, volume_type=spec.volume_type, tags=tags)
    if isinstance(spec, PrivateNetworkSpec):
        return PrivateNetwork(name=spec.name or private_network_name(cluster), zone=zone,
                              ip_range=spec.ip_range, tags=tags)
    if isinstance(spec, GatewaySpec):
        return Gateway(name=spec.name or gateway_name(cluster), network=network, tags=tags)
    if isinstance(spec, LoadBalancerSpec):
        return LoadBalancer(name=spec.name or load_balancer_name(cluster), network=network,
                            scheme=spec.scheme, tags=tags)
    # Route 53 has no tags on record sets; ownership comes from the name.
    return DNSRecord(name=(spec.name or cluster).rstrip(".").lower(), record_type=spec.record_type,
                     ttl=spec.ttl, values=tuple(sorted(spec.values)))


def parse_manifest(data: Dict, config: Optional[CloudConfig] = None,
                   extra_tags: Optional[Dict[str, str]] = None) -> Tuple[str, List[DesiredState]]:
    """
    Turn a parsed manifest document into desired states.

    Every resource gets the cluster ownership tag; zones default to the
    configured zone and network references to the manifest's network when
    it declares exactly one. extra_tags are added to every taggable resource;
    tags set in the manifest itself win.

    Returns:
        Tuple of (cluster_name, desired_states)

    Raises:
        ManifestError: the document is invalid or names a resource twice
    """
    config = config or CloudConfig()
    try:
        manifest = Manifest.model_validate(data or {})
    except ValidationError as e:
        raise ManifestError(f"Invalid manifest: {e}") from e

    networks = [spec.name or private_network_name(manifest.cluster)
                for spec in manifest.resources if isinstance(spec, PrivateNetworkSpec)]
    default_network = networks[0] if len(networks) == 1 else None

    desired_states: List[DesiredState] = []
    seen = set()
    for spec in manifest.resources:
        desired = _to_desired(spec, manifest.cluster, config, default_network, extra_tags or {})
        if desired.key in seen:
            raise ManifestError(f"{desired.kind} '{desired.name}' is declared more than once")
        seen.add(desired.key)
        desired_states.append(desired)
    return manifest.cluster, desired_states


def load_manifest(path: Union[str, Path], config: Optional[CloudConfig] = None,
                  extra_tags: Optional[Dict[str, str]] = None) -> Tuple[str, List[DesiredState]]:
    """
    Read a YAML manifest file.

    Args:
        path: Manifest path
        config: Cloud configuration supplying default placement
        extra_tags: User tags added to every taggable resource

    Returns:
        Tuple of (cluster_name, desired_states)

    Raises:
        ManifestError: the file is missing, is not YAML or is invalid
    """
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ManifestError(f"Cannot read manifest {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ManifestError(f"Invalid YAML in {path}: {e}") from e

    if data is not None and not isinstance(data, dict):
        raise ManifestError(f"Manifest {path} must be a mapping")
    return parse_manifest(data, config, extra_tags)
