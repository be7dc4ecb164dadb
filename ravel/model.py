"""
Desired/actual state value objects, deltas and resource descriptors.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, List, Optional, Tuple


# Resource kinds
INSTANCE = "instance"
VOLUME = "volume"
PRIVATE_NETWORK = "private-network"
GATEWAY = "gateway"
LOAD_BALANCER = "load-balancer"
DNS_RECORD = "dns-record"

ALL_KINDS = (INSTANCE, VOLUME, PRIVATE_NETWORK, GATEWAY, LOAD_BALANCER, DNS_RECORD)

# Field roles
IMMUTABLE = "immutable"
MUTABLE = "mutable"
OBSERVED = "observed"


def immutable(**kwargs):
    """A field that is set once at creation."""
    return field(metadata={"role": IMMUTABLE}, **kwargs)


def mutable(**kwargs):
    """A field that can be changed on a live resource."""
    return field(metadata={"role": MUTABLE}, **kwargs)


def observed(**kwargs):
    """A cloud-generated value (IDs, addresses); never diffed."""
    kwargs.setdefault("compare", False)
    return field(metadata={"role": OBSERVED}, **kwargs)


class FieldChange(str, Enum):
    UNCHANGED = "unchanged"
    MUTABLE_CHANGE = "mutable-change"
    IMMUTABLE_CHANGE = "immutable-change"


@dataclass(frozen=True)
class DesiredState:
    """
    Base for per-kind desired/actual state.

    The same class describes what we want (built by a model builder or the
    manifest loader) and what a handler's find() observed. Instances are
    never mutated after creation.
    """
    kind: ClassVar[str] = ""
    required: ClassVar[Tuple[str, ...]] = ("name",)

    name: str = immutable()

    @property
    def key(self) -> Tuple[str, str]:
        return (self.kind, self.name)

    @classmethod
    def fields_with_role(cls, role: str) -> List[str]:
        return [f.name for f in fields(cls) if f.metadata.get("role") == role]

    @classmethod
    def immutable_fields(cls) -> List[str]:
        return cls.fields_with_role(IMMUTABLE)

    @classmethod
    def mutable_fields(cls) -> List[str]:
        return cls.fields_with_role(MUTABLE)

    def observed_values(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.fields_with_role(OBSERVED)}


@dataclass(frozen=True)
class Instance(DesiredState):
    """A group of `count` identical servers sharing one name."""
    kind: ClassVar[str] = INSTANCE
    required: ClassVar[Tuple[str, ...]] = ("name", "zone", "commercial_type", "image")

    zone: Optional[str] = immutable(default=None)
    commercial_type: Optional[str] = immutable(default=None)
    image: Optional[str] = immutable(default=None)
    network: Optional[str] = immutable(default=None)
    user_data: Optional[str] = immutable(default=None, repr=False)
    count: int = mutable(default=1)
    tags: Dict[str, str] = mutable(default_factory=dict)
    ids: Tuple[str, ...] = observed(default=())


@dataclass(frozen=True)
class Volume(DesiredState):
    kind: ClassVar[str] = VOLUME
    required: ClassVar[Tuple[str, ...]] = ("name", "zone", "size_gb")

    zone: Optional[str] = immutable(default=None)
    size_gb: Optional[int] = immutable(default=None)
    volume_type: str = immutable(default="gp3")
    tags: Dict[str, str] = mutable(default_factory=dict)
    ids: Tuple[str, ...] = observed(default=())


@dataclass(frozen=True)
class PrivateNetwork(DesiredState):
    kind: ClassVar[str] = PRIVATE_NETWORK
    required: ClassVar[Tuple[str, ...]] = ("name", "zone", "ip_range")

    zone: Optional[str] = immutable(default=None)
    ip_range: Optional[str] = immutable(default=None)
    tags: Dict[str, str] = mutable(default_factory=dict)
    ids: Tuple[str, ...] = observed(default=())
    subnet_id: Optional[str] = observed(default=None)


@dataclass(frozen=True)
class Gateway(DesiredState):
    kind: ClassVar[str] = GATEWAY
    required: ClassVar[Tuple[str, ...]] = ("name", "network")

    network: Optional[str] = immutable(default=None)
    tags: Dict[str, str] = mutable(default_factory=dict)
    ids: Tuple[str, ...] = observed(default=())


@dataclass(frozen=True)
class LoadBalancer(DesiredState):
    kind: ClassVar[str] = LOAD_BALANCER
    required: ClassVar[Tuple[str, ...]] = ("name", "network")

    network: Optional[str] = immutable(default=None)
    scheme: str = immutable(default="internet-facing")
    tags: Dict[str, str] = mutable(default_factory=dict)
    ids: Tuple[str, ...] = observed(default=())
    address: Optional[str] = observed(default=None)


@dataclass(frozen=True)
class DNSRecord(DesiredState):
    """A record set; name is the fully-qualified record name."""
    kind: ClassVar[str] = DNS_RECORD

    record_type: str = immutable(default="A")
    ttl: int = mutable(default=300)
    values: Tuple[str, ...] = mutable(default=())
    ids: Tuple[str, ...] = observed(default=())


DESIRED_TYPES = {cls.kind: cls for cls in (Instance, Volume, PrivateNetwork, Gateway, LoadBalancer, DNSRecord)}


@dataclass(frozen=True)
class FieldDelta:
    name: str
    actual: Any
    desired: Any
    change: FieldChange


@dataclass(frozen=True)
class Delta:
    """Field-by-field comparison of an actual and a desired state."""
    fields: Dict[str, FieldDelta]

    def __getitem__(self, name: str) -> FieldDelta:
        return self.fields[name]

    def _names(self, change: FieldChange) -> List[str]:
        return [name for name, d in self.fields.items() if d.change == change]

    @property
    def immutable_changes(self) -> List[str]:
        return self._names(FieldChange.IMMUTABLE_CHANGE)

    @property
    def mutable_changes(self) -> List[str]:
        return self._names(FieldChange.MUTABLE_CHANGE)

    @property
    def has_mutable_changes(self) -> bool:
        return bool(self.mutable_changes)

    @property
    def is_empty(self) -> bool:
        return not self.immutable_changes and not self.mutable_changes

    def without(self, *names: str) -> "Delta":
        return Delta({k: v for k, v in self.fields.items() if k not in names})


def compute_delta(actual: DesiredState, desired: DesiredState) -> Delta:
    """
    Compare actual and desired field by field.

    Observed fields are skipped. An immutable field the desired state leaves
    unset (None) is not a change: it means "whatever the cloud picked".
    """
    if type(actual) is not type(desired):
        raise TypeError(f"cannot diff {type(actual).__name__} against {type(desired).__name__}")

    result: Dict[str, FieldDelta] = {}
    for f in fields(desired):
        role = f.metadata.get("role")
        if role not in (IMMUTABLE, MUTABLE):
            continue
        a = getattr(actual, f.name)
        d = getattr(desired, f.name)
        if a == d or (role == IMMUTABLE and d is None):
            change = FieldChange.UNCHANGED
        elif role == IMMUTABLE:
            change = FieldChange.IMMUTABLE_CHANGE
        else:
            change = FieldChange.MUTABLE_CHANGE
        result[f.name] = FieldDelta(f.name, a, d, change)
    return Delta(result)


@dataclass
class ResourceHandle:
    """What a handler hands back from list/get/create."""
    kind: str
    id: str
    name: str
    raw: Any = field(default=None, repr=False, compare=False)
    outputs: Dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class ResourceDescriptor:
    """
    One live resource in a teardown inventory.

    blocks holds the kinds that must not be deleted while this resource
    exists. The inverse (blocked-by) is derived from the dependency table
    by the inventory, not stored here.
    """
    kind: str
    id: str
    name: str
    blocks: FrozenSet[str] = frozenset()
    handle: Optional[ResourceHandle] = field(default=None, repr=False, compare=False)

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.id}"
