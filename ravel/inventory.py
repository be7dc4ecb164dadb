"""
Cluster inventory: every live resource tagged for a cluster, with the
static dependency metadata the teardown scheduler needs.
"""

import logging
from collections import abc
from typing import Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional

from .handlers.registry import HandlerRegistry
from .model import GATEWAY, INSTANCE, LOAD_BALANCER, PRIVATE_NETWORK, VOLUME, ResourceDescriptor

logger = logging.getLogger(__name__)


class DependencyTable:
    """
    Which kinds block the deletion of which.

    blocks[A] = {B, ...} means no B may be deleted while any A exists.
    Kinds absent from the table block nothing and are blocked by nothing.
    """

    def __init__(self, blocks: Mapping[str, Iterable[str]]):
        self._blocks: Dict[str, FrozenSet[str]] = {kind: frozenset(b) for kind, b in blocks.items()}
        blocked_by: Dict[str, set] = {}
        for kind, targets in self._blocks.items():
            for target in targets:
                blocked_by.setdefault(target, set()).add(kind)
        self._blocked_by = {kind: frozenset(b) for kind, b in blocked_by.items()}

    def blocks(self, kind: str) -> FrozenSet[str]:
        return self._blocks.get(kind, frozenset())

    def blocked_by(self, kind: str) -> FrozenSet[str]:
        return self._blocked_by.get(kind, frozenset())

    def with_blocks(self, kind: str, *targets: str) -> "DependencyTable":
        """A copy of the table with extra targets blocked by kind."""
        merged = {k: set(v) for k, v in self._blocks.items()}
        merged.setdefault(kind, set()).update(targets)
        return DependencyTable(merged)


DEFAULT_DEPENDENCIES = DependencyTable({
    INSTANCE: {VOLUME, PRIVATE_NETWORK},
    GATEWAY: {PRIVATE_NETWORK},
})

# On AWS a network load balancer keeps interfaces in its VPC's subnet, and
# an internet gateway cannot be detached while instances or load balancers
# still map public addresses through it.
AWS_DEPENDENCIES = (
    DEFAULT_DEPENDENCIES
    .with_blocks(INSTANCE, GATEWAY)
    .with_blocks(LOAD_BALANCER, PRIVATE_NETWORK, GATEWAY)
)


class Inventory(abc.Mapping):
    """
    Immutable snapshot of a cluster's live resources, keyed "<kind>:<id>".
    """

    def __init__(self, descriptors: Iterable[ResourceDescriptor] = (),
                 dependencies: DependencyTable = DEFAULT_DEPENDENCIES):
        self._items: Dict[str, ResourceDescriptor] = {}
        for descriptor in descriptors:
            self._items[descriptor.key] = descriptor
        self.dependencies = dependencies

    def __getitem__(self, key: str) -> ResourceDescriptor:
        return self._items[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self):
        return f"Inventory({sorted(self._items)})"

    def kinds(self) -> FrozenSet[str]:
        """Kinds with at least one live resource."""
        return frozenset(d.kind for d in self._items.values())

    def unresolved_blockers(self, descriptor: ResourceDescriptor) -> FrozenSet[str]:
        """Kinds blocking descriptor that still have a live resource here."""
        return self.dependencies.blocked_by(descriptor.kind) & self.kinds()

    def deletable(self) -> List[ResourceDescriptor]:
        """Descriptors with no unresolved blockers, sorted by key."""
        return [self._items[key] for key in sorted(self._items)
                if not self.unresolved_blockers(self._items[key])]

    def blocked(self) -> Dict[str, FrozenSet[str]]:
        """Every remaining key mapped to its unresolved blocker kinds."""
        return {key: self.unresolved_blockers(d) for key, d in sorted(self._items.items())}

    def without(self, keys: Iterable[str]) -> "Inventory":
        """A new inventory without keys."""
        dropped = set(keys)
        return Inventory((d for k, d in self._items.items() if k not in dropped), self.dependencies)


def build_inventory(
    registry: HandlerRegistry,
    cluster_name: str,
    dependencies: Optional[DependencyTable] = None,
) -> Inventory:
    """
    List every resource owned by cluster_name across all registered handlers.

    Args:
        registry: Handlers to ask
        cluster_name: Cluster whose resources to list
        dependencies: Dependency table (defaults to DEFAULT_DEPENDENCIES)

    Returns:
        Inventory
    """
    dependencies = dependencies or DEFAULT_DEPENDENCIES
    descriptors = []
    for handler in registry:
        handles = handler.list(cluster_name)
        logger.info(f"Found {len(handles)} {handler.kind} resource(s) for {cluster_name}")
        for handle in handles:
            descriptors.append(ResourceDescriptor(
                kind=handler.kind,
                id=handle.id,
                name=handle.name,
                blocks=dependencies.blocks(handler.kind),
                handle=handle,
            ))
    return Inventory(descriptors, dependencies)
