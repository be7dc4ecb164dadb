"""
In-memory fake handlers shared by the engine tests.
"""

import threading
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

import pytest

from ravel.errors import NotFound
from ravel.handlers.base import ResourceHandler
from ravel.handlers.registry import HandlerRegistry
from ravel.inventory import DEFAULT_DEPENDENCIES, DependencyTable
from ravel.model import ALL_KINDS, DesiredState, ResourceHandle

MUTATING = ("create", "delete", "update")


class FakeCloud:
    """A handful of fake handlers sharing one deletion log."""

    def __init__(self, kinds=ALL_KINDS, dependencies: DependencyTable = DEFAULT_DEPENDENCIES):
        self.dependencies = dependencies
        self.lock = threading.Lock()
        self.deleted: List[str] = []
        self.violations: List[str] = []
        self.handlers: Dict[str, FakeHandler] = {kind: FakeHandler(kind, self) for kind in kinds}
        self.registry = HandlerRegistry(list(self.handlers.values()))

    def __getitem__(self, kind: str) -> "FakeHandler":
        return self.handlers[kind]

    def live_kinds(self):
        return {kind for kind, h in self.handlers.items() if h.resources}


class FakeHandler(ResourceHandler):
    def __init__(self, kind: str, cloud: FakeCloud):
        self.kind = kind
        self.cloud = cloud
        self.resources: Dict[str, Tuple[str, str, Optional[DesiredState]]] = {}
        self.calls: List[Tuple] = []
        self.delete_errors: Dict[str, Exception] = {}
        self._counter = 0

    def add(self, name: str, cluster: str = "c1", state: Optional[DesiredState] = None,
            resource_id: Optional[str] = None) -> str:
        """Put a live resource in place without recording a call."""
        with self.cloud.lock:
            self._counter += 1
            resource_id = resource_id or f"{self.kind}-{self._counter:03d}"
            self.resources[resource_id] = (name, cluster, state)
        return resource_id

    def mutating_calls(self) -> List[Tuple]:
        return [c for c in self.calls if c[0] in MUTATING]

    def _handle(self, resource_id: str) -> ResourceHandle:
        name = self.resources[resource_id][0]
        return ResourceHandle(self.kind, resource_id, name, outputs={"id": resource_id})

    def list(self, cluster_name: str) -> List[ResourceHandle]:
        self.calls.append(("list", cluster_name))
        return [self._handle(rid) for rid, (_, cluster, _) in sorted(self.resources.items())
                if cluster == cluster_name]

    def get(self, resource_id: str) -> ResourceHandle:
        self.calls.append(("get", resource_id))
        if resource_id not in self.resources:
            raise NotFound(self.kind, resource_id)
        return self._handle(resource_id)

    def find(self, desired: DesiredState) -> Optional[DesiredState]:
        self.calls.append(("find", desired.name))
        members = sorted(rid for rid, (name, _, _) in self.resources.items() if name == desired.name)
        if not members:
            return None
        state = self.resources[members[0]][2] or desired
        changes = {"ids": tuple(members)}
        if hasattr(state, "count"):
            changes["count"] = len(members)
        return replace(state, **changes)

    def create(self, desired: DesiredState) -> ResourceHandle:
        self.calls.append(("create", desired.name))
        cluster = desired.tags.get("KubernetesCluster", "c1") if hasattr(desired, "tags") else "c1"
        resource_id = self.add(desired.name, cluster, replace(desired, ids=()))
        return self._handle(resource_id)

    def update(self, actual: DesiredState, desired: DesiredState, delta) -> None:
        self.calls.append(("update", desired.name, tuple(delta.mutable_changes)))
        values = {name: getattr(desired, name) for name in delta.mutable_changes}
        for rid, (name, cluster, state) in list(self.resources.items()):
            if name == desired.name and state is not None:
                self.resources[rid] = (name, cluster, replace(state, **values))

    def delete(self, handle: ResourceHandle) -> None:
        self.calls.append(("delete", handle.id))
        if handle.id in self.delete_errors:
            raise self.delete_errors[handle.id]
        with self.cloud.lock:
            if handle.id not in self.resources:
                raise NotFound(self.kind, handle.id)
            blockers = self.cloud.dependencies.blocked_by(self.kind) & self.cloud.live_kinds()
            if blockers:
                self.cloud.violations.append(f"{self.kind}:{handle.id} deleted while {sorted(blockers)} live")
            del self.resources[handle.id]
            self.cloud.deleted.append(f"{self.kind}:{handle.id}")


@pytest.fixture
def cloud():
    return FakeCloud()


@pytest.fixture
def ravel_home(tmp_path, monkeypatch):
    """Point RAVEL_HOME at a temporary directory."""
    monkeypatch.setenv("RAVEL_HOME", str(tmp_path))
    return tmp_path


@pytest.fixture
def make_cloud():
    """Build a FakeCloud with custom kinds or dependencies."""
    return FakeCloud
