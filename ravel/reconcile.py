"""
Find -> diff -> validate -> apply for one desired state.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .errors import ImmutableFieldChanged, NotFound, RequiredFieldMissing
from .handlers.base import ResourceHandler
from .handlers.registry import HandlerRegistry
from .model import (
    DNS_RECORD,
    GATEWAY,
    INSTANCE,
    LOAD_BALANCER,
    PRIVATE_NETWORK,
    VOLUME,
    Delta,
    DesiredState,
    compute_delta,
)
from .wait import Deadline

logger = logging.getLogger(__name__)

# Networks before what lives in them, addresses before the records naming them.
CREATE_ORDER = (PRIVATE_NETWORK, GATEWAY, VOLUME, LOAD_BALANCER, INSTANCE, DNS_RECORD)


class Action(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass
class TaskResult:
    kind: str
    name: str
    action: Action
    changed_fields: List[str] = field(default_factory=list)
    outputs: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "name": self.name,
            "action": self.action.value,
            "changed_fields": list(self.changed_fields),
            "outputs": self.outputs,
        }


@dataclass
class ReconcileContext:
    """
    Per-run state shared by every reconciler.

    outputs holds cloud-generated values (IDs, addresses) keyed by
    (kind, name); the run result reports them.
    """
    cluster_name: str
    registry: Optional[HandlerRegistry] = None
    deadline: Optional[Deadline] = None
    outputs: Dict[Tuple[str, str], Dict[str, Any]] = field(default_factory=dict)

    def record(self, desired: DesiredState, outputs: Dict[str, Any]) -> None:
        self.outputs.setdefault(desired.key, {}).update(outputs)


def _is_replicated(desired: DesiredState) -> bool:
    return hasattr(desired, "count")


class Reconciler:
    """Converge one resource toward its desired state through its handler."""

    def __init__(self, handler: ResourceHandler, context: Optional[ReconcileContext] = None):
        self.handler = handler
        self.context = context or ReconcileContext(cluster_name="")

    def find(self, desired: DesiredState) -> Optional[DesiredState]:
        return self.handler.find(desired)

    def check_changes(self, actual: Optional[DesiredState], desired: DesiredState) -> Optional[Delta]:
        """
        Validate desired against actual.

        Returns:
            The delta, or None when there is nothing to diff against

        Raises:
            RequiredFieldMissing: actual is absent and desired lacks a field needed to create it
            ImmutableFieldChanged: a field that cannot change differs
        """
        if actual is None:
            for name in desired.required:
                if getattr(desired, name) in (None, ""):
                    raise RequiredFieldMissing(desired.kind, desired.name, name)
            return None

        delta = compute_delta(actual, desired)
        if delta.immutable_changes:
            raise ImmutableFieldChanged(desired.kind, desired.name, delta.immutable_changes)
        return delta

    def render(self, actual: Optional[DesiredState], desired: DesiredState, delta: Optional[Delta]) -> TaskResult:
        if actual is None:
            return self._create(desired)

        if delta is None or not delta.has_mutable_changes:
            logger.debug(f"{desired.kind} {desired.name} is up to date")
            outputs = actual.observed_values()
            self.context.record(desired, outputs)
            return TaskResult(desired.kind, desired.name, Action.UNCHANGED, [], outputs)

        changed = delta.mutable_changes
        logger.info(f"Updating {desired.kind} {desired.name}: {', '.join(changed)}")

        rest = delta.without("count") if _is_replicated(desired) else delta
        if rest.has_mutable_changes:
            self.handler.update(actual, desired, rest)

        ids = list(actual.ids)
        if "count" in changed:
            ids = self._scale(actual, desired)

        outputs = actual.observed_values()
        outputs["ids"] = tuple(ids)
        self.context.record(desired, outputs)
        return TaskResult(desired.kind, desired.name, Action.UPDATED, changed, outputs)

    def run(self, desired: DesiredState) -> TaskResult:
        if self.context.deadline is not None:
            self.context.deadline.check()
        actual = self.find(desired)
        delta = self.check_changes(actual, desired)
        return self.render(actual, desired, delta)

    def _create(self, desired: DesiredState) -> TaskResult:
        count = desired.count if _is_replicated(desired) else 1
        logger.info(f"Creating {desired.kind} {desired.name}" + (f" x{count}" if count != 1 else ""))

        outputs: Dict[str, Any] = {}
        ids = []
        for _ in range(count):
            handle = self.handler.create(desired)
            ids.append(handle.id)
            outputs.update(handle.outputs)
        outputs["ids"] = tuple(sorted(ids))

        self.context.record(desired, outputs)
        return TaskResult(desired.kind, desired.name, Action.CREATED, [], outputs)

    def _scale(self, actual: DesiredState, desired: DesiredState) -> List[str]:
        """Create or delete members so that exactly desired.count remain."""
        ids = sorted(actual.ids)
        missing = desired.count - len(ids)

        if missing > 0:
            logger.info(f"Scaling {desired.name} up by {missing}")
            for _ in range(missing):
                ids.append(self.handler.create(desired).id)
            return sorted(ids)

        excess = sorted(ids, reverse=True)[:-missing]
        logger.info(f"Scaling {desired.name} down by {len(excess)}: {', '.join(excess)}")
        for member_id in excess:
            try:
                self.handler.delete(self.handler.get(member_id))
            except NotFound:
                logger.warning(f"{desired.kind} {member_id} already gone")
        return sorted(i for i in ids if i not in excess)


def sort_for_create(desired_states: Iterable[DesiredState]) -> List[DesiredState]:
    """Order desired states so dependencies are created first; stable within a kind."""
    rank = {kind: i for i, kind in enumerate(CREATE_ORDER)}
    return sorted(desired_states, key=lambda d: rank.get(d.kind, len(rank)))


def reconcile_all(
    desired_states: Iterable[DesiredState],
    context: ReconcileContext,
    on_result: Optional[Callable[[TaskResult], None]] = None,
) -> List[TaskResult]:
    """
    Reconcile every desired state in dependency order.

    Stops at the first error; everything done so far stays done and a
    re-run picks up where this one stopped.
    """
    if context.registry is None:
        raise ValueError("ReconcileContext has no handler registry")

    results = []
    for desired in sort_for_create(desired_states):
        reconciler = Reconciler(context.registry.get(desired.kind), context)
        result = reconciler.run(desired)
        results.append(result)
        if on_result:
            on_result(result)
    return results
