"""
Dependency-ordered teardown of a cluster inventory.

Each pass deletes every resource whose blockers are gone, then continues
with an inventory that no longer contains them. A pass that finds nothing
to delete while resources remain is stuck.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .errors import NotFound, TeardownStuck
from .events import EventTypes
from .handlers.registry import HandlerRegistry
from .inventory import Inventory
from .model import ResourceDescriptor, ResourceHandle
from .wait import Deadline

logger = logging.getLogger(__name__)

EventCallback = Callable[[str, Dict[str, Any]], None]


@dataclass
class TeardownReport:
    deleted: List[str] = field(default_factory=list)
    already_gone: List[str] = field(default_factory=list)
    passes: List[List[str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deleted": list(self.deleted),
            "already_gone": list(self.already_gone),
            "passes": [list(p) for p in self.passes],
        }


def plan_teardown(inventory: Inventory) -> List[List[str]]:
    """
    Work out the deletion passes without deleting anything.

    Returns:
        One list of keys per pass, in deletion order

    Raises:
        TeardownStuck: some resources can never become deletable
    """
    passes = []
    while len(inventory):
        deletable = [d.key for d in inventory.deletable()]
        if not deletable:
            raise TeardownStuck(inventory.blocked())
        passes.append(deletable)
        inventory = inventory.without(deletable)
    return passes


class TeardownScheduler:
    """
    Peel an inventory pass by pass until it is empty.

    Args:
        registry: Handlers used to delete each resource
        max_workers: Deletions run concurrently within a pass when > 1
        deadline: Checked before every deletion and inside handler waits
        on_event: Called with (event_type, data) as the teardown progresses
        refresh: When given, called after each pass to re-list the inventory
            instead of dropping the deleted keys from the current one
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        max_workers: int = 1,
        deadline: Optional[Deadline] = None,
        on_event: Optional[EventCallback] = None,
        refresh: Optional[Callable[[], Inventory]] = None,
    ):
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.registry = registry
        self.max_workers = max_workers
        self.deadline = deadline
        self.on_event = on_event
        self.refresh = refresh

    def _emit(self, event_type: str, data: Dict[str, Any]) -> None:
        if self.on_event:
            self.on_event(event_type, data)

    def _delete_one(self, descriptor: ResourceDescriptor) -> bool:
        """
        Delete one resource.

        Returns:
            True if it was deleted, False if it was already gone
        """
        if self.deadline is not None:
            self.deadline.check()

        handler = self.registry.get(descriptor.kind)
        handle = descriptor.handle or ResourceHandle(descriptor.kind, descriptor.id, descriptor.name)
        logger.info(f"Deleting {descriptor.key} ({descriptor.name})")
        try:
            handler.delete(handle)
        except NotFound:
            logger.warning(f"{descriptor.key} was already gone")
            self._emit(EventTypes.RESOURCE_ALREADY_GONE, {"key": descriptor.key, "name": descriptor.name})
            return False
        self._emit(EventTypes.RESOURCE_DELETED, {"key": descriptor.key, "name": descriptor.name})
        return True

    def _run_pass(self, deletable: List[ResourceDescriptor], report: TeardownReport) -> None:
        if self.max_workers == 1:
            for descriptor in deletable:
                self._record(descriptor, self._delete_one(descriptor), report)
            return

        first_error: Optional[BaseException] = None
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [(d, pool.submit(self._delete_one, d)) for d in deletable]
            for descriptor, future in futures:
                try:
                    deleted = future.result()
                except Exception as e:
                    logger.error(f"Failed to delete {descriptor.key}: {e}")
                    if first_error is None:
                        first_error = e
                    continue
                self._record(descriptor, deleted, report)
        if first_error is not None:
            raise first_error

    @staticmethod
    def _record(descriptor: ResourceDescriptor, deleted: bool, report: TeardownReport) -> None:
        if deleted:
            report.deleted.append(descriptor.key)
        else:
            report.already_gone.append(descriptor.key)

    def run(self, inventory: Inventory) -> TeardownReport:
        """
        Delete everything in inventory in dependency order.

        Returns:
            TeardownReport

        Raises:
            TeardownStuck: a pass found nothing deletable while resources remain
            Cancelled: the deadline expired or was cancelled
        """
        report = TeardownReport()

        while len(inventory):
            if self.deadline is not None:
                self.deadline.check()

            deletable = inventory.deletable()
            if not deletable:
                stuck = TeardownStuck(inventory.blocked())
                logger.error(str(stuck))
                self._emit(EventTypes.TEARDOWN_STUCK, {"remaining": stuck.report()})
                raise stuck

            keys = [d.key for d in deletable]
            pass_number = len(report.passes) + 1
            logger.info(f"Teardown pass {pass_number}: {len(keys)} deletable, {len(inventory) - len(keys)} waiting")
            self._emit(EventTypes.TEARDOWN_PASS, {"pass": pass_number, "keys": keys})
            report.passes.append(keys)

            self._run_pass(deletable, report)

            inventory = self.refresh() if self.refresh else inventory.without(keys)

        logger.info(f"Teardown complete: {len(report.deleted)} deleted, {len(report.already_gone)} already gone")
        return report
