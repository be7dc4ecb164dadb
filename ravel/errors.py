"""
Error taxonomy shared by handlers, the reconciler and the teardown scheduler.
"""

from typing import Any, Dict, FrozenSet, Iterable, List, Optional


class RavelError(Exception):
    """Base class for every error raised by ravel."""


class NotFound(RavelError):
    """The resource does not exist (or no longer exists)."""

    def __init__(self, kind: str, resource_id: Optional[str] = None):
        self.kind = kind
        self.resource_id = resource_id
        if resource_id:
            super().__init__(f"{kind} {resource_id} not found")
        else:
            super().__init__(f"{kind} not found")


class ImmutableFieldChanged(RavelError):
    """Desired state differs from actual state in a field that cannot change."""

    def __init__(self, kind: str, name: str, fields: Iterable[str]):
        self.kind = kind
        self.name = name
        self.fields: List[str] = sorted(fields)
        super().__init__(
            f"cannot change field(s) {', '.join(self.fields)} of {kind} '{name}'"
        )


class RequiredFieldMissing(RavelError):
    """A field needed to create the resource has no value."""

    def __init__(self, kind: str, name: str, field: str):
        self.kind = kind
        self.name = name
        self.field = field
        super().__init__(f"field {field} is required to create {kind} '{name}'")


class TransientAPIError(RavelError):
    """Throttling, 5xx or connection failure; only retried inside wait_until."""


class NoKnownTransition(RavelError):
    """The power-state transition table has no entry for (from, to)."""

    def __init__(self, server_id: str, from_state: str, to_state: str):
        self.server_id = server_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"don't know how to reach state {to_state} from state {from_state} "
            f"for server {server_id}"
        )


class WaitTimeout(RavelError):
    """A wait ran out of time before its predicate held."""

    def __init__(self, description: str, timeout: float, last_state: Any = None):
        self.description = description
        self.timeout = timeout
        self.last_state = last_state
        super().__init__(
            f"timed out after {timeout:g}s waiting for {description} "
            f"(last state: {last_state!r})"
        )


class Cancelled(RavelError):
    """The surrounding deadline expired or was cancelled."""


class TeardownStuck(RavelError):
    """A teardown pass deleted nothing while resources remain."""

    def __init__(self, remaining: Dict[str, FrozenSet[str]]):
        self.remaining = dict(remaining)
        super().__init__(
            f"teardown stuck with {len(self.remaining)} resource(s) left: "
            + "; ".join(
                f"{key} blocked by {', '.join(sorted(blockers)) or 'nothing'}"
                for key, blockers in sorted(self.remaining.items())
            )
        )

    def report(self) -> Dict[str, List[str]]:
        """Remaining resource keys mapped to their unresolved blocker types."""
        return {key: sorted(blockers) for key, blockers in sorted(self.remaining.items())}


class UnsupportedOperation(RavelError):
    """The handler does not implement this operation."""

    def __init__(self, kind: str, operation: str):
        self.kind = kind
        self.operation = operation
        super().__init__(f"{operation} is not supported for {kind}")
