"""
Handler registry: the explicit mapping from resource kind to handler.
"""

import logging
from typing import Dict, Iterator, List, Optional, Type, TypeVar

from ..errors import UnsupportedOperation
from .base import ResourceHandler

logger = logging.getLogger(__name__)

C = TypeVar("C")


class HandlerRegistry:
    """Handlers keyed by resource kind, in registration order."""

    def __init__(self, handlers: Optional[List[ResourceHandler]] = None):
        self._handlers: Dict[str, ResourceHandler] = {}
        for handler in handlers or []:
            self.register(handler)

    def register(self, handler: ResourceHandler) -> None:
        if not handler.kind:
            raise ValueError(f"{handler.__class__.__name__} has no kind")
        if handler.kind in self._handlers:
            raise ValueError(f"a handler for {handler.kind} is already registered")
        self._handlers[handler.kind] = handler
        logger.debug(f"Registered {handler.__class__.__name__} for {handler.kind}")

    def get(self, kind: str) -> ResourceHandler:
        try:
            return self._handlers[kind]
        except KeyError:
            raise UnsupportedOperation(kind, "any operation (no handler registered)")

    def capability(self, kind: str, capability: Type[C]) -> C:
        """
        Get the handler for kind as a capability interface.

        Raises:
            UnsupportedOperation: no handler, or the handler lacks the capability
        """
        handler = self.get(kind)
        if capability not in handler.capabilities:
            raise UnsupportedOperation(kind, capability.__name__)
        return handler

    def kinds(self) -> List[str]:
        return list(self._handlers)

    def __contains__(self, kind: str) -> bool:
        return kind in self._handlers

    def __iter__(self) -> Iterator[ResourceHandler]:
        return iter(list(self._handlers.values()))

    def __len__(self) -> int:
        return len(self._handlers)


def build_default_registry(session, config, deadline=None) -> HandlerRegistry:
    """
    Registry with the AWS handlers for every supported kind.

    The DNS handler is only registered when a DNS zone is configured.

    Args:
        session: CloudSession
        config: CloudConfig
        deadline: Optional Deadline bounding every wait the handlers do

    Returns:
        HandlerRegistry
    """
    from .aws.dns import DNSRecordHandler
    from .aws.gateway import GatewayHandler
    from .aws.instance import InstanceHandler
    from .aws.loadbalancer import LoadBalancerHandler
    from .aws.network import PrivateNetworkHandler
    from .aws.volume import VolumeHandler

    registry = HandlerRegistry([
        InstanceHandler(session, config, deadline),
        VolumeHandler(session, config, deadline),
        GatewayHandler(session, config, deadline),
        PrivateNetworkHandler(session, config, deadline),
        LoadBalancerHandler(session, config, deadline),
    ])
    if config.dns_zone or config.hosted_zone_id:
        registry.register(DNSRecordHandler(session, config, deadline))
    else:
        logger.info("No DNS zone configured, DNS records will not be managed")
    return registry
