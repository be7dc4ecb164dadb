"""
boto3 session wrapper and ClientError translation.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, ConnectionClosedError, EndpointConnectionError

from ... import __version__
from ...config import CloudConfig
from ...errors import NotFound, TransientAPIError

logger = logging.getLogger(__name__)


NOT_FOUND_CODES = frozenset({
    "InvalidInstanceID.NotFound",
    "InvalidInstanceID.Malformed",
    "InvalidVolume.NotFound",
    "InvalidVpcID.NotFound",
    "InvalidSubnetID.NotFound",
    "InvalidInternetGatewayID.NotFound",
    "InvalidGatewayID.NotFound",
    "LoadBalancerNotFound",
    "NoSuchHostedZone",
    "NoSuchChange",
})

TRANSIENT_CODES = frozenset({
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "RequestThrottled",
    "TooManyRequestsException",
    "PriorRequestNotComplete",
    "ServiceUnavailable",
    "InternalError",
    "InternalFailure",
})


def error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def is_not_found(error: ClientError) -> bool:
    code = error_code(error)
    if code in NOT_FOUND_CODES:
        return True
    # Route 53 reports deleting a missing record set as a bad change batch.
    message = error.response.get("Error", {}).get("Message", "")
    return code == "InvalidChangeBatch" and "not found" in message


def is_transient(error: ClientError) -> bool:
    if error_code(error) in TRANSIENT_CODES:
        return True
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
    return status >= 500


@contextmanager
def translate_errors(kind: str, resource_id: Optional[str] = None):
    """
    Turn boto3 errors into ravel errors.

    Not-found codes become NotFound, throttling/5xx/connection failures
    become TransientAPIError; anything else propagates untouched.
    """
    try:
        yield
    except ClientError as e:
        if is_not_found(e):
            raise NotFound(kind, resource_id) from e
        if is_transient(e):
            raise TransientAPIError(f"{kind} {resource_id or ''}: {e}".strip()) from e
        raise
    except (EndpointConnectionError, ConnectionClosedError) as e:
        raise TransientAPIError(f"{kind} {resource_id or ''}: {e}".strip()) from e


class CloudSession:
    """One boto3 session per CloudConfig; clients are created lazily and cached."""

    def __init__(self, config: CloudConfig, session: Optional[boto3.Session] = None):
        self.config = config
        self._session = session or boto3.Session(
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            profile_name=config.profile,
            region_name=config.region,
        )
        self._botocore_config = Config(
            region_name=config.region,
            retries={"max_attempts": 5, "mode": "standard"},
            user_agent_extra=f"ravel/{__version__}",
        )
        self._clients: Dict[str, Any] = {}

    def client(self, service: str):
        if service not in self._clients:
            logger.debug(f"Creating {service} client in {self.config.region}")
            self._clients[service] = self._session.client(service, config=self._botocore_config)
        return self._clients[service]

    @property
    def ec2(self):
        return self.client("ec2")

    @property
    def elbv2(self):
        return self.client("elbv2")

    @property
    def route53(self):
        return self.client("route53")
