"""
Cloud configuration passed explicitly to every handler.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional


DEFAULT_REGION = "eu-west-3"
DEFAULT_WAIT_INTERVAL = 5.0
DEFAULT_WAIT_TIMEOUT = 600.0


@dataclass(frozen=True)
class CloudConfig:
    """Credentials and placement for one cloud account.

    Built once at the edge (CLI or caller) and threaded through the session
    and handlers. Nothing in ravel reads the environment after this.
    """
    region: str = DEFAULT_REGION
    zone: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    profile: Optional[str] = None
    dns_zone: Optional[str] = None
    hosted_zone_id: Optional[str] = None
    wait_interval: float = DEFAULT_WAIT_INTERVAL
    wait_timeout: float = DEFAULT_WAIT_TIMEOUT

    def __post_init__(self):
        if not self.region:
            raise ValueError("region must not be empty")
        if self.zone and not self.zone.startswith(self.region):
            raise ValueError(f"zone {self.zone} is not in region {self.region}")
        if self.wait_interval <= 0:
            raise ValueError(f"wait_interval must be positive, got {self.wait_interval}")
        if self.wait_timeout < self.wait_interval:
            raise ValueError("wait_timeout must be at least wait_interval")
        if bool(self.access_key_id) != bool(self.secret_access_key):
            raise ValueError("access_key_id and secret_access_key must be set together")

    @property
    def default_zone(self) -> str:
        """Zone to place zonal resources in when none is given."""
        return self.zone or f"{self.region}a"

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None, **overrides: Any) -> "CloudConfig":
        """
        Build a configuration from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)
            **overrides: Values that win over the environment; None is ignored

        Returns:
            CloudConfig
        """
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {
            "region": env.get("RAVEL_REGION") or env.get("AWS_DEFAULT_REGION") or DEFAULT_REGION,
            "zone": env.get("RAVEL_ZONE"),
            "access_key_id": env.get("AWS_ACCESS_KEY_ID"),
            "secret_access_key": env.get("AWS_SECRET_ACCESS_KEY"),
            "profile": env.get("RAVEL_PROFILE"),
            "dns_zone": env.get("RAVEL_DNS_ZONE"),
            "hosted_zone_id": env.get("RAVEL_HOSTED_ZONE_ID"),
            "wait_interval": _float(env, "RAVEL_WAIT_INTERVAL", DEFAULT_WAIT_INTERVAL),
            "wait_timeout": _float(env, "RAVEL_WAIT_TIMEOUT", DEFAULT_WAIT_TIMEOUT),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def _float(env, key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Invalid {key}: {raw!r} is not a number")
