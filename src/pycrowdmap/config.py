"""Client configuration for pycrowdmap."""

from __future__ import annotations

import dataclasses
import os
from enum import StrEnum
from typing import Any

from pycrowdmap._constants import (
    CHECK_IN_RADIUS_M,
    CLUSTER_THRESHOLD_M,
    FALLBACK_POLL_INTERVAL_S,
    SIMULATION_BATCH_SIZE,
    SIMULATION_INTERVAL_S,
)
from pycrowdmap.exceptions import CrowdMapConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


class SimulationMode(StrEnum):
    """Which path crowd simulation ticks take.

    ``SERVER`` always submits batch deltas, ``LOCAL`` always writes into
    the local store, ``AUTO`` submits while connected and runs locally
    while the reconciler is degraded.
    """

    SERVER = "server"
    LOCAL = "local"
    AUTO = "auto"


@dataclasses.dataclass(frozen=True)
class CrowdMapConfig:
    """Client configuration.

    Parameters
    ----------
    base_url : str
        HTTP API root for counter submissions.
    push_enabled : bool
        Enable the MQTT push listener (snapshots and live count updates).
    push_host : str
        MQTT broker host.
    push_port : int
        MQTT broker port.
    push_topic_prefix : str
        Topic prefix; the runtime subscribes to ``<prefix>/#``.
    push_tls : bool
        Connect to the broker over TLS.
    push_keepalive : int
        MQTT keepalive in seconds.
    request_timeout : float
        Total HTTP request timeout in seconds.
    simulation_interval : float
        Seconds between simulation ticks.
    simulation_batch_size : int
        Locations advanced per simulation tick.
    simulation_mode : SimulationMode
        See :class:`SimulationMode`.
    fallback_poll_interval : float
        Seconds between reconnect attempts while degraded.
    check_in_radius_m : float
        Geofence radius around each location.
    cluster_threshold_m : float
        Default distance under which map markers are grouped.
    """

    base_url: str = "http://localhost:8000"
    push_enabled: bool = True
    push_host: str = "localhost"
    push_port: int = 1883
    push_topic_prefix: str = "crowdmap"
    push_tls: bool = False
    push_keepalive: int = 60
    request_timeout: float = 10.0
    simulation_interval: float = SIMULATION_INTERVAL_S
    simulation_batch_size: int = SIMULATION_BATCH_SIZE
    simulation_mode: SimulationMode = SimulationMode.AUTO
    fallback_poll_interval: float = FALLBACK_POLL_INTERVAL_S
    check_in_radius_m: float = CHECK_IN_RADIUS_M
    cluster_threshold_m: float = CLUSTER_THRESHOLD_M

    def __post_init__(self) -> None:
        if self.simulation_interval <= 0:
            raise CrowdMapConfigError("simulation_interval must be positive")
        if self.simulation_batch_size < 1:
            raise CrowdMapConfigError("simulation_batch_size must be at least 1")
        if self.fallback_poll_interval <= 0:
            raise CrowdMapConfigError("fallback_poll_interval must be positive")
        if self.check_in_radius_m <= 0:
            raise CrowdMapConfigError("check_in_radius_m must be positive")
        if self.cluster_threshold_m < 0:
            raise CrowdMapConfigError("cluster_threshold_m must be non-negative")
        try:
            mode = SimulationMode(self.simulation_mode)
        except ValueError as exc:
            raise CrowdMapConfigError(f"Unknown simulation_mode: {self.simulation_mode!r}") from exc
        # Normalise plain strings passed by callers.
        object.__setattr__(self, "simulation_mode", mode)
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))

    @classmethod
    def from_env(cls, **overrides: Any) -> CrowdMapConfig:
        """Create configuration from environment variables.

        Reads optional ``CROWDMAP_*`` variables. Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        CrowdMapConfig
            Populated configuration.

        Raises
        ------
        CrowdMapConfigError
            If a numeric variable cannot be parsed.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "CROWDMAP_BASE_URL": "base_url",
            "CROWDMAP_PUSH_HOST": "push_host",
            "CROWDMAP_PUSH_TOPIC_PREFIX": "push_topic_prefix",
            "CROWDMAP_SIMULATION_MODE": "simulation_mode",
        }
        _ENV_INT_MAP = {
            "CROWDMAP_PUSH_PORT": "push_port",
            "CROWDMAP_PUSH_KEEPALIVE": "push_keepalive",
            "CROWDMAP_SIMULATION_BATCH_SIZE": "simulation_batch_size",
        }
        _ENV_FLOAT_MAP = {
            "CROWDMAP_REQUEST_TIMEOUT": "request_timeout",
            "CROWDMAP_SIMULATION_INTERVAL": "simulation_interval",
            "CROWDMAP_FALLBACK_POLL_INTERVAL": "fallback_poll_interval",
            "CROWDMAP_CHECK_IN_RADIUS_M": "check_in_radius_m",
            "CROWDMAP_CLUSTER_THRESHOLD_M": "cluster_threshold_m",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        for mapping, convert in ((_ENV_INT_MAP, int), (_ENV_FLOAT_MAP, float)):
            for env_key, field_name in mapping.items():
                val = env.get(env_key)
                if val is None or field_name in overrides:
                    continue
                try:
                    config_kwargs[field_name] = convert(val)
                except ValueError as exc:
                    raise CrowdMapConfigError(f"{env_key} is not a valid number: {val!r}") from exc

        if "push_enabled" not in overrides:
            config_kwargs["push_enabled"] = _env_bool(env.get("CROWDMAP_PUSH_ENABLED"), True)
        if "push_tls" not in overrides:
            config_kwargs["push_tls"] = _env_bool(env.get("CROWDMAP_PUSH_TLS"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
