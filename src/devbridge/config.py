"""Bridge configuration for devbridge."""

from __future__ import annotations

import dataclasses
import math
import os
import secrets
from typing import Any

from devbridge.exceptions import BridgeConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _default_client_id() -> str:
    return f"devbridge-{secrets.token_hex(4)}"


@dataclasses.dataclass(frozen=True)
class BridgeConfig:
    """Bridge configuration.

    Parameters
    ----------
    broker_host : str
        MQTT broker host name.
    broker_port : int
        MQTT broker port.
    mqtt_username : str or None
        Broker username, if the broker requires one.
    mqtt_password : str or None
        Broker password.
    mqtt_client_id : str
        MQTT client identifier. Defaults to a random ``devbridge-*`` id.
    mqtt_tls : bool
        Enable TLS towards the broker.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_qos : int
        QoS used for subscriptions and command publishes.
    topic_prefix : str
        First segment of every device topic (``{prefix}/{deviceId}/{kind}``).
    command_timeout : float
        Default seconds a dispatch waits for a matching response.
    stale_threshold : float
        Seconds without a heartbeat before a device is marked offline.
    presence_sweep_interval : float
        Seconds between presence sweeps.
    correlation_grace : float
        Extra seconds past a request's deadline before the correlation
        sweeper reclaims it.
    correlation_sweep_interval : float
        Seconds between correlation sweeps.
    http_host : str
        Interface the HTTP front end binds to.
    http_port : int
        Port the HTTP front end listens on.
    """

    broker_host: str = "localhost"
    broker_port: int = 1883
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_client_id: str = dataclasses.field(default_factory=_default_client_id)
    mqtt_tls: bool = False
    mqtt_keepalive: int = 60
    mqtt_qos: int = 0
    topic_prefix: str = "devices"
    command_timeout: float = 10.0
    stale_threshold: float = 60.0
    presence_sweep_interval: float = 30.0
    correlation_grace: float = 30.0
    correlation_sweep_interval: float = 15.0
    http_host: str = "0.0.0.0"
    http_port: int = 3000

    def __post_init__(self) -> None:
        if not math.isfinite(self.command_timeout) or self.command_timeout <= 0:
            raise BridgeConfigError("command_timeout must be a positive, finite number")
        if self.stale_threshold <= 0:
            raise BridgeConfigError("stale_threshold must be positive")
        if self.presence_sweep_interval <= 0 or self.correlation_sweep_interval <= 0:
            raise BridgeConfigError("sweep intervals must be positive")
        if self.correlation_grace < 0:
            raise BridgeConfigError("correlation_grace must not be negative")
        if self.mqtt_qos not in (0, 1, 2):
            raise BridgeConfigError(f"mqtt_qos must be 0, 1 or 2 (got {self.mqtt_qos})")
        prefix = self.topic_prefix.strip("/")
        if not prefix or "+" in prefix or "#" in prefix:
            raise BridgeConfigError(f"Invalid topic_prefix: {self.topic_prefix!r}")
        object.__setattr__(self, "topic_prefix", prefix)

    @classmethod
    def from_env(cls, **overrides: Any) -> BridgeConfig:
        """Create configuration from environment variables.

        Reads optional ``BRIDGE_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        BridgeConfig
            Populated configuration.

        Raises
        ------
        BridgeConfigError
            If a numeric variable cannot be parsed.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "BRIDGE_BROKER_HOST": "broker_host",
            "BRIDGE_MQTT_USERNAME": "mqtt_username",
            "BRIDGE_MQTT_PASSWORD": "mqtt_password",
            "BRIDGE_MQTT_CLIENT_ID": "mqtt_client_id",
            "BRIDGE_TOPIC_PREFIX": "topic_prefix",
            "BRIDGE_HTTP_HOST": "http_host",
        }
        _ENV_INT_MAP = {
            "BRIDGE_BROKER_PORT": "broker_port",
            "BRIDGE_MQTT_KEEPALIVE": "mqtt_keepalive",
            "BRIDGE_MQTT_QOS": "mqtt_qos",
            "BRIDGE_HTTP_PORT": "http_port",
        }
        _ENV_FLOAT_MAP = {
            "BRIDGE_COMMAND_TIMEOUT": "command_timeout",
            "BRIDGE_STALE_THRESHOLD": "stale_threshold",
            "BRIDGE_PRESENCE_SWEEP_INTERVAL": "presence_sweep_interval",
            "BRIDGE_CORRELATION_GRACE": "correlation_grace",
            "BRIDGE_CORRELATION_SWEEP_INTERVAL": "correlation_sweep_interval",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = int(val)
            except ValueError as exc:
                raise BridgeConfigError(f"{env_key} must be an integer (got {val!r})") from exc

        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = float(val)
            except ValueError as exc:
                raise BridgeConfigError(f"{env_key} must be a number (got {val!r})") from exc

        if "mqtt_tls" not in overrides:
            config_kwargs["mqtt_tls"] = _env_bool(env.get("BRIDGE_MQTT_TLS"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
