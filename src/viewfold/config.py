"""Client configuration for viewfold."""

from __future__ import annotations

import dataclasses
import os
import secrets
from typing import Any

from viewfold.exceptions import ViewfoldConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env: Any, key: str, cast: type[int] | type[float]) -> int | float | None:
    raw = env.get(key)
    if raw is None:
        return None
    try:
        return cast(raw)
    except ValueError as exc:
        raise ViewfoldConfigError(f"{key} must be a number, got {raw!r}") from exc


def _default_client_id() -> str:
    return f"viewfold-{secrets.token_hex(4)}"


@dataclasses.dataclass(frozen=True)
class EngineConfig:
    """Connection and projection configuration.

    Parameters
    ----------
    broker_host : str or None
        MQTT broker carrying the event stream. Required to receive
        live events.
    broker_port : int
        MQTT broker port.
    broker_tls : bool
        Connect to the broker over TLS.
    broker_username, broker_password : str or None
        Optional broker credentials.
    topic_prefix : str
        Events are read from ``<prefix>/events/<name>``; the snapshot
        request/reply pair uses ``<prefix>/snapshot/request`` and
        ``<prefix>/snapshot``.
    client_id : str
        MQTT client id. Random per process by default.
    keepalive : int
        MQTT keepalive in seconds.
    snapshot_url : str or None
        HTTP endpoint returning the bulk snapshot. When unset the
        snapshot is requested over MQTT instead.
    snapshot_timeout : float
        Seconds to wait for the snapshot query.
    key_field : str
        Payload field holding the client identifier.
    """

    broker_host: str | None = None
    broker_port: int = 1883
    broker_tls: bool = False
    broker_username: str | None = None
    broker_password: str | None = None
    topic_prefix: str = "viewfold"
    client_id: str = dataclasses.field(default_factory=_default_client_id)
    keepalive: int = 60
    snapshot_url: str | None = None
    snapshot_timeout: float = 30.0
    key_field: str = "ip"

    @property
    def events_topic(self) -> str:
        return f"{self.topic_prefix}/events/+"

    @property
    def snapshot_topic(self) -> str:
        return f"{self.topic_prefix}/snapshot"

    @property
    def snapshot_request_topic(self) -> str:
        return f"{self.topic_prefix}/snapshot/request"

    def validate(self) -> None:
        """Raise :class:`ViewfoldConfigError` when there is nothing to connect to."""
        if not self.broker_host and not self.snapshot_url:
            raise ViewfoldConfigError("Either broker_host or snapshot_url must be configured")
        if not self.key_field:
            raise ViewfoldConfigError("key_field must be non-empty")
        if self.keepalive <= 0:
            raise ViewfoldConfigError("keepalive must be positive")

    @classmethod
    def from_env(cls, **overrides: Any) -> EngineConfig:
        """Create configuration from ``VIEWFOLD_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "VIEWFOLD_BROKER_HOST": "broker_host",
            "VIEWFOLD_BROKER_USERNAME": "broker_username",
            "VIEWFOLD_BROKER_PASSWORD": "broker_password",
            "VIEWFOLD_TOPIC_PREFIX": "topic_prefix",
            "VIEWFOLD_CLIENT_ID": "client_id",
            "VIEWFOLD_SNAPSHOT_URL": "snapshot_url",
            "VIEWFOLD_KEY_FIELD": "key_field",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        port = _env_number(env, "VIEWFOLD_BROKER_PORT", int)
        if port is not None:
            config_kwargs["broker_port"] = port

        keepalive = _env_number(env, "VIEWFOLD_KEEPALIVE", int)
        if keepalive is not None:
            config_kwargs["keepalive"] = keepalive

        timeout = _env_number(env, "VIEWFOLD_SNAPSHOT_TIMEOUT", float)
        if timeout is not None:
            config_kwargs["snapshot_timeout"] = timeout

        config_kwargs["broker_tls"] = _env_bool(env.get("VIEWFOLD_BROKER_TLS"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
