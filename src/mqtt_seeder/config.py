"""
Seeder configuration.

Single source for runtime configuration. Values come from environment variables,
optionally loaded from standard env files.

Priority (highest first):
1) process environment variables (always win)
2) /etc/mqtt-seeder/seeder.env (system install)
3) ~/.config/mqtt-seeder/.env (user install)
4) ./.env (project defaults)

Files only fill variables that are still unset, so an earlier file wins.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional
from urllib.parse import unquote, urlsplit

from dotenv import load_dotenv

DEFAULT_BROKER_URL = "mqtt://192.168.0.211:1883"
DEFAULT_CONFIG_DIR = "config"

# scheme -> (default port, tls, paho transport)
_SCHEMES = {
    "mqtt": (1883, False, "tcp"),
    "tcp": (1883, False, "tcp"),
    "mqtts": (8883, True, "tcp"),
    "ssl": (8883, True, "tcp"),
    "ws": (80, False, "websockets"),
    "wss": (443, True, "websockets"),
}


class ConfigError(ValueError):
    """Raised when configuration is missing or invalid."""


def _env_paths() -> Iterable[Path]:
    # 1) system install
    yield Path("/etc/mqtt-seeder/seeder.env")

    # 2) user config dir
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", str(Path.home())))
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config")))
    yield base / "mqtt-seeder" / ".env"

    # 3) project override
    yield Path(".env")


def _parse_int(key: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid integer for {key}: {raw!r}") from exc


def _parse_float(key: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid number for {key}: {raw!r}") from exc


@dataclass(frozen=True, slots=True)
class BrokerAddress:
    url: str
    host: str
    port: int
    tls: bool = False
    transport: str = "tcp"
    path: str = "/"
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def display_url(self) -> str:
        """URL safe for logs (credentials stripped)."""
        scheme = self.url.split("://", 1)[0]
        suffix = self.path if self.transport == "websockets" else ""
        return f"{scheme}://{self.host}:{self.port}{suffix}"


def parse_broker_url(url: str) -> BrokerAddress:
    """
    Parse a broker URL such as mqtt://host:1883 or wss://user:pw@host/mqtt.

    Raises ConfigError for unknown schemes, missing host or bad port.
    """
    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    if scheme not in _SCHEMES:
        raise ConfigError(
            f"Unsupported broker URL scheme {scheme!r} in MQTT_BROKER_URL; "
            f"allowed: {', '.join(sorted(_SCHEMES))}"
        )
    default_port, tls, transport = _SCHEMES[scheme]

    if not parts.hostname:
        raise ConfigError(f"MQTT_BROKER_URL has no host: {url!r}")

    try:
        port = parts.port if parts.port is not None else default_port
    except ValueError as exc:
        raise ConfigError(f"Invalid port in MQTT_BROKER_URL: {url!r}") from exc
    if not (1 <= port <= 65535):
        raise ConfigError(f"MQTT_BROKER_URL port out of range: {port}")

    return BrokerAddress(
        url=url.strip(),
        host=parts.hostname,
        port=port,
        tls=tls,
        transport=transport,
        path=parts.path or "/",
        username=unquote(parts.username) if parts.username else None,
        password=unquote(parts.password) if parts.password else None,
    )


def load_env_files() -> None:
    """Fill unset environment variables from the standard env files."""
    for p in _env_paths():
        if p.is_file():
            # do not override existing env vars; later files can fill missing
            load_dotenv(p, override=False)


def config_dir_from_env(*, dotenv_enabled: bool = True) -> Path:
    """Mapping directory from SEEDER_CONFIG_DIR (env files included), else ./config."""
    if dotenv_enabled:
        load_env_files()
    return Path(os.getenv("SEEDER_CONFIG_DIR") or DEFAULT_CONFIG_DIR)


@dataclass(frozen=True, slots=True)
class SeederConfig:
    broker: BrokerAddress
    client_id: str  # empty lets paho generate one
    config_dir: Path
    reconnect_interval_s: float
    keepalive_s: int
    subscribe_qos: int
    log_level: str


def load_config(*, dotenv_enabled: bool = True) -> SeederConfig:
    """
    Load config by reading env files and then validating environment variables.

    Returns an immutable SeederConfig. Raises ConfigError on failure.
    """
    if dotenv_enabled:
        load_env_files()

    broker = parse_broker_url(os.getenv("MQTT_BROKER_URL") or DEFAULT_BROKER_URL)

    reconnect_s = _parse_float("SEEDER_RECONNECT_S", os.getenv("SEEDER_RECONNECT_S", "1"))
    if reconnect_s <= 0:
        raise ConfigError("SEEDER_RECONNECT_S must be > 0")

    keepalive_s = _parse_int("SEEDER_KEEPALIVE_S", os.getenv("SEEDER_KEEPALIVE_S", "60"))
    if keepalive_s < 1:
        raise ConfigError("SEEDER_KEEPALIVE_S must be >= 1")

    qos = _parse_int("SEEDER_SUBSCRIBE_QOS", os.getenv("SEEDER_SUBSCRIBE_QOS", "0"))
    if qos not in (0, 1, 2):
        raise ConfigError(f"SEEDER_SUBSCRIBE_QOS must be 0, 1 or 2: {qos}")

    return SeederConfig(
        broker=broker,
        client_id=os.getenv("MQTT_CLIENT_ID", ""),
        config_dir=config_dir_from_env(dotenv_enabled=False),
        reconnect_interval_s=reconnect_s,
        keepalive_s=keepalive_s,
        subscribe_qos=qos,
        log_level=os.getenv("SEEDER_LOG_LEVEL", "INFO"),
    )
