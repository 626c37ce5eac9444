import logging
import os
from dataclasses import dataclass, field
from typing import List

DEFAULT_ICE_SERVERS = [
    "stun:stun.l.google.com:19302",
    "stun:stun1.l.google.com:19302",
    "stun:stun2.l.google.com:19302",
]


def _split(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    static_dir: str = "web"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    ice_servers: List[str] = field(default_factory=lambda: list(DEFAULT_ICE_SERVERS))
    keepalive_interval: float = 30.0
    outbound_queue_size: int = 256

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        settings = cls()
        settings.host = env.get("RELAY_HOST", settings.host)
        settings.port = int(env.get("PORT", settings.port))
        settings.log_level = env.get("RELAY_LOG_LEVEL", settings.log_level).upper()
        settings.static_dir = env.get("RELAY_STATIC_DIR", settings.static_dir)
        if "RELAY_CORS_ORIGINS" in env:
            settings.cors_origins = _split(env["RELAY_CORS_ORIGINS"])
        if "RELAY_ICE_SERVERS" in env:
            settings.ice_servers = _split(env["RELAY_ICE_SERVERS"])
        settings.keepalive_interval = float(env.get("RELAY_KEEPALIVE", settings.keepalive_interval))
        settings.outbound_queue_size = int(env.get("RELAY_OUTBOUND_QUEUE", settings.outbound_queue_size))
        return settings


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
