"""Configuration management for discovery settings."""

from __future__ import annotations

import ipaddress
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from wsdiscovery_client.messages import NETWORK_VIDEO_TRANSMITTER
from wsdiscovery_client.soap import QName

DISCOVERY_PORT = 3702
DISCOVERY_ADDRESS_IPV4 = "239.255.255.250"
DISCOVERY_ADDRESS_IPV6 = "FF02::C"


class DiscoverySettings(BaseModel):
    """Multicast transport and default probe parameters."""

    port: int = Field(default=DISCOVERY_PORT, ge=1, le=65535)
    ipv4_group: str = DISCOVERY_ADDRESS_IPV4
    ipv6_group: str = DISCOVERY_ADDRESS_IPV6
    share_address: bool = True
    multicast_ttl: int = Field(default=1, ge=1, le=255)
    buffer_size: int = Field(default=65535, ge=1024, le=65535)
    probe_duration: float = Field(default=5.0, gt=0)
    probe_types: list[str] = Field(default_factory=lambda: [str(NETWORK_VIDEO_TRANSMITTER)])
    probe_scopes: list[str] = Field(default_factory=list)

    @field_validator("ipv4_group")
    @classmethod
    def validate_ipv4_group(cls, value: str) -> str:
        address = ipaddress.ip_address(value)
        if address.version != 4 or not address.is_multicast:
            raise ValueError(f"{value} is not an IPv4 multicast address")
        return value

    @field_validator("ipv6_group")
    @classmethod
    def validate_ipv6_group(cls, value: str) -> str:
        address = ipaddress.ip_address(value)
        if address.version != 6 or not address.is_multicast:
            raise ValueError(f"{value} is not an IPv6 multicast address")
        return value

    @field_validator("probe_types")
    @classmethod
    def validate_probe_types(cls, value: list[str]) -> list[str]:
        for entry in value:
            QName.from_text(entry)
        return value

    def probe_qnames(self) -> list[QName]:
        return [QName.from_text(entry) for entry in self.probe_types]


class ConfigManager:
    """Loads and persists discovery settings with validation and atomic writes."""

    def __init__(self, base_dir: Path | str = Path("config")) -> None:
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.settings_path = self.base_dir / "discovery.yaml"
        self._lock = threading.RLock()
        self._settings: Optional[DiscoverySettings] = None
        self._ensure_defaults()

    # Public API -----------------------------------------------------------
    def get_settings(self) -> DiscoverySettings:
        """Return validated settings, reloading from disk if needed."""

        with self._lock:
            if self._settings is None:
                self._settings = self._load_settings()
            return self._settings

    def save_settings(self, settings: DiscoverySettings) -> None:
        """Persist settings to disk with atomic replace."""

        with self._lock:
            _replace_atomically(self.settings_path, settings.model_dump())
            self._settings = settings

    # Internal helpers ----------------------------------------------------
    def _ensure_defaults(self) -> None:
        with self._lock:
            if not self.settings_path.exists():
                self.save_settings(DiscoverySettings())

    def _load_settings(self) -> DiscoverySettings:
        with self.settings_path.open("r", encoding="utf-8") as stream:
            document = yaml.safe_load(stream) or {}
        if not isinstance(document, dict):
            raise ValueError(f"{self.settings_path} must hold a mapping of discovery settings")
        try:
            return DiscoverySettings.model_validate(document)
        except ValidationError as exc:
            raise ValueError(f"Invalid data in {self.settings_path}: {exc}") from exc


def _replace_atomically(path: Path, document: dict[str, Any]) -> None:
    """Stage ``document`` as YAML next to ``path`` and swap it into place."""

    fd, name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    staged = Path(name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as stream:
            yaml.safe_dump(document, stream, sort_keys=False)
            stream.flush()
            os.fsync(stream.fileno())
        staged.replace(path)
    finally:
        staged.unlink(missing_ok=True)


_managers: dict[Path, ConfigManager] = {}
_managers_lock = threading.Lock()


def get_config_manager() -> ConfigManager:
    """Shared ConfigManager for the directory named by ``DISCOVERY_CONFIG_DIR``."""

    base_dir = Path(os.getenv("DISCOVERY_CONFIG_DIR", "config"))
    with _managers_lock:
        manager = _managers.get(base_dir)
        if manager is None:
            manager = _managers[base_dir] = ConfigManager(base_dir)
        return manager
