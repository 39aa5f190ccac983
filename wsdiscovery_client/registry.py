"""Registry of target services discovered through ProbeMatches/ResolveMatches."""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional
from urllib.parse import unquote, urlsplit

from wsdiscovery_client.soap import QName


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _scope_path(path: str) -> list[str]:
    return [segment for segment in unquote(path).split("/") if segment]


def match_scope(probe_scope: str, service_scope: str) -> bool:
    """RFC 3986 prefix match used by the default WS-Discovery ``MatchBy`` rule."""

    probe = urlsplit(probe_scope)
    target = urlsplit(service_scope)
    if probe.scheme.lower() != target.scheme.lower():
        return False
    if probe.netloc.lower() != target.netloc.lower():
        return False
    probe_segments = _scope_path(probe.path)
    target_segments = _scope_path(target.path)
    return target_segments[: len(probe_segments)] == probe_segments


@dataclass
class TargetService:
    """A discovered endpoint, keyed by its endpoint reference."""

    endpoint_reference: str
    type_list: list[QName] = field(default_factory=list)
    scope_list: list[str] = field(default_factory=list)
    x_addr_list: list[str] = field(default_factory=list)
    metadata_version: Optional[int] = None
    last_seen: Optional[datetime] = None

    def is_matching_type(self, match_type: QName) -> bool:
        return match_type in self.type_list

    def is_matching_scope(self, match_scope_uri: str) -> bool:
        return any(match_scope(match_scope_uri, scope) for scope in self.scope_list)

    def to_dict(self) -> dict[str, object]:
        return {
            "endpoint_reference": self.endpoint_reference,
            "types": [str(qname) for qname in self.type_list],
            "scopes": list(self.scope_list),
            "x_addrs": list(self.x_addr_list),
            "metadata_version": self.metadata_version,
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
        }


class TargetServiceRegistry:
    """Thread-safe map from endpoint reference to the shared TargetService record."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._services: dict[str, TargetService] = {}

    def upsert(
        self,
        endpoint_reference: str,
        types: Iterable[QName],
        scopes: Iterable[str],
        x_addrs: Iterable[str],
        metadata_version: Optional[int] = None,
    ) -> TargetService:
        """Create or update the record for ``endpoint_reference``.

        Lists are replaced, not merged, so the record always reflects the most
        recent match. The returned object is the one held by the registry.
        """

        with self._lock:
            service = self._services.get(endpoint_reference)
            if service is None:
                service = TargetService(endpoint_reference=endpoint_reference)
                self._services[endpoint_reference] = service
            service.type_list = list(types)
            service.scope_list = list(dict.fromkeys(scopes))
            service.x_addr_list = list(x_addrs)
            service.metadata_version = metadata_version
            service.last_seen = self._clock()
            return service

    def get(self, endpoint_reference: str) -> Optional[TargetService]:
        with self._lock:
            return self._services.get(endpoint_reference)

    def services(self) -> list[TargetService]:
        with self._lock:
            return list(self._services.values())

    def stale(self, max_age: timedelta) -> list[TargetService]:
        """Records not seen within ``max_age``; removal is left to the caller."""

        with self._lock:
            cutoff = self._clock() - max_age
            return [
                service
                for service in self._services.values()
                if service.last_seen is None or service.last_seen < cutoff
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._services)

    def __contains__(self, endpoint_reference: object) -> bool:
        with self._lock:
            return endpoint_reference in self._services
