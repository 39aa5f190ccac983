"""Synchronous observer lists used to publish match notifications."""
from __future__ import annotations

import logging
import threading
from typing import Callable

from wsdiscovery_client.registry import TargetService

logger = logging.getLogger(__name__)

MatchListener = Callable[[TargetService], None]


class MatchSignal:
    """Ordered list of listeners notified once per processed match."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.RLock()
        self._listeners: list[MatchListener] = []

    def connect(self, listener: MatchListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def disconnect(self, listener: MatchListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                raise ValueError(f"Listener {listener!r} is not connected to {self.name}")
            self._listeners.remove(listener)

    def emit(self, service: TargetService) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(service)
            except Exception:
                logger.exception(
                    "Match listener failed",
                    extra={
                        "event": "listener_error",
                        "signal": self.name,
                        "endpoint_reference": service.endpoint_reference,
                    },
                )

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)
