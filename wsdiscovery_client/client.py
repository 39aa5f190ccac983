"""WS-Discovery client façade: probe, resolve and track discovered services."""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Iterable, Optional, Protocol

from wsdiscovery_client.config import DiscoverySettings
from wsdiscovery_client.errors import MalformedMessageError
from wsdiscovery_client.messages import OutboundRequest, build_probe, build_resolve
from wsdiscovery_client.notifications import MatchSignal
from wsdiscovery_client.registry import TargetServiceRegistry
from wsdiscovery_client.replies import ReplyRouter
from wsdiscovery_client.soap import QName, parse_envelope
from wsdiscovery_client.transport import MulticastTransport, ReceiveHandler

logger = logging.getLogger(__name__)


class Transport(Protocol):
    def bind(self, port: int, share_address: bool = True) -> bool: ...

    def send(self, payload: bytes, address: str, port: int) -> bool: ...

    def on_receive(self, handler: ReceiveHandler) -> None: ...

    def close(self) -> None: ...


class ClientState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"


class WSDiscoveryClient:
    """
    Sends Probe/Resolve requests to the IPv4 and IPv6 discovery groups and
    keeps a registry of the target services that answer.

    Replies are only received after :meth:`start` has bound the discovery
    port. All network failures are logged and never raised, since multicast
    discovery is best effort.
    """

    def __init__(
        self,
        settings: Optional[DiscoverySettings] = None,
        transport: Optional[Transport] = None,
        registry: Optional[TargetServiceRegistry] = None,
    ) -> None:
        self.settings = settings or DiscoverySettings()
        self.transport: Transport = transport or MulticastTransport(
            ipv4_group=self.settings.ipv4_group,
            ipv6_group=self.settings.ipv6_group,
            multicast_ttl=self.settings.multicast_ttl,
            buffer_size=self.settings.buffer_size,
        )
        self.registry = registry if registry is not None else TargetServiceRegistry()
        self.probe_match_received = MatchSignal("probe_match_received")
        self.resolve_match_received = MatchSignal("resolve_match_received")
        self.state = ClientState.IDLE
        self._router = ReplyRouter(
            self.registry, self.probe_match_received, self.resolve_match_received
        )
        self._delivery_lock = threading.Lock()
        self.transport.on_receive(self._received_datagram)

    def __enter__(self) -> "WSDiscoveryClient":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # Public API ------------------------------------------------------
    def start(self) -> bool:
        """Bind the discovery port; repeated calls only retry the bind."""

        port = self.settings.port
        if self.transport.bind(port, self.settings.share_address):
            if self.state is not ClientState.LISTENING:
                logger.info("Listening for WS-Discovery replies on port %s", port)
            self.state = ClientState.LISTENING
            return True
        logger.warning(
            "Binding the discovery port failed",
            extra={"event": "bind_failed", "port": port},
        )
        return False

    def send_probe(
        self, types: Optional[Iterable[QName]] = None, scopes: Optional[Iterable[str]] = None
    ) -> str:
        request = build_probe(types, scopes)
        self._multicast(request)
        return request.message_id

    def send_resolve(self, endpoint_reference: str) -> str:
        request = build_resolve(endpoint_reference)
        self._multicast(request)
        return request.message_id

    def close(self) -> None:
        self.transport.close()
        self.state = ClientState.IDLE

    # Internal helpers ------------------------------------------------
    def _multicast(self, request: OutboundRequest) -> None:
        payload = request.to_bytes()
        for address in (self.settings.ipv4_group, self.settings.ipv6_group):
            if not self.transport.send(payload, address, self.settings.port):
                logger.warning(
                    "Sending %s failed",
                    request.action.rsplit("/", 1)[-1],
                    extra={
                        "event": "send_failed",
                        "address": address,
                        "port": self.settings.port,
                        "message_id": request.message_id,
                    },
                )

    def _received_datagram(self, payload: bytes, sender_address: str, sender_port: int) -> None:
        with self._delivery_lock:
            try:
                envelope = parse_envelope(payload)
            except MalformedMessageError as exc:
                logger.debug(
                    "Dropping malformed datagram",
                    extra={"event": "malformed_datagram", "sender": sender_address, "error": str(exc)},
                )
                return
            self._router.route(envelope)
