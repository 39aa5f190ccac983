"""Classification and processing of inbound WS-Discovery replies."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional
from xml.etree.ElementTree import Element

from wsdiscovery_client.messages import (
    ACTION_PROBE,
    ACTION_PROBE_MATCHES,
    ACTION_RESOLVE,
    ACTION_RESOLVE_MATCHES,
)
from wsdiscovery_client.notifications import MatchSignal
from wsdiscovery_client.registry import TargetService, TargetServiceRegistry
from wsdiscovery_client.soap import WSA_NS, WSD_NS, InboundEnvelope, QName

logger = logging.getLogger(__name__)


class ReplyKind(str, Enum):
    PROBE = "Probe"
    RESOLVE = "Resolve"
    PROBE_MATCHES = "ProbeMatches"
    RESOLVE_MATCHES = "ResolveMatches"
    UNKNOWN = "Unknown"

    @classmethod
    def from_action(cls, action: str) -> "ReplyKind":
        return _ACTION_KINDS.get(action.strip(), cls.UNKNOWN)


_ACTION_KINDS = {
    ACTION_PROBE: ReplyKind.PROBE,
    ACTION_RESOLVE: ReplyKind.RESOLVE,
    ACTION_PROBE_MATCHES: ReplyKind.PROBE_MATCHES,
    ACTION_RESOLVE_MATCHES: ReplyKind.RESOLVE_MATCHES,
}


@dataclass
class MatchRecord:
    """Raw ProbeMatch/ResolveMatch content before projection into the registry."""

    endpoint_reference: str
    types: list[QName] = field(default_factory=list)
    scopes: list[str] = field(default_factory=list)
    x_addrs: list[str] = field(default_factory=list)
    metadata_version: Optional[int] = None


def _tokens(element: Optional[Element]) -> list[str]:
    if element is None or not element.text:
        return []
    return element.text.split()


def decode_match(element: Element, envelope: InboundEnvelope) -> Optional[MatchRecord]:
    """Decode one match element; returns None when it has no endpoint reference."""

    address = element.findtext(f"{{{WSA_NS}}}EndpointReference/{{{WSA_NS}}}Address")
    if not address or not address.strip():
        return None

    types_el = element.find(f"{{{WSD_NS}}}Types")
    nsmap = envelope.namespaces_for(types_el) if types_el is not None else {}
    version_text = element.findtext(f"{{{WSD_NS}}}MetadataVersion")
    try:
        metadata_version = int(version_text) if version_text else None
    except ValueError:
        metadata_version = None

    return MatchRecord(
        endpoint_reference=address.strip(),
        types=[QName.resolve(token, nsmap) for token in _tokens(types_el)],
        scopes=_tokens(element.find(f"{{{WSD_NS}}}Scopes")),
        x_addrs=_tokens(element.find(f"{{{WSD_NS}}}XAddrs")),
        metadata_version=metadata_version,
    )


class ReplyRouter:
    """Dispatches inbound envelopes by action and projects matches into the registry."""

    def __init__(
        self,
        registry: TargetServiceRegistry,
        probe_match_received: MatchSignal,
        resolve_match_received: MatchSignal,
    ) -> None:
        self.registry = registry
        self.probe_match_received = probe_match_received
        self.resolve_match_received = resolve_match_received
        self._handlers: Dict[ReplyKind, Callable[[InboundEnvelope], list[TargetService]]] = {
            ReplyKind.PROBE: self._ignore,
            ReplyKind.RESOLVE: self._ignore,
            ReplyKind.PROBE_MATCHES: self._handle_probe_matches,
            ReplyKind.RESOLVE_MATCHES: self._handle_resolve_matches,
            ReplyKind.UNKNOWN: self._handle_unknown,
        }

    def route(self, envelope: InboundEnvelope) -> list[TargetService]:
        """Process one reply and return the records it touched, in match order."""

        kind = ReplyKind.from_action(envelope.headers.action)
        return self._handlers[kind](envelope)

    # Handlers ----------------------------------------------------------
    def _ignore(self, envelope: InboundEnvelope) -> list[TargetService]:
        return []

    def _handle_unknown(self, envelope: InboundEnvelope) -> list[TargetService]:
        logger.debug(
            "Received message with unknown action",
            extra={"event": "unknown_action", "action": envelope.headers.action},
        )
        return []

    def _handle_probe_matches(self, envelope: InboundEnvelope) -> list[TargetService]:
        if envelope.body is None:
            return []
        services: list[TargetService] = []
        for element in envelope.body.findall(f"{{{WSD_NS}}}ProbeMatch"):
            service = self._project(element, envelope, self.probe_match_received)
            if service is not None:
                services.append(service)
        return services

    def _handle_resolve_matches(self, envelope: InboundEnvelope) -> list[TargetService]:
        if envelope.body is None:
            return []
        element = envelope.body.find(f"{{{WSD_NS}}}ResolveMatch")
        if element is None:
            return []
        service = self._project(element, envelope, self.resolve_match_received)
        return [service] if service is not None else []

    def _project(
        self, element: Element, envelope: InboundEnvelope, signal: MatchSignal
    ) -> Optional[TargetService]:
        match = decode_match(element, envelope)
        if match is None:
            logger.debug(
                "Dropping match without endpoint reference",
                extra={"event": "unkeyed_match", "message_id": envelope.headers.message_id},
            )
            return None
        service = self.registry.upsert(
            match.endpoint_reference,
            match.types,
            match.scopes,
            match.x_addrs,
            metadata_version=match.metadata_version,
        )
        signal.emit(service)
        return service
