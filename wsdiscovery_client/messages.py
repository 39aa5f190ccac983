"""Construction of WS-Discovery Probe and Resolve requests."""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Iterable, Optional
from xml.etree import ElementTree as ET
from xml.etree.ElementTree import Element

from wsdiscovery_client.soap import (
    ANONYMOUS_ADDRESS,
    WSA_NS,
    WSD_NS,
    AddressingHeaders,
    QName,
    serialize_envelope,
)

DISCOVERY_DESTINATION = "urn:schemas-xmlsoap-org:ws:2005:04:discovery"

ACTION_PROBE = f"{WSD_NS}/Probe"
ACTION_RESOLVE = f"{WSD_NS}/Resolve"
ACTION_PROBE_MATCHES = f"{WSD_NS}/ProbeMatches"
ACTION_RESOLVE_MATCHES = f"{WSD_NS}/ResolveMatches"

ONVIF_NETWORK_NS = "http://www.onvif.org/ver10/network/wsdl"
ONVIF_DEVICE_NS = "http://www.onvif.org/ver10/device/wsdl"

NETWORK_VIDEO_TRANSMITTER = QName(ONVIF_NETWORK_NS, "NetworkVideoTransmitter")

_WELL_KNOWN_PREFIXES = {
    ONVIF_NETWORK_NS: "dn",
    ONVIF_DEVICE_NS: "tds",
}


@dataclass
class OutboundRequest:
    """A fully addressed request ready for transmission."""

    headers: AddressingHeaders
    body: Element

    @property
    def action(self) -> str:
        return self.headers.action

    @property
    def message_id(self) -> str:
        return self.headers.message_id

    def to_bytes(self) -> bytes:
        return serialize_envelope(self.headers, self.body)


def new_message_id() -> str:
    return f"urn:uuid:{uuid.uuid4()}"


def _addressing(action: str) -> AddressingHeaders:
    return AddressingHeaders(
        action=action,
        message_id=new_message_id(),
        to=DISCOVERY_DESTINATION,
        reply_to=ANONYMOUS_ADDRESS,
    )


def _types_element(parent: Element, types: list[QName]) -> Element:
    """Write qualified names as prefixed tokens, declaring each prefix locally."""

    types_el = ET.SubElement(parent, f"{{{WSD_NS}}}Types")
    prefixes: dict[str, str] = {}
    tokens: list[str] = []
    for qname in types:
        if not qname.namespace:
            tokens.append(qname.local_name)
            continue
        prefix = prefixes.get(qname.namespace)
        if prefix is None:
            prefix = _WELL_KNOWN_PREFIXES.get(qname.namespace, f"t{len(prefixes)}")
            prefixes[qname.namespace] = prefix
            types_el.set(f"xmlns:{prefix}", qname.namespace)
        tokens.append(f"{prefix}:{qname.local_name}")
    types_el.text = " ".join(tokens)
    return types_el


def build_probe(
    types: Optional[Iterable[QName]] = None, scopes: Optional[Iterable[str]] = None
) -> OutboundRequest:
    """Build a Probe; empty filters are omitted from the body entirely."""

    type_list = list(types or [])
    scope_list = [str(scope) for scope in scopes or []]

    probe = ET.Element(f"{{{WSD_NS}}}Probe")
    if type_list:
        _types_element(probe, type_list)
    if scope_list:
        ET.SubElement(probe, f"{{{WSD_NS}}}Scopes").text = " ".join(scope_list)
    return OutboundRequest(headers=_addressing(ACTION_PROBE), body=probe)


def build_resolve(endpoint_reference: str) -> OutboundRequest:
    if not endpoint_reference or not endpoint_reference.strip():
        raise ValueError("Endpoint reference must not be empty")

    resolve = ET.Element(f"{{{WSD_NS}}}Resolve")
    epr = ET.SubElement(resolve, f"{{{WSA_NS}}}EndpointReference")
    ET.SubElement(epr, f"{{{WSA_NS}}}Address").text = endpoint_reference.strip()
    return OutboundRequest(headers=_addressing(ACTION_RESOLVE), body=resolve)
