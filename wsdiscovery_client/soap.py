"""SOAP envelope codec for WS-Discovery datagrams."""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import Optional
from xml.etree import ElementTree as ET
from xml.etree.ElementTree import Element

from wsdiscovery_client.errors import MalformedMessageError

logger = logging.getLogger(__name__)

SOAP_NS = "http://www.w3.org/2003/05/soap-envelope"
WSA_NS = "http://schemas.xmlsoap.org/ws/2004/08/addressing"
WSD_NS = "http://schemas.xmlsoap.org/ws/2005/04/discovery"

ANONYMOUS_ADDRESS = f"{WSA_NS}/role/anonymous"

ET.register_namespace("soap", SOAP_NS)
ET.register_namespace("wsa", WSA_NS)
ET.register_namespace("wsd", WSD_NS)

NamespaceMap = dict[str, str]


@dataclass(frozen=True)
class QName:
    """A namespace qualified name such as ``tdn:NetworkVideoTransmitter``."""

    namespace: str
    local_name: str

    @classmethod
    def from_text(cls, text: str) -> "QName":
        """Parse Clark notation (``{ns}local``) or a bare local name."""

        text = text.strip()
        if text.startswith("{"):
            namespace, sep, local_name = text[1:].partition("}")
            if not sep or not local_name:
                raise ValueError(f"Malformed qualified name: {text!r}")
            return cls(namespace, local_name)
        if not text or ":" in text:
            raise ValueError(f"Qualified name must use {{namespace}}local form: {text!r}")
        return cls("", text)

    @classmethod
    def resolve(cls, token: str, nsmap: NamespaceMap) -> "QName":
        """Resolve a ``prefix:local`` token against in-scope namespace declarations."""

        prefix, sep, local_name = token.partition(":")
        if not sep:
            return cls(nsmap.get("", ""), prefix)
        if prefix not in nsmap:
            logger.debug(
                "Namespace prefix is not declared",
                extra={"event": "unresolved_prefix", "prefix": prefix, "token": token},
            )
            return cls("", local_name)
        return cls(nsmap[prefix], local_name)

    def __str__(self) -> str:
        if not self.namespace:
            return self.local_name
        return f"{{{self.namespace}}}{self.local_name}"


@dataclass
class AddressingHeaders:
    """WS-Addressing properties carried in the SOAP header."""

    action: str = ""
    message_id: str = ""
    to: Optional[str] = None
    reply_to: Optional[str] = None
    relates_to: Optional[str] = None


@dataclass
class InboundEnvelope:
    """A decoded datagram: addressing headers plus the first body element."""

    headers: AddressingHeaders
    body: Optional[Element]
    nsmaps: dict[Element, NamespaceMap] = field(default_factory=dict, repr=False)

    def namespaces_for(self, element: Element) -> NamespaceMap:
        return self.nsmaps.get(element, {})


def serialize_envelope(headers: AddressingHeaders, body_child: Element) -> bytes:
    envelope = ET.Element(f"{{{SOAP_NS}}}Envelope")
    header = ET.SubElement(envelope, f"{{{SOAP_NS}}}Header")
    ET.SubElement(header, f"{{{WSA_NS}}}Action").text = headers.action
    ET.SubElement(header, f"{{{WSA_NS}}}MessageID").text = headers.message_id
    if headers.to is not None:
        ET.SubElement(header, f"{{{WSA_NS}}}To").text = headers.to
    if headers.reply_to is not None:
        reply_to = ET.SubElement(header, f"{{{WSA_NS}}}ReplyTo")
        ET.SubElement(reply_to, f"{{{WSA_NS}}}Address").text = headers.reply_to
    if headers.relates_to is not None:
        ET.SubElement(header, f"{{{WSA_NS}}}RelatesTo").text = headers.relates_to
    body = ET.SubElement(envelope, f"{{{SOAP_NS}}}Body")
    body.append(body_child)
    return ET.tostring(envelope, encoding="utf-8", xml_declaration=True)


def _text(parent: Optional[Element], path: str) -> Optional[str]:
    if parent is None:
        return None
    value = parent.findtext(path)
    return value.strip() if value is not None else None


def parse_envelope(payload: bytes) -> InboundEnvelope:
    """Decode a SOAP envelope, keeping the namespace scope of every element.

    WS-Discovery carries qualified names inside element text (``Types``), so the
    prefix declarations that ElementTree normally discards are collected while
    parsing.
    """

    nsmaps: dict[Element, NamespaceMap] = {}
    scopes: list[NamespaceMap] = [{}]
    pending: NamespaceMap = {}
    root: Optional[Element] = None
    try:
        for event, item in ET.iterparse(io.BytesIO(payload), events=("start-ns", "start", "end")):
            if event == "start-ns":
                prefix, uri = item
                pending[prefix] = uri
            elif event == "start":
                scope = {**scopes[-1], **pending} if pending else scopes[-1]
                pending = {}
                scopes.append(scope)
                nsmaps[item] = scope
                if root is None:
                    root = item
            else:
                scopes.pop()
    except ET.ParseError as exc:
        raise MalformedMessageError(f"Invalid XML payload: {exc}") from exc

    if root is None or root.tag != f"{{{SOAP_NS}}}Envelope":
        raise MalformedMessageError("Payload is not a SOAP 1.2 envelope")

    header = root.find(f"{{{SOAP_NS}}}Header")
    headers = AddressingHeaders(
        action=_text(header, f"{{{WSA_NS}}}Action") or "",
        message_id=_text(header, f"{{{WSA_NS}}}MessageID") or "",
        to=_text(header, f"{{{WSA_NS}}}To"),
        reply_to=_text(header, f"{{{WSA_NS}}}ReplyTo/{{{WSA_NS}}}Address"),
        relates_to=_text(header, f"{{{WSA_NS}}}RelatesTo"),
    )

    body = root.find(f"{{{SOAP_NS}}}Body")
    body_child = list(body)[0] if body is not None and len(body) else None
    return InboundEnvelope(headers=headers, body=body_child, nsmaps=nsmaps)
