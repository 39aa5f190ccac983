from __future__ import annotations

from typing import Callable, Optional

import pytest

from wsdiscovery_client.client import WSDiscoveryClient
from wsdiscovery_client.messages import ACTION_PROBE_MATCHES, ACTION_RESOLVE_MATCHES
from wsdiscovery_client.soap import ANONYMOUS_ADDRESS, SOAP_NS, WSA_NS, WSD_NS

ONVIF_SCOPES = "onvif://www.onvif.org/type/video_encoder onvif://www.onvif.org/location/lab"


class FakeTransport:
    """In-memory stand-in for MulticastTransport."""

    def __init__(self, bind_result: bool = True) -> None:
        self.bind_result = bind_result
        self.bind_calls: list[tuple[int, bool]] = []
        self.sent: list[tuple[bytes, str, int]] = []
        self.failing_addresses: set[str] = set()
        self.handlers: list[Callable[[bytes, str, int], None]] = []
        self.closed = False

    def bind(self, port: int, share_address: bool = True) -> bool:
        self.bind_calls.append((port, share_address))
        return self.bind_result

    def send(self, payload: bytes, address: str, port: int) -> bool:
        self.sent.append((payload, address, port))
        return address not in self.failing_addresses

    def on_receive(self, handler: Callable[[bytes, str, int], None]) -> None:
        self.handlers.append(handler)

    def close(self) -> None:
        self.closed = True

    def deliver(self, payload: bytes, address: str = "192.0.2.10", port: int = 3702) -> None:
        for handler in self.handlers:
            handler(payload, address, port)


def _match_xml(
    element: str,
    endpoint_reference: Optional[str],
    types: str = "dn:NetworkVideoTransmitter",
    scopes: str = ONVIF_SCOPES,
    x_addrs: str = "http://192.0.2.10/onvif/device_service",
) -> str:
    epr = (
        f"<a:EndpointReference><a:Address>{endpoint_reference}</a:Address></a:EndpointReference>"
        if endpoint_reference is not None
        else ""
    )
    return (
        f"<d:{element}>{epr}"
        f"<d:Types>{types}</d:Types>"
        f"<d:Scopes>{scopes}</d:Scopes>"
        f"<d:XAddrs>{x_addrs}</d:XAddrs>"
        f"<d:MetadataVersion>1</d:MetadataVersion>"
        f"</d:{element}>"
    )


def build_reply(action: str, body: str) -> bytes:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<s:Envelope xmlns:s="{SOAP_NS}" xmlns:a="{WSA_NS}" xmlns:d="{WSD_NS}" '
        'xmlns:dn="http://www.onvif.org/ver10/network/wsdl">'
        "<s:Header>"
        "<a:MessageID>urn:uuid:5a0e4b2c-0000-4000-8000-000000000001</a:MessageID>"
        "<a:RelatesTo>urn:uuid:5a0e4b2c-0000-4000-8000-000000000000</a:RelatesTo>"
        f"<a:To>{ANONYMOUS_ADDRESS}</a:To>"
        f"<a:Action>{action}</a:Action>"
        "</s:Header>"
        f"<s:Body>{body}</s:Body>"
        "</s:Envelope>"
    ).encode("utf-8")


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def client(transport: FakeTransport):
    discovery_client = WSDiscoveryClient(transport=transport)
    yield discovery_client
    discovery_client.close()


@pytest.fixture
def probe_match() -> Callable[..., str]:
    def factory(endpoint_reference: Optional[str], **fields: str) -> str:
        return _match_xml("ProbeMatch", endpoint_reference, **fields)

    return factory


@pytest.fixture
def probe_matches_reply() -> Callable[..., bytes]:
    def factory(*matches: str, action: str = ACTION_PROBE_MATCHES) -> bytes:
        return build_reply(action, f"<d:ProbeMatches>{''.join(matches)}</d:ProbeMatches>")

    return factory


@pytest.fixture
def resolve_matches_reply() -> Callable[..., bytes]:
    def factory(endpoint_reference: Optional[str], **fields: str) -> bytes:
        match = _match_xml("ResolveMatch", endpoint_reference, **fields) if endpoint_reference else ""
        return build_reply(ACTION_RESOLVE_MATCHES, f"<d:ResolveMatches>{match}</d:ResolveMatches>")

    return factory


@pytest.fixture
def reply() -> Callable[[str, str], bytes]:
    return build_reply
