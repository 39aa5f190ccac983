"""Client side of the WS-Discovery multicast protocol."""

from wsdiscovery_client.client import ClientState, WSDiscoveryClient
from wsdiscovery_client.config import DiscoverySettings
from wsdiscovery_client.errors import DiscoveryError, MalformedMessageError
from wsdiscovery_client.messages import NETWORK_VIDEO_TRANSMITTER, build_probe, build_resolve
from wsdiscovery_client.registry import TargetService, TargetServiceRegistry
from wsdiscovery_client.replies import MatchRecord, ReplyKind, ReplyRouter
from wsdiscovery_client.soap import QName

__all__ = [
    "ClientState",
    "DiscoveryError",
    "DiscoverySettings",
    "MalformedMessageError",
    "MatchRecord",
    "NETWORK_VIDEO_TRANSMITTER",
    "QName",
    "ReplyKind",
    "ReplyRouter",
    "TargetService",
    "TargetServiceRegistry",
    "WSDiscoveryClient",
    "build_probe",
    "build_resolve",
]
