"""Exception types raised by the discovery client."""

from __future__ import annotations


class DiscoveryError(Exception):
    """Base class for discovery client errors."""


class MalformedMessageError(DiscoveryError):
    """Raised when an inbound datagram is not a decodable SOAP envelope."""
