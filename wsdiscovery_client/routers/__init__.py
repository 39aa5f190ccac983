"""Router exports for the discovery service."""

from wsdiscovery_client.routers import discovery

__all__ = [
    "discovery",
]
