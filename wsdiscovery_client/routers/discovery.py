"""Discovery endpoints exposing the target service registry."""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from wsdiscovery_client.client import WSDiscoveryClient
from wsdiscovery_client.config import get_config_manager
from wsdiscovery_client.soap import QName

router = APIRouter(prefix="/discovery", tags=["discovery"])


class ProbeRequest(BaseModel):
    types: list[str] = Field(default_factory=list)
    scopes: list[str] = Field(default_factory=list)


class ResolveRequest(BaseModel):
    endpoint_reference: str


_discovery_client: WSDiscoveryClient | None = None


def get_discovery_client() -> WSDiscoveryClient:
    global _discovery_client
    if _discovery_client is None:
        _discovery_client = WSDiscoveryClient(get_config_manager().get_settings())
    return _discovery_client


@router.get("/services")
def list_services(
    max_age: Optional[float] = Query(default=None, gt=0),
    client: WSDiscoveryClient = Depends(get_discovery_client),
) -> list[dict]:
    services = client.registry.services()
    if max_age is not None:
        stale = {id(service) for service in client.registry.stale(timedelta(seconds=max_age))}
        services = [service for service in services if id(service) not in stale]
    return [service.to_dict() for service in services]


@router.get("/services/{endpoint_reference:path}")
def get_service(
    endpoint_reference: str, client: WSDiscoveryClient = Depends(get_discovery_client)
) -> dict:
    service = client.registry.get(endpoint_reference)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown endpoint reference {endpoint_reference}",
        )
    return service.to_dict()


@router.post("/probe", status_code=status.HTTP_202_ACCEPTED)
def send_probe(
    payload: ProbeRequest, client: WSDiscoveryClient = Depends(get_discovery_client)
) -> dict[str, str]:
    try:
        types = [QName.from_text(entry) for entry in payload.types]
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
        ) from exc
    return {"message_id": client.send_probe(types, payload.scopes)}


@router.post("/resolve", status_code=status.HTTP_202_ACCEPTED)
def send_resolve(
    payload: ResolveRequest, client: WSDiscoveryClient = Depends(get_discovery_client)
) -> dict[str, str]:
    try:
        message_id = client.send_resolve(payload.endpoint_reference)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
        ) from exc
    return {"message_id": message_id}
