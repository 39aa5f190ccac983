"""Command line tool that discovers ONVIF devices for a fixed period."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from typing import Callable, Iterable, Optional, TextIO

from wsdiscovery_client.client import WSDiscoveryClient
from wsdiscovery_client.config import ConfigManager, DiscoverySettings
from wsdiscovery_client.registry import TargetService
from wsdiscovery_client.soap import QName

logger = logging.getLogger(__name__)


class OnvifDiscover:
    """Prints every match; probe matches without XAddrs are followed by a Resolve."""

    def __init__(self, client: WSDiscoveryClient, out: Optional[TextIO] = None) -> None:
        self.client = client
        self.out = out or sys.stdout
        self.resolved: list[str] = []
        client.probe_match_received.connect(self._probe_match_received)
        client.resolve_match_received.connect(self._resolve_match_received)

    def run(
        self,
        types: Iterable[QName],
        scopes: Iterable[str],
        duration: float,
        sleep: Callable[[float], None] = time.sleep,
    ) -> list[TargetService]:
        logger.info("Starting ONVIF discovery for %s seconds", duration)
        self.client.start()
        try:
            self.client.send_probe(types, scopes)
            sleep(duration)
        finally:
            self.client.close()
        return self.client.registry.services()

    def _probe_match_received(self, service: TargetService) -> None:
        if not service.x_addr_list:
            self.resolved.append(service.endpoint_reference)
            self.client.send_resolve(service.endpoint_reference)
            return
        self._print("ProbeMatch", service)

    def _resolve_match_received(self, service: TargetService) -> None:
        self._print("ResolveMatch", service)

    def _print(self, kind: str, service: TargetService) -> None:
        print(json.dumps({"match": kind, **service.to_dict()}, indent=2), file=self.out)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Discover ONVIF devices using WS-Discovery")
    parser.add_argument("--duration", type=float, help="Seconds to listen for replies")
    parser.add_argument(
        "--type",
        dest="types",
        action="append",
        help="Type filter in {namespace}LocalName form (default: NetworkVideoTransmitter)",
    )
    parser.add_argument("--scope", dest="scopes", action="append", help="Scope URI filter")
    parser.add_argument("--config", help="Directory containing discovery.yaml")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        settings = ConfigManager(args.config).get_settings() if args.config else DiscoverySettings()
        types = [QName.from_text(entry) for entry in args.types] if args.types else settings.probe_qnames()
    except ValueError as exc:
        parser.error(str(exc))

    discover = OnvifDiscover(WSDiscoveryClient(settings))
    services = discover.run(
        types,
        args.scopes or settings.probe_scopes,
        args.duration if args.duration is not None else settings.probe_duration,
    )
    print(json.dumps({"discovered": len(services)}, indent=2))
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry
    sys.exit(main())
