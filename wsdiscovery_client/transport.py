"""Dual-stack UDP multicast transport for WS-Discovery."""

from __future__ import annotations

import ipaddress
import logging
import socket
import struct
import threading
from typing import Callable, Optional

from wsdiscovery_client.config import DISCOVERY_ADDRESS_IPV4, DISCOVERY_ADDRESS_IPV6

logger = logging.getLogger(__name__)

ReceiveHandler = Callable[[bytes, str, int], None]


class MulticastTransport:
    """
    One UDP socket per address family, bound to the shared discovery port.

    Requests are sent from the bound socket so that unicast replies come back
    to the same port. Each bound socket is drained by a daemon thread that
    hands every datagram to the registered handler.
    """

    def __init__(
        self,
        ipv4_group: str = DISCOVERY_ADDRESS_IPV4,
        ipv6_group: str = DISCOVERY_ADDRESS_IPV6,
        multicast_ttl: int = 1,
        buffer_size: int = 65535,
        poll_interval: float = 0.5,
    ) -> None:
        self.ipv4_group = ipv4_group
        self.ipv6_group = ipv6_group
        self.multicast_ttl = multicast_ttl
        self.buffer_size = buffer_size
        self.poll_interval = poll_interval
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._sockets: dict[int, socket.socket] = {}
        self._threads: dict[int, threading.Thread] = {}
        self._handler: Optional[ReceiveHandler] = None

    # Public API ------------------------------------------------------
    @property
    def listening(self) -> bool:
        with self._lock:
            return bool(self._threads)

    def on_receive(self, handler: ReceiveHandler) -> None:
        self._handler = handler

    def bind(self, port: int, share_address: bool = True) -> bool:
        """Bind both families; True when at least one of them is listening."""

        with self._lock:
            self._stop.clear()
            for family, group in ((socket.AF_INET, self.ipv4_group), (socket.AF_INET6, self.ipv6_group)):
                if family in self._threads:
                    continue
                self._bind_family(family, group, port, share_address)
            return bool(self._threads)

    def send(self, payload: bytes, address: str, port: int) -> bool:
        """Send one datagram; failures are logged and reported as False."""

        try:
            version = ipaddress.ip_address(address).version
        except ValueError:
            logger.warning(
                "Destination is not an IP literal",
                extra={"event": "invalid_address", "address": address, "port": port},
            )
            return False
        family = socket.AF_INET6 if version == 6 else socket.AF_INET
        with self._lock:
            sock = self._socket_for(family)
        if sock is None:
            return False
        destination = (address, port, 0, 0) if family == socket.AF_INET6 else (address, port)
        try:
            sock.sendto(payload, destination)
        except OSError as exc:
            logger.debug(
                "Sending datagram failed",
                extra={"event": "send_failed", "address": address, "port": port, "error": str(exc)},
            )
            return False
        return True

    def close(self) -> None:
        with self._lock:
            self._stop.set()
            threads = list(self._threads.values())
            self._threads.clear()
        for thread in threads:
            thread.join(timeout=self.poll_interval * 2)
        with self._lock:
            for sock in self._sockets.values():
                sock.close()
            self._sockets.clear()

    # Internal helpers ------------------------------------------------
    def _socket_for(self, family: int) -> Optional[socket.socket]:
        sock = self._sockets.get(family)
        if sock is not None:
            return sock
        try:
            sock = socket.socket(family, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
            if family == socket.AF_INET6:
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_MULTICAST_HOPS, self.multicast_ttl)
            else:
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, self.multicast_ttl)
        except OSError as exc:
            logger.warning(
                "Address family unavailable",
                extra={"event": "socket_unavailable", "family": family.name, "error": str(exc)},
            )
            return None
        self._sockets[family] = sock
        return sock

    def _bind_family(self, family: int, group: str, port: int, share_address: bool) -> None:
        # A socket that already sent is pinned to an ephemeral port and cannot be rebound.
        unbound = self._sockets.pop(family, None)
        if unbound is not None:
            unbound.close()
        sock = self._socket_for(family)
        if sock is None:
            return
        try:
            if share_address:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                if hasattr(socket, "SO_REUSEPORT"):
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            sock.bind(("::" if family == socket.AF_INET6 else "", port))
        except OSError as exc:
            logger.warning(
                "Binding discovery socket failed",
                extra={"event": "bind_failed", "family": family.name, "port": port, "error": str(exc)},
            )
            sock.close()
            self._sockets.pop(family, None)
            return

        self._join_group(sock, family, group)
        sock.settimeout(self.poll_interval)
        thread = threading.Thread(
            target=self._run, args=(sock,), name=f"wsd-recv-{family.name}", daemon=True
        )
        self._threads[family] = thread
        thread.start()

    def _join_group(self, sock: socket.socket, family: int, group: str) -> None:
        try:
            if family == socket.AF_INET6:
                mreq = socket.inet_pton(socket.AF_INET6, group) + struct.pack("@I", 0)
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_JOIN_GROUP, mreq)
            else:
                mreq = socket.inet_aton(group) + socket.inet_aton("0.0.0.0")
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
        except OSError as exc:
            # Unicast replies still arrive on the bound port.
            logger.warning(
                "Joining multicast group failed",
                extra={"event": "join_failed", "group": group, "error": str(exc)},
            )

    def _run(self, sock: socket.socket) -> None:
        while not self._stop.is_set():
            try:
                data, sender = sock.recvfrom(self.buffer_size)
            except socket.timeout:
                continue
            except OSError:
                break

            handler = self._handler
            if handler is None:
                continue
            try:
                handler(data, sender[0], sender[1])
            except Exception:
                logger.exception(
                    "Receive handler failed",
                    extra={"event": "receive_failed", "sender": sender[0]},
                )
