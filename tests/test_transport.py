import logging
import socket
import threading
import unittest
from unittest import mock

from wsdiscovery_client.transport import MulticastTransport


class _SocketFactory:
    """Creates MagicMock sockets per address family."""

    def __init__(self, bind_errors=None, unavailable=()) -> None:
        self.bind_errors = bind_errors or {}
        self.unavailable = set(unavailable)
        self.created: dict[int, list[mock.MagicMock]] = {}
        self.recv_results: dict[int, list] = {}

    def __call__(self, family, type_=socket.SOCK_DGRAM, proto=0):
        if family in self.unavailable:
            raise OSError(97, "Address family not supported by protocol")
        sock = mock.MagicMock(name=f"socket-{family.name}")
        sock.recvfrom.side_effect = self.recv_results.get(family, [OSError("closed")])
        if family in self.bind_errors:
            sock.bind.side_effect = self.bind_errors[family]
        else:
            sock.bind.side_effect = self._autobound_check(sock)
        self.created.setdefault(family, []).append(sock)
        return sock

    @staticmethod
    def _autobound_check(sock):
        # The kernel assigns an ephemeral port on the first sendto of an unbound socket.
        def bind(address):
            if sock.sendto.called:
                raise OSError(22, "Invalid argument")

        return bind


class MulticastTransportTestCase(unittest.TestCase):
    def _patch(self, factory: _SocketFactory):
        patcher = mock.patch("wsdiscovery_client.transport.socket.socket", side_effect=factory)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_bind_joins_both_groups(self) -> None:
        factory = _SocketFactory()
        self._patch(factory)
        transport = MulticastTransport()
        self.addCleanup(transport.close)

        self.assertTrue(transport.bind(3702, share_address=True))

        ipv4 = factory.created[socket.AF_INET][0]
        ipv6 = factory.created[socket.AF_INET6][0]
        ipv4.bind.assert_called_once_with(("", 3702))
        ipv6.bind.assert_called_once_with(("::", 3702))
        ipv4.setsockopt.assert_any_call(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        options = [call.args[1] for call in ipv4.setsockopt.call_args_list]
        self.assertIn(socket.IP_ADD_MEMBERSHIP, options)
        options = [call.args[1] for call in ipv6.setsockopt.call_args_list]
        self.assertIn(socket.IPV6_JOIN_GROUP, options)
        self.assertIn(socket.IPV6_V6ONLY, options)

    def test_bind_without_sharing_skips_reuse_options(self) -> None:
        factory = _SocketFactory()
        self._patch(factory)
        transport = MulticastTransport()
        self.addCleanup(transport.close)

        transport.bind(3702, share_address=False)

        options = [call.args[1] for call in factory.created[socket.AF_INET][0].setsockopt.call_args_list]
        self.assertNotIn(socket.SO_REUSEADDR, options)

    def test_port_in_use_on_one_family_is_tolerated(self) -> None:
        factory = _SocketFactory(bind_errors={socket.AF_INET: OSError(98, "Address already in use")})
        self._patch(factory)
        transport = MulticastTransport()
        self.addCleanup(transport.close)

        with self.assertLogs("wsdiscovery_client.transport", level="WARNING") as logs:
            self.assertTrue(transport.bind(3702))

        reasons = [getattr(record, "event", None) for record in logs.records]
        self.assertIn("bind_failed", reasons)
        factory.created[socket.AF_INET][0].close.assert_called_once()

    def test_bind_fails_when_no_family_binds(self) -> None:
        error = OSError(13, "Permission denied")
        factory = _SocketFactory(bind_errors={socket.AF_INET: error, socket.AF_INET6: error})
        self._patch(factory)
        transport = MulticastTransport()
        self.addCleanup(transport.close)

        with self.assertLogs("wsdiscovery_client.transport", level="WARNING"):
            self.assertFalse(transport.bind(3702))
        self.assertFalse(transport.listening)

    def test_repeated_bind_keeps_listening_sockets(self) -> None:
        factory = _SocketFactory()
        self._patch(factory)
        transport = MulticastTransport()
        self.addCleanup(transport.close)

        transport.bind(3702)
        transport.bind(3702)

        self.assertEqual(len(factory.created[socket.AF_INET]), 1)
        self.assertEqual(len(factory.created[socket.AF_INET6]), 1)
        factory.created[socket.AF_INET][0].bind.assert_called_once()

    def test_repeated_bind_retries_failed_family(self) -> None:
        factory = _SocketFactory(bind_errors={socket.AF_INET: OSError(98, "Address already in use")})
        self._patch(factory)
        transport = MulticastTransport()
        self.addCleanup(transport.close)

        with self.assertLogs("wsdiscovery_client.transport", level="WARNING"):
            transport.bind(3702)
            transport.bind(3702)

        self.assertEqual(len(factory.created[socket.AF_INET]), 2)
        self.assertEqual(len(factory.created[socket.AF_INET6]), 1)

    def test_send_uses_address_family_of_destination(self) -> None:
        factory = _SocketFactory()
        self._patch(factory)
        transport = MulticastTransport()
        self.addCleanup(transport.close)

        self.assertTrue(transport.send(b"probe", "239.255.255.250", 3702))
        self.assertTrue(transport.send(b"probe", "FF02::C", 3702))

        factory.created[socket.AF_INET][0].sendto.assert_called_once_with(b"probe", ("239.255.255.250", 3702))
        factory.created[socket.AF_INET6][0].sendto.assert_called_once_with(b"probe", ("FF02::C", 3702, 0, 0))

    def test_send_failure_returns_false(self) -> None:
        factory = _SocketFactory()
        self._patch(factory)
        transport = MulticastTransport()
        self.addCleanup(transport.close)
        transport.send(b"probe", "239.255.255.250", 3702)
        factory.created[socket.AF_INET][0].sendto.side_effect = OSError(101, "Network is unreachable")

        self.assertFalse(transport.send(b"probe", "239.255.255.250", 3702))

    def test_send_to_hostname_returns_false(self) -> None:
        factory = _SocketFactory()
        self._patch(factory)
        transport = MulticastTransport()
        self.addCleanup(transport.close)

        with self.assertLogs("wsdiscovery_client.transport", level="WARNING") as logs:
            self.assertFalse(transport.send(b"probe", "camera.local", 3702))

        reasons = [getattr(record, "event", None) for record in logs.records]
        self.assertEqual(reasons, ["invalid_address"])
        self.assertEqual(factory.created, {})

    def test_bind_after_send_uses_fresh_sockets(self) -> None:
        factory = _SocketFactory()
        self._patch(factory)
        transport = MulticastTransport()
        self.addCleanup(transport.close)

        transport.send(b"probe", "239.255.255.250", 3702)
        transport.send(b"probe", "FF02::C", 3702)
        self.assertTrue(transport.bind(3702))

        for family in (socket.AF_INET, socket.AF_INET6):
            sender, listener = factory.created[family]
            sender.close.assert_called_once()
            sender.bind.assert_not_called()
            listener.bind.assert_called_once()
        self.assertTrue(transport.listening)

    def test_send_after_bind_reuses_listening_socket(self) -> None:
        factory = _SocketFactory()
        self._patch(factory)
        transport = MulticastTransport()
        self.addCleanup(transport.close)

        transport.bind(3702)
        self.assertTrue(transport.send(b"probe", "239.255.255.250", 3702))
        transport.bind(3702)

        self.assertEqual(len(factory.created[socket.AF_INET]), 1)
        factory.created[socket.AF_INET][0].sendto.assert_called_once()

    def test_unavailable_family_is_reported_not_raised(self) -> None:
        factory = _SocketFactory(unavailable=[socket.AF_INET6])
        self._patch(factory)
        transport = MulticastTransport()
        self.addCleanup(transport.close)

        with self.assertLogs("wsdiscovery_client.transport", level="WARNING") as logs:
            self.assertFalse(transport.send(b"probe", "FF02::C", 3702))
            self.assertTrue(transport.bind(3702))

        reasons = [getattr(record, "event", None) for record in logs.records]
        self.assertIn("socket_unavailable", reasons)

    def test_received_datagrams_reach_handler(self) -> None:
        factory = _SocketFactory(unavailable=[socket.AF_INET6])
        factory.recv_results[socket.AF_INET] = [
            (b"<reply/>", ("192.0.2.10", 3702)),
            OSError("closed"),
        ]
        self._patch(factory)
        transport = MulticastTransport()
        self.addCleanup(transport.close)
        delivered = threading.Event()
        received = []

        def handler(payload, address, port):
            received.append((payload, address, port))
            delivered.set()

        transport.on_receive(handler)
        with self.assertLogs("wsdiscovery_client.transport", level=logging.WARNING):
            transport.bind(3702)

        self.assertTrue(delivered.wait(timeout=2))
        self.assertEqual(received, [(b"<reply/>", "192.0.2.10", 3702)])

    def test_close_releases_sockets(self) -> None:
        factory = _SocketFactory()
        self._patch(factory)
        transport = MulticastTransport()
        transport.bind(3702)

        transport.close()
        transport.close()

        self.assertFalse(transport.listening)
        factory.created[socket.AF_INET][0].close.assert_called_once()
        factory.created[socket.AF_INET6][0].close.assert_called_once()


if __name__ == "__main__":
    unittest.main()
