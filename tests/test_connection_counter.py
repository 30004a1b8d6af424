import random
import socket
import threading

import pytest

from core.connection_counter import (
    ConnectionCounter,
    OpenVPNManagementClient,
    count_client_lines,
    count_handshakes,
    count_udp_sessions,
)
from core.exceptions import MeasurementUnavailable

from conftest import FakeRunner, failed, ok

STATUS_V2 = (
    "TITLE,OpenVPN 2.5.9 x86_64-pc-linux-gnu\r\n"
    "TIME,2026-10-18 12:00:00,1792324800\r\n"
    "HEADER,CLIENT_LIST,Common Name,Real Address,Virtual Address\r\n"
    "CLIENT_LIST,alice,203.0.113.5:51000,10.8.0.2\r\n"
    "CLIENT_LIST,bob,198.51.100.7:40112,10.8.0.3\r\n"
    "CLIENT_LIST,carol,192.0.2.44:39001,10.8.0.4\r\n"
    "HEADER,ROUTING_TABLE,Virtual Address,Common Name\r\n"
    "ROUTING_TABLE,10.8.0.2,alice\r\n"
    "GLOBAL_STATS,Max bcast/mcast queue length,0\r\n"
    "END\r\n"
)

WG_SHOW = """interface: wg0
  public key: c2VydmVyLXB1YmxpYy1rZXk=
  listening port: 51820

peer: YWxpY2UtcHVibGljLWtleQ==
  endpoint: 203.0.113.5:51000
  allowed ips: 10.8.0.2/32
  latest handshake: 1 minute, 3 seconds ago
  transfer: 1.21 MiB received, 3.40 MiB sent

peer: Ym9iLXB1YmxpYy1rZXk=
  endpoint: 198.51.100.7:40112
  allowed ips: 10.8.0.3/32
  latest handshake: 12 seconds ago

peer: Y2Fyb2wtcHVibGljLWtleQ==
  allowed ips: 10.8.0.4/32
"""

SS_OUTPUT = """0      0      10.0.0.1:51820     203.0.113.5:51000
0      0      10.0.0.1:51820     198.51.100.7:40112
0      0      10.0.0.1:53        10.0.0.9:41234
"""

WG_SHOW_CMD = ("wg", "show", "wg0")
SS_CMD = ("ss", "-H", "-n", "-u", "state", "established")


class FakeManagementClient:
    def __init__(self, output=None, error=None):
        self.output = output
        self.error = error

    def __call__(self, host, port):
        self.host, self.port = host, port
        return self

    def __enter__(self):
        if self.error:
            raise self.error
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def status(self):
        return self.output


def serve_once(responses):
    """Start a one-shot management interface on an ephemeral port."""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    received = []

    def handle():
        conn, _ = server.accept()
        with conn:
            conn.sendall(b">INFO:OpenVPN Management Interface Version 3 -- type 'help' for more info\r\n")
            received.append(conn.recv(1024).decode())
            for chunk in responses:
                conn.sendall(chunk.encode())
        server.close()

    thread = threading.Thread(target=handle, daemon=True)
    thread.start()
    return server.getsockname()[1], received, thread


class TestParsers:
    def test_count_client_lines_ignores_header(self):
        assert count_client_lines(STATUS_V2) == 3

    def test_count_handshakes(self):
        assert count_handshakes(WG_SHOW) == 2

    def test_count_udp_sessions_matches_port(self):
        assert count_udp_sessions(SS_OUTPUT, 51820) == 2
        assert count_udp_sessions(SS_OUTPUT, 5182) == 0


class TestConnectionCounter:
    def test_openvpn_counts_client_list_lines(self, make_config):
        client = FakeManagementClient(output=STATUS_V2)
        counter = ConnectionCounter(runner=FakeRunner(), management_client_factory=client)

        result = counter.measure(make_config(openvpn_management_port=7506))

        assert result.count == 3
        assert result.source == "openvpn-management"
        assert not result.estimated
        assert (client.host, client.port) == ("127.0.0.1", 7506)

    def test_openvpn_connection_failure_uses_fallback(self, make_config):
        client = FakeManagementClient(error=MeasurementUnavailable("connections", "refused"))
        counter = ConnectionCounter(management_client_factory=client, rng=random.Random(7))

        result = counter.measure(make_config())

        assert result.estimated
        assert result.source == "fallback"
        assert 10 <= result.count <= 50

    def test_openvpn_against_management_socket(self, make_config):
        port, received, thread = serve_once([STATUS_V2[:120], STATUS_V2[120:]])
        counter = ConnectionCounter()

        count = counter.count_active_connections(make_config(openvpn_management_port=port))
        thread.join(timeout=5)

        assert count == 3
        assert received == ["status 2\n"]

    def test_management_client_requires_end_line(self):
        port, _, thread = serve_once(["CLIENT_LIST,alice,203.0.113.5:51000\r\n"])

        with pytest.raises(MeasurementUnavailable, match="incomplete"):
            with OpenVPNManagementClient("127.0.0.1", port, timeout=1) as client:
                client.status()
        thread.join(timeout=5)

    def test_management_port_closed_uses_fallback(self, make_config):
        probe = socket.socket()
        probe.bind(("127.0.0.1", 0))
        closed_port = probe.getsockname()[1]
        probe.close()
        counter = ConnectionCounter(rng=random.Random(1))

        result = counter.measure(make_config(openvpn_management_port=closed_port))

        assert result.estimated
        assert 10 <= result.count <= 50

    def test_wireguard_counts_handshakes(self, make_config):
        runner = FakeRunner({WG_SHOW_CMD: ok(WG_SHOW_CMD, WG_SHOW)})
        counter = ConnectionCounter(runner=runner)

        result = counter.measure(make_config(vpn_type="wireguard"))

        assert result.count == 2
        assert result.source == "wg-show"
        assert runner.calls == [WG_SHOW_CMD]

    def test_wireguard_without_handshakes_is_zero(self, make_config):
        runner = FakeRunner({WG_SHOW_CMD: ok(WG_SHOW_CMD, "interface: wg0\n")})
        counter = ConnectionCounter(runner=runner)

        result = counter.measure(make_config(vpn_type="wireguard"))

        assert result.count == 0
        assert not result.estimated

    def test_wireguard_falls_back_to_udp_sessions(self, make_config):
        runner = FakeRunner({
            WG_SHOW_CMD: failed(WG_SHOW_CMD, stderr="Unable to access interface: Operation not permitted"),
            SS_CMD: ok(SS_CMD, SS_OUTPUT),
        })
        counter = ConnectionCounter(runner=runner)

        result = counter.measure(make_config(vpn_type="wireguard"))

        assert result.count == 2
        assert result.source == "ss-udp"
        assert runner.calls == [WG_SHOW_CMD, SS_CMD]

    def test_wireguard_missing_binary_falls_back_to_udp_sessions(self, make_config, command_error):
        runner = FakeRunner({
            WG_SHOW_CMD: command_error(WG_SHOW_CMD),
            SS_CMD: ok(SS_CMD, SS_OUTPUT),
        })
        counter = ConnectionCounter(runner=runner)

        assert counter.count_active_connections(make_config(vpn_type="wireguard")) == 2

    def test_wireguard_all_methods_fail_uses_fallback(self, make_config, command_error):
        runner = FakeRunner({
            WG_SHOW_CMD: failed(WG_SHOW_CMD),
            SS_CMD: command_error(SS_CMD),
        })
        counter = ConnectionCounter(runner=runner, rng=random.Random(3))

        result = counter.measure(make_config(vpn_type="wireguard"))

        assert result.estimated
        assert 10 <= result.count <= 50

    @pytest.mark.parametrize("seed", range(20))
    def test_unknown_vpn_type_returns_estimate_without_raising(self, make_config, seed):
        runner = FakeRunner()
        counter = ConnectionCounter(runner=runner, rng=random.Random(seed))

        count = counter.count_active_connections(make_config(vpn_type="ipsec"))

        assert 10 <= count <= 50
        assert runner.calls == []
