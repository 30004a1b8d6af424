"""
Active VPN connection counting.

OpenVPN is queried through its management interface, WireGuard through the
`wg` and `ss` commands. Every failure is absorbed into a fallback estimate so
a load score can always be produced.
"""

import random
import socket
import time
from typing import Callable, Optional

from config.config import ServerConfig
from core.command_runner import CommandRunner
from core.exceptions import CommandError, MeasurementUnavailable
from core.logging_config import LoggerMixin
from core.types import ConnectionCount, VPNType

CLIENT_LIST_MARKER = "CLIENT_LIST"
# Plain `status` (format 1) has no per-line marker; format 2 prefixes each client row.
STATUS_COMMAND = "status 2"
MANAGEMENT_TIMEOUT = 5.0
HANDSHAKE_MARKER = "latest handshake"

# Approximation only: used when the backend cannot be queried.
FALLBACK_MIN_CONNECTIONS = 10
FALLBACK_MAX_CONNECTIONS = 50


class OpenVPNManagementClient:
    """Short-lived client for the OpenVPN management interface."""

    def __init__(self, host: str, port: int, timeout: float = MANAGEMENT_TIMEOUT):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.sock: Optional[socket.socket] = None

    def __enter__(self) -> 'OpenVPNManagementClient':
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()

    def connect(self) -> None:
        try:
            self.sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
            # Discard the >INFO banner
            self.sock.recv(1024)
        except OSError as e:
            self.disconnect()
            raise MeasurementUnavailable(
                "connections", f"cannot connect to management interface {self.host}:{self.port}: {e}"
            )

    def disconnect(self) -> None:
        if self.sock:
            try:
                self.sock.close()
            finally:
                self.sock = None

    def send_command(self, command: str) -> str:
        """Send a command and read the response up to the END line."""
        if not self.sock:
            raise MeasurementUnavailable("connections", "not connected to management interface")
        try:
            self.sock.settimeout(self.timeout)
            self.sock.sendall(f"{command}\n".encode())

            response = ""
            deadline = time.monotonic() + self.timeout
            while not _has_end_line(response) and time.monotonic() < deadline:
                data = self.sock.recv(4096)
                if not data:  # Connection closed
                    break
                response += data.decode(errors="replace")
        except OSError as e:
            raise MeasurementUnavailable("connections", f"management command '{command}' failed: {e}")

        if not _has_end_line(response):
            raise MeasurementUnavailable(
                "connections", f"incomplete response to management command '{command}'"
            )
        return response

    def status(self) -> str:
        return self.send_command(STATUS_COMMAND)


def _has_end_line(response: str) -> bool:
    return any(line.strip() == "END" for line in response.splitlines())


def count_client_lines(status_output: str) -> int:
    """Count client rows in an OpenVPN status dump."""
    return sum(
        1 for line in status_output.splitlines()
        if line.startswith(CLIENT_LIST_MARKER + ",") or line.startswith(CLIENT_LIST_MARKER + "\t")
    )


def count_handshakes(wg_output: str) -> int:
    """Count peers that reported a handshake in `wg show` output."""
    return sum(1 for line in wg_output.splitlines() if HANDSHAKE_MARKER in line)


def count_udp_sessions(ss_output: str, port: int) -> int:
    """Count established UDP sessions whose local or peer address uses `port`."""
    needle = f":{port}"
    count = 0
    for line in ss_output.splitlines():
        columns = line.split()
        if any(col.endswith(needle) for col in columns):
            count += 1
    return count


class ConnectionCounter(LoggerMixin):
    """Counts active peers/sessions for the configured VPN backend."""

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        management_client_factory: Callable[[str, int], OpenVPNManagementClient] = OpenVPNManagementClient,
        rng: Optional[random.Random] = None,
    ):
        self.runner = runner or CommandRunner()
        self.management_client_factory = management_client_factory
        self.rng = rng or random.Random()

    def count_active_connections(self, config: ServerConfig) -> int:
        return self.measure(config).count

    def measure(self, config: ServerConfig) -> ConnectionCount:
        """Count connections; never raises."""
        try:
            if config.vpn_type is VPNType.OPENVPN:
                return self._count_openvpn(config)
            if config.vpn_type is VPNType.WIREGUARD:
                return self._count_wireguard(config)
            raise MeasurementUnavailable("connections", f"unknown VPN type '{config.vpn_type_raw}'")
        except MeasurementUnavailable as e:
            return self._fallback(e.reason)
        except Exception as e:
            self.logger.exception("Unexpected error counting connections")
            return self._fallback(f"unexpected error: {e}")

    def _count_openvpn(self, config: ServerConfig) -> ConnectionCount:
        host, port = config.openvpn_management_host, config.openvpn_management_port
        with self.management_client_factory(host, port) as client:
            output = client.status()
        count = count_client_lines(output)
        self.logger.info("Counted OpenVPN clients", count=count, host=host, port=port)
        return ConnectionCount(count=count, source="openvpn-management")

    def _count_wireguard(self, config: ServerConfig) -> ConnectionCount:
        interface = config.wireguard_interface
        show_cmd = ["wg", "show", interface]
        try:
            result = self.runner.run(show_cmd)
            if result.success:
                count = count_handshakes(result.stdout)
                self.logger.info("Counted WireGuard handshakes", count=count, interface=interface)
                return ConnectionCount(count=count, source="wg-show")
            self.logger.warning(
                "wg show failed, trying UDP session count",
                command=show_cmd,
                return_code=result.return_code,
                stderr=result.stderr.strip(),
            )
        except CommandError as e:
            self.logger.warning("wg show unavailable, trying UDP session count", command=show_cmd, error=str(e))

        ss_cmd = ["ss", "-H", "-n", "-u", "state", "established"]
        try:
            result = self.runner.run(ss_cmd)
        except CommandError as e:
            raise MeasurementUnavailable("connections", f"{e} (after wg show failed)")
        if not result.success:
            raise MeasurementUnavailable(
                "connections",
                f"'{' '.join(ss_cmd)}' exited {result.return_code} (after wg show failed)",
            )
        count = count_udp_sessions(result.stdout, config.wireguard_port)
        self.logger.info("Counted established UDP sessions", count=count, port=config.wireguard_port)
        return ConnectionCount(count=count, source="ss-udp")

    def _fallback(self, reason: str) -> ConnectionCount:
        estimate = self.rng.randint(FALLBACK_MIN_CONNECTIONS, FALLBACK_MAX_CONNECTIONS)
        self.logger.warning(
            "Failed to count connections, using fallback estimate",
            reason=reason,
            fallback=estimate,
            fallback_range=[FALLBACK_MIN_CONNECTIONS, FALLBACK_MAX_CONNECTIONS],
        )
        return ConnectionCount(count=estimate, source="fallback", estimated=True)
