"""
WireGuard peer management through the `wg` and `wg-quick` commands.

Persisting the live interface state is attempted through an ordered list of
strategies; the first one whose result verifies against the live peer list wins.
"""

import os
import shutil
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from core.command_runner import CommandRunner
from core.exceptions import CommandError
from core.logging_config import LoggerMixin
from core.types import InterfaceName, PublicKey, StrategyResult

PEER_SUBNET_PREFIX = "10.8.0."
PERSISTENT_KEEPALIVE = 25


def assign_peer_address(user_id: int) -> str:
    """Deterministic /32 inside the peer subnet, never .0 or .255."""
    return f"{PEER_SUBNET_PREFIX}{(int(user_id) % 254) + 1}/32"


@dataclass(frozen=True)
class PeerState:
    """Desired state of one peer on an interface."""
    interface: InterfaceName
    public_key: PublicKey
    allowed_ips: str = ""
    present: bool = True
    keepalive: Optional[int] = PERSISTENT_KEEPALIVE


def render_peer_block(state: PeerState) -> str:
    lines = ["[Peer]", f"PublicKey = {state.public_key}", f"AllowedIPs = {state.allowed_ips}"]
    if state.keepalive:
        lines.append(f"PersistentKeepalive = {state.keepalive}")
    return "\n".join(lines) + "\n"


def remove_peer_blocks(config_text: str, public_key: PublicKey) -> str:
    """Drop every [Peer] section whose PublicKey matches."""
    sections: List[List[str]] = [[]]
    for line in config_text.splitlines(keepends=True):
        if line.strip().startswith("["):
            sections.append([])
        sections[-1].append(line)

    kept = []
    for section in sections:
        if section and section[0].strip() == "[Peer]" and _section_key(section) == public_key:
            continue
        kept.append("".join(section))
    return "".join(kept)


def _section_key(section: List[str]) -> Optional[str]:
    for line in section:
        key, sep, value = line.partition("=")
        if sep and key.strip() == "PublicKey":
            return value.strip()
    return None


def config_has_peer(config_text: str, public_key: PublicKey) -> bool:
    sections: List[List[str]] = [[]]
    for line in config_text.splitlines():
        if line.strip().startswith("["):
            sections.append([])
        sections[-1].append(line)
    return any(
        section and section[0].strip() == "[Peer]" and _section_key(section) == public_key
        for section in sections
    )


class WireGuardPeerManager(LoggerMixin):
    """Adds, updates, removes and persists peers on one interface."""

    def __init__(
        self,
        interface: InterfaceName,
        runner: Optional[CommandRunner] = None,
        config_dir: str = "/etc/wireguard",
        which: Callable[[str], Optional[str]] = shutil.which,
    ):
        self.interface = interface
        self.runner = runner or CommandRunner()
        self.config_dir = config_dir
        self.which = which
        self.strategies: List[Tuple[str, Callable[[PeerState], StrategyResult]]] = [
            ("wg-quick-save", self._save_with_wg_quick),
            ("wg-showconf", self._dump_showconf),
            ("config-file", self._edit_config_file),
        ]

    @property
    def config_path(self) -> str:
        return os.path.join(self.config_dir, f"{self.interface}.conf")

    def tools_available(self) -> bool:
        return self.which("wg") is not None

    def interface_exists(self) -> bool:
        try:
            result = self.runner.run(["ip", "link", "show", self.interface])
        except CommandError as e:
            self.logger.error("Cannot query interface", interface=self.interface, error=str(e))
            return False
        return result.success and "does not exist" not in result.stderr

    def list_peers(self) -> List[PublicKey]:
        result = self.runner.run(["wg", "show", self.interface, "peers"])
        if not result.success:
            raise CommandError(list(result.args), result.stderr.strip() or f"exit {result.return_code}")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def peer_exists(self, public_key: PublicKey) -> bool:
        return public_key in self.list_peers()

    def set_peer(self, state: PeerState) -> bool:
        """Add or update the peer; returns True when the peer already existed."""
        existed = self.peer_exists(state.public_key)
        args = ["wg", "set", self.interface, "peer", state.public_key, "allowed-ips", state.allowed_ips]
        if not existed and state.keepalive:
            args += ["persistent-keepalive", str(state.keepalive)]
        result = self.runner.run(args)
        if not result.success:
            self.logger.warning("wg set failed", command=args, stderr=result.stderr.strip())
        else:
            self.logger.info(
                "Updated WireGuard peer" if existed else "Added WireGuard peer",
                interface=self.interface,
                allowed_ips=state.allowed_ips,
            )
        return existed

    def remove_peer(self, public_key: PublicKey) -> None:
        args = ["wg", "set", self.interface, "peer", public_key, "remove"]
        result = self.runner.run(args)
        if not result.success:
            self.logger.warning("wg peer removal failed", command=args, stderr=result.stderr.strip())
        else:
            self.logger.info("Removed WireGuard peer", interface=self.interface)

    def verify(self, state: PeerState) -> bool:
        try:
            return self.peer_exists(state.public_key) == state.present
        except CommandError as e:
            self.logger.warning("Peer verification failed", interface=self.interface, error=str(e))
            return False

    def persist(self, state: PeerState) -> StrategyResult:
        """Try each persistence strategy in order until one verifies."""
        attempts = []
        for name, strategy in self.strategies:
            try:
                result = strategy(state)
            except (CommandError, OSError) as e:
                result = StrategyResult(name, False, str(e))
            if result.success and not self.verify(state):
                result = StrategyResult(name, False, "peer state did not verify after persisting")
            attempts.append(f"{name}: {result.message or ('ok' if result.success else 'failed')}")
            if result.success:
                self.logger.info("Persisted WireGuard state", strategy=name, interface=self.interface)
                return result
            self.logger.warning(
                "Persistence strategy failed",
                strategy=name,
                interface=self.interface,
                reason=result.message,
            )
        return StrategyResult("none", False, "; ".join(attempts))

    def _save_with_wg_quick(self, state: PeerState) -> StrategyResult:
        result = self.runner.run(["wg-quick", "save", self.interface])
        if not result.success:
            return StrategyResult("wg-quick-save", False, result.stderr.strip() or f"exit {result.return_code}")
        return StrategyResult("wg-quick-save", True)

    def _dump_showconf(self, state: PeerState) -> StrategyResult:
        result = self.runner.run(["wg", "showconf", self.interface])
        if not result.success or not result.stdout.strip():
            return StrategyResult("wg-showconf", False, result.stderr.strip() or "empty showconf output")
        self._write_config(result.stdout)
        return StrategyResult("wg-showconf", True)

    def _edit_config_file(self, state: PeerState) -> StrategyResult:
        if not os.path.exists(self.config_path):
            return StrategyResult("config-file", False, f"{self.config_path} does not exist")
        with open(self.config_path, "r") as f:
            content = f.read()

        content = remove_peer_blocks(content, state.public_key)
        if state.present:
            if content and not content.endswith("\n"):
                content += "\n"
            content += "\n" + render_peer_block(state)
        self._write_config(content)

        with open(self.config_path, "r") as f:
            if config_has_peer(f.read(), state.public_key) != state.present:
                return StrategyResult("config-file", False, f"{self.config_path} does not reflect the peer change")

        result = self.runner.run(["wg", "syncconf", self.interface, self.config_path])
        if not result.success:
            return StrategyResult("config-file", False, result.stderr.strip() or "wg syncconf failed")
        return StrategyResult("config-file", True)

    def _write_config(self, content: str) -> None:
        os.makedirs(self.config_dir, exist_ok=True)
        tmp_path = self.config_path + ".tmp"
        with open(tmp_path, "w") as f:
            f.write(content)
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, self.config_path)
