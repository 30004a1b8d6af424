"""
Applies user add/update/remove requests from the admin panel to the
WireGuard peer list and keeps a local record per user.
"""

from typing import Any, Dict, Mapping, Optional

from config.config import ServerConfig
from core.exceptions import CommandError, PeerSyncError
from core.logging_config import LoggerMixin
from core.types import PeerSyncResult
from core.wireguard_manager import PeerState, WireGuardPeerManager, assign_peer_address
from data.user_store import UserStore

REQUIRED_USER_FIELDS = ('id', 'email', 'token')
ACTIONS = ('add', 'update', 'remove')


class PeerSyncService(LoggerMixin):
    def __init__(
        self,
        config: ServerConfig,
        store: Optional[UserStore] = None,
        manager: Optional[WireGuardPeerManager] = None,
    ):
        self.config = config
        self.store = store or UserStore(config.user_store_dir)
        self.manager = manager or WireGuardPeerManager(
            config.wireguard_interface, config_dir=config.wireguard_config_dir
        )

    def process(self, request: Mapping[str, Any]) -> PeerSyncResult:
        """Validate and apply one synchronization request."""
        if not isinstance(request, Mapping) or 'action' not in request or 'user' not in request:
            return PeerSyncResult(False, "Invalid request data")

        action = request['action']
        user = request['user']
        if not isinstance(user, Mapping) or any(field not in user for field in REQUIRED_USER_FIELDS):
            return PeerSyncResult(False, "Missing required user data")
        if action not in ACTIONS:
            return PeerSyncResult(False, f"Unknown action '{action}'")

        user_id = user['id']
        self.logger.info(
            "Processing user sync",
            user_id=user_id,
            action=action,
            vpn_type=self.config.vpn_type_raw,
        )
        try:
            if action == 'remove':
                return self._remove(user_id)
            return self._add_or_update(action, dict(user))
        except PeerSyncError as e:
            self.logger.error("User sync rejected", user_id=user_id, error=str(e))
            return PeerSyncResult(False, str(e))

    def _add_or_update(self, action: str, user: Dict[str, Any]) -> PeerSyncResult:
        user_id = user['id']
        if user.get('wg_public_key'):
            outcome = self.configure_peer(user)
            user['wg_config_status'] = 'configured' if outcome['success'] else 'failed'
            user['wg_config_message'] = outcome['message']
            user['wg_assigned_ip'] = outcome.get('ip')
            user['wg_persistence'] = outcome.get('persistence')
        else:
            self.logger.warning("No WireGuard public key provided", user_id=user_id)
            user['wg_config_status'] = 'missing_key'

        self.store.save(user_id, user)
        return PeerSyncResult(True, f"User {user_id} synchronized successfully", {
            'user_id': user_id,
            'action': action,
            'wg_status': user['wg_config_status'],
        })

    def configure_peer(self, user: Mapping[str, Any]) -> Dict[str, Any]:
        user_id = user['id']
        try:
            assigned_ip = assign_peer_address(int(user_id))
        except (TypeError, ValueError):
            raise PeerSyncError(f"User id '{user_id}' must be numeric to assign a peer address")

        interface = self.manager.interface
        if not self.manager.interface_exists():
            self.logger.error("WireGuard interface does not exist", interface=interface)
            return {'success': False, 'message': f"WireGuard interface {interface} does not exist", 'ip': assigned_ip}
        if not self.manager.tools_available():
            self.logger.error("WireGuard tools not installed")
            return {'success': False, 'message': "WireGuard tools not installed on the server", 'ip': assigned_ip}

        state = PeerState(interface=interface, public_key=user['wg_public_key'], allowed_ips=assigned_ip)
        try:
            self.manager.set_peer(state)
            persisted = self.manager.persist(state)
        except CommandError as e:
            self.logger.error("Failed to configure WireGuard", user_id=user_id, error=str(e))
            return {'success': False, 'message': f"Failed to configure WireGuard: {e}", 'ip': assigned_ip}

        if not persisted.success:
            return {
                'success': False,
                'message': f"Peer could not be persisted: {persisted.message}",
                'ip': assigned_ip,
            }
        return {
            'success': True,
            'message': 'WireGuard configuration updated successfully',
            'ip': assigned_ip,
            'persistence': persisted.strategy,
        }

    def _remove(self, user_id: Any) -> PeerSyncResult:
        existing = self.store.load(user_id)
        if existing and existing.get('wg_public_key'):
            self.logger.info("Removing WireGuard configuration", user_id=user_id)
            state = PeerState(
                interface=self.manager.interface,
                public_key=existing['wg_public_key'],
                present=False,
            )
            try:
                self.manager.remove_peer(state.public_key)
                persisted = self.manager.persist(state)
                if not persisted.success:
                    self.logger.warning("Peer removal was not persisted", user_id=user_id, reason=persisted.message)
            except CommandError as e:
                self.logger.error("Failed to remove WireGuard peer", user_id=user_id, error=str(e))
        elif existing is None:
            self.logger.warning("User record not found during removal", user_id=user_id)
        self.store.delete(user_id)
        return PeerSyncResult(True, f"User {user_id} removed successfully", {
            'user_id': user_id,
            'action': 'remove',
        })
