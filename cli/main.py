#!/usr/bin/env python3
"""
Command line entry point for the VPN server load reporting agent.

Usage:
    vpn-load-agent [report] [server_id] [--config PATH] [--dry-run]
    vpn-load-agent sync-user '{"action": "add", "user": {...}}' [--config PATH]

Intended to be run every minute by cron or a systemd timer. Exit status is
0 on a successful publish and 1 on any failure.
"""
import argparse
import json
import sys
from typing import List, Optional, Sequence

from config.app_config import AgentSettings, get_settings
from config.config import ServerConfig, default_config_candidates, resolve_server_config
from core.exceptions import ConfigurationError, LockError, PublishConnectionError
from core.logging_config import get_logger, setup_structured_logging
from core.run_lock import RunLock
from service.load_agent import LoadAgent
from service.peer_sync import PeerSyncService

SUBCOMMANDS = ('report', 'sync-user')

logger = get_logger('cli')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='vpn-load-agent',
        description='Measure VPN server load and publish it to the admin panel database.',
    )
    parser.add_argument('--log-level', default=None, help='Override LOAD_AGENT_LOG_LEVEL')
    subparsers = parser.add_subparsers(dest='command')

    report = subparsers.add_parser('report', help='Measure and publish the load score (default)')
    report.add_argument('server_id', nargs='?', default=None,
                        help='Server identifier; overrides the config file value')
    report.add_argument('--config', dest='config_path', default=None,
                        help='Config file to try before the well-known locations')
    report.add_argument('--dry-run', action='store_true',
                        help='Compute and print the report without publishing')

    sync = subparsers.add_parser('sync-user', help='Apply a user sync request to WireGuard peers')
    sync.add_argument('payload', help='JSON request: {"action": ..., "user": {...}}')
    sync.add_argument('--config', dest='config_path', default=None,
                      help='Config file to try before the well-known locations')
    return parser


def normalize_argv(argv: Sequence[str]) -> List[str]:
    """Treat a bare invocation or a leading server id as the report command."""
    argv = list(argv)
    global_args: List[str] = []
    while argv:
        if argv[0].startswith('--log-level='):
            global_args.append(argv.pop(0))
        elif argv[0] == '--log-level' and len(argv) > 1:
            global_args += argv[:2]
            argv = argv[2:]
        else:
            break
    if argv and (argv[0] in SUBCOMMANDS or argv[0] in ('-h', '--help')):
        return global_args + argv
    return global_args + ['report'] + argv


def load_config(config_path: Optional[str], settings: AgentSettings) -> ServerConfig:
    explicit = [path for path in (config_path, settings.config_path) if path]
    candidates = explicit + [c for c in default_config_candidates() if c not in explicit]
    return resolve_server_config(candidates)


def run_report(args: argparse.Namespace, settings: AgentSettings) -> int:
    try:
        config = load_config(args.config_path, settings)
        if args.server_id:
            logger.info("Using server ID from command line argument", server_id=args.server_id)
            config = config.with_server_id(args.server_id)
    except ConfigurationError as e:
        logger.error("Configuration error", error=str(e))
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    agent = LoadAgent.from_config(config)

    if args.dry_run:
        report = agent.run_once(publish=False)
        print(json.dumps(report.as_dict(), indent=2))
        return 0

    lock = RunLock(settings.lock.path) if settings.lock.enabled else None
    if lock:
        try:
            lock.acquire()
        except (LockError, OSError) as e:
            logger.error("Skipping run, cannot acquire run lock", path=lock.path, error=str(e))
            return 1
    try:
        report = agent.run_once()
    except PublishConnectionError as e:
        logger.error("Database update failed", server_id=config.server_id, error=str(e))
        return 1
    finally:
        if lock:
            lock.release()

    if report is None:
        logger.error("Load was not published", server_id=config.server_id)
        return 1

    result = agent.last_publish
    logger.info(
        "Database update result",
        server_id=report.server_id,
        load=report.load,
        status=result.status.value if result else None,
        rows_affected=result.rows_affected if result else None,
    )
    return 0


def run_sync_user(args: argparse.Namespace, settings: AgentSettings) -> int:
    try:
        request = json.loads(args.payload)
    except ValueError as e:
        logger.error("JSON parse error", error=str(e))
        print(json.dumps({'success': False, 'message': 'Invalid JSON input'}))
        return 1

    try:
        config = load_config(args.config_path, settings)
    except ConfigurationError as e:
        logger.error("Configuration error", error=str(e))
        print(json.dumps({'success': False, 'message': str(e)}))
        return 1

    result = PeerSyncService(config).process(request)
    print(json.dumps(result.as_dict()))
    return 0 if result.success else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    args = build_parser().parse_args(normalize_argv(argv))

    settings = get_settings()
    setup_structured_logging(
        log_level=args.log_level or settings.logging.level,
        json_output=settings.logging.json,
        log_file=settings.logging.log_file,
    )

    if args.command == 'sync-user':
        return run_sync_user(args, settings)
    return run_report(args, settings)


if __name__ == "__main__":
    sys.exit(main())
