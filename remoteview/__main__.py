"""
remoteview - Main Entry Point

This module provides the CLI interface and wires the cache, the index and the
warming scheduler to an SFTP server.
"""

import argparse
import asyncio
import logging
import sys

from .cache import EntryCache
from .config import load_config
from .index import IndexBuilder
from .logger import setup_logging
from .sftp_client import SFTPRemoteClient
from .store import JsonFileStore
from .warming import WarmingScheduler

logger = logging.getLogger(__name__)


def _add_common_arguments(parser):
    parser.add_argument("--config", help="Path to configuration file")
    parser.add_argument("--host", help="SSH host")
    parser.add_argument("--port", type=int, help="SSH port")
    parser.add_argument("--user", help="SSH username")
    parser.add_argument("--password", help="SSH password")
    parser.add_argument("--key-file", help="Path to SSH private key")
    parser.add_argument("--root", help="Remote directory to expose as /")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="remoteview - cached, indexed local view of a remote tree",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  remoteview index --host myserver.com --user deploy --key-file ~/.ssh/id_ed25519
  remoteview search config --config remoteview.ini
  remoteview warm --config remoteview.ini --root /var/www/site
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    index_parser = subparsers.add_parser("index", help="Build the index and print its stats")
    _add_common_arguments(index_parser)

    search_parser = subparsers.add_parser("search", help="Find files by name")
    search_parser.add_argument("pattern", help="Case-insensitive substring of the file name")
    _add_common_arguments(search_parser)

    warm_parser = subparsers.add_parser("warm", help="Warm the cache and print its stats")
    _add_common_arguments(warm_parser)

    return parser.parse_args(argv)


class Session:
    """The wired components for one CLI run."""

    def __init__(self, config):
        self.config = config
        self.remote = SFTPRemoteClient.from_config(config.ssh, config.connection)
        store = JsonFileStore(config.cache.metadata_file)
        self.cache = EntryCache(config.cache, store=store)
        self.index = IndexBuilder(self.remote, self.cache, config.index)
        self.warming = WarmingScheduler(self.cache, self.index, self.remote, config.warming)

    async def __aenter__(self):
        await self.remote.connect()
        self.cache.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.warming.stop()
        await self.cache.dispose()
        try:
            await self.remote.disconnect()
        except Exception as e:
            logger.warning("Error disconnecting: %s", e)
        return False


async def _index(config) -> int:
    async with Session(config) as session:
        quick = await session.index.quick_index()
        print(f"[OK] Root listed: {quick.entries} entries")

        result = await session.index.rebuild_index()
        stats = session.index.stats()
        status = "[WARN]" if result.timed_out or result.directories_failed else "[OK]"
        print(
            f"{status} Indexed {stats.total_entries} entries "
            f"({stats.files} files, {stats.directories} directories) "
            f"in {result.duration_seconds:.1f}s"
        )
        if result.directories_failed:
            print(f"     {result.directories_failed} directories could not be listed")
        if result.timed_out:
            print(f"     Timed out with {result.unvisited} directories unvisited")
    return 0


async def _search(config, pattern: str) -> int:
    async with Session(config) as session:
        await session.index.ensure_indexed()
        matches = session.index.search_by_name(pattern)
        for path in matches:
            print(path)
        print(f"[OK] {len(matches)} matching files")
    return 0


async def _warm(config) -> int:
    async with Session(config) as session:
        await session.index.quick_index()
        strategy = await session.warming.start()
        print(
            f"[OK] Warming {len(strategy.immediate)} immediate, "
            f"{len(strategy.background)} background paths"
        )
        await session.warming.join()

        status = session.warming.status()
        stats = session.cache.stats()
        print(f"[OK] Warmed {status.completed} paths ({status.failed} failed)")
        print(f"     Files cached: {stats.files.entries} ({stats.files.bytes} bytes)")
        print(f"     Directories cached: {stats.directories.entries}")
    return 0


def _run(args, coroutine_factory) -> int:
    """Load config, set up logging and run one async command, reporting failures."""
    try:
        config = load_config(
            config_path=args.config,
            host=args.host,
            port=args.port,
            username=args.user,
            password=args.password,
            key_file=args.key_file,
            root_path=args.root,
            debug=args.verbose,
        )
    except ValueError as e:
        print(f"[ERROR] Configuration error: {e}")
        return 1
    except FileNotFoundError as e:
        print(f"[ERROR] {e}")
        return 1

    setup_logging(config.logging)
    from . import __version__

    logger.info("Starting remoteview v%s", __version__)
    server_desc = f"{config.ssh.host}:{config.ssh.port}"

    try:
        return asyncio.run(coroutine_factory(config))
    except PermissionError as e:
        logger.error("Authentication failed: %s", e)
        print(f"[ERROR] Authentication failed: {e}")
        return 1
    except TimeoutError as e:
        logger.error("Connection timed out: %s", e)
        print(f"[ERROR] Connection to {server_desc} timed out")
        return 1
    except ConnectionError as e:
        logger.error("Failed to connect to server: %s", e)
        print(f"[ERROR] Could not connect to server at {server_desc}")
        print(f"        {e}")
        return 1
    except KeyboardInterrupt:
        print()
        logger.info("Received interrupt, stopping...")
        return 1
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        print(f"[ERROR] Fatal error: {e}")
        return 1


def cmd_index(args):
    """Handle the index command."""
    return _run(args, _index)


def cmd_search(args):
    """Handle the search command."""
    return _run(args, lambda config: _search(config, args.pattern))


def cmd_warm(args):
    """Handle the warm command."""
    return _run(args, _warm)


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)

    if args.command == "index":
        return cmd_index(args)
    elif args.command == "search":
        return cmd_search(args)
    elif args.command == "warm":
        return cmd_warm(args)
    else:
        print("Usage: remoteview <command> [options]")
        print()
        print("Commands:")
        print("  index    Build the index of the remote tree")
        print("  search   Find files by name")
        print("  warm     Warm the cache in the background tiers")
        print()
        print("Run 'remoteview <command> --help' for more information.")
        return 1


if __name__ == "__main__":
    sys.exit(main() or 0)
