"""
Command-line interface for Unit Cache

Subcommands:
- load: load Python source files (or folders of them) through the cache
- stats / clear / prune / optimize: cache maintenance
- config: inspect or edit the configuration file
"""

import argparse
import sys
from typing import List, Optional

from .. import __version__
from ..utils.logging_config import setup_logging
from .commands import CLICommands
from .config import load_config_from_args


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with global options and subcommands"""

    parser = argparse.ArgumentParser(
        prog='unitcache',
        description="Unit Cache - Two-tier cache and parallel loader for loadable units",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s load plugins/                     # Load every .py file below plugins/
  %(prog)s load a.py b.py --workers 4        # Load two units with 4 workers
  %(prog)s load plugins/ --force --progress  # Bypass the cache, show a progress bar
  %(prog)s stats                             # Show cache statistics
  %(prog)s config --set cache.max_cache_size_mb=200
        """
    )

    # Cache options
    cache_group = parser.add_argument_group('Cache Options')
    cache_group.add_argument('--cache-dir', metavar='DIR',
                             help='Cache directory (default: <tempdir>/unitcache)')
    cache_group.add_argument('--max-size', type=float, metavar='MB',
                             help='Cache size budget in MB (default: 100)')
    cache_group.add_argument('--config', metavar='FILE',
                             help='Load configuration from JSON file')

    # Logging options
    logging_group = parser.add_argument_group('Logging Options')
    logging_group.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                               help='Console logging level (default: from config, INFO)')
    logging_group.add_argument('--log-dir', metavar='DIR',
                               help='Directory for log files (default: ~/.unitcache/logs)')
    logging_group.add_argument('--no-console-log', action='store_true',
                               help='Disable console logging (file logging only)')
    logging_group.add_argument('--verbose', '-v', action='store_true',
                               help='Verbose output')
    parser.add_argument('--version', action='version', version=f'Unit Cache {__version__}')

    subparsers = parser.add_subparsers(dest='command', metavar='COMMAND')
    subparsers.required = True

    load_parser = subparsers.add_parser('load', help='Load units through the cache')
    load_parser.add_argument('paths', nargs='+', metavar='PATH',
                             help='Python source files or folders to load')
    load_parser.add_argument('--workers', type=int, metavar='N',
                             help='Number of parallel workers (default: CPU count)')
    load_parser.add_argument('--force', action='store_true',
                             help='Bypass the cache and always load from source')
    load_parser.add_argument('--timeout', type=float, metavar='SECONDS',
                             help='Cancel units that have not started after this many seconds')
    load_parser.add_argument('--progress', action='store_true',
                             help='Show a progress bar')

    subparsers.add_parser('stats', help='Show cache statistics')
    subparsers.add_parser('clear', help='Delete all cached data')
    subparsers.add_parser('prune', help='Remove expired and orphaned records')
    subparsers.add_parser('optimize', help='Optimize the cache and print recommendations')

    config_parser = subparsers.add_parser('config', help='Show or edit configuration')
    config_actions = config_parser.add_mutually_exclusive_group()
    config_actions.add_argument('--show', action='store_true', dest='show_config',
                                help='Print the effective configuration')
    config_actions.add_argument('--reset', action='store_true', dest='reset_config',
                                help='Reset the configuration file to defaults')
    config_actions.add_argument('--set', dest='set_option', metavar='KEY=VALUE',
                                help='Set an option, e.g. loader.default_workers=4')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point"""
    parser = create_parser()
    args = parser.parse_args(argv)

    config = load_config_from_args(args)

    console_level = 'DEBUG' if args.verbose and not args.log_level else config['app']['log_level']
    setup_logging(
        log_dir=args.log_dir or config['app'].get('log_dir'),
        console_level=console_level,
        enable_console=not args.no_console_log
    )

    commands = CLICommands(config, config_path=args.config)
    handlers = {
        'load': commands.load_command,
        'stats': commands.stats_command,
        'clear': commands.clear_command,
        'prune': commands.prune_command,
        'optimize': commands.optimize_command,
        'config': commands.config_command,
    }

    try:
        return handlers[args.command](args)
    except KeyboardInterrupt:
        print("⚠️ Interrupted by user")
        return 130


if __name__ == '__main__':
    sys.exit(main())
