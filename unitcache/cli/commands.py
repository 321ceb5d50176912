"""
CLI Commands Module

Provides command implementations for the Unit Cache CLI.
Separates command logic from argument parsing for better maintainability.
"""

import json
import os
import time
import traceback
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.exceptions import ConfigurationError, UnitCacheError
from ..core.models import BatchLoadResult, LoadRequest
from ..unit_cache_manager import UnitCacheManager
from .config import CLIConfig, parse_option_value


class CLICommands:
    """
    CLI command implementations

    Each *_command method takes the parsed arguments and returns an exit code.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, config_path: Optional[str] = None):
        """Initialize CLI commands"""
        self.config = config or {}
        self.config_path = config_path
        self.manager: Optional[UnitCacheManager] = None
        self.verbose = False

    def _get_manager(self) -> UnitCacheManager:
        if self.manager is None:
            self.manager = UnitCacheManager.for_python_modules(self.config)
            self.manager.initialize()
        return self.manager

    def load_command(self, args) -> int:
        """
        Load Python module files through the batch loader

        Returns:
            0 if at least one unit loaded (or nothing failed), 1 if all failed
        """
        try:
            self.verbose = getattr(args, 'verbose', False)

            requests = self._collect_requests(args.paths)
            if not requests:
                self._print_error("No Python source files found")
                return 1

            manager = self._get_manager()
            show_progress = getattr(args, 'progress', False) or self.config.get('ui', {}).get('progress_bars', False)

            start_time = time.time()
            batch_result = manager.load_batch(
                requests,
                throttle_limit=getattr(args, 'workers', None),
                force=getattr(args, 'force', False),
                timeout=getattr(args, 'timeout', None),
                progress_callback=self._print_progress if self.verbose and not show_progress else None,
                show_progress=show_progress
            )

            self._print_batch_summary(batch_result, time.time() - start_time)

            if batch_result.total_requests and batch_result.successful == 0:
                return 1
            return 0

        except UnitCacheError as e:
            self._print_error(f"Cache Error: {e}")
            return 1
        except KeyboardInterrupt:
            self._print_warning("Loading interrupted by user")
            return 130
        except Exception as e:
            self._print_error(f"Unexpected Error: {e}")
            if self.verbose:
                traceback.print_exc()
            return 1

    def stats_command(self, args) -> int:
        """Show cache statistics"""
        try:
            stats = self._get_manager().get_statistics()

            print("📊 Cache Statistics:")
            print(json.dumps(stats, indent=2, default=str))
            return 0

        except UnitCacheError as e:
            self._print_error(f"Failed to get statistics: {e}")
            return 1

    def clear_command(self, args) -> int:
        """Delete every cached unit and the cache directory"""
        try:
            manager = self._get_manager()
            cache_dir = manager.cache_service.cache_dir
            manager.clear_cache()

            print(f"🗑️ Cache cleared: {cache_dir}")
            return 0

        except UnitCacheError as e:
            self._print_error(f"Failed to clear cache: {e}")
            return 1

    def prune_command(self, args) -> int:
        """Remove expired and orphaned records"""
        try:
            results = self._get_manager().prune()

            print(f"🧹 Pruned: {results['expired_removed']} expired, "
                  f"{results['orphaned_removed']} orphaned")
            return 0

        except UnitCacheError as e:
            self._print_error(f"Prune failed: {e}")
            return 1

    def optimize_command(self, args) -> int:
        """Optimize the cache and print recommendations"""
        try:
            results = self._get_manager().optimize_cache()

            print("🔧 Optimization Results:")
            print(json.dumps(results, indent=2))
            return 0

        except UnitCacheError as e:
            self._print_error(f"Optimization failed: {e}")
            return 1

    def config_command(self, args) -> int:
        """Handle configuration commands"""
        try:
            cli_config = CLIConfig(self.config_path)

            if getattr(args, 'show_config', False):
                config = cli_config.load_config()
                print("⚙️ Current Configuration:")
                print(json.dumps(config, indent=2))
                return 0

            if getattr(args, 'reset_config', False):
                if not cli_config.reset_to_defaults():
                    self._print_error("Failed to reset configuration")
                    return 1
                print("✅ Configuration reset to defaults")
                return 0

            if getattr(args, 'set_option', None):
                if '=' not in args.set_option:
                    self._print_error("Expected key=value, e.g. cache.max_cache_size_mb=200")
                    return 1
                key, raw_value = args.set_option.split('=', 1)
                value = parse_option_value(raw_value)
                if not cli_config.set_option(key, value):
                    self._print_error(f"Failed to save option {key}")
                    return 1
                print(f"✅ Set {key} = {value}")
                return 0

            info = cli_config.get_config_info()
            print(f"⚙️ Config file: {info['config_path']} "
                  f"({'exists' if info['config_exists'] else 'not created yet'})")
            return 0

        except ConfigurationError as e:
            self._print_error(f"Configuration command failed: {e}")
            return 1

    # Private helper methods

    def _collect_requests(self, paths: List[str]) -> List[LoadRequest]:
        """Expand files and folders into load requests (one per .py file)"""
        requests = []
        for path in paths:
            if os.path.isdir(path):
                for source in sorted(Path(path).rglob('*.py')):
                    requests.append(LoadRequest(source.stem, str(source)))
            else:
                # Missing files are still submitted so they are reported per unit
                requests.append(LoadRequest(Path(path).stem, path))
        return requests

    def _print_progress(self, current: int, total: int, unit_name: str):
        """Print loading progress"""
        percentage = (current / total) * 100
        if len(unit_name) > 50:
            unit_name = unit_name[:47] + "..."

        print(f"   [{current:4d}/{total:4d}] ({percentage:5.1f}%) {unit_name}")

    def _print_batch_summary(self, batch_result: BatchLoadResult, elapsed: float):
        """Print batch load summary"""
        print("\n📊 Batch Load Summary")
        print(f"   Total units: {batch_result.total_requests}")
        print(f"   Successful: {batch_result.successful}")
        print(f"   Failed: {batch_result.failed}")
        if batch_result.cancelled:
            print(f"   Cancelled: {batch_result.cancelled}")
        print(f"   Workers: {batch_result.workers}")
        for source, count in sorted(batch_result.source_counts.items()):
            print(f"   From {source}: {count}")
        print(f"   Total time: {elapsed:.2f}s")

        for failure in batch_result.failures:
            if not failure.cancelled or self.verbose:
                self._print_error(f"{failure.unit_name}: {failure.error}")

    def _print_error(self, message: str):
        """Print error message"""
        print(f"❌ {message}")

    def _print_warning(self, message: str):
        """Print warning message"""
        print(f"⚠️ {message}")


__all__ = ['CLICommands']
