"""
CLI Configuration Management

Provides configuration loading, validation, and management for the Unit Cache CLI.
Supports a JSON configuration file and .env / environment variable overrides.
"""

import copy
import json
import os
import platform
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

from ..core.exceptions import ConfigurationError
from ..utils.logging_config import get_logger


class CLIConfig:
    """
    CLI configuration manager

    Features:
    - Multiple configuration sources (file, environment, defaults)
    - Platform-specific configuration paths
    - .env discovery in the working directory and its parents
    - Range clamping of numeric settings
    """

    def __init__(self, config_path: Optional[str] = None, load_env: bool = True):
        """Initialize configuration manager"""
        self.config_path = config_path or self._get_default_config_path()
        self._config_cache: Optional[Dict[str, Any]] = None
        self._defaults = self._get_default_config()
        self.logger = get_logger('config')

        if load_env:
            env_path = self._find_env_file()
            if env_path:
                load_dotenv(env_path)

    def _get_default_config_path(self) -> str:
        """Get default configuration file path based on platform"""
        if platform.system() == "Windows":
            config_dir = os.path.expandvars(r"%APPDATA%\UnitCache")
        elif platform.system() == "Darwin":
            config_dir = os.path.expanduser("~/Library/Application Support/UnitCache")
        else:
            config_dir = os.path.expanduser("~/.config/unitcache")

        return os.path.join(config_dir, "config.json")

    def _find_env_file(self) -> Optional[str]:
        """Find .env file in current directory or up to 3 parent directories"""
        current_dir = Path.cwd()

        for _ in range(4):
            env_file = current_dir / '.env'
            if env_file.exists():
                return str(env_file)
            if current_dir == current_dir.parent:
                break
            current_dir = current_dir.parent

        return None

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values"""
        return {
            "app": {
                "version": "1.0",
                "debug": False,
                "log_level": "INFO",
                "log_dir": None
            },

            "cache": {
                "cache_dir": None,  # None -> <tempdir>/unitcache
                "index_filename": "cache-index.json",
                "max_cache_size_mb": 100,
                "memory_max_age_hours": 24,
                "disk_max_age_days": 7,
                "hash_chunk_size": 65536
            },

            "loader": {
                "default_workers": os.cpu_count() or 1,
                "max_workers": 64,
                "batch_timeout_seconds": None
            },

            "ui": {
                "progress_bars": False,
                "verbose_by_default": False
            }
        }

    def load_config(self, force_reload: bool = False) -> Dict[str, Any]:
        """
        Load configuration from all sources

        Args:
            force_reload: Force reload from file (ignore cache)

        Returns:
            Merged configuration dictionary
        """
        if self._config_cache is not None and not force_reload:
            return self._config_cache

        config = copy.deepcopy(self._defaults)

        file_config = self._load_from_file()
        if file_config:
            config = self._deep_merge(config, file_config)

        env_config = self._load_from_environment()
        if env_config:
            config = self._deep_merge(config, env_config)

        config = self._validate_config(config)

        self._config_cache = config
        return config

    def _load_from_file(self) -> Optional[Dict[str, Any]]:
        """Load configuration from JSON file"""
        if not os.path.exists(self.config_path):
            return None

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                loaded = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.warning(f"Failed to load config file {self.config_path}: {e}")
            return None

        if not isinstance(loaded, dict):
            self.logger.warning(f"Ignoring config file {self.config_path}: not a JSON object")
            return None
        return loaded

    def _load_from_environment(self) -> Dict[str, Any]:
        """Load configuration overrides from environment variables"""
        config: Dict[str, Any] = {}

        env_mappings = {
            'UNITCACHE_CACHE_DIR': ('cache', 'cache_dir', str),
            'UNITCACHE_MAX_CACHE_SIZE_MB': ('cache', 'max_cache_size_mb', float),
            'UNITCACHE_MEMORY_MAX_AGE_HOURS': ('cache', 'memory_max_age_hours', float),
            'UNITCACHE_DISK_MAX_AGE_DAYS': ('cache', 'disk_max_age_days', float),
            'UNITCACHE_WORKERS': ('loader', 'default_workers', int),
            'UNITCACHE_BATCH_TIMEOUT': ('loader', 'batch_timeout_seconds', float),
            'UNITCACHE_LOG_LEVEL': ('app', 'log_level', str),
            'UNITCACHE_DEBUG': ('app', 'debug', self._str_to_bool),
            'UNITCACHE_PROGRESS': ('ui', 'progress_bars', self._str_to_bool),
        }

        for env_var, (section, key, converter) in env_mappings.items():
            value = os.environ.get(env_var)
            if value is None:
                continue
            try:
                config.setdefault(section, {})[key] = converter(value)
            except ValueError as e:
                self.logger.warning(f"Invalid environment variable {env_var}={value}: {e}")

        return config

    @staticmethod
    def _str_to_bool(value: str) -> bool:
        """Convert string to boolean"""
        return value.lower() in ('true', '1', 'yes', 'on', 'enabled')

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries"""
        result = base.copy()

        for key, value in update.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _validate_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Validate and sanitize configuration values"""
        loader = config.setdefault('loader', {})
        loader['max_workers'] = max(1, min(int(loader.get('max_workers') or 64), 64))
        loader['default_workers'] = max(1, min(int(loader.get('default_workers') or 1), loader['max_workers']))
        timeout = loader.get('batch_timeout_seconds')
        loader['batch_timeout_seconds'] = float(timeout) if timeout and float(timeout) > 0 else None

        cache = config.setdefault('cache', {})
        cache['max_cache_size_mb'] = max(1, min(cache.get('max_cache_size_mb', 100), 10000))
        cache['memory_max_age_hours'] = max(1, min(cache.get('memory_max_age_hours', 24), 168))
        cache['disk_max_age_days'] = max(1, min(cache.get('disk_max_age_days', 7), 365))
        cache['hash_chunk_size'] = max(1024, int(cache.get('hash_chunk_size', 65536)))

        app = config.setdefault('app', {})
        app['log_level'] = str(app.get('log_level', 'INFO')).upper()

        return config

    def save_config(self, config: Optional[Dict[str, Any]] = None) -> bool:
        """
        Save configuration to file

        Args:
            config: Configuration to save (uses current if None)

        Returns:
            True if saved successfully
        """
        if config is None:
            config = self.load_config()

        try:
            os.makedirs(os.path.dirname(self.config_path), exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(config, f, indent=2, ensure_ascii=False)
        except OSError as e:
            self.logger.error(f"Failed to save config file {self.config_path}: {e}")
            return False

        self._config_cache = None
        return True

    def get_option(self, path: str, default: Any = None) -> Any:
        """
        Get a configuration option using dot notation

        Args:
            path: Dot-separated path (e.g., 'loader.default_workers')
            default: Default value if path not found
        """
        value: Any = self.load_config()

        try:
            for key in path.split('.'):
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def set_option(self, path: str, value: Any) -> bool:
        """
        Set a configuration option using dot notation

        Raises:
            ConfigurationError: If the path does not name a known option
        """
        keys = path.split('.')
        reference: Any = self._defaults
        for key in keys:
            if not isinstance(reference, dict) or key not in reference:
                raise ConfigurationError(f"Unknown configuration option: {path}")
            reference = reference[key]

        config = copy.deepcopy(self.load_config())
        target = config
        for key in keys[:-1]:
            target = target.setdefault(key, {})
        target[keys[-1]] = value

        return self.save_config(config)

    def reset_to_defaults(self) -> bool:
        """Reset configuration to defaults"""
        return self.save_config(copy.deepcopy(self._defaults))

    def validate_file_config(self, filepath: str) -> Tuple[bool, List[str]]:
        """
        Validate a configuration file

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        errors: List[str] = []

        if not os.path.exists(filepath):
            return False, [f"Configuration file not found: {filepath}"]

        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            return False, [f"Invalid JSON syntax: {e}"]
        except OSError as e:
            return False, [f"Cannot read configuration file: {e}"]

        if not isinstance(config, dict):
            return False, ["Configuration must be a JSON object"]

        self._validate_config_structure(config, self._defaults, [], errors)
        return len(errors) == 0, errors

    def _validate_config_structure(self, config: Dict[str, Any], reference: Dict[str, Any],
                                   path: List[str], errors: List[str]):
        """Recursively validate configuration structure"""
        for key, value in config.items():
            current_path = path + [key]
            path_str = '.'.join(current_path)

            if key not in reference:
                errors.append(f"Unknown configuration option: {path_str}")
                continue

            reference_value = reference[key]
            if isinstance(reference_value, dict):
                if not isinstance(value, dict):
                    errors.append(f"Configuration option {path_str} must be an object")
                else:
                    self._validate_config_structure(value, reference_value, current_path, errors)

    def get_config_info(self) -> Dict[str, Any]:
        """Get information about current configuration"""
        config = self.load_config()
        exists = os.path.exists(self.config_path)

        return {
            "config_path": self.config_path,
            "config_exists": exists,
            "sections": list(config.keys()),
            "total_options": sum(len(v) if isinstance(v, dict) else 1 for v in config.values()),
            "last_modified": os.path.getmtime(self.config_path) if exists else None
        }


def parse_option_value(raw: str) -> Any:
    """Interpret a command-line option value as JSON, falling back to the raw string"""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def load_config_from_args(args) -> Dict[str, Any]:
    """
    Load configuration from command line arguments

    Global flags (--cache-dir, --max-size, --log-level) override file and
    environment values.
    """
    config = CLIConfig(getattr(args, 'config', None)).load_config()
    config = copy.deepcopy(config)

    if getattr(args, 'cache_dir', None):
        config['cache']['cache_dir'] = args.cache_dir
    if getattr(args, 'max_size', None) is not None:
        config['cache']['max_cache_size_mb'] = max(1, min(args.max_size, 10000))
    if getattr(args, 'log_level', None):
        config['app']['log_level'] = args.log_level.upper()

    return config
