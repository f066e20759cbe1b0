"""
Configuration loader with environment variable expansion and _FILE support

The trench document lives in <config dir>/torrent-trench.json (or .yml/.yaml).
Process settings are resolved in this order (highest to lowest priority):
1. CLI arguments (exported to the environment by process_args)
2. Environment variable _FILE variant (reads from file)
3. Environment variable (direct value)
4. Config file
5. Default value
"""

import os
import re
import json
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional

from torrent_trench.errors import ConfigurationError
from torrent_trench.rules import TrenchConfig, parse_trench_config


# Environment variable mapping
# Maps config keys to environment variable names
ENV_VAR_MAP = {
    'config.dir': 'TT_CONFIG_PATH',
    'logging.level': 'LOG_LEVEL',
    'logging.file': 'LOG_FILE',
    'logging.traceMode': 'TRACE_MODE',
    'dryRun': 'DRY_RUN',
}

# Searched in order inside the config directory
CONFIG_FILENAMES = ('torrent-trench.json', 'torrent-trench.yml', 'torrent-trench.yaml')

DEFAULT_CONFIG_DIR = Path('/data')


def get_nested_config(config: Dict[str, Any], key: str) -> Optional[Any]:
    """
    Get nested configuration value using dot notation

    Args:
        config: Configuration dictionary
        key: Dot-notation key (e.g., 'logging.level')

    Returns:
        Configuration value or None if not found

    Examples:
        >>> config = {'logging': {'level': 'DEBUG'}}
        >>> get_nested_config(config, 'logging.level')
        'DEBUG'
        >>> get_nested_config(config, 'logging.missing')
        None
    """
    value = config

    for k in key.split('.'):
        if isinstance(value, dict) and k in value:
            value = value[k]
        else:
            return None

    return value


def parse_bool(value: Any) -> bool:
    """
    Parse boolean from various formats

    Examples:
        >>> parse_bool('true')
        True
        >>> parse_bool('1')
        True
        >>> parse_bool(0)
        False
        >>> parse_bool(None)
        False
    """
    if value is None:
        return False

    if isinstance(value, bool):
        return value

    if isinstance(value, int):
        return value != 0

    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes', 'on')

    return bool(value)


def resolve_config(
    cli_value: Optional[Any],
    env_var: str,
    config: Dict[str, Any],
    config_key: str,
    default: Optional[Any] = None
) -> Any:
    """
    Resolve one setting from CLI, environment, config file or default

    Every environment variable also has a _FILE variant holding the path of a
    file with the value (Docker secrets).

    Args:
        cli_value: Value from CLI argument (None if not provided)
        env_var: Environment variable name (without _FILE suffix)
        config: Loaded configuration document
        config_key: Dot-notation key in the document (e.g., 'logging.level')
        default: Default value if no source provides a value

    Returns:
        Resolved value
    """
    if cli_value is not None:
        return cli_value

    file_var = f"{env_var}_FILE"
    if file_var in os.environ:
        file_path = os.environ[file_var]
        try:
            with open(file_path, 'r') as f:
                content = f.read().strip()
            logging.debug(f"Loaded config from file: {file_var}={file_path}")
            return content
        except OSError as e:
            logging.warning(f"Error reading {file_var} from {file_path}: {e}")

    if env_var in os.environ:
        value = os.environ[env_var]
        logging.debug(f"Loaded config from env: {env_var}={value}")
        return value

    if config:
        value = get_nested_config(config, config_key)
        if value is not None:
            logging.debug(f"Loaded config from file: {config_key}={value}")
            return value

    return default


def expand_env_vars(value: Any) -> Any:
    """
    Recursively expand environment variables in configuration values

    Supports format: ${VAR_NAME} and ${VAR_NAME:-default_value}

    Examples:
        >>> os.environ['QBIT_PASSWORD'] = 'hunter2'
        >>> expand_env_vars('${QBIT_PASSWORD:-adminadmin}')
        'hunter2'
        >>> expand_env_vars('${MISSING_VAR:-default}')
        'default'
    """
    if isinstance(value, str):
        pattern = r'\$\{([^}:]+)(?::-([^}]*))?\}'

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else ''
            return os.environ.get(var_name, default_value)

        return re.sub(pattern, replacer, value)

    elif isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [expand_env_vars(item) for item in value]

    return value


def find_config_file(config_dir: Path) -> Path:
    """
    Locate the trench document in a config directory

    Raises:
        ConfigurationError: If none of the supported file names exist
    """
    for filename in CONFIG_FILENAMES:
        candidate = config_dir / filename
        if candidate.is_file():
            return candidate

    raise ConfigurationError(
        str(config_dir / CONFIG_FILENAMES[0]),
        f"File does not exist (looked for {', '.join(CONFIG_FILENAMES)})"
    )


def load_document(file_path: Path) -> Any:
    """
    Load a JSON or YAML document with error handling

    Raises:
        ConfigurationError: If the file cannot be read or parsed
    """
    try:
        with open(file_path, 'r') as f:
            if file_path.suffix == '.json':
                content = json.load(f)
            else:
                content = yaml.safe_load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(str(file_path), f"Invalid JSON syntax: {e}")
    except yaml.YAMLError as e:
        raise ConfigurationError(str(file_path), f"Invalid YAML syntax: {e}")
    except PermissionError:
        raise ConfigurationError(str(file_path), "Permission denied - cannot read file")
    except OSError as e:
        raise ConfigurationError(str(file_path), f"Cannot read file: {e}")

    if content is None:
        raise ConfigurationError(str(file_path), "File is empty")

    return content


class Config:
    """Configuration manager"""

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Load and validate the trench document

        Args:
            config_dir: Directory containing torrent-trench.json
                       Defaults to TT_CONFIG_PATH or /data

        Raises:
            ConfigurationError: If the document cannot be loaded
            ConfigValidationError: If the document is invalid
        """
        if config_dir is None:
            config_dir = Path(os.environ.get('TT_CONFIG_PATH', DEFAULT_CONFIG_DIR))

        self.config_dir = Path(config_dir)
        self.config_file = find_config_file(self.config_dir)

        logging.debug(f"Loading config from {self.config_file}")
        self.config = expand_env_vars(load_document(self.config_file))
        self.trench_config: TrenchConfig = parse_trench_config(self.config, str(self.config_file))
        logging.debug(f"Loaded {len(self.trench_config.trenches)} trenches")

    def _resolve(self, key: str, default: Any = None) -> Any:
        return resolve_config(None, ENV_VAR_MAP[key], self.config, key, default)

    def get_log_level(self) -> str:
        """Get logging level"""
        return str(self._resolve('logging.level', 'INFO')).upper()

    def get_log_file(self) -> Optional[Path]:
        """
        Get log file path, None for console only

        Relative paths are relative to the config directory.
        """
        log_file = self._resolve('logging.file')
        if not log_file:
            return None

        log_path = Path(log_file)
        if not log_path.is_absolute():
            log_path = self.config_dir / log_path
        return log_path

    def get_trace_mode(self) -> bool:
        """Check if trace mode is enabled (detailed logging with module/function/line)"""
        return parse_bool(self._resolve('logging.traceMode', False))

    def is_dry_run(self) -> bool:
        """Check if dry-run mode is enabled"""
        return parse_bool(self._resolve('dryRun', False))


def load_config(config_dir: Optional[Path] = None) -> Config:
    """
    Load configuration from directory

    Args:
        config_dir: Directory containing torrent-trench.json

    Returns:
        Config object
    """
    return Config(config_dir)
