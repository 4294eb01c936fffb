"""Configuration loader with YAML support and environment variable substitution."""

import copy
import os
import re
from typing import Any, Dict
from urllib.parse import urlparse

import yaml


DEFAULTS: Dict[str, Any] = {
    'sites': [],
    'migration': {
        'per_page': 100,
        'skip_existing': True,
        'throttle_delay': 0.1,
        'output_directory': './export',
        'settings_file': '.wpp-settings.json',
        'report_path': None,
    },
    'images': {
        'temp_directory': './temp_images',
        'webp_directory': './webp_images',
        'convert_to_webp': False,
        'webp_quality': 80,
        'reuse_existing_media': True,
        'min_bytes': 100,
        'download_timeout': 30,
    },
    'export': {
        'strip_fields': ['yoast_head', 'yoast_head_json'],
        'translation_key': 'slug',
        'progress_bars': True,
    },
    'advanced': {
        'request_timeout': 30,
        'upload_timeout': 60,
        'max_retries': 3,
        'retry_backoff_factor': 1.0,
        'retry_jitter': 1.0,
        'max_backoff': 15,
        'verify_ssl': True,
    },
    'logging': {
        'level': None,
        'file': None,
    },
}


class ConfigLoader:
    """Handles loading and validation of configuration files."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')

    @classmethod
    def load(cls, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from YAML file with environment variable substitution.

        Missing sections are filled in from ``DEFAULTS``.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Parsed configuration dictionary

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If YAML parsing fails
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f)

        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a dictionary")

        # Substitute environment variables recursively
        config_data = cls._substitute_env_vars_recursive(config_data)

        return cls.apply_defaults(config_data)

    @classmethod
    def apply_defaults(cls, config: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``config`` with every default section filled in."""
        merged = copy.deepcopy(DEFAULTS)
        for key, value in config.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key].update(value)
            else:
                merged[key] = value
        return merged

    @classmethod
    def validate(cls, config: Dict[str, Any]) -> None:
        """
        Validate configuration for required fields and correct values.

        Args:
            config: Configuration dictionary to validate

        Raises:
            ValueError: If validation fails
        """
        sites = config.get('sites')
        if not isinstance(sites, list) or not sites:
            raise ValueError("At least one site profile must be configured under 'sites'")

        seen_names = set()
        for index, site in enumerate(sites):
            if not isinstance(site, dict):
                raise ValueError(f"sites[{index}] must be a mapping")
            for required in ('name', 'base_url', 'username', 'password', 'main_language'):
                cls._validate_required_field(site, required, prefix=f"sites[{index}]")
            cls._validate_url(site['base_url'], f"sites[{index}].base_url")

            other_languages = site.get('other_languages', [])
            if not isinstance(other_languages, list):
                raise ValueError(f"sites[{index}].other_languages must be a list")

            name = str(site['name']).lower()
            if name in seen_names:
                raise ValueError(f"Duplicate site name: {site['name']}")
            seen_names.add(name)

        per_page = get_nested(config, 'migration.per_page', 100)
        if not isinstance(per_page, int) or not 1 <= per_page <= 100:
            raise ValueError("migration.per_page must be an integer between 1 and 100")

        throttle = get_nested(config, 'migration.throttle_delay', 0.1)
        if not isinstance(throttle, (int, float)) or throttle < 0:
            raise ValueError("migration.throttle_delay must be a non-negative number")

        # Validate timeout settings
        for field in ('advanced.request_timeout', 'advanced.upload_timeout', 'advanced.max_backoff'):
            value = get_nested(config, field)
            if value is not None and (not isinstance(value, (int, float)) or value <= 0):
                raise ValueError(f"{field} must be a positive number")

        max_retries = get_nested(config, 'advanced.max_retries', 3)
        if not isinstance(max_retries, int) or max_retries < 1:
            raise ValueError("advanced.max_retries must be a positive integer")

        quality = get_nested(config, 'images.webp_quality', 80)
        if not isinstance(quality, int) or not 1 <= quality <= 100:
            raise ValueError("images.webp_quality must be an integer between 1 and 100")

        strip_fields = get_nested(config, 'export.strip_fields', [])
        if not isinstance(strip_fields, list):
            raise ValueError("export.strip_fields must be a list")

    @classmethod
    def merge_with_args(cls, config: Dict[str, Any], args) -> Dict[str, Any]:
        """
        Merge configuration file with CLI arguments.
        CLI arguments take precedence over config file values.

        Args:
            config: Base configuration dictionary
            args: CLI arguments with attributes matching config keys

        Returns:
            Merged configuration dictionary
        """
        merged = copy.deepcopy(config)

        for section in ('migration', 'images', 'logging'):
            if section not in merged:
                merged[section] = {}

        if getattr(args, 'output_dir', None):
            merged['migration']['output_directory'] = args.output_dir

        if getattr(args, 'no_skip_existing', False):
            merged['migration']['skip_existing'] = False

        if getattr(args, 'webp', None) is not None:
            merged['images']['convert_to_webp'] = args.webp

        if getattr(args, 'log_file', None):
            merged['logging']['file'] = args.log_file

        verbose = getattr(args, 'verbose', 0)
        if verbose >= 2:
            merged['logging']['level'] = 'DEBUG'
        elif verbose == 1:
            merged['logging']['level'] = 'INFO'

        return merged

    @classmethod
    def _substitute_env_vars_recursive(cls, data: Any) -> Any:
        """Recursively substitute environment variables in data structure."""
        if isinstance(data, dict):
            return {key: cls._substitute_env_vars_recursive(value) for key, value in data.items()}
        elif isinstance(data, list):
            return [cls._substitute_env_vars_recursive(item) for item in data]
        elif isinstance(data, str):
            return cls._substitute_env_vars(data)
        else:
            return data

    @classmethod
    def _substitute_env_vars(cls, value: str) -> str:
        """Substitute environment variables in a string value."""
        def replace_match(match):
            env_value = os.getenv(match.group(1))
            return env_value if env_value is not None else match.group(0)

        return cls.ENV_VAR_PATTERN.sub(replace_match, value)

    @staticmethod
    def _validate_required_field(config_section: dict, field: str, prefix: str = '') -> None:
        """Validate that a required field exists and has a value."""
        label = f"{prefix}.{field}" if prefix else field
        value = get_nested(config_section, field)
        if value is None or value == '':
            raise ValueError(f"Missing required configuration: {label}")

        # Check for unsubstituted environment variables
        if isinstance(value, str) and '${' in value:
            match = ConfigLoader.ENV_VAR_PATTERN.search(value)
            var_name = match.group(1) if match else value
            raise ValueError(
                f"Configuration field '{label}' contains unsubstituted environment variable: {value}. "
                f"Please set the {var_name} environment variable or provide a value in config file."
            )

    @staticmethod
    def _validate_url(url: str, field_name: str) -> None:
        """Validate URL format."""
        parsed = urlparse(url)
        if not parsed.scheme or parsed.scheme not in ['http', 'https']:
            raise ValueError(f"{field_name} must use http or https scheme: {url}")
        if not parsed.netloc:
            raise ValueError(f"{field_name} missing hostname: {url}")


def get_nested(config: dict, path: str, default: Any = None) -> Any:
    """Safely retrieve nested configuration values using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., "advanced.request_timeout")
        default: Default value if path doesn't exist

    Returns:
        Value at the nested path or default
    """
    keys = path.split('.')
    value = config

    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return value


__all__ = ['ConfigLoader', 'get_nested', 'DEFAULTS']
