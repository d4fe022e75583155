"""
Configuration loader for TechSync
"""

import os
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Union

from dotenv import load_dotenv


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path('config/techsync.yaml')


def default_config() -> Dict[str, Any]:
    """Built-in defaults, overridden by YAML and environment"""
    return {
        'database': {
            'url': 'sqlite+aiosqlite:///./data/techsync.db',
            'echo': False
        },
        'source': {
            'url': '',
            'key': '',
            'page_size': 1000,
            'timeout': 30
        },
        'target': {
            'url': '',
            'key': '',
            'sync_url': '',
            'sync_secret': '',
            'page_size': 1000,
            'timeout': 30,
            'verify_ssl': True
        },
        'queue': {
            'max_attempts': 5,
            # 1 min, 5 min, 15 min, 1 h, 4 h
            'retry_delays': [60, 300, 900, 3600, 14400],
            'stale_timeout_seconds': 600
        },
        'worker': {
            'batch_size': 10,
            'dead_letter_client_errors': True
        },
        'reconciler': {
            # FK dependency order
            'tables': [
                'taxonomy_tipos',
                'taxonomy_subcategorias',
                'taxonomy_sectores',
                'technologies',
                'casos_de_estudio',
                'technological_trends',
                'projects',
                'project_technologies'
            ],
            'fetch_chunk_size': 200
        },
        'gateway': {
            'queue_mode': 'on_failure'
        },
        # Per-table overrides merged over techsync.core.record_adapter.DEFAULT_TABLES
        'tables': {},
        'api': {
            'host': '0.0.0.0',
            'port': 8080,
            'api_key': 'development-key-change-in-production',
            'cors_origins': ['*']
        },
        'logging': {
            'level': 'INFO',
            # text or json
            'format': 'text',
            'file': None,
            'max_bytes': 10 * 1024 * 1024,
            'backup_count': 5
        }
    }


# Environment variable -> (section, key)
ENV_OVERRIDES = {
    'TECHSYNC_API_KEY': ('api', 'api_key'),
    'DATABASE_URL': ('database', 'url'),
    'SOURCE_URL': ('source', 'url'),
    'SOURCE_KEY': ('source', 'key'),
    'TARGET_URL': ('target', 'url'),
    'TARGET_KEY': ('target', 'key'),
    'TARGET_SYNC_URL': ('target', 'sync_url'),
    'TARGET_SYNC_SECRET': ('target', 'sync_secret'),
    'LOG_LEVEL': ('logging', 'level'),
    'LOG_FILE': ('logging', 'file'),
}


def load_config(path: Optional[Union[str, Path]] = None,
                overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Load configuration from defaults, YAML file and environment"""

    load_dotenv()

    config = default_config()

    yaml_path = Path(path) if path else Path(os.getenv('TECHSYNC_CONFIG', DEFAULT_CONFIG_PATH))

    if yaml_path.exists():
        try:
            with open(yaml_path, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f)
            if yaml_config:
                _deep_update(config, yaml_config)
                logger.info(f"Configuration loaded from {yaml_path}")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load configuration from {yaml_path}: {e}")
            logger.error("Using default configuration")
    elif path:
        logger.warning(f"Configuration file {yaml_path} not found, using defaults")
    else:
        logger.debug(f"No configuration file at {yaml_path}, using defaults")

    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            config[section][key] = value

    if overrides:
        _deep_update(config, overrides)

    return config


def _deep_update(base_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> None:
    """Deep update nested dictionary"""
    for key, value in update_dict.items():
        if key in base_dict and isinstance(base_dict[key], dict) and isinstance(value, dict):
            _deep_update(base_dict[key], value)
        else:
            base_dict[key] = value
