"""
Configuration management for ChemSearch.

Handles loading, validating, and persisting the YAML configuration for
the primary store, vector store, ingestion and the PubChem client.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from ..types import EmbeddingConfig, MAX_PAGE_SIZE

logger = logging.getLogger(__name__)


class ConfigManager:
    """
    Manages system configuration.

    Loaded values are merged over ``DEFAULT_CONFIG`` section by section,
    so a config file only needs the keys it changes.
    """

    DEFAULT_CONFIG = {
        'database': {
            'path': 'data/chemsearch.db',
            'timeout': 15,
            'echo': False,
        },
        'vector_store': {
            'base_path': '.',
            'index_path': 'data/vectors/compounds.faiss',
            'metadata_path': 'data/vectors/compounds_metadata.json',
            'model_name': 'all-MiniLM-L6-v2',
            'embedding_dim': 384,
            'use_embedding_model': True,
            'min_similarity': 0,
        },
        'ingestion': {
            'data_dir': 'data/compounds',
            'batch_size': 200,
            'max_workers': 4,
            'seed_limit': 20,
        },
        'search': {
            'default_limit': 10,
        },
        'pubchem': {
            'base_url': 'https://pubchem.ncbi.nlm.nih.gov/rest/pug',
            'cache_dir': 'data/raw/pubchem',
            'timeout': 30,
            'max_retries': 3,
            'base_delay': 1.0,
            'max_delay': 30.0,
            'download_batch_size': 10,
            'download_workers': 3,
            'progress_path': 'data/download_progress.json',
        },
    }

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to YAML configuration file
        """
        self.config_path = Path(config_path) if config_path else None
        self.config: dict[str, Any] = {}

        if self.config_path and self.config_path.exists():
            self.load_config(self.config_path)
        else:
            logger.info("No config file found, using defaults")
            self.config = copy.deepcopy(self.DEFAULT_CONFIG)

    def load_config(self, path: Path) -> dict[str, Any]:
        """
        Load configuration from YAML file.

        Raises:
            FileNotFoundError: If config file does not exist
            yaml.YAMLError: If config file is invalid
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                loaded_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise

        if not loaded_config:
            logger.warning(f"Empty config file at {path}, using defaults")
            self.config = copy.deepcopy(self.DEFAULT_CONFIG)
        else:
            self.config = self._merge_with_defaults(loaded_config)

        self.config_path = path
        logger.info(f"Loaded configuration from {path}")
        return self.config

    @classmethod
    def from_dict(cls, overrides: dict[str, Any]) -> "ConfigManager":
        """Build a manager from in-memory overrides (merged over defaults)."""
        manager = cls()
        manager.config = manager._merge_with_defaults(overrides)
        return manager

    def section(self, name: str) -> dict[str, Any]:
        """
        Get a copy of one configuration section.

        Raises:
            KeyError: If the section does not exist
        """
        if name not in self.config:
            raise KeyError(f"Configuration section '{name}' not found")
        return dict(self.config[name])

    def get(self, section: str, key: str) -> Any:
        """
        Get a single value.

        Raises:
            KeyError: If section or key not found
        """
        values = self.config.get(section, {})
        if key not in values:
            raise KeyError(f"Configuration key '{section}.{key}' not found")
        return values[key]

    def embedding_config(self) -> EmbeddingConfig:
        """Embedding settings as an EmbeddingConfig."""
        vector = self.config['vector_store']
        return EmbeddingConfig(
            model_name=vector['model_name'],
            embedding_dim=int(vector['embedding_dim']),
            index_path=vector['index_path'],
            metadata_path=vector['metadata_path'],
        )

    def save_config(self, path: Optional[Path] = None) -> None:
        """
        Save configuration to YAML file.

        Raises:
            ValueError: If no path provided and no config_path set
        """
        save_path = Path(path) if path else self.config_path
        if not save_path:
            raise ValueError("No path provided and no config_path set")

        save_path.parent.mkdir(parents=True, exist_ok=True)
        with open(save_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(self.config, f, default_flow_style=False, sort_keys=False, indent=2)

        logger.info(f"Saved configuration to {save_path}")

    def get_all_config(self) -> dict[str, Any]:
        """Get a deep copy of the complete configuration."""
        return copy.deepcopy(self.config)

    def _merge_with_defaults(self, loaded_config: dict) -> dict:
        """Merge loaded config with defaults to ensure all keys exist."""
        merged = copy.deepcopy(self.DEFAULT_CONFIG)

        for section, values in loaded_config.items():
            if section in merged and isinstance(values, dict):
                merged[section].update(values)
            else:
                merged[section] = values

        return merged

    def validate_config(self) -> list[str]:
        """
        Validate the current configuration.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        def positive_int(section: str, key: str) -> None:
            value = self.config.get(section, {}).get(key)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                errors.append(f"{section}.{key} must be a positive integer, got {value!r}")

        def positive_number(section: str, key: str) -> None:
            value = self.config.get(section, {}).get(key)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                errors.append(f"{section}.{key} must be a positive number, got {value!r}")

        positive_number('database', 'timeout')
        positive_int('vector_store', 'embedding_dim')
        positive_int('ingestion', 'batch_size')
        positive_int('ingestion', 'max_workers')
        positive_number('pubchem', 'timeout')
        positive_int('pubchem', 'download_batch_size')
        positive_int('pubchem', 'download_workers')

        seed_limit = self.config.get('ingestion', {}).get('seed_limit')
        if not isinstance(seed_limit, int) or isinstance(seed_limit, bool) or seed_limit < 0:
            errors.append(f"ingestion.seed_limit must be a non-negative integer, got {seed_limit!r}")

        retries = self.config.get('pubchem', {}).get('max_retries')
        if not isinstance(retries, int) or isinstance(retries, bool) or retries < 0:
            errors.append(f"pubchem.max_retries must be a non-negative integer, got {retries!r}")

        min_similarity = self.config.get('vector_store', {}).get('min_similarity')
        if not isinstance(min_similarity, (int, float)) or not 0 <= min_similarity <= 100:
            errors.append(f"vector_store.min_similarity must be between 0 and 100, got {min_similarity!r}")

        default_limit = self.config.get('search', {}).get('default_limit')
        if not isinstance(default_limit, int) or not 1 <= default_limit <= MAX_PAGE_SIZE:
            errors.append(f"search.default_limit must be between 1 and {MAX_PAGE_SIZE}, got {default_limit!r}")

        return errors
