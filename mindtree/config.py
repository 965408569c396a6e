"""
Configuration management for Ipê Mind Tree.

This module handles loading and accessing configuration values from config.yaml.
Every setting has a built-in default, so a missing or broken file still yields
a working configuration.
"""

import yaml
from pathlib import Path
from typing import Any, Dict, List
import logging


class ConfigManager:
    """
    Manages configuration loading and access for Ipê Mind Tree.
    """

    def __init__(self, config_path: str = "config.yaml"):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file
        """
        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from YAML file."""
        try:
            if not self.config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._config = yaml.safe_load(f) or {}

            logging.info(f"Configuration loaded from {self.config_path}")

        except (OSError, yaml.YAMLError) as e:
            logging.warning(f"Failed to load configuration: {e}")
            # Fall back to default configuration
            self._config = self._get_default_config()

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values as fallback."""
        return {
            "ai": {
                "ollama_host": "http://localhost:11434",
                "model": "gemma3",
                "timeout": 30.0,
                "temperature": 0.7
            },
            "database": {
                "filename": "mindtree.db"
            },
            "paths": {
                "log_file": "mindtree.log"
            },
            "logging": {
                "level": "INFO",
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            },
            "import": {
                "default_imported_by": "anonymous",
                "skip_dirs": [".obsidian", ".trash", ".git", "node_modules"],
                "download_timeout": 60.0
            },
            "google_drive": {
                "credentials_file": "google-credentials.json"
            },
            "links": {
                "batch_size": 100,
                "tag_base_strength": 0.2,
                "tag_step_strength": 0.1,
                "title_similarity_strength": 0.3,
                "canvas_adjacent_strength": 0.5
            },
            "network": {
                "visible_link_types": ["wiki", "canvas-edge"]
            },
            "context": {
                "max_nodes_per_category": 5,
                "max_content_chars": 600
            },
            "rag": {
                "context_ttl_seconds": 3600,
                "search_limit": 5,
                "search_char_budget": 40000
            },
            "subprompts": {
                "cache_ttl_seconds": 3600,
                "similarity_threshold": 0.5,
                "embedding_size": 100
            }
        }

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Args:
            key_path: Dot-separated path to the configuration value (e.g., "ai.model")
            default: Default value if key is not found

        Returns:
            The configuration value

        Examples:
            config.get("ai.model")  # Returns "gemma3"
            config.get("links.tag_base_strength")  # Returns 0.2
        """
        keys = key_path.split('.')
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def get_section(self, section: str) -> Dict[str, Any]:
        """
        Get an entire configuration section.

        Args:
            section: Name of the configuration section

        Returns:
            Dictionary containing the section configuration
        """
        return self._config.get(section, {})

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    # Convenience properties for commonly used values

    @property
    def ollama_host(self) -> str:
        """Get Ollama host URL."""
        return self.get("ai.ollama_host", "http://localhost:11434")

    @property
    def model_name(self) -> str:
        """Get AI model name."""
        return self.get("ai.model", "gemma3")

    @property
    def ollama_timeout(self) -> float:
        """Get Ollama timeout."""
        return self.get("ai.timeout", 30.0)

    @property
    def database_filename(self) -> str:
        """Get database filename."""
        return self.get("database.filename", "mindtree.db")

    @property
    def log_filename(self) -> str:
        """Get log file name."""
        return self.get("paths.log_file", "mindtree.log")

    @property
    def default_imported_by(self) -> str:
        return self.get("import.default_imported_by", "anonymous")

    @property
    def skip_dirs(self) -> List[str]:
        """Directory names never entered during a directory walk."""
        return self.get("import.skip_dirs", [".obsidian", ".trash", ".git", "node_modules"])

    @property
    def download_timeout(self) -> float:
        return self.get("import.download_timeout", 60.0)

    @property
    def google_credentials_file(self) -> str:
        return self.get("google_drive.credentials_file", "google-credentials.json")

    @property
    def link_batch_size(self) -> int:
        return self.get("links.batch_size", 100)

    @property
    def visible_link_types(self) -> List[str]:
        """Link types shown in the graph view."""
        return self.get("network.visible_link_types", ["wiki", "canvas-edge"])

    @property
    def context_ttl_seconds(self) -> int:
        return self.get("rag.context_ttl_seconds", 3600)


# Global configuration instance
config = ConfigManager()


def get_config() -> ConfigManager:
    """
    Get the global configuration instance.

    Returns:
        The global ConfigManager instance
    """
    return config
