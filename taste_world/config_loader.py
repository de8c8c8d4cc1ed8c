"""
Configuration Loader - Manages YAML configuration and environment variables
"""
import yaml
import os
from typing import Any


class Config:
    """Configuration manager for the taste world service"""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = config_path
        self.config = self._load_config()
        self._validate_config()

    def _load_config(self) -> dict:
        """Load configuration from YAML file"""
        if not os.path.exists(self.config_path):
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}

    def _validate_config(self):
        """Validate required configuration fields (environment overrides count)"""
        required = [
            ('openai', 'api_key', 'OPENAI_API_KEY'),
            ('spotify', 'access_token', 'SPOTIFY_ACCESS_TOKEN'),
        ]

        for section, field, env_var in required:
            if os.getenv(env_var):
                continue
            if section not in self.config:
                raise ValueError(f"Missing configuration section: {section}")
            if field not in (self.config[section] or {}):
                raise ValueError(f"Missing configuration field: {section}.{field}")

            value = self.config[section][field]
            if not value or str(value).startswith('YOUR_'):
                raise ValueError(f"Please set {section}.{field} in {self.config_path} or {env_var}")

        backend = self.storage_backend
        if backend not in ('sqlite', 'memory'):
            raise ValueError(f"Unsupported storage.backend: {backend}")

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """
        Get configuration value

        Args:
            section: Configuration section
            key: Configuration key
            default: Default value if not found

        Returns:
            Configuration value or default
        """
        if section not in self.config or not self.config[section]:
            return default
        return self.config[section].get(key, default)

    def section(self, section: str) -> dict:
        """Return a whole section as a dict (empty if absent)"""
        return dict(self.config.get(section) or {})

    # OpenAI
    @property
    def openai_api_key(self) -> str:
        """Get OpenAI API key (with environment variable override)"""
        return os.getenv('OPENAI_API_KEY') or self.get('openai', 'api_key', '')

    @property
    def openai_model(self) -> str:
        return self.get('openai', 'model', 'gpt-4o-mini')

    @property
    def openai_embedding_model(self) -> str:
        return self.get('openai', 'embedding_model', 'text-embedding-3-small')

    @property
    def openai_embedding_batch_size(self) -> int:
        """Maximum inputs per embedding request"""
        return int(self.get('openai', 'embedding_batch_size', 2048))

    # Spotify
    @property
    def spotify_access_token(self) -> str:
        """Get Spotify access token (with environment variable override)"""
        return os.getenv('SPOTIFY_ACCESS_TOKEN') or self.get('spotify', 'access_token', '')

    @property
    def spotify_api_base(self) -> str:
        return self.get('spotify', 'api_base', 'https://api.spotify.com/v1')

    @property
    def spotify_requests_per_window(self) -> int:
        return int(self.get('spotify', 'requests_per_window', 150))

    @property
    def spotify_window_seconds(self) -> float:
        return float(self.get('spotify', 'window_seconds', 60))

    @property
    def spotify_max_retries(self) -> int:
        return int(self.get('spotify', 'max_retries', 3))

    # Storage
    @property
    def storage_backend(self) -> str:
        return str(self.get('storage', 'backend', 'sqlite')).lower()

    @property
    def storage_path(self) -> str:
        return self.get('storage', 'path', 'data/taste_world.db')

    # World building
    @property
    def pca_components(self) -> int:
        return int(self.get('world', 'pca_components', 8))

    @property
    def top_genres_limit(self) -> int:
        return int(self.get('world', 'top_genres', 10))

    @property
    def top_artists_limit(self) -> int:
        return int(self.get('world', 'top_artists', 20))

    # Harvest overrides (see playlist.config.default_harvest_config)
    @property
    def harvest_overrides(self) -> dict:
        return self.section('harvest')

    # Jobs
    @property
    def job_max_workers(self) -> int:
        return int(self.get('jobs', 'max_workers', 4))

    @property
    def regenerate_cooldown_minutes(self) -> float:
        return float(self.get('jobs', 'regenerate_cooldown_minutes', 15))

    # Logging
    @property
    def log_level(self) -> str:
        return self.get('logging', 'level', 'INFO')

    @property
    def log_file(self):
        return self.get('logging', 'file', None)
