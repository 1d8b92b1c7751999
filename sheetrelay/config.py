"""
load the config from config.yaml and environment variables, then freeze it
into a RelayConfig that is passed explicitly to the fetcher and the app
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from .errors import ConfigurationError
from .sources import ArbitrarySource, FixedSource, PageSource, SheetSource

DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_HOSTING_URL = "https://wacare-backend.web.app"
DEFAULT_LOCAL_ORIGINS = ("http://localhost:5000", "http://127.0.0.1:5000")
SOURCE_MODES = ("fixed", "page", "arbitrary")


class Config:
    """Configuration loader that reads from a YAML file and environment variables."""

    # Values kept as strings even when they look numeric
    STRING_KEYS = {('source', 'url'), ('source', 'default_page'), ('source', 'pattern'),
                   ('decoder', 'delimiter'), ('logging', 'level'), ('server', 'host')}

    def __init__(self, config_path: str = None, environ: Dict[str, str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to the YAML file. If None, SHEETRELAY_CONFIG or
                        config.yaml in the working directory is used, and a
                        missing file is treated as empty.
            environ: Environment mapping, defaults to os.environ.
        """
        self.environ = os.environ if environ is None else environ
        explicit = config_path is not None or 'SHEETRELAY_CONFIG' in self.environ
        if config_path is None:
            config_path = self.environ.get('SHEETRELAY_CONFIG', DEFAULT_CONFIG_PATH)

        self.config_path = Path(config_path)
        self._config = self._load_config(required=explicit)

    def _load_config(self, required: bool) -> Dict[str, Any]:
        """Load configuration from YAML file and override with environment variables."""
        try:
            with open(self.config_path, 'r') as f:
                config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            if required:
                raise ConfigurationError(f"Configuration file not found: {self.config_path}")
            config = {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}")

        if not isinstance(config, dict):
            raise ConfigurationError("Configuration file must contain a mapping.")

        return self._apply_env_overrides(config)

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration."""
        env_mappings = {
            'PUBLIC_SHEET_CSV_URL': ('source', 'url'),
            'SHEET_SOURCE_MODE': ('source', 'mode'),
            'SHEET_URL_PATTERN': ('source', 'pattern'),
            'SHEET_DEFAULT_PAGE': ('source', 'default_page'),
            'FETCH_TIMEOUT': ('fetcher', 'timeout'),
            'FETCH_MAX_RESPONSE_SIZE': ('fetcher', 'max_response_size'),
            'FETCH_USER_AGENT': ('fetcher', 'user_agent'),
            'CSV_DELIMITER': ('decoder', 'delimiter'),
            'FIREBASE_HOSTING_URL': ('cors', 'hosting_url'),
            'HOST': ('server', 'host'),
            'PORT': ('server', 'port'),
            'LOG_LEVEL': ('logging', 'level'),
            'LOG_JSON': ('logging', 'json'),
            'STARTUP_CHECK': ('startup_check',),
        }

        for env_var, config_path in env_mappings.items():
            env_value = self.environ.get(env_var)
            if env_value is not None:
                current = config
                for key in config_path[:-1]:
                    if not isinstance(current.get(key), dict):
                        current[key] = {}
                    current = current[key]

                final_key = config_path[-1]
                if config_path in self.STRING_KEYS:
                    current[final_key] = env_value
                else:
                    current[final_key] = self._convert_env_value(env_value)

        origins = self.environ.get('ALLOWED_ORIGINS')
        if origins is not None:
            config.setdefault('cors', {})['allowed_origins'] = [
                origin.strip() for origin in origins.split(',') if origin.strip()
            ]

        return config

    def _convert_env_value(self, value: str):
        """Convert environment variable string to appropriate Python type."""
        if value.lower() in ('true', 'false'):
            return value.lower() == 'true'

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    def get(self, *keys, default=None):
        """Get configuration value by nested keys.

        Args:
            *keys: Configuration keys (e.g., 'source', 'url')
            default: Default value if key not found
        """
        current = self._config
        for key in keys:
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default
        return current

    @property
    def source(self) -> Dict[str, Any]:
        return self.get('source') or {}

    @property
    def fetcher(self) -> Dict[str, Any]:
        return self.get('fetcher') or {}

    @property
    def decoder(self) -> Dict[str, Any]:
        return self.get('decoder') or {}

    @property
    def cors(self) -> Dict[str, Any]:
        return self.get('cors') or {}

    @property
    def server(self) -> Dict[str, Any]:
        return self.get('server') or {}

    @property
    def logging(self) -> Dict[str, Any]:
        return self.get('logging') or {}


@dataclass(frozen=True)
class RelayConfig:
    source: SheetSource = field(default_factory=FixedSource)
    fetch_timeout: float = 10.0
    max_response_size: int = 10 * 1024 * 1024
    user_agent: str = "sheetrelay/1.0"
    delimiter: str = ","
    allowed_origins: Tuple[str, ...] = (DEFAULT_HOSTING_URL,) + DEFAULT_LOCAL_ORIGINS
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    log_json: bool = True
    startup_check: bool = False

    def check(self):
        """Fail fast when no usable source URL is configured."""
        source = self.source
        if isinstance(source, FixedSource) and not source.url:
            raise ConfigurationError("No sheet URL configured (set PUBLIC_SHEET_CSV_URL).")
        if isinstance(source, PageSource):
            if not source.pages:
                raise ConfigurationError("No sheet pages configured.")
            missing = sorted(page for page, url in source.pages.items() if not url)
            if missing:
                raise ConfigurationError(f"No URL configured for pages: {', '.join(missing)}")
            if source.default_page and source.default_page not in source.pages:
                raise ConfigurationError("Default page is not one of the configured pages.")


def _build_source(section: Dict[str, Any]) -> SheetSource:
    mode = str(section.get('mode') or 'fixed').lower()
    if mode not in SOURCE_MODES:
        raise ConfigurationError(f"Unknown source mode {mode!r}; expected one of {', '.join(SOURCE_MODES)}")

    if mode == 'page':
        pages = section.get('pages') or {}
        if not isinstance(pages, dict):
            raise ConfigurationError("source.pages must be a mapping of page id to URL.")
        return PageSource(
            pages={str(page): str(url or '') for page, url in pages.items()},
            default_page=section.get('default_page'),
        )

    if mode == 'arbitrary':
        try:
            return ArbitrarySource(pattern=section.get('pattern'))
        except re.error as e:
            raise ConfigurationError(f"Invalid source.pattern: {e}")

    return FixedSource(url=section.get('url'))


def _number(value, name: str, kind):
    try:
        number = kind(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number")
    if number <= 0:
        raise ConfigurationError(f"{name} must be positive")
    return number


def _flag(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


def build_relay_config(loader: Config) -> RelayConfig:
    """Validate loaded settings and freeze them into a RelayConfig."""
    fetcher = loader.fetcher
    cors = loader.cors
    server = loader.server
    log = loader.logging
    defaults = RelayConfig()

    delimiter = str(loader.decoder.get('delimiter') or defaults.delimiter)
    if delimiter == '\\t':
        delimiter = '\t'
    if len(delimiter) != 1:
        raise ConfigurationError("decoder.delimiter must be a single character")

    origins = cors.get('allowed_origins')
    hosting_url = cors.get('hosting_url')
    if origins is None:
        origins = [hosting_url or DEFAULT_HOSTING_URL] + list(DEFAULT_LOCAL_ORIGINS)
    elif isinstance(origins, str):
        origins = [origin.strip() for origin in origins.split(',') if origin.strip()]
    if hosting_url and hosting_url not in origins:
        origins = [hosting_url] + list(origins)

    return RelayConfig(
        source=_build_source(loader.source),
        fetch_timeout=_number(fetcher.get('timeout', defaults.fetch_timeout), 'fetcher.timeout', float),
        max_response_size=_number(
            fetcher.get('max_response_size', defaults.max_response_size), 'fetcher.max_response_size', int
        ),
        user_agent=str(fetcher.get('user_agent') or defaults.user_agent),
        delimiter=delimiter,
        allowed_origins=tuple(str(origin) for origin in origins),
        host=str(server.get('host') or defaults.host),
        port=_number(server.get('port', defaults.port), 'server.port', int),
        log_level=str(log.get('level') or defaults.log_level).upper(),
        log_json=_flag(log.get('json', defaults.log_json)),
        startup_check=_flag(loader.get('startup_check', default=False)),
    )


def load_config(config_path: Optional[str] = None, environ: Dict[str, str] = None) -> RelayConfig:
    """Load, validate and freeze configuration; runs the startup check when enabled."""
    config = build_relay_config(Config(config_path, environ=environ))
    if config.startup_check:
        config.check()
    return config
