"""
Configuration management for the spider.
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, List, Any, Optional, Tuple
from dataclasses import dataclass, field, fields

from ..crawler.policy import DEFAULT_EXTENSIONS, parse_url
from ..exceptions import ConfigError, MalformedURLError


DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; webspider/1.1)"


@dataclass
class SpiderConfig:
    """Configuration for crawler behavior."""
    start_url: Optional[str] = None
    threads: int = 5
    timeout: float = 5.0
    max_pages: int = 100
    user_agent: str = DEFAULT_USER_AGENT
    headers: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)
    proxy: Optional[str] = None
    follow_external: bool = False
    hide_external: bool = False
    ignore: List[str] = field(default_factory=list)
    extensions: List[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))

    @property
    def proxy_url(self) -> Optional[str]:
        """Proxy as an aiohttp proxy URL."""
        if not self.proxy:
            return None
        host, port = parse_proxy(self.proxy)
        return f"http://{host}:{port}"


@dataclass
class PluginConfig:
    """Plugins to activate and the options shared between them."""
    names: List[str] = field(default_factory=list)
    options: Dict[str, str] = field(default_factory=dict)


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json: bool = False


@dataclass
class OutputConfig:
    """Where and how discovered URLs are reported."""
    file: Optional[str] = None
    verbose: bool = True


@dataclass
class Config:
    """Main configuration class."""
    spider: SpiderConfig = field(default_factory=SpiderConfig)
    plugins: PluginConfig = field(default_factory=PluginConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    output: OutputConfig = field(default_factory=OutputConfig)


def split_list(value: Optional[str], separator: str = ',') -> List[str]:
    """Split a separated string, dropping blanks."""
    if not value:
        return []
    return [item.strip() for item in value.split(separator) if item.strip()]


def parse_cookies(cookie_string: Optional[str]) -> Dict[str, str]:
    """Parse a 'name=value; name2=value2' cookie header string."""
    cookies = {}
    for pair in split_list(cookie_string, ';'):
        name, sep, value = pair.partition('=')
        if sep and name.strip():
            cookies[name.strip()] = value.strip()
    return cookies


def parse_plugin_options(option_string: Optional[str]) -> Dict[str, str]:
    """Parse 'name=value;name2=value2' plugin options; entries without '=' are skipped."""
    options = {}
    for pair in split_list(option_string, ';'):
        name, sep, value = pair.partition('=')
        if sep and name.strip():
            options[name.strip()] = value.strip()
    return options


def parse_proxy(proxy: str) -> Tuple[str, int]:
    """Parse a 'host:port' proxy string."""
    host, sep, port = proxy.strip().rpartition(':')
    if not sep or not host or not port.isdigit():
        raise ConfigError(f"Proxy must be given as host:port, got '{proxy}'")
    return host, int(port)


def _build_section(cls, data: Optional[Dict[str, Any]], section: str):
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigError(f"Section '{section}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown keys in section '{section}': {', '.join(sorted(unknown))}")
    return cls(**data)


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r') as file:
            try:
                config_data = yaml.safe_load(file) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {self.config_path}: {e}")

        if not isinstance(config_data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {self.config_path}")

        unknown = set(config_data) - {'spider', 'plugins', 'logging', 'output'}
        if unknown:
            raise ConfigError(f"Unknown configuration sections: {', '.join(sorted(unknown))}")

        # Parse configuration sections
        self._config = Config(
            spider=_build_section(SpiderConfig, config_data.get('spider'), 'spider'),
            plugins=_build_section(PluginConfig, config_data.get('plugins'), 'plugins'),
            logging=_build_section(LoggingConfig, config_data.get('logging'), 'logging'),
            output=_build_section(OutputConfig, config_data.get('output'), 'output'),
        )

        validate_config(self._config, require_start_url=False)
        return self._config

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ValueError("Configuration not loaded. Call load_config() first.")
        return self._config


def validate_config(config: Config, require_start_url: bool = True):
    """Validate configuration values."""
    spider = config.spider

    if spider.start_url is None:
        if require_start_url:
            raise ConfigError("A start URL must be provided")
    else:
        try:
            parse_url(spider.start_url)
        except MalformedURLError:
            raise ConfigError(f"Start URL is not an absolute URL: {spider.start_url}")

    if spider.threads < 1:
        raise ConfigError("threads must be at least 1")

    if spider.max_pages < 1:
        raise ConfigError("max_pages must be at least 1")

    if spider.timeout <= 0:
        raise ConfigError("timeout must be positive")

    if spider.proxy:
        parse_proxy(spider.proxy)

    if config.logging.level.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
        raise ConfigError(f"Unknown log level: {config.logging.level}")

    logging.getLogger(__name__).debug("Configuration validation passed")


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    return ConfigManager(config_path).load_config()
