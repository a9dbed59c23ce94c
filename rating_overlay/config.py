"""
Configuration management for Media Rating Overlay.

This module loads the base ``config.yaml`` and the optional
``config.env.<env>.yaml`` overlay, merges them (the overlay wins for every
non-empty, non-zero field), applies defaults and validates the result.
It also writes a commented sample configuration for first-time setup.
"""

import os
import re
from dataclasses import MISSING, dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .constants import (
    logger,
    BASE_CONFIG_NAME,
    DEFAULT_CONFIG_DIR,
    DEFAULT_ENV,
    DEFAULT_LOG_FILE_PATH,
    ENV_CONFIG_PATTERN,
    OVERLAY_FRAME,
    OVERLAY_TYPES,
    PROD_ENV,
    SERVICE_NAME,
    SERVICE_VERSION,
)
from .errors import ConfigError


# ============================================================================
# Durations
# ============================================================================

_DURATION_PART = re.compile(r'(\d+(?:\.\d+)?)(ms|h|m|s)')
_DURATION_UNITS = {'h': 3600.0, 'm': 60.0, 's': 1.0, 'ms': 0.001}


def parse_duration(value: Any) -> float:
    """
    Parse a duration into seconds.

    Accepts numbers (already seconds) and strings such as "600s", "10m",
    "1h30m" or "250ms". Empty values parse as 0.
    """
    if value is None or value == '':
        return 0.0
    if isinstance(value, bool):
        raise ConfigError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip().lower()
    try:
        return float(text)
    except ValueError:
        pass

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text) or pos == 0:
        raise ConfigError(f"invalid duration: {value!r}")
    return total


def format_duration(seconds: float) -> str:
    """Render seconds the way they are written in config files."""
    if seconds >= 60 and seconds % 60 == 0:
        minutes = int(seconds // 60)
        if minutes % 60 == 0:
            return f"{minutes // 60}h0m0s"
        return f"{minutes}m0s"
    if seconds == int(seconds):
        return f"{int(seconds)}s"
    return f"{seconds}s"


# ============================================================================
# Config model
# ============================================================================

@dataclass
class FiltersConfig:
    years: List[str] = field(default_factory=list)
    titles: List[str] = field(default_factory=list)
    genres: List[str] = field(default_factory=list)
    added_at: str = ''


@dataclass
class OverlayConfig:
    type: str = OVERLAY_FRAME
    height: float = 0.0
    transparency: float = 0.0


@dataclass
class LibraryConfig:
    name: str = ''
    enabled: bool = False
    refresh: bool = False
    path: str = ''
    filters: FiltersConfig = field(default_factory=FiltersConfig)
    overlay: OverlayConfig = field(default_factory=OverlayConfig)


@dataclass
class PlexConfig:
    enabled: bool = False
    url: str = ''
    token: str = ''
    libraries: List[LibraryConfig] = field(default_factory=list)


@dataclass
class TMDBConfig:
    enabled: bool = False
    api_key: str = ''
    language: str = 'en-US'
    region: str = 'US'


@dataclass
class PerformanceConfig:
    max_threads: int = 1
    library_processing_timeout: float = 600.0


@dataclass
class HTTPClientConfig:
    timeout: float = 30.0
    max_retries: int = 3


@dataclass
class LoggerConfig:
    log_file_path: str = DEFAULT_LOG_FILE_PATH
    log_level: str = 'info'
    max_size: int = 100
    max_backups: int = 5
    max_age: int = 30
    compress: bool = True
    service_name: str = SERVICE_NAME
    service_version: str = SERVICE_VERSION
    use_json: bool = True
    use_stdout: bool = True


@dataclass
class RatingBuilderConfig:
    timeout: float = 30.0


@dataclass
class ItemProcessorConfig:
    rating_builder: RatingBuilderConfig = field(default_factory=RatingBuilderConfig)


@dataclass
class LibraryProcessorConfig:
    default_timeout: float = 600.0


@dataclass
class ProcessorConfig:
    item_processor: ItemProcessorConfig = field(default_factory=ItemProcessorConfig)
    library_processor: LibraryProcessorConfig = field(default_factory=LibraryProcessorConfig)


@dataclass
class Config:
    plex: PlexConfig = field(default_factory=PlexConfig)
    tmdb: TMDBConfig = field(default_factory=TMDBConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)
    http_client: HTTPClientConfig = field(default_factory=HTTPClientConfig)
    logger: LoggerConfig = field(default_factory=LoggerConfig)
    processor: ProcessorConfig = field(default_factory=ProcessorConfig)

    def enabled_libraries(self) -> List[LibraryConfig]:
        return [lib for lib in self.plex.libraries if lib.enabled]


# Fields holding durations, keyed by dataclass
_DURATION_FIELDS = {
    PerformanceConfig: {'library_processing_timeout'},
    HTTPClientConfig: {'timeout'},
    RatingBuilderConfig: {'timeout'},
    LibraryProcessorConfig: {'default_timeout'},
}


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


def _build(cls, data: Any, zero: bool = False):
    """
    Build a config dataclass from a mapping.

    With ``zero`` set, missing keys take the type's zero value instead of the
    default so that merging can tell "not set" from "set to the default".
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"expected a mapping for {cls.__name__}, got {type(data).__name__}")

    kwargs: Dict[str, Any] = {}
    for f in fields(cls):
        present = f.name in data and data[f.name] is not None
        raw = data.get(f.name)
        if f.name == 'libraries':
            kwargs[f.name] = [_build(LibraryConfig, lib) for lib in (raw or [])]
            continue
        if f.name in _DURATION_FIELDS.get(cls, set()):
            if present:
                kwargs[f.name] = parse_duration(raw)
            elif zero:
                kwargs[f.name] = 0.0
            continue
        if f.default_factory is not MISSING:
            default = f.default_factory()
        else:
            default = f.default
        if is_dataclass(default):
            kwargs[f.name] = _build(type(default), raw, zero=zero)
        elif isinstance(default, list):
            kwargs[f.name] = _as_str_list(raw)
        elif not present:
            if zero:
                kwargs[f.name] = type(default)()
        elif isinstance(default, bool):
            kwargs[f.name] = bool(raw)
        elif isinstance(default, int):
            kwargs[f.name] = _to_number(int, raw, f.name)
        elif isinstance(default, float):
            kwargs[f.name] = _to_number(float, raw, f.name)
        else:
            kwargs[f.name] = str(raw)
    return cls(**kwargs)


def _to_number(kind, raw: Any, name: str):
    try:
        return kind(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}", e)


def config_from_dict(data: Optional[Dict[str, Any]], zero: bool = False) -> Config:
    return _build(Config, data or {}, zero=zero)


def _overlay(base: Any, env: Any) -> Any:
    """Overlay non-empty, non-zero fields of ``env`` on ``base``."""
    if is_dataclass(base):
        for f in fields(base):
            if f.name == 'libraries':
                if env.libraries:
                    base.libraries = env.libraries
                continue
            setattr(base, f.name, _overlay(getattr(base, f.name), getattr(env, f.name)))
        return base
    if isinstance(env, bool):
        return base or env
    if env in (None, '', 0, 0.0) or env == []:
        return base
    return env


def merge_configs(base: Config, env: Config) -> Config:
    return _overlay(base, env)


# ============================================================================
# Validation
# ============================================================================

def validate_config(config: Config) -> None:
    """Raise ConfigError describing the first invalid setting."""
    if config.plex.enabled:
        if not config.plex.url:
            raise ConfigError('plex.url is required when plex is enabled')
        if not config.plex.token:
            raise ConfigError('plex.token is required when plex is enabled')
    if config.tmdb.enabled and not config.tmdb.api_key:
        raise ConfigError('tmdb.api_key is required when tmdb is enabled')
    if config.performance.max_threads < 0:
        raise ConfigError('performance.max_threads must be non-negative')
    if config.performance.library_processing_timeout <= 0:
        raise ConfigError('performance.library_processing_timeout must be positive')
    if config.http_client.timeout <= 0:
        raise ConfigError('http_client.timeout must be positive')
    if config.http_client.max_retries < 0:
        raise ConfigError('http_client.max_retries must be non-negative')
    if config.processor.item_processor.rating_builder.timeout <= 0:
        raise ConfigError('processor.item_processor.rating_builder.timeout must be positive')
    if config.processor.library_processor.default_timeout <= 0:
        raise ConfigError('processor.library_processor.default_timeout must be positive')

    lc = config.logger
    if not lc.log_file_path:
        raise ConfigError('logger.log_file_path is required')
    if lc.max_size <= 0:
        raise ConfigError('logger.max_size must be positive')
    if lc.max_backups < 0:
        raise ConfigError('logger.max_backups must be non-negative')
    if lc.max_age < 0:
        raise ConfigError('logger.max_age must be non-negative')

    for lib in config.enabled_libraries():
        if not lib.name:
            raise ConfigError('plex.libraries[].name is required')
        if lib.overlay.type not in OVERLAY_TYPES:
            raise ConfigError(
                f"library {lib.name}: overlay.type must be one of {', '.join(OVERLAY_TYPES)}"
            )
        if not 0 < lib.overlay.height < 1:
            raise ConfigError(f"library {lib.name}: overlay.height must be in (0, 1)")
        if not 0 <= lib.overlay.transparency <= 1:
            raise ConfigError(f"library {lib.name}: overlay.transparency must be in [0, 1]")


def validate_environment_rules(config: Config, env: str) -> None:
    if env == PROD_ENV and config.logger.log_level.lower() == 'debug':
        raise ConfigError('debug logging is not allowed in production')


# ============================================================================
# Loading
# ============================================================================

def get_env() -> str:
    """Current environment name from ENV, uppercased; DEV when unset."""
    return (os.environ.get('ENV') or DEFAULT_ENV).upper()


def load_yaml_file(path: Path) -> Dict[str, Any]:
    """Load a YAML mapping; empty files load as an empty dict."""
    with path.open('r') as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at top level")
    return data


def load_config(config_dir: Optional[Path] = None, env: Optional[str] = None) -> Config:
    """
    Load, merge and validate the configuration.

    Args:
        config_dir: Directory holding config.yaml (defaults to ``configs``)
        env: Environment name (defaults to $ENV, then DEV)
    """
    config_dir = Path(config_dir or DEFAULT_CONFIG_DIR)
    env = (env or get_env()).upper()

    base_path = config_dir / BASE_CONFIG_NAME
    if not base_path.exists():
        raise ConfigError(f"base configuration not found: {base_path}")
    try:
        config = config_from_dict(load_yaml_file(base_path))
    except yaml.YAMLError as e:
        raise ConfigError(f"error loading base configuration from {base_path}", e)

    env_path = config_dir / ENV_CONFIG_PATTERN.format(env=env.lower())
    if env_path.exists():
        try:
            env_config = config_from_dict(load_yaml_file(env_path), zero=True)
        except yaml.YAMLError as e:
            raise ConfigError(f"error loading environment-specific configuration from {env_path}", e)
        config = merge_configs(config, env_config)
        logger.debug(f"CONFIG_ENV_MERGED env={env} path={env_path}")

    validate_config(config)
    validate_environment_rules(config, env)
    return config


def resolve_max_threads(configured: int, cpu_count: Optional[int] = None) -> int:
    """
    Size the worker budget.

    Zero means "auto" (all cores but one); otherwise the configured value is
    capped at cores minus one. Never below 1.
    """
    cpus = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    available = max(1, cpus - 1)
    if configured <= 0:
        return available
    return max(1, min(configured, available))


# ============================================================================
# Sample config
# ============================================================================

SAMPLE_CONFIG_HEADER = """\
Media Rating Overlay configuration.
Durations accept seconds or values such as 600s, 10m, 1h30m.
Environment overrides go in config.env.<env>.yaml (ENV defaults to DEV).
"""


def build_sample_config() -> Dict[str, Any]:
    return {
        'plex': {
            'enabled': True,
            'url': 'http://127.0.0.1:32400',
            'token': '',
            'libraries': [
                {
                    'name': 'Movies',
                    'enabled': True,
                    'refresh': False,
                    'path': '/media/movies',
                    'filters': {'years': [], 'titles': [], 'genres': [], 'added_at': 'last_30_days'},
                    'overlay': {'type': OVERLAY_FRAME, 'height': 0.12, 'transparency': 0.6},
                },
            ],
        },
        'tmdb': {'enabled': False, 'api_key': '', 'language': 'en-US', 'region': 'US'},
        'performance': {'max_threads': 0, 'library_processing_timeout': '1h0m0s'},
        'http_client': {'timeout': '30s', 'max_retries': 3},
        'logger': {
            'log_file_path': DEFAULT_LOG_FILE_PATH,
            'log_level': 'info',
            'max_size': 100,
            'max_backups': 5,
            'max_age': 30,
            'compress': True,
            'service_name': SERVICE_NAME,
            'service_version': SERVICE_VERSION,
            'use_json': True,
            'use_stdout': True,
        },
        'processor': {
            'item_processor': {'rating_builder': {'timeout': '30s'}},
            'library_processor': {'default_timeout': '10m0s'},
        },
    }


def write_sample_config(path: Path, overwrite: bool = False) -> bool:
    """Write a commented sample config. Returns False if the file exists."""
    from ruamel.yaml import YAML
    from ruamel.yaml.comments import CommentedMap

    if path.exists() and not overwrite:
        return False

    data = CommentedMap(build_sample_config())
    data.yaml_set_start_comment(SAMPLE_CONFIG_HEADER)
    data.yaml_set_comment_before_after_key('performance', before='max_threads: 0 uses all cores but one')

    yaml_parser = YAML()
    yaml_parser.default_flow_style = False
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open('w') as f:
        yaml_parser.dump(data, f)
    logger.info(f"SAMPLE_CONFIG_WRITTEN path={path}")
    return True
