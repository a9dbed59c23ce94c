"""
Media Rating Overlay - Rating Badge Package

This package composites rating badges onto the movie posters of media
libraries, including:
- Plex library, item and poster services
- TMDB rating lookups
- Poster compositing with frame and bar overlays
- Concurrent library and item processing with scoped cancellation
- Configuration and logging
"""

from .constants import (
    logger,
    SERVICE_NAME,
    SERVICE_VERSION,
    POSTER_WIDTH,
    POSTER_HEIGHT,
)

from .errors import (
    OverlayError,
    Cancelled,
    DeadlineExceeded,
    CancelledError,
    ConfigError,
    ServiceInitError,
    is_deadline_error,
)

from .cancellation import (
    CancelToken,
    WorkerBudget,
    TaskGroup,
)

from .config import (
    Config,
    LibraryConfig,
    load_config,
    resolve_max_threads,
    write_sample_config,
)

from .models import (
    Item,
    Library,
    Rating,
    PosterResult,
)

from .compositor import PosterConfig, PosterGenerator
from .ratings import RatingService, RatingBuilder, ItemEligibilityService
from .item_processor import ItemProcessor, ProcessingReport
from .library_processor import LibraryProcessor, MediaHandles
from .registry import MediaService, ServiceRegistry
from .app import App, main

__all__ = [
    # Constants
    'logger',
    'SERVICE_NAME',
    'SERVICE_VERSION',
    'POSTER_WIDTH',
    'POSTER_HEIGHT',
    # Errors
    'OverlayError',
    'Cancelled',
    'DeadlineExceeded',
    'CancelledError',
    'ConfigError',
    'ServiceInitError',
    'is_deadline_error',
    # Cancellation
    'CancelToken',
    'WorkerBudget',
    'TaskGroup',
    # Config
    'Config',
    'LibraryConfig',
    'load_config',
    'resolve_max_threads',
    'write_sample_config',
    # Models
    'Item',
    'Library',
    'Rating',
    'PosterResult',
    # Compositor
    'PosterConfig',
    'PosterGenerator',
    # Ratings
    'RatingService',
    'RatingBuilder',
    'ItemEligibilityService',
    # Processing
    'ItemProcessor',
    'ProcessingReport',
    'LibraryProcessor',
    'MediaHandles',
    # Services
    'MediaService',
    'ServiceRegistry',
    # Entry point
    'App',
    'main',
]
