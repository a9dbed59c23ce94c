"""
Constants and configuration for Media Rating Overlay.

This module contains the project logger, poster geometry, rating provider
names, badge sizing factors and environment-based settings used throughout
the library processing pipeline.
"""

import logging
import os
import re
import sys
from pathlib import Path

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='| %(levelname)-8s | %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger('MediaRatingOverlay')

SERVICE_NAME = 'media-rating-overlay'
SERVICE_VERSION = '1.0.0'

PACKAGE_DIR = Path(__file__).resolve().parent

# ============================================================================
# Environment
# ============================================================================
# ENV selects the config overlay file (config.env.<env>.yaml). PROD forbids
# debug logging.
DEFAULT_ENV = 'DEV'
PROD_ENV = 'PROD'

DEFAULT_CONFIG_DIR = os.environ.get('MRO_CONFIG_DIR', 'configs')
BASE_CONFIG_NAME = 'config.yaml'
ENV_CONFIG_PATTERN = 'config.env.{env}.yaml'

DEFAULT_LOG_FILE_PATH = 'logs/media-rating-overlay.log'

# Orchestrator waits this long for the run to finish after a shutdown request
SHUTDOWN_GRACE_SECONDS = 5.0

# ============================================================================
# Poster Geometry
# ============================================================================
POSTER_WIDTH = 1200
POSTER_HEIGHT = 1800
POSTER_MARGIN_LEFT = 20
POSTER_MARGIN_RIGHT = 20

POSTER_FILE_MODE = 0o644
ORIGINAL_POSTER_FILE_MODE = 0o664

ORIGINAL_SUFFIX = '-original'
POSTER_MARKER_FROM = '-original.'
POSTER_MARKER_TO = '-poster.'
BACKUP_SUFFIX = '-backup'

# Extensions tried, in order, when looking for an original poster on disk
ORIGINAL_POSTER_EXTENSIONS = ['.jpeg', '.png']

MIME_TYPE_EXTENSIONS = {
    'image/jpeg': '.jpeg',
    'image/png': '.png',
}

OVERLAY_FRAME = 'frame'
OVERLAY_BAR = 'bar'
OVERLAY_TYPES = (OVERLAY_FRAME, OVERLAY_BAR)

# ============================================================================
# Badge Sizing
# ============================================================================
LOGO_AREA_WIDTH_FACTOR = 0.35
LOGO_IMAGE_REDUCTION = 0.85
LOGO_IMAGE_STEP_REDUCTION = 0.95
LOGO_IMAGE_MARGIN = 0.2

TEXT_STEP_REDUCTION = 0.95
TEXT_AREA_REDUCTION = 0.85
TEXT_MARGIN = 0.1

# Width-to-points ratios measured for the badge font, keyed by text length
TEXT_POINTS_RATIOS = {1: 0.4, 2: 0.99, 3: 1.39}
TEXT_POINTS_RATIO_DEFAULT = 1.79

# Widest text rendered for a given text length
TEXT_SAMPLES = {1: '1', 2: '9,9', 3: '99%'}
TEXT_SAMPLE_DEFAULT = '100%'

# Shrinking loops stop here whatever the fit
MIN_FONT_POINTS = 1.0
MIN_LOGO_DIMENSION = 1.0

RT_LOW_SCORE_THRESHOLD = 60

# ============================================================================
# Rating Providers
# ============================================================================
RATING_IMDB = 'IMDB'
RATING_TMDB = 'TMDB'
RATING_ROTTEN_TOMATOES = 'Rotten Tomatoes'

RATING_TYPE_CRITIC = 'critic'
RATING_TYPE_AUDIENCE = 'audience'
RATING_TYPE_USER = 'user'

# audienceRatingImage looks like "rottentomatoes://image.rating.ripe"
RATING_IMAGE_PATTERN = re.compile(r'([a-zA-Z]+)://\S+')

# added_at filter: last_<N>_<days|months|years>
ADDED_AT_PATTERN = re.compile(r'^last_(\d+)_(days|months|years)$')

MEDIA_TYPE_MOVIE = 'movie'
LOCAL_GUID_MARKER = 'local:'

# ============================================================================
# Remote Endpoints
# ============================================================================
TMDB_BASE_URL = 'https://api.themoviedb.org'
TMDB_SEARCH_MOVIE_PATH = '/3/search/movie'
TMDB_DEFAULT_LANGUAGE = 'en'
TMDB_DEFAULT_REGION = 'en-US'

PLEX_SECTIONS_PATH = '/library/sections'

HTTP_BACKOFF_SECONDS = 0.002
HTTP_MAX_JITTER_SECONDS = 0.1
HTTP_USER_AGENT = f'{SERVICE_NAME}/{SERVICE_VERSION}'

# Query parameters never written to the log in clear
REDACTED_QUERY_PARAMS = ('X-Plex-Token', 'api_key')

# ============================================================================
# Assets and Fonts
# ============================================================================
ASSETS_DIR = Path(os.environ.get('MRO_ASSETS_DIR', str(PACKAGE_DIR / 'assets')))

LOGO_RT_CRITIC = 'RT_critic.png'
LOGO_RT_CRITIC_LOW = 'RT_critic_low.png'
LOGO_RT_AUDIENCE = 'RT_audience.png'
LOGO_RT_AUDIENCE_LOW = 'RT_audience_low.png'
LOGO_IMDB = 'IMDb.png'
LOGO_TMDB = 'TMDB.png'

# Text badges drawn when a logo PNG is not installed: label, background, text
LOGO_FALLBACK_STYLES = {
    LOGO_RT_CRITIC: ('RT', '#FA320A', '#FFFFFF'),
    LOGO_RT_CRITIC_LOW: ('RT', '#0AC855', '#FFFFFF'),
    LOGO_RT_AUDIENCE: ('RT+', '#FA320A', '#FFFFFF'),
    LOGO_RT_AUDIENCE_LOW: ('RT+', '#0AC855', '#FFFFFF'),
    LOGO_IMDB: ('IMDb', '#F5C518', '#000000'),
    LOGO_TMDB: ('TMDB', '#0D253F', '#01B4E4'),
}
LOGO_FALLBACK_SIZE = (300, 150)

DEFAULT_FONT = os.environ.get('MRO_FONT', str(ASSETS_DIR / 'fonts' / 'BebasNeue-Regular.ttf'))

FONT_CANDIDATES = [
    DEFAULT_FONT,
    '/fonts/BebasNeue-Regular.ttf',
    '/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf',
    '/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf',
    '/usr/share/fonts/TTF/DejaVuSans.ttf',
]
