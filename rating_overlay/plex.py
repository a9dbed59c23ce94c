"""
Plex media service for Media Rating Overlay.

This module provides the four Plex handles used by the pipeline:
- PlexLibraryService: list library sections and trigger refreshes
- PlexFilterService: turn library filters into /all query parameters
- PlexItemService: fetch movies and the ratings Plex already carries
- PlexPosterService: place the original poster beside the media file
"""

import calendar
import json
import os
import posixpath
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from .cancellation import CancelToken
from .config import LibraryConfig
from .constants import (
    logger,
    ADDED_AT_PATTERN,
    MIME_TYPE_EXTENSIONS,
    ORIGINAL_POSTER_EXTENSIONS,
    ORIGINAL_SUFFIX,
    PLEX_SECTIONS_PATH,
    RATING_IMAGE_PATTERN,
    RATING_IMDB,
    RATING_ROTTEN_TOMATOES,
    RATING_TMDB,
    RATING_TYPE_AUDIENCE,
    RATING_TYPE_CRITIC,
)
from .errors import FileLocateError, HTTPRequestError, NotAuthorizedError, NotFoundError, OverlayError
from .files import FileManager
from .http_client import HTTPClient, HTTPResponse, build_url
from .models import Filter, Item, Library, MediaFile, Rating, compute_eligibility

# audienceRatingImage scheme -> rating provider
RATING_IMAGE_PROVIDERS = {
    'rottentomatoes': RATING_ROTTEN_TOMATOES,
    'imdb': RATING_IMDB,
    'themoviedb': RATING_TMDB,
}


# ============================================================================
# Client
# ============================================================================

class PlexClient:
    """Authenticated access to a Plex server's JSON API."""

    def __init__(self, url: str, token: str, http: HTTPClient):
        if not url:
            raise ValueError('plex url is required')
        self.url = url.rstrip('/')
        self.token = token
        self.http = http

    def build_url(self, path: str, params: Optional[List[Tuple[str, str]]] = None) -> str:
        query = list(params or [])
        query.append(('X-Plex-Token', self.token))
        return build_url(self.url, path, query)

    def get(self, path: str, token: CancelToken, params: Optional[List[Tuple[str, str]]] = None) -> HTTPResponse:
        response = self.http.get(
            self.build_url(path, params),
            headers={'Accept': 'application/json'},
            token=token,
        )
        self._check_status(response, path)
        return response

    def get_container(self, path: str, token: CancelToken,
                      params: Optional[List[Tuple[str, str]]] = None) -> Dict[str, Any]:
        """GET ``path`` and return the decoded MediaContainer object."""
        response = self.get(path, token, params)
        try:
            payload = json.loads(response.body.decode('utf-8') or '{}')
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(f"PLEX_DECODE_FAILED path={path} error={e}")
            raise HTTPRequestError(f"unable to decode Plex response for {path}", response.status, e)
        container = payload.get('MediaContainer') if isinstance(payload, dict) else None
        return container if isinstance(container, dict) else {}

    @staticmethod
    def _check_status(response: HTTPResponse, path: str) -> None:
        if response.status == 401:
            logger.error('PLEX_UNAUTHORIZED your Plex token is invalid or expired')
            raise NotAuthorizedError('plex')
        if response.status == 404:
            logger.error(f"PLEX_NOT_FOUND path={path}")
            raise NotFoundError(path)
        if not 200 <= response.status < 300:
            raise HTTPRequestError(f"plex returned status {response.status} for {path}", response.status)


# ============================================================================
# Libraries
# ============================================================================

class PlexLibraryService:
    def __init__(self, client: PlexClient):
        self.client = client

    def get_libraries(self, token: CancelToken) -> List[Library]:
        container = self.client.get_container(PLEX_SECTIONS_PATH, token)
        libraries = []
        for directory in container.get('Directory') or []:
            libraries.append(Library(
                id=str(directory.get('key', '')),
                name=directory.get('title', ''),
                type=directory.get('type', ''),
                language=directory.get('language', ''),
            ))
        logger.debug(f"PLEX_LIBRARIES count={len(libraries)}")
        return libraries

    def refresh_library(self, token: CancelToken, library_id: str, force: bool = True) -> None:
        params = [('force', '1')] if force else []
        self.client.get(f"{PLEX_SECTIONS_PATH}/{library_id}/refresh", token, params)


# ============================================================================
# Filters
# ============================================================================

def _subtract_months(moment: datetime, months: int) -> datetime:
    """Calendar subtraction; the day is clamped to the target month's length."""
    index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


class PlexFilterService:
    """Builds query filters for /library/sections/{id}/all."""

    def __init__(self, clock: Callable[[], datetime] = None):
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def build_added_at_value(self, added_at: str) -> str:
        """Resolve ``last_<N>_<days|months|years>`` to unix seconds; anything else is ''."""
        match = ADDED_AT_PATTERN.match(added_at or '')
        if not match:
            return ''
        value = int(match.group(1))
        period = match.group(2)
        now = self.clock()
        if period == 'days':
            after = now - timedelta(days=value)
        elif period == 'months':
            after = _subtract_months(now, value)
        else:
            after = _subtract_months(now, value * 12)
        return str(int(after.timestamp()))

    def get_filters_from_config(self, library_config: LibraryConfig) -> List[Filter]:
        filters_config = library_config.filters
        filters = []
        if filters_config.years:
            filters.append(Filter('year', ','.join(filters_config.years)))
        if filters_config.titles:
            filters.append(Filter('title', ','.join(filters_config.titles)))
        if filters_config.genres:
            filters.append(Filter('genre', ','.join(filters_config.genres)))
        if filters_config.added_at:
            filters.append(Filter('addedAt>', self.build_added_at_value(filters_config.added_at)))
        return filters

    @staticmethod
    def to_query(filters: List[Filter]) -> List[Tuple[str, str]]:
        """Filters with an empty name or value are not applied."""
        return [(f.name, f.value) for f in filters if f.name and f.value]


# ============================================================================
# Items
# ============================================================================

def guess_rating_provider(audience_rating_image: str) -> str:
    """Map Plex's audienceRatingImage scheme to a rating provider name."""
    match = RATING_IMAGE_PATTERN.search(audience_rating_image or '')
    if not match:
        return ''
    provider = RATING_IMAGE_PROVIDERS.get(match.group(1), '')
    if not provider:
        logger.info(f"RATING_PROVIDER_UNKNOWN audienceRatingImage={audience_rating_image}")
    return provider


def _score(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def build_ratings(entry: Dict[str, Any]) -> List[Rating]:
    """Ratings Plex already knows for an entry; zero scores are not recorded."""
    provider = guess_rating_provider(entry.get('audienceRatingImage', ''))
    candidates = []
    if provider == RATING_ROTTEN_TOMATOES:
        candidates.append(Rating(provider, RATING_TYPE_CRITIC, _score(entry.get('rating'))))
        candidates.append(Rating(provider, RATING_TYPE_AUDIENCE, _score(entry.get('audienceRating'))))
    elif provider in (RATING_IMDB, RATING_TMDB):
        candidates.append(Rating(provider, RATING_TYPE_AUDIENCE, _score(entry.get('audienceRating'))))
    return [r for r in candidates if r.score > 0]


def media_files(entry: Dict[str, Any]) -> List[MediaFile]:
    files = []
    for media in entry.get('Media') or []:
        for part in media.get('Part') or []:
            if part.get('file'):
                files.append(MediaFile(path=part['file']))
    return files


def convert_entry(entry: Dict[str, Any]) -> Item:
    item_type = entry.get('type', '')
    guid = entry.get('guid', '')
    return Item(
        id=str(entry.get('ratingKey', '')),
        guid=guid,
        title=entry.get('title', ''),
        type=item_type,
        year=int(entry.get('year') or 0),
        ratings=build_ratings(entry),
        added_at=int(entry.get('addedAt') or 0),
        updated_at=int(entry.get('updatedAt') or 0),
        poster_url=entry.get('thumb', ''),
        media=media_files(entry),
        is_eligible=compute_eligibility(item_type, guid),
    )


class PlexItemService:
    def __init__(self, client: PlexClient, filter_service: PlexFilterService):
        self.client = client
        self.filter_service = filter_service

    def get_items(self, token: CancelToken, library: Library, library_config: LibraryConfig) -> List[Item]:
        filters = self.filter_service.get_filters_from_config(library_config)
        container = self.client.get_container(
            f"{PLEX_SECTIONS_PATH}/{library.id}/all",
            token,
            self.filter_service.to_query(filters),
        )
        items = [convert_entry(entry) for entry in container.get('Metadata') or []]
        logger.debug(f"PLEX_ITEMS library={library.name} count={len(items)}")
        return items


# ============================================================================
# Posters
# ============================================================================

def detect_mime_type(data: bytes, fallback: str = '') -> str:
    """Sniff the image type from magic bytes, then trust the server header."""
    if data[:3] == b'\xff\xd8\xff':
        return 'image/jpeg'
    if data[:8] == b'\x89PNG\r\n\x1a\n':
        return 'image/png'
    return fallback or 'application/octet-stream'


def extension_for_mime_type(mime_type: str) -> str:
    ext = MIME_TYPE_EXTENSIONS.get(mime_type)
    if ext is None:
        raise OverlayError(f"unable to find extension for mime type {mime_type}")
    return ext


def original_poster_position(files: List[MediaFile], ext: str, library_path: str) -> str:
    """
    Where the original poster for these media files lives.

    The poster sits beside the media file as ``<basename>-original<ext>``.
    Media outside ``library_path`` cannot be located. With several files the
    last one wins.
    """
    if not files:
        raise FileLocateError('<no media files>', library_path)
    position = ''
    for media_file in files:
        file_dir = posixpath.dirname(media_file.path)
        base, _ = os.path.splitext(posixpath.basename(media_file.path))
        if not library_path or not file_dir.startswith(library_path):
            logger.error(f"POSTER_LOCATE_FAILED file={media_file.path} library_path={library_path}")
            raise FileLocateError(media_file.path, library_path)
        after = file_dir[len(library_path):]
        position = f"{library_path}{after}/{base}{ORIGINAL_SUFFIX}{ext}"
    return position


class PlexPosterService:
    def __init__(self, client: PlexClient, file_manager: FileManager):
        self.client = client
        self.file_manager = file_manager

    def find_existing_poster(self, item: Item, library_config: LibraryConfig) -> str:
        for ext in ORIGINAL_POSTER_EXTENSIONS:
            position = original_poster_position(item.media, ext, library_config.path)
            if self.file_manager.check_if_poster_exists(position):
                return position
        return ''

    def download_poster(self, token: CancelToken, item: Item) -> Tuple[bytes, str]:
        """Fetch the item's poster from Plex; returns (data, extension)."""
        if not item.poster_url:
            raise NotFoundError(f"poster for {item.title}")
        response = self.client.get(item.poster_url, token)
        mime_type = detect_mime_type(response.body, response.content_type)
        return response.body, extension_for_mime_type(mime_type)

    def ensure_poster_exists(self, token: CancelToken, item: Item, library_config: LibraryConfig) -> None:
        if self.find_existing_poster(item, library_config):
            return
        data, ext = self.download_poster(token, item)
        position = original_poster_position(item.media, ext, library_config.path)
        self.file_manager.save_poster(position, data)

    def get_poster_disk_position(self, item: Item, library_config: LibraryConfig) -> str:
        position = self.find_existing_poster(item, library_config)
        if not position:
            raise NotFoundError(f"original poster for {item.title}")
        return position
