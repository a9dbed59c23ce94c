"""
TMDB rating provider.

Searches The Movie Database by title and year and turns the first match's
``vote_average`` into an audience rating.
"""

import json
from typing import Any, Dict, List, Optional, Tuple

from .cancellation import CancelToken
from .constants import (
    logger,
    RATING_TMDB,
    RATING_TYPE_AUDIENCE,
    TMDB_BASE_URL,
    TMDB_DEFAULT_LANGUAGE,
    TMDB_DEFAULT_REGION,
    TMDB_SEARCH_MOVIE_PATH,
)
from .errors import HTTPRequestError, NotAuthorizedError, NotFoundError
from .http_client import HTTPClient, build_url
from .models import Item, Rating


class TMDBClient:
    def __init__(self, api_key: str, http: HTTPClient, language: str = '', region: str = '',
                 base_url: str = TMDB_BASE_URL):
        if not api_key:
            raise ValueError('tmdb api key is required')
        self.api_key = api_key
        self.language = language or TMDB_DEFAULT_LANGUAGE
        self.region = region or TMDB_DEFAULT_REGION
        self.base_url = base_url
        self.http = http

    def get_json(self, path: str, token: CancelToken, params: List[Tuple[str, str]]) -> Dict[str, Any]:
        query = list(params)
        query += [('api_key', self.api_key), ('language', self.language), ('region', self.region)]
        response = self.http.get(
            build_url(self.base_url, path, query),
            headers={'Accept': 'application/json'},
            token=token,
        )
        if response.status == 401:
            raise NotAuthorizedError('tmdb')
        if response.status == 404:
            raise NotFoundError(path)
        if not 200 <= response.status < 300:
            raise HTTPRequestError(f"tmdb returned status {response.status} for {path}", response.status)
        try:
            payload = json.loads(response.body.decode('utf-8') or '{}')
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise HTTPRequestError(f"unable to decode TMDB response for {path}", response.status, e)
        return payload if isinstance(payload, dict) else {}

    def search_movie(self, token: CancelToken, title: str, year: int = 0) -> List[Dict[str, Any]]:
        params = [('query', title)]
        if year:
            params.append(('year', str(year)))
        return self.get_json(TMDB_SEARCH_MOVIE_PATH, token, params).get('results') or []


class TMDBRatingPlatform:
    """Fetches the TMDB audience score for an item."""

    name = RATING_TMDB

    def __init__(self, client: TMDBClient):
        self.client = client

    def get_rating(self, token: CancelToken, item: Item) -> Optional[Rating]:
        results = self.client.search_movie(token, item.title, item.year)
        if not results:
            logger.debug(f"TMDB_NO_MATCH title={item.title} year={item.year}")
            return None
        try:
            vote = float(results[0].get('vote_average') or 0)
        except (TypeError, ValueError):
            vote = 0.0
        if vote <= 0:
            return None
        return Rating(RATING_TMDB, RATING_TYPE_AUDIENCE, vote)
