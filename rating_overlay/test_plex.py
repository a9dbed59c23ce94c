#!/usr/bin/env python3
"""
Unit tests for the Plex media service.

HTTP is replaced by a recording fake; poster placement runs against a
temporary directory.

Run with:
    python3 -m pytest rating_overlay/test_plex.py -v
"""

import io
import json
import os
import stat
import tempfile
import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from PIL import Image

from rating_overlay.cancellation import CancelToken
from rating_overlay.config import FiltersConfig, LibraryConfig
from rating_overlay.errors import FileLocateError, NotAuthorizedError, NotFoundError, OverlayError
from rating_overlay.files import FileManager
from rating_overlay.http_client import HTTPResponse
from rating_overlay.models import Filter, Item, Library, MediaFile
from rating_overlay.plex import (
    PlexClient,
    PlexFilterService,
    PlexItemService,
    PlexLibraryService,
    PlexPosterService,
    build_ratings,
    convert_entry,
    detect_mime_type,
    original_poster_position,
)


class FakeHTTP:
    """Returns queued responses and records requested URLs."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.urls = []
        self.headers = []

    def get(self, url, headers=None, token=None):
        self.urls.append(url)
        self.headers.append(headers or {})
        return self.responses.pop(0)


def json_response(payload, status=200):
    return HTTPResponse(status, json.dumps(payload).encode('utf-8'), {'Content-Type': 'application/json'})


def png_bytes():
    buf = io.BytesIO()
    Image.new('RGB', (20, 30), (200, 10, 10)).save(buf, 'PNG')
    return buf.getvalue()


class TestPlexClient(unittest.TestCase):
    """Tests for PlexClient"""

    def test_token_and_accept_header(self):
        """Requests carry the token query param and JSON accept header"""
        http = FakeHTTP(json_response({'MediaContainer': {}}))
        client = PlexClient('http://plex:32400/', 'tok', http)
        client.get_container('/library/sections', CancelToken.background())
        self.assertEqual(http.urls[0], 'http://plex:32400/library/sections?X-Plex-Token=tok')
        self.assertEqual(http.headers[0]['Accept'], 'application/json')

    def test_unauthorized(self):
        """401 maps to NotAuthorizedError"""
        client = PlexClient('http://plex', 'bad', FakeHTTP(HTTPResponse(401)))
        with self.assertRaises(NotAuthorizedError):
            client.get_container('/library/sections', CancelToken.background())

    def test_not_found(self):
        """404 maps to NotFoundError"""
        client = PlexClient('http://plex', 'tok', FakeHTTP(HTTPResponse(404)))
        with self.assertRaises(NotFoundError):
            client.get_container('/library/sections/9/all', CancelToken.background())


class TestPlexLibraryService(unittest.TestCase):
    """Tests for PlexLibraryService"""

    def test_get_libraries(self):
        """Directory entries become libraries"""
        http = FakeHTTP(json_response({'MediaContainer': {'Directory': [
            {'key': '1', 'title': 'Movies', 'type': 'movie', 'language': 'en'},
            {'key': '2', 'title': 'Shows', 'type': 'show', 'language': 'it'},
        ]}}))
        service = PlexLibraryService(PlexClient('http://plex', 'tok', http))
        libraries = service.get_libraries(CancelToken.background())
        self.assertEqual(libraries, [Library('1', 'Movies', 'movie', 'en'), Library('2', 'Shows', 'show', 'it')])

    def test_refresh_library_forces(self):
        """Refresh hits the section refresh endpoint with force=1"""
        http = FakeHTTP(HTTPResponse(200))
        service = PlexLibraryService(PlexClient('http://plex', 'tok', http))
        service.refresh_library(CancelToken.background(), '3', True)
        self.assertEqual(http.urls[0], 'http://plex/library/sections/3/refresh?force=1&X-Plex-Token=tok')


class TestPlexFilterService(unittest.TestCase):
    """Tests for PlexFilterService"""

    def setUp(self):
        self.now = datetime(2024, 3, 31, 12, 0, 0, tzinfo=timezone.utc)
        self.service = PlexFilterService(clock=lambda: self.now)

    def test_filters_in_order(self):
        """year, title, genre and addedAt> are built in order"""
        config = LibraryConfig(filters=FiltersConfig(
            years=['2020', '2021'], titles=['Alien'], genres=['Horror', 'Sci-Fi'], added_at='last_10_days'))
        filters = self.service.get_filters_from_config(config)
        self.assertEqual([f.name for f in filters], ['year', 'title', 'genre', 'addedAt>'])
        self.assertEqual(filters[0].value, '2020,2021')
        self.assertEqual(filters[2].value, 'Horror,Sci-Fi')
        expected = int(datetime(2024, 3, 21, 12, 0, 0, tzinfo=timezone.utc).timestamp())
        self.assertEqual(filters[3].value, str(expected))

    def test_months_clamp_day(self):
        """Month arithmetic clamps to the end of a shorter month"""
        expected = int(datetime(2024, 2, 29, 12, 0, 0, tzinfo=timezone.utc).timestamp())
        self.assertEqual(self.service.build_added_at_value('last_1_months'), str(expected))

    def test_years(self):
        """Years subtract whole calendar years"""
        expected = int(datetime(2022, 3, 31, 12, 0, 0, tzinfo=timezone.utc).timestamp())
        self.assertEqual(self.service.build_added_at_value('last_2_years'), str(expected))

    def test_unrecognised_added_at_is_noop(self):
        """Other strings yield an empty value that is not sent"""
        self.assertEqual(self.service.build_added_at_value('yesterday'), '')
        filters = self.service.get_filters_from_config(LibraryConfig(filters=FiltersConfig(added_at='yesterday')))
        self.assertEqual(self.service.to_query(filters), [])

    def test_to_query_drops_empty(self):
        """Filters with an empty name or value are skipped"""
        query = PlexFilterService.to_query([Filter('year', '2020'), Filter('', 'x'), Filter('genre', '')])
        self.assertEqual(query, [('year', '2020')])


class TestPlexItems(unittest.TestCase):
    """Tests for item conversion and PlexItemService"""

    ENTRY = {
        'ratingKey': 42,
        'guid': 'plex://movie/5d776',
        'title': 'Arrival',
        'type': 'movie',
        'year': 2016,
        'thumb': '/library/metadata/42/thumb/1',
        'addedAt': 1700000000,
        'updatedAt': 1700000100,
        'rating': 9.4,
        'audienceRating': 8.2,
        'audienceRatingImage': 'rottentomatoes://image.rating.upright',
        'Media': [{'Part': [{'file': '/media/movies/Arrival (2016)/Arrival.mkv'}]}],
    }

    def test_convert_entry(self):
        """Metadata entries become eligible items with media files"""
        item = convert_entry(self.ENTRY)
        self.assertEqual(item.id, '42')
        self.assertEqual(item.year, 2016)
        self.assertEqual(item.poster_url, '/library/metadata/42/thumb/1')
        self.assertEqual(item.media, [MediaFile('/media/movies/Arrival (2016)/Arrival.mkv')])
        self.assertTrue(item.is_eligible)

    def test_rotten_tomatoes_ratings(self):
        """rottentomatoes images carry critic and audience scores"""
        ratings = build_ratings(self.ENTRY)
        self.assertEqual([(r.name, r.type, r.score) for r in ratings], [
            ('Rotten Tomatoes', 'critic', 9.4),
            ('Rotten Tomatoes', 'audience', 8.2),
        ])

    def test_imdb_rating(self):
        """imdb images carry an audience score"""
        ratings = build_ratings({'audienceRating': 7.9, 'audienceRatingImage': 'imdb://image.rating'})
        self.assertEqual([(r.name, r.type, r.score) for r in ratings], [('IMDB', 'audience', 7.9)])

    def test_zero_scores_are_dropped(self):
        """A zero critic score is not recorded"""
        entry = dict(self.ENTRY, rating=0)
        self.assertEqual([r.type for r in build_ratings(entry)], ['audience'])

    def test_unknown_provider(self):
        """Unknown rating images carry no ratings"""
        self.assertEqual(build_ratings({'audienceRating': 5, 'audienceRatingImage': 'other://x'}), [])

    def test_local_guid_is_ineligible(self):
        """Items matched by the local agent are not eligible"""
        item = convert_entry(dict(self.ENTRY, guid='local://123'))
        self.assertFalse(item.is_eligible)

    def test_get_items_sends_filters(self):
        """get_items queries the section with filters and the token"""
        http = FakeHTTP(json_response({'MediaContainer': {'Metadata': [self.ENTRY]}}))
        service = PlexItemService(PlexClient('http://plex', 'tok', http), PlexFilterService())
        config = LibraryConfig(name='Movies', filters=FiltersConfig(years=['2016']))
        items = service.get_items(CancelToken.background(), Library('1', 'Movies'), config)
        self.assertEqual([i.title for i in items], ['Arrival'])
        self.assertEqual(http.urls[0], 'http://plex/library/sections/1/all?year=2016&X-Plex-Token=tok')


class TestPosterPosition(unittest.TestCase):
    """Tests for original_poster_position"""

    def test_position_beside_media(self):
        """The original sits beside the media file"""
        files = [MediaFile('/media/movies/Arrival (2016)/Arrival.mkv')]
        self.assertEqual(
            original_poster_position(files, '.jpeg', '/media/movies'),
            '/media/movies/Arrival (2016)/Arrival-original.jpeg',
        )

    def test_media_at_library_root(self):
        """Media directly under the library root"""
        files = [MediaFile('/media/movies/Arrival.mkv')]
        self.assertEqual(original_poster_position(files, '.png', '/media/movies'), '/media/movies/Arrival-original.png')

    def test_last_file_wins(self):
        """With several parts the last one decides"""
        files = [MediaFile('/m/A/part1.mkv'), MediaFile('/m/A/part2.mkv')]
        self.assertEqual(original_poster_position(files, '.png', '/m'), '/m/A/part2-original.png')

    def test_outside_library_path(self):
        """Media outside the library root cannot be located"""
        with self.assertRaises(FileLocateError) as ctx:
            original_poster_position([MediaFile('/other/A/a.mkv')], '.png', '/m')
        self.assertEqual(ctx.exception.kind, 'cannot-locate-file')

    def test_detect_mime_type(self):
        """Magic bytes win over the server header"""
        self.assertEqual(detect_mime_type(b'\xff\xd8\xff\xe0rest', 'image/png'), 'image/jpeg')
        self.assertEqual(detect_mime_type(png_bytes()), 'image/png')
        self.assertEqual(detect_mime_type(b'GIF89a', 'image/gif'), 'image/gif')


class TestPlexPosterService(unittest.TestCase):
    """Tests for PlexPosterService against a temporary library"""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = self.tmp.name
        os.makedirs(os.path.join(self.root, 'Arrival (2016)'))
        self.item = Item(
            id='42', title='Arrival', poster_url='/library/metadata/42/thumb/1',
            media=[MediaFile(os.path.join(self.root, 'Arrival (2016)', 'Arrival.mkv'))],
        )
        self.config = LibraryConfig(name='Movies', path=self.root)

    def tearDown(self):
        self.tmp.cleanup()

    def test_download_when_missing(self):
        """A missing original is downloaded and saved with mode 0664"""
        http = FakeHTTP(HTTPResponse(200, png_bytes(), {'Content-Type': 'image/png'}))
        service = PlexPosterService(PlexClient('http://plex', 'tok', http), FileManager())
        service.ensure_poster_exists(CancelToken.background(), self.item, self.config)

        expected = os.path.join(self.root, 'Arrival (2016)', 'Arrival-original.png')
        self.assertTrue(os.path.exists(expected))
        self.assertEqual(stat.S_IMODE(os.stat(expected).st_mode), 0o664)
        self.assertEqual(service.get_poster_disk_position(self.item, self.config), expected)
        self.assertIn('/library/metadata/42/thumb/1?X-Plex-Token=tok', http.urls[0])

    def test_existing_original_is_not_downloaded(self):
        """An original already on disk is reused"""
        existing = os.path.join(self.root, 'Arrival (2016)', 'Arrival-original.jpeg')
        with open(existing, 'wb') as f:
            f.write(b'\xff\xd8\xff')
        client = MagicMock()
        service = PlexPosterService(client, FileManager())
        service.ensure_poster_exists(CancelToken.background(), self.item, self.config)
        client.get.assert_not_called()
        self.assertEqual(service.get_poster_disk_position(self.item, self.config), existing)

    def test_unsupported_image_type(self):
        """Content that is neither JPEG nor PNG is refused"""
        http = FakeHTTP(HTTPResponse(200, b'GIF89a', {'Content-Type': 'image/gif'}))
        service = PlexPosterService(PlexClient('http://plex', 'tok', http), FileManager())
        with self.assertRaises(OverlayError):
            service.ensure_poster_exists(CancelToken.background(), self.item, self.config)

    def test_position_without_original(self):
        """Locating a poster that is not on disk fails"""
        service = PlexPosterService(MagicMock(), FileManager())
        with self.assertRaises(NotFoundError):
            service.get_poster_disk_position(self.item, self.config)


if __name__ == '__main__':
    unittest.main()
